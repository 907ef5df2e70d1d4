"""Configuration options for avatar sessions."""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

FrameHandler = Callable[[bytes, bool], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[Exception], Union[None, Awaitable[None]]]
CloseHandler = Callable[[], Union[None, Awaitable[None]]]


def _noop_frames(data: bytes, last: bool) -> None:
    return None


def _noop_error(err: Exception) -> None:
    return None


def _noop_close() -> None:
    return None


@dataclass(frozen=True)
class LiveKitEgressConfig:
    """
    Configuration for streaming to a LiveKit room.

    When set on a SessionConfig, audio and animation data are streamed to a LiveKit room
    via the egress service instead of being returned through the WebSocket connection.

    Attributes:
        url: LiveKit server URL (e.g., wss://livekit.example.com).
        api_key: LiveKit API key.
        api_secret: LiveKit API secret.
        room_name: LiveKit room name to join.
        publisher_id: Publisher identity in the room.
    """

    url: str = ""
    api_key: str = field(default="", repr=False)
    api_secret: str = field(default="", repr=False)
    room_name: str = ""
    publisher_id: str = ""


@dataclass(frozen=True)
class AgoraEgressConfig:
    """
    Configuration for streaming to an Agora channel.

    Attributes:
        channel_name: Agora channel name to join.
        token: Agora token for authentication (optional for testing).
        uid: Publisher UID in the channel (0 for auto-assign).
        publisher_id: Publisher identity/name.
    """

    channel_name: str = ""
    token: str = field(default="", repr=False)
    uid: int = 0
    publisher_id: str = ""


@dataclass(frozen=True)
class SessionConfig:
    """
    Configuration for an AvatarSession. Immutable once built.

    Attributes:
        avatar_id: The avatar identifier for the session.
        api_key: The API key used for the session token exchange.
        app_id: The application identifier.
        use_query_auth: If true, send app/session credentials as URL query params (web-style
            auth). If false (default), send them as headers (mobile-style auth).
        expire_at: Expiration time requested for the session token.
        model_version: Optional model version forwarded with the token request.
        sample_rate: Audio sample rate in Hz (default: 16000).
        bitrate: Audio bitrate (if applicable to the selected audio format). For PCM this
            may be 0.
        transport_frames: Callback for receiving animation frames (frame_data, is_last).
        on_error: Callback receiving asynchronous session errors.
        on_close: Callback invoked after an open connection is closed.
        console_endpoint_url: Base URL of the console API issuing session tokens.
        ingress_endpoint_url: Base URL of the ingress websocket endpoint.
        livekit_egress: If set, enables LiveKit egress mode.
        agora_egress: If set, enables Agora egress mode.

    Callbacks may be plain callables or coroutine functions. Passing None for any
    of them installs a no-op, so the callback slots are never empty.
    """

    avatar_id: str = ""
    api_key: str = field(default="", repr=False)
    app_id: str = ""
    use_query_auth: bool = False
    expire_at: Optional[datetime] = None
    model_version: str = ""
    sample_rate: int = 16000
    bitrate: int = 0
    transport_frames: FrameHandler = field(default=_noop_frames, repr=False)
    on_error: ErrorHandler = field(default=_noop_error, repr=False)
    on_close: CloseHandler = field(default=_noop_close, repr=False)
    console_endpoint_url: str = ""
    ingress_endpoint_url: str = ""
    livekit_egress: Optional[LiveKitEgressConfig] = None
    agora_egress: Optional[AgoraEgressConfig] = None

    def __post_init__(self) -> None:
        if self.transport_frames is None:
            object.__setattr__(self, "transport_frames", _noop_frames)
        if self.on_error is None:
            object.__setattr__(self, "on_error", _noop_error)
        if self.on_close is None:
            object.__setattr__(self, "on_close", _noop_close)


class SessionConfigBuilder:
    """Builder for constructing SessionConfig with fluent interface."""

    def __init__(self):
        self._values: dict[str, Any] = {}

    def _set(self, name: str, value: Any) -> "SessionConfigBuilder":
        self._values[name] = value
        return self

    def with_avatar_id(self, avatar_id: str) -> "SessionConfigBuilder":
        """Set the avatar identifier."""
        return self._set("avatar_id", avatar_id)

    def with_api_key(self, api_key: str) -> "SessionConfigBuilder":
        """Set the API key."""
        return self._set("api_key", api_key)

    def with_app_id(self, app_id: str) -> "SessionConfigBuilder":
        """Set the application identifier."""
        return self._set("app_id", app_id)

    def with_use_query_auth(self, use_query_auth: bool) -> "SessionConfigBuilder":
        """
        Choose whether websocket auth is sent via URL query params (web) or headers (mobile).
        """
        return self._set("use_query_auth", bool(use_query_auth))

    def with_expire_at(self, expire_at: datetime) -> "SessionConfigBuilder":
        """Set the session expiration time."""
        return self._set("expire_at", expire_at)

    def with_model_version(self, model_version: str) -> "SessionConfigBuilder":
        """Set the model version requested with the session token."""
        return self._set("model_version", model_version)

    def with_sample_rate(self, sample_rate: int) -> "SessionConfigBuilder":
        """Set the audio sample rate in Hz."""
        return self._set("sample_rate", sample_rate)

    def with_bitrate(self, bitrate: int) -> "SessionConfigBuilder":
        """Set the audio bitrate (if applicable)."""
        return self._set("bitrate", bitrate)

    def with_transport_frames(
        self, handler: Optional[FrameHandler]
    ) -> "SessionConfigBuilder":
        """Set the callback for receiving animation frames."""
        return self._set("transport_frames", handler or _noop_frames)

    def with_on_error(self, handler: Optional[ErrorHandler]) -> "SessionConfigBuilder":
        """Set the error handler callback."""
        return self._set("on_error", handler or _noop_error)

    def with_on_close(self, handler: Optional[CloseHandler]) -> "SessionConfigBuilder":
        """Set the close handler callback."""
        return self._set("on_close", handler or _noop_close)

    def with_console_endpoint_url(self, url: str) -> "SessionConfigBuilder":
        """Set the console endpoint URL."""
        return self._set("console_endpoint_url", url)

    def with_ingress_endpoint_url(self, url: str) -> "SessionConfigBuilder":
        """Set the ingress endpoint URL."""
        return self._set("ingress_endpoint_url", url)

    def with_livekit_egress(
        self, config: Optional[LiveKitEgressConfig]
    ) -> "SessionConfigBuilder":
        """
        Enable LiveKit egress mode for the session.

        When set, audio and animation data are streamed to a LiveKit room via the egress
        service instead of being returned through the WebSocket connection.
        """
        return self._set("livekit_egress", config)

    def with_agora_egress(
        self, config: Optional[AgoraEgressConfig]
    ) -> "SessionConfigBuilder":
        """Enable Agora egress mode for the session."""
        return self._set("agora_egress", config)

    def build(self) -> SessionConfig:
        """Build and return a SessionConfig from the values set so far."""
        return SessionConfig(**self._values)


_BUILDER_SETTERS = {
    f.name: f"with_{f.name}" for f in dataclasses.fields(SessionConfig)
}


def config_from_kwargs(**kwargs: Any) -> SessionConfig:
    """Build a SessionConfig from keyword arguments named after its fields."""
    unknown = sorted(set(kwargs) - set(_BUILDER_SETTERS))
    if unknown:
        raise TypeError(f"Unknown session option(s): {', '.join(unknown)}")

    builder = SessionConfigBuilder()
    for name, value in kwargs.items():
        getattr(builder, _BUILDER_SETTERS[name])(value)
    return builder.build()
