"""Main AvatarSession implementation for managing avatar websocket sessions."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosedOK

from .errors import AvatarSDKError, map_ws_connect_status
from .logid import generate_log_id
from .proto import message_pb2
from .session_config import SessionConfig, config_from_kwargs
from .session_token import request_session_token

INGRESS_WEBSOCKET_PATH = "/websocket"

# Upper bound on how much of a rejected upgrade's response body is echoed back.
_MAX_ERROR_BODY = 4096

_LOGGER = logging.getLogger(__name__)


class AvatarSession:
    """
    Manages an active avatar session with websocket communication.

    The session handles:
    - Session token acquisition from console API
    - WebSocket connection to ingress endpoint and the configure/confirm handshake
    - Audio streaming to the server
    - Receiving animation frames and errors from the server

    ``send_audio`` is meant to be driven by one task at a time. Writes are
    serialized among themselves, while the connection handle and request id sit
    behind a separate state lock that is never held across a write, so ``close``
    can run concurrently with an in-flight ``send_audio`` and will fail it.
    """

    def __init__(self, config: SessionConfig):
        self._config = config
        self._session_token: Optional[str] = None
        self._connection: Optional[ClientConnection] = None
        self._connection_id: Optional[str] = None
        self._current_req_id: Optional[str] = None
        # Most recent request, kept after end=True so it can still be interrupted.
        self._last_req_id: Optional[str] = None
        self._read_task: Optional[asyncio.Task] = None
        self._callback_tasks: set[asyncio.Task] = set()
        # Guards _connection and the request ids; never held across a socket write.
        self._lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    @property
    def config(self) -> SessionConfig:
        """The immutable session configuration."""
        return self._config

    @property
    def connection_id(self) -> Optional[str]:
        """Connection id confirmed by the server on the most recent successful start."""
        return self._connection_id

    @property
    def is_connected(self) -> bool:
        """Whether the session holds an open connection (cleared by close)."""
        return self._connection is not None

    async def init(self, timeout: Optional[float] = None) -> None:
        """
        Exchange configuration credentials for a session token from the console API.

        Calling it again requests a fresh token and replaces the stored one.

        Raises:
            ValueError: If configuration is missing required fields.
            SessionTokenError: If token request fails.
        """
        self._session_token = await request_session_token(
            self._config.api_key,
            self._config.console_endpoint_url,
            self._config.expire_at,
            model_version=self._config.model_version,
            timeout=timeout,
        )

    async def start(self, timeout: Optional[float] = None) -> str:
        """
        Establish WebSocket connection to the ingress endpoint and run the handshake.

        Args:
            timeout: Optional deadline in seconds shared by connecting, sending the
                session configuration and waiting for the server's reply.

        Returns:
            Connection ID confirmed by the server.

        Raises:
            ValueError: If configuration is invalid, the session is not initialized
                or already started.
            AvatarSDKError: If the upgrade is rejected with a known auth status.
            ConnectionError: If connecting or the handshake fails.
        """
        async with self._lock:
            if self._connection is not None:
                raise ValueError("Session already started")
            if not self._session_token:
                raise ValueError("Session not initialized")
            if not self._config.ingress_endpoint_url:
                raise ValueError("Missing ingress endpoint URL")
            if not self._config.avatar_id:
                raise ValueError("Missing avatar ID")
            if not self._config.app_id:
                raise ValueError("Missing app ID")
            if (
                self._config.livekit_egress is not None
                and self._config.agora_egress is not None
            ):
                raise ValueError(
                    "Cannot configure both livekit_egress and agora_egress at the same time"
                )

            ws_url, headers = self._build_ingress_request(self._session_token)

            # One deadline covers connecting, the configure write and the reply.
            loop = asyncio.get_running_loop()
            deadline = None if timeout is None else loop.time() + timeout

            connection = await self._connect(ws_url, headers, _remaining(deadline))
            self._connection = connection

            # v2 handshake:
            # 1) client sends ClientConfigureSession
            # 2) server responds with ServerConfirmSession (connection_id) OR ServerError
            try:
                try:
                    connection_id = await asyncio.wait_for(
                        self._handshake(connection), _remaining(deadline)
                    )
                except asyncio.TimeoutError as e:
                    raise ConnectionError(
                        "Failed during websocket handshake: timed out waiting for server"
                    ) from e
            except BaseException:
                self._connection = None
                await self._abort_connection(connection)
                raise

            self._connection_id = connection_id
            self._read_task = asyncio.create_task(self._read_loop(connection))
            _LOGGER.debug("Avatar session started (connection_id=%s)", connection_id)
            return connection_id

    def _build_ingress_request(self, session_key: str) -> tuple[str, dict[str, str]]:
        endpoint = (
            self._config.ingress_endpoint_url.rstrip("/") + INGRESS_WEBSOCKET_PATH
        )

        # Parse URL and convert to WebSocket scheme
        parsed = urlparse(endpoint)
        scheme = parsed.scheme.lower()

        if scheme == "http":
            ws_scheme = "ws"
        elif scheme == "https":
            ws_scheme = "wss"
        elif scheme in ("ws", "wss"):
            ws_scheme = scheme
        elif not scheme:
            raise ValueError("Ingress endpoint scheme missing")
        else:
            raise ValueError(f"Unsupported scheme: {scheme}")

        query_params = parse_qs(parsed.query)
        query_params["id"] = [self._config.avatar_id]

        # v2 auth: mobile uses headers; web uses query params.
        headers: dict[str, str] = {}
        if self._config.use_query_auth:
            query_params["appId"] = [self._config.app_id]
            query_params["sessionKey"] = [session_key]
        else:
            headers = {
                "X-App-ID": self._config.app_id,
                "X-Session-Key": session_key,
            }

        ws_url = urlunparse(
            (
                ws_scheme,
                parsed.netloc,
                parsed.path,
                parsed.params,
                urlencode(query_params, doseq=True),
                parsed.fragment,
            )
        )
        return ws_url, headers

    async def _connect(
        self, ws_url: str, headers: dict[str, str], timeout: Optional[float]
    ) -> ClientConnection:
        connect_kwargs: dict[str, Any] = {"additional_headers": headers}
        if timeout is not None:
            connect_kwargs["open_timeout"] = timeout

        parsed = urlparse(ws_url)
        _LOGGER.debug("Connecting to %s://%s%s", parsed.scheme, parsed.netloc, parsed.path)
        try:
            return await asyncio.wait_for(
                websockets.connect(ws_url, **connect_kwargs), timeout
            )
        except asyncio.TimeoutError as e:
            raise ConnectionError("Failed to connect to websocket: timed out") from e
        except Exception as e:
            status = _rejected_status(e)
            code = map_ws_connect_status(status)
            if code is not None:
                raise AvatarSDKError(
                    code=code,
                    message=f"WebSocket auth failed (HTTP {status})",
                ) from e
            body = _rejected_body(e)
            if status is not None and body:
                raise ConnectionError(
                    f"Failed to connect to websocket: HTTP {status}: {body}"
                ) from e
            raise ConnectionError(f"Failed to connect to websocket: {e}") from e

    async def _abort_connection(self, connection: ClientConnection) -> None:
        try:
            await connection.close()
        except Exception:
            _LOGGER.debug("Error closing websocket after failed handshake", exc_info=True)

    async def _handshake(self, connection: ClientConnection) -> str:
        await self._send_client_configure_session(connection)
        return await self._await_server_confirm_session(connection)

    async def _send_client_configure_session(self, connection: ClientConnection) -> None:
        msg = message_pb2.Message()
        msg.type = message_pb2.MESSAGE_CLIENT_CONFIGURE_SESSION
        configure = msg.client_configure_session
        configure.sample_rate = int(self._config.sample_rate)
        configure.bitrate = int(self._config.bitrate)
        configure.audio_format = message_pb2.AUDIO_FORMAT_PCM_S16LE
        configure.transport_compression = message_pb2.TRANSPORT_COMPRESSION_NONE

        livekit = self._config.livekit_egress
        if livekit is not None:
            configure.egress_type = message_pb2.EGRESS_TYPE_LIVEKIT
            configure.livekit_egress.url = livekit.url
            configure.livekit_egress.api_key = livekit.api_key
            configure.livekit_egress.api_secret = livekit.api_secret
            configure.livekit_egress.room_name = livekit.room_name
            configure.livekit_egress.publisher_id = livekit.publisher_id

        agora = self._config.agora_egress
        if agora is not None:
            configure.egress_type = message_pb2.EGRESS_TYPE_AGORA
            configure.agora_egress.channel_name = agora.channel_name
            configure.agora_egress.token = agora.token
            configure.agora_egress.uid = agora.uid
            configure.agora_egress.publisher_id = agora.publisher_id

        try:
            await connection.send(msg.SerializeToString())
        except Exception as e:
            raise ConnectionError(
                f"Failed during websocket handshake: send configure session: {e}"
            ) from e

    async def _await_server_confirm_session(self, connection: ClientConnection) -> str:
        try:
            raw = await connection.recv()
        except Exception as e:
            raise ConnectionError(f"Failed during websocket handshake: {e}") from e

        if not isinstance(raw, (bytes, bytearray)):
            raise ConnectionError(
                "Failed during websocket handshake: expected binary protobuf message"
            )

        envelope = message_pb2.Message()
        try:
            envelope.ParseFromString(bytes(raw))
        except Exception as e:
            raise ConnectionError(
                f"Failed during websocket handshake: invalid protobuf payload ({e})"
            ) from e

        if envelope.type == message_pb2.MESSAGE_SERVER_CONFIRM_SESSION:
            cid = envelope.server_confirm_session.connection_id
            if not cid:
                raise ConnectionError(
                    "Handshake succeeded but server_confirm_session.connection_id is empty"
                )
            return cid

        if envelope.type == message_pb2.MESSAGE_SERVER_ERROR:
            err = envelope.server_error
            raise ConnectionError(
                f"ServerError during handshake (connection_id={err.connection_id}, "
                f"req_id={err.req_id}, code={err.code}): {err.message}"
            )

        if envelope.type == message_pb2.MESSAGE_ERROR:
            err = envelope.error
            raise ConnectionError(
                f"Error during handshake (req_id={err.req_id}, code={err.code}): {err.reason}"
            )

        raise ConnectionError(
            f"Unexpected message during handshake: type={envelope.type}"
        )

    async def send_audio(self, audio: bytes, end: bool = False) -> str:
        """
        Send audio data to the server.

        Chunks sent until (and including) the one with ``end=True`` share one
        request ID; the next call after that starts a new request.

        Currently supports 16kHz mono 16-bit PCM audio only.

        Args:
            audio: Raw audio bytes to send.
            end: Whether this is the last audio chunk for the current request.

        Returns:
            Request ID for tracking this audio request.

        Raises:
            ValueError: If connection is not established.
            ConnectionError: If the chunk could not be written.
        """
        async with self._send_lock:
            async with self._lock:
                connection = self._connection
                if connection is None:
                    raise ValueError("WebSocket connection is not established")

                if not self._current_req_id:
                    self._current_req_id = generate_log_id()
                    self._last_req_id = self._current_req_id

                req_id = self._current_req_id

            msg = message_pb2.Message()
            msg.type = message_pb2.MESSAGE_CLIENT_AUDIO_INPUT
            msg.client_audio_input.req_id = req_id
            msg.client_audio_input.audio = bytes(audio)
            msg.client_audio_input.end = end

            try:
                await connection.send(msg.SerializeToString())
            except Exception as e:
                raise ConnectionError(f"Failed to send audio: {e}") from e

            if end:
                async with self._lock:
                    if self._current_req_id == req_id:
                        self._current_req_id = None

            return req_id

    async def interrupt(self) -> str:
        """
        Send an interrupt signal to stop the current audio processing.

        Returns:
            The request ID that was interrupted.

        Raises:
            ValueError: If connection is not established or no request to interrupt.
            ConnectionError: If the interrupt could not be written.
        """
        async with self._send_lock:
            async with self._lock:
                connection = self._connection
                if connection is None:
                    raise ValueError("interrupt: websocket connection is not established")

                req_id = self._last_req_id
                if not req_id:
                    raise ValueError("interrupt: no request to interrupt")

            msg = message_pb2.Message()
            msg.type = message_pb2.MESSAGE_CLIENT_INTERRUPT
            msg.client_interrupt.req_id = req_id

            try:
                await connection.send(msg.SerializeToString())
            except Exception as e:
                raise ConnectionError(f"Failed to send interrupt: {e}") from e

            async with self._lock:
                self._current_req_id = None
            return req_id

    async def close(self) -> None:
        """
        Close the WebSocket connection and clean up resources.

        A no-op when no connection is open. Otherwise the connection is closed
        with a normal closure, the session forgets it, and ``on_close`` is
        scheduled, even if closing the socket failed.

        Raises:
            ConnectionError: If the close handshake failed.
        """
        await self._close_connection(None)

    async def _close_connection(self, expected: Optional[ClientConnection]) -> None:
        async with self._lock:
            connection = self._connection
            if connection is None:
                return
            if expected is not None and connection is not expected:
                return

            self._connection = None
            self._current_req_id = None

            read_task, self._read_task = self._read_task, None
            # The read loop closes the session itself on fatal errors.
            if read_task is not None and read_task is not asyncio.current_task():
                read_task.cancel()

            close_error: Optional[Exception] = None
            try:
                await connection.close()
            except Exception as e:
                close_error = e
            finally:
                self._dispatch(self._config.on_close)
            _LOGGER.debug("Avatar session closed (connection_id=%s)", self._connection_id)

        if close_error is not None:
            raise ConnectionError(f"Failed to close websocket: {close_error}") from close_error

    async def _read_loop(self, connection: ClientConnection) -> None:
        """Background task that reads messages from the WebSocket."""
        try:
            async for message in connection:
                if isinstance(message, (bytes, bytearray)):
                    await self._handle_binary_message(message)
        except ConnectionClosedOK:
            pass
        except Exception as e:
            _LOGGER.warning("Avatar session read loop failed: %s", e)
            self._dispatch(self._config.on_error, Exception(f"Read loop error: {e}"))
            try:
                await self._close_connection(connection)
            except ConnectionError as close_error:
                _LOGGER.warning("Avatar session close after read failure: %s", close_error)

    async def _handle_binary_message(self, payload: bytes) -> None:
        """Handle a binary message received from the server."""
        envelope = message_pb2.Message()
        try:
            envelope.ParseFromString(bytes(payload))
        except Exception as e:
            self._dispatch(
                self._config.on_error, Exception(f"Failed to decode message: {e}")
            )
            return

        if envelope.type == message_pb2.MESSAGE_SERVER_RESPONSE_ANIMATION:
            # The transport may reuse its buffer; hand callbacks their own copy.
            frame = bytes(payload)
            is_last = bool(envelope.server_response_animation.end)
            self._dispatch(self._config.transport_frames, frame, is_last)

        elif envelope.type == message_pb2.MESSAGE_SERVER_ERROR:
            if not envelope.HasField("server_error"):
                self._dispatch(
                    self._config.on_error,
                    Exception("Avatar session error message missing payload"),
                )
                return
            err = envelope.server_error
            self._dispatch(
                self._config.on_error,
                Exception(
                    f"Avatar session error (connection_id={err.connection_id}, "
                    f"req_id={err.req_id}, code={err.code}): {err.message}"
                ),
            )

        elif envelope.type == message_pb2.MESSAGE_ERROR:
            if not envelope.HasField("error"):
                self._dispatch(
                    self._config.on_error,
                    Exception("Avatar session error message missing payload"),
                )
                return
            err = envelope.error
            self._dispatch(
                self._config.on_error,
                Exception(
                    f"Avatar session error (connection_id={self._connection_id}, "
                    f"req_id={err.req_id}, code={err.code}): {err.reason}"
                ),
            )

    def _dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run a user callback on its own task so it never stalls the read loop."""
        task = asyncio.create_task(_invoke_callback(callback, *args))
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - asyncio.get_running_loop().time())


async def _invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _LOGGER.exception("Avatar session callback %r raised", callback)


def _rejected_status(exc: Exception) -> Optional[int]:
    """HTTP status of a rejected websocket upgrade, if the exception carries one."""
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    response = getattr(exc, "response", None)
    if status is None and response is not None:
        status = getattr(response, "status_code", None)
        if status is None:
            status = getattr(response, "status", None)

    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _rejected_body(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    body = getattr(response, "body", None)
    if not body:
        return ""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body[:_MAX_ERROR_BODY]).decode("utf-8", errors="replace")
    return str(body)[:_MAX_ERROR_BODY].strip()


def new_avatar_session(**kwargs: Any) -> AvatarSession:
    """
    Create a new AvatarSession with the provided configuration options.

    Args:
        **kwargs: Configuration parameters matching SessionConfig fields.

    Returns:
        A new AvatarSession instance.

    Example:
        ```python
        session = new_avatar_session(
            avatar_id="my-avatar",
            api_key="my-api-key",
            app_id="my-app",
            console_endpoint_url="https://console.example.com",
            ingress_endpoint_url="https://ingress.example.com",
            expire_at=datetime.now(timezone.utc) + timedelta(minutes=5)
        )
        ```
    """
    return AvatarSession(config_from_kwargs(**kwargs))
