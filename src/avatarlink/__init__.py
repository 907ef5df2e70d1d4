"""
avatarlink - WebSocket client for avatar rendering services

This package exchanges API credentials for a session token, opens a websocket
session with the avatar ingress, streams audio to it and delivers the
animation frames produced by the service through callbacks.
"""

from .avatar_session import AvatarSession, new_avatar_session
from .errors import AvatarSDKError, AvatarSDKErrorCode, map_ws_connect_status
from .logid import generate_log_id
from .session_config import (
    AgoraEgressConfig,
    LiveKitEgressConfig,
    SessionConfig,
    SessionConfigBuilder,
)
from .session_token import SessionTokenError, request_session_token

__version__ = "0.1.0"

__all__ = [
    "AvatarSession",
    "SessionTokenError",
    "AvatarSDKError",
    "AvatarSDKErrorCode",
    "map_ws_connect_status",
    "new_avatar_session",
    "request_session_token",
    "SessionConfig",
    "SessionConfigBuilder",
    "LiveKitEgressConfig",
    "AgoraEgressConfig",
    "generate_log_id",
]
