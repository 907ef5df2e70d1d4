from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AvatarSDKErrorCode(str, Enum):
    """
    Stable error codes surfaced by the SDK.

    Notes:
    - These codes are referenced by the v2 websocket API documentation.
    - They are intentionally string enums so they serialize cleanly to logs/JSON.
    """

    sessionTokenExpired = "sessionTokenExpired"
    sessionTokenInvalid = "sessionTokenInvalid"
    appIDUnrecognized = "appIDUnrecognized"
    unknown = "unknown"


@dataclass(frozen=True)
class AvatarSDKError(Exception):
    """
    SDK exception with a stable error code.
    """

    code: AvatarSDKErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


_WS_CONNECT_STATUS_CODES = {
    401: AvatarSDKErrorCode.sessionTokenExpired,
    400: AvatarSDKErrorCode.sessionTokenInvalid,
    404: AvatarSDKErrorCode.appIDUnrecognized,
}


def map_ws_connect_status(status: Optional[int]) -> Optional[AvatarSDKErrorCode]:
    """
    Map the HTTP status of a rejected websocket upgrade to a stable SDK error code.

    Only 401, 400 and 404 have a mapping; any other status (or none) returns
    None and the caller reports a generic connection failure instead.
    """
    if status is None:
        return None
    return _WS_CONNECT_STATUS_CODES.get(status)
