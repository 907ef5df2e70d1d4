"""Session token exchange against the console API."""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Optional

import aiohttp

SESSION_TOKEN_PATH = "/session-tokens"

_LOGGER = logging.getLogger(__name__)


class SessionTokenError(Exception):
    """Raised when session token request fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


async def request_session_token(
    api_key: str,
    console_endpoint_url: str,
    expire_at: Optional[datetime],
    *,
    model_version: str = "",
    timeout: Optional[float] = None,
) -> str:
    """
    Exchange an API key for a short-lived session token.

    Issues exactly one ``POST {console}/session-tokens`` request.

    Args:
        api_key: Console API key, sent as ``X-Api-Key``.
        console_endpoint_url: Base URL of the console API.
        expire_at: Requested token expiry; sent as unix seconds.
        model_version: Optional model version, omitted from the body when empty.
        timeout: Total request timeout in seconds, or None for no limit.

    Returns:
        The non-empty session token.

    Raises:
        ValueError: If a required argument is missing (checked before any I/O).
        SessionTokenError: If the request fails or the response carries no token.
    """
    if not api_key:
        raise ValueError("Missing API key")
    if not console_endpoint_url:
        raise ValueError("Missing console endpoint URL")
    if expire_at is None or int(expire_at.timestamp()) == 0:
        raise ValueError("Missing expireAt")

    endpoint = console_endpoint_url.rstrip("/") + SESSION_TOKEN_PATH

    payload: dict[str, Any] = {"expireAt": int(expire_at.timestamp())}
    if model_version:
        payload["modelVersion"] = model_version

    headers = {
        "X-Api-Key": api_key,
        "Content-Type": "application/json",
    }

    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.post(
                endpoint, json=payload, headers=headers
            ) as response:
                status = response.status
                response_text = await response.text()
    except asyncio.TimeoutError as e:
        raise SessionTokenError("Session token request timed out") from e
    except aiohttp.ClientError as e:
        raise SessionTokenError(f"Session token request failed: {e}") from e

    if not 200 <= status < 300:
        try:
            error_data = json.loads(response_text)
        except json.JSONDecodeError:
            error_data = None
        if isinstance(error_data, dict) and error_data.get("errors"):
            error_msg = format_session_token_error(status, error_data)
        else:
            error_msg = f"Request failed with status {status}"
        raise SessionTokenError(error_msg, status=status)

    try:
        response_data = json.loads(response_text)
    except json.JSONDecodeError as e:
        raise SessionTokenError(f"Failed to decode response: {e}", status=status) from e
    if not isinstance(response_data, dict):
        raise SessionTokenError(
            "Failed to decode response: expected a JSON object", status=status
        )

    if response_data.get("errors"):
        raise SessionTokenError(
            format_session_token_error(status, response_data), status=status
        )

    session_token = response_data.get("sessionToken")
    if not session_token or not isinstance(session_token, str):
        raise SessionTokenError("Empty session token in response", status=status)

    _LOGGER.debug("Session token issued by %s", endpoint)
    return session_token


def format_session_token_error(status: int, response_data: dict) -> str:
    """Format the first service-reported error entry into a readable message."""
    errors = response_data.get("errors") or []
    if not isinstance(errors, list) or not errors or not isinstance(errors[0], dict):
        return f"Unknown error with status {status}"

    err = errors[0]
    return (
        f"Error {err.get('status', status)} ({err.get('code', 'unknown')}): "
        f"{err.get('title', 'Error')} - {err.get('detail', 'No details')}"
    )
