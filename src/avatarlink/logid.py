"""Log ID generation utilities for avatar sessions."""

from datetime import datetime, timezone

from nanoid import generate

LOG_ID_TIME_FORMAT = "%Y%m%d%H%M%S"
LOG_ID_NANOID_LENGTH = 12


def generate_log_id() -> str:
    """
    Generate a log identifier in the format "YYYYMMDDHHMMSS_<nanoid>".

    Used as the request id grouping a sequence of audio chunks. The timestamp
    prefix is UTC so ids sort by creation time; the nanoid suffix has 12 characters.

    Example:
        "20231215143022_AbC123XyZ456"
    """
    return _generate_log_id(datetime.now(timezone.utc))


def _generate_log_id(now: datetime) -> str:
    timestamp = now.astimezone(timezone.utc).strftime(LOG_ID_TIME_FORMAT)
    suffix = generate(size=LOG_ID_NANOID_LENGTH)
    return f"{timestamp}_{suffix}"
