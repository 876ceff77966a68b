"""
Centralized datetime utilities.

All timestamps are stored and compared as UTC. SQLite drops tzinfo on the
way back out, so anything read from the database goes through ensure_utc
before it is compared with utc_now().
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current time in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure datetime is UTC timezone-aware.

    Converts naive datetime (assumed to be UTC) to timezone-aware UTC.
    If datetime is already timezone-aware, converts to UTC.

    Example:
        >>> ensure_utc(datetime(2025, 12, 16, 11, 30)).tzinfo
        datetime.timezone.utc
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def from_timestamp(value: float | None) -> datetime | None:
    """Unix seconds (as kept in the ephemeral store) -> aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
