"""
Datetime utility functions for handling timezone-aware datetimes.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Using this function instead of datetime.now(timezone.utc) directly keeps
    the clock mockable in tests.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: datetime) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).

    SQLite returns timezone-naive datetimes even when they were stored as
    timezone-aware, so values read back from the database pass through here.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def elapsed_ms(since: datetime, now: datetime) -> int:
    """Whole milliseconds elapsed between two datetimes, never negative."""
    delta = ensure_timezone_aware(now) - ensure_timezone_aware(since)
    return max(0, int(delta.total_seconds() * 1000))
