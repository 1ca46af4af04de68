"""Centralized datetime utilities for consistent timezone handling.

All functions work on naive UTC datetimes for database compatibility
(SQLAlchemy models store naive UTC with microsecond resolution).

Usage:
    from jobstats.core.datetime_utils import elapsed_seconds, utc_now

    started_at = utc_now()
    ...
    handling_duration = elapsed_seconds(started_at, utc_now())
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    # Convert to UTC and strip timezone
    return dt.astimezone(UTC).replace(tzinfo=None)


def elapsed_seconds(start: datetime, end: datetime) -> float:
    """Get the seconds between two instants, never negative.

    Args:
        start: Earlier instant (naive UTC or aware)
        end: Later instant (naive UTC or aware)

    Returns:
        Fractional seconds from start to end, 0.0 if the clock went backwards
    """
    delta = (to_naive_utc(end) - to_naive_utc(start)).total_seconds()
    return max(delta, 0.0)
