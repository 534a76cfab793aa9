"""Centralized datetime utilities for consistent timezone handling.

Database timestamps are naive UTC (SQLAlchemy models use naive UTC), while
cron schedules are matched in the scheduler's configured timezone.

Usage:
    from jobdesk.core.datetime_utils import utc_now, get_cutoff, resolve_timezone

    # Current time
    now = utc_now()

    # Get cutoff for queries
    cutoff = get_cutoff(days=30)
    logs = query.filter(JobLog.start_time < cutoff)

    # Scheduler timezone
    tz = resolve_timezone(settings.scheduler_timezone)
"""

from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(hours: int = 0, days: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(hours=hours, days=days)
    return utc_now() - delta


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


def duration_ms(start: datetime, end: datetime) -> int:
    """Elapsed milliseconds between two naive UTC timestamps, never negative."""
    return max(int((end - start).total_seconds() * 1000), 0)


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is valid IANA identifier.

    Args:
        tz_name: Timezone string (e.g., "Asia/Jakarta")

    Returns:
        True if valid IANA timezone
    """
    try:
        ZoneInfo(tz_name)
        return True
    except (KeyError, ValueError):
        return False


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name, falling back to UTC for invalid names."""
    if not is_valid_timezone(tz_name):
        return ZoneInfo("UTC")
    return ZoneInfo(tz_name)
