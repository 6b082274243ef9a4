"""
Time Utilities
Timezone-aware helpers shared by sessions and agents
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time

    Returns:
        Current timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """
    Get current time as ISO 8601 string

    Examples:
        >>> iso_now()
        "2026-01-09T15:30:45.123456+00:00"
    """
    return utc_now().isoformat()


def minutes_since(dt: datetime, reference: Optional[datetime] = None) -> float:
    """
    Minutes elapsed between dt and reference (default: now)

    Args:
        dt: Earlier datetime
        reference: Later datetime

    Returns:
        Elapsed minutes (negative if dt is in the future)
    """
    reference = reference or utc_now()
    return (reference - dt) / timedelta(minutes=1)


def is_expired(dt: datetime, max_age_minutes: float, reference: Optional[datetime] = None) -> bool:
    """
    Check if more than max_age_minutes have passed since dt

    Args:
        dt: Datetime to check
        max_age_minutes: Allowed age in minutes
        reference: Point in time to compare against (default: now)

    Returns:
        True if expired
    """
    return minutes_since(dt, reference) > max_age_minutes
