"""Datetime utilities for timezone-aware UTC timestamps.

All instants handled by the service layer are UTC. SQLite drops tzinfo on
storage, so values read back are naive; ensure_utc() restores the UTC
interpretation.

Usage:
    from bakery_trace.utils.datetime_utils import utc_now, ensure_utc

    timestamp = utc_now()
    started_at = ensure_utc(run.started_at)
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be UTC (the storage convention);
    aware datetimes are converted.

    Args:
        value: Datetime to normalize, or None

    Returns:
        Aware UTC datetime, or None if value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Convert a datetime to the naive UTC form written to the database."""
    value = ensure_utc(value)
    if value is None:
        return None
    return value.replace(tzinfo=None)
