"""
Datetime utilities for consistent timezone handling across the application.

All datetimes are stored and compared as timezone-aware UTC values. Some
database backends (SQLite) hand back naive datetimes, so values read from the
database should pass through ensure_utc() before arithmetic.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in UTC.

    Args:
        dt: Datetime to normalize

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive values are stored as UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to integer milliseconds since the Unix epoch."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 UTC string (e.g. '2025-01-28T10:00:00+00:00')."""
    aware = ensure_utc(dt)
    return aware.isoformat() if aware else None
