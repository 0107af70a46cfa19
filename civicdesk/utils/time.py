"""
Datetime utilities. All timezone handling goes through here.

Rule: ALL internal datetimes must be timezone-aware (UTC).
Stored records and CLI input may carry naive or "Z"-suffixed strings; wrap them with ensure_aware().
"""

import math
from datetime import datetime, timezone
from typing import Optional, Union


def ensure_aware(dt: Union[datetime, str, None]) -> datetime:
    """
    Ensure a datetime is timezone-aware (UTC).

    - naive datetime → assume UTC, add tzinfo
    - aware datetime → return as-is
    - ISO string → parse and ensure aware
    - None → return current UTC time

    Examples:
        >>> ensure_aware(datetime(2026, 1, 1))
        datetime.datetime(2026, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)

        >>> ensure_aware("2026-01-01T00:00:00Z")
        datetime.datetime(2026, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    if dt is None:
        return datetime.now(timezone.utc)

    if isinstance(dt, str):
        dt = dt.replace("Z", "+00:00")
        dt = datetime.fromisoformat(dt)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt


def parse_optional(value: Optional[str]) -> Optional[datetime]:
    """Parse an optional ISO timestamp, keeping None as None."""
    return ensure_aware(value) if value else None


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def days_between_ceil(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounded up (0 for identical instants)."""
    seconds = abs((ensure_aware(end) - ensure_aware(start)).total_seconds())
    return math.ceil(seconds / 86400)
