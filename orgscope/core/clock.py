"""UTC time helpers.

SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns,
PostgreSQL hands back aware ones. Everything in orgscope compares in UTC, so
values from either store (and from API callers) go through ``as_utc``.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
