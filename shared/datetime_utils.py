"""
Date/time helpers: framework-agnostic.

Every timestamp in the core is a timezone-aware UTC datetime. MongoDB
hands back naive datetimes unless the client is tz_aware, so values read
from the store go through ensure_utc() before being compared.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive datetimes (no ``tzinfo``) are assumed to be UTC.
    ``None`` passes through unchanged.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expiry_from(now: datetime, minutes: int) -> datetime:
    """Return the instant *minutes* after *now*."""
    return now + timedelta(minutes=minutes)
