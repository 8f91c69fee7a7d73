"""
Time helpers.

The service works in naive UTC throughout. PostgreSQL hands back aware
datetimes for timestamptz columns while SQLite hands back naive ones, so
values read from the database are normalised before Python comparisons.
"""

from datetime import datetime, date, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.utcnow()


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting aware datetimes to UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def today(now: Optional[datetime] = None) -> date:
    """Calendar date (UTC) of now."""
    return (now or utcnow()).date()
