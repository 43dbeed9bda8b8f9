"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from batchflow.utils.datetime_utils import utc_now

    timestamp = utc_now()

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Return the current local wall-clock time (used for human-facing codes)."""
    return datetime.now()


def as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Coerce a date-like value to a date.

    Accepts date, datetime, or an ISO-8601 string ("2025-03-01" or
    "2025-03-01T10:00:00"). Returns None for None or empty strings.

    Raises:
        ValueError: If a string cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def days_until(target: Union[date, datetime, str, None], today: Optional[date] = None) -> Optional[int]:
    """
    Whole days from today until target (negative once target has passed).

    Returns None when target is None.
    """
    target_date = as_date(target)
    if target_date is None:
        return None
    if today is None:
        today = date.today()
    return (target_date - today).days


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to naive UTC.

    SQLite hands back naive datetimes while freshly assigned attributes are
    timezone-aware; arithmetic between the two needs a common form.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
