"""Date and datetime helpers.

Timestamps are stored as timezone-aware UTC values; business dates (batch
date, production start/end) are plain dates.

Usage:
    from src.utils.datetime_utils import utc_now, today, parse_date

    created_at = Column(DateTime, default=utc_now)
    start = parse_date("2026-03-01")
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def parse_date(value: Union[None, str, date, datetime]) -> Optional[date]:
    """Coerce a date-like value to a date.

    Empty strings and None map to None (a cleared date). Datetimes are
    truncated to their date part.

    Raises:
        ValueError: If a string is not an ISO-8601 date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return date.fromisoformat(text[:10])
    raise ValueError(f"Cannot interpret {value!r} as a date")
