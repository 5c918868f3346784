"""
Timezone utilities for the practice space.

All booking instants are stored as naive venue-local datetimes; these helpers
compute "now" and "today" in the venue's zone and normalize incoming values.
"""

from datetime import date, datetime
from typing import Optional

import pytz

from .config import settings


def get_venue_timezone() -> pytz.BaseTzInfo:
    """Return the configured venue timezone."""
    return pytz.timezone(settings.venue_timezone)


def venue_now() -> datetime:
    """
    Current wall-clock time at the venue, without tzinfo.

    Returns:
        Naive datetime in the venue's timezone
    """
    return datetime.now(get_venue_timezone()).replace(tzinfo=None)


def venue_today() -> date:
    return venue_now().date()


def to_venue_naive(dt: datetime) -> datetime:
    """
    Convert an aware datetime to naive venue-local time.

    Naive datetimes are assumed to already be venue-local.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(get_venue_timezone()).replace(tzinfo=None)


def resolve_now(now: Optional[datetime]) -> datetime:
    return to_venue_naive(now) if now is not None else venue_now()
