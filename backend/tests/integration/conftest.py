# backend/tests/integration/conftest.py
"""Service fixtures wired to the per-test SQLite session and publisher."""

from datetime import datetime, timedelta

import pytest

from practice_space.services.availability_service import AvailabilityService
from practice_space.services.recurring_series_service import RecurringSeriesService
from practice_space.services.reservation_service import ReservationService


@pytest.fixture
def availability_service(db) -> AvailabilityService:
    return AvailabilityService(db)


@pytest.fixture
def reservation_service(db, availability_service, publisher) -> ReservationService:
    return ReservationService(db, availability_service=availability_service, publisher=publisher)


@pytest.fixture
def series_service(db, reservation_service) -> RecurringSeriesService:
    return RecurringSeriesService(db, reservation_service=reservation_service)


@pytest.fixture
def book(reservation_service):
    """Create a rehearsal well ahead of time so it stays Scheduled."""

    def _book(start: datetime, end: datetime, owner_id: str = "member-1", **kwargs):
        kwargs.setdefault("now", start - timedelta(days=30))
        return reservation_service.create_booking(owner_id, start, end, **kwargs)

    return _book
