from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from practice_space.models.booking import BookingStatus
from practice_space.services.auto_cancellation_service import AutoCancellationService
from practice_space.services.reservation_service import AUTO_CANCEL_REASON

SWEEP_AT = datetime(2031, 3, 1, 12, 0)


@pytest.fixture
def sweeper(db, reservation_service) -> AutoCancellationService:
    return AutoCancellationService(db, reservation_service=reservation_service)


class TestAutoCancellationSweep:
    def test_cancels_past_deadline_and_keeps_the_rest(self, sweeper, book, recorded_events) -> None:
        late_start = SWEEP_AT + timedelta(days=2, hours=23)
        late = book(late_start, late_start + timedelta(hours=2))
        early_start = SWEEP_AT + timedelta(days=4)
        early = book(early_start, early_start + timedelta(hours=2))
        recorded_events.clear()

        result = sweeper.run(now=SWEEP_AT)

        assert result.examined == 1
        assert result.cancelled == 1
        assert result.cancelled_ids == [late.id]
        assert late.status == BookingStatus.CANCELLED.value
        assert late.cancellation_reason == AUTO_CANCEL_REASON
        assert early.status == BookingStatus.SCHEDULED.value
        assert [e.event_type for e in recorded_events] == ["BookingCancelled"]

    def test_confirmed_bookings_are_left_alone(self, sweeper, reservation_service, book) -> None:
        start = datetime(2031, 3, 3, 15, 0)
        booking = book(start, start + timedelta(hours=1))
        reservation_service.confirm_booking(booking.id, now=datetime(2031, 2, 27, 10, 0))

        result = sweeper.run(now=SWEEP_AT)

        assert result.examined == 0
        assert booking.status == BookingStatus.CONFIRMED.value

    def test_event_holds_are_never_swept(self, sweeper, reservation_service) -> None:
        start = datetime(2031, 3, 2, 18, 0)
        hold, _ = reservation_service.place_event_hold(
            "gig-44",
            "Spring showcase",
            start,
            start + timedelta(hours=3),
            now=datetime(2031, 2, 1, 9, 0),
        )

        result = sweeper.run(now=SWEEP_AT)

        assert result.examined == 0
        assert hold.status == BookingStatus.CONFIRMED.value

    def test_missed_run_does_not_cancel_slots_already_played(
        self, sweeper, book, recorded_events
    ) -> None:
        played = book(datetime(2031, 3, 1, 14, 0), datetime(2031, 3, 1, 16, 0))
        recorded_events.clear()

        result = sweeper.run(now=datetime(2031, 3, 2, 12, 0))

        assert result.examined == 0
        assert played.status == BookingStatus.SCHEDULED.value
        assert recorded_events == []

    def test_rerun_finds_nothing_left(self, sweeper, book) -> None:
        start = SWEEP_AT + timedelta(days=1)
        book(start, start + timedelta(hours=1))

        first = sweeper.run(now=SWEEP_AT)
        second = sweeper.run(now=SWEEP_AT)

        assert first.cancelled == 1
        assert second.examined == 0
        assert second.cancelled == 0

    def test_one_failure_does_not_stop_the_batch(self, sweeper, book) -> None:
        first = book(datetime(2031, 3, 2, 10, 0), datetime(2031, 3, 2, 11, 0))
        second = book(datetime(2031, 3, 3, 10, 0), datetime(2031, 3, 3, 11, 0))
        real_cancel = sweeper.reservations.auto_cancel_booking

        def flaky(booking_id, now):
            if booking_id == first.id:
                raise RuntimeError("ledger unavailable")
            return real_cancel(booking_id, now=now)

        with patch.object(sweeper.reservations, "auto_cancel_booking", side_effect=flaky):
            result = sweeper.run(now=SWEEP_AT)

        assert result.examined == 2
        assert result.failed == 1
        assert result.cancelled_ids == [second.id]
        assert first.status == BookingStatus.SCHEDULED.value

    def test_booking_that_no_longer_qualifies_is_skipped(self, sweeper, book) -> None:
        start = SWEEP_AT + timedelta(days=1)
        book(start, start + timedelta(hours=1))

        with patch.object(sweeper.reservations, "auto_cancel_booking", return_value=None):
            result = sweeper.run(now=SWEEP_AT)

        assert result.skipped == 1
        assert result.to_dict()["cancelled"] == 0
