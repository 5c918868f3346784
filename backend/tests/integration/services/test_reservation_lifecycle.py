from __future__ import annotations

from datetime import datetime, timedelta
from typing import List
from unittest.mock import patch

import pytest

from practice_space.core.config import settings
from practice_space.core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    StateException,
    ValidationException,
)
from practice_space.events import BookingEvent
from practice_space.models.booking import Booking, BookingStatus, PaymentStatus
from practice_space.services.reservation_service import AUTO_CANCEL_REASON

START = datetime(2031, 3, 11, 14, 0)
END = datetime(2031, 3, 11, 16, 0)


def _types(events: List[BookingEvent]) -> List[str]:
    return [e.event_type for e in events]


class TestInitialStatus:
    def test_booking_inside_deadline_is_confirmed_immediately(
        self, reservation_service, recorded_events
    ) -> None:
        booking = reservation_service.create_booking(
            "member-1",
            datetime(2025, 6, 10, 14, 0),
            datetime(2025, 6, 10, 16, 0),
            now=datetime(2025, 6, 8, 9, 0),
        )

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.confirmed_at == datetime(2025, 6, 8, 9, 0)
        assert _types(recorded_events) == ["BookingCreated", "BookingConfirmed"]
        assert recorded_events[1].previous_status == BookingStatus.SCHEDULED.value

    def test_booking_outside_deadline_stays_scheduled(
        self, reservation_service, recorded_events
    ) -> None:
        booking = reservation_service.create_booking(
            "member-1",
            datetime(2025, 6, 10, 14, 0),
            datetime(2025, 6, 10, 16, 0),
            now=datetime(2025, 6, 1, 9, 0),
        )

        assert booking.status == BookingStatus.SCHEDULED.value
        assert _types(recorded_events) == ["BookingCreated"]
        assert recorded_events[0].defer_credits is False
        assert recorded_events[0].billable_units == 4

    def test_deadline_instant_itself_is_still_on_time(self, reservation_service) -> None:
        booking = reservation_service.create_booking(
            "member-1", START, END, now=START - timedelta(days=3)
        )
        assert booking.status == BookingStatus.SCHEDULED.value

    def test_status_override_is_respected(self, reservation_service, recorded_events) -> None:
        booking = reservation_service.create_booking(
            "member-1",
            START,
            END,
            status=BookingStatus.RESERVED,
            now=START - timedelta(days=1),
        )
        assert booking.status == BookingStatus.RESERVED.value
        assert recorded_events[0].defer_credits is True

    def test_explicit_scheduled_inside_deadline_is_still_confirmed(
        self, reservation_service, recorded_events
    ) -> None:
        booking = reservation_service.create_booking(
            "member-1", START, END, status="scheduled", now=START - timedelta(hours=28)
        )

        assert booking.status == BookingStatus.CONFIRMED.value
        assert _types(recorded_events) == ["BookingCreated", "BookingConfirmed"]
        swept = reservation_service.auto_cancel_booking(booking.id, START - timedelta(hours=1))
        assert swept is None

    def test_cannot_create_cancelled(self, reservation_service) -> None:
        with pytest.raises(ValidationException):
            reservation_service.create_booking(
                "member-1", START, END, status="cancelled", now=START - timedelta(days=10)
            )


class TestValidation:
    def test_past_start_is_rejected(self, reservation_service) -> None:
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.create_booking("member-1", START, END, now=START + timedelta(hours=1))
        assert "Booking cannot start in the past" in exc_info.value.errors

    def test_outside_business_hours_and_too_short(self, reservation_service, db) -> None:
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.create_booking(
                "member-1",
                datetime(2031, 3, 11, 8, 0),
                datetime(2031, 3, 11, 8, 30),
                now=START - timedelta(days=10),
            )
        errors = exc_info.value.errors
        assert "Booking must be within business hours (09:00-22:00)" in errors
        assert "Booking must be at least 60 minutes" in errors
        assert db.query(Booking).count() == 0

    def test_end_before_start(self, reservation_service) -> None:
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.create_booking("member-1", END, START, now=START - timedelta(days=10))
        assert exc_info.value.errors == ["End time must be after start time"]


class TestConflicts:
    def test_buffer_rejects_back_to_back_and_accepts_after_turnover(
        self, reservation_service, book
    ) -> None:
        settings.buffer_minutes = 15
        book(START, END)

        with pytest.raises(BookingConflictException) as exc_info:
            book(datetime(2031, 3, 11, 16, 0), datetime(2031, 3, 11, 17, 0), owner_id="member-2")
        assert len(exc_info.value.conflicts["bookings"]) == 1

        later = book(
            datetime(2031, 3, 11, 16, 15), datetime(2031, 3, 11, 17, 15), owner_id="member-2"
        )
        assert later.status == BookingStatus.SCHEDULED.value

    def test_without_buffer_back_to_back_is_fine(self, book) -> None:
        book(START, END)
        assert book(END, END + timedelta(hours=1), owner_id="member-2").id

    def test_cancelled_booking_frees_the_window(self, reservation_service, book) -> None:
        first = book(START, END)
        reservation_service.cancel_booking(first.id, now=START - timedelta(days=10))
        assert book(START, END, owner_id="member-2").id != first.id

    def test_storage_overlap_rejection_becomes_conflict(self, reservation_service) -> None:
        with patch.object(
            reservation_service.repository,
            "create",
            side_effect=RepositoryException("Integrity constraint violated: exclusion"),
        ):
            with pytest.raises(BookingConflictException):
                reservation_service.create_booking(
                    "member-1", START, END, now=START - timedelta(days=10)
                )

    def test_other_repository_errors_propagate(self, reservation_service) -> None:
        with patch.object(
            reservation_service.repository,
            "create",
            side_effect=RepositoryException("Failed to create Booking: disk full"),
        ):
            with pytest.raises(RepositoryException):
                reservation_service.create_booking(
                    "member-1", START, END, now=START - timedelta(days=10)
                )


class TestConfirmAndCancel:
    def test_confirm_and_cancel_are_idempotent(
        self, reservation_service, book, recorded_events
    ) -> None:
        booking = book(START, END)
        inside_window = START - timedelta(days=4)

        reservation_service.confirm_booking(booking.id, now=inside_window)
        again = reservation_service.confirm_booking(booking.id, now=inside_window)
        assert again.status == BookingStatus.CONFIRMED.value

        reservation_service.cancel_booking(booking.id, "band split", now=inside_window)
        again = reservation_service.cancel_booking(booking.id, "band split", now=inside_window)
        assert again.status == BookingStatus.CANCELLED.value
        assert again.cancellation_reason == "band split"

        assert _types(recorded_events) == [
            "BookingCreated",
            "BookingConfirmed",
            "BookingCancelled",
        ]
        assert recorded_events[2].previous_status == BookingStatus.CONFIRMED.value

    def test_confirm_before_window_opens(self, reservation_service, book) -> None:
        booking = book(START, END)
        with pytest.raises(StateException) as exc_info:
            reservation_service.confirm_booking(booking.id, now=START - timedelta(days=6))
        assert exc_info.value.code == "CONFIRMATION_WINDOW_NOT_OPEN"

    def test_confirm_after_deadline(self, reservation_service, book) -> None:
        booking = book(START, END)
        with pytest.raises(StateException) as exc_info:
            reservation_service.confirm_booking(booking.id, now=START - timedelta(days=2))
        assert exc_info.value.code == "CONFIRMATION_DEADLINE_PASSED"
        assert reservation_service.get_booking(booking.id).status == BookingStatus.SCHEDULED.value

    def test_confirm_at_window_edges(self, reservation_service, book) -> None:
        first = book(START, END)
        second = book(START + timedelta(days=1), END + timedelta(days=1))

        opened = reservation_service.confirm_booking(first.id, now=START - timedelta(days=5))
        last_call = reservation_service.confirm_booking(
            second.id, now=START + timedelta(days=1) - timedelta(days=3)
        )
        assert opened.status == last_call.status == BookingStatus.CONFIRMED.value

    def test_reserved_confirmation_deducts_credits(
        self, reservation_service, book, recorded_events
    ) -> None:
        booking = book(START, END, status=BookingStatus.RESERVED)
        reservation_service.confirm_booking(booking.id, now=START - timedelta(days=4))
        assert recorded_events[-1].deduct_credits is True

    def test_cannot_confirm_cancelled(self, reservation_service, book) -> None:
        booking = book(START, END)
        reservation_service.cancel_booking(booking.id, now=START - timedelta(days=10))
        with pytest.raises(StateException) as exc_info:
            reservation_service.confirm_booking(booking.id, now=START - timedelta(days=4))
        assert exc_info.value.code == "BOOKING_CANCELLED"

    def test_cannot_cancel_after_start(self, reservation_service, book) -> None:
        booking = book(START, END)
        with pytest.raises(StateException) as exc_info:
            reservation_service.cancel_booking(booking.id, now=START + timedelta(minutes=1))
        assert exc_info.value.code == "BOOKING_ALREADY_STARTED"

    def test_cancel_records_reason_in_notes(self, reservation_service, book) -> None:
        booking = book(START, END, notes="Bring the PA")
        cancelled = reservation_service.cancel_booking(
            booking.id, "drummer sick", now=START - timedelta(days=10)
        )
        assert cancelled.notes == "Bring the PA\nCancellation reason: drummer sick"

    def test_unknown_booking(self, reservation_service) -> None:
        with pytest.raises(NotFoundException):
            reservation_service.confirm_booking("01HZZZZZZZZZZZZZZZZZZZZZZZ", now=START)

    def test_auto_cancel_skips_records_that_no_longer_qualify(
        self, reservation_service, book
    ) -> None:
        booking = book(START, END)
        assert reservation_service.auto_cancel_booking(booking.id, START - timedelta(days=4)) is None

        cancelled = reservation_service.auto_cancel_booking(booking.id, START - timedelta(days=2))
        assert cancelled.status == BookingStatus.CANCELLED.value
        assert cancelled.cancellation_reason == AUTO_CANCEL_REASON
        assert reservation_service.auto_cancel_booking(booking.id, START - timedelta(days=2)) is None

    def test_auto_cancel_leaves_started_slots_alone(
        self, reservation_service, book, recorded_events
    ) -> None:
        booking = book(START, END)

        for later in (START + timedelta(hours=1), START + timedelta(days=1)):
            assert reservation_service.auto_cancel_booking(booking.id, later) is None
        assert reservation_service.get_booking(booking.id).status == BookingStatus.SCHEDULED.value
        assert _types(recorded_events) == ["BookingCreated"]


class TestReschedule:
    def test_reschedule_moves_window_and_reports_units(
        self, reservation_service, book, recorded_events
    ) -> None:
        booking = book(START, END)
        moved = reservation_service.reschedule_booking(
            booking.id,
            datetime(2031, 3, 12, 10, 0),
            datetime(2031, 3, 12, 13, 0),
            now=START - timedelta(days=10),
        )

        assert moved.starts_at == datetime(2031, 3, 12, 10, 0)
        updated = recorded_events[-1]
        assert updated.event_type == "BookingUpdated"
        assert (updated.old_billable_units, updated.new_billable_units) == (4, 6)

    def test_reschedule_may_overlap_its_own_old_window(self, reservation_service, book) -> None:
        booking = book(START, END)
        moved = reservation_service.reschedule_booking(
            booking.id,
            START + timedelta(hours=1),
            END + timedelta(hours=1),
            now=START - timedelta(days=10),
        )
        assert moved.ends_at == END + timedelta(hours=1)

    def test_reschedule_into_deadline_confirms(self, reservation_service, book) -> None:
        booking = book(START, END)
        now = START - timedelta(days=1)
        moved = reservation_service.reschedule_booking(
            booking.id, START + timedelta(hours=2), END + timedelta(hours=2), now=now
        )
        assert moved.status == BookingStatus.CONFIRMED.value

    def test_settled_booking_cannot_be_rescheduled(self, reservation_service, book) -> None:
        booking = book(START, END)
        reservation_service.record_payment(booking.id, PaymentStatus.PAID)

        with pytest.raises(StateException) as exc_info:
            reservation_service.reschedule_booking(
                booking.id,
                START + timedelta(days=1),
                END + timedelta(days=1),
                now=START - timedelta(days=10),
            )
        assert exc_info.value.code == "BOOKING_SETTLED"

    def test_reschedule_into_conflict(self, reservation_service, book) -> None:
        booking = book(START, END)
        book(datetime(2031, 3, 11, 18, 0), datetime(2031, 3, 11, 20, 0), owner_id="member-2")
        with pytest.raises(BookingConflictException):
            reservation_service.reschedule_booking(
                booking.id,
                datetime(2031, 3, 11, 17, 0),
                datetime(2031, 3, 11, 19, 0),
                now=START - timedelta(days=10),
            )
        assert reservation_service.get_booking(booking.id).starts_at == START


class TestPayments:
    def test_record_payment_is_idempotent(self, reservation_service, book) -> None:
        booking = book(START, END)
        reservation_service.record_payment(booking.id, "paid")
        again = reservation_service.record_payment(booking.id, PaymentStatus.PAID)
        assert again.payment_status == PaymentStatus.PAID.value

    def test_unknown_payment_status(self, reservation_service, book) -> None:
        booking = book(START, END)
        with pytest.raises(ValidationException):
            reservation_service.record_payment(booking.id, "bitcoin")


class TestEventHoldsAndClosures:
    def test_event_hold_blocks_window_and_reports_displaced(
        self, reservation_service, book, recorded_events
    ) -> None:
        rehearsal = book(START, END)
        hold, affected = reservation_service.place_event_hold(
            "evt-42",
            "Open mic",
            datetime(2031, 3, 11, 15, 0),
            datetime(2031, 3, 11, 21, 0),
            now=START - timedelta(days=20),
        )

        assert [b.id for b in affected] == [rehearsal.id]
        assert hold.status == BookingStatus.CONFIRMED.value
        assert hold.payment_status == PaymentStatus.NOT_APPLICABLE.value
        assert recorded_events[-1].kind == "event_hold"

        with pytest.raises(BookingConflictException) as exc_info:
            book(datetime(2031, 3, 11, 19, 0), datetime(2031, 3, 11, 20, 0), owner_id="member-2")
        assert exc_info.value.conflicts["event_holds"][0]["label"] == "Open mic"

    def test_event_hold_is_idempotent_per_event(self, reservation_service) -> None:
        first, _ = reservation_service.place_event_hold(
            "evt-1", "Showcase", START, END, now=START - timedelta(days=20)
        )
        second, _ = reservation_service.place_event_hold(
            "evt-1", "Showcase", START, END, now=START - timedelta(days=20)
        )
        assert first.id == second.id

    def test_released_hold_frees_window(self, reservation_service, book) -> None:
        reservation_service.place_event_hold(
            "evt-1", "Showcase", START, END, now=START - timedelta(days=20)
        )
        released = reservation_service.release_event_hold("evt-1", now=START - timedelta(days=15))
        assert released.status == BookingStatus.CANCELLED.value
        assert book(START, END).id

        with pytest.raises(NotFoundException):
            reservation_service.release_event_hold("evt-1")

    def test_hold_cannot_be_cancelled_like_a_rehearsal(
        self, reservation_service, recorded_events
    ) -> None:
        hold, _ = reservation_service.place_event_hold(
            "evt-1", "Showcase", START, END, now=START - timedelta(days=20)
        )

        with pytest.raises(StateException) as exc_info:
            reservation_service.cancel_booking(hold.id, now=START - timedelta(days=15))
        assert exc_info.value.code == "NOT_A_REHEARSAL"
        assert reservation_service.get_booking(hold.id).status == BookingStatus.CONFIRMED.value

        reservation_service.release_event_hold("evt-1", now=START - timedelta(days=15))
        assert recorded_events[-1].event_type == "BookingCancelled"
        assert recorded_events[-1].credits_deducted is False

    def test_closure_blocks_until_lifted(self, reservation_service, book) -> None:
        existing = book(datetime(2031, 3, 11, 10, 0), datetime(2031, 3, 11, 11, 0))
        closure, affected = reservation_service.create_closure(
            datetime(2031, 3, 11, 9, 0), datetime(2031, 3, 11, 22, 0), "Floor refinishing"
        )
        assert [b.id for b in affected] == [existing.id]
        assert reservation_service.get_booking(existing.id).status == BookingStatus.SCHEDULED.value

        with pytest.raises(BookingConflictException):
            book(START, END, owner_id="member-2")

        reservation_service.lift_closure(closure.id, now=START - timedelta(days=20))
        assert book(START, END, owner_id="member-2").id

    def test_closure_needs_reason(self, reservation_service) -> None:
        with pytest.raises(ValidationException):
            reservation_service.create_closure(START, END, "   ")


class TestSubscriberIsolation:
    def test_failing_subscriber_does_not_undo_booking(
        self, reservation_service, publisher, recorded_events, db
    ) -> None:
        def broken(event) -> None:
            raise RuntimeError("notification service down")

        publisher.subscribe(broken)
        booking = reservation_service.create_booking(
            "member-1", START, END, now=START - timedelta(days=10)
        )

        assert db.get(Booking, booking.id) is not None
        assert _types(recorded_events) == ["BookingCreated"]


def test_owner_listing(reservation_service, book) -> None:
    past = book(START, END)
    future = book(START + timedelta(days=7), END + timedelta(days=7))
    reservation_service.cancel_booking(past.id, now=START - timedelta(days=10))

    everything = reservation_service.get_bookings_for_owner("member-1")
    upcoming = reservation_service.get_bookings_for_owner(
        "member-1", upcoming_only=True, now=START - timedelta(days=1)
    )

    assert [b.id for b in everything] == [past.id, future.id]
    assert [b.id for b in upcoming] == [future.id]
