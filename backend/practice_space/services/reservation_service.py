# backend/practice_space/services/reservation_service.py
"""
Reservation Service for the practice space.

Owns the booking lifecycle:

    scheduled ──confirm──▶ confirmed
    reserved ───confirm──▶ confirmed
    scheduled/reserved/confirmed ──cancel──▶ cancelled

Scheduled bookings take their credits at creation; Reserved bookings (series
instances) defer them to confirmation. Every accepted window is re-checked
under the resource-day lock against a fresh snapshot read inside the write
transaction. Lifecycle events are published only after commit.
"""

from datetime import date, datetime, timedelta
import logging
from typing import List, NoReturn, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.day_lock import day_lock_key, resource_day_lock
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    StateException,
    ValidationException,
)
from ..core.timezone_utils import resolve_now, to_venue_naive
from ..domain.availability import ConflictReport
from ..events.booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingEvent,
    BookingUpdated,
)
from ..events.publisher import EventPublisher, get_event_publisher
from ..models.booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingKind,
    BookingStatus,
    PaymentStatus,
    requires_conflict_check,
)
from ..models.closure import Closure
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .availability_service import AvailabilityService
from .base import BaseService
from .cache_service import CacheService
from .conflict_index import ConflictIndex

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "not confirmed within window"
EVENT_RELEASE_REASON = "Event removed from calendar"
GENERIC_CONFLICT_MESSAGE = "This time slot conflicts with an existing booking"


class ReservationService(BaseService):
    """
    Service layer for rehearsal bookings, event holds and closures.

    Confirm and cancel are idempotent so billing webhook retries are safe.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        availability_service: Optional[AvailabilityService] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        """
        Initialize reservation service.

        Args:
            db: Database session
            cache: Optional cache used for read-side availability queries
            availability_service: Optional AvailabilityService sharing this session
            publisher: Event publisher; defaults to the process-wide one
        """
        super().__init__(db, cache)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.closure_repository = RepositoryFactory.create_base_repository(db, Closure)
        self.availability = availability_service or AvailabilityService(db, cache)
        self.publisher = publisher or get_event_publisher()

    # Policy

    @property
    def deadline_delta(self) -> timedelta:
        return timedelta(days=settings.confirmation_deadline_days)

    @property
    def window_delta(self) -> timedelta:
        return timedelta(days=settings.confirmation_window_days)

    def confirmation_deadline(self, starts_at: datetime) -> datetime:
        """Last instant (inclusive) at which a pending booking may still be confirmed."""
        return starts_at - self.deadline_delta

    def confirmation_opens(self, starts_at: datetime) -> datetime:
        return starts_at - self.window_delta

    def is_past_deadline(self, starts_at: datetime, now: datetime) -> bool:
        return now > self.confirmation_deadline(starts_at)

    def _initial_status(
        self,
        override: Optional[Union[BookingStatus, str]],
        recurring_series_id: Optional[str],
    ) -> BookingStatus:
        if override is not None:
            status = BookingStatus(override)
            if status is BookingStatus.CANCELLED:
                raise ValidationException(
                    "Bookings cannot be created cancelled",
                    errors=["Initial status cannot be cancelled"],
                )
            return status
        if recurring_series_id:
            return BookingStatus.RESERVED
        return BookingStatus.SCHEDULED

    def _should_auto_confirm(self, booking: Booking, now: datetime) -> bool:
        return (
            booking.status == BookingStatus.SCHEDULED.value
            and not booking.recurring_series_id
            and self.is_past_deadline(booking.starts_at, now)
        )

    # Shared helpers

    def _validate_request(self, start: datetime, end: datetime, now: datetime) -> None:
        errors = self.availability.validate_window(start, end)
        if end > start and start < now:
            errors.append("Booking cannot start in the past")
        if errors:
            raise ValidationException(
                "Requested time window is not bookable",
                errors=errors,
                details={"start": start.isoformat(), "end": end.isoformat()},
            )

    def _lock_days_in_transaction(self, days: Sequence[date]) -> None:
        for day in sorted(set(days)):
            self.repository.lock_key(day_lock_key(day))

    def _ensure_no_conflicts(
        self, start: datetime, end: datetime, exclude_id: Optional[str] = None
    ) -> None:
        report = self.availability.get_conflicts(start, end, exclude_id, fresh=True)
        if report.has_conflicts:
            self.logger.warning(
                f"Rejected {start.isoformat()}-{end.isoformat()}: {report.describe()}"
            )
            raise BookingConflictException(
                message=report.describe(),
                details=self._conflict_details(start, end, report),
            )

    @staticmethod
    def _conflict_details(
        start: datetime, end: datetime, report: Optional[ConflictReport] = None
    ) -> dict:
        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "conflicts": (report or ConflictReport()).to_dict(),
        }

    def _raise_conflict_from_repo_error(
        self, exc: RepositoryException, start: datetime, end: datetime
    ) -> NoReturn:
        """
        Translate storage-level overlap rejections into booking conflicts.

        The exclusion constraint only fires when two writers slipped past the
        day lock (e.g. Redis unavailable across processes).
        """
        message = str(exc).lower()
        if (
            "integrity constraint violated" in message
            or "exclusion constraint" in message
            or "deadlock detected" in message
        ):
            raise BookingConflictException(
                message=GENERIC_CONFLICT_MESSAGE,
                details=self._conflict_details(start, end),
            ) from exc
        raise exc

    def _get_for_update(self, booking_id: str) -> Booking:
        booking = self.repository.get_for_update(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def _publish(self, events: Sequence[BookingEvent]) -> None:
        self.publisher.publish_all(events)

    def _cancel_locked(
        self, booking: Booking, reason: Optional[str], now: datetime
    ) -> BookingCancelled:
        previous = booking.status
        credits_deducted = booking.credits_deducted
        booking.cancel(reason, now)
        self.repository.flush()
        prometheus_metrics.record_transition(previous, BookingStatus.CANCELLED.value)
        return BookingCancelled.from_booking(
            booking,
            now,
            previous_status=previous,
            credits_deducted=credits_deducted,
            reason=reason,
        )

    def _confirm_locked(self, booking: Booking, now: datetime) -> BookingConfirmed:
        previous = booking.status
        booking.confirm(now)
        self.repository.flush()
        prometheus_metrics.record_transition(previous, BookingStatus.CONFIRMED.value)
        return BookingConfirmed.from_booking(
            booking,
            now,
            previous_status=previous,
            deduct_credits=previous == BookingStatus.RESERVED.value,
        )

    # Lifecycle operations

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        status: Optional[Union[BookingStatus, str]] = None,
        recurring_series_id: Optional[str] = None,
        instance_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Create a rehearsal booking.

        Args:
            owner_id: Member making the booking
            start: Window start (venue-local; aware values are converted)
            end: Window end
            notes: Free-form notes
            status: Explicit initial status; a Scheduled booking already past its
                confirmation deadline is still confirmed on creation
            recurring_series_id: Series this instance belongs to
            instance_date: Series date this instance was generated for
            now: Reference instant (defaults to venue-local now)

        Returns:
            The committed booking

        Raises:
            ValidationException: Window invalid or in the past
            BookingConflictException: Window overlaps a buffered occupant
            ServiceException: Day lock timed out or the database failed
        """
        current = resolve_now(now)
        start, end = to_venue_naive(start), to_venue_naive(end)
        self.log_operation("create_booking", owner_id=owner_id, start=start.isoformat())

        self._validate_request(start, end, current)
        initial_status = self._initial_status(status, recurring_series_id)

        days = ConflictIndex.days_touched(start, end)
        events: List[BookingEvent] = []
        with resource_day_lock(days):
            try:
                with self.transaction():
                    self._lock_days_in_transaction(days)
                    self._ensure_no_conflicts(start, end)
                    booking = self.repository.create(
                        kind=BookingKind.REHEARSAL.value,
                        owner_id=owner_id,
                        starts_at=start,
                        ends_at=end,
                        status=initial_status.value,
                        notes=notes,
                        recurring_series_id=recurring_series_id,
                        instance_date=instance_date,
                    )
                    prometheus_metrics.record_transition(None, booking.status)
                    events.append(
                        BookingCreated.from_booking(
                            booking,
                            current,
                            defer_credits=booking.status == BookingStatus.RESERVED.value,
                        )
                    )
                    if self._should_auto_confirm(booking, current):
                        events.append(self._confirm_locked(booking, current))
            except RepositoryException as exc:
                self._raise_conflict_from_repo_error(exc, start, end)

        self.logger.info(
            f"Created booking {booking.id} for {owner_id} "
            f"{start.isoformat()}-{end.isoformat()} as {booking.status}"
        )
        self._publish(events)
        return booking

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        """
        Confirm a Scheduled or Reserved booking inside its confirmation window.

        Confirming an already-confirmed booking is a no-op and emits nothing.
        """
        current = resolve_now(now)
        event: Optional[BookingConfirmed] = None

        with self.transaction():
            booking = self._get_for_update(booking_id)

            if booking.status == BookingStatus.CONFIRMED.value:
                return booking
            if booking.is_cancelled:
                raise StateException(
                    "Cannot confirm a cancelled booking",
                    code="BOOKING_CANCELLED",
                    current_status=booking.status,
                )

            opens_at = self.confirmation_opens(booking.starts_at)
            deadline = self.confirmation_deadline(booking.starts_at)
            if current < opens_at:
                raise StateException(
                    f"Confirmation opens at {opens_at.isoformat()}",
                    code="CONFIRMATION_WINDOW_NOT_OPEN",
                    current_status=booking.status,
                    details={"opens_at": opens_at.isoformat()},
                )
            if current > deadline:
                raise StateException(
                    f"Confirmation deadline passed at {deadline.isoformat()}",
                    code="CONFIRMATION_DEADLINE_PASSED",
                    current_status=booking.status,
                    details={"deadline": deadline.isoformat()},
                )

            event = self._confirm_locked(booking, current)

        self._publish([event])
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel a rehearsal before its slot starts.

        Cancelling an already-cancelled booking is a no-op and emits nothing.
        Event holds are released through ``release_event_hold``.
        """
        current = resolve_now(now)

        with self.transaction():
            booking = self._get_for_update(booking_id)
            if booking.booking_kind is not BookingKind.REHEARSAL:
                raise StateException(
                    "Event holds are released from the event calendar, not cancelled",
                    code="NOT_A_REHEARSAL",
                    current_status=booking.status,
                    details={"event_id": booking.event_id},
                )
            if booking.is_cancelled:
                return booking
            if booking.has_started(current):
                raise StateException(
                    "Cannot cancel a booking that has already started",
                    code="BOOKING_ALREADY_STARTED",
                    current_status=booking.status,
                )
            event = self._cancel_locked(booking, reason, current)

        self._publish([event])
        return booking

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(
        self,
        booking_id: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Move a rehearsal to a new window.

        Settled bookings must be cancelled and recreated instead so billing
        never sees a paid booking change length.
        """
        current = resolve_now(now)
        start, end = to_venue_naive(start), to_venue_naive(end)

        existing = self.get_booking(booking_id)
        self._ensure_reschedulable(existing, current)
        self._validate_request(start, end, current)

        days = set(ConflictIndex.days_touched(start, end))
        days.update(ConflictIndex.days_touched(existing.starts_at, existing.ends_at))

        events: List[BookingEvent] = []
        with resource_day_lock(days):
            try:
                with self.transaction():
                    self._lock_days_in_transaction(list(days))
                    booking = self._get_for_update(booking_id)
                    self._ensure_reschedulable(booking, current)
                    self._ensure_no_conflicts(start, end, exclude_id=booking.id)

                    old_units = booking.billable_units
                    booking.starts_at = start
                    booking.ends_at = end
                    if notes is not None:
                        booking.notes = notes
                    self.repository.flush()
                    events.append(
                        BookingUpdated.from_booking(
                            booking,
                            current,
                            old_billable_units=old_units,
                            new_billable_units=booking.billable_units,
                        )
                    )
                    if self._should_auto_confirm(booking, current):
                        events.append(self._confirm_locked(booking, current))
            except RepositoryException as exc:
                self._raise_conflict_from_repo_error(exc, start, end)

        self._publish(events)
        return booking

    def _ensure_reschedulable(self, booking: Booking, now: datetime) -> None:
        if booking.booking_kind is not BookingKind.REHEARSAL:
            raise StateException(
                "Only rehearsal bookings can be rescheduled",
                code="NOT_A_REHEARSAL",
                current_status=booking.status,
            )
        if booking.is_cancelled:
            raise StateException(
                "Cannot reschedule a cancelled booking",
                code="BOOKING_CANCELLED",
                current_status=booking.status,
            )
        if booking.has_started(now):
            raise StateException(
                "Cannot reschedule a booking that has already started",
                code="BOOKING_ALREADY_STARTED",
                current_status=booking.status,
            )
        if booking.is_settled:
            raise StateException(
                "Settled bookings must be cancelled and rebooked",
                code="BOOKING_SETTLED",
                current_status=booking.status,
                details={"payment_status": booking.payment_status},
            )

    @BaseService.measure_operation("record_payment")
    def record_payment(
        self, booking_id: str, payment_status: Union[PaymentStatus, str]
    ) -> Booking:
        """Settlement hook for the billing collaborator. Repeating a status is a no-op."""
        try:
            new_status = PaymentStatus(payment_status)
        except ValueError:
            raise ValidationException(
                f"Unknown payment status: {payment_status}",
                errors=[f"payment_status must be one of {[s.value for s in PaymentStatus]}"],
            )

        with self.transaction():
            booking = self._get_for_update(booking_id)
            if booking.payment_status == new_status.value:
                return booking
            previous = booking.payment_status
            booking.payment_status = new_status.value
            self.repository.flush()

        self.log_operation(
            "record_payment", booking_id=booking_id, previous=previous, payment_status=new_status.value
        )
        return booking

    def auto_cancel_booking(self, booking_id: str, now: datetime) -> Optional[Booking]:
        """
        Cancel a booking that missed its confirmation deadline.

        Returns None when the booking no longer qualifies (confirmed, cancelled,
        still inside its window or already started), so the sweep can be
        re-run safely.
        """
        current = resolve_now(now)

        with self.transaction():
            booking = self._get_for_update(booking_id)
            if (
                booking.booking_kind is not BookingKind.REHEARSAL
                or not booking.is_pending
                or booking.has_started(current)
                or not self.is_past_deadline(booking.starts_at, current)
            ):
                return None
            event = self._cancel_locked(booking, AUTO_CANCEL_REASON, current)

        self._publish([event])
        return booking

    # Event holds

    @BaseService.measure_operation("place_event_hold")
    def place_event_hold(
        self,
        event_id: str,
        title: str,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> Tuple[Booking, List[Booking]]:
        """
        Block the space for a public event.

        Holds are placed without a conflict check; rehearsals the hold lands on
        are returned so staff can follow up with their owners.

        Returns:
            (hold, affected rehearsal bookings)
        """
        current = resolve_now(now)
        start, end = to_venue_naive(start), to_venue_naive(end)
        if end <= start:
            raise ValidationException(
                "Event hold must end after it starts", errors=["End time must be after start time"]
            )
        existing = self.repository.get_event_hold(event_id)
        if existing is not None:
            return existing, self.availability.get_affected_bookings(
                existing.starts_at, existing.ends_at
            )

        days = ConflictIndex.days_touched(start, end)
        with resource_day_lock(days):
            with self.transaction():
                self._lock_days_in_transaction(days)
                if requires_conflict_check(BookingKind.EVENT_HOLD):
                    self._ensure_no_conflicts(start, end)
                hold = self.repository.create(
                    kind=BookingKind.EVENT_HOLD.value,
                    event_id=event_id,
                    title=title,
                    starts_at=start,
                    ends_at=end,
                    status=BookingStatus.CONFIRMED.value,
                    payment_status=PaymentStatus.NOT_APPLICABLE.value,
                    confirmed_at=current,
                )
                prometheus_metrics.record_transition(None, hold.status)
                event = BookingCreated.from_booking(hold, current, defer_credits=False)
            affected = self.availability.get_affected_bookings(start, end)

        if affected:
            self.logger.warning(
                f"Event hold {hold.id} for {event_id} overlaps {len(affected)} rehearsal(s)"
            )
        self._publish([event])
        return hold, affected

    @BaseService.measure_operation("release_event_hold")
    def release_event_hold(self, event_id: str, now: Optional[datetime] = None) -> Booking:
        current = resolve_now(now)
        hold = self.repository.get_event_hold(event_id)
        if hold is None:
            raise NotFoundException(
                "No active hold for event", code="EVENT_HOLD_NOT_FOUND", details={"event_id": event_id}
            )

        with self.transaction():
            hold = self._get_for_update(hold.id)
            if hold.is_cancelled:
                return hold
            event = self._cancel_locked(hold, EVENT_RELEASE_REASON, current)

        self._publish([event])
        return hold

    # Closures

    @BaseService.measure_operation("create_closure")
    def create_closure(
        self,
        start: datetime,
        end: datetime,
        reason: str,
        created_by: Optional[str] = None,
    ) -> Tuple[Closure, List[Booking]]:
        """
        Black out the space.

        Existing rehearsals are not cancelled automatically; they are returned
        for staff to resolve.
        """
        start, end = to_venue_naive(start), to_venue_naive(end)
        errors = []
        if end <= start:
            errors.append("End time must be after start time")
        if not reason or not reason.strip():
            errors.append("A closure needs a reason")
        if errors:
            raise ValidationException("Invalid closure", errors=errors)

        with self.transaction():
            closure = self.closure_repository.create(
                starts_at=start, ends_at=end, reason=reason.strip(), created_by=created_by
            )
        affected = self.availability.get_affected_bookings(start, end)

        self.logger.info(
            f"Closure {closure.id} {start.isoformat()}-{end.isoformat()} "
            f"affects {len(affected)} booking(s)"
        )
        return closure, affected

    @BaseService.measure_operation("lift_closure")
    def lift_closure(self, closure_id: str, now: Optional[datetime] = None) -> Closure:
        current = resolve_now(now)
        with self.transaction():
            closure = self.closure_repository.get_for_update(closure_id)
            if closure is None:
                raise NotFoundException(
                    "Closure not found", code="CLOSURE_NOT_FOUND", details={"closure_id": closure_id}
                )
            if closure.is_active:
                closure.lift(current)
                self.closure_repository.flush()
        return closure

    # Lookups

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def get_bookings_for_owner(
        self, owner_id: str, upcoming_only: bool = False, now: Optional[datetime] = None
    ) -> List[Booking]:
        starting_after = resolve_now(now) if upcoming_only else None
        bookings = self.repository.get_for_owner(owner_id, starting_after=starting_after)
        if upcoming_only:
            active = {s.value for s in ACTIVE_STATUSES}
            bookings = [b for b in bookings if b.status in active]
        return bookings
