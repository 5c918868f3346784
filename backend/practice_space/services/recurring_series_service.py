# backend/practice_space/services/recurring_series_service.py
"""
Recurring Series Service for the practice space.

Turns a weekly rule into concrete Reserved bookings through the reservation
lifecycle, one instance at a time. An instance that cannot be booked is
skipped and remembered as a cancelled placeholder so later generation runs do
not retry it. Also hosts the advisory credit forecast for a proposed series.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    NotFoundException,
    RepositoryException,
    StateException,
    ValidationException,
)
from ..core.timezone_utils import resolve_now
from ..domain.billing import billable_units
from ..domain.intervals import Interval
from ..models.booking import Booking, BookingKind, BookingStatus, PaymentStatus
from ..models.recurring_series import RecurringSeries, SeriesStatus, weekly_occurrences
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheService
from .reservation_service import ReservationService

logger = logging.getLogger(__name__)

CONFLICT_SKIP_REASON = "Scheduling conflict"
MANUAL_SKIP_REASON = "Manually skipped"
DEADLINE_SKIP_REASON = "Past confirmation deadline"
SERIES_CANCEL_REASON = "Recurring series cancelled"
DEFAULT_PREVIEW_LIMIT = 8


@dataclass(frozen=True)
class RecurrencePattern:
    """Weekly recurrence: ``weeks`` occurrences (None = open-ended), every ``interval_weeks``."""

    weeks: Optional[int] = None
    interval_weeks: int = 1

    @classmethod
    def from_series(cls, series: RecurringSeries) -> "RecurrencePattern":
        return cls(weeks=series.occurrences, interval_weeks=series.interval_weeks or 1)

    def validate(self) -> List[str]:
        errors = []
        if self.interval_weeks < 1:
            errors.append("Interval must be at least one week")
        if self.weeks is not None and self.weeks < 1:
            errors.append("A series needs at least one occurrence")
        return errors


@dataclass(frozen=True)
class SkippedInstance:
    instance_date: date
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"instance_date": self.instance_date.isoformat(), "reason": self.reason}


@dataclass
class GenerationResult:
    created: List[Booking] = field(default_factory=list)
    skipped: List[SkippedInstance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": [b.to_dict() for b in self.created],
            "skipped": [s.to_dict() for s in self.skipped],
        }


@dataclass
class PatternValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    occurrences: List[date] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "occurrences": [d.isoformat() for d in self.occurrences],
            "warnings": list(self.warnings),
        }


class CreditLedger(Protocol):
    """Read-only view of the billing collaborator's credit ledger."""

    def get_balance(self, owner_id: str) -> int:
        ...

    def get_monthly_allocation(self, owner_id: str) -> int:
        ...


@dataclass(frozen=True)
class FixedCreditLedger:
    """Ledger with a known balance and allocation, for previews supplied by the caller."""

    balance: int
    monthly_allocation: int

    def get_balance(self, owner_id: str) -> int:
        return self.balance

    def get_monthly_allocation(self, owner_id: str) -> int:
        return self.monthly_allocation


@dataclass(frozen=True)
class ForecastLine:
    starts_at: datetime
    deadline: datetime
    cost: int
    balance_before: int
    balance_after: int
    shortfall: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "starts_at": self.starts_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "cost": self.cost,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "shortfall": self.shortfall,
        }


@dataclass(frozen=True)
class Forecast:
    sufficient: bool
    shortfall: int
    final_balance: int
    starting_balance: int = 0
    total_cost: int = 0
    lines: Tuple[ForecastLine, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sufficient": self.sufficient,
            "shortfall": self.shortfall,
            "final_balance": self.final_balance,
            "starting_balance": self.starting_balance,
            "total_cost": self.total_cost,
            "lines": [line.to_dict() for line in self.lines],
        }


def _month_index(value: datetime) -> int:
    return value.year * 12 + value.month


class RecurringSeriesService(BaseService):
    """
    Planner for recurring rehearsal series.

    Instances go through ReservationService.create_booking so they get the
    same validation, day lock and conflict check as one-off bookings.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        reservation_service: Optional[ReservationService] = None,
        credit_ledger: Optional[CreditLedger] = None,
    ):
        super().__init__(db, cache)
        self.series_repository = RepositoryFactory.create_recurring_series_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.reservations = reservation_service or ReservationService(db, cache)
        self.availability = self.reservations.availability
        self.credit_ledger = credit_ledger

    def _get_series(self, series_id: str) -> RecurringSeries:
        series = self.series_repository.get_by_id(series_id)
        if series is None:
            raise NotFoundException(
                "Recurring series not found",
                code="SERIES_NOT_FOUND",
                details={"series_id": series_id},
            )
        return series

    @staticmethod
    def _instance_window(series: RecurringSeries, instance_date: date) -> Interval:
        return Interval.on_day(instance_date, series.start_time, series.end_time)

    # Validation

    def _collect_errors(
        self,
        series_start_date: date,
        start_time: time,
        end_time: time,
        pattern: RecurrencePattern,
        series_end_date: Optional[date],
        today: date,
    ) -> List[str]:
        errors = list(pattern.validate())
        first = Interval.on_day(series_start_date, start_time, end_time)
        errors.extend(self.availability.validate_window(first.start, first.end))
        if series_start_date < today:
            errors.append("Series cannot start in the past")
        if series_end_date is not None and series_end_date < series_start_date:
            errors.append("Series end date must be on or after its start date")
        return errors

    def _recurring_overlaps(
        self,
        instance_date: date,
        window: Interval,
        exclude_series_id: Optional[str],
    ) -> List[RecurringSeries]:
        """Other active series with an occurrence overlapping this window."""
        clashes = []
        for other in self.series_repository.get_active():
            if other.id == exclude_series_id or other.series_start_date > instance_date:
                continue
            other_window = self._instance_window(other, instance_date)
            if not other_window.overlaps(window):
                continue
            if instance_date in set(other.occurrence_dates(until=instance_date)):
                clashes.append(other)
        return clashes

    @BaseService.measure_operation("validate_pattern")
    def validate_pattern(
        self,
        series_start_date: date,
        start_time: time,
        end_time: time,
        pattern: RecurrencePattern,
        series_end_date: Optional[date] = None,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
        now: Optional[datetime] = None,
        exclude_series_id: Optional[str] = None,
    ) -> PatternValidation:
        """
        Preview a pattern's first occurrences and flag the ones that would clash.

        Conflicts are warnings, not errors: generation skips those dates and
        books the rest.
        """
        current = resolve_now(now)
        errors = self._collect_errors(
            series_start_date, start_time, end_time, pattern, series_end_date, current.date()
        )
        if pattern.validate():
            return PatternValidation(valid=False, errors=errors)

        horizon = series_end_date or (series_start_date + timedelta(days=90))
        occurrences: List[date] = []
        for instance_date in weekly_occurrences(
            series_start_date,
            interval_weeks=pattern.interval_weeks,
            count=pattern.weeks,
            last=horizon,
        ):
            if len(occurrences) >= preview_limit:
                break
            occurrences.append(instance_date)

        warnings: List[Dict[str, Any]] = []
        if not errors:
            for instance_date in occurrences:
                window = Interval.on_day(instance_date, start_time, end_time)
                report = self.availability.get_conflicts(window.start, window.end)
                if report.has_conflicts:
                    warnings.append(
                        {
                            "date": instance_date.isoformat(),
                            "time": f"{start_time:%H:%M}-{end_time:%H:%M}",
                            "conflicts": report.describe(),
                            "type": "existing",
                        }
                    )
                clashes = self._recurring_overlaps(instance_date, window, exclude_series_id)
                if clashes:
                    warnings.append(
                        {
                            "date": instance_date.isoformat(),
                            "time": f"{start_time:%H:%M}-{end_time:%H:%M}",
                            "conflicts": ", ".join(
                                f"{s.owner_id}'s recurring rehearsal" for s in clashes
                            ),
                            "type": "recurring",
                        }
                    )

        return PatternValidation(
            valid=not errors, errors=errors, occurrences=occurrences, warnings=warnings
        )

    # Generation

    def _record_placeholder(
        self, series: RecurringSeries, instance_date: date, reason: str, now: datetime
    ) -> Optional[Booking]:
        window = self._instance_window(series, instance_date)
        try:
            with self.transaction():
                return self.booking_repository.create(
                    kind=BookingKind.REHEARSAL.value,
                    owner_id=series.owner_id,
                    starts_at=window.start,
                    ends_at=window.end,
                    status=BookingStatus.CANCELLED.value,
                    payment_status=PaymentStatus.NOT_APPLICABLE.value,
                    cancellation_reason=reason,
                    cancelled_at=now,
                    recurring_series_id=series.id,
                    instance_date=instance_date,
                )
        except RepositoryException as exc:
            # Another generator recorded this date first.
            self.logger.warning(
                f"Placeholder for series {series.id} on {instance_date.isoformat()} not recorded: {exc}"
            )
            return None

    @BaseService.measure_operation("generate_instances")
    def generate_instances(
        self,
        series: RecurringSeries,
        start_window: date,
        end_window: date,
        pattern: Optional[RecurrencePattern] = None,
        now: Optional[datetime] = None,
    ) -> GenerationResult:
        """
        Book every occurrence of ``series`` between two dates (inclusive).

        Dates that already have a booking or placeholder are left alone, so
        calling this repeatedly is safe. Conflicting or invalid dates, and dates
        already past their confirmation deadline, are skipped individually with
        a cancelled placeholder and the batch carries on.

        Args:
            series: The series to expand
            start_window: First date to consider
            end_window: Last date to consider
            pattern: Overrides the series' stored rule
            now: Reference instant (defaults to venue-local now)

        Returns:
            GenerationResult with created bookings and skipped dates
        """
        current = resolve_now(now)
        result = GenerationResult()
        if not series.is_active:
            self.logger.debug(f"Series {series.id} is {series.status}; nothing generated")
            return result

        rule = pattern or RecurrencePattern.from_series(series)
        pattern_errors = rule.validate()
        if pattern_errors:
            raise ValidationException("Invalid recurrence pattern", errors=pattern_errors)
        existing_dates = self.booking_repository.get_series_instance_dates(series.id)

        for instance_date in weekly_occurrences(
            series.series_start_date,
            interval_weeks=rule.interval_weeks,
            count=rule.weeks,
            last=series.series_end_date,
            until=end_window,
        ):
            if instance_date < start_window or instance_date in existing_dates:
                continue
            window = self._instance_window(series, instance_date)
            if window.start <= current:
                continue
            if self.reservations.is_past_deadline(window.start, current):
                # A Reserved instance here could never be confirmed before the sweep.
                self.logger.info(
                    f"Skipping series {series.id} instance {instance_date.isoformat()}: "
                    "confirmation deadline already passed"
                )
                self._record_placeholder(series, instance_date, DEADLINE_SKIP_REASON, current)
                result.skipped.append(SkippedInstance(instance_date, DEADLINE_SKIP_REASON))
                continue

            try:
                booking = self.reservations.create_booking(
                    owner_id=series.owner_id,
                    start=window.start,
                    end=window.end,
                    notes=series.notes,
                    recurring_series_id=series.id,
                    instance_date=instance_date,
                    now=current,
                )
            except (ConflictException, ValidationException) as exc:
                self.logger.info(
                    f"Skipping series {series.id} instance {instance_date.isoformat()}: {exc.message}"
                )
                self._record_placeholder(series, instance_date, CONFLICT_SKIP_REASON, current)
                result.skipped.append(SkippedInstance(instance_date, exc.message))
                continue

            result.created.append(booking)

        self.log_operation(
            "generate_instances",
            series_id=series.id,
            created_count=len(result.created),
            skipped_count=len(result.skipped),
        )
        return result

    def _horizon(self, series: RecurringSeries, today: date) -> date:
        return today + timedelta(days=series.max_advance_days or settings.recurring_max_advance_days)

    @BaseService.measure_operation("create_series")
    def create_series(
        self,
        owner_id: str,
        series_start_date: date,
        start_time: time,
        end_time: time,
        pattern: RecurrencePattern,
        series_end_date: Optional[date] = None,
        max_advance_days: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[RecurringSeries, GenerationResult]:
        """Persist a series and book its instances up to ``max_advance_days`` ahead."""
        current = resolve_now(now)
        advance = max_advance_days or settings.recurring_max_advance_days
        errors = self._collect_errors(
            series_start_date, start_time, end_time, pattern, series_end_date, current.date()
        )
        if advance < 1:
            errors.append("Advance booking window must be at least one day")
        if errors:
            raise ValidationException("Invalid recurring series", errors=errors)

        with self.transaction():
            series = self.series_repository.create(
                owner_id=owner_id,
                interval_weeks=pattern.interval_weeks,
                occurrences=pattern.weeks,
                start_time=start_time,
                end_time=end_time,
                series_start_date=series_start_date,
                series_end_date=series_end_date,
                max_advance_days=advance,
                status=SeriesStatus.ACTIVE.value,
                notes=notes,
            )

        self.logger.info(f"Created recurring series {series.id} for {owner_id}")
        result = self.generate_instances(
            series, current.date(), self._horizon(series, current.date()), now=current
        )
        return series, result

    @BaseService.measure_operation("generate_future_instances")
    def generate_future_instances(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Top up every active series to its advance horizon. Run daily."""
        current = resolve_now(now)
        today = current.date()
        summary = {"series_processed": 0, "created": 0, "skipped": 0, "completed": 0, "failed": 0}

        for series in self.series_repository.get_active():
            try:
                if series.series_end_date is not None and series.series_end_date < today:
                    with self.transaction():
                        series.status = SeriesStatus.COMPLETED.value
                    summary["completed"] += 1
                    continue
                result = self.generate_instances(
                    series, today, self._horizon(series, today), now=current
                )
                summary["series_processed"] += 1
                summary["created"] += len(result.created)
                summary["skipped"] += len(result.skipped)
            except Exception as exc:
                summary["failed"] += 1
                self.logger.error(
                    f"Failed to generate instances for series {series.id}: {exc}", exc_info=True
                )

        self.logger.info(f"Recurring generation finished: {summary}")
        return summary

    # Management

    @BaseService.measure_operation("cancel_series")
    def cancel_series(
        self, series_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Tuple[RecurringSeries, List[Booking]]:
        """Stop a series and cancel its future instances. Past instances are untouched."""
        current = resolve_now(now)
        series = self._get_series(series_id)
        if series.status == SeriesStatus.CANCELLED.value:
            return series, []

        with self.transaction():
            series.status = SeriesStatus.CANCELLED.value

        cancelled: List[Booking] = []
        for booking in self.booking_repository.get_series_bookings(
            series.id, starting_after=current, active_only=True
        ):
            cancelled.append(
                self.reservations.cancel_booking(
                    booking.id, reason or SERIES_CANCEL_REASON, now=current
                )
            )

        self.log_operation("cancel_series", series_id=series.id, cancelled=len(cancelled))
        return series, cancelled

    def pause_series(self, series_id: str) -> RecurringSeries:
        series = self._get_series(series_id)
        if series.status != SeriesStatus.ACTIVE.value:
            raise StateException(
                f"Only active series can be paused (status: {series.status})",
                code="SERIES_NOT_ACTIVE",
                current_status=series.status,
            )
        with self.transaction():
            series.status = SeriesStatus.PAUSED.value
        return series

    def resume_series(
        self, series_id: str, now: Optional[datetime] = None
    ) -> Tuple[RecurringSeries, GenerationResult]:
        current = resolve_now(now)
        series = self._get_series(series_id)
        if series.status != SeriesStatus.PAUSED.value:
            raise StateException(
                f"Only paused series can be resumed (status: {series.status})",
                code="SERIES_NOT_PAUSED",
                current_status=series.status,
            )
        with self.transaction():
            series.status = SeriesStatus.ACTIVE.value
        result = self.generate_instances(
            series, current.date(), self._horizon(series, current.date()), now=current
        )
        return series, result

    @BaseService.measure_operation("skip_instance")
    def skip_instance(
        self,
        series_id: str,
        instance_date: date,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Booking]:
        """Cancel one date of a series without touching the rest."""
        current = resolve_now(now)
        series = self._get_series(series_id)
        if instance_date not in set(series.occurrence_dates(until=instance_date)):
            raise ValidationException(
                f"{instance_date.isoformat()} is not an occurrence of this series",
                errors=["Date does not fall on the series pattern"],
            )

        existing = self.booking_repository.get_series_instance(series.id, instance_date)
        if existing is not None:
            if existing.is_cancelled:
                return existing
            return self.reservations.cancel_booking(
                existing.id, reason or MANUAL_SKIP_REASON, now=current
            )
        return self._record_placeholder(
            series, instance_date, reason or MANUAL_SKIP_REASON, current
        )

    @BaseService.measure_operation("extend_series")
    def extend_series(
        self, series_id: str, new_end_date: date, now: Optional[datetime] = None
    ) -> Tuple[RecurringSeries, GenerationResult]:
        current = resolve_now(now)
        series = self._get_series(series_id)
        if series.status in (SeriesStatus.CANCELLED.value, SeriesStatus.COMPLETED.value):
            raise StateException(
                f"Cannot extend a {series.status} series",
                code="SERIES_CLOSED",
                current_status=series.status,
            )
        if new_end_date < series.series_start_date:
            raise ValidationException(
                "New end date precedes the series start",
                errors=["Series end date must be on or after its start date"],
            )

        with self.transaction():
            series.series_end_date = new_end_date
        result = self.generate_instances(
            series, current.date(), self._horizon(series, current.date()), now=current
        )
        return series, result

    def get_upcoming_instances(
        self, series_id: str, now: Optional[datetime] = None, limit: int = 10
    ) -> List[Booking]:
        series = self._get_series(series_id)
        return self.booking_repository.get_series_bookings(
            series.id, starting_after=resolve_now(now), limit=limit
        )

    # Credit forecast

    @BaseService.measure_operation("estimate_credit_sufficiency")
    def estimate_credit_sufficiency(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        pattern: RecurrencePattern,
        now: Optional[datetime] = None,
        ledger: Optional[CreditLedger] = None,
    ) -> Forecast:
        """
        Simulate whether an owner's credits cover a proposed series.

        Instances are charged at their confirmation deadlines in order. Each
        time a deadline lands in a later month the monthly allocation is
        applied first: the balance resets to it, or grows by it when credits
        roll over. Uncovered cost is shortfall; the balance never goes below
        zero. The result is advisory and never blocks booking.

        Args:
            owner_id: Member whose ledger is read
            start: First instance start
            end: First instance end
            pattern: Weekly rule; open-ended patterns stop at the advance horizon
            now: Reference instant (defaults to venue-local now)
            ledger: Overrides the service's ledger

        Returns:
            Forecast with a per-instance breakdown
        """
        credit_ledger = ledger or self.credit_ledger
        if credit_ledger is None:
            raise ValidationException(
                "No credit ledger configured", errors=["A credit ledger is required"]
            )
        errors = pattern.validate()
        if end <= start:
            errors.append("End time must be after start time")
        if errors:
            raise ValidationException("Invalid forecast request", errors=errors)

        current = resolve_now(now)
        deadline_delta = timedelta(days=settings.confirmation_deadline_days)
        horizon = current.date() + timedelta(days=settings.recurring_max_advance_days)
        duration = end - start
        cost = billable_units(start, end)

        instance_starts = [
            datetime.combine(d, start.time())
            for d in weekly_occurrences(
                start.date(),
                interval_weeks=pattern.interval_weeks,
                count=pattern.weeks,
                until=None if pattern.weeks is not None else horizon,
            )
        ]

        starting_balance = int(credit_ledger.get_balance(owner_id))
        allocation = int(credit_ledger.get_monthly_allocation(owner_id))
        balance = starting_balance
        ledger_month = _month_index(current)
        shortfall = 0
        lines: List[ForecastLine] = []

        for instance_start in sorted(instance_starts, key=lambda s: s - deadline_delta):
            deadline = instance_start - deadline_delta
            deadline_month = _month_index(deadline)
            if deadline_month > ledger_month:
                if settings.credits_rollover:
                    balance += allocation * (deadline_month - ledger_month)
                else:
                    balance = allocation
                ledger_month = deadline_month

            before = balance
            uncovered = max(cost - balance, 0)
            balance = max(balance - cost, 0)
            shortfall += uncovered
            lines.append(
                ForecastLine(
                    starts_at=instance_start,
                    deadline=deadline,
                    cost=cost,
                    balance_before=before,
                    balance_after=balance,
                    shortfall=uncovered,
                )
            )

        self.logger.debug(
            f"Forecast for {owner_id}: {len(lines)} instance(s) of {duration}, shortfall {shortfall}"
        )
        return Forecast(
            sufficient=shortfall == 0,
            shortfall=shortfall,
            final_balance=balance,
            starting_balance=starting_balance,
            total_cost=cost * len(lines),
            lines=tuple(lines),
        )
