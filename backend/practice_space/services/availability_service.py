# backend/practice_space/services/availability_service.py
"""
Availability Service for the practice space.

Answers "can this window be booked" and "what can be booked on this day"
from the per-day conflict snapshots. Business hours, duration bounds, slot
granularity and the turnover buffer are read from settings at query time
unless overridden at construction.

Window validation lives here and is shared with the reservation lifecycle so
both paths report the same reasons.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import resolve_now
from ..domain.availability import (
    AvailabilityResult,
    ConflictReport,
    ConflictSnapshot,
    OccupiedInterval,
    Slot,
)
from ..domain.intervals import Interval
from ..models.booking import Booking
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheService
from .conflict_index import ConflictIndex

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    """
    Read-side scheduling queries for the single practice space.

    None of these methods write. The reservation lifecycle re-checks every
    accepted window under the day lock with a fresh snapshot.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        conflict_index: Optional[ConflictIndex] = None,
        *,
        business_open: Optional[time] = None,
        business_close: Optional[time] = None,
        min_booking_minutes: Optional[int] = None,
        max_booking_minutes: Optional[int] = None,
        slot_granularity_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
    ):
        super().__init__(db, cache)
        self.conflict_index = conflict_index or ConflictIndex(
            db, cache, buffer_minutes=buffer_minutes
        )
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self._overrides = {
            "business_open": business_open,
            "business_close": business_close,
            "min_booking_minutes": min_booking_minutes,
            "max_booking_minutes": max_booking_minutes,
            "slot_granularity_minutes": slot_granularity_minutes,
        }

    def _setting(self, name: str):
        override = self._overrides.get(name)
        return override if override is not None else getattr(settings, name)

    @property
    def business_open(self) -> time:
        return self._setting("business_open")

    @property
    def business_close(self) -> time:
        return self._setting("business_close")

    @property
    def min_booking_minutes(self) -> int:
        return self._setting("min_booking_minutes")

    @property
    def max_booking_minutes(self) -> int:
        return self._setting("max_booking_minutes")

    @property
    def slot_granularity_minutes(self) -> int:
        return self._setting("slot_granularity_minutes")

    @property
    def buffer_minutes(self) -> int:
        return self.conflict_index.buffer_minutes

    def business_hours(self, day: date) -> Interval:
        return Interval.on_day(day, self.business_open, self.business_close)

    # Validation

    def validate_window(self, start: datetime, end: datetime) -> List[str]:
        """
        Check a proposed window against the venue's booking rules.

        Args:
            start: Proposed start (naive venue-local)
            end: Proposed end (naive venue-local)

        Returns:
            Human-readable problems; empty when the window is acceptable
        """
        if end <= start:
            return ["End time must be after start time"]

        errors: List[str] = []
        if start.date() != end.date():
            errors.append("Booking must start and end on the same day")
        elif start.time() < self.business_open or end.time() > self.business_close:
            errors.append(
                f"Booking must be within business hours "
                f"({self.business_open:%H:%M}-{self.business_close:%H:%M})"
            )

        minutes = Interval(start, end).duration_minutes
        if minutes < self.min_booking_minutes:
            errors.append(f"Booking must be at least {self.min_booking_minutes} minutes")
        elif minutes > self.max_booking_minutes:
            errors.append(f"Booking cannot exceed {self.max_booking_minutes} minutes")

        return errors

    # Conflict queries

    def _snapshots_for(
        self, candidate: Interval, exclude_id: Optional[str], fresh: bool
    ) -> List[ConflictSnapshot]:
        return [
            self.conflict_index.snapshot(day, exclude_id, fresh=fresh)
            for day in ConflictIndex.days_touched(candidate.start, candidate.end)
        ]

    def _conflicting_occupants(
        self, candidate: Interval, exclude_id: Optional[str], fresh: bool
    ) -> List[OccupiedInterval]:
        # An occupant spanning midnight shows up in both days' snapshots.
        seen: Dict[str, OccupiedInterval] = {}
        for snapshot in self._snapshots_for(candidate, exclude_id, fresh):
            for occupant in snapshot.conflicts_with(candidate):
                seen.setdefault(occupant.record_id, occupant)
        return sorted(seen.values(), key=lambda o: o.buffered.start)

    @BaseService.measure_operation("is_available")
    def is_available(
        self, start: datetime, end: datetime, exclude_id: Optional[str] = None
    ) -> bool:
        """True only when the window passes validation and nothing occupies it."""
        candidate = Interval(start, end)
        if candidate.is_degenerate:
            return False
        if self.validate_window(start, end):
            return False
        return not self._conflicting_occupants(candidate, exclude_id, fresh=False)

    @BaseService.measure_operation("check_availability")
    def check_availability(
        self,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
        fresh: bool = False,
    ) -> AvailabilityResult:
        """
        Enumerable form of ``is_available``.

        Invalid windows are reported through ``reasons`` rather than raised.
        Conflicts are still listed for an invalid same-day window so callers
        can show everything wrong at once.
        """
        candidate = Interval(start, end)
        reasons = self.validate_window(start, end)
        if candidate.is_degenerate or (reasons and start.date() != end.date()):
            return AvailabilityResult(available=False, reasons=tuple(reasons))

        report = ConflictReport.from_occupants(
            self._conflicting_occupants(candidate, exclude_id, fresh=fresh)
        )
        if report.has_conflicts:
            reasons.append(report.describe())

        return AvailabilityResult(
            available=not reasons,
            reasons=tuple(reasons),
            conflicts=report,
        )

    def get_conflicts(
        self,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
        *,
        fresh: bool = False,
    ) -> ConflictReport:
        candidate = Interval(start, end)
        if candidate.is_degenerate:
            return ConflictReport()
        return ConflictReport.from_occupants(
            self._conflicting_occupants(candidate, exclude_id, fresh=fresh)
        )

    # Day views

    @BaseService.measure_operation("list_open_slots")
    def list_open_slots(
        self, day: date, duration_minutes: int, now: Optional[datetime] = None
    ) -> List[Slot]:
        """
        Every conflict-free window of ``duration_minutes`` on ``day``.

        Candidate starts step by the slot granularity from opening time while
        the window still ends by closing time. Starts at or before ``now`` are
        left out.

        Args:
            day: Venue-local calendar day
            duration_minutes: Requested length
            now: Reference instant (defaults to venue-local now)

        Returns:
            Slots in chronological order
        """
        if not self.min_booking_minutes <= duration_minutes <= self.max_booking_minutes:
            return []

        current_time = resolve_now(now)
        hours = self.business_hours(day)
        length = timedelta(minutes=duration_minutes)
        step = timedelta(minutes=self.slot_granularity_minutes)
        snapshot = self.conflict_index.snapshot(day)

        slots: List[Slot] = []
        start = hours.start
        while start + length <= hours.end:
            candidate = Interval(start, start + length)
            if start > current_time and snapshot.is_free(candidate):
                slots.append(Slot(start=candidate.start, end=candidate.end))
            start += step

        self.logger.debug(
            f"Found {len(slots)} open {duration_minutes}-minute slots on {day.isoformat()}"
        )
        return slots

    @BaseService.measure_operation("list_valid_end_times")
    def list_valid_end_times(self, day: date, start_time: time) -> List[time]:
        """
        End times a booking starting at ``start_time`` may choose.

        Walks from the minimum to the maximum duration and stops at the first
        conflicting end, since every longer window conflicts as well.
        """
        hours = self.business_hours(day)
        start = datetime.combine(day, start_time)
        if not hours.contains_instant(start):
            return []

        step = timedelta(minutes=self.slot_granularity_minutes)
        last_end = min(start + timedelta(minutes=self.max_booking_minutes), hours.end)
        snapshot = self.conflict_index.snapshot(day)

        end_times: List[time] = []
        end = start + timedelta(minutes=self.min_booking_minutes)
        while end <= last_end:
            if not snapshot.is_free(Interval(start, end)):
                break
            end_times.append(end.time())
            end += step
        return end_times

    @BaseService.measure_operation("find_gaps")
    def find_gaps(self, day: date, min_gap_minutes: int = 60) -> List[Interval]:
        """Free stretches inside business hours at least ``min_gap_minutes`` long."""
        snapshot = self.conflict_index.snapshot(day)
        free = self.business_hours(day).subtract(snapshot.occupied())
        return [gap for gap in free if gap.duration_minutes >= min_gap_minutes]

    def get_all_time_slots(self) -> List[time]:
        """The granularity grid from opening to closing, both inclusive."""
        anchor = date(2000, 1, 1)
        hours = self.business_hours(anchor)
        step = timedelta(minutes=self.slot_granularity_minutes)
        grid: List[time] = []
        current = hours.start
        while current <= hours.end:
            grid.append(current.time())
            current += step
        return grid

    def get_affected_bookings(self, start: datetime, end: datetime) -> List[Booking]:
        """Active rehearsals a closure or event hold over this window would displace."""
        if Interval(start, end).is_degenerate:
            return []
        return self.booking_repository.get_active_rehearsals_between(start, end)
