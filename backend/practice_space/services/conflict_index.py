# backend/practice_space/services/conflict_index.py
"""
Per-day conflict index for the practice space.

Builds a ConflictSnapshot for one resource-day from three bounded queries
(rehearsal bookings, event holds, closures) and caches it in CacheService
for the configured TTL. Cache entries are never invalidated on write; the
write path asks for ``fresh=True`` snapshots read inside its transaction.
"""

from datetime import date, datetime, timedelta
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import venue_now
from ..domain.availability import ConflictSnapshot, ConflictSource, OccupiedInterval
from ..domain.intervals import day_window
from ..models.booking import Booking, BookingKind, participates_in_conflicts
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheKeyBuilder, CacheService

logger = logging.getLogger(__name__)

RESOURCE_KIND = "space"

_SOURCE_BY_KIND = {
    BookingKind.REHEARSAL: ConflictSource.BOOKING,
    BookingKind.EVENT_HOLD: ConflictSource.EVENT_HOLD,
}


def _occupant_label(booking: Booking, kind: BookingKind) -> Optional[str]:
    if kind is BookingKind.REHEARSAL:
        return booking.owner_id
    if kind is BookingKind.EVENT_HOLD:
        return booking.title
    raise ValueError(f"Unknown booking kind: {kind!r}")


class ConflictIndex(BaseService):
    """Answers "what occupies the space on day D" for availability queries."""

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        *,
        buffer_minutes: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
        use_cache: Optional[bool] = None,
    ):
        super().__init__(db, cache)
        self.repository = RepositoryFactory.create_conflict_checker_repository(db)
        self._buffer_override = buffer_minutes
        self.ttl_seconds = ttl_seconds or settings.conflict_snapshot_ttl_seconds
        if use_cache is None:
            use_cache = settings.snapshot_cache_enabled
        self.use_cache = bool(use_cache and cache is not None)

    @property
    def buffer_minutes(self) -> int:
        # Read per call so a settings change applies without rebuilding services.
        if self._buffer_override is not None:
            return self._buffer_override
        return settings.buffer_minutes

    def cache_key(self, day: date, buffer_minutes: Optional[int] = None) -> str:
        buffer = self.buffer_minutes if buffer_minutes is None else buffer_minutes
        return CacheKeyBuilder.build("conflict", RESOURCE_KIND, day, f"b{buffer}")

    @BaseService.measure_operation("conflict_snapshot")
    def snapshot(
        self,
        day: date,
        exclude_booking_id: Optional[str] = None,
        *,
        fresh: bool = False,
    ) -> ConflictSnapshot:
        """
        Get the conflict snapshot for a resource-day.

        Args:
            day: Calendar day in venue-local time
            exclude_booking_id: Booking to leave out (reschedules)
            fresh: Bypass the cache and read the store directly

        Returns:
            Immutable snapshot of all buffered occupants
        """
        buffer = self.buffer_minutes

        if fresh or not self.use_cache:
            prometheus_metrics.record_snapshot_lookup("fresh" if fresh else "bypass")
            return self._build(day, buffer).without(exclude_booking_id)

        assert self.cache is not None
        key = self.cache_key(day, buffer)
        payload = self.cache.get(key)
        if payload is not None:
            try:
                prometheus_metrics.record_snapshot_lookup("hit")
                return ConflictSnapshot.from_payload(payload).without(exclude_booking_id)
            except (KeyError, TypeError, ValueError) as exc:
                self.logger.warning(f"Discarding unreadable conflict snapshot {key}: {exc}")
                self.cache.delete(key)

        prometheus_metrics.record_snapshot_lookup("miss")
        built = self._build(day, buffer)
        self.cache.set(key, built.to_payload(), ttl=self.ttl_seconds)
        return built.without(exclude_booking_id)

    def _build(self, day: date, buffer_minutes: int) -> ConflictSnapshot:
        window = day_window(day).buffered(buffer_minutes)
        occupants = []

        bookings = list(self.repository.get_rehearsals_for_conflict_check(window.start, window.end))
        bookings.extend(
            self.repository.get_event_holds_for_conflict_check(window.start, window.end)
        )
        for booking in bookings:
            kind = booking.booking_kind
            if not participates_in_conflicts(kind):
                continue
            occupants.append(
                OccupiedInterval(
                    source=_SOURCE_BY_KIND[kind],
                    record_id=booking.id,
                    interval=booking.interval,
                    buffered=booking.interval.buffered(buffer_minutes),
                    label=_occupant_label(booking, kind),
                )
            )

        for closure in self.repository.get_closures_for_conflict_check(window.start, window.end):
            occupants.append(
                OccupiedInterval(
                    source=ConflictSource.CLOSURE,
                    record_id=closure.id,
                    interval=closure.interval,
                    buffered=closure.interval.buffered(buffer_minutes),
                    label=closure.reason,
                )
            )

        occupants.sort(key=lambda o: (o.buffered.start, o.buffered.end))
        self.logger.debug(
            f"Built conflict snapshot for {day.isoformat()}",
            extra={"day": day.isoformat(), "occupants": len(occupants), "buffer": buffer_minutes},
        )
        return ConflictSnapshot(
            day=day,
            buffer_minutes=buffer_minutes,
            occupants=tuple(occupants),
            built_at=venue_now(),
        )

    @staticmethod
    def days_touched(start: datetime, end: datetime) -> list[date]:
        """Calendar days a window touches; each needs its own snapshot."""
        last = max(start, end - timedelta(microseconds=1)).date()
        days = []
        current = start.date()
        while current <= last:
            days.append(current)
            current += timedelta(days=1)
        return days
