# backend/practice_space/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the practice space.

One bounded query per conflict source (rehearsal bookings, event holds,
closures). The conflict index calls these once per resource-day and turns the
rows into buffered intervals; nothing here knows about buffers or caching.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_STATUSES, Booking, BookingKind
from ..models.closure import Closure
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]


class ConflictCheckerRepository(BaseRepository[Booking]):
    """Data access for conflict detection across bookings, holds and closures."""

    def __init__(self, db: Session):
        """Initialize with Booking model as primary."""
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _active_bookings_between(
        self,
        kind: BookingKind,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        query = self.db.query(Booking).filter(
            Booking.kind == kind.value,
            Booking.status.in_(_ACTIVE_STATUS_VALUES),
            Booking.starts_at < window_end,
            Booking.ends_at > window_start,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return cast(List[Booking], query.order_by(Booking.starts_at).all())

    def get_rehearsals_for_conflict_check(
        self,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Get non-cancelled rehearsal bookings intersecting a window.

        Args:
            window_start: Inclusive lower bound
            window_end: Exclusive upper bound
            exclude_booking_id: Optional booking ID to leave out (reschedules)

        Returns:
            Bookings ordered by start time
        """
        try:
            return self._active_bookings_between(
                BookingKind.REHEARSAL, window_start, window_end, exclude_booking_id
            )
        except Exception as e:
            self.logger.error(f"Error getting rehearsals for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict bookings: {str(e)}")

    def get_event_holds_for_conflict_check(
        self,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Get non-cancelled event holds intersecting a window."""
        try:
            return self._active_bookings_between(
                BookingKind.EVENT_HOLD, window_start, window_end, exclude_booking_id
            )
        except Exception as e:
            self.logger.error(f"Error getting event holds for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get event holds: {str(e)}")

    def get_closures_for_conflict_check(
        self, window_start: datetime, window_end: datetime
    ) -> List[Closure]:
        """Get unlifted closures intersecting a window."""
        try:
            return cast(
                List[Closure],
                self.db.query(Closure)
                .filter(
                    Closure.lifted_at.is_(None),
                    Closure.starts_at < window_end,
                    Closure.ends_at > window_start,
                )
                .order_by(Closure.starts_at)
                .all(),
            )
        except Exception as e:
            self.logger.error(f"Error getting closures for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get closures: {str(e)}")
