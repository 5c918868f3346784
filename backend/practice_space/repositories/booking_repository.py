# backend/practice_space/repositories/booking_repository.py
"""
Booking Repository for the practice space.

Lookups used by the lifecycle service, the recurring planner and the
auto-cancellation sweep.
"""

from datetime import date, datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_STATUSES, PENDING_STATUSES, Booking, BookingKind
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_for_owner(
        self, owner_id: str, *, starting_after: Optional[datetime] = None
    ) -> List[Booking]:
        """Get an owner's rehearsal bookings ordered by start."""
        try:
            query = self.db.query(Booking).filter(
                Booking.owner_id == owner_id,
                Booking.kind == BookingKind.REHEARSAL.value,
            )
            if starting_after is not None:
                query = query.filter(Booking.starts_at > starting_after)
            return cast(List[Booking], query.order_by(Booking.starts_at).all())
        except Exception as e:
            self.logger.error(f"Error getting bookings for owner {owner_id}: {str(e)}")
            raise RepositoryException(f"Failed to get owner bookings: {str(e)}")

    def get_event_hold(self, event_id: str) -> Optional[Booking]:
        """Get the active hold for a public event, if any."""
        try:
            return cast(
                Optional[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.kind == BookingKind.EVENT_HOLD.value,
                    Booking.event_id == event_id,
                    Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
                )
                .first(),
            )
        except Exception as e:
            self.logger.error(f"Error getting event hold for {event_id}: {str(e)}")
            raise RepositoryException(f"Failed to get event hold: {str(e)}")

    def get_active_rehearsals_between(self, start: datetime, end: datetime) -> List[Booking]:
        """Rehearsals overlapping an exact window; used to report closure/hold fallout."""
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.kind == BookingKind.REHEARSAL.value,
                    Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
                    Booking.starts_at < end,
                    Booking.ends_at > start,
                )
                .order_by(Booking.starts_at)
                .all(),
            )
        except Exception as e:
            self.logger.error(f"Error getting affected rehearsals: {str(e)}")
            raise RepositoryException(f"Failed to get affected rehearsals: {str(e)}")

    def get_unconfirmed_past_deadline(
        self, deadline_cutoff: datetime, starting_after: datetime
    ) -> List[Booking]:
        """
        Pending rehearsals starting in ``(starting_after, deadline_cutoff)``.

        The sweep passes ``now + deadline_days``: any booking starting before
        that instant has already missed its confirmation deadline.
        """
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.kind == BookingKind.REHEARSAL.value,
                    Booking.status.in_([s.value for s in PENDING_STATUSES]),
                    Booking.starts_at > starting_after,
                    Booking.starts_at < deadline_cutoff,
                )
                .order_by(Booking.starts_at)
                .all(),
            )
        except Exception as e:
            self.logger.error(f"Error getting unconfirmed bookings: {str(e)}")
            raise RepositoryException(f"Failed to get unconfirmed bookings: {str(e)}")

    def get_series_instance(self, series_id: str, instance_date: date) -> Optional[Booking]:
        """Get the booking (any status) generated for a series date."""
        try:
            return cast(
                Optional[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.recurring_series_id == series_id,
                    Booking.instance_date == instance_date,
                )
                .first(),
            )
        except Exception as e:
            self.logger.error(f"Error getting series instance: {str(e)}")
            raise RepositoryException(f"Failed to get series instance: {str(e)}")

    def get_series_instance_dates(self, series_id: str) -> set[date]:
        try:
            rows = (
                self.db.query(Booking.instance_date)
                .filter(Booking.recurring_series_id == series_id)
                .all()
            )
            return {row[0] for row in rows if row[0] is not None}
        except Exception as e:
            self.logger.error(f"Error getting series instance dates: {str(e)}")
            raise RepositoryException(f"Failed to get series instance dates: {str(e)}")

    def get_series_bookings(
        self,
        series_id: str,
        *,
        starting_after: Optional[datetime] = None,
        active_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[Booking]:
        try:
            query = self.db.query(Booking).filter(Booking.recurring_series_id == series_id)
            if starting_after is not None:
                query = query.filter(Booking.starts_at > starting_after)
            if active_only:
                query = query.filter(Booking.status.in_([s.value for s in ACTIVE_STATUSES]))
            query = query.order_by(Booking.starts_at)
            if limit is not None:
                query = query.limit(limit)
            return cast(List[Booking], query.all())
        except Exception as e:
            self.logger.error(f"Error getting series bookings: {str(e)}")
            raise RepositoryException(f"Failed to get series bookings: {str(e)}")
