# backend/practice_space/services/auto_cancellation_service.py
"""
Auto-cancellation sweep.

Cancels rehearsal bookings still Scheduled or Reserved after their
confirmation deadline. Each record is cancelled in its own transaction through
the reservation lifecycle, so a failure on one booking never affects the rest
and a rerun picks up whatever is left.
"""

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import resolve_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .reservation_service import ReservationService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    examined: int = 0
    cancelled: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examined": self.examined,
            "cancelled": self.cancelled,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled_ids": list(self.cancelled_ids),
        }


class AutoCancellationService(BaseService):
    """Daily sweep over pending bookings that missed their confirmation deadline."""

    def __init__(self, db: Session, reservation_service: Optional[ReservationService] = None):
        super().__init__(db)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.reservations = reservation_service or ReservationService(db)

    @BaseService.measure_operation("auto_cancel_sweep")
    def run(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Cancel every pending rehearsal whose deadline has passed.

        A booking starting before ``now + confirmation_deadline_days`` is past
        its deadline. Slots that have already started are left alone.
        """
        current = resolve_now(now)
        cutoff = current + self.reservations.deadline_delta
        candidates = self.repository.get_unconfirmed_past_deadline(cutoff, starting_after=current)
        result = SweepResult(examined=len(candidates))

        for booking in candidates:
            booking_id = booking.id
            try:
                cancelled = self.reservations.auto_cancel_booking(booking_id, now=current)
            except Exception as exc:
                result.failed += 1
                prometheus_metrics.record_sweep_outcome("failed")
                self.logger.error(
                    f"Auto-cancel failed for booking {booking_id}: {exc}",
                    exc_info=True,
                    extra={"booking_id": booking_id},
                )
                continue

            if cancelled is None:
                result.skipped += 1
                prometheus_metrics.record_sweep_outcome("skipped")
                continue

            result.cancelled += 1
            result.cancelled_ids.append(booking_id)
            prometheus_metrics.record_sweep_outcome("cancelled")

        self.log_operation(
            "auto_cancel_sweep",
            deadline_days=settings.confirmation_deadline_days,
            **{k: v for k, v in result.to_dict().items() if k != "cancelled_ids"},
        )
        return result
