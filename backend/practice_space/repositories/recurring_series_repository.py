"""Recurring series data access."""

import logging
from typing import List, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.recurring_series import RecurringSeries, SeriesStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RecurringSeriesRepository(BaseRepository[RecurringSeries]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringSeries)

    def get_active(self) -> List[RecurringSeries]:
        try:
            return cast(
                List[RecurringSeries],
                self.db.query(RecurringSeries)
                .filter(RecurringSeries.status == SeriesStatus.ACTIVE.value)
                .order_by(RecurringSeries.series_start_date)
                .all(),
            )
        except Exception as e:
            self.logger.error(f"Error getting active series: {str(e)}")
            raise RepositoryException(f"Failed to get active series: {str(e)}")
