"""Recurring rehearsal series: a weekly rule that generates Reserved bookings."""

from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterator, Optional

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String, Text, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class SeriesStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def weekly_occurrences(
    first: date,
    *,
    interval_weeks: int = 1,
    count: Optional[int] = None,
    last: Optional[date] = None,
    until: Optional[date] = None,
) -> Iterator[date]:
    """Every ``interval_weeks``-th week from ``first``, stopping at whichever bound comes first."""
    step = timedelta(weeks=interval_weeks)
    current = first
    produced = 0
    while True:
        if count is not None and produced >= count:
            return
        if last is not None and current > last:
            return
        if until is not None and current > until:
            return
        yield current
        produced += 1
        current = current + step


class RecurringSeries(Base):
    """
    Weekly recurrence owned by a member.

    The weekday is the weekday of ``series_start_date``. ``occurrences`` caps
    the number of generated weeks; ``series_end_date`` caps the calendar range.
    Either may be null, in which case generation is bounded only by
    ``max_advance_days``.
    """

    __tablename__ = "recurring_series"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(26), nullable=False, index=True)

    interval_weeks = Column(Integer, nullable=False, default=1)
    occurrences = Column(Integer, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    series_start_date = Column(Date, nullable=False)
    series_end_date = Column(Date, nullable=True)
    max_advance_days = Column(Integer, nullable=False, default=90)

    status = Column(String(20), nullable=False, default=SeriesStatus.ACTIVE.value, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    bookings = relationship("Booking", lazy="select", order_by="Booking.starts_at")

    __table_args__ = (
        CheckConstraint("interval_weeks >= 1", name="check_series_interval_positive"),
        CheckConstraint("end_time > start_time", name="check_series_time_order"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = SeriesStatus.ACTIVE.value
        if not self.interval_weeks:
            self.interval_weeks = 1
        if not self.max_advance_days:
            self.max_advance_days = 90

    def __repr__(self) -> str:
        return (
            f"<RecurringSeries {self.id}: owner={self.owner_id}, every {self.interval_weeks}w "
            f"from {self.series_start_date} {self.start_time}-{self.end_time}, status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status == SeriesStatus.ACTIVE.value

    def occurrence_dates(self, until: Optional[date] = None) -> Iterator[date]:
        """Yield instance dates in order, honoring occurrences, end date and ``until``."""
        return weekly_occurrences(
            self.series_start_date,
            interval_weeks=self.interval_weeks or 1,
            count=self.occurrences,
            last=self.series_end_date,
            until=until,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "interval_weeks": self.interval_weeks,
            "occurrences": self.occurrences,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "series_start_date": self.series_start_date.isoformat(),
            "series_end_date": self.series_end_date.isoformat() if self.series_end_date else None,
            "max_advance_days": self.max_advance_days,
            "status": self.status,
            "notes": self.notes,
        }
