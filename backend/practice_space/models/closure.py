"""Administrative blackout of the practice space."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Column, DateTime, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base
from ..domain.intervals import Interval


class Closure(Base):
    """
    A blackout interval with a reason.

    Closures always block bookings and are never conflict-checked themselves.
    Lifting one stamps ``lifted_at`` rather than deleting the row.
    """

    __tablename__ = "closures"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    starts_at = Column(DateTime, nullable=False, index=True)
    ends_at = Column(DateTime, nullable=False, index=True)
    reason = Column(Text, nullable=False)
    created_by = Column(String(26), nullable=True)
    lifted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (CheckConstraint("ends_at > starts_at", name="check_closure_time_order"),)

    def __repr__(self) -> str:
        return f"<Closure {self.id}: {self.starts_at}-{self.ends_at} ({self.reason})>"

    @property
    def interval(self) -> Interval:
        return Interval(self.starts_at, self.ends_at)

    @property
    def is_active(self) -> bool:
        return self.lifted_at is None

    def lift(self, now: datetime) -> None:
        self.lifted_at = now

    def to_dict(self) -> dict[str, Any]:
        lifted: Optional[str] = self.lifted_at.isoformat() if self.lifted_at else None
        return {
            "id": self.id,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "reason": self.reason,
            "created_by": self.created_by,
            "lifted_at": lifted,
        }
