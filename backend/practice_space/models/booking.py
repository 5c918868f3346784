# backend/practice_space/models/booking.py
"""
Booking model for the practice space.

One table holds every claim on the room. ``kind`` discriminates direct
rehearsal bookings (owned by a member) from event holds (placed when a public
event is scheduled in the space). Bookings are never deleted: cancellation is
a status transition so conflict history stays auditable.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    Connection,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.sql import func
import ulid

from ..core.config import settings
from ..database import Base
from ..domain.billing import billable_units
from ..domain.intervals import Interval

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT_NAME = "bookings_no_overlap"


class BookingKind(str, Enum):
    """Discriminator for the booking variants sharing the table."""

    REHEARSAL = "rehearsal"
    EVENT_HOLD = "event_hold"


class BookingStatus(str, Enum):
    """Reservation lifecycle statuses."""

    SCHEDULED = "scheduled"  # Credits deducted at creation
    RESERVED = "reserved"  # Credits deferred until confirmation
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    COMPED = "comped"
    REFUNDED = "refunded"
    NOT_APPLICABLE = "not_applicable"


PENDING_STATUSES = (BookingStatus.SCHEDULED, BookingStatus.RESERVED)
ACTIVE_STATUSES = (BookingStatus.SCHEDULED, BookingStatus.RESERVED, BookingStatus.CONFIRMED)
SETTLED_PAYMENT_STATUSES = (PaymentStatus.PAID, PaymentStatus.COMPED, PaymentStatus.REFUNDED)


def participates_in_conflicts(kind: BookingKind) -> bool:
    """Whether an active booking of this kind blocks new direct bookings."""
    if kind is BookingKind.REHEARSAL:
        return True
    if kind is BookingKind.EVENT_HOLD:
        return True
    raise ValueError(f"Unknown booking kind: {kind!r}")


def requires_conflict_check(kind: BookingKind) -> bool:
    """Whether creating a booking of this kind is rejected on overlap."""
    if kind is BookingKind.REHEARSAL:
        return True
    if kind is BookingKind.EVENT_HOLD:
        # The public event calendar wins; overlapped rehearsals are reported instead.
        return False
    raise ValueError(f"Unknown booking kind: {kind!r}")


class Booking(Base):
    """A claim on the practice space for a half-open time window."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    kind = Column(String(20), nullable=False, default=BookingKind.REHEARSAL.value, index=True)

    # Rehearsal-specific
    owner_id = Column(String(26), nullable=True, index=True)

    # Event-hold-specific
    event_id = Column(String(64), nullable=True, index=True)
    title = Column(String(255), nullable=True)

    starts_at = Column(DateTime, nullable=False, index=True)
    ends_at = Column(DateTime, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.SCHEDULED.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Recurring provenance
    recurring_series_id = Column(
        String(26), ForeignKey("recurring_series.id"), nullable=True, index=True
    )
    instance_date = Column(Date, nullable=True)

    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="check_booking_time_order"),
        CheckConstraint(
            "(kind = 'rehearsal' AND owner_id IS NOT NULL) "
            "OR (kind = 'event_hold' AND event_id IS NOT NULL)",
            name="check_booking_kind_fields",
        ),
        UniqueConstraint(
            "recurring_series_id", "instance_date", name="uq_booking_series_instance_date"
        ),
        Index("ix_bookings_status_starts_at", "status", "starts_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.kind:
            self.kind = BookingKind.REHEARSAL.value
        if not self.status:
            self.status = BookingStatus.SCHEDULED.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.UNPAID.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: kind={self.kind}, owner={self.owner_id}, "
            f"{self.starts_at}-{self.ends_at}, status={self.status}>"
        )

    @property
    def booking_kind(self) -> BookingKind:
        return BookingKind(self.kind)

    @property
    def booking_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def interval(self) -> Interval:
        return Interval(self.starts_at, self.ends_at)

    @property
    def billable_units(self) -> int:
        return billable_units(self.starts_at, self.ends_at)

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED.value

    @property
    def is_pending(self) -> bool:
        return self.status in {s.value for s in PENDING_STATUSES}

    @property
    def is_settled(self) -> bool:
        return self.payment_status in {s.value for s in SETTLED_PAYMENT_STATUSES}

    @property
    def credits_deducted(self) -> bool:
        """
        Credits are taken at creation for Scheduled and at confirmation for Reserved.

        Event holds never use credits.
        """
        if self.booking_kind is not BookingKind.REHEARSAL:
            return False
        return self.status != BookingStatus.RESERVED.value

    def has_started(self, now: datetime) -> bool:
        return now >= self.starts_at

    def cancel(self, reason: Optional[str], now: datetime) -> None:
        """Cancel this booking, recording the reason in notes as well."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        self.cancellation_reason = reason
        if reason:
            line = f"Cancellation reason: {reason}"
            self.notes = f"{self.notes}\n{line}" if self.notes else line
        logger.info(f"Booking {self.id} cancelled: {reason or 'no reason given'}")

    def confirm(self, now: datetime) -> None:
        self.status = BookingStatus.CONFIRMED.value
        self.confirmed_at = now
        logger.info(f"Booking {self.id} confirmed")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "kind": self.kind,
            "owner_id": self.owner_id,
            "event_id": self.event_id,
            "title": self.title,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "recurring_series_id": self.recurring_series_id,
            "instance_date": self.instance_date.isoformat() if self.instance_date else None,
            "billable_units": self.billable_units,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


def overlap_constraint_sql(buffer_minutes: int) -> str:
    """
    Exclusion constraint keeping active rehearsals a full buffer apart.

    Each row's range is widened by half the buffer on both sides, so two
    ranges intersect exactly when the gap between the bookings is shorter than
    ``buffer_minutes``. The buffer is read when the table is created; changing
    ``buffer_minutes`` later needs the constraint re-created. Event holds and
    closures are not covered here and rely on the day lock alone.
    """
    half_buffer_seconds = buffer_minutes * 30
    return (
        f"ALTER TABLE bookings ADD CONSTRAINT {OVERLAP_CONSTRAINT_NAME} "
        "EXCLUDE USING gist (tsrange("
        f"starts_at - interval '{half_buffer_seconds} seconds', "
        f"ends_at + interval '{half_buffer_seconds} seconds', '[)') WITH &&) "
        "WHERE (status <> 'cancelled' AND kind = 'rehearsal')"
    )


@event.listens_for(Booking.__table__, "after_create")
def _add_overlap_constraint(target: Any, connection: Connection, **kw: Any) -> None:
    if connection.dialect.name != "postgresql":
        return
    connection.execute(DDL(overlap_constraint_sql(settings.buffer_minutes)))
    logger.info(f"Added {OVERLAP_CONSTRAINT_NAME} with a {settings.buffer_minutes} minute buffer")
