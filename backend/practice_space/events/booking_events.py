"""Booking lifecycle events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional, Type, TypeVar

if TYPE_CHECKING:
    from ..models.booking import Booking

E = TypeVar("E", bound="BookingEvent")


@dataclass
class BookingEvent:
    """Fields every lifecycle event carries."""

    booking_id: str
    kind: str
    owner_id: Optional[str]
    starts_at: datetime
    ends_at: datetime
    billable_units: int
    occurred_at: datetime

    @property
    def event_type(self) -> str:
        return type(self).__name__

    @classmethod
    def from_booking(cls: Type[E], booking: "Booking", occurred_at: datetime, **extra: Any) -> E:
        return cls(
            booking_id=booking.id,
            kind=booking.kind,
            owner_id=booking.owner_id,
            starts_at=booking.starts_at,
            ends_at=booking.ends_at,
            billable_units=booking.billable_units,
            occurred_at=occurred_at,
            **extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
        payload["event_type"] = self.event_type
        return payload


@dataclass
class BookingCreated(BookingEvent):
    """Fired after a booking is committed. Reserved bookings defer their credits."""

    defer_credits: bool


@dataclass
class BookingConfirmed(BookingEvent):
    """Fired after a Scheduled or Reserved booking becomes Confirmed."""

    previous_status: str
    deduct_credits: bool


@dataclass
class BookingCancelled(BookingEvent):
    """Fired after a booking is cancelled; billing treats it as the refund signal."""

    previous_status: str
    credits_deducted: bool
    reason: Optional[str]


@dataclass
class BookingUpdated(BookingEvent):
    """Fired after a reschedule changes a booking's window."""

    old_billable_units: int
    new_billable_units: int


EVENT_TYPES = {
    cls.__name__: cls
    for cls in (BookingCreated, BookingConfirmed, BookingCancelled, BookingUpdated)
}

