"""Reservation, event hold and closure schemas."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator

from ..models.booking import BookingStatus, PaymentStatus
from .base import StandardizedModel, StrictRequestModel


class ReservationCreate(StrictRequestModel):
    owner_id: str = Field(..., min_length=1, max_length=26)
    start: datetime
    end: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[BookingStatus] = None

    @field_validator("status")
    @classmethod
    def _not_cancelled(cls, value: Optional[BookingStatus]) -> Optional[BookingStatus]:
        if value is BookingStatus.CANCELLED:
            raise ValueError("a reservation cannot be created cancelled")
        return value


class ReservationReschedule(StrictRequestModel):
    start: datetime
    end: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)


class ReservationCancel(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentUpdate(StrictRequestModel):
    payment_status: PaymentStatus


class ReservationResponse(StandardizedModel):
    id: str
    kind: str
    owner_id: Optional[str] = None
    event_id: Optional[str] = None
    title: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    status: str
    payment_status: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    recurring_series_id: Optional[str] = None
    instance_date: Optional[date] = None
    billable_units: int
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class EventHoldCreate(StrictRequestModel):
    event_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    start: datetime
    end: datetime


class EventHoldResponse(StandardizedModel):
    hold: ReservationResponse
    affected_bookings: List[ReservationResponse]


class ClosureCreate(StrictRequestModel):
    start: datetime
    end: datetime
    reason: str = Field(..., min_length=1, max_length=500)
    created_by: Optional[str] = Field(default=None, max_length=26)


class ClosureResponse(StandardizedModel):
    id: str
    starts_at: datetime
    ends_at: datetime
    reason: str
    created_by: Optional[str] = None
    lifted_at: Optional[datetime] = None


class ClosureCreateResponse(StandardizedModel):
    closure: ClosureResponse
    affected_bookings: List[ReservationResponse]
