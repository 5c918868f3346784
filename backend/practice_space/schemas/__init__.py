"""Pydantic request/response schemas for the HTTP surface."""

from .availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    EndTimesResponse,
    GapsResponse,
    OpenSlotsResponse,
)
from .reservation import (
    ClosureCreate,
    ClosureCreateResponse,
    EventHoldCreate,
    EventHoldResponse,
    PaymentUpdate,
    ReservationCancel,
    ReservationCreate,
    ReservationReschedule,
    ReservationResponse,
)
from .series import (
    ForecastRequest,
    ForecastResponse,
    SeriesCancel,
    SeriesCancelResponse,
    SeriesCreate,
    SeriesCreateResponse,
)

__all__ = [
    "AvailabilityCheckRequest",
    "AvailabilityCheckResponse",
    "EndTimesResponse",
    "GapsResponse",
    "OpenSlotsResponse",
    "ClosureCreate",
    "ClosureCreateResponse",
    "EventHoldCreate",
    "EventHoldResponse",
    "PaymentUpdate",
    "ReservationCancel",
    "ReservationCreate",
    "ReservationReschedule",
    "ReservationResponse",
    "ForecastRequest",
    "ForecastResponse",
    "SeriesCancel",
    "SeriesCancelResponse",
    "SeriesCreate",
    "SeriesCreateResponse",
]
