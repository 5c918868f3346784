# backend/practice_space/routes/v1/reservations.py
"""
Reservation routes - API v1

Versioned reservation endpoints under /api/v1/reservations.
All business logic delegated to ReservationService.

Endpoints:
    GET / - List reservations for an owner
    POST / - Create a rehearsal booking
    GET /{reservation_id} - Reservation details
    PATCH /{reservation_id} - Reschedule a reservation
    POST /{reservation_id}/confirm - Confirm inside the confirmation window
    POST /{reservation_id}/cancel - Cancel a reservation
    POST /{reservation_id}/payment - Record settlement from billing
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import get_reservation_service
from ...core.exceptions import DomainException
from ...schemas.reservation import (
    PaymentUpdate,
    ReservationCancel,
    ReservationCreate,
    ReservationReschedule,
    ReservationResponse,
)
from ...services.reservation_service import ReservationService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["reservations-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.get("", response_model=List[ReservationResponse])
async def list_reservations(
    owner_id: str = Query(..., min_length=1, max_length=26),
    upcoming_only: bool = Query(False),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    try:
        bookings = await asyncio.to_thread(
            reservation_service.get_bookings_for_owner, owner_id, upcoming_only
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [ReservationResponse.model_validate(b) for b in bookings]


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    booking_data: ReservationCreate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """
    Create a rehearsal booking.

    The window is validated, checked for conflicts under the day lock and
    given its initial status from the confirmation policy.
    """
    try:
        booking = await asyncio.to_thread(
            reservation_service.create_booking,
            booking_data.owner_id,
            booking_data.start,
            booking_data.end,
            booking_data.notes,
            booking_data.status,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        booking = await asyncio.to_thread(reservation_service.get_booking, reservation_id)
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)


@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def reschedule_reservation(
    reschedule_data: ReservationReschedule,
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Move a reservation to a new window. Settled reservations cannot move."""
    try:
        booking = await asyncio.to_thread(
            reservation_service.reschedule_booking,
            reservation_id,
            reschedule_data.start,
            reschedule_data.end,
            reschedule_data.notes,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        booking = await asyncio.to_thread(reservation_service.confirm_booking, reservation_id)
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    cancel_data: Optional[ReservationCancel] = Body(default=None),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """
    Cancel a rehearsal. Cancelling twice returns the same record.

    Event holds are released through ``DELETE /event-holds/{event_id}``.
    """
    reason = cancel_data.reason if cancel_data else None
    try:
        booking = await asyncio.to_thread(
            reservation_service.cancel_booking, reservation_id, reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)


@router.post("/{reservation_id}/payment", response_model=ReservationResponse)
async def record_payment(
    payment_data: PaymentUpdate,
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        booking = await asyncio.to_thread(
            reservation_service.record_payment, reservation_id, payment_data.payment_status
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(booking)
