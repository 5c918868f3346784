# backend/practice_space/routes/v1/closures.py
"""
Closure and event hold routes - API v1

Staff-side blocking of the space. Neither endpoint cancels the rehearsals it
lands on; they are returned so staff can follow up.

Endpoints:
    POST /closures - Black out a window
    POST /closures/{closure_id}/lift - Reopen a closed window
    POST /event-holds - Hold the space for a public event
    DELETE /event-holds/{event_id} - Release an event's hold
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, status
from fastapi.params import Path

from ...api.dependencies import get_reservation_service
from ...core.exceptions import DomainException
from ...schemas.reservation import (
    ClosureCreate,
    ClosureCreateResponse,
    ClosureResponse,
    EventHoldCreate,
    EventHoldResponse,
    ReservationResponse,
)
from ...services.reservation_service import ReservationService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["closures-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post(
    "/closures", response_model=ClosureCreateResponse, status_code=status.HTTP_201_CREATED
)
async def create_closure(
    closure_data: ClosureCreate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ClosureCreateResponse:
    try:
        closure, affected = await asyncio.to_thread(
            reservation_service.create_closure,
            closure_data.start,
            closure_data.end,
            closure_data.reason,
            closure_data.created_by,
        )
    except DomainException as e:
        handle_domain_exception(e)

    if affected:
        logger.info(f"Closure {closure.id} overlaps {len(affected)} active booking(s)")
    return ClosureCreateResponse(
        closure=ClosureResponse.model_validate(closure),
        affected_bookings=[ReservationResponse.model_validate(b) for b in affected],
    )


@router.post("/closures/{closure_id}/lift", response_model=ClosureResponse)
async def lift_closure(
    closure_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ClosureResponse:
    try:
        closure = await asyncio.to_thread(reservation_service.lift_closure, closure_id)
    except DomainException as e:
        handle_domain_exception(e)
    return ClosureResponse.model_validate(closure)


@router.post(
    "/event-holds", response_model=EventHoldResponse, status_code=status.HTTP_201_CREATED
)
async def place_event_hold(
    hold_data: EventHoldCreate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> EventHoldResponse:
    """Hold the space for a calendar event. Placing the same event twice returns the first hold."""
    try:
        hold, affected = await asyncio.to_thread(
            reservation_service.place_event_hold,
            hold_data.event_id,
            hold_data.title,
            hold_data.start,
            hold_data.end,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return EventHoldResponse(
        hold=ReservationResponse.model_validate(hold),
        affected_bookings=[ReservationResponse.model_validate(b) for b in affected],
    )


@router.delete("/event-holds/{event_id}", response_model=ReservationResponse)
async def release_event_hold(
    event_id: str = Path(..., min_length=1, max_length=64),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        hold = await asyncio.to_thread(reservation_service.release_event_hold, event_id)
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(hold)
