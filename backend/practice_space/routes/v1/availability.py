# backend/practice_space/routes/v1/availability.py
"""
Availability routes - API v1

Read-only scheduling queries under /api/v1/availability.

Endpoints:
    GET /slots - Open windows of a given length on a day
    GET /end-times - End times available for a chosen start
    GET /gaps - Free stretches on a day
    POST /check - Full availability check for one window
"""

import asyncio
from datetime import date, time
import logging

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_availability_service
from ...core.exceptions import DomainException
from ...core.timezone_utils import to_venue_naive
from ...schemas.availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    EndTimesResponse,
    GapsResponse,
    OpenSlotsResponse,
)
from ...services.availability_service import AvailabilityService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


@router.get("/slots", response_model=OpenSlotsResponse)
async def list_open_slots(
    day: date = Query(..., alias="date"),
    duration_minutes: int = Query(60, ge=1, le=24 * 60),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> OpenSlotsResponse:
    """List bookable windows of ``duration_minutes`` on a day."""
    try:
        slots = await asyncio.to_thread(
            availability_service.list_open_slots, day, duration_minutes
        )
    except DomainException as e:
        handle_domain_exception(e)

    return OpenSlotsResponse(
        date=day,
        duration_minutes=duration_minutes,
        slots=[slot.to_dict() for slot in slots],
    )


@router.get("/end-times", response_model=EndTimesResponse)
async def list_valid_end_times(
    day: date = Query(..., alias="date"),
    start_time: time = Query(...),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> EndTimesResponse:
    try:
        end_times = await asyncio.to_thread(
            availability_service.list_valid_end_times, day, start_time
        )
    except DomainException as e:
        handle_domain_exception(e)

    return EndTimesResponse(date=day, start_time=start_time, end_times=end_times)


@router.get("/gaps", response_model=GapsResponse)
async def find_gaps(
    day: date = Query(..., alias="date"),
    min_gap_minutes: int = Query(60, ge=1, le=24 * 60),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> GapsResponse:
    try:
        gaps = await asyncio.to_thread(availability_service.find_gaps, day, min_gap_minutes)
    except DomainException as e:
        handle_domain_exception(e)

    return GapsResponse(
        date=day,
        min_gap_minutes=min_gap_minutes,
        gaps=[
            {"start": gap.start, "end": gap.end, "duration_minutes": gap.duration_minutes}
            for gap in gaps
        ],
    )


@router.post("/check", response_model=AvailabilityCheckResponse)
async def check_availability(
    check_data: AvailabilityCheckRequest,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityCheckResponse:
    """
    Check whether a window can be booked.

    Invalid windows come back with ``available=false`` and the reasons rather
    than an error status.
    """
    try:
        result = await asyncio.to_thread(
            availability_service.check_availability,
            to_venue_naive(check_data.start),
            to_venue_naive(check_data.end),
            check_data.exclude_booking_id,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return AvailabilityCheckResponse(**result.to_dict())
