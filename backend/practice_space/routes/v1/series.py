# backend/practice_space/routes/v1/series.py
"""
Recurring series routes - API v1

Endpoints:
    POST / - Create a weekly series and book its first instances
    POST /forecast - Preview whether credits cover a proposed series
    POST /{series_id}/cancel - Stop a series and cancel its future instances
"""

import asyncio
from datetime import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from fastapi.params import Path

from ...api.dependencies import get_recurring_series_service
from ...core.exceptions import DomainException
from ...core.timezone_utils import to_venue_naive
from ...schemas.reservation import ReservationResponse
from ...schemas.series import (
    ForecastRequest,
    ForecastResponse,
    SeriesCancel,
    SeriesCancelResponse,
    SeriesCreate,
    SeriesCreateResponse,
    SeriesResponse,
)
from ...services.recurring_series_service import (
    FixedCreditLedger,
    RecurrencePattern,
    RecurringSeriesService,
)
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["series-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=SeriesCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_series(
    series_data: SeriesCreate,
    series_service: RecurringSeriesService = Depends(get_recurring_series_service),
) -> SeriesCreateResponse:
    """
    Create a weekly series.

    Instances inside the advance window are booked immediately. Dates that
    conflict are reported in ``skipped`` instead of failing the request.
    """
    pattern = RecurrencePattern(
        weeks=series_data.weeks, interval_weeks=series_data.interval_weeks
    )
    try:
        series, result = await asyncio.to_thread(
            series_service.create_series,
            series_data.owner_id,
            series_data.series_start_date,
            series_data.start_time,
            series_data.end_time,
            pattern,
            series_data.series_end_date,
            series_data.max_advance_days,
            series_data.notes,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return SeriesCreateResponse(
        series=SeriesResponse.model_validate(series),
        created=[ReservationResponse.model_validate(b) for b in result.created],
        skipped=[s.to_dict() for s in result.skipped],
    )


@router.post("/forecast", response_model=ForecastResponse)
async def forecast_credits(
    forecast_data: ForecastRequest,
    series_service: RecurringSeriesService = Depends(get_recurring_series_service),
) -> ForecastResponse:
    """Advisory only; a shortfall never blocks booking."""
    pattern = RecurrencePattern(
        weeks=forecast_data.weeks, interval_weeks=forecast_data.interval_weeks
    )
    ledger = FixedCreditLedger(
        balance=forecast_data.balance, monthly_allocation=forecast_data.monthly_allocation
    )
    start: datetime = to_venue_naive(forecast_data.start)
    end: datetime = to_venue_naive(forecast_data.end)
    try:
        forecast = await asyncio.to_thread(
            series_service.estimate_credit_sufficiency,
            forecast_data.owner_id,
            start,
            end,
            pattern,
            None,
            ledger,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return ForecastResponse(**forecast.to_dict())


@router.post("/{series_id}/cancel", response_model=SeriesCancelResponse)
async def cancel_series(
    series_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    cancel_data: Optional[SeriesCancel] = Body(default=None),
    series_service: RecurringSeriesService = Depends(get_recurring_series_service),
) -> SeriesCancelResponse:
    reason = cancel_data.reason if cancel_data else None
    try:
        series, cancelled = await asyncio.to_thread(
            series_service.cancel_series, series_id, reason
        )
    except DomainException as e:
        handle_domain_exception(e)

    return SeriesCancelResponse(
        series=SeriesResponse.model_validate(series), cancelled_count=len(cancelled)
    )
