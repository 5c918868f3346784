"""Recurring series and credit forecast schemas."""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from .base import StandardizedModel, StrictRequestModel
from .reservation import ReservationResponse


class PatternFields(StrictRequestModel):
    weeks: Optional[int] = Field(default=None, ge=1, le=104)
    interval_weeks: int = Field(default=1, ge=1, le=52)


class SeriesCreate(PatternFields):
    owner_id: str = Field(..., min_length=1, max_length=26)
    series_start_date: date
    start_time: time
    end_time: time
    series_end_date: Optional[date] = None
    max_advance_days: Optional[int] = Field(default=None, ge=1, le=365)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _time_order(self) -> "SeriesCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SeriesCancel(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SeriesResponse(StandardizedModel):
    id: str
    owner_id: str
    interval_weeks: int
    occurrences: Optional[int] = None
    start_time: time
    end_time: time
    series_start_date: date
    series_end_date: Optional[date] = None
    max_advance_days: int
    status: str
    notes: Optional[str] = None


class SkippedInstanceResponse(StandardizedModel):
    instance_date: date
    reason: str


class SeriesCreateResponse(StandardizedModel):
    series: SeriesResponse
    created: List[ReservationResponse]
    skipped: List[SkippedInstanceResponse]


class SeriesCancelResponse(StandardizedModel):
    series: SeriesResponse
    cancelled_count: int


class ForecastRequest(PatternFields):
    """Preview request. Balance and allocation come from the caller's billing view."""

    owner_id: str = Field(..., min_length=1, max_length=26)
    start: datetime
    end: datetime
    balance: int = Field(..., ge=0)
    monthly_allocation: int = Field(..., ge=0)


class ForecastResponse(StandardizedModel):
    sufficient: bool
    shortfall: int
    final_balance: int
    starting_balance: int
    total_cost: int
    lines: List[Dict[str, Any]]
