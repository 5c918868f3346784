"""Availability request and response schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, model_validator

from .base import StandardizedModel, StrictRequestModel


class SlotResponse(StandardizedModel):
    start: datetime
    end: datetime
    duration_minutes: int


class OpenSlotsResponse(StandardizedModel):
    date: date
    duration_minutes: int
    slots: List[SlotResponse]


class EndTimesResponse(StandardizedModel):
    date: date
    start_time: time
    end_times: List[time]


class GapResponse(StandardizedModel):
    start: datetime
    end: datetime
    duration_minutes: int


class GapsResponse(StandardizedModel):
    date: date
    min_gap_minutes: int
    gaps: List[GapResponse]


class AvailabilityCheckRequest(StrictRequestModel):
    """Window to test; ``exclude_booking_id`` lets a booking be checked against its own move."""

    start: datetime
    end: datetime
    exclude_booking_id: Optional[str] = Field(default=None, min_length=26, max_length=26)

    @model_validator(mode="after")
    def _end_after_start(self) -> "AvailabilityCheckRequest":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class OccupantResponse(StandardizedModel):
    source: str
    record_id: str
    start: datetime
    end: datetime
    buffered_start: datetime
    buffered_end: datetime
    label: Optional[str] = None


class ConflictReportResponse(StandardizedModel):
    bookings: List[OccupantResponse] = Field(default_factory=list)
    event_holds: List[OccupantResponse] = Field(default_factory=list)
    closures: List[OccupantResponse] = Field(default_factory=list)


class AvailabilityCheckResponse(StandardizedModel):
    available: bool
    reasons: List[str]
    conflicts: ConflictReportResponse
