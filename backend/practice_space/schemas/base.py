"""
Base schemas with standardized field types for consistent API responses.
"""

from pydantic import BaseModel, ConfigDict


class StandardizedModel(BaseModel):  # type: ignore[misc]
    """Base model for responses built from ORM rows and domain values."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictRequestModel(BaseModel):  # type: ignore[misc]
    """Request DTO base that forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_default=True, validate_assignment=True)
