# backend/practice_space/core/config.py
import logging
import os
from datetime import time
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(override=False)

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


def is_ci() -> bool:
    return bool(os.getenv("CI"))


def _classify_site_mode(raw: str) -> str:
    mode = (raw or "").strip().lower()
    if mode in {"prod", "production", "live"}:
        return "production"
    if mode in {"stg", "stage", "staging"}:
        return "staging"
    return "development"


class Settings(BaseSettings):
    """Runtime configuration for the practice space scheduler."""

    # Environment (derived from SITE_MODE)
    environment: str = _classify_site_mode(os.getenv("SITE_MODE", "local"))
    is_testing: bool = False  # Set to True when running tests

    # Storage
    database_url: str = Field(
        default="sqlite:///./practice_space.db",
        description="SQLAlchemy URL for the primary store",
    )
    database_echo: bool = False
    create_tables_on_startup: bool = True
    redis_url: str = "redis://localhost:6379"
    cache_redis_enabled: bool = Field(
        default=True,
        description="Use Redis for snapshot caching; falls back to process memory when False",
    )

    # Venue
    venue_timezone: str = "America/Los_Angeles"
    business_open: time = time(9, 0)
    business_close: time = time(22, 0)

    # Booking rules
    min_booking_minutes: int = Field(default=60, ge=1)
    max_booking_minutes: int = Field(default=480, ge=1)
    slot_granularity_minutes: int = Field(default=30, ge=5, le=120)
    buffer_minutes: int = Field(
        default=0,
        description="Turnover gap added around every occupied interval when testing conflicts",
    )

    # Conflict snapshot cache
    conflict_snapshot_ttl_seconds: int = 1800

    # Confirmation policy
    confirmation_deadline_days: int = Field(
        default=3,
        ge=0,
        description="Bookings must be confirmed no later than this many days before the slot",
    )
    confirmation_window_days: int = Field(
        default=5,
        ge=0,
        description="Explicit confirmation opens this many days before the slot",
    )

    # Credits
    credit_minutes_per_block: int = Field(default=30, ge=1)
    credits_rollover: bool = False

    # Recurring series
    recurring_max_advance_days: int = Field(default=90, ge=1)

    # Resource-day write lock
    day_lock_ttl_seconds: int = Field(default=30, ge=1)
    day_lock_wait_seconds: float = Field(default=10.0, gt=0)

    # Background jobs
    sweep_hour: int = Field(default=3, ge=0, le=23)
    celery_broker_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("buffer_minutes")
    @classmethod
    def _validate_buffer(cls, value: int) -> int:
        if value < 0 or value > 60:
            raise ValueError("buffer_minutes must be between 0 and 60")
        return value

    @field_validator("conflict_snapshot_ttl_seconds")
    @classmethod
    def _validate_snapshot_ttl(cls, value: int) -> int:
        if value < 1800 or value > 3600:
            raise ValueError("conflict_snapshot_ttl_seconds must be between 1800 and 3600")
        return value

    @field_validator("business_close")
    @classmethod
    def _validate_business_hours(cls, value: time, info: ValidationInfo) -> time:
        opening = info.data.get("business_open")
        if opening is not None and value <= opening:
            raise ValueError("business_close must be after business_open")
        return value

    @model_validator(mode="after")
    def _validate_policy(self) -> "Settings":
        if self.min_booking_minutes > self.max_booking_minutes:
            raise ValueError("min_booking_minutes cannot exceed max_booking_minutes")
        if self.confirmation_window_days < self.confirmation_deadline_days:
            raise ValueError("confirmation_window_days cannot be shorter than the deadline")
        return self

    @property
    def snapshot_cache_enabled(self) -> bool:
        """Snapshots are always rebuilt in test and CI runs."""
        return not (self.is_testing or is_running_tests() or is_ci())

    def scheduling_summary(self) -> dict[str, Any]:
        return {
            "business_open": self.business_open.isoformat(),
            "business_close": self.business_close.isoformat(),
            "min_booking_minutes": self.min_booking_minutes,
            "max_booking_minutes": self.max_booking_minutes,
            "slot_granularity_minutes": self.slot_granularity_minutes,
            "buffer_minutes": self.buffer_minutes,
        }


settings = Settings()
