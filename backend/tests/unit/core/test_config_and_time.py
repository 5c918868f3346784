from __future__ import annotations

from datetime import datetime, time

from pydantic import ValidationError
import pytest
import pytz

from practice_space.core.config import Settings, settings
from practice_space.core.timezone_utils import resolve_now, to_venue_naive


class TestSettingsValidation:
    def test_defaults(self) -> None:
        assert settings.business_open == time(9, 0)
        assert settings.business_close == time(22, 0)
        assert settings.confirmation_deadline_days == 3
        assert settings.confirmation_window_days == 5
        assert settings.is_testing is True
        assert settings.snapshot_cache_enabled is False

    @pytest.mark.parametrize("buffer", [-1, 61])
    def test_buffer_range(self, buffer: int) -> None:
        with pytest.raises(ValidationError):
            Settings(buffer_minutes=buffer)

    def test_close_after_open(self) -> None:
        with pytest.raises(ValidationError):
            Settings(business_open=time(12, 0), business_close=time(9, 0))

    def test_min_not_above_max(self) -> None:
        with pytest.raises(ValidationError):
            Settings(min_booking_minutes=120, max_booking_minutes=60)

    def test_snapshot_ttl_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(conflict_snapshot_ttl_seconds=60)

    def test_window_not_shorter_than_deadline(self) -> None:
        with pytest.raises(ValidationError):
            Settings(confirmation_deadline_days=5, confirmation_window_days=3)

    def test_scheduling_summary(self) -> None:
        summary = settings.scheduling_summary()
        assert summary["business_open"] == "09:00:00"
        assert summary["buffer_minutes"] == settings.buffer_minutes


class TestVenueTime:
    def test_naive_values_pass_through(self) -> None:
        value = datetime(2031, 3, 11, 14, 0)
        assert to_venue_naive(value) == value
        assert resolve_now(value) == value

    def test_aware_values_convert_to_venue_local(self) -> None:
        settings.venue_timezone = "America/Los_Angeles"
        utc_value = pytz.utc.localize(datetime(2031, 7, 1, 20, 0))
        assert to_venue_naive(utc_value) == datetime(2031, 7, 1, 13, 0)

    def test_resolve_now_defaults_to_naive_clock(self) -> None:
        assert resolve_now(None).tzinfo is None
