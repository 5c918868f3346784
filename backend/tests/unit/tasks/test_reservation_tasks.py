from __future__ import annotations

from unittest.mock import MagicMock, patch

from celery.schedules import crontab
import pytest

from practice_space.core.config import settings
from practice_space.services.auto_cancellation_service import SweepResult
from practice_space.tasks import celery_app
from practice_space.tasks.beat_schedule import get_beat_schedule
from practice_space.tasks.reservation_tasks import (
    auto_cancel_unconfirmed,
    generate_recurring_instances,
)


class TestAutoCancelTask:
    def test_runs_sweep_and_closes_session(self) -> None:
        session = MagicMock()
        service = MagicMock()
        service.run.return_value = SweepResult(
            examined=3, cancelled=2, skipped=1, cancelled_ids=["a", "b"]
        )

        with patch("practice_space.database.SessionLocal", return_value=session), patch(
            "practice_space.tasks.reservation_tasks.AutoCancellationService",
            return_value=service,
        ) as service_cls:
            result = auto_cancel_unconfirmed()

        service_cls.assert_called_once_with(session)
        assert result["cancelled"] == 2
        assert result["cancelled_ids"] == ["a", "b"]
        session.close.assert_called_once()

    def test_closes_session_when_sweep_cannot_start(self) -> None:
        session = MagicMock()
        service = MagicMock()
        service.run.side_effect = RuntimeError("database unreachable")

        with patch("practice_space.database.SessionLocal", return_value=session), patch(
            "practice_space.tasks.reservation_tasks.AutoCancellationService",
            return_value=service,
        ):
            with pytest.raises(RuntimeError):
                auto_cancel_unconfirmed()

        session.close.assert_called_once()


def test_generate_recurring_instances_task() -> None:
    session = MagicMock()
    service = MagicMock()
    summary = {"series_processed": 2, "created": 5, "skipped": 1, "completed": 0, "failed": 0}
    service.generate_future_instances.return_value = summary

    with patch("practice_space.database.SessionLocal", return_value=session), patch(
        "practice_space.tasks.reservation_tasks.RecurringSeriesService", return_value=service
    ):
        assert generate_recurring_instances() == summary

    session.close.assert_called_once()


def test_beat_schedule_runs_daily_jobs_at_sweep_hour() -> None:
    schedule = get_beat_schedule()

    sweep = schedule["auto-cancel-unconfirmed-bookings"]
    assert sweep["task"] == "practice_space.tasks.reservation_tasks.auto_cancel_unconfirmed"
    assert sweep["schedule"] == crontab(hour=settings.sweep_hour, minute=0)

    generation = schedule["generate-recurring-instances"]
    assert generation["schedule"] == crontab(hour=settings.sweep_hour, minute=30)


def test_celery_app_configuration() -> None:
    assert celery_app.conf.task_serializer == "json"
    assert celery_app.conf.timezone == settings.venue_timezone
    assert "practice_space.tasks.reservation_tasks.auto_cancel_unconfirmed" in celery_app.tasks
