# backend/practice_space/tasks/beat_schedule.py
"""
Celery Beat schedule for the practice space scheduler.

Both jobs are idempotent, so a missed or doubled run is harmless.
"""

from typing import Any, Dict

from celery.schedules import crontab

from practice_space.core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        # Cancel pending bookings that missed their confirmation deadline
        "auto-cancel-unconfirmed-bookings": {
            "task": "practice_space.tasks.reservation_tasks.auto_cancel_unconfirmed",
            "schedule": crontab(hour=settings.sweep_hour, minute=0),
            "options": {"priority": 6},
        },
        # Top up recurring series to their advance horizon, after the sweep
        "generate-recurring-instances": {
            "task": "practice_space.tasks.reservation_tasks.generate_recurring_instances",
            "schedule": crontab(hour=settings.sweep_hour, minute=30),
            "options": {"priority": 4},
        },
    }
