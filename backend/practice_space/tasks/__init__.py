# backend/practice_space/tasks/__init__.py
"""
Celery tasks package for the practice space scheduler.

- auto_cancel_unconfirmed: daily confirmation-deadline sweep
- generate_recurring_instances: daily recurring series top-up
"""

from practice_space.tasks.celery_app import BaseTask, celery_app
from practice_space.tasks.reservation_tasks import (
    auto_cancel_unconfirmed,
    generate_recurring_instances,
)

__all__ = [
    "BaseTask",
    "celery_app",
    "auto_cancel_unconfirmed",
    "generate_recurring_instances",
]
