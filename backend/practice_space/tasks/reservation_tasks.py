"""
Celery tasks for the reservation lifecycle.

Each task opens its own session and closes it when done. The services they
call isolate per-record failures, so a retry only happens when the whole run
could not start (e.g. the database was unreachable).
"""

import logging
from typing import Any, Callable, Dict, ParamSpec, Protocol, TypeVar, cast

from celery.result import AsyncResult
from sqlalchemy.orm import Session

from practice_space.events.handlers import register_default_handlers
from practice_space.events.publisher import get_event_publisher
from practice_space.services.auto_cancellation_service import AutoCancellationService
from practice_space.services.recurring_series_service import RecurringSeriesService
from practice_space.tasks.celery_app import celery_app

P = ParamSpec("P")
R = TypeVar("R", covariant=True)

logger = logging.getLogger(__name__)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    delay: Callable[..., AsyncResult]
    apply_async: Callable[..., AsyncResult]


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""

    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


register_default_handlers(get_event_publisher())


@typed_task(
    bind=True, max_retries=3, name="practice_space.tasks.reservation_tasks.auto_cancel_unconfirmed"
)
def auto_cancel_unconfirmed(self: Any) -> Dict[str, Any]:
    """
    Cancel Scheduled/Reserved bookings past their confirmation deadline.

    Runs daily from beat.

    Returns:
        SweepResult as a dict
    """
    from practice_space.database import SessionLocal

    db: Session = SessionLocal()
    try:
        result = AutoCancellationService(db).run()
        if result.failed:
            logger.warning(f"Auto-cancel sweep finished with {result.failed} failures")
        logger.info(
            f"Auto-cancel sweep: {result.cancelled} cancelled, "
            f"{result.skipped} skipped of {result.examined}"
        )
        return result.to_dict()
    except Exception as exc:
        logger.error(f"Auto-cancel sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=300)
    finally:
        db.close()


@typed_task(
    bind=True,
    max_retries=3,
    name="practice_space.tasks.reservation_tasks.generate_recurring_instances",
)
def generate_recurring_instances(self: Any) -> Dict[str, int]:
    """Generate upcoming instances for every active recurring series."""
    from practice_space.database import SessionLocal

    db: Session = SessionLocal()
    try:
        return RecurringSeriesService(db).generate_future_instances()
    except Exception as exc:
        logger.error(f"Recurring generation failed: {exc}")
        raise self.retry(exc=exc, countdown=300)
    finally:
        db.close()
