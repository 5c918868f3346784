"""Default event subscribers registered at startup."""
import logging

from .booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingEvent,
    BookingUpdated,
)
from .publisher import EventPublisher

logger = logging.getLogger(__name__)


def log_booking_created(event: BookingCreated) -> None:
    logger.info(
        "Booking %s created for %s (%s credits %s)",
        event.booking_id,
        event.owner_id or event.kind,
        event.billable_units,
        "deferred" if event.defer_credits else "due",
    )


def log_booking_confirmed(event: BookingConfirmed) -> None:
    logger.info(
        "Booking %s confirmed from %s (deduct credits: %s)",
        event.booking_id,
        event.previous_status,
        event.deduct_credits,
    )


def log_booking_cancelled(event: BookingCancelled) -> None:
    logger.info(
        "Booking %s cancelled from %s: %s",
        event.booking_id,
        event.previous_status,
        event.reason or "no reason given",
    )


def log_booking_updated(event: BookingUpdated) -> None:
    logger.info(
        "Booking %s moved to %s-%s (%s -> %s credits)",
        event.booking_id,
        event.starts_at.isoformat(),
        event.ends_at.isoformat(),
        event.old_billable_units,
        event.new_billable_units,
    )


# Registry of event type -> handler function
EVENT_HANDLERS = {
    BookingCreated.__name__: log_booking_created,
    BookingConfirmed.__name__: log_booking_confirmed,
    BookingCancelled.__name__: log_booking_cancelled,
    BookingUpdated.__name__: log_booking_updated,
}


def audit_event(event: BookingEvent) -> None:
    logger.debug("Lifecycle event %s", event.event_type, extra={"event": event.to_dict()})


def register_default_handlers(publisher: EventPublisher) -> None:
    """Attach the logging subscribers. Billing and notification adapters register their own."""
    for event_type, handler in EVENT_HANDLERS.items():
        if handler not in publisher.subscribers:
            publisher.subscribe(handler, [event_type])
    if audit_event not in publisher.subscribers:
        publisher.subscribe(audit_event)
