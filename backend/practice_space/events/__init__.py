"""Lifecycle events published after the reservation service commits."""

from .booking_events import (
    EVENT_TYPES,
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingEvent,
    BookingUpdated,
)
from .handlers import register_default_handlers
from .publisher import EventPublisher, event_publisher, get_event_publisher

__all__ = [
    "EVENT_TYPES",
    "BookingEvent",
    "BookingCreated",
    "BookingConfirmed",
    "BookingCancelled",
    "BookingUpdated",
    "EventPublisher",
    "event_publisher",
    "get_event_publisher",
    "register_default_handlers",
]
