"""Event publisher - delivers committed lifecycle events to registered subscribers."""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..core.exceptions import IntegrationError
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


Subscriber = Callable[[Any], None]


class EventPublisher:
    """
    In-process fan-out of lifecycle events.

    Services call ``publish`` only after their transaction commits. A
    subscriber that raises is logged and skipped; the remaining subscribers
    still run and the caller never sees the error.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[Subscriber, Optional[frozenset[str]]]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Subscriber, event_types: Optional[Iterable[str]] = None) -> None:
        """
        Register a handler.

        Args:
            handler: Callable receiving the event object
            event_types: Event class names to receive; all events when omitted
        """
        types = frozenset(event_types) if event_types is not None else None
        with self._lock:
            self._subscribers.append((handler, types))

    def unsubscribe(self, handler: Subscriber) -> None:
        with self._lock:
            self._subscribers = [(h, t) for h, t in self._subscribers if h != handler]

    def clear(self) -> None:
        with self._lock:
            self._subscribers = []

    @property
    def subscribers(self) -> Sequence[Subscriber]:
        with self._lock:
            return tuple(h for h, _ in self._subscribers)

    def publish(self, event: Event) -> int:
        """
        Deliver one event to every interested subscriber.

        Returns:
            Number of subscribers that handled the event without error
        """
        event_type = type(event).__name__
        with self._lock:
            targets = [h for h, types in self._subscribers if types is None or event_type in types]

        delivered = 0
        for handler in targets:
            handler_name = getattr(handler, "__name__", repr(handler))
            try:
                handler(event)
            except IntegrationError as exc:
                prometheus_metrics.record_event_delivery(event_type, "failed")
                logger.error(
                    f"Subscriber {handler_name} failed for {event_type}: {exc}",
                    exc_info=True,
                    extra={"event_type": event_type, "collaborator": exc.collaborator},
                )
            except Exception as exc:
                prometheus_metrics.record_event_delivery(event_type, "failed")
                logger.error(
                    f"Unexpected error in subscriber {handler_name} for {event_type}: {exc}",
                    exc_info=True,
                    extra={"event_type": event_type},
                )
            else:
                delivered += 1
                prometheus_metrics.record_event_delivery(event_type, "delivered")
        return delivered

    def publish_all(self, events: Iterable[Event]) -> None:
        for event in events:
            self.publish(event)


event_publisher = EventPublisher()


def get_event_publisher() -> EventPublisher:
    return event_publisher
