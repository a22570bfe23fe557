"""Thread-safe publish/subscribe bus for monitor events."""

import logging
import threading
import uuid
from typing import Any

from panewatch.events.models import ALL_EVENTS, Event, EventHandler

logger = logging.getLogger(__name__)


class EventBus:
    """
    Synchronous, thread-safe event bus.

    Handlers subscribe to one event type, or to every type with "*". They
    run on the publishing thread in subscription order; a handler that
    raises is logged and skipped so the remaining handlers still run.

    Example:
        bus = EventBus()
        sub_id = bus.subscribe("monitor.list_failed", lambda e: print(e.data))
        bus.emit("monitor.list_failed", "monitor", error="no server running")
        bus.unsubscribe(sub_id)
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[tuple[str, EventHandler]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """
        Register a handler.

        Args:
            event_type: Event name to receive, or "*" for all events
            handler: Callable invoked with each matching Event

        Returns:
            Subscription ID for unsubscribe()
        """
        subscription_id = str(uuid.uuid4())
        with self._lock:
            self._subscribers.setdefault(event_type, []).append((subscription_id, handler))
            count = len(self._subscribers[event_type])

        logger.debug(
            "Subscribed to event type",
            extra={"event_type": event_type, "subscription_id": subscription_id, "total_subscribers": count},
        )
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns False if the ID is unknown."""
        with self._lock:
            for event_type, subscribers in self._subscribers.items():
                for i, (sub_id, _) in enumerate(subscribers):
                    if sub_id == subscription_id:
                        subscribers.pop(i)
                        logger.debug(
                            "Unsubscribed from event type",
                            extra={"event_type": event_type, "subscription_id": subscription_id},
                        )
                        return True

        logger.warning("Subscription ID not found", extra={"subscription_id": subscription_id})
        return False

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to its type's handlers, then to wildcard handlers."""
        with self._lock:
            subscribers = list(self._subscribers.get(event.event_type, []))
            subscribers += self._subscribers.get(ALL_EVENTS, [])

        for subscription_id, handler in subscribers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Handler raised exception",
                    extra={
                        "event_type": event.event_type,
                        "subscription_id": subscription_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )

    def emit(self, event_type: str, source: str, **data: Any) -> Event:
        """Build an Event from keyword data, publish it and return it."""
        event = Event(event_type=event_type, source=source, data=data)
        self.publish(event)
        return event

    def get_subscriber_count(self, event_type: str | None = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._subscribers.get(event_type, []))
            return sum(len(subs) for subs in self._subscribers.values())
