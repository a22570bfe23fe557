"""Event bus for monitor notifications."""

from panewatch.events.bus import EventBus
from panewatch.events.models import ALL_EVENTS, PANEWATCH_EVENT_TYPES, Event, EventHandler

__all__ = [
    "ALL_EVENTS",
    "Event",
    "EventBus",
    "EventHandler",
    "PANEWATCH_EVENT_TYPES",
]
