"""Event types published by panewatch components."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class Event:
    """
    Immutable notification about something the monitor observed.

    Attributes:
        event_type: Dotted event name, e.g. "monitor.list_failed"
        source: Component that emitted the event
        data: Event-specific payload
        timestamp: When the event was created
    """

    event_type: str
    source: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventHandler(Protocol):
    def __call__(self, event: Event) -> None: ...


ALL_EVENTS = "*"

PANEWATCH_EVENT_TYPES: dict[str, str] = {
    "monitor.started": "Monitor loop started",
    "monitor.stopped": "Monitor loop stopped",
    "monitor.list_failed": "Listing tmux panes failed (reported once per outage)",
    "monitor.list_recovered": "Listing tmux panes succeeded again after a failure",
    "monitor.capture_failed": "Capturing a pane's buffer failed",
    "monitor.pane_timeout": "Detection for a pane exceeded its time budget",
    "monitor.tree_dropped": "A tree was not delivered because the channel was full",
    "profiles.reloaded": "A new profile registry was swapped in",
    "profiles.reload_rejected": "A profile reload failed validation; the old registry stays",
}
