"""
Event bus for roster state changes.

Lets whatever drives the roster (terminal loop, headless runner, tests)
react to changes without the roster core knowing about it.

Usage:
    bus = EventBus()
    bus.on(RosterEventType.STATUS_CHANGED, my_handler)

    # Emitted by RosterStore when the evaluator moves a player
    bus.emit(RosterEventType.STATUS_CHANGED, player_id="...", before="Eligible", after="Not Eligible")

    def my_handler(event: RosterEvent):
        print(f"{event.data['player_id']} is now {event.data['after']}")

The bus is owned by whoever composes the application and passed into the
components that publish; there is no process-wide instance.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class RosterEventType(Enum):
    """Roster events that can be published."""

    # Player events
    PLAYER_ADDED = "player.added"
    PLAYER_PLAYED = "player.played"
    PLAYER_OVERRIDDEN = "player.overridden"
    STATUS_CHANGED = "player.status_changed"

    # Bulk events
    INACTIVE_CLEANED = "roster.inactive_cleaned"
    ROSTER_RESET = "roster.reset"

    # Confirmation gate
    ACTION_STAGED = "action.staged"
    ACTION_CANCELLED = "action.cancelled"

    # Persistence events
    ROSTER_LOADED = "roster.loaded"
    ROSTER_SYNCED = "roster.synced"
    PERSISTENCE_FAILED = "persistence.failed"

    # Alerts
    ALERT_RAISED = "alert.raised"


@dataclass
class RosterEvent:
    """One published change. `data` holds the keyword arguments given to emit()."""

    type: RosterEventType
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        details = ", ".join(f"{k}={v}" for k, v in self.data.items())
        return f"{self.type.value}({details})"


EventHandler = Callable[[RosterEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(), in subscription order.
    A failing listener is logged and skipped. The most recent events are
    kept for inspection.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: defaultdict[RosterEventType, list[EventHandler]] = defaultdict(list)
        self._recent: deque[RosterEvent] = deque(maxlen=history_limit)

    def on(self, event_type: RosterEventType, handler: EventHandler) -> None:
        """Subscribe to an event type. Subscribing twice is a no-op."""
        handlers = self._listeners[event_type]
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: RosterEventType, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: RosterEventType, **data) -> RosterEvent:
        """Record the event, then hand it to every listener of its type."""
        event = RosterEvent(type=event_type, data=data)
        self._recent.append(event)

        for handler in tuple(self._listeners.get(event_type, ())):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Listener for {event_type.value} failed: {e}", exc_info=True)

        return event

    def get_history(self, event_type: RosterEventType | None = None) -> list[RosterEvent]:
        """Recent events, oldest first, optionally filtered by type."""
        return [e for e in self._recent if event_type is None or e.type == event_type]

    def listener_count(self, event_type: RosterEventType) -> int:
        return len(self._listeners.get(event_type, ()))
