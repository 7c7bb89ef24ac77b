"""
Composition root.

Wires one client: event bus, persistence strategy, roster, confirmation
gate, notification tracker and scheduler. The persistence strategy is
picked here and nowhere else.
"""

import logging
from pathlib import Path

from .config import Config, RosterSettings, load_config, save_config
from .state.cache import JsonFileCache, LocalCache
from .state.clock import Clock, SystemClock
from .state.documents import DocumentStore, SqliteDocumentStore
from .state.event_bus import EventBus, RosterEvent, RosterEventType
from .state.roster import RosterStore
from .state.store import PersistenceAdapter, SnapshotAdapter, SyncedAdapter
from .systems.actions import ActionGate
from .systems.notifications import NotificationTracker, Notifier
from .systems.scheduler import Scheduler

logger = logging.getLogger(__name__)

BACKENDS = ("snapshot", "sqlite")


def build_adapter(
    backend: str,
    data_dir: Path | str = "data",
    token: str | None = None,
    db_path: Path | str | None = None,
    cache: LocalCache | None = None,
    documents: DocumentStore | None = None,
) -> PersistenceAdapter:
    """
    Create the persistence strategy for a backend name.

    Args:
        backend: "snapshot" (token + local cache) or "sqlite" (shared records)
        data_dir: Where file-backed storage lives
        token: Shared snapshot token, snapshot backend only
        db_path: SQLite file, sqlite backend only (default: data_dir/roster.db)
        cache: Local cache override (tests)
        documents: Document store override (tests, or an in-memory backend)
    """
    data_dir = Path(data_dir)
    if backend == "snapshot":
        return SnapshotAdapter(cache or JsonFileCache(data_dir / "local_cache.json"), token=token)
    if backend == "sqlite":
        return SyncedAdapter(documents or SqliteDocumentStore(db_path or data_dir / "roster.db"))
    raise ValueError(f"Unknown backend: {backend} (expected one of {', '.join(BACKENDS)})")


class Tracker:
    """
    One client of the roster.

    Lifecycle: open() loads state and asks for notification permission,
    close() stops subscriptions and forgets dedup memory.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        clock: Clock | None = None,
        config: Config | None = None,
        notifier: Notifier | None = None,
        data_dir: Path | str | None = None,
    ):
        self.config: Config = config if config is not None else load_config(data_dir or "data")
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.settings = RosterSettings.from_config(self.config)
        self.bus = EventBus()
        for event_type in RosterEventType:
            self.bus.on(event_type, _log_event)
        self.roster = RosterStore(adapter, clock or SystemClock(), self.settings, self.bus)
        self.gate = ActionGate(self.roster)
        self.notifications = NotificationTracker(
            notifier,
            warning_window=self.settings.warning_window,
            enabled=self.config.get("notifications_enabled", True),
            bus=self.bus,
        )
        self.scheduler = Scheduler(self.roster, self.notifications, self.settings.tick_interval)

    def open(self) -> None:
        self.roster.open()
        self.notifications.start()

    def close(self) -> None:
        self.roster.close()
        self.notifications.reset()

    def set_notifications(self, enabled: bool) -> None:
        """Toggle alerts and remember the choice."""
        self.config["notifications_enabled"] = enabled
        self.notifications.set_enabled(enabled)
        if self.data_dir is not None and not save_config(self.config, self.data_dir):
            logger.warning("Could not save notification preference")


def _log_event(event: RosterEvent) -> None:
    logger.debug(f"Event {event}")
