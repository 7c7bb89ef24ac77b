"""State management for the roster."""

from .schema import (
    ADMIN_NAME,
    HISTORY_LIMIT,
    HistoryEntry,
    Player,
    RosterState,
    Status,
)
from .clock import Clock, FixedClock, SystemClock
from .history import HistoryLog
from .event_bus import EventBus, RosterEvent, RosterEventType
from .codec import decode_state, encode_state, parse_snapshot
from .cache import JsonFileCache, LocalCache, MemoryCache
from .documents import DocumentStore, MemoryDocumentStore, SqliteDocumentStore
from .store import (
    PersistenceAdapter,
    RemoteUpdate,
    RosterChange,
    SnapshotAdapter,
    SyncedAdapter,
)
from .roster import RosterStore

__all__ = [
    # Schema
    "ADMIN_NAME",
    "HISTORY_LIMIT",
    "HistoryEntry",
    "Player",
    "RosterState",
    "Status",
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # History
    "HistoryLog",
    # Events
    "EventBus",
    "RosterEvent",
    "RosterEventType",
    # Codec
    "decode_state",
    "encode_state",
    "parse_snapshot",
    # Storage
    "JsonFileCache",
    "LocalCache",
    "MemoryCache",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "PersistenceAdapter",
    "RemoteUpdate",
    "RosterChange",
    "SnapshotAdapter",
    "SyncedAdapter",
    # Roster
    "RosterStore",
]
