"""
Pytest fixtures for tracker tests.

Provides in-memory caches, in-memory document stores and a manually
driven clock for isolated testing.
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from turnwatch.config import RosterSettings
from turnwatch.state import (
    EventBus,
    FixedClock,
    MemoryCache,
    MemoryDocumentStore,
    RosterStore,
    SnapshotAdapter,
    SyncedAdapter,
)


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    """Reference start time."""
    return T0


@pytest.fixture
def clock():
    """Clock frozen at T0, moved only by the test."""
    return FixedClock(T0)


@pytest.fixture
def settings():
    """Default timing windows (72h / 3d / 24h / 60s)."""
    return RosterSettings()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def memory_cache():
    """In-memory local cache."""
    return MemoryCache()


@pytest.fixture
def snapshot_adapter(memory_cache):
    return SnapshotAdapter(memory_cache)


@pytest.fixture
def roster(snapshot_adapter, clock, settings, bus):
    """Opened roster on the snapshot strategy."""
    store = RosterStore(snapshot_adapter, clock, settings, bus)
    store.open()
    yield store
    store.close()


@pytest.fixture
def documents():
    """In-memory document backend."""
    return MemoryDocumentStore()


@pytest.fixture
def synced_roster(documents, clock, settings):
    """Opened roster on the synchronized strategy."""
    store = RosterStore(SyncedAdapter(documents), clock, settings, EventBus())
    store.open()
    yield store
    store.close()
