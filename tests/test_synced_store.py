"""
Tests for the synchronized persistence strategy.

Two RosterStores sharing one document backend stand in for two clients
connected to the same remote database.
"""

import pytest
from datetime import timedelta

from turnwatch.errors import DuplicateNameError, PersistenceWriteError
from turnwatch.state import (
    ADMIN_NAME,
    EventBus,
    FixedClock,
    MemoryDocumentStore,
    RosterEventType,
    RosterStore,
    SqliteDocumentStore,
    Status,
    SyncedAdapter,
)


class FailingDocumentStore(MemoryDocumentStore):
    """Backend that refuses every write while `broken` is set."""

    def __init__(self):
        super().__init__()
        self.broken = False

    def _write(self, ops):
        if self.broken:
            raise PersistenceWriteError("backend unavailable")
        super()._write(ops)


def client(documents, clock) -> RosterStore:
    store = RosterStore(SyncedAdapter(documents), clock, bus=EventBus())
    store.open()
    return store


class TestRecords:
    """One record per player and per history entry."""

    def test_player_written_as_record(self, synced_roster, documents):
        player = synced_roster.add_player("Ana")
        doc = documents.get("players", player.id)
        assert doc["name"] == "Ana"
        assert doc["status"] == "Not Eligible"
        assert doc["lastPlayed"] is None
        [history] = documents.query("historyLog")
        assert history["playerName"] == "Ana"

    def test_history_window_is_bounded(self, documents, clock):
        roster = client(documents, clock)
        for i in range(105):
            clock.advance(minutes=1)
            roster.add_player(f"P{i}")
        assert len(roster.history) == 100
        assert roster.history.entries[0].player_name == "P104"

    def test_reload_from_backend(self, documents, clock):
        first = client(documents, clock)
        first.mark_played(first.add_player("Ana").id)
        first.close()
        second = client(documents, clock)
        assert [p.status for p in second.players] == [Status.ELIGIBLE]
        assert [e.action for e in second.history] == ["marked as played", "added to the tracker"]

    def test_malformed_record_skipped(self, documents, clock):
        documents.set("players", "bad", {"id": "bad", "name": "X", "status": "Retired"})
        roster = client(documents, clock)
        assert roster.players == []


class TestLiveSync:
    """Writes by one client reach the other without a reload."""

    def test_add_is_pushed(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        player = a.add_player("Ana")
        assert [p.id for p in b.players] == [player.id]
        assert b.history.entries[0].player_name == "Ana"

    def test_status_change_is_pushed(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        player = a.add_player("Ana")
        a.mark_played(player.id)
        assert b.get(player.id).status == Status.ELIGIBLE

    def test_cleanup_is_pushed(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        keep = a.add_player("Ana")
        gone = a.add_player("Ben")
        a.override(gone.id, Status.INACTIVE, None)
        a.cleanup_inactive()
        assert [p.id for p in b.players] == [keep.id]
        assert b.history.entries[0].player_name == ADMIN_NAME

    def test_reset_is_pushed(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        for name in ("Ana", "Ben"):
            a.add_player(name)
        a.reset_all()
        assert b.players == []
        assert [e.action for e in b.history] == ["cleared all player data"]
        assert len(documents.query("historyLog")) == 1

    def test_sync_event_emitted(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        a.add_player("Ana")
        assert b.bus.get_history(RosterEventType.ROSTER_SYNCED)

    def test_closed_client_stops_receiving(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        b.close()
        a.add_player("Ana")
        assert b.players == []

    def test_duplicate_check_sees_remote_players(self, documents, clock):
        a = client(documents, clock)
        b = client(documents, clock)
        a.add_player("Ana")
        with pytest.raises(DuplicateNameError):
            b.add_player("ANA")


class TestWriteFirstFailure:
    """A failed write aborts the operation and leaves memory untouched."""

    @pytest.fixture
    def failing(self):
        return FailingDocumentStore()

    def test_add_aborted(self, failing, clock):
        roster = client(failing, clock)
        failing.broken = True
        with pytest.raises(PersistenceWriteError):
            roster.add_player("Ana")
        assert roster.players == []
        assert len(roster.history) == 0
        assert roster.bus.get_history(RosterEventType.PERSISTENCE_FAILED)

    def test_cleanup_aborted_atomically(self, failing, clock):
        roster = client(failing, clock)
        gone = roster.add_player("Ben")
        roster.override(gone.id, Status.INACTIVE, None)
        failing.broken = True
        with pytest.raises(PersistenceWriteError):
            roster.cleanup_inactive()
        assert [p.id for p in roster.players] == [gone.id]
        assert failing.get("players", gone.id) is not None

    def test_reset_aborted_leaves_backend_intact(self, failing, clock):
        roster = client(failing, clock)
        roster.add_player("Ana")
        failing.broken = True
        with pytest.raises(PersistenceWriteError):
            roster.reset_all()
        assert len(roster.players) == 1
        assert len(failing.query("players")) == 1
        assert len(failing.query("historyLog")) == 1

    def test_tick_write_failure_is_swallowed(self, failing, clock):
        """Automatic transitions report the failure and change nothing."""
        roster = client(failing, clock)
        player = roster.add_player("Ana")
        roster.mark_played(player.id)
        clock.advance(hours=73)
        failing.broken = True
        assert roster.apply_transitions() == []
        assert roster.get(player.id).status == Status.ELIGIBLE
        failing.broken = False
        assert [p.status for p in roster.apply_transitions()] == [Status.NOT_ELIGIBLE]


class TestSqliteBackend:
    """Two processes sharing one SQLite file, simulated by two connections."""

    def test_remote_changes_arrive_on_poll(self, tmp_path, t0):
        path = tmp_path / "roster.db"
        a = client(SqliteDocumentStore(path), FixedClock(t0))
        b = client(SqliteDocumentStore(path), FixedClock(t0))
        try:
            player = a.add_player("Ana")
            assert b.players == []
            b.adapter.poll()
            assert [p.id for p in b.players] == [player.id]
            assert b.history.entries[0].action == "added to the tracker"
        finally:
            a.close()
            b.close()

    def test_persisted_across_reopen(self, tmp_path, t0):
        path = tmp_path / "roster.db"
        first = client(SqliteDocumentStore(path), FixedClock(t0))
        first.mark_played(first.add_player("Ana").id)
        first.close()
        first.adapter.documents.close()

        second = client(SqliteDocumentStore(path), FixedClock(t0 + timedelta(hours=1)))
        try:
            assert second.players[0].status == Status.ELIGIBLE
        finally:
            second.close()
            second.adapter.documents.close()
