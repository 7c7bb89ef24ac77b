"""
Tests for RosterStore operations on the snapshot strategy.
"""

import json
import pytest
from datetime import timedelta

from turnwatch.errors import (
    DuplicateNameError,
    PersistenceWriteError,
    PlayerNotFoundError,
    ValidationError,
)
from turnwatch.state import (
    ADMIN_NAME,
    EventBus,
    FixedClock,
    MemoryCache,
    RosterEventType,
    RosterStore,
    SnapshotAdapter,
    Status,
)


class FailingCache(MemoryCache):
    """Cache whose writes fail while `broken` is set."""

    def __init__(self):
        super().__init__()
        self.broken = False

    def update(self, values):
        if self.broken:
            raise PersistenceWriteError("disk full")
        super().update(values)


class TestAddPlayer:
    """Adding players."""

    def test_scenario_a(self, roster):
        """New player is Not Eligible with null timestamps."""
        player = roster.add_player("Ana")
        assert player.status == Status.NOT_ELIGIBLE
        assert player.last_played is None
        assert player.eligibility_expires_at is None
        assert roster.history.entries[0].action == "added to the tracker"
        assert roster.history.entries[0].player_name == "Ana"

    def test_name_is_trimmed(self, roster):
        assert roster.add_player("  Ana  ").name == "Ana"

    @pytest.mark.parametrize("name", ["", "   ", "\t"])
    def test_empty_name_rejected(self, roster, name):
        with pytest.raises(ValidationError):
            roster.add_player(name)
        assert roster.players == []
        assert len(roster.history) == 0

    def test_scenario_d_duplicate_case_insensitive(self, roster):
        """'ana' after 'Ana' fails and the roster is unchanged."""
        roster.add_player("Ana")
        before = roster.snapshot()
        with pytest.raises(DuplicateNameError):
            roster.add_player("ana")
        assert roster.snapshot() == before

    def test_duplicate_is_a_validation_error(self, roster):
        roster.add_player("Ana")
        with pytest.raises(ValidationError):
            roster.add_player(" ANA ")

    def test_persisted_to_cache(self, roster, memory_cache):
        roster.add_player("Ana")
        players = json.loads(memory_cache.get("players"))
        assert players[0]["name"] == "Ana"
        assert json.loads(memory_cache.get("historyLog"))[0]["playerName"] == "Ana"


class TestMarkPlayed:

    def test_starts_eligibility_window(self, roster, clock, t0):
        player = roster.add_player("Ana")
        updated = roster.mark_played(player.id)
        assert updated.status == Status.ELIGIBLE
        assert updated.last_played == t0
        assert updated.eligibility_expires_at == t0 + timedelta(hours=72)
        assert roster.history.entries[0].action == "marked as played"

    def test_unknown_player(self, roster):
        with pytest.raises(PlayerNotFoundError):
            roster.mark_played("missing")

    def test_event_emitted(self, roster, bus):
        player = roster.add_player("Ana")
        roster.mark_played(player.id)
        assert len(bus.get_history(RosterEventType.PLAYER_PLAYED)) == 1


class TestOverride:

    def test_sets_status_and_expiry_exactly(self, roster, clock, t0):
        player = roster.add_player("Ana")
        expiry = t0 + timedelta(hours=5)
        updated = roster.override(player.id, Status.ELIGIBLE, expiry)
        assert updated.status == Status.ELIGIBLE
        assert updated.eligibility_expires_at == expiry
        assert updated.last_played == t0
        assert roster.history.entries[0].action == "status manually set to Eligible"

    def test_not_eligible_keeps_last_played(self, roster, clock, t0):
        """Forcing Not Eligible does not touch last_played."""
        player = roster.add_player("Ana")
        roster.mark_played(player.id)
        clock.advance(hours=10)
        updated = roster.override(player.id, Status.NOT_ELIGIBLE, None)
        assert updated.last_played == t0
        assert updated.eligibility_expires_at is None

    def test_inactive_can_be_revived(self, roster, t0):
        player = roster.add_player("Ana")
        roster.override(player.id, Status.INACTIVE, None)
        updated = roster.override(player.id, Status.ELIGIBLE, t0 + timedelta(hours=1))
        assert updated.status == Status.ELIGIBLE

    def test_past_expiry_not_eligible_decays_next_tick(self, roster, clock, t0):
        player = roster.add_player("Ana")
        roster.override(player.id, Status.NOT_ELIGIBLE, t0 - timedelta(days=10))
        changed = roster.apply_transitions()
        assert [p.status for p in changed] == [Status.INACTIVE]


class TestBulkOperations:

    def test_scenario_e_cleanup(self, roster, t0):
        """Only the Inactive player is removed, with one Admin entry."""
        keep = roster.add_player("Ana")
        gone = roster.add_player("Ben")
        roster.mark_played(keep.id)
        roster.override(gone.id, Status.INACTIVE, None)
        history_before = len(roster.history)

        removed = roster.cleanup_inactive()

        assert [p.id for p in removed] == [gone.id]
        assert [p.id for p in roster.players] == [keep.id]
        assert len(roster.history) == history_before + 1
        entry = roster.history.entries[0]
        assert entry.player_name == ADMIN_NAME
        assert entry.action == "cleaned up inactive players"

    def test_cleanup_with_nothing_inactive(self, roster):
        roster.add_player("Ana")
        assert roster.cleanup_inactive() == []
        assert len(roster.players) == 1

    def test_reset_leaves_single_admin_entry(self, roster):
        for name in ("Ana", "Ben", "Cy"):
            roster.mark_played(roster.add_player(name).id)
        roster.reset_all()
        assert roster.players == []
        [entry] = roster.history.entries
        assert entry.player_name == ADMIN_NAME
        assert entry.action == "cleared all player data"


class TestTransitionsAndReads:

    def test_apply_transitions_persists(self, roster, clock, memory_cache):
        player = roster.add_player("Ana")
        roster.mark_played(player.id)
        clock.advance(hours=73)
        changed = roster.apply_transitions()
        assert [p.status for p in changed] == [Status.NOT_ELIGIBLE]
        stored = json.loads(memory_cache.get("players"))
        assert stored[0]["status"] == "Not Eligible"

    def test_apply_transitions_writes_nothing_history(self, roster, clock):
        """Automatic transitions are not recorded in the history log."""
        roster.mark_played(roster.add_player("Ana").id)
        before = len(roster.history)
        clock.advance(hours=73)
        roster.apply_transitions()
        assert len(roster.history) == before

    def test_apply_transitions_idempotent(self, roster, clock):
        roster.mark_played(roster.add_player("Ana").id)
        clock.advance(hours=73)
        assert roster.apply_transitions() != []
        assert roster.apply_transitions() == []

    def test_header(self, roster):
        roster.mark_played(roster.add_player("Ana").id)
        roster.add_player("Ben")
        assert roster.header() == "Eligibility Tracker (1 / 2 total)"

    def test_resolve_by_name_or_id(self, roster):
        player = roster.add_player("Ana")
        assert roster.resolve("ana") == player
        assert roster.resolve(player.id) == player
        with pytest.raises(PlayerNotFoundError):
            roster.resolve("nobody")


class TestSnapshotFailureSemantics:
    """Snapshot strategy: apply first, then write; failures do not roll back."""

    def test_failed_write_keeps_memory_change(self, clock):
        cache = FailingCache()
        bus = EventBus()
        roster = RosterStore(SnapshotAdapter(cache), clock, bus=bus)
        roster.open()
        cache.broken = True

        player = roster.add_player("Ana")

        assert roster.players == [player]
        assert isinstance(roster.last_write_error, PersistenceWriteError)
        assert len(bus.get_history(RosterEventType.PERSISTENCE_FAILED)) == 1
        assert cache.get("players") is None
        assert cache.get("historyLog") is None

    def test_next_good_write_catches_up(self, clock):
        cache = FailingCache()
        roster = RosterStore(SnapshotAdapter(cache), clock)
        roster.open()
        cache.broken = True
        roster.add_player("Ana")
        cache.broken = False
        roster.add_player("Ben")
        assert roster.last_write_error is None
        assert len(json.loads(cache.get("players"))) == 2


class TestReload:

    def test_reopen_restores_state(self, clock, memory_cache):
        first = RosterStore(SnapshotAdapter(memory_cache), clock)
        first.open()
        first.mark_played(first.add_player("Ana").id)
        first.close()

        second = RosterStore(SnapshotAdapter(memory_cache), FixedClock(clock.now()))
        second.open()
        assert [p.name for p in second.players] == ["Ana"]
        assert second.players[0].status == Status.ELIGIBLE
        assert [e.action for e in second.history] == ["marked as played", "added to the tracker"]
