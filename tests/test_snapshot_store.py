"""
Tests for the encoded-snapshot persistence strategy and the file cache.
"""

import json
import pytest

from turnwatch.errors import PersistenceWriteError
from turnwatch.state import (
    HistoryEntry,
    JsonFileCache,
    MemoryCache,
    Player,
    RosterState,
    SnapshotAdapter,
    Status,
    encode_state,
)


def state_with(*names) -> RosterState:
    return RosterState(players=[Player(name=n) for n in names])


def cache_holding(state: RosterState) -> MemoryCache:
    wire = state.to_wire()
    return MemoryCache({
        "players": json.dumps(wire["players"]),
        "historyLog": json.dumps(wire["historyLog"]),
    })


class TestLoadOrder:
    """Token first, then cache, then empty."""

    def test_empty_everything(self):
        adapter = SnapshotAdapter(MemoryCache())
        assert adapter.load().is_empty()
        assert adapter.token == ""

    def test_cache_used_without_token(self):
        adapter = SnapshotAdapter(cache_holding(state_with("Ana")))
        assert [p.name for p in adapter.load().players] == ["Ana"]
        assert adapter.token != ""

    def test_token_takes_precedence(self):
        shared = state_with("Ben")
        adapter = SnapshotAdapter(cache_holding(state_with("Ana")), token=encode_state(shared))
        assert [p.name for p in adapter.load().players] == ["Ben"]
        assert adapter.token == encode_state(shared)

    def test_shared_roster_copied_to_cache(self):
        """Opening a shared token keeps it locally without waiting for an edit."""
        cache = MemoryCache()
        SnapshotAdapter(cache, token=encode_state(state_with("Ben"))).load()
        assert [p.name for p in SnapshotAdapter(cache).load().players] == ["Ben"]

    def test_shared_roster_loads_when_cache_unwritable(self):
        class ReadOnlyCache(MemoryCache):
            def update(self, values):
                raise PersistenceWriteError("read-only")

        adapter = SnapshotAdapter(ReadOnlyCache(), token=encode_state(state_with("Ben")))
        assert [p.name for p in adapter.load().players] == ["Ben"]
        assert adapter.token != ""

    def test_corrupt_token_falls_back_to_cache(self):
        adapter = SnapshotAdapter(cache_holding(state_with("Ana")), token="!!corrupt!!")
        assert [p.name for p in adapter.load().players] == ["Ana"]

    def test_corrupt_token_and_cache_fall_back_to_empty(self):
        cache = MemoryCache({"players": "{not json", "historyLog": "[]"})
        adapter = SnapshotAdapter(cache, token="#garbage")
        assert adapter.load().is_empty()

    def test_wrong_shape_cache_falls_back_to_empty(self):
        cache = MemoryCache({"players": json.dumps({"a": 1}), "historyLog": "[]"})
        assert SnapshotAdapter(cache).load().is_empty()


class TestSave:

    def test_writes_both_keys_and_token(self, t0):
        cache = MemoryCache()
        adapter = SnapshotAdapter(cache)
        state = RosterState(
            players=[Player(name="Ana", status=Status.ELIGIBLE, eligibility_expires_at=t0)],
            history_log=[HistoryEntry(player_name="Ana", action="marked as played", timestamp=t0)],
        )
        adapter.save(state)
        assert json.loads(cache.get("players"))[0]["eligibilityExpiresAt"].startswith("2026-03-01T12:00:00")
        assert json.loads(cache.get("historyLog"))[0]["action"] == "marked as played"
        assert adapter.token == encode_state(state)

    def test_empty_state_has_empty_token(self):
        adapter = SnapshotAdapter(MemoryCache())
        adapter.save(RosterState())
        assert adapter.token == ""
        assert adapter.locator("https://example.test/app") == "https://example.test/app"

    def test_locator(self):
        adapter = SnapshotAdapter(MemoryCache())
        adapter.save(state_with("Ana"))
        assert adapter.locator("https://example.test/app") == f"https://example.test/app#{adapter.token}"

    def test_token_reloads_elsewhere(self):
        """A locator token opens the same roster on another client."""
        first = SnapshotAdapter(MemoryCache())
        first.save(state_with("Ana", "Ben"))
        second = SnapshotAdapter(MemoryCache(), token="#" + first.token)
        assert [p.name for p in second.load().players] == ["Ana", "Ben"]


class TestJsonFileCache:
    """File-backed local cache."""

    def test_round_trip(self, tmp_path):
        cache = JsonFileCache(tmp_path / "cache.json")
        cache.set("players", "[]")
        assert JsonFileCache(tmp_path / "cache.json").get("players") == "[]"

    def test_keeps_backup(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = JsonFileCache(path)
        cache.set("a", "1")
        cache.set("a", "2")
        backup = json.loads((tmp_path / "cache.json.bak").read_text())
        assert backup == {"a": "1"}

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{broken")
        cache = JsonFileCache(path)
        assert cache.get("players") is None
        cache.set("players", "[]")
        assert cache.get("players") == "[]"

    def test_update_writes_keys_together(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = JsonFileCache(path)
        cache.update({"players": "[]", "historyLog": "[]"})
        assert json.loads(path.read_text()) == {"players": "[]", "historyLog": "[]"}
        assert not (tmp_path / "cache.json.tmp").exists()

    def test_remove(self, tmp_path):
        cache = JsonFileCache(tmp_path / "cache.json")
        cache.set("a", "1")
        cache.remove("a")
        assert cache.get("a") is None

    def test_write_failure_raises(self, tmp_path):
        """A cache path that cannot be written raises PersistenceWriteError."""
        target = tmp_path / "cache.json"
        target.mkdir()
        cache = JsonFileCache(target)
        with pytest.raises(PersistenceWriteError):
            cache.set("a", "1")
