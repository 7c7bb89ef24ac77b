"""
Authoritative in-memory roster and its mutation operations.

Storage is delegated to a PersistenceAdapter:
- SnapshotAdapter: change applied in memory first, then written; a failed
  write is reported but the in-memory change stays
- SyncedAdapter: change written first; a failed write aborts the operation
  and leaves the roster untouched

Operations:
- add_player(name) -> new player, NotEligible
- mark_played(id) -> Eligible for the eligibility window
- override(id, status, expiry) -> status/expiry exactly as given
- cleanup_inactive() -> remove every Inactive player
- reset_all() -> remove everything, keep one "Admin" entry
- apply_transitions(now) -> run the evaluator, persist what moved
"""

import logging
from datetime import datetime

from ..config import RosterSettings
from ..errors import DuplicateNameError, PersistenceWriteError, PlayerNotFoundError, ValidationError
from .clock import Clock, SystemClock
from .event_bus import EventBus, RosterEventType
from .history import HistoryLog
from .schema import ADMIN_NAME, HistoryEntry, Player, RosterState, Status, as_utc
from .store import PersistenceAdapter, RemoteUpdate, RosterChange

logger = logging.getLogger(__name__)


class RosterStore:
    """
    Holds players and history, applies mutations, keeps storage in step.

    Call open() once to load state and start receiving remote updates,
    close() when done.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        clock: Clock | None = None,
        settings: RosterSettings | None = None,
        bus: EventBus | None = None,
    ):
        self.adapter = adapter
        self.clock = clock or SystemClock()
        self.settings = settings or RosterSettings()
        self.bus = bus or EventBus()

        self._players: dict[str, Player] = {}
        self.history = HistoryLog()
        self.last_write_error: PersistenceWriteError | None = None
        self._opened = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> RosterState:
        """Load the best available state and subscribe to remote changes."""
        state = self.adapter.load()
        self._players = {p.id: p for p in state.players}
        self.history.replace(state.history_log)
        if not self._opened:
            self.adapter.subscribe(self._on_remote)
            self._opened = True
        logger.info(f"Roster loaded: {len(self._players)} players, {len(self.history)} history entries")
        self.bus.emit(
            RosterEventType.ROSTER_LOADED,
            players=len(self._players),
            history=len(self.history),
        )
        return state

    def close(self) -> None:
        self.adapter.close()
        self._opened = False

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def players(self) -> list[Player]:
        return list(self._players.values())

    def get(self, player_id: str) -> Player:
        player = self._players.get(player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)
        return player

    def find_by_name(self, name: str) -> Player | None:
        """Case-insensitive lookup."""
        wanted = name.strip().casefold()
        for player in self._players.values():
            if player.name.casefold() == wanted:
                return player
        return None

    def resolve(self, ref: str) -> Player:
        """Player by name (case-insensitive) or id."""
        if not ref or not ref.strip():
            raise ValidationError("No player provided")
        player = self.find_by_name(ref)
        if player is not None:
            return player
        return self.get(ref.strip())

    def snapshot(self) -> RosterState:
        return RosterState(players=self.players, history_log=self.history.entries)

    def eligible_count(self) -> int:
        return sum(1 for p in self._players.values() if p.status == Status.ELIGIBLE)

    def header(self) -> str:
        return f"Eligibility Tracker ({self.eligible_count()} / {len(self._players)} total)"

    # -------------------------------------------------------------------------
    # User operations
    # -------------------------------------------------------------------------

    def add_player(self, name: str) -> Player:
        """
        Add a player in NotEligible status with no timestamps.

        Raises:
            ValidationError: Empty name
            DuplicateNameError: Same name exists (case-insensitive)
        """
        trimmed = name.strip()
        if not trimmed:
            raise ValidationError("Player name cannot be empty")
        if self.find_by_name(trimmed) is not None:
            raise DuplicateNameError(trimmed)

        player = Player(name=trimmed)
        entry = self._entry(trimmed, "added to the tracker")
        players = dict(self._players)
        players[player.id] = player

        self._commit(RosterChange(upserted=[player], history=[entry]), players, [entry])
        logger.info(f"Added player {trimmed} ({player.id})")
        self.bus.emit(RosterEventType.PLAYER_ADDED, player_id=player.id, name=trimmed)
        return player

    def mark_played(self, player_id: str) -> Player:
        """Start a fresh eligibility window for the player."""
        current = self.get(player_id)
        now = self.clock.now()
        updated = current.model_copy(update={
            "last_played": now,
            "eligibility_expires_at": now + self.settings.eligibility_window,
            "status": Status.ELIGIBLE,
        })
        entry = self._entry(current.name, "marked as played", now)
        players = dict(self._players)
        players[player_id] = updated

        self._commit(RosterChange(upserted=[updated], history=[entry]), players, [entry])
        logger.info(f"{current.name} marked as played, eligible until {updated.eligibility_expires_at}")
        self.bus.emit(
            RosterEventType.PLAYER_PLAYED,
            player_id=player_id,
            expires_at=updated.eligibility_expires_at,
        )
        return updated

    def override(
        self,
        player_id: str,
        status: Status,
        expires_at: datetime | None,
    ) -> Player:
        """
        Force status and expiry exactly as given.

        last_played moves to now, except when forcing NotEligible, which
        keeps the previous value.
        """
        current = self.get(player_id)
        now = self.clock.now()
        last_played = current.last_played if status == Status.NOT_ELIGIBLE else now
        updated = current.model_copy(update={
            "status": status,
            "eligibility_expires_at": as_utc(expires_at),
            "last_played": last_played,
        })
        entry = self._entry(current.name, f"status manually set to {status.value}", now)
        players = dict(self._players)
        players[player_id] = updated

        self._commit(RosterChange(upserted=[updated], history=[entry]), players, [entry])
        logger.info(f"{current.name} manually set to {status.value}")
        self.bus.emit(
            RosterEventType.PLAYER_OVERRIDDEN,
            player_id=player_id,
            before=current.status.value,
            after=status.value,
        )
        return updated

    def cleanup_inactive(self) -> list[Player]:
        """Remove every Inactive player. One history entry for the whole sweep."""
        removed = [p for p in self._players.values() if p.status == Status.INACTIVE]
        entry = self._entry(ADMIN_NAME, "cleaned up inactive players")
        players = {pid: p for pid, p in self._players.items() if p.status != Status.INACTIVE}

        change = RosterChange(
            deleted=[p.id for p in removed],
            history=[entry],
            atomic=True,
        )
        self._commit(change, players, [entry])
        logger.info(f"Cleaned up {len(removed)} inactive players")
        self.bus.emit(RosterEventType.INACTIVE_CLEANED, removed=[p.id for p in removed])
        return removed

    def reset_all(self) -> HistoryEntry:
        """Delete every player and all history, then record the reset itself."""
        entry = self._entry(ADMIN_NAME, "cleared all player data")
        change = RosterChange(
            deleted=list(self._players),
            history=[entry],
            reset=True,
            atomic=True,
        )
        self._commit(change, {}, [entry], reset_history=True)
        logger.info("Roster reset")
        self.bus.emit(RosterEventType.ROSTER_RESET)
        return entry

    # -------------------------------------------------------------------------
    # Automatic transitions
    # -------------------------------------------------------------------------

    def apply_transitions(self, now: datetime | None = None) -> list[Player]:
        """
        Run the evaluator and persist players whose status moved.

        Write failures are logged; the scheduler keeps going. Returns the
        players that changed (empty if a write-first backend refused them).
        """
        from ..systems.transitions import changed_players, evaluate

        now = now or self.clock.now()
        before = self.players
        after = evaluate(before, now, self.settings.inactivity_window)
        changed = changed_players(before, after)
        if not changed:
            return []

        previous = {p.id: p.status for p in before}
        try:
            self._commit(
                RosterChange(upserted=changed),
                {p.id: p for p in after},
                [],
            )
        except PersistenceWriteError:
            return []

        for player in changed:
            logger.info(f"{player.name}: {previous[player.id].value} -> {player.status.value}")
            self.bus.emit(
                RosterEventType.STATUS_CHANGED,
                player_id=player.id,
                before=previous[player.id].value,
                after=player.status.value,
            )
        return changed

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _entry(self, player_name: str, action: str, timestamp: datetime | None = None) -> HistoryEntry:
        return HistoryEntry(
            player_name=player_name,
            action=action,
            timestamp=timestamp or self.clock.now(),
        )

    def _commit(
        self,
        change: RosterChange,
        players: dict[str, Player],
        new_entries: list[HistoryEntry],
        reset_history: bool = False,
    ) -> None:
        log = HistoryLog([] if reset_history else self.history.entries, self.history.limit)
        for entry in new_entries:
            log.append(entry)
        state = RosterState(players=list(players.values()), history_log=log.entries)

        if self.adapter.write_first:
            try:
                self.adapter.persist(change, state)
            except PersistenceWriteError as e:
                self._report_write_failure(e)
                raise
            self._apply(players, log.entries)
            return

        self._apply(players, log.entries)
        try:
            self.adapter.persist(change, state)
        except PersistenceWriteError as e:
            # In-memory change stays; storage catches up on the next good write
            self._report_write_failure(e)
        else:
            self.last_write_error = None

    def _apply(self, players: dict[str, Player], history: list[HistoryEntry]) -> None:
        self._players = dict(players)
        self.history.replace(history)

    def _report_write_failure(self, error: PersistenceWriteError) -> None:
        self.last_write_error = error
        logger.error(f"Roster write failed: {error}")
        self.bus.emit(RosterEventType.PERSISTENCE_FAILED, error=str(error))

    def _on_remote(self, update: RemoteUpdate) -> None:
        """Apply records pushed by the backend (including echoes of our own writes)."""
        for player in update.upserted:
            self._players[player.id] = player
        for player_id in update.removed:
            self._players.pop(player_id, None)
        if update.history is not None:
            self.history.replace(update.history)
        self.bus.emit(
            RosterEventType.ROSTER_SYNCED,
            upserted=len(update.upserted),
            removed=len(update.removed),
        )
