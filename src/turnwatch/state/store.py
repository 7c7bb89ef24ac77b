"""
Roster persistence abstraction.

Separates persistence from roster logic. Two strategies share one
interface and are chosen when the application is composed:

- SnapshotAdapter: whole-state snapshot encoded into a shareable token,
  mirrored into a local cache
- SyncedAdapter: one record per player / history entry in a shared
  DocumentStore, with push updates to every connected client

The strategies deliberately keep different failure semantics. The
snapshot strategy is written after the in-memory roster has changed and
never rolls it back; the synchronized strategy is written first and the
roster is only updated once the write succeeded (see RosterStore).
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from ..errors import DecodeError, PersistenceWriteError
from .cache import LocalCache
from .codec import decode_state, encode_state, parse_snapshot
from .documents import DocumentStore, QuerySnapshot, Unsubscribe
from .schema import HISTORY_LIMIT, HistoryEntry, Player, RosterState

logger = logging.getLogger(__name__)


@dataclass
class RosterChange:
    """
    One mutation, described as records.

    Attributes:
        upserted: Players created or modified
        deleted: Ids of players removed
        history: History entries appended, in the order they were recorded
        reset: Remove every player and history record before applying the rest
        atomic: Must reach the backend as a single all-or-nothing write
    """

    upserted: list[Player] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)
    reset: bool = False
    atomic: bool = False


@dataclass
class RemoteUpdate:
    """Changes pushed by the backend, already parsed into models."""

    upserted: list[Player] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    history: list[HistoryEntry] | None = None  # full window, newest first, when it changed


RemoteCallback = Callable[[RemoteUpdate], None]


@runtime_checkable
class PersistenceAdapter(Protocol):
    """
    Storage interface for roster state.

    write_first tells RosterStore whether a change must reach storage
    before it is applied in memory (and be abandoned if the write fails).
    """

    write_first: bool

    def load(self) -> RosterState:
        """Read the best available state. Never raises for bad data."""
        ...

    def save(self, state: RosterState) -> None:
        """Replace the stored state. Raises PersistenceWriteError."""
        ...

    def persist(self, change: RosterChange, state: RosterState) -> None:
        """Write one mutation; state is the roster after the change."""
        ...

    def subscribe(self, callback: RemoteCallback) -> None:
        """Register for pushed updates from other clients."""
        ...

    def poll(self) -> None:
        """Pull pending remote changes, if the backend needs pulling."""
        ...

    def close(self) -> None:
        ...


# -----------------------------------------------------------------------------
# Encoded-snapshot strategy
# -----------------------------------------------------------------------------


class SnapshotAdapter:
    """
    Whole-state persistence through a shareable token and a local cache.

    Load order:
    1. Token supplied from outside (a shared locator), if it decodes
    2. Local cache
    3. Empty roster
    """

    write_first = False

    PLAYERS_KEY = "players"
    HISTORY_KEY = "historyLog"

    def __init__(self, cache: LocalCache, token: str | None = None):
        self.cache = cache
        self._incoming_token = token
        self._token = ""

    @property
    def token(self) -> str:
        """Token for the last saved state. Empty when there is nothing to share."""
        return self._token

    def locator(self, base: str = "") -> str:
        """Shareable locator: base plus '#<token>', or just base when empty."""
        return f"{base}#{self._token}" if self._token else base

    def load(self) -> RosterState:
        if self._incoming_token:
            try:
                state = decode_state(self._incoming_token)
            except DecodeError as e:
                logger.warning(f"Ignoring shared token: {e}")
            else:
                logger.info(f"Loaded roster from shared token ({len(state.players)} players)")
                self._token = "" if state.is_empty() else encode_state(state)
                try:
                    self.save(state)
                except PersistenceWriteError as e:
                    logger.warning(f"Shared roster not copied to local cache: {e}")
                return state

        try:
            state = self._load_cache()
        except DecodeError as e:
            logger.warning(f"Local cache unusable, starting empty: {e}")
            return RosterState()

        self._token = "" if state.is_empty() else encode_state(state)
        return state

    def _load_cache(self) -> RosterState:
        raw_players = self.cache.get(self.PLAYERS_KEY)
        raw_history = self.cache.get(self.HISTORY_KEY)
        try:
            players = json.loads(raw_players) if raw_players is not None else []
            history = json.loads(raw_history) if raw_history is not None else []
        except json.JSONDecodeError as e:
            raise DecodeError(f"Cached roster is not JSON: {e}") from e
        return parse_snapshot({"players": players, "historyLog": history})

    def save(self, state: RosterState) -> None:
        wire = state.to_wire()
        self.cache.update({
            self.PLAYERS_KEY: json.dumps(wire["players"]),
            self.HISTORY_KEY: json.dumps(wire["historyLog"]),
        })
        self._token = "" if state.is_empty() else encode_state(state)

    def persist(self, change: RosterChange, state: RosterState) -> None:
        self.save(state)

    def subscribe(self, callback: RemoteCallback) -> None:
        # Nothing pushes into a local snapshot
        pass

    def poll(self) -> None:
        pass

    def close(self) -> None:
        pass


# -----------------------------------------------------------------------------
# Synchronized strategy
# -----------------------------------------------------------------------------


class SyncedAdapter:
    """
    Per-record persistence in a shared DocumentStore.

    Collections:
    - players: keyed by player id
    - historyLog: keyed by entry id, read newest first, capped by query limit

    Every client evaluates transitions on its own; two clients writing the
    same player's status race and the later write wins.
    """

    write_first = True

    PLAYERS = "players"
    HISTORY = "historyLog"

    def __init__(self, documents: DocumentStore, history_limit: int = HISTORY_LIMIT):
        self.documents = documents
        self.history_limit = history_limit
        self._unsubscribers: list[Unsubscribe] = []

    def _history_query(self) -> dict:
        return {"order_by": "timestamp", "descending": True, "limit": self.history_limit}

    def load(self) -> RosterState:
        players = _parse_records(Player, self.documents.query(self.PLAYERS))
        history = _parse_records(
            HistoryEntry, self.documents.query(self.HISTORY, **self._history_query())
        )
        return RosterState(players=players, history_log=history)

    def save(self, state: RosterState) -> None:
        """Make the backend hold exactly this state, in one batch."""
        with self.documents.batch() as batch:
            self._clear_into(batch)
            for player in state.players:
                batch.set(self.PLAYERS, player.id, _dump(player))
            for entry in state.history_log:
                batch.set(self.HISTORY, entry.id, _dump(entry))

    def _clear_into(self, batch) -> None:
        for doc in self.documents.query(self.PLAYERS):
            batch.delete(self.PLAYERS, doc["id"])
        for doc in self.documents.query(self.HISTORY):
            batch.delete(self.HISTORY, doc["id"])

    def persist(self, change: RosterChange, state: RosterState) -> None:
        if change.atomic or change.reset:
            with self.documents.batch() as batch:
                if change.reset:
                    self._clear_into(batch)
                for player_id in change.deleted:
                    batch.delete(self.PLAYERS, player_id)
                for player in change.upserted:
                    batch.set(self.PLAYERS, player.id, _dump(player))
                for entry in change.history:
                    batch.set(self.HISTORY, entry.id, _dump(entry))
            return

        for player_id in change.deleted:
            self.documents.delete(self.PLAYERS, player_id)
        for player in change.upserted:
            self.documents.set(self.PLAYERS, player.id, _dump(player))
        for entry in change.history:
            self.documents.set(self.HISTORY, entry.id, _dump(entry))

    def subscribe(self, callback: RemoteCallback) -> None:
        def on_players(snapshot: QuerySnapshot) -> None:
            upserted: list[Player] = []
            removed: list[str] = []
            for change in snapshot.changes:
                if change.type == "removed":
                    removed.append(change.doc_id)
                    continue
                upserted.extend(_parse_records(Player, [change.data]))
            if upserted or removed:
                callback(RemoteUpdate(upserted=upserted, removed=removed))

        def on_history(snapshot: QuerySnapshot) -> None:
            callback(RemoteUpdate(history=_parse_records(HistoryEntry, snapshot.documents)))

        self._unsubscribers.append(self.documents.subscribe(self.PLAYERS, on_players))
        self._unsubscribers.append(
            self.documents.subscribe(self.HISTORY, on_history, **self._history_query())
        )

    def poll(self) -> None:
        self.documents.poll()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _parse_records(model_cls, docs: list[dict | None]) -> list:
    """Validate records, skipping (and logging) any that do not fit the model."""
    parsed = []
    for doc in docs:
        if doc is None:
            continue
        try:
            parsed.append(model_cls.model_validate(doc))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed {model_cls.__name__} record {doc.get('id')}: {e}")
    return parsed
