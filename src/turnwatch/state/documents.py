"""
Record-level document storage with live queries.

Backs the synchronized persistence strategy. Every record is addressed by
(collection, id); queries can order by a field and cap the result size;
subscribers receive the query result plus per-record changes each time a
committed write alters it.

Implementations:
- MemoryDocumentStore: one in-process backend shared by several clients
- SqliteDocumentStore: one SQLite file shared by several processes

Usage:
    store = MemoryDocumentStore()
    unsubscribe = store.subscribe("players", on_players)

    with store.batch() as batch:          # all-or-nothing
        batch.delete("players", "a1")
        batch.set("historyLog", "h9", {...})
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Literal, Protocol, runtime_checkable

from ..errors import PersistenceWriteError

logger = logging.getLogger(__name__)


ChangeType = Literal["added", "modified", "removed"]


@dataclass(frozen=True)
class DocumentChange:
    """One record entering, changing inside, or leaving a query result."""
    type: ChangeType
    doc_id: str
    data: dict | None = None  # None for removed


@dataclass
class QuerySnapshot:
    """What a subscriber receives: the current result and what changed."""
    collection: str
    documents: list[dict] = field(default_factory=list)
    changes: list[DocumentChange] = field(default_factory=list)


SnapshotCallback = Callable[[QuerySnapshot], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Query:
    collection: str
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def apply(self, rows: dict[str, tuple[int, dict]]) -> list[tuple[str, dict]]:
        """
        Order and cap raw rows ({id: (seq, data)}).

        Ties on the ordering field fall back to write order, so among equal
        timestamps the most recently written record counts as newest.
        """
        items = list(rows.items())
        if self.order_by is not None:
            items.sort(
                key=lambda item: (_sort_value(item[1][1].get(self.order_by)), item[1][0]),
                reverse=self.descending,
            )
        else:
            items.sort(key=lambda item: item[1][0])
        if self.limit is not None:
            items = items[: self.limit]
        return [(doc_id, data) for doc_id, (_, data) in items]


def _sort_value(value) -> tuple:
    """Sort key that orders ISO timestamps chronologically, not lexically."""
    if value is None:
        return (0, 0.0, "")
    if isinstance(value, bool):
        return (1, float(value), "")
    if isinstance(value, (int, float)):
        return (1, float(value), "")
    if isinstance(value, str):
        try:
            return (1, datetime.fromisoformat(value).timestamp(), "")
        except ValueError:
            return (2, 0.0, value)
    return (2, 0.0, str(value))


# Write operations: ("set", collection, id, data) or ("delete", collection, id, None)
WriteOp = tuple[str, str, str, dict | None]


@runtime_checkable
class DocumentStore(Protocol):
    """Record backend used by the synchronized persistence strategy."""

    def get(self, collection: str, doc_id: str) -> dict | None:
        ...

    def query(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        ...

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def batch(self) -> "WriteBatch":
        ...

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> Unsubscribe:
        ...

    def poll(self) -> int:
        """Deliver changes made elsewhere; returns deliveries made."""
        ...

    def close(self) -> None:
        ...


class WriteBatch:
    """
    Collects writes and commits them atomically.

    Used as a context manager: commits on clean exit, discards on error.
    A batch can be committed once.
    """

    def __init__(self, store: "BaseDocumentStore"):
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, copy.deepcopy(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._committed = True
        if self._ops:
            self._store.commit(self._ops)

    def __enter__(self) -> "WriteBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()


@dataclass
class _Subscription:
    query: Query
    callback: SnapshotCallback
    delivered: dict[str, dict] = field(default_factory=dict)
    active: bool = True


class BaseDocumentStore:
    """
    Shared query, batch and subscription logic.

    Subclasses provide _rows() (read one collection) and _write() (apply a
    list of ops atomically, raising PersistenceWriteError on failure).
    """

    def __init__(self):
        self._subscriptions: list[_Subscription] = []

    # --- storage hooks -------------------------------------------------------

    def _rows(self, collection: str) -> dict[str, tuple[int, dict]]:
        raise NotImplementedError

    def _write(self, ops: list[WriteOp]) -> None:
        raise NotImplementedError

    # --- reads ---------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> dict | None:
        row = self._rows(collection).get(doc_id)
        return copy.deepcopy(row[1]) if row else None

    def query(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        q = Query(collection, order_by, descending, limit)
        return [copy.deepcopy(data) for _, data in q.apply(self._rows(collection))]

    # --- writes --------------------------------------------------------------

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self.commit([("set", collection, doc_id, copy.deepcopy(data))])

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit([("delete", collection, doc_id, None)])

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def commit(self, ops: list[WriteOp]) -> None:
        """Apply ops atomically, then push the result to subscribers."""
        self._write(ops)
        self._notify({op[1] for op in ops})

    # --- subscriptions -------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> Unsubscribe:
        """
        Watch a query. The current result is delivered immediately as
        'added' changes, later deliveries carry only what changed.
        """
        sub = _Subscription(Query(collection, order_by, descending, limit), callback)
        self._subscriptions.append(sub)
        self._deliver(sub, force=True)

        def unsubscribe() -> None:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return unsubscribe

    def _notify(self, collections: set[str] | None = None) -> int:
        delivered = 0
        for sub in list(self._subscriptions):
            if collections is None or sub.query.collection in collections:
                if self._deliver(sub):
                    delivered += 1
        return delivered

    def _deliver(self, sub: _Subscription, force: bool = False) -> bool:
        if not sub.active:
            return False
        result = sub.query.apply(self._rows(sub.query.collection))
        current = {doc_id: data for doc_id, data in result}

        changes: list[DocumentChange] = []
        for doc_id, data in result:
            if doc_id not in sub.delivered:
                changes.append(DocumentChange("added", doc_id, copy.deepcopy(data)))
            elif sub.delivered[doc_id] != data:
                changes.append(DocumentChange("modified", doc_id, copy.deepcopy(data)))
        for doc_id in sub.delivered:
            if doc_id not in current:
                changes.append(DocumentChange("removed", doc_id, None))

        if not changes and not force:
            return False

        sub.delivered = copy.deepcopy(current)
        snapshot = QuerySnapshot(
            collection=sub.query.collection,
            documents=[copy.deepcopy(data) for _, data in result],
            changes=changes,
        )
        try:
            sub.callback(snapshot)
        except Exception as e:
            logger.error(f"Subscriber for '{sub.query.collection}' failed: {e}", exc_info=True)
        return True

    def poll(self) -> int:
        # Push-based stores deliver on commit
        return 0

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.active = False
        self._subscriptions.clear()


class MemoryDocumentStore(BaseDocumentStore):
    """
    In-process document backend.

    Several clients holding the same instance behave like several viewers
    of one remote database: a write by any of them is pushed to all
    subscribers synchronously after commit.
    """

    def __init__(self):
        super().__init__()
        self._collections: dict[str, dict[str, tuple[int, dict]]] = {}
        self._seq = 0

    def _rows(self, collection: str) -> dict[str, tuple[int, dict]]:
        return dict(self._collections.get(collection, {}))

    def _write(self, ops: list[WriteOp]) -> None:
        # Stage on copies so a bad op leaves nothing half-applied
        staged = {name: dict(rows) for name, rows in self._collections.items()}
        seq = self._seq
        for kind, collection, doc_id, data in ops:
            rows = staged.setdefault(collection, {})
            if kind == "set":
                seq += 1
                rows[doc_id] = (seq, copy.deepcopy(data))
            elif kind == "delete":
                rows.pop(doc_id, None)
            else:
                raise PersistenceWriteError(f"Unknown write op: {kind}")
        self._collections = staged
        self._seq = seq


class SqliteDocumentStore(BaseDocumentStore):
    """
    Document backend in a SQLite file.

    Every commit is one transaction, so a batch is all-or-nothing for
    every process reading the file. Changes committed by other processes
    are picked up by poll(), which the scheduler calls before each tick.
    """

    def __init__(self, path: Path | str = "data/roster.db"):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.path), isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS documents ("
            " collection TEXT NOT NULL,"
            " id TEXT NOT NULL,"
            " data TEXT NOT NULL,"
            " seq INTEGER NOT NULL,"
            " PRIMARY KEY (collection, id)"
            ");"
        )
        self._data_version = self._read_data_version()

    def _read_data_version(self) -> int:
        return int(self._conn.execute("PRAGMA data_version;").fetchone()[0])

    def _rows(self, collection: str) -> dict[str, tuple[int, dict]]:
        rows: dict[str, tuple[int, dict]] = {}
        for row in self._conn.execute(
            "SELECT id, data, seq FROM documents WHERE collection=?;", (collection,)
        ):
            try:
                rows[row["id"]] = (int(row["seq"]), json.loads(row["data"]))
            except json.JSONDecodeError:
                logger.warning(f"Skipping unreadable record {collection}/{row['id']}")
        return rows

    def _write(self, ops: list[WriteOp]) -> None:
        cur = self._conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE;")
            for kind, collection, doc_id, data in ops:
                if kind == "set":
                    cur.execute(
                        "INSERT INTO documents (collection, id, data, seq) "
                        "VALUES (?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM documents)) "
                        "ON CONFLICT(collection, id) DO UPDATE SET data=excluded.data, seq=excluded.seq;",
                        (collection, doc_id, json.dumps(data)),
                    )
                elif kind == "delete":
                    cur.execute(
                        "DELETE FROM documents WHERE collection=? AND id=?;",
                        (collection, doc_id),
                    )
                else:
                    raise ValueError(f"Unknown write op: {kind}")
            cur.execute("COMMIT;")
        except (sqlite3.Error, ValueError, TypeError) as e:
            if self._conn.in_transaction:
                cur.execute("ROLLBACK;")
            raise PersistenceWriteError(f"Write to {self.path} failed: {e}", e) from e
        finally:
            cur.close()

    def poll(self) -> int:
        """
        Deliver changes committed by other connections since the last poll.

        Returns the number of subscriptions that received a snapshot.
        """
        version = self._read_data_version()
        if version == self._data_version:
            return 0
        self._data_version = version
        return self._notify()

    def close(self) -> None:
        super().close()
        self._conn.close()
