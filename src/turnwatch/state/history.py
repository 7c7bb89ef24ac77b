"""
Bounded audit trail of roster actions.

Newest entries first. Inserting past the limit silently drops the oldest.
"""

from datetime import datetime
from typing import Iterable, Iterator

from .schema import HISTORY_LIMIT, HistoryEntry


class HistoryLog:
    """Append-only, bounded history. Only clear() removes entries."""

    def __init__(
        self,
        entries: Iterable[HistoryEntry] = (),
        limit: int = HISTORY_LIMIT,
    ):
        self.limit = limit
        self._entries: list[HistoryEntry] = list(entries)[:limit]

    def record(self, player_name: str, action: str, timestamp: datetime) -> HistoryEntry:
        """Create an entry and put it at the front of the log."""
        entry = HistoryEntry(player_name=player_name, action=action, timestamp=timestamp)
        self.append(entry)
        return entry

    def append(self, entry: HistoryEntry) -> None:
        self._entries.insert(0, entry)
        if len(self._entries) > self.limit:
            del self._entries[self.limit:]

    def replace(self, entries: Iterable[HistoryEntry]) -> None:
        """Swap in entries from storage (already newest first)."""
        self._entries = list(entries)[: self.limit]

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
