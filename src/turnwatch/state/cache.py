"""
Durable local key/value cache.

String values under string keys, kept on the local machine.
Injected into the snapshot persistence strategy instead of being
reached for globally.
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..errors import PersistenceWriteError

logger = logging.getLogger(__name__)


@runtime_checkable
class LocalCache(Protocol):
    """
    Storage interface for the local cache.

    Implementations:
    - JsonFileCache: File-based persistence (production)
    - MemoryCache: In-memory storage (testing)
    """

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value. Raises PersistenceWriteError on failure."""
        ...

    def update(self, values: dict[str, str]) -> None:
        """Store several values in one write: all of them land or none do."""
        ...

    def remove(self, key: str) -> None:
        ...


class JsonFileCache:
    """
    Local cache kept in a single JSON file.

    Features:
    - Previous version kept alongside as .bak on every write
    - Unreadable file treated as an empty cache
    """

    def __init__(self, path: Path | str = "data/local_cache.json"):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Local cache {self.path} unreadable, ignoring it: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Local cache {self.path} is not an object, ignoring it")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        try:
            if self.path.exists():
                backup = self.path.with_suffix(self.path.suffix + ".bak")
                backup.write_text(self.path.read_text(encoding="utf-8"), encoding="utf-8")
            # Written aside, then swapped in whole
            staging = self.path.with_suffix(self.path.suffix + ".tmp")
            staging.write_text(json.dumps(data, indent=2), encoding="utf-8")
            staging.replace(self.path)
        except OSError as e:
            raise PersistenceWriteError(f"Failed to write local cache {self.path}: {e}", e) from e

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, values: dict[str, str]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class MemoryCache:
    """In-memory cache for testing. No file I/O."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def update(self, values: dict[str, str]) -> None:
        self.values.update(values)

    def remove(self, key: str) -> None:
        self.values.pop(key, None)
