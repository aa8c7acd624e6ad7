"""
Key-value backends for the planner store.

The store only relies on single-key get/put/delete. Backends:
- MemoryKeyValueStore: dict-backed, for tests and ephemeral servers
- SqliteKeyValueStore: one-table SQLite file, for persistent servers

scan(prefix) is optional and only used by diagnostics (consistency checks).
"""

import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from kvplanner.core.errors import StoreFailure


class KeyValueStore(ABC):
    """Single-key storage primitive. No transactions, no compare-and-swap."""

    name: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored at key, or None if absent."""
        pass

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store value at key, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is a no-op."""
        pass

    @property
    def supports_scan(self) -> bool:
        return False

    def scan(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix, sorted.

        Raises:
            NotImplementedError: If the backend cannot enumerate keys
        """
        raise NotImplementedError(f"Backend '{self.name}' does not support key scans")


# Backend registry for loading by name
_BACKEND_REGISTRY: Dict[str, type] = {}


def register_backend(name: str):
    """Decorator to register a key-value backend."""
    def decorator(cls):
        cls.name = name
        _BACKEND_REGISTRY[name] = cls
        return cls
    return decorator


def get_backend(name: str) -> type:
    """Get a backend class by name."""
    if name not in _BACKEND_REGISTRY:
        raise ValueError(f"Unknown backend: {name}. Available: {list(_BACKEND_REGISTRY.keys())}")
    return _BACKEND_REGISTRY[name]


def list_backends() -> List[str]:
    """List available backend names."""
    return list(_BACKEND_REGISTRY.keys())


def open_backend(name: str, **kwargs) -> KeyValueStore:
    """Instantiate a backend by name.

    Args:
        name: Registered backend name ("memory", "sqlite")
        **kwargs: Arguments passed to the backend constructor

    Returns:
        Ready-to-use backend instance
    """
    return get_backend(name)(**kwargs)


@register_backend("memory")
class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    @property
    def supports_scan(self) -> bool:
        return True

    def scan(self, prefix: str = "") -> List[str]:
        return sorted(k for k in list(self._data) if k.startswith(prefix))


@register_backend("sqlite")
class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed store with one `kv` table (key TEXT PRIMARY KEY, value TEXT).

    Every call opens its own connection, so one instance can be shared
    across threads. sqlite3 errors surface as StoreFailure.
    """

    def __init__(self, path: Path):
        """Initialize store with database path.

        Args:
            path: Path to SQLite database file (parent dirs are created)
        """
        self.db_path = Path(path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Create table if it doesn't exist."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
        except sqlite3.Error as e:
            raise StoreFailure(f"Cannot open key-value database {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreFailure(f"get failed for key '{key}': {e}", key=key) from e
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
        except sqlite3.Error as e:
            raise StoreFailure(f"put failed for key '{key}': {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreFailure(f"delete failed for key '{key}': {e}", key=key) from e

    @property
    def supports_scan(self) -> bool:
        return True

    def scan(self, prefix: str = "") -> List[str]:
        # substr comparison instead of LIKE: keys contain ':' and ' ' and may contain '%'
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreFailure(f"scan failed for prefix '{prefix}': {e}") from e
        return [row[0] for row in rows]


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "register_backend",
    "get_backend",
    "list_backends",
    "open_backend",
]
