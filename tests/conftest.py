"""
Shared pytest fixtures for kvplanner tests.

Provides fixtures for:
- Deterministic IDs and clock
- In-memory, SQLite and fault-injecting key-value backends
- Stores with and without an operation log
- An initialized MCP server (tool handlers wired to a memory backend)
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from kvplanner.core.config import LoggingConfig, PlannerConfig, StorageConfig
from kvplanner.core.errors import StoreFailure
from kvplanner.core.kv import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from kvplanner.core.observability import ObservabilityLogger
from kvplanner.core.store import EntityIndexStore
from kvplanner.mcp import server as mcp_server


START_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
START_STAMP = "2025-01-01T12:00:00.000Z"


class SequentialIds:
    """ID factory yielding id-1, id-2, ..."""

    def __init__(self):
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"id-{self.count}"


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FlakyKV(KeyValueStore):
    """Wraps a backend and raises StoreFailure on selected (operation, key) pairs.

    Every call is recorded in `calls` so tests can assert write ordering.
    """

    name = "flaky"

    def __init__(self, inner: KeyValueStore):
        self.inner = inner
        self.failures: Set[Tuple[str, str]] = set()
        self.calls: List[Tuple[str, str]] = []

    def fail(self, op: str, key: str) -> None:
        self.failures.add((op, key))

    def heal(self) -> None:
        self.failures.clear()

    def _check(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        if (op, key) in self.failures:
            raise StoreFailure(f"injected {op} failure", key=key)

    def get(self, key: str) -> Optional[str]:
        self._check("get", key)
        return self.inner.get(key)

    def put(self, key: str, value: str) -> None:
        self._check("put", key)
        self.inner.put(key, value)

    def delete(self, key: str) -> None:
        self._check("delete", key)
        self.inner.delete(key)

    @property
    def supports_scan(self) -> bool:
        return self.inner.supports_scan

    def scan(self, prefix: str = "") -> List[str]:
        return self.inner.scan(prefix)

    def writes(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("put", "delete")]


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def memory_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sqlite_kv(tmp_path: Path) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(tmp_path / "store.db")


@pytest.fixture
def logger(tmp_path: Path) -> ObservabilityLogger:
    return ObservabilityLogger(tmp_path / "logs.db")


@pytest.fixture
def store(memory_kv, ids, clock) -> EntityIndexStore:
    """Store over an in-memory backend, no operation log."""
    return EntityIndexStore(memory_kv, id_factory=ids, clock=clock)


@pytest.fixture
def logged_store(memory_kv, logger, ids, clock) -> EntityIndexStore:
    """Store over an in-memory backend with an operation log."""
    return EntityIndexStore(memory_kv, logger=logger, id_factory=ids, clock=clock)


@pytest.fixture
def flaky_kv(memory_kv) -> FlakyKV:
    return FlakyKV(memory_kv)


@pytest.fixture
def flaky_store(flaky_kv, ids, clock) -> EntityIndexStore:
    return EntityIndexStore(flaky_kv, id_factory=ids, clock=clock)


@pytest.fixture
def server_config(tmp_path: Path) -> PlannerConfig:
    return PlannerConfig(
        storage=StorageConfig(backend="memory"),
        logging=LoggingConfig(path=tmp_path / "logs.db"),
    )


@pytest.fixture
def initialized_server(server_config, memory_kv, logger, ids, clock) -> Dict[str, object]:
    """Wire the MCP tool handlers to a memory backend; reset afterwards."""
    info = mcp_server.init_server(
        server_config,
        kv=memory_kv,
        logger=logger,
        id_factory=ids,
        clock=clock,
    )
    yield info
    mcp_server._config = None
    mcp_server._kv = None
    mcp_server._store = None
    mcp_server._logger = None
