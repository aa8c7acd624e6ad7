"""
kvplanner - Projects and todos over a flat key-value store

A task-management model (projects containing todos) exposed as MCP tools
and a CLI, persisted in a store that only offers single-key get/put/delete.
The store keeps denormalized ID indexes in step with the records without
multi-key transactions, by ordering its writes and tolerating dangling
index entries on read.

Core components:
- EntityIndexStore: The nine project/todo operations and index maintenance
- KeyValueStore: Single-key backends (memory, sqlite)
- ObservabilityLogger: Phase-based operation log
- check_consistency: Read-only report of index/record drift
"""

__version__ = "0.1.0"

from kvplanner.core.errors import NotFoundError, PlannerError, StoreFailure, MalformedRecordError
from kvplanner.core.kv import (
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    open_backend,
    register_backend,
    list_backends,
)
from kvplanner.core.records import Project, Todo, TodoPriority, TodoStatus
from kvplanner.core.store import EntityIndexStore
from kvplanner.core.observability import ObservabilityLogger, LogEntry
from kvplanner.core.consistency import ConsistencyIssue, check_consistency

__all__ = [
    # Errors
    "PlannerError",
    "NotFoundError",
    "StoreFailure",
    "MalformedRecordError",
    # Key-value layer
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "open_backend",
    "register_backend",
    "list_backends",
    # Records
    "Project",
    "Todo",
    "TodoStatus",
    "TodoPriority",
    # Store
    "EntityIndexStore",
    # Observability
    "ObservabilityLogger",
    "LogEntry",
    # Consistency
    "ConsistencyIssue",
    "check_consistency",
]
