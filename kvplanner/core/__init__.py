"""Core abstractions for kvplanner - records, indexes and the key-value layer."""

from kvplanner.core.errors import NotFoundError, PlannerError, StoreFailure, MalformedRecordError
from kvplanner.core.kv import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore, open_backend
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
