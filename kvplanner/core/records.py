"""
Record types, key naming and serialization for the planner store.

Stored layout (one JSON value per key):
- project: {id}            -> Project record
- project: list            -> JSON array of project IDs
- project: {id}:todos      -> JSON array of todo IDs for one project
- todo: {id}               -> Todo record

Records use camelCase field names so values written by earlier deployments
of the planner remain readable.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from kvplanner.core.errors import MalformedRecordError


PROJECT_INDEX_KEY = "project: list"

_PROJECT_PREFIX = "project: "
_TODO_PREFIX = "todo: "
_TODO_INDEX_SUFFIX = ":todos"
_LEGACY_TODO_INDEX_SUFFIX = ": todos"


def project_key(project_id: str) -> str:
    """Key of a project record."""
    return f"{_PROJECT_PREFIX}{project_id}"


def todo_index_key(project_id: str) -> str:
    """Key of the todo index belonging to one project."""
    return f"{_PROJECT_PREFIX}{project_id}{_TODO_INDEX_SUFFIX}"


def legacy_todo_index_key(project_id: str) -> str:
    """Misspelled todo index key written by older deployments on todo delete.

    Never written by this package; only cleaned up and reported.
    """
    return f"{_PROJECT_PREFIX}{project_id}{_LEGACY_TODO_INDEX_SUFFIX}"


def todo_key(todo_id: str) -> str:
    """Key of a todo record."""
    return f"{_TODO_PREFIX}{todo_id}"


def classify_key(key: str) -> Tuple[str, Optional[str]]:
    """Split a stored key into (kind, id).

    Kinds: project_index, project, todo_index, legacy_todo_index, todo, unknown.
    For index kinds the id is the owning project ID.

    Examples:
        "project: list"        -> ("project_index", None)
        "project: abc"         -> ("project", "abc")
        "project: abc:todos"   -> ("todo_index", "abc")
        "project: abc: todos"  -> ("legacy_todo_index", "abc")
        "todo: xyz"            -> ("todo", "xyz")
    """
    if key == PROJECT_INDEX_KEY:
        return "project_index", None
    if key.startswith(_TODO_PREFIX):
        return "todo", key[len(_TODO_PREFIX):]
    if key.startswith(_PROJECT_PREFIX):
        rest = key[len(_PROJECT_PREFIX):]
        if rest.endswith(_LEGACY_TODO_INDEX_SUFFIX):
            return "legacy_todo_index", rest[: -len(_LEGACY_TODO_INDEX_SUFFIX)]
        if rest.endswith(_TODO_INDEX_SUFFIX):
            return "todo_index", rest[: -len(_TODO_INDEX_SUFFIX)]
        return "project", rest
    return "unknown", None


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Example: 2025-01-01T12:00:00.000Z
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TodoStatus(Enum):
    """Lifecycle state of a todo."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TodoPriority(Enum):
    """Priority of a todo."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Accepted by list operations to mean "no status filter"
STATUS_FILTER_ALL = "all"


@dataclass
class Project:
    """A project owning zero or more todos."""

    id: str
    name: str
    description: str
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any, key: str) -> "Project":
        fields = _require_fields(data, key, ["id", "name", "description", "createdAt", "updatedAt"])
        return cls(
            id=fields["id"],
            name=fields["name"],
            description=fields["description"],
            created_at=fields["createdAt"],
            updated_at=fields["updatedAt"],
        )


@dataclass
class Todo:
    """A todo item. project_id is a back-reference to its owning project."""

    id: str
    project_id: str
    title: str
    description: str
    status: TodoStatus
    priority: TodoPriority
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any, key: str) -> "Todo":
        fields = _require_fields(
            data,
            key,
            ["id", "projectId", "title", "description", "status", "priority", "createdAt", "updatedAt"],
        )
        try:
            status = TodoStatus(fields["status"])
        except ValueError:
            raise MalformedRecordError(key, f"unknown status {fields['status']!r}") from None
        try:
            priority = TodoPriority(fields["priority"])
        except ValueError:
            raise MalformedRecordError(key, f"unknown priority {fields['priority']!r}") from None

        return cls(
            id=fields["id"],
            project_id=fields["projectId"],
            title=fields["title"],
            description=fields["description"],
            status=status,
            priority=priority,
            created_at=fields["createdAt"],
            updated_at=fields["updatedAt"],
        )


def _require_fields(data: Any, key: str, names: List[str]) -> Dict[str, str]:
    """Check that data is an object holding every named field as a string."""
    if not isinstance(data, dict):
        raise MalformedRecordError(key, f"expected an object, got {type(data).__name__}")

    missing = [n for n in names if n not in data]
    if missing:
        raise MalformedRecordError(key, f"missing fields {missing}")

    for name in names:
        if not isinstance(data[name], str):
            raise MalformedRecordError(key, f"field '{name}' must be a string")

    return {n: data[n] for n in names}


def _load_json(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(key, f"invalid JSON ({e.msg})") from e


def encode_project(project: Project) -> str:
    return json.dumps(project.to_dict())


def decode_project(key: str, raw: str) -> Project:
    return Project.from_dict(_load_json(key, raw), key)


def encode_todo(todo: Todo) -> str:
    return json.dumps(todo.to_dict())


def decode_todo(key: str, raw: str) -> Todo:
    return Todo.from_dict(_load_json(key, raw), key)


def encode_index(ids: List[str]) -> str:
    return json.dumps(list(ids))


def decode_index(key: str, raw: Optional[str]) -> List[str]:
    """Decode an ID index. A missing key is an empty index."""
    if raw is None:
        return []

    data = _load_json(key, raw)
    if not isinstance(data, list) or not all(isinstance(i, str) for i in data):
        raise MalformedRecordError(key, "expected a JSON array of string IDs")
    return data


__all__ = [
    "PROJECT_INDEX_KEY",
    "STATUS_FILTER_ALL",
    "project_key",
    "todo_index_key",
    "legacy_todo_index_key",
    "todo_key",
    "classify_key",
    "format_timestamp",
    "utc_now",
    "TodoStatus",
    "TodoPriority",
    "Project",
    "Todo",
    "encode_project",
    "decode_project",
    "encode_todo",
    "decode_todo",
    "encode_index",
    "decode_index",
]
