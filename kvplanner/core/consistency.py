"""
Read-only consistency report for a planner key-value store.

Detects what partial failures and lost index appends leave behind. Nothing
is repaired here; the report tells an operator which keys to look at.

Index-driven checks work on any backend. Record-driven checks (records that
no index lists) need a backend that supports scan().
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from kvplanner.core.errors import MalformedRecordError
from kvplanner.core.kv import KeyValueStore
from kvplanner.core.records import (
    PROJECT_INDEX_KEY,
    Todo,
    classify_key,
    decode_index,
    decode_project,
    decode_todo,
    project_key,
    todo_index_key,
    todo_key,
)


SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}


@dataclass
class ConsistencyIssue:
    """One inconsistency between indexes and records."""

    kind: str
    severity: str  # error | warning | info
    key: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.kind,
            "severity": self.severity,
            "key": self.key,
            "message": self.message,
        }


def _duplicates(ids: List[str]) -> List[str]:
    seen: Set[str] = set()
    dupes: List[str] = []
    for i in ids:
        if i in seen and i not in dupes:
            dupes.append(i)
        seen.add(i)
    return dupes


def _read_index(kv: KeyValueStore, key: str, issues: List[ConsistencyIssue]) -> List[str]:
    try:
        return decode_index(key, kv.get(key))
    except MalformedRecordError as e:
        issues.append(ConsistencyIssue("malformed_record", "error", key, str(e)))
        return []


def _read_todo(kv: KeyValueStore, todo_id: str, issues: List[ConsistencyIssue]) -> Optional[Todo]:
    key = todo_key(todo_id)
    raw = kv.get(key)
    if raw is None:
        return None
    try:
        return decode_todo(key, raw)
    except MalformedRecordError as e:
        issues.append(ConsistencyIssue("malformed_record", "error", key, str(e)))
        return None


def check_consistency(kv: KeyValueStore) -> List[ConsistencyIssue]:
    """Check index/record consistency.

    Issue kinds:
    - dangling_project (warning): project index ID without a record
    - duplicate_project (warning): ID listed more than once in the project index
    - dangling_todo (warning): todo index ID without a record
    - duplicate_todo (warning): ID listed more than once in a todo index
    - foreign_todo (error): todo index entry whose record names another project
    - malformed_record (error): value that cannot be decoded
    With scan support:
    - unlisted_project (warning): project record missing from the project index
    - unlisted_todo (warning): todo record missing from its project's todo index
    - orphan_todo (error): todo record whose project no longer exists
    - orphan_todo_index (warning): todo index of a project that no longer exists
    - legacy_todo_index (info): misspelled index key left by older deployments

    Args:
        kv: Backend to inspect

    Returns:
        Issues sorted by severity (errors first)
    """
    issues: List[ConsistencyIssue] = []

    project_ids = _read_index(kv, PROJECT_INDEX_KEY, issues)
    for dup in _duplicates(project_ids):
        issues.append(
            ConsistencyIssue(
                "duplicate_project",
                "warning",
                PROJECT_INDEX_KEY,
                f"Project {dup} is listed more than once in the project index",
            )
        )

    live_projects: Set[str] = set()
    indexed_todos: Dict[str, Set[str]] = {}  # todo id -> projects whose index lists it

    for project_id in dict.fromkeys(project_ids):
        key = project_key(project_id)
        raw = kv.get(key)
        if raw is None:
            issues.append(
                ConsistencyIssue(
                    "dangling_project",
                    "warning",
                    PROJECT_INDEX_KEY,
                    f"Project {project_id} is listed but has no record",
                )
            )
            continue
        try:
            decode_project(key, raw)
        except MalformedRecordError as e:
            issues.append(ConsistencyIssue("malformed_record", "error", key, str(e)))
        live_projects.add(project_id)

        index_key = todo_index_key(project_id)
        todo_ids = _read_index(kv, index_key, issues)
        for dup in _duplicates(todo_ids):
            issues.append(
                ConsistencyIssue(
                    "duplicate_todo",
                    "warning",
                    index_key,
                    f"Todo {dup} is listed more than once in project {project_id}",
                )
            )

        for todo_id in dict.fromkeys(todo_ids):
            indexed_todos.setdefault(todo_id, set()).add(project_id)
            todo = _read_todo(kv, todo_id, issues)
            if todo is None:
                if kv.get(todo_key(todo_id)) is None:
                    issues.append(
                        ConsistencyIssue(
                            "dangling_todo",
                            "warning",
                            index_key,
                            f"Todo {todo_id} is listed in project {project_id} but has no record",
                        )
                    )
                continue
            if todo.project_id != project_id:
                issues.append(
                    ConsistencyIssue(
                        "foreign_todo",
                        "error",
                        index_key,
                        f"Todo {todo_id} is listed in project {project_id} "
                        f"but belongs to project {todo.project_id}",
                    )
                )

    if kv.supports_scan:
        issues.extend(_check_unlisted(kv, live_projects, indexed_todos))

    # A malformed record can be reached both through an index and by scan
    issues = list({(i.kind, i.key, i.message): i for i in issues}.values())
    issues.sort(key=lambda i: SEVERITY_ORDER.get(i.severity, 99))
    return issues


def _check_unlisted(
    kv: KeyValueStore,
    listed_projects: Set[str],
    indexed_todos: Dict[str, Set[str]],
) -> List[ConsistencyIssue]:
    """Record-driven checks: walk every key and look for unreachable data."""
    issues: List[ConsistencyIssue] = []
    existing_projects: Set[str] = set()
    todo_ids: List[str] = []
    todo_indexes: List[str] = []

    for key in kv.scan():
        kind, entity_id = classify_key(key)
        if kind == "project" and entity_id is not None:
            existing_projects.add(entity_id)
            if entity_id not in listed_projects:
                issues.append(
                    ConsistencyIssue(
                        "unlisted_project",
                        "warning",
                        key,
                        f"Project {entity_id} has a record but is missing from the project index",
                    )
                )
        elif kind == "todo" and entity_id is not None:
            todo_ids.append(entity_id)
        elif kind == "todo_index" and entity_id is not None:
            todo_indexes.append(entity_id)
        elif kind == "legacy_todo_index":
            issues.append(
                ConsistencyIssue(
                    "legacy_todo_index",
                    "info",
                    key,
                    "Stale todo index written by an older deployment; safe to delete",
                )
            )

    # Todos of unlisted projects are still reachable through their own index
    for project_id in existing_projects - listed_projects:
        for todo_id in _read_index(kv, todo_index_key(project_id), issues):
            indexed_todos.setdefault(todo_id, set()).add(project_id)

    for project_id in todo_indexes:
        if project_id not in existing_projects:
            issues.append(
                ConsistencyIssue(
                    "orphan_todo_index",
                    "warning",
                    todo_index_key(project_id),
                    f"Todo index of missing project {project_id}",
                )
            )

    for todo_id in todo_ids:
        todo = _read_todo(kv, todo_id, issues)
        if todo is None:
            continue
        if todo.project_id not in existing_projects:
            issues.append(
                ConsistencyIssue(
                    "orphan_todo",
                    "error",
                    todo_key(todo_id),
                    f"Todo {todo_id} belongs to missing project {todo.project_id}",
                )
            )
        elif todo.project_id not in indexed_todos.get(todo_id, set()):
            issues.append(
                ConsistencyIssue(
                    "unlisted_todo",
                    "warning",
                    todo_key(todo_id),
                    f"Todo {todo_id} is missing from the todo index of project {todo.project_id}",
                )
            )

    return issues


def summarize(issues: List[ConsistencyIssue]) -> Dict[str, object]:
    """Build the report dictionary returned by the command layer."""
    return {
        "valid": len([i for i in issues if i.severity in ("error", "warning")]) == 0,
        "issue_count": len(issues),
        "issues": [i.to_dict() for i in issues],
        "summary": {
            "errors": len([i for i in issues if i.severity == "error"]),
            "warnings": len([i for i in issues if i.severity == "warning"]),
            "info": len([i for i in issues if i.severity == "info"]),
        },
    }


__all__ = ["ConsistencyIssue", "check_consistency", "summarize"]
