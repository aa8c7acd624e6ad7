"""
EntityIndexStore - Projects and todos over a single-key key-value store.

The backend has no multi-key transactions, so every operation orders its
single-key writes to bound what an interruption can leave behind:

- create: write the record first, then append to the index
  (worst case: a record reachable by ID but missing from listings)
- delete project: todos, todo index, project record, then project index
  (worst case: a dangling ID in the project index, never an orphaned todo)
- delete todo: remove from the index first, then delete the record
  (worst case: a record reachable by ID but missing from listings)

Index resolution skips IDs whose record is missing. This is the policy that
keeps listings working after a partial failure or a lost index append; each
skipped entry is logged.

Indexes are whole JSON lists rewritten by read-modify-write. Rewrites of one
index key are serialized by an in-process lock; writers in other processes
sharing the same backend can still lose each other's appends (see
kvplanner.core.consistency for detection).
"""

import uuid
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from kvplanner.core.errors import NotFoundError
from kvplanner.core.kv import KeyValueStore
from kvplanner.core.observability import ObservabilityLogger
from kvplanner.core.records import (
    PROJECT_INDEX_KEY,
    STATUS_FILTER_ALL,
    Project,
    Todo,
    TodoPriority,
    TodoStatus,
    decode_index,
    decode_project,
    decode_todo,
    encode_index,
    encode_project,
    encode_todo,
    format_timestamp,
    legacy_todo_index_key,
    project_key,
    todo_index_key,
    todo_key,
    utc_now,
)


class IndexLocks:
    """One lock per index key; a single writer per index within this process."""

    def __init__(self):
        self._guard = Lock()
        self._locks: Dict[str, Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, Lock())
        with lock:
            yield

    def discard(self, key: str) -> None:
        """Forget the lock for an index key that no longer exists."""
        with self._guard:
            self._locks.pop(key, None)


def _new_id() -> str:
    return str(uuid.uuid4())


class EntityIndexStore:
    """Read, write and delete projects and todos together with their indexes."""

    def __init__(
        self,
        kv: KeyValueStore,
        logger: Optional[ObservabilityLogger] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the store.

        Args:
            kv: Key-value backend
            logger: Optional operation logger (None disables logging)
            id_factory: Optional ID generator (defaults to uuid4 strings)
            clock: Optional clock returning the current datetime (defaults to UTC now)
        """
        self.kv = kv
        self.logger = logger
        self._new_id = id_factory or _new_id
        self._clock = clock or utc_now
        self._locks = IndexLocks()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _not_found(self, kind: str, entity_id: str, key: str) -> NotFoundError:
        if self.logger:
            self.logger.log_read(key, found=False)
            self.logger.log_error("not_found", entity=f"{kind}:{entity_id}")
        return NotFoundError(kind, entity_id)

    def _log_write(self, key: str, change_type: str, entity_id: str) -> None:
        if self.logger:
            self.logger.log_write(key, change_type, entity_id)

    def _read_index(self, key: str) -> List[str]:
        return decode_index(key, self.kv.get(key))

    def _rewrite_index(self, key: str, ids: List[str], operation: str, item_id: str) -> None:
        self.kv.put(key, encode_index(ids))
        if self.logger:
            self.logger.log_index(key, operation, item_id, len(ids))

    def _append_to_index(self, key: str, item_id: str) -> None:
        """Read-append-write. Caller must hold the lock for key."""
        ids = self._read_index(key)
        ids.append(item_id)
        self._rewrite_index(key, ids, "append", item_id)

    def _remove_from_index(self, key: str, item_id: str) -> None:
        """Read-filter-write. Caller must hold the lock for key."""
        ids = [i for i in self._read_index(key) if i != item_id]
        self._rewrite_index(key, ids, "remove", item_id)

    def _load_project(self, project_id: str) -> Optional[Project]:
        key = project_key(project_id)
        raw = self.kv.get(key)
        if raw is None:
            return None
        return decode_project(key, raw)

    def _require_project(self, project_id: str) -> Project:
        project = self._load_project(project_id)
        if project is None:
            raise self._not_found("project", project_id, project_key(project_id))
        return project

    def _load_todo(self, todo_id: str) -> Optional[Todo]:
        key = todo_key(todo_id)
        raw = self.kv.get(key)
        if raw is None:
            return None
        return decode_todo(key, raw)

    def _require_todo(self, todo_id: str) -> Todo:
        todo = self._load_todo(todo_id)
        if todo is None:
            raise self._not_found("todo", todo_id, todo_key(todo_id))
        return todo

    def _skip_missing(self, index_key: str, missing_id: str) -> None:
        if self.logger:
            self.logger.log_skip(index_key, missing_id)

    def _resolve_todos(self, project_id: str) -> List[Todo]:
        """Resolve a project's todo index to records, skipping missing ones."""
        index_key = todo_index_key(project_id)
        todos = []
        for todo_id in self._read_index(index_key):
            todo = self._load_todo(todo_id)
            if todo is None:
                self._skip_missing(index_key, todo_id)
                continue
            todos.append(todo)
        return todos

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, name: str, description: Optional[str] = None) -> Project:
        """Create a project and append it to the project index.

        Args:
            name: Project name
            description: Optional description (defaults to "")

        Returns:
            The stored project
        """
        now = self._now()
        project = Project(
            id=self._new_id(),
            name=name,
            description=description or "",
            created_at=now,
            updated_at=now,
        )

        key = project_key(project.id)
        self.kv.put(key, encode_project(project))
        self._log_write(key, "create", project.id)

        with self._locks.hold(PROJECT_INDEX_KEY):
            self._append_to_index(PROJECT_INDEX_KEY, project.id)

        return project

    def list_projects(self) -> List[Project]:
        """List projects in index order, skipping IDs whose record is missing."""
        projects = []
        for project_id in self._read_index(PROJECT_INDEX_KEY):
            project = self._load_project(project_id)
            if project is None:
                self._skip_missing(PROJECT_INDEX_KEY, project_id)
                continue
            projects.append(project)
        return projects

    def get_project(self, project_id: str) -> Tuple[Project, List[Todo]]:
        """Get a project and its todos.

        Raises:
            NotFoundError: If the project doesn't exist
        """
        project = self._require_project(project_id)
        return project, self._resolve_todos(project_id)

    def delete_project(self, project_id: str) -> int:
        """Delete a project, all of its todos and its todo index.

        Order: todos, todo index, project record, project index entry.

        Args:
            project_id: Project to delete

        Returns:
            Number of todo records deleted

        Raises:
            NotFoundError: If the project doesn't exist
        """
        self._require_project(project_id)

        index_key = todo_index_key(project_id)
        deleted = 0

        # Held until the project record is gone so create_todo cannot slip a todo in
        with self._locks.hold(index_key):
            for todo_id in self._read_index(index_key):
                key = todo_key(todo_id)
                if self.kv.get(key) is None:
                    self._skip_missing(index_key, todo_id)
                    continue
                self.kv.delete(key)
                self._log_write(key, "delete", todo_id)
                deleted += 1

            self.kv.delete(index_key)
            self.kv.delete(legacy_todo_index_key(project_id))

            key = project_key(project_id)
            self.kv.delete(key)
            self._log_write(key, "delete", project_id)

        self._locks.discard(index_key)

        with self._locks.hold(PROJECT_INDEX_KEY):
            self._remove_from_index(PROJECT_INDEX_KEY, project_id)

        return deleted

    # ------------------------------------------------------------------
    # Todos
    # ------------------------------------------------------------------

    def create_todo(
        self,
        project_id: str,
        title: str,
        description: Optional[str] = None,
        priority: Union[TodoPriority, str, None] = None,
    ) -> Todo:
        """Create a pending todo in a project.

        Args:
            project_id: Owning project
            title: Todo title
            description: Optional description (defaults to "")
            priority: Optional priority (defaults to medium)

        Returns:
            The stored todo

        Raises:
            NotFoundError: If the project doesn't exist (nothing is written)
        """
        index_key = todo_index_key(project_id)

        with self._locks.hold(index_key):
            self._require_project(project_id)

            now = self._now()
            todo = Todo(
                id=self._new_id(),
                project_id=project_id,
                title=title,
                description=description or "",
                status=TodoStatus.PENDING,
                priority=TodoPriority(priority) if priority is not None else TodoPriority.MEDIUM,
                created_at=now,
                updated_at=now,
            )

            key = todo_key(todo.id)
            self.kv.put(key, encode_todo(todo))
            self._log_write(key, "create", todo.id)

            self._append_to_index(index_key, todo.id)

        return todo

    def update_todo(
        self,
        todo_id: str,
        title: str,
        description: Optional[str] = None,
        status: Union[TodoStatus, str, None] = None,
        priority: Union[TodoPriority, str, None] = None,
    ) -> Todo:
        """Apply a partial update to a todo.

        title is always replaced; description, status and priority are left
        unchanged when None.

        Holds the project's todo-index lock so a concurrent delete_project
        cannot remove the record before it is written back.

        Raises:
            NotFoundError: If the todo doesn't exist
        """
        project_id = self._require_todo(todo_id).project_id

        with self._locks.hold(todo_index_key(project_id)):
            # Re-read: the project may have been deleted while waiting
            todo = self._require_todo(todo_id)

            todo.title = title
            if description is not None:
                todo.description = description
            if status is not None:
                todo.status = TodoStatus(status)
            if priority is not None:
                todo.priority = TodoPriority(priority)
            # Never move backwards, even if the clock does
            todo.updated_at = max(self._now(), todo.updated_at)

            key = todo_key(todo_id)
            self.kv.put(key, encode_todo(todo))
            self._log_write(key, "update", todo_id)

        return todo

    def delete_todo(self, todo_id: str) -> None:
        """Remove a todo from its project's index, then delete the record.

        Raises:
            NotFoundError: If the todo doesn't exist
        """
        todo = self._require_todo(todo_id)
        index_key = todo_index_key(todo.project_id)

        with self._locks.hold(index_key):
            self._remove_from_index(index_key, todo_id)

            key = todo_key(todo_id)
            self.kv.delete(key)
            self._log_write(key, "delete", todo_id)

    def get_todo(self, todo_id: str) -> Todo:
        """Get a todo by ID.

        Raises:
            NotFoundError: If the todo doesn't exist
        """
        return self._require_todo(todo_id)

    def list_todos(
        self,
        project_id: str,
        status: Union[TodoStatus, str, None] = None,
    ) -> List[Todo]:
        """List a project's todos in index order, optionally filtered by status.

        Args:
            project_id: Owning project
            status: Status to keep; None or "all" keeps everything

        Raises:
            NotFoundError: If the project doesn't exist
        """
        self._require_project(project_id)
        todos = self._resolve_todos(project_id)

        if status is None or status == STATUS_FILTER_ALL:
            return todos

        wanted = TodoStatus(status)
        return [t for t in todos if t.status == wanted]


__all__ = ["EntityIndexStore", "IndexLocks"]
