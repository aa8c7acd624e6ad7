"""Error types raised by the planner store.

Only two kinds are distinguished at this layer:

- NotFoundError: a referenced project or todo does not resolve to a record
- StoreFailure: the key-value backend failed (or returned unreadable data)
"""

from typing import Optional


class PlannerError(Exception):
    """Base class for all planner errors."""


class NotFoundError(PlannerError):
    """A project or todo ID does not resolve to a stored record."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} with id '{entity_id}' not found")


class StoreFailure(PlannerError):
    """The key-value backend raised, or a stored value could not be used."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class MalformedRecordError(StoreFailure):
    """A stored value is not a valid serialized record or index."""

    def __init__(self, key: str, reason: str):
        self.reason = reason
        super().__init__(f"Malformed value at key '{key}': {reason}", key=key)


__all__ = [
    "PlannerError",
    "NotFoundError",
    "StoreFailure",
    "MalformedRecordError",
]
