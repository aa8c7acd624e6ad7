"""Argument validation and response shapes for the kvplanner MCP server.

The store trusts its inputs; everything a caller can get wrong (missing
arguments, unknown status or priority values) is rejected here first.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from kvplanner.core.records import STATUS_FILTER_ALL, TodoPriority, TodoStatus


class ErrorCode(Enum):
    """Structured error codes for MCP responses."""

    VALIDATION_ERROR = "validation_error"  # 400: Bad input
    NOT_FOUND = "not_found"  # 404: Project or todo doesn't exist
    UNKNOWN_TOOL = "unknown_tool"  # 404: No such tool
    NOT_INITIALIZED = "not_initialized"  # 500: Server not initialized
    STORE_FAILURE = "store_failure"  # 500: Key-value backend failed


STATUS_VALUES: List[str] = [s.value for s in TodoStatus]
PRIORITY_VALUES: List[str] = [p.value for p in TodoPriority]
STATUS_FILTER_VALUES: List[str] = STATUS_VALUES + [STATUS_FILTER_ALL]


class ArgumentError(ValueError):
    """A tool argument is missing or invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


def error_response(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    hint: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a structured error response.

    Args:
        code: Error code enum value
        message: Human-readable error message
        details: Optional additional details
        hint: Optional hint for resolving the error

    Returns:
        Structured error response dictionary
    """
    response: Dict[str, Any] = {
        "success": False,
        "error_code": code.value,
        "error": message,
    }
    if details:
        response["details"] = details
    if hint:
        response["hint"] = hint
    return response


def success_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Build a structured success response.

    Args:
        data: Response data dictionary

    Returns:
        Response with success=True and data merged in
    """
    return {"success": True, **data}


def require_string(arguments: Dict[str, Any], name: str) -> str:
    """Return a required string argument.

    Raises:
        ArgumentError: If the argument is missing or not a string
    """
    value = arguments.get(name)
    if value is None:
        raise ArgumentError(f"Missing required argument: {name}", field=name)
    if not isinstance(value, str):
        raise ArgumentError(f"Argument '{name}' must be a string", field=name)
    return value


def optional_string(arguments: Dict[str, Any], name: str) -> Optional[str]:
    """Return an optional string argument (None when absent).

    Raises:
        ArgumentError: If the argument is present but not a string
    """
    value = arguments.get(name)
    if value is not None and not isinstance(value, str):
        raise ArgumentError(f"Argument '{name}' must be a string", field=name)
    return value


def _choice(arguments: Dict[str, Any], name: str, allowed: List[str]) -> Optional[str]:
    value = optional_string(arguments, name)
    if value is not None and value not in allowed:
        raise ArgumentError(
            f"Invalid {name}: '{value}' (must be one of {', '.join(allowed)})",
            field=name,
        )
    return value


def parse_status(arguments: Dict[str, Any]) -> Optional[TodoStatus]:
    """Parse the optional 'status' argument of update_todo."""
    value = _choice(arguments, "status", STATUS_VALUES)
    return TodoStatus(value) if value is not None else None


def parse_priority(arguments: Dict[str, Any]) -> Optional[TodoPriority]:
    """Parse the optional 'priority' argument of create_todo/update_todo."""
    value = _choice(arguments, "priority", PRIORITY_VALUES)
    return TodoPriority(value) if value is not None else None


def parse_status_filter(arguments: Dict[str, Any]) -> Optional[str]:
    """Parse the optional 'status' filter of list_todo (a status or "all")."""
    return _choice(arguments, "status", STATUS_FILTER_VALUES)
