"""kvplanner MCP Server - Model Context Protocol tools for projects and todos.

Provides 10 tools:

Projects (4):
- create_project: Create a project
- list_projects: List all projects
- get_project: Get a project with its todos
- delete_project: Delete a project and all its todos

Todos (5):
- create_todo: Create a todo in a project
- update_todo: Update a todo's title, description, status or priority
- delete_todo: Delete a todo
- get_todo: Get a todo by ID
- list_todo: List a project's todos, optionally filtered by status

Maintenance (1):
- validate_store: Report index/record inconsistencies

Tool handlers are plain functions returning JSON-serializable values so they
can be called directly (tests, CLI) or through dispatch_tool().
"""

import json
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from kvplanner.core.config import PlannerConfig, load_config
from kvplanner.core.consistency import check_consistency, summarize
from kvplanner.core.errors import NotFoundError, StoreFailure
from kvplanner.core.kv import KeyValueStore, open_backend
from kvplanner.core.observability import ObservabilityLogger
from kvplanner.core.records import TodoPriority, TodoStatus
from kvplanner.core.store import EntityIndexStore
from kvplanner.mcp.validation import (
    PRIORITY_VALUES,
    STATUS_FILTER_VALUES,
    STATUS_VALUES,
    ArgumentError,
    ErrorCode,
    error_response,
    optional_string,
    parse_priority,
    parse_status,
    parse_status_filter,
    require_string,
    success_response,
)

# Global instances (initialized when server starts)
_config: Optional[PlannerConfig] = None
_kv: Optional[KeyValueStore] = None
_store: Optional[EntityIndexStore] = None
_logger: Optional[ObservabilityLogger] = None

_NOT_INIT_MSG = "kvplanner MCP server not initialized. Call init_server() first."


def _store_instance() -> EntityIndexStore:
    """Return store, raising if not initialized."""
    if _store is None:
        raise RuntimeError(_NOT_INIT_MSG)
    return _store


def _kv_instance() -> KeyValueStore:
    """Return backend, raising if not initialized."""
    if _kv is None:
        raise RuntimeError(_NOT_INIT_MSG)
    return _kv


def init_server(
    config: PlannerConfig,
    kv: Optional[KeyValueStore] = None,
    logger: Optional[ObservabilityLogger] = None,
    **store_kwargs: Any,
) -> Dict[str, Any]:
    """Wire backend, logger and store for the tool handlers.

    Args:
        config: Loaded configuration
        kv: Optional backend (defaults to the one named in config.storage)
        logger: Optional logger (defaults to config.logging when enabled)
        **store_kwargs: Extra EntityIndexStore arguments (id_factory, clock)

    Returns:
        Summary of the wiring (backend name, paths)
    """
    global _config, _kv, _store, _logger

    _config = config
    _kv = kv or open_backend(config.storage.backend, **config.storage.open_kwargs())
    if logger is None and config.logging.enabled:
        logger = ObservabilityLogger(config.logging.path)
    _logger = logger
    _store = EntityIndexStore(_kv, logger=_logger, **store_kwargs)

    return {
        "backend": _kv.name,
        "storage_path": str(config.storage.path) if config.storage.backend == "sqlite" else None,
        "log_path": str(config.logging.path) if _logger else None,
        "session_id": _logger.session_id if _logger else None,
    }


def _not_found(e: NotFoundError) -> Dict[str, Any]:
    return error_response(
        ErrorCode.NOT_FOUND,
        str(e),
        details={"kind": e.kind, "id": e.entity_id},
    )


# ============================================================================
# Tool Handlers
# ============================================================================


def handle_create_project(name: str, description: Optional[str] = None) -> Dict[str, Any]:
    """Create a project.

    Returns:
        Success response with the new project
    """
    project = _store_instance().create_project(name, description)
    return success_response({"project": project.to_dict()})


def handle_list_projects() -> List[Dict[str, Any]]:
    """List all projects in creation order."""
    return [p.to_dict() for p in _store_instance().list_projects()]


def handle_get_project(project_id: str) -> Dict[str, Any]:
    """Get a project together with its todos.

    Returns:
        {"project": ..., "todos": [...]} or a not_found error response
    """
    try:
        project, todos = _store_instance().get_project(project_id)
    except NotFoundError as e:
        return _not_found(e)

    return {
        "project": project.to_dict(),
        "todos": [t.to_dict() for t in todos],
    }


def handle_delete_project(project_id: str) -> Dict[str, Any]:
    """Delete a project and all its todos."""
    try:
        deleted_todos = _store_instance().delete_project(project_id)
    except NotFoundError as e:
        return _not_found(e)

    return success_response(
        {
            "project_id": project_id,
            "deleted": True,
            "deleted_todos": deleted_todos,
            "message": f"Project {project_id} and all its todos have been deleted.",
        }
    )


def handle_create_todo(
    project_id: str,
    title: str,
    description: Optional[str] = None,
    priority: Optional[TodoPriority] = None,
) -> Dict[str, Any]:
    """Create a pending todo in a project."""
    try:
        todo = _store_instance().create_todo(project_id, title, description, priority)
    except NotFoundError as e:
        return _not_found(e)

    return success_response({"todo": todo.to_dict()})


def handle_update_todo(
    todo_id: str,
    title: str,
    description: Optional[str] = None,
    status: Optional[TodoStatus] = None,
    priority: Optional[TodoPriority] = None,
) -> Dict[str, Any]:
    """Update a todo. Omitted optional fields are left unchanged."""
    try:
        todo = _store_instance().update_todo(
            todo_id,
            title,
            description=description,
            status=status,
            priority=priority,
        )
    except NotFoundError as e:
        return _not_found(e)

    return success_response({"todo": todo.to_dict()})


def handle_delete_todo(todo_id: str) -> Dict[str, Any]:
    """Delete a todo from its project."""
    try:
        _store_instance().delete_todo(todo_id)
    except NotFoundError as e:
        return _not_found(e)

    return success_response(
        {
            "todo_id": todo_id,
            "deleted": True,
            "message": f"Todo {todo_id} has been deleted.",
        }
    )


def handle_get_todo(todo_id: str) -> Dict[str, Any]:
    """Get a todo by ID (or a not_found error response)."""
    try:
        return _store_instance().get_todo(todo_id).to_dict()
    except NotFoundError as e:
        return _not_found(e)


def handle_list_todo(project_id: str, status: Optional[str] = None) -> Any:
    """List a project's todos.

    Args:
        project_id: Project ID
        status: Optional status filter; "all" or None returns every todo

    Returns:
        List of todos in index order, or a not_found error response
    """
    try:
        todos = _store_instance().list_todos(project_id, status)
    except NotFoundError as e:
        return _not_found(e)

    return [t.to_dict() for t in todos]


def handle_validate_store() -> Dict[str, Any]:
    """Check index/record consistency and report issues.

    Returns:
        Validation results with issues list
    """
    kv = _kv_instance()
    result = summarize(check_consistency(kv))
    result["full_scan"] = kv.supports_scan
    return result


# ============================================================================
# Dispatch
# ============================================================================


def dispatch_tool(name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
    """Validate arguments and route a tool call to its handler.

    Store failures and bad arguments become structured error responses.
    """
    arguments = arguments or {}

    if _store is None:
        return error_response(ErrorCode.NOT_INITIALIZED, _NOT_INIT_MSG)

    if _logger:
        _logger.log_input(name, arguments)

    try:
        if name == "create_project":
            return handle_create_project(
                require_string(arguments, "name"),
                optional_string(arguments, "description"),
            )
        elif name == "list_projects":
            return handle_list_projects()
        elif name == "get_project":
            return handle_get_project(require_string(arguments, "project_id"))
        elif name == "delete_project":
            return handle_delete_project(require_string(arguments, "project_id"))
        elif name == "create_todo":
            return handle_create_todo(
                require_string(arguments, "project_id"),
                require_string(arguments, "title"),
                description=optional_string(arguments, "description"),
                priority=parse_priority(arguments),
            )
        elif name == "update_todo":
            return handle_update_todo(
                require_string(arguments, "todo_id"),
                require_string(arguments, "title"),
                description=optional_string(arguments, "description"),
                status=parse_status(arguments),
                priority=parse_priority(arguments),
            )
        elif name == "delete_todo":
            return handle_delete_todo(require_string(arguments, "todo_id"))
        elif name == "get_todo":
            return handle_get_todo(require_string(arguments, "todo_id"))
        elif name == "list_todo":
            return handle_list_todo(
                require_string(arguments, "project_id"),
                parse_status_filter(arguments),
            )
        elif name == "validate_store":
            return handle_validate_store()
        else:
            return error_response(ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {name}")

    except ArgumentError as e:
        return error_response(
            ErrorCode.VALIDATION_ERROR,
            str(e),
            details={"field": e.field} if e.field else None,
        )
    except StoreFailure as e:
        if _logger:
            _logger.log_error(
                "store_failure",
                entity=e.key,
                details={"tool": name, "message": str(e)},
                resolution="propagated, not retried",
            )
        return error_response(
            ErrorCode.STORE_FAILURE,
            str(e),
            hint="The operation may be partially applied. Run validate_store to inspect.",
        )


# ============================================================================
# MCP Server Setup
# ============================================================================


def tool_definitions() -> List[Tool]:
    """Tool schemas announced to MCP clients."""
    return [
        Tool(
            name="create_project",
            description="Create a new project",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Project name"},
                    "description": {"type": "string", "description": "Project description"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="list_projects",
            description="List all projects",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_project",
            description="Get a specific project by ID, including its todos",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project ID"},
                },
                "required": ["project_id"],
            },
        ),
        Tool(
            name="delete_project",
            description="Delete a project and all its todos. WARNING: This is destructive.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project ID"},
                },
                "required": ["project_id"],
            },
        ),
        Tool(
            name="create_todo",
            description="Create a new todo in a project",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project ID"},
                    "title": {"type": "string", "description": "Todo title"},
                    "description": {"type": "string", "description": "Todo description"},
                    "priority": {
                        "type": "string",
                        "enum": PRIORITY_VALUES,
                        "description": "Todo priority (default: medium)",
                    },
                },
                "required": ["project_id", "title"],
            },
        ),
        Tool(
            name="update_todo",
            description="Update a todo's properties",
            inputSchema={
                "type": "object",
                "properties": {
                    "todo_id": {"type": "string", "description": "Todo ID"},
                    "title": {"type": "string", "description": "New todo title"},
                    "description": {"type": "string", "description": "New todo description"},
                    "status": {
                        "type": "string",
                        "enum": STATUS_VALUES,
                        "description": "New todo status",
                    },
                    "priority": {
                        "type": "string",
                        "enum": PRIORITY_VALUES,
                        "description": "New todo priority",
                    },
                },
                "required": ["todo_id", "title"],
            },
        ),
        Tool(
            name="delete_todo",
            description="Delete a todo from a project",
            inputSchema={
                "type": "object",
                "properties": {
                    "todo_id": {"type": "string", "description": "Todo ID"},
                },
                "required": ["todo_id"],
            },
        ),
        Tool(
            name="get_todo",
            description="Get a specific todo by ID",
            inputSchema={
                "type": "object",
                "properties": {
                    "todo_id": {"type": "string", "description": "Todo ID"},
                },
                "required": ["todo_id"],
            },
        ),
        Tool(
            name="list_todo",
            description="List all todos in a project",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project ID"},
                    "status": {
                        "type": "string",
                        "enum": STATUS_FILTER_VALUES,
                        "description": "Filter by status",
                    },
                },
                "required": ["project_id"],
            },
        ),
        Tool(
            name="validate_store",
            description="Check that project/todo indexes and records agree. Read-only.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def create_server(config: PlannerConfig) -> Server:
    """Create and configure the MCP server."""
    server = Server(config.server.name, version=config.server.version)

    @server.list_tools()
    async def list_tools():
        return tool_definitions()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict):
        try:
            result = dispatch_tool(name, arguments)
            return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

        except Exception as e:
            if _logger:
                _logger.log_error(type(e).__name__, details={"tool": name, "message": str(e)})
            error_result = {"error": str(e), "type": type(e).__name__}
            return [TextContent(type="text", text=json.dumps(error_result))]

    return server


async def run_server(config: Optional[PlannerConfig] = None):
    """Run the MCP server over stdio."""
    config = config or load_config()
    init_server(config)

    server = create_server(config)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main():
    """CLI entry point for the MCP server."""
    import asyncio

    asyncio.run(run_server())


if __name__ == "__main__":
    main()
