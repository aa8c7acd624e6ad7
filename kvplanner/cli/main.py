import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import click

from kvplanner import EntityIndexStore, ObservabilityLogger, open_backend
from kvplanner.cli.check import check_store
from kvplanner.core.config import PlannerConfig, load_config
from kvplanner.core.errors import PlannerError
from kvplanner.mcp.validation import PRIORITY_VALUES, STATUS_FILTER_VALUES, STATUS_VALUES


# -------------------------
# Helpers
# -------------------------


def _load(ctx: click.Context) -> PlannerConfig:
    obj = ctx.ensure_object(dict)
    overrides = None
    if obj.get("db"):
        overrides = {"storage": {"backend": "sqlite", "path": str(obj["db"])}}
    return load_config(obj.get("config_path"), cli_overrides=overrides)


def _open_store(ctx: click.Context) -> EntityIndexStore:
    config = _load(ctx)
    kv = open_backend(config.storage.backend, **config.storage.open_kwargs())
    logger = ObservabilityLogger(config.logging.path) if config.logging.enabled else None
    return EntityIndexStore(kv, logger=logger)


@contextmanager
def _planner_errors() -> Iterator[None]:
    # NotFound and store failures become a one-line error and exit code 1
    try:
        yield
    except PlannerError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# -------------------------
# CLI
# -------------------------


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file (defaults to ./kvplanner.yaml or ./config.yaml)",
)
@click.option("--db", type=click.Path(path_type=Path), default=None, help="SQLite store path override")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], db: Optional[Path]) -> None:
    """kvplanner CLI.

    Projects and todos over a key-value store: serve the MCP tools,
    check store integrity, inspect logs, or run commands directly.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["db"] = db


cli.add_command(check_store)


# ---- serve ----


@cli.command("serve")
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    import asyncio

    from kvplanner.mcp.server import run_server

    asyncio.run(run_server(_load(ctx)))


# ---- log commands ----


@cli.group()
def log() -> None:
    """Inspect the operation log."""


@log.command("summary")
@click.option("--db", type=click.Path(path_type=Path), required=True, help="Path to logs.db")
@click.option("--session", default=None, help="Session ID (defaults to the most recent session)")
def log_summary(db: Path, session: Optional[str]) -> None:
    """Print phase and change counts for a session."""
    if not db.exists():
        raise click.ClickException(f"No log database at {db}")

    logger = ObservabilityLogger(db)
    session = session or logger.latest_session()
    if session is None:
        click.echo("No sessions recorded.")
        return

    summary = logger.get_session_summary(session)
    click.echo(f"Session: {summary['session_id']}")
    click.echo(f"Total logs: {summary['total_logs']}")
    click.echo(f"Errors: {summary['error_count']}")
    click.echo(f"Skipped index entries: {summary['skip_count']}")
    click.echo("\nPhase counts:")
    for phase, count in summary.get("phase_counts", {}).items():
        click.echo(f"  {phase}: {count}")
    click.echo("\nChange counts:")
    for change, count in summary.get("change_counts", {}).items():
        click.echo(f"  {change}: {count}")


# ---- project commands ----


@cli.group()
def project() -> None:
    """Create, list, show and delete projects."""


@project.command("create")
@click.argument("name")
@click.option("--description", default=None, help="Project description")
@click.pass_context
def project_create(ctx: click.Context, name: str, description: Optional[str]) -> None:
    """Create a project."""
    with _planner_errors():
        created = _open_store(ctx).create_project(name, description)
    _echo_json(created.to_dict())


@project.command("list")
@click.pass_context
def project_list(ctx: click.Context) -> None:
    """List all projects."""
    with _planner_errors():
        projects = _open_store(ctx).list_projects()
    _echo_json([p.to_dict() for p in projects])


@project.command("show")
@click.argument("project_id")
@click.pass_context
def project_show(ctx: click.Context, project_id: str) -> None:
    """Show a project and its todos."""
    with _planner_errors():
        found, todos = _open_store(ctx).get_project(project_id)
    _echo_json({"project": found.to_dict(), "todos": [t.to_dict() for t in todos]})


@project.command("delete")
@click.argument("project_id")
@click.pass_context
def project_delete(ctx: click.Context, project_id: str) -> None:
    """Delete a project and all its todos."""
    with _planner_errors():
        deleted = _open_store(ctx).delete_project(project_id)
    click.echo(f"Project {project_id} and {deleted} todos have been deleted.")


# ---- todo commands ----


@cli.group()
def todo() -> None:
    """Create, update, show, list and delete todos."""


@todo.command("create")
@click.argument("project_id")
@click.argument("title")
@click.option("--description", default=None, help="Todo description")
@click.option("--priority", type=click.Choice(PRIORITY_VALUES), default=None, help="Priority (default: medium)")
@click.pass_context
def todo_create(
    ctx: click.Context,
    project_id: str,
    title: str,
    description: Optional[str],
    priority: Optional[str],
) -> None:
    """Create a todo in a project."""
    with _planner_errors():
        created = _open_store(ctx).create_todo(project_id, title, description, priority)
    _echo_json(created.to_dict())


@todo.command("update")
@click.argument("todo_id")
@click.option("--title", required=True, help="Todo title")
@click.option("--description", default=None, help="New description")
@click.option("--status", type=click.Choice(STATUS_VALUES), default=None, help="New status")
@click.option("--priority", type=click.Choice(PRIORITY_VALUES), default=None, help="New priority")
@click.pass_context
def todo_update(
    ctx: click.Context,
    todo_id: str,
    title: str,
    description: Optional[str],
    status: Optional[str],
    priority: Optional[str],
) -> None:
    """Update a todo; omitted options are left unchanged."""
    with _planner_errors():
        updated = _open_store(ctx).update_todo(
            todo_id, title, description=description, status=status, priority=priority
        )
    _echo_json(updated.to_dict())


@todo.command("show")
@click.argument("todo_id")
@click.pass_context
def todo_show(ctx: click.Context, todo_id: str) -> None:
    """Show a todo."""
    with _planner_errors():
        found = _open_store(ctx).get_todo(todo_id)
    _echo_json(found.to_dict())


@todo.command("list")
@click.argument("project_id")
@click.option(
    "--status",
    type=click.Choice(STATUS_FILTER_VALUES),
    default="all",
    show_default=True,
    help="Status filter",
)
@click.pass_context
def todo_list(ctx: click.Context, project_id: str, status: str) -> None:
    """List a project's todos."""
    with _planner_errors():
        todos = _open_store(ctx).list_todos(project_id, status)
    _echo_json([t.to_dict() for t in todos])


@todo.command("delete")
@click.argument("todo_id")
@click.pass_context
def todo_delete(ctx: click.Context, todo_id: str) -> None:
    """Delete a todo."""
    with _planner_errors():
        _open_store(ctx).delete_todo(todo_id)
    click.echo(f"Todo {todo_id} has been deleted.")


if __name__ == "__main__":
    cli()
