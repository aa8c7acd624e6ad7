"""Store integrity check for hooks and cron jobs.

Checks (see kvplanner.core.consistency):
1. INDEX: every indexed ID resolves to a record of the right project
2. RECORD: every record is listed in its index (backends with scan support)
3. DECODE: every stored value decodes

Exit codes:
    0 = All checks pass (silent)
    1 = Issues found (one-line summary)
"""

import sys
from pathlib import Path
from typing import Optional

import click

from kvplanner.core.config import load_config
from kvplanner.core.consistency import check_consistency
from kvplanner.core.kv import open_backend


@click.command("check")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file (defaults to ./kvplanner.yaml)",
)
@click.option("--db", type=click.Path(path_type=Path), default=None, help="SQLite store path override")
@click.option("--verbose", "-v", is_flag=True, default=False, help="List every issue")
@click.pass_context
def check_store(
    ctx: click.Context,
    config_path: Optional[Path],
    db: Optional[Path],
    verbose: bool,
) -> None:
    """Check store integrity (dangling, unlisted and orphaned entries)."""
    # Fall back to the group-level options: kvplanner --db X check
    group_opts = ctx.obj or {}
    config_path = config_path or group_opts.get("config_path")
    db = db or group_opts.get("db")

    overrides = {"storage": {"backend": "sqlite", "path": str(db)}} if db else None
    config = load_config(config_path, cli_overrides=overrides)

    if config.storage.backend == "sqlite" and not config.storage.path.exists():
        # Nothing stored yet
        sys.exit(0)

    kv = open_backend(config.storage.backend, **config.storage.open_kwargs())
    issues = check_consistency(kv)
    problems = [i for i in issues if i.severity in ("error", "warning")]

    if not problems:
        sys.exit(0)

    labels = [f"{i.kind.upper()}: {i.key}" for i in problems]
    msg = f"[planner] {len(problems)} issues: {'; '.join(labels[:3])}"
    if len(labels) > 3:
        msg += f" (+{len(labels) - 3} more)"
    click.echo(msg)

    if verbose:
        for issue in issues:
            click.echo(f"  [{issue.severity}] {issue.kind} {issue.key}: {issue.message}")

    sys.exit(1)
