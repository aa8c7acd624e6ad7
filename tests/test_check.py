"""Tests for kvplanner check command."""

import json
from pathlib import Path

from click.testing import CliRunner

from kvplanner.cli.main import cli
from kvplanner.core.kv import SqliteKeyValueStore
from kvplanner.core.records import legacy_todo_index_key, todo_index_key, todo_key


def _invoke(db: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(
        cli,
        ["--db", str(db), *args],
        env={"KVPLANNER_LOGGING_ENABLED": "false"},
    )


def _create_clean_store(db: Path) -> dict:
    """Create one project with two todos through the CLI."""
    project = json.loads(_invoke(db, "project", "create", "Website").output)
    todos = [
        json.loads(_invoke(db, "todo", "create", project["id"], title).output)
        for title in ("Design", "Build")
    ]
    return {"project": project, "todos": todos}


def _check(db: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(
        cli,
        ["check", "--db", str(db), *args],
        env={"KVPLANNER_LOGGING_ENABLED": "false"},
    )


def test_missing_store_passes(tmp_path):
    result = _check(tmp_path / "never-created.db")

    assert result.exit_code == 0
    assert result.output == ""
    assert not (tmp_path / "never-created.db").exists()


def test_clean_store_passes(tmp_path):
    db = tmp_path / "store.db"
    _create_clean_store(db)

    result = _check(db)

    assert result.exit_code == 0, f"Expected clean store, got: {result.output}"
    assert result.output == ""


def test_dangling_todo_fails(tmp_path):
    db = tmp_path / "store.db"
    created = _create_clean_store(db)
    SqliteKeyValueStore(db).delete(todo_key(created["todos"][0]["id"]))

    result = _check(db)

    assert result.exit_code == 1
    index_key = todo_index_key(created["project"]["id"])
    assert result.output.strip() == f"[planner] 1 issues: DANGLING_TODO: {index_key}"


def test_many_issues_truncated(tmp_path):
    db = tmp_path / "store.db"
    created = _create_clean_store(db)
    kv = SqliteKeyValueStore(db)
    for todo in created["todos"]:
        kv.delete(todo_key(todo["id"]))
    for name in ("ghost-1", "ghost-2"):
        kv.put(todo_index_key(name), "[]")

    result = _check(db)

    assert result.exit_code == 1
    assert "[planner] 4 issues:" in result.output
    assert "(+1 more)" in result.output


def test_legacy_index_alone_passes(tmp_path):
    db = tmp_path / "store.db"
    created = _create_clean_store(db)
    SqliteKeyValueStore(db).put(legacy_todo_index_key(created["project"]["id"]), "[]")

    result = _check(db)

    assert result.exit_code == 0
    assert result.output == ""


def test_verbose_lists_every_issue(tmp_path):
    db = tmp_path / "store.db"
    created = _create_clean_store(db)
    kv = SqliteKeyValueStore(db)
    kv.delete(todo_key(created["todos"][0]["id"]))
    kv.put(legacy_todo_index_key(created["project"]["id"]), "[]")

    result = _check(db, "--verbose")

    assert result.exit_code == 1
    assert "[warning] dangling_todo" in result.output
    assert "[info] legacy_todo_index" in result.output


def test_group_level_db_option(tmp_path):
    db = tmp_path / "store.db"
    created = _create_clean_store(db)
    SqliteKeyValueStore(db).put(todo_index_key(created["project"]["id"]), '["ghost"]')

    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["--db", str(db), "check"],
        env={"KVPLANNER_LOGGING_ENABLED": "false"},
    )

    assert result.exit_code == 1
    assert "DANGLING_TODO" in result.output


def test_group_level_config_option(tmp_path):
    config_path = tmp_path / "kvplanner.yaml"
    config_path.write_text("storage:\n  path: data/store.db\nlogging:\n  enabled: false\n")
    db = tmp_path / "data" / "store.db"
    created = _create_clean_store(db)
    SqliteKeyValueStore(db).put(todo_index_key(created["project"]["id"]), '["ghost"]')

    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(config_path), "check"])

    assert result.exit_code == 1
    assert "DANGLING_TODO" in result.output
