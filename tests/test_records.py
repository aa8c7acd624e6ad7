"""Tests for record types, key naming and serialization."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from kvplanner.core.errors import MalformedRecordError, StoreFailure
from kvplanner.core.records import (
    PROJECT_INDEX_KEY,
    Project,
    Todo,
    TodoPriority,
    TodoStatus,
    classify_key,
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
)


def _project() -> Project:
    return Project(
        id="p1",
        name="Website",
        description="Relaunch",
        created_at="2025-01-01T12:00:00.000Z",
        updated_at="2025-01-01T12:00:00.000Z",
    )


def _todo() -> Todo:
    return Todo(
        id="t1",
        project_id="p1",
        title="Write copy",
        description="",
        status=TodoStatus.IN_PROGRESS,
        priority=TodoPriority.HIGH,
        created_at="2025-01-01T12:00:00.000Z",
        updated_at="2025-01-01T12:05:00.000Z",
    )


class TestKeys:
    def test_project_key(self):
        assert project_key("abc") == "project: abc"

    def test_project_index_key(self):
        assert PROJECT_INDEX_KEY == "project: list"

    def test_todo_index_key(self):
        assert todo_index_key("abc") == "project: abc:todos"

    def test_legacy_todo_index_key(self):
        assert legacy_todo_index_key("abc") == "project: abc: todos"

    def test_todo_key(self):
        assert todo_key("xyz") == "todo: xyz"

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("project: list", ("project_index", None)),
            ("project: abc", ("project", "abc")),
            ("project: abc:todos", ("todo_index", "abc")),
            ("project: abc: todos", ("legacy_todo_index", "abc")),
            ("todo: xyz", ("todo", "xyz")),
            ("session: 1", ("unknown", None)),
        ],
    )
    def test_classify_key(self, key, expected):
        assert classify_key(key) == expected


class TestTimestamps:
    def test_millisecond_precision(self):
        moment = datetime(2025, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2025-01-02T03:04:05.678Z"

    def test_converts_to_utc(self):
        moment = datetime(2025, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(moment) == "2025-01-01T12:00:00.000Z"

    def test_sorts_chronologically(self):
        earlier = format_timestamp(datetime(2025, 1, 1, 9, 59, 59, 999000, tzinfo=timezone.utc))
        later = format_timestamp(datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc))
        assert earlier < later


class TestProjectSerialization:
    def test_to_dict_uses_camel_case(self):
        data = _project().to_dict()
        assert data == {
            "id": "p1",
            "name": "Website",
            "description": "Relaunch",
            "createdAt": "2025-01-01T12:00:00.000Z",
            "updatedAt": "2025-01-01T12:00:00.000Z",
        }

    def test_decode_encoded(self):
        project = _project()
        assert decode_project(project_key("p1"), encode_project(project)) == project

    def test_missing_field(self):
        raw = json.dumps({"id": "p1", "name": "Website"})
        with pytest.raises(MalformedRecordError, match="missing fields"):
            decode_project("project: p1", raw)

    def test_non_string_field(self):
        data = _project().to_dict()
        data["name"] = 42
        with pytest.raises(MalformedRecordError, match="'name' must be a string"):
            decode_project("project: p1", json.dumps(data))

    def test_not_an_object(self):
        with pytest.raises(MalformedRecordError, match="expected an object"):
            decode_project("project: p1", "[]")

    def test_invalid_json(self):
        with pytest.raises(MalformedRecordError, match="invalid JSON"):
            decode_project("project: p1", "{not json")

    def test_malformed_is_store_failure(self):
        with pytest.raises(StoreFailure) as exc_info:
            decode_project("project: p1", "{not json")
        assert exc_info.value.key == "project: p1"


class TestTodoSerialization:
    def test_to_dict_uses_camel_case(self):
        data = _todo().to_dict()
        assert data["projectId"] == "p1"
        assert data["status"] == "in_progress"
        assert data["priority"] == "high"
        assert data["updatedAt"] == "2025-01-01T12:05:00.000Z"

    def test_decode_encoded(self):
        todo = _todo()
        assert decode_todo(todo_key("t1"), encode_todo(todo)) == todo

    def test_unknown_status(self):
        data = _todo().to_dict()
        data["status"] = "done"
        with pytest.raises(MalformedRecordError, match="unknown status"):
            decode_todo("todo: t1", json.dumps(data))

    def test_unknown_priority(self):
        data = _todo().to_dict()
        data["priority"] = "urgent"
        with pytest.raises(MalformedRecordError, match="unknown priority"):
            decode_todo("todo: t1", json.dumps(data))

    def test_extra_fields_ignored(self):
        data = _todo().to_dict()
        data["tags"] = ["x"]
        assert decode_todo("todo: t1", json.dumps(data)).title == "Write copy"


class TestIndexSerialization:
    def test_missing_index_is_empty(self):
        assert decode_index(PROJECT_INDEX_KEY, None) == []

    def test_preserves_order(self):
        raw = encode_index(["b", "a", "c"])
        assert decode_index(PROJECT_INDEX_KEY, raw) == ["b", "a", "c"]

    def test_rejects_object(self):
        with pytest.raises(MalformedRecordError, match="JSON array"):
            decode_index(PROJECT_INDEX_KEY, '{"ids": []}')

    def test_rejects_non_string_ids(self):
        with pytest.raises(MalformedRecordError, match="JSON array"):
            decode_index(PROJECT_INDEX_KEY, "[1, 2]")
