"""Tests for ObservabilityLogger."""

import sqlite3

import pytest

from kvplanner.core.observability import ObservabilityLogger, LogEntry


class TestObservabilityLogger:
    """Tests for ObservabilityLogger class."""

    def test_init_creates_database(self, tmp_path):
        """Test that initialization creates database file."""
        db_path = tmp_path / "logs.db"
        ObservabilityLogger(db_path)
        assert db_path.exists()

    def test_new_session(self, tmp_path):
        """Test creating a new session."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        session1 = logger.session_id
        session2 = logger.new_session()

        assert session1 != session2
        assert logger.session_id == session2

    def test_log_basic(self, tmp_path):
        """Test basic logging."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log("input", {"items": [1, 2, 3]})

        entries = logger.get_session()
        assert len(entries) == 1
        assert isinstance(entries[0], LogEntry)
        assert entries[0].phase == "input"
        assert entries[0].data["items"] == [1, 2, 3]

    def test_log_invalid_phase(self, tmp_path):
        """Test logging with invalid phase raises error."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        with pytest.raises(ValueError, match="Invalid phase"):
            logger.log("invalid_phase", {})

    def test_log_input(self, tmp_path):
        """Test log_input convenience method."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_input("create_project", {"name": "Website"})

        entries = logger.get_session()
        assert entries[0].phase == "input"
        assert entries[0].data == {"command": "create_project", "arguments": {"name": "Website"}}

    def test_log_read(self, tmp_path):
        """Test log_read convenience method."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_read("todo: t1", found=False)

        entries = logger.get_session()
        assert entries[0].phase == "read"
        assert entries[0].data["found"] is False

    def test_log_write(self, tmp_path):
        """Test log_write convenience method."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_write("project: p1", "create", "p1")
        logger.log_write("project: p2", "delete")

        entries = logger.get_session()
        assert entries[0].data == {"key": "project: p1", "change_type": "create", "entity_id": "p1"}
        assert "entity_id" not in entries[1].data

    def test_log_index(self, tmp_path):
        """Test log_index convenience method."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_index("project: list", "append", "p1", 3)

        entries = logger.get_session()
        assert entries[0].phase == "index"
        assert entries[0].data["operation"] == "append"
        assert entries[0].data["size"] == 3

    def test_log_error(self, tmp_path):
        """Test log_error convenience method."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_error(
            error_type="store_failure",
            entity="project: list",
            details={"tool": "create_project"},
            resolution="propagated, not retried",
        )

        entries = logger.get_session()
        assert entries[0].phase == "error"
        assert entries[0].data["error_type"] == "store_failure"
        assert entries[0].data["resolution"] == "propagated, not retried"

    def test_get_session_specific(self, tmp_path):
        """Test getting logs for specific session."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        session1 = logger.session_id
        logger.log("input", {"session": 1})

        logger.new_session()
        logger.log("input", {"session": 2})

        session1_entries = logger.get_session(session1)
        assert len(session1_entries) == 1
        assert session1_entries[0].data["session"] == 1

    def test_get_errors_newest_first(self, tmp_path):
        """Test getting error logs."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_error("error1", entity="e1")
        logger.log_write("todo: t1", "update")
        logger.log_error("error2", entity="e2")

        errors = logger.get_errors()
        assert [e.data["error_type"] for e in errors] == ["error2", "error1"]

    def test_get_skips(self, tmp_path):
        """Test filtering skip events by index key."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_skip("project: list", "p1")
        logger.log_skip("project: p2:todos", "t1")
        logger.log_skip("project: list", "p3")

        assert len(logger.get_skips()) == 3
        listed = logger.get_skips("project: list")
        assert [e.data["missing_id"] for e in listed] == ["p3", "p1"]

    def test_skips_view(self, tmp_path):
        """Test the skips analysis view."""
        db_path = tmp_path / "logs.db"
        logger = ObservabilityLogger(db_path)
        logger.log_skip("project: list", "p1")

        with sqlite3.connect(db_path) as conn:
            rows = conn.execute("SELECT index_key, missing_id FROM skips").fetchall()
        assert rows == [("project: list", "p1")]

    def test_latest_session(self, tmp_path):
        """Test finding the most recent session with entries."""
        db_path = tmp_path / "logs.db"
        logger = ObservabilityLogger(db_path)
        assert logger.latest_session() is None

        logger.log_read("project: list", True)
        assert ObservabilityLogger(db_path).latest_session() == logger.session_id

    def test_get_session_summary(self, tmp_path):
        """Test getting session summary."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log_input("delete_project", {"project_id": "p1"})
        logger.log_write("todo: t1", "delete", "t1")
        logger.log_write("project: p1", "delete", "p1")
        logger.log_index("project: list", "remove", "p1", 0)
        logger.log_skip("project: p1:todos", "t2")
        logger.log_error("minor_error")

        summary = logger.get_session_summary()

        assert summary["total_logs"] == 6
        assert summary["phase_counts"]["write"] == 2
        assert summary["change_counts"] == {"delete": 2}
        assert summary["error_count"] == 1
        assert summary["skip_count"] == 1

    def test_multiple_sessions_isolation(self, tmp_path):
        """Test that sessions are properly isolated."""
        logger = ObservabilityLogger(tmp_path / "logs.db")

        logger.log("input", {"data": "session1"})
        logger.log("input", {"data": "session1-2"})

        session1_id = logger.session_id
        logger.new_session()

        logger.log("input", {"data": "session2"})

        assert len(logger.get_session(session1_id)) == 2
        assert len(logger.get_session()) == 1
