"""
ObservabilityLogger - Phase-based operation log for the planner store.

Every write, index rewrite, skipped index entry and error is recorded with
structured data, so partial failures and lost index appends can be traced
after the fact.
"""

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class LogEntry:
    """A log entry from the observability database."""

    id: int
    ts: str
    session: str
    phase: str
    data: Dict[str, Any] = field(default_factory=dict)


class ObservabilityLogger:
    """Phase-based logging for the store and command layers.

    Phases:
    - input: Command received (tool name and arguments)
    - read: Record lookups that matter for diagnosis (e.g. not found)
    - write: Record put/delete (change_type: create, update, delete)
    - index: Whole-index rewrite (operation, affected ID, resulting size)
    - skip: Index entry whose record is missing, skipped during resolution
    - error: Errors and how they were handled
    """

    PHASES = [
        "input",
        "read",
        "write",
        "index",
        "skip",
        "error",
    ]

    def __init__(self, db_path: Path):
        """Initialize logger with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        self.session_id = self._new_session()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript("""
                -- Main logs table
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TEXT NOT NULL DEFAULT (datetime('now')),
                    session TEXT NOT NULL,
                    phase TEXT NOT NULL,
                    data JSON NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_session ON logs(session);
                CREATE INDEX IF NOT EXISTS idx_phase ON logs(phase);
                CREATE INDEX IF NOT EXISTS idx_ts ON logs(ts);

                -- Analysis views
                CREATE VIEW IF NOT EXISTS errors AS
                SELECT id, ts, session,
                       json_extract(data, '$.error_type') as error_type,
                       json_extract(data, '$.entity') as entity,
                       json_extract(data, '$.resolution') as resolution,
                       data
                FROM logs WHERE phase = 'error';

                CREATE VIEW IF NOT EXISTS skips AS
                SELECT id, ts, session,
                       json_extract(data, '$.index_key') as index_key,
                       json_extract(data, '$.missing_id') as missing_id
                FROM logs WHERE phase = 'skip';
            """)

    def _new_session(self) -> str:
        """Generate a new session ID."""
        return f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"

    def new_session(self) -> str:
        """Start a new session and return its ID.

        Returns:
            New session ID
        """
        self.session_id = self._new_session()
        return self.session_id

    def log(self, phase: str, data: Dict[str, Any]) -> None:
        """Log a phase with structured data.

        Args:
            phase: Phase name (one of PHASES)
            data: Structured data for the log entry
        """
        if phase not in self.PHASES:
            raise ValueError(f"Invalid phase: {phase}. Must be one of {self.PHASES}")

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO logs (session, phase, data)
                VALUES (?, ?, ?)
                """,
                (self.session_id, phase, json.dumps(data, default=str)),
            )

    # Convenience methods

    def log_input(self, command: str, arguments: Dict[str, Any]) -> None:
        """Log a command received by the command layer.

        Args:
            command: Tool or CLI command name
            arguments: Arguments as received
        """
        self.log(
            "input",
            {
                "command": command,
                "arguments": arguments,
            },
        )

    def log_read(self, key: str, found: bool) -> None:
        """Log a record lookup.

        Args:
            key: Key that was read
            found: Whether a value was present
        """
        self.log("read", {"key": key, "found": found})

    def log_write(
        self,
        key: str,
        change_type: str,
        entity_id: Optional[str] = None,
    ) -> None:
        """Log a record write.

        Args:
            key: Key written to
            change_type: Type of change (create, update, delete)
            entity_id: Optional ID of the affected entity
        """
        data: Dict[str, Any] = {
            "key": key,
            "change_type": change_type,
        }
        if entity_id:
            data["entity_id"] = entity_id

        self.log("write", data)

    def log_index(
        self,
        key: str,
        operation: str,
        item_id: str,
        size: int,
    ) -> None:
        """Log a whole-index rewrite.

        Args:
            key: Index key rewritten
            operation: append or remove
            item_id: ID appended or removed
            size: Number of IDs in the rewritten index
        """
        self.log(
            "index",
            {
                "key": key,
                "operation": operation,
                "item_id": item_id,
                "size": size,
            },
        )

    def log_skip(self, index_key: str, missing_id: str) -> None:
        """Log an index entry skipped because its record is missing.

        Args:
            index_key: Index containing the dangling entry
            missing_id: ID whose record could not be found
        """
        self.log("skip", {"index_key": index_key, "missing_id": missing_id})

    def log_error(
        self,
        error_type: str,
        entity: Optional[str] = None,
        details: Optional[Dict] = None,
        resolution: Optional[str] = None,
    ) -> None:
        """Log errors and how they were handled.

        Args:
            error_type: Type of error
            entity: Optional entity involved
            details: Optional additional details
            resolution: Optional resolution taken
        """
        data: Dict[str, Any] = {
            "error_type": error_type,
        }
        if entity:
            data["entity"] = entity
        if details:
            data["details"] = details
        if resolution:
            data["resolution"] = resolution

        self.log("error", data)

    # Query methods

    @staticmethod
    def _to_entries(rows: List[sqlite3.Row]) -> List[LogEntry]:
        return [
            LogEntry(
                id=row["id"],
                ts=row["ts"],
                session=row["session"],
                phase=row["phase"],
                data=json.loads(row["data"]),
            )
            for row in rows
        ]

    def get_session(self, session_id: Optional[str] = None) -> List[LogEntry]:
        """Get all logs for a session.

        Args:
            session_id: Session ID (defaults to current session)

        Returns:
            List of LogEntry objects
        """
        session_id = session_id or self.session_id

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM logs WHERE session = ? ORDER BY id",
                (session_id,),
            ).fetchall()

            return self._to_entries(rows)

    def get_errors(self, since: Optional[str] = None, limit: int = 100) -> List[LogEntry]:
        """Get error logs.

        Args:
            since: Optional timestamp (YYYY-MM-DD HH:MM:SS) to filter from
            limit: Maximum results

        Returns:
            List of error LogEntry objects, newest first
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row

            if since:
                rows = conn.execute(
                    """
                    SELECT * FROM logs
                    WHERE phase = 'error' AND ts >= ?
                    ORDER BY id DESC LIMIT ?
                    """,
                    (since, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM logs
                    WHERE phase = 'error'
                    ORDER BY id DESC LIMIT ?
                    """,
                    (limit,),
                ).fetchall()

            return self._to_entries(rows)

    def get_skips(self, index_key: Optional[str] = None, limit: int = 100) -> List[LogEntry]:
        """Get skip-missing events, i.e. dangling index entries seen by readers.

        Args:
            index_key: Optional index key filter
            limit: Maximum results

        Returns:
            List of skip LogEntry objects, newest first
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row

            if index_key:
                rows = conn.execute(
                    """
                    SELECT * FROM logs
                    WHERE phase = 'skip' AND json_extract(data, '$.index_key') = ?
                    ORDER BY id DESC LIMIT ?
                    """,
                    (index_key, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM logs
                    WHERE phase = 'skip'
                    ORDER BY id DESC LIMIT ?
                    """,
                    (limit,),
                ).fetchall()

            return self._to_entries(rows)

    def latest_session(self) -> Optional[str]:
        """Return the most recent session ID recorded in the database."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT session FROM logs ORDER BY id DESC LIMIT 1").fetchone()
        return row[0] if row else None

    def get_session_summary(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Get summary statistics for a session.

        Args:
            session_id: Session ID (defaults to current session)

        Returns:
            Dictionary with summary statistics
        """
        session_id = session_id or self.session_id

        with sqlite3.connect(self.db_path) as conn:
            # Phase counts
            phase_counts = {}
            for row in conn.execute(
                """
                SELECT phase, COUNT(*) as count
                FROM logs WHERE session = ?
                GROUP BY phase
                """,
                (session_id,),
            ):
                phase_counts[row[0]] = row[1]

            # Change counts (from write phase)
            change_counts = {}
            for row in conn.execute(
                """
                SELECT json_extract(data, '$.change_type') as change_type, COUNT(*) as count
                FROM logs
                WHERE session = ? AND phase = 'write'
                GROUP BY json_extract(data, '$.change_type')
                """,
                (session_id,),
            ):
                if row[0]:
                    change_counts[row[0]] = row[1]

            return {
                "session_id": session_id,
                "phase_counts": phase_counts,
                "change_counts": change_counts,
                "error_count": phase_counts.get("error", 0),
                "skip_count": phase_counts.get("skip", 0),
                "total_logs": sum(phase_counts.values()),
            }
