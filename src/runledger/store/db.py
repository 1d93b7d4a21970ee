"""
SQLite storage for runledger.

This module provides persistent storage for runs and their messages.
All run history is stored in a single SQLite database file.

Design Principles:
    - Append-only transcripts: Messages are never updated or deleted
    - All-or-nothing batches: A message batch is one transaction
    - Guarded lifecycle: Run status only moves scheduled -> running -> done/failed
    - Self-contained: Single .db file contains everything

Tables:
    - runs: Lifecycle and task status of each run
    - messages: The transcript of each run, tool calls embedded as JSON
"""

import sqlite3
import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from runledger.errors import (
    InvalidRunTransitionError,
    MessageNotFoundError,
    MessageValidationError,
    RunLedgerError,
    RunNotFoundError,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
)
from runledger.mapper.rows import message_to_row, row_to_message
from runledger.schema import (
    RUN_TRANSITIONS,
    Message,
    MessageCreate,
    Run,
    RunFilters,
    RunStatus,
    SortOrder,
    TaskStatus,
)

# Schema version for migrations
SCHEMA_VERSION = 2

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Runs table: lifecycle of each run
CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    status TEXT NOT NULL,
    task_status TEXT NOT NULL,
    task_status_recorded INTEGER NOT NULL DEFAULT 0,
    reason TEXT,
    timestamp TEXT NOT NULL
);

-- Messages table: transcript entries, insertion ordered
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL,
    type TEXT NOT NULL,
    content TEXT,
    tool_calls TEXT,
    tool_call_id TEXT,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (run_id) REFERENCES runs(id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_messages_run_id ON messages(run_id);
CREATE INDEX IF NOT EXISTS idx_runs_timestamp ON runs(timestamp);
CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);
"""

INSERT_MESSAGE_SQL = """
INSERT INTO messages (run_id, type, content, tool_calls, tool_call_id, timestamp)
VALUES (?, ?, ?, ?, ?, ?)
"""


def now_iso() -> str:
    """Get current UTC time in ISO format, fixed width so text order is time order."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _row_id(value: str | int) -> int | None:
    """Parse an opaque id into its row id, None when it cannot exist."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _row_to_run(row: sqlite3.Row) -> Run:
    return Run(
        id=str(row["id"]),
        status=RunStatus(row["status"]),
        task_status=row["task_status"],
        task_status_recorded=bool(row["task_status_recorded"]),
        reason=row["reason"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
    )


def _where(filters: RunFilters | None) -> tuple[str, list[Any]]:
    """Build an AND-combined equality WHERE clause."""
    if filters is None:
        return "", []
    conditions: list[str] = []
    params: list[Any] = []
    if filters.status is not None:
        conditions.append("status = ?")
        params.append(filters.status.value)
    if filters.task_status is not None:
        conditions.append("task_status = ?")
        params.append(filters.task_status)
    if not conditions:
        return "", []
    return " WHERE " + " AND ".join(conditions), params


class LedgerDB:
    """
    SQLite database for runledger storage.

    One connection is shared by all threads of the process; a re-entrant
    lock serializes access so a batch transaction is never interleaved
    with another writer.

    Usage:
        db = LedgerDB("runledger.db")
        run_id = db.create_run()
        db.insert_messages(run_id, [MessageCreate(type=MessageType.HUMAN, content="hi")])
        db.close()

    Or use as context manager:
        with LedgerDB("runledger.db") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
                     Parent directories are created if missing.
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            # Enable foreign keys
            self._conn.execute("PRAGMA foreign_keys = ON")
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            # Check/set schema version
            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is not None and row["version"] < 2:
                self._migrate_task_status_recorded()
            if row is None or row["version"] < SCHEMA_VERSION:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    def _migrate_task_status_recorded(self) -> None:
        """Version 2: remember whether a terminal run's task status was recorded."""
        columns = {row["name"] for row in self._conn.execute("PRAGMA table_info(runs)")}
        if "task_status_recorded" not in columns:
            self._conn.execute(
                "ALTER TABLE runs ADD COLUMN task_status_recorded INTEGER NOT NULL DEFAULT 0"
            )
        # A version 1 database only wrote a reason together with the task status
        self._conn.execute(
            "UPDATE runs SET task_status_recorded = 1 "
            "WHERE status IN (?, ?) AND reason IS NOT NULL",
            (RunStatus.DONE.value, RunStatus.FAILED.value),
        )

    @property
    def conn(self) -> sqlite3.Connection:
        """The open connection; raises once the database is closed."""
        if self._conn is None:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="use",
                message="Database connection is closed",
            )
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self.conn
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "LedgerDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Run Operations
    # =========================================================================

    def create_run(self) -> str:
        """
        Create a new run in status scheduled with an unknown task status.

        Returns:
            The store-assigned run id
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO runs (status, task_status, timestamp) VALUES (?, ?, ?)",
                    (RunStatus.SCHEDULED.value, TaskStatus.UNKNOWN, now_iso()),
                )
                return str(cursor.lastrowid)
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="create_run",
                underlying_error=str(e),
            ) from e

    def _fetch_run(self, conn: sqlite3.Connection, run_id: str) -> sqlite3.Row:
        row_id = _row_id(run_id)
        row = None
        if row_id is not None:
            row = conn.execute("SELECT * FROM runs WHERE id = ?", (row_id,)).fetchone()
        if row is None:
            raise RunNotFoundError(run_id=str(run_id))
        return row

    def get_run(self, run_id: str) -> Run:
        """
        Get a run by ID.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        try:
            with self._lock:
                return _row_to_run(self._fetch_run(self.conn, run_id))
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_run",
                underlying_error=str(e),
            ) from e

    def get_runs(
        self,
        limit: int = 10,
        offset: int = 0,
        order: SortOrder = SortOrder.DESC,
        filters: RunFilters | None = None,
    ) -> list[Run]:
        """
        List runs, offset-paginated and ordered by creation time.

        Args:
            limit: Maximum number of runs to return
            offset: Number of matching runs to skip
            order: Ascending or descending creation time (ties by id)
            filters: Optional status / task status equality filters

        Returns:
            List of Run objects
        """
        where, params = _where(filters)
        direction = "ASC" if SortOrder(order) is SortOrder.ASC else "DESC"
        query = (
            f"SELECT * FROM runs{where} "
            f"ORDER BY timestamp {direction}, id {direction} LIMIT ? OFFSET ?"
        )
        try:
            with self._lock:
                rows = self.conn.execute(query, [*params, limit, offset]).fetchall()
            return [_row_to_run(row) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_runs",
                underlying_error=str(e),
            ) from e

    def get_runs_count(self, filters: RunFilters | None = None) -> int:
        """Count runs matching the same filters as get_runs."""
        where, params = _where(filters)
        try:
            with self._lock:
                row = self.conn.execute(
                    f"SELECT COUNT(*) AS count FROM runs{where}", params
                ).fetchone()
            return int(row["count"])
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_runs_count",
                underlying_error=str(e),
            ) from e

    def update_run_status(self, run_id: str, status: RunStatus) -> Run:
        """
        Move a run to a new status.

        Re-applying the current status is a no-op.

        Raises:
            RunNotFoundError: If the run does not exist
            InvalidRunTransitionError: If the lifecycle forbids the change
        """
        status = RunStatus(status)
        try:
            with self.transaction() as conn:
                run = _row_to_run(self._fetch_run(conn, run_id))
                if run.status is status:
                    return run
                if status not in RUN_TRANSITIONS[run.status]:
                    raise InvalidRunTransitionError(
                        run_id=run.id,
                        current=run.status.value,
                        requested=status.value,
                    )
                conn.execute(
                    "UPDATE runs SET status = ? WHERE id = ?",
                    (status.value, int(run.id)),
                )
                return run.model_copy(update={"status": status})
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="update_run_status",
                underlying_error=str(e),
            ) from e

    def update_run_task_status(
        self,
        run_id: str,
        task_status: str,
        reason: str | None = None,
    ) -> Run:
        """
        Record the agent's assessment of the task.

        A terminal run accepts one assessment, whatever its value (including
        "unknown"); re-applying the recorded values is a no-op.

        Raises:
            RunNotFoundError: If the run does not exist
            InvalidRunTransitionError: If a terminal run already has one
        """
        try:
            with self.transaction() as conn:
                run = _row_to_run(self._fetch_run(conn, run_id))
                unchanged = run.task_status == task_status and run.reason == reason
                if unchanged and (run.task_status_recorded or not run.status.is_terminal):
                    return run
                if run.task_status_recorded:
                    raise InvalidRunTransitionError(
                        run_id=run.id,
                        current=run.task_status,
                        requested=task_status,
                        message=(
                            f"Run {run.id} is {run.status.value} and already has "
                            f"task status {run.task_status}"
                        ),
                    )
                recorded = run.status.is_terminal
                conn.execute(
                    "UPDATE runs SET task_status = ?, reason = ?, task_status_recorded = ? "
                    "WHERE id = ?",
                    (task_status, reason, int(recorded), int(run.id)),
                )
                return run.model_copy(
                    update={
                        "task_status": task_status,
                        "reason": reason,
                        "task_status_recorded": recorded,
                    }
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="update_run_task_status",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Message Operations
    # =========================================================================

    @staticmethod
    def validate_messages(
        messages: Sequence[MessageCreate | Mapping[str, Any]],
    ) -> list[MessageCreate]:
        """
        Validate a batch against the Message schema.

        Raises:
            MessageValidationError: Naming the first offending message
        """
        validated = []
        for index, message in enumerate(messages):
            try:
                if isinstance(message, MessageCreate):
                    message = MessageCreate.model_validate(message.model_dump())
                else:
                    message = MessageCreate.model_validate(message)
            except PydanticValidationError as e:
                raise MessageValidationError(index=index, details=str(e)) from e
            validated.append(message)
        return validated

    def _insert_message_row(
        self,
        conn: sqlite3.Connection,
        run_id: int,
        row: dict[str, Any],
    ) -> str:
        cursor = conn.execute(
            INSERT_MESSAGE_SQL,
            (
                run_id,
                row["type"],
                row["content"],
                row["tool_calls"],
                row["tool_call_id"],
                now_iso(),
            ),
        )
        return str(cursor.lastrowid)

    def insert_messages(
        self,
        run_id: str,
        messages: Sequence[MessageCreate | Mapping[str, Any]],
    ) -> list[str]:
        """
        Append a batch of messages to a run's transcript.

        Every message is validated before anything is written. The rows are
        then written in a single transaction: either all of them are stored
        or, on any failure, none are.

        Args:
            run_id: The run the messages belong to
            messages: Messages to append, in transcript order

        Returns:
            The store-assigned message ids, in the same order

        Raises:
            MessageValidationError: If a message is malformed (nothing written)
            RunNotFoundError: If the run does not exist (nothing written)
            StorageWriteError: If the transaction failed (rolled back)
        """
        rows = [message_to_row(message) for message in self.validate_messages(messages)]
        if not rows:
            return []

        try:
            with self.transaction() as conn:
                run = self._fetch_run(conn, run_id)
                return [self._insert_message_row(conn, run["id"], row) for row in rows]
        except RunLedgerError:
            raise
        except Exception as e:
            raise StorageWriteError(
                operation="insert_messages",
                underlying_error=str(e),
                context={"run_id": str(run_id), "batch_size": len(rows)},
            ) from e

    def get_all_messages(self, run_id: str) -> list[Message]:
        """
        Get a run's transcript in insertion order.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        try:
            with self._lock:
                run = self._fetch_run(self.conn, run_id)
                rows = self.conn.execute(
                    "SELECT * FROM messages WHERE run_id = ? ORDER BY timestamp ASC, id ASC",
                    (run["id"],),
                ).fetchall()
            return [row_to_message(row) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_all_messages",
                underlying_error=str(e),
            ) from e

    def get_message(self, run_id: str, message_id: str) -> Message:
        """
        Get one message of a run.

        Raises:
            MessageNotFoundError: If the run has no such message
        """
        run_row_id = _row_id(run_id)
        message_row_id = _row_id(message_id)
        try:
            row = None
            if run_row_id is not None and message_row_id is not None:
                with self._lock:
                    row = self.conn.execute(
                        "SELECT * FROM messages WHERE run_id = ? AND id = ?",
                        (run_row_id, message_row_id),
                    ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_message",
                underlying_error=str(e),
            ) from e
        if row is None:
            raise MessageNotFoundError(run_id=str(run_id), message_id=str(message_id))
        return row_to_message(row)
