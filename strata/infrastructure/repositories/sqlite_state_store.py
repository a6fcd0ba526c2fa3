"""
SQLite State Store

Architectural Intent:
- Alternative State Store backend using SQLite (stdlib, zero external deps)
- One row per (stack, logical id) so a resource's read-modify-write touches
  only its own row
- Outputs and run history live in their own tables

Design Decisions:
- Single database file at configurable path (default: .strata/state.db)
- Auto-creates tables on first use
- WAL mode; thread-safe via check_same_thread=False
- Records are stored as JSON text and parsed strictly on read
- Timestamps stored as ISO 8601 strings
"""

from __future__ import annotations
import json
import logging
import sqlite3
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Optional

from strata.domain.entities.state_record import STATE_VERSION, ResourceRecord, StateRecord
from strata.domain.errors import StateCorruptionError
from strata.domain.ports.state_store_port import RecordMutation

logger = logging.getLogger(__name__)


def _decode(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise StateCorruptionError(f"{what} is not valid JSON: {e}") from e


class SQLiteStateStore:
    """State store backed by a SQLite database."""

    def __init__(self, db_path: str = ".strata/state.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._conn_lock = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def connect(self) -> None:
        """Open database connection and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.info("SQLite state store connected: %s", self._db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _create_tables(self) -> None:
        assert self._conn is not None
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS resources (
                stack TEXT NOT NULL,
                logical_id TEXT NOT NULL,
                record TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (stack, logical_id)
            );

            CREATE TABLE IF NOT EXISTS outputs (
                stack TEXT PRIMARY KEY,
                outputs TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                stack TEXT NOT NULL,
                operation TEXT NOT NULL,
                status TEXT NOT NULL,
                summary TEXT DEFAULT '{}',
                recorded_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_runs_stack ON runs(stack);
        """)

    def _execute(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        with self._conn_lock:
            rows = self._conn.execute(sql, params).fetchall()
            self._conn.commit()
        return rows

    def _lock_for(self, stack_name: str, logical_id: str) -> threading.Lock:
        key = (stack_name, logical_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # -- Resources -----------------------------------------------------------

    def load(self, stack_name: str) -> StateRecord:
        rows = self._execute(
            "SELECT logical_id, record FROM resources WHERE stack = ? ORDER BY rowid",
            (stack_name,),
        )
        resources = {
            row["logical_id"]: _decode(row["record"], f"Record {stack_name}/{row['logical_id']}")
            for row in rows
        }
        return StateRecord.from_dict(stack_name, {
            "version": STATE_VERSION,
            "stack": stack_name,
            "resources": resources,
            "outputs": self._read_outputs(stack_name),
        })

    def read_resource(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        rows = self._execute(
            "SELECT record FROM resources WHERE stack = ? AND logical_id = ?",
            (stack_name, logical_id),
        )
        if not rows:
            return None
        raw = _decode(rows[0]["record"], f"Record {stack_name}/{logical_id}")
        return ResourceRecord.from_dict(logical_id, raw)

    def update_resource(
        self, stack_name: str, logical_id: str, mutate: RecordMutation
    ) -> Optional[ResourceRecord]:
        with self._lock_for(stack_name, logical_id):
            updated = mutate(self.read_resource(stack_name, logical_id))
            if updated is None:
                self._execute(
                    "DELETE FROM resources WHERE stack = ? AND logical_id = ?",
                    (stack_name, logical_id),
                )
            else:
                self._execute(
                    """INSERT INTO resources (stack, logical_id, record, updated_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(stack, logical_id)
                       DO UPDATE SET record = excluded.record, updated_at = excluded.updated_at""",
                    (stack_name, logical_id, json.dumps(updated.to_dict()),
                     datetime.now(UTC).isoformat()),
                )
        return updated

    # -- Outputs -------------------------------------------------------------

    def _read_outputs(self, stack_name: str) -> dict[str, Any]:
        rows = self._execute("SELECT outputs FROM outputs WHERE stack = ?", (stack_name,))
        if not rows:
            return {}
        return _decode(rows[0]["outputs"], f"Outputs of {stack_name}")

    def write_outputs(self, stack_name: str, outputs: dict[str, Any]) -> None:
        self._execute(
            """INSERT INTO outputs (stack, outputs, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(stack)
               DO UPDATE SET outputs = excluded.outputs, updated_at = excluded.updated_at""",
            (stack_name, json.dumps(outputs), datetime.now(UTC).isoformat()),
        )

    # -- Runs ----------------------------------------------------------------

    def record_run(self, stack_name: str, operation: str, status: str, summary: dict) -> None:
        self._execute(
            """INSERT INTO runs (stack, operation, status, summary, recorded_at)
               VALUES (?, ?, ?, ?, ?)""",
            (stack_name, operation, status, json.dumps(summary),
             datetime.now(UTC).isoformat()),
        )

    def get_run_history(self, stack_name: str, limit: int = 20) -> list[dict]:
        rows = self._execute(
            "SELECT operation, status, summary, recorded_at FROM runs "
            "WHERE stack = ? ORDER BY id DESC LIMIT ?",
            (stack_name, limit),
        )
        history = []
        for row in rows:
            entry = dict(row)
            entry["summary"] = _decode(entry["summary"], f"Run summary of {stack_name}")
            history.append(entry)
        return history
