"""
JSON File State Store

Architectural Intent:
- Default State Store backend: one JSON document per stack at
  <directory>/<stack>.json
- Documents are plain data and load without executing code
- Every write replaces the file atomically (temp file + os.replace), so a
  crash mid-write leaves the previous document intact

Design Decisions:
- Read-modify-write is guarded per logical identifier; the file flush is
  serialized separately and never spans a caller's mutate callback
- Unreadable or inconsistent documents raise StateCorruptionError and are
  left untouched on disk
"""

from __future__ import annotations
import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Optional

from strata.domain.entities.state_record import STATE_VERSION, ResourceRecord, StateRecord
from strata.domain.errors import StateCorruptionError
from strata.domain.ports.state_store_port import RecordMutation

logger = logging.getLogger(__name__)

_STACK_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def check_stack_name(stack_name: str) -> str:
    if not _STACK_NAME.match(stack_name or "") or ".." in stack_name:
        raise ValueError(f"Invalid stack name {stack_name!r}")
    return stack_name


class JSONStateStore:
    """State store keeping one JSON document per stack."""

    MAX_RUNS = 50

    def __init__(self, directory: str | Path = ".strata"):
        self._dir = Path(directory)
        self._documents: dict[str, dict[str, Any]] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._flush_lock = threading.Lock()

    def path_for(self, stack_name: str) -> Path:
        return self._dir / f"{check_stack_name(stack_name)}.json"

    # -- Reads ---------------------------------------------------------------

    def load(self, stack_name: str) -> StateRecord:
        """Re-read the stack's document from disk."""
        document = self._read(stack_name)
        self._documents[stack_name] = document
        return StateRecord.from_dict(stack_name, document)

    def read_resource(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        raw = self._document(stack_name)["resources"].get(logical_id)
        return ResourceRecord.from_dict(logical_id, raw) if raw is not None else None

    def get_run_history(self, stack_name: str, limit: int = 20) -> list[dict]:
        runs = self._document(stack_name)["runs"]
        return list(reversed(runs))[:limit]

    # -- Writes --------------------------------------------------------------

    def update_resource(
        self, stack_name: str, logical_id: str, mutate: RecordMutation
    ) -> Optional[ResourceRecord]:
        with self._lock_for(stack_name, logical_id):
            document = self._document(stack_name)
            raw = document["resources"].get(logical_id)
            current = ResourceRecord.from_dict(logical_id, raw) if raw is not None else None
            updated = mutate(current)

            with self._flush_lock:
                if updated is None:
                    document["resources"].pop(logical_id, None)
                else:
                    document["resources"][logical_id] = updated.to_dict()
                self._flush(stack_name, document)

        logger.debug(
            "State %s/%s -> %s",
            stack_name, logical_id, updated.status.value if updated else "removed",
        )
        return updated

    def write_outputs(self, stack_name: str, outputs: dict[str, Any]) -> None:
        with self._flush_lock:
            document = self._document(stack_name)
            document["outputs"] = dict(outputs)
            self._flush(stack_name, document)

    def record_run(self, stack_name: str, operation: str, status: str, summary: dict) -> None:
        with self._flush_lock:
            document = self._document(stack_name)
            document["runs"].append({
                "operation": operation,
                "status": status,
                "summary": dict(summary),
                "recorded_at": datetime.now(UTC).isoformat(),
            })
            del document["runs"][:-self.MAX_RUNS]
            self._flush(stack_name, document)

    # -- Internals -----------------------------------------------------------

    def _lock_for(self, stack_name: str, logical_id: str) -> threading.Lock:
        key = (stack_name, logical_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _document(self, stack_name: str) -> dict[str, Any]:
        with self._locks_guard:
            document = self._documents.get(stack_name)
            if document is None:
                document = self._documents[stack_name] = self._read(stack_name)
            return document

    def _read(self, stack_name: str) -> dict[str, Any]:
        path = self.path_for(stack_name)
        if not path.exists():
            return {
                "version": STATE_VERSION,
                "stack": stack_name,
                "resources": {},
                "outputs": {},
                "runs": [],
            }
        try:
            with open(path) as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise StateCorruptionError(f"State file {path} is not valid JSON: {e}") from e

        # Validates version, stack name and every record.
        StateRecord.from_dict(stack_name, document)
        document.setdefault("resources", {})
        document.setdefault("outputs", {})
        runs = document.setdefault("runs", [])
        if not isinstance(runs, list):
            raise StateCorruptionError(f"State file {path} has malformed run history")
        return document

    def _flush(self, stack_name: str, document: dict[str, Any]) -> None:
        path = self.path_for(stack_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{stack_name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
