"""
Change-Set Module

Architectural Intent:
- Ordered list of operations that moves remote reality toward the declared
  graph
- Entries carry their own prerequisites so the execution engine never has to
  look back at the graph to decide what may start
- Replace means delete-then-create for changes that cannot be applied in place
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Operation(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REPLACE = "replace"
    NO_OP = "no-op"


@dataclass(frozen=True)
class ChangeSetEntry:
    logical_id: str
    operation: Operation
    kind: str
    prerequisites: tuple[str, ...] = ()
    changed_properties: tuple[str, ...] = ()
    reason: str = ""

    def __post_init__(self):
        object.__setattr__(self, "prerequisites", tuple(self.prerequisites))
        object.__setattr__(self, "changed_properties", tuple(self.changed_properties))

    @property
    def is_actionable(self) -> bool:
        return self.operation != Operation.NO_OP

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "operation": self.operation.value,
            "kind": self.kind,
            "prerequisites": list(self.prerequisites),
            "changed_properties": list(self.changed_properties),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ChangeSet:
    stack_name: str
    entries: tuple[ChangeSetEntry, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, logical_id: str) -> Optional[ChangeSetEntry]:
        for entry in self.entries:
            if entry.logical_id == logical_id:
                return entry
        return None

    def actionable(self) -> list[ChangeSetEntry]:
        return [e for e in self.entries if e.is_actionable]

    @property
    def is_empty(self) -> bool:
        return not self.actionable()

    def operations(self) -> list[tuple[str, str]]:
        return [(e.operation.value, e.logical_id) for e in self.entries]

    def summary(self) -> dict[str, int]:
        counts = {op.value: 0 for op in Operation}
        for entry in self.entries:
            counts[entry.operation.value] += 1
        return counts

    def batches(self) -> list[list[ChangeSetEntry]]:
        """Group actionable entries into waves that may execute concurrently."""
        actionable = {e.logical_id: e for e in self.actionable()}
        depth: dict[str, int] = {}
        for entry in actionable.values():
            prereqs = [p for p in entry.prerequisites if p in actionable]
            depth[entry.logical_id] = 1 + max((depth.get(p, 0) for p in prereqs), default=-1)
        waves: list[list[ChangeSetEntry]] = []
        for name, entry in actionable.items():
            while len(waves) <= depth[name]:
                waves.append([])
            waves[depth[name]].append(entry)
        return waves

    def to_dict(self) -> dict[str, Any]:
        return {
            "stack": self.stack_name,
            "summary": self.summary(),
            "entries": [e.to_dict() for e in self.entries],
        }
