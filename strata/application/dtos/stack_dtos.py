"""
Stack DTOs

Architectural Intent:
- Data Transfer Objects for use case boundaries
- Input validation at the application boundary
- Reports carry resource-by-resource results, never a collapsed pass/fail
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from strata.domain.entities.change_set import ChangeSet
from strata.domain.entities.resource import ResourceStatus
from strata.domain.entities.stack_run import ResourceProgress, StackStatus
from strata.domain.errors import ValidationError


@dataclass(frozen=True)
class DestroyRequest:
    stack_name: str
    confirmation: str

    def __post_init__(self) -> None:
        if not self.stack_name:
            raise ValueError("stack_name cannot be empty")


@dataclass(frozen=True)
class ValidationReport:
    stack_name: str
    errors: tuple[ValidationError, ...] = ()
    change_set: Optional[ChangeSet] = None

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> int:
        return 0 if self.valid else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "stack": self.stack_name,
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "change_set": self.change_set.to_dict() if self.change_set else None,
        }


@dataclass(frozen=True)
class RunReport:
    stack_name: str
    operation: str
    status: StackStatus
    change_set: ChangeSet
    results: tuple[ResourceProgress, ...] = ()
    outputs: dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == StackStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def failed(self) -> list[ResourceProgress]:
        return [r for r in self.results if r.status == ResourceStatus.FAILED]

    def skipped(self) -> list[ResourceProgress]:
        return [r for r in self.results if r.status == ResourceStatus.SKIPPED]

    def result(self, logical_id: str) -> Optional[ResourceProgress]:
        for r in self.results:
            if r.logical_id == logical_id:
                return r
        return None

    def summary(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for r in self.results:
            counts[r.status.value] = counts.get(r.status.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "stack": self.stack_name,
            "operation": self.operation,
            "status": self.status.value,
            "duration_seconds": round(self.duration_seconds, 3),
            "summary": self.summary(),
            "resources": [r.to_dict() for r in self.results],
            "outputs": dict(self.outputs),
        }
