"""
Stack Run Module

Architectural Intent:
- StackRun is the consistency boundary for one apply/destroy run
- Every resource transition is checked against the resource state machine
- Domain events are collected here and drained by the execution engine
  for publication on the event bus

Domain Events:
- ResourceTransitioned: Published on every status change of a resource
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any

from strata.domain.entities.change_set import ChangeSet, Operation
from strata.domain.entities.resource import ResourceStatus, check_transition
from strata.domain.events.event_base import DomainEvent, ResourceTransitioned


class StackStatus(Enum):
    RUNNING = "StackRunning"
    SUCCEEDED = "StackSucceeded"
    FAILED = "StackFailed"
    CANCELLED = "StackCancelled"


@dataclass
class ResourceProgress:
    logical_id: str
    kind: str
    operation: Operation
    status: ResourceStatus = ResourceStatus.PENDING
    error_type: str = ""
    message: str = ""
    skipped_because: Optional[str] = None

    @property
    def is_primary_failure(self) -> bool:
        return self.status == ResourceStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "kind": self.kind,
            "operation": self.operation.value,
            "status": self.status.value,
            "error_type": self.error_type,
            "message": self.message,
            "skipped_because": self.skipped_because,
        }


class StackRun:
    def __init__(self, stack_name: str, operation: str, change_set: ChangeSet) -> None:
        self.stack_name = stack_name
        self.operation = operation
        self._progress: dict[str, ResourceProgress] = {
            e.logical_id: ResourceProgress(e.logical_id, e.kind, e.operation)
            for e in change_set.actionable()
        }
        self._events: list[DomainEvent] = []
        self._cancelled = False

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self._progress

    def progress(self, logical_id: str) -> ResourceProgress:
        return self._progress[logical_id]

    def status_of(self, logical_id: str) -> ResourceStatus:
        return self._progress[logical_id].status

    def results(self) -> list[ResourceProgress]:
        return list(self._progress.values())

    def transition(
        self,
        logical_id: str,
        status: ResourceStatus,
        message: str = "",
    ) -> None:
        entry = self._progress[logical_id]
        check_transition(logical_id, entry.status, status)
        entry.status = status
        entry.message = message
        self._events.append(
            ResourceTransitioned(
                aggregate_id=self.stack_name,
                logical_id=logical_id,
                kind=entry.kind,
                operation=entry.operation.value,
                status=status.value,
                message=message,
            )
        )

    def fail(self, logical_id: str, error: BaseException) -> None:
        self.transition(logical_id, ResourceStatus.FAILED, str(error))
        self._progress[logical_id].error_type = type(error).__name__

    def skip(self, logical_id: str, because: Optional[str], reason: str) -> None:
        self.transition(logical_id, ResourceStatus.SKIPPED, reason)
        self._progress[logical_id].skipped_because = because

    def mark_cancelled(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def status(self) -> StackStatus:
        if self._cancelled:
            return StackStatus.CANCELLED
        if all(p.status.is_success for p in self._progress.values()):
            return StackStatus.SUCCEEDED
        if all(p.status.is_terminal for p in self._progress.values()):
            return StackStatus.FAILED
        return StackStatus.RUNNING

    def failed(self) -> list[ResourceProgress]:
        return [p for p in self._progress.values() if p.status == ResourceStatus.FAILED]

    def skipped(self) -> list[ResourceProgress]:
        return [p for p in self._progress.values() if p.status == ResourceStatus.SKIPPED]

    def collect_events(self) -> list[DomainEvent]:
        events, self._events = self._events, []
        return events
