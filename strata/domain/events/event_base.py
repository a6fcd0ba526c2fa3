"""
Domain Events Module

Architectural Intent:
- Base classes for domain events following DDD principles
- Events are immutable and capture significant domain occurrences
- Events are collected in the run tracker and dispatched via event bus
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat(), init=False, repr=False
    )
    aggregate_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at,
            "event_type": self.__class__.__name__,
        }


@dataclass(frozen=True)
class StackRunStarted(DomainEvent):
    operation: str = ""
    change_count: int = 0


@dataclass(frozen=True)
class ResourceTransitioned(DomainEvent):
    logical_id: str = ""
    kind: str = ""
    operation: str = ""
    status: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            logical_id=self.logical_id,
            kind=self.kind,
            operation=self.operation,
            status=self.status,
            message=self.message,
        )
        return data


@dataclass(frozen=True)
class StackRunCompleted(DomainEvent):
    operation: str = ""
    status: str = ""
    duration_seconds: float = 0.0
