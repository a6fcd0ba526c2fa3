"""
Resource Module

Architectural Intent:
- Resource is the declared, logical unit to provision
- Declarations are immutable; runtime status is tracked separately by the
  run tracker (StackRun) and persisted in ResourceRecord
- Dependency edges are the explicit depends_on list plus every Ref embedded
  in the properties

State Machine:
- Pending -> Creating | Updating | Deleting | Skipped
- Creating | Updating -> Succeeded | Failed
- Deleting -> Deleted | Failed | Creating (replace)
- Terminal states may re-enter Pending on a later run
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from strata.domain.errors import InvalidTransitionError
from strata.domain.value_objects.config_hash import ConfigHash
from strata.domain.value_objects.reference import Ref, Reference, iter_references


class ResourceStatus(Enum):
    PENDING = "Pending"
    CREATING = "Creating"
    UPDATING = "Updating"
    DELETING = "Deleting"
    SUCCEEDED = "Succeeded"
    DELETED = "Deleted"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_in_progress(self) -> bool:
        return self in IN_PROGRESS_STATUSES

    @property
    def is_success(self) -> bool:
        return self in (ResourceStatus.SUCCEEDED, ResourceStatus.DELETED)


TERMINAL_STATUSES = frozenset({
    ResourceStatus.SUCCEEDED,
    ResourceStatus.DELETED,
    ResourceStatus.FAILED,
    ResourceStatus.SKIPPED,
})

IN_PROGRESS_STATUSES = frozenset({
    ResourceStatus.CREATING,
    ResourceStatus.UPDATING,
    ResourceStatus.DELETING,
})

_TRANSITIONS: dict[ResourceStatus, frozenset[ResourceStatus]] = {
    ResourceStatus.PENDING: frozenset({
        ResourceStatus.CREATING,
        ResourceStatus.UPDATING,
        ResourceStatus.DELETING,
        ResourceStatus.SKIPPED,
    }),
    ResourceStatus.CREATING: frozenset({ResourceStatus.SUCCEEDED, ResourceStatus.FAILED}),
    ResourceStatus.UPDATING: frozenset({ResourceStatus.SUCCEEDED, ResourceStatus.FAILED}),
    ResourceStatus.DELETING: frozenset({
        ResourceStatus.DELETED,
        ResourceStatus.FAILED,
        ResourceStatus.CREATING,
        ResourceStatus.SKIPPED,
    }),
    ResourceStatus.SUCCEEDED: frozenset({ResourceStatus.PENDING}),
    ResourceStatus.DELETED: frozenset({ResourceStatus.PENDING}),
    ResourceStatus.FAILED: frozenset({ResourceStatus.PENDING}),
    ResourceStatus.SKIPPED: frozenset({ResourceStatus.PENDING}),
}


def check_transition(logical_id: str, current: ResourceStatus, target: ResourceStatus) -> None:
    if target not in _TRANSITIONS[current]:
        raise InvalidTransitionError(logical_id, current.value, target.value)


@dataclass(frozen=True)
class Resource:
    logical_id: str
    kind: str
    properties: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    condition: Optional[str] = None

    def __post_init__(self):
        if not self.logical_id:
            raise ValueError("Resource logical_id cannot be empty")
        if not self.kind:
            raise ValueError(f"Resource {self.logical_id} kind cannot be empty")
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def references(self) -> list[Reference]:
        return list(iter_references(self.properties))

    def dependencies(self) -> tuple[str, ...]:
        """Explicit edges followed by edges implied by embedded Refs."""
        seen: list[str] = []
        for dep in self.depends_on:
            if dep not in seen:
                seen.append(dep)
        for ref in self.references():
            if isinstance(ref, Ref) and ref.resource not in seen:
                seen.append(ref.resource)
        return tuple(seen)

    def config_hash(self) -> ConfigHash:
        return ConfigHash.of(self.kind, self.properties)

    def with_properties(self, properties: dict[str, Any]) -> "Resource":
        return Resource(
            logical_id=self.logical_id,
            kind=self.kind,
            properties=properties,
            depends_on=self.depends_on,
            condition=self.condition,
        )


@dataclass(frozen=True)
class OutputBinding:
    """A named value exported from a stack, read from a resource attribute."""
    name: str
    ref: Ref
