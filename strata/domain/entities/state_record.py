"""
State Record Module

Architectural Intent:
- Persisted record of the last-known-applied graph for one stack
- Plain data only: every field round-trips through JSON without executing code
- Parsing is strict; anything unexpected raises StateCorruptionError and is
  never auto-repaired

Ownership:
- Mutated exclusively by the execution engine through the state store port
- Read-only to the diff engine
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from strata.domain.entities.resource import ResourceStatus
from strata.domain.errors import StateCorruptionError

STATE_VERSION = 1


@dataclass(frozen=True)
class ResourceRecord:
    logical_id: str
    kind: str
    status: ResourceStatus
    remote_id: Optional[str] = None
    config_hash: Optional[str] = None
    outputs: dict[str, Any] = field(default_factory=dict)
    properties: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    message: str = ""

    def __post_init__(self):
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def with_status(self, status: ResourceStatus, message: str = "") -> "ResourceRecord":
        return replace(self, status=status, message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "status": self.status.value,
            "remote_id": self.remote_id,
            "config_hash": self.config_hash,
            "outputs": dict(self.outputs),
            "properties": dict(self.properties),
            "depends_on": list(self.depends_on),
            "message": self.message,
        }

    @staticmethod
    def from_dict(logical_id: str, data: Any) -> "ResourceRecord":
        if not isinstance(data, dict):
            raise StateCorruptionError(f"Record for {logical_id} is not a mapping")
        try:
            status = ResourceStatus(data["status"])
            kind = data["kind"]
        except KeyError as e:
            raise StateCorruptionError(f"Record for {logical_id} is missing {e}") from e
        except ValueError as e:
            raise StateCorruptionError(
                f"Record for {logical_id} has unknown status {data.get('status')!r}"
            ) from e

        remote_id = data.get("remote_id")
        if status == ResourceStatus.SUCCEEDED and not remote_id:
            raise StateCorruptionError(
                f"Record for {logical_id} is Succeeded but has no remote identifier"
            )
        outputs = data.get("outputs") or {}
        properties = data.get("properties") or {}
        depends_on = data.get("depends_on") or []
        if not isinstance(outputs, dict) or not isinstance(properties, dict):
            raise StateCorruptionError(f"Record for {logical_id} has malformed fields")
        if not isinstance(depends_on, list):
            raise StateCorruptionError(f"Record for {logical_id} has malformed depends_on")

        return ResourceRecord(
            logical_id=logical_id,
            kind=kind,
            status=status,
            remote_id=remote_id,
            config_hash=data.get("config_hash"),
            outputs=outputs,
            properties=properties,
            depends_on=tuple(depends_on),
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class StateRecord:
    stack_name: str
    resources: dict[str, ResourceRecord] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)

    def get(self, logical_id: str) -> Optional[ResourceRecord]:
        return self.resources.get(logical_id)

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self.resources

    def __len__(self) -> int:
        return len(self.resources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "stack": self.stack_name,
            "resources": {k: v.to_dict() for k, v in self.resources.items()},
            "outputs": dict(self.outputs),
        }

    @staticmethod
    def empty(stack_name: str) -> "StateRecord":
        return StateRecord(stack_name=stack_name)

    @staticmethod
    def from_dict(stack_name: str, data: Any) -> "StateRecord":
        if not isinstance(data, dict):
            raise StateCorruptionError(f"State for stack {stack_name} is not a mapping")
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise StateCorruptionError(
                f"State for stack {stack_name} has unsupported version {version!r}"
            )
        stored_name = data.get("stack")
        if stored_name != stack_name:
            raise StateCorruptionError(
                f"State file belongs to stack {stored_name!r}, expected {stack_name!r}"
            )
        raw_resources = data.get("resources") or {}
        if not isinstance(raw_resources, dict):
            raise StateCorruptionError(f"State for stack {stack_name} has malformed resources")
        outputs = data.get("outputs") or {}
        if not isinstance(outputs, dict):
            raise StateCorruptionError(f"State for stack {stack_name} has malformed outputs")
        return StateRecord(
            stack_name=stack_name,
            resources={
                name: ResourceRecord.from_dict(name, raw)
                for name, raw in raw_resources.items()
            },
            outputs=outputs,
        )
