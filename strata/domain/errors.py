"""
Domain Errors

Architectural Intent:
- Single taxonomy for every failure the orchestrator can surface
- ValidationError family is raised at graph-construction time and never
  touches the remote API
- RemoteRejectionError, RemoteError and ProvisioningTimeoutError are
  resource-scoped: they fail one resource and cascade to its dependents
- StateCorruptionError is fatal for the whole run
"""

from __future__ import annotations
from typing import Optional


class StrataError(Exception):
    """Root of all orchestrator errors."""


class ValidationError(StrataError):
    """Raised while building or validating a resource graph."""

    def __init__(self, message: str, logical_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.logical_id = logical_id

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "logical_id": self.logical_id,
            "message": str(self),
        }


class CyclicDependencyError(ValidationError):
    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join(cycle + cycle[:1])
        super().__init__(f"Cyclic dependency detected: {path}", cycle[0])
        self.cycle = list(cycle)


class UnresolvedReferenceError(ValidationError):
    def __init__(self, logical_id: Optional[str], reference: str) -> None:
        owner = logical_id or "<outputs>"
        super().__init__(f"{owner} references unknown target '{reference}'", logical_id)
        self.reference = reference


class DuplicateIdentifierError(ValidationError):
    def __init__(self, logical_id: str) -> None:
        super().__init__(f"Duplicate logical identifier: {logical_id}", logical_id)


class UnknownResourceKindError(ValidationError):
    def __init__(self, logical_id: str, kind: str) -> None:
        super().__init__(f"{logical_id} has unsupported resource kind '{kind}'", logical_id)
        self.kind = kind


class StackDefinitionError(ValidationError):
    """The declared stack document could not be read or parsed."""


class DestroyConfirmationError(ValidationError):
    def __init__(self, stack_name: str) -> None:
        super().__init__(
            f"Destroy of stack '{stack_name}' requires --confirm {stack_name}"
        )
        self.stack_name = stack_name


class InvalidTransitionError(StrataError, ValueError):
    def __init__(self, logical_id: str, current: str, target: str) -> None:
        super().__init__(f"{logical_id}: illegal transition {current} -> {target}")
        self.logical_id = logical_id


class RemoteRejectionError(StrataError):
    """The provisioning API refused a request (invalid value, quota, region)."""

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [message])


class RemoteError(StrataError):
    """The provisioning system reported a terminal failure for an operation."""

    def __init__(self, remote_id: str, message: str) -> None:
        super().__init__(message)
        self.remote_id = remote_id


class ProvisioningTimeoutError(StrataError, TimeoutError):
    def __init__(self, remote_id: str, timeout: float, last_state: str) -> None:
        super().__init__(
            f"{remote_id} did not reach a terminal state within {timeout:g}s "
            f"(last observed: {last_state})"
        )
        self.remote_id = remote_id
        self.timeout = timeout
        self.last_state = last_state


class StateCorruptionError(StrataError):
    """Persisted state is unreadable or inconsistent. Requires an operator."""
