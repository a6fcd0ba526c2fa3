"""
Provisioning Port

Architectural Intent:
- Typed capability interface for one resource kind on the remote
  provisioning API: validate, create, describe, update, delete
- Any concrete backend implements this per kind; the orchestrator never
  shells out or interpolates commands

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- create/update/delete only *issue* an operation; completion is observed
  through describe() by the wait monitor
- Refusals raise RemoteRejectionError with the API message verbatim
"""

from __future__ import annotations
from typing import Protocol, runtime_checkable, Any, Iterable, Optional

from strata.domain.value_objects.remote_status import RemoteStatus


@runtime_checkable
class ProvisioningPort(Protocol):
    """Port for one resource kind on the remote provisioning API."""

    kind: str
    mutable_properties: frozenset[str]

    async def validate(self, spec: dict[str, Any]) -> list[str]:
        """Return validation errors for a resolved spec (empty when valid)."""
        ...

    async def create(self, spec: dict[str, Any]) -> str:
        """Issue a create and return the remote identifier."""
        ...

    async def describe(self, remote_id: str) -> RemoteStatus:
        """Observe the current remote status and attributes."""
        ...

    async def update(self, remote_id: str, spec: dict[str, Any]) -> None:
        """Issue an in-place update."""
        ...

    async def delete(self, remote_id: str) -> None:
        """Issue a delete."""
        ...


class KindRegistry:
    """Maps resource kinds to the adapters that provision them."""

    def __init__(self, adapters: Optional[Iterable[ProvisioningPort]] = None) -> None:
        self._adapters: dict[str, ProvisioningPort] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ProvisioningPort) -> None:
        self._adapters[adapter.kind] = adapter

    def get(self, kind: str) -> ProvisioningPort:
        try:
            return self._adapters[kind]
        except KeyError:
            raise KeyError(f"No provisioning adapter registered for kind '{kind}'") from None

    def __contains__(self, kind: str) -> bool:
        return kind in self._adapters

    def kinds(self) -> frozenset[str]:
        return frozenset(self._adapters)

    def mutable_properties(self, kind: str) -> frozenset[str]:
        adapter = self._adapters.get(kind)
        return adapter.mutable_properties if adapter else frozenset()
