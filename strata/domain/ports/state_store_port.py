"""
State Store Port

Architectural Intent:
- Abstract interface for the persisted per-stack State Record
- Single source of truth for what has been applied
- Writes are per-identifier read-modify-write; unrelated resources never
  contend on a whole-store lock

Design Decisions:
- Synchronous: persistence is local and fast, the only suspending
  operations in a run are remote calls and polls
- update_resource's mutate callback receives the current record (or None)
  and returns the new one (or None to remove it)
"""

from typing import Protocol, runtime_checkable, Callable, Optional, Any

from strata.domain.entities.state_record import ResourceRecord, StateRecord

RecordMutation = Callable[[Optional[ResourceRecord]], Optional[ResourceRecord]]


@runtime_checkable
class StateStorePort(Protocol):
    def load(self, stack_name: str) -> StateRecord:
        """Load the full record for a stack (empty when none exists)."""
        ...

    def read_resource(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        ...

    def update_resource(
        self, stack_name: str, logical_id: str, mutate: RecordMutation
    ) -> Optional[ResourceRecord]:
        """Atomically read-modify-write one resource record."""
        ...

    def write_outputs(self, stack_name: str, outputs: dict[str, Any]) -> None:
        ...

    def record_run(self, stack_name: str, operation: str, status: str, summary: dict) -> None:
        ...

    def get_run_history(self, stack_name: str, limit: int = 20) -> list[dict]:
        ...
