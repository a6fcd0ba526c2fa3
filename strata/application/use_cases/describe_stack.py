"""
Describe Stack Use Case

Architectural Intent:
- Read-only view of a stack's persisted state: exported outputs, tracked
  resources and recent runs
"""

from dataclasses import dataclass, field
from typing import Any

from strata.domain.entities.state_record import StateRecord
from strata.domain.ports.state_store_port import StateStorePort


@dataclass(frozen=True)
class StackDescription:
    state: StateRecord
    runs: list[dict] = field(default_factory=list)

    @property
    def outputs(self) -> dict[str, Any]:
        return dict(self.state.outputs)

    def to_dict(self) -> dict[str, Any]:
        data = self.state.to_dict()
        data["runs"] = list(self.runs)
        return data


class DescribeStack:
    def __init__(self, state_store: StateStorePort):
        self.state_store = state_store

    async def execute(self, stack_name: str, history: int = 5) -> StackDescription:
        state = self.state_store.load(stack_name)
        runs = self.state_store.get_run_history(stack_name, limit=history)
        return StackDescription(state=state, runs=runs)
