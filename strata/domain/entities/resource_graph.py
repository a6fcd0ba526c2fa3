"""
Resource Graph Module

Architectural Intent:
- StackDefinition is the raw declaration (may be invalid)
- ResourceGraph is the validated, acyclic graph produced by build_graph()
- Graph traversal is synchronous and side-effect free

Ordering:
- topological_order() uses Kahn's algorithm, breaking ties by declaration
  order so repeated runs produce identical change-sets
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from strata.domain.entities.resource import OutputBinding, Resource


@dataclass(frozen=True)
class StackDefinition:
    stack_name: str
    resources: tuple[Resource, ...] = ()
    parameters: dict[str, Any] = field(default_factory=dict)
    outputs: tuple[OutputBinding, ...] = ()
    region: str = ""

    def __post_init__(self):
        if not self.stack_name:
            raise ValueError("stack_name cannot be empty")
        object.__setattr__(self, "resources", tuple(self.resources))
        object.__setattr__(self, "outputs", tuple(self.outputs))

    def with_parameters(self, overrides: dict[str, Any]) -> "StackDefinition":
        merged = dict(self.parameters)
        merged.update(overrides)
        return StackDefinition(
            stack_name=self.stack_name,
            resources=self.resources,
            parameters=merged,
            outputs=self.outputs,
            region=self.region,
        )


class ResourceGraph:
    def __init__(
        self,
        stack_name: str,
        resources: list[Resource],
        parameters: Optional[dict[str, Any]] = None,
        outputs: Optional[list[OutputBinding]] = None,
        region: str = "",
    ) -> None:
        self.stack_name = stack_name
        self.region = region
        self.parameters: dict[str, Any] = dict(parameters or {})
        self.resources: dict[str, Resource] = {r.logical_id: r for r in resources}
        self.outputs: dict[str, OutputBinding] = {o.name: o for o in outputs or []}
        self._order: Optional[list[str]] = None

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self.resources

    def __len__(self) -> int:
        return len(self.resources)

    def get(self, logical_id: str) -> Resource:
        return self.resources[logical_id]

    def dependencies_of(self, logical_id: str) -> tuple[str, ...]:
        return self.resources[logical_id].dependencies()

    def dependents_of(self, logical_id: str) -> set[str]:
        """Every resource that transitively depends on logical_id."""
        reverse: dict[str, list[str]] = {name: [] for name in self.resources}
        for name, resource in self.resources.items():
            for dep in resource.dependencies():
                reverse.setdefault(dep, []).append(name)

        found: set[str] = set()
        stack = list(reverse.get(logical_id, []))
        while stack:
            name = stack.pop()
            if name not in found:
                found.add(name)
                stack.extend(reverse.get(name, []))
        return found

    def topological_order(self) -> list[str]:
        if self._order is None:
            self._order = kahn_order(
                {name: r.dependencies() for name, r in self.resources.items()}
            )
        return list(self._order)

    def levels(self) -> list[list[str]]:
        """Group resources into batches whose members can run concurrently."""
        depth: dict[str, int] = {}
        for name in self.topological_order():
            deps = self.resources[name].dependencies()
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)
        batches: list[list[str]] = []
        for name in self.topological_order():
            while len(batches) <= depth[name]:
                batches.append([])
            batches[depth[name]].append(name)
        return batches


def kahn_order(edges: dict[str, tuple[str, ...]]) -> list[str]:
    """Topologically sort nodes (node -> prerequisites), stable on key order.

    Prerequisites that are not themselves nodes are ignored. Nodes caught in
    a cycle are left out of the result.
    """
    position = {name: i for i, name in enumerate(edges)}
    indegree = {name: 0 for name in edges}
    dependents: dict[str, list[str]] = {name: [] for name in edges}
    for name, deps in edges.items():
        for dep in set(deps):
            if dep in edges:
                indegree[name] += 1
                dependents[dep].append(name)

    ready = sorted((n for n, d in indegree.items() if d == 0), key=position.__getitem__)
    order: list[str] = []
    while ready:
        name = ready.pop(0)
        order.append(name)
        released = []
        for child in dependents[name]:
            indegree[child] -= 1
            if indegree[child] == 0:
                released.append(child)
        if released:
            ready = sorted(ready + released, key=position.__getitem__)
    return order
