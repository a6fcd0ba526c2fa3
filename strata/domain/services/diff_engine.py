"""
Diff Engine Service

Architectural Intent:
- Compares a declared ResourceGraph against the stored StateRecord and
  produces an ordered ChangeSet
- Pure function of its inputs: reads state, never writes it

Domain Logic:
- No record (or no remote id yet) -> create
- Hash differs -> update when every changed property is mutable for the
  kind, otherwise replace
- A failed create (no applied configuration) is replaced; failed updates
  and interrupted in-progress records are re-driven with an update
- A replaced resource forces its referencing dependents to be re-applied,
  since the values they resolved from it change
- Records absent from the graph -> delete, after all creates/updates, in
  reverse dependency order
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from strata.domain.entities.change_set import ChangeSet, ChangeSetEntry, Operation
from strata.domain.entities.resource import Resource, ResourceStatus
from strata.domain.entities.resource_graph import ResourceGraph, kahn_order
from strata.domain.entities.state_record import ResourceRecord, StateRecord
from strata.domain.value_objects.reference import Ref, iter_references, to_canonical

logger = logging.getLogger(__name__)

MutableLookup = Callable[[str], frozenset[str]]


@dataclass(frozen=True)
class _Planned:
    operation: Operation
    changed: tuple[str, ...] = ()
    reason: str = ""


def changed_properties(previous: dict[str, Any], desired: dict[str, Any]) -> tuple[str, ...]:
    """Names of top-level properties whose canonical values differ."""
    keys = list(desired) + [k for k in previous if k not in desired]
    return tuple(k for k in keys if previous.get(k) != desired.get(k))


class DiffEngine:
    def __init__(self, mutable_properties: Optional[MutableLookup] = None) -> None:
        self._mutable = mutable_properties or (lambda kind: frozenset())

    def compute(self, graph: ResourceGraph, state: StateRecord) -> ChangeSet:
        planned: dict[str, _Planned] = {}
        entries: list[ChangeSetEntry] = []

        for name in graph.topological_order():
            resource = graph.get(name)
            plan = self._plan_resource(resource, state.get(name))
            plan = self._propagate_replacements(resource, plan, planned)
            planned[name] = plan

            prerequisites = [
                dep for dep in resource.dependencies()
                if planned[dep].operation != Operation.NO_OP
            ]
            entries.append(
                ChangeSetEntry(
                    logical_id=name,
                    operation=plan.operation,
                    kind=resource.kind,
                    prerequisites=tuple(prerequisites),
                    changed_properties=plan.changed,
                    reason=plan.reason,
                )
            )

        orphans = [name for name in state.resources if name not in graph]
        entries.extend(self._delete_entries(state, orphans, graph, planned))

        change_set = ChangeSet(stack_name=graph.stack_name, entries=tuple(entries))
        logger.info("Change-set for %s: %s", graph.stack_name, change_set.summary())
        return change_set

    def destroy_plan(self, state: StateRecord) -> ChangeSet:
        """Delete-only change-set for every tracked resource."""
        entries = self._delete_entries(state, list(state.resources), None, {})
        return ChangeSet(stack_name=state.stack_name, entries=tuple(entries))

    def _plan_resource(
        self, resource: Resource, record: Optional[ResourceRecord]
    ) -> _Planned:
        if record is None:
            return _Planned(Operation.CREATE, reason="not yet created")
        if not record.remote_id:
            return _Planned(
                Operation.CREATE,
                reason=f"previous attempt left no remote resource ({record.status.value})",
            )
        if record.kind != resource.kind:
            return _Planned(
                Operation.REPLACE,
                changed=("kind",),
                reason=f"kind changed from {record.kind} to {resource.kind}",
            )
        if record.status == ResourceStatus.FAILED and record.config_hash is None:
            return _Planned(Operation.REPLACE, reason="previous create failed")
        if record.status == ResourceStatus.DELETING:
            return _Planned(Operation.REPLACE, reason="interrupted while deleting")

        if record.config_hash != resource.config_hash().value:
            changed = changed_properties(record.properties, to_canonical(resource.properties))
            immutable = [c for c in changed if c not in self._mutable(resource.kind)]
            if immutable:
                return _Planned(
                    Operation.REPLACE,
                    changed=changed,
                    reason=f"immutable properties changed: {', '.join(immutable)}",
                )
            return _Planned(Operation.UPDATE, changed=changed, reason="configuration changed")

        if record.status != ResourceStatus.SUCCEEDED:
            return _Planned(
                Operation.UPDATE,
                reason=f"resuming resource left {record.status.value}",
            )
        return _Planned(Operation.NO_OP)

    def _propagate_replacements(
        self,
        resource: Resource,
        plan: _Planned,
        planned: dict[str, _Planned],
    ) -> _Planned:
        if plan.operation not in (Operation.NO_OP, Operation.UPDATE):
            return plan

        affected: list[str] = []
        sources: list[str] = []
        for prop, value in resource.properties.items():
            for ref in iter_references(value):
                if isinstance(ref, Ref) and planned[ref.resource].operation == Operation.REPLACE:
                    if prop not in affected:
                        affected.append(prop)
                    if ref.resource not in sources:
                        sources.append(ref.resource)
        if not affected:
            return plan

        changed = tuple(dict.fromkeys(plan.changed + tuple(affected)))
        reason = f"references replaced resource {', '.join(sources)}"
        mutable = self._mutable(resource.kind)
        if all(c in mutable for c in changed):
            return _Planned(Operation.UPDATE, changed=changed, reason=reason)
        return _Planned(Operation.REPLACE, changed=changed, reason=reason)

    def _delete_entries(
        self,
        state: StateRecord,
        doomed: list[str],
        graph: Optional[ResourceGraph],
        planned: dict[str, _Planned],
    ) -> list[ChangeSetEntry]:
        doomed_set = set(doomed)
        edges = {
            name: tuple(d for d in state.resources[name].depends_on if d in doomed_set)
            for name in doomed
        }
        order = list(reversed(kahn_order(edges)))
        # Anything left out of Kahn's order sits on a stored cycle; delete it last.
        order += [name for name in doomed if name not in order]

        entries: list[ChangeSetEntry] = []
        for name in order:
            prerequisites = [
                other for other in order
                if other != name and name in state.resources[other].depends_on
            ]
            if graph is not None:
                # Declared resources that used to depend on this one must move first.
                for other, plan in planned.items():
                    record = state.get(other)
                    if (
                        plan.operation != Operation.NO_OP
                        and record is not None
                        and name in record.depends_on
                    ):
                        prerequisites.append(other)
            entries.append(
                ChangeSetEntry(
                    logical_id=name,
                    operation=Operation.DELETE,
                    kind=state.resources[name].kind,
                    prerequisites=tuple(prerequisites),
                    reason="no longer declared" if graph is not None else "stack destroy",
                )
            )
        return entries
