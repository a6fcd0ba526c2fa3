"""
Graph Builder Service

Architectural Intent:
- Turns a raw StackDefinition into a validated ResourceGraph
- Pure validation: no I/O, never touches the remote API
- Collects every problem so operators see all errors in one validate run

Domain Logic:
- Conditional resources whose flag parameter is false are dropped first
- ParamRefs are substituted; Refs stay symbolic until execution
- Cycles are found with DFS colouring and reported with every member
"""

from __future__ import annotations
import logging
from typing import Any, Iterable, Optional

from strata.domain.entities.resource import Resource
from strata.domain.entities.resource_graph import ResourceGraph, StackDefinition
from strata.domain.errors import (
    CyclicDependencyError,
    DuplicateIdentifierError,
    UnknownResourceKindError,
    UnresolvedReferenceError,
    ValidationError,
)
from strata.domain.value_objects.reference import ParamRef, Ref, Reference, substitute

logger = logging.getLogger(__name__)

_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


def is_enabled(value: Any) -> bool:
    """Interpret a condition flag parameter."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def find_cycle(edges: dict[str, tuple[str, ...]]) -> Optional[list[str]]:
    white, grey, black = 0, 1, 2
    color = {name: white for name in edges}
    path: list[str] = []

    def visit(name: str) -> Optional[list[str]]:
        color[name] = grey
        path.append(name)
        for dep in edges[name]:
            if dep not in color:
                continue
            if color[dep] == grey:
                return path[path.index(dep):]
            if color[dep] == white:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        color[name] = black
        return None

    for name in edges:
        if color[name] == white:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


def _analyze(
    definition: StackDefinition,
    known_kinds: Optional[Iterable[str]],
) -> tuple[list[Resource], list[ValidationError]]:
    errors: list[ValidationError] = []
    params = definition.parameters
    kinds = frozenset(known_kinds) if known_kinds is not None else None

    seen: set[str] = set()
    for resource in definition.resources:
        if resource.logical_id in seen:
            errors.append(DuplicateIdentifierError(resource.logical_id))
        seen.add(resource.logical_id)

    included: list[Resource] = []
    included_ids: set[str] = set()
    for resource in definition.resources:
        if resource.logical_id in included_ids:
            continue
        if resource.condition is not None:
            if resource.condition not in params:
                errors.append(
                    UnresolvedReferenceError(resource.logical_id, f"param:{resource.condition}")
                )
                continue
            if not is_enabled(params[resource.condition]):
                logger.debug(
                    "Skipping %s: condition %s is disabled",
                    resource.logical_id,
                    resource.condition,
                )
                continue
        included.append(resource)
        included_ids.add(resource.logical_id)

    resolved: list[Resource] = []
    for resource in included:
        if kinds is not None and resource.kind not in kinds:
            errors.append(UnknownResourceKindError(resource.logical_id, resource.kind))

        def resolve_param(ref: Reference, owner: str = resource.logical_id) -> Any:
            if isinstance(ref, ParamRef):
                if ref.name not in params:
                    errors.append(UnresolvedReferenceError(owner, str(ref)))
                    return ref
                return params[ref.name]
            return ref

        properties = substitute(resource.properties, resolve_param)

        for ref in resource.references():
            if isinstance(ref, Ref) and ref.resource not in included_ids:
                errors.append(UnresolvedReferenceError(resource.logical_id, str(ref)))
        for dep in resource.depends_on:
            if dep not in included_ids:
                errors.append(UnresolvedReferenceError(resource.logical_id, dep))

        resolved.append(resource.with_properties(properties))

    for output in definition.outputs:
        if output.ref.resource not in included_ids:
            errors.append(UnresolvedReferenceError(None, str(output.ref)))

    edges = {
        r.logical_id: tuple(d for d in r.dependencies() if d in included_ids)
        for r in resolved
    }
    cycle = find_cycle(edges)
    if cycle:
        errors.append(CyclicDependencyError(cycle))

    return resolved, errors


def collect_graph_errors(
    definition: StackDefinition,
    known_kinds: Optional[Iterable[str]] = None,
) -> list[ValidationError]:
    """Return every validation error in the definition (empty when valid)."""
    _, errors = _analyze(definition, known_kinds)
    return errors


def build_graph(
    definition: StackDefinition,
    known_kinds: Optional[Iterable[str]] = None,
) -> ResourceGraph:
    """Validate a definition and return its ResourceGraph.

    Raises the first ValidationError found.
    """
    resources, errors = _analyze(definition, known_kinds)
    if errors:
        raise errors[0]
    graph = ResourceGraph(
        stack_name=definition.stack_name,
        resources=resources,
        parameters=definition.parameters,
        outputs=list(definition.outputs),
        region=definition.region,
    )
    logger.debug(
        "Built graph for %s: %d resources, order=%s",
        graph.stack_name,
        len(graph),
        graph.topological_order(),
    )
    return graph
