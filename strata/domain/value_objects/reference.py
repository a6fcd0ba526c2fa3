"""
References embedded in resource properties.

A Ref points at an attribute exported by another resource in the same graph
and implies a dependency edge. A ParamRef points at a stack parameter and is
substituted when the graph is built.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Union


@dataclass(frozen=True)
class Ref:
    resource: str
    attribute: str = "id"

    def __post_init__(self):
        if not self.resource:
            raise ValueError("Ref resource cannot be empty")
        if not self.attribute:
            raise ValueError("Ref attribute cannot be empty")

    @staticmethod
    def parse(value: str) -> "Ref":
        resource, _, attribute = value.partition(".")
        return Ref(resource, attribute or "id")

    def __str__(self):
        return f"{self.resource}.{self.attribute}"


@dataclass(frozen=True)
class ParamRef:
    name: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("ParamRef name cannot be empty")

    def __str__(self):
        return f"param:{self.name}"


Reference = Union[Ref, ParamRef]


def iter_references(value: Any) -> Iterator[Reference]:
    """Yield every Ref/ParamRef nested anywhere in a property value."""
    if isinstance(value, (Ref, ParamRef)):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)


def substitute(value: Any, resolver: Callable[[Reference], Any]) -> Any:
    """Return a copy of value with references replaced by resolver(ref).

    The resolver may return the reference unchanged to leave it in place.
    """
    if isinstance(value, (Ref, ParamRef)):
        return resolver(value)
    if isinstance(value, dict):
        return {k: substitute(v, resolver) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [substitute(v, resolver) for v in value]
    return value


def to_canonical(value: Any) -> Any:
    """Plain-JSON form of a property value; references become marker dicts."""
    if isinstance(value, Ref):
        return {"ref": str(value)}
    if isinstance(value, ParamRef):
        return {"param": value.name}
    if isinstance(value, dict):
        return {str(k): to_canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_canonical(v) for v in value]
    return value


def from_canonical(value: Any) -> Any:
    """Inverse of to_canonical: marker dicts become Ref/ParamRef."""
    if isinstance(value, dict):
        if set(value) == {"ref"} and isinstance(value["ref"], str):
            return Ref.parse(value["ref"])
        if set(value) == {"param"} and isinstance(value["param"], str):
            return ParamRef(value["param"])
        return {k: from_canonical(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_canonical(v) for v in value]
    return value
