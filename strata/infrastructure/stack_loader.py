"""
Stack Loader

Architectural Intent:
- Reads a JSON stack declaration into a StackDefinition
- Only shape errors are raised here (StackDefinitionError); graph rules such
  as duplicates, references and cycles are left to build_graph so they can
  be reported together

Declaration markers:
- {"ref": "network.id"} becomes Ref("network", "id")
- {"param": "vpc_cidr"} becomes ParamRef("vpc_cidr")
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from strata.domain.entities.resource import OutputBinding, Resource
from strata.domain.entities.resource_graph import StackDefinition
from strata.domain.errors import StackDefinitionError
from strata.domain.value_objects.reference import Ref, from_canonical

logger = logging.getLogger(__name__)


def parse_param_overrides(pairs: Iterable[str]) -> dict[str, Any]:
    """Parse repeated key=value CLI arguments.

    Values are decoded as JSON when possible ("false", "3", "[1,2]") and
    kept as plain strings otherwise.
    """
    overrides: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise StackDefinitionError(f"Invalid parameter override {pair!r}, expected key=value")
        try:
            overrides[key] = json.loads(raw)
        except json.JSONDecodeError:
            overrides[key] = raw
    return overrides


def _parse_resource(index: int, raw: Any) -> Resource:
    if not isinstance(raw, dict):
        raise StackDefinitionError(f"resources[{index}] must be an object")
    logical_id = raw.get("id")
    kind = raw.get("kind")
    if not isinstance(logical_id, str) or not logical_id:
        raise StackDefinitionError(f"resources[{index}] is missing an 'id'")
    if not isinstance(kind, str) or not kind:
        raise StackDefinitionError(f"{logical_id} is missing a 'kind'", logical_id)

    properties = raw.get("properties", {})
    if not isinstance(properties, dict):
        raise StackDefinitionError(f"{logical_id}: properties must be an object", logical_id)
    depends_on = raw.get("depends_on", [])
    if not isinstance(depends_on, list) or not all(isinstance(d, str) for d in depends_on):
        raise StackDefinitionError(f"{logical_id}: depends_on must be a list of ids", logical_id)
    condition = raw.get("condition")
    if condition is not None and not isinstance(condition, str):
        raise StackDefinitionError(f"{logical_id}: condition must be a parameter name", logical_id)

    return Resource(
        logical_id=logical_id,
        kind=kind,
        properties=from_canonical(properties),
        depends_on=tuple(depends_on),
        condition=condition,
    )


def _parse_outputs(raw: Any) -> list[OutputBinding]:
    if not isinstance(raw, dict):
        raise StackDefinitionError("outputs must be an object")
    bindings = []
    for name, value in raw.items():
        ref = from_canonical(value)
        if isinstance(ref, str):
            ref = Ref.parse(ref)
        if not isinstance(ref, Ref):
            raise StackDefinitionError(f"Output {name} must be a reference like {{\"ref\": \"id.attr\"}}")
        bindings.append(OutputBinding(name, ref))
    return bindings


def parse_stack(
    data: Any,
    stack_name: Optional[str] = None,
    region: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> StackDefinition:
    """Build a StackDefinition from an already-decoded JSON document.

    stack_name and region override the values in the document.
    """
    if not isinstance(data, dict):
        raise StackDefinitionError("Stack document must be a JSON object")

    name = stack_name or data.get("stack")
    if not isinstance(name, str) or not name:
        raise StackDefinitionError("Stack document has no 'stack' name")

    parameters = data.get("parameters", {})
    if not isinstance(parameters, dict):
        raise StackDefinitionError("parameters must be an object")
    raw_resources = data.get("resources", [])
    if not isinstance(raw_resources, list):
        raise StackDefinitionError("resources must be a list")

    definition = StackDefinition(
        stack_name=name,
        resources=tuple(_parse_resource(i, r) for i, r in enumerate(raw_resources)),
        parameters=dict(parameters),
        outputs=tuple(_parse_outputs(data.get("outputs", {}))),
        region=region or str(data.get("region", "")),
    )
    if overrides:
        definition = definition.with_parameters(overrides)
    return definition


def load_stack(
    path: str | Path,
    stack_name: Optional[str] = None,
    region: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> StackDefinition:
    """Read and parse a stack declaration file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise StackDefinitionError(f"Stack file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise StackDefinitionError(f"Stack file {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise StackDefinitionError(f"Cannot read stack file {path}: {e}") from e

    definition = parse_stack(data, stack_name, region, overrides)
    logger.debug(
        "Loaded stack %s from %s: %d resource(s)",
        definition.stack_name, path, len(definition.resources),
    )
    return definition
