"""
Simulated Resource Kinds

Architectural Intent:
- Declares every resource kind the simulated backend offers: required
  properties, mutable properties, and the property checks the remote API
  would perform before accepting a request
- Also shapes the attributes each kind exports once ready (ids, addresses)

Design Decisions:
- Validators receive a lookup callable so cross-resource rules (a subnet
  must sit inside its network's CIDR) consult the simulated registry
- Validation returns a list of messages instead of raising, so every
  problem with a request is reported at once
"""

from __future__ import annotations
import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

Lookup = Callable[[str], Optional[dict]]

PROTOCOLS = ("tcp", "udp", "icmp", "all")
GATEWAY_TYPES = ("internet", "nat")
STORAGE_CLASSES = ("STANDARD", "NEARLINE", "COLDLINE", "ARCHIVE")
_BUCKET_NAME = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
_MEMBER = re.compile(r"^(user|group|serviceAccount|domain):\S+$")


@dataclass(frozen=True)
class KindSchema:
    kind: str
    id_prefix: str
    collection: str
    required: frozenset[str]
    mutable: frozenset[str]
    check: Callable[[dict[str, Any], Lookup], list[str]]
    attributes: Callable[[str, dict[str, Any], Lookup], dict[str, Any]] = (
        lambda remote_id, spec, lookup: {}
    )
    defaults: dict[str, Any] = field(default_factory=dict)

    def validate(self, spec: dict[str, Any], lookup: Lookup) -> list[str]:
        missing = sorted(self.required - set(spec))
        errors = [f"{self.kind}: missing required property '{name}'" for name in missing]
        if not errors:
            errors.extend(f"{self.kind}: {msg}" for msg in self.check(spec, lookup))
        return errors


def _parse_cidr(value: Any, errors: list[str], label: str = "cidr_block"):
    try:
        return ipaddress.ip_network(str(value), strict=True)
    except ValueError as e:
        errors.append(f"invalid {label} {value!r}: {e}")
        return None


def _expect_kind(lookup: Lookup, remote_id: Any, kind: str, label: str, errors: list[str]) -> Optional[dict]:
    remote = lookup(str(remote_id))
    if remote is None:
        errors.append(f"{label} {remote_id!r} does not exist")
        return None
    if remote["kind"] != kind:
        errors.append(f"{label} {remote_id!r} is a {remote['kind']}, expected {kind}")
        return None
    return remote


def _check_tags(spec: dict[str, Any], errors: list[str]) -> None:
    tags = spec.get("tags", {})
    if not isinstance(tags, dict):
        errors.append("tags must be a mapping")
    elif not all(isinstance(k, str) and isinstance(v, str) for k, v in tags.items()):
        errors.append("tag keys and values must be strings")


# -- network -----------------------------------------------------------------

def _check_network(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    network = _parse_cidr(spec["cidr_block"], errors)
    if network is not None and not 16 <= network.prefixlen <= 28:
        errors.append(f"cidr_block {spec['cidr_block']} must have a prefix between /16 and /28")
    _check_tags(spec, errors)
    return errors


def _network_attributes(remote_id: str, spec: dict[str, Any], lookup: Lookup) -> dict[str, Any]:
    return {
        "cidr_block": spec["cidr_block"],
        "default_route_table_id": f"rtb-{remote_id.split('-', 1)[1]}",
    }


# -- subnet ------------------------------------------------------------------

def _check_subnet(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    """Subnet rules.

    ``private`` is accepted as a flag and exported as an attribute, but the
    simulated backend only approximates it: a private subnet without a NAT
    gateway has no outbound route, and nothing here enforces isolation.
    """
    errors: list[str] = []
    subnet = _parse_cidr(spec["cidr_block"], errors)
    remote = _expect_kind(lookup, spec["network_id"], "network", "network_id", errors)
    if subnet is not None and remote is not None:
        network = ipaddress.ip_network(remote["spec"]["cidr_block"])
        if subnet.version != network.version or not subnet.subnet_of(network):
            errors.append(
                f"cidr_block {spec['cidr_block']} is not inside network "
                f"{remote['spec']['cidr_block']}"
            )
    if not isinstance(spec.get("private", False), bool):
        errors.append("private must be a boolean")
    _check_tags(spec, errors)
    return errors


def _subnet_attributes(remote_id: str, spec: dict[str, Any], lookup: Lookup) -> dict[str, Any]:
    return {
        "cidr_block": spec["cidr_block"],
        "network_id": spec["network_id"],
        "availability_zone": spec.get("availability_zone", ""),
        "private": bool(spec.get("private", False)),
    }


# -- gateway -----------------------------------------------------------------

def _check_gateway(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    gateway_type = spec["gateway_type"]
    if gateway_type not in GATEWAY_TYPES:
        errors.append(f"gateway_type must be one of {', '.join(GATEWAY_TYPES)}, got {gateway_type!r}")
    _expect_kind(lookup, spec["network_id"], "network", "network_id", errors)
    if gateway_type == "nat":
        if "subnet_id" not in spec:
            errors.append("a nat gateway requires subnet_id")
        else:
            _expect_kind(lookup, spec["subnet_id"], "subnet", "subnet_id", errors)
    _check_tags(spec, errors)
    return errors


def _gateway_attributes(remote_id: str, spec: dict[str, Any], lookup: Lookup) -> dict[str, Any]:
    attributes = {"gateway_type": spec["gateway_type"]}
    if spec["gateway_type"] == "nat":
        octet = int(remote_id.split("-", 1)[1][:2], 16)
        attributes["public_ip"] = f"203.0.113.{octet}"
    return attributes


# -- route-table -------------------------------------------------------------

def _check_route_table(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    _expect_kind(lookup, spec["network_id"], "network", "network_id", errors)
    routes = spec.get("routes", [])
    if not isinstance(routes, list):
        errors.append("routes must be a list")
        routes = []
    for i, route in enumerate(routes):
        if not isinstance(route, dict) or "destination" not in route or "gateway_id" not in route:
            errors.append(f"routes[{i}] needs destination and gateway_id")
            continue
        _parse_cidr(route["destination"], errors, f"routes[{i}].destination")
        _expect_kind(lookup, route["gateway_id"], "gateway", f"routes[{i}].gateway_id", errors)
    subnet_ids = spec.get("subnet_ids", [])
    if not isinstance(subnet_ids, list):
        errors.append("subnet_ids must be a list")
    else:
        for subnet_id in subnet_ids:
            _expect_kind(lookup, subnet_id, "subnet", "subnet_ids entry", errors)
    return errors


# -- compute-instance --------------------------------------------------------

def _check_instance(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    _expect_kind(lookup, spec["subnet_id"], "subnet", "subnet_id", errors)
    for rule_id in spec.get("security_rule_ids", []):
        _expect_kind(lookup, rule_id, "security-rule", "security_rule_ids entry", errors)
    if not isinstance(spec["instance_type"], str) or "." not in spec["instance_type"]:
        errors.append(f"instance_type {spec['instance_type']!r} is not a valid size (e.g. t3.micro)")
    _check_tags(spec, errors)
    return errors


def _instance_attributes(remote_id: str, spec: dict[str, Any], lookup: Lookup) -> dict[str, Any]:
    subnet = lookup(str(spec["subnet_id"]))
    private_ip = ""
    if subnet is not None:
        hosts = ipaddress.ip_network(subnet["spec"]["cidr_block"]).hosts()
        # Skip the addresses the provider reserves at the start of a subnet.
        for _ in range(4):
            next(hosts, None)
        private_ip = str(next(hosts, ""))
    attributes = {
        "private_ip": private_ip,
        "instance_type": spec["instance_type"],
        "state": "running",
    }
    if subnet is not None and not subnet["spec"].get("private", False):
        octet = int(remote_id.split("-", 1)[1][:2], 16)
        attributes["public_ip"] = f"198.51.100.{octet}"
    return attributes


# -- security-rule -----------------------------------------------------------

def _check_security_rule(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    _expect_kind(lookup, spec["network_id"], "network", "network_id", errors)
    if spec["direction"] not in ("ingress", "egress"):
        errors.append(f"direction must be ingress or egress, got {spec['direction']!r}")
    protocol = spec["protocol"]
    if protocol not in PROTOCOLS:
        errors.append(f"protocol must be one of {', '.join(PROTOCOLS)}, got {protocol!r}")
    if protocol in ("tcp", "udp"):
        from_port = spec.get("from_port")
        to_port = spec.get("to_port", from_port)
        ports_ok = all(
            isinstance(p, int) and not isinstance(p, bool) and 0 <= p <= 65535
            for p in (from_port, to_port)
        )
        if not ports_ok:
            errors.append(f"ports must be integers in 0-65535, got {from_port!r}-{to_port!r}")
        elif from_port > to_port:
            errors.append(f"from_port {from_port} is greater than to_port {to_port}")
    _parse_cidr(spec.get("cidr", "0.0.0.0/0"), errors, "cidr")
    return errors


# -- policy-binding ----------------------------------------------------------

def _check_policy_binding(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    if not _MEMBER.match(str(spec["member"])):
        errors.append(f"member {spec['member']!r} must look like user:, group:, serviceAccount: or domain:")
    if not str(spec["role"]).startswith("roles/"):
        errors.append(f"role {spec['role']!r} must start with roles/")
    if lookup(str(spec["target"])) is None:
        errors.append(f"target {spec['target']!r} does not exist")
    return errors


# -- storage-bucket ----------------------------------------------------------

def _check_bucket(spec: dict[str, Any], lookup: Lookup) -> list[str]:
    errors: list[str] = []
    name = str(spec["name"])
    if not _BUCKET_NAME.match(name) or ".." in name:
        errors.append(f"bucket name {name!r} must be 3-63 lowercase letters, digits, dots or hyphens")
    if spec.get("storage_class", "STANDARD") not in STORAGE_CLASSES:
        errors.append(f"storage_class must be one of {', '.join(STORAGE_CLASSES)}")
    if not isinstance(spec.get("versioning", False), bool):
        errors.append("versioning must be a boolean")
    return errors


def _bucket_attributes(remote_id: str, spec: dict[str, Any], lookup: Lookup) -> dict[str, Any]:
    return {
        "url": f"gs://{spec['name']}",
        "storage_class": spec.get("storage_class", "STANDARD"),
    }


KIND_SCHEMAS: dict[str, KindSchema] = {
    schema.kind: schema
    for schema in (
        KindSchema(
            kind="network", id_prefix="net", collection="networks",
            required=frozenset({"cidr_block"}),
            mutable=frozenset({"tags"}),
            check=_check_network, attributes=_network_attributes,
        ),
        KindSchema(
            kind="subnet", id_prefix="subnet", collection="subnetworks",
            required=frozenset({"network_id", "cidr_block"}),
            mutable=frozenset({"tags"}),
            check=_check_subnet, attributes=_subnet_attributes,
        ),
        KindSchema(
            kind="gateway", id_prefix="gw", collection="gateways",
            required=frozenset({"network_id", "gateway_type"}),
            mutable=frozenset({"tags"}),
            check=_check_gateway, attributes=_gateway_attributes,
        ),
        KindSchema(
            kind="route-table", id_prefix="rtb", collection="routeTables",
            required=frozenset({"network_id"}),
            mutable=frozenset({"routes", "subnet_ids", "tags"}),
            check=_check_route_table,
        ),
        KindSchema(
            kind="compute-instance", id_prefix="i", collection="instances",
            required=frozenset({"subnet_id", "image", "instance_type"}),
            mutable=frozenset({"instance_type", "security_rule_ids", "tags"}),
            check=_check_instance, attributes=_instance_attributes,
        ),
        KindSchema(
            kind="security-rule", id_prefix="sgr", collection="firewallRules",
            required=frozenset({"network_id", "direction", "protocol"}),
            mutable=frozenset({"description", "cidr"}),
            check=_check_security_rule,
        ),
        KindSchema(
            kind="policy-binding", id_prefix="pb", collection="policyBindings",
            required=frozenset({"member", "role", "target"}),
            mutable=frozenset(),
            check=_check_policy_binding,
        ),
        KindSchema(
            kind="storage-bucket", id_prefix="bkt", collection="buckets",
            required=frozenset({"name"}),
            mutable=frozenset({"versioning", "storage_class", "labels"}),
            check=_check_bucket, attributes=_bucket_attributes,
        ),
    )
}
