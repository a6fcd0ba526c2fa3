"""
Simulated Cloud Provisioning Backend

Architectural Intent:
- Implements ProvisioningPort for every kind in KIND_SCHEMAS against an
  in-memory registry that plays the role of a remote provisioning API
- Operations are asynchronous in the way real APIs are: create, update and
  delete are accepted immediately and settle only after a configurable
  number of describe() polls
- Enables integration testing and local development with zero credentials

Design Decisions:
- One SimulatedCloud holds the registry; one SimulatedKindAdapter per kind
  exposes the typed capability interface over it
- Every simulated API call is logged with a REST-shaped request payload
- Quotas, kinds unsupported in a region and fault injection (names that
  fail or never settle) are constructor configuration so tests can provoke
  each failure path deterministically

Simulated defaults:
  region       : us-east-1
  settle_polls : 1
"""

import json
import logging
import os
import uuid
from pathlib import Path
from datetime import datetime, UTC
from typing import Any, Iterable, Optional

from strata.domain.errors import RemoteRejectionError
from strata.domain.ports.provisioning_port import KindRegistry
from strata.domain.value_objects.remote_status import RemoteState, RemoteStatus
from strata.infrastructure.adapters.resource_kinds import KIND_SCHEMAS, KindSchema

logger = logging.getLogger(__name__)


def _make_remote_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:17]}"


def _self_link(region: str, collection: str, remote_id: str) -> str:
    return f"https://provisioning.example.com/v1/regions/{region}/{collection}/{remote_id}"


class SimulatedCloud:
    """
    In-memory provisioning API, optionally persisted to registry_path so
    separate CLI invocations see the same simulated resources.

    Each registry entry is a dict shaped like a REST resource:
    {"id", "kind", "name", "spec", "status", "pendingPolls", "operation",
     "selfLink", "creationTimestamp", "message"}

    status is one of CREATING, UPDATING, DELETING, READY, FAILED.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        settle_polls: int = 1,
        quotas: Optional[dict[str, int]] = None,
        unsupported_kinds: Iterable[str] = (),
        fail_names: Iterable[str] = (),
        stuck_names: Iterable[str] = (),
        registry_path: Optional[str] = None,
    ) -> None:
        if settle_polls < 0:
            raise ValueError("settle_polls cannot be negative")
        self.region = region
        self.settle_polls = settle_polls
        self.quotas = dict(quotas or {})
        self.unsupported_kinds = frozenset(unsupported_kinds)
        self.fail_names = set(fail_names)
        self.stuck_names = set(stuck_names)
        self.registry_path = Path(registry_path) if registry_path else None
        self._resources: dict[str, dict] = self._load_registry()
        self.calls: list[tuple[str, str]] = []

        logger.debug(
            "SimulatedCloud initialised (region=%s, settle_polls=%d, unsupported=%s)",
            region, settle_polls, sorted(self.unsupported_kinds),
        )

    # -- Registry persistence ------------------------------------------------

    def _load_registry(self) -> dict[str, dict]:
        """Reload resources "created" by earlier processes, when persisted."""
        if self.registry_path is None or not self.registry_path.exists():
            return {}
        with open(self.registry_path) as f:
            data = json.load(f)
        resources = data.get("resources", {}) if isinstance(data, dict) else {}
        logger.debug("Loaded %d simulated resource(s) from %s", len(resources), self.registry_path)
        return resources

    def _save_registry(self) -> None:
        if self.registry_path is None:
            return
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.registry_path.with_suffix(self.registry_path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump({"region": self.region, "resources": self._resources}, f, indent=2)
        os.replace(tmp, self.registry_path)

    # -- Registry helpers ----------------------------------------------------

    def kinds(self) -> list[str]:
        return [k for k in KIND_SCHEMAS if k not in self.unsupported_kinds]

    def lookup(self, remote_id: str) -> Optional[dict]:
        entry = self._resources.get(remote_id)
        if entry is None or entry["status"] == "DELETING":
            return None
        return entry

    def live(self, kind: Optional[str] = None) -> list[dict]:
        return [
            e for e in self._resources.values()
            if e["status"] != "DELETING" and (kind is None or e["kind"] == kind)
        ]

    def _name_of(self, spec: dict[str, Any]) -> str:
        name = spec.get("name")
        if name is None and isinstance(spec.get("tags"), dict):
            name = spec["tags"].get("Name")
        return str(name) if name is not None else ""

    def _check_supported(self, kind: str) -> KindSchema:
        if kind not in KIND_SCHEMAS or kind in self.unsupported_kinds:
            raise RemoteRejectionError(
                f"Resource kind '{kind}' is not available in region {self.region}"
            )
        return KIND_SCHEMAS[kind]

    # -- API surface ---------------------------------------------------------

    async def create(self, kind: str, spec: dict[str, Any]) -> str:
        schema = self._check_supported(kind)
        quota = self.quotas.get(kind)
        if quota is not None and len(self.live(kind)) >= quota:
            raise RemoteRejectionError(
                f"Quota exceeded for {kind} in {self.region}: limit {quota}"
            )
        errors = schema.validate(spec, self.lookup)
        if errors:
            raise RemoteRejectionError("; ".join(errors), errors)

        remote_id = _make_remote_id(schema.id_prefix)
        name = self._name_of(spec)
        logger.info(
            "POST /v1/regions/%s/%s name=%s -> %s",
            self.region, schema.collection, name or "-", remote_id,
            extra={"remote_id": remote_id},
        )
        logger.debug("create payload for %s: %s", remote_id, spec)
        self._resources[remote_id] = {
            "id": remote_id,
            "kind": kind,
            "name": name,
            "spec": dict(spec),
            "status": "CREATING",
            "pendingPolls": self.settle_polls,
            "operation": "insert",
            "selfLink": _self_link(self.region, schema.collection, remote_id),
            "creationTimestamp": datetime.now(UTC).isoformat(),
            "message": "",
        }
        self.calls.append(("create", remote_id))
        self._save_registry()
        return remote_id

    async def update(self, remote_id: str, spec: dict[str, Any]) -> None:
        entry = self.lookup(remote_id)
        if entry is None:
            raise RemoteRejectionError(f"Resource {remote_id} not found")
        schema = KIND_SCHEMAS[entry["kind"]]
        immutable = sorted(
            k for k in set(entry["spec"]) | set(spec)
            if entry["spec"].get(k) != spec.get(k) and k not in schema.mutable
        )
        if immutable:
            raise RemoteRejectionError(
                f"Cannot update immutable properties of {remote_id}: {', '.join(immutable)}"
            )
        errors = schema.validate(spec, self.lookup)
        if errors:
            raise RemoteRejectionError("; ".join(errors), errors)

        logger.info("PATCH %s", entry["selfLink"], extra={"remote_id": remote_id})
        logger.debug("update payload for %s: %s", remote_id, spec)
        entry.update(
            spec=dict(spec),
            status="UPDATING",
            pendingPolls=self.settle_polls,
            operation="patch",
            message="",
        )
        self.calls.append(("update", remote_id))
        self._save_registry()

    async def delete(self, remote_id: str) -> None:
        entry = self._resources.get(remote_id)
        if entry is None:
            logger.info("DELETE %s: already absent", remote_id)
            self.calls.append(("delete", remote_id))
            return
        logger.info("DELETE %s", entry["selfLink"], extra={"remote_id": remote_id})
        entry.update(
            status="DELETING",
            pendingPolls=self.settle_polls,
            operation="delete",
        )
        self.calls.append(("delete", remote_id))
        self._save_registry()

    async def describe(self, remote_id: str) -> RemoteStatus:
        entry = self._resources.get(remote_id)
        if entry is None:
            return RemoteStatus.absent()

        if entry["status"] in ("CREATING", "UPDATING", "DELETING"):
            if entry["name"] in self.stuck_names:
                return RemoteStatus(RemoteState.PENDING, message=f"{entry['operation']} in progress")
            if entry["pendingPolls"] > 0:
                entry["pendingPolls"] -= 1
                return RemoteStatus(RemoteState.PENDING, message=f"{entry['operation']} in progress")
            self._settle(entry)
            self._save_registry()
            if remote_id not in self._resources:
                return RemoteStatus.absent()

        if entry["status"] == "FAILED":
            return RemoteStatus(RemoteState.FAILED, message=entry["message"])
        return RemoteStatus(RemoteState.READY, attributes=self._attributes(entry))

    def _settle(self, entry: dict) -> None:
        if entry["status"] == "DELETING":
            del self._resources[entry["id"]]
            logger.debug("%s deleted", entry["id"])
            return
        if entry["name"] in self.fail_names:
            entry["status"] = "FAILED"
            entry["message"] = (
                f"Operation {entry['operation']} on {entry['id']} failed: "
                f"simulated fault for {entry['name']}"
            )
            logger.debug("%s failed (injected)", entry["id"])
            return
        entry["status"] = "READY"
        logger.debug("%s ready", entry["id"])

    def _attributes(self, entry: dict) -> dict[str, Any]:
        schema = KIND_SCHEMAS[entry["kind"]]
        attributes = {
            "id": entry["id"],
            "self_link": entry["selfLink"],
            "region": self.region,
        }
        attributes.update(schema.attributes(entry["id"], entry["spec"], self.lookup))
        return attributes


class SimulatedKindAdapter:
    """ProvisioningPort for one kind, backed by a SimulatedCloud."""

    def __init__(self, cloud: SimulatedCloud, kind: str) -> None:
        self.cloud = cloud
        self.kind = kind
        self._schema = KIND_SCHEMAS[kind]
        self.mutable_properties = self._schema.mutable

    async def validate(self, spec: dict[str, Any]) -> list[str]:
        if self.kind in self.cloud.unsupported_kinds:
            return [f"Resource kind '{self.kind}' is not available in region {self.cloud.region}"]
        return self._schema.validate(spec, self.cloud.lookup)

    async def create(self, spec: dict[str, Any]) -> str:
        return await self.cloud.create(self.kind, spec)

    async def describe(self, remote_id: str) -> RemoteStatus:
        return await self.cloud.describe(remote_id)

    async def update(self, remote_id: str, spec: dict[str, Any]) -> None:
        await self.cloud.update(remote_id, spec)

    async def delete(self, remote_id: str) -> None:
        await self.cloud.delete(remote_id)


def build_simulated_registry(cloud: SimulatedCloud) -> KindRegistry:
    """Register an adapter for every kind the cloud offers in its region."""
    return KindRegistry(SimulatedKindAdapter(cloud, kind) for kind in cloud.kinds())
