"""
Execution Engine

Architectural Intent:
- Drives a ChangeSet to completion against the provisioning adapters
- Each actionable entry becomes one WorkflowStep in a DAGOrchestrator, so
  dependency gating, bounded concurrency, cascade skip, abort and
  cancellation all come from one scheduler. A replace is split into a
  teardown step and a create step so old copies are removed in reverse
  dependency order
- Sole writer of the State Record; each logical id is written only by its
  own step, and every transition is persisted before the step returns, so
  dependents never start ahead of durable state

Failure Handling:
- Rejections and remote failures mark the resource Failed in state
- Timeouts leave the record in its last in-progress state for a later run
- Cancellation stops waiting; no rollback is attempted
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from strata.application.orchestration.dag_orchestrator import (
    DAGOrchestrator,
    StepState,
    WorkflowStep,
)
from strata.application.orchestration.wait_monitor import WaitMonitor, WaitPolicy, WaitTarget
from strata.domain.entities.change_set import ChangeSet, ChangeSetEntry, Operation
from strata.domain.entities.resource import Resource, ResourceStatus
from strata.domain.entities.resource_graph import ResourceGraph
from strata.domain.entities.stack_run import StackRun
from strata.domain.entities.state_record import ResourceRecord, StateRecord
from strata.domain.errors import (
    ProvisioningTimeoutError,
    RemoteRejectionError,
    UnresolvedReferenceError,
)
from strata.domain.ports.event_bus_port import EventBusPort
from strata.domain.ports.provisioning_port import KindRegistry, ProvisioningPort
from strata.domain.ports.state_store_port import StateStorePort
from strata.domain.value_objects.reference import ParamRef, Reference, substitute, to_canonical

logger = logging.getLogger(__name__)


class FailurePolicy(Enum):
    ABORT = "abort"
    CONTINUE = "continue"


_IN_PROGRESS = {
    Operation.CREATE: ResourceStatus.CREATING,
    Operation.REPLACE: ResourceStatus.DELETING,
    Operation.UPDATE: ResourceStatus.UPDATING,
    Operation.DELETE: ResourceStatus.DELETING,
}


@dataclass(frozen=True)
class EngineSettings:
    max_concurrency: int = 4
    failure_policy: FailurePolicy = FailurePolicy.ABORT
    wait_policy: WaitPolicy = field(default_factory=WaitPolicy)


@dataclass
class ExecutionResult:
    run: StackRun
    change_set: ChangeSet
    outputs: dict[str, Any] = field(default_factory=dict)


@dataclass
class _RunContext:
    stack_name: str
    run: StackRun
    state: StateRecord
    graph: Optional[ResourceGraph]
    outputs: dict[str, dict[str, Any]]
    cancel_event: Optional[asyncio.Event]
    removed: set[str] = field(default_factory=set)


def teardown_step_name(logical_id: str) -> str:
    """Step that removes the old copy of a resource being replaced."""
    return f"{logical_id}#delete"


def _reaches(depends: dict[str, list[str]], start: str, target: str) -> bool:
    """True when target is start or one of its transitive dependencies."""
    seen: set[str] = set()
    stack = [start]
    while stack:
        name = stack.pop()
        if name == target:
            return True
        if name not in seen:
            seen.add(name)
            stack.extend(depends.get(name, ()))
    return False


def record_attributes(record: ResourceRecord) -> dict[str, Any]:
    attributes = dict(record.outputs)
    if record.remote_id:
        attributes.setdefault("id", record.remote_id)
    return attributes


class ExecutionEngine:
    def __init__(
        self,
        registry: KindRegistry,
        state_store: StateStorePort,
        wait_monitor: Optional[WaitMonitor] = None,
        settings: Optional[EngineSettings] = None,
        event_bus: Optional[EventBusPort] = None,
    ) -> None:
        self.registry = registry
        self.state_store = state_store
        self.settings = settings or EngineSettings()
        self.wait_monitor = wait_monitor or WaitMonitor(self.settings.wait_policy)
        self.event_bus = event_bus

    async def execute(
        self,
        change_set: ChangeSet,
        graph: Optional[ResourceGraph] = None,
        state: Optional[StateRecord] = None,
        operation: str = "apply",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        stack_name = change_set.stack_name
        if state is None:
            state = self.state_store.load(stack_name)
        run = StackRun(stack_name, operation, change_set)
        ctx = _RunContext(
            stack_name=stack_name,
            run=run,
            state=state,
            graph=graph,
            outputs={
                name: record_attributes(record)
                for name, record in state.resources.items()
                if record.status == ResourceStatus.SUCCEEDED
            },
            cancel_event=cancel_event,
        )

        entries = change_set.actionable()
        steps, owners = self._plan_steps(state, entries, ctx)
        orchestrator = DAGOrchestrator(steps, max_concurrency=self.settings.max_concurrency)
        logger.info(
            "Executing %d change(s) on %s (concurrency=%d, policy=%s)",
            len(entries),
            stack_name,
            self.settings.max_concurrency,
            self.settings.failure_policy.value,
        )
        outcomes = await orchestrator.execute({}, cancel_event)

        for step in steps:
            outcome = outcomes.get(step.name)
            if outcome is None or outcome.state != StepState.SKIPPED:
                continue
            name = owners[step.name].logical_id
            # A replace is two steps; only its first unfinished half is reported.
            if run.status_of(name) not in (ResourceStatus.PENDING, ResourceStatus.DELETING):
                continue
            blocker = owners[outcome.blocked_by].logical_id
            if outcome.blocked_by in step.depends_on:
                reason = f"prerequisite {blocker} did not succeed"
            else:
                reason = f"run aborted after {blocker} failed"
            if run.status_of(name) == ResourceStatus.DELETING:
                reason = f"previous resource removed; create skipped, {reason}"
            run.skip(name, blocker, reason)

        if cancel_event is not None and cancel_event.is_set():
            run.mark_cancelled()
            logger.warning("Run on %s cancelled; in-flight resources left in progress", stack_name)

        await self._publish(run)

        outputs: dict[str, Any] = {}
        if graph is not None:
            outputs = self._resolve_outputs(ctx)
            for name, binding in graph.outputs.items():
                # Unresolved this run: keep the stored value while its owner still exists.
                if name not in outputs and name in state.outputs \
                        and binding.ref.resource not in ctx.removed:
                    outputs[name] = state.outputs[name]
        self.state_store.write_outputs(stack_name, outputs)
        return ExecutionResult(run=run, change_set=change_set, outputs=outputs)

    def _plan_steps(
        self,
        state: StateRecord,
        entries: list[ChangeSetEntry],
        ctx: _RunContext,
    ) -> tuple[list[WorkflowStep], dict[str, ChangeSetEntry]]:
        """One step per entry; a replace gets a separate teardown step.

        Teardowns follow the stored dependency edges in reverse: a remote
        resource is removed only after every stored dependent that is also
        being removed (deleted, or torn down for a replace) is gone. A
        replace's create half waits for its own teardown and for the
        entry's prerequisites. A teardown ordering edge that would close a
        cycle with those is dropped.
        """
        critical = self.settings.failure_policy == FailurePolicy.ABORT
        teardowns = {
            e.logical_id: teardown_step_name(e.logical_id)
            if e.operation == Operation.REPLACE else e.logical_id
            for e in entries
            if e.operation in (Operation.REPLACE, Operation.DELETE)
        }

        owners: dict[str, ChangeSetEntry] = {}
        depends: dict[str, list[str]] = {}
        ordering: list[tuple[str, str]] = []
        for entry in entries:
            name = entry.logical_id
            depends_on = [p for p in entry.prerequisites if p in ctx.run]
            if entry.operation == Operation.REPLACE:
                owners[teardowns[name]] = entry
                depends[teardowns[name]] = []
                depends_on.append(teardowns[name])
            elif entry.operation == Operation.DELETE:
                # Only the old copy of a replaced dependent has to be gone.
                depends_on = [teardowns.get(p, p) for p in depends_on]
            owners[name] = entry
            depends[name] = depends_on
            if name in teardowns:
                ordering += [
                    (teardowns[name], teardowns[other])
                    for other, record in state.resources.items()
                    if other != name and other in teardowns and name in record.depends_on
                ]

        for step, first in ordering:
            if first not in depends[step] and not _reaches(depends, first, step):
                depends[step].append(first)

        steps = [
            WorkflowStep(
                step,
                self._make_step(ctx, owners[step], teardown=step != owners[step].logical_id),
                depends_on=depends_on,
                is_critical=critical,
            )
            for step, depends_on in depends.items()
        ]
        return steps, owners

    def _make_step(self, ctx: _RunContext, entry: ChangeSetEntry, teardown: bool = False):
        async def step(context: dict[str, Any], results: dict[str, Any]) -> dict[str, Any]:
            return await self._apply_entry(ctx, entry, teardown)

        return step

    async def _apply_entry(
        self, ctx: _RunContext, entry: ChangeSetEntry, teardown: bool = False
    ) -> dict[str, Any]:
        name = entry.logical_id
        previous = ctx.state.get(name)
        context = self._log_context(ctx, entry)
        try:
            adapter = self._adapter(entry.kind)
            if entry.operation == Operation.CREATE:
                return await self._create(ctx, entry, adapter)
            if entry.operation == Operation.UPDATE:
                return await self._update(ctx, entry, adapter)
            if entry.operation == Operation.REPLACE:
                if teardown:
                    await self._delete(ctx, entry, adapter, replacing=True)
                    return {}
                return await self._create(ctx, entry, adapter)
            await self._delete(ctx, entry, adapter, replacing=False)
            return {}
        except asyncio.CancelledError:
            logger.info("%s: %s cancelled", name, entry.operation.value, extra=context)
            raise
        except ProvisioningTimeoutError as e:
            logger.error("%s: %s timed out: %s", name, entry.operation.value, e, extra=context)
            self._fail(ctx, entry, e)
            await self._publish(ctx.run)
            raise
        except Exception as e:
            logger.error("%s: %s failed: %s", name, entry.operation.value, e, extra=context)
            self._fail(ctx, entry, e)
            self._persist_failure(ctx, entry, previous, e)
            await self._publish(ctx.run)
            raise

    @staticmethod
    def _log_context(ctx: _RunContext, entry: ChangeSetEntry) -> dict[str, str]:
        return {
            "stack": ctx.stack_name,
            "logical_id": entry.logical_id,
            "operation": entry.operation.value,
        }

    def _adapter(self, kind: str) -> ProvisioningPort:
        try:
            return self.registry.get(kind)
        except KeyError as e:
            raise RemoteRejectionError(str(e.args[0])) from e

    async def _create(
        self, ctx: _RunContext, entry: ChangeSetEntry, adapter: ProvisioningPort
    ) -> dict[str, Any]:
        name = entry.logical_id
        resource = self._declared(ctx, name)
        ctx.run.transition(name, ResourceStatus.CREATING, "create issued")
        await self._publish(ctx.run)

        spec = self._resolve_spec(ctx, resource)
        await self._validate(adapter, spec)
        remote_id = await adapter.create(spec)
        logger.info("%s: create accepted as %s", name, remote_id,
                    extra=self._log_context(ctx, entry))
        self._store(ctx, name, self._record(resource, ResourceStatus.CREATING, remote_id))

        status = await self.wait_monitor.wait(adapter, remote_id, WaitTarget.READY, ctx.cancel_event)
        return await self._succeed(ctx, resource, remote_id, status.attributes)

    async def _update(
        self, ctx: _RunContext, entry: ChangeSetEntry, adapter: ProvisioningPort
    ) -> dict[str, Any]:
        name = entry.logical_id
        resource = self._declared(ctx, name)
        record = ctx.state.get(name)
        if record is None or not record.remote_id:
            raise RemoteRejectionError(f"{name} has no remote identifier to update")
        ctx.run.transition(name, ResourceStatus.UPDATING, "update issued")
        await self._publish(ctx.run)

        spec = self._resolve_spec(ctx, resource)
        await self._validate(adapter, spec)
        await adapter.update(record.remote_id, spec)
        logger.info("%s: update accepted for %s", name, record.remote_id,
                    extra=self._log_context(ctx, entry))
        self._store(ctx, name, self._record(resource, ResourceStatus.UPDATING, record.remote_id))

        status = await self.wait_monitor.wait(
            adapter, record.remote_id, WaitTarget.READY, ctx.cancel_event
        )
        return await self._succeed(ctx, resource, record.remote_id, status.attributes)

    async def _delete(
        self,
        ctx: _RunContext,
        entry: ChangeSetEntry,
        adapter: ProvisioningPort,
        replacing: bool,
    ) -> None:
        name = entry.logical_id
        record = ctx.state.get(name)
        ctx.run.transition(name, ResourceStatus.DELETING, "delete issued")
        await self._publish(ctx.run)

        if record is not None and record.remote_id:
            await adapter.delete(record.remote_id)
            ctx.removed.add(name)
            logger.info("%s: delete accepted for %s", name, record.remote_id,
                        extra=self._log_context(ctx, entry))
            self.state_store.update_resource(
                ctx.stack_name,
                name,
                lambda current: (current or record).with_status(ResourceStatus.DELETING),
            )
            await self.wait_monitor.wait(
                adapter, record.remote_id, WaitTarget.ABSENT, ctx.cancel_event
            )
        ctx.outputs.pop(name, None)

        if replacing:
            self.state_store.update_resource(
                ctx.stack_name,
                name,
                lambda current: ResourceRecord(
                    logical_id=name,
                    kind=entry.kind,
                    status=ResourceStatus.DELETING,
                    message="replaced, awaiting create",
                ),
            )
            return

        self.state_store.update_resource(ctx.stack_name, name, lambda current: None)
        ctx.run.transition(name, ResourceStatus.DELETED)
        await self._publish(ctx.run)

    async def _succeed(
        self,
        ctx: _RunContext,
        resource: Resource,
        remote_id: str,
        attributes: dict[str, Any],
    ) -> dict[str, Any]:
        name = resource.logical_id
        exported = dict(attributes)
        exported.setdefault("id", remote_id)
        self._store(
            ctx, name, self._record(resource, ResourceStatus.SUCCEEDED, remote_id, exported)
        )
        ctx.outputs[name] = exported
        ctx.run.transition(name, ResourceStatus.SUCCEEDED)
        await self._publish(ctx.run)
        return exported

    @staticmethod
    async def _validate(adapter: ProvisioningPort, spec: dict[str, Any]) -> None:
        errors = await adapter.validate(spec)
        if errors:
            raise RemoteRejectionError("; ".join(errors), errors)

    @staticmethod
    def _declared(ctx: _RunContext, name: str) -> Resource:
        if ctx.graph is None or name not in ctx.graph:
            raise RemoteRejectionError(f"{name} is not declared in the stack")
        return ctx.graph.get(name)

    @staticmethod
    def _resolve_spec(ctx: _RunContext, resource: Resource) -> dict[str, Any]:
        def resolve(ref: Reference) -> Any:
            if isinstance(ref, ParamRef):
                raise UnresolvedReferenceError(resource.logical_id, str(ref))
            attributes = ctx.outputs.get(ref.resource)
            if attributes is None or ref.attribute not in attributes:
                raise UnresolvedReferenceError(resource.logical_id, str(ref))
            return attributes[ref.attribute]

        return substitute(resource.properties, resolve)

    @staticmethod
    def _record(
        resource: Resource,
        status: ResourceStatus,
        remote_id: str,
        outputs: Optional[dict[str, Any]] = None,
    ) -> ResourceRecord:
        return ResourceRecord(
            logical_id=resource.logical_id,
            kind=resource.kind,
            status=status,
            remote_id=remote_id,
            config_hash=resource.config_hash().value,
            outputs=outputs or {},
            properties=to_canonical(resource.properties),
            depends_on=resource.dependencies(),
        )

    def _store(self, ctx: _RunContext, name: str, record: ResourceRecord) -> None:
        self.state_store.update_resource(ctx.stack_name, name, lambda current: record)

    @staticmethod
    def _fail(ctx: _RunContext, entry: ChangeSetEntry, error: BaseException) -> None:
        name = entry.logical_id
        if ctx.run.status_of(name) == ResourceStatus.PENDING:
            # Failed before any remote call was issued.
            ctx.run.transition(name, _IN_PROGRESS[entry.operation], "preparing")
        ctx.run.fail(name, error)

    def _persist_failure(
        self,
        ctx: _RunContext,
        entry: ChangeSetEntry,
        previous: Optional[ResourceRecord],
        error: BaseException,
    ) -> None:
        message = str(error)
        applied = previous is not None and previous.config_hash is not None

        def mutate(current: Optional[ResourceRecord]) -> ResourceRecord:
            base = current or previous
            if base is None:
                return ResourceRecord(
                    logical_id=entry.logical_id,
                    kind=entry.kind,
                    status=ResourceStatus.FAILED,
                    message=message,
                )
            if entry.operation == Operation.UPDATE and applied:
                # Keep the last configuration that actually applied, even
                # across repeated failed updates.
                return ResourceRecord(
                    logical_id=previous.logical_id,
                    kind=previous.kind,
                    status=ResourceStatus.FAILED,
                    remote_id=base.remote_id,
                    config_hash=previous.config_hash,
                    outputs=previous.outputs,
                    properties=previous.properties,
                    depends_on=previous.depends_on,
                    message=message,
                )
            if entry.operation == Operation.DELETE:
                return base.with_status(ResourceStatus.FAILED, message)
            return ResourceRecord(
                logical_id=base.logical_id,
                kind=base.kind,
                status=ResourceStatus.FAILED,
                remote_id=base.remote_id,
                config_hash=None,
                outputs=base.outputs,
                properties=base.properties,
                depends_on=base.depends_on,
                message=message,
            )

        self.state_store.update_resource(ctx.stack_name, entry.logical_id, mutate)

    def _resolve_outputs(self, ctx: _RunContext) -> dict[str, Any]:
        outputs: dict[str, Any] = {}
        for name, binding in ctx.graph.outputs.items():
            owner = binding.ref.resource
            if owner in ctx.run and not ctx.run.status_of(owner).is_success:
                logger.warning("Output %s unavailable: %s did not succeed", name, owner)
                continue
            attributes = ctx.outputs.get(owner, {})
            if binding.ref.attribute not in attributes:
                logger.warning("Output %s unavailable: %s has no attribute %s",
                               name, owner, binding.ref.attribute)
                continue
            outputs[name] = attributes[binding.ref.attribute]
        return outputs

    async def _publish(self, run: StackRun) -> None:
        events = run.collect_events()
        if self.event_bus is not None and events:
            await self.event_bus.publish(events)
