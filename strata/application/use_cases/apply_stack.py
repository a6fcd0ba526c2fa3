"""
Apply Stack Use Case

Architectural Intent:
- Builds the graph, diffs it against stored state and executes the result
- Create vs update is chosen by the diff engine, never by the caller
- Re-running after a crash is safe: already-succeeded resources diff to
  no-op and are skipped

Failure Handling:
- ValidationError aborts before any remote call
- StateCorruptionError is fatal and propagates to the caller
- Resource-scoped failures are reported in the RunReport
"""

import asyncio
import logging
import time
from typing import Optional

from strata.application.dtos.stack_dtos import RunReport
from strata.application.orchestration.execution_engine import ExecutionEngine
from strata.domain.entities.resource_graph import StackDefinition
from strata.domain.events.event_base import StackRunCompleted, StackRunStarted
from strata.domain.ports.event_bus_port import EventBusPort
from strata.domain.ports.provisioning_port import KindRegistry
from strata.domain.ports.state_store_port import StateStorePort
from strata.domain.services.diff_engine import DiffEngine
from strata.domain.services.graph_builder import build_graph

logger = logging.getLogger(__name__)


class ApplyStack:
    def __init__(
        self,
        registry: KindRegistry,
        state_store: StateStorePort,
        engine: ExecutionEngine,
        diff_engine: DiffEngine,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.registry = registry
        self.state_store = state_store
        self.engine = engine
        self.diff_engine = diff_engine
        self.event_bus = event_bus

    async def execute(
        self,
        definition: StackDefinition,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunReport:
        started = time.monotonic()
        graph = build_graph(definition, self.registry.kinds())
        state = self.state_store.load(graph.stack_name)
        change_set = self.diff_engine.compute(graph, state)

        if self.event_bus:
            await self.event_bus.publish([
                StackRunStarted(
                    aggregate_id=graph.stack_name,
                    operation="apply",
                    change_count=len(change_set.actionable()),
                )
            ])

        result = await self.engine.execute(
            change_set,
            graph=graph,
            state=state,
            operation="apply",
            cancel_event=cancel_event,
        )
        report = RunReport(
            stack_name=graph.stack_name,
            operation="apply",
            status=result.run.status,
            change_set=change_set,
            results=tuple(result.run.results()),
            outputs=result.outputs,
            duration_seconds=time.monotonic() - started,
        )
        self.state_store.record_run(
            graph.stack_name, "apply", report.status.value, report.summary()
        )
        logger.info("Apply of %s finished: %s", graph.stack_name, report.status.value)

        if self.event_bus:
            await self.event_bus.publish([
                StackRunCompleted(
                    aggregate_id=graph.stack_name,
                    operation="apply",
                    status=report.status.value,
                    duration_seconds=report.duration_seconds,
                )
            ])
        return report
