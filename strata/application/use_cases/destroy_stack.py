"""
Destroy Stack Use Case

Architectural Intent:
- Tears down every resource tracked in the State Record
- Requires a confirmation token equal to the stack name
- Deletes run in reverse dependency order through the execution engine
"""

import asyncio
import logging
import time
from typing import Optional

from strata.application.dtos.stack_dtos import DestroyRequest, RunReport
from strata.application.orchestration.execution_engine import ExecutionEngine
from strata.domain.errors import DestroyConfirmationError
from strata.domain.events.event_base import StackRunCompleted, StackRunStarted
from strata.domain.ports.event_bus_port import EventBusPort
from strata.domain.ports.state_store_port import StateStorePort
from strata.domain.services.diff_engine import DiffEngine

logger = logging.getLogger(__name__)


class DestroyStack:
    def __init__(
        self,
        state_store: StateStorePort,
        engine: ExecutionEngine,
        diff_engine: DiffEngine,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.state_store = state_store
        self.engine = engine
        self.diff_engine = diff_engine
        self.event_bus = event_bus

    async def execute(
        self,
        request: DestroyRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunReport:
        if request.confirmation != request.stack_name:
            raise DestroyConfirmationError(request.stack_name)

        started = time.monotonic()
        state = self.state_store.load(request.stack_name)
        change_set = self.diff_engine.destroy_plan(state)
        logger.warning(
            "Destroying stack %s: %d tracked resource(s)",
            request.stack_name,
            len(change_set),
        )

        if self.event_bus:
            await self.event_bus.publish([
                StackRunStarted(
                    aggregate_id=request.stack_name,
                    operation="destroy",
                    change_count=len(change_set),
                )
            ])

        result = await self.engine.execute(
            change_set,
            state=state,
            operation="destroy",
            cancel_event=cancel_event,
        )
        report = RunReport(
            stack_name=request.stack_name,
            operation="destroy",
            status=result.run.status,
            change_set=change_set,
            results=tuple(result.run.results()),
            outputs={},
            duration_seconds=time.monotonic() - started,
        )
        self.state_store.record_run(
            request.stack_name, "destroy", report.status.value, report.summary()
        )

        if self.event_bus:
            await self.event_bus.publish([
                StackRunCompleted(
                    aggregate_id=request.stack_name,
                    operation="destroy",
                    status=report.status.value,
                    duration_seconds=report.duration_seconds,
                )
            ])
        return report
