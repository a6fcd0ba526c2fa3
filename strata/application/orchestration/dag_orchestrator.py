"""
Workflow Orchestration Module

Architectural Intent:
- DAG-based execution of dependent units of work
- Automatically parallelizes independent steps up to a concurrency limit
- Enforces dependency ordering: a step starts only after every step it
  depends on has succeeded
- Supports run-level cancellation

Parallelization Strategy:
- A step is launched as soon as its dependencies succeed and a worker slot
  is free; launch order follows step declaration order
- Dependents of a failed, skipped or cancelled step are skipped
- A failed critical step stops all further launches; steps already running
  are allowed to finish
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Awaitable, Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class WorkflowStep:
    name: str
    execute: Callable[[dict[str, Any], dict[str, Any]], Awaitable[Any]]
    depends_on: list[str] = field(default_factory=list)
    is_critical: bool = True


class StepState(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    NOT_STARTED = "not_started"


@dataclass
class StepOutcome:
    name: str
    state: StepState
    result: Any = None
    error: Optional[BaseException] = None
    blocked_by: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == StepState.SUCCEEDED


class OrchestrationError(Exception):
    pass


class DAGOrchestrator:
    def __init__(self, steps: list[WorkflowStep], max_concurrency: int = 0) -> None:
        self.steps: dict[str, WorkflowStep] = {s.name: s for s in steps}
        self.max_concurrency = max_concurrency
        self.aborted_by: Optional[str] = None
        self._validated = False

    def _validate_no_cycles(self) -> None:
        visited: set[str] = set()
        rec_stack: set[str] = set()

        def has_cycle(name: str) -> bool:
            visited.add(name)
            rec_stack.add(name)

            step = self.steps.get(name)
            if step:
                for dep in step.depends_on:
                    if dep not in visited:
                        if has_cycle(dep):
                            return True
                    elif dep in rec_stack:
                        return True

            rec_stack.remove(name)
            return False

        for step_name in self.steps:
            if step_name not in visited:
                if has_cycle(step_name):
                    raise OrchestrationError(
                        f"Circular dependency detected involving step: {step_name}"
                    )

    def _validate_dependencies(self) -> None:
        for step in self.steps.values():
            missing = [d for d in step.depends_on if d not in self.steps]
            if missing:
                raise OrchestrationError(
                    f"Step {step.name} depends on unknown steps: {missing}"
                )

    def _has_capacity(self, running: int) -> bool:
        return self.max_concurrency <= 0 or running < self.max_concurrency

    async def execute(
        self,
        context: dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict[str, StepOutcome]:
        if not self._validated:
            self._validate_dependencies()
            self._validate_no_cycles()
            self._validated = True

        outcomes: dict[str, StepOutcome] = {}
        completed: dict[str, Any] = {}
        pending = list(self.steps)
        running: dict[asyncio.Task, str] = {}
        cancel_waiter: Optional[asyncio.Task] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())

        try:
            while pending or running:
                if self.aborted_by is None and not (cancel_event and cancel_event.is_set()):
                    self._launch_ready(pending, running, outcomes, completed, context)
                elif self.aborted_by is not None:
                    for name in pending:
                        outcomes[name] = StepOutcome(
                            name, StepState.SKIPPED, blocked_by=self.aborted_by
                        )
                    pending.clear()

                if not running:
                    if pending and not (cancel_event and cancel_event.is_set()):
                        raise OrchestrationError(
                            f"Unsatisfied dependencies. Pending: {pending}"
                        )
                    break

                waitables: set[asyncio.Future] = set(running)
                if cancel_waiter is not None and not cancel_waiter.done():
                    waitables.add(cancel_waiter)
                done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)

                if cancel_event is not None and cancel_event.is_set():
                    await self._cancel_running(running, outcomes)
                    break

                for task in done:
                    if task is cancel_waiter:
                        continue
                    name = running.pop(task)
                    self._record(name, task, outcomes, completed)
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()
            if running:
                await self._cancel_running(running, outcomes)

        for name in pending:
            outcomes.setdefault(name, StepOutcome(name, StepState.NOT_STARTED))
        return outcomes

    def _launch_ready(
        self,
        pending: list[str],
        running: dict[asyncio.Task, str],
        outcomes: dict[str, StepOutcome],
        completed: dict[str, Any],
        context: dict[str, Any],
    ) -> None:
        progressed = True
        while progressed:
            progressed = False
            for name in list(pending):
                deps = self.steps[name].depends_on
                blocked = next(
                    (d for d in deps if d in outcomes and not outcomes[d].succeeded),
                    None,
                )
                if blocked is not None:
                    outcomes[name] = StepOutcome(name, StepState.SKIPPED, blocked_by=blocked)
                    pending.remove(name)
                    progressed = True
                    continue
                if all(d in completed for d in deps) and self._has_capacity(len(running)):
                    task = asyncio.ensure_future(self.steps[name].execute(context, completed))
                    running[task] = name
                    pending.remove(name)

    def _record(
        self,
        name: str,
        task: asyncio.Task,
        outcomes: dict[str, StepOutcome],
        completed: dict[str, Any],
    ) -> None:
        if task.cancelled():
            outcomes[name] = StepOutcome(name, StepState.CANCELLED)
            return
        error = task.exception()
        if error is None:
            result = task.result()
            completed[name] = result
            outcomes[name] = StepOutcome(name, StepState.SUCCEEDED, result=result)
            return

        outcomes[name] = StepOutcome(name, StepState.FAILED, error=error)
        if self.steps[name].is_critical and self.aborted_by is None:
            logger.warning("Critical step %s failed, aborting remaining steps: %s", name, error)
            self.aborted_by = name
        else:
            logger.warning("Step %s failed: %s", name, error)

    async def _cancel_running(
        self,
        running: dict[asyncio.Task, str],
        outcomes: dict[str, StepOutcome],
    ) -> None:
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        for task, name in running.items():
            if task.cancelled():
                outcomes[name] = StepOutcome(name, StepState.CANCELLED)
            elif task.exception() is not None:
                outcomes[name] = StepOutcome(name, StepState.FAILED, error=task.exception())
            else:
                outcomes[name] = StepOutcome(name, StepState.SUCCEEDED, result=task.result())
        running.clear()
