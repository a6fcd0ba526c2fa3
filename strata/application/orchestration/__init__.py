"""
Application Orchestration Package

Architectural Intent:
- Contains workflow orchestration components
- DAG-based execution of change-sets with bounded concurrency
- Polling of remote operations until they settle
"""

from strata.application.orchestration.dag_orchestrator import (
    DAGOrchestrator,
    WorkflowStep,
    StepOutcome,
    StepState,
    OrchestrationError,
)
from strata.application.orchestration.wait_monitor import WaitMonitor, WaitPolicy, WaitTarget
from strata.application.orchestration.execution_engine import (
    EngineSettings,
    ExecutionEngine,
    ExecutionResult,
    FailurePolicy,
)

__all__ = [
    "DAGOrchestrator",
    "WorkflowStep",
    "StepOutcome",
    "StepState",
    "OrchestrationError",
    "WaitMonitor",
    "WaitPolicy",
    "WaitTarget",
    "EngineSettings",
    "ExecutionEngine",
    "ExecutionResult",
    "FailurePolicy",
]
