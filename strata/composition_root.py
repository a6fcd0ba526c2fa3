"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the Strata application
- Single place where adapters, engine and use cases are wired together
- No adapter instantiation should occur outside this module (except tests)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from StrataConfig
- Telemetry is created here but initialized lazily by the caller, since
  initialize() is async
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Union

from strata.application.orchestration.execution_engine import (
    EngineSettings,
    ExecutionEngine,
    FailurePolicy,
)
from strata.application.orchestration.wait_monitor import WaitMonitor, WaitPolicy
from strata.application.use_cases.apply_stack import ApplyStack
from strata.application.use_cases.describe_stack import DescribeStack
from strata.application.use_cases.destroy_stack import DestroyStack
from strata.application.use_cases.validate_stack import ValidateStack
from strata.domain.events.event_base import DomainEvent
from strata.domain.ports.provisioning_port import KindRegistry
from strata.domain.services.diff_engine import DiffEngine
from strata.infrastructure.adapters.simulated_cloud import (
    SimulatedCloud,
    build_simulated_registry,
)
from strata.infrastructure.config import StrataConfig
from strata.infrastructure.event_bus import EventBus
from strata.infrastructure.repositories.json_state_store import JSONStateStore
from strata.infrastructure.repositories.sqlite_state_store import SQLiteStateStore
from strata.infrastructure.telemetry.otel_exporter import OTELConfig, OTELExporter

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass
class StrataContainer:
    """DI container holding all wired dependencies."""

    config: StrataConfig
    cloud: SimulatedCloud
    registry: KindRegistry
    state_store: Union[JSONStateStore, SQLiteStateStore]
    event_bus: EventBus
    wait_monitor: WaitMonitor
    diff_engine: DiffEngine
    engine: ExecutionEngine
    validate_stack: ValidateStack
    apply_stack: ApplyStack
    destroy_stack: DestroyStack
    describe_stack: DescribeStack
    telemetry: Optional[OTELExporter] = None

    def close(self) -> None:
        if isinstance(self.state_store, SQLiteStateStore):
            self.state_store.close()


def _state_dir(config: StrataConfig) -> Path:
    path = Path(config.state.path)
    return path.parent if path.suffix else path


def create_state_store(config: StrataConfig) -> Union[JSONStateStore, SQLiteStateStore]:
    if config.state.backend == "sqlite":
        path = Path(config.state.path)
        db_path = path if path.suffix else path / "state.db"
        store = SQLiteStateStore(str(db_path))
        store.connect()
        return store
    return JSONStateStore(config.state.path)


def create_container(
    config: Optional[StrataConfig] = None,
    cloud: Optional[SimulatedCloud] = None,
    observers: Iterable[EventHandler] = (),
) -> StrataContainer:
    """Create and wire all dependencies.

    Args:
        config: Loaded configuration. Defaults to StrataConfig().
        cloud: Provisioning backend. Built from config.simulator when omitted.
        observers: Async handlers subscribed to every domain event.
    """
    config = config or StrataConfig()
    sim = config.simulator
    cloud = cloud or SimulatedCloud(
        region=config.stack.region or "us-east-1",
        settle_polls=sim.settle_polls,
        quotas=sim.quotas,
        unsupported_kinds=sim.unsupported_kinds,
        fail_names=sim.fail_names,
        stuck_names=sim.stuck_names,
        registry_path=sim.registry_path or str(_state_dir(config) / "simulated-cloud.json"),
    )
    registry = build_simulated_registry(cloud)
    state_store = create_state_store(config)

    event_bus = EventBus()
    for handler in observers:
        event_bus.subscribe(DomainEvent, handler)

    telemetry = None
    if config.telemetry.endpoint:
        telemetry = OTELExporter(
            OTELConfig(endpoint=config.telemetry.endpoint, insecure=config.telemetry.insecure)
        )
        event_bus.subscribe(DomainEvent, telemetry.on_event)

    engine_cfg = config.engine
    wait_monitor = WaitMonitor(
        WaitPolicy(
            poll_interval=engine_cfg.poll_interval,
            timeout=engine_cfg.timeout,
            max_interval=max(engine_cfg.max_poll_interval, engine_cfg.poll_interval),
            backoff_factor=engine_cfg.backoff_factor,
        )
    )
    diff_engine = DiffEngine(registry.mutable_properties)
    engine = ExecutionEngine(
        registry,
        state_store,
        wait_monitor=wait_monitor,
        settings=EngineSettings(
            max_concurrency=engine_cfg.max_concurrency,
            failure_policy=FailurePolicy(engine_cfg.failure_policy),
            wait_policy=wait_monitor.policy,
        ),
        event_bus=event_bus,
    )

    return StrataContainer(
        config=config,
        cloud=cloud,
        registry=registry,
        state_store=state_store,
        event_bus=event_bus,
        wait_monitor=wait_monitor,
        diff_engine=diff_engine,
        engine=engine,
        validate_stack=ValidateStack(registry, state_store, diff_engine),
        apply_stack=ApplyStack(registry, state_store, engine, diff_engine, event_bus),
        destroy_stack=DestroyStack(state_store, engine, diff_engine, event_bus),
        describe_stack=DescribeStack(state_store),
        telemetry=telemetry,
    )
