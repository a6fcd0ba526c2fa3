"""Global test configuration.

Shared fixtures: a simulated provisioning backend, a JSON state store in a
temporary directory, a fast wait policy, and a builder for the
network / subnet / instance stack used throughout the suite.
"""

import pytest

from strata.application.orchestration.execution_engine import (
    EngineSettings,
    ExecutionEngine,
    FailurePolicy,
)
from strata.application.orchestration.wait_monitor import WaitPolicy
from strata.domain.entities.resource import OutputBinding, Resource
from strata.domain.entities.resource_graph import StackDefinition
from strata.domain.value_objects.reference import Ref
from strata.infrastructure.adapters.simulated_cloud import (
    SimulatedCloud,
    build_simulated_registry,
)
from strata.infrastructure.repositories.json_state_store import JSONStateStore


@pytest.fixture
def fast_policy():
    return WaitPolicy(poll_interval=0.01, timeout=2.0, max_interval=0.02, backoff_factor=1.0)


@pytest.fixture
def cloud():
    return SimulatedCloud(settle_polls=1)


@pytest.fixture
def registry(cloud):
    return build_simulated_registry(cloud)


@pytest.fixture
def state_store(tmp_path):
    return JSONStateStore(tmp_path / "state")


@pytest.fixture
def web_stack():
    """Builder for a network -> subnet -> instance stack."""

    def build(
        include_instance=True,
        instance_type="t3.micro",
        subnet_cidr="10.0.1.0/24",
        instance_name="web-1",
        stack_name="web",
    ):
        resources = [
            Resource("network", "network", {"cidr_block": "10.0.0.0/16", "name": "main"}),
            Resource(
                "subnet",
                "subnet",
                {"network_id": Ref("network"), "cidr_block": subnet_cidr, "name": "public"},
            ),
        ]
        outputs = [OutputBinding("network_id", Ref("network"))]
        if include_instance:
            resources.append(
                Resource(
                    "instance",
                    "compute-instance",
                    {
                        "subnet_id": Ref("subnet"),
                        "image": "debian-12",
                        "instance_type": instance_type,
                        "name": instance_name,
                    },
                )
            )
            outputs.append(OutputBinding("instance_ip", Ref("instance", "private_ip")))
        return StackDefinition(stack_name, tuple(resources), outputs=tuple(outputs))

    return build


@pytest.fixture
def make_engine(registry, state_store, fast_policy):
    def build(policy=FailurePolicy.ABORT, concurrency=4, wait_policy=None, event_bus=None):
        return ExecutionEngine(
            registry,
            state_store,
            settings=EngineSettings(
                max_concurrency=concurrency,
                failure_policy=policy,
                wait_policy=wait_policy or fast_policy,
            ),
            event_bus=event_bus,
        )

    return build
