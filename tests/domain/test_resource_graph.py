"""Tests for Resource, the status state machine, and ResourceGraph ordering."""

import pytest

from strata.domain.entities.resource import (
    OutputBinding,
    Resource,
    ResourceStatus,
    check_transition,
)
from strata.domain.entities.resource_graph import ResourceGraph, StackDefinition, kahn_order
from strata.domain.errors import InvalidTransitionError
from strata.domain.value_objects.reference import Ref


def _graph(*resources):
    return ResourceGraph("test", list(resources))


class TestResource:
    def test_dependencies_combine_explicit_and_refs(self):
        r = Resource(
            "instance",
            "compute-instance",
            {"subnet_id": Ref("subnet"), "rules": [Ref("rule"), Ref("subnet", "cidr_block")]},
            depends_on=("gateway",),
        )
        assert r.dependencies() == ("gateway", "subnet", "rule")

    def test_empty_logical_id_rejected(self):
        with pytest.raises(ValueError, match="logical_id"):
            Resource("", "network")

    def test_empty_kind_rejected(self):
        with pytest.raises(ValueError, match="kind"):
            Resource("net", "")

    def test_depends_on_coerced_to_tuple(self):
        r = Resource("a", "network", depends_on=["b"])
        assert r.depends_on == ("b",)

    def test_with_properties_keeps_identity(self):
        r = Resource("a", "network", {"x": 1}, depends_on=("b",), condition="flag")
        updated = r.with_properties({"x": 2})
        assert updated.properties == {"x": 2}
        assert updated.depends_on == ("b",)
        assert updated.condition == "flag"

    def test_config_hash_tracks_properties(self):
        a = Resource("a", "network", {"cidr_block": "10.0.0.0/16"})
        b = Resource("a", "network", {"cidr_block": "10.1.0.0/16"})
        assert a.config_hash() != b.config_hash()


class TestStatusStateMachine:
    @pytest.mark.parametrize("current,target", [
        (ResourceStatus.PENDING, ResourceStatus.CREATING),
        (ResourceStatus.PENDING, ResourceStatus.SKIPPED),
        (ResourceStatus.CREATING, ResourceStatus.SUCCEEDED),
        (ResourceStatus.UPDATING, ResourceStatus.FAILED),
        (ResourceStatus.DELETING, ResourceStatus.CREATING),
        (ResourceStatus.DELETING, ResourceStatus.DELETED),
        (ResourceStatus.DELETING, ResourceStatus.SKIPPED),
        (ResourceStatus.FAILED, ResourceStatus.PENDING),
    ])
    def test_legal_transitions(self, current, target):
        check_transition("r", current, target)

    @pytest.mark.parametrize("current,target", [
        (ResourceStatus.PENDING, ResourceStatus.SUCCEEDED),
        (ResourceStatus.SUCCEEDED, ResourceStatus.CREATING),
        (ResourceStatus.CREATING, ResourceStatus.DELETING),
        (ResourceStatus.SKIPPED, ResourceStatus.FAILED),
    ])
    def test_illegal_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError, match="illegal transition"):
            check_transition("r", current, target)

    def test_status_classification(self):
        assert ResourceStatus.SUCCEEDED.is_terminal
        assert ResourceStatus.SKIPPED.is_terminal
        assert ResourceStatus.DELETING.is_in_progress
        assert not ResourceStatus.PENDING.is_terminal
        assert ResourceStatus.DELETED.is_success
        assert not ResourceStatus.FAILED.is_success


class TestStackDefinition:
    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            StackDefinition("")

    def test_with_parameters_merges(self):
        d = StackDefinition("s", parameters={"a": 1, "b": 2})
        merged = d.with_parameters({"b": 3})
        assert merged.parameters == {"a": 1, "b": 3}
        assert d.parameters == {"a": 1, "b": 2}


class TestResourceGraph:
    def test_topological_order_respects_dependencies(self):
        graph = _graph(
            Resource("instance", "compute-instance", {"subnet_id": Ref("subnet")}),
            Resource("subnet", "subnet", {"network_id": Ref("network")}),
            Resource("network", "network"),
        )
        assert graph.topological_order() == ["network", "subnet", "instance"]

    def test_ties_broken_by_declaration_order(self):
        graph = _graph(
            Resource("b", "network"),
            Resource("a", "network"),
            Resource("c", "network"),
        )
        assert graph.topological_order() == ["b", "a", "c"]

    def test_levels_group_independent_resources(self):
        graph = _graph(
            Resource("network", "network"),
            Resource("subnet-a", "subnet", {"network_id": Ref("network")}),
            Resource("subnet-b", "subnet", {"network_id": Ref("network")}),
            Resource("instance", "compute-instance", {"subnet_id": Ref("subnet-a")}),
        )
        assert graph.levels() == [["network"], ["subnet-a", "subnet-b"], ["instance"]]

    def test_dependents_are_transitive(self):
        graph = _graph(
            Resource("network", "network"),
            Resource("subnet", "subnet", {"network_id": Ref("network")}),
            Resource("instance", "compute-instance", {"subnet_id": Ref("subnet")}),
            Resource("bucket", "storage-bucket"),
        )
        assert graph.dependents_of("network") == {"subnet", "instance"}
        assert graph.dependents_of("bucket") == set()

    def test_container_protocol(self):
        graph = ResourceGraph(
            "s",
            [Resource("a", "network")],
            outputs=[OutputBinding("net", Ref("a"))],
        )
        assert "a" in graph
        assert len(graph) == 1
        assert graph.outputs["net"].ref == Ref("a")


class TestKahnOrder:
    def test_ignores_unknown_prerequisites(self):
        assert kahn_order({"a": ("outside",), "b": ("a",)}) == ["a", "b"]

    def test_cycle_members_are_omitted(self):
        order = kahn_order({"a": (), "b": ("c",), "c": ("b",)})
        assert order == ["a"]
