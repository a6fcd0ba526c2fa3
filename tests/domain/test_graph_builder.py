"""Tests for graph construction and validation."""

import pytest

from strata.domain.entities.resource import OutputBinding, Resource
from strata.domain.entities.resource_graph import StackDefinition
from strata.domain.errors import (
    CyclicDependencyError,
    DuplicateIdentifierError,
    UnknownResourceKindError,
    UnresolvedReferenceError,
    ValidationError,
)
from strata.domain.services.graph_builder import (
    build_graph,
    collect_graph_errors,
    find_cycle,
    is_enabled,
)
from strata.domain.value_objects.reference import ParamRef, Ref

KINDS = {"network", "subnet", "compute-instance", "storage-bucket"}


def _definition(*resources, parameters=None, outputs=()):
    return StackDefinition("test", resources, parameters=parameters or {}, outputs=outputs)


class TestIsEnabled:
    @pytest.mark.parametrize("value", ["", "0", "false", "No", " off ", False, 0, None])
    def test_false_values(self, value):
        assert not is_enabled(value)

    @pytest.mark.parametrize("value", ["true", "1", "yes", "anything", True, 1])
    def test_true_values(self, value):
        assert is_enabled(value)


class TestFindCycle:
    def test_acyclic(self):
        assert find_cycle({"a": (), "b": ("a",)}) is None

    def test_reports_cycle_members(self):
        cycle = find_cycle({"a": ("b",), "b": ("c",), "c": ("a",)})
        assert sorted(cycle) == ["a", "b", "c"]

    def test_self_loop(self):
        assert find_cycle({"a": ("a",)}) == ["a"]


class TestBuildGraph:
    def test_valid_definition(self):
        graph = build_graph(
            _definition(
                Resource("network", "network", {"cidr_block": "10.0.0.0/16"}),
                Resource("subnet", "subnet", {"network_id": Ref("network")}),
                outputs=(OutputBinding("net", Ref("network")),),
            ),
            KINDS,
        )
        assert graph.topological_order() == ["network", "subnet"]
        assert "net" in graph.outputs

    def test_param_refs_substituted(self):
        graph = build_graph(
            _definition(
                Resource("network", "network", {"cidr_block": ParamRef("cidr")}),
                parameters={"cidr": "10.9.0.0/16"},
            )
        )
        assert graph.get("network").properties["cidr_block"] == "10.9.0.0/16"

    def test_resource_refs_stay_symbolic(self):
        graph = build_graph(
            _definition(
                Resource("network", "network"),
                Resource("subnet", "subnet", {"network_id": Ref("network")}),
            )
        )
        assert graph.get("subnet").properties["network_id"] == Ref("network")

    def test_cycle_raises(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            build_graph(
                _definition(
                    Resource("a", "network", {"x": Ref("b")}),
                    Resource("b", "network", {"x": Ref("a")}),
                )
            )
        assert sorted(exc_info.value.cycle) == ["a", "b"]
        assert "Cyclic dependency detected" in str(exc_info.value)

    def test_unresolved_ref_raises(self):
        with pytest.raises(UnresolvedReferenceError, match="missing.id"):
            build_graph(_definition(Resource("subnet", "subnet", {"network_id": Ref("missing")})))

    def test_unresolved_depends_on(self):
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            build_graph(_definition(Resource("a", "network", depends_on=("ghost",))))
        assert exc_info.value.reference == "ghost"

    def test_unknown_param(self):
        with pytest.raises(UnresolvedReferenceError, match="param:size"):
            build_graph(_definition(Resource("a", "network", {"cidr_block": ParamRef("size")})))

    def test_duplicate_identifier(self):
        with pytest.raises(DuplicateIdentifierError):
            build_graph(_definition(Resource("a", "network"), Resource("a", "subnet")))

    def test_unknown_kind(self):
        with pytest.raises(UnknownResourceKindError) as exc_info:
            build_graph(_definition(Resource("db", "database")), KINDS)
        assert exc_info.value.kind == "database"

    def test_unknown_kind_not_checked_without_kind_list(self):
        graph = build_graph(_definition(Resource("db", "database")))
        assert "db" in graph

    def test_output_referencing_missing_resource(self):
        with pytest.raises(UnresolvedReferenceError, match="<outputs>"):
            build_graph(_definition(outputs=(OutputBinding("x", Ref("nothing")),)))


class TestConditions:
    def test_disabled_resource_excluded(self):
        graph = build_graph(
            _definition(
                Resource("network", "network"),
                Resource("bucket", "storage-bucket", condition="with_bucket"),
                parameters={"with_bucket": "false"},
            )
        )
        assert "bucket" not in graph

    def test_enabled_resource_included(self):
        graph = build_graph(
            _definition(
                Resource("bucket", "storage-bucket", condition="with_bucket"),
                parameters={"with_bucket": True},
            )
        )
        assert "bucket" in graph

    def test_ref_to_disabled_resource_is_unresolved(self):
        with pytest.raises(UnresolvedReferenceError):
            build_graph(
                _definition(
                    Resource("network", "network", condition="with_net"),
                    Resource("subnet", "subnet", {"network_id": Ref("network")}),
                    parameters={"with_net": "0"},
                )
            )

    def test_missing_condition_parameter(self):
        with pytest.raises(UnresolvedReferenceError, match="param:flag"):
            build_graph(_definition(Resource("a", "network", condition="flag")))


class TestCollectGraphErrors:
    def test_valid_definition_has_no_errors(self):
        assert collect_graph_errors(_definition(Resource("a", "network")), KINDS) == []

    def test_reports_every_error(self):
        errors = collect_graph_errors(
            _definition(
                Resource("a", "network", {"x": Ref("b")}),
                Resource("b", "network", {"x": Ref("a")}),
                Resource("db", "database"),
                Resource("subnet", "subnet", {"network_id": Ref("missing")}),
            ),
            KINDS,
        )
        types = {type(e) for e in errors}
        assert types == {CyclicDependencyError, UnknownResourceKindError, UnresolvedReferenceError}
        assert all(isinstance(e, ValidationError) for e in errors)

    def test_error_dict(self):
        errors = collect_graph_errors(_definition(Resource("db", "database")), KINDS)
        assert errors[0].to_dict() == {
            "error": "UnknownResourceKindError",
            "logical_id": "db",
            "message": "db has unsupported resource kind 'database'",
        }
