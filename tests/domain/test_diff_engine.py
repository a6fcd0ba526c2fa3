"""Tests for change-set computation."""

from strata.domain.entities.change_set import Operation
from strata.domain.entities.resource import Resource, ResourceStatus
from strata.domain.entities.resource_graph import ResourceGraph
from strata.domain.entities.state_record import ResourceRecord, StateRecord
from strata.domain.services.diff_engine import DiffEngine, changed_properties
from strata.domain.value_objects.reference import Ref, to_canonical

MUTABLE = {
    "network": frozenset({"tags"}),
    "subnet": frozenset({"tags"}),
    "compute-instance": frozenset({"instance_type", "tags"}),
    "labelled": frozenset({"labels"}),
}

NETWORK = Resource("network", "network", {"cidr_block": "10.0.0.0/16"})
SUBNET = Resource("subnet", "subnet", {"network_id": Ref("network"), "cidr_block": "10.0.1.0/24"})
INSTANCE = Resource(
    "instance",
    "compute-instance",
    {"subnet_id": Ref("subnet"), "image": "debian-12", "instance_type": "t3.micro"},
)


def _engine():
    return DiffEngine(lambda kind: MUTABLE.get(kind, frozenset()))


def _graph(*resources):
    return ResourceGraph("web", list(resources))


def _record(resource, status=ResourceStatus.SUCCEEDED, remote_id=None, config_hash="same"):
    return ResourceRecord(
        logical_id=resource.logical_id,
        kind=resource.kind,
        status=status,
        remote_id=remote_id if remote_id is not None else f"{resource.logical_id}-1",
        config_hash=resource.config_hash().value if config_hash == "same" else config_hash,
        properties=to_canonical(resource.properties),
        depends_on=resource.dependencies(),
    )


def _state(*records):
    return StateRecord("web", {r.logical_id: r for r in records})


class TestChangedProperties:
    def test_detects_added_removed_and_changed(self):
        previous = {"a": 1, "b": 2, "gone": 3}
        desired = {"a": 1, "b": 5, "new": 4}
        assert changed_properties(previous, desired) == ("b", "new", "gone")

    def test_identical(self):
        assert changed_properties({"a": [1]}, {"a": [1]}) == ()


class TestCompute:
    def test_empty_state_creates_everything_in_order(self):
        cs = _engine().compute(_graph(INSTANCE, SUBNET, NETWORK), StateRecord.empty("web"))
        assert cs.operations() == [
            ("create", "network"),
            ("create", "subnet"),
            ("create", "instance"),
        ]
        assert cs.get("subnet").prerequisites == ("network",)
        assert cs.get("instance").prerequisites == ("subnet",)

    def test_unchanged_state_is_all_no_op(self):
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().compute(_graph(NETWORK, SUBNET, INSTANCE), state)
        assert cs.is_empty
        assert {op for op, _ in cs.operations()} == {"no-op"}

    def test_mutable_change_is_update(self):
        resized = INSTANCE.with_properties({**INSTANCE.properties, "instance_type": "t3.large"})
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().compute(_graph(NETWORK, SUBNET, resized), state)
        entry = cs.get("instance")
        assert entry.operation == Operation.UPDATE
        assert entry.changed_properties == ("instance_type",)
        assert entry.prerequisites == ()

    def test_immutable_change_is_replace(self):
        moved = INSTANCE.with_properties({**INSTANCE.properties, "image": "ubuntu-24"})
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().compute(_graph(NETWORK, SUBNET, moved), state)
        entry = cs.get("instance")
        assert entry.operation == Operation.REPLACE
        assert "immutable properties changed: image" in entry.reason

    def test_replacement_propagates_to_referencing_dependents(self):
        resubnet = SUBNET.with_properties({**SUBNET.properties, "cidr_block": "10.0.2.0/24"})
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().compute(_graph(NETWORK, resubnet, INSTANCE), state)
        assert cs.get("network").operation == Operation.NO_OP
        assert cs.get("subnet").operation == Operation.REPLACE
        instance = cs.get("instance")
        assert instance.operation == Operation.REPLACE
        assert instance.changed_properties == ("subnet_id",)
        assert instance.reason == "references replaced resource subnet"
        assert instance.prerequisites == ("subnet",)

    def test_propagation_to_mutable_property_is_update(self):
        source = Resource("source", "network", {"cidr_block": "10.0.0.0/16"})
        target = Resource("target", "labelled", {"labels": {"source": Ref("source")}})
        changed_source = Resource("source", "subnet", {"cidr_block": "10.0.0.0/16"})
        state = _state(_record(source), _record(target))
        cs = _engine().compute(_graph(changed_source, target), state)
        assert cs.get("source").operation == Operation.REPLACE
        assert cs.get("target").operation == Operation.UPDATE
        assert cs.get("target").changed_properties == ("labels",)

    def test_kind_change_is_replace(self):
        state = _state(_record(Resource("network", "subnet", NETWORK.properties)))
        cs = _engine().compute(_graph(NETWORK), state)
        entry = cs.get("network")
        assert entry.operation == Operation.REPLACE
        assert entry.changed_properties == ("kind",)

    def test_record_without_remote_id_is_created(self):
        record = _record(NETWORK, status=ResourceStatus.FAILED, remote_id="", config_hash=None)
        cs = _engine().compute(_graph(NETWORK), _state(record))
        assert cs.get("network").operation == Operation.CREATE

    def test_failed_create_is_replaced(self):
        record = _record(NETWORK, status=ResourceStatus.FAILED, config_hash=None)
        cs = _engine().compute(_graph(NETWORK), _state(record))
        entry = cs.get("network")
        assert entry.operation == Operation.REPLACE
        assert entry.reason == "previous create failed"

    def test_failed_update_is_redriven(self):
        record = _record(NETWORK, status=ResourceStatus.FAILED)
        cs = _engine().compute(_graph(NETWORK), _state(record))
        assert cs.get("network").operation == Operation.UPDATE

    def test_interrupted_create_is_resumed(self):
        record = _record(NETWORK, status=ResourceStatus.CREATING)
        cs = _engine().compute(_graph(NETWORK), _state(record))
        entry = cs.get("network")
        assert entry.operation == Operation.UPDATE
        assert entry.reason == "resuming resource left Creating"

    def test_interrupted_delete_is_replaced(self):
        record = _record(NETWORK, status=ResourceStatus.DELETING)
        cs = _engine().compute(_graph(NETWORK), _state(record))
        assert cs.get("network").operation == Operation.REPLACE


class TestDeletes:
    def test_orphans_deleted_last_in_reverse_dependency_order(self):
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().compute(_graph(NETWORK), state)
        assert cs.operations() == [
            ("no-op", "network"),
            ("delete", "instance"),
            ("delete", "subnet"),
        ]
        assert cs.get("subnet").prerequisites == ("instance",)
        assert cs.get("instance").reason == "no longer declared"

    def test_orphan_waits_for_former_dependents(self):
        old_subnet = Resource("old-subnet", "subnet", {"network_id": Ref("network")})
        old_instance = INSTANCE.with_properties({**INSTANCE.properties, "subnet_id": Ref("old-subnet")})
        state = _state(_record(NETWORK), _record(old_subnet), _record(old_instance))
        cs = _engine().compute(_graph(NETWORK, SUBNET, INSTANCE), state)
        assert cs.get("instance").operation == Operation.REPLACE
        assert cs.get("old-subnet").operation == Operation.DELETE
        assert "instance" in cs.get("old-subnet").prerequisites

    def test_destroy_plan(self):
        state = _state(_record(NETWORK), _record(SUBNET), _record(INSTANCE))
        cs = _engine().destroy_plan(state)
        assert cs.operations() == [
            ("delete", "instance"),
            ("delete", "subnet"),
            ("delete", "network"),
        ]
        assert cs.get("network").prerequisites == ("subnet",)
        assert all(e.reason == "stack destroy" for e in cs)

    def test_destroy_plan_of_empty_state(self):
        assert _engine().destroy_plan(StateRecord.empty("web")).is_empty
