"""Tests for reading JSON stack declarations."""

import json

import pytest

from strata.domain.errors import StackDefinitionError
from strata.domain.value_objects.reference import ParamRef, Ref
from strata.infrastructure.stack_loader import load_stack, parse_param_overrides, parse_stack

DOCUMENT = {
    "stack": "web",
    "region": "us-east-1",
    "parameters": {"cidr": "10.0.0.0/16", "with_bucket": False},
    "resources": [
        {"id": "network", "kind": "network", "properties": {"cidr_block": {"param": "cidr"}}},
        {
            "id": "subnet",
            "kind": "subnet",
            "properties": {"network_id": {"ref": "network.id"}, "cidr_block": "10.0.1.0/24"},
            "depends_on": ["network"],
        },
        {"id": "bucket", "kind": "storage-bucket", "properties": {"name": "logs"},
         "condition": "with_bucket"},
    ],
    "outputs": {"network_id": {"ref": "network.id"}, "subnet_cidr": "subnet.cidr_block"},
}


class TestParseStack:
    def test_parses_document(self):
        definition = parse_stack(DOCUMENT)
        assert definition.stack_name == "web"
        assert definition.region == "us-east-1"
        assert [r.logical_id for r in definition.resources] == ["network", "subnet", "bucket"]

        network, subnet, bucket = definition.resources
        assert network.properties["cidr_block"] == ParamRef("cidr")
        assert subnet.properties["network_id"] == Ref("network", "id")
        assert subnet.depends_on == ("network",)
        assert bucket.condition == "with_bucket"

    def test_outputs_accept_marker_or_string(self):
        outputs = {o.name: o.ref for o in parse_stack(DOCUMENT).outputs}
        assert outputs == {
            "network_id": Ref("network", "id"),
            "subnet_cidr": Ref("subnet", "cidr_block"),
        }

    def test_name_and_region_overrides(self):
        definition = parse_stack(DOCUMENT, stack_name="staging", region="eu-west-1")
        assert definition.stack_name == "staging"
        assert definition.region == "eu-west-1"

    def test_parameter_overrides(self):
        definition = parse_stack(DOCUMENT, overrides={"with_bucket": True})
        assert definition.parameters == {"cidr": "10.0.0.0/16", "with_bucket": True}

    @pytest.mark.parametrize("document,message", [
        ([], "must be a JSON object"),
        ({"resources": []}, "no 'stack' name"),
        ({"stack": "web", "resources": {}}, "resources must be a list"),
        ({"stack": "web", "resources": ["x"]}, "must be an object"),
        ({"stack": "web", "resources": [{"kind": "network"}]}, "missing an 'id'"),
        ({"stack": "web", "resources": [{"id": "a"}]}, "missing a 'kind'"),
        ({"stack": "web", "resources": [{"id": "a", "kind": "network", "properties": []}]},
         "properties must be an object"),
        ({"stack": "web", "resources": [{"id": "a", "kind": "network", "depends_on": "b"}]},
         "depends_on must be a list"),
        ({"stack": "web", "parameters": []}, "parameters must be an object"),
        ({"stack": "web", "outputs": {"x": 5}}, "must be a reference"),
    ])
    def test_shape_errors(self, document, message):
        with pytest.raises(StackDefinitionError, match=message):
            parse_stack(document)


class TestLoadStack:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "stack.json"
        path.write_text(json.dumps(DOCUMENT))
        assert load_stack(path).stack_name == "web"

    def test_missing_file(self, tmp_path):
        with pytest.raises(StackDefinitionError, match="not found"):
            load_stack(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "stack.json"
        path.write_text("{oops")
        with pytest.raises(StackDefinitionError, match="not valid JSON"):
            load_stack(path)


class TestParamOverrides:
    def test_values_decoded_as_json(self):
        assert parse_param_overrides(["count=3", "flag=false", "tags=[\"a\"]"]) == {
            "count": 3,
            "flag": False,
            "tags": ["a"],
        }

    def test_plain_strings_kept(self):
        assert parse_param_overrides(["cidr=10.0.0.0/16"]) == {"cidr": "10.0.0.0/16"}

    def test_value_may_contain_equals(self):
        assert parse_param_overrides(["expr=a=b"]) == {"expr": "a=b"}

    @pytest.mark.parametrize("pair", ["novalue", "=x"])
    def test_invalid_pairs(self, pair):
        with pytest.raises(StackDefinitionError, match="expected key=value"):
            parse_param_overrides([pair])
