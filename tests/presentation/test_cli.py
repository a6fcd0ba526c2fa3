"""Tests for the CLI module.

Commands run end to end against the simulated backend with state kept in a
temporary directory.
"""

import json

import pytest
from unittest.mock import patch

from strata.domain.errors import StateCorruptionError
from strata.infrastructure.config import StrataConfig
from strata.presentation.cli.cli import apply_overrides, async_main, build_parser


def _stack_document(instance_type="t3.micro", cycle=False):
    resources = [
        {"id": "network", "kind": "network",
         "properties": {"cidr_block": "10.0.0.0/16", "name": "main"}},
        {"id": "subnet", "kind": "subnet",
         "properties": {"network_id": {"ref": "network.id"}, "cidr_block": "10.0.1.0/24"}},
        {"id": "instance", "kind": "compute-instance",
         "properties": {"subnet_id": {"ref": "subnet.id"}, "image": "debian-12",
                        "instance_type": instance_type, "name": "web-1"}},
    ]
    if cycle:
        resources[0]["depends_on"] = ["instance"]
    return {
        "stack": "web",
        "resources": resources,
        "outputs": {"network_id": "network.id", "instance_ip": "instance.private_ip"},
    }


@pytest.fixture
def workspace(tmp_path):
    """Write a config and stack file; returns a function building argv."""

    def write(simulator=None, **stack_kwargs):
        config = {
            "state": {"path": str(tmp_path / "state")},
            "engine": {"poll_interval": 0.01, "max_poll_interval": 0.02, "timeout": 2.0},
            "simulator": {"settle_polls": 0, **(simulator or {})},
        }
        (tmp_path / "strata.json").write_text(json.dumps(config))
        (tmp_path / "stack.json").write_text(json.dumps(_stack_document(**stack_kwargs)))

    def argv(command, *extra):
        return ["--config", str(tmp_path / "strata.json"), command,
                "-f", str(tmp_path / "stack.json"), *extra]

    write()
    argv.write = write
    argv.state_dir = tmp_path / "state"
    return argv


class TestParser:
    def test_apply_options(self):
        args = build_parser().parse_args(
            ["apply", "-f", "s.json", "-p", "a=1", "-p", "b=x",
             "--concurrency", "2", "--continue-on-failure"]
        )
        assert args.command == "apply"
        assert args.stack_file == "s.json"
        assert args.param == ["a=1", "b=x"]
        assert args.concurrency == 2
        assert args.continue_on_failure is True
        assert args.format == "text"

    def test_destroy_confirm_defaults_empty(self):
        args = build_parser().parse_args(["destroy"])
        assert args.confirm == ""

    def test_validate_has_no_run_options(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["validate", "--concurrency", "2"])


class TestApplyOverrides:
    def test_flags_layer_over_config(self):
        args = build_parser().parse_args(
            ["apply", "-f", "other.json", "-s", "staging", "-r", "eu-west-1",
             "--concurrency", "8", "--poll-interval", "0.5", "--timeout", "30",
             "--continue-on-failure"]
        )
        config = apply_overrides(StrataConfig(), args)
        assert config.stack.definition == "other.json"
        assert config.stack.name == "staging"
        assert config.stack.region == "eu-west-1"
        assert config.engine.max_concurrency == 8
        assert config.engine.poll_interval == 0.5
        assert config.engine.timeout == 30.0
        assert config.engine.failure_policy == "continue"

    def test_absent_flags_keep_config(self):
        args = build_parser().parse_args(["outputs"])
        config = apply_overrides(StrataConfig(), args)
        assert config == StrataConfig()

    def test_invalid_concurrency_rejected(self):
        args = build_parser().parse_args(["apply", "--concurrency", "0"])
        with pytest.raises(ValueError, match="max_concurrency"):
            apply_overrides(StrataConfig(), args)


class TestCLIHelp:
    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        await async_main([])
        assert "declarative infrastructure stack orchestrator" in capsys.readouterr().out

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["validate", "apply", "destroy", "outputs"])
    async def test_subcommand_help(self, command):
        with pytest.raises(SystemExit, match="0"):
            await async_main([command, "--help"])


class TestValidateCommand:
    @pytest.mark.asyncio
    async def test_valid_stack_lists_plan(self, workspace, capsys):
        await async_main(workspace("validate"))
        out = capsys.readouterr().out
        assert "[+] Stack web is valid." in out
        assert "create   network [network]" in out
        assert "create   instance [compute-instance]" in out

    @pytest.mark.asyncio
    async def test_cycle_reported(self, workspace, capsys):
        workspace.write(cycle=True)
        with pytest.raises(SystemExit) as exc_info:
            await async_main(workspace("validate"))
        assert exc_info.value.code == 1
        assert "[-] Cyclic dependency detected" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_json_format(self, workspace, capsys):
        await async_main(workspace("validate", "--format", "json"))
        report = json.loads(capsys.readouterr().out)
        assert report["valid"] is True
        assert [e["operation"] for e in report["change_set"]["entries"]] == ["create"] * 3

    @pytest.mark.asyncio
    async def test_missing_stack_file(self, workspace, tmp_path, capsys):
        argv = workspace("validate")
        argv[argv.index("-f") + 1] = str(tmp_path / "missing.json")
        with pytest.raises(SystemExit) as exc_info:
            await async_main(argv)
        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().out


class TestApplyCommand:
    @pytest.mark.asyncio
    async def test_apply_creates_and_reports(self, workspace, capsys):
        await async_main(workspace("apply"))
        out = capsys.readouterr().out

        assert "[*] Applying stack web: 3 change(s)" in out
        assert "[+] network [network] create: Succeeded" in out
        assert "[+] Apply of web succeeded." in out
        assert "instance_ip = 10.0.1.5" in out

        state = json.loads((workspace.state_dir / "web.json").read_text())
        assert {r["status"] for r in state["resources"].values()} == {"Succeeded"}

    @pytest.mark.asyncio
    async def test_second_apply_is_noop(self, workspace, capsys):
        await async_main(workspace("apply"))
        capsys.readouterr()

        await async_main(workspace("apply"))
        out = capsys.readouterr().out
        assert "[*] Applying stack web: 0 change(s)" in out
        assert any(line.split() == ["network", "no-op"] for line in out.splitlines())

    @pytest.mark.asyncio
    async def test_failure_exits_nonzero(self, workspace, capsys):
        workspace.write(simulator={"fail_names": ["web-1"]})
        with pytest.raises(SystemExit) as exc_info:
            await async_main(workspace("apply"))
        assert exc_info.value.code == 1

        out = capsys.readouterr().out
        assert "RemoteError: Operation create on i-" in out
        assert "simulated fault for web-1" in out
        assert "[-] Apply of web did not complete: 1 failed, 0 skipped." in out

    @pytest.mark.asyncio
    async def test_invalid_stack_not_applied(self, workspace, capsys):
        workspace.write(cycle=True)
        with pytest.raises(SystemExit):
            await async_main(workspace("apply"))
        assert not (workspace.state_dir / "web.json").exists()

    @pytest.mark.asyncio
    async def test_json_report(self, workspace, capsys):
        await async_main(workspace("apply", "--format", "json"))
        report = json.loads(capsys.readouterr().out)
        assert report["status"] == "StackSucceeded"
        assert report["summary"] == {"Succeeded": 3}
        assert report["outputs"]["network_id"].startswith("net-")

    @pytest.mark.asyncio
    async def test_param_override_reaches_stack(self, workspace, tmp_path, capsys):
        document = _stack_document()
        document["parameters"] = {"size": "t3.micro"}
        document["resources"][2]["properties"]["instance_type"] = {"param": "size"}
        (tmp_path / "stack.json").write_text(json.dumps(document))

        await async_main(workspace("apply", "-p", "size=t3.large"))
        state = json.loads((workspace.state_dir / "web.json").read_text())
        assert state["resources"]["instance"]["properties"]["instance_type"] == "t3.large"


class TestDestroyCommand:
    @pytest.mark.asyncio
    async def test_requires_confirmation(self, workspace, capsys):
        await async_main(workspace("apply"))
        capsys.readouterr()

        with pytest.raises(SystemExit) as exc_info:
            await async_main(workspace("destroy"))
        assert exc_info.value.code == 1
        assert "requires --confirm web" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_destroy_removes_everything(self, workspace, capsys):
        await async_main(workspace("apply"))
        await async_main(workspace("destroy", "--confirm", "web"))
        out = capsys.readouterr().out
        assert "[*] Destroying stack web: 3 change(s)" in out
        assert "[+] Destroy of web succeeded." in out

        state = json.loads((workspace.state_dir / "web.json").read_text())
        assert state["resources"] == {}
        assert state["outputs"] == {}


class TestOutputsCommand:
    @pytest.mark.asyncio
    async def test_shows_resources_outputs_and_runs(self, workspace, capsys):
        await async_main(workspace("apply"))
        capsys.readouterr()

        await async_main(workspace("outputs"))
        out = capsys.readouterr().out
        assert "Outputs:" in out
        assert "network_id = net-" in out
        assert "compute-instance" in out
        assert "apply: StackSucceeded" in out

    @pytest.mark.asyncio
    async def test_empty_stack(self, workspace, capsys):
        await async_main(workspace("outputs"))
        assert "[*] Stack web has no tracked resources." in capsys.readouterr().out


class TestStartupErrors:
    @pytest.mark.asyncio
    async def test_invalid_configuration(self, tmp_path, capsys):
        config = tmp_path / "strata.json"
        config.write_text(json.dumps({"engine": {"failure_policy": "retry"}}))
        with pytest.raises(SystemExit) as exc_info:
            await async_main(["--config", str(config), "outputs", "-s", "web"])
        assert exc_info.value.code == 1
        assert "[-] Invalid configuration" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_container_failure(self, workspace, capsys):
        with patch(
            "strata.presentation.cli.cli.create_container",
            side_effect=StateCorruptionError("registry unreadable"),
        ), pytest.raises(SystemExit) as exc_info:
            await async_main(workspace("outputs"))
        assert exc_info.value.code == 1
        assert "[-] Startup failed: registry unreadable" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_corrupt_state_reported(self, workspace, capsys):
        workspace.state_dir.mkdir()
        (workspace.state_dir / "web.json").write_text("{broken")
        with pytest.raises(SystemExit) as exc_info:
            await async_main(workspace("outputs"))
        assert exc_info.value.code == 1
        assert "not valid JSON" in capsys.readouterr().out
