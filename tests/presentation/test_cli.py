"""Tests for CLI module."""

import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from hoist.application.use_cases.inspect_host import PreflightReport
from hoist.domain.entities.deployment import DeploymentResult, Outcome
from hoist.domain.errors import CommandError, ConfigError, ResourceError, RollbackError
from hoist.domain.value_objects.snapshot import BackupSnapshot
from hoist.presentation.cli.cli import apply_cli_overrides, async_main, build_parser

SNAPSHOT = BackupSnapshot("/srv/app_backup_20240309_140507")


def _make_container(**overrides):
    """Create a mock container with sensible defaults."""
    container = MagicMock()
    container.deploy = MagicMock()
    container.deploy.execute = AsyncMock(
        return_value=DeploymentResult(outcome=Outcome.SUCCEEDED, snapshot=SNAPSHOT)
    )
    container.rollback = MagicMock()
    container.rollback.execute = AsyncMock(return_value=SNAPSHOT)
    container.inspect = MagicMock()
    container.inspect.preflight_only = AsyncMock(
        return_value=PreflightReport(passed=True, snapshots=(SNAPSHOT,))
    )
    container.inspect.list_snapshots = AsyncMock(return_value=[SNAPSHOT])
    for key, value in overrides.items():
        setattr(container, key, value)
    return container


@pytest.fixture
def wired(config):
    """Patches config loading and container creation; yields the mock container."""
    container = _make_container()
    with patch("hoist.presentation.cli.cli.load_config", return_value=config), \
         patch("hoist.composition_root.create_container", return_value=container):
        yield container


class TestCLIHelp:
    """Test all help outputs (no adapter dependencies)."""

    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        assert await async_main([]) == 0
        captured = capsys.readouterr()
        assert "single-host deployments" in captured.out

    @pytest.mark.parametrize("command", ["deploy", "preflight", "rollback", "snapshots", "concat"])
    @pytest.mark.asyncio
    async def test_subcommand_help(self, command):
        with pytest.raises(SystemExit, match="0"):
            await async_main([command, "--help"])

    @pytest.mark.asyncio
    async def test_help_flag(self):
        with pytest.raises(SystemExit, match="0"):
            await async_main(["--help"])


class TestOverrides:
    def test_target_override(self, config):
        args = build_parser().parse_args(["deploy", "--target", "ops@10.0.0.5:2222"])
        updated = apply_cli_overrides(config, args)
        assert updated.target.host == "10.0.0.5"
        assert updated.target.username == "ops"
        assert updated.target.port == 2222
        assert updated.target.password == "secret"

    def test_target_keeps_configured_user(self, config):
        args = build_parser().parse_args(["deploy", "-t", "10.0.0.5"])
        updated = apply_cli_overrides(config, args)
        assert updated.target.username == "deploy"
        assert updated.target.port == 22

    def test_deploy_overrides(self, config):
        args = build_parser().parse_args([
            "deploy", "-d", "/srv/other", "-p", "/work/site", "-s", "web",
            "--runtime-version", "18.19.0", "--allow-fresh-install",
        ])
        updated = apply_cli_overrides(config, args)
        assert updated.deploy.target_dir == "/srv/other"
        assert updated.deploy.project_dir == "/work/site"
        assert updated.supervisor.service_name == "web"
        assert updated.runtime.version == "18.19.0"
        assert updated.deploy.require_existing_install is False

    def test_no_flags_no_change(self, config):
        args = build_parser().parse_args(["snapshots"])
        assert apply_cli_overrides(config, args) == config


class TestDeployCommand:
    @pytest.mark.asyncio
    async def test_success(self, wired, capsys):
        assert await async_main(["deploy"]) == 0
        out = capsys.readouterr().out
        assert "[+] Deployment succeeded" in out
        assert SNAPSHOT.path in out

    @pytest.mark.parametrize("outcome,code", [
        (Outcome.FAILED_PRECHECK, 1),
        (Outcome.ROLLED_BACK, 2),
        (Outcome.ROLLBACK_FAILED, 3),
    ])
    @pytest.mark.asyncio
    async def test_exit_code_mirrors_outcome(self, wired, capsys, outcome, code):
        wired.deploy.execute = AsyncMock(return_value=DeploymentResult(
            outcome=outcome,
            failed_step="update",
            error=CommandError("npm install", 1, "ERR!"),
            rollback_error=RollbackError("mv failed") if outcome is Outcome.ROLLBACK_FAILED else None,
            snapshot=SNAPSHOT if outcome is not Outcome.FAILED_PRECHECK else None,
        ))

        assert await async_main(["deploy"]) == code
        assert "[-] Deployment failed at step 'update'" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_warnings_printed(self, wired, capsys):
        wired.deploy.execute = AsyncMock(return_value=DeploymentResult(
            outcome=Outcome.SUCCEEDED, warnings=("Runtime reported v18.0.0",),
        ))
        await async_main(["deploy"])
        assert "[!] Runtime reported v18.0.0" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_overrides_reach_use_case(self, wired):
        await async_main(["deploy", "-t", "ops@10.0.0.5", "-d", "/srv/other"])
        config = wired.deploy.execute.call_args.args[0]
        assert config.target.host == "10.0.0.5"
        assert config.deploy.target_dir == "/srv/other"

    @pytest.mark.asyncio
    async def test_config_error(self, capsys):
        with patch("hoist.presentation.cli.cli.load_config",
                   side_effect=ConfigError("Invalid JSON in hoist.json")):
            assert await async_main(["deploy"]) == 1
        assert "[-] Configuration error: Invalid JSON" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_bad_target_spec(self, wired, capsys):
        assert await async_main(["deploy", "-t", "host:notaport"]) == 1
        assert "Configuration error" in capsys.readouterr().out
        wired.deploy.execute.assert_not_called()


class TestPreflightCommand:
    @pytest.mark.asyncio
    async def test_passed(self, wired, capsys):
        assert await async_main(["preflight"]) == 0
        assert "1 snapshot(s)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_failed(self, wired, capsys):
        wired.inspect.preflight_only = AsyncMock(return_value=PreflightReport(
            passed=False, error=ResourceError("Insufficient disk space"),
        ))
        assert await async_main(["preflight"]) == 1
        assert "[-] Preflight failed [resource]" in capsys.readouterr().out


class TestSnapshotsCommand:
    @pytest.mark.asyncio
    async def test_lists(self, wired, capsys):
        assert await async_main(["snapshots"]) == 0
        assert SNAPSHOT.path in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_none(self, wired, capsys):
        wired.inspect.list_snapshots = AsyncMock(return_value=[])
        assert await async_main(["snapshots"]) == 0
        assert "No snapshots" in capsys.readouterr().out


class TestRollbackCommand:
    @pytest.mark.asyncio
    async def test_success(self, wired, capsys):
        assert await async_main(["rollback", "--snapshot", SNAPSHOT.path]) == 0
        wired.rollback.execute.assert_awaited_once()
        assert wired.rollback.execute.call_args.args[1] == SNAPSHOT.path
        assert "[+] Rollback Successful" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_rollback_error(self, wired):
        wired.rollback.execute = AsyncMock(side_effect=RollbackError("mv failed"))
        assert await async_main(["rollback"]) == 3

    @pytest.mark.asyncio
    async def test_other_error(self, wired, capsys):
        wired.rollback.execute = AsyncMock(side_effect=ResourceError("No snapshots found"))
        assert await async_main(["rollback"]) == 1
        assert "[-] Rollback Failed: No snapshots found" in capsys.readouterr().out


class TestConcatCommand:
    @pytest.mark.asyncio
    async def test_concat(self, tmp_path, capsys):
        (tmp_path / "api").mkdir()
        (tmp_path / "api" / "index.js").write_text("exports.a = 1;")
        output = tmp_path / "all.html"

        assert await async_main(["concat", str(tmp_path), "-o", str(output)]) == 0

        assert "<pre>" in output.read_text()
        assert "[+] Concatenated 1 files" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_concat_nothing_found(self, tmp_path, capsys):
        output = tmp_path / "all.js"
        assert await async_main(["concat", str(tmp_path), "-o", str(output)]) == 1
        assert "[-] Concatenation failed" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_concat_format_from_flag(self, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "app.json").write_text("{}")
        output = tmp_path / "bundle.txt"

        assert await async_main(["concat", str(tmp_path), "-o", str(output), "-f", ".ts"]) == 0
        assert output.read_text().startswith("// TypeScript")
