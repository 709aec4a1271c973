"""Unit tests for the velodeploy deploy CLI command group.

Tests cover:
- Deploy command group help
- run, emergency, stop, restart and validate subcommands
- Exit codes for configuration and deployment errors
- JSON output of the final run state
"""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from velodeploy.cli.commands.deploy import ProgressPrinter, deploy
from velodeploy.lib.errors import StartupFailedError
from velodeploy.models.deployment_state import (
    DeploymentRunState,
    DeploymentStep,
    StepState,
    StepStatus,
)

VALID_CONFIG = """
deployment_type: standalone
organization_name: Acme
storage:
  datastore_dir: {root}/datastore
  logs_dir: {root}/logs
  cache_dir: {root}/cache
credentials:
  username: admin
  password: ${{VELO_ADMIN_PASSWORD}}
acquisition:
  mode: download
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A valid deployment configuration using an environment reference."""
    monkeypatch.setenv("VELO_ADMIN_PASSWORD", "hunter2hunter2")
    path = tmp_path / "velociraptor.yaml"
    path.write_text(VALID_CONFIG.format(root=tmp_path))
    return path


@pytest.fixture
def mock_orchestrator() -> Generator[MagicMock]:
    """Patch the orchestrator used by the deploy commands."""
    with patch("velodeploy.cli.commands.deploy.DeploymentOrchestrator") as cls:
        instance = cls.return_value
        instance.deploy = AsyncMock()
        instance.stop_service = AsyncMock()
        instance.restart_service = AsyncMock()
        instance.state = DeploymentRunState(
            progress=1.0, status_message="Deployment completed successfully!"
        )
        yield instance


class TestDeployGroup:
    """Tests for the deploy command group."""

    def test_help_without_subcommand(self, runner: CliRunner) -> None:
        """Invoking the group alone prints its help."""
        result = runner.invoke(deploy, [])

        assert result.exit_code == 0
        assert "run" in result.output
        assert "emergency" in result.output
        assert "validate" in result.output


class TestRunCommand:
    """Tests for 'deploy run'."""

    def test_success(
        self, runner: CliRunner, config_file: Path, mock_orchestrator: MagicMock
    ) -> None:
        """A successful deployment prints a summary without the password."""
        result = runner.invoke(deploy, ["run", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Deployment Successful!" in result.output
        assert "Type:      standalone" in result.output
        assert "hunter2hunter2" not in result.output

        config = mock_orchestrator.deploy.await_args.args[0]
        assert config.organization_name == "Acme"
        assert config.credentials.password.get_secret_value() == "hunter2hunter2"

    def test_deployment_error_exits_3(
        self, runner: CliRunner, config_file: Path, mock_orchestrator: MagicMock
    ) -> None:
        """Deployment errors exit with code 3 and a recovery suggestion."""
        mock_orchestrator.deploy.side_effect = StartupFailedError(
            "launchctl load failed with status 5", operation="service_start"
        )

        result = runner.invoke(deploy, ["run", str(config_file)])

        assert result.exit_code == 3
        assert "service_start failed" in result.output
        assert "Startup failed: launchctl load failed" in result.output
        assert "Suggestion: Check the logs for more details" in result.output

    def test_invalid_config_exits_2(
        self, runner: CliRunner, tmp_path: Path, mock_orchestrator: MagicMock
    ) -> None:
        """A configuration without credentials exits with code 2."""
        path = tmp_path / "broken.yaml"
        path.write_text("deployment_type: standalone\n")

        result = runner.invoke(deploy, ["run", str(path)])

        assert result.exit_code == 2
        assert "Configuration error" in result.output
        mock_orchestrator.deploy.assert_not_called()

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        """A missing configuration file is rejected by click."""
        result = runner.invoke(deploy, ["run", str(tmp_path / "missing.yaml")])

        assert result.exit_code != 0
        assert "does not exist" in result.output

    def test_json_output(
        self, runner: CliRunner, config_file: Path, mock_orchestrator: MagicMock
    ) -> None:
        """--json prints the final run state and no summary."""
        result = runner.invoke(deploy, ["run", str(config_file), "--json"])

        assert result.exit_code == 0, result.output
        assert "Deployment Successful!" not in result.output
        state = json.loads(result.output)
        assert state["progress"] == 1.0
        assert state["status_message"] == "Deployment completed successfully!"

    def test_quiet_skips_progress(
        self, runner: CliRunner, config_file: Path, mock_orchestrator: MagicMock
    ) -> None:
        """--quiet does not subscribe a progress printer."""
        result = runner.invoke(deploy, ["run", str(config_file), "--quiet"])

        assert result.exit_code == 0
        mock_orchestrator.subscribe.assert_not_called()
        assert result.output == ""

    def test_settings_file(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        mock_orchestrator: MagicMock,
    ) -> None:
        """Engine settings are read from --settings."""
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text("service_label: com.example.velo\n")

        with patch("velodeploy.cli.commands.deploy.DeploymentOrchestrator") as cls:
            cls.return_value = mock_orchestrator
            result = runner.invoke(
                deploy,
                ["run", str(config_file), "--settings", str(settings_file)],
            )

        assert result.exit_code == 0, result.output
        settings = cls.call_args.args[0]
        assert settings.service_label == "com.example.velo"


class TestEmergencyCommand:
    """Tests for 'deploy emergency'."""

    def test_prints_generated_password(
        self, runner: CliRunner, mock_orchestrator: MagicMock
    ) -> None:
        """The throwaway admin password is shown once."""
        result = runner.invoke(deploy, ["emergency"])

        assert result.exit_code == 0, result.output
        assert "Starting emergency deployment" in result.output
        assert "Password:  emergency_" in result.output

        config = mock_orchestrator.deploy.await_args.args[0]
        assert config.storage.datastore_dir.name == "EmergencyVelociraptor"


class TestServiceCommands:
    """Tests for 'deploy stop' and 'deploy restart'."""

    def test_stop(self, runner: CliRunner, mock_orchestrator: MagicMock) -> None:
        """stop delegates to the orchestrator."""
        result = runner.invoke(deploy, ["stop"])

        assert result.exit_code == 0
        assert "Service stopped" in result.output
        mock_orchestrator.stop_service.assert_awaited_once()

    def test_restart(self, runner: CliRunner, mock_orchestrator: MagicMock) -> None:
        """restart delegates to the orchestrator."""
        result = runner.invoke(deploy, ["restart"])

        assert result.exit_code == 0
        assert "Service restarted" in result.output
        mock_orchestrator.restart_service.assert_awaited_once()

    def test_restart_failure(
        self, runner: CliRunner, mock_orchestrator: MagicMock
    ) -> None:
        """A failed restart exits with code 3."""
        mock_orchestrator.restart_service.side_effect = StartupFailedError(
            "status 1", operation="restart"
        )

        result = runner.invoke(deploy, ["restart"])

        assert result.exit_code == 3
        assert "restart failed" in result.output


class TestValidateCommand:
    """Tests for 'deploy validate'."""

    def test_valid(self, runner: CliRunner, config_file: Path) -> None:
        """A valid file reports its main choices."""
        result = runner.invoke(deploy, ["validate", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "is valid" in result.output
        assert "Acquisition: download" in result.output
        assert "Certificate: self_signed" in result.output

    def test_conflicting_ports(self, runner: CliRunner, tmp_path: Path) -> None:
        """Two services on one port is a configuration error."""
        path = tmp_path / "ports.yaml"
        path.write_text(
            """
credentials:
  username: admin
  password: s3cretpass
network:
  frontend: {address: 0.0.0.0, port: 8000}
  gui: {address: 127.0.0.1, port: 8000}
  api: {address: 127.0.0.1, port: 8001}
"""
        )

        result = runner.invoke(deploy, ["validate", str(path)])

        assert result.exit_code == 2

    def test_invalid_yaml(self, runner: CliRunner, tmp_path: Path) -> None:
        """Unparsable YAML is a configuration error."""
        path = tmp_path / "bad.yaml"
        path.write_text("credentials: [unclosed\n")

        result = runner.invoke(deploy, ["validate", str(path)])

        assert result.exit_code == 2
        assert "Invalid YAML" in result.output


class TestProgressPrinter:
    """Tests for the progress printer."""

    def test_prints_each_transition_once(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Repeated snapshots with the same step state print nothing new."""
        printer = ProgressPrinter()
        running = DeploymentRunState(is_deploying=True).with_step(
            DeploymentStep.PREPARATION, StepStatus(state=StepState.IN_PROGRESS)
        )
        done = running.with_step(
            DeploymentStep.PREPARATION,
            StepStatus(state=StepState.COMPLETED),
            progress=0.1,
        )

        printer(running)
        printer(running)
        printer(done)

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("[..]")
        assert lines[1].startswith("[ok]")
        assert "Preparation" in lines[1]
