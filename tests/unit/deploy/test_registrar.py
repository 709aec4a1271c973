"""Unit tests for launchd service registration."""

from __future__ import annotations

import plistlib
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from velodeploy.deploy.registrar import ServiceRegistrar, build_descriptor, render_plist
from velodeploy.deploy.supervisor import ServiceController
from velodeploy.lib.errors import ServiceInstallFailedError
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig


@pytest.fixture
def controller() -> MagicMock:
    """A service controller that records unload attempts."""
    return MagicMock(spec=ServiceController)


class TestBuildDescriptor:
    """Tests for build_descriptor."""

    def test_descriptor_fields(self, config: DeploymentConfig, tmp_path: Path) -> None:
        """The descriptor runs the frontend with the generated config."""
        binary = tmp_path / "velociraptor"
        config_path = tmp_path / "server.config.yaml"

        descriptor = build_descriptor(binary, config_path, config, "com.example.velo")

        assert descriptor.label == "com.example.velo"
        assert descriptor.program_arguments == [
            str(binary),
            "frontend",
            "--config",
            str(config_path),
        ]
        assert descriptor.run_at_load is False
        assert descriptor.keep_alive_on_failure is True
        assert descriptor.stdout_path == config.storage.logs_dir / "velociraptor.log"
        assert descriptor.stderr_path == (
            config.storage.logs_dir / "velociraptor.error.log"
        )
        assert descriptor.working_directory == config.storage.datastore_dir
        assert descriptor.environment == {
            "PATH": "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
        }

    def test_run_at_load_follows_launch_at_login(
        self, make_config: Callable[..., DeploymentConfig], tmp_path: Path
    ) -> None:
        """Launch-at-login maps to RunAtLoad."""
        config = make_config(launch_at_login=True)

        descriptor = build_descriptor(
            tmp_path / "velociraptor", tmp_path / "c.yaml", config, "label"
        )

        assert descriptor.run_at_load is True


class TestRenderPlist:
    """Tests for render_plist."""

    def test_renders_valid_property_list(
        self, config: DeploymentConfig, tmp_path: Path
    ) -> None:
        """The rendered document parses as a launchd property list."""
        descriptor = build_descriptor(
            tmp_path / "Velo Dir" / "velociraptor",
            tmp_path / "server.config.yaml",
            config,
            "com.velocidex.velociraptor",
        )

        parsed = plistlib.loads(render_plist(descriptor).encode("utf-8"))

        assert parsed["Label"] == "com.velocidex.velociraptor"
        assert parsed["ProgramArguments"] == descriptor.program_arguments
        assert parsed["RunAtLoad"] is False
        assert parsed["KeepAlive"] == {"SuccessfulExit": False}
        assert parsed["StandardOutPath"] == str(descriptor.stdout_path)
        assert parsed["StandardErrorPath"] == str(descriptor.stderr_path)
        assert parsed["WorkingDirectory"] == str(config.storage.datastore_dir)
        assert parsed["EnvironmentVariables"]["PATH"] == (
            "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
        )

    def test_special_characters_are_escaped(
        self, config: DeploymentConfig, tmp_path: Path
    ) -> None:
        """Paths containing XML markup characters survive rendering."""
        binary = tmp_path / "R&D <tools>" / "velociraptor"
        descriptor = build_descriptor(binary, tmp_path / "c.yaml", config, "label")

        parsed = plistlib.loads(render_plist(descriptor).encode("utf-8"))

        assert parsed["ProgramArguments"][0] == str(binary)


class TestServiceRegistrar:
    """Tests for ServiceRegistrar.register."""

    def test_installs_descriptor(
        self,
        settings: DeployerSettings,
        controller: MagicMock,
        config: DeploymentConfig,
        tmp_path: Path,
    ) -> None:
        """A fresh install writes the descriptor without unloading."""
        registrar = ServiceRegistrar(settings, controller)

        path = registrar.register(
            tmp_path / "velociraptor", tmp_path / "server.config.yaml", config
        )

        assert path == settings.descriptor_path
        assert path.name == "com.velocidex.velociraptor.plist"
        assert plistlib.loads(path.read_bytes())["Label"] == settings.service_label
        controller.try_unload.assert_not_called()

    def test_replaces_existing_descriptor(
        self,
        settings: DeployerSettings,
        controller: MagicMock,
        make_config: Callable[..., DeploymentConfig],
        tmp_path: Path,
    ) -> None:
        """A second registration replaces the first with its own parameters."""
        settings.launch_agents_dir.mkdir(parents=True)
        settings.descriptor_path.write_text("stale", encoding="utf-8")
        registrar = ServiceRegistrar(settings, controller)

        registrar.register(
            tmp_path / "old" / "velociraptor",
            tmp_path / "old.config.yaml",
            make_config(),
        )
        new_binary = tmp_path / "new" / "velociraptor"
        new_config_path = tmp_path / "new.config.yaml"
        registrar.register(
            new_binary, new_config_path, make_config(launch_at_login=True)
        )

        assert controller.try_unload.call_count == 2
        assert list(settings.launch_agents_dir.iterdir()) == [
            settings.descriptor_path
        ]
        parsed = plistlib.loads(settings.descriptor_path.read_bytes())
        assert parsed["ProgramArguments"] == [
            str(new_binary),
            "frontend",
            "--config",
            str(new_config_path),
        ]
        assert parsed["RunAtLoad"] is True

    def test_unload_failure_is_ignored(
        self,
        settings: DeployerSettings,
        config: DeploymentConfig,
        tmp_path: Path,
    ) -> None:
        """A failing best-effort unload does not stop the replacement."""
        settings.launch_agents_dir.mkdir(parents=True)
        settings.descriptor_path.write_text("stale", encoding="utf-8")
        launchctl = MagicMock()
        launchctl.unload.return_value = MagicMock(ok=False, output="not loaded")
        controller = ServiceController(settings, launchctl=launchctl)

        ServiceRegistrar(settings, controller).register(
            tmp_path / "velociraptor", tmp_path / "server.config.yaml", config
        )

        launchctl.unload.assert_called_once_with(settings.descriptor_path)
        assert settings.descriptor_path.read_text(encoding="utf-8") != "stale"

    def test_write_failure(
        self,
        controller: MagicMock,
        config: DeploymentConfig,
        tmp_path: Path,
    ) -> None:
        """An unwritable LaunchAgents location is ServiceInstallFailed."""
        blocker = tmp_path / "LaunchAgents"
        blocker.write_text("not a directory", encoding="utf-8")
        settings = DeployerSettings(launch_agents_dir=blocker)

        with pytest.raises(ServiceInstallFailedError):
            ServiceRegistrar(settings, controller).register(
                tmp_path / "velociraptor", tmp_path / "server.config.yaml", config
            )
