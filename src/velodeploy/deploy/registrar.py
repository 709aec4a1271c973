"""Service registration with launchd.

Builds the :class:`ServiceDescriptor` for a deployment, renders it as a
launchd property list and installs it in the per-user LaunchAgents
directory, replacing any previous registration.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment

from velodeploy.config.defaults import SERVICE_PATH
from velodeploy.deploy.supervisor import ServiceController
from velodeploy.lib.errors import ServiceInstallFailedError
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig
from velodeploy.models.service import ServiceDescriptor

logger = get_logger(__name__)

# Argument that runs Velociraptor as a foreground server
FOREGROUND_COMMAND = "frontend"

LAUNCHD_PLIST_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" \
"http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{{ descriptor.label }}</string>
    <key>ProgramArguments</key>
    <array>
    {% for argument in descriptor.program_arguments %}
        <string>{{ argument }}</string>
    {% endfor %}
    </array>
    <key>RunAtLoad</key>
    <{{ "true" if descriptor.run_at_load else "false" }}/>
    <key>KeepAlive</key>
    <dict>
        <key>SuccessfulExit</key>
        <{{ "false" if descriptor.keep_alive_on_failure else "true" }}/>
    </dict>
    <key>StandardOutPath</key>
    <string>{{ descriptor.stdout_path }}</string>
    <key>StandardErrorPath</key>
    <string>{{ descriptor.stderr_path }}</string>
    <key>WorkingDirectory</key>
    <string>{{ descriptor.working_directory }}</string>
    <key>EnvironmentVariables</key>
    <dict>
    {% for key, value in descriptor.environment.items() %}
        <key>{{ key }}</key>
        <string>{{ value }}</string>
    {% endfor %}
    </dict>
</dict>
</plist>
"""

_plist_env = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)


def build_descriptor(
    binary_path: Path,
    config_path: Path,
    config: DeploymentConfig,
    label: str,
) -> ServiceDescriptor:
    """Describe how launchd should run the deployed binary."""
    logs_dir = config.storage.logs_dir
    return ServiceDescriptor(
        label=label,
        program=binary_path,
        arguments=[FOREGROUND_COMMAND, "--config", str(config_path)],
        run_at_load=config.launch_at_login,
        keep_alive_on_failure=True,
        stdout_path=logs_dir / "velociraptor.log",
        stderr_path=logs_dir / "velociraptor.error.log",
        working_directory=config.storage.datastore_dir,
        environment={"PATH": SERVICE_PATH},
    )


def render_plist(descriptor: ServiceDescriptor) -> str:
    """Render ``descriptor`` as launchd property list XML.

    Example:
        >>> xml = render_plist(descriptor)
        >>> "<key>ProgramArguments</key>" in xml
        True
    """
    template = _plist_env.from_string(LAUNCHD_PLIST_TEMPLATE)
    return template.render(descriptor=descriptor)


class ServiceRegistrar:
    """Installs the service descriptor at its well-known path."""

    def __init__(
        self,
        settings: DeployerSettings,
        controller: ServiceController,
    ) -> None:
        self.settings = settings
        self.controller = controller

    @property
    def descriptor_path(self) -> Path:
        """Where the descriptor is installed."""
        return self.settings.descriptor_path

    def register(
        self, binary_path: Path, config_path: Path, config: DeploymentConfig
    ) -> Path:
        """Install or replace the service descriptor.

        An existing descriptor is unloaded (best effort) and removed before
        the new one is written, so exactly one descriptor remains.

        Args:
            binary_path: Installed Velociraptor binary
            config_path: Rendered configuration document
            config: Deployment configuration

        Returns:
            Path of the installed descriptor

        Raises:
            ServiceInstallFailedError: If the descriptor cannot be written
        """
        descriptor = build_descriptor(
            binary_path, config_path, config, self.settings.service_label
        )
        content = render_plist(descriptor)
        path = self.descriptor_path

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                self.controller.try_unload()
                path.unlink()
            path.write_text(content, encoding="utf-8")
        except PermissionError:
            raise
        except OSError as exc:
            raise ServiceInstallFailedError(
                f"could not install {path}: {exc}", operation="service"
            ) from exc

        logger.info(f"Launchd plist installed: {path}")
        return path
