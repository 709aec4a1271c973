"""launchd service control.

:class:`Launchctl` wraps the two ``launchctl`` subcommands the engine needs
and :class:`ServiceController` builds start/stop/restart on top of them.
"""

from __future__ import annotations

import subprocess  # nosec B404
import time
from dataclasses import dataclass
from pathlib import Path

from velodeploy.lib.errors import StartupFailedError
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of a supervisor command.

    Attributes:
        args: The command line that was run
        returncode: Exit status (-1 when the command could not be spawned)
        output: Combined stdout/stderr text
    """

    args: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited successfully."""
        return self.returncode == 0


class Launchctl:
    """Thin wrapper over the ``launchctl`` command line tool."""

    def __init__(self, launchctl_path: str) -> None:
        self.launchctl_path = launchctl_path

    def _run(self, *args: str) -> CommandResult:
        command = [self.launchctl_path, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(  # noqa: S603  # nosec B603
                command,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            logger.debug(f"Could not run {self.launchctl_path}: {exc}")
            return CommandResult(args=command, returncode=-1, output=str(exc))
        output = (result.stdout + result.stderr).strip()
        return CommandResult(args=command, returncode=result.returncode, output=output)

    def load(self, descriptor: Path) -> CommandResult:
        """Register and start the job described by ``descriptor``."""
        return self._run("load", str(descriptor))

    def unload(self, descriptor: Path, disable: bool = False) -> CommandResult:
        """Stop and deregister the job.

        Args:
            descriptor: Descriptor path
            disable: Pass ``-w`` so the job stays disabled at next login
        """
        if disable:
            return self._run("unload", "-w", str(descriptor))
        return self._run("unload", str(descriptor))


class ServiceController:
    """Starts, stops and restarts the installed service."""

    def __init__(
        self,
        settings: DeployerSettings,
        launchctl: Launchctl | None = None,
    ) -> None:
        self.settings = settings
        self.launchctl = launchctl or Launchctl(settings.launchctl_path)
        self.is_running = False

    @property
    def descriptor_path(self) -> Path:
        """Path of the installed service descriptor."""
        return self.settings.descriptor_path

    def start(self) -> None:
        """Load the service and wait for it to begin listening.

        Raises:
            StartupFailedError: If ``launchctl load`` fails
        """
        result = self.launchctl.load(self.descriptor_path)
        if not result.ok:
            raise StartupFailedError(
                f"launchctl load failed with status {result.returncode}"
                + (f": {result.output}" if result.output else ""),
                operation="start",
            )

        time.sleep(self.settings.start_grace_seconds)
        self.is_running = True
        logger.info("Service started")

    def stop(self) -> CommandResult:
        """Unload the service and keep it disabled at next login.

        Failure of the underlying command is logged, not raised; the service
        is considered stopped either way.
        """
        result = self.launchctl.unload(self.descriptor_path, disable=True)
        if not result.ok:
            logger.warning(
                f"launchctl unload exited with {result.returncode}: {result.output}"
            )
        self.is_running = False
        logger.info("Service stopped")
        return result

    def restart(self) -> None:
        """Stop, pause briefly, then start the service.

        Raises:
            StartupFailedError: If the start half fails
        """
        self.stop()
        time.sleep(self.settings.restart_pause_seconds)
        self.start()

    def try_unload(self) -> CommandResult:
        """Unload the service, discarding any failure.

        Used before replacing a descriptor: an already-unloaded service
        makes ``launchctl unload`` fail, which is expected.
        """
        result = self.launchctl.unload(self.descriptor_path)
        if not result.ok:
            logger.debug(f"Ignoring unload failure: {result.output}")
        return result
