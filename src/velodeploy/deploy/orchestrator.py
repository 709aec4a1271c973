"""Deployment orchestration.

The :class:`DeploymentOrchestrator` drives the seven deployment steps in a
fixed order, publishes an immutable :class:`DeploymentRunState` snapshot on
every transition and converts failures into typed deployment errors.
"""

from __future__ import annotations

import asyncio
import inspect
import subprocess  # nosec B404
from collections.abc import Callable
from pathlib import Path
from typing import Any

from velodeploy.config.defaults import (
    BINARY_NAME,
    VERSION_TIMEOUT,
    default_datastore_dir,
)
from velodeploy.deploy import directories, materializer
from velodeploy.deploy.acquirer import BinaryAcquirer
from velodeploy.deploy.preflight import Preflight
from velodeploy.deploy.registrar import ServiceRegistrar
from velodeploy.deploy.supervisor import ServiceController
from velodeploy.deploy.verifier import Verifier
from velodeploy.lib.errors import (
    BusyError,
    ConfigGenerationFailedError,
    DeploymentError,
    DownloadFailedError,
    InsufficientDiskSpaceError,
    PermissionDeniedError,
    ServiceInstallFailedError,
    StartupFailedError,
    VerificationFailedError,
)
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig
from velodeploy.models.deployment_state import (
    DeploymentRunState,
    DeploymentStep,
    StepError,
    StepState,
    StepStatus,
)

logger = get_logger(__name__)

StateObserver = Callable[[DeploymentRunState], None]

SUCCESS_MESSAGE = "Deployment completed successfully!"

# Error raised for an unexpected OSError escaping each step
STEP_FALLBACK_ERRORS: dict[DeploymentStep, type[DeploymentError]] = {
    DeploymentStep.PREPARATION: InsufficientDiskSpaceError,
    DeploymentStep.ACQUISITION: DownloadFailedError,
    DeploymentStep.DIRECTORY_PROVISIONING: ConfigGenerationFailedError,
    DeploymentStep.CONFIGURATION_GENERATION: ConfigGenerationFailedError,
    DeploymentStep.SERVICE_REGISTRATION: ServiceInstallFailedError,
    DeploymentStep.SERVICE_START: StartupFailedError,
    DeploymentStep.VERIFICATION: VerificationFailedError,
}


def to_deployment_error(step: DeploymentStep, exc: Exception) -> DeploymentError:
    """Map an exception escaping ``step`` to a typed deployment error."""
    if isinstance(exc, DeploymentError):
        return exc
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(str(exc), operation=step.value)
    error_cls = STEP_FALLBACK_ERRORS[step]
    return error_cls(str(exc) or type(exc).__name__, operation=step.value)


def read_installed_version(
    binary_path: Path, timeout: float = VERSION_TIMEOUT
) -> str | None:
    """Return the output of ``<binary> version``, or None if it cannot run."""
    try:
        result = subprocess.run(  # noqa: S603  # nosec B603
            [str(binary_path), "version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug(f"Could not read version from {binary_path}: {exc}")
        return None
    output = (result.stdout + result.stderr).strip()
    return output or None


class DeploymentOrchestrator:
    """Runs deployments and service lifecycle operations.

    Only one deployment may run at a time per orchestrator; a second call to
    :meth:`deploy` while one is in flight fails with :class:`BusyError`.

    Example:
        >>> orchestrator = DeploymentOrchestrator()
        >>> orchestrator.subscribe(lambda state: print(state.status_message))
        >>> await orchestrator.deploy(config)
    """

    def __init__(
        self,
        settings: DeployerSettings | None = None,
        *,
        preflight: Preflight | None = None,
        acquirer: BinaryAcquirer | None = None,
        controller: ServiceController | None = None,
        registrar: ServiceRegistrar | None = None,
        verifier: Verifier | None = None,
    ) -> None:
        self.settings = settings or DeployerSettings()
        self.preflight = preflight or Preflight(self.settings)
        self.acquirer = acquirer or BinaryAcquirer(self.settings)
        self.controller = controller or ServiceController(self.settings)
        self.registrar = registrar or ServiceRegistrar(self.settings, self.controller)
        self.verifier = verifier or Verifier(self.settings)

        self._lock = asyncio.Lock()
        self._state = DeploymentRunState.initial()
        self._observers: list[StateObserver] = []

        self.installed_version: str | None = None
        self.binary_path: Path | None = None

    # State publication

    @property
    def state(self) -> DeploymentRunState:
        """Current run state snapshot."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Whether the service is believed to be running.

        Tracked by the service controller; the orchestrator only reads it.
        """
        return self.controller.is_running

    def subscribe(self, callback: StateObserver) -> Callable[[], None]:
        """Register ``callback`` for every new state snapshot.

        Returns:
            A function that removes the subscription
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _publish(self, state: DeploymentRunState) -> None:
        self._state = state
        for callback in list(self._observers):
            try:
                callback(state)
            except Exception:
                logger.exception("State observer raised; ignoring")

    # Deployment

    async def deploy(self, config: DeploymentConfig) -> None:
        """Run a full deployment of ``config``.

        Raises:
            BusyError: If a deployment is already in progress
            DeploymentError: If any step fails
        """
        if self._lock.locked():
            raise BusyError(operation="deploy")

        async with self._lock:
            await self._run(config)

    async def _run(self, config: DeploymentConfig) -> None:
        self._publish(DeploymentRunState(is_deploying=True))
        logger.info(f"Starting {config.deployment_type.value} deployment")

        try:
            await self._execute_step(
                DeploymentStep.PREPARATION, self.preflight.run, config
            )
            binary_path = await self._execute_step(
                DeploymentStep.ACQUISITION,
                self.acquirer.acquire,
                config.storage.datastore_dir,
                config,
            )
            await self._execute_step(
                DeploymentStep.DIRECTORY_PROVISIONING, directories.provision, config
            )
            config_path = await self._execute_step(
                DeploymentStep.CONFIGURATION_GENERATION,
                materializer.materialize,
                config,
                binary_path,
            )
            await self._execute_step(
                DeploymentStep.SERVICE_REGISTRATION,
                self.registrar.register,
                binary_path,
                config_path,
                config,
            )
            await self._execute_step(
                DeploymentStep.SERVICE_START, self.controller.start
            )
            await self._execute_step(
                DeploymentStep.VERIFICATION, self.verifier.verify, config
            )
        except DeploymentError as error:
            if self._state.failed_step == DeploymentStep.VERIFICATION:
                # launchd accepted the job but the process is gone
                self.controller.is_running = False
            self._publish(
                self._state.model_copy(
                    update={
                        "is_deploying": False,
                        "status_message": f"Deployment failed: {error.message}",
                    }
                )
            )
            logger.error(f"Deployment failed: {error.message}")
            raise

        self.binary_path = binary_path
        self._publish(
            self._state.model_copy(
                update={"is_deploying": False, "status_message": SUCCESS_MESSAGE}
            )
        )
        logger.info("Deployment completed successfully")

    async def _execute_step(
        self, step: DeploymentStep, action: Callable[..., Any], *args: Any
    ) -> Any:
        """Run one step, recording its transitions.

        Synchronous actions run in a worker thread; coroutine functions are
        awaited directly.
        """
        self._publish(
            self._state.with_step(
                step,
                StepStatus(state=StepState.IN_PROGRESS),
                status_message=f"{step.label}...",
            )
        )
        logger.info(f"Starting step: {step.value}")

        try:
            if inspect.iscoroutinefunction(action):
                result = await action(*args)
            else:
                result = await asyncio.to_thread(action, *args)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as exc:
            error = to_deployment_error(step, exc)
            step_error = StepError.from_exception(error)
            self._publish(
                self._state.with_step(
                    step, StepStatus.failed(step_error), last_error=step_error
                )
            )
            if error is exc:
                raise
            raise error from exc

        progress = max(self._state.progress, step.checkpoint)
        self._publish(
            self._state.with_step(
                step, StepStatus(state=StepState.COMPLETED), progress=progress
            )
        )
        logger.info(f"Completed step: {step.value}")
        return result

    async def emergency_deploy(self, home: Path | None = None) -> DeploymentConfig:
        """Deploy the fixed minimal emergency configuration.

        Returns:
            The generated configuration, so callers can show the throwaway
            admin password

        Raises:
            BusyError: If a deployment is already in progress
            DeploymentError: If any step fails
        """
        logger.warning("Starting emergency deployment")
        config = DeploymentConfig.emergency(home)
        await self.deploy(config)
        return config

    # Service lifecycle

    async def stop_service(self) -> None:
        """Stop the service and keep it disabled at next login."""
        await asyncio.to_thread(self.controller.stop)

    async def restart_service(self) -> None:
        """Stop, pause briefly, then start the service.

        Raises:
            StartupFailedError: If the service cannot be started again
        """
        await asyncio.to_thread(self.controller.restart)

    def refresh_installation(self, binary_path: Path | None = None) -> bool:
        """Refresh ``is_running`` and ``installed_version`` from the host.

        Args:
            binary_path: Binary to inspect (defaults to the last deployed one,
                then the default datastore location)

        Returns:
            True if an installed binary was found
        """
        path = binary_path or self.binary_path or default_datastore_dir() / BINARY_NAME
        if not path.is_file():
            logger.debug(f"No installed binary at {path}")
            return False

        self.controller.is_running = self.verifier.is_running()
        self.installed_version = read_installed_version(path)
        return True
