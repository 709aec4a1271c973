"""Post-start verification of the Velociraptor service."""

from __future__ import annotations

import subprocess  # nosec B404
from dataclasses import dataclass

import httpx

from velodeploy.lib.errors import VerificationFailedError
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig

logger = get_logger(__name__)


@dataclass
class ProbeResult:
    """Outcome of a management endpoint probe."""

    url: str
    reachable: bool
    status_code: int | None = None
    error: str | None = None


def is_process_running(name: str, pgrep_path: str = "/usr/bin/pgrep") -> bool:
    """Return True if a process named exactly ``name`` is running."""
    try:
        result = subprocess.run(  # noqa: S603  # nosec B603
            [pgrep_path, "-x", name],
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        logger.debug(f"pgrep unavailable: {exc}")
        return False
    return result.returncode == 0


class Verifier:
    """Confirms the agent is alive after startup.

    Only process liveness decides the outcome. The HTTPS probe of the GUI
    endpoint is informational because the agent may still be initializing.
    """

    def __init__(
        self,
        settings: DeployerSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = client

    def management_url(self, config: DeploymentConfig) -> str:
        """URL of the management (GUI) endpoint."""
        gui = config.network.gui
        return f"https://{gui.probe_host}:{gui.port}"

    def is_running(self) -> bool:
        """Whether the agent process is alive."""
        return is_process_running(self.settings.process_name, self.settings.pgrep_path)

    async def probe(self, url: str) -> ProbeResult:
        """Issue one GET against ``url``, accepting self-signed certificates.

        Never raises for network failures; they are reported in the result.
        """
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(
                    verify=False,  # nosec B501
                    timeout=self.settings.probe_timeout,
                ) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            return ProbeResult(url=url, reachable=False, error=str(exc))
        return ProbeResult(url=url, reachable=True, status_code=response.status_code)

    async def verify(self, config: DeploymentConfig) -> ProbeResult:
        """Verify the deployment.

        Raises:
            VerificationFailedError: If the agent process is not running
        """
        if not self.is_running():
            raise VerificationFailedError(
                "Velociraptor process is not running", operation="verification"
            )

        result = await self.probe(self.management_url(config))
        if result.reachable:
            logger.info(f"GUI responded with status: {result.status_code}")
        else:
            logger.warning(
                f"Could not connect to GUI (may still be starting): {result.error}"
            )

        logger.info("Deployment verified")
        return result
