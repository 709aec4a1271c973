"""Preparation checks run before anything is downloaded or written."""

from __future__ import annotations

import requests

from velodeploy.lib.errors import InsufficientDiskSpaceError, NetworkUnavailableError
from velodeploy.lib.host import available_disk_space
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig

logger = get_logger(__name__)


class Preflight:
    """Checks prerequisites: free disk space and, for downloads, network.

    The disk check runs first so a full volume is reported without any
    network traffic. Neither check touches the filesystem.
    """

    def __init__(
        self,
        settings: DeployerSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self._session = session or requests.Session()

    def check_network(self) -> bool:
        """Return True when the release host answers with HTTP 200."""
        try:
            response = self._session.get(
                self.settings.connectivity_url,
                timeout=self.settings.connectivity_timeout,
            )
        except requests.RequestException as exc:
            logger.debug(f"Connectivity check failed: {exc}")
            return False
        return response.status_code == 200

    def check_disk_space(self, config: DeploymentConfig) -> int:
        """Return free bytes on the datastore volume.

        Raises:
            InsufficientDiskSpaceError: If free space is not above the minimum
        """
        available = available_disk_space(config.storage.datastore_dir)
        if available <= self.settings.min_free_bytes:
            logger.error(
                f"Only {available} bytes free at {config.storage.datastore_dir}, "
                f"need more than {self.settings.min_free_bytes}"
            )
            raise InsufficientDiskSpaceError(operation="preparation")
        return available

    def run(self, config: DeploymentConfig) -> None:
        """Run all preparation checks for ``config``.

        Raises:
            InsufficientDiskSpaceError: If the datastore volume is too full
            NetworkUnavailableError: If a download is required and the
                release host cannot be reached
        """
        self.check_disk_space(config)

        if config.is_network_acquisition:
            if not self.check_network():
                raise NetworkUnavailableError(operation="preparation")
        else:
            logger.info("Offline acquisition mode, skipping network check")

        logger.info("Prerequisites check passed")
