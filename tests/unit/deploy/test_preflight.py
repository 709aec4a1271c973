"""Unit tests for the preparation checks."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from velodeploy.deploy.preflight import Preflight
from velodeploy.lib.errors import InsufficientDiskSpaceError, NetworkUnavailableError
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig


@pytest.fixture
def session() -> MagicMock:
    """A requests session answering HTTP 200."""
    mock_session = MagicMock(spec=requests.Session)
    mock_session.get.return_value = MagicMock(status_code=200)
    return mock_session


class TestNetworkCheck:
    """Tests for check_network."""

    def test_reachable(self, session: MagicMock) -> None:
        """HTTP 200 from the release host means reachable."""
        settings = DeployerSettings()
        assert Preflight(settings, session=session).check_network() is True
        session.get.assert_called_once_with(
            settings.connectivity_url, timeout=settings.connectivity_timeout
        )

    def test_non_200_is_unreachable(self, session: MagicMock) -> None:
        """Any other status means unreachable."""
        session.get.return_value = MagicMock(status_code=503)
        assert Preflight(DeployerSettings(), session=session).check_network() is False

    def test_transport_error_is_unreachable(self, session: MagicMock) -> None:
        """Connection failures mean unreachable."""
        session.get.side_effect = requests.ConnectionError("no route")
        assert Preflight(DeployerSettings(), session=session).check_network() is False


class TestPreflightRun:
    """Tests for the full preparation step."""

    def test_passes_with_space_and_network(
        self, session: MagicMock, config: DeploymentConfig
    ) -> None:
        """Both checks passing completes the step."""
        settings = DeployerSettings(min_free_bytes=100)
        with patch(
            "velodeploy.deploy.preflight.available_disk_space", return_value=1000
        ):
            Preflight(settings, session=session).run(config)

        session.get.assert_called_once()

    def test_low_disk_fails_without_network_traffic(
        self, session: MagicMock, config: DeploymentConfig
    ) -> None:
        """Too little space fails before any request is made."""
        settings = DeployerSettings(min_free_bytes=500_000_000)
        with patch(
            "velodeploy.deploy.preflight.available_disk_space",
            return_value=100_000_000,
        ):
            with pytest.raises(InsufficientDiskSpaceError):
                Preflight(settings, session=session).run(config)

        session.get.assert_not_called()

    def test_threshold_is_exclusive(
        self, session: MagicMock, config: DeploymentConfig
    ) -> None:
        """Free space must exceed the minimum, not merely equal it."""
        settings = DeployerSettings(min_free_bytes=1000)
        with patch(
            "velodeploy.deploy.preflight.available_disk_space", return_value=1000
        ):
            with pytest.raises(InsufficientDiskSpaceError):
                Preflight(settings, session=session).run(config)

    def test_unreachable_network_fails(
        self, session: MagicMock, config: DeploymentConfig
    ) -> None:
        """Download mode needs the release network."""
        session.get.side_effect = requests.Timeout("timed out")
        with patch(
            "velodeploy.deploy.preflight.available_disk_space", return_value=10**12
        ):
            with pytest.raises(NetworkUnavailableError):
                Preflight(DeployerSettings(), session=session).run(config)

    def test_offline_mode_skips_network_check(
        self,
        session: MagicMock,
        make_config: Callable[..., DeploymentConfig],
        tmp_path: Path,
    ) -> None:
        """Local and bundled acquisition never touch the network."""
        config = make_config(
            acquisition={"mode": "local", "binary_path": str(tmp_path / "velo")}
        )
        session.get.side_effect = requests.ConnectionError("offline")
        with patch(
            "velodeploy.deploy.preflight.available_disk_space", return_value=10**12
        ):
            Preflight(DeployerSettings(), session=session).run(config)

        session.get.assert_not_called()

    def test_does_not_create_directories(
        self, session: MagicMock, config: DeploymentConfig
    ) -> None:
        """Preparation leaves the filesystem untouched."""
        Preflight(DeployerSettings(min_free_bytes=0), session=session).run(config)

        assert not config.storage.datastore_dir.exists()
