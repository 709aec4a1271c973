"""Pytest configuration and shared fixtures for velodeploy tests."""

import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from velodeploy.lib.logging_config import ROOT_LOGGER_NAME
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig


@pytest.fixture(autouse=True)
def reset_velodeploy_logging() -> Generator[None]:
    """Undo any handler installed by setup_logging during a test.

    CLI tests call setup_logging with the runner's temporary stderr; the
    handler must not outlive that stream.
    """
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def settings(tmp_path: Path) -> DeployerSettings:
    """Engine settings pointing at a temporary LaunchAgents directory.

    Timing pauses are zeroed and the disk threshold disabled so tests run
    fast and independent of the host's free space.
    """
    return DeployerSettings(
        launch_agents_dir=tmp_path / "LaunchAgents",
        start_grace_seconds=0,
        restart_pause_seconds=0,
        min_free_bytes=0,
    )


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., DeploymentConfig]:
    """Factory for deployment configurations rooted in ``tmp_path``.

    Keyword arguments are merged over a valid standalone configuration.
    """

    def _make(**overrides: Any) -> DeploymentConfig:
        data: dict[str, Any] = {
            "deployment_type": "standalone",
            "organization_name": "TestOrg",
            "storage": {
                "datastore_dir": str(tmp_path / "datastore"),
                "logs_dir": str(tmp_path / "logs"),
                "cache_dir": str(tmp_path / "cache"),
            },
            "credentials": {"username": "admin", "password": "s3cretpass"},
            "acquisition": {"mode": "download"},
        }
        data.update(overrides)
        return DeploymentConfig.model_validate(data)

    return _make


@pytest.fixture
def config(make_config: Callable[..., DeploymentConfig]) -> DeploymentConfig:
    """A valid standalone download-mode configuration."""
    return make_config()
