"""Directory provisioning for the agent's storage layout."""

from __future__ import annotations

from pathlib import Path

from velodeploy.lib.logging_config import get_logger
from velodeploy.models.deployment import DeploymentConfig

logger = get_logger(__name__)

# Owner rwx, group r-x, no world access
DIRECTORY_MODE = 0o750


def required_directories(config: DeploymentConfig) -> list[Path]:
    """Return the directories a deployment needs, parents first."""
    storage = config.storage
    return [
        storage.datastore_dir,
        storage.logs_dir,
        storage.cache_dir,
        storage.config_dir,
    ]


def ensure_directory(directory: Path, mode: int = DIRECTORY_MODE) -> list[Path]:
    """Create ``directory`` and any missing parents with ``mode``.

    Directories that already exist keep their permissions.

    Returns:
        The directories created by this call, outermost first
    """
    missing: list[Path] = []
    current = directory
    while not current.is_dir():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent

    created: list[Path] = []
    for path in reversed(missing):
        path.mkdir(mode=mode, exist_ok=True)
        # mkdir's mode is filtered by the umask
        path.chmod(mode)
        created.append(path)
    return created


def provision(config: DeploymentConfig) -> list[Path]:
    """Create any missing storage directories.

    Existing directories are left as they are, so calling this repeatedly
    is harmless.

    Args:
        config: Deployment configuration providing the paths

    Returns:
        The directories that were created by this call
    """
    created: list[Path] = []
    for directory in required_directories(config):
        for path in ensure_directory(directory):
            logger.info(f"Created directory: {path}")
            created.append(path)
    return created
