"""Binary acquisition for Velociraptor deployments.

Resolves a runnable Velociraptor binary in one of three ways, selected by
the configuration's acquisition mode:

- ``local``: copy a binary the operator already has
- ``bundled``: copy the binary shipped alongside the application
- ``download``: fetch the latest GitHub release asset for this host
"""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from collections.abc import Iterator
from pathlib import Path

import requests
from pydantic import ValidationError as PydanticValidationError

from velodeploy.config.defaults import (
    ASSET_SUFFIXES,
    BINARY_NAME,
    FALLBACK_ASSET_SUFFIX,
)
from velodeploy.deploy.directories import ensure_directory
from velodeploy.lib.errors import (
    BinaryNotFoundError,
    DownloadFailedError,
    ExtractionFailedError,
)
from velodeploy.lib.host import host_architecture
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import (
    BundledBinaryAcquisition,
    DeploymentConfig,
    DownloadAcquisition,
    LocalBinaryAcquisition,
)
from velodeploy.models.release import GitHubRelease, GitHubReleaseAsset

logger = get_logger(__name__)

EXECUTABLE_MODE = 0o755
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def select_asset(release: GitHubRelease, arch: str) -> GitHubReleaseAsset:
    """Pick the release asset matching ``arch``.

    The architecture-specific suffix is tried first, then the amd64 build
    (which runs under translation on arm64 hosts).

    Args:
        release: Parsed release document
        arch: Normalised host architecture (``arm64``, ``amd64``, ...)

    Returns:
        The selected asset

    Raises:
        BinaryNotFoundError: If neither the exact nor the fallback asset exists
    """
    suffix = ASSET_SUFFIXES.get(arch, FALLBACK_ASSET_SUFFIX)
    asset = release.find_asset(suffix)
    if asset is None and suffix != FALLBACK_ASSET_SUFFIX:
        logger.info(f"No {suffix} asset in {release.tag_name}, trying fallback")
        asset = release.find_asset(FALLBACK_ASSET_SUFFIX)
    if asset is None:
        raise BinaryNotFoundError(
            f"no macOS asset in release {release.tag_name}", operation="acquisition"
        )
    return asset


def default_bundle_dirs() -> list[Path]:
    """Directories searched for a bundled binary, in order."""
    app_dir = Path(sys.argv[0]).resolve().parent if sys.argv and sys.argv[0] else None
    dirs: list[Path] = []
    if app_dir is not None:
        dirs.extend([app_dir, app_dir.parent / "Resources"])
    dirs.append(Path(__file__).resolve().parent.parent / "resources")
    return dirs


def _install_executable(source: Path, target: Path) -> Path:
    """Copy ``source`` over ``target`` and mark it executable."""
    ensure_directory(target.parent)
    if target.exists():
        target.unlink()
    shutil.copy2(source, target)
    target.chmod(EXECUTABLE_MODE)
    return target


class BinaryAcquirer:
    """Obtains the Velociraptor binary for a deployment.

    Example:
        >>> acquirer = BinaryAcquirer(DeployerSettings())
        >>> binary = acquirer.acquire(config.storage.datastore_dir, config)
        >>> binary.name
        'velociraptor'
    """

    def __init__(
        self,
        settings: DeployerSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self._session = session or requests.Session()

    def acquire(self, destination_dir: Path, config: DeploymentConfig) -> Path:
        """Place a runnable binary at ``destination_dir/velociraptor``.

        Args:
            destination_dir: Directory receiving the binary (created with mode
                0o750 if missing)
            config: Deployment configuration selecting the acquisition mode

        Returns:
            Path of the installed binary

        Raises:
            BinaryNotFoundError: If no binary is available for the mode
            DownloadFailedError: If the release index or download fails
            ExtractionFailedError: If the download cannot be moved into place
        """
        target = destination_dir / BINARY_NAME
        mode = config.acquisition

        if isinstance(mode, LocalBinaryAcquisition):
            return self.copy_local(mode.binary_path, target)
        if isinstance(mode, BundledBinaryAcquisition):
            return self.copy_bundled(list(mode.search_paths), target)
        if isinstance(mode, DownloadAcquisition):
            release_url = mode.release_url or self.settings.release_index_url
            return self.download_latest(release_url, target)

        raise BinaryNotFoundError(
            f"unsupported acquisition mode: {mode!r}", operation="acquisition"
        )

    # Offline modes

    def copy_local(self, source: Path, target: Path) -> Path:
        """Copy an operator-supplied binary."""
        if not source.is_file():
            raise BinaryNotFoundError(
                f"local binary does not exist: {source}", operation="acquisition"
            )
        logger.info(f"Using local binary: {source}")
        return _install_executable(source, target)

    def candidate_names(self) -> list[str]:
        """Bundled binary names to look for, most specific first."""
        arch = host_architecture()
        suffix = ASSET_SUFFIXES.get(arch, FALLBACK_ASSET_SUFFIX)
        return [f"{BINARY_NAME}-{suffix}", BINARY_NAME]

    def iter_bundle_candidates(self, extra_dirs: list[Path]) -> Iterator[Path]:
        """Yield candidate bundled binary paths in search order."""
        search_dirs = [*extra_dirs, *self.settings.bundle_dirs, *default_bundle_dirs()]
        for directory in search_dirs:
            for name in self.candidate_names():
                yield directory / name

    def find_bundled(self, extra_dirs: list[Path] | None = None) -> Path | None:
        """Return the first bundled binary found, or None."""
        for candidate in self.iter_bundle_candidates(extra_dirs or []):
            if candidate.is_file():
                return candidate
        return None

    def copy_bundled(self, extra_dirs: list[Path], target: Path) -> Path:
        """Copy the binary shipped with the application."""
        bundled = self.find_bundled(extra_dirs)
        if bundled is None:
            raise BinaryNotFoundError(
                "no bundled binary for this platform", operation="acquisition"
            )
        logger.info(f"Using bundled binary: {bundled}")
        return _install_executable(bundled, target)

    # Network mode

    def fetch_release(self, release_url: str) -> GitHubRelease:
        """Fetch and parse the latest release document.

        Raises:
            DownloadFailedError: On transport errors, HTTP errors or a
                malformed document
        """
        logger.info(f"Fetching latest release information from {release_url}")
        try:
            response = self._session.get(
                release_url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self.settings.download_timeout,
            )
            response.raise_for_status()
            return GitHubRelease.model_validate(response.json())
        except requests.RequestException as exc:
            raise DownloadFailedError(str(exc), operation="acquisition") from exc
        except (ValueError, PydanticValidationError) as exc:
            raise DownloadFailedError(
                f"invalid release index: {exc}", operation="acquisition"
            ) from exc

    def download_asset(self, asset: GitHubReleaseAsset, target: Path) -> Path:
        """Download ``asset`` and install it at ``target``.

        The payload is streamed to a temporary file next to the target and
        renamed into place, so an interrupted download never leaves a
        truncated binary behind.
        """
        logger.info(f"Downloading {asset.name} from {asset.browser_download_url}")
        ensure_directory(target.parent)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{BINARY_NAME}-", dir=target.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                try:
                    with self._session.get(
                        asset.browser_download_url,
                        stream=True,
                        timeout=self.settings.download_timeout,
                    ) as response:
                        response.raise_for_status()
                        for chunk in response.iter_content(DOWNLOAD_CHUNK_SIZE):
                            handle.write(chunk)
                except requests.RequestException as exc:
                    raise DownloadFailedError(
                        str(exc), operation="acquisition"
                    ) from exc

            try:
                os.replace(tmp_path, target)
                target.chmod(EXECUTABLE_MODE)
            except OSError as exc:
                raise ExtractionFailedError(
                    f"could not install {asset.name}: {exc}", operation="acquisition"
                ) from exc
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info(f"Downloaded and installed binary at {target}")
        return target

    def download_latest(self, release_url: str, target: Path) -> Path:
        """Download the latest release asset for this host."""
        release = self.fetch_release(release_url)
        asset = select_asset(release, host_architecture())
        return self.download_asset(asset, target)
