"""Engine-level settings for the deployment engine.

These are not part of a single deployment run; they describe where the
engine looks for things (release index, supervisor binaries) and its timing
constants.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from velodeploy.config.defaults import (
    CONNECTIVITY_TIMEOUT,
    CONNECTIVITY_URL,
    LAUNCHCTL_PATH,
    MIN_FREE_BYTES,
    PGREP_PATH,
    PROBE_TIMEOUT,
    PROCESS_NAME,
    RELEASE_INDEX_URL,
    RESTART_PAUSE_SECONDS,
    SERVICE_LABEL,
    START_GRACE_SECONDS,
    default_launch_agents_dir,
)


class DeployerSettings(BaseModel):
    """Settings shared by every deployment step.

    Attributes:
        release_index_url: "Latest release" endpoint of the upstream index
        connectivity_url: URL fetched by the preparation network check
        service_label: launchd label of the service
        launch_agents_dir: Directory holding per-user service descriptors
        launchctl_path: Path of the launchctl executable
        pgrep_path: Path of the pgrep executable
        process_name: Process name checked during verification
        min_free_bytes: Minimum free space on the datastore volume
        start_grace_seconds: Pause after loading the service
        restart_pause_seconds: Pause between stop and start on restart
        probe_timeout: Management endpoint probe timeout in seconds
        connectivity_timeout: Network check timeout in seconds
        download_timeout: Download timeout in seconds (None: transport default)
        bundle_dirs: Extra directories searched for a bundled binary
    """

    model_config = ConfigDict(extra="forbid")

    release_index_url: str = Field(default=RELEASE_INDEX_URL)
    connectivity_url: str = Field(default=CONNECTIVITY_URL)
    service_label: str = Field(default=SERVICE_LABEL)
    launch_agents_dir: Path = Field(default_factory=default_launch_agents_dir)
    launchctl_path: str = Field(default=LAUNCHCTL_PATH)
    pgrep_path: str = Field(default=PGREP_PATH)
    process_name: str = Field(default=PROCESS_NAME)
    min_free_bytes: int = Field(default=MIN_FREE_BYTES, ge=0)
    start_grace_seconds: float = Field(default=START_GRACE_SECONDS, ge=0)
    restart_pause_seconds: float = Field(default=RESTART_PAUSE_SECONDS, ge=0)
    probe_timeout: float = Field(default=PROBE_TIMEOUT, gt=0)
    connectivity_timeout: float = Field(default=CONNECTIVITY_TIMEOUT, gt=0)
    download_timeout: float | None = Field(default=None)
    bundle_dirs: list[Path] = Field(default_factory=list)

    @property
    def descriptor_path(self) -> Path:
        """Well-known path of the service descriptor."""
        return self.launch_agents_dir / f"{self.service_label}.plist"
