"""Default values for velodeploy deployments and engine settings."""

from pathlib import Path

# Upstream release index and connectivity check
RELEASE_INDEX_URL = (
    "https://api.github.com/repos/Velocidex/velociraptor/releases/latest"
)
CONNECTIVITY_URL = "https://api.github.com"

# launchd service
SERVICE_LABEL = "com.velocidex.velociraptor"
LAUNCHCTL_PATH = "/bin/launchctl"
PGREP_PATH = "/usr/bin/pgrep"
PROCESS_NAME = "velociraptor"
BINARY_NAME = "velociraptor"
CONFIG_FILENAME = "server.config.yaml"
SERVICE_PATH = "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"

# Asset suffixes: preferred per architecture, then the universal fallback
ASSET_SUFFIXES: dict[str, str] = {
    "arm64": "darwin-arm64",
    "amd64": "darwin-amd64",
}
FALLBACK_ASSET_SUFFIX = "darwin-amd64"

EMERGENCY_DIRNAME = "EmergencyVelociraptor"

# Timing and thresholds
MIN_FREE_BYTES = 500_000_000  # 500 MB
START_GRACE_SECONDS = 2.0
RESTART_PAUSE_SECONDS = 1.0
PROBE_TIMEOUT = 10.0  # seconds
CONNECTIVITY_TIMEOUT = 10.0  # seconds
VERSION_TIMEOUT = 10.0  # seconds

# Listener defaults
DEFAULT_FRONTEND_BINDING: dict[str, str | int] = {"address": "0.0.0.0", "port": 8000}
DEFAULT_GUI_BINDING: dict[str, str | int] = {"address": "127.0.0.1", "port": 8889}
DEFAULT_API_BINDING: dict[str, str | int] = {"address": "127.0.0.1", "port": 8001}


def default_datastore_dir() -> Path:
    """Return the default datastore directory."""
    return Path.home() / "Library" / "Application Support" / "Velociraptor"


def default_logs_dir() -> Path:
    """Return the default logs directory."""
    return Path.home() / "Library" / "Logs" / "Velociraptor"


def default_cache_dir() -> Path:
    """Return the default cache directory."""
    return Path.home() / "Library" / "Caches" / "Velociraptor"


def default_launch_agents_dir() -> Path:
    """Return the per-user launchd descriptor directory."""
    return Path.home() / "Library" / "LaunchAgents"
