"""velodeploy - Deploy a Velociraptor server on macOS.

velodeploy takes a validated deployment configuration and brings up a
running Velociraptor instance under launchd: it checks prerequisites,
obtains the binary, provisions directories, renders the server
configuration, registers and starts the service and verifies it.
"""

from velodeploy.lib.errors import (
    ConfigError,
    DeploymentError,
    VelodeployError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "VelodeployError",
]
