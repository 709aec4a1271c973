"""Custom exception hierarchy for velodeploy configuration and deployments."""

from enum import Enum


class VelodeployError(Exception):
    """Base exception for all velodeploy errors.

    All velodeploy-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and in callers embedding the
    deployment engine.
    """

    pass


class ConfigError(VelodeployError):
    """Exception raised for configuration errors.

    This exception is raised when a deployment configuration or the engine
    settings cannot be loaded or parsed.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentErrorKind(str, Enum):
    """Kinds of deployment failure surfaced to callers."""

    BINARY_NOT_FOUND = "binary_not_found"
    DOWNLOAD_FAILED = "download_failed"
    EXTRACTION_FAILED = "extraction_failed"
    CONFIG_GENERATION_FAILED = "config_generation_failed"
    SERVICE_INSTALL_FAILED = "service_install_failed"
    STARTUP_FAILED = "startup_failed"
    VERIFICATION_FAILED = "verification_failed"
    NETWORK_UNAVAILABLE = "network_unavailable"
    INSUFFICIENT_DISK_SPACE = "insufficient_disk_space"
    PERMISSION_DENIED = "permission_denied"
    CANCELLED = "cancelled"
    BUSY = "busy"


DEFAULT_RECOVERY_SUGGESTION = "Check the logs for more details"


class DeploymentError(VelodeployError):
    """Exception raised when a deployment operation fails.

    Subclasses fix the ``kind`` and provide a default description. Errors
    that carry a reason (download, startup, ...) prefix it with the kind's
    description, e.g. ``"Download failed: connection reset"``.

    Attributes:
        kind: The failure category
        operation: The operation that failed (e.g. "acquisition", "stop")
        message: Human-readable error message
        reason: Optional underlying reason supplied by the caller
    """

    kind: DeploymentErrorKind = DeploymentErrorKind.CANCELLED
    description: str = "Deployment failed"
    recovery_suggestion: str = DEFAULT_RECOVERY_SUGGESTION

    def __init__(self, reason: str | None = None, *, operation: str = "deploy") -> None:
        """Create a deployment error.

        Args:
            reason: Underlying reason for the failure, appended to the description
            operation: Name of the operation that failed
        """
        self.reason = reason
        self.operation = operation
        self.message = f"{self.description}: {reason}" if reason else self.description
        super().__init__(self.message)


class BinaryNotFoundError(DeploymentError):
    """No usable agent binary could be located for the requested mode."""

    kind = DeploymentErrorKind.BINARY_NOT_FOUND
    description = "Velociraptor binary not found"


class DownloadFailedError(DeploymentError):
    """The release index or the binary download failed."""

    kind = DeploymentErrorKind.DOWNLOAD_FAILED
    description = "Download failed"


class ExtractionFailedError(DeploymentError):
    """A downloaded payload could not be put in place."""

    kind = DeploymentErrorKind.EXTRACTION_FAILED
    description = "Extraction failed"


class ConfigGenerationFailedError(DeploymentError):
    """The agent configuration document could not be rendered or written."""

    kind = DeploymentErrorKind.CONFIG_GENERATION_FAILED
    description = "Configuration generation failed"


class ServiceInstallFailedError(DeploymentError):
    """The service descriptor could not be installed."""

    kind = DeploymentErrorKind.SERVICE_INSTALL_FAILED
    description = "Service installation failed"


class StartupFailedError(DeploymentError):
    """The supervisor failed to load the service."""

    kind = DeploymentErrorKind.STARTUP_FAILED
    description = "Startup failed"


class VerificationFailedError(DeploymentError):
    """The agent process was not found after startup."""

    kind = DeploymentErrorKind.VERIFICATION_FAILED
    description = "Verification failed"


class NetworkUnavailableError(DeploymentError):
    """The release network could not be reached."""

    kind = DeploymentErrorKind.NETWORK_UNAVAILABLE
    description = "Network connection unavailable"
    recovery_suggestion = "Check your network connection and try again"


class InsufficientDiskSpaceError(DeploymentError):
    """The datastore volume has less free space than required."""

    kind = DeploymentErrorKind.INSUFFICIENT_DISK_SPACE
    description = "Insufficient disk space for deployment"
    recovery_suggestion = "Free up disk space and try again"


class PermissionDeniedError(DeploymentError):
    """A filesystem or supervisor operation was refused by the OS."""

    kind = DeploymentErrorKind.PERMISSION_DENIED
    description = "Permission denied - administrator access may be required"
    recovery_suggestion = "Try running with administrator privileges"


class CancelledError(DeploymentError):
    """The deployment was cancelled before completion."""

    kind = DeploymentErrorKind.CANCELLED
    description = "Deployment was cancelled"


class BusyError(DeploymentError):
    """A deployment is already in progress."""

    kind = DeploymentErrorKind.BUSY
    description = "A deployment is already in progress"
    recovery_suggestion = "Wait for the current deployment to finish and try again"


ERROR_TYPES: dict[DeploymentErrorKind, type[DeploymentError]] = {
    cls.kind: cls
    for cls in (
        BinaryNotFoundError,
        DownloadFailedError,
        ExtractionFailedError,
        ConfigGenerationFailedError,
        ServiceInstallFailedError,
        StartupFailedError,
        VerificationFailedError,
        NetworkUnavailableError,
        InsufficientDiskSpaceError,
        PermissionDeniedError,
        CancelledError,
        BusyError,
    )
}
