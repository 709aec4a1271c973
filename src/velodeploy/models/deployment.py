"""Pydantic models for deployment configuration.

This module defines the immutable input of one deployment run: storage
paths, network bindings, certificate strategy, administrative credentials
and the strategy used to acquire the Velociraptor binary.
"""

import re
import secrets
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

from velodeploy.config.defaults import (
    DEFAULT_API_BINDING,
    DEFAULT_FRONTEND_BINDING,
    DEFAULT_GUI_BINDING,
    EMERGENCY_DIRNAME,
    default_cache_dir,
    default_datastore_dir,
    default_logs_dir,
)

# Regex patterns for validation
USERNAME_PATTERN = re.compile(r"^\w+$", re.ASCII)
DOMAIN_PATTERN = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9](?:\.[a-zA-Z]{2,})+$"
)


class DeploymentType(str, Enum):
    """Velociraptor deployment topology."""

    STANDALONE = "standalone"
    SERVER = "server"
    CLIENT = "client"


def _is_ipv4(address: str) -> bool:
    parts = address.split(".")
    if len(parts) != 4:
        return False
    return all(part.isdigit() and 0 <= int(part) <= 255 for part in parts)


class Binding(BaseModel):
    """A listener bind address and port."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str = Field(..., description="IPv4 bind address")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(..., description="TCP port")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate the address is dotted IPv4."""
        if not _is_ipv4(v):
            raise ValueError(f"Invalid IP address: {v}")
        return v

    @property
    def probe_host(self) -> str:
        """Host to connect to when probing this listener locally."""
        return "127.0.0.1" if self.address == "0.0.0.0" else self.address  # nosec B104


class NetworkBindings(BaseModel):
    """Listener bindings for the frontend, GUI and API.

    Attributes:
        frontend: Client-facing control listener
        gui: Management (web GUI) listener, probed during verification
        api: gRPC API listener
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    frontend: Binding = Field(
        default=Binding(**DEFAULT_FRONTEND_BINDING), description="Frontend listener"
    )
    gui: Binding = Field(
        default=Binding(**DEFAULT_GUI_BINDING), description="GUI listener"
    )
    api: Binding = Field(
        default=Binding(**DEFAULT_API_BINDING), description="API listener"
    )

    @model_validator(mode="after")
    def validate_distinct_ports(self) -> "NetworkBindings":
        """Validate that all listeners use different ports."""
        ports = [self.frontend.port, self.gui.port, self.api.port]
        if len(set(ports)) != len(ports):
            raise ValueError(
                "All ports must be different: choose different port numbers "
                "for frontend, GUI, and API"
            )
        return self


class StoragePaths(BaseModel):
    """Filesystem locations used by the agent."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    datastore_dir: Path = Field(
        default_factory=default_datastore_dir, description="Datastore directory"
    )
    logs_dir: Path = Field(
        default_factory=default_logs_dir, description="Logs directory"
    )
    cache_dir: Path = Field(
        default_factory=default_cache_dir, description="Cache directory"
    )

    @field_validator("datastore_dir", "logs_dir", "cache_dir", mode="before")
    @classmethod
    def validate_path(cls, v: object) -> object:
        """Reject empty paths and expand ``~``."""
        if v is None or str(v).strip() == "":
            raise ValueError("path must not be empty")
        path = Path(str(v)).expanduser()
        if not path.is_absolute():
            raise ValueError(f"path must be absolute: {v}")
        return path

    @property
    def config_dir(self) -> Path:
        """Directory holding the rendered agent configuration."""
        return self.datastore_dir / "config"


class SelfSignedCertificate(BaseModel):
    """Certificates generated by Velociraptor itself."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["self_signed"] = "self_signed"
    expiration: str = Field(default="1y", description="Certificate lifetime")


class CustomCertificate(BaseModel):
    """Operator-supplied certificate and key files."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["custom"] = "custom"
    cert_path: str = Field(..., min_length=1, description="Certificate file path")
    key_path: str = Field(..., min_length=1, description="Private key file path")


class LetsEncryptCertificate(BaseModel):
    """Certificates issued by Let's Encrypt through autocert."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["lets_encrypt"] = "lets_encrypt"
    domain: str = Field(..., description="Public domain name")
    cache_dir: str | None = Field(default=None, description="Autocert cache directory")

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """Validate domain name format."""
        if not v:
            raise ValueError("Domain name is required for Let's Encrypt")
        if not DOMAIN_PATTERN.match(v):
            raise ValueError(f"Domain name format is invalid: {v}")
        return v


CertificateStrategy = Annotated[
    SelfSignedCertificate | CustomCertificate | LetsEncryptCertificate,
    Field(discriminator="kind"),
]


class AdminCredentials(BaseModel):
    """Initial GUI administrator account.

    The password is a ``SecretStr`` so it never appears in ``repr`` or logs;
    it is revealed only when the agent configuration is rendered.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    username: str = Field(default="admin", description="Administrator username")
    password: SecretStr = Field(..., description="Administrator password")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username length and characters."""
        if not v:
            raise ValueError("Admin username cannot be empty")
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        if not USERNAME_PATTERN.match(v):
            raise ValueError(
                "Username can only contain letters, numbers, and underscores"
            )
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        """Validate minimum password length."""
        if len(v.get_secret_value()) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class DownloadAcquisition(BaseModel):
    """Fetch the latest published release over HTTPS."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["download"] = "download"
    release_url: str | None = Field(
        default=None, description="Override for the release index URL"
    )


class LocalBinaryAcquisition(BaseModel):
    """Copy a binary the operator already has on disk."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["local"] = "local"
    binary_path: Path = Field(..., description="Path of the local binary")

    @field_validator("binary_path", mode="before")
    @classmethod
    def validate_binary_path(cls, v: object) -> object:
        """Reject empty paths and expand ``~``."""
        if v is None or str(v).strip() == "":
            raise ValueError("binary_path must not be empty")
        return Path(str(v)).expanduser()


class BundledBinaryAcquisition(BaseModel):
    """Copy the binary shipped alongside the application."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["bundled"] = "bundled"
    search_paths: tuple[Path, ...] = Field(
        default=(), description="Extra directories searched before the defaults"
    )


AcquisitionMode = Annotated[
    DownloadAcquisition | LocalBinaryAcquisition | BundledBinaryAcquisition,
    Field(discriminator="mode"),
]


class DeploymentConfig(BaseModel):
    """Main deployment configuration model.

    Attributes:
        deployment_type: Topology (standalone, server, client)
        organization_name: Organization name embedded in the agent config
        storage: Datastore, logs and cache directories
        network: Frontend, GUI and API listener bindings
        certificate: Certificate strategy
        credentials: Initial administrator account
        acquisition: How the agent binary is obtained
        launch_at_login: Start the service when the user logs in
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    deployment_type: DeploymentType = Field(
        default=DeploymentType.STANDALONE, description="Deployment topology"
    )
    organization_name: str = Field(
        default="VelociraptorOrg", description="Organization name"
    )
    storage: StoragePaths = Field(
        default_factory=StoragePaths, description="Storage locations"
    )
    network: NetworkBindings = Field(
        default_factory=NetworkBindings, description="Listener bindings"
    )
    certificate: CertificateStrategy = Field(
        default_factory=SelfSignedCertificate, description="Certificate strategy"
    )
    credentials: AdminCredentials = Field(..., description="Administrator account")
    acquisition: AcquisitionMode = Field(
        default_factory=DownloadAcquisition, description="Binary acquisition mode"
    )
    launch_at_login: bool = Field(
        default=False, description="Start the service at user login"
    )

    @field_validator("organization_name")
    @classmethod
    def validate_organization_name(cls, v: str) -> str:
        """Validate the organization name is not blank."""
        if not v.strip():
            raise ValueError("Organization name cannot be empty")
        return v

    @property
    def is_network_acquisition(self) -> bool:
        """Whether the binary is fetched over the network."""
        return isinstance(self.acquisition, DownloadAcquisition)

    @classmethod
    def emergency(cls, home: Path | None = None) -> "DeploymentConfig":
        """Build the fixed minimal configuration used by emergency deployments.

        Nothing is taken from previous runs: paths live under
        ``~/EmergencyVelociraptor`` and a throwaway admin password is
        generated on every call.

        Args:
            home: Home directory override (defaults to the current user's)

        Returns:
            A standalone, self-signed, download-mode configuration
        """
        root = (home or Path.home()) / EMERGENCY_DIRNAME
        return cls(
            deployment_type=DeploymentType.STANDALONE,
            storage=StoragePaths(
                datastore_dir=root,
                logs_dir=root / "logs",
                cache_dir=root / "cache",
            ),
            certificate=SelfSignedCertificate(),
            credentials=AdminCredentials(
                username="admin",
                password=SecretStr(f"emergency_{secrets.token_hex(4)}"),
            ),
            acquisition=DownloadAcquisition(),
        )
