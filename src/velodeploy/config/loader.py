"""Configuration loader for velodeploy.

This module provides the ConfigLoader class for loading deployment
configurations from YAML documents and for resolving the engine settings
from defaults, an optional settings file and ``VELODEPLOY_*`` environment
variables.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from velodeploy.config.env_loader import substitute_env_vars
from velodeploy.config.validator import first_error_field, flatten_pydantic_errors
from velodeploy.lib.errors import ConfigError
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig

logger = logging.getLogger(__name__)

# Environment variable to settings field mapping
ENV_VAR_MAP = {
    "release_index_url": "VELODEPLOY_RELEASE_INDEX_URL",
    "connectivity_url": "VELODEPLOY_CONNECTIVITY_URL",
    "service_label": "VELODEPLOY_SERVICE_LABEL",
    "launch_agents_dir": "VELODEPLOY_LAUNCH_AGENTS_DIR",
    "launchctl_path": "VELODEPLOY_LAUNCHCTL_PATH",
    "pgrep_path": "VELODEPLOY_PGREP_PATH",
    "min_free_bytes": "VELODEPLOY_MIN_FREE_BYTES",
    "probe_timeout": "VELODEPLOY_PROBE_TIMEOUT",
    "download_timeout": "VELODEPLOY_DOWNLOAD_TIMEOUT",
    "bundle_dirs": "VELODEPLOY_BUNDLE_DIRS",
}

INT_FIELDS = frozenset({"min_free_bytes"})
FLOAT_FIELDS = frozenset({"probe_timeout", "download_timeout"})


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse environment variable value to appropriate type.

    Args:
        field_name: Name of the settings field (used to determine type)
        value: String value from environment variable

    Returns:
        Parsed value in correct type

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name in INT_FIELDS:
        return int(value)
    if field_name in FLOAT_FIELDS:
        return float(value)
    if field_name == "bundle_dirs":
        return [entry for entry in value.split(os.pathsep) if entry]
    return value


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file with environment variable substitution.

    Args:
        path: Path to YAML file

    Returns:
        Parsed dictionary or None if empty

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


class ConfigLoader:
    """Loads deployment configurations and engine settings.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load_deployment_config("deploy.yaml")
        >>> settings = loader.load_settings()
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Create a loader.

        Args:
            env: Environment mapping (defaults to ``os.environ``)
        """
        self._env = env if env is not None else dict(os.environ)

    def _read_document(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            raise ConfigError("path", f"Configuration file not found: {path}")
        try:
            content = _read_yaml_with_env_substitution(path)
        except OSError as exc:
            raise ConfigError("path", f"Failed to read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError("yaml", f"Invalid YAML in {path}: {exc}") from exc

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml", f"Expected a mapping at the top level of {path}"
            )
        return content

    def load_deployment_config(self, path: str | Path) -> DeploymentConfig:
        """Load and validate a deployment configuration document.

        Args:
            path: Path to the YAML document

        Returns:
            Validated DeploymentConfig

        Raises:
            ConfigError: If the file is missing, unparsable or invalid
        """
        config_path = Path(path)
        data = self._read_document(config_path)
        logger.debug(f"Loaded deployment configuration from {config_path}")
        return self.parse_deployment_config(data)

    def parse_deployment_config(self, data: dict[str, Any]) -> DeploymentConfig:
        """Validate an already-parsed configuration mapping.

        Raises:
            ConfigError: If validation fails
        """
        try:
            return DeploymentConfig.model_validate(data)
        except PydanticValidationError as exc:
            messages = flatten_pydantic_errors(exc)
            raise ConfigError(first_error_field(exc), "\n".join(messages)) from exc

    def _env_overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for field_name, env_name in ENV_VAR_MAP.items():
            if env_name not in self._env:
                continue
            try:
                overrides[field_name] = _parse_env_value(
                    field_name, self._env[env_name]
                )
            except ValueError:
                logger.warning(
                    f"Ignoring invalid value for {env_name}: {self._env[env_name]!r}"
                )
        return overrides

    def load_settings(self, path: str | Path | None = None) -> DeployerSettings:
        """Resolve engine settings.

        Precedence (highest first): environment variables, settings file,
        built-in defaults.

        Args:
            path: Optional YAML settings file

        Returns:
            DeployerSettings

        Raises:
            ConfigError: If the settings file is invalid
        """
        data: dict[str, Any] = {}
        if path is not None:
            data.update(self._read_document(Path(path)))
        data.update(self._env_overrides())

        try:
            return DeployerSettings.model_validate(data)
        except PydanticValidationError as exc:
            messages = flatten_pydantic_errors(exc)
            raise ConfigError(first_error_field(exc), "\n".join(messages)) from exc
