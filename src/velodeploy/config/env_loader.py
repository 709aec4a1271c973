"""Environment variable substitution for configuration documents."""

import os
import re

from velodeploy.lib.errors import ConfigError

# ${VAR_NAME} with an uppercase/underscore/digit name
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` references in ``text`` with environment values.

    Args:
        text: Raw document text

    Returns:
        Text with every reference substituted

    Raises:
        ConfigError: If a referenced variable is not set
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            raise ConfigError(
                name, f"Environment variable '{name}' is referenced but not set"
            )
        return value

    return ENV_VAR_PATTERN.sub(_replace, text)
