"""Velociraptor configuration generation.

This module renders a deployment configuration into the YAML document read
by ``velociraptor frontend --config`` and writes it under the datastore's
``config`` directory.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path

from jinja2 import StrictUndefined, Template, TemplateError

from velodeploy.config.defaults import CONFIG_FILENAME
from velodeploy.lib.errors import ConfigGenerationFailedError
from velodeploy.lib.logging_config import get_logger
from velodeploy.models.deployment import (
    CustomCertificate,
    DeploymentConfig,
    DeploymentType,
    LetsEncryptCertificate,
)

logger = get_logger(__name__)

# Owner read/write only: the document carries credentials
CONFIG_FILE_MODE = 0o600

# Jinja2 template for the Velociraptor server configuration.
# Values are emitted through ``tojson`` so that they are valid YAML scalars.
VELOCIRAPTOR_CONFIG_TEMPLATE = """\
# Velociraptor Configuration
# Generated by velodeploy

version:
  name: {{ organization_name | tojson }}

Client:
  server_urls:
    - {{ server_url | tojson }}
  ca_certificate: ""
  nonce: ""
  writeback_darwin: /etc/velociraptor/velociraptor.writeback.yaml
  use_self_signed_ssl: {{ "true" if self_signed else "false" }}
{% if not client_only %}

Frontend:
  hostname: {{ frontend_hostname | tojson }}
  bind_address: {{ frontend.address | tojson }}
  bind_port: {{ frontend.port }}
{% if custom_cert %}
  tls_certificate_filename: {{ custom_cert.cert_path | tojson }}
  tls_private_key_filename: {{ custom_cert.key_path | tojson }}
{% endif %}

GUI:
  bind_address: {{ gui.address | tojson }}
  bind_port: {{ gui.port }}
  initial_users:
    - name: {{ username | tojson }}
      password_hash: {{ password_hash | tojson }}
      password_salt: {{ password_salt | tojson }}

API:
  bind_address: {{ api.address | tojson }}
  bind_port: {{ api.port }}

Datastore:
  implementation: FileBaseDataStore
  location: {{ datastore | tojson }}
  filestore_directory: {{ datastore | tojson }}

Logging:
  output_directory: {{ logs | tojson }}
  separate_logs_per_component: true
{% if autocert %}

autocert_domain: {{ autocert.domain | tojson }}
autocert_cert_cache: {{ autocert_cache | tojson }}
{% endif %}
{% endif %}
"""


def hash_password(username: str, organization: str, password: str) -> tuple[str, str]:
    """Return ``(hash, salt)`` for a GUI user entry.

    The salt is derived from the organization and username rather than drawn
    at random, which keeps the rendered document a pure function of the
    configuration.
    """
    salt = hashlib.sha256(f"{organization}:{username}".encode()).hexdigest()[:32]
    digest = hashlib.sha256(bytes.fromhex(salt) + password.encode("utf-8"))
    return digest.hexdigest(), salt


def render_config(config: DeploymentConfig) -> str:
    """Render the Velociraptor configuration document.

    Args:
        config: Deployment configuration

    Returns:
        YAML document text

    Example:
        >>> text = render_config(config)
        >>> text.splitlines()[0]
        '# Velociraptor Configuration'
    """
    network = config.network
    storage = config.storage
    certificate = config.certificate
    username = config.credentials.username
    password_hash, password_salt = hash_password(
        username,
        config.organization_name,
        config.credentials.password.get_secret_value(),
    )

    autocert = certificate if isinstance(certificate, LetsEncryptCertificate) else None
    custom_cert = certificate if isinstance(certificate, CustomCertificate) else None
    if autocert is not None:
        frontend_hostname = autocert.domain
        autocert_cache = autocert.cache_dir or str(storage.cache_dir / "acme")
    else:
        frontend_hostname = network.frontend.probe_host
        autocert_cache = None

    template = Template(
        VELOCIRAPTOR_CONFIG_TEMPLATE,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    return template.render(
        organization_name=config.organization_name,
        server_url=f"https://{frontend_hostname}:{network.frontend.port}/",
        self_signed=certificate.kind == "self_signed",
        client_only=config.deployment_type == DeploymentType.CLIENT,
        frontend_hostname=frontend_hostname,
        frontend=network.frontend,
        gui=network.gui,
        api=network.api,
        custom_cert=custom_cert,
        username=username,
        password_hash=password_hash,
        password_salt=password_salt,
        datastore=str(storage.datastore_dir),
        logs=str(storage.logs_dir),
        autocert=autocert,
        autocert_cache=autocert_cache,
    )


def config_path_for(config: DeploymentConfig) -> Path:
    """Return where the configuration document is written."""
    return config.storage.config_dir / CONFIG_FILENAME


def write_atomic(path: Path, content: str, mode: int = CONFIG_FILE_MODE) -> None:
    """Write ``content`` to ``path`` through a temporary file and rename.

    The temporary file gets ``mode`` before any content is written.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}-", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    path.chmod(mode)


def materialize(config: DeploymentConfig, binary_path: Path) -> Path:
    """Render and write the agent configuration.

    Args:
        config: Deployment configuration
        binary_path: Installed Velociraptor binary the document is written for

    Returns:
        Path of the written configuration document

    Raises:
        ConfigGenerationFailedError: If rendering or writing fails
    """
    path = config_path_for(config)
    try:
        content = render_config(config)
    except TemplateError as exc:
        raise ConfigGenerationFailedError(
            str(exc), operation="configuration"
        ) from exc

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_atomic(path, content)
    except PermissionError:
        raise
    except OSError as exc:
        raise ConfigGenerationFailedError(
            f"could not write {path}: {exc}", operation="configuration"
        ) from exc

    logger.info(f"Configuration generated for {binary_path.name}: {path}")
    return path
