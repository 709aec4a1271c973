"""CLI commands for deploying Velociraptor.

Implements the 'velodeploy deploy' command group: full and emergency
deployments, service stop/restart and configuration validation.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from velodeploy.config.loader import ConfigLoader
from velodeploy.deploy.orchestrator import DeploymentOrchestrator
from velodeploy.lib.errors import ConfigError, DeploymentError
from velodeploy.lib.logging_config import get_logger, setup_logging
from velodeploy.models.config import DeployerSettings
from velodeploy.models.deployment import DeploymentConfig
from velodeploy.models.deployment_state import (
    DeploymentRunState,
    DeploymentStep,
    StepState,
)

logger = get_logger(__name__)

STATE_MARKERS = {
    StepState.IN_PROGRESS: ("..", "cyan"),
    StepState.COMPLETED: ("ok", "green"),
    StepState.FAILED: ("!!", "red"),
}


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Exit codes:
        2: Configuration error
        3: Deployment error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        click.echo(f"  Suggestion: {e.recovery_suggestion}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


class ProgressPrinter:
    """Prints one line per step transition of a deployment."""

    def __init__(self) -> None:
        self._seen: dict[DeploymentStep, StepState] = {}

    def __call__(self, state: DeploymentRunState) -> None:
        for step, status in state.steps.items():
            if status.state == StepState.PENDING:
                self._seen.pop(step, None)
                continue
            if self._seen.get(step) == status.state:
                continue
            self._seen[step] = status.state
            marker, color = STATE_MARKERS.get(status.state, ("--", "white"))
            click.echo(
                click.style(f"[{marker}] ", fg=color)
                + f"{state.progress:4.0%}  {step.label}"
            )


def _load_settings(settings_file: str | None) -> DeployerSettings:
    return ConfigLoader().load_settings(settings_file)


def _run_deployment(
    orchestrator: DeploymentOrchestrator,
    config: DeploymentConfig,
    quiet: bool,
    as_json: bool,
) -> None:
    """Run a deployment, printing progress and the final state."""
    if not quiet and not as_json:
        orchestrator.subscribe(ProgressPrinter())

    try:
        asyncio.run(orchestrator.deploy(config))
    finally:
        if as_json:
            click.echo(orchestrator.state.model_dump_json(indent=2))


def _display_summary(config: DeploymentConfig, show_password: bool = False) -> None:
    gui = config.network.gui
    click.echo()
    click.secho("Deployment Successful!", fg="green", bold=True)
    click.echo(f"  Type:      {config.deployment_type.value}")
    click.echo(f"  Datastore: {config.storage.datastore_dir}")
    click.echo(f"  GUI:       https://{gui.probe_host}:{gui.port}")
    click.echo(f"  Username:  {config.credentials.username}")
    if show_password:
        click.echo(f"  Password:  {config.credentials.password.get_secret_value()}")
    click.echo()


def _verbosity_options(func):  # type: ignore[no-untyped-def]
    func = click.option(
        "--quiet", "-q", is_flag=True, help="Suppress progress output"
    )(func)
    func = click.option(
        "--verbose", "-v", is_flag=True, help="Enable verbose debug logging"
    )(func)
    func = click.option(
        "--settings",
        "settings_file",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Engine settings YAML file",
    )(func)
    return func


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy and manage a Velociraptor server.

    Subcommands:

        run        Deploy from a configuration file
        emergency  Deploy a minimal standalone server immediately
        stop       Stop the service
        restart    Restart the service
        validate   Validate a configuration file

    Example:

        velodeploy deploy run velociraptor.yaml
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@deploy.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@_verbosity_options
@click.option(
    "--json", "as_json", is_flag=True, help="Print the final run state as JSON"
)
def run(
    config_file: str,
    settings_file: str | None,
    verbose: bool,
    quiet: bool,
    as_json: bool,
) -> None:
    """Deploy Velociraptor from CONFIG_FILE.

    CONFIG_FILE is a YAML deployment configuration. ${VAR} references are
    replaced from the environment before parsing.
    """
    setup_logging(verbose=verbose, quiet=quiet or as_json)

    with handle_deployment_errors():
        settings = _load_settings(settings_file)
        config = ConfigLoader().load_deployment_config(config_file)
        orchestrator = DeploymentOrchestrator(settings)

        if not quiet and not as_json:
            click.echo(f"Deploying from {Path(config_file).name}...")

        _run_deployment(orchestrator, config, quiet, as_json)

        if quiet or as_json:
            return
        _display_summary(config)


@deploy.command()
@_verbosity_options
@click.option(
    "--json", "as_json", is_flag=True, help="Print the final run state as JSON"
)
def emergency(
    settings_file: str | None,
    verbose: bool,
    quiet: bool,
    as_json: bool,
) -> None:
    """Deploy a minimal standalone server with a generated password.

    Uses ~/EmergencyVelociraptor for all data and downloads the latest
    release. The generated admin password is printed once.
    """
    setup_logging(verbose=verbose, quiet=quiet or as_json)

    with handle_deployment_errors():
        settings = _load_settings(settings_file)
        config = DeploymentConfig.emergency()
        orchestrator = DeploymentOrchestrator(settings)

        if not quiet and not as_json:
            click.secho("Starting emergency deployment...", fg="yellow")

        _run_deployment(orchestrator, config, quiet, as_json)

        if as_json:
            return
        _display_summary(config, show_password=True)


@deploy.command()
@_verbosity_options
def stop(settings_file: str | None, verbose: bool, quiet: bool) -> None:
    """Stop the Velociraptor service."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        orchestrator = DeploymentOrchestrator(_load_settings(settings_file))
        asyncio.run(orchestrator.stop_service())
        if not quiet:
            click.secho("Service stopped", fg="green")


@deploy.command()
@_verbosity_options
def restart(settings_file: str | None, verbose: bool, quiet: bool) -> None:
    """Restart the Velociraptor service."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        orchestrator = DeploymentOrchestrator(_load_settings(settings_file))
        asyncio.run(orchestrator.restart_service())
        if not quiet:
            click.secho("Service restarted", fg="green")


@deploy.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def validate(config_file: str) -> None:
    """Validate CONFIG_FILE without deploying."""
    with handle_deployment_errors():
        config = ConfigLoader().load_deployment_config(config_file)
        click.secho(f"{config_file} is valid", fg="green")
        click.echo(f"  Type:        {config.deployment_type.value}")
        click.echo(f"  Acquisition: {config.acquisition.mode}")
        click.echo(f"  Certificate: {config.certificate.kind}")
