"""velodeploy command line entry point."""

import click

from velodeploy import __version__
from velodeploy.cli.commands.deploy import deploy


@click.group()
def main() -> None:
    """velodeploy - deploy a Velociraptor server on macOS."""


@main.command()
def version() -> None:
    """Show the velodeploy version."""
    click.echo(f"velodeploy {__version__}")


main.add_command(deploy)


if __name__ == "__main__":
    main()
