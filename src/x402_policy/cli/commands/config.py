"""Config command group for x402-policy CLI."""

import json
import sys

import click

from x402_policy.config import get_config_path, load_config_or_default


@click.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration.

    Shows defaults when no config file exists.
    """
    path = get_config_path()
    try:
        app_config = load_config_or_default(path)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    source = str(path) if path.exists() else "defaults (no config file)"
    click.echo(f"# Source: {source}")
    click.echo(json.dumps(app_config.model_dump(), indent=2))


@config.command("path")
def config_path_cmd() -> None:
    """Show config file path."""
    path = get_config_path()
    click.echo(str(path))

    if not path.exists():
        click.echo("(file does not exist - defaults are used)", err=True)
