"""Main CLI entry point for x402-policy.

Defines the CLI group and registers all subcommands.

Commands:
    validate    - Validate a policy file and print every issue
    generate    - Generate enforcement middleware for a framework
    check       - Evaluate one request against a policy (dry run)
    frameworks  - List supported code generation targets
    config      - Configuration management commands
        show - Display current configuration
        path - Show config file path

Usage:
    x402-policy -h, --help                       Show help message
    x402-policy -v, --version                    Show version
    x402-policy validate policy.yaml             Validate a policy
    x402-policy generate policy.yaml -f express  Print Express middleware
    x402-policy check policy.yaml --agent-id a1  Evaluate a request

Subcommand help:
    x402-policy COMMAND -h                       Show help for a specific command
"""

import sys

import click

from x402_policy import __version__

from .commands.config import config
from .commands.policy import check, frameworks, generate, validate


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Quick Start:
  x402-policy validate policy.yaml
  x402-policy generate policy.yaml --framework express --output middleware.js

Exit Codes:
  0   Success (check: request allowed)
  1   Policy could not be parsed or failed validation
  2   Unsupported framework (generate)
  3   Request not allowed (check)
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """x402-policy: access and spending policies for x402 payment APIs."""
    if version:
        click.echo(f"x402-policy {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(validate)
cli.add_command(generate)
cli.add_command(check)
cli.add_command(frameworks)
cli.add_command(config)


def main() -> None:
    """CLI entry point."""
    cli()
