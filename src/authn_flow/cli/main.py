"""Main CLI entry point for authn-flow.

Defines the CLI group and registers all subcommands.

Commands:
    config  - Configuration management (path, validate)
    login   - Sign in interactively
    logout  - End the session and clear stored tokens
    status  - Show the stored session

Subcommand help:
    authn-flow COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys
from pathlib import Path

import click

from authn_flow import __version__

from .commands.auth import login, logout, status
from .commands.config import config


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Quick Start:
  authn-flow config validate       Check the config file
  authn-flow login                 Sign in
  authn-flow status                Show the stored session

Config location:
  $AUTHN_FLOW_CONFIG, or config.json in the platform config directory
  (override per invocation with --config).
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file to use instead of the default location",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, config_path: Path | None) -> None:
    """authn-flow: Client for server-driven OAuth2/OIDC sign-in flows."""
    if version:
        click.echo(f"authn-flow {__version__}")
        sys.exit(0)
    ctx.ensure_object(dict)["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(config)
cli.add_command(login)
cli.add_command(logout)
cli.add_command(status)


def main() -> None:
    """CLI entry point."""
    cli()
