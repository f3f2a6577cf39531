"""Config command group for authn-flow CLI."""

from __future__ import annotations

__all__ = ["config"]

import sys
from pathlib import Path

import click

from authn_flow.config import load_config
from authn_flow.exceptions import ConfigurationError

from ..helpers import get_config_path
from ..styling import style_error, style_success


@click.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Show the config file location."""
    config_file_path = get_config_path(ctx)
    click.echo(str(config_file_path))
    if not config_file_path.exists():
        click.echo(click.style("(file does not exist)", dim=True))


@config.command("validate")
@click.option(
    "--path",
    "-p",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Validate file at this path (does not change config location)",
)
@click.pass_context
def config_validate(ctx: click.Context, path: Path | None) -> None:
    """Validate configuration file.

    Checks that the file exists, is valid JSON, and defines client_id,
    redirect_url and every endpoint.

    Exit codes:
        0: Config is valid
        1: Config is invalid or not found
    """
    config_file_path = path or get_config_path(ctx)

    try:
        load_config(config_file_path)
        click.echo(style_success(f"Config valid: {config_file_path}"))
    except ConfigurationError as e:
        click.echo(style_error(e.message), err=True)
        sys.exit(1)
