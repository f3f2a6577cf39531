"""Shared CLI utility functions."""

from __future__ import annotations

__all__ = [
    "SYSTEM_LOG_FILENAME",
    "get_config_path",
    "load_config_or_exit",
]

from pathlib import Path

import click

from authn_flow.config import AppConfig, default_config_path, load_config
from authn_flow.exceptions import ConfigurationError
from authn_flow.telemetry.system_logger import configure_system_logger_file, set_console_level

SYSTEM_LOG_FILENAME = "system.jsonl"


def get_config_path(ctx: click.Context) -> Path:
    """Config path from the group's --config option, else the default location."""
    obj = ctx.find_object(dict) or {}
    return obj.get("config_path") or default_config_path()


def load_config_or_exit(ctx: click.Context) -> AppConfig:
    """Load configuration and apply its logging settings, exiting on failure.

    Returns:
        Validated AppConfig.

    Raises:
        click.ClickException: If config is missing or invalid.
    """
    config_path = get_config_path(ctx)

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(
            f"Failed to load configuration from {config_path}\n{e.message}"
        ) from e

    set_console_level(config.logging.log_level)
    if config.logging.log_dir:
        configure_system_logger_file(Path(config.logging.log_dir).expanduser() / SYSTEM_LOG_FILENAME)
    return config
