"""Command-line interface for authn-flow.

Provides commands for signing in, signing out, inspecting the stored
session, and validating configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
