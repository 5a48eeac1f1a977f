"""
Helpers shared by the CLI command modules.
"""

from __future__ import annotations

import sys
from typing import NoReturn

import click

from formulary.core.config.loader import ConfigError, Settings, load_settings
from formulary.core.errors import FormularyError


def resolve_settings(ctx: click.Context) -> Settings:
    """Load settings from ``--config`` or auto-detection; exit on error."""
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def fail(error: Exception, exit_code: int | None = None) -> NoReturn:
    """Print an error and exit with its code."""
    click.secho(f"❌ {error}", fg="red")
    if exit_code is None:
        exit_code = error.exit_code if isinstance(error, FormularyError) else 1
    sys.exit(exit_code)
