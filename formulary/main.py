"""
formulary — CLI entrypoint.

Usage:
    formulary --help
    formulary audit
    formulary install ecsfgrun
    python -m formulary.main info ecsfgrun
"""

from __future__ import annotations

from pathlib import Path

import click

from formulary import __version__
from formulary.core.observability.logging_config import resolve_level, setup_from_env


@click.group()
@click.version_option(version=__version__, prog_name="formulary")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to formulary.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """formulary — audit, bump and install tap formulae."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_from_env(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


# ── Register command modules ────────────────────────────────────

from formulary.ui.cli.install import install, list_installed, test, uninstall  # noqa: E402
from formulary.ui.cli.tap import audit, bump, info  # noqa: E402

cli.add_command(install)
cli.add_command(test)
cli.add_command(uninstall)
cli.add_command(list_installed)
cli.add_command(audit)
cli.add_command(info)
cli.add_command(bump)


if __name__ == "__main__":
    cli()
