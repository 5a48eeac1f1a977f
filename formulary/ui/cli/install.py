"""
CLI commands for installing formulae.

Thin wrappers over ``formulary.core.services.install.installer``.
"""

from __future__ import annotations

import json
import sys

import click

from formulary.core.errors import FormularyError
from formulary.ui.cli.common import fail, resolve_settings

_PHASE_ICON = {
    "fetching": "⬇️ ",
    "verifying": "🔐",
    "extracting": "📦",
    "installing": "🍺",
    "testing": "🧪",
    "success": "✅",
    "failed": "❌",
}


def _echo_result(result, quiet: bool) -> None:
    if not quiet:
        for phase in result.transitions:
            if phase.value in ("success", "failed"):
                continue
            click.echo(f"   {_PHASE_ICON.get(phase.value, '•')} {phase.value.capitalize()}")
    if result.ok:
        click.secho(f"✅ {result.name} {result.version}", fg="green")
        return
    where = f" while {result.failed_in.value}" if result.failed_in else ""
    click.secho(f"❌ {result.name} {result.version} failed{where}: {result.error}", fg="red")
    if result.installed:
        click.secho("   The binary was installed but did not pass its test.", fg="yellow")


@click.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="Reinstall even if this version is installed.")
@click.option("--skip-test", is_flag=True, help="Do not run the formula's test block.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, name: str, force: bool, skip_test: bool, as_json: bool) -> None:
    """Install the active revision of a formula."""
    from formulary.core.services.formula.index import load_tap
    from formulary.core.services.install.installer import Installer

    settings = resolve_settings(ctx)
    try:
        formula = load_tap(settings.tap).latest(name)
    except FormularyError as e:
        fail(e)

    if not as_json and not ctx.obj.get("quiet"):
        click.secho(f"🍺 Installing {formula.name} {formula.version}", fg="cyan", bold=True)

    result = Installer(settings).install(formula, run_tests=not skip_test, force=force)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _echo_result(result, ctx.obj.get("quiet", False))

    if not result.ok:
        sys.exit(result.exit_code)


@click.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def test(ctx: click.Context, name: str, as_json: bool) -> None:
    """Run the test block of an installed formula."""
    from formulary.core.services.install.installer import Installer

    settings = resolve_settings(ctx)
    try:
        result = Installer(settings).test(name)
    except FormularyError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _echo_result(result, ctx.obj.get("quiet", False))
        if result.ok and result.test_output and not ctx.obj.get("quiet"):
            click.echo(result.test_output.rstrip())

    if not result.ok:
        sys.exit(result.exit_code)


@click.command()
@click.argument("name")
@click.pass_context
def uninstall(ctx: click.Context, name: str) -> None:
    """Remove an installed formula and its links."""
    from formulary.core.services.install.installer import Installer

    settings = resolve_settings(ctx)
    try:
        receipt = Installer(settings).uninstall(name)
    except FormularyError as e:
        fail(e)

    click.secho(f"🗑️  Uninstalled {receipt.name} {receipt.version}", fg="green")


@click.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_installed(ctx: click.Context, as_json: bool) -> None:
    """List installed formulae."""
    from formulary.core.services.install.installer import Installer

    settings = resolve_settings(ctx)
    receipts = Installer(settings).installed()

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in receipts], indent=2))
        return

    if not receipts:
        click.secho("No formulae installed", fg="yellow")
        return

    for r in receipts:
        click.echo(f"{r.name} {r.version}")
