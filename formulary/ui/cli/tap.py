"""
CLI commands for maintaining the tap — audit, info, bump.

Thin wrappers over ``formulary.core.services.formula``.
"""

from __future__ import annotations

import json
import sys

import click

from formulary.core.errors import FormularyError
from formulary.ui.cli.common import fail, resolve_settings


@click.command()
@click.argument("name", required=False)
@click.option("--strict", is_flag=True, help="Treat warnings as errors.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def audit(ctx: click.Context, name: str | None, strict: bool, as_json: bool) -> None:
    """Validate formulae and their revision history."""
    from formulary.core.services.formula.index import load_tap

    settings = resolve_settings(ctx)
    try:
        index = load_tap(settings.tap)
        result = index.audit(name)
    except FormularyError as e:
        fail(e)

    ok = result.ok and not (strict and result.warnings)

    if as_json:
        data = result.to_dict()
        data["ok"] = ok
        data["formulae"] = [name] if name else index.names()
        click.echo(json.dumps(data, indent=2))
    else:
        for issue in result.issues:
            color = "red" if issue.severity == "error" else "yellow"
            icon = "❌" if issue.severity == "error" else "⚠️ "
            click.secho(f"{icon} {issue.formula}: [{issue.check}] {issue.message}", fg=color)
        if ok:
            count = 1 if name else len(index)
            click.secho(f"✅ {count} formula(e) passed audit", fg="green")

    if not ok:
        sys.exit(1)


@click.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show the active revision of a formula and its history."""
    from formulary.core.services.formula.index import load_tap
    from formulary.core.services.install.installer import Installer

    settings = resolve_settings(ctx)
    try:
        index = load_tap(settings.tap)
        formula = index.latest(name)
        history = index.history(name)
    except FormularyError as e:
        fail(e)

    receipt = Installer(settings).installed_receipt(name)

    if as_json:
        click.echo(json.dumps({
            "formula": formula.model_dump(mode="json"),
            "history": [f.version for f in history],
            "installed": receipt.version if receipt else None,
        }, indent=2))
        return

    click.secho(f"{formula.name}: stable {formula.version}", fg="cyan", bold=True)
    if formula.desc:
        click.echo(formula.desc)
    if formula.homepage:
        click.echo(formula.homepage)
    click.echo(f"From: {formula.url}")
    click.echo(f"SHA256: {formula.sha256}")
    click.echo(f"Revisions: {' → '.join(f.version for f in history)}")
    click.echo(f"Installed: {receipt.version if receipt else 'no'}")


@click.command()
@click.argument("name")
@click.option("--version", "new_version", required=True, help="Version to publish.")
@click.option("--sha256", default=None, help="Artifact digest (default: download and hash).")
@click.option("--dry-run", is_flag=True, help="Print the new formula without writing it.")
@click.pass_context
def bump(ctx: click.Context, name: str, new_version: str, sha256: str | None, dry_run: bool) -> None:
    """Publish a new revision of a formula, archiving the current one."""
    from formulary.core.reliability.backoff import RetryPolicy
    from formulary.core.services.formula.bump import bump_formula, digest_url, write_bump
    from formulary.core.services.formula.index import load_tap
    from formulary.core.services.formula.parser import render_formula

    settings = resolve_settings(ctx)
    policy = RetryPolicy(
        attempts=settings.retries,
        base_delay=settings.backoff_base,
        max_delay=settings.backoff_max,
    )
    try:
        current = load_tap(settings.tap).latest(name)
        new = bump_formula(
            current,
            new_version,
            sha256=sha256,
            digest=lambda url: digest_url(url, timeout=settings.timeout, policy=policy),
        )
    except FormularyError as e:
        fail(e)

    if dry_run:
        click.echo(render_formula(new), nl=False)
        return

    archived, active = write_bump(settings.tap, current, new)
    click.secho(f"✅ {name} {current.version} → {new.version}", fg="green")
    if not ctx.obj.get("quiet"):
        click.echo(f"   Archived: {archived}")
        click.echo(f"   Active:   {active}")
