"""
Installer — fetch, verify, extract, place and smoke-test a formula.

State machine::

    Pending → Fetching → Verifying → Extracting → Installing → Testing → Success
                 └──────────┴────────────┴────────────┴───────────┴──→ Failed

Kegs live at ``<prefix>/Cellar/<name>/<version>``; binaries are
symlinked into ``<prefix>/bin``. A failure before Installing completes
leaves nothing behind in ``bin``. A test failure leaves the keg
installed and reports it.

``install`` never raises for formula, network or integrity problems;
they come back inside the :class:`InstallResult`.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable

from formulary.core.config.loader import Settings
from formulary.core.errors import (
    FormularyError,
    IntegrityMismatch,
    MalformedManifest,
    TestFailure,
)
from formulary.core.models.formula import DestinationCategory, Formula
from formulary.core.models.receipt import InstallPhase, InstallReceipt, InstallResult
from formulary.core.persistence.receipts import load_receipt, save_receipt
from formulary.core.reliability.backoff import RetryPolicy
from formulary.core.services.formula.validator import validate_formula
from formulary.core.services.formula.versions import is_semver, parse_version
from formulary.core.services.install.download import fetch_artifact, verify_checksum
from formulary.core.services.install.extract import extract_artifact
from formulary.core.services.install.subprocess_runner import expand_command, run_command

logger = logging.getLogger(__name__)


def _source_roots(staging: Path) -> list[Path]:
    """Directories install sources are looked up in, in order.

    An archive with a single top-level directory is tried first from
    inside it, as release tarballs often wrap their contents in one;
    the archive root comes next.
    """
    children = list(staging.iterdir())
    if len(children) == 1 and children[0].is_dir():
        return [children[0], staging]
    return [staging]


def _find_source(roots: list[Path], source: str) -> Path | None:
    for root in roots:
        candidate = root / source
        if candidate.is_file():
            return candidate
    return None


class Installer:
    """Installs formulae into a prefix."""

    def __init__(
        self,
        settings: Settings,
        *,
        runner: Callable[..., dict] = run_command,
    ) -> None:
        self.settings = settings
        self._runner = runner

    # ── Layout ──────────────────────────────────────────────────

    def keg_path(self, name: str, version: str) -> Path:
        return self.settings.cellar / name / version

    def installed_receipt(self, name: str) -> InstallReceipt | None:
        """Receipt of the installed version of ``name`` (newest keg wins)."""
        rack = self.settings.cellar / name
        if not rack.is_dir():
            return None
        receipts = [r for r in (load_receipt(k) for k in rack.iterdir() if k.is_dir()) if r]
        if not receipts:
            return None
        return max(
            receipts,
            key=lambda r: (1, parse_version(r.version)) if is_semver(r.version) else (0, r.version),
        )

    def installed(self) -> list[InstallReceipt]:
        """Receipts of every installed formula."""
        cellar = self.settings.cellar
        if not cellar.is_dir():
            return []
        receipts = []
        for rack in sorted(p for p in cellar.iterdir() if p.is_dir()):
            receipt = self.installed_receipt(rack.name)
            if receipt:
                receipts.append(receipt)
        return receipts

    # ── Install ─────────────────────────────────────────────────

    def install(
        self,
        formula: Formula,
        *,
        run_tests: bool = True,
        force: bool = False,
    ) -> InstallResult:
        """Run the full state machine for ``formula``."""
        result = InstallResult(name=formula.name, version=formula.version)

        try:
            validate_formula(formula).raise_for_errors()
        except MalformedManifest as e:
            logger.error("Refusing to install %s: %s", formula.name, e)
            result.fail(e)
            return result

        existing = self.installed_receipt(formula.name)
        if existing and existing.version == formula.version and not force:
            logger.warning("%s %s is already installed", formula.name, formula.version)
            result.installed = True
            result.receipt = existing
            result.enter(InstallPhase.SUCCESS)
            return result

        try:
            with tempfile.TemporaryDirectory(prefix="formulary_") as tmp:
                staging = Path(tmp) / "staging"

                result.enter(InstallPhase.FETCHING)
                artifact = fetch_artifact(
                    formula,
                    self.settings.cache,
                    timeout=self.settings.timeout,
                    policy=RetryPolicy(
                        attempts=self.settings.retries,
                        base_delay=self.settings.backoff_base,
                        max_delay=self.settings.backoff_max,
                    ),
                )

                result.enter(InstallPhase.VERIFYING)
                try:
                    verify_checksum(artifact, formula.sha256)
                except IntegrityMismatch:
                    artifact.unlink(missing_ok=True)
                    raise

                result.enter(InstallPhase.EXTRACTING)
                binaries = formula.binaries
                extract_artifact(
                    artifact, staging, binary_name=binaries[0] if binaries else ""
                )

                result.enter(InstallPhase.INSTALLING)
                receipt = self._place(formula, _source_roots(staging))
                result.installed = True
                result.receipt = receipt

            if existing and existing.version != formula.version:
                self._remove_keg(existing, keep_links=receipt.links)

            if run_tests and formula.test:
                result.enter(InstallPhase.TESTING)
                result.test_output = self._run_tests(formula.test, formula.name, formula.version)

            result.enter(InstallPhase.SUCCESS)
            logger.info("Installed %s %s", formula.name, formula.version)

        except (FormularyError, OSError) as e:
            logger.error("%s %s failed while %s: %s", formula.name, formula.version, result.phase, e)
            result.fail(e)

        return result

    def _place(self, formula: Formula, source_roots: list[Path]) -> InstallReceipt:
        """Copy install sources into the keg and link them into ``bin``.

        On any failure the keg and the links made so far are removed.
        """
        keg = self.keg_path(formula.name, formula.version)
        if keg.exists():
            shutil.rmtree(keg)

        files: list[str] = []
        links: list[str] = []
        try:
            for step in formula.install:
                src = _find_source(source_roots, step.source)
                if src is None:
                    raise MalformedManifest(
                        "install",
                        f"'{step.source}' not found in {formula.artifact_name}",
                    )
                target_dir = keg / step.destination
                target_dir.mkdir(parents=True, exist_ok=True)
                target = target_dir / src.name
                shutil.copy2(src, target)
                os.chmod(target, 0o755)
                files.append(str(target.relative_to(keg)))

                if step.destination == DestinationCategory.BIN.value:
                    links.append(str(self._link(target)))

            receipt = InstallReceipt(
                name=formula.name,
                version=formula.version,
                url=formula.url,
                sha256=formula.sha256,
                files=files,
                links=links,
                test=list(formula.test),
            )
            save_receipt(receipt, keg)
        except BaseException:
            for link in links:
                Path(link).unlink(missing_ok=True)
            shutil.rmtree(keg, ignore_errors=True)
            raise

        logger.debug("Placed %d file(s) into %s", len(files), keg)
        return receipt

    def _link(self, target: Path) -> Path:
        """Symlink ``target`` into ``<prefix>/bin``, replacing links into the Cellar."""
        bin_dir = self.settings.bin_dir
        bin_dir.mkdir(parents=True, exist_ok=True)
        link = bin_dir / target.name

        if link.is_symlink():
            current = Path(os.readlink(link))
            if not current.is_absolute():
                current = (link.parent / current).resolve()
            if self.settings.cellar.resolve() not in current.resolve().parents:
                raise FormularyError(f"Refusing to overwrite foreign link {link}")
            link.unlink()
        elif link.exists():
            raise FormularyError(f"Refusing to overwrite existing file {link}")

        link.symlink_to(target)
        return link

    # ── Test ────────────────────────────────────────────────────

    def _run_tests(self, commands: list[str], name: str, version: str) -> str:
        """Run smoke tests against a keg. Raises TestFailure on the first failure."""
        keg = self.keg_path(name, version)
        output: list[str] = []
        for command in commands:
            expanded = expand_command(command, bin_dir=keg / "bin", prefix=keg)
            res = self._runner(expanded, timeout=self.settings.test_timeout, cwd=str(keg))
            if not res.get("ok"):
                raise TestFailure(
                    command=expanded,
                    returncode=res.get("returncode"),
                    output=res.get("stderr") or res.get("error", ""),
                )
            output.append(res.get("stdout", ""))
        return "".join(output)

    def test(self, name: str) -> InstallResult:
        """Run the smoke tests of the installed version of ``name``."""
        receipt = self.installed_receipt(name)
        if receipt is None:
            raise FormularyError(f"{name} is not installed")

        result = InstallResult(name=name, version=receipt.version, installed=True, receipt=receipt)
        result.enter(InstallPhase.TESTING)
        try:
            result.test_output = self._run_tests(receipt.test, name, receipt.version)
            result.enter(InstallPhase.SUCCESS)
        except TestFailure as e:
            logger.error("%s %s: %s", name, receipt.version, e)
            result.fail(e)
        return result

    # ── Uninstall ───────────────────────────────────────────────

    def uninstall(self, name: str) -> InstallReceipt:
        """Remove the installed keg(s) of ``name`` and their links.

        Raises:
            FormularyError: If ``name`` is not installed.
        """
        rack = self.settings.cellar / name
        receipt = self.installed_receipt(name)
        if receipt is None:
            raise FormularyError(f"{name} is not installed")

        for keg in sorted(p for p in rack.iterdir() if p.is_dir()):
            keg_receipt = load_receipt(keg)
            if keg_receipt:
                self._remove_keg(keg_receipt)
            else:
                shutil.rmtree(keg)
        if rack.is_dir() and not any(rack.iterdir()):
            rack.rmdir()

        logger.info("Uninstalled %s %s", name, receipt.version)
        return receipt

    def _remove_keg(self, receipt: InstallReceipt, *, keep_links: list[str] | None = None) -> None:
        keg = self.keg_path(receipt.name, receipt.version)
        keep = set(keep_links or [])
        for link in receipt.links:
            path = Path(link)
            if link in keep or not path.is_symlink():
                continue
            if keg.resolve() in Path(os.readlink(path)).resolve().parents:
                path.unlink()
        shutil.rmtree(keg, ignore_errors=True)
        logger.debug("Removed keg %s", keg)
