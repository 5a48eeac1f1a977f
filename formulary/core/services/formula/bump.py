"""
Formula bump — publish the next revision of a formula.

A bump never edits a revision in place. The current active file is
archived as ``<name>@<old-version>.rb`` and a new ``<name>.rb`` is
written for the new version.
"""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path
from typing import Callable

from formulary.core.errors import MalformedManifest
from formulary.core.models.formula import Formula
from formulary.core.reliability.backoff import RetryPolicy
from formulary.core.services.formula.index import formula_dir, write_formula
from formulary.core.services.formula.validator import validate_formula
from formulary.core.services.formula.versions import check_monotonic, is_semver
from formulary.core.services.install.download import fetch, sha256_of

logger = logging.getLogger(__name__)


def retarget_url(url: str, old_version: str, new_version: str) -> str:
    """Replace every whole occurrence of ``old_version`` in ``url``."""
    pattern = re.compile(r"(?<![\d.])" + re.escape(old_version) + r"(?![\d])")
    return pattern.sub(new_version, url)


def digest_url(url: str, *, timeout: float = 60, policy: RetryPolicy | None = None) -> str:
    """Download ``url`` to a temporary file and return its sha256."""
    with tempfile.TemporaryDirectory(prefix="formulary_bump_") as tmp:
        path = fetch(url, Path(tmp) / "artifact", timeout=timeout, policy=policy)
        return sha256_of(path)


def bump_formula(
    formula: Formula,
    new_version: str,
    *,
    sha256: str | None = None,
    digest: Callable[[str], str] = digest_url,
) -> Formula:
    """Build the next revision of ``formula``.

    Args:
        formula: Current active revision.
        new_version: Version to publish; must be strictly greater.
        sha256: Digest of the new artifact. Computed by downloading the
            new URL with ``digest`` when omitted.

    Raises:
        MalformedManifest: If the version does not increase, the URL does
            not carry the old version, or the result fails validation.
    """
    # Release tags ("v0.4.0") are accepted here; the manifest field is bare
    new_version = new_version.removeprefix("v")
    if not is_semver(new_version):
        raise MalformedManifest("version", f"'{new_version}' is not a semantic version")
    problems = check_monotonic([formula.version, new_version]) if is_semver(formula.version) else []
    if problems:
        raise MalformedManifest("monotonic", f"{formula.name}: {problems[0]}")

    new_url = retarget_url(formula.url, formula.version, new_version)
    if new_url == formula.url:
        raise MalformedManifest(
            "url", f"download URL does not contain version {formula.version}: {formula.url}"
        )

    if sha256 is None:
        logger.info("Fetching %s to compute its sha256", new_url)
        sha256 = digest(new_url)

    bumped = formula.model_copy(
        update={"version": new_version, "url": new_url, "sha256": sha256.lower()}
    )
    validate_formula(bumped).raise_for_errors()
    return bumped


def write_bump(tap: Path, old: Formula, new: Formula) -> tuple[Path, Path]:
    """Archive ``old`` and make ``new`` the active revision on disk.

    Returns:
        ``(archived_path, active_path)``
    """
    directory = formula_dir(tap)
    archived = write_formula(old, directory / f"{old.versioned_name}.rb", archived=True)
    active = write_formula(new, directory / f"{new.name}.rb")
    logger.info("Bumped %s %s → %s", new.name, old.version, new.version)
    return archived, active
