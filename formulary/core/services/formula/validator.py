"""
Formula validation — internal consistency checks before install (pure).

``validate_formula`` never raises; it returns every issue it finds so
``audit`` can report them all at once. ``raise_for_errors`` turns the
first error into a :class:`MalformedManifest` for callers that must
stop (the installer).
No I/O, no subprocess.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from formulary.core.errors import MalformedManifest
from formulary.core.models.formula import DestinationCategory, Formula
from formulary.core.services.formula.versions import check_monotonic, is_semver

NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
SHA256_RE = re.compile(r"^[0-9a-f]{64}$")

_DESTINATIONS = {c.value for c in DestinationCategory}


class ValidationIssue(BaseModel):
    """One failed check."""

    check: str
    message: str
    severity: Literal["error", "warning"] = "error"
    formula: str = ""


class ValidationResult(BaseModel):
    """Outcome of validating one formula (or a whole tap)."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def ok(self) -> bool:
        """True when no error-severity issue was found."""
        return not self.errors

    def add(self, check: str, message: str, *, severity: str = "error", formula: str = "") -> None:
        self.issues.append(
            ValidationIssue(check=check, message=message, severity=severity, formula=formula)
        )

    def extend(self, other: ValidationResult) -> None:
        self.issues.extend(other.issues)

    def raise_for_errors(self) -> None:
        """Raise :class:`MalformedManifest` for the first error, if any."""
        if self.errors:
            first = self.errors[0]
            raise MalformedManifest(first.check, first.message)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "issues": [i.model_dump() for i in self.issues],
        }


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _is_fetchable_url(value: str) -> bool:
    parsed = urlparse(value or "")
    if parsed.scheme == "file":
        return bool(parsed.path)
    return _is_http_url(value)


def url_has_version_segment(url: str, version: str) -> bool:
    """Whether ``version`` sits in a path segment of ``url`` as a release tag.

    Accepts ``.../v0.4.0/...`` and ``.../0.4.0/...``.
    """
    if not version:
        return False
    segments = urlparse(url).path.split("/")
    return any(seg in (version, f"v{version}") for seg in segments)


def _check_install_step(source: str, destination: str) -> str | None:
    """Return an error message for a bad install step, or None."""
    if not source:
        return "install step has an empty source path"
    if source.startswith("/"):
        return f"install source '{source}' must be a relative path"
    if ".." in PurePosixPath(source).parts:
        return f"install source '{source}' must not leave the artifact directory"
    if destination not in _DESTINATIONS:
        return (
            f"install destination '{destination}' is not a known category "
            f"(expected one of: {', '.join(sorted(_DESTINATIONS))})"
        )
    return None


def validate_formula(formula: Formula) -> ValidationResult:
    """Verify a formula's internal consistency.

    Checks: ``name``, ``version``, ``url`` (well-formed and carrying the
    version as a release-tag path segment), ``sha256``, ``install``,
    ``homepage``; a missing ``test`` block is only a warning.
    """
    result = ValidationResult()
    tag = formula.name

    if not NAME_RE.match(formula.name or ""):
        result.add("name", f"invalid formula name '{formula.name}'", formula=tag)

    if not is_semver(formula.version):
        result.add("version", f"'{formula.version}' is not a semantic version", formula=tag)

    if not _is_fetchable_url(formula.url):
        result.add("url", f"malformed download URL '{formula.url}'", formula=tag)
    elif not url_has_version_segment(formula.url, formula.version):
        result.add(
            "url",
            f"download URL does not contain version '{formula.version}' "
            f"as its release tag: {formula.url}",
            formula=tag,
        )

    if not SHA256_RE.match(formula.sha256 or ""):
        result.add(
            "sha256",
            f"sha256 must be 64 lowercase hex characters, got '{formula.sha256}'",
            formula=tag,
        )

    if not formula.install:
        result.add("install", "no install steps", formula=tag)
    for step in formula.install:
        problem = _check_install_step(step.source, step.destination)
        if problem:
            result.add("install", problem, formula=tag)

    if formula.homepage and not _is_http_url(formula.homepage):
        result.add("homepage", f"malformed homepage URL '{formula.homepage}'", formula=tag)

    if not formula.test:
        result.add("test", "no test block", severity="warning", formula=tag)

    return result


def validate_revisions(name: str, revisions: list[Formula]) -> ValidationResult:
    """Validate every revision of one formula plus their ordering.

    Args:
        name: Formula name.
        revisions: Revisions oldest first, in the order they were published.
    """
    result = ValidationResult()
    for formula in revisions:
        result.extend(validate_formula(formula))

    versions = [f.version for f in revisions]
    if all(is_semver(v) for v in versions):
        for problem in check_monotonic(versions):
            result.add("monotonic", problem, formula=name)
    return result
