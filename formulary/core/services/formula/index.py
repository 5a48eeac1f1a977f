"""
Tap index — load formula files and resolve the active revision per name.

Layout of a tap::

    <tap>/Formula/ecsfgrun.rb          active revision
    <tap>/Formula/ecsfgrun@0.3.0.rb    archived revisions
    <tap>/Formula/ecsfgrun@0.2.0.rb

Revisions are kept in publication order (archived ones by the version
in their file name, the active file last). ``latest()`` answers with
the highest version; only that one is ever installed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from formulary.core.errors import FormulaNotFound, MalformedManifest
from formulary.core.models.formula import Formula
from formulary.core.services.formula.parser import parse_formula, render_formula
from formulary.core.services.formula.validator import ValidationResult, validate_revisions
from formulary.core.services.formula.versions import check_monotonic, is_semver, parse_version

logger = logging.getLogger(__name__)

FORMULA_DIR = "Formula"


@dataclass
class FormulaEntry:
    """One revision as found in the tap."""

    formula: Formula
    path: Path | None = None
    archived: bool = False
    label: str | None = None   # version from an ``name@version.rb`` file name


class FormulaIndex:
    """All revisions of all formulae in a tap, keyed by name."""

    def __init__(self) -> None:
        self._entries: dict[str, list[FormulaEntry]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self,
        formula: Formula,
        *,
        path: Path | None = None,
        archived: bool = False,
        label: str | None = None,
    ) -> FormulaEntry:
        """Record a revision. Order of calls is publication order."""
        entry = FormulaEntry(formula=formula, path=path, archived=archived, label=label)
        self._entries.setdefault(formula.name, []).append(entry)
        return entry

    def names(self) -> list[str]:
        return sorted(self._entries)

    def entries(self, name: str) -> list[FormulaEntry]:
        try:
            return list(self._entries[name])
        except KeyError:
            raise FormulaNotFound(name) from None

    def history(self, name: str) -> list[Formula]:
        """Every revision of ``name``, oldest published first."""
        return [e.formula for e in self.entries(name)]

    def latest(self, name: str) -> Formula:
        """The active revision: the highest version known for ``name``.

        Revisions whose version does not parse only win when nothing
        else is available.
        """
        revisions = self.history(name)
        valid = [f for f in revisions if is_semver(f.version)]
        if not valid:
            return revisions[-1]
        return max(valid, key=lambda f: parse_version(f.version))

    def check_monotonic(self, name: str) -> list[str]:
        """Problems with the revision order of ``name`` (empty = fine)."""
        return check_monotonic([f.version for f in self.history(name)])

    def audit(self, name: str | None = None) -> ValidationResult:
        """Validate one formula's revisions, or the whole tap."""
        result = ValidationResult()
        for n in [name] if name else self.names():
            entries = self.entries(n)
            result.extend(validate_revisions(n, [e.formula for e in entries]))
            for entry in entries:
                if entry.label and entry.label != entry.formula.version:
                    result.add(
                        "revision",
                        f"{entry.path.name if entry.path else n} declares version "
                        f"{entry.formula.version}",
                        formula=n,
                    )
            actives = [e for e in entries if not e.archived]
            if len(actives) > 1:
                result.add("revision", f"{len(actives)} active revisions", formula=n)
        return result


# ── Tap I/O ─────────────────────────────────────────────────────


def formula_dir(tap: Path) -> Path:
    """``<tap>/Formula``, or the tap itself when it holds .rb files directly."""
    candidate = tap / FORMULA_DIR
    return candidate if candidate.is_dir() else tap


def load_formula(path: Path) -> Formula:
    """Read and parse one formula file.

    The name comes from the file name (``ecsfgrun@0.1.0.rb`` → ``ecsfgrun``).

    Raises:
        MalformedManifest: If the file cannot be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedManifest("file", f"Cannot read {path}: {e}") from e
    name = path.stem.split("@", 1)[0]
    return parse_formula(text, name=name)


def write_formula(formula: Formula, path: Path, *, archived: bool = False) -> Path:
    """Render a formula to ``path``.

    Archived revisions get the versioned class name (``EcsfgrunAT010``).
    """
    class_name = formula.versioned_class_name if archived else formula.class_name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_formula(formula, class_name=class_name), encoding="utf-8")
    logger.debug("Wrote %s", path)
    return path


def load_tap(tap: Path) -> FormulaIndex:
    """Load every formula in a tap directory.

    Raises:
        MalformedManifest: If any file fails to parse (the message names it).
    """
    directory = formula_dir(tap)
    index = FormulaIndex()

    if not directory.is_dir():
        logger.warning("Tap directory %s does not exist", directory)
        return index

    active: list[Path] = []
    archived: list[tuple[str, Path]] = []
    for path in sorted(directory.glob("*.rb")):
        if "@" in path.stem:
            archived.append((path.stem.split("@", 1)[1], path))
        else:
            active.append(path)

    valid_labels = [a for a in archived if is_semver(a[0])]
    other_labels = [a for a in archived if not is_semver(a[0])]
    ordered = sorted(valid_labels, key=lambda a: parse_version(a[0])) + other_labels

    for label, path in ordered:
        index.add(_load_named(path), path=path, archived=True, label=label)
    for path in active:
        index.add(_load_named(path), path=path)

    logger.info("Loaded %d formula(e) from %s", len(index), directory)
    return index


def _load_named(path: Path) -> Formula:
    try:
        return load_formula(path)
    except MalformedManifest as e:
        raise MalformedManifest(e.check, f"{path.name}: {e.message}") from e
