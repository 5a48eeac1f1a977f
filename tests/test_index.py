"""
Tests for the tap index — loading, revision history, active selection.
"""

from pathlib import Path

import pytest

from conftest import make_formula
from formulary.core.errors import FormulaNotFound, MalformedManifest
from formulary.core.services.formula.index import (
    FormulaIndex,
    load_formula,
    load_tap,
    write_formula,
)

REVISIONS = ["0.1.0", "0.2.0", "0.3.0", "0.4.0"]


@pytest.fixture
def tap(tmp_path: Path) -> Path:
    """A tap holding four ecsfgrun revisions, 0.4.0 active."""
    root = tmp_path / "tap"
    formula_dir = root / "Formula"
    for version in REVISIONS[:-1]:
        write_formula(
            make_formula(version), formula_dir / f"ecsfgrun@{version}.rb", archived=True
        )
    write_formula(make_formula(REVISIONS[-1]), formula_dir / "ecsfgrun.rb")
    return root


class TestFormulaIndex:
    """Tests for the in-memory revision index."""

    def test_latest_is_highest_version(self):
        index = FormulaIndex()
        for v in ["0.2.0", "0.4.0", "0.3.0"]:
            index.add(make_formula(v))
        assert index.latest("ecsfgrun").version == "0.4.0"

    def test_history_keeps_publication_order(self):
        index = FormulaIndex()
        for v in REVISIONS:
            index.add(make_formula(v))
        assert [f.version for f in index.history("ecsfgrun")] == REVISIONS
        assert index.check_monotonic("ecsfgrun") == []

    def test_unknown_name(self):
        with pytest.raises(FormulaNotFound, match="nope"):
            FormulaIndex().latest("nope")

    def test_contains_and_len(self):
        index = FormulaIndex()
        index.add(make_formula())
        index.add(make_formula(name="other"))
        assert "ecsfgrun" in index
        assert len(index) == 2
        assert index.names() == ["ecsfgrun", "other"]

    def test_latest_falls_back_without_semver(self):
        index = FormulaIndex()
        index.add(make_formula(version="nightly"))
        assert index.latest("ecsfgrun").version == "nightly"

    def test_audit_reports_regression(self):
        index = FormulaIndex()
        index.add(make_formula("0.3.0"))
        index.add(make_formula("0.2.0"))
        result = index.audit()
        assert not result.ok
        assert {i.check for i in result.errors} == {"monotonic"}


class TestLoadTap:
    """Tests for loading a tap directory."""

    def test_loads_all_revisions(self, tap: Path):
        index = load_tap(tap)
        assert index.names() == ["ecsfgrun"]
        assert [f.version for f in index.history("ecsfgrun")] == REVISIONS
        assert index.latest("ecsfgrun").version == "0.4.0"

    def test_archived_entries_flagged(self, tap: Path):
        entries = load_tap(tap).entries("ecsfgrun")
        assert [e.archived for e in entries] == [True, True, True, False]
        assert entries[0].label == "0.1.0"
        assert entries[-1].path.name == "ecsfgrun.rb"

    def test_archived_sorted_by_version_not_name(self, tmp_path: Path):
        formula_dir = tmp_path / "Formula"
        for v in ["0.9.0", "0.10.0"]:
            write_formula(make_formula(v), formula_dir / f"ecsfgrun@{v}.rb", archived=True)
        write_formula(make_formula("0.11.0"), formula_dir / "ecsfgrun.rb")
        versions = [f.version for f in load_tap(tmp_path).history("ecsfgrun")]
        assert versions == ["0.9.0", "0.10.0", "0.11.0"]

    def test_audit_clean_tap(self, tap: Path):
        assert load_tap(tap).audit().ok

    def test_audit_label_mismatch(self, tap: Path):
        path = tap / "Formula" / "ecsfgrun@0.2.0.rb"
        path.write_text(path.read_text().replace("0.2.0", "0.2.5"))
        result = load_tap(tap).audit("ecsfgrun")
        assert "revision" in {i.check for i in result.errors}

    def test_flat_tap_directory(self, tmp_path: Path):
        write_formula(make_formula(), tmp_path / "ecsfgrun.rb")
        assert load_tap(tmp_path).latest("ecsfgrun").version == "0.4.0"

    def test_missing_directory_is_empty(self, tmp_path: Path):
        assert len(load_tap(tmp_path / "nope")) == 0

    def test_broken_file_named_in_error(self, tap: Path):
        (tap / "Formula" / "broken.rb").write_text("puts 'hi'\n")
        with pytest.raises(MalformedManifest, match="broken.rb"):
            load_tap(tap)

    def test_published_formula(self):
        root = Path(__file__).parent.parent
        index = load_tap(root)
        f = index.latest("ecsfgrun")
        assert f.version == "0.1.0"
        assert index.audit().ok


class TestFormulaFiles:
    """Tests for reading and writing single formula files."""

    def test_write_then_load(self, tmp_path: Path):
        f = make_formula("0.2.0")
        path = write_formula(f, tmp_path / "Formula" / "ecsfgrun@0.2.0.rb", archived=True)
        assert path.read_text().startswith("class EcsfgrunAT020 < Formula")
        assert load_formula(path) == f

    def test_unreadable(self, tmp_path: Path):
        with pytest.raises(MalformedManifest, match="Cannot read"):
            load_formula(tmp_path / "missing.rb")
