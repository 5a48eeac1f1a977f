"""
Tests for the CLI — command wiring, output and exit codes.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import build_release, local_formula, make_formula
from formulary.core.services.formula.index import write_formula
from formulary.main import cli


@pytest.fixture
def tap(tmp_path: Path) -> Path:
    """A tap with formulary.yml, an isolated prefix and no retry delays."""
    root = tmp_path / "tap"
    root.mkdir()
    (root / "formulary.yml").write_text(
        f"prefix: {tmp_path / 'prefix'}\nretries: 1\nbackoff_base: 0\nbackoff_max: 0\n"
    )
    return root


def _publish(tap: Path, formula) -> None:
    write_formula(formula, tap / "Formula" / f"{formula.name}.rb")


def _invoke(tap: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(tap / "formulary.yml"), *args])


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("install", "test", "uninstall", "list", "audit", "info", "bump"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.4.0" in result.output

    def test_bad_config(self, tmp_path: Path):
        config = tmp_path / "formulary.yml"
        config.write_text("retries: 0\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "list"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestAuditCommand:
    """Tests for 'formulary audit'."""

    def test_passes(self, tap: Path):
        _publish(tap, make_formula())
        result = _invoke(tap, "audit")
        assert result.exit_code == 0, result.output
        assert "1 formula(e) passed audit" in result.output

    def test_published_formula_passes(self):
        config = Path(__file__).parent.parent / "formulary.yml"
        result = CliRunner().invoke(cli, ["--config", str(config), "audit", "ecsfgrun"])
        assert result.exit_code == 0, result.output

    def test_errors_fail(self, tap: Path):
        _publish(tap, make_formula(sha256="not-a-digest"))
        result = _invoke(tap, "audit")
        assert result.exit_code == 1
        assert "[sha256]" in result.output

    def test_strict_warnings(self, tap: Path):
        _publish(tap, make_formula(test=[]))
        assert _invoke(tap, "audit").exit_code == 0
        assert _invoke(tap, "audit", "--strict").exit_code == 1

    def test_json(self, tap: Path):
        _publish(tap, make_formula())
        data = json.loads(_invoke(tap, "audit", "--json").output)
        assert data["ok"] is True
        assert data["formulae"] == ["ecsfgrun"]

    def test_unknown_formula(self, tap: Path):
        result = _invoke(tap, "audit", "missing")
        assert result.exit_code == 1
        assert "No available formula" in result.output


class TestInfoCommand:
    """Tests for 'formulary info'."""

    def test_text(self, tap: Path):
        _publish(tap, make_formula())
        result = _invoke(tap, "info", "ecsfgrun")
        assert result.exit_code == 0
        assert "ecsfgrun: stable 0.4.0" in result.output
        assert "Installed: no" in result.output

    def test_json(self, tap: Path):
        write_formula(make_formula("0.3.0"), tap / "Formula" / "ecsfgrun@0.3.0.rb", archived=True)
        _publish(tap, make_formula())
        data = json.loads(_invoke(tap, "info", "ecsfgrun", "--json").output)
        assert data["formula"]["version"] == "0.4.0"
        assert data["history"] == ["0.3.0", "0.4.0"]
        assert data["installed"] is None

    def test_unknown(self, tap: Path):
        assert _invoke(tap, "info", "missing").exit_code == 1


class TestInstallCommands:
    """Tests for install, test, list and uninstall."""

    def test_install_test_list_uninstall(self, tap: Path, tmp_path: Path):
        archive = build_release(tmp_path / "upstream", "0.4.0")
        _publish(tap, local_formula(archive, "0.4.0"))

        result = _invoke(tap, "install", "ecsfgrun")
        assert result.exit_code == 0, result.output
        assert "✅ ecsfgrun 0.4.0" in result.output
        assert (tmp_path / "prefix" / "bin" / "ecsfgrun").is_symlink()

        result = _invoke(tap, "test", "ecsfgrun")
        assert result.exit_code == 0
        assert "ecsfgrun version 0.4.0" in result.output

        result = _invoke(tap, "list")
        assert "ecsfgrun 0.4.0" in result.output

        result = _invoke(tap, "uninstall", "ecsfgrun")
        assert result.exit_code == 0
        assert "Uninstalled ecsfgrun 0.4.0" in result.output
        assert "No formulae installed" in _invoke(tap, "list").output

    def test_install_json(self, tap: Path, tmp_path: Path):
        archive = build_release(tmp_path / "upstream", "0.4.0")
        _publish(tap, local_formula(archive, "0.4.0"))
        data = json.loads(_invoke(tap, "install", "ecsfgrun", "--json").output)
        assert data["phase"] == "success"
        assert data["transitions"][-1] == "success"

    def test_integrity_mismatch_exit_code(self, tap: Path, tmp_path: Path):
        archive = build_release(tmp_path / "upstream", "0.4.0")
        _publish(tap, local_formula(archive, "0.4.0", sha256="0" * 64))
        result = _invoke(tap, "install", "ecsfgrun")
        assert result.exit_code == 2
        assert "failed while verifying" in result.output

    def test_network_failure_exit_code(self, tap: Path, tmp_path: Path):
        missing = tmp_path / "gone" / "v0.4.0" / "ecsfgrun_Darwin_x86_64.tar.gz"
        _publish(tap, make_formula(url=missing.as_uri()))
        assert _invoke(tap, "install", "ecsfgrun").exit_code == 3

    def test_test_failure_exit_code(self, tap: Path, tmp_path: Path):
        archive = build_release(tmp_path / "upstream", "0.4.0", script="#!/bin/sh\nexit 1\n")
        _publish(tap, local_formula(archive, "0.4.0"))
        result = _invoke(tap, "install", "ecsfgrun")
        assert result.exit_code == 4
        assert "did not pass its test" in result.output

    def test_unknown_formula(self, tap: Path):
        result = _invoke(tap, "install", "missing")
        assert result.exit_code == 1
        assert "No available formula with the name 'missing'" in result.output

    def test_uninstall_not_installed(self, tap: Path):
        assert _invoke(tap, "uninstall", "ecsfgrun").exit_code == 1


class TestBumpCommand:
    """Tests for 'formulary bump'."""

    def test_bump(self, tap: Path):
        _publish(tap, make_formula("0.3.0"))
        result = _invoke(tap, "bump", "ecsfgrun", "--version", "0.4.0", "--sha256", "d" * 64)
        assert result.exit_code == 0, result.output
        assert "ecsfgrun 0.3.0 → 0.4.0" in result.output
        assert (tap / "Formula" / "ecsfgrun@0.3.0.rb").is_file()
        assert 'version "0.4.0"' in (tap / "Formula" / "ecsfgrun.rb").read_text()

    def test_dry_run_writes_nothing(self, tap: Path):
        _publish(tap, make_formula("0.3.0"))
        result = _invoke(tap, "bump", "ecsfgrun", "--version", "0.4.0", "--sha256", "d" * 64, "--dry-run")
        assert result.exit_code == 0
        assert result.output.startswith("class Ecsfgrun < Formula")
        assert not (tap / "Formula" / "ecsfgrun@0.3.0.rb").exists()

    def test_version_must_increase(self, tap: Path):
        _publish(tap, make_formula("0.3.0"))
        result = _invoke(tap, "bump", "ecsfgrun", "--version", "0.2.0", "--sha256", "d" * 64)
        assert result.exit_code == 1
        assert "monotonic" in result.output
