"""
Tests for running formula test commands.
"""

import subprocess
from pathlib import Path

import pytest

from formulary.core.services.install.subprocess_runner import (
    expand_command,
    needs_shell,
    run_command,
)


class TestExpandCommand:
    """Tests for formula interpolation in commands."""

    def test_bin_and_prefix(self):
        cmd = expand_command(
            "#{bin}/ecsfgrun -v --root #{prefix}",
            bin_dir=Path("/opt/Cellar/ecsfgrun/0.4.0/bin"),
            prefix=Path("/opt/Cellar/ecsfgrun/0.4.0"),
        )
        assert cmd == "/opt/Cellar/ecsfgrun/0.4.0/bin/ecsfgrun -v --root /opt/Cellar/ecsfgrun/0.4.0"

    def test_plain_command_untouched(self):
        assert expand_command("true", bin_dir=Path("/b"), prefix=Path("/p")) == "true"


class TestRunCommand:
    """Tests for running test commands."""

    def test_success(self):
        result = run_command("echo hello")
        assert result["ok"]
        assert result["returncode"] == 0
        assert result["stdout"] == "hello\n"

    def test_plain_command_runs_directly(self, monkeypatch):
        seen = []
        real_run = subprocess.run

        def spy(argv, **kwargs):
            seen.append(argv)
            return real_run(argv, **kwargs)

        monkeypatch.setattr(subprocess, "run", spy)
        assert run_command("echo hello")["ok"]
        assert seen == [["echo", "hello"]]

    def test_env_assignment_uses_shell(self):
        result = run_command("FORMULA_TEST_VAR=set printenv FORMULA_TEST_VAR")
        assert result["ok"], result
        assert result["stdout"] == "set\n"

    def test_pipe_uses_shell(self, tmp_path: Path):
        script = tmp_path / "ecsfgrun"
        script.write_text('#!/bin/sh\necho "ecsfgrun version 0.4.0"\n')
        script.chmod(0o755)
        assert run_command(f"{script} -v | grep 0.4.0")["ok"]
        assert not run_command(f"{script} -v | grep 9.9.9")["ok"]

    def test_failure(self, tmp_path: Path):
        script = tmp_path / "fail.sh"
        script.write_text("#!/bin/sh\necho broken >&2\nexit 7\n")
        script.chmod(0o755)
        result = run_command(str(script))
        assert not result["ok"]
        assert result["returncode"] == 7
        assert "exit 7" in result["error"]
        assert "broken" in result["stderr"]

    def test_missing_binary(self, tmp_path: Path):
        result = run_command(str(tmp_path / "nope"))
        assert not result["ok"]
        assert result["returncode"] is None

    def test_empty(self):
        assert run_command("   ")["error"] == "Empty command"

    def test_timeout(self):
        result = run_command("sleep 5", timeout=1)
        assert not result["ok"]
        assert "timed out" in result["error"]

    def test_env_overrides(self, tmp_path: Path):
        script = tmp_path / "env.sh"
        script.write_text("#!/bin/sh\necho $FORMULA_TEST_VAR\n")
        script.chmod(0o755)
        result = run_command(str(script), env_overrides={"FORMULA_TEST_VAR": "set"})
        assert result["stdout"] == "set\n"


class TestNeedsShell:
    """Tests for choosing between the shell and direct execution."""

    @pytest.mark.parametrize("command", [
        "FOO=1 /k/bin/ecsfgrun -v",
        "/k/bin/ecsfgrun -v | grep 0.4.0",
        "/k/bin/ecsfgrun -v > out",
        "echo $HOME",
        "/k/bin/ecsfgrun 'quoted arg'",
    ])
    def test_shell(self, command):
        assert needs_shell(command)

    @pytest.mark.parametrize("command", ["/k/bin/ecsfgrun -v", "true", "ecsfgrun --help"])
    def test_direct(self, command):
        assert not needs_shell(command)
