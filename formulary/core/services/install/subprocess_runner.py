"""
Subprocess runner — the single place where formula test commands run.

Formula ``test`` entries are shell command strings (``"#{bin}/tool -v"``);
``#{bin}`` and ``#{prefix}`` are expanded before execution. Like Ruby's
``system`` with one string, a command holding shell metacharacters runs
through ``/bin/sh -c``; anything else is split and executed directly.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"

# Characters that make Ruby's Kernel#system hand a string to the shell
_SHELL_META = frozenset("*?{}[]<>()~&|\\$;'`\"\n#=%")


def needs_shell(command: str) -> bool:
    """Whether ``command`` must run through the shell."""
    return any(ch in _SHELL_META for ch in command)


def expand_command(command: str, *, bin_dir: Path, prefix: Path) -> str:
    """Expand formula interpolations in a test command."""
    return (
        command.replace("#{bin}", str(bin_dir))
        .replace("#{prefix}", str(prefix))
    )


def run_command(
    command: str,
    *,
    timeout: int = 60,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run one test command.

    Commands with shell metacharacters run as ``/bin/sh -c <command>``;
    others are split with :func:`shlex.split` and executed directly.

    Returns:
        ``{"ok": True, "stdout": "...", "returncode": 0, "elapsed_ms": N}``
        on success, ``{"ok": False, "error": "...", "returncode": N, ...}``
        on failure.
    """
    if needs_shell(command):
        argv = [SHELL, "-c", command]
    else:
        argv = shlex.split(command)
    if not argv:
        return {"ok": False, "error": "Empty command", "returncode": None}

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Running: %s", argv)
    start = time.monotonic()
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)", "returncode": None}
    except OSError as e:
        return {"ok": False, "error": str(e), "returncode": None}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-2000:] if result.stdout else ""
    stderr = result.stderr[-2000:] if result.stderr else ""

    if result.returncode == 0:
        return {
            "ok": True,
            "stdout": stdout,
            "returncode": 0,
            "elapsed_ms": elapsed_ms,
        }
    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "returncode": result.returncode,
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }
