"""
Error taxonomy — every failure the tap toolkit can surface.

Services raise these; the installer folds them into an
``InstallResult`` and the CLI turns them into a message and an
exit code. Nothing here is ever silently recovered.
"""

from __future__ import annotations


class FormularyError(Exception):
    """Base class for all formulary failures."""

    exit_code = 1
    kind = "error"


class MalformedManifest(FormularyError):
    """A required formula field is missing or invalid.

    Raised before any install work is attempted.
    """

    kind = "malformed_manifest"

    def __init__(self, check: str, message: str):
        self.check = check
        self.message = message
        super().__init__(f"[{check}] {message}")


class IntegrityMismatch(FormularyError):
    """Downloaded artifact digest differs from the declared sha256."""

    exit_code = 2
    kind = "integrity_mismatch"

    def __init__(self, expected: str, actual: str, path: str = ""):
        self.expected = expected
        self.actual = actual
        self.path = path
        super().__init__(
            f"SHA256 mismatch{f' for {path}' if path else ''}: "
            f"expected {expected}, got {actual}"
        )


class NetworkFailure(FormularyError):
    """Artifact could not be fetched after all retry attempts."""

    exit_code = 3
    kind = "network_failure"

    def __init__(self, url: str, attempts: int, reason: str):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Download of {url} failed after {attempts} attempt(s): {reason}")


class TestFailure(FormularyError):
    """Post-install smoke test exited non-zero."""

    __test__ = False  # not a pytest class

    exit_code = 4
    kind = "test_failure"

    def __init__(self, command: str, returncode: int | None, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(f"Test command failed (exit {returncode}): {command}")


class FormulaNotFound(FormularyError):
    """No formula with the requested name exists in the tap."""

    kind = "not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No available formula with the name '{name}'")
