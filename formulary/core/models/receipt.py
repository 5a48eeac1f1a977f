"""
Install receipt and result models — the installer's output contract.

``InstallReceipt`` is persisted inside every keg so ``uninstall`` and
``test`` know what was placed where. ``InstallResult`` is what the
installer hands back to the CLI: it never raises, failures are
captured here with the phase they happened in.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstallPhase(StrEnum):
    """Installer state machine.

    Fetching → Verifying → Extracting → Installing → Testing → Success.
    Any phase may move straight to Failed.
    """

    PENDING = "pending"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    INSTALLING = "installing"
    TESTING = "testing"
    SUCCESS = "success"
    FAILED = "failed"


class InstallReceipt(BaseModel):
    """What was installed, written as ``INSTALL_RECEIPT.json`` in the keg."""

    name: str
    version: str
    url: str = ""
    sha256: str = ""
    installed_at: str = Field(default_factory=_now_iso)
    files: list[str] = Field(default_factory=list)   # keg-relative
    links: list[str] = Field(default_factory=list)   # absolute symlink paths
    test: list[str] = Field(default_factory=list)


class InstallResult(BaseModel):
    """Outcome of one installer run."""

    name: str
    version: str = ""
    phase: InstallPhase = InstallPhase.PENDING
    transitions: list[InstallPhase] = Field(default_factory=list)

    installed: bool = False
    error: str | None = None
    error_kind: str | None = None
    failed_in: InstallPhase | None = None
    exit_code: int = 0

    test_output: str = ""
    receipt: InstallReceipt | None = None

    @property
    def ok(self) -> bool:
        """Whether the run ended in Success."""
        return self.phase == InstallPhase.SUCCESS

    def enter(self, phase: InstallPhase) -> None:
        """Advance the state machine."""
        self.phase = phase
        self.transitions.append(phase)

    def fail(self, error: Exception, *, exit_code: int = 1) -> None:
        """Move to Failed, remembering where it happened."""
        self.failed_in = self.phase
        self.error = str(error)
        self.error_kind = getattr(error, "kind", type(error).__name__)
        self.exit_code = getattr(error, "exit_code", exit_code)
        self.enter(InstallPhase.FAILED)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
