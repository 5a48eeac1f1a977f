"""
Shared test fixtures and configuration.
"""

import hashlib
import io
import tarfile
from pathlib import Path

import pytest

from formulary.core.config.loader import Settings
from formulary.core.models import Formula, InstallStep

HOMEPAGE = "https://github.com/masahide/ecsfgrun"
RELEASE_URL = (
    "https://github.com/masahide/ecsfgrun/releases/download/"
    "v{version}/ecsfgrun_Darwin_x86_64.tar.gz"
)
ARTIFACT = "ecsfgrun_Darwin_x86_64.tar.gz"

VERSION_SCRIPT = '#!/bin/sh\necho "ecsfgrun version {version}"\n'


def make_formula(version: str = "0.4.0", **overrides) -> Formula:
    """An ecsfgrun formula pointing at the real release URL layout."""
    fields = dict(
        name="ecsfgrun",
        desc="AWS assume role credential wrapper",
        homepage=HOMEPAGE,
        url=RELEASE_URL.format(version=version),
        version=version,
        sha256=hashlib.sha256(version.encode()).hexdigest(),
        install=[InstallStep(source="ecsfgrun")],
        test=["#{bin}/ecsfgrun -v"],
    )
    fields.update(overrides)
    return Formula(**fields)


def build_release(root: Path, version: str, *, script: str | None = None,
                  member: str = "ecsfgrun") -> Path:
    """Write a release tarball at ``<root>/releases/download/v<version>/``."""
    release = root / "releases" / "download" / f"v{version}"
    release.mkdir(parents=True, exist_ok=True)
    archive = release / ARTIFACT
    data = (script or VERSION_SCRIPT.format(version=version)).encode()
    with tarfile.open(archive, "w:gz") as tf:
        info = tarfile.TarInfo(member)
        info.size = len(data)
        info.mode = 0o755
        tf.addfile(info, io.BytesIO(data))
    return archive


def sha256_file(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def local_formula(archive: Path, version: str, **overrides) -> Formula:
    """A formula whose URL is the ``file://`` URI of a built release."""
    fields = dict(url=archive.as_uri(), sha256=sha256_file(archive))
    fields.update(overrides)
    return make_formula(version, **fields)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with an isolated prefix and no retry delays."""
    return Settings(
        tap=tmp_path / "tap",
        prefix=tmp_path / "prefix",
        retries=2,
        backoff_base=0.0,
        backoff_max=0.0,
        timeout=5,
        test_timeout=10,
    )


@pytest.fixture
def release(tmp_path: Path) -> tuple[Formula, Path]:
    """A locally served 0.4.0 release and the formula that installs it."""
    archive = build_release(tmp_path / "upstream", "0.4.0")
    return local_formula(archive, "0.4.0"), archive


@pytest.fixture
def formula_text() -> str:
    """The published 0.1.0 formula, byte for byte."""
    return (Path(__file__).parent.parent / "Formula" / "ecsfgrun.rb").read_text()
