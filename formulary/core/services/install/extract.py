"""
Artifact extraction.

Unpacks ``.tar.gz`` / ``.tgz`` / ``.tar`` / ``.zip`` artifacts into a
staging directory. Any other artifact is treated as the binary itself.
Archive members that would land outside the staging directory are
refused.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path

from formulary.core.errors import FormularyError

logger = logging.getLogger(__name__)


class ExtractError(FormularyError):
    """Archive is unreadable or contains unsafe members."""

    kind = "extract_failed"


def _inside(root: Path, member: str) -> bool:
    target = (root / member).resolve()
    return target == root or root in target.parents


def extract_artifact(artifact: Path, dest: Path, *, binary_name: str = "") -> list[Path]:
    """Extract ``artifact`` into ``dest``.

    Args:
        artifact: Downloaded (and verified) file.
        dest: Empty staging directory.
        binary_name: File name to use when the artifact is a bare binary.

    Returns:
        Regular files now present under ``dest``.

    Raises:
        ExtractError: On a corrupt archive or a path-traversal member.
    """
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    name = artifact.name.lower()

    if name.endswith((".tar.gz", ".tgz", ".tar", ".tar.bz2", ".tar.xz")):
        try:
            with tarfile.open(artifact, "r:*") as tf:
                for member in tf.getmembers():
                    unsafe = not _inside(root, member.name)
                    if member.issym() or member.islnk():
                        link = (
                            member.linkname if member.islnk()
                            else os.path.join(os.path.dirname(member.name), member.linkname)
                        )
                        unsafe = unsafe or not _inside(root, link)
                    if unsafe:
                        raise ExtractError(f"Refusing unsafe archive member: {member.name}")
                tf.extractall(dest, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise ExtractError(f"Extract failed: {e}") from e

    elif name.endswith(".zip"):
        try:
            with zipfile.ZipFile(artifact, "r") as zf:
                for info in zf.infolist():
                    if not _inside(root, info.filename):
                        raise ExtractError(f"Refusing unsafe archive member: {info.filename}")
                zf.extractall(dest)
        except (zipfile.BadZipFile, OSError) as e:
            raise ExtractError(f"Extract failed: {e}") from e

    else:
        # Raw binary
        shutil.copy2(artifact, dest / (binary_name or artifact.name))

    files = sorted(p for p in dest.rglob("*") if p.is_file())
    logger.debug("Extracted %d file(s) from %s", len(files), artifact.name)
    return files
