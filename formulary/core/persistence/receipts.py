"""
Install receipt persistence — atomic read/write of INSTALL_RECEIPT.json.

Every keg (``<prefix>/Cellar/<name>/<version>``) carries one receipt.
Writes are atomic (write to temp file, then rename) so a crash never
leaves a half-written receipt behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from formulary.core.models.receipt import InstallReceipt

logger = logging.getLogger(__name__)

RECEIPT_FILE = "INSTALL_RECEIPT.json"


def receipt_path(keg: Path) -> Path:
    return keg / RECEIPT_FILE


def load_receipt(keg: Path) -> InstallReceipt | None:
    """Load a keg's receipt.

    Returns:
        The receipt, or None if the keg has none or it is unreadable.
    """
    path = receipt_path(keg)
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstallReceipt.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Cannot load receipt %s: %s", path, e)
        return None


def save_receipt(receipt: InstallReceipt, keg: Path) -> Path:
    """Write a keg's receipt (atomic write)."""
    path = receipt_path(keg)
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(receipt.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".receipt_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Receipt saved to %s", path)
    return path
