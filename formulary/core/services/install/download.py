"""
Download and checksum verification.

Fetches a formula's artifact into the download cache (retrying
transient network errors) and checks its sha256 against the formula.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
import urllib.error
import urllib.request
from pathlib import Path

from formulary import __version__
from formulary.core.errors import IntegrityMismatch, NetworkFailure
from formulary.core.models.formula import Formula
from formulary.core.reliability.backoff import RetriesExhausted, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

USER_AGENT = f"formulary/{__version__}"
_CHUNK = 8192


def sha256_of(path: Path) -> str:
    """Hex sha256 digest of a file, read in chunks."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str) -> str:
    """Check that ``path`` hashes to ``expected``.

    Returns:
        The computed digest.

    Raises:
        IntegrityMismatch: If the digests differ.
    """
    actual = sha256_of(path)
    if actual != expected.lower():
        raise IntegrityMismatch(expected=expected, actual=actual, path=path.name)
    logger.debug("Checksum OK for %s", path.name)
    return actual


def cache_path(cache_dir: Path, formula: Formula) -> Path:
    """Cache location of a formula's artifact, e.g. ``ecsfgrun--0.4.0--ecsfgrun_Darwin_x86_64.tar.gz``."""
    artifact = formula.artifact_name or "artifact"
    return cache_dir / f"{formula.name}--{formula.version}--{artifact}"


def _download_once(url: str, dest: Path, timeout: float) -> int:
    """Stream ``url`` into ``dest`` (atomic rename). Returns bytes written."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=".download_", suffix=".part")
    tmp = Path(tmp_name)
    written = 0
    try:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with open(fd, "wb") as f, urllib.request.urlopen(req, timeout=timeout) as resp:
            while True:
                chunk = resp.read(_CHUNK)
                if not chunk:
                    break
                f.write(chunk)
                written += len(chunk)
        tmp.replace(dest)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return written


def fetch(
    url: str,
    dest: Path,
    *,
    timeout: float = 60,
    policy: RetryPolicy | None = None,
) -> Path:
    """Download ``url`` to ``dest``.

    Transient failures (connection errors, timeouts, HTTP 5xx) are retried
    according to ``policy``. Client errors (HTTP 4xx) fail at once.

    Raises:
        NetworkFailure: When the artifact cannot be fetched.
    """
    policy = policy or RetryPolicy()
    attempts = 0

    def _attempt() -> int:
        nonlocal attempts
        attempts += 1
        try:
            return _download_once(url, dest, timeout)
        except urllib.error.HTTPError as e:
            if e.code < 500:
                raise NetworkFailure(url, attempts, f"HTTP {e.code} {e.reason}") from e
            raise

    try:
        size = call_with_retry(
            _attempt,
            policy=policy,
            retry_on=(urllib.error.URLError, TimeoutError, ConnectionError),
            label=f"Download {url}",
        )
    except RetriesExhausted as e:
        raise NetworkFailure(url, e.attempts, str(e.last_error)) from e
    except OSError as e:
        # file:// URLs pointing nowhere and similar local faults
        raise NetworkFailure(url, attempts, str(e)) from e

    logger.info("Downloaded %s (%d bytes)", url, size)
    return dest


def fetch_artifact(
    formula: Formula,
    cache_dir: Path,
    *,
    timeout: float = 60,
    policy: RetryPolicy | None = None,
) -> Path:
    """Fetch a formula's artifact into the cache, reusing a verified copy.

    The returned file has NOT been verified unless it came from the
    cache; callers verify with :func:`verify_checksum`.
    """
    dest = cache_path(cache_dir, formula)
    if dest.is_file():
        if sha256_of(dest) == formula.sha256.lower():
            logger.info("Using cached %s", dest.name)
            return dest
        logger.info("Discarding stale cached %s", dest.name)
        dest.unlink()
    return fetch(formula.url, dest, timeout=timeout, policy=policy)
