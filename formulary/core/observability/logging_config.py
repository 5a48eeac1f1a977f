"""
Logging configuration for the formulary CLI.

Called once by main.py. Modules log through ``logging.getLogger(__name__)``;
handlers are attached to the ``formulary`` logger so an embedding
application keeps control of the root logger.

Console level precedence:
    --debug / --verbose / --quiet  >  FORMULARY_LOG_LEVEL  >  WARNING

FORMULARY_LOG_FILE adds a file handler, at FORMULARY_LOG_FILE_LEVEL
(default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

LOGGER_NAME = "formulary"

ENV_LOG_LEVEL = "FORMULARY_LOG_LEVEL"
ENV_LOG_FILE = "FORMULARY_LOG_FILE"
ENV_LOG_FILE_LEVEL = "FORMULARY_LOG_FILE_LEVEL"

# Console formats, by level
_FORMATS = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_PLAIN = "%(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if env is None else env
    return env.get(ENV_LOG_LEVEL) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> logging.Logger:
    """Attach console (and optionally file) handlers to the formulary logger.

    Safe to call more than once; previous handlers are replaced.

    Returns:
        The configured ``formulary`` logger.
    """
    numeric_level = _parse_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fmt, datefmt = _FORMATS.get(_format_bucket(numeric_level), (_FMT_PLAIN, None))
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    logger.addHandler(console)

    effective = numeric_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective = min(effective, file_level)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        logger.addHandler(fh)

    logger.setLevel(effective)
    logger.propagate = False

    # A console stream swapped out by a test runner must not raise on emit
    logging.raiseExceptions = False
    return logger


def setup_from_env(level: str, env: Mapping[str, str] | None = None) -> logging.Logger:
    """``setup_logging`` with the log file taken from the environment."""
    env = os.environ if env is None else env
    return setup_logging(
        level=level,
        log_file=env.get(ENV_LOG_FILE) or None,
        log_file_level=env.get(ENV_LOG_FILE_LEVEL) or None,
    )


def _format_bucket(numeric_level: int) -> int:
    if numeric_level <= logging.DEBUG:
        return logging.DEBUG
    if numeric_level <= logging.INFO:
        return logging.INFO
    return numeric_level


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
