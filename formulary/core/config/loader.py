"""
Configuration loader — reads formulary.yml into a Settings model.

It reads YAML, validates against the Pydantic schema, applies
environment overrides and returns typed settings. A missing config
file is not an error: defaults apply.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "formulary.yml"

# Environment overrides
ENV_PREFIX = "FORMULARY_PREFIX"
ENV_CACHE = "FORMULARY_CACHE"
ENV_TAP = "FORMULARY_TAP"


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


class Settings(BaseModel):
    """Where the tap lives, where kegs go, and how hard to try downloading."""

    tap: Path = Field(default_factory=Path.cwd)
    prefix: Path = Field(default_factory=lambda: Path.home() / ".formulary")
    cache_dir: Path | None = None

    retries: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    timeout: float = Field(default=60.0, gt=0)
    test_timeout: int = Field(default=60, gt=0)

    @property
    def cellar(self) -> Path:
        return self.prefix / "Cellar"

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def cache(self) -> Path:
        return self.cache_dir or (self.prefix / "cache")


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for formulary.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to formulary.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def load_settings(path: Path | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Load settings.

    Args:
        path: Explicit path to formulary.yml. If None, searches upward;
            when nothing is found, defaults apply (tap = cwd).
        env: Environment mapping (default: ``os.environ``).

    Returns:
        Validated Settings. Relative paths in the file are resolved
        against the file's directory.

    Raises:
        ConfigError: If the file is missing (when given), unreadable or invalid.
    """
    env = os.environ if env is None else env
    if path is None:
        path = find_config_file()

    data: dict = {}
    base = Path.cwd()
    if path is not None:
        data = _read_yaml(path)
        base = path.parent.resolve()

    overrides = {
        "prefix": env.get(ENV_PREFIX),
        "cache_dir": env.get(ENV_CACHE),
        "tap": env.get(ENV_TAP),
    }
    for key, value in overrides.items():
        if value:
            data[key] = value

    for key in ("tap", "prefix", "cache_dir"):
        if data.get(key):
            p = Path(str(data[key])).expanduser()
            data[key] = p if p.is_absolute() else base / p

    if "tap" not in data:
        data["tap"] = base

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Using tap %s, prefix %s", settings.tap, settings.prefix)
    return settings
