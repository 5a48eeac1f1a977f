"""
Semantic versions — parsing, ordering and revision monotonicity (pure).

No I/O. Versions follow ``MAJOR.MINOR.PATCH[-pre][+build]`` with no
leading ``v``: that belongs to release tags, not to the version itself.
"""

from __future__ import annotations

import re
from functools import total_ordering

_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def is_semver(value: str) -> bool:
    """Whether ``value`` is a well-formed semantic version."""
    return bool(_SEMVER_RE.match(value or ""))


@total_ordering
class SemVer:
    """Comparable semantic version. Build metadata is ignored for ordering."""

    __slots__ = ("major", "minor", "patch", "pre", "build")

    def __init__(self, major: int, minor: int, patch: int, pre: str = "", build: str = ""):
        self.major = major
        self.minor = minor
        self.patch = patch
        self.pre = pre
        self.build = build

    def _key(self) -> tuple:
        # A release sorts after any of its pre-releases.
        if not self.pre:
            pre_key: tuple = ((1,),)
        else:
            pre_key = tuple(
                (0, int(p), "") if p.isdigit() else (0, float("inf"), p)
                for p in self.pre.split(".")
            )
            pre_key = ((0,),) + pre_key
        return (self.major, self.minor, self.patch, pre_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: SemVer) -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        s = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            s += f"-{self.pre}"
        if self.build:
            s += f"+{self.build}"
        return s

    def __repr__(self) -> str:
        return f"SemVer({str(self)!r})"


def parse_version(value: str) -> SemVer:
    """Parse a version string.

    Raises:
        ValueError: If ``value`` is not a semantic version.
    """
    m = _SEMVER_RE.match(value or "")
    if not m:
        raise ValueError(f"Not a semantic version: {value!r}")
    return SemVer(
        int(m.group("major")),
        int(m.group("minor")),
        int(m.group("patch")),
        m.group("pre") or "",
        m.group("build") or "",
    )


def check_monotonic(versions: list[str]) -> list[str]:
    """Check that a revision sequence strictly increases.

    Args:
        versions: Versions in revision order (oldest revision first).

    Returns:
        List of problem messages (empty = strictly increasing).
    """
    problems: list[str] = []
    for prev, cur in zip(versions, versions[1:]):
        try:
            if parse_version(cur) <= parse_version(prev):
                problems.append(f"Version {cur} does not increase on {prev}")
        except ValueError as exc:
            problems.append(str(exc))
    return problems
