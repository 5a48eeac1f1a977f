"""
Formula model — the declarative package descriptor.

A formula names one upstream release artifact, the digest it must
hash to, the files to place after extraction and the commands that
smoke-test the result. It is read-only once loaded: a new release
produces a new formula that supersedes this one.
"""

from __future__ import annotations

import re
from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class DestinationCategory(StrEnum):
    """Where an install step places its file, relative to the keg."""

    BIN = "bin"


class InstallStep(BaseModel):
    """Copy one file from the extracted artifact into a keg directory."""

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str = DestinationCategory.BIN.value


class Formula(BaseModel):
    """A package manifest as found in ``Formula/<name>.rb``.

    Construction is permissive on purpose: a broken formula still loads
    so that the validator can say exactly what is wrong with it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    desc: str = ""
    homepage: str = ""
    url: str
    version: str
    sha256: str
    install: list[InstallStep] = Field(default_factory=list)
    test: list[str] = Field(default_factory=list)

    @property
    def class_name(self) -> str:
        """Ruby class name of the active formula (``foo-bar`` → ``FooBar``)."""
        return class_name_for(self.name)

    @property
    def versioned_name(self) -> str:
        """Name of the archived revision, e.g. ``ecsfgrun@0.1.0``."""
        return f"{self.name}@{self.version}"

    @property
    def versioned_class_name(self) -> str:
        """Ruby class name of the archived revision (``EcsfgrunAT010``)."""
        return class_name_for(self.versioned_name)

    @property
    def artifact_name(self) -> str:
        """Last path segment of the download URL."""
        path = urlparse(self.url).path
        return path.rsplit("/", 1)[-1] if path else ""

    @property
    def binaries(self) -> list[str]:
        """File names the install steps place into ``bin``."""
        return [
            step.source.rsplit("/", 1)[-1]
            for step in self.install
            if step.destination == DestinationCategory.BIN.value
        ]


def class_name_for(name: str) -> str:
    """Derive the Ruby class name Homebrew expects for a formula name."""
    base, _, version = name.partition("@")
    camel = "".join(
        part[:1].upper() + part[1:] for part in re.split(r"[-_]", base) if part
    )
    if version:
        camel += "AT" + re.sub(r"\D", "", version)
    return camel


def name_for_class(class_name: str) -> str:
    """Inverse of :func:`class_name_for` for the unversioned part.

    ``FooBar`` → ``foo-bar``; a trailing ``AT010`` is dropped.
    """
    base = re.sub(r"AT\d+$", "", class_name)
    return re.sub(r"(?<!^)(?=[A-Z])", "-", base).lower()
