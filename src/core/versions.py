# src/core/versions.py — v1
"""Semantic version helpers built on packaging.version.

Release tags are kept with their original spelling so they can be passed
back to the source storage unchanged; everything that ends up in state or
generated files goes through format_version() and carries a "v" prefix.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from packaging.version import InvalidVersion, Version

from infralib_agent.core.errors import VersionResolutionError

STABLE_VERSION = "stable"


def parse_version(value: str) -> Version:
    """Parse a tag such as "v1.2.3" or "1.2.3".

    Raises:
        VersionResolutionError: If the value is not a valid version.
    """
    try:
        return Version(value.strip())
    except InvalidVersion as e:
        raise VersionResolutionError(f"failed to parse version {value!r}") from e


def is_version(value: str) -> bool:
    """Check whether value parses as a version."""
    try:
        Version(value.strip())
    except InvalidVersion:
        return False
    return True


def format_version(value: str | Version | Release) -> str:
    """Render a version with a leading "v"."""
    if isinstance(value, Release):
        text = value.tag
    elif isinstance(value, Version):
        text = str(value)
    else:
        text = value
    return text if text.startswith("v") else f"v{text}"


@dataclass(frozen=True, order=True)
class Release:
    """A tagged release of a module source, ordered by semantic version."""

    version: Version
    tag: str = field(compare=False)

    @classmethod
    def parse(cls, tag: str) -> Release:
        return cls(version=parse_version(tag), tag=tag)

    @property
    def major(self) -> int:
        return self.version.major

    @property
    def minor(self) -> int:
        return self.version.minor

    def __str__(self) -> str:
        return format_version(self)


def older_version(current: str, candidate: str) -> str:
    """Fold candidate into the running oldest bound.

    "stable" compares newer than every concrete version and never replaces a
    concrete bound. Empty candidates are ignored.
    """
    if not candidate or candidate == STABLE_VERSION:
        return current
    if current == STABLE_VERSION:
        return candidate
    if parse_version(current) < parse_version(candidate):
        return current
    return candidate


def newer_version(current: str, candidate: str) -> str:
    """Fold candidate into the running newest bound (empty current means unset)."""
    if not current:
        return candidate
    if parse_version(current) > parse_version(candidate):
        return current
    return candidate
