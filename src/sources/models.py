# src/sources/models.py — v1
"""Runtime view of a configured module source."""

from __future__ import annotations

from dataclasses import dataclass, field

from infralib_agent.core.versions import STABLE_VERSION, Release
from infralib_agent.sources.storage import BaseSourceStorage


@dataclass
class Source:
    """A module source with its release walk and checksum manifests.

    ``releases`` is the walk for this source: every release between the
    oldest and newest version bounds. ``ceiling`` is the configured version
    (or the newest tag when configured as stable).
    """

    url: str
    storage: BaseSourceStorage
    configured_version: str = STABLE_VERSION
    stable_version: Release | None = None
    ceiling: Release | None = None
    forced_version: str = ""
    includes: frozenset[str] = frozenset()
    excludes: frozenset[str] = frozenset()
    modules: set[str] = field(default_factory=set)
    releases: list[Release] = field(default_factory=list)
    current_checksums: dict[str, str] | None = None
    previous_checksums: dict[str, str] | None = None

    @property
    def newest_version(self) -> Release | None:
        """Last release of the walk."""
        return self.releases[-1] if self.releases else None

    def release_at(self, index: int) -> Release:
        """Release due at index, clamped to the last release of the walk."""
        return self.releases[min(index, len(self.releases) - 1)]

    def release_label(self, index: int) -> str:
        """Tag used for this source at index (forced version wins)."""
        if self.forced_version:
            return self.forced_version
        return self.release_at(index).tag

    def swap_checksums(self) -> None:
        self.previous_checksums = self.current_checksums
