# src/sources/local_storage.py — v1
"""Module source backed by a local directory with one subdirectory per release."""

from __future__ import annotations

import logging
from pathlib import Path

from infralib_agent.core.errors import SourceError
from infralib_agent.core.versions import Release, is_version
from infralib_agent.sources.storage import DirectorySourceStorage

logger = logging.getLogger(__name__)


class LocalSourceStorage(DirectorySourceStorage):
    """Releases are subdirectories named after their tag, e.g. ``v1.2.0/``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    async def list_releases(self) -> list[Release]:
        if not self._root.is_dir():
            raise SourceError(f"source directory {self._root} does not exist")
        releases: list[Release] = []
        invalid: list[str] = []
        for entry in self._root.iterdir():
            if not entry.is_dir():
                continue
            if is_version(entry.name):
                releases.append(Release.parse(entry.name))
            else:
                invalid.append(entry.name)
        if invalid:
            logger.debug("Directories are not valid versions: %s", ", ".join(sorted(invalid)))
        return sorted(releases)

    async def release_dir(self, release: str) -> Path:
        for name in (release, release.removeprefix("v"), f"v{release}"):
            candidate = self._root / name
            if candidate.is_dir():
                return candidate
        raise SourceError(f"release {release} not found in {self._root}")
