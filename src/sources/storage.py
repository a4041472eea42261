# src/sources/storage.py — v1
"""Abstract module source storage.

A source storage exposes the tagged releases of one module repository and
read access to the files of any release.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from infralib_agent.core.errors import SourceError, SourceFileNotFoundError
from infralib_agent.core.versions import Release
from infralib_agent.sources.checksums import MANIFEST_FILE, compute_checksums, parse_manifest


class BaseSourceStorage(ABC):
    """Unified interface for module source backends."""

    @abstractmethod
    async def list_releases(self) -> list[Release]:
        """All valid semver releases, ascending."""

    @abstractmethod
    async def get_file(self, path: str, release: str) -> bytes:
        """Read a file at a release.

        Raises:
            SourceFileNotFoundError: If the file does not exist.
        """

    @abstractmethod
    async def path_exists(self, path: str, release: str) -> bool:
        """Check whether a directory exists at a release."""

    @abstractmethod
    async def calculate_checksums(self, release: str) -> dict[str, str]:
        """Checksum manifest of a release."""


class DirectorySourceStorage(BaseSourceStorage):
    """Storage whose releases are materialized as plain directories.

    A ``checksums.txt`` manifest shipped at the release root is used as is;
    otherwise the manifest is computed from the tree.
    """

    @abstractmethod
    async def release_dir(self, release: str) -> Path:
        """Directory holding the files of a release.

        Raises:
            SourceError: If the release cannot be materialized.
        """

    async def get_file(self, path: str, release: str) -> bytes:
        file_path = await self.release_dir(release) / path
        if not file_path.is_file():
            raise SourceFileNotFoundError(path, release)
        return file_path.read_bytes()

    async def path_exists(self, path: str, release: str) -> bool:
        try:
            directory = await self.release_dir(release)
        except SourceError:
            return False
        return (directory / path).is_dir()

    async def calculate_checksums(self, release: str) -> dict[str, str]:
        directory = await self.release_dir(release)
        manifest = directory / MANIFEST_FILE
        if manifest.is_file():
            try:
                return parse_manifest(manifest.read_text(encoding="utf-8"))
            except ValueError as e:
                raise SourceError(f"release {release}: {e}") from e
        return compute_checksums(directory)
