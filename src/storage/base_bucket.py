# src/storage/base_bucket.py — v1
"""Abstract artifact bucket interface.

The bucket holds state.yaml, generated step folders and the terraform
output caches published by finished pipelines.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseBucket(ABC):
    """Unified interface for artifact storage backends."""

    @abstractmethod
    async def get_file(self, path: str) -> bytes | None:
        """Read a file; None when it does not exist."""

    @abstractmethod
    async def put_file(self, path: str, content: bytes | str) -> None:
        """Create or overwrite a file."""

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Remove a file; missing files are ignored."""

    @abstractmethod
    async def list_folder_files(
        self, folder: str, exclude_folders: frozenset[str] = frozenset()
    ) -> list[str]:
        """List file paths under folder recursively, skipping excluded subfolders."""
