# src/storage/local_bucket.py — v1
"""Local filesystem bucket (default backend)."""

from __future__ import annotations

from pathlib import Path

from infralib_agent.storage.base_bucket import BaseBucket


class LocalBucket(BaseBucket):
    """Store bucket objects as files under a root directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        """Resolve a bucket key relative to the root."""
        return self._root / path.lstrip("/")

    async def get_file(self, path: str) -> bytes | None:
        p = self._resolve(path)
        if not p.is_file():
            return None
        return p.read_bytes()

    async def put_file(self, path: str, content: bytes | str) -> None:
        p = self._resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content, encoding="utf-8")

    async def delete_file(self, path: str) -> None:
        p = self._resolve(path)
        if p.is_file():
            p.unlink()

    async def list_folder_files(
        self, folder: str, exclude_folders: frozenset[str] = frozenset()
    ) -> list[str]:
        base = self._resolve(folder)
        if not base.is_dir():
            return []
        files: list[str] = []
        for p in sorted(base.rglob("*")):
            if not p.is_file():
                continue
            relative = p.relative_to(base)
            if relative.parts[0] in exclude_folders:
                continue
            files.append(p.relative_to(self._root).as_posix())
        return files
