# src/sources/checksums.py — v1
"""Release checksum manifests for module and provider trees.

Manifest keys:
    modules/<group>/<module>   sha256 over the sorted per-file digests of the
                               module directory (files starting with "test"
                               skipped, subdirectories not included)
    providers/<name>.tf        sha256 of the provider file

Manifest text format is one ``<path>: <hex-digest>`` line per key.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

MANIFEST_FILE = "checksums.txt"
_SKIPPED_PROVIDER_PREFIXES = ("go.", "README.", "test")


def file_digest(path: Path) -> bytes:
    """SHA-256 of a file's bytes."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            h.update(block)
    return h.digest()


def directory_digest(directory: Path) -> bytes:
    """SHA-256 over the digests of the direct files of a directory, sorted by name."""
    h = hashlib.sha256()
    for path in sorted(directory.iterdir(), key=lambda p: p.name):
        if not path.is_file() or path.name.startswith("test"):
            continue
        h.update(file_digest(path))
    return h.digest()


def compute_checksums(root: Path) -> dict[str, str]:
    """Compute the checksum manifest of a checked-out release."""
    checksums: dict[str, str] = {}
    modules = root / "modules"
    if modules.is_dir():
        for group in sorted(p for p in modules.iterdir() if p.is_dir()):
            for module in sorted(p for p in group.iterdir() if p.is_dir()):
                key = f"modules/{group.name}/{module.name}"
                checksums[key] = directory_digest(module).hex()
    providers = root / "providers"
    if providers.is_dir():
        for path in sorted(p for p in providers.iterdir() if p.is_file()):
            if path.name.startswith(_SKIPPED_PROVIDER_PREFIXES):
                continue
            checksums[f"providers/{path.name}"] = file_digest(path).hex()
    return checksums


def format_manifest(checksums: dict[str, str]) -> str:
    """Render a manifest, one sorted ``<path>: <hex>`` line per entry."""
    return "".join(f"{path}: {digest}\n" for path, digest in sorted(checksums.items()))


def parse_manifest(text: str) -> dict[str, str]:
    """Parse manifest text; blank lines are skipped.

    Raises:
        ValueError: On a line without the ``: `` separator.
    """
    checksums: dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        path, sep, digest = line.rpartition(": ")
        if not sep or not path or not digest:
            raise ValueError(f"invalid checksum manifest line {number}: {line!r}")
        checksums[path] = digest
    return checksums
