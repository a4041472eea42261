# tests/unit/storage/test_unit_local_bucket.py — v1
"""Tests for storage/local_bucket.py."""

from __future__ import annotations

import pytest

from infralib_agent.storage.local_bucket import LocalBucket


class TestLocalBucket:
    def test_creates_root(self, tmp_path):
        bucket = LocalBucket(tmp_path / "a" / "b")
        assert bucket.root.is_dir()

    @pytest.mark.asyncio
    async def test_put_and_get(self, bucket):
        await bucket.put_file("steps/dev-net/modules.yaml", "modules: {}\n")
        await bucket.put_file("/steps/dev-net/dns.tf", b"locals {}\n")
        assert await bucket.get_file("steps/dev-net/modules.yaml") == b"modules: {}\n"
        assert await bucket.get_file("steps/dev-net/dns.tf") == b"locals {}\n"

    @pytest.mark.asyncio
    async def test_missing_file(self, bucket):
        assert await bucket.get_file("state.yaml") is None

    @pytest.mark.asyncio
    async def test_delete(self, bucket):
        await bucket.put_file("x.txt", "x")
        await bucket.delete_file("x.txt")
        await bucket.delete_file("never-existed.txt")
        assert await bucket.get_file("x.txt") is None

    @pytest.mark.asyncio
    async def test_list_folder_files(self, bucket):
        for path in (
            "steps/dev-net/modules.yaml",
            "steps/dev-net/include/dns.tf",
            "steps/dev-net/.terraform/plugins",
            "steps/dev-apps/argocd.yaml",
        ):
            await bucket.put_file(path, "")
        files = await bucket.list_folder_files("steps/dev-net", frozenset({".terraform"}))
        assert files == ["steps/dev-net/include/dns.tf", "steps/dev-net/modules.yaml"]

    @pytest.mark.asyncio
    async def test_list_missing_folder(self, bucket):
        assert await bucket.list_folder_files("steps/none") == []
