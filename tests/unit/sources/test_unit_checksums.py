# tests/unit/sources/test_unit_checksums.py — v1
"""Tests for sources/checksums.py — release checksum manifests."""

from __future__ import annotations

import hashlib

import pytest

from infralib_agent.sources.checksums import (
    compute_checksums,
    directory_digest,
    format_manifest,
    parse_manifest,
)


def _release(root):
    vpc = root / "modules" / "aws" / "vpc"
    vpc.mkdir(parents=True)
    (vpc / "main.tf").write_text("resource {}\n")
    (vpc / "variables.tf").write_text("variable {}\n")
    (vpc / "test_main.go").write_text("package test\n")
    (vpc / "nested").mkdir()
    (vpc / "nested" / "ignored.tf").write_text("x")
    providers = root / "providers"
    providers.mkdir()
    (providers / "base.tf").write_text("terraform {}\n")
    (providers / "go.mod").write_text("module x\n")
    (providers / "README.md").write_text("# providers\n")
    return root


class TestComputeChecksums:
    def test_keys(self, tmp_path):
        checksums = compute_checksums(_release(tmp_path))
        assert sorted(checksums) == ["modules/aws/vpc", "providers/base.tf"]

    def test_provider_digest(self, tmp_path):
        checksums = compute_checksums(_release(tmp_path))
        assert checksums["providers/base.tf"] == hashlib.sha256(b"terraform {}\n").hexdigest()

    def test_test_files_do_not_count(self, tmp_path):
        root = _release(tmp_path)
        before = compute_checksums(root)["modules/aws/vpc"]
        (root / "modules" / "aws" / "vpc" / "test_main.go").write_text("changed\n")
        (root / "modules" / "aws" / "vpc" / "nested" / "ignored.tf").write_text("changed")
        assert compute_checksums(root)["modules/aws/vpc"] == before

    def test_module_file_change_moves_digest(self, tmp_path):
        root = _release(tmp_path)
        before = compute_checksums(root)["modules/aws/vpc"]
        (root / "modules" / "aws" / "vpc" / "main.tf").write_text("resource { x = 1 }\n")
        assert compute_checksums(root)["modules/aws/vpc"] != before

    def test_directory_digest_is_order_stable(self, tmp_path):
        (tmp_path / "b.tf").write_text("b")
        (tmp_path / "a.tf").write_text("a")
        expected = hashlib.sha256(
            hashlib.sha256(b"a").digest() + hashlib.sha256(b"b").digest()
        ).digest()
        assert directory_digest(tmp_path) == expected

    def test_empty_release(self, tmp_path):
        assert compute_checksums(tmp_path) == {}


class TestManifest:
    def test_format_is_sorted(self):
        text = format_manifest({"providers/base.tf": "bb", "modules/aws/vpc": "aa"})
        assert text == "modules/aws/vpc: aa\nproviders/base.tf: bb\n"

    def test_parse(self):
        text = "modules/aws/vpc: aa\n\nproviders/base.tf: bb\n"
        assert parse_manifest(text) == {"modules/aws/vpc": "aa", "providers/base.tf": "bb"}

    def test_parse_invalid_line(self):
        with pytest.raises(ValueError, match="line 2"):
            parse_manifest("modules/aws/vpc: aa\nbroken\n")
