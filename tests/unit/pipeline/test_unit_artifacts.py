# tests/unit/pipeline/test_unit_artifacts.py — v1
"""Tests for pipeline/artifacts.py — step folders written to the bucket."""

from __future__ import annotations

import pytest
import yaml

from infralib_agent.core.errors import AgentError
from infralib_agent.core.models import IncludedFile, Module, ModuleVersion, Step
from infralib_agent.pipeline.artifacts import BucketArtifactWriter, step_folder

URL = "https://example.com/infralib.git"


def _net(**fields) -> Step:
    return Step(
        name="net",
        type="terraform",
        modules=[
            Module(name="vpc", source="aws/vpc", inputs={"cidr": "10.0.0.0/16"}),
            Module(name="app", source="git::https://git.example.com/app.git", version="v3"),
        ],
        **fields,
    )


def _versions(changed: bool = True) -> dict[str, ModuleVersion]:
    return {
        "vpc": ModuleVersion("v1.1.0", changed, URL),
        "app": ModuleVersion("v3", False, "git::https://git.example.com/app.git"),
    }


async def _load(bucket, path: str):
    return yaml.safe_load(await bucket.get_file(path))


class TestStepFolder:
    def test_layout(self):
        assert step_folder("dev", "net") == "steps/dev-net"


class TestTerraformStep:
    @pytest.mark.asyncio
    async def test_modules_document(self, bucket):
        artifacts = await BucketArtifactWriter(bucket, "dev").write_step(_net(), _versions())

        assert artifacts.execute is True
        modules = (await _load(bucket, "steps/dev-net/modules.yaml"))["modules"]
        assert modules["vpc"] == {
            "source": f"{URL}//modules/aws/vpc?ref=v1.1.0",
            "version": "v1.1.0",
            "inputs": {"cidr": "10.0.0.0/16"},
        }
        assert modules["app"]["source"] == "git::https://git.example.com/app.git"
        assert artifacts.providers == {URL: {"base"}}

    @pytest.mark.asyncio
    async def test_provider_names(self, bucket):
        step = _net()
        step.provider.aws = {"region": "eu-north-1"}
        step.provider.kubernetes = {"host": "k8s"}
        artifacts = await BucketArtifactWriter(bucket, "dev").write_step(step, _versions())

        assert artifacts.providers == {URL: {"base", "aws", "kubernetes"}}
        provider = await _load(bucket, "steps/dev-net/provider.yaml")
        assert provider["aws"] == {"region": "eu-north-1"}

    @pytest.mark.asyncio
    async def test_unchanged_keeps_existing_document(self, bucket):
        writer = BucketArtifactWriter(bucket, "dev")
        await writer.write_step(_net(), _versions())
        await bucket.put_file("steps/dev-net/modules.yaml", "modules: {}\n")

        artifacts = await writer.write_step(_net(), _versions(changed=False))
        assert artifacts.execute is False
        assert await _load(bucket, "steps/dev-net/modules.yaml") == {"modules": {}}

    @pytest.mark.asyncio
    async def test_included_files_force_execution(self, bucket):
        step = _net(files=[IncludedFile(name="dns.tf", content=b"locals {}\n")])
        artifacts = await BucketArtifactWriter(bucket, "dev").write_step(
            step, _versions(changed=False)
        )
        assert artifacts.execute is True
        assert await bucket.get_file("steps/dev-net/dns.tf") == b"locals {}\n"

    @pytest.mark.asyncio
    async def test_stale_files_removed(self, bucket):
        await bucket.put_file("steps/dev-net/old.tf", "")
        await bucket.put_file("steps/dev-net/backend.conf", "bucket = x\n")
        await bucket.put_file("steps/dev-net/.terraform/lock", "")

        await BucketArtifactWriter(bucket, "dev").write_step(_net(), _versions())

        assert await bucket.get_file("steps/dev-net/old.tf") is None
        assert await bucket.get_file("steps/dev-net/backend.conf") is not None
        assert await bucket.get_file("steps/dev-net/.terraform/lock") is not None

    @pytest.mark.asyncio
    async def test_no_versions(self, bucket):
        with pytest.raises(AgentError, match="no module versions"):
            await BucketArtifactWriter(bucket, "dev").write_step(_net(), {})


class TestArgocdStep:
    @pytest.mark.asyncio
    async def test_application_per_module(self, bucket):
        step = Step(
            name="apps",
            type="argocd-apps",
            modules=[Module(name="argocd", source="argocd", inputs={"replicas": 2})],
        )
        versions = {"argocd": ModuleVersion("v1.1.0", True, URL)}
        artifacts = await BucketArtifactWriter(bucket, "dev").write_step(step, versions)

        assert artifacts.execute is True
        assert artifacts.files == ["steps/dev-apps/argocd.yaml"]
        application = await _load(bucket, "steps/dev-apps/argocd.yaml")
        assert application["source"] == f"{URL}//modules/k8s/argocd?ref=v1.1.0"
        assert application["values"] == {"replicas": 2}

    @pytest.mark.asyncio
    async def test_missing_version(self, bucket):
        step = Step(name="apps", type="argocd-apps", modules=[Module(name="argocd", source="argocd")])
        with pytest.raises(AgentError, match="version not found"):
            await BucketArtifactWriter(bucket, "dev").write_step(step, {})


class TestUnsupportedStep:
    @pytest.mark.asyncio
    async def test_raises(self, bucket):
        step = Step(name="custom", type="terraform-custom")
        with pytest.raises(AgentError, match="not supported"):
            await BucketArtifactWriter(bucket, "dev").write_step(step, {})
