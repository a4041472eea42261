# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides an in-memory module source, a recording pipeline executor, a
local bucket rooted in tmp_path and a small rollout config.
No network or git access — every source is a stub.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest

from infralib_agent.core.errors import SourceFileNotFoundError
from infralib_agent.core.models import (
    ChangeCounts,
    Config,
    ConfigSource,
    Module,
    Step,
)
from infralib_agent.core.versions import Release
from infralib_agent.pipeline.executor import BasePipelineExecutor, ExecutionHandle
from infralib_agent.sources.storage import BaseSourceStorage
from infralib_agent.storage.local_bucket import LocalBucket

SOURCE_URL = "https://example.com/infralib.git"


class StubSourceStorage(BaseSourceStorage):
    """Releases, module folders and files held in memory.

    Unless ``checksums`` is given, every release gets distinct checksums
    for each module folder and for ``providers/base.tf``.
    """

    def __init__(
        self,
        tags: list[str],
        modules: list[str],
        files: dict[tuple[str, str], bytes] | None = None,
        checksums: dict[str, str] | None = None,
    ) -> None:
        self.tags = tags
        self.modules = modules
        self.files = files or {}
        self.checksums = checksums
        self.checksum_calls: list[str] = []

    async def list_releases(self) -> list[Release]:
        return sorted(Release.parse(tag) for tag in self.tags)

    async def get_file(self, path: str, release: str) -> bytes:
        try:
            return self.files[(release, path)]
        except KeyError:
            raise SourceFileNotFoundError(path, release) from None

    async def path_exists(self, path: str, release: str) -> bool:
        return path in {f"modules/{module}" for module in self.modules}

    async def calculate_checksums(self, release: str) -> dict[str, str]:
        self.checksum_calls.append(release)
        if self.checksums is not None:
            return dict(self.checksums)
        checksums = {f"modules/{module}": f"{module}@{release}" for module in self.modules}
        checksums["providers/base.tf"] = f"base@{release}"
        return checksums


class RecordingExecutor(BasePipelineExecutor):
    """Records every execution; optional per-step hooks raise or block."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []
        self.hooks: dict[str, Callable[[], Awaitable[None]]] = {}

    async def create_or_update(self, step: Step) -> ExecutionHandle:
        return ExecutionHandle(pipeline_name=f"dev-{step.name}", step=step)

    async def wait_for_completion(self, handle: ExecutionHandle, auto_approve: bool) -> ChangeCounts:
        self.calls.append((handle.step.name, auto_approve))
        hook = self.hooks.get(handle.step.name)
        if hook is not None:
            await hook()
        return ChangeCounts(added=1)

    @property
    def executed(self) -> list[str]:
        return [name for name, _ in self.calls]


# === FIXTURES ===


@pytest.fixture
def bucket(tmp_path) -> LocalBucket:
    return LocalBucket(tmp_path / "bucket")


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def make_storage() -> Callable[..., StubSourceStorage]:
    """Factory for stub sources, defaulting to three releases of aws/vpc and aws/eks."""

    def _make(
        tags: list[str] | None = None,
        modules: list[str] | None = None,
        **kwargs,
    ) -> StubSourceStorage:
        return StubSourceStorage(
            tags if tags is not None else ["v1.0.0", "v1.1.0", "v2.0.0"],
            modules if modules is not None else ["aws/vpc", "aws/eks"],
            **kwargs,
        )

    return _make


@pytest.fixture
def make_config() -> Callable[..., Config]:
    """Factory for a one-source config; steps default to a single vpc step."""

    def _make(steps: list[Step] | None = None, **source_fields) -> Config:
        if steps is None:
            steps = [
                Step(
                    name="net",
                    type="terraform",
                    modules=[Module(name="vpc", source="aws/vpc", version="v1.0.0")],
                )
            ]
        return Config(
            prefix="dev",
            sources=[ConfigSource(url=SOURCE_URL, **source_fields)],
            steps=steps,
        )

    return _make


@pytest.fixture
def source_url() -> str:
    return SOURCE_URL
