# tests/unit/versioning/test_unit_walk.py — v1
"""Tests for versioning/walk.py — version bounds and release walks."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from infralib_agent.core.errors import VersionResolutionError
from infralib_agent.core.models import Module, State, StateModule, StateStep, Step
from infralib_agent.core.versions import Release
from infralib_agent.sources.models import Source
from infralib_agent.versioning.walk import (
    find_release,
    newest_version,
    oldest_version,
    source_releases,
)

URL = "https://example.com/infralib.git"
AVAILABLE = [Release.parse(t) for t in ("v1.0.0", "v1.1.0", "v1.2.0", "v2.0.0")]


def _source(configured: str = "stable", ceiling: str = "v2.0.0") -> Source:
    return Source(
        url=URL,
        storage=MagicMock(),
        configured_version=configured,
        ceiling=Release.parse(ceiling),
        modules={"aws/vpc", "aws/eks"},
    )


def _steps(*versions: str) -> list[Step]:
    modules = [
        Module(name=f"m{i}", source="aws/vpc" if i % 2 == 0 else "aws/eks", version=v)
        for i, v in enumerate(versions)
    ]
    return [Step(name="net", type="terraform", modules=modules)]


def _state(applied: str, source: str = URL) -> State:
    return State(
        steps=[
            StateStep(
                name="net",
                modules=[StateModule(name="m0", version=applied, applied_version=applied, source=source)],
            )
        ]
    )


class TestOldestVersion:
    def test_declared_versions(self):
        assert oldest_version(_steps("v1.2.0", "v1.1.0"), _source(), None) == "v1.1.0"

    def test_state_lowers_bound(self):
        assert oldest_version(_steps("v1.2.0"), _source(), _state("v1.0.0")) == "v1.0.0"

    def test_state_of_other_source_ignored(self):
        state = _state("v1.0.0", source="https://other.example.com/repo.git")
        assert oldest_version(_steps("v1.2.0"), _source(), state) == "v1.2.0"

    def test_unversioned_modules_are_stable(self):
        assert oldest_version(_steps(""), _source(), None) == "stable"

    def test_client_modules_ignored(self):
        steps = [
            Step(
                name="net",
                modules=[Module(name="c", source="git::https://x.example.com/m.git", version="v0.1.0")],
            )
        ]
        assert oldest_version(steps, _source(), None) == "stable"


class TestNewestVersion:
    def test_highest_declared(self):
        assert newest_version(_steps("v1.0.0", "v1.2.0"), _source()) == "v1.2.0"

    def test_stable_is_unbounded(self):
        assert newest_version(_steps("v1.0.0", "stable"), _source()) == "stable"

    def test_unversioned_counts_as_ceiling(self):
        assert newest_version(_steps("v1.0.0", ""), _source()) == "v2.0.0"


class TestFindRelease:
    def test_found_keeps_tag(self):
        assert find_release(AVAILABLE, "1.1.0").tag == "v1.1.0"

    def test_missing(self):
        with pytest.raises(VersionResolutionError, match="not found"):
            find_release(AVAILABLE, "v9.9.9")

    def test_malformed(self):
        with pytest.raises(VersionResolutionError):
            find_release(AVAILABLE, "latest")


class TestSourceReleases:
    def test_walk_between_bounds(self):
        walk = source_releases(_steps("v1.0.0", "v1.2.0"), _source(), None, AVAILABLE)
        assert [r.tag for r in walk] == ["v1.0.0", "v1.1.0", "v1.2.0"]

    def test_stable_oldest_is_ceiling_only(self):
        walk = source_releases(_steps(""), _source(), None, AVAILABLE)
        assert [r.tag for r in walk] == ["v2.0.0"]

    def test_walk_from_state_to_ceiling(self):
        walk = source_releases(_steps(""), _source(), _state("v1.1.0"), AVAILABLE)
        assert [r.tag for r in walk] == ["v1.1.0", "v1.2.0", "v2.0.0"]

    def test_configured_ceiling_clamps_stable(self):
        source = _source(configured="v1.1.0", ceiling="v1.1.0")
        walk = source_releases(_steps("stable"), source, _state("v1.0.0"), AVAILABLE)
        assert [r.tag for r in walk] == ["v1.0.0", "v1.1.0"]

    def test_walk_is_ascending(self):
        walk = source_releases(_steps(""), _source(), _state("v1.0.0"), AVAILABLE)
        assert walk == sorted(walk)
        assert walk[0].tag == "v1.0.0"
        assert walk[-1].tag == "v2.0.0"

    def test_no_ceiling(self):
        source = _source()
        source.ceiling = None
        with pytest.raises(VersionResolutionError, match="no releases"):
            source_releases(_steps("v1.0.0"), source, None, AVAILABLE)
