# src/versioning/walk.py — v1
"""Version bounds and the release walk of a source.

The oldest bound is the oldest version any tracked module (declared or
recorded in state) requires; the newest bound is the newest version any
module demands. The walk is every release of the source between the two.
"""

from __future__ import annotations

import logging

from infralib_agent.core.errors import VersionResolutionError
from infralib_agent.core.models import State, Step
from infralib_agent.core.versions import (
    STABLE_VERSION,
    Release,
    newer_version,
    older_version,
    parse_version,
)
from infralib_agent.sources.models import Source

logger = logging.getLogger(__name__)


def oldest_version(steps: list[Step], source: Source, state: State | None) -> str:
    """Oldest version required by the source's modules, or "stable"."""
    oldest = source.configured_version or STABLE_VERSION
    for step in steps:
        step_state = state.get_step(step.name) if state is not None else None
        for module in step.modules:
            if module.is_client or module.source not in source.modules:
                continue
            oldest = older_version(oldest, module.version)
            if step_state is None:
                continue
            module_state = step_state.get_module(module.name)
            if module_state is None or module_state.source != source.url:
                continue
            oldest = older_version(
                oldest, module_state.applied_version or module_state.version
            )
    return oldest


def newest_version(steps: list[Step], source: Source) -> str:
    """Newest version demanded by the source's modules.

    Any module tracking "stable" makes the bound "stable" (unbounded).
    Modules without a version count as the source ceiling.
    """
    newest = ""
    default = source.ceiling.tag if source.ceiling is not None else STABLE_VERSION
    for step in steps:
        for module in step.modules:
            if module.is_client or module.source not in source.modules:
                continue
            if module.version == STABLE_VERSION:
                return STABLE_VERSION
            candidate = module.version or default
            if candidate == STABLE_VERSION:
                return STABLE_VERSION
            newest = newer_version(newest, candidate)
    return newest or default


def find_release(releases: list[Release], version: str) -> Release:
    """Find the tagged release matching a version string.

    Raises:
        VersionResolutionError: If no release carries that version.
    """
    wanted = parse_version(version)
    for release in releases:
        if release.version == wanted:
            return release
    raise VersionResolutionError(f"release {version} not found")


def source_releases(
    steps: list[Step],
    source: Source,
    state: State | None,
    available: list[Release],
) -> list[Release]:
    """Compute the walk for a source from its available releases.

    An unbounded newest bound stops at the source ceiling.
    """
    if source.ceiling is None:
        raise VersionResolutionError(f"source {source.url} has no releases")
    oldest = oldest_version(steps, source, state)
    if oldest == STABLE_VERSION or parse_version(oldest) >= source.ceiling.version:
        logger.info("Latest release for %s is %s", source.url, source.ceiling)
        return [source.ceiling]

    oldest_release = find_release(available, oldest)
    logger.info("Oldest module version for %s is %s", source.url, oldest_release)

    newest = newest_version(steps, source)
    if newest == STABLE_VERSION:
        newest_release = source.ceiling
    else:
        newest_release = find_release(available, newest)
        logger.info("Newest module version for %s is %s", source.url, newest_release)

    walk = [r for r in available if oldest_release <= r <= newest_release]
    if not walk:
        # newest bound below oldest: nothing to step through, stay on oldest
        walk = [oldest_release]
    return walk
