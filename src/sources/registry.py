# src/sources/registry.py — v1
"""Registry of configured module sources.

Built once at startup: lists every source's releases, maps each module
to the source that serves it and computes the release walk. Between
release iterations only the checksum manifests move.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from infralib_agent.config.settings import ConfigurationError
from infralib_agent.core.errors import AgentError, VersionResolutionError
from infralib_agent.core.models import STEP_TYPE_ARGOCD, Config, Module, State, Step
from infralib_agent.core.versions import STABLE_VERSION, Release
from infralib_agent.sources.git_storage import GitSourceStorage
from infralib_agent.sources.local_storage import LocalSourceStorage
from infralib_agent.sources.models import Source
from infralib_agent.sources.storage import BaseSourceStorage
from infralib_agent.versioning.walk import find_release, source_releases

logger = logging.getLogger(__name__)

StorageFactory = Callable[[str], BaseSourceStorage]

_REMOTE_PREFIXES = ("http://", "https://", "ssh://", "git@", "file://")


class SourceRegistry:
    """Sources keyed by URL plus the module-source to URL mapping."""

    def __init__(self, sources: list[Source], module_sources: dict[str, str]) -> None:
        self._sources = {source.url: source for source in sources}
        self._module_sources = module_sources

    @property
    def sources(self) -> list[Source]:
        return list(self._sources.values())

    def get(self, url: str) -> Source:
        try:
            return self._sources[url]
        except KeyError:
            raise AgentError(f"source {url} is not configured") from None

    def for_module(self, module: Module) -> Source:
        """Source serving a non-client module.

        Raises:
            AgentError: If the module was never mapped to a source.
        """
        url = self._module_sources.get(module.source)
        if url is None:
            raise AgentError(f"module {module.name} source {module.source} is not mapped")
        return self._sources[url]

    @property
    def most_releases(self) -> int:
        """Length of the longest walk among sources."""
        most = 0
        for source in self._sources.values():
            if source.forced_version:
                logger.warning(
                    "Source %s has forced version %s", source.url, source.forced_version
                )
            most = max(most, len(source.releases))
        return most

    def release_labels(self, index: int) -> list[str]:
        """Source URL and tag of every source with a release due at index."""
        labels: list[str] = []
        for source in self._sources.values():
            if source.forced_version or index < len(source.releases):
                labels.append(f"{source.url} {source.release_label(index)}")
        return labels

    async def update_checksums(self, index: int) -> None:
        """Load the current checksum manifest of every source for index."""
        for source in self._sources.values():
            if index != 1 and len(source.releases) - 1 < index:
                continue
            release = source.release_label(index)
            try:
                source.current_checksums = await source.storage.calculate_checksums(release)
            except AgentError as e:
                raise AgentError(f"failed to get checksums for {source.url}: {e}") from e

    def swap_checksums(self) -> None:
        for source in self._sources.values():
            source.swap_checksums()


def create_source_storage(url: str, cache_dir: Path) -> BaseSourceStorage:
    """Local directory sources are read in place, everything else through git."""
    local = Path(url).expanduser()
    if not url.startswith(_REMOTE_PREFIXES) and local.is_dir():
        return LocalSourceStorage(local)
    return GitSourceStorage(url, cache_dir)


async def build_registry(
    config: Config,
    steps: list[Step],
    state: State | None,
    storage_factory: StorageFactory,
) -> SourceRegistry:
    """Create sources, map modules onto them and compute the release walks.

    Raises:
        ConfigurationError: If a module is not served by any source.
        VersionResolutionError: If a source has no usable releases.
    """
    sources: list[Source] = []
    available: dict[str, list[Release]] = {}
    for config_source in config.sources:
        storage = storage_factory(config_source.url)
        source = Source(
            url=config_source.url,
            storage=storage,
            configured_version=config_source.version or STABLE_VERSION,
            includes=frozenset(config_source.include),
            excludes=frozenset(config_source.exclude),
        )
        if config_source.force_version:
            source.forced_version = config_source.version
        else:
            releases = await storage.list_releases()
            if not releases:
                raise VersionResolutionError(f"source {source.url} has no releases")
            available[source.url] = releases
            source.stable_version = releases[-1]
            if source.configured_version == STABLE_VERSION:
                source.ceiling = releases[-1]
            else:
                source.ceiling = find_release(releases, source.configured_version)
        logger.info("Source %s stable release %s", source.url, source.stable_version or "-")
        sources.append(source)

    module_sources = await _map_module_sources(steps, sources)

    for source in sources:
        if source.forced_version:
            continue
        if not source.modules:
            logger.info("No modules found for source %s", source.url)
        source.releases = source_releases(steps, source, state, available[source.url])
    return SourceRegistry(sources, module_sources)


# --- Helpers ---


async def _map_module_sources(steps: list[Step], sources: list[Source]) -> dict[str, str]:
    module_sources: dict[str, str] = {}
    for step in steps:
        for module in step.modules:
            if module.is_client or module.source in module_sources:
                continue
            source = await _find_module_source(step, module, sources)
            if source is None:
                raise ConfigurationError(
                    f"module {module.name} in step {step.name} is not included in any source"
                )
            source.modules.add(module.source)
            module_sources[module.source] = source.url
    return module_sources


async def _find_module_source(step: Step, module: Module, sources: list[Source]) -> Source | None:
    for source in sources:
        if source.includes:
            if module.source in source.includes:
                return source
            continue
        if module.source in source.excludes:
            continue
        path = module.source
        if step.type == STEP_TYPE_ARGOCD:
            path = f"k8s/{path}"
        release = source.forced_version
        if not release and source.stable_version is not None:
            release = source.stable_version.tag
        if await source.storage.path_exists(f"modules/{path}", release):
            return source
    return None
