# src/versioning/resolver.py — v1
"""Per-module, per-release version decision.

The resolver mutates the StateModule it is given: ``version`` becomes the
target chosen for this release, ``source`` tracks source migrations and
``auto_approve`` carries the approval outcome for the step. The confirmed
``applied_version`` is only written once the step's pipeline settles.
"""

from __future__ import annotations

import logging

from packaging.version import Version

from infralib_agent.core.errors import AgentError
from infralib_agent.core.models import (
    MODULE_TYPE_CUSTOM,
    Module,
    ModuleVersion,
    State,
    StateModule,
    StateStep,
    Step,
)
from infralib_agent.core.versions import STABLE_VERSION, Release, format_version, parse_version
from infralib_agent.sources.registry import SourceRegistry
from infralib_agent.versioning.approval import module_auto_approve, step_auto_approve


class VersionResolver:
    """Decides the target version of every module at a release index."""

    def __init__(self, registry: SourceRegistry, logger: logging.Logger | None = None) -> None:
        self._registry = registry
        self._logger = logger or logging.getLogger(__name__)

    def module_version(
        self, module: Module, step_state: StateStep, index: int, approve: str
    ) -> ModuleVersion:
        """Target version of a module at a release index.

        Raises:
            VersionResolutionError: If a declared or applied version is malformed.
        """
        module_state = self._module_state(step_state, module)
        module_state.auto_approve = step_auto_approve(approve)

        if module.is_client:
            changed = module_state.version != module.version
            module_state.version = module.version
            module_state.type = MODULE_TYPE_CUSTOM
            return ModuleVersion(module.version, changed, module.source)

        source = self._registry.for_module(module)
        if source.forced_version:
            if module_state.source != source.url:
                module_state.source = source.url
                module_state.applied_version = None
            module_state.version = source.forced_version
            return ModuleVersion(source.forced_version, True, source.url)

        module_semver = self._module_semver(module, source.ceiling, source.newest_version)
        if index > len(source.releases) - 1:
            return ModuleVersion(format_version(module_semver), False, source.url)

        release = source.releases[index]
        if module_state.applied_version is None or module_state.source != source.url:
            if module_state.source and module_state.source != source.url:
                self._logger.info(
                    "Module %s moved from source %s to %s",
                    module.name,
                    module_state.source,
                    source.url,
                )
            module_state.source = source.url
            module_state.applied_version = None
            target = format_version(min(module_semver, release.version))
            module_state.version = target
            module_state.auto_approve = True
            return ModuleVersion(target, True, source.url)

        applied = parse_version(module_state.applied_version)
        if applied >= release.version or module_semver == applied:
            # a target left pending by a failed apply must not be confirmed later
            held = format_version(applied)
            module_state.version = held
            return ModuleVersion(held, False, source.url)

        module_state.auto_approve = module_auto_approve(applied, release.version, approve)
        target = format_version(release)
        module_state.version = target
        return ModuleVersion(target, True, source.url)

    def update_module_versions(
        self, step: Step, step_state: StateStep, index: int
    ) -> dict[str, ModuleVersion]:
        """Decide versions for every module of a step, keyed by module name."""
        versions: dict[str, ModuleVersion] = {}
        for module in step.modules:
            decided = self.module_version(module, step_state, index, step.approve)
            self._logger.debug(
                "Module %s version %s changed=%s", module.name, decided.version, decided.changed
            )
            versions[module.name] = decided
        return versions

    def preview_version(
        self, steps: list[Step], state: State, step_name: str, module_name: str, index: int
    ) -> str:
        """Version a module would get at index, without touching state.

        Raises:
            AgentError: If the step or module does not exist.
        """
        step = next((s for s in steps if s.name == step_name), None)
        if step is None:
            raise AgentError(f"step {step_name} not found")
        module = step.get_module(module_name)
        if module is None:
            raise AgentError(f"module {module_name} not found in step {step_name}")
        step_state = state.get_step(step_name)
        preview = step_state.model_copy(deep=True) if step_state else StateStep(name=step_name)
        return self.module_version(module, preview, index, "never").version

    # --- Helpers ---

    @staticmethod
    def _module_state(step_state: StateStep, module: Module) -> StateModule:
        module_state = step_state.get_module(module.name)
        if module_state is None:
            module_state = StateModule(name=module.name)
            step_state.modules.append(module_state)
        return module_state

    @staticmethod
    def _module_semver(
        module: Module, ceiling: Release | None, newest: Release | None
    ) -> Version:
        if not module.version:
            if ceiling is None:
                raise AgentError(f"module {module.name} has no version to track")
            return ceiling.version
        if module.version == STABLE_VERSION:
            if newest is None:
                raise AgentError(f"module {module.name} source has no releases")
            return newest.version
        return parse_version(module.version)
