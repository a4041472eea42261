# src/detection/change_detector.py — v1
"""Decide whether a re-applied step changed between two releases.

A step changed when any of these differ between the previous and the
current iteration: provider files of its sources, its modules' source
trees, its modules' resolved inputs or its included files. A missing
previous or current checksum always counts as a change.
"""

from __future__ import annotations

import logging

from infralib_agent.core.models import STEP_TYPE_ARGOCD, Step
from infralib_agent.detection.step_checksums import StepChecksumHistory
from infralib_agent.sources.registry import SourceRegistry


class ChangeDetector:
    """Compares checksum manifests and step checksums for one step."""

    def __init__(
        self,
        registry: SourceRegistry,
        history: StepChecksumHistory,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._history = history
        self._logger = logger or logging.getLogger(__name__)

    def has_changed(self, step: Step, providers: dict[str, set[str]] | None = None) -> bool:
        checks = (
            ("providers", self.changed_providers(providers or {})),
            ("modules", self.changed_modules(step)),
            ("module inputs", self.changed_module_inputs(step)),
            ("files", self.changed_files(step)),
        )
        for label, changed in checks:
            if changed:
                self._logger.info("Step %s %s have changed: %s", step.name, label, ", ".join(changed))
                return True
        return False

    def changed_providers(self, providers: dict[str, set[str]]) -> list[str]:
        """Providers (per source URL) whose ``providers/<name>.tf`` checksum moved."""
        changed: list[str] = []
        for url, names in providers.items():
            source = self._registry.get(url)
            previous = source.previous_checksums or {}
            current = source.current_checksums or {}
            for name in sorted(names):
                key = f"providers/{name}.tf"
                if key not in previous or key not in current:
                    self._logger.debug("Provider %s is missing checksums", name)
                    changed.append(name)
                elif previous[key] != current[key]:
                    self._logger.debug(
                        "Provider %s has changed, previous %s, current %s",
                        name,
                        previous[key],
                        current[key],
                    )
                    changed.append(name)
        return changed

    def changed_modules(self, step: Step) -> list[str]:
        """Modules whose source tree checksum moved."""
        changed: list[str] = []
        for module in step.modules:
            if module.is_client:
                continue
            source = self._registry.for_module(module)
            if source.previous_checksums is None or source.current_checksums is None:
                self._logger.debug("Module %s source is missing checksums", module.name)
                changed.append(module.name)
                continue
            path = module.source
            if step.type == STEP_TYPE_ARGOCD:
                path = f"k8s/{path}"
            key = f"modules/{path}"
            previous = source.previous_checksums.get(key)
            current = source.current_checksums.get(key)
            if previous is None or current is None or previous != current:
                self._logger.debug(
                    "Module %s has changed, previous %s, current %s", module.name, previous, current
                )
                changed.append(module.name)
        return changed

    def changed_module_inputs(self, step: Step) -> list[str]:
        previous = self._history.previous(step.name)
        current = self._history.current(step.name)
        if previous is None or current is None:
            self._logger.debug("Step %s is missing step checksums", step.name)
            return [module.name for module in step.modules]
        changed: list[str] = []
        for module in step.modules:
            before = previous.module_checksums.get(module.name)
            after = current.module_checksums.get(module.name)
            if module.is_client or before != after:
                changed.append(module.name)
        return changed

    def changed_files(self, step: Step) -> list[str]:
        if not step.files:
            return []
        previous = self._history.previous(step.name)
        current = self._history.current(step.name)
        if previous is None or current is None:
            return [included.name for included in step.files]
        return sorted(
            name
            for name, checksum in current.file_checksums.items()
            if previous.file_checksums.get(name) != checksum
        )
