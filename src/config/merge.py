# src/config/merge.py — v1
"""Overlay a patch config onto a base profile.

Rules, applied per entity:
  - Scalar fields: a non-empty patch value overrides, an empty one keeps base.
  - Steps and modules: matched by name. A patch entry with ``remove: true``
    drops the base entry. Unmatched patch entries are added: steps at the
    position of their ``before`` step (or appended), modules appended.
  - Inputs: shallow override, patch keys win.
  - Sources and included files: a non-empty patch list replaces the base list.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from infralib_agent.config.settings import ConfigurationError
from infralib_agent.core.models import Config, Module, Step

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = (
    "prefix",
    "version",
    "agent_version",
    "base_image_version",
    "base_image_source",
)
_STEP_FIELDS = (
    "type",
    "workspace",
    "approve",
    "run_approve",
    "update_approve",
    "version",
    "before",
    "base_image_version",
    "base_image_source",
)
_MODULE_FIELDS = ("source", "version")


def merge_config(base: Config, patch: Config) -> Config:
    """Return a new Config with patch overlaid on base."""
    merged = base.model_copy(deep=True)
    _override(merged, patch, _CONFIG_FIELDS)
    if patch.sources:
        merged.sources = [s.model_copy(deep=True) for s in patch.sources]
    merged.steps = merge_steps(base.steps, patch.steps)
    return merged


def merge_steps(base_steps: list[Step], patch_steps: list[Step]) -> list[Step]:
    """Merge step lists by name."""
    if not patch_steps:
        return [s.model_copy(deep=True) for s in base_steps]
    patches = {step.name: step for step in patch_steps}
    result: list[Step] = []
    for step in base_steps:
        patch = patches.get(step.name)
        if patch is None:
            result.append(step.model_copy(deep=True))
        elif not patch.remove:
            result.append(merge_step(step, patch))

    base_names = {step.name for step in base_steps}
    for patch in patch_steps:
        if patch.name in base_names:
            continue
        if patch.remove:
            logger.warning(
                "Unable to remove step %s because it does not exist in base config",
                patch.name,
            )
            continue
        new_step = patch.model_copy(deep=True)
        if not patch.before:
            result.append(new_step)
            continue
        index = _find_index(result, patch.before)
        if index is None:
            raise ConfigurationError(
                f"before step {patch.before} does not exist for step {patch.name}"
            )
        result.insert(index, new_step)
    return result


def merge_step(base: Step, patch: Step) -> Step:
    """Merge one step; nested placement blocks merge field by field."""
    merged = base.model_copy(deep=True)
    _override(merged, patch, _STEP_FIELDS)
    merged.vpc = _merge_block(base.vpc, patch.vpc)
    merged.kubernetes = _merge_block(base.kubernetes, patch.kubernetes)
    merged.provider = _merge_block(base.provider, patch.provider)
    merged.modules = merge_modules(base.modules, patch.modules)
    if patch.files:
        merged.files = [f.model_copy(deep=True) for f in patch.files]
    return merged


def merge_modules(base_modules: list[Module], patch_modules: list[Module]) -> list[Module]:
    """Merge module lists by name."""
    if not patch_modules:
        return [m.model_copy(deep=True) for m in base_modules]
    patches = {module.name: module for module in patch_modules}
    result: list[Module] = []
    for module in base_modules:
        patch = patches.get(module.name)
        if patch is None:
            result.append(module.model_copy(deep=True))
        elif not patch.remove:
            result.append(merge_module(module, patch))

    base_names = {module.name for module in base_modules}
    for patch in patch_modules:
        if patch.name in base_names:
            continue
        if patch.remove:
            logger.info(
                "Unable to remove module %s because it does not exist in base config",
                patch.name,
            )
            continue
        result.append(patch.model_copy(deep=True))
    return result


def merge_module(base: Module, patch: Module) -> Module:
    merged = base.model_copy(deep=True)
    _override(merged, patch, _MODULE_FIELDS)
    merged.inputs = merge_inputs(base.inputs, patch.inputs)
    return merged


def merge_inputs(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge: top-level patch keys replace base keys."""
    if not patch:
        return dict(base)
    if not base:
        return dict(patch)
    merged = dict(base)
    merged.update(patch)
    return merged


def deep_merge_inputs(base: dict[str, Any] | None, patch: dict[str, Any] | None) -> dict[str, Any]:
    """Recursive merge used for module default inputs; patch values win."""
    if not base:
        return dict(patch or {})
    if not patch:
        return dict(base)
    merged = dict(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge_inputs(current, value)
        else:
            merged[key] = value
    return merged


# --- Helpers ---


def _override(target: BaseModel, patch: BaseModel, fields: tuple[str, ...]) -> None:
    for name in fields:
        value = getattr(patch, name)
        if value:
            setattr(target, name, value)


def _merge_block(base: BaseModel, patch: BaseModel) -> Any:
    merged = base.model_copy(deep=True)
    for name in type(base).model_fields:
        value = getattr(patch, name)
        if isinstance(value, dict):
            setattr(merged, name, merge_inputs(getattr(base, name), value))
        elif value:
            setattr(merged, name, value)
    return merged


def _find_index(steps: list[Step], name: str) -> int | None:
    for i, step in enumerate(steps):
        if step.name == name:
            return i
    return None
