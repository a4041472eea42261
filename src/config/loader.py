# src/config/loader.py — v1
"""Load, merge, validate and filter the rollout config document.

Layout next to the config file:
    config/<step>/include/**     files copied into terraform step folders
    config/<step>/<module>.yaml  module inputs when not declared inline
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from infralib_agent.config.merge import merge_config
from infralib_agent.config.settings import ConfigurationError
from infralib_agent.core.errors import VersionResolutionError
from infralib_agent.core.models import (
    STEP_TYPE_ARGOCD,
    STEP_TYPE_TERRAFORM,
    STEP_TYPE_TERRAFORM_CUSTOM,
    Config,
    IncludedFile,
    State,
    Step,
)
from infralib_agent.core.versions import STABLE_VERSION, parse_version
from infralib_agent.pipeline.artifacts import RESERVED_FILES

logger = logging.getLogger(__name__)

RESERVED_TERRAFORM_FILES = RESERVED_FILES | {"main.tf", "provider.tf"}
STEP_TYPES = frozenset({STEP_TYPE_TERRAFORM, STEP_TYPE_TERRAFORM_CUSTOM, STEP_TYPE_ARGOCD})
APPROVE_VALUES = frozenset({"", "minor", "major", "always", "never", "force", "reject"})
MANUAL_APPROVE_VALUES = frozenset({"", "always", "changes", "removes", "reject", "never"})


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; an empty file yields an empty dict."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    return data


def parse_config(data: dict[str, Any], origin: str = "config") -> Config:
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid {origin}: {e}") from e


def load_config(config_file: Path, base_config_file: Path | None = None) -> Config:
    """Load the config, overlay it on an optional base profile and attach files.

    Raises:
        ConfigurationError: If a file is missing or malformed.
    """
    if not config_file.exists():
        raise ConfigurationError(f"config file {config_file} not found")
    config = parse_config(read_yaml(config_file), str(config_file))
    if base_config_file is not None:
        if not base_config_file.exists():
            raise ConfigurationError(f"base config file {base_config_file} not found")
        base = parse_config(read_yaml(base_config_file), str(base_config_file))
        config = merge_config(base, config)
        logger.info("Merged config onto base profile %s", base_config_file)

    config_dir = config_file.parent
    add_included_files(config, config_dir)
    add_module_input_files(config, config_dir)
    process_config(config)
    return config


def add_included_files(config: Config, config_dir: Path) -> None:
    """Attach files under config/<step>/include to terraform steps."""
    for step in config.steps:
        if step.type != STEP_TYPE_TERRAFORM:
            continue
        folder = config_dir / "config" / step.name / "include"
        if not folder.is_dir():
            continue
        for path in sorted(p for p in folder.rglob("*") if p.is_file()):
            if path.name in RESERVED_TERRAFORM_FILES:
                raise ConfigurationError(
                    f"can't include files {sorted(RESERVED_TERRAFORM_FILES)} in step {step.name}"
                )
            step.files.append(
                IncludedFile(
                    name=path.relative_to(folder).as_posix(),
                    content=path.read_bytes(),
                )
            )


def add_module_input_files(config: Config, config_dir: Path) -> None:
    """Load config/<step>/<module>.yaml for modules without inline inputs."""
    for step in config.steps:
        for module in step.modules:
            path = config_dir / "config" / step.name / f"{module.name}.yaml"
            if not path.is_file():
                continue
            if module.inputs:
                logger.warning(
                    "Module %s/%s has inputs, ignoring file %s", step.name, module.name, path
                )
                continue
            module.inputs = read_yaml(path)


def process_config(config: Config) -> None:
    """Fill defaults: empty config version is stable, step version seeds modules."""
    if not config.version:
        config.version = STABLE_VERSION
    for step in config.steps:
        if not step.version:
            continue
        for module in step.modules:
            if not module.version and not module.is_client:
                module.version = step.version


def validate_config(config: Config, state: State | None = None) -> None:
    """Validate the whole document, collecting every problem.

    Raises:
        ConfigurationError: With all problems joined by "; ".
    """
    errors: list[str] = []
    if not config.prefix:
        errors.append("config prefix is not set")

    seen: set[str] = set()
    for step in config.steps:
        errors.extend(_validate_step(step, config.steps))
        if step.name in seen:
            errors.append(f"step name {step.name} is not unique")
        seen.add(step.name)
        errors.extend(_validate_step_modules(step, state, step.version or config.version))

    if errors:
        raise ConfigurationError("; ".join(errors))


def select_runnable_steps(config: Config, names: list[str]) -> list[Step]:
    """Return config steps filtered by name, preserving config order.

    Raises:
        ConfigurationError: If a requested step does not exist.
    """
    if not names:
        return list(config.steps)
    wanted = set(names)
    steps = [step for step in config.steps if step.name in wanted]
    missing = wanted - {step.name for step in steps}
    if missing:
        raise ConfigurationError(f"runnable steps not found: {', '.join(sorted(missing))}")
    return steps


# --- Helpers ---


def _validate_step(step: Step, steps: list[Step]) -> list[str]:
    errors: list[str] = []
    if not step.name:
        errors.append("step name is not set")
    if not step.type:
        errors.append(f"step type is not set for step {step.name}")
    elif step.type not in STEP_TYPES:
        errors.append(f"step {step.name} has unknown type {step.type}")
    if step.approve not in APPROVE_VALUES:
        errors.append(f"step {step.name} has unknown approve {step.approve}")
    for field_name in ("run_approve", "update_approve"):
        if getattr(step, field_name) not in MANUAL_APPROVE_VALUES:
            errors.append(f"step {step.name} has unknown {field_name} {getattr(step, field_name)}")
    if step.vpc.id and not step.vpc.subnet_ids:
        errors.append(f"VPC ID is set for step {step.name} but subnet IDs are not")
    if (step.vpc.subnet_ids or step.vpc.security_group_ids) and not step.vpc.id:
        errors.append(f"VPC ID is not set for step {step.name}")
    if step.type == STEP_TYPE_TERRAFORM_CUSTOM and step.approve not in ("", "always", "never"):
        errors.append(f"custom terraform step {step.name} must have approve 'always' or 'never'")
    if step.before:
        referenced = next((s for s in steps if s.name == step.before), None)
        if referenced is None:
            errors.append(f"before step {step.before} does not exist for step {step.name}")
        elif referenced.remove:
            errors.append(f"before step {step.before} is marked for removal for step {step.name}")
    return errors


def _validate_step_modules(step: Step, state: State | None, step_version: str) -> list[str]:
    errors: list[str] = []
    step_state = state.get_step(step.name) if state is not None else None
    for module in step.modules:
        if not module.name:
            errors.append(f"module name is not set in step {step.name}")
        if not module.source:
            errors.append(f"module source is not set for module {module.name} in step {step.name}")
        if module.is_client:
            if not module.version:
                errors.append(
                    f"module version is not set for client module {module.name} in step {step.name}"
                )
            continue
        if step_state is None:
            continue
        module_state = step_state.get_module(module.name)
        declared = module.version or step_version
        if module_state is None or not module_state.version or declared == STABLE_VERSION:
            continue
        try:
            if parse_version(declared) < parse_version(module_state.version):
                errors.append(
                    f"config module {module.name} version {declared} is less than "
                    f"state version {module_state.version}"
                )
        except VersionResolutionError as e:
            errors.append(f"module {module.name} in step {step.name}: {e}")
    return errors
