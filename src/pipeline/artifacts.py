# src/pipeline/artifacts.py — v1
"""Write a resolved step's artifacts into the bucket.

Layout of ``steps/<prefix>-<step>/``:
    modules.yaml        terraform modules with pinned versions and inputs
    provider.yaml       provider settings and placement of the step
    <module>.yaml       one ArgoCD application per module (argocd-apps)
    <included files>    copied from config/<step>/include
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

from infralib_agent.core.errors import AgentError
from infralib_agent.core.models import (
    STEP_TYPE_ARGOCD,
    STEP_TYPE_TERRAFORM,
    ModuleVersion,
    Step,
)
from infralib_agent.storage.base_bucket import BaseBucket

MODULES_FILE = "modules.yaml"
PROVIDER_FILE = "provider.yaml"
RESERVED_FILES = frozenset({MODULES_FILE, PROVIDER_FILE, "backend.conf"})
EXCLUDED_FOLDERS = frozenset({".terraform", "certs"})
BASE_PROVIDER = "base"


@dataclass
class StepArtifacts:
    """Outcome of writing a step folder."""

    execute: bool = False
    providers: dict[str, set[str]] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)


def step_folder(prefix: str, step_name: str) -> str:
    return f"steps/{prefix}-{step_name}"


class BucketArtifactWriter:
    """Renders step folders as YAML documents in the artifact bucket."""

    def __init__(
        self, bucket: BaseBucket, prefix: str, logger: logging.Logger | None = None
    ) -> None:
        self._bucket = bucket
        self._prefix = prefix
        self._logger = logger or logging.getLogger(__name__)

    async def write_step(self, step: Step, versions: dict[str, ModuleVersion]) -> StepArtifacts:
        """Write every artifact of a step and drop stale files.

        Raises:
            AgentError: If the step type has no artifact layout or a module
                has no decided version.
        """
        if step.type == STEP_TYPE_TERRAFORM:
            artifacts = await self._write_terraform(step, versions)
        elif step.type == STEP_TYPE_ARGOCD:
            artifacts = await self._write_argocd(step, versions)
        else:
            raise AgentError(f"step type {step.type} not supported")
        await self._remove_stale(step, artifacts.files)
        return artifacts

    async def _write_terraform(self, step: Step, versions: dict[str, ModuleVersion]) -> StepArtifacts:
        if not versions:
            raise AgentError(f"no module versions found for step {step.name}")
        folder = step_folder(self._prefix, step.name)
        artifacts = StepArtifacts()
        changed = any(version.changed for version in versions.values())

        modules_path = f"{folder}/{MODULES_FILE}"
        if changed or await self._bucket.get_file(modules_path) is None:
            modules = {
                module.name: {
                    "source": _module_source(module.source, module.is_client, versions[module.name]),
                    "version": versions[module.name].version,
                    "inputs": module.inputs,
                }
                for module in step.modules
                if module.name in versions
            }
            await self._bucket.put_file(modules_path, _dump({"modules": modules}))
        artifacts.files.append(modules_path)

        provider: dict[str, Any] = step.provider.model_dump(exclude_defaults=True)
        if step.vpc.id:
            provider["vpc"] = step.vpc.model_dump(exclude_defaults=True)
        await self._bucket.put_file(f"{folder}/{PROVIDER_FILE}", _dump(provider))
        artifacts.files.append(f"{folder}/{PROVIDER_FILE}")

        names = {BASE_PROVIDER}
        names.update(n for n in ("aws", "google", "kubernetes") if getattr(step.provider, n))
        for module in step.modules:
            if module.is_client or module.name not in versions:
                continue
            artifacts.providers.setdefault(versions[module.name].source_url, set()).update(names)

        for included in step.files:
            path = f"{folder}/{included.name}"
            await self._bucket.put_file(path, included.content)
            artifacts.files.append(path)

        artifacts.execute = changed or bool(step.files)
        return artifacts

    async def _write_argocd(self, step: Step, versions: dict[str, ModuleVersion]) -> StepArtifacts:
        folder = step_folder(self._prefix, step.name)
        artifacts = StepArtifacts()
        for module in step.modules:
            version = versions.get(module.name)
            if version is None:
                raise AgentError(f"module {module.name} version not found")
            path = f"{folder}/{module.name}.yaml"
            if version.changed or await self._bucket.get_file(path) is None:
                application = {
                    "name": module.name,
                    "source": _module_source(f"k8s/{module.source}", module.is_client, version),
                    "version": version.version,
                    "namespace": module.name,
                    "values": module.inputs,
                }
                await self._bucket.put_file(path, _dump(application))
                artifacts.execute = artifacts.execute or version.changed
            artifacts.files.append(path)
        return artifacts

    async def _remove_stale(self, step: Step, written: list[str]) -> None:
        folder = step_folder(self._prefix, step.name)
        keep = set(written)
        for path in await self._bucket.list_folder_files(folder, EXCLUDED_FOLDERS):
            if path in keep or path.rsplit("/", 1)[-1] in RESERVED_FILES:
                continue
            self._logger.info("Removing stale file %s", path)
            await self._bucket.delete_file(path)


def _module_source(source: str, is_client: bool, version: ModuleVersion) -> str:
    if is_client:
        return source
    return f"{version.source_url}//modules/{source}?ref={version.version}"


def _dump(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
