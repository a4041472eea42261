# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

Config models mirror the rollout YAML document. State models mirror the
persisted state.yaml. Transient per-release results are dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from infralib_agent.core.versions import STABLE_VERSION

StepType = Literal["terraform", "terraform-custom", "argocd-apps"]
Approve = Literal["", "minor", "major", "always", "never", "force", "reject"]
ManualApprove = Literal["", "always", "changes", "removes", "reject", "never"]
Command = Literal["run", "update"]

STEP_TYPE_TERRAFORM = "terraform"
STEP_TYPE_TERRAFORM_CUSTOM = "terraform-custom"
STEP_TYPE_ARGOCD = "argocd-apps"
MODULE_TYPE_CUSTOM = "custom"
CLIENT_MODULE_PREFIXES = ("git::", "git@")


# === CONFIG ===


class ConfigSource(BaseModel):
    """A versioned module repository."""

    url: str
    version: str = STABLE_VERSION
    force_version: bool = False
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


class Module(BaseModel):
    """A module instance inside a step."""

    name: str = ""
    source: str = ""
    version: str = ""
    inputs: dict[str, Any] = Field(default_factory=dict)
    remove: bool = False

    @property
    def is_client(self) -> bool:
        """Client modules come from an external git location."""
        return self.source.startswith(CLIENT_MODULE_PREFIXES)

    @property
    def type(self) -> str:
        """Module type tag: the source path after its leading source group.

        Client module sources are first cut after their last "//".
        """
        source = self.source
        if self.is_client and "//" in source:
            source = source[source.rindex("//") + 2 :]
        return source[source.find("/") + 1 :]


class VpcConfig(BaseModel):
    attach: bool | None = None
    id: str = ""
    subnet_ids: list[str] = Field(default_factory=list)
    security_group_ids: list[str] = Field(default_factory=list)


class KubernetesConfig(BaseModel):
    cluster_name: str = ""
    argocd_namespace: str = ""


class ProviderConfig(BaseModel):
    """Provider block settings shared by every module of a step."""

    inputs: dict[str, Any] = Field(default_factory=dict)
    aws: dict[str, Any] = Field(default_factory=dict)
    google: dict[str, Any] = Field(default_factory=dict)
    kubernetes: dict[str, Any] = Field(default_factory=dict)


class IncludedFile(BaseModel):
    """File copied verbatim (after tag resolution) into the step folder."""

    name: str
    content: bytes


class Step(BaseModel):
    """A Terraform or ArgoCD unit applied as one pipeline."""

    name: str = ""
    type: str = ""
    workspace: str = ""
    approve: str = ""
    run_approve: str = ""
    update_approve: str = ""
    version: str = ""
    vpc: VpcConfig = Field(default_factory=VpcConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    modules: list[Module] = Field(default_factory=list)
    files: list[IncludedFile] = Field(default_factory=list)
    remove: bool = False
    before: str = ""
    base_image_version: str = ""
    base_image_source: str = ""

    def get_module(self, name: str) -> Module | None:
        for module in self.modules:
            if module.name == name:
                return module
        return None


class Config(BaseModel):
    """Root rollout document."""

    prefix: str = ""
    version: str = STABLE_VERSION
    sources: list[ConfigSource] = Field(default_factory=list)
    agent_version: str = ""
    base_image_version: str = ""
    base_image_source: str = ""
    steps: list[Step] = Field(default_factory=list)

    def get_step(self, name: str) -> Step | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


# === STATE ===


class StateModule(BaseModel):
    """Persisted per-module progress."""

    name: str
    version: str = ""
    applied_version: str | None = None
    source: str = ""
    type: str | None = None
    auto_approve: bool = Field(default=False, exclude=True)


class StateStep(BaseModel):
    """Persisted per-step progress."""

    name: str
    workspace: str = ""
    applied_at: datetime | None = None
    modules: list[StateModule] = Field(default_factory=list)

    def get_module(self, name: str) -> StateModule | None:
        for module in self.modules:
            if module.name == name:
                return module
        return None

    @property
    def auto_approve(self) -> bool:
        """A step is auto-approved only when every module is."""
        return all(module.auto_approve for module in self.modules)


class State(BaseModel):
    """Root persisted state document."""

    base_config_version: str | None = None
    steps: list[StateStep] = Field(default_factory=list)

    def get_step(self, name: str) -> StateStep | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


# === TRANSIENT RESULTS ===


@dataclass(frozen=True)
class ModuleVersion:
    """Target version decided for one module at one release index."""

    version: str
    changed: bool
    source_url: str = ""


@dataclass(frozen=True)
class ChangeCounts:
    """Resource counts reported by a plan."""

    added: int = 0
    changed: int = 0
    destroyed: int = 0

    @property
    def no_changes(self) -> bool:
        return self.added == 0 and self.changed == 0 and self.destroyed == 0

    def __str__(self) -> str:
        return (
            f"Plan: {self.added} to add, {self.changed} to change, "
            f"{self.destroyed} to destroy."
        )
