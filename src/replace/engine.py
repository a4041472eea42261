# src/replace/engine.py — v1
"""Two-phase ``{{ }}`` tag resolution for steps, module inputs and files.

Phase 1 substitutes every immediate tag and keeps deferred (agent) tags
as pending segments; the phase-1 text is what gets checksummed for change
detection. Phase 2 substitutes the pending segments. Deferred tags never
reference each other, so two passes are enough.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import Any

import hcl2
import yaml
from pydantic import ValidationError

from infralib_agent.config.accessor import get_config_value
from infralib_agent.core.errors import (
    ConfigValueNotFoundError,
    ParameterNotFoundError,
    ReplacementError,
    TemplateSyntaxError,
)
from infralib_agent.core.models import (
    STEP_TYPE_TERRAFORM,
    Config,
    IncludedFile,
    Module,
    Step,
)
from infralib_agent.replace.outputs import OutputCache, output_key, output_value
from infralib_agent.replace.params import STRING_LIST, BaseParameterStore
from infralib_agent.replace.tags import (
    Candidate,
    IndexedKey,
    Tag,
    TAG_PATTERN,
    parse_indexed,
    parse_tag,
    select_index,
)
from infralib_agent.storage.base_bucket import BaseBucket

# (step name, module name, release index) -> version
VersionPreview = Callable[[str, str, int], str]

TEMPLATE_SUFFIXES = (".tf", ".hcl", ".yaml", ".yml")
CUSTOM_TYPES = frozenset({"output-custom", "ssm-custom", "gcsm-custom"})
_NOT_FOUND_ERRORS = (ParameterNotFoundError, ConfigValueNotFoundError)


@dataclass
class Intermediate:
    """Phase-1 buffer: resolved text interleaved with pending deferred tags."""

    segments: list[str | Tag] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(s if isinstance(s, str) else s.text for s in self.segments)

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.text.encode("utf-8")).hexdigest()


@dataclass
class ResolvedStep:
    """A new Step with all tags substituted, plus its phase-1 checksums."""

    step: Step
    module_checksums: dict[str, str] = field(default_factory=dict)
    file_checksums: dict[str, str] = field(default_factory=dict)


@dataclass
class _Context:
    step: Step
    index: int
    outputs: OutputCache
    module: Module | None = None


class TemplateEngine:
    """Resolves replacement tags against outputs, parameters, config and the agent."""

    def __init__(
        self,
        config: Config,
        prefix: str,
        parameters: BaseParameterStore,
        bucket: BaseBucket,
        version_preview: VersionPreview | None = None,
        account_id: str = "",
        parameter_root: str = "/entigo-infralib",
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._prefix = prefix
        self._parameters = parameters
        self._bucket = bucket
        self._version_preview = version_preview
        self._account_id = account_id
        self._parameter_root = parameter_root.rstrip("/")
        self._logger = logger or logging.getLogger(__name__)

    # --- Public API ---

    async def resolve_step(self, step: Step, index: int) -> ResolvedStep:
        """Resolve module inputs, the step document and its included files.

        Raises:
            ParameterNotFoundError: If a required parameter is missing everywhere.
            ReplacementError: On unknown tag types or malformed keys.
            TemplateSyntaxError: If substituted content no longer parses.
        """
        ctx = _Context(step=step, index=index, outputs=OutputCache(self._bucket, self._prefix))
        result = ResolvedStep(step=step)

        inputs: list[dict[str, Any]] = []
        for module in step.modules:
            resolved, checksum = await self._resolve_module_inputs(module, ctx)
            inputs.append(resolved)
            result.module_checksums[module.name] = checksum

        skeleton = step.model_dump(
            mode="json", exclude={"files": True, "modules": {"__all__": {"inputs"}}}
        )
        text = await self._resolve_text(_dump_yaml(skeleton), ctx)
        try:
            resolved_step = Step.model_validate(yaml.safe_load(text) or {})
        except (yaml.YAMLError, ValidationError) as e:
            self._logger.debug("Broken step yaml %s:\n%s", step.name, text)
            raise TemplateSyntaxError(f"step {step.name}", text, str(e)) from e
        for module, module_inputs in zip(resolved_step.modules, inputs):
            module.inputs = module_inputs

        for included in step.files:
            resolved_file, checksum = await self._resolve_file(included, ctx)
            resolved_step.files.append(resolved_file)
            result.file_checksums[included.name] = checksum

        result.step = resolved_step
        return result

    async def resolve_text(self, content: str, step: Step, index: int = 0) -> str:
        """Run both phases over free text in the context of a step."""
        ctx = _Context(step=step, index=index, outputs=OutputCache(self._bucket, self._prefix))
        return await self._resolve_text(content, ctx)

    async def _resolve_text(self, content: str, ctx: _Context) -> str:
        return await self.replace_deferred(await self.replace_immediate(content, ctx), ctx)

    async def replace_immediate(
        self, content: str, ctx: _Context, types: Collection[str] | None = None
    ) -> Intermediate:
        """Phase 1: substitute immediate tags, keep deferred ones pending.

        With ``types`` set, only tags whose candidates all belong to those
        types are substituted; everything else is left untouched.
        """
        buffer = Intermediate()
        position = 0
        for match in TAG_PATTERN.finditer(content):
            buffer.segments.append(content[position : match.start()])
            position = match.end()
            tag = parse_tag(match.group(0), match.group(1))
            if tag.escaped is not None:
                buffer.segments.append(tag.text if types is not None else tag.escaped)
            elif types is not None and not _only_types(tag, types):
                buffer.segments.append(tag.text)
            elif tag.deferred:
                buffer.segments.append(tag)
            else:
                buffer.segments.append(await self._resolve_tag(tag, ctx))
        buffer.segments.append(content[position:])
        return buffer

    async def replace_deferred(self, buffer: Intermediate, ctx: _Context) -> str:
        """Phase 2: substitute the pending deferred tags."""
        parts: list[str] = []
        for segment in buffer.segments:
            if isinstance(segment, str):
                parts.append(segment)
            else:
                parts.append(await self._resolve_tag(segment, ctx))
        return "".join(parts)

    async def resolve_config(self, config: Config) -> Config:
        """Resolve config and custom parameter tags of the loaded document.

        Root fields accept ``config.*`` and ``*-custom`` tags, steps only
        ``config.*``. Other tags are left for per-release resolution.
        """
        ctx = _Context(step=Step(), index=0, outputs=OutputCache(self._bucket, self._prefix))
        root = config.model_dump(mode="json", exclude={"steps"})
        buffer = await self.replace_immediate(_dump_yaml(root), ctx, {"config", *CUSTOM_TYPES})
        text = buffer.text
        try:
            resolved = Config.model_validate(yaml.safe_load(text) or {})
        except (yaml.YAMLError, ValidationError) as e:
            raise TemplateSyntaxError("config", text, str(e)) from e
        for step in config.steps:
            step_data = step.model_dump(mode="json", exclude={"files"})
            buffer = await self.replace_immediate(_dump_yaml(step_data), ctx, {"config"})
            try:
                resolved_step = Step.model_validate(yaml.safe_load(buffer.text) or {})
            except (yaml.YAMLError, ValidationError) as e:
                raise TemplateSyntaxError(f"step {step.name}", buffer.text, str(e)) from e
            resolved_step.files = step.files
            resolved.steps.append(resolved_step)
        self._config = resolved
        return resolved

    # --- Resolution ---

    async def _resolve_tag(self, tag: Tag, ctx: _Context) -> str:
        not_found: Exception | None = None
        for candidate in tag.candidates:
            if candidate.literal is not None:
                return candidate.literal
            try:
                value = await self._resolve_candidate(candidate, ctx)
            except _NOT_FOUND_ERRORS as e:
                not_found = not_found or e
                continue
            if value:
                return value
        if not_found is not None:
            raise not_found
        return ""

    async def _resolve_candidate(self, candidate: Candidate, ctx: _Context) -> str:
        kind = candidate.type
        key = candidate.key
        if kind in ("output", "ssm", "gcsm"):
            return await self._module_parameter(key, ctx, optional=False)
        if kind == "optout":
            return await self._module_parameter(key, ctx, optional=True)
        if kind in CUSTOM_TYPES:
            return await self._custom_parameter(key)
        if kind == "toutput":
            return await self._typed_module_parameter(key, ctx, optional=False)
        if kind == "toptout":
            return await self._typed_module_parameter(key, ctx, optional=True)
        if kind == "config":
            path = key[key.index(".") + 1 :]
            if path == "prefix":
                return self._prefix
            return get_config_value(self._config, path)
        if kind == "agent":
            return self._agent_value(key, ctx)
        if kind == "module":
            return self._current_module_value(key, ctx)
        if kind in ("tmodule", "tsmodule"):
            parts = key.split(".")
            if len(parts) != 2:
                raise ReplacementError(
                    f"failed to parse {kind} key {key} for step {ctx.step.name}, "
                    f"got {len(parts)} split parts instead of 2"
                )
            found = self._find_by_type(parts[1])
            if found is None:
                raise ReplacementError(f"failed to find module with type {parts[1]} for key {key}")
            step, module = found
            return module.name if kind == "tmodule" else step.name
        raise ReplacementError(f"unknown replace type in tag {kind}")

    async def _module_parameter(self, key: str, ctx: _Context, optional: bool) -> str:
        parts = key.split(".")
        if len(parts) != 4:
            raise ReplacementError(
                f"failed to parse parameter key {key} for step {ctx.step.name}, "
                f"got {len(parts)} split parts instead of 4"
            )
        found = self._find_by_name(parts[1], parts[2])
        if found is None:
            if optional:
                return ""
            raise ReplacementError(f"failed to find module {parts[2]} in step {parts[1]} for key {key}")
        step, module = found
        return await self._parameter(parse_indexed(parts[3]), key, ctx, step, module, optional)

    async def _typed_module_parameter(self, key: str, ctx: _Context, optional: bool) -> str:
        parts = key.split(".")
        if len(parts) != 3:
            raise ReplacementError(
                f"failed to parse toutput key {key} for step {ctx.step.name}, "
                f"got {len(parts)} split parts instead of 3"
            )
        found = self._find_by_type(parts[1])
        if found is None:
            if optional:
                return ""
            raise ReplacementError(f"failed to find module with type {parts[1]} for toutput key {key}")
        step, module = found
        return await self._parameter(parse_indexed(parts[2]), key, ctx, step, module, optional)

    async def _custom_parameter(self, key: str) -> str:
        parts = key.split(".")
        if len(parts) != 2:
            raise ReplacementError(
                f"failed to parse custom parameter key {key}, "
                f"got {len(parts)} split parts instead of 2"
            )
        indexed = parse_indexed(parts[1])
        return await self._parameter_value(indexed.name, indexed, key)

    async def _parameter(
        self,
        indexed: IndexedKey,
        key: str,
        ctx: _Context,
        step: Step,
        module: Module,
        optional: bool,
    ) -> str:
        if ctx.step.type == STEP_TYPE_TERRAFORM and ctx.step.name == step.name:
            return f"module.{module.name}.{indexed.name}"
        outputs = await ctx.outputs.step_outputs(step.name)
        name = output_key(module.name, indexed.name)
        if name in outputs:
            return output_value(outputs[name], indexed, key)
        if outputs:
            self._logger.debug("Step %s key %s not found in terraform output", step.name, name)

        parameter_name = (
            f"{self._parameter_root}/{self._prefix}-{step.name}-{module.name}/{indexed.name}"
        )
        if "prefix" in module.inputs:
            parameter_name = f"{self._parameter_root}/{module.inputs['prefix']}/{indexed.name}"
        try:
            return await self._parameter_value(parameter_name, indexed, key)
        except ParameterNotFoundError:
            if optional:
                return ""
            raise

    async def _parameter_value(self, name: str, indexed: IndexedKey, key: str) -> str:
        parameter = await self._parameters.get(name)
        if not indexed.indexed:
            return parameter.value
        if parameter.type and parameter.type != STRING_LIST:
            raise ReplacementError(
                f"parameter index was given, but parameter {indexed.name!r} is not a string list"
            )
        return select_index(parameter.value.split(","), indexed, key)

    def _agent_value(self, key: str, ctx: _Context) -> str:
        parts = key.split(".")[1:]
        if parts and parts[0] == "version":
            if len(parts) != 3:
                raise ReplacementError(f"failed to parse agent version key {key}")
            if self._version_preview is None:
                raise ReplacementError(f"agent version is not available for key {key}")
            return self._version_preview(parts[1], parts[2], ctx.index)
        if parts and parts[0] == "accountId":
            return self._account_id
        raise ReplacementError(f"unknown agent replace type {'.'.join(parts)}")

    @staticmethod
    def _current_module_value(key: str, ctx: _Context) -> str:
        if ctx.module is None:
            raise ReplacementError(f"tag {key} is only valid inside module inputs")
        attribute = key[key.index(".") + 1 :]
        if attribute == "name":
            return ctx.module.name
        if attribute == "source":
            return ctx.module.source
        raise ReplacementError(f"unknown module attribute {attribute}")

    # --- Lookups ---

    def _find_by_name(self, step_name: str, module_name: str) -> tuple[Step, Module] | None:
        for step in self._config.steps:
            if step.name != step_name:
                continue
            module = step.get_module(module_name)
            if module is not None:
                return step, module
        return None

    def _find_by_type(self, module_type: str) -> tuple[Step, Module] | None:
        """The single module carrying a type tag.

        Raises:
            ReplacementError: If more than one module has the type.
        """
        found: tuple[Step, Module] | None = None
        for step in self._config.steps:
            for module in step.modules:
                if module.type != module_type:
                    continue
                if found is not None:
                    raise ReplacementError(f"found multiple modules with type {module_type}")
                found = (step, module)
        return found

    # --- Per-part resolution ---

    async def _resolve_module_inputs(
        self, module: Module, ctx: _Context
    ) -> tuple[dict[str, Any], str]:
        if not module.inputs:
            return {}, hashlib.sha256(b"").hexdigest()
        module_ctx = _Context(step=ctx.step, index=ctx.index, outputs=ctx.outputs, module=module)
        buffer = await self.replace_immediate(_dump_yaml(module.inputs), module_ctx)
        text = await self.replace_deferred(buffer, module_ctx)
        try:
            inputs = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            self._logger.debug("Broken inputs yaml %s/%s:\n%s", ctx.step.name, module.name, text)
            raise TemplateSyntaxError(f"{module.name} inputs", text, str(e)) from e
        return inputs, buffer.checksum

    async def _resolve_file(self, included: IncludedFile, ctx: _Context) -> tuple[IncludedFile, str]:
        if not included.name.endswith(TEMPLATE_SUFFIXES):
            checksum = hashlib.sha256(included.content).hexdigest()
            return IncludedFile(name=included.name, content=included.content), checksum
        buffer = await self.replace_immediate(included.content.decode("utf-8"), ctx)
        text = await self.replace_deferred(buffer, ctx)
        self._validate_file(included.name, text)
        return IncludedFile(name=included.name, content=text.encode("utf-8")), buffer.checksum

    def _validate_file(self, name: str, text: str) -> None:
        """Check that substituted content still parses as HCL or YAML.

        Raises:
            TemplateSyntaxError: With the offending content attached.
        """
        try:
            if name.endswith((".tf", ".hcl")):
                hcl2.loads(text)
            else:
                yaml.safe_load(text)
        except Exception as e:
            self._logger.debug("Broken file %s:\n%s", name, text)
            raise TemplateSyntaxError(name, text, str(e)) from e


# --- Helpers ---


def _only_types(tag: Tag, types: Collection[str]) -> bool:
    return all(c.literal is not None or c.type in types for c in tag.candidates)


def _dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, width=float("inf"))
