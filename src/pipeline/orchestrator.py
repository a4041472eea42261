# src/pipeline/orchestrator.py — v2
"""Rollout orchestrator: the release-by-release control loop.

For every release index of the walk, steps are processed in config order:
    PENDING -> FILES_WRITTEN -> SKIPPED | EXECUTING -> APPLIED | FAILED

First-run steps whose state already matches the release may be dispatched
concurrently. State is persisted by this loop only, once every step of the
iteration has settled and again after the sequential retry pass.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml

from infralib_agent.config.merge import deep_merge_inputs
from infralib_agent.core.errors import (
    AgentError,
    ParameterNotFoundError,
    PipelineExecutionError,
    PipelineRejectedError,
    RolloutError,
    SourceFileNotFoundError,
)
from infralib_agent.core.models import (
    MODULE_TYPE_CUSTOM,
    STEP_TYPE_ARGOCD,
    Config,
    ModuleVersion,
    State,
    StateStep,
    Step,
)
from infralib_agent.core.versions import format_version
from infralib_agent.detection.change_detector import ChangeDetector
from infralib_agent.detection.step_checksums import StepChecksumHistory, StepChecksums
from infralib_agent.logging.context import set_release_context, set_step_context
from infralib_agent.pipeline.artifacts import BucketArtifactWriter, StepArtifacts
from infralib_agent.pipeline.executor import BasePipelineExecutor
from infralib_agent.pipeline.tasks import StepTaskGroup, TaskResult, steps_to_retry
from infralib_agent.replace.engine import TemplateEngine
from infralib_agent.replace.params import BaseParameterStore
from infralib_agent.sources.registry import SourceRegistry
from infralib_agent.state.store import StateStore
from infralib_agent.state.sync import mark_step_applied, sync_state
from infralib_agent.storage.base_bucket import BaseBucket
from infralib_agent.versioning.resolver import VersionResolver

DEFAULT_INPUT_FILE = "agent_input.yaml"


class RolloutOrchestrator:
    """Walks releases and drives every step through version, template and apply.

    Args:
        config: Resolved rollout document.
        steps: Runnable steps, in config order.
        state: Loaded state document, mutated in place.
        registry: Sources with their release walks.
        state_store: Persistence for ``state``.
        bucket: Artifact bucket (step folders and terraform outputs).
        executor: Pipeline backend.
        parameters: Parameter store for template lookups.
        prefix: Cloud resource prefix.
        provider_type: Cloud provider, selects provider-specific default inputs.
        account_id: Value of ``{{ agent.accountId }}``.
        parameter_root: Root path of derived parameter names.
        allow_parallel: Permit concurrent dispatch of first-run steps.
    """

    def __init__(
        self,
        config: Config,
        steps: list[Step],
        state: State,
        registry: SourceRegistry,
        state_store: StateStore,
        bucket: BaseBucket,
        executor: BasePipelineExecutor,
        parameters: BaseParameterStore,
        prefix: str,
        provider_type: str = "local",
        account_id: str = "",
        parameter_root: str = "/entigo-infralib",
        allow_parallel: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._steps = steps
        self._state = state
        self._registry = registry
        self._state_store = state_store
        self._executor = executor
        self._provider_type = provider_type
        self._allow_parallel = allow_parallel
        self._logger = logger or logging.getLogger(__name__)
        self._command = "run"
        self._first_run_done: set[str] = set()
        self._history = StepChecksumHistory()
        self._resolver = VersionResolver(registry, logger=self._logger)
        self._detector = ChangeDetector(registry, self._history, logger=self._logger)
        self._artifacts = BucketArtifactWriter(bucket, prefix, logger=self._logger)
        self._engine = TemplateEngine(
            config,
            prefix,
            parameters,
            bucket,
            version_preview=self._preview_version,
            account_id=account_id,
            parameter_root=parameter_root,
            logger=self._logger,
        )

    @property
    def state(self) -> State:
        return self._state

    async def process(self, command: str) -> None:
        """Run (release index 0) or update (indexes 1..n-1) every runnable step.

        Raises:
            RolloutError: If any step fails for good.
        """
        self._command = command
        self._executor.command = command
        if command == "update":
            most_releases = self._registry.most_releases
            if most_releases < 2:
                self._logger.info("No updates found")
                return
            indexes = range(1, most_releases)
        else:
            indexes = range(0, 1)
        for index in indexes:
            set_release_context(index)
            await self._process_release(index)

    # --- Release iteration ---

    async def _process_release(self, index: int) -> None:
        self._logger.info("Applying releases: %s", ", ".join(self._registry.release_labels(index)))
        sync_state(self._config, self._state)
        if self._command == "update":
            await self._registry.update_checksums(index)

        group = StepTaskGroup()
        deferred: list[str] = []
        failed: list[TaskResult] = []
        fatal: tuple[str, BaseException] | None = None
        try:
            fatal = await self._process_steps(index, group, deferred, failed)
        finally:
            results = await group.join()
            await self._state_store.save(self._state)
            set_step_context(None)

        if fatal is not None:
            name, error = fatal
            raise RolloutError(f"step {name} failed: {error}") from error
        results.extend(failed)
        for result in results:
            if result.failed and not _retryable(result.error):
                raise RolloutError(
                    f"step {result.step_name} failed: {result.error}"
                ) from result.error

        retry = steps_to_retry(results, deferred)
        if retry:
            await self._retry_steps(index, retry)
        if self._command == "update":
            self._registry.swap_checksums()

    async def _process_steps(
        self,
        index: int,
        group: StepTaskGroup,
        deferred: list[str],
        failed: list[TaskResult],
    ) -> tuple[str, BaseException] | None:
        for step in self._steps:
            set_step_context(step.name)
            try:
                await self._process_step(index, step, group)
            except ParameterNotFoundError as e:
                if not group.pending:
                    return step.name, e
                self._logger.warning("%s, step %s will be retried if others succeed", e, step.name)
                deferred.append(step.name)
            except PipelineExecutionError as e:
                if not self._allow_parallel or not _retryable(e):
                    return step.name, e
                self._logger.error("Step %s failed, queued for retry: %s", step.name, e)
                failed.append(TaskResult(step.name, e))
            except AgentError as e:
                return step.name, e
        return None

    async def _retry_steps(self, index: int, names: list[str]) -> None:
        self._allow_parallel = False
        group = StepTaskGroup()
        for name in names:
            step = next(s for s in self._steps if s.name == name)
            # a failed dispatch has not completed its first run
            self._first_run_done.discard(name)
            set_step_context(name)
            self._logger.info("Retrying step %s", name)
            try:
                await self._process_step(index, step, group)
            except AgentError as e:
                await self._state_store.save(self._state)
                raise RolloutError(f"failed to apply step {name}: {e}") from e
        await self._state_store.save(self._state)

    # --- Step processing ---

    async def _process_step(self, index: int, step: Step, group: StepTaskGroup) -> None:
        step_state = self._state.get_step(step.name)
        if step_state is None:
            raise AgentError(f"failed to get state for step {step.name}")
        versions = self._resolver.update_module_versions(step, step_state, index)
        prepared = await self._with_default_inputs(step, versions)
        resolved = await self._engine.resolve_step(prepared, index)
        artifacts = await self._artifacts.write_step(resolved.step, versions)
        self._history.record(
            step.name, StepChecksums(resolved.module_checksums, resolved.file_checksums)
        )
        first_run = step.name not in self._first_run_done
        await self._apply_release(first_run, artifacts, resolved.step, step_state, index, group)
        self._first_run_done.add(step.name)

    async def _apply_release(
        self,
        first_run: bool,
        artifacts: StepArtifacts,
        step: Step,
        step_state: StateStep,
        index: int,
        group: StepTaskGroup,
    ) -> None:
        if not artifacts.execute and not first_run:
            self._logger.info(
                "Skipping step %s because all applied module versions are newer or older "
                "than current releases",
                step.name,
            )
            return
        if not first_run:
            if not self._detector.has_changed(step, artifacts.providers):
                self._logger.info("Skipping step %s", step.name)
                mark_step_applied(step_state)
                await self._state_store.save(self._state)
                return
            await self._execute(step, step_state)
            await self._state_store.save(self._state)
            return
        if not self._allow_parallel or not self._applied_version_matches_release(
            step, step_state, index
        ):
            await self._execute(step, step_state)
            await self._state_store.save(self._state)
            return
        self._logger.info("Dispatching step %s in parallel", step.name)
        group.spawn(step.name, self._execute(step, step_state))

    async def _execute(self, step: Step, step_state: StateStep) -> None:
        """Plan and apply a step, then confirm its module versions in memory."""
        set_step_context(step.name)
        self._logger.info("Applying release for step %s", step.name)
        handle = await self._executor.create_or_update(step)
        changes = await self._executor.wait_for_completion(handle, step_state.auto_approve)
        mark_step_applied(step_state)
        self._logger.info(
            "Release applied successfully for step %s (%s)",
            step.name,
            changes,
            extra={
                "data": {
                    "step": step.name,
                    "modules": {m.name: m.applied_version for m in step_state.modules},
                    "added": changes.added,
                    "changed": changes.changed,
                    "destroyed": changes.destroyed,
                }
            },
        )

    def _applied_version_matches_release(
        self, step: Step, step_state: StateStep, index: int
    ) -> bool:
        for module_state in step_state.modules:
            if module_state.type == MODULE_TYPE_CUSTOM:
                continue
            if module_state.applied_version is None:
                return False
            module = step.get_module(module_state.name)
            if module is None:
                continue
            source = self._registry.for_module(module)
            expected = source.release_label(index)
            if format_version(module_state.applied_version) != format_version(expected):
                return False
        return True

    async def _with_default_inputs(
        self, step: Step, versions: dict[str, ModuleVersion]
    ) -> Step:
        """Copy of step with each module's default inputs merged under its own."""
        prepared = step.model_copy(deep=True)
        for module in prepared.modules:
            if module.is_client:
                continue
            source = self._registry.for_module(module)
            release = versions[module.name].version
            folder = module.source if step.type != STEP_TYPE_ARGOCD else f"k8s/{module.source}"
            defaults: dict[str, Any] = {}
            for name in (DEFAULT_INPUT_FILE, f"agent_input_{self._provider_type}.yaml"):
                path = f"modules/{folder}/{name}"
                try:
                    content = await source.storage.get_file(path, release)
                except SourceFileNotFoundError:
                    continue
                try:
                    data = yaml.safe_load(content) or {}
                except yaml.YAMLError as e:
                    raise AgentError(f"failed to parse {path} at {release}: {e}") from e
                defaults = deep_merge_inputs(defaults, data)
            if defaults:
                module.inputs = deep_merge_inputs(defaults, module.inputs)
        return prepared

    def _preview_version(self, step_name: str, module_name: str, index: int) -> str:
        return self._resolver.preview_version(
            self._config.steps, self._state, step_name, module_name, index
        )


def _retryable(error: BaseException | None) -> bool:
    return isinstance(error, PipelineExecutionError) and not isinstance(
        error, PipelineRejectedError
    )
