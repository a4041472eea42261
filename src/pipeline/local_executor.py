# src/pipeline/local_executor.py — v1
"""Run step pipelines as local processes.

The configured command is invoked once for the plan and once for the
apply, with the action passed in the ``COMMAND`` environment variable
(``plan``/``apply`` for terraform, ``argocd-plan``/``argocd-apply`` for
ArgoCD steps).
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from infralib_agent.core.errors import PipelineExecutionError, PipelineRejectedError
from infralib_agent.core.models import STEP_TYPE_ARGOCD, ChangeCounts, Step
from infralib_agent.pipeline.executor import (
    BasePipelineExecutor,
    ExecutionHandle,
    parse_plan_output,
)
from infralib_agent.versioning.approval import (
    manual_approval,
    should_approve_pipeline,
    should_stop_pipeline,
)

# (pipeline name, plan counts) -> approved
ApprovalGate = Callable[[str, ChangeCounts], Awaitable[bool]]

_input_lock = asyncio.Lock()


async def console_approval(pipeline_name: str, changes: ChangeCounts) -> bool:
    """Ask on the terminal; one prompt at a time."""
    async with _input_lock:
        while True:
            answer = await asyncio.to_thread(
                input,
                f"Pipeline {pipeline_name} changes: {changes.changed} to change, "
                f"{changes.destroyed} to destroy. Approve changes? (yes/no) ",
            )
            answer = answer.strip().lower()
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False


def step_commands(step: Step) -> tuple[str, str]:
    if step.type == STEP_TYPE_ARGOCD:
        return "argocd-plan", "argocd-apply"
    return "plan", "apply"


class LocalPipelineExecutor(BasePipelineExecutor):
    """Plan/apply through a shell command with an approval gate in between."""

    def __init__(
        self,
        command: str,
        prefix: str,
        bucket: str = "",
        logs_path: Path | None = None,
        approval_gate: ApprovalGate | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._shell_command = command
        self._prefix = prefix
        self._bucket = bucket
        self._logs_path = logs_path
        self._approval_gate = approval_gate or console_approval
        self._logger = logger or logging.getLogger(__name__)

    async def create_or_update(self, step: Step) -> ExecutionHandle:
        return ExecutionHandle(pipeline_name=f"{self._prefix}-{step.name}", step=step)

    async def wait_for_completion(self, handle: ExecutionHandle, auto_approve: bool) -> ChangeCounts:
        step = handle.step
        name = handle.pipeline_name
        plan_command, apply_command = step_commands(step)
        self._logger.info("Starting local pipeline %s", name)

        output = await self._execute(handle, plan_command)
        changes = parse_plan_output(output)
        if changes is None:
            raise PipelineExecutionError(f"couldn't find plan output from logs for {name}")
        self._logger.info("Pipeline %s: %s", name, changes)

        manual = manual_approval(step, self.command)
        if should_stop_pipeline(changes, step.approve, manual):
            if step.approve == "reject" or manual == "reject":
                raise PipelineRejectedError(f"pipeline {name} stopped because approve type is 'reject'")
            self._logger.info("No changes detected for %s, skipping apply", name)
            return changes

        if should_approve_pipeline(changes, step.approve, auto_approve, manual):
            self._logger.info("Approved %s", name)
        elif not await self._approval_gate(name, changes):
            raise PipelineRejectedError(f"changes not approved for {name}")

        await self._execute(handle, apply_command)
        return changes

    async def _execute(self, handle: ExecutionHandle, action: str) -> str:
        process = await asyncio.create_subprocess_shell(
            self._shell_command,
            env=self._env(handle, action),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        output = stdout.decode("utf-8", errors="replace")
        self._logger.debug("%s output of %s:\n%s", action, handle.pipeline_name, output)
        self._write_log(handle.pipeline_name, action, output)
        if process.returncode != 0:
            raise PipelineExecutionError(
                f"failed to execute {action} for {handle.pipeline_name}: "
                f"exit code {process.returncode}: {stderr.decode('utf-8', errors='replace').strip()}"
            )
        return output

    def _env(self, handle: ExecutionHandle, action: str) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            COMMAND=action,
            TF_VAR_prefix=handle.pipeline_name,
            INFRALIB_BUCKET=self._bucket,
        )
        step = handle.step
        if step.type == STEP_TYPE_ARGOCD:
            if step.kubernetes.cluster_name:
                env["KUBERNETES_CLUSTER_NAME"] = step.kubernetes.cluster_name
            env["ARGOCD_NAMESPACE"] = step.kubernetes.argocd_namespace or "argocd"
        return env

    def _write_log(self, pipeline_name: str, action: str, output: str) -> None:
        if self._logs_path is None:
            return
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        file_name = f"{action}_{pipeline_name}_{stamp}.log".replace("-", "_")
        try:
            self._logs_path.mkdir(parents=True, exist_ok=True)
            (self._logs_path / file_name).write_text(output, encoding="utf-8")
        except OSError as e:
            self._logger.warning("Failed to write log file %s: %s", file_name, e)
