# src/pipeline/executor.py — v1
"""Pipeline executor contract and the dry-run backend.

The orchestrator drives a step through ``create_or_update`` then
``wait_for_completion``; the executor plans, gates and applies, and
reports the plan's change counts.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from infralib_agent.core.models import ChangeCounts, Step

PLAN_PATTERN = re.compile(r"Plan: (\d+) to add, (\d+) to change, (\d+) to destroy")
NO_CHANGES_PREFIXES = (
    "No changes. Your infrastructure matches the configuration.",
    "You can apply this plan to save these new output values",
)


@dataclass(frozen=True)
class ExecutionHandle:
    """Reference to a created or updated step pipeline."""

    pipeline_name: str
    step: Step


class BasePipelineExecutor(ABC):
    """Unified interface for pipeline backends.

    ``command`` is the agent command being processed ("run" or "update");
    it selects the step's manual approval mode.
    """

    command: str = "run"

    @abstractmethod
    async def create_or_update(self, step: Step) -> ExecutionHandle:
        """Create or refresh the pipeline for a step."""

    @abstractmethod
    async def wait_for_completion(self, handle: ExecutionHandle, auto_approve: bool) -> ChangeCounts:
        """Run plan and, when approved, apply.

        Raises:
            PipelineExecutionError: If plan or apply fails.
            PipelineRejectedError: If a reject policy or a human stops it.
        """


class DryRunExecutor(BasePipelineExecutor):
    """Logs what would run and reports no changes."""

    def __init__(self, prefix: str, logger: logging.Logger | None = None) -> None:
        self._prefix = prefix
        self._logger = logger or logging.getLogger(__name__)

    async def create_or_update(self, step: Step) -> ExecutionHandle:
        return ExecutionHandle(pipeline_name=f"{self._prefix}-{step.name}", step=step)

    async def wait_for_completion(self, handle: ExecutionHandle, auto_approve: bool) -> ChangeCounts:
        self._logger.info(
            "Dry run of pipeline %s (auto approve %s, modules %s)",
            handle.pipeline_name,
            auto_approve,
            ", ".join(f"{m.name}@{m.version}" for m in handle.step.modules),
        )
        return ChangeCounts()


def parse_plan_output(output: str) -> ChangeCounts | None:
    """Change counts from terraform plan output, None when no summary is found."""
    for line in output.splitlines():
        match = PLAN_PATTERN.search(line)
        if match:
            return ChangeCounts(
                added=int(match.group(1)),
                changed=int(match.group(2)),
                destroyed=int(match.group(3)),
            )
        if line.strip().startswith(NO_CHANGES_PREFIXES):
            return ChangeCounts()
    return None
