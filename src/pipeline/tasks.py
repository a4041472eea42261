# src/pipeline/tasks.py — v1
"""Task group for concurrently dispatched step executions.

Dispatched steps only report back through their TaskResult; the state
document is persisted by the orchestrator once the group is joined.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskResult:
    step_name: str
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class StepTaskGroup:
    """Spawn step executions, then join them into a list of results."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def spawn(self, step_name: str, execution: Awaitable[None]) -> None:
        self._tasks[step_name] = asyncio.ensure_future(execution)

    @property
    def pending(self) -> bool:
        """True while any spawned execution has not settled yet."""
        return any(not task.done() for task in self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    async def join(self) -> list[TaskResult]:
        """Wait for every execution; failures are collected, not raised."""
        if not self._tasks:
            return []
        names = list(self._tasks)
        outcomes = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        results: list[TaskResult] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Step %s failed: %s", name, outcome)
                results.append(TaskResult(name, outcome))
            else:
                results.append(TaskResult(name))
        return results


def steps_to_retry(results: list[TaskResult], deferred: list[str]) -> list[str]:
    """Steps for the sequential retry pass: deferred ones first, then failures.

    Order follows first appearance; a step is retried at most once.
    """
    retry: list[str] = []
    for name in [*deferred, *(r.step_name for r in results if r.failed)]:
        if name not in retry:
            retry.append(name)
    return retry
