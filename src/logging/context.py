# src/logging/context.py — v2
"""Contextual logging support: attach run_id, release and step to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set once per run, per release iteration and per step respectively.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_release: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "release", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    release: int | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        release=_release.get(),
        step=_step.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per agent invocation)."""
    _run_id.set(run_id)


def set_release_context(release: int) -> None:
    """Set the release index being walked."""
    _release.set(release)
    _step.set(None)


def set_step_context(step: str | None) -> None:
    """Set the step being processed.

    Tasks spawned for parallel steps copy the current context, so a value set
    inside a task never leaks back to the orchestrator.
    """
    _step.set(step)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _release.set(None)
    _step.set(None)
