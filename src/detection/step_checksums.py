# src/detection/step_checksums.py — v1
"""Per-step phase-1 checksums kept across release iterations."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StepChecksums:
    module_checksums: dict[str, str] = field(default_factory=dict)
    file_checksums: dict[str, str] = field(default_factory=dict)


class StepChecksumHistory:
    """Current and previous checksums of every step processed so far."""

    def __init__(self) -> None:
        self._current: dict[str, StepChecksums] = {}
        self._previous: dict[str, StepChecksums] = {}

    def record(self, step_name: str, checksums: StepChecksums) -> None:
        """Store new checksums, moving the existing ones to previous."""
        if step_name in self._current:
            self._previous[step_name] = self._current[step_name]
        self._current[step_name] = checksums

    def current(self, step_name: str) -> StepChecksums | None:
        return self._current.get(step_name)

    def previous(self, step_name: str) -> StepChecksums | None:
        return self._previous.get(step_name)
