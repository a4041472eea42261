# src/versioning/approval.py — v1
"""Approval policies.

Two layers decide whether a plan may be applied without a human:
  - the version matrix, evaluated per module when a new release is stepped
    to (module_auto_approve), folded into a per-step flag;
  - the plan gate, evaluated on the plan's change counts together with the
    step policy and the manual approval mode (should_approve_pipeline).
"""

from __future__ import annotations

from packaging.version import Version

from infralib_agent.core.models import ChangeCounts, Step


def step_auto_approve(approve: str) -> bool:
    """Auto-approve flag of a step before any version delta is known."""
    if approve in ("never", "force"):
        return True
    if approve in ("", "always", "reject"):
        return False
    return True


def module_auto_approve(applied: Version, release: Version, approve: str) -> bool:
    """Version matrix for stepping a module from applied to release.

    never/force: always true. always/unset/reject: always false.
    major: true unless the major version grows.
    minor: true unless the major or minor version grows.
    """
    if approve in ("never", "force"):
        return True
    if approve in ("", "always", "reject"):
        return False
    if approve == "major":
        return applied.major >= release.major
    if approve == "minor":
        return applied.major >= release.major and applied.minor >= release.minor
    return False


def manual_approval(step: Step, command: str) -> str:
    """Manual approval mode of a step for the given command.

    Disabled when the step sets ``approve``. When only one of the two modes
    is set, ``run`` defaults to "changes" and ``update`` to "removes".
    """
    if step.approve:
        return ""
    if not step.run_approve and not step.update_approve:
        return ""
    if command == "run":
        return step.run_approve or "changes"
    return step.update_approve or "removes"


def should_stop_pipeline(changes: ChangeCounts, approve: str, manual: str) -> bool:
    """Stop after plan: reject policies or nothing to apply."""
    return approve == "reject" or manual == "reject" or changes.no_changes


def should_approve_pipeline(
    changes: ChangeCounts, approve: str, auto_approve: bool, manual: str
) -> bool:
    """Whether a plan with these counts may be applied without a human."""
    if approve == "force" or manual == "never":
        return True
    if changes.no_changes:
        return True
    if manual == "always":
        return False
    if manual == "changes":
        return changes.changed == 0 and changes.destroyed == 0
    if manual == "removes":
        return changes.destroyed == 0
    return changes.destroyed == 0 and (changes.changed == 0 or auto_approve)
