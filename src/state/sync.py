# src/state/sync.py — v1
"""Keep the State document in step with the config.

State steps and modules are created for new config entries and dropped
when the owning step or module leaves the config.
"""

from __future__ import annotations

from datetime import datetime, timezone

from infralib_agent.core.models import (
    MODULE_TYPE_CUSTOM,
    Config,
    Module,
    State,
    StateModule,
    StateStep,
)


def sync_state(config: Config, state: State) -> None:
    """Add missing state entries and remove unused ones, in place."""
    if not state.steps:
        state.steps = [_create_step(step.name, step.workspace, step.modules) for step in config.steps]
        return
    _remove_unused_steps(config, state)
    _add_new_steps(config, state)


def create_state_module(module: Module) -> StateModule:
    state_module = StateModule(name=module.name)
    if module.is_client:
        state_module.type = MODULE_TYPE_CUSTOM
    return state_module


def mark_step_applied(step_state: StateStep) -> None:
    """Confirm the target version of every module as applied."""
    step_state.applied_at = datetime.now(timezone.utc)
    for module in step_state.modules:
        if module.version:
            module.applied_version = module.version


# --- Helpers ---


def _create_step(name: str, workspace: str, modules: list[Module]) -> StateStep:
    return StateStep(
        name=name,
        workspace=workspace,
        modules=[create_state_module(module) for module in modules],
    )


def _add_new_steps(config: Config, state: State) -> None:
    for step in config.steps:
        step_state = state.get_step(step.name)
        if step_state is None:
            step_state = StateStep(name=step.name, workspace=step.workspace)
            state.steps.append(step_state)
        for module in step.modules:
            if step_state.get_module(module.name) is None:
                step_state.modules.append(create_state_module(module))


def _remove_unused_steps(config: Config, state: State) -> None:
    kept: list[StateStep] = []
    for step_state in state.steps:
        step = config.get_step(step_state.name)
        if step is None:
            continue
        names = {module.name for module in step.modules}
        step_state.modules = [m for m in step_state.modules if m.name in names]
        kept.append(step_state)
    state.steps = kept
