# tests/unit/versioning/test_unit_approval.py — v1
"""Tests for versioning/approval.py — version matrix and plan gates."""

from __future__ import annotations

import pytest
from packaging.version import Version

from infralib_agent.core.models import ChangeCounts, Step
from infralib_agent.versioning.approval import (
    manual_approval,
    module_auto_approve,
    should_approve_pipeline,
    should_stop_pipeline,
    step_auto_approve,
)

V100 = Version("1.0.0")
V110 = Version("1.1.0")
V111 = Version("1.1.1")
V200 = Version("2.0.0")


class TestModuleAutoApprove:
    @pytest.mark.parametrize(
        "approve,release,expected",
        [
            ("never", V200, True),
            ("force", V200, True),
            ("", V111, False),
            ("always", V111, False),
            ("reject", V111, False),
            ("major", V111, True),
            ("major", V200, False),
            ("minor", V111, True),
            ("minor", V200, False),
        ],
    )
    def test_matrix(self, approve, release, expected):
        assert module_auto_approve(V110, release, approve) is expected

    def test_minor_bump_is_not_auto_approved_under_minor(self):
        assert module_auto_approve(V100, V110, "minor") is False

    def test_minor_bump_is_auto_approved_under_major(self):
        assert module_auto_approve(V100, V110, "major") is True

    def test_unknown_policy_is_not_approved(self):
        assert module_auto_approve(V100, V100, "sometimes") is False

    @pytest.mark.parametrize("approve", ["", "minor", "major", "always", "never", "force", "reject"])
    def test_total_over_policies(self, approve):
        for applied in (V100, V110, V200):
            for release in (V100, V110, V111, V200):
                assert isinstance(module_auto_approve(applied, release, approve), bool)


class TestStepAutoApprove:
    def test_never_and_force(self):
        assert step_auto_approve("never") is True
        assert step_auto_approve("force") is True

    def test_manual_policies(self):
        for approve in ("", "always", "reject"):
            assert step_auto_approve(approve) is False

    def test_version_policies_start_approved(self):
        assert step_auto_approve("minor") is True
        assert step_auto_approve("major") is True


class TestManualApproval:
    def test_disabled_by_approve(self):
        step = Step(name="s", approve="minor", run_approve="always")
        assert manual_approval(step, "run") == ""

    def test_unset(self):
        assert manual_approval(Step(name="s"), "run") == ""

    def test_defaults_when_one_mode_is_set(self):
        step = Step(name="s", update_approve="always")
        assert manual_approval(step, "run") == "changes"
        assert manual_approval(step, "update") == "always"

        step = Step(name="s", run_approve="never")
        assert manual_approval(step, "update") == "removes"


class TestPipelineGates:
    def test_stop_on_reject(self):
        assert should_stop_pipeline(ChangeCounts(added=1), "reject", "") is True
        assert should_stop_pipeline(ChangeCounts(added=1), "", "reject") is True

    def test_stop_on_no_changes(self):
        assert should_stop_pipeline(ChangeCounts(), "", "") is True
        assert should_stop_pipeline(ChangeCounts(added=1), "", "") is False

    def test_force_and_manual_never(self):
        destroy = ChangeCounts(destroyed=3)
        assert should_approve_pipeline(destroy, "force", False, "") is True
        assert should_approve_pipeline(destroy, "", False, "never") is True

    def test_manual_modes(self):
        change = ChangeCounts(changed=1)
        add = ChangeCounts(added=1)
        destroy = ChangeCounts(destroyed=1)
        assert should_approve_pipeline(add, "", True, "always") is False
        assert should_approve_pipeline(add, "", False, "changes") is True
        assert should_approve_pipeline(change, "", True, "changes") is False
        assert should_approve_pipeline(change, "", False, "removes") is True
        assert should_approve_pipeline(destroy, "", True, "removes") is False

    def test_default_gate(self):
        assert should_approve_pipeline(ChangeCounts(added=2), "", False, "") is True
        assert should_approve_pipeline(ChangeCounts(changed=1), "", False, "") is False
        assert should_approve_pipeline(ChangeCounts(changed=1), "minor", True, "") is True
        assert should_approve_pipeline(ChangeCounts(destroyed=1), "minor", True, "") is False
