from __future__ import annotations

import pytest

from missionctl.coordinator.permissions import ACTIONS, PERMISSION_MATRIX, approval_gate_for, check_permission
from missionctl.protocol.models import AgentGuardrails


def test_matrix_covers_every_action() -> None:
    for level in (1, 2, 3, 4):
        assert set(PERMISSION_MATRIX[level]) == set(ACTIONS)


@pytest.mark.parametrize(
    ("level", "result", "gate"),
    [
        (1, "approval_required", "human_required"),
        (2, "approval_required", "human_required"),
        (3, "allow", "guardrail_check"),
        (4, "allow", "self_approved"),
    ],
)
def test_task_execute_by_level(level: int, result: str, gate: str) -> None:
    check = check_permission(level, "task:execute")
    assert check.result == result
    assert check.approval_gate == gate
    assert check.allowed == (result == "allow")


def test_matrix_deny_is_final() -> None:
    guardrails = AgentGuardrails(allowed_actions=["comms:broadcast"])
    check = check_permission(1, "comms:broadcast", guardrails)
    assert check.result == "deny"
    assert "Level 1 does not permit" in check.reason


def test_draft_at_level_two() -> None:
    check = check_permission(2, "mission:create")
    assert check.result == "draft"
    assert "can only draft" in check.reason


def test_denied_action_guardrail() -> None:
    check = check_permission(4, "task:execute", AgentGuardrails(denied_actions=["task:execute"]))
    assert check.result == "deny"
    assert "explicitly denied" in check.reason


def test_level_three_domain_guardrail() -> None:
    guardrails = AgentGuardrails(allowed_domains=["backend"])
    inside = check_permission(3, "task:execute", guardrails, domains=["backend"])
    outside = check_permission(3, "task:execute", guardrails, domains=["backend", "billing"])
    wildcard = check_permission(
        3, "task:execute", AgentGuardrails(allowed_domains=["*"]), domains=["billing"]
    )
    assert inside.allowed
    assert outside.result == "approval_required"
    assert outside.approval_gate == "guardrail_check"
    assert "billing" in outside.reason
    assert wildcard.allowed


def test_domain_guardrail_only_applies_at_level_three() -> None:
    guardrails = AgentGuardrails(allowed_domains=["backend"])
    assert check_permission(4, "task:execute", guardrails, domains=["billing"]).allowed


def test_unknown_action_or_level() -> None:
    assert check_permission(4, "task:teleport").result == "deny"
    assert check_permission(7, "task:execute").result == "deny"


def test_gate_for_level() -> None:
    assert [approval_gate_for(n) for n in (1, 2, 3, 4)] == [
        "human_required",
        "human_required",
        "guardrail_check",
        "self_approved",
    ]
