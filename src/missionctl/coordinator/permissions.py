"""Level-based permission matrix with per-agent guardrail overrides."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from missionctl.protocol.models import AgentGuardrails

PermissionResult = Literal["allow", "deny", "approval_required", "draft"]
ApprovalGate = Literal["human_required", "guardrail_check", "self_approved"]

ACTIONS: tuple[str, ...] = (
    "mission:create",
    "mission:execute",
    "mission:approve_statement",
    "mission:approve_plan",
    "mission:assign",
    "task:execute",
    "task:create_subtask",
    "task:complete",
    "task:reassign",
    "comms:send_message",
    "comms:delegate",
    "comms:broadcast",
    "context:read",
    "context:write",
    "context:delete",
    "autonomous:act",
    "autonomous:self_schedule",
    "autonomous:override_lower",
)


def _level(overrides: dict[str, PermissionResult], default: PermissionResult) -> dict[str, PermissionResult]:
    return {action: overrides.get(action, default) for action in ACTIONS}


PERMISSION_MATRIX: dict[int, dict[str, PermissionResult]] = {
    1: _level({"task:execute": "approval_required", "context:read": "allow"}, "deny"),
    2: _level(
        {
            "mission:create": "draft",
            "mission:execute": "approval_required",
            "task:execute": "approval_required",
            "task:create_subtask": "draft",
            "comms:send_message": "approval_required",
            "context:read": "allow",
        },
        "deny",
    ),
    3: _level(
        {
            "mission:create": "allow",
            "mission:execute": "allow",
            "task:execute": "allow",
            "task:create_subtask": "allow",
            "task:complete": "allow",
            "comms:send_message": "allow",
            "comms:broadcast": "allow",
            "context:read": "allow",
            "context:write": "allow",
            "autonomous:act": "allow",
        },
        "deny",
    ),
    4: _level({}, "allow"),
}


@dataclass(slots=True, frozen=True)
class PermissionCheck:
    action: str
    result: PermissionResult
    approval_gate: ApprovalGate
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.result == "allow"


def approval_gate_for(level: int) -> ApprovalGate:
    if level <= 2:
        return "human_required"
    if level == 3:
        return "guardrail_check"
    return "self_approved"


def check_permission(
    level: int,
    action: str,
    guardrails: AgentGuardrails | None = None,
    domains: Iterable[str] = (),
) -> PermissionCheck:
    """Evaluate *action* for an agent at *level*.

    Order: matrix deny is final, then per-agent denied actions, then the
    level-3 domain guardrail, then the matrix value itself.
    """
    guardrails = guardrails or AgentGuardrails()
    gate = approval_gate_for(level)
    matrix_result = PERMISSION_MATRIX.get(level, {}).get(action)

    if matrix_result is None:
        return PermissionCheck(action, "deny", gate, f'Unknown action "{action}" or level {level}')
    if matrix_result == "deny":
        return PermissionCheck(action, "deny", gate, f'Level {level} does not permit "{action}"')
    if action in guardrails.denied_actions:
        return PermissionCheck(action, "deny", gate, f'Action "{action}" is explicitly denied for this agent')

    allowed_domains = guardrails.allowed_domains
    if level == 3 and allowed_domains and "*" not in allowed_domains:
        outside = [d for d in domains if d not in allowed_domains]
        if outside:
            return PermissionCheck(
                action,
                "approval_required",
                "guardrail_check",
                f"Domain(s) outside guardrails: {', '.join(outside)}",
            )

    if matrix_result == "approval_required":
        return PermissionCheck(action, matrix_result, gate, f'Level {level} requires approval for "{action}"')
    if matrix_result == "draft":
        return PermissionCheck(action, matrix_result, gate, f'Level {level} can only draft "{action}"')
    return PermissionCheck(action, "allow", gate)
