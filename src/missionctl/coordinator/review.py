"""Reviewer response parsing.

Reviewers are asked for JSON but often answer in prose. Parsing tries a
fenced ``json`` block, then the outermost bare object, then keyword
heuristics. Nothing here raises: unparseable text becomes a ``revise``
decision carrying the raw text as instructions.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Container

from missionctl.protocol.models import ReviewAction

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_BARE_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

APPROVE_KEYWORDS = ("approved", "looks good", "pass")
REDO_KEYWORDS = ("redo", "start over", "fundamentally wrong")

_APPROVE_RE = re.compile(r"\b(?:" + "|".join(map(re.escape, APPROVE_KEYWORDS)) + r")\b")
_REDO_RE = re.compile(r"\b(?:" + "|".join(map(re.escape, REDO_KEYWORDS)) + r")\b")
# A negation word followed only by words up to the keyword: "not yet approved", "does not pass".
_NEGATION_RE = re.compile(r"\b(?:not|never|no|isn't|doesn't|don't|didn't|won't|can't|cannot)\b[\w\s']*$")
_NEGATION_WINDOW = 24


@dataclass(slots=True)
class ReviewDecision:
    action: ReviewAction
    summary: str
    confidence_score: float = 0.0
    specific_issues: list[str] = field(default_factory=list)
    new_instructions: str | None = None
    reassign_agent_id: str | None = None


def _resolve_action(parsed: dict[str, Any]) -> ReviewAction:
    action = parsed.get("action")
    if isinstance(action, str) and action.lower() in {"approve", "revise", "redo"}:
        return action.lower()  # type: ignore[return-value]
    if parsed.get("approved") is True:
        return "approve"
    return "revise"


def _decision_from_json(parsed: dict[str, Any], known_agents: Container[str] | None) -> ReviewDecision:
    action = _resolve_action(parsed)
    summary = parsed.get("summary")
    if not isinstance(summary, str):
        summary = "Review approved." if action == "approve" else "Reviewer requested changes."

    score = parsed.get("confidence_score")
    confidence = 0.0
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        confidence = max(0.0, min(1.0, float(score)))

    issues = parsed.get("specific_issues")
    specific_issues = [item for item in issues if isinstance(item, str)] if isinstance(issues, list) else []

    new_instructions = None
    for key in ("new_instructions", "follow_up_instructions", "followUpInstructions"):
        if isinstance(parsed.get(key), str):
            new_instructions = parsed[key]
            break

    reassign = parsed.get("reassign_agent_id")
    if not isinstance(reassign, str) or not reassign:
        reassign = None
    elif known_agents is not None and reassign not in known_agents:
        logger.info("ignoring reassignment to unknown agent %s", reassign)
        reassign = None

    return ReviewDecision(
        action=action,
        summary=summary,
        confidence_score=confidence,
        specific_issues=specific_issues,
        new_instructions=new_instructions,
        reassign_agent_id=reassign,
    )


def _approves(lowered: str) -> bool:
    """True when an approve keyword appears as a whole word and is not negated."""
    for match in _APPROVE_RE.finditer(lowered):
        before = lowered[max(0, match.start() - _NEGATION_WINDOW) : match.start()]
        if not _NEGATION_RE.search(before):
            return True
    return False


def parse_review_decision(raw_text: str, known_agents: Container[str] | None = None) -> ReviewDecision:
    """Turn a reviewer's free-text response into a decision.

    ``known_agents`` filters ``reassign_agent_id``; pass None to accept any id.
    """
    text = raw_text.strip()

    candidates: list[str] = []
    fenced = _FENCED_JSON_RE.search(text)
    if fenced and fenced.group(1):
        candidates.append(fenced.group(1))
    bare = _BARE_OBJECT_RE.search(text)
    if bare:
        candidates.append(bare.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return _decision_from_json(parsed, known_agents)

    lowered = text.lower()
    if _approves(lowered):
        return ReviewDecision(action="approve", summary=text or "Review approved.")
    if _REDO_RE.search(lowered):
        return ReviewDecision(
            action="redo",
            summary=text or "Reviewer requested a complete redo.",
            new_instructions=text or "Please redo this task with a new approach.",
        )
    return ReviewDecision(
        action="revise",
        summary="Reviewer requested changes.",
        new_instructions=text or "Please revise based on reviewer feedback.",
    )
