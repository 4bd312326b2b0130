"""Decides whether a task is implementation work that owes a proof of change."""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from missionctl.protocol.models import Task

_NON_CODE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bnon[-\s]?code\b"),
    re.compile(r"\bno[-\s]?code\b"),
]

ANALYSIS_ONLY_HINTS: tuple[str, ...] = (
    "plan only",
    "proposal",
    "propose",
    "draft plan",
    "analysis only",
    "spec only",
    "brainstorm",
    "outline",
    "research",
    "investigate",
    "explore",
)

_IMPLEMENTATION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"\b{word}\b")
    for word in (
        "implement",
        "build",
        "create",
        "update",
        "refactor",
        "fix",
        "code",
        "frontend",
        "backend",
        "component",
        "hook",
        "migration",
        "schema",
        "supabase",
        "api",
        "wire",
        "integration",
        "typescript",
        "react",
        "ui",
        "mission control",
        "database",
        "feature",
    )
]


@runtime_checkable
class ProofClassifier(Protocol):
    def requires_proof(self, task: Task) -> bool: ...


class KeywordProofClassifier:
    """Keyword heuristics over title, description and instructions.

    Explicit non-code or analysis-only hints win over implementation words.
    """

    def requires_proof(self, task: Task) -> bool:
        text = " ".join([task.title, task.description, task.input_text]).lower()
        if any(p.search(text) for p in _NON_CODE_PATTERNS):
            return False
        if any(hint in text for hint in ANALYSIS_ONLY_HINTS):
            return False
        return any(p.search(text) for p in _IMPLEMENTATION_PATTERNS)


class AlwaysRequireProof:
    """Every task owes a proof (`proof.force` in config)."""

    def requires_proof(self, task: Task) -> bool:
        return True


def classifier_for(force: bool) -> ProofClassifier:
    return AlwaysRequireProof() if force else KeywordProofClassifier()
