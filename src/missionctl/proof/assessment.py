"""Proof block parsing and assessment."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

from missionctl.proof.classifier import KeywordProofClassifier, ProofClassifier
from missionctl.proof.generator import ChangedFile, ProofReport
from missionctl.protocol.models import Task

ProofState = Literal["verified", "not_required", "missing", "invalid"]

_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass(slots=True)
class ProofAssessment:
    state: ProofState
    label: str
    detail: str
    report: ProofReport | None
    requires_proof: bool


def _normalize_files(value: Any) -> list[ChangedFile]:
    if not isinstance(value, list):
        return []
    files: list[ChangedFile] = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                files.append(ChangedFile(entry.strip()))
            continue
        if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
            continue
        path = entry["path"].strip()
        if not path:
            continue
        status = entry.get("status")
        status = status.strip().lower() if isinstance(status, str) else ""
        files.append(ChangedFile(path, status or "modified"))
    return files


def parse_proof_report(output_text: str | None) -> ProofReport | None:
    """The last fenced JSON block carrying ``result`` and ``changed_files``."""
    if not output_text:
        return None
    for candidate in reversed([m.group(1).strip() for m in _FENCE_RE.finditer(output_text)]):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict) or "result" not in parsed or "changed_files" not in parsed:
            continue
        result = parsed["result"]
        verification = parsed.get("verification")
        return ProofReport(
            result=result.strip().lower() if isinstance(result, str) else "",
            repo_root=parsed.get("repo_root") if isinstance(parsed.get("repo_root"), str) else None,
            changed_files=_normalize_files(parsed["changed_files"]),
            verification=[v for v in verification if isinstance(v, str)] if isinstance(verification, list) else [],
            summary=parsed.get("summary") if isinstance(parsed.get("summary"), str) else None,
        )
    return None


def assess_proof(
    task: Task,
    output_text: str | None = None,
    classifier: ProofClassifier | None = None,
) -> ProofAssessment:
    """Classify the proof carried by *output_text* (defaults to the task's output)."""
    classifier = classifier or KeywordProofClassifier()
    requires = classifier.requires_proof(task)
    report = parse_proof_report(task.output_text if output_text is None else output_text)

    if not requires:
        return ProofAssessment(
            "not_required", "Proof N/A", "Implementation proof was not required for this task type.", report, False
        )
    if report is None:
        return ProofAssessment(
            "missing", "Proof Missing", "No implementation report was found in task output.", None, True
        )
    if report.result == "implemented" and report.changed_files:
        return ProofAssessment(
            "verified", "Proof Verified", f"Reported {len(report.changed_files)} changed file(s).", report, True
        )
    if report.result == "analysis_only":
        return ProofAssessment(
            "missing",
            "Proof Missing",
            "Task output was analysis-only, but implementation proof was required.",
            report,
            True,
        )
    return ProofAssessment(
        "invalid", "Proof Invalid", "Implementation report exists but is incomplete or invalid.", report, True
    )
