"""Proof block generation.

A proof block is a fenced ``json`` block appended to a task's output::

    {"result": "implemented", "repo_root": "...", "changed_files": [...],
     "verification": [...], "summary": "..."}
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from missionctl.errors import ProofError
from missionctl.proof.classifier import KeywordProofClassifier, ProofClassifier
from missionctl.protocol.models import Task

logger = logging.getLogger(__name__)

MAX_VERIFICATION_LINES = 5
SUMMARY_MAX_CHARS = 200

_CHECKMARK_RE = re.compile(r"^[\s-]*[✓✔✅☑]\s*(.+)$", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^\s*\d+\.\s+(.+)$", re.MULTILINE)
_BULLET_RE = re.compile(r"^[\s-]*[•\-*]\s+(.+)$", re.MULTILINE)

_PORCELAIN_STATUS = {
    "A": "created",
    "??": "created",
    "D": "deleted",
    "M": "modified",
    "R": "renamed",
}


@dataclass(slots=True, frozen=True)
class ChangedFile:
    path: str
    status: str = "modified"


@dataclass(slots=True)
class ProofReport:
    result: str
    repo_root: str | None = None
    changed_files: list[ChangedFile] = field(default_factory=list)
    verification: list[str] = field(default_factory=list)
    summary: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_block(self) -> str:
        return f"\n\n```json\n{json.dumps(self.to_dict(), indent=2, ensure_ascii=False)}\n```"


def has_proof_block(output_text: str) -> bool:
    return "```json" in output_text and '"result"' in output_text


def append_proof(output_text: str, report: ProofReport) -> str:
    """Append *report* unless the output already carries a proof block."""
    if has_proof_block(output_text):
        return output_text
    return output_text + report.to_block()


def extract_verification_lines(output_text: str) -> list[str]:
    """Checkmark lines, else numbered items, else bullets; at most five."""
    for pattern in (_CHECKMARK_RE, _NUMBERED_RE, _BULLET_RE):
        lines = [m.group(1).strip() for m in pattern.finditer(output_text) if m.group(1).strip()]
        if lines:
            return lines[:MAX_VERIFICATION_LINES]
    return []


def summarize(task: Task, output_text: str) -> str:
    first_paragraph = output_text.split("\n\n", 1)[0].strip()
    if first_paragraph and len(first_paragraph) < SUMMARY_MAX_CHARS:
        return first_paragraph
    return f"Completed: {task.title}"


def parse_porcelain(stdout: str) -> list[ChangedFile]:
    """Map ``git status --porcelain`` lines to changed files."""
    files: list[ChangedFile] = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        code = line[:2].strip()
        path = line[3:].strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1].strip()
        status = _PORCELAIN_STATUS.get(code)
        if status is None:
            status = _PORCELAIN_STATUS.get(code[:1], "modified")
        files.append(ChangedFile(path=path, status=status))
    return files


def capture_git_changes(repo_root: str | Path) -> list[ChangedFile]:
    try:
        proc = subprocess.run(
            ["git", "status", "--porcelain"],
            cwd=repo_root,
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        raise ProofError(f"git status failed: {exc.stderr.strip()}") from exc
    except OSError as exc:
        raise ProofError(f"git unavailable: {exc}") from exc
    return parse_porcelain(proc.stdout)


class ProofGenerator:
    def __init__(
        self,
        repo_root: str | Path = ".",
        classifier: ProofClassifier | None = None,
    ) -> None:
        self.repo_root = str(repo_root)
        self.classifier = classifier or KeywordProofClassifier()

    def build(self, task: Task, output_text: str, changed_files: list[ChangedFile] | None = None) -> ProofReport:
        """Assemble a report. *changed_files* is only consulted for implementation tasks."""
        verification = extract_verification_lines(output_text)
        summary = summarize(task, output_text)

        if not self.classifier.requires_proof(task):
            return ProofReport(
                result="completed",
                verification=verification or ["✅ Task completed as requested"],
                summary=summary,
            )

        files = changed_files or []
        if not verification:
            verification = [f"✅ Modified {len(files)} file(s)"] if files else ["✅ Analysis completed"]
        return ProofReport(
            result="implemented" if files else "analysis_only",
            repo_root=self.repo_root,
            changed_files=files,
            verification=verification,
            summary=summary,
        )

    async def generate(self, task: Task, output_text: str) -> ProofReport:
        files: list[ChangedFile] = []
        if self.classifier.requires_proof(task):
            files = await asyncio.to_thread(capture_git_changes, self.repo_root)
        return self.build(task, output_text, files)
