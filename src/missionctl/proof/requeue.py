"""Re-queue done tasks whose output carries no implementation proof.

Each suspicious task gets a "(Proof Rerun)" sibling under the same mission,
and the original is marked failed with a pointer to its rerun.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Iterable

from missionctl.coordinator.dependencies import is_root_placeholder
from missionctl.errors import StoreError
from missionctl.proof.assessment import assess_proof
from missionctl.proof.classifier import KeywordProofClassifier, ProofClassifier
from missionctl.protocol.models import Task, iso_from_ms, new_task_id, parse_iso_ms
from missionctl.store.base import MissionStore

logger = logging.getLogger(__name__)

DEFAULT_SCAN_LIMIT = 250
PREVIEW_CHARS = 800
RERUN_MARKER = "proof rerun"

_ACTIVE = ("todo", "blocked", "in_progress", "review")
_CONTRACT = {
    "result": "implemented|analysis_only",
    "repo_root": "<absolute path>",
    "changed_files": [{"path": "relative/or/absolute/path", "status": "modified|added|deleted"}],
    "verification": ["checks run"],
    "summary": "short outcome",
}


@dataclass(slots=True)
class RequeueResult:
    scanned: int = 0
    suspicious: list[Task] = field(default_factory=list)
    created: dict[str, str] = field(default_factory=dict)  # source id -> rerun id
    skipped: dict[str, str] = field(default_factory=dict)  # source id -> reason


def is_proof_rerun(task: Task) -> bool:
    return RERUN_MARKER in task.title.lower()


def find_suspicious(
    tasks: Iterable[Task],
    classifier: ProofClassifier | None = None,
    limit: int = DEFAULT_SCAN_LIMIT,
) -> tuple[int, list[Task]]:
    """Scan the *limit* most recently updated done tasks.

    Returns the number scanned and those that needed proof but lack a
    verified report.
    """
    classifier = classifier or KeywordProofClassifier()
    everything = list(tasks)
    done = sorted(
        (t for t in everything if t.status == "done"),
        key=lambda t: parse_iso_ms(t.updated_at, 0.0),
        reverse=True,
    )[: max(0, limit)]
    suspicious = []
    for task in done:
        if is_proof_rerun(task) or task.linked_revision_task_id or is_root_placeholder(task, everything):
            continue
        assessment = assess_proof(task, classifier=classifier)
        if assessment.requires_proof and assessment.state != "verified":
            suspicious.append(task)
    return len(done), suspicious


def build_rerun_instructions(task: Task, repo_root: str) -> str:
    preview = re.sub(r"\s+", " ", task.output_text or "").strip()[:PREVIEW_CHARS]
    return "\n".join(
        [
            task.input_text or task.description or task.title,
            "",
            "SYSTEM CONTEXT:",
            f"- Previous task {task.id} was flagged as done without verifiable implementation proof.",
            f"- Re-execute it with a real implementation in {repo_root}.",
            "- Do not return plan-only output if implementation is requested.",
            "- End with a JSON report in a fenced block:",
            "```json",
            json.dumps(_CONTRACT),
            "```",
            "",
            "Previous output preview:",
            preview or "(no previous output)",
        ]
    )


def build_rerun_task(task: Task, *, repo_root: str, now_ms: float) -> Task:
    now = iso_from_ms(now_ms)
    next_round = task.revision_round + 1
    return Task(
        id=new_task_id(now_ms),
        title=f"{task.title} (Proof Rerun)",
        description=task.description,
        status="todo",
        priority=task.priority,
        domains=list(task.domains),
        assignees=list(task.assignees),
        due_at=now,
        primary_agent_id=task.primary_agent_id,
        review_enabled=task.review_enabled,
        review_agent_id=task.review_agent_id if task.review_enabled else None,
        max_revisions=max(task.max_revisions, next_round) if task.max_revisions else 0,
        revision_round=next_round,
        parent_task_id=task.id,
        root_task_id=task.mission_id,
        input_text=build_rerun_instructions(task, repo_root),
        input_media=list(task.input_media),
        review_notes=f"Auto-rerun queued on {now} due to missing implementation proof.",
        created_at=now,
        updated_at=now,
    )


async def requeue_suspicious(
    store: MissionStore,
    *,
    classifier: ProofClassifier | None = None,
    repo_root: str = ".",
    origin: str = "",
    limit: int = DEFAULT_SCAN_LIMIT,
    apply: bool = False,
    now_ms: float | None = None,
) -> RequeueResult:
    """Find done tasks lacking proof and, with *apply*, queue a rerun for each."""
    tasks = await store.list_tasks()
    scanned, suspicious = find_suspicious(tasks, classifier, limit)
    result = RequeueResult(scanned=scanned, suspicious=suspicious)
    logger.info("proof requeue scan: %d done task(s), %d suspicious", scanned, len(suspicious))
    if not apply:
        return result

    now_ms = time.time() * 1000.0 if now_ms is None else now_ms
    missions = {m.id for m in await store.list_missions()}
    for task in suspicious:
        existing = next(
            (t for t in tasks if t.parent_task_id == task.id and is_proof_rerun(t) and t.status in _ACTIVE),
            None,
        )
        if existing is not None:
            result.skipped[task.id] = f"active proof rerun already exists ({existing.id})"
            continue

        rerun = build_rerun_task(task, repo_root=repo_root, now_ms=now_ms)
        try:
            await store.insert_task(rerun, origin=origin)
            if task.mission_id in missions:
                await store.update_mission(
                    task.mission_id, {"status": "revision", "completed_at": None}, origin=origin
                )
        except StoreError as exc:
            logger.error("proof rerun for %s could not be created: %s", task.id, exc)
            result.skipped[task.id] = f"create failed: {exc}"
            continue

        note = f"Auto-requeued due to missing implementation proof. Rerun task: {rerun.id}"
        try:
            await store.update_task(
                task.id,
                {
                    "status": "failed",
                    "review_notes": note,
                    "error_message": note,
                    "linked_revision_task_id": rerun.id,
                },
                origin=origin,
            )
        except StoreError as exc:
            logger.error("could not mark %s failed after queueing %s: %s", task.id, rerun.id, exc)
            result.skipped[task.id] = f"mark failed: {exc}"
            continue
        logger.info("queued proof rerun %s for %s", rerun.id, task.id)
        result.created[task.id] = rerun.id
    return result
