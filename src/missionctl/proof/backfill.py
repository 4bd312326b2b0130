"""Retroactive proof for completed tasks that never got one."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from missionctl.errors import ProofError, StoreError
from missionctl.proof.generator import ProofGenerator, append_proof, has_proof_block
from missionctl.store.base import MissionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackfillResult:
    updated: list[str] = field(default_factory=list)
    already_proven: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


async def backfill_proofs(
    store: MissionStore,
    generator: ProofGenerator,
    *,
    origin: str = "",
    task_ids: list[str] | None = None,
    dry_run: bool = False,
) -> BackfillResult:
    """Append a proof block to every ``done`` task whose output lacks one.

    A standalone mission (its own root task) gets the same output so the
    mission row stays in step with the task.
    """
    result = BackfillResult()
    missions = {m.id: m for m in await store.list_missions()}
    for task in await store.list_tasks():
        if task.status != "done" or (task_ids is not None and task.id not in task_ids):
            continue
        output = task.output_text or ""
        if has_proof_block(output):
            result.already_proven.append(task.id)
            continue
        if dry_run:
            result.updated.append(task.id)
            continue
        try:
            report = await generator.generate(task, output)
            final = append_proof(output, report)
            await store.update_task(task.id, {"output_text": final}, origin=origin)
            if task.id in missions:
                await store.update_mission(task.id, {"output_text": final}, origin=origin)
        except (ProofError, StoreError) as exc:
            logger.error("proof backfill failed for %s: %s", task.id, exc)
            result.failed.append(task.id)
            continue
        logger.info("added proof to %s (%s)", task.id, report.result)
        result.updated.append(task.id)
    return result
