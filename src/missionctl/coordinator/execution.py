"""Per-task execution state machine.

    todo/blocked -> in_progress -> done
                                -> review -> done (approve)
                                          -> failed + new task (redo)
                                          -> new task (revise) | failed (limit)

The engine owns the in-process state, launches runs through the gateway,
routes run events back to tasks and writes every change to the backing
store. Runtime-only task fields never leave the process.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Callable

from missionctl.config.schema import MissionCtlConfig
from missionctl.coordinator.activity import ActivityLog
from missionctl.coordinator.aggregation import MissionWriteQueue, build_mission_patch
from missionctl.coordinator.checkpoints import CheckpointStore
from missionctl.coordinator.circuit import evaluate_circuit_breaker
from missionctl.coordinator.claims import claim_mission
from missionctl.coordinator.dependencies import incomplete_dependency_titles
from missionctl.coordinator.permissions import check_permission
from missionctl.coordinator.prompts import build_primary_prompt, build_review_prompt, build_revision_input
from missionctl.coordinator.review import ReviewDecision, parse_review_decision
from missionctl.coordinator.runs import ActiveRun, RunRegistry, merge_delta, trim_thinking
from missionctl.coordinator.state import MissionControlState
from missionctl.errors import GatewayError, ProofError, RunTimeoutError, StoreError
from missionctl.gateway.base import Gateway
from missionctl.gateway.events import AbortedEvent, DeltaEvent, ErrorEvent, FinalEvent, GatewayEvent
from missionctl.proof.assessment import assess_proof
from missionctl.proof.classifier import ProofClassifier, classifier_for
from missionctl.proof.evidence import verify_changed_files
from missionctl.proof.generator import ProofGenerator, append_proof
from missionctl.protocol.models import (
    RUNTIME_TASK_FIELDS,
    ApprovalRequest,
    ReviewHistoryEntry,
    RunCheckpoint,
    RunPhase,
    Task,
    iso_from_ms,
    new_task_id,
    parse_iso_ms,
)
from missionctl.store.base import ChangeEvent, MissionStore

logger = logging.getLogger(__name__)

_FOLLOW_UP_SUFFIX_RE = re.compile(r"(?: \((?:Revision \d+|Redo)\))+$")


def _row_value(value: Any) -> Any:
    if isinstance(value, list):
        return [item.to_dict() if hasattr(item, "to_dict") else _row_value(item) for item in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def task_patch_to_row(patch: dict[str, Any]) -> dict[str, Any]:
    """Persisted part of a task patch, serialized for the store."""
    return {k: _row_value(v) for k, v in patch.items() if k not in RUNTIME_TASK_FIELDS}


class ExecutionEngine:
    def __init__(
        self,
        *,
        config: MissionCtlConfig,
        store: MissionStore,
        gateway: Gateway,
        state: MissionControlState | None = None,
        activity: ActivityLog | None = None,
        checkpoints: CheckpointStore | None = None,
        classifier: ProofClassifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store
        self.gateway = gateway
        self.state = state or MissionControlState()
        self.clock = clock
        self.activity = activity or ActivityLog(clock=clock)
        self.checkpoints = checkpoints or CheckpointStore()
        self.runs = RunRegistry()
        self.write_queue = MissionWriteQueue()
        self.classifier = classifier or classifier_for(config.proof.force)
        self.proof = ProofGenerator(repo_root=config.proof.repo_root, classifier=self.classifier)
        self.origin = config.scheduler.claim_prefix
        self._approval_requested: set[str] = set()
        self._detach: list[Callable[[], None]] = []

    # -- time ----------------------------------------------------------------

    def now_ms(self) -> float:
        return self.clock() * 1000.0

    def now_iso(self) -> str:
        return iso_from_ms(self.now_ms())

    # -- wiring --------------------------------------------------------------

    async def load(self) -> None:
        """Read tasks, missions and agents from the store into local state."""
        tasks = await self.store.list_tasks()
        missions = await self.store.list_missions()
        agents = await self.store.list_agents()
        self.state.load(tasks, missions, agents)
        logger.info("loaded %d task(s), %d mission(s), %d agent(s)", len(tasks), len(missions), len(agents))

    async def refresh_agents(self) -> None:
        try:
            self.state.set_agents(await self.store.list_agents())
        except StoreError as exc:
            logger.warning("agent refresh failed, keeping cached levels: %s", exc)

    def attach(self) -> None:
        """Subscribe to gateway run events and the store change feed."""
        self._detach.append(self.gateway.on_event(self.handle_event))
        self._detach.append(self.store.subscribe(self.on_store_change))

    def detach(self) -> None:
        while self._detach:
            self._detach.pop()()

    async def shutdown(self) -> None:
        self.detach()
        for run in list(self.runs):
            self._cancel_timeout(run)
        await self.write_queue.drain()

    def on_store_change(self, event: ChangeEvent) -> None:
        if event.origin == self.origin:
            return
        self.state.reconcile(event)

    # -- task writes ---------------------------------------------------------

    async def update_task(self, task_id: str, patch: dict[str, Any]) -> Task | None:
        """Apply *patch* locally, persist its durable fields and resync the mission."""
        current = self.state.task(task_id)
        if current is None:
            return None
        changes = {k: v for k, v in patch.items() if getattr(current, k, None) != v}
        if not changes:
            return current
        changes["updated_at"] = self.now_iso()
        task = self.state.apply_task_patch(task_id, changes)
        assert task is not None
        if task.status != "blocked":
            self._approval_requested.discard(task_id)

        row = task_patch_to_row(changes)
        if set(row) - {"updated_at"}:
            try:
                await self.store.update_task(task_id, row, origin=self.origin)
            except StoreError as exc:
                logger.error("failed persisting task %s: %s", task_id, exc)
        self.sync_mission(task)
        return task

    def sync_mission(self, task: Task) -> None:
        mission = self.state.mission_for(task)
        if mission is None:
            return
        sync = build_mission_patch(mission, task, self.state.mission_tasks(mission.id))
        if sync.transition == "done":
            self.activity.emit(
                "mission_completed",
                f'Mission completed: "{mission.title}" ({sync.done_count}/{sync.total} tasks done)',
                mission_id=mission.id,
            )
        elif sync.transition == "failed":
            self.activity.emit(
                "mission_failed",
                f'Mission failed: "{mission.title}" ({sync.failed_count}/{sync.total} tasks failed, '
                f"{sync.done_count} done)",
                mission_id=mission.id,
            )
        if not sync.patch:
            return
        stamped = {**sync.patch, "updated_at": self.now_iso()}
        self.state.apply_mission_patch(mission.id, stamped)
        mission_id = mission.id

        async def _write() -> None:
            await self.store.update_mission(mission_id, stamped, origin=self.origin)

        self.write_queue.submit(mission_id, _write)

    async def complete_task(self, task_id: str, output_text: str) -> None:
        task = self.state.task(task_id)
        if task is None:
            return
        final_output = output_text
        if self.config.proof.enabled:
            try:
                report = await self.proof.generate(task, output_text)
                final_output = append_proof(output_text, report)
            except ProofError as exc:
                logger.warning("proof generation failed for %s: %s", task_id, exc)

        if self.config.proof.verify_evidence:
            problem = await self._check_evidence(task, final_output)
            if problem is not None:
                await self.update_task(task_id, {"output_text": final_output})
                await self.fail_task(task_id, problem)
                self.activity.emit(
                    "task_failed", f"Task failed evidence check: {task.title}",
                    agent_id=task.primary_agent_id, task_id=task_id, mission_id=task.mission_id,
                )
                return

        await self.update_task(
            task_id,
            {
                "status": "done",
                "completed_at": self.now_iso(),
                "output_text": final_output,
                "active_phase": None,
                "active_run_id": None,
                "active_summary": "Mission completed.",
                "active_thinking": None,
                "error_message": None,
            },
        )

    async def _check_evidence(self, task: Task, output_text: str) -> str | None:
        assessment = assess_proof(task, output_text, self.classifier)
        if assessment.state == "not_required":
            return None
        if assessment.state != "verified" or assessment.report is None:
            return f"Implementation evidence check failed: {assessment.detail}"
        started = parse_iso_ms(task.started_at, self.now_ms()) / 1000.0
        result = await asyncio.to_thread(
            verify_changed_files,
            assessment.report.changed_files,
            self.config.proof.repo_root,
            started,
            self.config.proof.mtime_skew_seconds,
        )
        return None if result.ok else result.reason

    async def fail_task(
        self,
        task_id: str,
        error: str,
        *,
        cascade: bool = True,
        summary: str = "Mission failed.",
    ) -> None:
        task = await self.update_task(
            task_id,
            {
                "status": "failed",
                "completed_at": self.now_iso(),
                "active_phase": None,
                "active_run_id": None,
                "active_summary": summary,
                "active_thinking": None,
                "error_message": error,
            },
        )
        if task is not None and cascade:
            await self._trip_circuit_breaker(task, error)

    async def _trip_circuit_breaker(self, failed: Task, error: str) -> None:
        mission = self.state.mission_for(failed)
        if mission is None:
            return
        decision = evaluate_circuit_breaker(mission, failed, list(self.state.tasks.values()))
        if not decision.tripped:
            return
        self.activity.emit(
            "circuit_breaker",
            f"Circuit breaker ({decision.policy}) tripped by '{failed.title}': {decision.reason} "
            f"Cancelling {len(decision.victims)} task(s).",
            task_id=failed.id,
            mission_id=mission.id,
        )
        message = f"Circuit breaker ({decision.policy}) tripped by failure of '{failed.title}': {error}"
        for victim in decision.victims:
            await self.fail_task(victim.id, message, cascade=False, summary="Cancelled by circuit breaker.")

    def dependency_titles(self, task: Task) -> list[str]:
        return incomplete_dependency_titles(task, self.state.tasks, self.config.scheduler.dependency_policy)

    async def _block(self, task: Task, summary: str) -> None:
        await self.update_task(task.id, {"status": "blocked", "active_summary": summary, "error_message": None})

    # -- starting work -------------------------------------------------------

    async def start_primary_if_due(self, task_id: str) -> bool:
        """Run every start gate for a pending task; launch it if all pass."""
        task = self.state.task(task_id)
        if task is None or task.status not in ("todo", "blocked"):
            return False
        if self.state.is_placeholder(task):
            return False

        mission = self.state.mission_for(task)
        if mission is not None and not mission.lifecycle_ready:
            await self._block(task, f"Waiting for {mission.mission_phase or 'tasks'} approval")
            return False

        if mission is not None:
            await self.write_queue.wait(mission.id)
            claim = await claim_mission(self.store, mission, prefix=self.origin, now_ms=self.now_ms())
            if not claim.claimed:
                logger.debug("claim lost for mission %s: %s", mission.id, claim.reason)
                await self._block(task, "Claimed by external dispatcher. Waiting for sync...")
                return False
            if claim.mission is not None:
                self.state.missions[mission.id] = claim.mission

        unmet = self.dependency_titles(task)
        if unmet:
            await self._block(task, f"Blocked by: {', '.join(unmet)}")
            return False

        profile = self.state.agent(task.primary_agent_id)
        check = check_permission(profile.level, "task:execute", profile.guardrails, task.domains)
        if check.result == "deny":
            await self._block(task, f"Agent lacks permission (L{profile.level}): {check.reason}")
            self.activity.emit(
                "permission_denied",
                f"Permission denied for {profile.display_name}: {check.reason}",
                agent_id=profile.agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            return False
        if check.result != "allow":
            await self._block(task, f"Awaiting human approval (Agent is L{profile.level})")
            await self._request_approval(task, profile.level, check.reason)
            return False

        await self.update_task(
            task.id,
            {
                "status": "in_progress",
                "started_at": self.now_iso(),
                "active_summary": "Queued for execution...",
                "error_message": None,
            },
        )
        self.activity.emit(
            "task_started", f"Task started: {task.title}",
            agent_id=task.primary_agent_id, task_id=task.id, mission_id=task.mission_id,
        )
        await self.launch_run(task.id, "primary")
        return True

    async def _request_approval(self, task: Task, level: int, reason: str) -> None:
        if task.id in self._approval_requested:
            return
        self._approval_requested.add(task.id)
        self.activity.emit(
            "permission_denied",
            f"Task awaiting approval for L{level} agent {self.state.name_of(task.primary_agent_id)}",
            agent_id=task.primary_agent_id, task_id=task.id, mission_id=task.mission_id,
        )
        request = ApprovalRequest(
            task_id=task.id,
            mission_id=task.mission_id,
            agent_id=task.primary_agent_id,
            agent_level=level,
            reason=reason,
            requested_at=self.now_iso(),
        )
        try:
            await self.store.request_approval(request)
        except StoreError as exc:
            self._approval_requested.discard(task.id)
            logger.error("failed recording approval request for %s: %s", task.id, exc)

    async def start_review_if_ready(self, task_id: str) -> bool:
        task = self.state.task(task_id)
        if task is None or task.status != "review" or not task.review_agent_id or task.active_run_id:
            return False
        await self.update_task(task.id, {"active_summary": "Queued for AI review...", "error_message": None})
        self.activity.emit(
            "task_review_started", f"Review started: {task.title}",
            agent_id=task.review_agent_id, task_id=task.id, mission_id=task.mission_id,
        )
        await self.launch_run(task.id, "review")
        return True

    async def launch_run(self, task_id: str, phase: RunPhase, override_prompt: str | None = None) -> None:
        task = self.state.task(task_id)
        if task is None:
            return
        agent_id = task.primary_agent_id if phase == "primary" else (task.review_agent_id or "")
        if not agent_id:
            await self.fail_task(task.id, "No review agent configured.")
            self.activity.emit(
                "task_failed", f"Task failed (missing review agent): {task.title}",
                task_id=task.id, mission_id=task.mission_id,
            )
            return

        if override_prompt:
            prompt = override_prompt
        elif phase == "primary":
            prompt = build_primary_prompt(task)
        else:
            prompt = build_review_prompt(
                task, task.output_text or "", self.state.mission_for(task), self.state.name_of
            )

        now_ms = self.now_ms()
        previous = self.checkpoints.get(task.id)
        self.checkpoints.save(
            RunCheckpoint(
                task_id=task.id,
                phase=phase,
                agent_id=agent_id,
                prompt=prompt,
                buffer="",
                timestamp=now_ms,
                connection_drops=previous.connection_drops if previous else 0,
            )
        )

        ms = int(now_ms)
        session_key = f"agent:{agent_id}:mission:{task.id}:{phase}:{task.revision_round}:{ms}"
        local_run_id = f"mission-run-{task.id}-{phase}-{ms}"
        run = ActiveRun(run_id=local_run_id, task_id=task.id, agent_id=agent_id, phase=phase, started_ms=now_ms)
        self.runs.add(run)

        name = self.state.name_of(agent_id)
        await self.update_task(
            task.id,
            {
                "active_phase": phase,
                "active_run_id": local_run_id,
                "active_summary": f"Running {name}..." if phase == "primary" else f"Reviewing with {name}...",
                "active_thinking": "",
                "error_message": None,
            },
        )

        try:
            await self.gateway.connect()
            ack = await self.gateway.send(session_key, prompt, local_run_id)
        except GatewayError as exc:
            self.cleanup_run(local_run_id)
            self.checkpoints.remove(task.id)
            await self.fail_task(task.id, str(exc))
            self.activity.emit(
                "task_failed", f"Task failed: {task.title}",
                agent_id=agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            return

        if self.runs.get(local_run_id) is None:
            # A terminal event already arrived while the send was in flight.
            return
        if ack.run_id and ack.run_id != local_run_id:
            self.runs.alias(ack.run_id, local_run_id)
            await self.update_task(task.id, {"active_run_id": ack.run_id})
        run.timeout_task = asyncio.create_task(self._watch_timeout(local_run_id), name=f"timeout-{local_run_id}")

    def cleanup_run(self, run_id: str) -> ActiveRun | None:
        run = self.runs.remove(run_id)
        if run is not None:
            self._cancel_timeout(run)
        return run

    def _cancel_timeout(self, run: ActiveRun) -> None:
        handle = run.timeout_task
        run.timeout_task = None
        if handle is not None and handle is not asyncio.current_task() and not handle.done():
            handle.cancel()

    async def _watch_timeout(self, run_id: str) -> None:
        await asyncio.sleep(self.config.scheduler.run_timeout_seconds)
        run = self.runs.get(run_id)
        if run is None:
            return
        try:
            await self.on_run_timeout(run)
        except Exception:
            logger.exception("timeout handling failed for run %s", run_id)

    async def on_run_timeout(self, run: ActiveRun) -> None:
        """No terminal event in time: use a non-empty buffer as the final text, else fail."""
        timeout = self.config.scheduler.run_timeout_seconds
        if run.buffer.strip():
            logger.warning("run %s timed out after %ss; finalizing from partial output", run.run_id, timeout)
            await self._finish_run(run, run.buffer)
            return
        error = RunTimeoutError(run.run_id, timeout)
        self.cleanup_run(run.run_id)
        self.checkpoints.remove(run.task_id)
        task = self.state.task(run.task_id)
        await self.fail_task(run.task_id, str(error))
        self.activity.emit(
            "task_failed", f"Task timed out: {task.title if task else run.task_id}",
            agent_id=run.agent_id, task_id=run.task_id,
        )

    # -- run events ----------------------------------------------------------

    async def handle_event(self, event: GatewayEvent) -> None:
        local_run_id = self.runs.resolve(event.run_id)
        if local_run_id is None:
            return
        run = self.runs.get(local_run_id)
        if run is None:
            return
        task = self.state.task(run.task_id)
        if task is None:
            self.cleanup_run(local_run_id)
            return

        if isinstance(event, DeltaEvent):
            if not event.text:
                return
            limit = self.config.scheduler.thinking_buffer_limit
            run.buffer = trim_thinking(merge_delta(run.buffer, event.text), limit)
            name = self.state.name_of(run.agent_id)
            await self.update_task(
                task.id,
                {
                    "active_thinking": run.buffer,
                    "active_summary": f"Working: {name}" if run.phase == "primary" else f"Reviewing: {name}",
                },
            )
            return

        if isinstance(event, (ErrorEvent, AbortedEvent)):
            self.cleanup_run(local_run_id)
            self.checkpoints.remove(run.task_id)
            await self.fail_task(task.id, event.message)
            self.activity.emit(
                "task_failed", f"Task failed: {task.title}",
                agent_id=run.agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            return

        if isinstance(event, FinalEvent):
            await self._finish_run(run, event.text or run.buffer)

    async def _finish_run(self, run: ActiveRun, text: str) -> None:
        self.cleanup_run(run.run_id)
        self.checkpoints.remove(run.task_id)
        task = self.state.task(run.task_id)
        if task is None:
            return
        if run.phase == "primary":
            await self.handle_primary_final(task, text)
        else:
            await self.handle_review_final(task, text)

    async def handle_primary_final(self, task: Task, output_text: str) -> None:
        await self.update_task(task.id, {"output_text": output_text, "active_thinking": None})

        if task.review_enabled and task.review_agent_id:
            primary = self.state.name_of(task.primary_agent_id)
            reviewer = self.state.name_of(task.review_agent_id)
            await self.update_task(
                task.id,
                {"status": "review", "active_summary": f"Handed off from {primary} to {reviewer} for review"},
            )
            self.activity.emit(
                "task_review_handoff", f"Handed off from {primary} to {reviewer}: {task.title}",
                agent_id=task.review_agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            await self.launch_run(task.id, "review")
            return

        await self.complete_task(task.id, output_text)
        done = self.state.task(task.id)
        if done is not None and done.status == "done":
            self.activity.emit(
                "task_completed", f"Task completed: {task.title}",
                agent_id=task.primary_agent_id, task_id=task.id, mission_id=task.mission_id,
            )

    async def handle_review_final(self, task: Task, review_text: str) -> None:
        decision = parse_review_decision(review_text, known_agents=self.state.known_agent_ids())
        entry = ReviewHistoryEntry(
            round=task.revision_round,
            action=decision.action,
            summary=decision.summary,
            confidence_score=decision.confidence_score,
            specific_issues=tuple(decision.specific_issues),
            new_instructions=decision.new_instructions,
            reviewer_agent_id=task.review_agent_id or "",
            reviewed_at=self.now_iso(),
        )
        history = [*task.review_history, entry]
        reviewed = await self.update_task(task.id, {"review_history": history})
        task = reviewed or task

        if decision.action == "approve":
            summary = decision.summary or "Review approved."
            await self.update_task(task.id, {"review_notes": summary, "active_summary": summary})
            await self.complete_task(task.id, task.output_text or "")
            self.activity.emit(
                "review_approved", f"Review approved: {task.title}",
                agent_id=task.review_agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            return

        if decision.action == "redo":
            child = await self._spawn_follow_up(task, decision, history, redo=True)
            await self.start_primary_if_due(child.id)
            return

        if task.max_revisions > 0 and task.revision_round >= task.max_revisions:
            summary = decision.summary or "Revision limit reached."
            error = f"Revision limit reached ({task.revision_round}/{task.max_revisions}): {summary}"
            await self.fail_task(task.id, error)
            await self.update_task(task.id, {"review_notes": summary})
            self.activity.emit(
                "task_failed", f"Task failed after max revisions: {task.title}",
                agent_id=task.review_agent_id, task_id=task.id, mission_id=task.mission_id,
            )
            return

        child = await self._spawn_follow_up(task, decision, history, redo=False)
        await self.start_primary_if_due(child.id)

    async def _spawn_follow_up(
        self,
        parent: Task,
        decision: ReviewDecision,
        history: list[ReviewHistoryEntry],
        *,
        redo: bool,
    ) -> Task:
        now_ms = self.now_ms()
        now = iso_from_ms(now_ms)
        instructions = decision.new_instructions or decision.summary or (
            "Please redo this task with a new approach." if redo else "Please revise based on review feedback."
        )
        base_title = _FOLLOW_UP_SUFFIX_RE.sub("", parent.title)
        agent_id = parent.primary_agent_id
        if redo and decision.reassign_agent_id:
            agent_id = decision.reassign_agent_id
        round_ = 0 if redo else parent.revision_round + 1

        child = Task(
            id=new_task_id(now_ms),
            title=f"{base_title} (Redo)" if redo else f"{base_title} (Revision {round_})",
            description=instructions,
            status="todo",
            priority=parent.priority,
            domains=list(parent.domains),
            assignees=[agent_id],
            due_at=now,
            primary_agent_id=agent_id,
            review_enabled=True,
            review_agent_id=parent.review_agent_id,
            max_revisions=parent.max_revisions,
            revision_round=round_,
            parent_task_id=parent.id,
            root_task_id=parent.mission_id,
            input_text=build_revision_input(
                parent, decision.summary, instructions, include_previous_output=not redo
            ),
            input_media=list(parent.input_media) if redo else [],
            review_history=list(history),
            dependency_task_ids=[],
            created_at=now,
            updated_at=now,
        )
        self.state.add_task(child)
        try:
            await self.store.insert_task(child, origin=self.origin)
        except StoreError as exc:
            logger.error("failed persisting follow-up task %s: %s", child.id, exc)

        if redo:
            await self.update_task(
                parent.id,
                {
                    "status": "failed",
                    "completed_at": now,
                    "linked_revision_task_id": child.id,
                    "review_notes": "Reviewer requested a complete redo.",
                    "active_phase": None,
                    "active_run_id": None,
                    "active_thinking": None,
                    "active_summary": "Redo requested by reviewer.",
                    "error_message": "Review agent requested redo: fundamentally wrong approach.",
                },
            )
            if agent_id != parent.primary_agent_id:
                message = (
                    f"Reviewer requested redo for: {parent.title} (reassigned from "
                    f"{self.state.name_of(parent.primary_agent_id)} to {self.state.name_of(agent_id)})"
                )
            else:
                message = f"Reviewer requested redo for: {parent.title}"
            self.activity.emit(
                "review_redo_requested", message,
                agent_id=parent.review_agent_id, task_id=parent.id, mission_id=parent.mission_id,
            )
        else:
            await self.update_task(
                parent.id,
                {
                    "status": "done",
                    "completed_at": now,
                    "linked_revision_task_id": child.id,
                    "review_notes": "Reviewer requested changes.",
                    "active_phase": None,
                    "active_run_id": None,
                    "active_thinking": None,
                    "active_summary": "Revision requested by reviewer.",
                },
            )
            self.activity.emit(
                "review_revision_requested", f"Reviewer requested revision for: {parent.title}",
                agent_id=parent.review_agent_id, task_id=parent.id, mission_id=parent.mission_id,
            )
        return child
