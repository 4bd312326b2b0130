"""CLI entrypoint for missionctl."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from missionctl.config.loader import load_config, validate_config
from missionctl.config.schema import MissionCtlConfig
from missionctl.coordinator.activity import ActivityLog
from missionctl.coordinator.checkpoints import CheckpointStore
from missionctl.coordinator.execution import ExecutionEngine
from missionctl.coordinator.permissions import ACTIONS, check_permission
from missionctl.coordinator.scheduler import MissionScheduler
from missionctl.errors import ConfigurationError, SchedulerLockedError
from missionctl.gateway.http import HttpGateway
from missionctl.logger import setup_logging
from missionctl.proof.assessment import assess_proof
from missionctl.proof.backfill import backfill_proofs
from missionctl.proof.classifier import classifier_for
from missionctl.proof.requeue import DEFAULT_SCAN_LIMIT, requeue_suspicious
from missionctl.protocol.io import read_jsonl
from missionctl.protocol.models import iso_from_ms
from missionctl.store.json_store import JsonFileStore

logger = logging.getLogger(__name__)

RECENT_ACTIVITY = 10

_STATUS_STYLES = {
    "done": "green",
    "failed": "red",
    "in_progress": "cyan",
    "review": "magenta",
    "pending_review": "magenta",
    "blocked": "yellow",
}

_PROOF_STYLES = {
    "verified": "green",
    "missing": "yellow",
    "invalid": "red",
    "not_required": "dim",
}


def build_engine(cfg: MissionCtlConfig) -> ExecutionEngine:
    return ExecutionEngine(
        config=cfg,
        store=JsonFileStore(cfg.store.path),
        gateway=HttpGateway(cfg.gateway),
        activity=ActivityLog(
            persist_path=cfg.store.activity_log or None, max_history=cfg.store.activity_history
        ),
        checkpoints=CheckpointStore(cfg.store.checkpoint_path or None),
    )


def scheduler_lock_path(cfg: MissionCtlConfig) -> Path:
    """Lock shared by `run` and `tick` so only one scheduler drives a store."""
    return Path(f"{cfg.store.path}.scheduler.lock")


def _with_prefix(cfg: MissionCtlConfig, prefix: str | None) -> MissionCtlConfig:
    if not prefix:
        return cfg
    updated = replace(cfg, scheduler=replace(cfg.scheduler, claim_prefix=prefix))
    try:
        validate_config(updated)
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint="--prefix") from e
    return updated


@click.group()
@click.option(
    "--config",
    "config_path",
    default="missionctl.yaml",
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML config file (missing file means defaults)",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, config_path: Path, debug: bool, json_logs: bool) -> None:
    """missionctl mission orchestration engine."""
    try:
        cfg = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    setup_logging(debug=debug or cfg.logging.debug, json_output=json_logs or cfg.logging.json_output)
    ctx.obj = cfg


@main.command("run")
@click.option("--prefix", default=None, help="Override scheduler.claim_prefix")
@click.pass_obj
def run_command(cfg: MissionCtlConfig, prefix: str | None) -> None:
    """Run the scheduler until interrupted."""
    cfg = _with_prefix(cfg, prefix)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(cfg))


async def _run(cfg: MissionCtlConfig) -> None:
    scheduler = MissionScheduler(build_engine(cfg), lock_path=scheduler_lock_path(cfg))
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    try:
        await scheduler.run_forever(stop)
    except SchedulerLockedError as e:
        raise click.ClickException(f"{e}; is `missionctl run` already running?") from e


@main.command("tick")
@click.option("--dry-run", is_flag=True, help="Only list what would start")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Start at most N runs")
@click.option("--prefix", default=None, help="Override scheduler.claim_prefix")
@click.pass_obj
def tick_command(cfg: MissionCtlConfig, dry_run: bool, limit: int | None, prefix: str | None) -> None:
    """Run a single tick and wait for the runs it started."""
    cfg = _with_prefix(cfg, prefix)
    scheduler = MissionScheduler(build_engine(cfg), lock_path=scheduler_lock_path(cfg))
    result = asyncio.run(scheduler.run_once(dry_run=dry_run, limit=limit))
    if result.skipped:
        click.echo(f"Tick skipped: {result.reason}")
        return
    if dry_run:
        click.echo(f"Would start {len(result.planned)} task(s) (capacity {result.capacity}):")
        for task_id in result.planned:
            click.echo(f"  {task_id}")
        return
    click.echo(
        f"Started {len(result.started)} run(s): "
        f"{len(result.reviews_started)} review, {len(result.primaries_started)} primary; "
        f"{len(result.deferred)} deferred, {len(result.errors)} error(s)"
    )


@main.command("status")
@click.option("--mission", "mission_id", default=None, help="Only show tasks of this mission")
@click.pass_obj
def status_command(cfg: MissionCtlConfig, mission_id: str | None) -> None:
    """Show missions, tasks with their proof state, and recent activity."""
    store = JsonFileStore(cfg.store.path)
    missions = asyncio.run(store.list_missions())
    tasks = asyncio.run(store.list_tasks())
    classifier = classifier_for(cfg.proof.force)
    console = Console()

    mission_table = Table(title="Missions")
    for column in ("id", "title", "status", "phase", "session"):
        mission_table.add_column(column)
    for mission in missions:
        if mission_id and mission.id != mission_id:
            continue
        style = _STATUS_STYLES.get(mission.status, "")
        mission_table.add_row(
            mission.id,
            mission.title,
            f"[{style}]{mission.status}[/]" if style else mission.status,
            f"{mission.mission_phase}/{mission.mission_phase_status}",
            mission.session_key or "-",
        )
    console.print(mission_table)

    task_table = Table(title="Tasks")
    for column in ("id", "title", "status", "agent", "round", "proof", "summary"):
        task_table.add_column(column)
    for task in tasks:
        if mission_id and task.mission_id != mission_id:
            continue
        style = _STATUS_STYLES.get(task.status, "")
        proof = assess_proof(task, classifier=classifier) if task.status == "done" else None
        proof_cell = "-"
        if proof is not None:
            proof_cell = f"[{_PROOF_STYLES[proof.state]}]{proof.label}[/]"
        task_table.add_row(
            task.id,
            task.title,
            f"[{style}]{task.status}[/]" if style else task.status,
            task.primary_agent_id or "-",
            str(task.revision_round),
            proof_cell,
            task.error_message or task.review_notes or "",
        )
    console.print(task_table)

    if not cfg.store.activity_log:
        return
    events = read_jsonl(Path(cfg.store.activity_log), limit=RECENT_ACTIVITY)
    if mission_id:
        events = [e for e in events if e.get("mission_id") == mission_id]
    if not events:
        return
    activity_table = Table(title="Recent activity")
    for column in ("time", "type", "task", "message"):
        activity_table.add_column(column)
    for event in events:
        timestamp = event.get("timestamp")
        activity_table.add_row(
            iso_from_ms(float(timestamp) * 1000.0) if isinstance(timestamp, (int, float)) else "-",
            str(event.get("event_type", "")),
            str(event.get("task_id") or "-"),
            str(event.get("message", "")),
        )
    console.print(activity_table)


@main.group("proof")
def proof_group() -> None:
    """Inspect, back-fill and re-queue completion proof."""


@proof_group.command("assess")
@click.argument("task_id")
@click.pass_obj
def proof_assess_command(cfg: MissionCtlConfig, task_id: str) -> None:
    """Assess the proof block of one task."""
    store = JsonFileStore(cfg.store.path)
    task = asyncio.run(store.get_task(task_id))
    if task is None:
        raise click.ClickException(f"Unknown task: {task_id}")
    assessment = assess_proof(task, classifier=classifier_for(cfg.proof.force))
    click.echo(f"{assessment.label}: {assessment.detail}")
    if assessment.report is not None:
        for changed in assessment.report.changed_files:
            click.echo(f"  {changed.status:<9} {changed.path}")


@proof_group.command("backfill")
@click.option("--task", "task_ids", multiple=True, help="Limit to these task ids")
@click.option("--dry-run", is_flag=True, help="List tasks that would get a proof block")
@click.pass_obj
def proof_backfill_command(cfg: MissionCtlConfig, task_ids: tuple[str, ...], dry_run: bool) -> None:
    """Append proof to done tasks that lack it."""
    engine = build_engine(cfg)
    result = asyncio.run(
        backfill_proofs(
            engine.store,
            engine.proof,
            origin=cfg.scheduler.claim_prefix,
            task_ids=list(task_ids) or None,
            dry_run=dry_run,
        )
    )
    verb = "Would update" if dry_run else "Updated"
    click.echo(
        f"{verb} {len(result.updated)} task(s); "
        f"{len(result.already_proven)} already proven; {len(result.failed)} failed"
    )
    if result.failed:
        raise SystemExit(1)


@proof_group.command("requeue")
@click.option("--apply", "apply_changes", is_flag=True, help="Queue reruns and mark the originals failed")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=DEFAULT_SCAN_LIMIT,
    show_default=True,
    help="Scan at most N recently updated done tasks",
)
@click.pass_obj
def proof_requeue_command(cfg: MissionCtlConfig, apply_changes: bool, limit: int) -> None:
    """Re-run done tasks that finished without implementation proof."""
    result = asyncio.run(
        requeue_suspicious(
            JsonFileStore(cfg.store.path),
            classifier=classifier_for(cfg.proof.force),
            repo_root=str(Path(cfg.proof.repo_root).resolve()),
            origin=cfg.scheduler.claim_prefix,
            limit=limit,
            apply=apply_changes,
        )
    )
    click.echo(f"Scanned {result.scanned} done task(s); {len(result.suspicious)} suspicious")
    if not result.suspicious:
        return
    if not apply_changes:
        for task in result.suspicious:
            click.echo(f"{task.id}\t{task.title}")
        click.echo("Run with --apply to queue reruns and mark the originals failed.")
        return
    click.echo(f"Created {len(result.created)} rerun(s); {len(result.skipped)} skipped")
    for source_id, rerun_id in result.created.items():
        click.echo(f"  {source_id} -> {rerun_id}")
    for source_id, reason in result.skipped.items():
        click.echo(f"  {source_id}\t{reason}")
    if result.skipped:
        raise SystemExit(1)


@main.command("permissions")
@click.argument("level", type=click.IntRange(1, 4))
@click.argument("action", type=click.Choice(ACTIONS))
def permissions_command(level: int, action: str) -> None:
    """Show what an agent at LEVEL may do for ACTION."""
    check = check_permission(level, action)
    line = f"L{level} {action}: {check.result} (gate: {check.approval_gate})"
    if check.reason:
        line += f" - {check.reason}"
    click.echo(line)
