"""Filesystem checks behind a reported list of changed files."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from missionctl.proof.generator import ChangedFile

logger = logging.getLogger(__name__)

_DELETION_STATUSES = frozenset({"deleted", "remove", "removed"})


@dataclass(slots=True)
class EvidenceResult:
    ok: bool
    reason: str
    verified: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


def git_status_for_path(repo_root: Path, relative_path: str) -> str:
    try:
        proc = subprocess.run(
            ["git", "-C", str(repo_root), "status", "--porcelain", "--", relative_path],
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        logger.warning("git status unavailable: %s", exc)
        return ""
    if proc.returncode != 0:
        return ""
    return proc.stdout.strip()


def verify_changed_files(
    changes: Sequence[ChangedFile],
    repo_root: str | Path,
    started_at: float,
    skew_seconds: float = 5.0,
) -> EvidenceResult:
    """Check every reported change against the working tree.

    Files must sit inside *repo_root* and carry an mtime or ctime no older
    than *started_at* (epoch seconds) minus the skew. Deletions must show up
    in ``git status``.
    """
    root = Path(repo_root).resolve()
    threshold = started_at - skew_seconds
    verified: list[str] = []
    failures: list[str] = []

    for change in changes:
        raw = change.path
        absolute = (Path(raw) if raw.startswith("/") else root / raw).resolve()
        if not absolute.is_relative_to(root):
            failures.append(f"{raw}: outside configured repo root ({root}).")
            continue
        relative = str(absolute.relative_to(root))

        if change.status in _DELETION_STATUSES:
            if not git_status_for_path(root, relative):
                failures.append(f"{raw}: deletion not visible in git status.")
                continue
            verified.append(relative)
            continue

        try:
            st = absolute.stat()
        except OSError as exc:
            failures.append(f"{raw}: {exc.strerror or exc}")
            continue
        if st.st_mtime < threshold and st.st_ctime < threshold:
            failures.append(f"{raw}: file timestamp predates task start.")
            continue
        verified.append(relative)

    if failures or not verified:
        reason = (
            f"Implementation evidence check failed: {' | '.join(failures)}"
            if failures
            else "Implementation evidence check failed: no verified file changes."
        )
        return EvidenceResult(False, reason, verified, failures)
    return EvidenceResult(True, "Implementation evidence verified.", verified)
