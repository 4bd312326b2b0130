"""Tests for changed-file evidence checks."""

from __future__ import annotations

import time
from pathlib import Path

from missionctl.proof.evidence import verify_changed_files
from missionctl.proof.generator import ChangedFile


def test_fresh_files_are_verified(tmp_workdir: Path) -> None:
    started = time.time() - 60
    (tmp_workdir / "src").mkdir()
    (tmp_workdir / "src" / "app.py").write_text("print('hi')\n")
    absolute = tmp_workdir / "notes.md"
    absolute.write_text("notes\n")

    result = verify_changed_files(
        [ChangedFile("src/app.py"), ChangedFile(str(absolute), "created")], tmp_workdir, started
    )
    assert result.ok
    assert result.verified == ["src/app.py", "notes.md"]
    assert result.reason == "Implementation evidence verified."


def test_stale_and_missing_files_fail(tmp_workdir: Path) -> None:
    (tmp_workdir / "old.py").write_text("x = 1\n")
    started = time.time() + 3600

    result = verify_changed_files([ChangedFile("old.py"), ChangedFile("ghost.py")], tmp_workdir, started)
    assert not result.ok
    assert result.failures[0] == "old.py: file timestamp predates task start."
    assert result.failures[1].startswith("ghost.py: ")
    assert result.reason.startswith("Implementation evidence check failed: old.py: ")
    assert " | " in result.reason


def test_paths_outside_root_fail(tmp_workdir: Path) -> None:
    root = tmp_workdir / "repo"
    root.mkdir()
    (tmp_workdir / "elsewhere.txt").write_text("x")

    result = verify_changed_files([ChangedFile("../elsewhere.txt")], root, time.time() - 60)
    assert not result.ok
    assert "outside configured repo root" in result.failures[0]


def test_deletion_needs_git_status(tmp_workdir: Path) -> None:
    result = verify_changed_files([ChangedFile("gone.py", "deleted")], tmp_workdir, time.time())
    assert result.failures == ["gone.py: deletion not visible in git status."]


def test_nothing_reported(tmp_workdir: Path) -> None:
    result = verify_changed_files([], tmp_workdir, time.time())
    assert not result.ok
    assert result.reason == "Implementation evidence check failed: no verified file changes."
