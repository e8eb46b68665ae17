"""Provide small git helpers used to commit completed plan tasks."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import DEFAULT_COMMIT_SCOPE, LOCK_FILE, STATE_DIR_NAME, STATE_FILE
from .errors import CommitFailed, NotAVersionControlledTree
from .models import TaskCommitResult

# Runner bookkeeping never belongs in a task commit.
_RUNTIME_EXCLUDES = [
    f":(exclude){STATE_DIR_NAME}/{STATE_FILE}",
    f":(exclude){STATE_DIR_NAME}/{STATE_FILE}.tmp",
    f":(exclude){STATE_DIR_NAME}/{LOCK_FILE}",
]

_TITLE_SEPARATOR = " - "


def _run_git(project_dir: Path, args: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=project_dir,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        return subprocess.CompletedProcess(["git", *args], 127, "", f"Command failed to spawn: {exc}")


def _git_is_repo(project_dir: Path) -> bool:
    result = _run_git(project_dir, ["rev-parse", "--is-inside-work-tree"])
    return result.returncode == 0 and result.stdout.strip().lower() == "true"


def _git_has_changes(project_dir: Path) -> bool:
    result = _run_git(project_dir, ["status", "--porcelain", "--untracked-files=all", "--", ".", *_RUNTIME_EXCLUDES])
    return result.returncode == 0 and bool(result.stdout.strip())


def _git_head_sha(project_dir: Path) -> Optional[str]:
    result = _run_git(project_dir, ["rev-parse", "HEAD"])
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _git_stage_all(project_dir: Path) -> None:
    result = _run_git(project_dir, ["add", "-A", "--", ".", *_RUNTIME_EXCLUDES])
    if result.returncode != 0:
        raise CommitFailed(f"Failed to stage changes: {result.stderr.strip()}", detail=result.stderr)


def _git_commit(project_dir: Path, subject: str, body: Optional[str] = None) -> None:
    args = ["commit", "-m", subject]
    if body:
        args.extend(["-m", body])
    result = _run_git(project_dir, args)
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise CommitFailed(f"Failed to commit: {detail}", detail=detail)


def build_commit_message(
    task_title: str,
    task_num: int,
    scope: str = DEFAULT_COMMIT_SCOPE,
) -> tuple[str, Optional[str]]:
    """Derive a commit subject and optional body from a raw task title.

    `**Create file** - add the parser` becomes subject
    `feat(loop): task 3 - Create file` and body `add the parser`.

    Returns:
        A `(subject, body)` tuple; `body` is None when the title has no description.
    """
    clean_title = task_title.replace("**", "").strip()
    heading, sep, description = clean_title.partition(_TITLE_SEPARATOR)
    subject = f"{scope}: task {task_num} - {heading.strip() if sep else clean_title}"
    body = description.strip() if sep else ""
    return subject, body or None


def commit_task(
    project_dir: Path,
    task_title: str,
    task_num: int,
    *,
    scope: str = DEFAULT_COMMIT_SCOPE,
) -> TaskCommitResult:
    """Stage everything and commit it as the result of one plan task.

    A missing repository, a clean tree, or a failing git call is reported in
    the returned result rather than raised; the loop proceeds regardless.
    """
    subject, body = build_commit_message(task_title, task_num, scope)
    try:
        if not _git_is_repo(project_dir):
            raise NotAVersionControlledTree("Not a git repository")
        if not _git_has_changes(project_dir):
            return TaskCommitResult(committed=False, message="No changes to commit", subject=subject)
        _git_stage_all(project_dir)
        _git_commit(project_dir, subject, body)
    except (NotAVersionControlledTree, CommitFailed) as exc:
        logger.warning("Task {} not committed: {}", task_num, exc.message)
        return TaskCommitResult(
            committed=False,
            message=exc.message,
            subject=subject,
            error_type=exc.error_type,
        )
    sha = _git_head_sha(project_dir)
    logger.info("Committed task {} as {} ({})", task_num, subject, (sha or "")[:12])
    return TaskCommitResult(committed=True, message=f"Created commit: {subject}", subject=subject)
