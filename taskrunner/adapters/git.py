"""Git runtime helpers for the runner.

Provides the clean-working-tree precondition checked before a run starts and
the auto commit created after a completed task, with error propagation via
custom exceptions.
"""

import logging
import re
import subprocess
from typing import List, Optional

from taskrunner.adapters.protocol import AdapterException

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30
UNTITLED_TASK = "untitled-task"
COMMIT_MESSAGE_TEMPLATE = "feat(runner): {title} [auto]"


class GitRuntimeError(AdapterException):
    """Base exception for git runtime errors."""

    pass


class DirtyWorkingTreeError(GitRuntimeError):
    """Raised when a run is requested on a working tree with pending changes."""

    def __init__(self):
        super().__init__(
            "Refusing to run: git working tree is dirty. Commit or stash changes first."
        )


def _run_git(cwd: str, args: List[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise GitRuntimeError(f"Timeout running git {' '.join(args)} in {cwd}") from e
    except OSError as e:
        raise GitRuntimeError(f"Failed to run git {' '.join(args)}: {e}") from e


def _failure_detail(result: subprocess.CompletedProcess) -> str:
    return (result.stderr or "").strip() or (result.stdout or "").strip() or "unknown error"


def normalize_task_title(title: Optional[str]) -> str:
    """Collapse whitespace in a task title; empty titles become 'untitled-task'."""
    normalized = re.sub(r"\s+", " ", (title or "").strip())
    return normalized or UNTITLED_TASK


def is_working_tree_clean(cwd: str) -> bool:
    """Check whether the working tree has no tracked or untracked changes.

    Args:
        cwd: Directory inside the repository.

    Returns:
        True if ``git status --porcelain`` prints nothing.

    Raises:
        GitRuntimeError: If git status fails (e.g., not a repository).
    """
    result = _run_git(cwd, ["status", "--porcelain"])
    if result.returncode != 0:
        raise GitRuntimeError(f"Failed to check git status: {_failure_detail(result)}")
    return not result.stdout.strip()


def has_uncommitted_changes(cwd: str) -> bool:
    """Inverse of is_working_tree_clean."""
    return not is_working_tree_clean(cwd)


def ensure_working_tree_clean(cwd: str) -> None:
    """Ensure the working tree is clean.

    Raises:
        DirtyWorkingTreeError: If there are pending changes.
        GitRuntimeError: If git status fails.
    """
    if not is_working_tree_clean(cwd):
        raise DirtyWorkingTreeError()


def commit_runner_changes(title: Optional[str], cwd: str) -> str:
    """Stage everything and create the runner's auto commit.

    Args:
        title: Task title used in the commit message.
        cwd: Directory inside the repository.

    Returns:
        Hash of the new commit.

    Raises:
        GitRuntimeError: If staging, committing or reading HEAD fails.
    """
    message = COMMIT_MESSAGE_TEMPLATE.format(title=normalize_task_title(title))

    result = _run_git(cwd, ["add", "-A"])
    if result.returncode != 0:
        raise GitRuntimeError(f"Failed to stage changes: {_failure_detail(result)}")

    result = _run_git(cwd, ["commit", "-m", message])
    if result.returncode != 0:
        raise GitRuntimeError(f"Failed to commit runner changes: {_failure_detail(result)}")

    result = _run_git(cwd, ["rev-parse", "HEAD"])
    if result.returncode != 0:
        raise GitRuntimeError(f"Failed to read commit hash: {_failure_detail(result)}")

    commit_hash = result.stdout.strip()
    if not commit_hash:
        raise GitRuntimeError("Failed to read commit hash: empty output")

    logger.info(f"Created runner commit {commit_hash[:12]}: {message}")
    return commit_hash


class GitGuard:
    """Git operations bound to one working directory."""

    def __init__(self, cwd: str):
        self.cwd = cwd

    def ensure_clean(self) -> None:
        ensure_working_tree_clean(self.cwd)

    def is_clean(self) -> bool:
        return is_working_tree_clean(self.cwd)

    def commit(self, title: Optional[str]) -> str:
        return commit_runner_changes(title, self.cwd)
