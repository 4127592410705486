"""
Path helpers for the kanban workspace.

Provides utilities for resolving the kanban root, the repository it lives in,
workspace sub-folders, and guarding against paths escaping the root.
"""

import os
from pathlib import Path
from typing import Optional

from taskrunner.constants import LOGS_FOLDER

KANBAN_FOLDER = ".kanban2code"


def get_kanban_root(explicit: Optional[str] = None) -> Path:
    """Resolve the kanban root directory.

    Order: explicit argument, TASKRUNNER_ROOT, then ./.kanban2code.

    Args:
        explicit: Path given on the command line, if any.

    Returns:
        Absolute Path to the kanban root.
    """
    raw = explicit or os.environ.get("TASKRUNNER_ROOT", "")
    if raw:
        return Path(raw).expanduser().resolve()
    return (Path.cwd() / KANBAN_FOLDER).resolve()


def get_repo_root(kanban_root: str) -> Path:
    """Repository working tree that contains the kanban root.

    Agents and git commands run from here.
    """
    return Path(kanban_root).resolve().parent


def get_logs_dir(kanban_root: str) -> Path:
    """Get the run report directory (<kanban-root>/_logs)."""
    return Path(kanban_root) / LOGS_FOLDER


def ensure_safe_path(root: str, target: str) -> Path:
    """Resolve target and ensure it stays inside root.

    Raises:
        ValueError: If the resolved target escapes root.
    """
    root_path = Path(root).resolve()
    target_path = (root_path / target).resolve()
    try:
        target_path.relative_to(root_path)
    except ValueError:
        raise ValueError(f"Path escapes kanban root: {target}")
    return target_path


def read_file_if_exists(root: str, relative_path: str) -> str:
    """Read a workspace file, returning '' when it does not exist."""
    path = ensure_safe_path(root, relative_path)
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8")
