"""Task discovery and per-stage ordering for column runs."""

import logging
from pathlib import Path
from typing import Iterable, List

from taskrunner.constants import INBOX_FOLDER, PROJECT_CONTEXT_FILE, PROJECTS_FOLDER
from taskrunner.core.exceptions import TaskFileError
from taskrunner.core.models import TaskRecord
from taskrunner.store.task_files import read_task_file

logger = logging.getLogger(__name__)


def find_all_task_files(kanban_root: str) -> List[Path]:
    """Find task markdown files under inbox/, projects/ and phase-* folders.

    Project context files (_context.md) are not tasks and are skipped.
    """
    root = Path(kanban_root)
    candidates: List[Path] = []
    candidates.extend((root / INBOX_FOLDER).glob("*.md"))
    candidates.extend((root / PROJECTS_FOLDER).rglob("*.md"))
    for phase_dir in sorted(root.glob("phase-*")):
        if phase_dir.is_dir():
            candidates.extend(phase_dir.glob("*.md"))

    files = [
        path.resolve()
        for path in candidates
        if path.is_file() and path.name != PROJECT_CONTEXT_FILE
    ]
    return sorted(set(files))


def load_all_tasks(kanban_root: str) -> List[TaskRecord]:
    """Parse every task file; unreadable files are logged and skipped."""
    tasks: List[TaskRecord] = []
    for path in find_all_task_files(kanban_root):
        try:
            tasks.append(read_task_file(str(path)))
        except TaskFileError as e:
            logger.error(f"Failed to load task {path}: {e}")
    return tasks


def ordered_tasks_for_stage(tasks: Iterable[TaskRecord], stage: str) -> List[TaskRecord]:
    """Return the tasks of one stage in board order.

    Tasks with an explicit ``order`` come first (ascending); the rest follow.
    Ties break on creation date, then id, so the result is deterministic.
    """
    in_stage = [task for task in tasks if task.stage == stage]
    return sorted(
        in_stage,
        key=lambda task: (
            task.order is None,
            task.order if task.order is not None else 0,
            str(task.created) if task.created is not None else "",
            task.id,
        ),
    )


class FileTaskLister:
    """Task discovery port backed by the kanban folder layout."""

    def load_all_tasks(self, kanban_root: str) -> List[TaskRecord]:
        return load_all_tasks(kanban_root)

    def ordered_tasks_for_stage(self, tasks: Iterable[TaskRecord], stage: str) -> List[TaskRecord]:
        return ordered_tasks_for_stage(tasks, stage)
