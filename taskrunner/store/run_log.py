"""
Markdown run reports.

One report per run is written to ``<kanban-root>/_logs/run-YYYYMMDD-HHMMSS.md``
with a summary table and one section per processed task. RunLogRecorder
fills a RunLog from runner events.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from taskrunner.core.models import TaskRecord
from taskrunner.pipeline.events import (
    EventChannel,
    RunnerEvent,
    RunStopped,
    TaskCompleted,
    TaskFailed,
    TaskStarted,
)
from taskrunner.store.task_files import write_text_atomic
from taskrunner.support.paths import get_logs_dir

logger = logging.getLogger(__name__)

TASK_COMPLETED = "completed"
TASK_FAILED = "failed"
TASK_CRASHED = "crashed"

CRASH_PREFIX = "CLI crash"


@dataclass
class TaskRunEntry:
    """Outcome of one task within a run."""

    task_id: str
    title: str
    status: str  # completed | failed | crashed
    provider: Optional[str] = None
    agent: Optional[str] = None
    duration_seconds: Optional[float] = None
    commit: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None


def format_duration(seconds: float) -> str:
    """125.4 -> '2m 05s'."""
    total = max(0, int(seconds))
    return f"{total // 60}m {total % 60:02d}s"


class RunLog:
    """Accumulates task outcomes for one run and renders the report."""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self._now = now or datetime.now
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.finish_reason: Optional[str] = None
        self.tasks: List[TaskRunEntry] = []

    def start_run(self) -> None:
        self.started_at = self._now()
        self.finished_at = None
        self.finish_reason = None
        self.tasks = []

    def record_task(self, entry: TaskRunEntry) -> None:
        self.tasks.append(entry)

    def attach_commit(self, task_id: str, commit: str) -> None:
        """Set the commit hash on the latest entry for a task."""
        for entry in reversed(self.tasks):
            if entry.task_id == task_id:
                entry.commit = commit
                return
        logger.debug(f"No run log entry for task {task_id}; commit {commit} not recorded")

    def finish_run(self, reason: str) -> None:
        if self.started_at is None:
            self.started_at = self._now()
        self.finished_at = self._now()
        self.finish_reason = reason

    def count(self, status: str) -> int:
        return sum(1 for entry in self.tasks if entry.status == status)

    def to_markdown(self) -> str:
        start = self.started_at or self._now()
        end = self.finished_at or self._now()

        lines = [
            f"# Night Shift Report - {start.strftime('%Y-%m-%d %H:%M')}",
            "",
            "## Summary",
            "| Metric | Value |",
            "| --- | --- |",
            f"| Tasks processed | {len(self.tasks)} |",
            f"| Completed | {self.count(TASK_COMPLETED)} |",
            f"| Failed | {self.count(TASK_FAILED)} |",
            f"| Crashed | {self.count(TASK_CRASHED)} |",
            f"| Total time | {format_duration((end - start).total_seconds())} |",
            f"| Finish reason | {self.finish_reason or 'in-progress'} |",
            "",
            "## Tasks",
        ]

        if not self.tasks:
            lines.append("_No tasks were processed in this run._")
            lines.append("")
            return "\n".join(lines)

        for entry in self.tasks:
            duration = (
                format_duration(entry.duration_seconds)
                if entry.duration_seconds is not None
                else "-"
            )
            lines.extend(
                [
                    "",
                    f"### {entry.title or entry.task_id}",
                    f"- Task: {entry.task_id}",
                    f"- Status: {entry.status}",
                    f"- Provider: {entry.provider or '-'}",
                    f"- Agent: {entry.agent or '-'}",
                    f"- Time: {duration}",
                    f"- Commit: {entry.commit or '-'}",
                    f"- Attempts: {entry.attempts}",
                    f"- Error: {entry.error or '-'}",
                ]
            )

        lines.append("")
        return "\n".join(lines)

    def save(self, kanban_root: str) -> Path:
        """Write the report under _logs/ and return its path."""
        start = self.started_at or self._now()
        logs_dir = get_logs_dir(kanban_root)
        logs_dir.mkdir(parents=True, exist_ok=True)

        path = logs_dir / f"run-{start.strftime('%Y%m%d-%H%M%S')}.md"
        write_text_atomic(str(path), self.to_markdown())
        logger.info(f"Run report written to {path}")
        return path


class RunLogRecorder:
    """Fills a RunLog from runner events."""

    def __init__(self, run_log: RunLog, now: Optional[Callable[[], datetime]] = None):
        self.run_log = run_log
        self._now = now or datetime.now
        self._task_started: Dict[str, datetime] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, events: EventChannel) -> None:
        self.run_log.start_run()
        self._unsubscribe = events.subscribe(self.handle)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: RunnerEvent) -> None:
        if isinstance(event, TaskStarted):
            self._task_started[event.task.id] = self._now()
        elif isinstance(event, TaskCompleted):
            self._record(event.task, TASK_COMPLETED)
        elif isinstance(event, TaskFailed):
            status = TASK_CRASHED if event.error.startswith(CRASH_PREFIX) else TASK_FAILED
            self._record(event.task, status, event.error)
        elif isinstance(event, RunStopped):
            self.run_log.finish_run(event.reason)

    def _record(self, task: TaskRecord, status: str, error: Optional[str] = None) -> None:
        started = self._task_started.pop(task.id, None)
        duration = (self._now() - started).total_seconds() if started else None
        self.run_log.record_task(
            TaskRunEntry(
                task_id=task.id,
                title=task.title,
                status=status,
                provider=task.provider,
                agent=task.agent,
                duration_seconds=duration,
                attempts=task.attempts,
                error=error,
            )
        )
