"""
taskrunner run / run-column command implementations.

Runs the pipeline engine in the foreground, prints progress, optionally
commits after each completed task and writes a run report.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Callable

from taskrunner.adapters.git import GitGuard, GitRuntimeError
from taskrunner.core.exceptions import RunnerError, TaskFileError
from taskrunner.core.models import RunResult, TaskRecord
from taskrunner.pipeline import EventChannel, RunnerEngine
from taskrunner.pipeline.events import (
    RunnerEvent,
    StageCompleted,
    StageStarted,
    TaskCompleted,
    TaskFailed,
    TaskStarted,
)
from taskrunner.store.run_log import RunLog, RunLogRecorder
from taskrunner.store.scanner import load_all_tasks
from taskrunner.store.task_files import read_task_file

logger = logging.getLogger(__name__)

EXIT_COMPLETED = 0
EXIT_FAILED = 1
EXIT_STOPPED = 130


def exit_code_for(result: RunResult) -> int:
    if result.status == "completed":
        return EXIT_COMPLETED
    if result.status == "stopped":
        return EXIT_STOPPED
    return EXIT_FAILED


def print_event(event: RunnerEvent) -> None:
    """Human-readable progress line for one runner event."""
    if isinstance(event, TaskStarted):
        print(f"\n> {event.task.title} ({event.task.id}) from '{event.task.stage}'")
    elif isinstance(event, StageStarted):
        print(f"  [{event.stage}] agent={event.task.agent} provider={event.task.provider}")
    elif isinstance(event, StageCompleted):
        markers = event.markers
        details = []
        if markers.stage_transition:
            details.append(f"transition={markers.stage_transition}")
        if markers.audit_rating is not None:
            details.append(f"rating={markers.audit_rating}")
        if markers.audit_verdict:
            details.append(f"verdict={markers.audit_verdict}")
        if markers.files_changed:
            details.append(f"files={len(markers.files_changed)}")
        print(f"  [{event.stage}] done" + (f" ({', '.join(details)})" if details else ""))
    elif isinstance(event, TaskCompleted):
        print(f"  COMPLETED: {event.task.id}")
    elif isinstance(event, TaskFailed):
        label = "FAILED (hard stop)" if event.hard_stop else "FAILED (retry later)"
        print(f"  {label}: {event.error}")


def resolve_task(cli_instance, task_ref: str) -> TaskRecord:
    """Find a task by file path (absolute, cwd- or root-relative) or by id.

    Raises:
        TaskFileError: If no task matches.
    """
    candidates = [Path(task_ref).expanduser(), cli_instance.kanban_root / task_ref]
    for candidate in candidates:
        if candidate.is_file():
            return read_task_file(str(candidate.resolve()))

    for task in load_all_tasks(str(cli_instance.kanban_root)):
        if task.id == task_ref:
            return task

    raise TaskFileError(f"Task not found: {task_ref}")


def _commit_on_completion(cli_instance, run_log: RunLog) -> Callable[[RunnerEvent], None]:
    git = GitGuard(str(cli_instance.repo_root))

    def listener(event: RunnerEvent) -> None:
        if not isinstance(event, TaskCompleted):
            return
        try:
            commit_hash = git.commit(event.task.title)
        except GitRuntimeError as e:
            print(f"  Warning: auto commit failed: {e}", file=sys.stderr)
            return
        run_log.attach_commit(event.task.id, commit_hash)
        print(f"  Committed {commit_hash[:12]}")

    return listener


def _execute(
    cli_instance,
    args: argparse.Namespace,
    start: Callable[[RunnerEngine], RunResult],
) -> int:
    follow_logs = bool(getattr(args, "follow", False))
    auto_commit = bool(getattr(args, "commit", False))
    write_report = not bool(getattr(args, "no_report", False))

    root_logger = logging.getLogger()
    previous_log_level = root_logger.level
    root_logger.setLevel(logging.INFO if follow_logs else logging.WARNING)

    try:
        events = EventChannel()
        engine = cli_instance.create_engine(events)

        run_log = RunLog()
        recorder = RunLogRecorder(run_log)
        recorder.attach(events)
        events.subscribe(print_event)
        if auto_commit:
            events.subscribe(_commit_on_completion(cli_instance, run_log))

        def handle_interrupt(signum, frame):
            print("\nStop requested; waiting for the current stage to end...", file=sys.stderr)
            engine.stop()

        previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
        try:
            result = start(engine)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
            recorder.detach()

        if write_report:
            try:
                report_path = run_log.save(str(cli_instance.kanban_root))
                print(f"\nReport: {report_path}")
            except OSError as e:
                print(f"Warning: could not write run report: {e}", file=sys.stderr)

        if result.status == "completed":
            print("\nRun completed.")
        elif result.status == "stopped":
            print("\nRun stopped.")
        else:
            label = "FAILED (hard stop)" if result.hard_stop else "FAILED (retry later)"
            print(f"\nRun {label}: {result.error}", file=sys.stderr)

        return exit_code_for(result)
    finally:
        root_logger.setLevel(previous_log_level)


def cmd_run(cli_instance, args: argparse.Namespace) -> int:
    """Run one task through its remaining stages.

    Args:
        cli_instance: RunnerCLI instance
        args: Parsed command-line arguments with: task, commit, follow, no_report

    Returns:
        Exit code (0 completed, 1 failed, 130 stopped)
    """
    try:
        task = resolve_task(cli_instance, args.task)
        return _execute(cli_instance, args, lambda engine: engine.run_task(task))
    except RunnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


def cmd_run_column(cli_instance, args: argparse.Namespace) -> int:
    """Run every task in a stage column in board order.

    Args:
        cli_instance: RunnerCLI instance
        args: Parsed command-line arguments with: stage, commit, follow, no_report

    Returns:
        Exit code (0 completed, 1 failed, 130 stopped)
    """
    try:
        return _execute(cli_instance, args, lambda engine: engine.run_column(args.stage))
    except RunnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
