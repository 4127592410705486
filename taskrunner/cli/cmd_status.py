"""
taskrunner status command implementation.

Displays tasks grouped by stage, optionally filtered by stage or output as JSON.
"""

import argparse
import json
import sys

from taskrunner.constants import STAGES
from taskrunner.core.exceptions import RunnerError
from taskrunner.store.scanner import load_all_tasks, ordered_tasks_for_stage


def cmd_status(cli_instance, args: argparse.Namespace) -> int:
    """Display tasks by stage.

    Args:
        cli_instance: RunnerCLI instance
        args: Parsed command-line arguments with: stage (optional), json (optional)

    Returns:
        Exit code (0 on success, 1 on error)
    """
    try:
        if args.stage and args.stage not in STAGES:
            print(f"Error: unknown stage '{args.stage}'", file=sys.stderr)
            return 1

        tasks = load_all_tasks(str(cli_instance.kanban_root))
        stages = [args.stage] if args.stage else list(STAGES)
        by_stage = {stage: ordered_tasks_for_stage(tasks, stage) for stage in stages}

        if args.json:
            output = {
                stage: [
                    {
                        "id": task.id,
                        "title": task.title,
                        "file_path": task.file_path,
                        "agent": task.agent,
                        "provider": task.provider,
                        "attempts": task.attempts,
                    }
                    for task in stage_tasks
                ]
                for stage, stage_tasks in by_stage.items()
            }
            print(json.dumps(output, indent=2))
            return 0

        for stage, stage_tasks in by_stage.items():
            print(f"\n{stage.upper()} ({len(stage_tasks)}):")
            for task in stage_tasks:
                suffix = f" [attempts: {task.attempts}]" if task.attempts else ""
                print(f"  {task.id}  {task.title}{suffix}")

        return 0

    except (RunnerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
