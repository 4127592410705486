"""
taskrunner CLI command implementations.

Commands are organized into separate modules; RunnerCLI is the facade that
holds the resolved workspace and delegates to them.

Commands:
  run         Run one task through its remaining stages
  run-column  Run every task in a stage column
  status      Show tasks grouped by stage
  providers   List provider definitions and whether they are valid
  commit      Create the runner's auto commit for the working tree
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from taskrunner.cli import cmd_commit as _cmd_commit_module
from taskrunner.cli import cmd_providers as _cmd_providers_module
from taskrunner.cli import cmd_run as _cmd_run_module
from taskrunner.cli import cmd_status as _cmd_status_module
from taskrunner.constants import RUNNABLE_STAGES
from taskrunner.pipeline import EventChannel, RunnerEngine
from taskrunner.support.paths import get_kanban_root, get_repo_root
from taskrunner.support.settings import RunnerSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RunnerCLI:
    """Runner CLI interface: resolved workspace plus command delegation."""

    def __init__(self, root: Optional[str] = None):
        """Resolve the kanban root (--root, TASKRUNNER_ROOT or ./.kanban2code)."""
        self.kanban_root: Path = get_kanban_root(root)
        self.repo_root: Path = get_repo_root(str(self.kanban_root))

    def load_settings(self) -> RunnerSettings:
        return RunnerSettings.from_env(str(self.kanban_root))

    def create_engine(self, events: Optional[EventChannel] = None) -> RunnerEngine:
        return RunnerEngine(
            str(self.kanban_root),
            settings=self.load_settings(),
            events=events,
            repo_root=str(self.repo_root),
        )

    def cmd_run(self, args: argparse.Namespace) -> int:
        """Run one task (delegates to cmd_run module)."""
        return _cmd_run_module.cmd_run(self, args)

    def cmd_run_column(self, args: argparse.Namespace) -> int:
        """Run a whole column (delegates to cmd_run module)."""
        return _cmd_run_module.cmd_run_column(self, args)

    def cmd_status(self, args: argparse.Namespace) -> int:
        """Show tasks by stage (delegates to cmd_status module)."""
        return _cmd_status_module.cmd_status(self, args)

    def cmd_providers(self, args: argparse.Namespace) -> int:
        """List providers (delegates to cmd_providers module)."""
        return _cmd_providers_module.cmd_providers(self, args)

    def cmd_commit(self, args: argparse.Namespace) -> int:
        """Create an auto commit (delegates to cmd_commit module)."""
        return _cmd_commit_module.cmd_commit(self, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskrunner", description="Run kanban tasks through CLI coding agents"
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Kanban root directory (default: $TASKRUNNER_ROOT or ./.kanban2code)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # 'run' command
    run_parser = subparsers.add_parser("run", help="Run one task through its remaining stages")
    run_parser.add_argument(
        "--task", required=True, help="Task file path (absolute, or relative to the root) or task id"
    )
    _add_run_options(run_parser)

    # 'run-column' command
    column_parser = subparsers.add_parser("run-column", help="Run every task in a stage column")
    column_parser.add_argument("stage", choices=RUNNABLE_STAGES, help="Column to run")
    _add_run_options(column_parser)

    # 'status' command
    status_parser = subparsers.add_parser("status", help="Show tasks grouped by stage")
    status_parser.add_argument("--stage", help="Only show one stage")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # 'providers' command
    providers_parser = subparsers.add_parser(
        "providers", help="List provider definitions and whether they are valid"
    )
    providers_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # 'commit' command
    commit_parser = subparsers.add_parser(
        "commit", help="Stage all changes and create the runner's auto commit"
    )
    commit_parser.add_argument("title", nargs="?", default="", help="Task title for the message")

    return parser


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--commit",
        action="store_true",
        help="Commit the working tree after each completed task",
    )
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Stream runner logs to the terminal",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Do not write a run report to _logs/",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the taskrunner CLI."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        cli = RunnerCLI(args.root)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "run":
        return cli.cmd_run(args)
    elif args.command == "run-column":
        return cli.cmd_run_column(args)
    elif args.command == "status":
        return cli.cmd_status(args)
    elif args.command == "providers":
        return cli.cmd_providers(args)
    elif args.command == "commit":
        return cli.cmd_commit(args)
    else:
        parser.print_help()
        return 1


__all__ = [
    "RunnerCLI",
    "build_parser",
    "main",
]
