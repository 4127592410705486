"""taskrunner commit command implementation."""

import argparse
import sys

from taskrunner.adapters.git import GitRuntimeError, commit_runner_changes, has_uncommitted_changes


def cmd_commit(cli_instance, args: argparse.Namespace) -> int:
    """Stage all changes and create the runner's auto commit.

    Args:
        cli_instance: RunnerCLI instance
        args: Parsed command-line arguments with: title

    Returns:
        Exit code (0 on success, 1 on error)
    """
    cwd = str(cli_instance.repo_root)
    try:
        if not has_uncommitted_changes(cwd):
            print("Nothing to commit: working tree is clean.")
            return 0

        commit_hash = commit_runner_changes(args.title, cwd)
        print(commit_hash)
        return 0

    except GitRuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
