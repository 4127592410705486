"""
External process execution for CLI invocations.

Spawns the command described by a CliCommand, writes the stdin payload,
drains stdout/stderr until exit and reports the exit code. A timeout kills
the process and is reported with exit code 124.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from taskrunner.adapters.protocol import CliCommand
from taskrunner.constants import TIMEOUT_EXIT_CODE
from taskrunner.core.exceptions import ProcessLaunchError
from taskrunner.pipeline.session import RunSession

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Captured output of one finished process."""

    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False


class CommandExecutor:
    """Runs CLI commands as subprocesses attached to a RunSession."""

    def execute(
        self,
        command: CliCommand,
        cwd: str,
        session: RunSession,
        timeout: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Run a command to completion.

        Args:
            command: Command descriptor produced by an adapter.
            cwd: Working directory for the process.
            session: Run session the process handle is attached to while it runs.
            timeout: Optional limit in seconds.

        Returns:
            ExecutionResult with the accumulated output.

        Raises:
            ProcessLaunchError: If the executable cannot be started, or the
                session already has a process attached (the new one is killed).
        """
        argv = command.argv()
        logger.debug(f"Spawning {command.command} with {len(command.args)} args in {cwd}")

        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ProcessLaunchError(command.command, str(e)) from e

        try:
            session.attach(process)
        except RuntimeError as e:
            process.kill()
            process.communicate()
            raise ProcessLaunchError(command.command, str(e)) from e

        try:
            try:
                stdout, stderr = process.communicate(input=command.stdin or "", timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"{command.command} timed out after {timeout}s; killing pid {process.pid}")
                process.kill()
                stdout, stderr = process.communicate()
                message = f"Command timeout after {timeout}s"
                return ExecutionResult(
                    stdout=stdout or "",
                    stderr=f"{stderr}\n{message}".strip() if stderr else message,
                    exit_code=TIMEOUT_EXIT_CODE,
                    timed_out=True,
                )
        finally:
            session.detach(process)

        return ExecutionResult(
            stdout=stdout or "",
            stderr=stderr or "",
            exit_code=process.returncode,
        )
