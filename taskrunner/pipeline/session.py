"""Explicit run object: stop flag plus the single in-flight process handle."""

import logging
import subprocess
from threading import RLock
from typing import Optional

logger = logging.getLogger(__name__)


class RunSession:
    """
    State of one run_task/run_column invocation.

    At most one process handle is attached at a time. ``request_stop`` may be
    called from another thread or from a signal handler; it sets the flag and
    sends SIGTERM to the attached process, if any.
    """

    def __init__(self):
        # Reentrant: request_stop may run in a signal handler while this thread holds it
        self._lock = RLock()
        self._stop_requested = False
        self._process: Optional[subprocess.Popen] = None
        self.task_id: Optional[str] = None
        self.stage: Optional[str] = None

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._stop_requested

    @property
    def has_process(self) -> bool:
        with self._lock:
            return self._process is not None

    def request_stop(self) -> None:
        with self._lock:
            self._stop_requested = True
            process = self._process

        if process is not None and process.poll() is None:
            logger.info(f"Stop requested; terminating pid {process.pid}")
            process.terminate()

    def attach(self, process: subprocess.Popen) -> None:
        """Register the in-flight process.

        Raises:
            RuntimeError: If another process is already attached.
        """
        with self._lock:
            if self._process is not None:
                raise RuntimeError("A process is already running in this session")
            self._process = process
            stop_requested = self._stop_requested

        # Stop arrived between spawn and attach
        if stop_requested:
            process.terminate()

    def detach(self, process: subprocess.Popen) -> None:
        with self._lock:
            if self._process is process:
                self._process = None
