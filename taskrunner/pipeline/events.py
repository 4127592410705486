"""
Typed runner events and the channel that delivers them.

Listeners subscribe to an EventChannel and receive every event the engine
publishes, synchronously and in order. A listener that raises is logged and
skipped; it never breaks the run.
"""

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, List, Optional, Union

from taskrunner.core.models import TaskRecord
from taskrunner.markers import StageMarkers

logger = logging.getLogger(__name__)

# RunStopped reasons
REASON_COMPLETED = "completed"
REASON_STOPPED = "stopped"
REASON_FAILED = "failed"


@dataclass
class TaskStarted:
    task: TaskRecord


@dataclass
class StageStarted:
    task: TaskRecord
    stage: str


@dataclass
class StageCompleted:
    """A stage produced a successful response; markers are already parsed."""

    task: TaskRecord
    stage: str
    output: str
    markers: StageMarkers = field(default_factory=StageMarkers)


@dataclass
class TaskCompleted:
    task: TaskRecord


@dataclass
class TaskFailed:
    task: TaskRecord
    error: str
    hard_stop: bool


@dataclass
class RunStopped:
    reason: str  # completed | stopped | failed
    error: Optional[str] = None


RunnerEvent = Union[TaskStarted, StageStarted, StageCompleted, TaskCompleted, TaskFailed, RunStopped]
Listener = Callable[[RunnerEvent], None]


class EventChannel:
    """Ordered, synchronous fan-out of runner events."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: RunnerEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Runner event listener failed on {type(event).__name__}: {e}")
