"""Taskrunner package: runs kanban tasks through CLI coding agents."""

from taskrunner.core.models import RunResult, TaskRecord
from taskrunner.pipeline import EventChannel, RunnerEngine, RunSession
from taskrunner import adapters

__all__ = [
    "RunResult",
    "TaskRecord",
    "EventChannel",
    "RunnerEngine",
    "RunSession",
    "adapters",
]
