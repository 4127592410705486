"""
Pipeline runner for moving tasks through plan, code and audit stages.

Runs the configured CLI agent for each remaining stage, persists stage changes
to the task file and reports progress through typed events.

Main exports:
- RunnerEngine: single-flight engine with run_task/run_column/stop
- EventChannel: subscription point for runner events
- RunSession: explicit run object (stop flag + in-flight process)
"""

from taskrunner.pipeline.engine import RunnerEngine
from taskrunner.pipeline.events import EventChannel
from taskrunner.pipeline.session import RunSession

__all__ = [
    "RunnerEngine",
    "EventChannel",
    "RunSession",
]
