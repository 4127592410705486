"""Core domain model: TaskRecord, run results and stage ordering logic."""

from dataclasses import dataclass, asdict, field, replace
from typing import Any, Dict, List, Optional

from taskrunner.constants import (
    RUNNABLE_STAGES,
    STAGES,
    STAGE_INTAKE,
)


@dataclass
class TaskRecord:
    """In-memory view of one task markdown file."""

    id: str
    file_path: str
    title: str
    stage: str = STAGE_INTAKE  # Validated at write-time
    provider: Optional[str] = None
    agent: Optional[str] = None
    attempts: int = 0
    content: str = ""
    project: Optional[str] = None
    phase: Optional[str] = None
    parent: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    contexts: List[str] = field(default_factory=list)
    order: Optional[float] = None
    created: Any = None  # Raw YAML value (str or date)

    # Fields the engine is allowed to change when persisting
    MUTABLE_FIELDS = ("stage", "provider", "agent", "attempts")

    def validate(self) -> None:
        """Validate stage and retry counter at write-time."""
        if self.stage not in STAGES:
            raise ValueError(
                f"Invalid stage '{self.stage}'. Must be one of: {', '.join(STAGES)}"
            )
        if not isinstance(self.attempts, int) or self.attempts < 0:
            raise ValueError(
                f"Invalid attempts '{self.attempts}'. Must be a non-negative integer"
            )

    def with_updates(self, updates: Dict[str, Any]) -> "TaskRecord":
        """Return a copy with the given engine-owned fields replaced."""
        unknown = set(updates) - set(self.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")
        return replace(self, **updates)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskRecord":
        """Create TaskRecord from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert TaskRecord to dictionary."""
        return asdict(self)


@dataclass
class RunResult:
    """Outcome of one run_task/run_column invocation."""

    status: str  # completed | stopped | failed
    error: Optional[str] = None
    hard_stop: bool = False

    @classmethod
    def completed(cls) -> "RunResult":
        return cls(status="completed")

    @classmethod
    def stopped(cls) -> "RunResult":
        return cls(status="stopped")

    @classmethod
    def failed(cls, error: str, hard_stop: bool = True) -> "RunResult":
        return cls(status="failed", error=error, hard_stop=hard_stop)

    @property
    def is_soft_failure(self) -> bool:
        return self.status == "failed" and not self.hard_stop


def remaining_stages(stage: str) -> List[str]:
    """
    Compute the pipeline stages still to run for a task.

    Stage machine:
    - plan -> [plan, code, audit]
    - code -> [code, audit]
    - audit -> [audit]
    - intake, done or anything else -> [] (not runnable)

    Args:
        stage: Current task stage.

    Returns:
        Suffix of the runnable stage list starting at ``stage``.
    """
    if stage not in RUNNABLE_STAGES:
        return []
    return list(RUNNABLE_STAGES[RUNNABLE_STAGES.index(stage):])


def is_stage(value: Any) -> bool:
    """Return True when value names one of the pipeline stages."""
    return isinstance(value, str) and value in STAGES


def stage_index(stage: str) -> int:
    """Position of a stage in board order (intake=0 ... done=4)."""
    return STAGES.index(stage)
