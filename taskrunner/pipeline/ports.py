"""Collaborator interfaces the engine depends on.

File-backed implementations live in taskrunner.store and taskrunner.support;
tests substitute in-memory fakes.
"""

from typing import Iterable, List, Optional, Protocol

from taskrunner.adapters.protocol import CliCommand
from taskrunner.core.models import TaskRecord
from taskrunner.pipeline.process import ExecutionResult
from taskrunner.pipeline.session import RunSession
from taskrunner.support.prompts import RunnerPrompt
from taskrunner.support.providers import ProviderConfig


class TaskStore(Protocol):
    def read_current(self, file_path: str) -> TaskRecord: ...

    def read_raw(self, file_path: str) -> str: ...

    def serialize(self, task: TaskRecord, original_content: Optional[str]) -> str: ...

    def write_raw(self, file_path: str, text: str) -> None: ...


class TaskLister(Protocol):
    def load_all_tasks(self, kanban_root: str) -> List[TaskRecord]: ...

    def ordered_tasks_for_stage(self, tasks: Iterable[TaskRecord], stage: str) -> List[TaskRecord]: ...


class PromptBuilder(Protocol):
    def build_prompt(self, task: TaskRecord, kanban_root: str) -> RunnerPrompt: ...


class DefaultsResolver(Protocol):
    def default_agent_for_stage(self, kanban_root: str, stage: str) -> str: ...

    def default_provider_for_agent(self, agent_name: str) -> Optional[str]: ...

    @property
    def global_default_provider(self) -> str: ...


class ProviderResolver(Protocol):
    def resolve_provider_config(self, kanban_root: str, provider_name: str) -> Optional[ProviderConfig]: ...


class Executor(Protocol):
    def execute(
        self,
        command: CliCommand,
        cwd: str,
        session: RunSession,
        timeout: Optional[int] = None,
    ) -> ExecutionResult: ...


class WorkingTreeGuard(Protocol):
    def ensure_clean(self) -> None: ...
