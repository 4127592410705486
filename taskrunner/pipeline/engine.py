"""
Pipeline engine driving tasks through plan -> code -> audit -> done.

Provides RunnerEngine, which runs one task (run_task) or a whole column
(run_column) by invoking the configured CLI agent for each remaining stage,
persisting stage/agent/provider changes back to the task file and applying
the audit outcome policy.
"""

import logging
from dataclasses import replace
from threading import RLock
from typing import Any, Dict, Optional

from taskrunner.adapters.factory import get_adapter_for_cli
from taskrunner.adapters.git import GitGuard
from taskrunner.adapters.protocol import AdapterException, CliAdapterOptions
from taskrunner.constants import STAGE_AUDIT, STAGE_CODE, STAGE_DONE, STAGE_PLAN
from taskrunner.core.exceptions import (
    ProcessLaunchError,
    RunnerBusyError,
    RunnerError,
    UnsupportedCliError,
)
from taskrunner.core.models import RunResult, TaskRecord, remaining_stages
from taskrunner.markers import VERDICT_ACCEPTED, StageMarkers, parse_markers
from taskrunner.pipeline.events import (
    EventChannel,
    RunStopped,
    StageCompleted,
    StageStarted,
    TaskCompleted,
    TaskFailed,
    TaskStarted,
)
from taskrunner.pipeline.ports import (
    DefaultsResolver,
    Executor,
    PromptBuilder,
    ProviderResolver,
    TaskLister,
    TaskStore,
    WorkingTreeGuard,
)
from taskrunner.pipeline.process import CommandExecutor
from taskrunner.pipeline.session import RunSession
from taskrunner.store.scanner import FileTaskLister
from taskrunner.store.task_files import FileTaskStore
from taskrunner.support.agents import WorkspaceDefaults
from taskrunner.support.paths import get_repo_root
from taskrunner.support.prompts import WorkspacePromptBuilder
from taskrunner.support.providers import FileProviderResolver
from taskrunner.support.settings import RunnerSettings

logger = logging.getLogger(__name__)

# Errors that end a run with a failed result instead of propagating
RUN_ERRORS = (RunnerError, AdapterException, OSError, ValueError)


class RunnerEngine:
    """
    Runs tasks through the remaining pipeline stages, one at a time.

    The engine is single-flight: starting a run while another is active
    raises RunnerBusyError. Every run ends with exactly one RunStopped event.

    Attributes:
        kanban_root: Workspace root holding tasks, agents and providers.
        repo_root: Repository the CLI agents and git checks run in.
        events: Channel receiving runner events.
        accept_rating: Minimum audit rating that accepts a task.
        max_audit_attempts: Rejections after which the audit hard-stops.
    """

    def __init__(
        self,
        kanban_root: str,
        settings: Optional[RunnerSettings] = None,
        store: Optional[TaskStore] = None,
        lister: Optional[TaskLister] = None,
        prompts: Optional[PromptBuilder] = None,
        defaults: Optional[DefaultsResolver] = None,
        providers: Optional[ProviderResolver] = None,
        executor: Optional[Executor] = None,
        git: Optional[WorkingTreeGuard] = None,
        events: Optional[EventChannel] = None,
        repo_root: Optional[str] = None,
    ):
        """
        Initialize the engine; unset collaborators default to the file-based ones.

        Args:
            kanban_root: Workspace root directory.
            settings: Runner thresholds and provider defaults.
            store: Task record persistence.
            lister: Task discovery and ordering (run_column only).
            prompts: Prompt assembly.
            defaults: Stage -> agent -> provider resolution.
            providers: Provider configuration lookup.
            executor: Process execution.
            git: Clean working tree precondition.
            events: Event channel; a new one is created when omitted.
            repo_root: Repository root; defaults to the kanban root's parent.
        """
        self.kanban_root = str(kanban_root)
        self.repo_root = str(repo_root or get_repo_root(self.kanban_root))
        self.settings = settings or RunnerSettings()
        self.settings.validate()

        self.store = store or FileTaskStore()
        self.lister = lister or FileTaskLister()
        self.prompts = prompts or WorkspacePromptBuilder()
        self.defaults = defaults or WorkspaceDefaults(self.settings)
        self.providers = providers or FileProviderResolver()
        self.executor = executor or CommandExecutor()
        self.git = git or GitGuard(self.repo_root)
        self.events = events or EventChannel()

        self.accept_rating = self.settings.accept_rating
        self.max_audit_attempts = self.settings.max_audit_attempts

        self._state_lock = RLock()
        self._session: Optional[RunSession] = None

    # ========================================================================
    # Run lifecycle
    # ========================================================================

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._session is not None

    def stop(self) -> None:
        """Request cooperative cancellation of the active run, if any."""
        with self._state_lock:
            session = self._session
        if session is None:
            logger.debug("Stop requested with no active run")
            return
        session.request_stop()

    def run_task(self, task: TaskRecord, session: Optional[RunSession] = None) -> RunResult:
        """
        Run one task from its current stage to completion.

        Args:
            task: Task to run; it is re-read from disk before starting.
            session: Optional caller-owned run object.

        Returns:
            RunResult describing how the run ended.

        Raises:
            RunnerBusyError: If another run is active.
        """
        session = self._begin(session)
        try:
            self.git.ensure_clean()
            refreshed = self.store.read_current(task.file_path)
            return self._finish(self._run_pipeline(refreshed, session))
        except RUN_ERRORS as e:
            logger.error(f"Run for task {task.id} aborted: {e}")
            return self._finish(RunResult.failed(str(e)))
        finally:
            self._end(session)

    def run_column(self, stage: str, session: Optional[RunSession] = None) -> RunResult:
        """
        Run every task in a column, in board order.

        Soft failures move on to the next task; a hard failure or a stop
        request ends the run.

        Args:
            stage: Column to run.
            session: Optional caller-owned run object.

        Returns:
            RunResult describing how the run ended.

        Raises:
            RunnerBusyError: If another run is active.
        """
        session = self._begin(session)
        try:
            self.git.ensure_clean()
            tasks = self.lister.ordered_tasks_for_stage(
                self.lister.load_all_tasks(self.kanban_root), stage
            )
            logger.info(f"Running column '{stage}' with {len(tasks)} task(s)")

            for task in tasks:
                if session.stop_requested:
                    return self._finish(RunResult.stopped())

                result = self._run_pipeline(task, session)
                if result.status == "stopped":
                    return self._finish(result)
                if result.status == "failed" and result.hard_stop:
                    return self._finish(result)
                if result.is_soft_failure:
                    logger.info(f"Task {task.id} will be retried later: {result.error}")

            return self._finish(RunResult.completed())
        except RUN_ERRORS as e:
            logger.error(f"Column run for '{stage}' aborted: {e}")
            return self._finish(RunResult.failed(str(e)))
        finally:
            self._end(session)

    def _begin(self, session: Optional[RunSession]) -> RunSession:
        with self._state_lock:
            if self._session is not None:
                raise RunnerBusyError()
            self._session = session or RunSession()
            return self._session

    def _end(self, session: RunSession) -> None:
        with self._state_lock:
            if self._session is session:
                self._session = None

    def _finish(self, result: RunResult) -> RunResult:
        self.events.publish(RunStopped(reason=result.status, error=result.error))
        return result

    # ========================================================================
    # Per-task pipeline
    # ========================================================================

    def _run_pipeline(self, task: TaskRecord, session: RunSession) -> RunResult:
        session.task_id = task.id
        self.events.publish(TaskStarted(task=replace(task)))
        logger.info(f"Starting task {task.id} from stage '{task.stage}'")

        stages = remaining_stages(task.stage)
        if not stages:
            return self._fail(task, f"Runner cannot execute task from stage '{task.stage}'")

        for stage in stages:
            if session.stop_requested:
                logger.info(f"Stop requested before stage '{stage}' of task {task.id}")
                return RunResult.stopped()

            session.stage = stage
            self._enter_stage(task, stage)
            self.events.publish(StageStarted(task=replace(task), stage=stage))

            prompt = self.prompts.build_prompt(task, self.kanban_root)

            config = self.providers.resolve_provider_config(self.kanban_root, task.provider)
            if config is None:
                return self._fail(task, f"Provider config not found for '{task.provider}'")

            try:
                adapter = get_adapter_for_cli(config.cli)
            except UnsupportedCliError as e:
                return self._fail(task, str(e))

            command = adapter.build_command(
                config,
                prompt.main_prompt,
                CliAdapterOptions(
                    system_prompt=prompt.system_instructions or None,
                    max_turns=config.safety.max_turns,
                ),
            )

            logger.info(f"Task {task.id}: running stage '{stage}' with {config.cli} ({config.model})")
            try:
                execution = self.executor.execute(
                    command,
                    cwd=self.repo_root,
                    session=session,
                    timeout=config.safety.timeout,
                )
            except ProcessLaunchError as e:
                return self._fail(task, str(e))

            if execution.exit_code != 0:
                if session.stop_requested:
                    logger.info(f"Stage '{stage}' of task {task.id} terminated by stop request")
                    return RunResult.stopped()
                detail = execution.stderr or execution.stdout or "no output"
                return self._fail(
                    task, f"CLI crash for {config.cli} (exit {execution.exit_code}): {detail}"
                )

            response = adapter.parse_response(execution.stdout, execution.exit_code)
            if not response.success:
                return self._fail(task, response.error or f"CLI execution failed for {config.cli}")

            markers = parse_markers(response.result, include_audit=stage == STAGE_AUDIT)
            self.events.publish(
                StageCompleted(
                    task=replace(task),
                    stage=stage,
                    output=response.result,
                    markers=markers,
                )
            )

            if stage == STAGE_AUDIT:
                return self._apply_audit_outcome(task, markers)

        return RunResult.completed()

    def _enter_stage(self, task: TaskRecord, stage: str) -> None:
        """Persist the stage with its default agent and provider."""
        agent = self.defaults.default_agent_for_stage(self.kanban_root, stage)
        provider = (
            self.defaults.default_provider_for_agent(agent)
            or self.defaults.global_default_provider
        )

        updates: Dict[str, Any] = {"stage": stage, "agent": agent, "provider": provider}
        # A pass starting at plan is a fresh attempt at the task
        if stage == STAGE_PLAN and task.attempts:
            updates["attempts"] = 0

        self._persist(task, updates)
        logger.debug(f"Task {task.id} entered '{stage}' (agent={agent}, provider={provider})")

    def _apply_audit_outcome(self, task: TaskRecord, markers: StageMarkers) -> RunResult:
        rating = markers.audit_rating
        accepted = (
            rating is not None and rating >= self.accept_rating
        ) or markers.audit_verdict == VERDICT_ACCEPTED

        if accepted:
            self._persist(task, {"stage": STAGE_DONE})
            self.events.publish(TaskCompleted(task=replace(task)))
            logger.info(f"Task {task.id} accepted by audit (rating={rating})")
            return RunResult.completed()

        attempts = task.attempts + 1
        rating_text = rating if rating is not None else "unknown"

        if attempts >= self.max_audit_attempts:
            self._persist(task, {"stage": STAGE_AUDIT, "attempts": attempts})
            return self._fail(task, f"Audit failed with rating {rating_text} at attempt {attempts}")

        self._persist(task, {"stage": STAGE_CODE, "attempts": attempts})
        return self._fail(
            task,
            f"Audit failed with rating {rating_text} (attempt {attempts})",
            hard_stop=False,
        )

    def _fail(self, task: TaskRecord, error: str, hard_stop: bool = True) -> RunResult:
        if hard_stop:
            logger.error(f"Task {task.id} failed (hard stop): {error}")
        else:
            logger.warning(f"Task {task.id} failed (retry later): {error}")
        self.events.publish(TaskFailed(task=replace(task), error=error, hard_stop=hard_stop))
        return RunResult.failed(error, hard_stop=hard_stop)

    def _persist(self, task: TaskRecord, updates: Dict[str, Any]) -> None:
        """
        Merge engine-owned fields onto the latest on-disk record and write it.

        The in-memory task is updated to match what was written.
        """
        fresh = self.store.read_current(task.file_path)
        original = self.store.read_raw(task.file_path)
        merged = fresh.with_updates(updates)

        self.store.write_raw(task.file_path, self.store.serialize(merged, original))

        for name in TaskRecord.MUTABLE_FIELDS:
            setattr(task, name, getattr(merged, name))
        task.content = merged.content
