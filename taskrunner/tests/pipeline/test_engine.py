"""
Tests for the pipeline engine.

The engine runs against real task files in a temporary workspace; the
process executor, git guard, prompt builder and provider lookup are fakes.
"""

import json
import threading

import pytest

from taskrunner.adapters.git import DirtyWorkingTreeError
from taskrunner.core.exceptions import ProcessLaunchError, RunnerBusyError
from taskrunner.core.models import RunResult, remaining_stages
from taskrunner.pipeline.engine import RunnerEngine
from taskrunner.pipeline.events import (
    EventChannel,
    RunStopped,
    StageCompleted,
    StageStarted,
    TaskCompleted,
    TaskFailed,
    TaskStarted,
)
from taskrunner.pipeline.process import ExecutionResult
from taskrunner.store.task_files import FileTaskStore, read_task_file
from taskrunner.support.prompts import RunnerPrompt
from taskrunner.support.providers import ProviderConfig
from taskrunner.support.settings import RunnerSettings


# ============================================================================
# Fakes
# ============================================================================


class CountingStore(FileTaskStore):
    """File store that records every write."""

    def __init__(self):
        self.writes = []

    def write_raw(self, file_path, text):
        self.writes.append(text)
        super().write_raw(file_path, text)


class FakeExecutor:
    """Returns queued results; a callable entry is invoked to produce one."""

    def __init__(self, *results):
        self.results = list(results)
        self.commands = []

    def execute(self, command, cwd, session, timeout=None):
        self.commands.append(command)
        result = self.results.pop(0)
        if callable(result):
            result = result(command)
        if isinstance(result, Exception):
            raise result
        return result


class FakeGit:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def ensure_clean(self):
        self.calls += 1
        if self.error:
            raise self.error


class FakePrompts:
    def build_prompt(self, task, kanban_root):
        return RunnerPrompt(main_prompt=f"<task>{task.id}:{task.stage}</task>", system_instructions="SYS")


class FakeDefaults:
    agents = {"plan": "planner", "code": "coder", "audit": "auditor"}

    def default_agent_for_stage(self, kanban_root, stage):
        return self.agents[stage]

    def default_provider_for_agent(self, agent_name):
        return "opus"

    @property
    def global_default_provider(self):
        return "codex"


class FakeProviders:
    def __init__(self, configs=None):
        self.configs = configs if configs is not None else {
            "opus": ProviderConfig(
                cli="claude",
                model="opus",
                unattended_flags=("--dangerously-skip-permissions",),
                output_flags=("--output-format", "json"),
            )
        }
        self.lookups = []

    def resolve_provider_config(self, kanban_root, provider_name):
        self.lookups.append(provider_name)
        return self.configs.get(provider_name)


def claude_output(text, exit_code=0):
    return ExecutionResult(
        stdout=json.dumps({"is_error": False, "result": text, "session_id": "s"}),
        stderr="",
        exit_code=exit_code,
    )


PLAN_OK = claude_output("Plan ready.\n<!-- STAGE_TRANSITION: code -->")
CODE_OK = claude_output("Implemented.\n<!-- STAGE_TRANSITION: audit -->\n<!-- FILES_CHANGED: a.py -->")


def audit_output(rating=None, verdict=None):
    lines = ["Reviewed.", "<!-- STAGE_TRANSITION: done -->"]
    if rating is not None:
        lines.append(f"<!-- AUDIT_RATING: {rating} -->")
    if verdict is not None:
        lines.append(f"<!-- AUDIT_VERDICT: {verdict} -->")
    return claude_output("\n".join(lines))


@pytest.fixture
def build_engine(kanban_root, tmp_path):
    def _build(executor, git=None, providers=None, settings=None):
        events = EventChannel()
        received = []
        events.subscribe(received.append)
        engine = RunnerEngine(
            str(kanban_root),
            settings=settings,
            store=CountingStore(),
            prompts=FakePrompts(),
            defaults=FakeDefaults(),
            providers=providers or FakeProviders(),
            executor=executor,
            git=git or FakeGit(),
            events=events,
            repo_root=str(tmp_path),
        )
        engine.received = received
        return engine

    return _build


def event_types(engine):
    return [type(event) for event in engine.received]


# ============================================================================
# Stage computation
# ============================================================================


class TestRemainingStages:
    """Test remaining-stage computation."""

    @pytest.mark.parametrize(
        "stage,expected",
        [
            ("plan", ["plan", "code", "audit"]),
            ("code", ["code", "audit"]),
            ("audit", ["audit"]),
            ("intake", []),
            ("done", []),
            ("bogus", []),
        ],
    )
    def test_suffix_of_pipeline(self, stage, expected):
        assert remaining_stages(stage) == expected


# ============================================================================
# run_task
# ============================================================================


class TestRunTaskEndToEnd:
    """Test a full plan -> code -> audit run."""

    def test_task_completes_and_is_persisted(self, build_engine, make_task):
        path = make_task(stage="plan")
        executor = FakeExecutor(PLAN_OK, CODE_OK, audit_output(rating=9))
        engine = build_engine(executor)

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.completed()
        assert len(engine.store.writes) == 4

        saved = read_task_file(str(path))
        assert saved.stage == "done"
        assert saved.agent == "auditor"
        assert saved.provider == "opus"
        assert "# Add login" in saved.content

        assert len(executor.commands) == 3
        assert executor.commands[0].args[:2] == ["-p", "<task>task-1:plan</task>"]
        assert "--append-system-prompt" in executor.commands[0].args

        assert event_types(engine) == [
            TaskStarted,
            StageStarted, StageCompleted,
            StageStarted, StageCompleted,
            StageStarted, StageCompleted,
            TaskCompleted,
            RunStopped,
        ]
        assert engine.received[-1] == RunStopped(reason="completed", error=None)
        assert not engine.is_running

    def test_stage_completed_carries_markers(self, build_engine, make_task):
        path = make_task(stage="code")
        engine = build_engine(FakeExecutor(CODE_OK, audit_output(rating=9, verdict="ACCEPTED")))

        engine.run_task(read_task_file(str(path)))

        completed = [e for e in engine.received if isinstance(e, StageCompleted)]
        assert completed[0].stage == "code"
        assert completed[0].markers.stage_transition == "audit"
        assert completed[0].markers.files_changed == ["a.py"]
        assert completed[0].markers.audit_rating is None
        assert completed[1].markers.audit_rating == 9
        assert completed[1].markers.audit_verdict == "ACCEPTED"

    def test_stage_entry_overrides_agent_and_provider(self, build_engine, make_task):
        path = make_task(stage="audit", extra="agent: someone\nprovider: other\nowner: alice")
        engine = build_engine(FakeExecutor(audit_output(rating=8)))

        engine.run_task(read_task_file(str(path)))

        raw = path.read_text()
        assert "agent: auditor" in raw
        assert "provider: opus" in raw
        assert "owner: alice" in raw

    def test_untouched_frontmatter_keeps_yaml_types(self, build_engine, make_task):
        path = make_task(stage="audit", extra="created: 2024-01-05\ntags: urgent\norder: 3")
        engine = build_engine(FakeExecutor(audit_output(rating=9)))

        engine.run_task(read_task_file(str(path)))

        raw = path.read_text()
        assert "stage: done" in raw
        assert "created: 2024-01-05\n" in raw
        assert "tags: urgent\n" in raw
        assert "order: 3\n" in raw
        assert "'2024-01-05'" not in raw

    def test_edits_made_during_a_stage_survive_later_writes(self, build_engine, make_task):
        path = make_task(stage="plan")

        def plan_edits_file(command):
            text = path.read_text()
            text = text.replace("---\n", "---\nreviewer: bob\n", 1)
            path.write_text(text + "\nNote added while planning.\n")
            return PLAN_OK

        engine = build_engine(FakeExecutor(plan_edits_file, CODE_OK, audit_output(rating=9)))

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.completed()
        assert len(engine.store.writes) == 4
        raw = path.read_text()
        assert "reviewer: bob" in raw
        assert "stage: done" in raw
        assert raw.endswith("Note added while planning.\n")


class TestAuditPolicy:
    """Test audit acceptance, retry and hard-stop rules."""

    def test_rating_seven_rejects_softly(self, build_engine, make_task):
        path = make_task(stage="audit")
        engine = build_engine(FakeExecutor(audit_output(rating=7)))

        result = engine.run_task(read_task_file(str(path)))

        assert result.status == "failed"
        assert result.hard_stop is False
        assert result.is_soft_failure
        assert result.error == "Audit failed with rating 7 (attempt 1)"

        saved = read_task_file(str(path))
        assert saved.stage == "code"
        assert saved.attempts == 1

        failed = [e for e in engine.received if isinstance(e, TaskFailed)]
        assert failed[0].hard_stop is False

    def test_second_rejection_hard_stops(self, build_engine, make_task):
        path = make_task(stage="audit", extra="attempts: 1")
        engine = build_engine(FakeExecutor(audit_output(rating=4, verdict="NEEDS_WORK")))

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.failed("Audit failed with rating 4 at attempt 2", hard_stop=True)
        saved = read_task_file(str(path))
        assert saved.stage == "audit"
        assert saved.attempts == 2

    def test_rework_loop_keeps_counter(self, build_engine, make_task):
        path = make_task(stage="code", extra="attempts: 1")
        engine = build_engine(FakeExecutor(CODE_OK, audit_output(rating=6)))

        result = engine.run_task(read_task_file(str(path)))

        assert result.hard_stop is True
        assert read_task_file(str(path)).attempts == 2

    def test_fresh_pass_resets_counter(self, build_engine, make_task):
        path = make_task(stage="plan", extra="attempts: 1")
        engine = build_engine(FakeExecutor(PLAN_OK, CODE_OK, audit_output(rating=5)))

        result = engine.run_task(read_task_file(str(path)))

        assert result.is_soft_failure
        assert read_task_file(str(path)).attempts == 1

    def test_rating_eight_accepts(self, build_engine, make_task):
        path = make_task(stage="audit")
        engine = build_engine(FakeExecutor(audit_output(rating=8)))

        assert engine.run_task(read_task_file(str(path))).status == "completed"
        assert read_task_file(str(path)).stage == "done"

    def test_verdict_alone_accepts(self, build_engine, make_task):
        path = make_task(stage="audit")
        engine = build_engine(FakeExecutor(audit_output(verdict="ACCEPTED")))

        assert engine.run_task(read_task_file(str(path))).status == "completed"

    def test_missing_rating_reported_as_unknown(self, build_engine, make_task):
        path = make_task(stage="audit")
        engine = build_engine(FakeExecutor(claude_output("I have concerns.")))

        result = engine.run_task(read_task_file(str(path)))

        assert result.error == "Audit failed with rating unknown (attempt 1)"

    def test_thresholds_come_from_settings(self, build_engine, make_task):
        path = make_task(stage="audit")
        settings = RunnerSettings(accept_rating=6, max_audit_attempts=1)
        engine = build_engine(FakeExecutor(audit_output(rating=6)), settings=settings)

        assert engine.run_task(read_task_file(str(path))).status == "completed"

        path = make_task(name="task-2", stage="audit")
        engine = build_engine(FakeExecutor(audit_output(rating=5)), settings=settings)
        result = engine.run_task(read_task_file(str(path)))
        assert result.hard_stop is True
        assert result.error == "Audit failed with rating 5 at attempt 1"


class TestHardFailures:
    """Test configuration errors, crashes and adapter failures."""

    def test_non_zero_exit_is_crash(self, build_engine, make_task):
        path = make_task(stage="plan")
        crash = ExecutionResult(stdout=json.dumps({"is_error": False, "result": "ok"}), stderr="boom", exit_code=2)
        engine = build_engine(FakeExecutor(crash))

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.failed("CLI crash for claude (exit 2): boom", hard_stop=True)
        assert read_task_file(str(path)).stage == "plan"
        assert engine.received[-1] == RunStopped(reason="failed", error=result.error)

    def test_crash_without_output(self, build_engine, make_task):
        path = make_task(stage="code")
        engine = build_engine(FakeExecutor(ExecutionResult(stdout="", stderr="", exit_code=1)))

        result = engine.run_task(read_task_file(str(path)))

        assert result.error == "CLI crash for claude (exit 1): no output"

    def test_adapter_failure_is_hard_stop(self, build_engine, make_task):
        path = make_task(stage="code")
        failure = ExecutionResult(
            stdout=json.dumps({"is_error": True, "result": "Max turns reached"}), stderr="", exit_code=0
        )
        engine = build_engine(FakeExecutor(failure))

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.failed("Max turns reached", hard_stop=True)

    def test_missing_provider_config(self, build_engine, make_task):
        path = make_task(stage="plan")
        executor = FakeExecutor()
        engine = build_engine(executor, providers=FakeProviders(configs={}))

        result = engine.run_task(read_task_file(str(path)))

        assert result.error == "Provider config not found for 'opus'"
        assert result.hard_stop is True
        assert executor.commands == []

    def test_unsupported_cli(self, build_engine, make_task):
        path = make_task(stage="plan")
        providers = FakeProviders(configs={"opus": ProviderConfig(cli="gemini", model="g")})
        engine = build_engine(FakeExecutor(), providers=providers)

        result = engine.run_task(read_task_file(str(path)))

        assert result.error == "Unsupported CLI adapter: gemini"

    def test_launch_error(self, build_engine, make_task):
        path = make_task(stage="plan")
        engine = build_engine(FakeExecutor(ProcessLaunchError("claude", "No such file or directory")))

        result = engine.run_task(read_task_file(str(path)))

        assert result.hard_stop is True
        assert "Failed to start 'claude'" in result.error

    @pytest.mark.parametrize("stage", ["intake", "done"])
    def test_unrunnable_stage(self, build_engine, make_task, stage):
        path = make_task(stage=stage)
        engine = build_engine(FakeExecutor())

        result = engine.run_task(read_task_file(str(path)))

        assert result.error == f"Runner cannot execute task from stage '{stage}'"
        assert result.hard_stop is True
        assert engine.store.writes == []

    def test_dirty_tree_aborts_before_anything(self, build_engine, make_task):
        path = make_task(stage="plan")
        executor = FakeExecutor()
        engine = build_engine(executor, git=FakeGit(DirtyWorkingTreeError()))

        result = engine.run_task(read_task_file(str(path)))

        assert result.status == "failed"
        assert result.hard_stop is True
        assert "git working tree is dirty" in result.error
        assert executor.commands == []
        assert engine.store.writes == []
        assert event_types(engine) == [RunStopped]


class TestStopAndSingleFlight:
    """Test cooperative stop and the single-flight rule."""

    def test_stop_between_stages(self, build_engine, make_task):
        path = make_task(stage="plan")
        providers = FakeProviders()
        holder = {}

        def stop_then_succeed(command):
            holder["engine"].stop()
            return PLAN_OK

        engine = build_engine(FakeExecutor(stop_then_succeed), providers=providers)
        holder["engine"] = engine

        result = engine.run_task(read_task_file(str(path)))

        assert result == RunResult.stopped()
        assert providers.lookups == ["opus"]
        assert len(engine.store.writes) == 1
        assert read_task_file(str(path)).stage == "plan"
        assert engine.received[-1] == RunStopped(reason="stopped", error=None)

    def test_stop_terminates_in_flight_stage(self, build_engine, make_task):
        path = make_task(stage="code")
        holder = {}

        def terminated(command):
            holder["engine"].stop()
            return ExecutionResult(stdout="", stderr="Terminated", exit_code=-15)

        engine = build_engine(FakeExecutor(terminated))
        holder["engine"] = engine

        result = engine.run_task(read_task_file(str(path)))

        assert result.status == "stopped"
        assert not any(isinstance(e, TaskFailed) for e in engine.received)

    def test_stop_without_run_is_noop(self, build_engine):
        engine = build_engine(FakeExecutor())
        engine.stop()
        assert not engine.is_running

    def test_stop_while_state_lock_held_by_same_thread(self, build_engine):
        engine = build_engine(FakeExecutor())
        done = threading.Event()

        def interrupted_section():
            with engine._state_lock:
                engine.stop()
            done.set()

        threading.Thread(target=interrupted_section, daemon=True).start()

        assert done.wait(timeout=5)

    def test_second_run_is_rejected(self, build_engine, make_task):
        path = make_task(stage="audit")
        holder = {}
        errors = []

        def reenter(command):
            try:
                holder["engine"].run_column("plan")
            except RunnerBusyError as e:
                errors.append(e)
            return audit_output(rating=9)

        engine = build_engine(FakeExecutor(reenter))
        holder["engine"] = engine

        assert engine.run_task(read_task_file(str(path))).status == "completed"
        assert len(errors) == 1
        assert str(errors[0]) == "Runner is already active"
        assert not engine.is_running

    def test_listener_errors_do_not_break_run(self, build_engine, make_task):
        path = make_task(stage="audit")
        engine = build_engine(FakeExecutor(audit_output(rating=10)))

        def broken(event):
            raise RuntimeError("listener bug")

        engine.events.subscribe(broken)

        assert engine.run_task(read_task_file(str(path))).status == "completed"


# ============================================================================
# run_column
# ============================================================================


class TestRunColumn:
    """Test column-wide runs."""

    def test_soft_failure_moves_on(self, build_engine, make_task):
        first = make_task(name="a-task", stage="audit", extra="order: 1")
        second = make_task(name="b-task", stage="audit", extra="order: 2")
        executor = FakeExecutor(audit_output(rating=5), audit_output(rating=9))
        engine = build_engine(executor)

        result = engine.run_column("audit")

        assert result == RunResult.completed()
        assert len(executor.commands) == 2
        assert read_task_file(str(first)).stage == "code"
        assert read_task_file(str(second)).stage == "done"
        assert [type(e) for e in engine.received].count(RunStopped) == 1

    def test_order_field_controls_sequence(self, build_engine, make_task):
        make_task(name="a-task", stage="audit", extra="order: 2")
        make_task(name="b-task", stage="audit", extra="order: 1")
        engine = build_engine(FakeExecutor(audit_output(rating=9), audit_output(rating=9)))

        engine.run_column("audit")

        started = [e.task.id for e in engine.received if isinstance(e, TaskStarted)]
        assert started == ["b-task", "a-task"]

    def test_hard_failure_stops_column(self, build_engine, make_task):
        make_task(name="a-task", stage="code", extra="order: 1")
        make_task(name="b-task", stage="code", extra="order: 2")
        executor = FakeExecutor(ExecutionResult(stdout="", stderr="segfault", exit_code=139))
        engine = build_engine(executor)

        result = engine.run_column("code")

        assert result.hard_stop is True
        assert result.error == "CLI crash for claude (exit 139): segfault"
        assert len(executor.commands) == 1

    def test_empty_column(self, build_engine):
        engine = build_engine(FakeExecutor())

        assert engine.run_column("plan") == RunResult.completed()
        assert event_types(engine) == [RunStopped]

    def test_dirty_tree(self, build_engine, make_task):
        make_task(stage="plan")
        engine = build_engine(FakeExecutor(), git=FakeGit(DirtyWorkingTreeError()))

        result = engine.run_column("plan")

        assert result.status == "failed"
        assert engine.store.writes == []
