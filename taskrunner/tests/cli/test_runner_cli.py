"""
Tests for the taskrunner command line interface.

Commands run through ``main()`` against a temporary workspace. For the run
commands the engine is built with a scripted executor and a no-op git guard;
task files, providers and the run report are real.
"""

import json

import pytest

from taskrunner.cli import RunnerCLI, build_parser, main
from taskrunner.cli.cmd_run import EXIT_COMPLETED, EXIT_FAILED, EXIT_STOPPED, exit_code_for, resolve_task
from taskrunner.core.exceptions import TaskFileError
from taskrunner.core.models import RunResult
from taskrunner.pipeline.engine import RunnerEngine
from taskrunner.pipeline.process import ExecutionResult
from taskrunner.store.task_files import read_task_file
from taskrunner.support.settings import RunnerSettings


class ScriptedExecutor:
    def __init__(self, *outputs):
        self.outputs = list(outputs)

    def execute(self, command, cwd, session, timeout=None):
        text = self.outputs.pop(0)
        return ExecutionResult(stdout=json.dumps({"result": text}), stderr="", exit_code=0)


class NoopGit:
    def ensure_clean(self):
        pass


@pytest.fixture
def scripted_engine(monkeypatch):
    """Patch RunnerCLI.create_engine to use a scripted executor."""

    def _install(*outputs):
        executor = ScriptedExecutor(*outputs)

        def create_engine(self, events=None):
            return RunnerEngine(
                str(self.kanban_root),
                settings=RunnerSettings(),
                executor=executor,
                git=NoopGit(),
                events=events,
            )

        monkeypatch.setattr(RunnerCLI, "create_engine", create_engine)
        return executor

    return _install


AUDIT_ACCEPTED = "Looks good.\n<!-- AUDIT_RATING: 9 -->\n<!-- AUDIT_VERDICT: ACCEPTED -->"
AUDIT_REJECTED = "Missing tests.\n<!-- AUDIT_RATING: 4 -->\n<!-- AUDIT_VERDICT: NEEDS_WORK -->"


class TestParser:
    """Test argument parsing."""

    def test_run_requires_task(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run"])

    def test_run_column_stage_choices(self):
        args = build_parser().parse_args(["run-column", "audit", "--commit", "--no-report"])
        assert args.stage == "audit"
        assert args.commit is True
        assert args.no_report is True

        with pytest.raises(SystemExit):
            build_parser().parse_args(["run-column", "done"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_exit_codes(self):
        assert exit_code_for(RunResult.completed()) == EXIT_COMPLETED
        assert exit_code_for(RunResult.stopped()) == EXIT_STOPPED
        assert exit_code_for(RunResult.failed("x", hard_stop=False)) == EXIT_FAILED


class TestRunCommand:
    """Test `taskrunner run`."""

    def test_completed_run_writes_report(self, kanban_root, make_task, claude_provider, scripted_engine, capsys):
        path = make_task(name="login", stage="audit")
        scripted_engine(AUDIT_ACCEPTED)

        exit_code = main(["--root", str(kanban_root), "run", "--task", "login"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "COMPLETED: login" in out
        assert "Run completed." in out
        assert read_task_file(str(path)).stage == "done"

        reports = list((kanban_root / "_logs").glob("run-*.md"))
        assert len(reports) == 1
        report = reports[0].read_text()
        assert "| Completed | 1 |" in report
        assert "| Finish reason | completed |" in report

    def test_rejected_audit_is_soft_failure(self, kanban_root, make_task, claude_provider, scripted_engine, capsys):
        path = make_task(name="login", stage="audit")
        scripted_engine(AUDIT_REJECTED)

        exit_code = main(["--root", str(kanban_root), "run", "--task", str(path), "--no-report"])

        captured = capsys.readouterr()
        assert exit_code == 1
        assert "FAILED (retry later)" in captured.out
        assert "Audit failed with rating 4 (attempt 1)" in captured.err
        task = read_task_file(str(path))
        assert task.stage == "code"
        assert task.attempts == 1
        assert not (kanban_root / "_logs").exists()

    def test_unknown_task(self, kanban_root, capsys):
        exit_code = main(["--root", str(kanban_root), "run", "--task", "missing"])

        assert exit_code == 1
        assert "Error: Task not found: missing" in capsys.readouterr().err

    def test_resolve_task_by_root_relative_path(self, kanban_root, make_task):
        make_task(name="login")
        cli = RunnerCLI(str(kanban_root))

        assert resolve_task(cli, "inbox/login.md").id == "login"
        with pytest.raises(TaskFileError):
            resolve_task(cli, "inbox/nope.md")

    def test_run_column(self, kanban_root, make_task, claude_provider, scripted_engine, capsys):
        make_task(name="a", stage="audit", extra="order: 1")
        make_task(name="b", stage="audit", extra="order: 2")
        scripted_engine(AUDIT_ACCEPTED, AUDIT_ACCEPTED)

        exit_code = main(["--root", str(kanban_root), "run-column", "audit", "--no-report"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert out.index("COMPLETED: a") < out.index("COMPLETED: b")


class TestInfoCommands:
    """Test status, providers and commit."""

    def test_status_json(self, kanban_root, make_task, capsys):
        make_task(name="a", stage="code", extra="attempts: 1")
        make_task(name="b", stage="plan")

        assert main(["--root", str(kanban_root), "status", "--json"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert [task["id"] for task in output["code"]] == ["a"]
        assert output["code"][0]["attempts"] == 1
        assert [task["id"] for task in output["plan"]] == ["b"]
        assert output["done"] == []

    def test_status_text_filtered(self, kanban_root, make_task, capsys):
        make_task(name="a", stage="code", extra="attempts: 1")

        assert main(["--root", str(kanban_root), "status", "--stage", "code"]) == 0

        out = capsys.readouterr().out
        assert "CODE (1):" in out
        assert "[attempts: 1]" in out
        assert "PLAN" not in out

    def test_status_unknown_stage(self, kanban_root, capsys):
        assert main(["--root", str(kanban_root), "status", "--stage", "review"]) == 1
        assert "unknown stage" in capsys.readouterr().err

    def test_providers(self, kanban_root, claude_provider, capsys):
        (kanban_root / "_providers" / "broken.md").write_text("---\ncli: kimi\n---\n")

        assert main(["--root", str(kanban_root), "providers", "--json"]) == 0

        output = {item["id"]: item for item in json.loads(capsys.readouterr().out)}
        assert output["opus"]["valid"] is True
        assert output["opus"]["cli"] == "claude"
        assert output["broken"]["valid"] is False

    def test_commit_clean_and_dirty(self, temp_repo, capsys):
        root = str(temp_repo / ".kanban2code")

        assert main(["--root", root, "commit", "Add feature"]) == 0
        assert "Nothing to commit" in capsys.readouterr().out

        (temp_repo / "feature.py").write_text("x = 1\n")
        assert main(["--root", root, "commit", "Add feature"]) == 0
        assert len(capsys.readouterr().out.strip()) >= 7

    def test_commit_outside_repository(self, tmp_path, capsys):
        assert main(["--root", str(tmp_path / ".kanban2code"), "commit"]) == 1
        assert "Error: Failed to check git status" in capsys.readouterr().err
