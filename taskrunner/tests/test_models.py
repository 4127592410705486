"""
Unit tests for the core domain model.
"""

import pytest

from taskrunner.core.exceptions import ProcessLaunchError, RunnerBusyError, UnsupportedCliError
from taskrunner.core.models import (
    RunResult,
    TaskRecord,
    is_stage,
    remaining_stages,
    stage_index,
)


class TestRemainingStages:
    """Test the stage machine."""

    @pytest.mark.parametrize(
        "stage, expected",
        [
            ("plan", ["plan", "code", "audit"]),
            ("code", ["code", "audit"]),
            ("audit", ["audit"]),
            ("intake", []),
            ("done", []),
            ("review", []),
        ],
    )
    def test_remaining_stages(self, stage, expected):
        assert remaining_stages(stage) == expected

    def test_stage_helpers(self):
        assert is_stage("audit") is True
        assert is_stage("AUDIT") is False
        assert is_stage(None) is False
        assert stage_index("intake") == 0
        assert stage_index("done") == 4


class TestTaskRecord:
    """Test TaskRecord validation and updates."""

    def test_with_updates_returns_copy(self):
        task = TaskRecord(id="t", file_path="t.md", title="T", stage="code")

        updated = task.with_updates({"stage": "audit", "attempts": 1})

        assert updated.stage == "audit"
        assert updated.attempts == 1
        assert task.stage == "code"
        assert task.attempts == 0

    def test_validate_attempts(self):
        with pytest.raises(ValueError, match="attempts"):
            TaskRecord(id="t", file_path="t.md", title="T", stage="code", attempts=-1).validate()

    def test_dict_round_trip(self):
        task = TaskRecord(id="t", file_path="t.md", title="T", tags=["a"])
        assert TaskRecord.from_dict(task.to_dict()) == task


class TestRunResult:
    """Test run outcome helpers."""

    def test_factories(self):
        assert RunResult.completed().status == "completed"
        assert RunResult.stopped().error is None

        hard = RunResult.failed("boom")
        soft = RunResult.failed("retry", hard_stop=False)
        assert hard.hard_stop is True
        assert hard.is_soft_failure is False
        assert soft.is_soft_failure is True


class TestExceptions:
    """Test error messages."""

    def test_messages(self):
        assert str(UnsupportedCliError("gemini")) == "Unsupported CLI adapter: gemini"
        assert str(RunnerBusyError()) == "Runner is already active"

        error = ProcessLaunchError("claude", "No such file")
        assert error.command == "claude"
        assert str(error) == "Failed to start 'claude': No such file"
