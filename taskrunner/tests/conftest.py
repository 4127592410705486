"""
Shared fixtures for the taskrunner test suite.

Provides a throwaway kanban workspace, helpers to write task/provider/agent
files into it, and a real temporary git repository.
"""

import subprocess
from pathlib import Path

import pytest


CLAUDE_PROVIDER = """---
name: Opus
cli: claude
model: claude-opus-4
unattended_flags: [--dangerously-skip-permissions]
output_flags: [--output-format, json]
prompt_style: flag
safety:
  max_turns: 30
  timeout: 600
---
Claude provider used in tests.
"""


def write_file(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def kanban_root(tmp_path):
    """Create an empty kanban workspace at <tmp>/.kanban2code."""
    root = tmp_path / ".kanban2code"
    for folder in ("inbox", "projects", "_agents", "_providers", "_context"):
        (root / folder).mkdir(parents=True)
    return root


@pytest.fixture
def make_task(kanban_root):
    """Factory writing a task markdown file into inbox/ (or a sub-path)."""

    def _make(name="task-1", stage="plan", title="Add login", extra="", folder="inbox", body=None):
        frontmatter = f"stage: {stage}\n{extra}".rstrip("\n")
        text = body if body is not None else f"# {title}\n\nImplement it.\n"
        return write_file(kanban_root / folder / f"{name}.md", f"---\n{frontmatter}\n---\n{text}")

    return _make


@pytest.fixture
def claude_provider(kanban_root):
    """Write an 'opus' provider definition backed by the claude CLI."""
    return write_file(kanban_root / "_providers" / "opus.md", CLAUDE_PROVIDER)


def _git(repo_path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo_path, capture_output=True, check=True)


@pytest.fixture
def temp_repo(tmp_path):
    """Create a temporary git repository with one commit."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    _git(repo_path, "init")
    _git(repo_path, "config", "user.email", "test@example.com")
    _git(repo_path, "config", "user.name", "Test User")

    (repo_path / "README.md").write_text("# Test Repo\n")
    _git(repo_path, "add", "README.md")
    _git(repo_path, "commit", "-m", "Initial commit")

    return repo_path
