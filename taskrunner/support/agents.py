"""
Stage -> agent -> provider default resolution.

Agents (personas) are markdown files under ``_agents/``. An agent declares the
stage it serves in its frontmatter (``stage: audit``); the first agent by id
claiming a stage is that stage's default. Each agent maps to a provider via
``config.json`` (``agentDefaults``), falling back to the global default
provider.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from taskrunner.constants import AGENTS_FOLDER, FALLBACK_STAGE_AGENTS
from taskrunner.core.exceptions import TaskFileError
from taskrunner.store.task_files import parse_frontmatter_optional
from taskrunner.support.settings import RunnerSettings

logger = logging.getLogger(__name__)


@dataclass
class AgentDefinition:
    """One agent persona file."""

    id: str
    path: Path
    stage: Optional[str] = None
    instructions: str = ""


def list_agents(kanban_root: str) -> List[AgentDefinition]:
    """List agent definitions sorted by id; unreadable files are skipped."""
    agents_dir = Path(kanban_root) / AGENTS_FOLDER
    if not agents_dir.is_dir():
        return []

    agents: List[AgentDefinition] = []
    for file_path in sorted(agents_dir.glob("*.md")):
        try:
            data, body = parse_frontmatter_optional(file_path.read_text(encoding="utf-8"))
        except (OSError, TaskFileError) as e:
            logger.warning(f"Skipping agent definition {file_path}: {e}")
            continue

        stage = data.get("stage")
        agents.append(
            AgentDefinition(
                id=file_path.stem,
                path=file_path,
                stage=stage if isinstance(stage, str) else None,
                instructions=body.strip(),
            )
        )
    return agents


def default_agent_for_stage(kanban_root: str, stage: str) -> str:
    """Agent that runs a stage: the first agent file claiming it, else a fallback."""
    for agent in list_agents(kanban_root):
        if agent.stage == stage:
            return agent.id
    return FALLBACK_STAGE_AGENTS[stage]


def find_agent(kanban_root: str, agent_name: str) -> Optional[AgentDefinition]:
    """Find an agent by exact id, else by a loose normalized match."""
    agents = list_agents(kanban_root)
    for agent in agents:
        if agent.id == agent_name:
            return agent

    wanted = normalize_agent_key(agent_name)
    for agent in agents:
        if normalize_agent_key(agent.id) == wanted:
            return agent
    return None


def normalize_agent_key(value: str) -> str:
    """'02-Code_Reviewer.md' -> 'codereviewer'."""
    key = value.lower()
    if key.endswith(".md"):
        key = key[:-3]
    key = key.lstrip("0123456789-_. ")
    return "".join(ch for ch in key if ch.isalnum())


class WorkspaceDefaults:
    """Defaults resolution port backed by _agents/ and runner settings."""

    def __init__(self, settings: Optional[RunnerSettings] = None):
        self.settings = settings or RunnerSettings()

    def default_agent_for_stage(self, kanban_root: str, stage: str) -> str:
        return default_agent_for_stage(kanban_root, stage)

    def default_provider_for_agent(self, agent_name: str) -> Optional[str]:
        return self.settings.agent_providers.get(agent_name)

    @property
    def global_default_provider(self) -> str:
        return self.settings.default_provider
