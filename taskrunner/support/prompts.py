"""
Layered prompt assembly for runner invocations.

The main prompt is an XML document::

    <system>
      <context>
        <section name="global">...</section>
        <section name="agent">...</section>
        <section name="project">...</section>
        <section name="phase">...</section>
        <section name="custom">...</section>
        <runner automated="true">marker instructions</runner>
      </context>
      <task><metadata>...</metadata><content>...</content></task>
    </system>

The agent's instructions are also returned separately so adapters that
support a system prompt flag can pass them there.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape

from taskrunner.constants import (
    CONTEXT_FOLDER,
    GLOBAL_CONTEXT_FILES,
    PROJECT_CONTEXT_FILE,
    PROJECTS_FOLDER,
)
from taskrunner.core.models import TaskRecord
from taskrunner.support.agents import find_agent
from taskrunner.support.paths import read_file_if_exists

logger = logging.getLogger(__name__)

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}

RUNNER_INSTRUCTIONS = (
    "You are running unattended inside an automated pipeline. "
    "When you finish, end your answer with the markers that apply:\n"
    "<!-- STAGE_TRANSITION: <next stage> -->\n"
    "<!-- FILES_CHANGED: <comma separated paths> -->\n"
    "Audits must also include <!-- AUDIT_RATING: <0-10> --> and "
    "<!-- AUDIT_VERDICT: ACCEPTED|NEEDS_WORK -->."
)


@dataclass
class RunnerPrompt:
    """Prompt pair handed to an adapter."""

    main_prompt: str
    system_instructions: str


def xml_escape(value: str) -> str:
    return escape(value, _XML_ENTITIES)


def wrap_section(name: str, content: str) -> str:
    if not content:
        return ""
    return f'<section name="{name}">{xml_escape(content)}</section>'


def build_metadata(task: TaskRecord) -> str:
    parts: List[str] = [
        f"<id>{xml_escape(task.id)}</id>",
        f"<filePath>{xml_escape(task.file_path)}</filePath>",
        f"<title>{xml_escape(task.title)}</title>",
        f"<stage>{xml_escape(task.stage)}</stage>",
    ]
    if task.project:
        parts.append(f"<project>{xml_escape(task.project)}</project>")
    if task.phase:
        parts.append(f"<phase>{xml_escape(task.phase)}</phase>")
    if task.agent:
        parts.append(f"<agent>{xml_escape(task.agent)}</agent>")
    if task.parent:
        parts.append(f"<parent>{xml_escape(task.parent)}</parent>")
    if task.order is not None:
        parts.append(f"<order>{task.order}</order>")
    if task.created is not None:
        parts.append(f"<created>{xml_escape(str(task.created))}</created>")

    tags = "".join(f"<tag>{xml_escape(tag)}</tag>" for tag in task.tags)
    parts.append(f"<tags>{tags}</tags>")
    contexts = "".join(f"<contextRef>{xml_escape(ctx)}</contextRef>" for ctx in task.contexts)
    parts.append(f"<contexts>{contexts}</contexts>")

    return f"<metadata>{''.join(parts)}</metadata>"


def load_global_context(root: str) -> str:
    chunks = []
    for name in GLOBAL_CONTEXT_FILES:
        content = read_file_if_exists(root, f"{CONTEXT_FOLDER}/{name}")
        if content.strip():
            chunks.append(content.strip())
    return "\n\n".join(chunks)


def load_project_context(root: str, project: Optional[str]) -> str:
    if not project:
        return ""
    return read_file_if_exists(root, f"{PROJECTS_FOLDER}/{project}/{PROJECT_CONTEXT_FILE}").strip()


def load_phase_context(root: str, project: Optional[str], phase: Optional[str]) -> str:
    if not project or not phase:
        return ""
    return read_file_if_exists(
        root, f"{PROJECTS_FOLDER}/{project}/{phase}/{PROJECT_CONTEXT_FILE}"
    ).strip()


def load_custom_contexts(root: str, contexts: List[str]) -> str:
    chunks = []
    for ref in contexts:
        name = ref if ref.endswith(".md") else f"{ref}.md"
        try:
            content = read_file_if_exists(root, f"{CONTEXT_FOLDER}/{name}")
        except ValueError as e:
            logger.warning(f"Ignoring context reference {ref!r}: {e}")
            continue
        if content.strip():
            chunks.append(content.strip())
    return "\n\n".join(chunks)


def load_agent_instructions(root: str, agent_name: Optional[str]) -> str:
    if not agent_name:
        return ""
    agent = find_agent(root, agent_name.strip())
    return agent.instructions if agent else ""


def build_runner_prompt(task: TaskRecord, root: str) -> RunnerPrompt:
    """Assemble the main prompt and the system instructions for one stage."""
    agent_instructions = load_agent_instructions(root, task.agent)

    layers = [
        wrap_section("global", load_global_context(root)),
        wrap_section("agent", agent_instructions),
        wrap_section("project", load_project_context(root, task.project)),
        wrap_section("phase", load_phase_context(root, task.project, task.phase)),
        wrap_section("custom", load_custom_contexts(root, task.contexts)),
        f'<runner automated="true">{RUNNER_INSTRUCTIONS}</runner>',
    ]
    context = f"<context>{''.join(layer for layer in layers if layer)}</context>"
    task_section = (
        f"<task>{build_metadata(task)}<content>{xml_escape(task.content)}</content></task>"
    )

    return RunnerPrompt(
        main_prompt=f"<system>{context}{task_section}</system>",
        system_instructions=agent_instructions,
    )


class WorkspacePromptBuilder:
    """Prompt assembly port backed by workspace context files."""

    def build_prompt(self, task: TaskRecord, kanban_root: str) -> RunnerPrompt:
        return build_runner_prompt(task, str(Path(kanban_root)))
