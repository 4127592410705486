"""
Task file utilities for markdown task records.

Manages YAML frontmatter parsing/serialization, task metadata inference from
the file location, and atomic writes back to disk.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from taskrunner.constants import PROJECTS_FOLDER, STAGES, STAGE_INTAKE
from taskrunner.core.exceptions import TaskFileError
from taskrunner.core.models import TaskRecord

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n?(.*)", re.DOTALL)
TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)

# Frontmatter keys owned by TaskRecord; anything else is passed through untouched
KNOWN_KEYS = (
    "stage",
    "provider",
    "agent",
    "attempts",
    "parent",
    "tags",
    "contexts",
    "order",
    "created",
)


def parse_frontmatter_optional(content: str) -> Tuple[Dict[str, Any], str]:
    """Parse optional YAML frontmatter from markdown content.

    Returns an empty metadata dict when frontmatter is absent.

    Args:
        content: Full markdown content.

    Returns:
        Tuple of (metadata_dict, body_text).

    Raises:
        TaskFileError: If frontmatter delimiters exist but YAML is invalid.
    """
    match = FRONTMATTER_RE.match(content)
    if not match:
        return {}, content

    yaml_text = match.group(1)
    body = match.group(2)

    try:
        data = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as e:
        raise TaskFileError(f"Invalid YAML in frontmatter: {e}") from e

    if not isinstance(data, dict):
        raise TaskFileError("Frontmatter must be a YAML dictionary.")

    return data, body


def render_frontmatter(data: Dict[str, Any], body: str) -> str:
    """Render metadata and body back into a markdown document."""
    if not data:
        return body
    yaml_content = yaml.dump(
        data, default_flow_style=False, sort_keys=False, allow_unicode=True
    )
    return f"---\n{yaml_content}---\n{body}"


def extract_title(body: str) -> Optional[str]:
    """Return the first level-one heading of a markdown body."""
    match = TITLE_RE.search(body)
    return match.group(1).strip() if match else None


def infer_project_phase(file_path: str) -> Tuple[Optional[str], Optional[str]]:
    """Infer project and phase from .../projects/<project>/[<phase>/]<task>.md."""
    normalized = Path(file_path).as_posix()
    marker = f"/{PROJECTS_FOLDER}/"
    index = normalized.find(marker)
    if index == -1:
        return None, None

    parts = normalized[index + len(marker):].split("/")
    project = parts[0] if len(parts) >= 2 else None
    phase = parts[1] if len(parts) >= 3 else None
    return project, phase


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _attempts(value: Any) -> int:
    try:
        attempts = int(value)
    except (TypeError, ValueError):
        return 0
    return max(attempts, 0)


def _order(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def parse_task_content(content: str, file_path: str) -> TaskRecord:
    """Build a TaskRecord from raw markdown.

    Unknown or invalid stages fall back to intake, so a hand-edited file never
    makes the board unreadable.

    Args:
        content: Full markdown content including optional frontmatter.
        file_path: Location of the file; the id is its stem.

    Returns:
        Parsed TaskRecord.

    Raises:
        TaskFileError: If the frontmatter YAML is invalid.
    """
    data, body = parse_frontmatter_optional(content)
    task_id = Path(file_path).stem

    stage = data.get("stage")
    if stage not in STAGES:
        if stage is not None:
            logger.debug(f"Unknown stage {stage!r} in {file_path}; using {STAGE_INTAKE}")
        stage = STAGE_INTAKE

    project, phase = infer_project_phase(file_path)

    return TaskRecord(
        id=task_id,
        file_path=str(file_path),
        title=extract_title(body) or task_id,
        stage=stage,
        provider=_optional_str(data.get("provider")),
        agent=_optional_str(data.get("agent")),
        attempts=_attempts(data.get("attempts", 0)),
        content=body,
        project=project,
        phase=phase,
        parent=_optional_str(data.get("parent")),
        tags=_str_list(data.get("tags")),
        contexts=_str_list(data.get("contexts")),
        order=_order(data.get("order")),
        created=data.get("created"),
    )


def read_task_file(file_path: str) -> TaskRecord:
    """Read and parse one task markdown file.

    Raises:
        TaskFileError: If file not found or invalid.
    """
    path = Path(file_path)
    if not path.exists():
        raise TaskFileError(f"Task file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TaskFileError(f"Failed to read task file: {e}") from e

    return parse_task_content(content, str(path))


def serialize_task(task: TaskRecord, original_content: Optional[str] = None) -> str:
    """Serialize a TaskRecord against the file it was read from.

    With original content, only the engine-owned fields (``MUTABLE_FIELDS``)
    are written; every other frontmatter key keeps its original YAML value.
    Without it, all known fields are rendered from the record. Project and
    phase come from the file location and are never written.

    Args:
        task: Record to serialize.
        original_content: Raw file content whose frontmatter is preserved.

    Returns:
        Full markdown content.
    """
    task.validate()

    if original_content:
        data, _ = parse_frontmatter_optional(original_content)
        data = dict(data)
        owned = TaskRecord.MUTABLE_FIELDS
    else:
        data = {}
        owned = KNOWN_KEYS

    for key in owned:
        value = getattr(task, key)
        if value is None or (key in ("attempts", "tags", "contexts") and not value):
            data.pop(key, None)
        else:
            data[key] = value

    return render_frontmatter(data, task.content)


def write_text_atomic(file_path: str, text: str) -> None:
    """Write text through a temp file in the same directory, then rename."""
    path = Path(file_path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        Path(temp_name).replace(path)
    except Exception:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


class FileTaskStore:
    """Task record persistence backed by markdown files on disk."""

    def read_current(self, file_path: str) -> TaskRecord:
        """Re-read the latest on-disk version of a task."""
        return read_task_file(file_path)

    def read_raw(self, file_path: str) -> str:
        try:
            return Path(file_path).read_text(encoding="utf-8")
        except OSError as e:
            raise TaskFileError(f"Failed to read task file: {e}") from e

    def serialize(self, task: TaskRecord, original_content: Optional[str]) -> str:
        return serialize_task(task, original_content)

    def write_raw(self, file_path: str, text: str) -> None:
        try:
            write_text_atomic(file_path, text)
        except OSError as e:
            raise TaskFileError(f"Failed to write task file: {e}") from e
