"""
Provider configuration loading.

A provider is one external CLI tool + model combination, defined as a
markdown file under ``_providers/`` whose YAML frontmatter holds the
invocation settings::

    ---
    name: Opus
    cli: claude
    model: claude-opus-4
    unattended_flags: [--dangerously-skip-permissions]
    output_flags: [--output-format, json]
    prompt_style: flag
    safety:
      max_turns: 40
      timeout: 1800
    ---
    Free-form notes about the provider.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from taskrunner.constants import PROVIDERS_FOLDER
from taskrunner.core.exceptions import ProviderConfigError, TaskFileError
from taskrunner.store.task_files import parse_frontmatter_optional

logger = logging.getLogger(__name__)

PROMPT_STYLES = ("flag", "positional", "stdin")


@dataclass(frozen=True)
class ProviderSafety:
    """Optional safety limits applied to one CLI invocation."""

    max_turns: Optional[int] = None
    max_budget_usd: Optional[float] = None
    timeout: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProviderSafety":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ProviderConfigError("safety must be a mapping")

        max_turns = data.get("max_turns")
        max_budget = data.get("max_budget_usd")
        timeout = data.get("timeout")

        if max_turns is not None and not _is_positive_int(max_turns):
            raise ProviderConfigError(f"safety.max_turns must be a positive integer, got {max_turns!r}")
        if max_budget is not None and not _is_positive_number(max_budget):
            raise ProviderConfigError(f"safety.max_budget_usd must be positive, got {max_budget!r}")
        if timeout is not None and not _is_positive_int(timeout):
            raise ProviderConfigError(f"safety.timeout must be a positive integer, got {timeout!r}")

        return cls(max_turns=max_turns, max_budget_usd=max_budget, timeout=timeout)


@dataclass(frozen=True)
class ProviderConfig:
    """Invocation settings for one provider; treated as immutable input."""

    cli: str
    model: str
    unattended_flags: Tuple[str, ...] = ()
    output_flags: Tuple[str, ...] = ()
    prompt_style: str = "flag"
    subcommand: Optional[str] = None
    safety: ProviderSafety = field(default_factory=ProviderSafety)
    provider: Optional[str] = None
    config_overrides: Dict[str, Any] = field(default_factory=dict)

    REQUIRED_KEYS = ("cli", "model", "unattended_flags", "output_flags", "prompt_style")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        """Validate a frontmatter mapping and build the config.

        Raises:
            ProviderConfigError: If a required key is missing or has the wrong type.
        """
        missing = [key for key in cls.REQUIRED_KEYS if key not in data]
        if missing:
            raise ProviderConfigError(f"Missing required provider keys: {missing}")

        for key in ("cli", "model"):
            if not isinstance(data[key], str) or not data[key].strip():
                raise ProviderConfigError(f"{key} must be a non-empty string")

        for key in ("unattended_flags", "output_flags"):
            value = data[key]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ProviderConfigError(f"{key} must be a list of strings")

        prompt_style = data["prompt_style"]
        if prompt_style not in PROMPT_STYLES:
            raise ProviderConfigError(
                f"prompt_style must be one of {', '.join(PROMPT_STYLES)}, got {prompt_style!r}"
            )

        subcommand = data.get("subcommand")
        if subcommand is not None and not isinstance(subcommand, str):
            raise ProviderConfigError("subcommand must be a string")

        provider = data.get("provider")
        if provider is not None and not isinstance(provider, str):
            raise ProviderConfigError("provider must be a string")

        overrides = data.get("config_overrides") or {}
        if not isinstance(overrides, dict):
            raise ProviderConfigError("config_overrides must be a mapping")

        return cls(
            cli=data["cli"].strip(),
            model=data["model"].strip(),
            unattended_flags=tuple(data["unattended_flags"]),
            output_flags=tuple(data["output_flags"]),
            prompt_style=prompt_style,
            subcommand=subcommand or None,
            safety=ProviderSafety.from_dict(data.get("safety")),
            provider=provider,
            config_overrides=dict(overrides),
        )


@dataclass
class ProviderConfigFile:
    """One provider definition found in the workspace."""

    id: str
    name: str
    path: str
    config: Optional[ProviderConfig] = None
    error: Optional[str] = None


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def format_provider_name(provider_id: str) -> str:
    """'claude-opus' -> 'Claude Opus'."""
    words = provider_id.replace("_", "-").split("-")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def list_available_providers(kanban_root: str) -> List[ProviderConfigFile]:
    """List provider definitions under _providers/, sorted by display name.

    Top-level files are identified by their stem; nested files by their path
    relative to the kanban root. Invalid definitions are listed with
    ``config=None`` and the validation error.
    """
    root = Path(kanban_root)
    providers_dir = root / PROVIDERS_FOLDER
    if not providers_dir.is_dir():
        return []

    providers: List[ProviderConfigFile] = []
    for file_path in sorted(providers_dir.rglob("*.md")):
        if not file_path.is_file():
            continue

        base_id = file_path.stem
        relative_to_root = file_path.relative_to(root).as_posix()
        is_top_level = file_path.parent == providers_dir
        provider_id = base_id if is_top_level else relative_to_root

        name = format_provider_name(base_id)
        config = None
        error = None
        try:
            data, _ = parse_frontmatter_optional(file_path.read_text(encoding="utf-8"))
            if isinstance(data.get("name"), str):
                name = data["name"]
            config = ProviderConfig.from_dict(data)
        except (OSError, TaskFileError, ProviderConfigError) as e:
            error = str(e)
            logger.debug(f"Invalid provider definition {relative_to_root}: {e}")

        providers.append(
            ProviderConfigFile(
                id=provider_id,
                name=name,
                path=relative_to_root,
                config=config,
                error=error,
            )
        )

    return sorted(providers, key=lambda p: p.name)


def resolve_provider_config(kanban_root: str, provider_name: str) -> Optional[ProviderConfig]:
    """Find a provider by id or display name; None when absent or invalid."""
    for provider in list_available_providers(kanban_root):
        if provider.id == provider_name or provider.name == provider_name:
            return provider.config
    return None


class FileProviderResolver:
    """Provider configuration port backed by _providers/ files."""

    def resolve_provider_config(self, kanban_root: str, provider_name: str) -> Optional[ProviderConfig]:
        return resolve_provider_config(kanban_root, provider_name)
