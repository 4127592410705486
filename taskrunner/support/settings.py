"""
Runner settings.

Values come from ``<kanban-root>/config.json`` with environment overrides:

- TASKRUNNER_DEFAULT_PROVIDER: provider used when an agent has no mapping
- TASKRUNNER_ACCEPT_RATING: minimum audit rating that accepts a task
- TASKRUNNER_MAX_AUDIT_ATTEMPTS: failed audits before the run hard-stops
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from taskrunner.constants import (
    CONFIG_FILE,
    DEFAULT_ACCEPT_RATING,
    DEFAULT_AGENT_PROVIDERS,
    DEFAULT_MAX_AUDIT_ATTEMPTS,
    DEFAULT_PROVIDER,
)
from taskrunner.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class RunnerSettings:
    """Workspace-level runner configuration."""

    default_provider: str = DEFAULT_PROVIDER
    agent_providers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_AGENT_PROVIDERS))
    accept_rating: int = DEFAULT_ACCEPT_RATING
    max_audit_attempts: int = DEFAULT_MAX_AUDIT_ATTEMPTS

    def validate(self) -> None:
        """Raise ConfigurationError when thresholds are out of range."""
        if not 0 <= self.accept_rating <= 10:
            raise ConfigurationError(
                f"accept_rating must be between 0 and 10, got {self.accept_rating}"
            )
        if self.max_audit_attempts < 1:
            raise ConfigurationError(
                f"max_audit_attempts must be >= 1, got {self.max_audit_attempts}"
            )
        if not self.default_provider.strip():
            raise ConfigurationError("default_provider cannot be empty")

    @classmethod
    def from_env(cls, kanban_root: Optional[str] = None) -> "RunnerSettings":
        """Load settings from config.json and the environment."""
        config = load_workspace_config(kanban_root) if kanban_root else {}
        preferences = config.get("preferences") or {}
        runner = config.get("runner") or {}

        agent_providers = dict(DEFAULT_AGENT_PROVIDERS)
        for key in ("modeDefaults", "agentDefaults"):
            mapping = config.get(key)
            if isinstance(mapping, dict):
                agent_providers.update({str(k): str(v) for k, v in mapping.items()})

        default_provider = (
            preferences.get("defaultProvider")
            or preferences.get("defaultAgent")
            or DEFAULT_PROVIDER
        )

        settings = cls(
            default_provider=os.getenv("TASKRUNNER_DEFAULT_PROVIDER", str(default_provider)),
            agent_providers=agent_providers,
            accept_rating=_env_int(
                "TASKRUNNER_ACCEPT_RATING",
                _config_int(runner, "acceptRating", DEFAULT_ACCEPT_RATING),
            ),
            max_audit_attempts=_env_int(
                "TASKRUNNER_MAX_AUDIT_ATTEMPTS",
                _config_int(runner, "maxAuditAttempts", DEFAULT_MAX_AUDIT_ATTEMPTS),
            ),
        )
        settings.validate()
        return settings


def load_workspace_config(kanban_root: str) -> Dict[str, Any]:
    """Read config.json from the kanban root; missing file means defaults.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    path = Path(kanban_root) / CONFIG_FILE
    if not path.exists():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid {CONFIG_FILE}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{CONFIG_FILE} must contain a JSON object")
    return data


def _config_int(section: Dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"runner.{key} must be an integer, got {value!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid integer value for {name}: {raw!r}") from e
