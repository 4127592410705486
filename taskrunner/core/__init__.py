"""Core package: domain model, exceptions and stage helpers."""

from taskrunner.core.models import (
    TaskRecord,
    RunResult,
    remaining_stages,
    is_stage,
)
from taskrunner.core.exceptions import (
    RunnerError,
    ConfigurationError,
    UnsupportedCliError,
    ProviderConfigError,
    RunnerBusyError,
    ProcessLaunchError,
    TaskFileError,
)

__all__ = [
    "TaskRecord",
    "RunResult",
    "remaining_stages",
    "is_stage",
    "RunnerError",
    "ConfigurationError",
    "UnsupportedCliError",
    "ProviderConfigError",
    "RunnerBusyError",
    "ProcessLaunchError",
    "TaskFileError",
]
