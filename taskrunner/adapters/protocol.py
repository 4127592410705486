"""Adapter protocol and contracts for CLI agent tools.

Defines the shared command/response shapes every CLI adapter produces, the
adapter interface, and the registry used to look adapters up by tool name.
Each adapter module encodes one tool's argument conventions and output format
while adhering to these base contracts.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Type

from taskrunner.support.providers import ProviderConfig


# ============================================================================
# Base Exception Protocols
# ============================================================================


class AdapterException(Exception):
    """Base exception for all adapter errors."""

    pass


# ============================================================================
# Command / Response Contracts
# ============================================================================


@dataclass
class CliCommand:
    """Everything needed to spawn one CLI process."""

    command: str
    args: List[str] = field(default_factory=list)
    stdin: Optional[str] = None

    def argv(self) -> List[str]:
        return [self.command, *self.args]


@dataclass
class CliResponse:
    """Normalized result of one CLI invocation, whatever the tool's format."""

    success: bool
    result: str = ""
    error: Optional[str] = None
    session_id: Optional[str] = None
    cost: Optional[float] = None
    turns: Optional[int] = None


@dataclass
class CliAdapterOptions:
    """Per-invocation overrides passed to build_command."""

    system_prompt: Optional[str] = None
    max_turns: Optional[int] = None
    session_id: Optional[str] = None


class CliAdapter(Protocol):
    """Interface implemented by every CLI adapter."""

    name: str

    def build_command(
        self,
        config: ProviderConfig,
        prompt: str,
        options: Optional[CliAdapterOptions] = None,
    ) -> CliCommand:
        """Translate a provider config + prompt into a command descriptor."""

    def parse_response(self, stdout: str, exit_code: int) -> CliResponse:
        """Translate raw stdout + exit code into a normalized response."""


def no_output_failure(exit_code: int) -> CliResponse:
    """Shared response for a process that printed nothing."""
    return CliResponse(
        success=False,
        result="",
        error=f"CLI exited with code {exit_code} and no output",
    )


# ============================================================================
# Adapter Registry
# ============================================================================


class AdapterRegistry:
    """Registry mapping CLI tool names to adapter classes."""

    _adapters: Dict[str, Type[CliAdapter]] = {}

    @classmethod
    def register(cls, name: str, adapter_cls: Type[CliAdapter]) -> None:
        """Register an adapter class by tool name.

        Args:
            name: CLI tool name (e.g., 'claude', 'codex', 'kimi', 'kilo').
            adapter_cls: Class implementing CliAdapter.
        """
        cls._adapters[name.lower()] = adapter_cls

    @classmethod
    def get(cls, name: str) -> Optional[Type[CliAdapter]]:
        """Retrieve a registered adapter class by tool name (case-insensitive).

        Args:
            name: CLI tool name.

        Returns:
            The adapter class, or None if not registered.
        """
        return cls._adapters.get(name.lower())

    @classmethod
    def list(cls) -> List[str]:
        """List all registered tool names.

        Returns:
            Sorted list of registered tool names.
        """
        return sorted(cls._adapters.keys())
