"""Runtime adapters for the pipeline runner.

Each adapter module can be imported independently:

- taskrunner.adapters.claude / codex / kimi / kilo: CLI agent tools
- taskrunner.adapters.factory: adapter lookup by CLI name
- taskrunner.adapters.git: clean-tree guard and auto commits
"""

from taskrunner.adapters import protocol
from taskrunner.adapters.factory import get_adapter_for_cli
from taskrunner.adapters.protocol import (
    AdapterRegistry,
    CliAdapter,
    CliAdapterOptions,
    CliCommand,
    CliResponse,
)

__all__ = [
    "protocol",
    "AdapterRegistry",
    "CliAdapter",
    "CliAdapterOptions",
    "CliCommand",
    "CliResponse",
    "get_adapter_for_cli",
]
