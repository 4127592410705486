"""Resolve the concrete adapter for a configured CLI executable name."""

from taskrunner.adapters import claude, codex, kilo, kimi  # noqa: F401  (registration)
from taskrunner.adapters.protocol import AdapterRegistry, CliAdapter
from taskrunner.core.exceptions import UnsupportedCliError


def get_adapter_for_cli(cli: str) -> CliAdapter:
    """
    Instantiate the adapter registered for a CLI tool.

    Args:
        cli: Executable name from the provider config (case-insensitive).

    Returns:
        A fresh adapter instance.

    Raises:
        UnsupportedCliError: If no adapter is registered for the name.
    """
    adapter_cls = AdapterRegistry.get(cli or "")
    if adapter_cls is None:
        raise UnsupportedCliError(cli)
    return adapter_cls()
