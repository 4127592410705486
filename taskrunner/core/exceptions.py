"""Core exceptions: runner configuration, usage and process errors."""


class RunnerError(Exception):
    """Base exception for pipeline runner errors."""

    pass


class ConfigurationError(RunnerError):
    """Raised when workspace or provider configuration cannot be used."""

    pass


class UnsupportedCliError(ConfigurationError):
    """Raised when a provider names a CLI tool with no adapter."""

    def __init__(self, cli: str):
        self.cli = cli
        super().__init__(f"Unsupported CLI adapter: {cli}")


class ProviderConfigError(ConfigurationError):
    """Raised when a provider definition is missing keys or has bad values."""

    pass


class RunnerBusyError(RunnerError):
    """Raised when a run is started while another one is active."""

    def __init__(self):
        super().__init__("Runner is already active")


class ProcessLaunchError(RunnerError):
    """Raised when an external command cannot be started."""

    def __init__(self, command: str, message: str):
        self.command = command
        self.message = message
        super().__init__(f"Failed to start '{command}': {message}")


class TaskFileError(RunnerError):
    """Raised when task file operations fail."""

    pass
