"""KIMI CLI adapter: flag-style prompt, plain text output."""

from typing import Optional

from taskrunner.adapters.protocol import (
    AdapterRegistry,
    CliAdapterOptions,
    CliCommand,
    CliResponse,
    no_output_failure,
)
from taskrunner.constants import ERROR_EXCERPT_CHARS
from taskrunner.support.providers import ProviderConfig


class KimiAdapter:
    """Adapter for the ``kimi`` command (``--print --quiet`` one-shot mode)."""

    name = "kimi"

    def build_command(
        self,
        config: ProviderConfig,
        prompt: str,
        options: Optional[CliAdapterOptions] = None,
    ) -> CliCommand:
        options = options or CliAdapterOptions()
        args = []

        if config.subcommand:
            args.append(config.subcommand)

        args.extend(config.unattended_flags)
        args.extend(["--model", config.model])
        args.extend(["-p", prompt])
        args.extend(config.output_flags)

        max_turns = options.max_turns if options.max_turns is not None else config.safety.max_turns
        if max_turns is not None:
            args.extend(["--max-steps-per-turn", str(max_turns)])

        return CliCommand(command=config.cli, args=args)

    def parse_response(self, stdout: str, exit_code: int) -> CliResponse:
        trimmed = (stdout or "").strip()
        if not trimmed:
            return no_output_failure(exit_code)

        if exit_code != 0:
            return CliResponse(
                success=False,
                result=trimmed,
                error=f"CLI exited with code {exit_code}: {trimmed[:ERROR_EXCERPT_CHARS]}",
            )
        return CliResponse(success=True, result=trimmed)


AdapterRegistry.register(KimiAdapter.name, KimiAdapter)
