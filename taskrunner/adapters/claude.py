"""Claude CLI adapter.

Builds one-shot ``claude -p`` invocations and parses the single JSON object
printed by ``--output-format json``.
"""

import json
import logging
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

logger = logging.getLogger(__name__)


class ClaudeAdapter:
    """Adapter for the ``claude`` command."""

    name = "claude"

    def build_command(
        self,
        config: ProviderConfig,
        prompt: str,
        options: Optional[CliAdapterOptions] = None,
    ) -> CliCommand:
        """
        Build a Claude invocation.

        Produces an argv like::

            claude -p "prompt" --model opus --dangerously-skip-permissions
                   --output-format json --max-turns 10 --append-system-prompt "..."

        Args:
            config: Provider configuration.
            prompt: Main prompt text.
            options: Optional system prompt, max turns and session id overrides.

        Returns:
            CliCommand with the prompt passed through ``-p``.
        """
        options = options or CliAdapterOptions()
        args = []

        if config.subcommand:
            args.append(config.subcommand)

        args.extend(["-p", prompt])
        args.extend(["--model", config.model])
        args.extend(config.unattended_flags)
        args.extend(["--output-format", "json"])

        max_turns = options.max_turns if options.max_turns is not None else config.safety.max_turns
        if max_turns is not None:
            args.extend(["--max-turns", str(max_turns)])

        if options.system_prompt:
            args.extend(["--append-system-prompt", options.system_prompt])

        if options.session_id:
            args.extend(["--session-id", options.session_id])

        return CliCommand(command=config.cli, args=args)

    def parse_response(self, stdout: str, exit_code: int) -> CliResponse:
        """
        Parse Claude's JSON result object.

        Args:
            stdout: Raw process stdout.
            exit_code: Process exit code.

        Returns:
            CliResponse; non-JSON output (crash, stderr leak) is a failure.
        """
        trimmed = (stdout or "").strip()
        if not trimmed:
            return no_output_failure(exit_code)

        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError:
            logger.debug("Claude output is not JSON")
            return CliResponse(
                success=False,
                result=trimmed,
                error=f"Failed to parse CLI output as JSON: {trimmed[:ERROR_EXCERPT_CHARS]}",
            )

        if not isinstance(parsed, dict):
            return CliResponse(
                success=False,
                result=trimmed,
                error=f"Failed to parse CLI output as JSON: {trimmed[:ERROR_EXCERPT_CHARS]}",
            )

        result = parsed.get("result")
        result = result if isinstance(result, str) else ""

        response = CliResponse(
            success=not parsed.get("is_error", False),
            result=result,
            session_id=parsed.get("session_id"),
            cost=parsed.get("total_cost_usd"),
            turns=parsed.get("num_turns"),
        )
        if not response.success:
            response.error = result or "Claude reported an error"
        return response


AdapterRegistry.register(ClaudeAdapter.name, ClaudeAdapter)
