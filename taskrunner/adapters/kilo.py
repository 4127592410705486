"""Kilo CLI adapter.

Kilo takes a positional prompt, ``--format json`` and a combined
``-m provider/model`` flag, and streams JSON events one per line.
"""

import json
import logging
from typing import Any, Optional

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

# Kilo rejects --yolo even though other tools share the same unattended flags
UNSUPPORTED_FLAGS = ("--yolo",)

TEXT_KEYS = ("result", "output_text", "text", "content", "message", "final", "delta")


def extract_text(value: Any) -> Optional[str]:
    """
    Pull the first non-empty text out of a nested event value.

    Strings are trimmed, lists are joined line by line, and mappings are
    searched through TEXT_KEYS in order.
    """
    if isinstance(value, str):
        return value.strip() or None

    if isinstance(value, list):
        parts = [text for text in (extract_text(item) for item in value) if text]
        return "\n".join(parts).strip() if parts else None

    if isinstance(value, dict):
        for key in TEXT_KEYS:
            text = extract_text(value.get(key))
            if text:
                return text

    return None


class KiloAdapter:
    """Adapter for the ``kilo`` command."""

    name = "kilo"

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

        args.extend(flag for flag in config.unattended_flags if flag not in UNSUPPORTED_FLAGS)
        args.extend(["--format", "json"])
        args.extend(["-m", config.model])

        # No system prompt flag: it goes in front of the prompt
        final_prompt = prompt
        if options.system_prompt:
            final_prompt = f"{options.system_prompt}\n\n{prompt}"
        args.append(final_prompt)

        return CliCommand(command=config.cli, args=args)

    def parse_response(self, stdout: str, exit_code: int) -> CliResponse:
        """
        Fold Kilo's JSONL event stream into one response.

        The last text and the last error seen win. Lines that are not JSON
        are ignored; when no line parses at all, the raw output is returned.
        """
        trimmed = (stdout or "").strip()
        if not trimmed:
            return no_output_failure(exit_code)

        last_text = None
        last_error = None
        session_id = None
        cost = None
        turns = None
        parsed_any = False

        for line in trimmed.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            parsed_any = True

            if not isinstance(event, dict):
                text = extract_text(event)
                if text:
                    last_text = text
                continue

            text = extract_text(event)
            if text:
                last_text = text

            if event.get("is_error") is True:
                last_error = (
                    extract_text(event.get("error"))
                    or extract_text(event.get("message"))
                    or "Kilo reported an error"
                )

            error = event.get("error")
            if isinstance(error, str) and error.strip():
                last_error = error.strip()

            message = event.get("message")
            if isinstance(message, str) and str(event.get("type")).lower() == "error":
                last_error = message.strip()

            if isinstance(event.get("session_id"), str):
                session_id = event["session_id"]
            elif isinstance(event.get("sessionId"), str):
                session_id = event["sessionId"]

            if _is_number(event.get("total_cost_usd")):
                cost = event["total_cost_usd"]
            if _is_number(event.get("num_turns")):
                turns = int(event["num_turns"])

        if not parsed_any:
            logger.debug("Kilo output contained no JSON events")
            if exit_code == 0:
                return CliResponse(success=True, result=trimmed)
            return CliResponse(
                success=False,
                result=trimmed,
                error=f"CLI exited with code {exit_code}: {trimmed[:ERROR_EXCERPT_CHARS]}",
            )

        success = exit_code == 0 and last_error is None
        return CliResponse(
            success=success,
            result=last_text or "",
            error=None if success else (last_error or f"CLI exited with code {exit_code}"),
            session_id=session_id,
            cost=cost,
            turns=turns,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


AdapterRegistry.register(KiloAdapter.name, KiloAdapter)
