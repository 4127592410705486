"""Codex CLI adapter.

Runs ``codex exec --json ... -`` with the prompt on stdin and folds the JSONL
event stream (``thread.started``, ``item.completed``, ``turn.failed`` ...)
into a single response.
"""

import json
import logging
from typing import Any, Dict, Optional

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

DEFAULT_SUBCOMMAND = "exec"
STDIN_PROMPT_ARG = "-"

FAILURE_EVENTS = ("error", "turn.failed")


def _format_override(key: str, value: Any) -> str:
    if isinstance(value, bool):
        rendered = "true" if value else "false"
    elif isinstance(value, (int, float)):
        rendered = str(value)
    else:
        rendered = json.dumps(value)
    return f"{key}={rendered}"


def _final_text(event: Dict[str, Any]) -> Optional[str]:
    """Final answer text carried by one event, if any."""
    item = event.get("item")
    if event.get("type") == "item.completed" and isinstance(item, dict):
        if item.get("type") in ("agent_message", "assistant_message"):
            text = item.get("text")
            if isinstance(text, str) and text.strip():
                return text.strip()

    for key in ("last_message", "result"):
        value = event.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    message = event.get("message")
    if isinstance(message, str) and message.strip() and event.get("type") not in FAILURE_EVENTS:
        return message.strip()
    return None


def _event_error(event: Dict[str, Any]) -> Optional[str]:
    """Error text when the event reports a failure."""
    if event.get("type") not in FAILURE_EVENTS:
        return None

    error = event.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"].strip()
    if isinstance(error, str) and error.strip():
        return error.strip()
    message = event.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return "Codex reported an error"


class CodexAdapter:
    """Adapter for the ``codex`` command."""

    name = "codex"

    def build_command(
        self,
        config: ProviderConfig,
        prompt: str,
        options: Optional[CliAdapterOptions] = None,
    ) -> CliCommand:
        """
        Build a Codex invocation.

        Produces an argv like::

            codex exec --full-auto --json --model gpt-5-codex -c key=value -

        The prompt, with any system prompt prepended, is written to stdin.
        """
        options = options or CliAdapterOptions()
        args = [config.subcommand or DEFAULT_SUBCOMMAND]

        args.extend(config.unattended_flags)
        args.append("--json")
        args.extend(["--model", config.model])

        for key, value in config.config_overrides.items():
            args.extend(["-c", _format_override(key, value)])

        args.append(STDIN_PROMPT_ARG)

        stdin = prompt
        if options.system_prompt:
            stdin = f"{options.system_prompt}\n\n{prompt}"

        return CliCommand(command=config.cli, args=args, stdin=stdin)

    def parse_response(self, stdout: str, exit_code: int) -> CliResponse:
        trimmed = (stdout or "").strip()
        if not trimmed:
            return no_output_failure(exit_code)

        last_text = None
        last_error = None
        thread_id = None
        parsed_any = False

        for line in trimmed.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            parsed_any = True

            text = _final_text(event)
            if text:
                last_text = text

            error = _event_error(event)
            if error:
                last_error = error

            if isinstance(event.get("thread_id"), str):
                thread_id = event["thread_id"]

        if not parsed_any:
            logger.debug("Codex output contained no JSON events")
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
            session_id=thread_id,
        )


AdapterRegistry.register(CodexAdapter.name, CodexAdapter)
