"""taskrunner providers command implementation."""

import argparse
import json
import sys

from taskrunner.core.exceptions import RunnerError
from taskrunner.support.providers import list_available_providers


def cmd_providers(cli_instance, args: argparse.Namespace) -> int:
    """List provider definitions found under _providers/.

    Returns:
        Exit code (0 on success, 1 on error)
    """
    try:
        providers = list_available_providers(str(cli_instance.kanban_root))

        if args.json:
            output = [
                {
                    "id": provider.id,
                    "name": provider.name,
                    "path": provider.path,
                    "cli": provider.config.cli if provider.config else None,
                    "model": provider.config.model if provider.config else None,
                    "valid": provider.config is not None,
                    "error": provider.error,
                }
                for provider in providers
            ]
            print(json.dumps(output, indent=2))
            return 0

        if not providers:
            print("No providers found.")
            return 0

        for provider in providers:
            if provider.config:
                print(f"  {provider.id}  {provider.name}  ({provider.config.cli}: {provider.config.model})")
            else:
                print(f"  {provider.id}  {provider.name}  INVALID: {provider.error}")

        return 0

    except (RunnerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
