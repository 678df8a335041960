#!/usr/bin/env python3
"""gitplus CLI - guarded git automation with conflict resolution."""

import asyncio
import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from gitplus.command.resolve import ResolveCommand
from gitplus.command.status import StatusCommand
from gitplus.command.validate import ValidateCommand
from gitplus.core.config import State
from gitplus.core.log import logger


class CliState(State):
    """Guarded git automation: repository inspection, path security
    and confidence-gated merge conflict resolution.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.resolution.mode smart)
    2. --include files, then gitplus.yaml in the current directory,
       then gitplus.yaml in the user config directory
    3. .env file
    4. Environment variables (GITPLUS_CONFIG__BACKEND__MODEL=opus)
    5. Package defaults
    """

    resolve: CliSubCommand[ResolveCommand]
    status: CliSubCommand[StatusCommand]
    check: CliSubCommand[ValidateCommand]

    def cli_cmd(self):
        """Dispatch to the active subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(2)

        # Closing the logger flushes file and OTLP sinks on exit
        with logger:
            exit_code = asyncio.run(subcommand.run_workflow(self))
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
