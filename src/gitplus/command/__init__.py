"""CLI command modules for gitplus."""

from gitplus.command.resolve import ResolveCommand
from gitplus.command.status import StatusCommand
from gitplus.command.validate import ValidateCommand

__all__ = ["ResolveCommand", "StatusCommand", "ValidateCommand"]
