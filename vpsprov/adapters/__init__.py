"""Adapters — the command-execution boundary to the host.

Public re-exports for convenient access.
"""

from vpsprov.adapters.base import CommandRunner
from vpsprov.adapters.mock import MockRunner
from vpsprov.adapters.shell.command import ShellCommandRunner

__all__ = [
    "CommandRunner",
    "MockRunner",
    "ShellCommandRunner",
]
