"""
Runner base — the contract between the engine and the host.

Every idempotency check, apply action and rollback action reaches the
host through a CommandRunner. The engine never calls ``subprocess``
directly, so swapping the runner (mock, dry-run) changes nothing else.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from vpsprov.core.models.command import Command, CommandResult


class CommandRunner(ABC):
    """Abstract base class for command runners.

    Runners NEVER raise for a failing command: non-zero exits,
    timeouts and missing binaries all come back as a CommandResult
    with ``ok=False``.
    """

    def __init__(self, dry_run: bool = False):
        self._dry_run = dry_run

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'shell', 'mock')."""

    @property
    def dry_run(self) -> bool:
        """Log-only mode: commands are recorded, never executed."""
        return self._dry_run

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the runner can execute commands at all."""

    @abstractmethod
    def run(self, command: Command, *, timeout: int | None = None) -> CommandResult:
        """Run ``command`` and return its result.

        Args:
            command: What to run.
            timeout: Seconds before the command is killed. Overrides
                ``command.timeout`` when given.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} dry_run={self.dry_run}>"
