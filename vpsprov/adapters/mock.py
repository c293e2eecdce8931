"""
Mock runner — universal test double for the command boundary.

Records every command it receives and answers from a table of
configured responses, so steps, checks and the executor can be
exercised without touching the host.
"""

from __future__ import annotations

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.models.command import Command, CommandResult


class MockRunner(CommandRunner):
    """Mock runner for testing.

    By default, every command succeeds with ``default_output``.
    Responses are matched by substring of the command's display form;
    the first matching rule wins.
    """

    def __init__(
        self,
        dry_run: bool = False,
        available: bool = True,
        default_output: str = "",
    ):
        super().__init__(dry_run=dry_run)
        self._available = available
        self._default_output = default_output
        self._rules: list[tuple[str, dict]] = []
        self._call_log: list[Command] = []
        self._timeouts: list[int | None] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[Command]:
        """All commands this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        """Display form of every command received, in order."""
        return [c.display() for c in self._call_log]

    @property
    def timeouts(self) -> list[int | None]:
        """Timeout passed with each call, in order."""
        return self._timeouts

    def calls_matching(self, needle: str) -> list[Command]:
        return [c for c in self._call_log if needle in c.display()]

    def is_available(self) -> bool:
        return self._available

    # ── Configuration ───────────────────────────────────────────

    def set_output(self, match: str, stdout: str) -> None:
        """Commands containing ``match`` succeed and print ``stdout``."""
        self._rules.append((match, {"ok": True, "stdout": stdout}))

    def set_failure(
        self,
        match: str,
        error: str = "Mock failure",
        exit_code: int = 1,
        stderr: str = "",
    ) -> None:
        """Commands containing ``match`` fail."""
        self._rules.append(
            (match, {"ok": False, "error": error, "exit_code": exit_code, "stderr": stderr})
        )

    def set_timeout(self, match: str) -> None:
        """Commands containing ``match`` time out."""
        self._rules.append((match, {"ok": False, "timed_out": True}))

    def reset(self) -> None:
        """Clear call log and configured responses."""
        self._call_log.clear()
        self._timeouts.clear()
        self._rules.clear()

    # ── Execution ───────────────────────────────────────────────

    def run(self, command: Command, *, timeout: int | None = None) -> CommandResult:
        self._call_log.append(command)
        self._timeouts.append(timeout)

        if self.dry_run:
            return CommandResult.success(command, dry_run=True)

        display = command.display()
        for match, response in self._rules:
            if match not in display:
                continue
            if response.get("timed_out"):
                return CommandResult.failure(
                    command,
                    error=f"Command timed out after {timeout}s",
                    timed_out=True,
                )
            if response["ok"]:
                return CommandResult.success(command, stdout=response["stdout"])
            return CommandResult.failure(
                command,
                error=response["error"],
                exit_code=response["exit_code"],
                stderr=response["stderr"],
            )

        return CommandResult.success(command, stdout=self._default_output)
