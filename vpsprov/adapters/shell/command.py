"""
Shell command runner — execute commands on the local host.

The SINGLE PLACE where processes are spawned. Commands run in their
own session, so an operator interrupt reaches the engine (which stops
between steps) instead of killing a half-finished package install.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.models.command import Command, CommandResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


class ShellCommandRunner(CommandRunner):
    """Run commands through ``subprocess`` and capture their output.

    Args:
        dry_run: Log commands instead of running them.
        default_timeout: Seconds allowed when neither the caller nor the
            command specifies a timeout.
    """

    def __init__(self, dry_run: bool = False, default_timeout: int = DEFAULT_TIMEOUT):
        super().__init__(dry_run=dry_run)
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def run(self, command: Command, *, timeout: int | None = None) -> CommandResult:
        display = command.display()
        # read-only checks only show up when debugging
        level = logging.DEBUG if command.read_only else logging.INFO
        note = f"  # {command.description}" if command.description else ""

        if self.dry_run:
            logger.log(level, "[dry-run] %s%s", display, note)
            return CommandResult.success(command, dry_run=True)

        if timeout is None:
            timeout = command.timeout or self._default_timeout

        env = os.environ.copy()
        env.update(command.env)

        logger.log(level, "Executing: %s%s", display, note)
        logger.debug("cwd=%s, timeout=%ss", command.cwd, timeout)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                command.exec_args(),
                stdin=subprocess.PIPE if command.input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=command.cwd,
                env=env,
                start_new_session=True,
            )
        except FileNotFoundError:
            return CommandResult.failure(
                command,
                error=f"Command not found: {command.exec_args()[0]}",
                exit_code=127,
            )
        except OSError as e:
            return CommandResult.failure(command, error=f"Cannot start command: {e}")

        try:
            stdout, stderr = proc.communicate(input=command.input, timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            stdout, stderr = proc.communicate()
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Timed out after %ss: %s", timeout, display)
            return CommandResult.failure(
                command,
                error=f"Command timed out after {timeout}s",
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
                duration_ms=elapsed_ms,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if proc.returncode == 0:
            return CommandResult.success(
                command,
                stdout=stdout or "",
                stderr=stderr or "",
                duration_ms=elapsed_ms,
            )

        return CommandResult.failure(
            command,
            error=f"Command exited with code {proc.returncode}",
            stdout=stdout or "",
            stderr=stderr or "",
            exit_code=proc.returncode,
            duration_ms=elapsed_ms,
        )


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the command and everything it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
