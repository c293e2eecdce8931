"""
Command and CommandResult models — the execution boundary contract.

A Command describes one invocation of an external program. A
CommandResult captures its outcome. The runner never raises for a
failing command: failures (non-zero exit, timeout, missing binary)
come back as a CommandResult with ``ok=False``.
"""

from __future__ import annotations

import shlex
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

MASK = "***"

# How much captured output is kept on a result
_OUTPUT_TAIL = 4000


class Command(BaseModel):
    """One external program invocation.

    Exactly one of ``argv`` or ``shell`` is set. ``shell`` snippets are
    run through ``sh -c`` and are used where a command
    needs pipes or redirects.

    ``secrets`` lists values that must never be shown: they are masked
    in ``display()`` and in captured output, and excluded from
    serialization.
    """

    model_config = ConfigDict(frozen=True)

    argv: list[str] = Field(default_factory=list)
    shell: str | None = None
    input: str | None = Field(default=None, repr=False)
    env: dict[str, str] = Field(default_factory=dict, repr=False)
    cwd: str | None = None
    timeout: int | None = None
    read_only: bool = False
    description: str = ""
    secrets: list[str] = Field(default_factory=list, repr=False, exclude=True)

    @model_validator(mode="after")
    def _one_form(self) -> Command:
        if bool(self.argv) == bool(self.shell):
            raise ValueError("Command needs exactly one of 'argv' or 'shell'")
        return self

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def of(cls, *argv: str, **kwargs: Any) -> Command:
        """Build an argv command: ``Command.of("apt-get", "update")``."""
        return cls(argv=list(argv), **kwargs)

    @classmethod
    def sh(cls, snippet: str, **kwargs: Any) -> Command:
        """Build a shell-snippet command run through ``sh -c``."""
        return cls(shell=snippet, **kwargs)

    # ── Views ───────────────────────────────────────────────────

    def exec_args(self) -> list[str]:
        """The argument vector handed to the OS."""
        if self.shell:
            return ["sh", "-c", self.shell]
        return list(self.argv)

    def mask(self, text: str) -> str:
        """Replace every secret value in ``text`` with a mask."""
        for secret in self.secrets:
            if secret:
                text = text.replace(secret, MASK)
        return text

    def display(self) -> str:
        """Human-readable, secret-free form for logs and reports."""
        text = self.shell if self.shell else shlex.join(self.argv)
        if self.input is not None:
            text += " <<< (stdin)"
        return self.mask(text)


class CommandResult(BaseModel):
    """Outcome of running a Command."""

    command: str                     # display form, secrets masked
    ok: bool
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False
    dry_run: bool = False
    error: str | None = None

    @property
    def detail(self) -> str:
        """Error message plus the tail of captured stderr."""
        parts = [self.error or f"Command exited with code {self.exit_code}"]
        if self.stderr:
            parts.append(self.stderr.strip()[-1000:])
        return "\n".join(parts)

    @classmethod
    def success(
        cls,
        command: Command,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ) -> CommandResult:
        """Create a success result."""
        return cls(
            command=command.display(),
            ok=True,
            exit_code=kwargs.pop("exit_code", 0),
            stdout=command.mask(stdout)[-_OUTPUT_TAIL:],
            stderr=command.mask(stderr)[-_OUTPUT_TAIL:],
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        command: Command,
        error: str,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ) -> CommandResult:
        """Create a failure result."""
        return cls(
            command=command.display(),
            ok=False,
            error=command.mask(error),
            stdout=command.mask(stdout)[-_OUTPUT_TAIL:],
            stderr=command.mask(stderr)[-_OUTPUT_TAIL:],
            **kwargs,
        )
