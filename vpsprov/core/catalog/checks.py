"""
Idempotency predicates — is a step's effect already on the host?

Each factory returns a ``check(config, runner) -> StepState`` callable.
Probes are read-only commands with a short timeout. A probe that times
out answers UNKNOWN, so the step is applied rather than wrongly
skipped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.models.command import Command, CommandResult
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.step import Check, StepState
from vpsprov.core.models.template import GeneratedFile

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 60

ProbeFactory = Callable[[Configuration], Command]


def _probe(runner: CommandRunner, command: Command) -> CommandResult:
    probe = command.model_copy(update={"read_only": True})
    result = runner.run(probe, timeout=command.timeout or CHECK_TIMEOUT)
    if result.timed_out:
        logger.debug("Probe timed out: %s", probe.display())
    return result


def succeeds(factory: ProbeFactory) -> Check:
    """PRESENT when the probe exits 0."""

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        result = _probe(runner, factory(config))
        if result.timed_out:
            return StepState.UNKNOWN
        return StepState.PRESENT if result.ok else StepState.ABSENT

    return check


def fails(factory: ProbeFactory) -> Check:
    """PRESENT when the probe exits non-zero (but ran at all)."""

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        result = _probe(runner, factory(config))
        if result.timed_out or result.exit_code == 127:
            return StepState.UNKNOWN
        return StepState.ABSENT if result.ok else StepState.PRESENT

    return check


def output_matches(factory: ProbeFactory, pattern: Callable[[Configuration], str]) -> Check:
    """PRESENT when the probe succeeds and its stdout matches ``pattern``."""

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        result = _probe(runner, factory(config))
        if result.timed_out:
            return StepState.UNKNOWN
        if result.ok and re.search(pattern(config), result.stdout, re.MULTILINE):
            return StepState.PRESENT
        return StepState.ABSENT

    return check


def all_of(*checks: Check) -> Check:
    """PRESENT only if every check is; ABSENT if any check is."""

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        states = [c(config, runner) for c in checks]
        if all(s == StepState.PRESENT for s in states):
            return StepState.PRESENT
        if any(s == StepState.ABSENT for s in states):
            return StepState.ABSENT
        return StepState.UNKNOWN

    return check


# ── Common probes ───────────────────────────────────────────────


def command_available(binary: str) -> Check:
    return succeeds(lambda config: Command.sh(f"command -v {binary}"))


def path_exists(path: Callable[[Configuration], str]) -> Check:
    return succeeds(lambda config: Command.of("test", "-e", path(config)))


def packages_installed(*packages: str) -> Check:
    """PRESENT when dpkg reports every package as fully installed.

    ``dpkg -s`` alone also succeeds for removed packages whose config
    files remain, so the status line is inspected instead.
    """

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        result = _probe(
            runner,
            Command.of("dpkg-query", "-W", "-f=${Status}\\n", *packages),
        )
        if result.timed_out:
            return StepState.UNKNOWN
        if not result.ok:
            return StepState.ABSENT
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if len(lines) == len(packages) and all(line == "install ok installed" for line in lines):
            return StepState.PRESENT
        return StepState.ABSENT

    return check


def file_matches(generate: Callable[[Configuration], GeneratedFile]) -> Check:
    """PRESENT when the file on the host has exactly the generated content."""

    def check(config: Configuration, runner: CommandRunner) -> StepState:
        generated = generate(config)
        result = _probe(runner, Command.of("cat", generated.path))
        if result.timed_out:
            return StepState.UNKNOWN
        if result.ok and result.stdout == generated.content:
            return StepState.PRESENT
        return StepState.ABSENT

    return check
