"""
Test helpers — configuration builders and stateful runner doubles.
"""

from vpsprov.adapters.mock import MockRunner
from vpsprov.core.catalog import checks
from vpsprov.core.models.command import Command, CommandResult
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.step import ProvisioningStep, StepCategory

# Probes that answer "present" when they merely succeed; a fresh host fails them
FRESH_HOST_PROBES = (
    "id -u app",
    "test -d",
    "test -e",
    "command -v",
    "systemctl is-enabled",
    "node -v",
)


def fresh_host(runner: MockRunner) -> MockRunner:
    """Make every idempotency probe of the catalog answer 'absent'."""
    for needle in FRESH_HOST_PROBES:
        runner.set_failure(needle, error="absent")
    return runner


def make_config(**overrides) -> Configuration:
    fields = {
        "domain": "example.com",
        "database": "none",
        "web_server": "nginx",
    }
    fields.update(overrides)
    return Configuration(**fields)


class HostRunner(MockRunner):
    """A MockRunner that remembers marker files.

    ``touch X`` creates X, ``rm -f X`` removes it and ``test -e X``
    succeeds only while X exists, so a step built from those three
    commands has a real idempotency check and a real rollback.
    """

    def __init__(self, present=(), **kwargs):
        super().__init__(**kwargs)
        self.files = set(present)

    def run(self, command: Command, *, timeout=None) -> CommandResult:
        result = super().run(command, timeout=timeout)
        if not result.ok or self.dry_run or not command.argv:
            return result

        program, *args = command.argv
        if program == "touch":
            self.files.update(args)
        elif program == "rm":
            self.files.difference_update(a for a in args if not a.startswith("-"))
        elif program == "test" and args[-1] not in self.files:
            return CommandResult.failure(command, error="absent", exit_code=1)
        return result


def marker_step(step_id: str, depends_on=(), reversible=True, **kwargs) -> ProvisioningStep:
    """A step whose whole effect is the marker file ``/m/<step_id>``."""
    path = f"/m/{step_id}"
    return ProvisioningStep(
        id=step_id,
        label=step_id.replace("-", " ").title(),
        category=kwargs.pop("category", StepCategory.SYSTEM),
        apply=lambda config: [Command.of("touch", path)],
        check=checks.path_exists(lambda config: path),
        rollback=(lambda config: [Command.of("rm", "-f", path)]) if reversible else None,
        depends_on=tuple(depends_on),
        **kwargs,
    )
