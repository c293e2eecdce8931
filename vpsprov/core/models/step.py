"""
ProvisioningStep — one unit of provisioning work, expressed as data.

A step does not run anything itself. Its ``apply`` and ``rollback``
builders turn a Configuration into a list of Commands, and its
``check`` predicate inspects the host through a CommandRunner. The
Executor is the only component that actually runs them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration

if TYPE_CHECKING:
    from vpsprov.adapters.base import CommandRunner


class StepState(StrEnum):
    """Answer of an idempotency predicate."""

    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class StepCategory(StrEnum):
    SYSTEM = "system"
    RUNTIME = "runtime"
    DATABASE = "database"
    WEBSERVER = "webserver"
    ADDON = "addon"
    FIREWALL = "firewall"
    DEPLOY = "deploy"


CommandBuilder = Callable[[Configuration], list[Command]]
Check = Callable[[Configuration, "CommandRunner"], StepState]
Selector = Callable[[Configuration], bool]


def _always(config: Configuration) -> bool:
    return True


def _unknown(config: Configuration, runner: CommandRunner) -> StepState:
    return StepState.UNKNOWN


@dataclass(frozen=True)
class ProvisioningStep:
    """A provisioning step.

    Attributes:
        id:           Unique identifier within a registry.
        label:        Human-readable name.
        category:     Grouping tag used in listings and reports.
        apply:        Builds the commands that bring the effect about.
        check:        Idempotency predicate. Defaults to UNKNOWN (always apply).
        rollback:     Builds the undo commands. ``None`` = nothing to undo.
        depends_on:   Hard dependencies (must run first, auto-included).
        after:        Soft ordering: only applies if that step is planned.
        when:         Selection predicate over the Configuration.
        auto_include: May the planner pull this step in for a dependent?
        fatal:        If False, failure can be continued past on request.
        confirm:      Question the operator must approve before applying.
        description:  Extra note shown by ``vpsprov steps``.
    """

    id: str
    label: str
    category: StepCategory
    apply: CommandBuilder
    check: Check = _unknown
    rollback: CommandBuilder | None = None
    depends_on: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    when: Selector = _always
    auto_include: bool = True
    fatal: bool = True
    confirm: str | None = None
    description: str = field(default="", compare=False)

    def applies_to(self, config: Configuration) -> bool:
        """Whether the configuration selects this step."""
        return bool(self.when(config))

    @property
    def reversible(self) -> bool:
        return self.rollback is not None
