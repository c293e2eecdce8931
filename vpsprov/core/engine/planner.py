"""
Planner — turn a Configuration and a StepRegistry into an ExecutionPlan.

Flow:
    resolve registry → select steps → auto-include dependencies → order

Branching such as "if Docker was selected, install MongoDB through it"
is expressed as selection and auto-inclusion, never inside step bodies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vpsprov.core.engine.dag import find_cycle, stable_topological_order
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.errors import CycleDetectedError, UnsatisfiedSelectionError
from vpsprov.core.models.configuration import Configuration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionPlan:
    """An ordered, dependency-respecting sequence of step identifiers."""

    steps: tuple[str, ...] = ()
    auto_included: tuple[str, ...] = ()

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self.steps

    def position(self, step_id: str) -> int:
        return self.steps.index(step_id)


def select_steps(config: Configuration, registry: StepRegistry) -> tuple[list[str], list[str]]:
    """Pick the steps a configuration needs.

    Starts from the steps whose ``when`` predicate accepts the
    configuration, then follows hard dependencies: an unselected
    dependency is pulled in if it is ``auto_include``, otherwise the
    selection is unsatisfiable.

    Returns:
        ``(selected, auto_included)``, both in registration order.

    Raises:
        UnsatisfiedSelectionError: A dependency cannot be auto-included.
    """
    chosen = {step.id for step in registry if step.applies_to(config)}
    auto: set[str] = set()

    queue = [sid for sid in registry.ids() if sid in chosen]
    while queue:
        step = registry[queue.pop(0)]
        for dep in step.depends_on:
            if dep in chosen:
                continue
            if not registry[dep].auto_include:
                raise UnsatisfiedSelectionError(step.id, dep)
            logger.info("Auto-including '%s' (required by '%s')", dep, step.id)
            chosen.add(dep)
            auto.add(dep)
            queue.append(dep)

    order = registry.ids()
    return (
        [sid for sid in order if sid in chosen],
        [sid for sid in order if sid in auto],
    )


def plan(config: Configuration, registry: StepRegistry) -> ExecutionPlan:
    """Build the execution plan for a configuration.

    Args:
        config: Resolved configuration.
        registry: Step catalog.

    Returns:
        Immutable ExecutionPlan. Deterministic for identical input.

    Raises:
        UnknownDependencyError: The registry references a missing step.
        UnsatisfiedSelectionError: A dependency cannot be auto-included.
        CycleDetectedError: The selected steps cannot be ordered.
    """
    registry.resolve_dependencies()

    selected, auto_included = select_steps(config, registry)
    planned = set(selected)

    edges: dict[str, list[str]] = {}
    for sid in selected:
        step = registry[sid]
        edges[sid] = [d for d in (*step.depends_on, *step.after) if d in planned]

    order, remaining = stable_topological_order(selected, edges)
    if remaining:
        cycle = find_cycle(remaining, edges)
        raise CycleDetectedError(cycle or remaining)

    logger.info("Planned %d steps (%d auto-included)", len(order), len(auto_included))
    return ExecutionPlan(steps=tuple(order), auto_included=tuple(auto_included))
