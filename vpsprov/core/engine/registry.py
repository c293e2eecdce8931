"""
Step registry — the catalog of provisioning steps.

Steps are registered once at startup and kept in registration order.
That order is meaningful: the Planner uses it to break ties, which
keeps plans reproducible.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from vpsprov.core.errors import DuplicateIdentifierError, UnknownDependencyError
from vpsprov.core.models.step import ProvisioningStep

logger = logging.getLogger(__name__)


class StepRegistry:
    """Ordered collection of provisioning steps keyed by identifier."""

    def __init__(self, steps: Iterable[ProvisioningStep] = ()):
        self._steps: dict[str, ProvisioningStep] = {}
        for step in steps:
            self.register(step)

    def register(self, step: ProvisioningStep) -> None:
        """Add a step.

        Raises:
            DuplicateIdentifierError: If the identifier already exists.
        """
        if step.id in self._steps:
            raise DuplicateIdentifierError(step.id)
        self._steps[step.id] = step
        logger.debug("Registered step: %s", step.id)

    def get(self, step_id: str) -> ProvisioningStep | None:
        return self._steps.get(step_id)

    def __getitem__(self, step_id: str) -> ProvisioningStep:
        return self._steps[step_id]

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __iter__(self) -> Iterator[ProvisioningStep]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def ids(self) -> list[str]:
        """Step identifiers in registration order."""
        return list(self._steps)

    def index(self, step_id: str) -> int:
        """Registration position of a step."""
        return self.ids().index(step_id)

    def resolve_dependencies(self) -> None:
        """Check that every referenced step identifier is registered.

        Both hard dependencies (``depends_on``) and soft ordering hints
        (``after``) must resolve.

        Raises:
            UnknownDependencyError: On the first unresolved reference.
        """
        for step in self._steps.values():
            for dep in (*step.depends_on, *step.after):
                if dep not in self._steps:
                    raise UnknownDependencyError(step.id, dep)
