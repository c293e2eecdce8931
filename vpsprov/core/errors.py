"""
Error taxonomy — every failure the engine can report.

Planning-time errors (validation, configuration, planning) are raised
before any side effect runs, so a run that fails with one of them is
safe to retry after fixing the input. Execution-time errors are
recorded in the ExecutionReport rather than propagated.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all vpsprov errors."""


# ── Input ───────────────────────────────────────────────────────


class ValidationError(ProvisionError):
    """Bad or missing operator input."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ReportFileError(ProvisionError):
    """A report file could not be read or parsed."""


# ── Registry ────────────────────────────────────────────────────


class ConfigurationError(ProvisionError):
    """The step registry is inconsistent. Always fatal."""


class DuplicateIdentifierError(ConfigurationError):
    """A step identifier was registered twice."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Duplicate step identifier: '{step_id}'")


class UnknownDependencyError(ConfigurationError):
    """A step references a step identifier that is not registered."""

    def __init__(self, step_id: str, dependency_id: str):
        self.step_id = step_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Step '{step_id}' depends on unknown step '{dependency_id}'"
        )


# ── Planning ────────────────────────────────────────────────────


class PlanningError(ProvisionError):
    """The selected steps cannot be turned into an execution plan."""


class CycleDetectedError(PlanningError):
    """The dependency graph of the selected steps contains a cycle."""

    def __init__(self, members: list[str]):
        self.members = list(members)
        super().__init__(
            "Dependency cycle detected: " + " → ".join(self.members)
        )


class UnsatisfiedSelectionError(PlanningError):
    """A selected step depends on a step that cannot be auto-included."""

    def __init__(self, step_id: str, dependency_id: str):
        self.step_id = step_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Step '{step_id}' requires '{dependency_id}', which is not "
            f"selected by the configuration and cannot be auto-included"
        )


# ── Execution ───────────────────────────────────────────────────


class StepFailure(ProvisionError):
    """A step's apply action failed. Triggers rollback-and-abort."""

    def __init__(self, step_id: str, detail: str):
        self.step_id = step_id
        self.detail = detail
        super().__init__(f"Step '{step_id}' failed: {detail}")


class RollbackFailure(ProvisionError):
    """A rollback action failed during an unwind. Logged, never fatal."""

    def __init__(self, step_id: str, detail: str):
        self.step_id = step_id
        self.detail = detail
        super().__init__(f"Rollback of '{step_id}' failed: {detail}")
