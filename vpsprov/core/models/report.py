"""
StepResult and ExecutionReport — what happened during a run.

Results are appended in plan order during the Executor's single pass.
The only in-place change allowed is the Applied → RolledBack
transition made during a failure unwind. Once the run finishes the
report is read-only and handed to the ReportGenerator.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def generate_run_id() -> str:
    """Generate a unique, sortable run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


class StepOutcome(StrEnum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class SkipReason(StrEnum):
    PRESENT = "present"          # idempotency check found the effect
    RESUMED = "resumed"          # completed in the report being resumed
    DECLINED = "declined"        # operator declined the confirmation


class RunStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    PROVISIONED = "provisioned"
    PARTIAL = "partial"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_INCOMPLETE = "rollback_incomplete"
    DRY_RUN = "dry_run"


class StepResult(BaseModel):
    """Outcome of a single step."""

    step_id: str
    label: str = ""
    outcome: StepOutcome
    skip_reason: SkipReason | None = None
    error: str | None = None
    rollback_error: str | None = None
    commands: list[str] = Field(default_factory=list)
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    rolled_back_at: str | None = None

    @property
    def completed(self) -> bool:
        """Whether a resumed run may skip this step."""
        if self.outcome == StepOutcome.APPLIED:
            return True
        return (
            self.outcome == StepOutcome.SKIPPED
            and self.skip_reason in (SkipReason.PRESENT, SkipReason.RESUMED)
        )


class ExecutionReport(BaseModel):
    """Everything recorded about one run."""

    schema_version: int = 1
    run_id: str = Field(default_factory=generate_run_id)
    plan: list[str] = Field(default_factory=list)
    results: list[StepResult] = Field(default_factory=list)
    configuration: dict[str, Any] = Field(default_factory=dict)
    resumed_from: str | None = None

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str | None = None
    duration_ms: int = 0

    dry_run: bool = False
    finished: bool = False
    aborted: bool = False
    cancelled: bool = False

    # ── Lookup ──────────────────────────────────────────────────

    def result_for(self, step_id: str) -> StepResult | None:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    def _count(self, outcome: StepOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def applied(self) -> int:
        return self._count(StepOutcome.APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(StepOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(StepOutcome.FAILED)

    @property
    def rolled_back(self) -> int:
        return self._count(StepOutcome.ROLLED_BACK)

    @property
    def failed_step(self) -> str | None:
        """The first step that failed, if any."""
        for result in self.results:
            if result.outcome == StepOutcome.FAILED:
                return result.step_id
        return None

    @property
    def rollback_failures(self) -> list[StepResult]:
        return [r for r in self.results if r.rollback_error]

    @property
    def pending(self) -> list[str]:
        """Planned steps that never started."""
        seen = {r.step_id for r in self.results}
        return [sid for sid in self.plan if sid not in seen]

    def completed_ids(self) -> set[str]:
        """Step IDs a resumed run may skip."""
        return {r.step_id for r in self.results if r.completed}

    # ── Status ──────────────────────────────────────────────────

    @property
    def status(self) -> RunStatus:
        if self.dry_run:
            return RunStatus.DRY_RUN
        if not self.finished:
            return RunStatus.IN_PROGRESS
        if self.aborted:
            if self.rollback_failures:
                return RunStatus.ROLLBACK_INCOMPLETE
            return RunStatus.ROLLED_BACK
        if self.failed:
            return RunStatus.PARTIAL
        return RunStatus.PROVISIONED

    @property
    def ok(self) -> bool:
        return self.status in (RunStatus.PROVISIONED, RunStatus.DRY_RUN)

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["status"] = self.status.value
        data["counts"] = {
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "rolled_back": self.rolled_back,
            "pending": len(self.pending),
        }
        return data
