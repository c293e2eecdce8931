"""
Executor — run an ExecutionPlan against the host, one step at a time.

Per step:
    NotStarted → check → {Skipped, PendingApply} → apply → {Applied, Failed}

A failed step aborts the run: every step applied earlier in this run
is rolled back in reverse order (best-effort: a failing rollback is
recorded and the unwind carries on), and no further step starts.
Steps marked non-fatal may instead be continued past when the
executor is built with ``continue_on_failure=True``.

There is no parallelism. Later steps rely on services that earlier
ones installed, and all of them mutate the same package database.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.engine.planner import ExecutionPlan
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.errors import RollbackFailure, StepFailure
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.report import (
    ExecutionReport,
    SkipReason,
    StepOutcome,
    StepResult,
)
from vpsprov.core.models.step import CommandBuilder, ProvisioningStep, StepState

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[ProvisioningStep], bool]
ReportHook = Callable[[ExecutionReport], None]

_MARKERS = {
    StepOutcome.APPLIED: "✓",
    StepOutcome.SKIPPED: "⊘",
    StepOutcome.FAILED: "✗",
    StepOutcome.ROLLED_BACK: "↺",
}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _decline(step: ProvisioningStep) -> bool:
    return False


class Executor:
    """Sequential plan executor with rollback-on-failure.

    Args:
        registry: Step catalog the plan was built from.
        runner: Command runner. A dry-run runner turns the whole pass
            into a rehearsal: checks and confirmations are skipped and
            every command is only logged.
        confirm: Asked before applying steps that carry a ``confirm``
            question. Defaults to declining.
        continue_on_failure: Continue past failed non-fatal steps.
        cancel_event: When set, the run stops before the next step
            and unwinds.
        completed: Step IDs already completed by a previous run; they
            are skipped without running their check.
        on_result: Called with the report after every change, e.g. to
            persist it.
        resumed_from: Run ID of the report being resumed.
    """

    def __init__(
        self,
        registry: StepRegistry,
        runner: CommandRunner,
        *,
        confirm: ConfirmCallback | None = None,
        continue_on_failure: bool = False,
        cancel_event: threading.Event | None = None,
        completed: Iterable[str] = (),
        on_result: ReportHook | None = None,
        resumed_from: str | None = None,
    ):
        self._registry = registry
        self._runner = runner
        self._confirm = confirm or _decline
        self._continue_on_failure = continue_on_failure
        self._cancel_event = cancel_event or threading.Event()
        self._completed = frozenset(completed)
        self._on_result = on_result
        self._resumed_from = resumed_from

    @property
    def dry_run(self) -> bool:
        return self._runner.dry_run

    # ── Run ─────────────────────────────────────────────────────

    def execute(self, plan: ExecutionPlan, config: Configuration) -> ExecutionReport:
        """Run every step of ``plan`` in order.

        Returns:
            The finished ExecutionReport. Step failures are recorded in
            it, never raised.
        """
        report = ExecutionReport(
            plan=list(plan.steps),
            configuration=config.summary(),
            dry_run=self.dry_run,
            resumed_from=self._resumed_from,
        )
        applied: list[tuple[ProvisioningStep, StepResult]] = []
        start = time.monotonic()
        self._notify(report)

        for step_id in plan:
            if self._cancel_event.is_set():
                logger.warning("Cancelled before '%s', rolling back", step_id)
                report.cancelled = True
                report.aborted = True
                self._unwind(applied, report, config)
                break

            step = self._registry[step_id]
            result = self._run_step(step, config)
            report.results.append(result)
            logger.info("%s %s → %s", _MARKERS[result.outcome], step_id, result.outcome)
            self._notify(report)

            if result.outcome == StepOutcome.APPLIED:
                applied.append((step, result))
                continue

            if result.outcome != StepOutcome.FAILED:
                continue

            if not step.fatal and self._continue_on_failure:
                logger.warning("Non-fatal step '%s' failed, continuing", step_id)
                continue

            report.aborted = True
            self._unwind(applied, report, config)
            break

        report.finished = True
        report.ended_at = _now_iso()
        report.duration_ms = int((time.monotonic() - start) * 1000)
        self._notify(report)
        return report

    # ── Single step ─────────────────────────────────────────────

    def _run_step(self, step: ProvisioningStep, config: Configuration) -> StepResult:
        started_at = _now_iso()
        t0 = time.monotonic()

        def finish(outcome: StepOutcome, **kwargs) -> StepResult:
            return StepResult(
                step_id=step.id,
                label=step.label,
                outcome=outcome,
                started_at=started_at,
                ended_at=_now_iso(),
                duration_ms=int((time.monotonic() - t0) * 1000),
                **kwargs,
            )

        if step.id in self._completed:
            return finish(StepOutcome.SKIPPED, skip_reason=SkipReason.RESUMED)

        if not self.dry_run:
            if self._check(step, config) == StepState.PRESENT:
                return finish(StepOutcome.SKIPPED, skip_reason=SkipReason.PRESENT)
            if step.confirm and not self._confirm(step):
                logger.warning("Operator declined '%s'", step.id)
                return finish(StepOutcome.SKIPPED, skip_reason=SkipReason.DECLINED)

        try:
            commands = step.apply(config)
        except Exception as e:
            logger.exception("Could not build commands for '%s'", step.id)
            return finish(StepOutcome.FAILED, error=f"Could not build commands: {e}")

        deadline = t0 + config.step_timeout
        ran: list[str] = []

        for command in commands:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                failure = StepFailure(step.id, f"Step timed out after {config.step_timeout}s")
                logger.error("%s", failure)
                return finish(StepOutcome.FAILED, error=failure.detail, commands=ran)

            timeout = math.ceil(remaining)
            if command.timeout:
                timeout = min(timeout, command.timeout)

            result = self._runner.run(command, timeout=timeout)
            ran.append(result.command)
            if not result.ok:
                failure = StepFailure(step.id, f"{result.command}\n{result.detail}")
                logger.error("%s", failure)
                return finish(StepOutcome.FAILED, error=failure.detail, commands=ran)

        return finish(StepOutcome.APPLIED, commands=ran)

    def _check(self, step: ProvisioningStep, config: Configuration) -> StepState:
        """Run the idempotency predicate. A raising check is UNKNOWN."""
        try:
            state = step.check(config, self._runner)
        except Exception as e:
            logger.warning("Idempotency check for '%s' raised: %s", step.id, e)
            return StepState.UNKNOWN
        logger.debug("Check %s → %s", step.id, state)
        return state

    # ── Rollback ────────────────────────────────────────────────

    def _unwind(
        self,
        applied: list[tuple[ProvisioningStep, StepResult]],
        report: ExecutionReport,
        config: Configuration,
    ) -> None:
        """Roll back applied steps in reverse order, each exactly once."""
        for step, result in reversed(applied):
            if step.rollback is None:
                logger.info("'%s' has no rollback action, left in place", step.id)
                continue

            error = self._rollback_step(step.rollback, result, config)
            if error:
                failure = RollbackFailure(step.id, error)
                logger.error("%s", failure)
                result.rollback_error = failure.detail
            else:
                result.outcome = StepOutcome.ROLLED_BACK
                result.rolled_back_at = _now_iso()
                logger.info("↺ %s rolled back", step.id)
            self._notify(report)

    def _rollback_step(
        self,
        rollback: CommandBuilder,
        result: StepResult,
        config: Configuration,
    ) -> str | None:
        """Run one step's rollback commands. Returns an error or None."""
        try:
            commands = rollback(config)
        except Exception as e:
            return f"Could not build rollback commands: {e}"

        for command in commands:
            outcome = self._runner.run(command, timeout=config.step_timeout)
            result.commands.append(f"[rollback] {outcome.command}")
            if not outcome.ok:
                return f"{outcome.command}\n{outcome.detail}"
        return None

    def _notify(self, report: ExecutionReport) -> None:
        if self._on_result is not None:
            self._on_result(report)
