"""
Provision use case — plan, check the host, execute, persist.

This is the vertical slice from a resolved Configuration to an audited
run: build the plan from the step catalog, verify the host can be
provisioned at all, run the plan with the report saved after every
step, and append the outcome to the audit ledger.

Errors that happen before the first command runs are returned in
``ProvisionResult.error`` with the matching exit code; nothing on the
host has changed at that point.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.engine.executor import ConfirmCallback, Executor
from vpsprov.core.engine.planner import ExecutionPlan, plan
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.errors import (
    ConfigurationError,
    PlanningError,
    ReportFileError,
    ValidationError,
)
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.report import ExecutionReport, RunStatus
from vpsprov.core.persistence.audit import AuditEntry, AuditWriter, default_audit_path
from vpsprov.core.persistence.report_file import (
    default_report_path,
    load_report,
    save_report,
)

logger = logging.getLogger(__name__)

# ── Exit codes ──────────────────────────────────────────────────

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_VALIDATION = 2
EXIT_PLANNING = 3
EXIT_ROLLED_BACK = 4
EXIT_ROLLBACK_INCOMPLETE = 5
EXIT_PARTIAL = 6

_STATUS_EXIT_CODES = {
    RunStatus.PROVISIONED: EXIT_OK,
    RunStatus.DRY_RUN: EXIT_OK,
    RunStatus.PARTIAL: EXIT_PARTIAL,
    RunStatus.ROLLED_BACK: EXIT_ROLLED_BACK,
    RunStatus.ROLLBACK_INCOMPLETE: EXIT_ROLLBACK_INCOMPLETE,
    # A report that never finished cannot vouch for a clean host
    RunStatus.IN_PROGRESS: EXIT_ROLLBACK_INCOMPLETE,
}


def exit_code_for(report: ExecutionReport) -> int:
    return _STATUS_EXIT_CODES[report.status]


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    report: ExecutionReport | None = None
    plan: ExecutionPlan | None = None
    report_path: Path | None = None
    error: str | None = None
    exit_code: int = EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            return result
        if self.plan is not None:
            result["plan"] = list(self.plan.steps)
            result["auto_included"] = list(self.plan.auto_included)
        if self.report_path is not None:
            result["report_path"] = str(self.report_path)
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


# ── Preflight ───────────────────────────────────────────────────


def preflight(runner: CommandRunner) -> None:
    """Verify the host can be provisioned: root privileges on Ubuntu.

    Raises:
        ValidationError: If either requirement is not met.
    """
    whoami = runner.run(Command.of("id", "-u", read_only=True), timeout=30)
    if not whoami.ok or whoami.stdout.strip() != "0":
        raise ValidationError("host", "must be run as root or with sudo privileges")

    os_check = runner.run(
        Command.of("grep", "-q", "Ubuntu", "/etc/os-release", read_only=True), timeout=30
    )
    if not os_check.ok:
        raise ValidationError("host", "designed for Ubuntu systems only")

    logger.info("Preflight passed: root on Ubuntu")


# ── Provision ───────────────────────────────────────────────────


def provision(
    config: Configuration,
    *,
    runner: CommandRunner | None = None,
    registry: StepRegistry | None = None,
    dry_run: bool = False,
    confirm: ConfirmCallback | None = None,
    continue_on_failure: bool = False,
    cancel_event: threading.Event | None = None,
    resume_from: Path | None = None,
    report_path: Path | None = None,
    skip_preflight: bool = False,
    audit: bool = True,
) -> ProvisionResult:
    """Provision the host for ``config``.

    Args:
        config: Resolved configuration.
        runner: Command runner. Default: a shell runner, in dry-run mode
            if ``dry_run`` is set.
        registry: Step catalog. Default: the built-in catalog.
        dry_run: Log the plan's commands without running anything.
        confirm: Asked before steps that need operator approval.
        continue_on_failure: Continue past failed non-fatal steps.
        cancel_event: Set to stop the run before its next step.
        resume_from: Prior report; its completed steps are skipped.
        report_path: Where to save the report. Default: state directory.
        skip_preflight: Do not check for root and Ubuntu.
        audit: Append the outcome to the audit ledger.

    Returns:
        ProvisionResult with the report and the exit code for it.
    """
    result = ProvisionResult()

    if registry is None:
        from vpsprov.core.catalog import build_default_registry

        registry = build_default_registry()

    if runner is None:
        from vpsprov.adapters.shell.command import ShellCommandRunner

        runner = ShellCommandRunner(dry_run=dry_run, default_timeout=config.step_timeout)

    # ── Plan ─────────────────────────────────────────────────────
    try:
        result.plan = plan(config, registry)
    except (ConfigurationError, PlanningError) as e:
        logger.error("Planning failed: %s", e)
        result.error = str(e)
        result.exit_code = EXIT_PLANNING
        return result

    # ── Resume ───────────────────────────────────────────────────
    completed: Iterable[str] = ()
    resumed_from = None
    if resume_from is not None:
        try:
            previous = load_report(resume_from)
        except ReportFileError as e:
            result.error = str(e)
            result.exit_code = EXIT_VALIDATION
            return result
        completed = previous.completed_ids() & set(result.plan.steps)
        resumed_from = previous.run_id
        if previous.configuration and previous.configuration != config.summary():
            logger.warning(
                "Configuration differs from the resumed run %s; "
                "its completed steps are still skipped",
                previous.run_id,
            )
        logger.info("Resuming %s: %d steps already completed", previous.run_id, len(completed))

    # ── Preflight ────────────────────────────────────────────────
    if not runner.dry_run and not skip_preflight:
        try:
            preflight(runner)
        except ValidationError as e:
            result.error = str(e)
            result.exit_code = EXIT_VALIDATION
            return result

    # ── Execute ──────────────────────────────────────────────────
    persist = None if runner.dry_run else _persister(result, report_path)
    executor = Executor(
        registry,
        runner,
        confirm=confirm,
        continue_on_failure=continue_on_failure,
        cancel_event=cancel_event,
        completed=completed,
        on_result=persist,
        resumed_from=resumed_from,
    )
    report = executor.execute(result.plan, config)
    result.report = report
    result.exit_code = exit_code_for(report)

    if audit and not report.dry_run:
        ledger = AuditWriter(default_audit_path())
        ledger.write(AuditEntry.from_report(report, result.report_path))

    logger.info("Run %s finished: %s", report.run_id, report.status.value)
    return result


def _persister(result: ProvisionResult, report_path: Path | None):
    """Build the executor hook that saves the report after every step."""

    def save(report: ExecutionReport) -> None:
        path = report_path or default_report_path(report.run_id)
        try:
            save_report(report, path)
        except OSError as e:
            # The run goes on; the report on screen is still complete
            logger.error("Could not save report to %s: %s", path, e)
            return
        result.report_path = path

    return save
