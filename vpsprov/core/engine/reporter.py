"""
Report generator — render an ExecutionReport for humans and machines.
"""

from __future__ import annotations

import json

from vpsprov.core.models.report import ExecutionReport, RunStatus, SkipReason, StepOutcome, StepResult

_SKIP_LABELS = {
    SkipReason.PRESENT: "already present",
    SkipReason.RESUMED: "completed in previous run",
    SkipReason.DECLINED: "declined by operator",
}


def summary_line(report: ExecutionReport) -> str:
    """One-line verdict for the run."""
    status = report.status
    if status == RunStatus.PROVISIONED:
        return "Fully provisioned"
    if status == RunStatus.DRY_RUN:
        return f"Dry run, {len(report.plan)} steps planned, nothing executed"
    if status == RunStatus.PARTIAL:
        return f"Partially provisioned, see step {report.failed_step}"
    if status == RunStatus.ROLLED_BACK:
        reason = "cancelled" if report.cancelled else "aborted"
        return f"{reason.capitalize()}, rolled back to clean state"
    if status == RunStatus.ROLLBACK_INCOMPLETE:
        broken = ", ".join(r.step_id for r in report.rollback_failures)
        return f"Aborted, rollback incomplete — manual cleanup required for step {broken}"
    return f"In progress ({len(report.results)}/{len(report.plan)} steps recorded)"


def _format_duration(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


def _failure_lines(result: StepResult, timing: str) -> list[str]:
    lines = [f"  ✗ {result.step_id:<32} FAILED ({timing})"]
    for line in (result.error or "").splitlines()[:12]:
        lines.append(f"     │ {line}")
    return lines


def _rollback_failure_lines(result: StepResult) -> list[str]:
    lines = [f"     ⚠ rollback of {result.step_id} failed, host may need manual cleanup:"]
    for line in (result.rollback_error or "").splitlines()[:8]:
        lines.append(f"     │ {line}")
    return lines


def render_failures(report: ExecutionReport) -> str:
    """Only the failed step and any failed rollbacks, for quiet output.

    Returns an empty string when nothing went wrong.
    """
    lines: list[str] = []
    for result in report.results:
        if result.outcome == StepOutcome.FAILED:
            lines.extend(_failure_lines(result, _format_duration(result.duration_ms)))
        if result.rollback_error:
            lines.extend(_rollback_failure_lines(result))
    return "\n".join(lines)


def render_text(report: ExecutionReport, show_commands: bool = False) -> str:
    """Render the report as structured text.

    Args:
        report: Report to render.
        show_commands: Include every command each step ran. Always on
            for dry runs, where the commands are the point.
    """
    show_commands = show_commands or report.dry_run
    lines: list[str] = []

    title = f"Run {report.run_id}"
    if report.resumed_from:
        title += f" (resumed from {report.resumed_from})"
    lines.append(title)
    cfg = report.configuration
    if cfg:
        lines.append(
            f"  {cfg.get('domain', '?')} — node {cfg.get('node_version', '?')}, "
            f"database {cfg.get('database', '?')}, web server {cfg.get('web_server', '?')}"
        )
    lines.append("")

    for result in report.results:
        timing = _format_duration(result.duration_ms)
        if result.outcome == StepOutcome.APPLIED:
            verb = "would apply" if report.dry_run else "applied"
            lines.append(f"  ✓ {result.step_id:<32} {verb} ({timing})")
        elif result.outcome == StepOutcome.SKIPPED:
            reason = _SKIP_LABELS.get(result.skip_reason, "skipped") if result.skip_reason else "skipped"
            lines.append(f"  ⊘ {result.step_id:<32} skipped: {reason}")
        elif result.outcome == StepOutcome.ROLLED_BACK:
            lines.append(f"  ↺ {result.step_id:<32} rolled back")
        else:
            lines.extend(_failure_lines(result, timing))

        if result.rollback_error:
            lines.extend(_rollback_failure_lines(result))

        if show_commands:
            for command in result.commands:
                lines.append(f"     $ {command}")

    for step_id in report.pending:
        lines.append(f"  · {step_id:<32} not started")

    lines.append("")
    counts = (
        f"  applied {report.applied}, skipped {report.skipped}, "
        f"failed {report.failed}, rolled back {report.rolled_back}"
    )
    lines.append(counts)
    lines.append(f"  Result: {summary_line(report)}")
    return "\n".join(lines)


def next_steps(report: ExecutionReport) -> list[str]:
    """Operator guidance printed after a fully provisioned run."""
    if report.status != RunStatus.PROVISIONED:
        return []
    cfg = report.configuration
    app_dir = cfg.get("app_dir", "")
    domain = cfg.get("domain", "")
    return [
        f"1. Deploy your application to {app_dir}",
        "2. Create a .env file (use .env.example as a template)",
        "3. Start your application with PM2:",
        f"   cd {app_dir} && pm2 start app.js --name {domain}",
        "4. Save the PM2 process list:",
        "   pm2 save",
    ]


def render_json(report: ExecutionReport) -> str:
    """Machine-readable form of the report."""
    data = report.to_dict()
    data["summary"] = summary_line(report)
    return json.dumps(data, indent=2)
