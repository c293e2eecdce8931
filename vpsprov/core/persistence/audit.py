"""
Audit ledger — one line per provisioning run.

Reports hold the step-by-step detail of a single run; the ledger is the
host's history across runs, in NDJSON (newline-delimited JSON). It is
append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from vpsprov.core.models.report import ExecutionReport
from vpsprov.core.persistence.report_file import state_dir

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


def default_audit_path() -> Path:
    return state_dir() / DEFAULT_AUDIT_FILE


class AuditEntry(BaseModel):
    """A single ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    status: str = ""               # provisioned, partial, rolled_back, ...
    domain: str = ""
    resumed_from: str | None = None

    steps_planned: int = 0
    steps_applied: int = 0
    steps_skipped: int = 0
    steps_failed: int = 0
    steps_rolled_back: int = 0
    failed_step: str | None = None
    rollback_failures: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    report_path: str | None = None

    @classmethod
    def from_report(cls, report: ExecutionReport, report_path: Path | None = None) -> AuditEntry:
        return cls(
            run_id=report.run_id,
            status=report.status.value,
            domain=str(report.configuration.get("domain", "")),
            resumed_from=report.resumed_from,
            steps_planned=len(report.plan),
            steps_applied=report.applied,
            steps_skipped=report.skipped,
            steps_failed=report.failed,
            steps_rolled_back=report.rolled_back,
            failed_step=report.failed_step,
            rollback_failures=[r.step_id for r in report.rollback_failures],
            duration_ms=report.duration_ms,
            report_path=str(report_path) if report_path else None,
        )


class AuditWriter:
    """Append-only ledger writer."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry. A ledger that cannot be written is logged, not fatal."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s (%s)", entry.run_id, entry.status)
        except OSError as e:
            logger.error("Failed to write audit entry to %s: %s", self._path, e)

    def read_all(self) -> list[AuditEntry]:
        """Every run in the ledger, oldest first.

        A line that is not a valid entry is skipped with a warning, so
        one torn write does not hide the rest of the history.
        """
        if not self._path.is_file():
            return []

        entries = []
        lines = self._path.read_text(encoding="utf-8").splitlines()
        for number, raw in enumerate(lines, start=1):
            if not raw.strip():
                continue
            try:
                entries.append(AuditEntry.model_validate_json(raw))
            except ValueError as e:
                logger.warning("Ignoring unreadable ledger line %d in %s: %s", number, self._path, e)
        return entries

    def read_recent(self, limit: int = 20) -> list[AuditEntry]:
        """The last ``limit`` runs, oldest first. Backs ``vpsprov history``."""
        return self.read_all()[-limit:]
