"""
Report file persistence — atomic read/write for ExecutionReport.

The report is rewritten after every step so that a crash, a lost SSH
session or a power cut leaves a file a later ``--resume`` can pick up.
Writes go to a temp file in the same directory which is then renamed
over the target, so the file on disk is always a complete report.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from vpsprov.core.errors import ReportFileError
from vpsprov.core.models.report import ExecutionReport

logger = logging.getLogger(__name__)

ENV_STATE_DIR = "VPSPROV_STATE_DIR"
DEFAULT_STATE_DIR = Path("~/.local/share/vpsprov")
REPORTS_SUBDIR = "reports"


def state_dir() -> Path:
    """Directory for reports and the audit ledger."""
    configured = os.environ.get(ENV_STATE_DIR)
    return Path(configured).expanduser() if configured else DEFAULT_STATE_DIR.expanduser()


def default_report_path(run_id: str) -> Path:
    return state_dir() / REPORTS_SUBDIR / f"{run_id}.json"


def load_report(path: Path) -> ExecutionReport:
    """Load a saved report.

    Unlike most state, a report is only ever loaded because the
    operator asked for it, so a bad file is an error rather than a
    fresh start.

    Raises:
        ReportFileError: Missing, unreadable, not JSON, or not a report.
    """
    if not path.is_file():
        raise ReportFileError(f"Report file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ReportFileError(f"Cannot read report {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ReportFileError(f"Corrupt report file {path}: {e}") from e

    try:
        report = ExecutionReport.model_validate(data)
    except PydanticValidationError as e:
        raise ReportFileError(f"Not a provisioning report: {path}: {e}") from e

    logger.debug("Loaded report %s from %s (%s)", report.run_id, path, report.status.value)
    return report


def save_report(report: ExecutionReport, path: Path) -> None:
    """Save a report (atomic write).

    Args:
        report: The report to save.
        path: Target path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".report_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
        logger.debug("Report saved to %s", path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
