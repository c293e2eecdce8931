"""Persistence — report files and the audit ledger."""

from vpsprov.core.persistence.audit import AuditEntry, AuditWriter, default_audit_path
from vpsprov.core.persistence.report_file import (
    default_report_path,
    load_report,
    save_report,
    state_dir,
)

__all__ = [
    "AuditEntry",
    "AuditWriter",
    "default_audit_path",
    "default_report_path",
    "load_report",
    "save_report",
    "state_dir",
]
