"""Audit storage for cleanup runs.

Stores and retrieves audit logs in YAML format for compliance and troubleshooting.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from ..models.deletion_report import DeletionReport

logger = logging.getLogger(__name__)

AUDIT_LOG_VERSION = "1.0"


def _utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored timestamps."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AuditStorage:
    """Audit log storage and retrieval.

    Stores one YAML file per run, organized by year/month of the run start.

    Storage structure:
        ~/.cloudsweep/audit-logs/
            2026/
                10/
                    operation-op_123.yaml

    Attributes:
        storage_dir: Base directory for audit logs
    """

    def __init__(self, storage_dir: Optional[str] = None) -> None:
        """Initialize audit storage.

        Args:
            storage_dir: Base directory for audit logs (default: ~/.cloudsweep/audit-logs)
        """
        if storage_dir is None:
            storage_dir = str(Path.home() / ".cloudsweep" / "audit-logs")

        self.storage_dir = Path(storage_dir).expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def log_operation(self, report: DeletionReport) -> Path:
        """Write the audit log of a run.

        Overwrites an existing log with the same operation ID.

        Args:
            report: Finished deletion report

        Returns:
            Path of the written file
        """
        timestamp = _utc(report.started_at or datetime.now(timezone.utc))
        year_month_dir = self.storage_dir / str(timestamp.year) / f"{timestamp.month:02d}"
        year_month_dir.mkdir(parents=True, exist_ok=True)

        audit_data: dict[str, Any] = {
            "metadata": {
                "version": AUDIT_LOG_VERSION,
                "log_type": "resource_cleanup",
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            "operation": {
                "operation_id": report.operation_id,
                "timestamp": timestamp.isoformat(),
                "provider": report.provider,
                "scope_id": report.scope_id,
                "mode": report.mode.value,
                "status": report.status.value,
                "filters": report.resource_filter.to_dict() if report.resource_filter else None,
                "batch_count": report.batch_count,
                "summary": report.summary(),
                "warnings": list(report.warnings),
                "started_at": report.started_at.isoformat() if report.started_at else None,
                "completed_at": report.completed_at.isoformat() if report.completed_at else None,
                "duration_seconds": report.duration_seconds,
            },
            "records": [outcome.to_dict() for outcome in report.outcomes],
        }

        audit_file = year_month_dir / f"operation-{report.operation_id}.yaml"
        with open(audit_file, "w") as f:
            yaml.safe_dump(audit_data, f, default_flow_style=False, sort_keys=False)

        logger.debug(f"Wrote audit log {audit_file}")
        return audit_file

    def get_operation(self, operation_id: str) -> Optional[dict]:
        """Retrieve operation audit log by ID.

        Args:
            operation_id: Operation ID to retrieve

        Returns:
            Audit log dictionary if found, None otherwise
        """
        for audit_file in self.storage_dir.glob(f"*/*/operation-{operation_id}.yaml"):
            with open(audit_file, "r") as f:
                return yaml.safe_load(f)

        return None

    def query_operations(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> list[dict]:
        """Query operations within date range, oldest first.

        Args:
            since: Start date (inclusive), None for all
            until: End date (inclusive), None for all

        Returns:
            List of operation audit logs matching criteria
        """
        results = []

        for year_dir in sorted(self.storage_dir.glob("*")):
            if not year_dir.is_dir():
                continue

            for month_dir in sorted(year_dir.glob("*")):
                if not month_dir.is_dir():
                    continue

                for audit_file in sorted(month_dir.glob("operation-*.yaml")):
                    with open(audit_file, "r") as f:
                        audit_data = yaml.safe_load(f)

                    timestamp = _utc(datetime.fromisoformat(audit_data["operation"]["timestamp"]))

                    if since and timestamp < _utc(since):
                        continue
                    if until and timestamp > _utc(until):
                        continue

                    results.append(audit_data)

        results.sort(key=lambda data: data["operation"]["timestamp"])
        return results
