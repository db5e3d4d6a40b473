"""Deletion report rendering with multiple output formats."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models.deletion_outcome import DeletionOutcome, OutcomeStatus
from ..models.deletion_plan import DeletionPlan
from ..models.deletion_report import DeletionReport, OperationMode

STATUS_STYLES = {
    OutcomeStatus.DELETED: "green",
    OutcomeStatus.WOULD_DELETE: "cyan",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.PROTECTED: "magenta",
}

CSV_FIELDS = [
    "batch_index",
    "provider",
    "kind",
    "id",
    "display_name",
    "region",
    "status",
    "reason",
    "error",
    "attempts",
    "duration_seconds",
]


class OutcomeReporter:
    """Report deletion outcomes in various formats (terminal, JSON, CSV)."""

    def __init__(self, no_color: bool = False, width: Optional[int] = None) -> None:
        self.no_color = no_color
        self.width = width

    def format_terminal(self, report: DeletionReport) -> str:
        """Format a report for terminal output using Rich.

        Args:
            report: Deletion report

        Returns:
            Rendered table followed by a one-line summary
        """
        if not report.outcomes:
            return "No matching resources found."
        return self._render(self.outcome_table(report)) + self.summary_line(report) + "\n"

    def format_plan(self, plan: DeletionPlan) -> str:
        """Format a deletion plan (discovery preview) using Rich."""
        if not len(plan):
            return "No matching resources found."
        return self._render(self.plan_table(plan))

    def outcome_table(self, report: DeletionReport) -> Table:
        """One row per outcome, in plan order."""
        title = f"{'Dry run' if report.mode == OperationMode.DRY_RUN else 'Cleanup'} of {report.provider}:{report.scope_id}"
        table = Table(title=title)
        table.add_column("Batch", justify="right")
        table.add_column("Kind")
        table.add_column("Name")
        table.add_column("Region")
        table.add_column("Status", style="bold")
        table.add_column("Detail")

        for outcome in report.outcomes:
            style = STATUS_STYLES[outcome.status]
            table.add_row(
                str(outcome.batch_index + 1) if outcome.batch_index is not None else "-",
                outcome.descriptor.kind.value,
                escape(outcome.descriptor.display_name),
                outcome.descriptor.region or "global",
                f"[{style}]{outcome.status.value}[/{style}]",
                escape(self._detail(outcome)),
            )
        return table

    def plan_table(self, plan: DeletionPlan) -> Table:
        """One row per planned resource, grouped by batch."""
        table = Table(title="Deletion plan")
        table.add_column("Batch", justify="right")
        table.add_column("Rank", justify="right")
        table.add_column("Kind")
        table.add_column("Name")
        table.add_column("Region")

        for batch in plan:
            for resource in batch:
                table.add_row(
                    str(batch.index + 1),
                    str(batch.rank),
                    resource.kind.value,
                    escape(resource.display_name),
                    resource.region or "global",
                )
        return table

    def summary_line(self, report: DeletionReport) -> str:
        summary = self.generate_summary(report)
        counts = ", ".join(f"{name}: {count}" for name, count in summary["by_status"].items() if count)
        return f"Status: {report.status.value} | {counts or 'nothing matched'} | total: {summary['total_resources']}"

    def export_json(self, report: DeletionReport, filepath: str) -> None:
        """Export a report to JSON format.

        Args:
            report: Deletion report
            filepath: Output file path
        """
        output = {
            "operation": {
                "operation_id": report.operation_id,
                "provider": report.provider,
                "scope_id": report.scope_id,
                "mode": report.mode.value,
                "status": report.status.value,
                "filters": report.resource_filter.to_dict() if report.resource_filter else None,
                "started_at": report.started_at.isoformat() if report.started_at else None,
                "completed_at": report.completed_at.isoformat() if report.completed_at else None,
                "warnings": list(report.warnings),
            },
            "outcomes": [outcome.to_dict() for outcome in report.outcomes],
            "summary": self.generate_summary(report),
        }

        output_path = Path(filepath)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            json.dump(output, f, indent=2)

    def export_csv(self, report: DeletionReport, filepath: str) -> None:
        """Export outcomes to CSV format, one row per resource in plan order.

        Args:
            report: Deletion report
            filepath: Output file path
        """
        output_path = Path(filepath)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction="ignore")
            writer.writeheader()

            for outcome in report.outcomes:
                row = outcome.to_dict()
                row["reason"] = row["reason"] or ""
                row["error"] = row["error"] or ""
                row["region"] = row["region"] or ""
                writer.writerow(row)

    def generate_summary(self, report: DeletionReport) -> dict:
        """Generate summary statistics for a report.

        Returns:
            Dictionary with counts by status and the exit code
        """
        counts = report.summary()
        total = counts.pop("total")
        return {
            "total_resources": total,
            "by_status": counts,
            "status": report.status.value,
            "exit_code": report.exit_code,
        }

    def _detail(self, outcome: DeletionOutcome) -> str:
        detail = outcome.error or outcome.reason or ""
        if len(detail) > 60:
            detail = detail[:57] + "..."
        if outcome.attempts > 1:
            detail = f"{detail} ({outcome.attempts} attempts)".strip()
        return detail

    def _render(self, table: Table) -> str:
        console = Console(no_color=self.no_color, width=self.width)
        with console.capture() as capture:
            console.print(table)
        return capture.get()
