"""Resource cleaner.

Main orchestrator for cleanup runs with preview and execution modes:
discovery, planning, protected execution and audit logging.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from ..models.deletion_outcome import DeletionOutcome
from ..models.deletion_plan import DeletionPlan, ResourceGraph
from ..models.deletion_report import DeletionReport, RunConfig
from ..models.resource import ResourceFilter
from ..providers.base import ProviderAdapter
from .audit import AuditStorage
from .discovery import ResourceGraphBuilder
from .executor import ExecutionEngine, OutcomeCallback
from .planner import DeletionPlanner
from .safety import ProtectionPolicy

logger = logging.getLogger(__name__)


class ResourceCleaner:
    """Resource cleaner orchestrator.

    Coordinates discovery, dependency planning, protection checks and audit
    logging. Preview and execution share every step except the delete call,
    so both produce the same plan for the same resources.

    Attributes:
        adapter: Provider adapter for the target scope
        policy: Protection policy
        audit_storage: Audit storage for real runs (None disables auditing)
        planner: Deletion planner
        cancel_event: Shared cancellation signal
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        policy: Optional[ProtectionPolicy] = None,
        audit_storage: Optional[AuditStorage] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Initialize resource cleaner.

        Args:
            adapter: Provider adapter instance
            policy: Protection policy (default: built-in rules for the provider)
            audit_storage: Audit storage for logging
            cancel_event: Set from outside (e.g., SIGINT) to stop the run
        """
        self.adapter = adapter
        self.policy = policy or ProtectionPolicy.for_provider(adapter.provider_name)
        self.audit_storage = audit_storage
        self.planner = DeletionPlanner()
        self.cancel_event = cancel_event or threading.Event()

    def discover(self, resource_filter: ResourceFilter) -> tuple[ResourceGraph, DeletionPlan]:
        """Discover matching resources and plan their deletion without touching anything.

        Raises:
            ProviderUnavailableError: If the provider cannot be reached
            ValueError: If the discovered dependencies form a cycle
        """
        graph = ResourceGraphBuilder(self.adapter).build(resource_filter)
        plan = self.planner.plan(graph)
        logger.info(f"Discovered {len(graph)} resource(s) in {len(plan)} batch(es)")
        return graph, plan

    def preview(self, config: RunConfig, on_outcome: Optional[OutcomeCallback] = None) -> DeletionReport:
        """Dry-run: report what would be deleted.

        Args:
            config: Run configuration (dry_run is forced on)
            on_outcome: Progress callback per outcome

        Returns:
            DeletionReport in planned status
        """
        if not config.dry_run:
            config = replace(config, dry_run=True)
        return self._run(config, on_outcome)

    def execute(
        self,
        config: RunConfig,
        confirmed: bool = False,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> DeletionReport:
        """Delete every matching resource in dependency order.

        Args:
            config: Run configuration
            confirmed: Must be True to proceed with deletion
            on_outcome: Progress callback per outcome

        Returns:
            DeletionReport with execution results

        Raises:
            ValueError: If not confirmed or the config asks for a dry run
        """
        if not confirmed:
            raise ValueError("Deletion requires explicit confirmation. Set confirmed=True or use --confirm flag.")
        if config.dry_run:
            raise ValueError("execute() called with a dry-run configuration; use preview()")

        report = self._run(config, on_outcome)

        if self.audit_storage is not None:
            self.audit_storage.log_operation(report)

        return report

    def _run(self, config: RunConfig, on_outcome: Optional[OutcomeCallback]) -> DeletionReport:
        started_at = datetime.now(timezone.utc)
        operation_id = f"op_{uuid.uuid4()}"

        graph, plan = self.discover(config.resource_filter)

        engine = ExecutionEngine(
            self.adapter,
            policy=self.policy,
            concurrency=config.concurrency,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            cancel_event=self.cancel_event,
            on_outcome=on_outcome,
        )
        outcomes: list[DeletionOutcome] = engine.run(plan, dry_run=config.dry_run)

        report = DeletionReport(
            operation_id=operation_id,
            provider=config.provider,
            scope_id=config.scope_id,
            mode=config.mode,
            status=DeletionReport.resolve_status(config.mode, outcomes, engine.cancelled),
            outcomes=outcomes,
            resource_filter=config.resource_filter,
            warnings=list(graph.warnings),
            batch_count=len(plan),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        report.validate(discovered=graph.resources)

        summary = report.summary()
        logger.info(
            f"Run {operation_id} {report.status.value}: "
            + ", ".join(f"{summary[s]} {s}" for s in summary if s != "total" and summary[s])
        )
        return report
