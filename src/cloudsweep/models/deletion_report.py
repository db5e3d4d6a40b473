"""Deletion report model.

One cleanup run: its configuration, every outcome and the derived summary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .deletion_outcome import DeletionOutcome, OutcomeStatus
from .resource import ResourceDescriptor, ResourceFilter


class OperationMode(Enum):
    """Operation execution mode."""

    DRY_RUN = "dry-run"
    EXECUTE = "execute"


class OperationStatus(Enum):
    """Operation status.

    State transitions:
        planned (dry-run only)
        completed (no failures), partial (some failed),
        failed (nothing deleted, something failed), cancelled
    """

    PLANNED = "planned"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RunConfig:
    """Immutable configuration of one engine run.

    Attributes:
        provider: Provider name ("gcp", "azure")
        scope_id: Project id or subscription id
        resource_filter: Prefix/label/region criteria
        dry_run: Preview only, never call delete
        concurrency: Maximum concurrent deletions inside a batch
        max_attempts: Delete attempts per resource on transient errors
        backoff_base: Base delay in seconds for exponential backoff
        call_timeout: Timeout in seconds for every provider call
    """

    provider: str
    scope_id: str
    resource_filter: ResourceFilter
    dry_run: bool = False
    concurrency: int = 5
    max_attempts: int = 3
    backoff_base: float = 1.0
    call_timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base < 0:
            raise ValueError("backoff_base cannot be negative")
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive")

    @property
    def mode(self) -> OperationMode:
        return OperationMode.DRY_RUN if self.dry_run else OperationMode.EXECUTE


@dataclass
class DeletionReport:
    """Deletion report entity.

    Attributes:
        operation_id: Unique identifier for the run
        provider: Provider name
        scope_id: Project id or subscription id
        mode: dry-run or execute
        status: Final status
        outcomes: One outcome per discovered resource, in plan order
        resource_filter: Criteria used for discovery
        warnings: Discovery degradations
        batch_count: Number of batches in the executed plan
        started_at: When the run started (UTC)
        completed_at: When the run finished (UTC)
    """

    operation_id: str
    provider: str
    scope_id: str
    mode: OperationMode
    status: OperationStatus
    outcomes: List[DeletionOutcome] = field(default_factory=list)
    resource_filter: Optional[ResourceFilter] = None
    warnings: List[str] = field(default_factory=list)
    batch_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_resources(self) -> int:
        return len(self.outcomes)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def exit_code(self) -> int:
        """Non-zero when anything failed. Dry runs always exit zero."""
        if self.mode == OperationMode.DRY_RUN:
            return 0
        return 1 if self.count(OutcomeStatus.FAILED) else 0

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def summary(self) -> Dict[str, int]:
        """Outcome counts by status, including zero counts."""
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        counts["total"] = len(self.outcomes)
        return counts

    @staticmethod
    def resolve_status(mode: OperationMode, outcomes: Iterable[DeletionOutcome], cancelled: bool) -> OperationStatus:
        """Derive the final operation status from the outcomes."""
        if mode == OperationMode.DRY_RUN:
            return OperationStatus.PLANNED
        if cancelled:
            return OperationStatus.CANCELLED

        outcomes = list(outcomes)
        failed = sum(1 for o in outcomes if o.status == OutcomeStatus.FAILED)
        deleted = sum(1 for o in outcomes if o.status == OutcomeStatus.DELETED)
        if failed > 0:
            return OperationStatus.PARTIAL if deleted > 0 else OperationStatus.FAILED
        return OperationStatus.COMPLETED

    def validate(self, discovered: Optional[Iterable[ResourceDescriptor]] = None) -> bool:
        """Validate report invariants.

        Validation rules:
            - every outcome is individually valid
            - no resource has two outcomes
            - when ``discovered`` is given, it matches the outcomes exactly
            - completed_at is not before started_at
            - dry-run reports carry no deleted or failed outcomes

        Raises:
            ValueError: If any validation rule fails
        """
        seen = set()
        for outcome in self.outcomes:
            outcome.validate()
            if outcome.descriptor.key in seen:
                raise ValueError(f"Duplicate outcome for {outcome.descriptor.key}")
            seen.add(outcome.descriptor.key)

        if discovered is not None:
            expected = {d.key for d in discovered}
            if expected != seen:
                missing = expected - seen
                extra = seen - expected
                raise ValueError(f"Report is not exhaustive: missing={sorted(missing)} extra={sorted(extra)}")

        if self.completed_at and self.started_at and self.completed_at < self.started_at:
            raise ValueError("Completion time before start time")

        if self.mode == OperationMode.DRY_RUN:
            if self.count(OutcomeStatus.DELETED) or self.count(OutcomeStatus.FAILED):
                raise ValueError("Dry-run report cannot contain deleted or failed outcomes")

        return True
