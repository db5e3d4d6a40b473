"""Tests for DeletionReport and RunConfig models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cloudsweep.models.deletion_outcome import DeletionOutcome, OutcomeStatus
from cloudsweep.models.deletion_report import DeletionReport, OperationMode, OperationStatus, RunConfig
from cloudsweep.models.resource import ResourceFilter, ResourceKind
from tests.fixtures.providers import make_resource


def outcome(name: str, status: OutcomeStatus, **kwargs) -> DeletionOutcome:
    if status == OutcomeStatus.FAILED:
        kwargs.setdefault("error", "boom")
    if status in (OutcomeStatus.SKIPPED, OutcomeStatus.PROTECTED):
        kwargs.setdefault("reason", "protected")
    return DeletionOutcome(descriptor=make_resource(ResourceKind.SECRET, name), status=status, **kwargs)


def report(mode: OperationMode, outcomes, **kwargs) -> DeletionReport:
    return DeletionReport(
        operation_id="op_test",
        provider="gcp",
        scope_id="test-project",
        mode=mode,
        status=DeletionReport.resolve_status(mode, outcomes, cancelled=False),
        outcomes=list(outcomes),
        **kwargs,
    )


class TestRunConfig:
    """Test suite for RunConfig validation."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = RunConfig(provider="gcp", scope_id="p", resource_filter=ResourceFilter(name_prefixes=("dspm-",)))

        assert config.concurrency == 5
        assert config.max_attempts == 3
        assert config.mode == OperationMode.EXECUTE

    def test_dry_run_mode(self) -> None:
        """Test dry_run selects the dry-run mode."""
        config = RunConfig("gcp", "p", ResourceFilter(name_prefixes=("dspm-",)), dry_run=True)
        assert config.mode == OperationMode.DRY_RUN

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"concurrency": 0}, "Concurrency"),
            ({"max_attempts": 0}, "max_attempts"),
            ({"backoff_base": -1.0}, "backoff_base"),
            ({"call_timeout": 0}, "call_timeout"),
        ],
    )
    def test_invalid_values(self, overrides, message) -> None:
        """Test invalid values are rejected at construction."""
        with pytest.raises(ValueError, match=message):
            RunConfig("gcp", "p", ResourceFilter(name_prefixes=("dspm-",)), **overrides)


class TestDeletionReport:
    """Test suite for DeletionReport."""

    def test_resolve_status_completed(self) -> None:
        """Test all-success run is completed."""
        result = report(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.DELETED), outcome("b", OutcomeStatus.PROTECTED)])

        assert result.status == OperationStatus.COMPLETED
        assert result.exit_code == 0

    def test_resolve_status_partial(self) -> None:
        """Test mixed success and failure is partial, exit code 1."""
        result = report(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.DELETED), outcome("b", OutcomeStatus.FAILED)])

        assert result.status == OperationStatus.PARTIAL
        assert result.exit_code == 1

    def test_resolve_status_failed(self) -> None:
        """Test failures without any deletion is failed."""
        result = report(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.FAILED)])

        assert result.status == OperationStatus.FAILED
        assert result.exit_code == 1

    def test_resolve_status_cancelled(self) -> None:
        """Test cancellation wins over other statuses."""
        status = DeletionReport.resolve_status(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.FAILED)], cancelled=True)
        assert status == OperationStatus.CANCELLED

    def test_dry_run_always_exits_zero(self) -> None:
        """Test dry-run reports are planned and exit zero."""
        result = report(OperationMode.DRY_RUN, [outcome("a", OutcomeStatus.WOULD_DELETE)])

        assert result.status == OperationStatus.PLANNED
        assert result.exit_code == 0

    def test_summary_includes_zero_counts(self) -> None:
        """Test summary has every status plus total."""
        result = report(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.DELETED), outcome("b", OutcomeStatus.DELETED)])

        summary = result.summary()

        assert summary["deleted"] == 2
        assert summary["failed"] == 0
        assert summary["would_delete"] == 0
        assert summary["total"] == 2

    def test_validate_exhaustive(self) -> None:
        """Test validation against the discovered set."""
        outcomes = [outcome("a", OutcomeStatus.DELETED), outcome("b", OutcomeStatus.DELETED)]
        result = report(OperationMode.EXECUTE, outcomes)

        assert result.validate(discovered=[o.descriptor for o in outcomes]) is True

        with pytest.raises(ValueError, match="not exhaustive"):
            result.validate(discovered=[outcomes[0].descriptor, make_resource(ResourceKind.SECRET, "c")])

    def test_validate_rejects_duplicates(self) -> None:
        """Test a resource cannot have two outcomes."""
        result = report(OperationMode.EXECUTE, [outcome("a", OutcomeStatus.DELETED), outcome("a", OutcomeStatus.DELETED)])

        with pytest.raises(ValueError, match="Duplicate"):
            result.validate()

    def test_validate_rejects_deleted_in_dry_run(self) -> None:
        """Test dry-run report cannot contain real deletions."""
        result = report(OperationMode.DRY_RUN, [outcome("a", OutcomeStatus.DELETED)])

        with pytest.raises(ValueError, match="Dry-run"):
            result.validate()

    def test_duration(self) -> None:
        """Test duration is derived from timestamps."""
        started = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        result = report(OperationMode.EXECUTE, [], started_at=started, completed_at=started + timedelta(seconds=90))

        assert result.duration_seconds == 90.0
        assert result.total_resources == 0
