"""Tests for ExecutionEngine.

Test coverage for retry classification, protection, dry-run parity,
bounded concurrency and cancellation.
"""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from cloudsweep.cleanup.executor import ALREADY_DELETED_REASON, CANCELLED_REASON, ExecutionEngine
from cloudsweep.cleanup.planner import DeletionPlanner
from cloudsweep.cleanup.safety import ProtectionPolicy
from cloudsweep.errors import (
    NotFoundError,
    PermissionDeniedError,
    ProtectedError,
    ProviderError,
    TransientError,
)
from cloudsweep.models.deletion_outcome import OutcomeStatus
from cloudsweep.models.resource import DependencyEdge, ResourceKind
from tests.fixtures.providers import InMemoryAdapter, make_buckets, make_resource


@pytest.fixture
def topic():
    return make_resource(ResourceKind.PUBSUB_TOPIC, "dspm-events")


@pytest.fixture
def mock_sleep():
    with patch("cloudsweep.cleanup.executor.time.sleep") as sleep:
        yield sleep


def run_one(resource, dry_run=False, **adapter_kwargs):
    adapter = InMemoryAdapter([resource], **adapter_kwargs)
    engine = ExecutionEngine(adapter, max_attempts=3, backoff_base=1.0)
    [outcome] = engine.run(DeletionPlanner().plan([resource]), dry_run=dry_run)
    return outcome, adapter


class TestExecutionEngineInit:
    """Test suite for engine configuration."""

    @pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"max_attempts": 0}])
    def test_rejects_invalid_limits(self, kwargs) -> None:
        """Test concurrency and attempts must be positive."""
        with pytest.raises(ValueError):
            ExecutionEngine(InMemoryAdapter(), **kwargs)

    def test_default_policy_is_builtin(self) -> None:
        """Test the provider's built-in rules apply by default."""
        engine = ExecutionEngine(InMemoryAdapter(provider="azure"))
        assert {rule.provider for rule in engine.policy.rules} == {"azure"}


class TestErrorHandling:
    """Test suite for per-resource error classification."""

    def test_successful_delete(self, topic) -> None:
        """Test a plain deletion."""
        outcome, adapter = run_one(topic)

        assert outcome.status == OutcomeStatus.DELETED
        assert outcome.attempts == 1
        assert outcome.batch_index == 0
        assert adapter.deleted == [topic]

    def test_transient_error_is_retried(self, topic, mock_sleep) -> None:
        """Test transient failures are retried with backoff until success."""
        errors = {topic.key: [TransientError("rate limited"), TransientError("rate limited")]}

        outcome, adapter = run_one(topic, delete_errors=errors)

        assert outcome.status == OutcomeStatus.DELETED
        assert outcome.attempts == 3
        assert mock_sleep.call_count == 2
        first_wait, second_wait = (c.args[0] for c in mock_sleep.call_args_list)
        assert 1.0 <= first_wait <= 2.0
        assert 2.0 <= second_wait <= 3.0

    def test_transient_error_exhausts_attempts(self, topic, mock_sleep) -> None:
        """Test persistent transient failure ends FAILED after max attempts."""
        errors = {topic.key: [TransientError("in use by dspm-sub")] * 3}

        outcome, adapter = run_one(topic, delete_errors=errors)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.attempts == 3
        assert outcome.error == "in use by dspm-sub (after 3 attempts)"
        assert adapter.delete_calls[topic.key] == 3

    def test_not_found_counts_as_deleted(self, topic) -> None:
        """Test an already-deleted resource succeeds with a note."""
        outcome, _ = run_one(topic, delete_errors={topic.key: [NotFoundError("gone")]})

        assert outcome.status == OutcomeStatus.DELETED
        assert outcome.reason == ALREADY_DELETED_REASON

    def test_permission_denied_is_not_retried(self, topic, mock_sleep) -> None:
        """Test permission errors fail immediately."""
        outcome, adapter = run_one(topic, delete_errors={topic.key: [PermissionDeniedError("pubsub.topics.delete")]})

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "Permission denied: pubsub.topics.delete"
        assert adapter.delete_calls[topic.key] == 1
        mock_sleep.assert_not_called()

    def test_provider_veto_is_protected(self) -> None:
        """Test a provider-side lock yields PROTECTED."""
        group = make_resource(ResourceKind.RESOURCE_GROUP, "cam-rg", provider="azure")

        outcome, _ = run_one(group, provider="azure", delete_errors={group.key: [ProtectedError("ScopeLocked")]})

        assert outcome.status == OutcomeStatus.PROTECTED
        assert outcome.reason == "ScopeLocked"

    @pytest.mark.parametrize(
        "error,message",
        [
            (ProviderError("Unsupported resource kind"), "Unsupported resource kind"),
            (RuntimeError("boom"), "boom"),
            (RuntimeError(), "RuntimeError"),
        ],
    )
    def test_unexpected_errors_never_escape(self, topic, error, message) -> None:
        """Test any other exception becomes a FAILED outcome."""
        outcome, adapter = run_one(topic, delete_errors={topic.key: [error]})

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == message
        assert adapter.delete_calls[topic.key] == 1


class TestProtection:
    """Test suite for protection checks during execution."""

    def test_protected_resource_is_never_deleted(self) -> None:
        """Test built-in rule protects Cloud Functions artifacts."""
        repository = make_resource(ResourceKind.ARTIFACT_REPOSITORY, "dspm-gcf-artifacts")

        outcome, adapter = run_one(repository)

        assert outcome.status == OutcomeStatus.PROTECTED
        assert "gcp-gcf-artifacts" in outcome.reason
        assert adapter.delete_calls == {}

    def test_user_rule(self, topic) -> None:
        """Test user rules passed with the policy are honoured."""
        adapter = InMemoryAdapter([topic])
        policy = ProtectionPolicy.for_provider("gcp", [ProtectionPolicy.name_rule("^dspm-events$")])

        [outcome] = ExecutionEngine(adapter, policy=policy).run(DeletionPlanner().plan([topic]))

        assert outcome.status == OutcomeStatus.PROTECTED
        assert outcome.reason == "Name matches ^dspm-events$ (rule: protect-^dspm-events$)"


class TestDryRun:
    """Test suite for dry-run behaviour."""

    def test_dry_run_never_deletes(self, topic) -> None:
        """Test dry run reports WOULD_DELETE without calling delete."""
        outcome, adapter = run_one(topic, dry_run=True)

        assert outcome.status == OutcomeStatus.WOULD_DELETE
        assert outcome.attempts == 0
        assert adapter.delete_calls == {}

    def test_dry_run_matches_real_run(self) -> None:
        """Test preview and execution cover the same resources in the same order."""
        network = make_resource(ResourceKind.COMPUTE_NETWORK, "dspm-net")
        subnet = make_resource(ResourceKind.SUBNET, "dspm-subnet")
        repository = make_resource(ResourceKind.ARTIFACT_REPOSITORY, "gcf-artifacts")
        resources = [network, subnet, repository, *make_buckets(3)]
        plan = DeletionPlanner().plan(resources, [DependencyEdge(subnet.key, network.key)])

        preview = ExecutionEngine(InMemoryAdapter(resources)).run(plan, dry_run=True)
        real = ExecutionEngine(InMemoryAdapter(resources)).run(plan)

        assert [o.descriptor for o in preview] == [o.descriptor for o in real]
        assert [o.batch_index for o in preview] == [o.batch_index for o in real]
        for dry, wet in zip(preview, real):
            if wet.status == OutcomeStatus.PROTECTED:
                assert dry.status == OutcomeStatus.PROTECTED
            else:
                assert (dry.status, wet.status) == (OutcomeStatus.WOULD_DELETE, OutcomeStatus.DELETED)


class TestOrderingAndConcurrency:
    """Test suite for batch ordering and bounded concurrency."""

    def test_batches_run_in_order(self) -> None:
        """Test dependents are deleted before what they depend on."""
        network = make_resource(ResourceKind.COMPUTE_NETWORK, "dspm-net")
        subnet = make_resource(ResourceKind.SUBNET, "dspm-subnet")
        firewall = make_resource(ResourceKind.FIREWALL_RULE, "dspm-allow")
        adapter = InMemoryAdapter([network, subnet, firewall])
        plan = DeletionPlanner().plan([network, subnet, firewall])

        ExecutionEngine(adapter).run(plan)

        assert adapter.deleted == [firewall, subnet, network]

    def test_concurrency_bound(self) -> None:
        """Test 100 buckets at concurrency 10 never exceed 10 deletions in flight."""
        buckets = make_buckets(100)
        adapter = InMemoryAdapter(buckets, delete_delay=0.01)

        outcomes = ExecutionEngine(adapter, concurrency=10).run(DeletionPlanner().plan(buckets))

        assert 1 < adapter.max_in_flight <= 10
        assert len(outcomes) == 100
        assert len({o.descriptor.key for o in outcomes}) == 100
        assert all(o.status == OutcomeStatus.DELETED for o in outcomes)
        assert [o.descriptor for o in outcomes] == buckets

    def test_sequential_when_concurrency_is_one(self) -> None:
        """Test concurrency 1 deletes one at a time."""
        buckets = make_buckets(5)
        adapter = InMemoryAdapter(buckets)

        ExecutionEngine(adapter, concurrency=1).run(DeletionPlanner().plan(buckets))

        assert adapter.max_in_flight == 1
        assert adapter.deleted == buckets

    def test_outcome_callback(self) -> None:
        """Test every outcome is reported through the callback."""
        buckets = make_buckets(4)
        seen = []

        ExecutionEngine(InMemoryAdapter(buckets), concurrency=2, on_outcome=seen.append).run(
            DeletionPlanner().plan(buckets)
        )

        assert sorted(o.descriptor.id for o in seen) == sorted(b.id for b in buckets)


class TestCancellation:
    """Test suite for cooperative cancellation."""

    def test_cancel_before_run_skips_everything(self) -> None:
        """Test a pre-set event skips every resource."""
        buckets = make_buckets(3)
        adapter = InMemoryAdapter(buckets)
        engine = ExecutionEngine(adapter)
        engine.cancel()

        outcomes = engine.run(DeletionPlanner().plan(buckets))

        assert engine.cancelled
        assert [o.status for o in outcomes] == [OutcomeStatus.SKIPPED] * 3
        assert all(o.reason == CANCELLED_REASON for o in outcomes)
        assert adapter.delete_calls == {}

    def test_cancel_mid_run(self) -> None:
        """Test cancelling after the first deletion skips the rest."""
        network = make_resource(ResourceKind.COMPUTE_NETWORK, "dspm-net")
        subnet = make_resource(ResourceKind.SUBNET, "dspm-subnet")
        adapter = InMemoryAdapter([network, subnet])
        cancel_event = threading.Event()

        engine = ExecutionEngine(adapter, cancel_event=cancel_event, on_outcome=lambda outcome: cancel_event.set())
        outcomes = engine.run(DeletionPlanner().plan([network, subnet]))

        assert [(o.descriptor, o.status) for o in outcomes] == [
            (subnet, OutcomeStatus.DELETED),
            (network, OutcomeStatus.SKIPPED),
        ]
        assert outcomes[1].reason == CANCELLED_REASON
        assert outcomes[1].batch_index == 1
        assert adapter.deleted == [subnet]
