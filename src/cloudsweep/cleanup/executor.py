"""Execution engine.

Walks a deletion plan batch by batch, consulting the protection policy before
every delete and retrying transient failures with exponential backoff. Every
planned resource ends with exactly one outcome; no provider error escapes.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..errors import NotFoundError, PermissionDeniedError, ProtectedError, TransientError
from ..models.deletion_outcome import DeletionOutcome, OutcomeStatus
from ..models.deletion_plan import Batch, DeletionPlan
from ..models.resource import ResourceDescriptor
from ..providers.base import ProviderAdapter
from .safety import ProtectionPolicy

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"
ALREADY_DELETED_REASON = "already deleted"

OutcomeCallback = Callable[[DeletionOutcome], None]


class ExecutionEngine:
    """Dependency-ordered, bounded-concurrency deletion.

    Batches run strictly one after another. Inside a batch, resources are
    dispatched in waves of at most ``concurrency`` deletions; a wave finishes
    before the next one starts.

    Attributes:
        adapter: Provider adapter that performs deletions
        policy: Protection policy consulted before every delete
        concurrency: Maximum concurrent deletions
        max_attempts: Attempts per resource for transient failures
        backoff_base: Base delay in seconds for exponential backoff
        cancel_event: Set to stop dispatching new work
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        policy: Optional[ProtectionPolicy] = None,
        concurrency: int = 5,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        cancel_event: Optional[threading.Event] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            adapter: Provider adapter
            policy: Protection policy (default: built-in rules for the provider)
            concurrency: Maximum concurrent deletions inside a batch
            max_attempts: Delete attempts per resource (default: 3)
            backoff_base: Base delay for exponential backoff in seconds
            cancel_event: Shared cancellation signal
            on_outcome: Called with each outcome as soon as it is recorded
        """
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.adapter = adapter
        self.policy = policy or ProtectionPolicy.for_provider(adapter.provider_name)
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.cancel_event = cancel_event or threading.Event()
        self.on_outcome = on_outcome

    def cancel(self) -> None:
        """Stop after the wave in flight; remaining resources are skipped."""
        logger.warning("Cancellation requested, finishing in-flight deletions")
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def run(self, plan: DeletionPlan, dry_run: bool = False) -> list[DeletionOutcome]:
        """Execute (or preview) a plan.

        Args:
            plan: Deletion plan
            dry_run: Preview only, never call delete

        Returns:
            One outcome per planned resource, in plan order
        """
        resources = plan.resources()
        # One slot per plan position; each worker writes only its own slot
        slots: list[Optional[DeletionOutcome]] = [None] * len(resources)

        position = 0
        for batch in plan:
            if self.cancelled:
                break
            logger.debug(f"Batch {batch.index + 1}/{len(plan)}: {len(batch)} resource(s) at rank {batch.rank}")
            self._run_batch(batch, position, slots, dry_run)
            position += len(batch)

        batch_of = {r.key: batch.index for batch in plan for r in batch}
        outcomes = []
        for index, resource in enumerate(resources):
            outcome = slots[index]
            if outcome is None:
                outcome = DeletionOutcome(
                    descriptor=resource,
                    status=OutcomeStatus.SKIPPED,
                    reason=CANCELLED_REASON,
                    batch_index=batch_of[resource.key],
                )
                self._emit(outcome)
            outcomes.append(outcome)
        return outcomes

    def _run_batch(
        self,
        batch: Batch,
        offset: int,
        slots: list[Optional[DeletionOutcome]],
        dry_run: bool,
    ) -> None:
        members = list(batch.resources)
        if dry_run or self.concurrency == 1 or len(members) == 1:
            for index, resource in enumerate(members):
                if self.cancelled:
                    return
                slots[offset + index] = self._process(resource, batch.index, dry_run)
            return

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="cloudsweep") as pool:
            for start in range(0, len(members), self.concurrency):
                if self.cancelled:
                    return
                wave = members[start : start + self.concurrency]
                futures = [pool.submit(self._process, resource, batch.index, dry_run) for resource in wave]
                for index, future in enumerate(futures):
                    slots[offset + start + index] = future.result()

    def _process(self, resource: ResourceDescriptor, batch_index: int, dry_run: bool) -> DeletionOutcome:
        """Produce the terminal outcome of one resource."""
        started = time.monotonic()

        is_protected, reason = self.policy.is_protected(resource)
        if is_protected:
            logger.info(f"Protected {resource}: {reason}")
            outcome = DeletionOutcome(
                descriptor=resource,
                status=OutcomeStatus.PROTECTED,
                reason=reason or "protected",
                batch_index=batch_index,
            )
        elif dry_run:
            logger.info(f"[dry-run] Would delete {resource}: {self.adapter.describe(resource)}")
            outcome = DeletionOutcome(
                descriptor=resource,
                status=OutcomeStatus.WOULD_DELETE,
                batch_index=batch_index,
            )
        else:
            outcome = self._delete_with_retry(resource, batch_index)

        outcome.duration_seconds = time.monotonic() - started
        self._emit(outcome)
        return outcome

    def _delete_with_retry(self, resource: ResourceDescriptor, batch_index: int) -> DeletionOutcome:
        attempts = 0
        for attempt in range(self.max_attempts):
            attempts = attempt + 1
            try:
                self.adapter.delete(resource)
                logger.info(f"Deleted {resource}")
                return DeletionOutcome(
                    descriptor=resource,
                    status=OutcomeStatus.DELETED,
                    attempts=attempts,
                    batch_index=batch_index,
                )

            except NotFoundError:
                logger.info(f"{resource} already deleted")
                return DeletionOutcome(
                    descriptor=resource,
                    status=OutcomeStatus.DELETED,
                    reason=ALREADY_DELETED_REASON,
                    attempts=attempts,
                    batch_index=batch_index,
                )

            except ProtectedError as e:
                logger.warning(f"Deletion of {resource} vetoed by provider: {e.message}")
                return DeletionOutcome(
                    descriptor=resource,
                    status=OutcomeStatus.PROTECTED,
                    reason=e.message,
                    attempts=attempts,
                    batch_index=batch_index,
                )

            except TransientError as e:
                if attempt < self.max_attempts - 1:
                    wait_time = self.backoff_base * (2**attempt) + random.uniform(0, self.backoff_base)
                    logger.warning(
                        f"Transient error deleting {resource}, "
                        f"retrying in {wait_time:.1f}s (attempt {attempts}/{self.max_attempts}): {e.message}"
                    )
                    time.sleep(wait_time)
                    continue
                return self._failed(resource, batch_index, attempts, f"{e.message} (after {attempts} attempts)")

            except PermissionDeniedError as e:
                return self._failed(resource, batch_index, attempts, f"Permission denied: {e.message}")

            except Exception as e:
                message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                return self._failed(resource, batch_index, attempts, message)

        return self._failed(resource, batch_index, attempts, f"Failed after {attempts} attempts")

    def _failed(self, resource: ResourceDescriptor, batch_index: int, attempts: int, error: str) -> DeletionOutcome:
        logger.error(f"Failed to delete {resource}: {error}")
        return DeletionOutcome(
            descriptor=resource,
            status=OutcomeStatus.FAILED,
            error=error,
            attempts=attempts,
            batch_index=batch_index,
        )

    def _emit(self, outcome: DeletionOutcome) -> None:
        if self.on_outcome is not None:
            self.on_outcome(outcome)
