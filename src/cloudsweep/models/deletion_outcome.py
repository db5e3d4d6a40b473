"""Deletion outcome model.

Terminal result of one resource in one run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .resource import ResourceDescriptor


class OutcomeStatus(Enum):
    """Terminal status of a single resource."""

    DELETED = "deleted"
    WOULD_DELETE = "would_delete"
    SKIPPED = "skipped"
    FAILED = "failed"
    PROTECTED = "protected"


@dataclass
class DeletionOutcome:
    """Deletion outcome entity.

    Validation rules:
        - status=failed: requires error
        - status=skipped or protected: requires reason
        - status=deleted or would_delete: no error
        - attempts and duration_seconds must be >= 0

    Attributes:
        descriptor: Resource this outcome belongs to
        status: Terminal status
        reason: Why the resource was skipped/protected, or a note on success
        error: Error detail when the deletion failed
        attempts: Number of delete calls made (0 for dry-run/skip/protect)
        duration_seconds: Wall time spent on this resource
        batch_index: Plan batch the resource belonged to
    """

    descriptor: ResourceDescriptor
    status: OutcomeStatus
    reason: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    duration_seconds: float = 0.0
    batch_index: Optional[int] = None

    def validate(self) -> bool:
        """Validate outcome invariants.

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        if self.status == OutcomeStatus.FAILED:
            if not self.error:
                raise ValueError("Failed status requires error")
        elif self.status in (OutcomeStatus.SKIPPED, OutcomeStatus.PROTECTED):
            if not self.reason:
                raise ValueError(f"{self.status.value} status requires reason")
        elif self.error:
            raise ValueError(f"{self.status.value} status cannot carry an error")

        if self.attempts < 0:
            raise ValueError("Attempts cannot be negative")
        if self.duration_seconds < 0:
            raise ValueError("Duration cannot be negative")

        return True

    def to_dict(self) -> Dict[str, Any]:
        data = self.descriptor.to_dict()
        data.update(
            {
                "status": self.status.value,
                "reason": self.reason,
                "error": self.error,
                "attempts": self.attempts,
                "duration_seconds": round(self.duration_seconds, 3),
                "batch_index": self.batch_index,
            }
        )
        return data
