"""Data models for discovery, planning and deletion outcomes."""

from __future__ import annotations

from .deletion_outcome import DeletionOutcome, OutcomeStatus
from .deletion_plan import Batch, DeletionPlan, ResourceGraph
from .deletion_report import DeletionReport, OperationMode, OperationStatus, RunConfig
from .protection_rule import ProtectionRule, RuleType
from .resource import Binding, DependencyEdge, ResourceDescriptor, ResourceFilter, ResourceKind

__all__ = [
    "Batch",
    "Binding",
    "DeletionOutcome",
    "DeletionPlan",
    "DeletionReport",
    "DependencyEdge",
    "OperationMode",
    "OperationStatus",
    "OutcomeStatus",
    "ProtectionRule",
    "ResourceDescriptor",
    "ResourceFilter",
    "ResourceGraph",
    "ResourceKind",
    "RuleType",
    "RunConfig",
]
