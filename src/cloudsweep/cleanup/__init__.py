"""Resource discovery and cleanup module.

This module discovers the resources a deployment left behind in a GCP project
or Azure subscription and deletes them in dependency order, with protection
rules that keep provider-managed resources safe.

Classes:
    ResourceCleaner: Main orchestrator for cleanup runs
    ResourceGraphBuilder: Resource discovery through a provider adapter
    DeletionPlanner: Dependency-ordered batch planning
    DependencyResolver: Dependency graph construction and deletion ordering
    ExecutionEngine: Batched deletion with retries and cancellation
    ProtectionPolicy: Protection rule evaluation
    AuditStorage: Audit log storage and retrieval
"""

from __future__ import annotations

from .audit import AuditStorage
from .cleaner import ResourceCleaner
from .dependency import DependencyResolver
from .discovery import ResourceGraphBuilder
from .executor import ExecutionEngine
from .planner import DeletionPlanner
from .safety import ProtectionPolicy

__all__ = [
    "ResourceCleaner",
    "ResourceGraphBuilder",
    "DeletionPlanner",
    "DependencyResolver",
    "ExecutionEngine",
    "ProtectionPolicy",
    "AuditStorage",
]
