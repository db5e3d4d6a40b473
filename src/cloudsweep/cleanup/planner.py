"""Deletion planner.

Turns a resource graph into an ordered sequence of batches. Batches follow the
dependency rank table (highest rank first); explicit edges are hard
constraints that may split a rank into several batches or pull a resource
forward into an earlier rank.
"""

from __future__ import annotations

import logging
from itertools import groupby
from typing import Iterable, Optional, Union

from ..models.deletion_plan import Batch, DeletionPlan, ResourceGraph
from ..models.resource import DependencyEdge, ResourceDescriptor, ResourceKey
from .dependency import DependencyResolver

logger = logging.getLogger(__name__)


class DeletionPlanner:
    """Deterministic deletion planner.

    The same resources and edges always produce the same plan, whatever order
    they arrive in.
    """

    def plan(
        self,
        resources: Union[ResourceGraph, Iterable[ResourceDescriptor]],
        edges: Optional[Iterable[DependencyEdge]] = None,
    ) -> DeletionPlan:
        """Build the deletion plan.

        Args:
            resources: A ResourceGraph, or descriptors to plan
            edges: Ordering constraints; taken from the graph when omitted

        Returns:
            DeletionPlan with batches in execution order

        Raises:
            ValueError: If the edges form a cycle
        """
        if isinstance(resources, ResourceGraph):
            if edges is None:
                edges = resources.edges
            resources = resources.resources

        by_key: dict[ResourceKey, ResourceDescriptor] = {}
        for descriptor in resources:
            by_key.setdefault(descriptor.key, descriptor)

        if not by_key:
            return DeletionPlan()

        resolver = DependencyResolver(sort_key=lambda key: by_key[key].sort_key)
        for edge in edges or ():
            if edge.before in by_key and edge.after in by_key:
                resolver.add_dependency(parent=edge.after, child=edge.before)

        effective = self._effective_ranks(resolver, by_key)

        ordered = sorted(by_key, key=lambda key: (-effective[key], by_key[key].sort_key))
        batches: list[Batch] = []
        for rank, group in groupby(ordered, key=lambda key: effective[key]):
            tiers = resolver.get_deletion_tiers(list(group))
            for tier in sorted(tiers):
                batches.append(
                    Batch(
                        index=len(batches),
                        resources=tuple(by_key[key] for key in tiers[tier]),
                        rank=rank,
                    )
                )

        logger.debug(f"Planned {len(by_key)} resources in {len(batches)} batches")
        return DeletionPlan(batches=tuple(batches))

    def _effective_ranks(
        self,
        resolver: DependencyResolver,
        by_key: dict[ResourceKey, ResourceDescriptor],
    ) -> dict[ResourceKey, int]:
        """Rank of a resource, raised to the rank of anything it must precede."""
        order = resolver.compute_deletion_order(by_key)

        effective: dict[ResourceKey, int] = {}
        for key in reversed(order):
            later = [effective[parent] for parent in resolver.graph.get(key, ()) if parent in effective]
            effective[key] = max([by_key[key].kind.rank, *later])
        return effective
