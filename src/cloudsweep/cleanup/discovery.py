"""Resource graph builder.

Enumerates every resource a provider adapter reports for a filter and turns
the results into a deduplicated ResourceGraph. Read-only: nothing here ever
calls ``delete``.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Optional

from ..errors import ProviderError, ProviderUnavailableError
from ..models.deletion_plan import ResourceGraph
from ..models.resource import DependencyEdge, ResourceDescriptor, ResourceFilter, ResourceKey, ResourceKind
from ..providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ResourceGraphBuilder:
    """Builds the resource graph for one provider scope.

    Attributes:
        adapter: Provider adapter used for listing
    """

    def __init__(self, adapter: ProviderAdapter) -> None:
        self.adapter = adapter

    def build(self, resource_filter: ResourceFilter, kinds: Optional[list[ResourceKind]] = None) -> ResourceGraph:
        """Discover every matching resource and the edges between them.

        A kind whose listing fails contributes nothing and leaves a warning on
        the graph. Losing access before anything was listed aborts the build.

        Args:
            resource_filter: Prefix/label/region criteria
            kinds: Restrict discovery to these kinds (default: every supported kind)

        Returns:
            ResourceGraph with resources in discovery order

        Raises:
            ProviderUnavailableError: If the provider cannot be reached before
                any listing succeeded
        """
        self.adapter.check_access()
        self.adapter.begin_discovery()

        graph = ResourceGraph()
        seen: dict[ResourceKey, ResourceDescriptor] = {}
        any_listing_succeeded = False

        selected = [k for k in self.adapter.supported_kinds if kinds is None or k in kinds]
        for kind in sorted(selected, key=lambda k: k.order):
            try:
                found = self.adapter.list_resources(kind, resource_filter)
            except ProviderUnavailableError as e:
                if not any_listing_succeeded:
                    raise
                self._degrade(graph, kind, e)
                continue
            except (ProviderError, subprocess.TimeoutExpired) as e:
                self._degrade(graph, kind, e)
                continue

            any_listing_succeeded = True
            added = 0
            for descriptor in found:
                if not resource_filter.in_region(descriptor.region):
                    continue
                if descriptor.key in seen:
                    continue
                seen[descriptor.key] = descriptor
                graph.resources.append(descriptor)
                added += 1

            if added:
                logger.info(f"Found {added} {kind.value} resource(s)")

        self._expand_resource_iam(graph, seen)
        graph.edges = self._collect_edges(graph.resources, seen)

        logger.debug(f"Discovery finished: {len(graph.resources)} resources, {len(graph.edges)} edges")
        return graph

    def _expand_resource_iam(self, graph: ResourceGraph, seen: dict[ResourceKey, ResourceDescriptor]) -> None:
        """Materialize bindings on resources whose IAM policy lives on the resource."""
        owners = [r for r in graph.resources if r.kind.has_resource_iam]
        for owner in owners:
            try:
                bindings = self.adapter.list_iam_bindings(owner)
            except (ProviderError, subprocess.TimeoutExpired) as e:
                message = f"Could not list IAM bindings of {owner}: {e}"
                logger.warning(message)
                graph.warnings.append(message)
                continue

            for binding in bindings:
                descriptor = binding.to_descriptor()
                if descriptor.key in seen:
                    continue
                seen[descriptor.key] = descriptor
                graph.resources.append(descriptor)

    def _collect_edges(
        self,
        resources: list[ResourceDescriptor],
        seen: dict[ResourceKey, ResourceDescriptor],
    ) -> list[DependencyEdge]:
        """Turn parent references into edges; references to undiscovered resources are dropped."""
        edges: list[DependencyEdge] = []
        known: set[DependencyEdge] = set()

        def add(before: ResourceKey, after: ResourceKey) -> None:
            edge = DependencyEdge(before=before, after=after)
            if before != after and after in seen and edge not in known:
                known.add(edge)
                edges.append(edge)

        for descriptor in resources:
            owner = descriptor.metadata.get("owner")
            if owner:
                add(descriptor.key, tuple(owner))
            for parent in descriptor.metadata.get("depends_on") or ():
                add(descriptor.key, tuple(parent))

        return edges

    def _degrade(self, graph: ResourceGraph, kind: ResourceKind, error: Exception) -> None:
        message = f"Discovery of {kind.value} failed, treating as empty: {error}"
        logger.warning(message)
        graph.warnings.append(message)
