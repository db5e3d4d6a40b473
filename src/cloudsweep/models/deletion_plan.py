"""Resource graph and deletion plan models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .resource import DependencyEdge, ResourceDescriptor, ResourceKey


@dataclass
class ResourceGraph:
    """Discovered resources plus the concrete dependencies found while listing.

    Attributes:
        resources: Deduplicated descriptors in discovery order
        edges: Explicit ordering constraints between discovered resources
        warnings: Human-readable notes about degraded discovery
    """

    resources: List[ResourceDescriptor] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def keys(self) -> List[ResourceKey]:
        return [r.key for r in self.resources]

    def __len__(self) -> int:
        return len(self.resources)


@dataclass(frozen=True)
class Batch:
    """Resources that can be deleted concurrently.

    Attributes:
        index: Position of the batch in the plan (0-based)
        resources: Members in deterministic order
        rank: Effective dependency rank shared by the members
    """

    index: int
    resources: Tuple[ResourceDescriptor, ...]
    rank: int

    def __len__(self) -> int:
        return len(self.resources)

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self.resources)


@dataclass(frozen=True)
class DeletionPlan:
    """Ordered sequence of batches. Batch N+1 starts only after batch N is done."""

    batches: Tuple[Batch, ...] = ()

    def resources(self) -> List[ResourceDescriptor]:
        """All planned resources, in plan order."""
        return [resource for batch in self.batches for resource in batch.resources]

    def batch_index_of(self, descriptor: ResourceDescriptor) -> Optional[int]:
        return self._index_by_key().get(descriptor.key)

    def _index_by_key(self) -> Dict[ResourceKey, int]:
        return {resource.key: batch.index for batch in self.batches for resource in batch.resources}

    def __len__(self) -> int:
        return len(self.batches)

    def __iter__(self) -> Iterator[Batch]:
        return iter(self.batches)
