"""Dependency graph construction and deletion ordering.

Uses Kahn's algorithm. An edge ``parent <- child`` means the child must be
deleted before the parent (a subnet before its network).
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Set

Node = Hashable


class DependencyResolver:
    """Dependency graph with deterministic deletion ordering.

    Attributes:
        graph: child -> set of parents that must outlive it
    """

    def __init__(self, sort_key: Optional[Callable[[Node], object]] = None) -> None:
        """Initialize an empty graph.

        Args:
            sort_key: Orders nodes that become ready at the same time;
                defaults to their string form
        """
        self.graph: Dict[Node, Set[Node]] = {}
        self.sort_key = sort_key or str

    def add_dependency(self, parent: Node, child: Node) -> None:
        """Record that ``child`` must be deleted before ``parent``."""
        self.graph.setdefault(child, set()).add(parent)

    def has_cycle(self) -> bool:
        nodes = set(self.graph)
        for parents in self.graph.values():
            nodes.update(parents)
        try:
            self.get_deletion_tiers(nodes)
        except ValueError:
            return True
        return False

    def compute_deletion_order(self, resources: Iterable[Node]) -> List[Node]:
        """Flatten the tiers into a single deletion order."""
        tiers = self.get_deletion_tiers(resources)
        return [node for tier in sorted(tiers) for node in tiers[tier]]

    def get_deletion_tiers(self, resources: Iterable[Node]) -> Dict[int, List[Node]]:
        """Assign every resource a tier, starting at 1.

        Tier 1 holds resources nothing else has to precede; a resource's tier is
        one more than the highest tier among the resources that must go before
        it. Edges to nodes outside ``resources`` are ignored.

        Raises:
            ValueError: If the graph restricted to ``resources`` has a cycle
        """
        nodes = list(dict.fromkeys(resources))
        members = set(nodes)

        # predecessors: resources that must be deleted before the key
        predecessors: Dict[Node, Set[Node]] = defaultdict(set)
        successors: Dict[Node, Set[Node]] = defaultdict(set)
        for child, parents in self.graph.items():
            if child not in members:
                continue
            for parent in parents:
                if parent in members and parent != child:
                    predecessors[parent].add(child)
                    successors[child].add(parent)

        in_degree = {node: len(predecessors[node]) for node in nodes}
        tier_of: Dict[Node, int] = {}
        ready = sorted((n for n in nodes if in_degree[n] == 0), key=self.sort_key)

        while ready:
            node = ready.pop(0)
            tier_of[node] = 1 + max((tier_of[p] for p in predecessors[node]), default=0)
            newly_ready = []
            for parent in successors[node]:
                in_degree[parent] -= 1
                if in_degree[parent] == 0:
                    newly_ready.append(parent)
            if newly_ready:
                ready = sorted(ready + newly_ready, key=self.sort_key)

        if len(tier_of) != len(nodes):
            stuck = sorted((n for n in nodes if n not in tier_of), key=self.sort_key)
            raise ValueError(f"Circular dependency detected among: {stuck}")

        tiers: Dict[int, List[Node]] = defaultdict(list)
        for node in nodes:
            tiers[tier_of[node]].append(node)
        return {tier: sorted(members_, key=self.sort_key) for tier, members_ in sorted(tiers.items())}
