"""Dependency ordering of graph nodes into insertion batches."""

from __future__ import annotations

from typing import Dict, List, Set

from .errors import ResolutionError
from .normalizer import RelationGraph


def plan_batches(graph: RelationGraph) -> List[List[int]]:
    """Order the nodes of `graph` into dependency levels.

    Batch `k` holds the nodes whose dependencies all sit in batches before
    `k`; nodes inside a batch keep literal traversal order. Existing nodes
    are already persisted and only appear when they must be updated with a
    key produced by the graph.

    Raises:
        ResolutionError: If the edges form a cycle.
    """

    incoming: Dict[int, Set[int]] = {}
    for node in graph.nodes:
        if not node.existing:
            incoming[node.index] = set()
    for edge in graph.edges:
        if graph.nodes[edge.dependent].existing:
            incoming.setdefault(edge.dependent, set())

    for edge in graph.edges:
        if edge.dependent in incoming and edge.dependency in incoming:
            incoming[edge.dependent].add(edge.dependency)

    dependents: Dict[int, List[int]] = {index: [] for index in incoming}
    for index, dependencies in incoming.items():
        for dependency in dependencies:
            dependents[dependency].append(index)

    remaining = {index: len(dependencies) for index, dependencies in incoming.items()}
    batches: List[List[int]] = []
    batch = sorted(index for index, count in remaining.items() if count == 0)
    while batch:
        batches.append(batch)
        ready: Set[int] = set()
        for index in batch:
            del remaining[index]
        for index in batch:
            for dependent in dependents[index]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.add(dependent)
        batch = sorted(ready)

    if remaining:
        labels = ", ".join(graph.nodes[index].label for index in sorted(remaining))
        symbol = next(
            (graph.nodes[i].symbol for i in sorted(remaining) if graph.nodes[i].symbol),
            None,
        )
        raise ResolutionError(f"Reference cycle between {labels}.", symbol=symbol)
    return batches
