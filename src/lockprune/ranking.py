# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Fan-in ranking and critical-path extraction.

Fan-in of a package is the number of distinct packages that declare it as a
dependency. High fan-in packages are "critical": removing them breaks many
others. Packages with no dependents are leaves: candidates for manual pruning.
"""

from collections import deque
from typing import Deque, FrozenSet, Iterable, List, Set, Tuple

from lockprune.graph import DependencyGraph


def critical_nodes(graph: DependencyGraph, threshold: int) -> List[Tuple[str, int]]:
    """Packages whose fan-in is strictly greater than threshold.

    Returns:
        (key, fan_in) pairs, highest fan-in first, ties broken by key.
    """
    ranked = [
        (name, graph.fan_in(name))
        for name in graph.all_names()
        if graph.fan_in(name) > threshold
    ]
    ranked.sort(key=lambda item: (-item[1], item[0]))
    return ranked


def leaf_nodes(graph: DependencyGraph) -> FrozenSet[str]:
    """Packages nothing depends on."""
    return frozenset(name for name in graph.all_names() if not graph.dependents(name))


def expand_critical_path(
    graph: DependencyGraph, seeds: Iterable[str], fan_in_floor: int
) -> FrozenSet[str]:
    """Grow a package set from seeds along high fan-in dependencies only.

    Every seed is included. From each visited package, a direct dependency is
    followed only if it is a node with fan-in above fan_in_floor; other
    dependencies end that branch and are not added.

    Args:
        graph: Graph to walk.
        seeds: Starting package keys (always part of the result).
        fan_in_floor: Dependencies with fan-in <= this are not followed.

    Returns:
        Frozen set of visited keys.
    """
    queue: Deque[str] = deque(seeds)
    visited: Set[str] = set()

    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)

        for dep in graph.direct_deps(current):
            if dep in graph and dep not in visited and graph.fan_in(dep) > fan_in_floor:
                queue.append(dep)

    return frozenset(visited)


def include_with_direct_deps(graph: DependencyGraph, names: Iterable[str]) -> FrozenSet[str]:
    """Names present in the graph plus their existing direct dependencies."""
    result: Set[str] = set()
    for name in names:
        if name not in graph:
            continue
        result.add(name)
        result.update(dep for dep in graph.direct_deps(name) if dep in graph)
    return frozenset(result)
