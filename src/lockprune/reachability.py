# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Reachability queries: dependency closure from a root set."""

from collections import deque
from typing import Deque, FrozenSet, Iterable, List, Set, Tuple

from lockprune.graph import DependencyGraph


def closure(graph: DependencyGraph, roots: Iterable[str]) -> FrozenSet[str]:
    """All packages reachable from roots by following dependency edges.

    Breadth-first over an explicit queue with a visited set, so cycles and
    deep chains are safe. Roots are always part of the result, even roots
    that are not nodes; dangling dependency names are not.

    Args:
        graph: Graph to traverse.
        roots: Starting package keys.

    Returns:
        Frozen set of the roots plus everything they transitively depend on.
    """
    visited: Set[str] = set(roots)
    queue: Deque[str] = deque(visited)

    while queue:
        current = queue.popleft()
        for dep in graph.direct_deps(current):
            if dep in graph and dep not in visited:
                visited.add(dep)
                queue.append(dep)

    return frozenset(visited)


def unreachable(graph: DependencyGraph, roots: Iterable[str]) -> FrozenSet[str]:
    """Nodes not reachable from roots."""
    return graph.all_names() - closure(graph, roots)


def closure_violations(graph: DependencyGraph, names: Iterable[str]) -> List[Tuple[str, str]]:
    """(package, dependency) pairs where a package in names depends on a node outside it.

    Dangling references are not violations.
    """
    members = set(names)
    return [
        (name, dep)
        for name in sorted(members)
        for dep in graph.direct_deps(name)
        if dep in graph and dep not in members
    ]


def is_closed(graph: DependencyGraph, names: Iterable[str]) -> bool:
    """Whether no package in names depends on an existing node outside names."""
    return not closure_violations(graph, names)
