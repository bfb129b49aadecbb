# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Closure-safe pruning.

A package may be removed only if every package depending on it is removed
too. The retained set is then closed: no retained package references a
removed one.

- safe_removal_set: everything outside a required set that can go
- cascade_removal: explicit removals plus whatever only they depended on
- verify_closure: the check both of the above are tested against
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, FrozenSet, Iterable, List, Set, Tuple

from lockprune.graph import DependencyGraph
from lockprune.reachability import closure, closure_violations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PruneResult:
    """Outcome of a pruning query."""

    required: FrozenSet[str]
    removed: FrozenSet[str]
    retained: FrozenSet[str]
    violations: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    unknown: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_closed(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "required_count": len(self.required),
            "removed_count": len(self.removed),
            "retained_count": len(self.retained),
            "removed": sorted(self.removed),
            "retained": sorted(self.retained),
            "violations": [{"package": pkg, "dependency": dep} for pkg, dep in self.violations],
            "unknown": sorted(self.unknown),
            "is_closed": self.is_closed,
        }


def safe_removal_set(graph: DependencyGraph, required: Iterable[str]) -> FrozenSet[str]:
    """Packages outside required whose removal keeps the remainder closed.

    Starts from every non-required node and withdraws any candidate that has
    a dependent outside the candidate set. Withdrawing a candidate makes it a
    retained dependent of its own dependencies, so those are checked again.
    The loop stops at the largest set where every member's dependents are all
    members. When required is already closed under dependencies this is
    simply all names minus required.

    Args:
        graph: Graph to prune.
        required: Keys that must stay (names that are not nodes are ignored).

    Returns:
        Frozen set of removable node keys.
    """
    removed: Set[str] = set(graph.all_names()) - set(required)
    queue: Deque[str] = deque(sorted(removed))

    while queue:
        candidate = queue.popleft()
        if candidate not in removed:
            continue
        if graph.dependents(candidate) <= removed:
            continue

        removed.discard(candidate)
        for dep in graph.direct_deps(candidate):
            if dep in removed:
                queue.append(dep)

    return frozenset(removed)


def retained_set(graph: DependencyGraph, removed: Iterable[str]) -> FrozenSet[str]:
    """All node keys minus removed."""
    return graph.all_names() - frozenset(removed)


def verify_closure(graph: DependencyGraph, retained: Iterable[str]) -> Tuple[bool, List[str]]:
    """Check that no retained package references a node outside retained.

    Returns:
        Tuple of (is_valid, error_messages).
    """
    errors = [
        f"Retained package {pkg} depends on removed package {dep}"
        for pkg, dep in closure_violations(graph, retained)
    ]
    return len(errors) == 0, errors


def cascade_removal(graph: DependencyGraph, names: Iterable[str]) -> FrozenSet[str]:
    """Remove names plus every package that only removed packages depend on.

    Candidates are the dependencies reachable from names. A candidate stays
    in the removal set only while all of its dependents are in it too, so a
    cycle used only by removed packages goes with them. Unreferenced packages
    that were not named are left alone. Names that are not nodes are ignored.

    Returns:
        Frozen set of keys to remove.
    """
    named = frozenset(name for name in names if name in graph)
    to_remove: Set[str] = set(closure(graph, named))
    queue: Deque[str] = deque(sorted(to_remove - named))

    while queue:
        candidate = queue.popleft()
        if candidate not in to_remove or candidate in named:
            continue
        if graph.dependents(candidate) <= to_remove:
            continue

        to_remove.discard(candidate)
        for dep in graph.direct_deps(candidate):
            if dep in to_remove and dep not in named:
                queue.append(dep)

    return frozenset(to_remove)


def prune(graph: DependencyGraph, required: Iterable[str]) -> PruneResult:
    """Compute a closure-safe prune for a required set and verify it."""
    required_set = frozenset(required)
    removed = safe_removal_set(graph, required_set)
    retained = retained_set(graph, removed)
    violations = tuple(closure_violations(graph, retained))
    if violations:
        # Unreachable for safe_removal_set; logged so a regression is visible.
        logger.error(f"Safe removal left {len(violations)} closure violations: {violations}")

    logger.info(
        f"Prune: {len(required_set)} required, {len(removed)} removable, "
        f"{len(retained)} retained"
    )
    return PruneResult(
        required=required_set,
        removed=removed,
        retained=retained,
        violations=violations,
        unknown=frozenset(name for name in required_set if name not in graph),
    )


def remove_packages(
    graph: DependencyGraph, names: Iterable[str], cascade: bool = True
) -> PruneResult:
    """Remove explicitly named packages (optionally cascading) and report violations.

    Unlike prune(), the caller chooses what goes, so the retained set may
    reference removed packages. Those references are returned as violations
    rather than raised.
    """
    requested = frozenset(names)
    unknown = frozenset(name for name in requested if name not in graph)
    for name in sorted(unknown):
        logger.warning(f"Cannot remove {name}: no such package")

    if cascade:
        removed = cascade_removal(graph, requested)
    else:
        removed = frozenset(requested - unknown)

    retained = retained_set(graph, removed)
    violations = tuple(closure_violations(graph, retained))
    for pkg, dep in violations:
        logger.warning(f"Retained package {pkg} still depends on removed package {dep}")

    return PruneResult(
        required=frozenset(),
        removed=removed,
        retained=retained,
        violations=violations,
        unknown=unknown,
    )
