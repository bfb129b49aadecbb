# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Dependency graph over lockfile package records.

Maintains two indices for efficient queries:
- forward: node key -> resolved dependency keys, in declared order
- dependents: node key -> keys of the nodes that declare it as a dependency

Dependency names with no matching node (dangling references) stay in the
forward index but never enter the dependents index.

The graph is built once by DependencyGraph.build() and never mutated
afterwards, so any number of queries may share one instance.
"""

import logging
from collections import Counter, OrderedDict
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from lockprune.errors import NameCollisionError
from lockprune.models import CollisionPolicy, DependencySpec, NameCollision, PackageRecord

logger = logging.getLogger(__name__)

_EMPTY: FrozenSet[str] = frozenset()


def versioned_key(name: str, version: str) -> str:
    """Node key used for a name that appears more than once."""
    return f"{name} {version}"


def sourced_key(name: str, version: str, source: str) -> str:
    """Node key for a name and version that appear more than once.

    Matches Cargo's dependency entry for such packages, e.g.
    "foo 1.0.0 (git+https://github.com/org/foo#abc)".
    """
    if not source:
        return versioned_key(name, version)
    return f"{name} {version} ({source})"


class DependencyGraph:
    """Directed, possibly cyclic graph of lockfile packages.

    Node keys are package names, except under the "versioned" collision
    policy where every record of a duplicated name is keyed "<name> <version>"
    (or "<name> <version> (<source>)" when the version repeats too), matching
    how Cargo writes dependency entries for such packages.

    Usage:
        document = parse_lockfile(text)
        graph = DependencyGraph.build(document.records)
        graph.dependents("serde")
        graph.direct_deps("tokio")
    """

    def __init__(
        self,
        nodes: Dict[str, PackageRecord],
        forward: Dict[str, Tuple[str, ...]],
        dependents: Dict[str, FrozenSet[str]],
        collisions: List[NameCollision],
        collision_policy: str,
    ) -> None:
        """Use DependencyGraph.build() instead of calling this directly."""
        self._nodes = nodes
        self._forward = forward
        self._dependents = dependents
        self._keys_by_index: Dict[int, str] = {record.index: key for key, record in nodes.items()}
        self.collisions: Tuple[NameCollision, ...] = tuple(collisions)
        self.collision_policy = collision_policy

    @classmethod
    def build(
        cls,
        records: Iterable[PackageRecord],
        collision_policy: str = CollisionPolicy.VERSIONED,
    ) -> "DependencyGraph":
        """Index records and compute the reverse dependents index in one pass.

        Records without a name or version are skipped (they were already
        reported as parse anomalies).

        Args:
            records: Parsed package records, in file order.
            collision_policy: CollisionPolicy value for duplicate names.

        Returns:
            A new immutable DependencyGraph.

        Raises:
            ValueError: If collision_policy is unknown.
            NameCollisionError: If names collide under CollisionPolicy.ERROR.
        """
        if collision_policy not in CollisionPolicy.ALL:
            raise ValueError(f"Unknown collision policy: {collision_policy}")

        by_name: "OrderedDict[str, List[PackageRecord]]" = OrderedDict()
        for record in records:
            if not record.is_usable:
                continue
            by_name.setdefault(record.name, []).append(record)

        duplicated = [name for name, group in by_name.items() if len(group) > 1]
        if duplicated and collision_policy == CollisionPolicy.ERROR:
            raise NameCollisionError(duplicated)

        nodes: Dict[str, PackageRecord] = {}
        collisions: List[NameCollision] = []
        for name, group in by_name.items():
            if len(group) == 1:
                nodes[name] = group[0]
                continue

            if collision_policy == CollisionPolicy.VERSIONED:
                version_counts = Counter(record.version for record in group)
                keys = []
                for record in group:
                    if version_counts[record.version] > 1:
                        key = sourced_key(name, record.version, record.source)
                    else:
                        key = versioned_key(name, record.version)
                    if key in nodes:
                        # Same name, version and source: told apart by block position
                        key = f"{key} #{record.index}"
                    nodes[key] = record
                    keys.append(key)
            else:
                winner = group[-1] if collision_policy == CollisionPolicy.LAST_WINS else group[0]
                nodes[name] = winner
                keys = [name]

            collision = NameCollision(
                name=name,
                versions=tuple(record.version for record in group),
                keys=tuple(keys),
                policy=collision_policy,
            )
            collisions.append(collision)
            logger.warning(
                f"Package name '{name}' appears {len(group)} times "
                f"(versions: {', '.join(collision.versions)}); resolved by "
                f"{collision_policy} policy",
                extra={"extra_fields": {"collision": collision.to_dict()}},
            )

        forward: Dict[str, Tuple[str, ...]] = {}
        reverse: Dict[str, Set[str]] = {}
        dangling = 0
        for key, record in nodes.items():
            resolved = tuple(cls._resolve(spec, nodes) for spec in record.dependency_specs)
            forward[key] = resolved
            for dep in resolved:
                if dep in nodes:
                    reverse.setdefault(dep, set()).add(key)
                else:
                    dangling += 1

        if dangling:
            logger.debug(f"Ignored {dangling} dangling dependency references")

        dependents = {key: frozenset(names) for key, names in reverse.items()}
        return cls(nodes, forward, dependents, collisions, collision_policy)

    @staticmethod
    def _resolve(spec: DependencySpec, nodes: Mapping[str, PackageRecord]) -> str:
        """Map a dependency entry to a node key (or to its bare name if dangling)."""
        if spec.constraint:
            key = f"{spec.name} {spec.constraint}"
            if key in nodes:
                return key
        if spec.version:
            key = versioned_key(spec.name, spec.version)
            if key in nodes:
                return key
        return spec.name

    # Basic accessors

    @property
    def nodes(self) -> Mapping[str, PackageRecord]:
        """Read-only view of key -> PackageRecord."""
        return MappingProxyType(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def all_names(self) -> FrozenSet[str]:
        """All node keys."""
        return frozenset(self._nodes)

    def get_record(self, name: str) -> Optional[PackageRecord]:
        """Record for a node key, or None."""
        return self._nodes.get(name)

    def key_for(self, record: PackageRecord) -> Optional[str]:
        """Node key of a record, or None if the record is not a node."""
        key = self._keys_by_index.get(record.index)
        if key is not None and self._nodes[key] is record:
            return key
        return None

    # Edge queries

    def dependents(self, name: str) -> FrozenSet[str]:
        """Keys of nodes that declare name as a dependency (empty if none)."""
        return self._dependents.get(name, _EMPTY)

    def direct_deps(self, name: str) -> Tuple[str, ...]:
        """Resolved dependencies of name in declared order (empty if absent)."""
        return self._forward.get(name, ())

    def fan_in(self, name: str) -> int:
        """Number of distinct nodes depending on name."""
        return len(self._dependents.get(name, _EMPTY))

    def dangling_references(self) -> List[Tuple[str, str]]:
        """(package, dependency) pairs whose dependency has no node."""
        return [
            (key, dep)
            for key in sorted(self._forward)
            for dep in self._forward[key]
            if dep not in self._nodes
        ]

    def constrained_dependents(self, target: str) -> List[Tuple[str, DependencySpec]]:
        """Packages whose dependency entry on target carries a version constraint.

        target may be a plain name or a versioned key.

        Returns:
            (dependent key, DependencySpec) pairs sorted by dependent key.
        """
        record = self._nodes.get(target)
        if record is not None:
            target_name = record.name
        else:
            parts = target.split()
            if not parts:
                return []
            target_name = parts[0]
        matches: List[Tuple[str, DependencySpec]] = []
        for key in sorted(self._nodes):
            for spec in self._nodes[key].dependency_specs:
                if spec.name == target_name and spec.constraint:
                    matches.append((key, spec))
        return matches

    # Selection for serialization

    def records_for(self, names: Iterable[str]) -> List[PackageRecord]:
        """Node records for the given keys, in original file order.

        Keys that are not nodes are skipped.
        """
        selected = [self._nodes[name] for name in set(names) if name in self._nodes]
        return sorted(selected, key=lambda record: record.index)

    # Diagnostics

    def most_depended_on(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Nodes with the highest fan-in, ties broken by key."""
        ranked = sorted(self._dependents.items(), key=lambda item: (-len(item[1]), item[0]))
        return [{"package": key, "dependent_count": len(deps)} for key, deps in ranked[:limit]]

    def validate_graph(self) -> Tuple[bool, List[str]]:
        """Check that the dependents index is exactly the inverse of forward edges.

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []
        expected: Dict[str, Set[str]] = {}
        for key, deps in self._forward.items():
            if key not in self._nodes:
                errors.append(f"Forward index entry {key} is not a node")
            for dep in deps:
                if dep in self._nodes:
                    expected.setdefault(dep, set()).add(key)

        for key in set(expected) | set(self._dependents):
            actual = self._dependents.get(key, _EMPTY)
            wanted = expected.get(key, set())
            for missing in sorted(wanted - actual):
                errors.append(f"Index inconsistency: {key} <- {missing} not in dependents index")
            for extra in sorted(actual - wanted):
                errors.append(f"Index inconsistency: {key} <- {extra} has no matching edge")

        return len(errors) == 0, errors

    def export_to_dict(self) -> Dict[str, Any]:
        """Export graph to a JSON-compatible dict."""
        metadata = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "collision_policy": self.collision_policy,
            "total_packages": len(self._nodes),
            "total_edges": sum(len(deps) for deps in self._forward.values()),
        }
        packages = [
            {
                "key": key,
                "name": record.name,
                "version": record.version,
                "dependencies": list(self._forward.get(key, ())),
                "dependents": sorted(self.dependents(key)),
            }
            for key, record in sorted(self._nodes.items(), key=lambda item: item[1].index)
        ]
        return {
            "metadata": metadata,
            "packages": packages,
            "collisions": [collision.to_dict() for collision in self.collisions],
            "dangling_references": [
                {"package": key, "dependency": dep} for key, dep in self.dangling_references()
            ],
            "most_depended_on": self.most_depended_on(limit=10),
        }
