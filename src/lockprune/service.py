# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""LockfileAnalysisService - Business logic layer for the CLI and MCP server.

This module owns a loaded lockfile and its dependency graph and orchestrates
every analysis workflow on top of them.

Key Responsibilities:
- Load a lockfile (codec) and build the graph with the configured collision policy
- Answer closure, pruning, ranking and categorization queries
- Serialize selected package subsets and write them atomically
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

from lockprune.categorizer import Categorizer
from lockprune.codec import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from lockprune.config import Config
from lockprune.errors import ConfigurationError
from lockprune.graph import DependencyGraph
from lockprune.models import LockfileDocument
from lockprune.pruner import PruneResult, prune, remove_packages
from lockprune.ranking import (
    critical_nodes,
    expand_critical_path,
    include_with_direct_deps,
    leaf_nodes,
)
from lockprune.reachability import closure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosureReport:
    """Closure of a root set, with the roots that are not in the lockfile."""

    roots: Tuple[str, ...]
    closure: FrozenSet[str]
    missing_roots: Tuple[str, ...]
    total_packages: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "roots": list(self.roots),
            "missing_roots": list(self.missing_roots),
            "closure_count": len(self.closure),
            "total_packages": self.total_packages,
            "closure": sorted(self.closure),
        }


@dataclass(frozen=True)
class CriticalReport:
    """Critical packages and the critical-path package set."""

    threshold: int
    fan_in_floor: int
    critical: Tuple[Tuple[str, int], ...]
    critical_path: FrozenSet[str]
    leaf_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "threshold": self.threshold,
            "fan_in_floor": self.fan_in_floor,
            "critical": [{"package": name, "fan_in": count} for name, count in self.critical],
            "critical_path_count": len(self.critical_path),
            "critical_path": sorted(self.critical_path),
            "leaf_count": self.leaf_count,
        }


@dataclass(frozen=True)
class NotableStatus:
    """Whether a notable package is present, and at which version."""

    name: str
    present: bool
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {"name": self.name, "present": self.present, "version": self.version}


class LockfileAnalysisService:
    """Business logic coordinator for lockfile analysis.

    Workflow:
    1. load() parses the lockfile and builds the graph once
    2. query methods read the graph and return fresh result objects
    3. write_selection() serializes a chosen package set to a new file

    Usage:
        service = LockfileAnalysisService(Config())
        service.load("Cargo.lock")
        result = service.prune()
        service.write_selection(result.retained, "Cargo.lock.safe")
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        """Initialize the service.

        Args:
            config: Configuration object. If None, loads from default location.
        """
        self.config = config if config is not None else Config()
        self.categorizer = Categorizer.from_rules(
            self.config.category_rules,
            workspace_members=self.config.workspace_members,
        )
        self._document: Optional[LockfileDocument] = None
        self._graph: Optional[DependencyGraph] = None

    # Loading

    def load(self, path: Union[str, Path]) -> LockfileDocument:
        """Read a lockfile from disk and build its graph.

        Raises:
            LockfileIOError: If the file cannot be read.
            NameCollisionError: If names collide under the "error" policy.
        """
        document = read_lockfile(path, self.config.block_marker)
        self._set_document(document)
        return document

    def load_text(self, text: str, source_path: Optional[str] = None) -> LockfileDocument:
        """Parse lockfile text that is already in memory and build its graph."""
        document = parse_lockfile(text, self.config.block_marker)
        document.source_path = source_path
        self._set_document(document)
        return document

    def _set_document(self, document: LockfileDocument) -> None:
        graph = DependencyGraph.build(document.records, self.config.collision_policy)
        self._document = document
        self._graph = graph
        logger.info(
            f"Graph built: {len(graph)} packages, {len(document.anomalies)} anomalies, "
            f"{len(graph.collisions)} name collisions"
        )

    @property
    def document(self) -> LockfileDocument:
        if self._document is None:
            raise RuntimeError("No lockfile loaded; call load() first")
        return self._document

    @property
    def graph(self) -> DependencyGraph:
        if self._graph is None:
            raise RuntimeError("No lockfile loaded; call load() first")
        return self._graph

    # Queries

    def resolve_roots(self, roots: Optional[Iterable[str]] = None) -> Tuple[str, ...]:
        """Roots given by the caller, or the configured roots, deduplicated in order."""
        chosen = list(roots) if roots is not None else list(self.config.roots)
        return tuple(dict.fromkeys(chosen))

    def closure(self, roots: Optional[Iterable[str]] = None) -> ClosureReport:
        """Closure of the root set."""
        root_names = self.resolve_roots(roots)
        missing = tuple(name for name in root_names if name not in self.graph)
        for name in missing:
            logger.warning(f"Root package {name} is not in the lockfile")
        return ClosureReport(
            roots=root_names,
            closure=closure(self.graph, root_names),
            missing_roots=missing,
            total_packages=len(self.graph),
        )

    def prune(
        self, roots: Optional[Iterable[str]] = None, expand_roots: bool = True
    ) -> PruneResult:
        """Closure-safe prune.

        Args:
            roots: Root names; defaults to the configured roots.
            expand_roots: If True the required set is the closure of the roots,
                otherwise the roots themselves.
        """
        root_names = self.resolve_roots(roots)
        if not root_names:
            logger.warning("No roots given; every package is a removal candidate")
        required = closure(self.graph, root_names) if expand_roots else frozenset(root_names)
        return prune(self.graph, required)

    def remove_packages(self, names: Iterable[str], cascade: bool = True) -> PruneResult:
        """Remove named packages, optionally with everything only they needed."""
        return remove_packages(self.graph, names, cascade=cascade)

    def critical_report(
        self,
        threshold: Optional[int] = None,
        fan_in_floor: Optional[int] = None,
        seeds: Optional[Iterable[str]] = None,
    ) -> CriticalReport:
        """Critical packages plus the critical-path set grown from the roots."""
        threshold = self.config.critical_threshold if threshold is None else threshold
        floor = self.config.critical_path_fan_in_floor if fan_in_floor is None else fan_in_floor
        return CriticalReport(
            threshold=threshold,
            fan_in_floor=floor,
            critical=tuple(critical_nodes(self.graph, threshold)),
            critical_path=self.critical_path(seeds, floor),
            leaf_count=len(leaf_nodes(self.graph)),
        )

    def critical_path(
        self, seeds: Optional[Iterable[str]] = None, fan_in_floor: Optional[int] = None
    ) -> FrozenSet[str]:
        """Critical-path set plus always_include packages and their direct deps.

        Seed names that are not in the lockfile are dropped from the result.
        """
        floor = self.config.critical_path_fan_in_floor if fan_in_floor is None else fan_in_floor
        path = expand_critical_path(self.graph, self.resolve_roots(seeds), floor)
        extra = include_with_direct_deps(self.graph, self.config.always_include)
        return frozenset(name for name in path | extra if name in self.graph)

    def leaves(self) -> FrozenSet[str]:
        """Packages nothing depends on."""
        return leaf_nodes(self.graph)

    def categorize(self) -> Dict[str, List[str]]:
        """Package keys grouped into report categories."""
        return self.categorizer.bucketize(self.graph.all_names())

    def category_members(self, labels: Iterable[str]) -> List[str]:
        """Union of the packages in the given report categories, sorted.

        Raises:
            ConfigurationError: If a label is not one of the categorizer's.
        """
        buckets = self.categorize()
        members: Set[str] = set()
        for label in labels:
            if label not in buckets:
                raise ConfigurationError(
                    f"Unknown category '{label}' (known: {', '.join(buckets)})"
                )
            members.update(buckets[label])
        logger.info(f"Selected {len(members)} packages by category")
        return sorted(members)

    def constraints_on(self, target: str) -> List[Dict[str, Any]]:
        """Packages pinning target to a specific version in their dependency entry."""
        return [
            {"package": key, "dependency": spec.name, "constraint": spec.constraint}
            for key, spec in self.graph.constrained_dependents(target)
        ]

    def notable_status(self, names: Optional[Iterable[str]] = None) -> List[NotableStatus]:
        """Presence and version of notable packages (configured ones by default)."""
        chosen = list(names) if names is not None else self.config.notable_packages
        statuses = []
        for name in chosen:
            record = self.graph.get_record(name)
            statuses.append(
                NotableStatus(
                    name=name,
                    present=record is not None,
                    version=record.version if record is not None else None,
                )
            )
        return statuses

    def summary(self) -> Dict[str, Any]:
        """Overview of the loaded lockfile."""
        graph = self.graph
        is_valid, errors = graph.validate_graph()
        if not is_valid:
            logger.error(f"Graph index inconsistency: {errors}")
        buckets = self.categorize()
        return {
            "source_path": self.document.source_path,
            "record_count": len(self.document.records),
            "package_count": len(graph),
            "anomalies": [anomaly.to_dict() for anomaly in self.document.anomalies],
            "collisions": [collision.to_dict() for collision in graph.collisions],
            "dangling_reference_count": len(graph.dangling_references()),
            "leaf_count": len(leaf_nodes(graph)),
            "critical": [
                {"package": name, "fan_in": count}
                for name, count in critical_nodes(graph, self.config.critical_threshold)
            ],
            "categories": {label: len(members) for label, members in buckets.items()},
            "notable": [status.to_dict() for status in self.notable_status()],
            "graph_valid": is_valid,
        }

    def export_graph(self) -> Dict[str, Any]:
        """Full graph structure (nodes, edges, collisions, top fan-in) as a dict."""
        return self.graph.export_to_dict()

    # Output

    def render_selection(self, names: Iterable[str]) -> str:
        """Lockfile text holding the header plus the selected packages in file order."""
        return serialize_lockfile(self.document.header, self.graph.records_for(names))

    def write_selection(self, names: Iterable[str], output_path: Union[str, Path]) -> int:
        """Write the selected packages to a new lockfile.

        The full text is rendered in memory before anything touches the disk.

        Returns:
            Number of package blocks written.

        Raises:
            LockfileIOError: If the output cannot be written.
        """
        records = self.graph.records_for(names)
        text = serialize_lockfile(self.document.header, records)
        write_lockfile(output_path, text)
        logger.info(f"Wrote {len(records)} packages to {output_path}")
        return len(records)

    def default_output_path(self, suffix: str) -> Path:
        """Output path next to the source lockfile, e.g. Cargo.lock.safe."""
        source = self.document.source_path or "lockfile"
        return Path(f"{source}.{suffix}")
