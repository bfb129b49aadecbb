# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for lockfile analysis.

This module defines the structures shared by the codec, graph and pruning layers:
- DependencySpec: One dependency entry (name plus optional version constraint)
- PackageRecord: One package block from the lockfile, with its verbatim text
- ParseAnomaly: A non-fatal problem found while parsing a block
- LockfileDocument: Header, records and anomalies for a whole lockfile
- NameCollision: Two or more records sharing a package name
- CollisionPolicy / AnomalyType: Enum-like string constants

All models use JSON-compatible primitives for serialization.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Block-start marker for Cargo.lock-style files
DEFAULT_BLOCK_MARKER = "[[package]]"


class CollisionPolicy:
    """How the graph keys records that share a package name.

    Design: Using class constants (not Enum) for JSON/YAML-compatible strings.
    """

    VERSIONED = "versioned"  # colliding names keyed "<name> <version>"
    LAST_WINS = "last_wins"  # last record with the name becomes the node
    FIRST_WINS = "first_wins"  # first record with the name becomes the node
    ERROR = "error"  # raise NameCollisionError

    ALL = (VERSIONED, LAST_WINS, FIRST_WINS, ERROR)


class AnomalyType:
    """Kinds of non-fatal parse problems."""

    MISSING_NAME = "missing_name"
    MISSING_VERSION = "missing_version"
    UNTERMINATED_DEPENDENCIES = "unterminated_dependencies"


@dataclass(frozen=True)
class DependencySpec:
    """A single dependency entry as written in a package block.

    Cargo writes `"serde"` when one version is locked and `"serde 1.0.197"`
    (optionally followed by a source) when several are. Only the name takes
    part in graph edges; the constraint is kept for reporting.
    """

    name: str
    constraint: Optional[str] = None

    @property
    def version(self) -> Optional[str]:
        """Bare version from the constraint, without any source suffix."""
        if not self.constraint:
            return None
        return self.constraint.split()[0]

    @classmethod
    def from_token(cls, token: str) -> "DependencySpec":
        """Split a quoted dependency token into name and constraint."""
        parts = token.strip().split(None, 1)
        if not parts:
            return cls(name="")
        constraint = parts[1].strip() if len(parts) > 1 else None
        return cls(name=parts[0], constraint=constraint or None)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {"name": self.name}
        if self.constraint is not None:
            result["constraint"] = self.constraint
        return result


@dataclass(frozen=True)
class PackageRecord:
    """One package block from a lockfile.

    raw_block holds the exact original text (block marker included), so
    serialization is a byte-exact passthrough.
    """

    name: str  # empty when the block has no name line
    version: str  # opaque, empty when the block has no version line
    dependency_specs: Tuple[DependencySpec, ...]
    raw_block: str
    index: int  # ordinal position in the source file
    source: str = ""  # e.g. "registry+https://...", empty for workspace members

    @property
    def dependencies(self) -> Tuple[str, ...]:
        """Dependency names in declared order (duplicates preserved)."""
        return tuple(spec.name for spec in self.dependency_specs)

    @property
    def is_usable(self) -> bool:
        """Whether the record can become a graph node."""
        return bool(self.name) and bool(self.version)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict (raw text omitted)."""
        return {
            "name": self.name,
            "version": self.version,
            "dependencies": [spec.to_dict() for spec in self.dependency_specs],
            "index": self.index,
            "source": self.source,
        }


@dataclass(frozen=True)
class ParseAnomaly:
    """A non-fatal problem found in one package block."""

    anomaly_type: str  # AnomalyType value
    record_index: int
    message: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "type": self.anomaly_type,
            "record_index": self.record_index,
            "message": self.message,
        }
        if self.name:
            result["name"] = self.name
        return result


@dataclass
class LockfileDocument:
    """A parsed lockfile: verbatim header plus package records in file order."""

    header: str
    records: List[PackageRecord] = field(default_factory=list)
    anomalies: List[ParseAnomaly] = field(default_factory=list)
    source_path: Optional[str] = None

    @property
    def usable_records(self) -> List[PackageRecord]:
        """Records that have both a name and a version."""
        return [record for record in self.records if record.is_usable]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "record_count": len(self.records),
            "usable_record_count": len(self.usable_records),
            "anomalies": [anomaly.to_dict() for anomaly in self.anomalies],
        }
        if self.source_path is not None:
            result["source_path"] = self.source_path
        return result


@dataclass(frozen=True)
class NameCollision:
    """Records sharing a name, and the keys the collision policy gave them."""

    name: str
    versions: Tuple[str, ...]
    keys: Tuple[str, ...]  # empty for records shadowed by first/last wins
    policy: str

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "name": self.name,
            "versions": list(self.versions),
            "keys": list(self.keys),
            "policy": self.policy,
        }
