# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Lockfile dependency-closure analysis and pruning."""

from .categorizer import Categorizer, CategoryRule
from .codec import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .config import Config
from .errors import ConfigurationError, LockfileIOError, LockpruneError, NameCollisionError
from .graph import DependencyGraph
from .models import (
    CollisionPolicy,
    DependencySpec,
    LockfileDocument,
    PackageRecord,
    ParseAnomaly,
)
from .pruner import PruneResult, cascade_removal, safe_removal_set, verify_closure
from .ranking import critical_nodes, expand_critical_path, leaf_nodes
from .reachability import closure
from .service import LockfileAnalysisService

__version__ = "0.1.0"

__all__ = [
    "Categorizer",
    "CategoryRule",
    "CollisionPolicy",
    "Config",
    "ConfigurationError",
    "DependencyGraph",
    "DependencySpec",
    "LockfileAnalysisService",
    "LockfileDocument",
    "LockfileIOError",
    "LockpruneError",
    "NameCollisionError",
    "PackageRecord",
    "ParseAnomaly",
    "PruneResult",
    "cascade_removal",
    "closure",
    "critical_nodes",
    "expand_critical_path",
    "leaf_nodes",
    "parse_lockfile",
    "read_lockfile",
    "safe_removal_set",
    "serialize_lockfile",
    "verify_closure",
    "write_lockfile",
]

# Conditional import for MCP server (requires the mcp package)
try:
    from .mcp_server import LockfileMCPServer

    __all__.append("LockfileMCPServer")
except ImportError:
    # MCP package not installed
    pass
