# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Exception hierarchy for lockprune.

Only boundary failures (reading or writing a lockfile), an explicit collision
policy of "error", and unusable configuration raise. Graph queries never do:
missing names give empty results.
"""

from typing import Iterable


class LockpruneError(Exception):
    """Base class for all lockprune errors."""

    pass


class LockfileIOError(LockpruneError):
    """Raised when a lockfile cannot be read or an output file cannot be written."""

    def __init__(self, path: str, operation: str, reason: str):
        self.path = path
        self.operation = operation
        self.reason = reason
        super().__init__(f"Failed to {operation} {path}: {reason}")


class NameCollisionError(LockpruneError):
    """Raised when duplicate package names are found under the "error" policy."""

    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__(f"Duplicate package names in lockfile: {', '.join(self.names)}")


class ConfigurationError(LockpruneError):
    """Raised when configuration validation fails critically."""

    pass
