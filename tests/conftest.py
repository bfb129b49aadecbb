# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures: Cargo.lock-style text builders and small graphs."""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from lockprune.codec import parse_lockfile
from lockprune.graph import DependencyGraph
from lockprune.models import CollisionPolicy

CARGO_HEADER = (
    "# This file is automatically @generated by Cargo.\n"
    "# It will be regenerated on the next build.\n"
    "version = 3\n"
    "\n"
)

CRATES_IO = "registry+https://github.com/rust-lang/crates.io-index"

PackageSpec = Tuple[str, str, Sequence[str]]


def _render(packages: Sequence[PackageSpec], header: str = CARGO_HEADER) -> str:
    parts = [header]
    for name, version, deps in packages:
        block = f'[[package]]\nname = "{name}"\nversion = "{version}"\nsource = "{CRATES_IO}"\n'
        if deps:
            block += "dependencies = [\n"
            block += "".join(f' "{dep}",\n' for dep in deps)
            block += "]\n"
        parts.append(block + "\n")
    return "".join(parts)


@pytest.fixture
def make_lockfile() -> Callable[..., str]:
    """Factory: list of (name, version, deps) -> lockfile text."""
    return _render


@pytest.fixture
def make_graph() -> Callable[..., DependencyGraph]:
    """Factory: {name: [deps]} -> DependencyGraph (every package at version 1.0.0)."""

    def _make(
        edges: Dict[str, List[str]], collision_policy: Optional[str] = None
    ) -> DependencyGraph:
        text = _render([(name, "1.0.0", deps) for name, deps in edges.items()])
        document = parse_lockfile(text)
        return DependencyGraph.build(
            document.records, collision_policy or CollisionPolicy.VERSIONED
        )

    return _make


@pytest.fixture
def sample_lockfile_text() -> str:
    """A small web-service lockfile with shared deps, a cycle and an unused branch."""
    return _render(
        [
            ("actix-web", "4.9.0", ["bytes", "futures-core", "serde", "tokio"]),
            ("actix-web-actors", "4.3.1+deprecated", ["actix", "actix-web", "bytes"]),
            ("actix", "0.13.5", ["bytes", "futures-core", "tokio"]),
            ("app", "0.1.0", ["actix-web", "serde", "serde_json"]),
            ("bytes", "1.7.2", []),
            ("futures-core", "0.3.31", []),
            ("serde", "1.0.210", ["serde_derive"]),
            ("serde_derive", "1.0.210", ["proc-macro2", "quote", "syn"]),
            ("serde_json", "1.0.128", ["itoa", "ryu", "serde"]),
            ("itoa", "1.0.11", []),
            ("ryu", "1.0.18", []),
            ("proc-macro2", "1.0.86", ["unicode-ident"]),
            ("quote", "1.0.37", ["proc-macro2"]),
            ("syn", "2.0.79", ["proc-macro2", "quote", "unicode-ident"]),
            ("unicode-ident", "1.0.13", []),
            ("tokio", "1.40.0", ["bytes", "mio", "tokio-macros"]),
            ("tokio-macros", "2.4.0", ["proc-macro2", "quote", "syn"]),
            ("mio", "1.0.2", ["libc"]),
            ("libc", "0.2.159", []),
            ("sqlx", "0.8.2", ["sqlx-core"]),
            ("sqlx-core", "0.8.2", ["bytes", "sqlx"]),
        ]
    )


@pytest.fixture
def sample_lockfile(tmp_path: Path, sample_lockfile_text: str) -> Path:
    """sample_lockfile_text written to tmp_path/Cargo.lock."""
    path = tmp_path / "Cargo.lock"
    path.write_text(sample_lockfile_text, encoding="utf-8")
    return path
