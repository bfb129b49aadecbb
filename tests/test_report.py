# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for human-readable report formatting."""

from lockprune.pruner import PruneResult
from lockprune.report import (
    format_categories,
    format_closure,
    format_critical,
    format_notable,
    format_prune_result,
    format_summary,
)
from lockprune.service import ClosureReport, NotableStatus


def test_format_categories_truncates():
    buckets = {"tokio_runtime": ["tokio", "mio", "tokio-util"], "other": []}
    text = format_categories(buckets, limit=2)
    assert text.splitlines() == [
        "Package breakdown:",
        "",
        "tokio_runtime: 3 packages",
        "  mio, tokio, ...",
        "",
        "other: 0 packages",
    ]


def test_format_critical():
    assert format_critical([("bytes", 12)], 5) == (
        "Critical packages (>5 dependents):\n  bytes: 12 dependents"
    )
    assert format_critical([], 5).endswith("(none)")


def test_format_notable():
    text = format_notable(
        [NotableStatus("tokio", True, "1.40.0"), NotableStatus("sea-orm", False)]
    )
    assert text.splitlines() == [
        "Notable packages included:",
        "  ✓ tokio v1.40.0",
        "  ✗ sea-orm",
    ]


def test_format_closure_lists_missing_roots():
    report = ClosureReport(("app", "ghost"), frozenset({"app", "ghost", "serde"}), ("ghost",), 9)
    lines = format_closure(report).splitlines()
    assert lines[1] == "Required packages (including dependencies): 3 of 9"
    assert lines[2] == "Roots not in lockfile: ghost"


def test_format_prune_result():
    result = PruneResult(
        required=frozenset(),
        removed=frozenset({"bytes"}),
        retained=frozenset({"tokio"}),
        violations=(("tokio", "bytes"),),
    )
    text = format_prune_result(result, "Cargo.lock.pruned")
    assert "Packages removed: 1" in text
    assert "Packages remaining: 1" in text
    assert "  tokio -> bytes" in text
    assert text.endswith("Created Cargo.lock.pruned")
    assert "Required packages" not in text


def test_format_summary_in_memory():
    summary = {
        "source_path": None,
        "record_count": 3,
        "package_count": 2,
        "leaf_count": 1,
        "dangling_reference_count": 0,
        "anomalies": [{"message": "Block 2 has no name line"}],
        "collisions": [],
        "critical": [],
        "categories": {"other": 2},
        "notable": [{"name": "tokio", "present": False, "version": None}],
    }
    text = format_summary(summary)
    assert text.startswith("Lockfile: (in memory)")
    assert "Parse anomalies: 1" in text
    assert "  ✗ tokio" in text
