# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Human-readable report formatting.

Every formatter takes plain result objects or dicts and returns a string;
nothing here touches the graph.
"""

from typing import Any, Dict, Iterable, List, Sequence, Tuple

from lockprune.pruner import PruneResult
from lockprune.service import ClosureReport, CriticalReport, NotableStatus

# Names shown per category before truncating with "..."
CATEGORY_PREVIEW_LIMIT = 10


def _name_list(names: Iterable[str], limit: int = 0) -> str:
    ordered = sorted(names)
    if limit and len(ordered) > limit:
        return ", ".join(ordered[:limit]) + ", ..."
    return ", ".join(ordered)


def format_categories(buckets: Dict[str, List[str]], limit: int = 0) -> str:
    """Category breakdown: one header line per bucket, then its members."""
    lines = ["Package breakdown:"]
    for category, members in buckets.items():
        lines.append("")
        lines.append(f"{category}: {len(members)} packages")
        if members:
            lines.append(f"  {_name_list(members, limit)}")
    return "\n".join(lines)


def format_critical(critical: Sequence[Tuple[str, int]], threshold: int) -> str:
    """Critical package ranking."""
    lines = [f"Critical packages (>{threshold} dependents):"]
    if not critical:
        lines.append("  (none)")
    for name, count in critical:
        lines.append(f"  {name}: {count} dependents")
    return "\n".join(lines)


def format_critical_report(report: CriticalReport) -> str:
    """Critical ranking, leaf count and critical-path size."""
    return "\n".join(
        [
            format_critical(report.critical, report.threshold),
            "",
            f"Leaf packages: {report.leaf_count}",
            f"Critical path packages (fan-in floor {report.fan_in_floor}): "
            f"{len(report.critical_path)}",
        ]
    )


def format_notable(statuses: Sequence[NotableStatus]) -> str:
    """Notable packages with a check or cross mark."""
    lines = ["Notable packages included:"]
    for status in statuses:
        if status.present:
            lines.append(f"  ✓ {status.name} v{status.version}")
        else:
            lines.append(f"  ✗ {status.name}")
    return "\n".join(lines)


def format_closure(report: ClosureReport) -> str:
    lines = [
        f"Roots: {_name_list(report.roots)}",
        f"Required packages (including dependencies): {len(report.closure)} "
        f"of {report.total_packages}",
    ]
    if report.missing_roots:
        lines.append(f"Roots not in lockfile: {_name_list(report.missing_roots)}")
    return "\n".join(lines)


def format_prune_result(result: PruneResult, output_path: Any = None) -> str:
    """Counts for a prune or removal, plus any closure violations."""
    lines = []
    if result.required:
        lines.append(f"Required packages: {len(result.required)}")
    lines.append(f"Packages removed: {len(result.removed)}")
    if result.removed:
        lines.append(f"  {_name_list(result.removed, CATEGORY_PREVIEW_LIMIT * 2)}")
    lines.append(f"Packages remaining: {len(result.retained)}")
    if result.unknown:
        lines.append(f"Unknown packages ignored: {_name_list(result.unknown)}")
    if result.violations:
        lines.append(f"Closure violations: {len(result.violations)}")
        for pkg, dep in result.violations:
            lines.append(f"  {pkg} -> {dep}")
    if output_path is not None:
        lines.append(f"Created {output_path}")
    return "\n".join(lines)


def format_summary(summary: Dict[str, Any]) -> str:
    """Overview produced by LockfileAnalysisService.summary()."""
    lines = [
        f"Lockfile: {summary.get('source_path') or '(in memory)'}",
        f"Package blocks: {summary['record_count']}",
        f"Packages in graph: {summary['package_count']}",
        f"Leaf packages: {summary['leaf_count']}",
        f"Dangling references: {summary['dangling_reference_count']}",
    ]

    anomalies = summary.get("anomalies", [])
    if anomalies:
        lines.append(f"Parse anomalies: {len(anomalies)}")
        for anomaly in anomalies:
            lines.append(f"  {anomaly['message']}")

    collisions = summary.get("collisions", [])
    if collisions:
        lines.append(f"Name collisions: {len(collisions)}")
        for collision in collisions:
            lines.append(
                f"  {collision['name']} ({', '.join(collision['versions'])}) "
                f"-> {collision['policy']}"
            )

    critical = summary.get("critical", [])
    lines.append("")
    lines.append(f"Most depended-on packages: {len(critical)}")
    for entry in critical:
        lines.append(f"  {entry['package']}: {entry['fan_in']} dependents")

    lines.append("")
    lines.append("Categories:")
    for category, count in summary.get("categories", {}).items():
        lines.append(f"  {category}: {count}")

    notable = summary.get("notable", [])
    if notable:
        lines.append("")
        statuses = [
            NotableStatus(entry["name"], entry["present"], entry["version"]) for entry in notable
        ]
        lines.append(format_notable(statuses))
    return "\n".join(lines)


def format_constraints(target: str, constraints: Sequence[Dict[str, Any]]) -> str:
    lines = [f"Packages constraining {target}: {len(constraints)}"]
    for entry in constraints:
        lines.append(f"  {entry['package']} requires {entry['dependency']} {entry['constraint']}")
    return "\n".join(lines)
