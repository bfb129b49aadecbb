# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command-line interface for lockfile analysis and pruning.

Examples:
    lockprune summary Cargo.lock
    lockprune closure Cargo.lock --roots backend,graphql
    lockprune prune Cargo.lock --roots backend -o Cargo.lock.safe
    lockprune critical Cargo.lock --threshold 5 --fan-in-floor 2
    lockprune remove Cargo.lock actix-web-actors
    lockprune remove Cargo.lock --category database
    lockprune export Cargo.lock > graph.json
    lockprune constraints Cargo.lock actix-web
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from lockprune.config import Config
from lockprune.errors import LockpruneError
from lockprune.logging_setup import setup_logging
from lockprune.models import CollisionPolicy
from lockprune.report import (
    CATEGORY_PREVIEW_LIMIT,
    format_categories,
    format_closure,
    format_constraints,
    format_critical_report,
    format_prune_result,
    format_summary,
)
from lockprune.service import LockfileAnalysisService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CLOSURE_VIOLATION = 2


def _split_names(values: Optional[List[str]]) -> Optional[List[str]]:
    """Flatten repeated and comma-separated name options."""
    if not values:
        return None
    names: List[str] = []
    for value in values:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def _emit(args: argparse.Namespace, payload: Any, text: str) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(text)


def cmd_summary(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    summary = service.summary()
    _emit(args, summary, format_summary(summary))
    return EXIT_OK


def cmd_closure(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    report = service.closure()
    text = format_closure(report)
    if args.list:
        text += "\n" + "\n".join(f"  {name}" for name in sorted(report.closure))
    _emit(args, report.to_dict(), text)
    return EXIT_OK


def cmd_prune(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    result = service.prune(expand_roots=not args.exact_roots)
    output = None
    if not args.dry_run:
        output = args.output or service.default_output_path("safe")
        service.write_selection(result.retained, output)
    payload = result.to_dict()
    payload["output"] = str(output) if output else None
    _emit(args, payload, format_prune_result(result, output))
    return EXIT_OK


def cmd_critical(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    report = service.critical_report(threshold=args.threshold, fan_in_floor=args.fan_in_floor)
    output = None
    if not args.dry_run:
        output = args.output or service.default_output_path("critical")
        service.write_selection(report.critical_path, output)

    text = format_critical_report(report)
    if output is not None:
        text += f"\nCreated {output}"
    payload = report.to_dict()
    payload["output"] = str(output) if output else None
    _emit(args, payload, text)
    return EXIT_OK


def cmd_leaves(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    leaves = sorted(service.leaves())
    text = f"Leaf packages: {len(leaves)}\n" + "\n".join(f"  {name}" for name in leaves)
    _emit(args, {"leaf_count": len(leaves), "leaves": leaves}, text)
    return EXIT_OK


def cmd_categorize(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    buckets = service.categorize()
    _emit(args, buckets, format_categories(buckets, args.limit))
    return EXIT_OK


def cmd_remove(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    names = _split_names(args.packages) or []
    categories = _split_names(args.category) or []
    if categories:
        names = sorted(set(names) | set(service.category_members(categories)))
    result = service.remove_packages(names, cascade=not args.no_cascade)
    output = None
    if not args.dry_run:
        # Category-only removals are named after the categories, e.g. Cargo.lock.no_database
        suffix = "no_" + "_".join(categories) if categories and not args.packages else "pruned"
        output = args.output or service.default_output_path(suffix)
        service.write_selection(result.retained, output)
    payload = result.to_dict()
    payload["output"] = str(output) if output else None
    _emit(args, payload, format_prune_result(result, output))
    return EXIT_OK if result.is_closed else EXIT_CLOSURE_VIOLATION


def cmd_constraints(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    constraints = service.constraints_on(args.target)
    _emit(args, constraints, format_constraints(args.target, constraints))
    return EXIT_OK


def cmd_export(service: LockfileAnalysisService, args: argparse.Namespace) -> int:
    print(json.dumps(service.export_graph(), indent=2, ensure_ascii=False))
    return EXIT_OK


COMMANDS: Dict[str, Callable[[LockfileAnalysisService, argparse.Namespace], int]] = {
    "summary": cmd_summary,
    "closure": cmd_closure,
    "prune": cmd_prune,
    "critical": cmd_critical,
    "leaves": cmd_leaves,
    "categorize": cmd_categorize,
    "remove": cmd_remove,
    "constraints": cmd_constraints,
    "export": cmd_export,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per analysis."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("lockfile", type=Path, help="Lockfile to analyze (e.g. Cargo.lock)")
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file. Default: ./.lockprune.yml",
    )
    common.add_argument(
        "--roots",
        action="append",
        default=None,
        help="Root package names, comma-separated or repeated (overrides config)",
    )
    common.add_argument(
        "--collision-policy",
        choices=list(CollisionPolicy.ALL),
        default=None,
        help="How duplicate package names are keyed (overrides config)",
    )
    common.add_argument(
        "--json",
        action="store_true",
        help="Output report as JSON instead of human-readable text",
    )
    common.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Write structured JSON logs to this directory",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")

    writer = argparse.ArgumentParser(add_help=False)
    writer.add_argument("-o", "--output", type=Path, default=None, help="Output lockfile path")
    writer.add_argument(
        "--dry-run", action="store_true", help="Report only; do not write an output file"
    )

    parser = argparse.ArgumentParser(
        prog="lockprune",
        description="Analyze and minimize dependency lockfiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("summary", parents=[common], help="Overview of the lockfile")

    closure_parser = sub.add_parser("closure", parents=[common], help="Closure of the roots")
    closure_parser.add_argument("--list", action="store_true", help="List closure members")

    prune_parser = sub.add_parser(
        "prune", parents=[common, writer], help="Write a closure-safe minimal lockfile"
    )
    prune_parser.add_argument(
        "--exact-roots",
        action="store_true",
        help="Treat the roots as the required set instead of their closure",
    )

    critical_parser = sub.add_parser(
        "critical", parents=[common, writer], help="Rank packages by fan-in"
    )
    critical_parser.add_argument("--threshold", type=int, default=None)
    critical_parser.add_argument("--fan-in-floor", type=int, default=None)

    sub.add_parser("leaves", parents=[common], help="Packages nothing depends on")

    categorize_parser = sub.add_parser(
        "categorize", parents=[common], help="Group packages into report categories"
    )
    categorize_parser.add_argument(
        "--limit",
        type=int,
        default=CATEGORY_PREVIEW_LIMIT,
        help="Names shown per category (0 for all)",
    )

    remove_parser = sub.add_parser(
        "remove", parents=[common, writer], help="Remove named packages"
    )
    remove_parser.add_argument("packages", nargs="*", help="Packages to remove")
    remove_parser.add_argument(
        "--category",
        action="append",
        metavar="LABEL",
        help="Remove every package in a report category (repeatable, comma-separated)",
    )
    remove_parser.add_argument(
        "--no-cascade",
        action="store_true",
        help="Do not also remove packages only the named ones depend on",
    )

    constraints_parser = sub.add_parser(
        "constraints", parents=[common], help="Packages pinning a dependency version"
    )
    constraints_parser.add_argument("target", help="Dependency name to look for")

    sub.add_parser("export", parents=[common], help="Dump the dependency graph as JSON")

    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO if args.verbose else logging.WARNING
    if args.log_dir is not None:
        setup_logging(log_dir=args.log_dir, log_level=level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the lockprune command.

    Returns:
        Exit code (0 success, 1 error, 2 closure violation after removal)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "remove" and not args.packages and not args.category:
        parser.error("remove needs package names or --category")
    _configure_logging(args)

    overrides: Dict[str, Any] = {}
    roots = _split_names(args.roots)
    if roots is not None:
        overrides["roots"] = roots
    if args.collision_policy is not None:
        overrides["collision_policy"] = args.collision_policy

    try:
        service = LockfileAnalysisService(Config(config_path=args.config, overrides=overrides))
        service.load(args.lockfile)
        return COMMANDS[args.command](service, args)
    except LockpruneError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
