"""runlens command line entry point.

Subcommands query the configured run sources (latest runs, runs in a date
range, one run's details, flaky summary, asset paths) or work directly on
a run directory or report file (tree, parse).  Results are printed as YAML,
or JSON with ``--json``.
"""

from __future__ import annotations

import argparse
import datetime
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from runlens.config import RunLensConfig
from runlens.errors import NotFound, PathEscape, RunLensError
from runlens.report.locator import LocatedReport, ReportFormat, locate_report
from runlens.report.parser import parse_report
from runlens.run.run_model import build_run_model
from runlens.service import RunLens

EXIT_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_PATH_ESCAPE = 3

# Subcommands that operate on a configured filter item
_ITEM_COMMANDS = ("latest", "runs", "between", "details", "flaky", "asset")


def _add_item_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--filter", required=True, help="Configured filter name")
    parser.add_argument("--item", required=True, help="Item title within the filter")


def _add_format_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=["auto", "html", "json"],
        default="auto",
        help="Report format (default: auto, prefers the JSON export)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="runlens - inspect BDD test run reports and flaky scenarios"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("runlens.yaml"),
        help="Path to the YAML configuration file (default: runlens.yaml)",
    )
    parser.add_argument(
        "--cache-db",
        type=Path,
        default=None,
        help="Path to the cache database (overrides the configuration)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print JSON instead of YAML",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log progress to stderr",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    latest_parser = subparsers.add_parser("latest", help="Show the newest run")
    _add_item_args(latest_parser)

    runs_parser = subparsers.add_parser("runs", help="List the newest runs")
    _add_item_args(runs_parser)
    runs_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Number of runs (default: history_limit from the configuration)",
    )

    between_parser = subparsers.add_parser(
        "between", help="List runs within a date or datetime range",
    )
    _add_item_args(between_parser)
    between_parser.add_argument(
        "--from", dest="start", required=True, help="Start (ISO date or datetime)",
    )
    between_parser.add_argument(
        "--to", dest="end", required=True, help="End (ISO date or datetime, inclusive)",
    )

    details_parser = subparsers.add_parser(
        "details", help="Show one run with its tree and scenario history",
    )
    _add_item_args(details_parser)
    details_parser.add_argument("--run", required=True, help="Run directory name")

    flaky_parser = subparsers.add_parser(
        "flaky", help="Count flaky scenarios over the recent runs",
    )
    _add_item_args(flaky_parser)

    asset_parser = subparsers.add_parser(
        "asset", help="Resolve a media path inside a run directory",
    )
    _add_item_args(asset_parser)
    asset_parser.add_argument("--run", required=True, help="Run directory name")
    asset_parser.add_argument("--path", required=True, help="Path relative to the run")

    tree_parser = subparsers.add_parser(
        "tree", help="Print the navigable tree of a run directory",
    )
    tree_parser.add_argument("--run-dir", required=True, type=Path, help="Run directory")
    _add_format_arg(tree_parser)

    parse_parser = subparsers.add_parser(
        "parse", help="Parse a report file or run directory",
    )
    parse_parser.add_argument("report", type=Path, help="Report file or run directory")
    _add_format_arg(parse_parser)
    parse_parser.add_argument(
        "--no-logs",
        action="store_true",
        default=False,
        help="Omit step logs",
    )
    return parser.parse_args(argv)


def _emit(data: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return
    print(
        yaml.dump(
            data,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        ),
        end="",
    )


def _parse_when(value: str, end_of_day: bool = False) -> datetime.datetime:
    """Parse an ISO date or datetime; a bare end date covers the whole day."""
    try:
        if len(value.strip()) == 10:
            day = datetime.date.fromisoformat(value.strip())
            at = datetime.time.max if end_of_day else datetime.time.min
            return datetime.datetime.combine(day, at)
        return datetime.datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}': {e}") from e


def _locate(path: Path, fmt_name: str) -> LocatedReport:
    fmt = ReportFormat.parse(fmt_name)
    if path.is_dir():
        return locate_report(path, fmt)
    if not path.is_file():
        raise NotFound(f"Report not found: {path}")
    if fmt is None:
        fmt = ReportFormat.EXPORT if path.suffix.lower() == ".json" else ReportFormat.HTML
    return LocatedReport(path, fmt)


def cmd_parse(args: argparse.Namespace) -> int:
    """Handle parse subcommand."""
    located = _locate(args.report, args.format)
    report = parse_report(located, include_logs=not args.no_logs)
    _emit(report.to_dict(), args.json)
    return 0


def cmd_tree(args: argparse.Namespace) -> int:
    """Handle tree subcommand."""
    located = locate_report(args.run_dir, ReportFormat.parse(args.format))
    model = build_run_model(parse_report(located, include_logs=True).features)
    _emit(model.to_dict(), args.json)
    return 0


def cmd_item(lens: RunLens, args: argparse.Namespace) -> int:
    """Handle the subcommands that query a configured item."""
    if args.command == "latest":
        run = lens.latest_run(args.filter, args.item)
        if run is None:
            print("No runs found")
            return 0
        _emit(run.to_dict(), args.json)
    elif args.command == "runs":
        runs = lens.latest_runs(args.filter, args.item, args.limit)
        _emit([r.to_dict() for r in runs], args.json)
    elif args.command == "between":
        start = _parse_when(args.start)
        end = _parse_when(args.end, end_of_day=True)
        runs = lens.runs_between(args.filter, args.item, start, end)
        _emit([r.to_dict() for r in runs], args.json)
    elif args.command == "details":
        details = lens.run_details(args.filter, args.item, args.run)
        _emit(details.to_dict(), args.json)
    elif args.command == "flaky":
        _emit(lens.flaky_summary(args.filter, args.item).to_dict(), args.json)
    elif args.command == "asset":
        print(lens.resolve_asset(args.filter, args.item, args.run, args.path))
    return 0


def _run(args: argparse.Namespace) -> int:
    if args.command == "parse":
        return cmd_parse(args)
    if args.command == "tree":
        return cmd_tree(args)
    if args.command in _ITEM_COMMANDS:
        config = RunLensConfig(args.config)
        with RunLens(config, db_path=args.cache_db) as lens:
            return cmd_item(lens, args)
    print(f"Unknown command: {args.command}", file=sys.stderr)
    return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return EXIT_ERROR

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return _run(args)
    except PathEscape as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_PATH_ESCAPE
    except NotFound as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except (RunLensError, argparse.ArgumentTypeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
