"""Command-line interface for tool usage statistics."""

import argparse
import csv
import io
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from tool_stats import __version__
from tool_stats.aggregate import AggregateResult, analyze_events
from tool_stats.classify import SUBAGENT, TOOL, EventClassifier
from tool_stats.config import OUTPUT_FORMATS, ConfigError, Settings
from tool_stats.ingest import AnalysisReport, analyze_files, find_log_files
from tool_stats.queries import (
    categorize_tools,
    filter_by_time_range,
    group_by_session,
    parse_timestamp,
    top_n,
)

logger = logging.getLogger("tool-stats")

# Formatter registry: list of (predicate, formatter) tuples
# Order matters - first match wins
_FORMATTERS: list[tuple[callable, callable]] = []


def _register_formatter(predicate: callable):
    """Decorator to register a table formatter with its predicate."""

    def decorator(formatter: callable):
        _FORMATTERS.append((predicate, formatter))
        return formatter

    return decorator


def _format_aggregate(data: dict, title: str, label: str) -> list[str]:
    if data["total_invocations"] == 0:
        return [f"No {label.lower()} invocations found"]

    ranked = sorted(data["counts"].items(), key=lambda item: -item[1])
    width = max(len(label), *(len(name) for name, _ in ranked))
    lines = [title, "=" * 50, f"  {label:<{width}}  {'Count':>7}  {'Percentage':>10}"]
    for name, count in ranked:
        pct = data["percentages"].get(name, 0.0)
        lines.append(f"  {name:<{width}}  {count:>7}  {pct:>9.2f}%")
    lines.append(f"Total: {data['total_invocations']}")
    return lines


@_register_formatter(lambda d: "tools" in d and "subagents" in d)
def _format_summary(data: dict) -> list[str]:
    lines = _format_aggregate(data["tools"], "Tool Usage Statistics", "Tool")
    lines.append("")
    lines.extend(_format_aggregate(data["subagents"], "Subagent Usage Statistics", "Subagent"))
    if data.get("failures"):
        lines.append("")
        lines.append(f"Failed files: {len(data['failures'])}")
        for failure in data["failures"]:
            lines.append(f"  {failure['path']}: {failure['error']}")
    return lines


@_register_formatter(lambda d: "ranking" in d)
def _format_top(data: dict) -> list[str]:
    lines = [f"Top {data['limit']} {data['kind']}s:"]
    for i, item in enumerate(data["ranking"], 1):
        lines.append(f"  {i}. {item['name']}: {item['count']} ({item['percentage']:.2f}%)")
    return lines


@_register_formatter(lambda d: "categories" in d)
def _format_categories(data: dict) -> list[str]:
    lines = ["Tool categories:"]
    for category, tools in data["categories"].items():
        lines.append(f"  {category}: {', '.join(tools) if tools else '-'}")
    return lines


@_register_formatter(lambda d: "sessions" in d)
def _format_sessions(data: dict) -> list[str]:
    lines = [f"Sessions: {data['session_count']}", ""]
    for session in data["sessions"][:20]:
        lines.append(f"  {session['session_id'][:16]}: {session['event_count']} events")
        for name, count in list(session["counts"].items())[:5]:
            lines.append(f"    {name}: {count}")
    return lines


@_register_formatter(lambda d: "durations" in d)
def _format_durations(data: dict) -> list[str]:
    if not data["durations"]:
        return ["No tool durations recorded"]
    lines = ["Tool durations:"]
    for name, stats in data["durations"].items():
        lines.append(
            f"  {name}: {stats['count']} calls, avg {stats['average']:.1f}, "
            f"min {stats['minimum']}, max {stats['maximum']}"
        )
    return lines


def format_csv(data: dict) -> str:
    """Format summary data as Type,Name,Count,Percentage rows sorted by count."""
    if "tools" not in data or "subagents" not in data:
        raise ValueError("CSV output is only available for usage summaries")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Type", "Name", "Count", "Percentage"])
    for row_type, section in (("Tool", data["tools"]), ("Subagent", data["subagents"])):
        for name, count in sorted(section["counts"].items(), key=lambda item: -item[1]):
            writer.writerow([row_type, name, count, f"{section['percentages'][name]:.2f}"])
    return buffer.getvalue().rstrip("\n")


def format_output(data: dict, output_format: str = "table") -> str:
    """Format output as table, JSON or CSV."""
    if output_format == "json":
        return json.dumps(data, indent=2, default=str)
    if output_format == "csv":
        return format_csv(data)

    for predicate, formatter in _FORMATTERS:
        if predicate(data):
            return "\n".join(formatter(data))

    # Fallback to JSON if no formatter matches
    return json.dumps(data, indent=2, default=str)


def handle_output(output: str, output_file: str | None = None) -> None:
    """Print output, or write it to a file."""
    if output_file:
        Path(output_file).write_text(output + "\n", encoding="utf-8")
        print(f"Output saved to {output_file}")
    else:
        print(output)


def load_settings(args) -> Settings:
    """Merge environment settings with command-line values."""
    output_format = "json" if getattr(args, "json", False) else getattr(args, "format", None)
    return (
        Settings.from_env()
        .with_overrides(
            verbose=args.verbose or None,
            output_format=output_format,
            max_line_length=getattr(args, "max_line_length", None),
            workers=getattr(args, "workers", None),
        )
        .validate()
    )


def resolve_log_files(args, settings: Settings) -> list[Path]:
    """Pick transcripts from explicit paths, --all, --project or the current directory."""
    if args.files:
        return [Path(f) for f in args.files]

    project = None if args.all else (args.project or Path.cwd())
    files = find_log_files(
        settings.logs_dirs,
        project=project,
        include_patterns=settings.include_patterns,
        exclude_patterns=settings.exclude_patterns,
    )
    if not files:
        if args.all:
            where = "in " + " or ".join(str(d) for d in settings.logs_dirs)
        else:
            where = f"for project: {project}"
        print(f"No Claude log files found {where}", file=sys.stderr)
        print("Please ensure Claude Code has been used and generated logs.", file=sys.stderr)
    return files


def run_analysis(args, settings: Settings, keep_events: bool = False) -> AnalysisReport:
    """Analyze the selected transcripts, scoped to --since/--until if given.

    Events are only retained when ``keep_events`` is set or a time range
    needs them.
    """
    on_error = None
    if args.show_errors:

        def on_error(error):
            logger.warning(f"{error.source}:{error.line_number}: {error.message}")

    classifier = EventClassifier(include_system_notices=args.system_notices)
    time_range = bool(args.since or args.until)
    report = analyze_files(
        resolve_log_files(args, settings),
        settings,
        classifier,
        on_error,
        keep_events=keep_events or time_range,
    )

    if time_range:
        start = args.since or datetime.min.replace(tzinfo=timezone.utc)
        end = args.until or datetime.max.replace(tzinfo=timezone.utc)
        events = filter_by_time_range(report.events, start, end)
        report = replace(report, result=analyze_events(events), events=events)

    return report


def _exit_code(report: AnalysisReport) -> int:
    return 1 if report.failures and not report.files_processed else 0


def cmd_summary(args, settings: Settings) -> int:
    """Show tool and subagent usage."""
    report = run_analysis(args, settings)
    handle_output(format_output(report.to_dict(), settings.output_format), args.output)
    return _exit_code(report)


def cmd_top(args, settings: Settings) -> int:
    """Show the most used tools or subagents."""
    report = run_analysis(args, settings)
    result: AggregateResult = report.result.tools if args.kind == TOOL else report.result.subagents
    data = {
        "kind": args.kind,
        "limit": args.limit,
        "ranking": [item.to_dict() for item in top_n(result, args.limit)],
    }
    handle_output(format_output(data, settings.output_format), args.output)
    return _exit_code(report)


def cmd_categories(args, settings: Settings) -> int:
    """Show tools grouped by category."""
    report = run_analysis(args, settings)
    data = {"categories": categorize_tools(report.result.tools)}
    handle_output(format_output(data, settings.output_format), args.output)
    return _exit_code(report)


def cmd_sessions(args, settings: Settings) -> int:
    """Show per-session invocation counts."""
    report = run_analysis(args, settings, keep_events=True)
    sessions = []
    for session_id, events in group_by_session(report.events).items():
        counts: dict[str, int] = {}
        for event in events:
            counts[event.name] = counts.get(event.name, 0) + 1
        sessions.append(
            {
                "session_id": session_id,
                "event_count": len(events),
                "counts": dict(sorted(counts.items(), key=lambda item: -item[1])),
            }
        )
    data = {"session_count": len(sessions), "sessions": sessions}
    handle_output(format_output(data, settings.output_format), args.output)
    return _exit_code(report)


def cmd_durations(args, settings: Settings) -> int:
    """Show tool duration statistics."""
    report = run_analysis(args, settings)
    stats = report.result.tools.durations
    data = {"durations": {name: s.to_dict() for name, s in stats.items()}}
    handle_output(format_output(data, settings.output_format), args.output)
    return _exit_code(report)


def _timestamp_arg(value: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: '{value}'")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    epilog = """
Examples:
  cctoolstats summary                         # Current project (default)
  cctoolstats summary --all                   # All projects
  cctoolstats summary --project /path/to/app  # A specific project
  cctoolstats summary a.jsonl b.jsonl         # Specific files
  cctoolstats --format csv -o out.csv summary --all
  cctoolstats top --kind subagent --limit 5
  cctoolstats summary --since 2025-01-01T00:00:00Z

Logs are read from ~/.config/claude/projects and ~/.claude/projects.
"""
    parser = argparse.ArgumentParser(
        description="Analyze Claude Code tool and subagent usage",
        prog="cctoolstats",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument(
        "-f", "--format", choices=OUTPUT_FORMATS, help="Output format (default: table)"
    )
    parser.add_argument("-o", "--output", help="Write output to a file instead of stdout")
    parser.add_argument("-v", "--verbose", action="store_true", help="Report per-file progress")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("files", nargs="*", help="Specific log files to analyze")
    selection = common.add_mutually_exclusive_group()
    selection.add_argument("--all", action="store_true", help="Analyze all projects")
    selection.add_argument("--project", help="Analyze a specific project by path")
    common.add_argument("--since", type=_timestamp_arg, help="Only events at or after this time")
    common.add_argument("--until", type=_timestamp_arg, help="Only events at or before this time")
    common.add_argument("--workers", type=int, help="Files parsed in parallel (default: 1)")
    common.add_argument("--max-line-length", type=int, help="Skip lines longer than this")
    common.add_argument(
        "--system-notices", action="store_true", help="Count subagents named in system messages"
    )
    common.add_argument("--show-errors", action="store_true", help="Report skipped lines")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sub = subparsers.add_parser("summary", parents=[common], help="Show tool and subagent usage")
    sub.set_defaults(func=cmd_summary)

    sub = subparsers.add_parser("top", parents=[common], help="Show most used tools or subagents")
    sub.add_argument(
        "--kind", choices=[TOOL, SUBAGENT], default=TOOL, help="Event kind (default: tool)"
    )
    sub.add_argument("--limit", type=int, default=10, help="Number of names (default: 10)")
    sub.set_defaults(func=cmd_top)

    sub = subparsers.add_parser("categories", parents=[common], help="Show tools by category")
    sub.set_defaults(func=cmd_categories)

    sub = subparsers.add_parser("sessions", parents=[common], help="Show usage per session")
    sub.set_defaults(func=cmd_sessions)

    sub = subparsers.add_parser("durations", parents=[common], help="Show tool duration statistics")
    sub.set_defaults(func=cmd_durations)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if os.environ.get("TOOL_STATS_DEBUG"):
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        settings = load_settings(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return args.func(args, settings)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
