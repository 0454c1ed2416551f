"""Transcript discovery and multi-file analysis."""

import fnmatch
import logging
import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path

from tool_stats.aggregate import Aggregator, AnalysisResult
from tool_stats.classify import SUBAGENT, TOOL, CanonicalEvent, EventClassifier
from tool_stats.config import DEFAULT_LOGS_DIRS, DEFAULT_MAX_LINE_LENGTH, Settings
from tool_stats.reader import ParseError, ParseStats, StreamParser

logger = logging.getLogger("tool-stats")

# Event attributes not kept on retained events
PAYLOAD_ATTRIBUTES = ("input", "prompt")


def project_dir_name(project_path: str | Path) -> str:
    """Convert a project path to the directory name Claude Code logs it under.

    '/home/user/my-app/' -> '-home-user-my-app', 'C:\\Users\\me\\app' -> '-C-Users-me-app'
    """
    path = str(project_path).rstrip("/\\")
    name = re.sub(r"[:/\\]+", "-", path)
    return name if name.startswith("-") else f"-{name}"


def _matches_any(path: Path, patterns: Iterable[str]) -> bool:
    text = str(path)
    return any(
        fnmatch.fnmatch(text, pattern) or fnmatch.fnmatch(path.name, pattern)
        for pattern in patterns
    )


def find_log_files(
    logs_dirs: Iterable[Path] | None = None,
    project: str | Path | None = None,
    include_patterns: Sequence[str] = (),
    exclude_patterns: Sequence[str] = (),
) -> list[Path]:
    """Find JSONL transcripts.

    Args:
        logs_dirs: Directories holding per-project subdirectories
        project: Project path; only its transcript directory is searched
        include_patterns: If given, a path must match one of these globs
        exclude_patterns: Paths matching any of these globs are dropped

    Returns:
        Unique transcript paths, sorted within each logs directory
    """
    logs_dirs = DEFAULT_LOGS_DIRS if logs_dirs is None else logs_dirs
    found: dict[Path, None] = {}

    for logs_dir in logs_dirs:
        logs_dir = Path(logs_dir)
        search_dir = logs_dir / project_dir_name(project) if project else logs_dir
        if not search_dir.is_dir():
            logger.debug(f"Logs directory does not exist: {search_dir}")
            continue

        try:
            pattern_iter = search_dir.glob("*.jsonl") if project else search_dir.rglob("*.jsonl")
            candidates = sorted(pattern_iter)
        except OSError as e:
            logger.warning(f"Could not list {search_dir}: {e}")
            continue

        for path in candidates:
            if include_patterns and not _matches_any(path, include_patterns):
                continue
            if exclude_patterns and _matches_any(path, exclude_patterns):
                continue
            found.setdefault(path, None)

    return list(found)


@dataclass
class FileAnalysis:
    """Aggregates and line accounting for one transcript.

    ``events`` is only filled when the caller asked to keep them.
    """

    path: Path
    result: AnalysisResult
    stats: ParseStats
    events: list[CanonicalEvent] = field(default_factory=list)


@dataclass(frozen=True)
class FileFailure:
    path: Path
    error: str

    def to_dict(self) -> dict:
        return {"path": str(self.path), "error": self.error}


@dataclass
class AnalysisReport:
    """Outcome of analyzing several transcripts.

    ``events`` is empty unless analysis ran with ``keep_events=True``; then it
    holds every classified event in file order, then line order, with tool
    inputs and prompts removed.
    """

    result: AnalysisResult
    events: list[CanonicalEvent] = field(default_factory=list)
    files_processed: int = 0
    failures: list[FileFailure] = field(default_factory=list)
    parse_stats: ParseStats = field(default_factory=ParseStats)

    def to_dict(self) -> dict:
        return {
            **self.result.to_dict(),
            "files_processed": self.files_processed,
            "failures": [failure.to_dict() for failure in self.failures],
            "parse_stats": self.parse_stats.to_dict(),
        }


def _is_record(entry) -> bool:
    return isinstance(entry, dict) and "type" in entry


def strip_payload(event: CanonicalEvent) -> CanonicalEvent:
    """Drop tool inputs and prompts, which can hold whole file bodies."""
    if not any(key in event.attributes for key in PAYLOAD_ATTRIBUTES):
        return event
    attributes = {k: v for k, v in event.attributes.items() if k not in PAYLOAD_ATTRIBUTES}
    return replace(event, attributes=attributes)


def analyze_file(
    path: str | Path,
    classifier: EventClassifier | None = None,
    max_line_length: int | None = DEFAULT_MAX_LINE_LENGTH,
    on_error: Callable[[ParseError], None] | None = None,
    keep_events: bool = False,
) -> FileAnalysis:
    """Parse, classify and fold one transcript as it streams.

    Args:
        path: Transcript to read
        classifier: Classifier to use (default dialects if omitted)
        max_line_length: Lines longer than this are skipped
        on_error: Callback for skipped lines
        keep_events: Also return the events, without their payloads

    Raises:
        OSError: If the file cannot be opened or read
    """
    path = Path(path)
    classifier = classifier or EventClassifier()
    parser = StreamParser(max_line_length=max_line_length, on_error=on_error, include=_is_record)
    tools = Aggregator(TOOL)
    subagents = Aggregator(SUBAGENT)
    events: list[CanonicalEvent] = []

    for event in classifier.classify_all(parser.parse_file(path)):
        if not tools.add(event):
            subagents.add(event)
        if keep_events:
            events.append(strip_payload(event))

    result = AnalysisResult(tools=tools.result(), subagents=subagents.result())
    logger.debug(
        f"{path}: {parser.stats.records_yielded} records, "
        f"{result.tools.total_invocations + result.subagents.total_invocations} events, "
        f"{parser.stats.invalid_lines} invalid, {parser.stats.oversized_lines} oversized"
    )
    return FileAnalysis(path=path, result=result, stats=parser.stats, events=events)


def _run_all(run: Callable, paths: list[Path], workers: int) -> Iterator:
    """Yield run(path) for each path in order, using threads when workers > 1."""
    if workers > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            yield from executor.map(run, paths)
    else:
        for path in paths:
            yield run(path)


def analyze_files(
    paths: Iterable[str | Path],
    settings: Settings | None = None,
    classifier: EventClassifier | None = None,
    on_error: Callable[[ParseError], None] | None = None,
    keep_events: bool = False,
) -> AnalysisReport:
    """Analyze transcripts, continuing past files that cannot be read.

    Files run through independent pipelines (in parallel when
    ``settings.workers`` > 1) and their results are merged in the order
    given, so the report does not depend on scheduling. Only aggregates are
    kept unless ``keep_events`` is set.
    """
    settings = settings or Settings()
    classifier = classifier or EventClassifier()
    paths = [Path(p) for p in paths]

    def run(path: Path) -> FileAnalysis | FileFailure:
        if settings.verbose:
            logger.info(f"Processing: {path}")
        try:
            return analyze_file(
                path, classifier, settings.max_line_length, on_error, keep_events=keep_events
            )
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}")
            return FileFailure(path=path, error=str(e))

    tools = Aggregator(TOOL)
    subagents = Aggregator(SUBAGENT)
    events: list[CanonicalEvent] = []
    failures: list[FileFailure] = []
    parse_stats = ParseStats()
    files_processed = 0

    for outcome in _run_all(run, paths, settings.workers):
        if isinstance(outcome, FileFailure):
            failures.append(outcome)
            continue
        files_processed += 1
        events.extend(outcome.events)
        parse_stats.merge(outcome.stats)
        tools.merge(outcome.result.tools)
        subagents.merge(outcome.result.subagents)

    return AnalysisReport(
        result=AnalysisResult(tools=tools.result(), subagents=subagents.result()),
        events=events,
        files_processed=files_processed,
        failures=failures,
        parse_stats=parse_stats,
    )
