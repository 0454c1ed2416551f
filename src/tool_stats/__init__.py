"""Claude Tool Stats - tool and subagent usage statistics from Claude Code transcripts."""

from importlib.metadata import version

try:
    __version__ = version("claude-tool-stats")
except Exception:
    __version__ = "0.1.0"  # Fallback for development

# Re-export public API
from tool_stats.aggregate import (
    AggregateResult,
    Aggregator,
    AnalysisResult,
    DurationStats,
    TimelineEntry,
    aggregate,
    analyze_events,
)
from tool_stats.classify import (
    SUBAGENT,
    TOOL,
    CanonicalEvent,
    Dialect,
    EventClassifier,
    classify_record,
)
from tool_stats.ingest import (
    AnalysisReport,
    analyze_file,
    analyze_files,
    find_log_files,
    strip_payload,
)
from tool_stats.queries import (
    categorize_tools,
    duration_statistics,
    filter_by_time_range,
    group_by_session,
    top_n,
)
from tool_stats.reader import ParseError, ParseStats, StreamParser, read_lines

__all__ = [
    # Version
    "__version__",
    # Reader
    "read_lines",
    "StreamParser",
    "ParseError",
    "ParseStats",
    # Classifier
    "TOOL",
    "SUBAGENT",
    "CanonicalEvent",
    "Dialect",
    "EventClassifier",
    "classify_record",
    # Aggregation
    "Aggregator",
    "AggregateResult",
    "AnalysisResult",
    "DurationStats",
    "TimelineEntry",
    "aggregate",
    "analyze_events",
    # Queries
    "top_n",
    "filter_by_time_range",
    "categorize_tools",
    "group_by_session",
    "duration_statistics",
    # Ingestion
    "AnalysisReport",
    "analyze_file",
    "analyze_files",
    "find_log_files",
    "strip_payload",
]
