"""MCP Tool Stats Server.

Provides tools for querying Claude Code tool usage:
- get_status: Version and where transcripts are searched
- analyze_usage: Tool and subagent counts, percentages and timelines
- top_tools: Most used tools or subagents
- tool_categories: Observed tools grouped by category
- session_breakdown: Invocation counts per session
"""

import logging
import os

from fastmcp import FastMCP

from tool_stats import __version__
from tool_stats.classify import SUBAGENT, TOOL
from tool_stats.config import Settings
from tool_stats.ingest import AnalysisReport, analyze_files, find_log_files
from tool_stats.queries import categorize_tools, group_by_session, top_n

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("tool-stats")
if os.environ.get("TOOL_STATS_DEBUG"):
    logger.setLevel(logging.DEBUG)

# Initialize MCP server
mcp = FastMCP("tool-stats")


def _analyze(
    project: str | None, files: list[str] | None, keep_events: bool = False
) -> AnalysisReport:
    settings = Settings.from_env().validate()
    if not files:
        files = find_log_files(
            settings.logs_dirs,
            project=project,
            include_patterns=settings.include_patterns,
            exclude_patterns=settings.exclude_patterns,
        )
    return analyze_files(files, settings, keep_events=keep_events)


@mcp.tool()
def get_status() -> dict:
    """Get server version and transcript locations.

    Returns:
        Status info including log directories and number of transcripts found
    """
    settings = Settings.from_env()
    return {
        "status": "ok",
        "version": __version__,
        "logs_dirs": [str(d) for d in settings.logs_dirs],
        "log_files": len(find_log_files(settings.logs_dirs)),
    }


@mcp.tool()
def analyze_usage(project: str | None = None, files: list[str] | None = None) -> dict:
    """Analyze tool and subagent usage.

    Args:
        project: Optional project path (default: all projects)
        files: Optional explicit transcript paths (overrides project)

    Returns:
        Tool and subagent aggregates plus files processed and failures
    """
    return _analyze(project, files).to_dict()


@mcp.tool()
def top_tools(
    limit: int = 10, kind: str = TOOL, project: str | None = None, files: list[str] | None = None
) -> dict:
    """Get the most used tools (or subagents with kind="subagent").

    Args:
        limit: Number of names to return (default: 10)
        kind: "tool" or "subagent"
        project: Optional project path filter
        files: Optional explicit transcript paths

    Returns:
        Ranking of names with counts and percentages
    """
    if kind not in (TOOL, SUBAGENT):
        return {"status": "error", "message": f"Unknown kind: {kind}"}
    report = _analyze(project, files)
    result = report.result.tools if kind == TOOL else report.result.subagents
    return {
        "kind": kind,
        "limit": limit,
        "total_invocations": result.total_invocations,
        "ranking": [item.to_dict() for item in top_n(result, limit)],
    }


@mcp.tool()
def tool_categories(project: str | None = None, files: list[str] | None = None) -> dict:
    """Group observed tools into execution, file_operations and search.

    Tools without a known category are not listed.
    """
    report = _analyze(project, files)
    return {"categories": categorize_tools(report.result.tools)}


@mcp.tool()
def session_breakdown(project: str | None = None, files: list[str] | None = None) -> dict:
    """Get invocation names per session, in arrival order."""
    report = _analyze(project, files, keep_events=True)
    sessions = group_by_session(report.events)
    return {
        "session_count": len(sessions),
        "sessions": {
            session_id: [{"kind": e.kind, "name": e.name, "timestamp": e.timestamp} for e in events]
            for session_id, events in sessions.items()
        },
    }


def create_app():
    """Create the ASGI app for uvicorn."""
    # stateless_http=True allows resilience to server restarts
    return mcp.http_app(stateless_http=True)


def main():
    """Run the MCP server."""
    import uvicorn

    port = int(os.environ.get("PORT", 8082))
    host = os.environ.get("HOST", "127.0.0.1")

    print(f"Starting Claude Tool Stats on {host}:{port}")
    print(
        "Add to Claude Code: claude mcp add --transport http --scope user "
        f"tool-stats http://{host}:{port}/mcp"
    )

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
