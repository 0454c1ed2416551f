"""Smoke tests that validate assumptions against real transcripts.

These tests are skipped by default and only run when
TOOL_STATS_SMOKE_TEST=1 is set. They catch issues like:
- Transcript format changes that stop tool_use blocks from being recognized
- Delegation calls leaking into tool counts
- Large numbers of lines failing to decode

Run with: TOOL_STATS_SMOKE_TEST=1 pytest tests/test_smoke_real_data.py -v
"""

import os

import pytest

# Skip all tests in this file unless smoke test env var is set
pytestmark = pytest.mark.skipif(
    os.environ.get("TOOL_STATS_SMOKE_TEST") != "1",
    reason="Smoke tests require TOOL_STATS_SMOKE_TEST=1 and real transcripts",
)


@pytest.fixture(scope="module")
def real_report():
    """Analyze every transcript on this machine."""
    from tool_stats.ingest import analyze_files, find_log_files

    files = find_log_files()
    if not files:
        pytest.skip("No real transcripts found")
    return analyze_files(files)


class TestRealTranscripts:
    def test_tools_found(self, real_report):
        assert real_report.result.tools.total_invocations > 0, "No tool_use blocks recognized"

    def test_no_delegation_tool_with_subagent_counted_as_tool(self):
        from tool_stats.classify import DELEGATION_TOOLS, TOOL, EventClassifier
        from tool_stats.ingest import find_log_files
        from tool_stats.reader import StreamParser

        classifier = EventClassifier()
        leaked = []
        for path in find_log_files()[:50]:
            for event in classifier.classify_all(StreamParser().parse_file(path)):
                tool_input = event.attributes.get("input")
                if (
                    event.kind == TOOL
                    and event.name in DELEGATION_TOOLS
                    and isinstance(tool_input, dict)
                    and tool_input.get("subagent_type")
                ):
                    leaked.append(event)
        assert leaked == []

    def test_decode_failures_are_rare(self, real_report):
        stats = real_report.parse_stats
        assert stats.invalid_lines <= max(10, stats.lines_read // 100), (
            f"{stats.invalid_lines} of {stats.lines_read} lines failed to decode"
        )

    def test_percentages_sum(self, real_report):
        for result in (real_report.result.tools, real_report.result.subagents):
            if result.total_invocations:
                drift = abs(sum(result.percentages.values()) - 100)
                assert drift <= 0.005 * result.unique_names + 1e-9
