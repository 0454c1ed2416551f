"""Tests for query helpers."""

from datetime import datetime, timezone

import pytest
from conftest import assistant_entry

from tool_stats.aggregate import aggregate
from tool_stats.classify import SUBAGENT, TOOL, CanonicalEvent
from tool_stats.queries import (
    categorize_tools,
    duration_statistics,
    filter_by_time_range,
    group_by_session,
    parse_timestamp,
    top_n,
)


def tool(name, timestamp=None, session_id=None, duration=None):
    attributes = {"duration": duration} if duration is not None else {}
    return CanonicalEvent(
        kind=TOOL, name=name, timestamp=timestamp, attributes=attributes, session_id=session_id
    )


class TestTopN:
    """Tests for top_n ranking."""

    def test_sorted_by_count(self):
        names = ["Read", "Bash", "Bash", "Edit", "Bash", "Read"]
        result = aggregate([tool(n) for n in names])
        ranking = top_n(result, 2)
        assert [(r.name, r.count) for r in ranking] == [("Bash", 3), ("Read", 2)]
        assert ranking[0].percentage == 50.0

    def test_ties_keep_first_seen_order(self):
        """With a and b tied, a (seen first) always ranks first."""
        result = aggregate([tool(n) for n in "abcbaab"])
        assert result.counts == {"a": 3, "b": 3, "c": 1}
        for _ in range(5):
            assert [r.name for r in top_n(result, 2)] == ["a", "b"]

    def test_ties_follow_arrival_not_alphabet(self):
        result = aggregate([tool("zeta"), tool("alpha")])
        assert [r.name for r in top_n(result, 2)] == ["zeta", "alpha"]

    def test_n_larger_than_names(self):
        result = aggregate([tool("a"), tool("b")])
        assert [r.name for r in top_n(result, 10)] == ["a", "b"]

    def test_non_positive_n(self):
        result = aggregate([tool("a")])
        assert top_n(result, 0) == []
        assert top_n(result, -1) == []

    def test_empty_result(self):
        assert top_n(aggregate([]), 5) == []


class TestTimeRange:
    """Tests for filter_by_time_range."""

    @pytest.fixture
    def hourly_events(self):
        return [
            tool("Bash", "2025-01-01T09:00:00Z"),
            tool("Read", "2025-01-01T10:00:00Z"),
            tool("Edit", "2025-01-01T11:00:00Z"),
            tool("Grep", "2025-01-01T12:00:00Z"),
        ]

    def test_inclusive_range(self, hourly_events):
        kept = filter_by_time_range(hourly_events, "2025-01-01T10:00:00Z", "2025-01-01T11:59:59Z")
        assert [e.timestamp for e in kept] == ["2025-01-01T10:00:00Z", "2025-01-01T11:00:00Z"]

    def test_end_is_inclusive(self, hourly_events):
        kept = filter_by_time_range(hourly_events, "2025-01-01T12:00:00Z", "2025-01-01T12:00:00Z")
        assert [e.name for e in kept] == ["Grep"]

    def test_datetime_bounds(self, hourly_events):
        start = datetime(2025, 1, 1, 10, tzinfo=timezone.utc)
        end = datetime(2025, 1, 1, 11, 59, 59)  # naive is read as UTC
        assert [e.name for e in filter_by_time_range(hourly_events, start, end)] == ["Read", "Edit"]

    def test_offsets_are_compared_as_instants(self):
        events = [tool("Bash", "2025-01-01T12:30:00+02:00")]
        scoped = filter_by_time_range(events, "2025-01-01T10:00:00Z", "2025-01-01T11:00:00Z")
        assert scoped == events

    def test_missing_or_bad_timestamps_excluded(self):
        events = [tool("Bash"), tool("Read", "yesterday"), tool("Edit", "2025-01-01T10:30:00.000Z")]
        kept = filter_by_time_range(events, "2025-01-01T10:00:00Z", "2025-01-01T11:00:00Z")
        assert [e.name for e in kept] == ["Edit"]

    def test_raw_records(self):
        records = [
            {"type": "tool_invocation", "tool": "Bash", "timestamp": "2025-01-01T10:00:00Z"},
            {"type": "tool_invocation", "tool": "Read", "timestamp": "2025-01-02T10:00:00Z"},
            {"type": "tool_invocation", "tool": "Edit"},
        ]
        kept = filter_by_time_range(records, "2025-01-01T00:00:00Z", "2025-01-01T23:59:59Z")
        assert [r["tool"] for r in kept] == ["Bash"]

    def test_filter_then_fold(self, hourly_events):
        """Filtering and folding compose into range-scoped statistics."""
        in_range = filter_by_time_range(
            hourly_events, "2025-01-01T10:00:00Z", "2025-01-01T11:59:59Z"
        )
        scoped = aggregate(in_range)
        assert scoped.total_invocations == 2
        assert scoped.percentages == {"Read": 50.0, "Edit": 50.0}

    def test_invalid_bounds(self, hourly_events):
        with pytest.raises(ValueError, match="start"):
            filter_by_time_range(hourly_events, "not a time", "2025-01-01T11:00:00Z")
        with pytest.raises(ValueError, match="end"):
            filter_by_time_range(hourly_events, "2025-01-01T11:00:00Z", None)


class TestParseTimestamp:
    def test_z_suffix(self):
        expected = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
        assert parse_timestamp("2025-01-01T12:00:00.000Z") == expected

    @pytest.mark.parametrize("value", [None, "", "garbage", 1735732800, []])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None


class TestCategorize:
    """Tests for categorize_tools."""

    def test_known_tools(self):
        names = ["Bash", "Read", "Grep", "Edit", "Glob", "MultiEdit", "Write"]
        result = aggregate([tool(n) for n in names])
        assert categorize_tools(result) == {
            "execution": ["Bash"],
            "file_operations": ["Read", "Edit", "MultiEdit", "Write"],
            "search": ["Grep", "Glob"],
        }

    def test_unknown_tools_are_omitted(self):
        """Unmapped tools land in no category, and there is no 'other' bucket."""
        result = aggregate([tool("WebFetch"), tool("mcp__github__create_pr"), tool("Bash")])
        categories = categorize_tools(result)
        assert categories == {"execution": ["Bash"], "file_operations": [], "search": []}
        assert all("WebFetch" not in tools for tools in categories.values())


class TestGroupBySession:
    """Tests for group_by_session."""

    def test_raw_records(self, delegation_entry):
        records = [
            assistant_entry({"id": "1", "name": "Bash"}, session_id="s1"),
            assistant_entry({"id": "2", "name": "Read"}, session_id="s2"),
            {"type": "user", "sessionId": "s1"},
            assistant_entry({"id": "3", "name": "Edit"}, session_id="s1"),
            delegation_entry,
            {"type": "tool_invocation", "tool": "Bash"},
        ]
        sessions = group_by_session(records)

        assert list(sessions) == ["s1", "s2", "session-1"]
        assert [e.name for e in sessions["s1"]] == ["Bash", "Edit"]
        assert [e.name for e in sessions["s2"]] == ["Read"]
        assert [(e.kind, e.name) for e in sessions["session-1"]] == [(SUBAGENT, "code-reviewer")]

    def test_kind_filter(self, delegation_entry):
        records = [assistant_entry({"id": "1", "name": "Bash"}), delegation_entry]
        sessions = group_by_session(records, kind=SUBAGENT)
        assert [e.name for e in sessions["session-1"]] == ["code-reviewer"]

    def test_canonical_events(self):
        events = [
            tool("Bash", session_id="a"),
            tool("Read", session_id="b"),
            tool("Grep", session_id="a"),
            tool("X"),
        ]
        sessions = group_by_session(events)
        names = {k: [e.name for e in v] for k, v in sessions.items()}
        assert names == {"a": ["Bash", "Grep"], "b": ["Read"]}


class TestDurationStatistics:
    def test_only_numeric_durations(self):
        events = [
            tool("Bash", duration=10),
            tool("Bash", duration=30),
            tool("Bash"),
            tool("Read", duration=5),
            CanonicalEvent(kind=SUBAGENT, name="planner", attributes={"duration": 99}),
        ]
        stats = duration_statistics(events)
        assert set(stats) == {"Bash", "Read"}
        assert stats["Bash"].count == 2
        assert stats["Bash"].average == 20
        assert stats["Read"].minimum == stats["Read"].maximum == 5

    def test_all_kinds(self):
        events = [CanonicalEvent(kind=SUBAGENT, name="planner", attributes={"duration": 99})]
        assert duration_statistics(events, kind=None)["planner"].total == 99
