"""Query helpers over aggregates and event sequences."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from tool_stats.aggregate import AggregateResult, DurationStats
from tool_stats.classify import TOOL, CanonicalEvent, EventClassifier

logger = logging.getLogger("tool-stats")

# Functional categories for well-known tools. Tools not listed here are left
# out of every category.
TOOL_CATEGORIES = {
    "Bash": "execution",
    "Read": "file_operations",
    "Write": "file_operations",
    "Edit": "file_operations",
    "MultiEdit": "file_operations",
    "Grep": "search",
    "Glob": "search",
}
CATEGORIES = ("execution", "file_operations", "search")


@dataclass(frozen=True)
class RankedName:
    name: str
    count: int
    percentage: float

    def to_dict(self) -> dict:
        return {"name": self.name, "count": self.count, "percentage": self.percentage}


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Accepts strings (a trailing 'Z' is read as UTC) and datetimes. Naive
    values are taken as UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Could not parse timestamp: {value}")
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _timestamp_of(item: Any) -> Any:
    if isinstance(item, CanonicalEvent):
        return item.timestamp
    if isinstance(item, dict):
        return item.get("timestamp")
    return None


def top_n(result: AggregateResult, n: int) -> list[RankedName]:
    """Return the n most frequent names, count descending.

    Equal counts keep first-seen order. Asking for more names than exist
    returns all of them.
    """
    if n <= 0:
        return []
    # sorted() is stable and counts preserves first-seen order
    ranked = sorted(result.counts.items(), key=lambda item: -item[1])
    return [
        RankedName(name=name, count=count, percentage=result.percentage(name))
        for name, count in ranked[:n]
    ]


def filter_by_time_range(
    events: Iterable[Any],
    start: str | datetime,
    end: str | datetime,
) -> list[Any]:
    """Keep events whose timestamp falls within [start, end] inclusive.

    Works on CanonicalEvents or raw records. Events without a parseable
    timestamp are dropped. The result can be folded again with an Aggregator.

    Raises:
        ValueError: If start or end cannot be parsed
    """
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None:
        raise ValueError(f"Invalid start time: {start!r}")
    if end_dt is None:
        raise ValueError(f"Invalid end time: {end!r}")

    kept = []
    for event in events:
        ts = parse_timestamp(_timestamp_of(event))
        if ts is not None and start_dt <= ts <= end_dt:
            kept.append(event)
    return kept


def categorize_tools(result: AggregateResult) -> dict[str, list[str]]:
    """Group observed tool names by functional category."""
    categories: dict[str, list[str]] = {category: [] for category in CATEGORIES}
    for tool in result.counts:
        category = TOOL_CATEGORIES.get(tool)
        if category is not None:
            categories[category].append(tool)
    return categories


def group_by_session(
    items: Iterable[Any],
    classifier: EventClassifier | None = None,
    kind: str | None = None,
) -> dict[str, list[CanonicalEvent]]:
    """Partition events by session id, preserving arrival order per session.

    Items may be raw records (classified here) or CanonicalEvents that carry
    their session id. Events without a session id are skipped.

    Args:
        items: Raw records or CanonicalEvents
        classifier: Classifier for raw records (default dialects if omitted)
        kind: Only keep events of this kind
    """
    classifier = classifier or EventClassifier()
    sessions: dict[str, list[CanonicalEvent]] = {}

    for item in items:
        events = [item] if isinstance(item, CanonicalEvent) else classifier.classify(item)
        for event in events:
            if kind is not None and event.kind != kind:
                continue
            if not event.session_id:
                continue
            sessions.setdefault(event.session_id, []).append(event)

    return sessions


def duration_statistics(
    events: Iterable[CanonicalEvent],
    kind: str | None = TOOL,
) -> dict[str, DurationStats]:
    """Duration count/total/average/min/max per name.

    Events without a numeric duration are ignored here, although they still
    count as invocations in the aggregate.
    """
    durations: dict[str, list[float]] = {}
    for event in events:
        if kind is not None and event.kind != kind:
            continue
        if event.duration is not None:
            durations.setdefault(event.name, []).append(event.duration)

    return {name: DurationStats.from_durations(values) for name, values in durations.items()}
