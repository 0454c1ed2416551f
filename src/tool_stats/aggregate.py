"""Aggregation of canonical events into per-kind usage statistics."""

import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from tool_stats.classify import SUBAGENT, TOOL, CanonicalEvent


@dataclass(frozen=True)
class TimelineEntry:
    """A timestamped invocation; index is its position within the timeline."""

    name: str
    timestamp: str
    index: int

    def to_dict(self) -> dict:
        return {"name": self.name, "timestamp": self.timestamp, "index": self.index}


@dataclass(frozen=True)
class DurationStats:
    count: int
    total: float
    average: float
    minimum: float
    maximum: float

    @classmethod
    def from_durations(cls, durations: list[float]) -> "DurationStats":
        total = sum(durations)
        return cls(
            count=len(durations),
            total=total,
            average=total / len(durations),
            minimum=min(durations),
            maximum=max(durations),
        )

    def combine(self, other: "DurationStats") -> "DurationStats":
        count = self.count + other.count
        total = self.total + other.total
        return DurationStats(
            count=count,
            total=total,
            average=total / count,
            minimum=min(self.minimum, other.minimum),
            maximum=max(self.maximum, other.maximum),
        )

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "total": self.total,
            "average": self.average,
            "minimum": self.minimum,
            "maximum": self.maximum,
        }


@dataclass(frozen=True)
class AggregateResult:
    """Counts, percentages and timeline for one event kind.

    ``counts`` keeps first-seen order, which is the tie-break used by ranking.
    """

    kind: str
    total_invocations: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    percentages: dict[str, float] = field(default_factory=dict)
    timeline: tuple[TimelineEntry, ...] = ()
    durations: dict[str, DurationStats] = field(default_factory=dict)

    @property
    def unique_names(self) -> int:
        return len(self.counts)

    def count(self, name: str) -> int:
        return self.counts.get(name, 0)

    def percentage(self, name: str) -> float:
        return self.percentages.get(name, 0.0)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "total_invocations": self.total_invocations,
            "unique_names": self.unique_names,
            "counts": dict(self.counts),
            "percentages": dict(self.percentages),
            "timeline": [entry.to_dict() for entry in self.timeline],
            "durations": {name: stats.to_dict() for name, stats in self.durations.items()},
        }


def round_half_up(value: float) -> float:
    """Round to 2 decimal places with halves going up (0.125 -> 0.13)."""
    return math.floor(value * 100 + 0.5) / 100


def compute_percentages(counts: dict[str, int], total: int) -> dict[str, float]:
    """Share of each name in percent, rounded to 2 places; empty when total is 0."""
    if total <= 0:
        return {}
    return {name: round_half_up(count / total * 100) for name, count in counts.items()}


class Aggregator:
    """Folds canonical events of one kind into an AggregateResult.

    Events of other kinds are ignored. ``add`` holds a lock so one aggregator
    can be shared between threads; the timeline then follows the order in
    which adds acquired it.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._counts: dict[str, int] = {}
        self._total = 0
        self._timeline: list[TimelineEntry] = []
        self._durations: dict[str, DurationStats] = {}
        self._lock = threading.Lock()

    def _add_durations(self, name: str, stats: DurationStats) -> None:
        current = self._durations.get(name)
        self._durations[name] = stats if current is None else current.combine(stats)

    def add(self, event: CanonicalEvent) -> bool:
        """Count one event. Returns False if it belongs to another kind."""
        if event.kind != self.kind:
            return False

        with self._lock:
            self._counts[event.name] = self._counts.get(event.name, 0) + 1
            self._total += 1

            if event.timestamp:
                entry = TimelineEntry(
                    name=event.name, timestamp=event.timestamp, index=len(self._timeline)
                )
                self._timeline.append(entry)

            duration = event.duration
            if duration is not None:
                self._add_durations(event.name, DurationStats.from_durations([duration]))
        return True

    def fold(self, events: Iterable[CanonicalEvent]) -> "Aggregator":
        for event in events:
            self.add(event)
        return self

    def merge(self, result: AggregateResult) -> "Aggregator":
        """Fold in a result computed elsewhere, as if its events were added here.

        Merging per-file results in file order gives the same counts and
        timeline as adding every event in that order.
        """
        if result.kind != self.kind:
            raise ValueError(f"Cannot merge {result.kind} results into a {self.kind} aggregator")

        with self._lock:
            for name, count in result.counts.items():
                self._counts[name] = self._counts.get(name, 0) + count
            self._total += result.total_invocations

            offset = len(self._timeline)
            self._timeline.extend(
                replace(entry, index=offset + entry.index) for entry in result.timeline
            )
            for name, stats in result.durations.items():
                self._add_durations(name, stats)
        return self

    def result(self) -> AggregateResult:
        """Snapshot the tallies; later adds do not change the returned result."""
        with self._lock:
            counts = dict(self._counts)
            return AggregateResult(
                kind=self.kind,
                total_invocations=self._total,
                counts=counts,
                percentages=compute_percentages(counts, self._total),
                timeline=tuple(self._timeline),
                durations=dict(self._durations),
            )


def aggregate(events: Iterable[CanonicalEvent], kind: str = TOOL) -> AggregateResult:
    """Fold events of the given kind into an AggregateResult."""
    return Aggregator(kind).fold(events).result()


@dataclass(frozen=True)
class AnalysisResult:
    """Tool and subagent aggregates from one analysis pass."""

    tools: AggregateResult
    subagents: AggregateResult

    def to_dict(self) -> dict:
        return {"tools": self.tools.to_dict(), "subagents": self.subagents.to_dict()}


def analyze_events(events: Iterable[CanonicalEvent]) -> AnalysisResult:
    """Fold a mixed event sequence into tool and subagent aggregates in one pass."""
    tools = Aggregator(TOOL)
    subagents = Aggregator(SUBAGENT)
    for event in events:
        if not tools.add(event):
            subagents.add(event)
    return AnalysisResult(tools=tools.result(), subagents=subagents.result())
