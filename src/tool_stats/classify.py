"""Classification of transcript records into canonical tool/subagent events.

Claude Code has written several record shapes over time and none of them
carries a version marker, so each shape is recognized structurally by its own
dialect. Dialects are tried in a fixed order and the first match wins.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

TOOL = "tool"
SUBAGENT = "subagent"

# Tools that hand work to a named subagent (old and current names)
DELEGATION_TOOLS = ("Task", "Agent")
SUBAGENT_TYPE_FIELD = "subagent_type"

# Subagent notices in free-text system messages
SYSTEM_NOTICE_PATTERNS = (
    re.compile(r"subagent[:\s]+(\w+[-\w]*)", re.IGNORECASE),
    re.compile(r"invoking\s+(\w+[-\w]*)\s+subagent", re.IGNORECASE),
    re.compile(r"(\w+[-\w]*)\s+subagent\s+(?:started|invoked)", re.IGNORECASE),
)


@dataclass(frozen=True)
class CanonicalEvent:
    """A dialect-independent tool or subagent invocation."""

    kind: str  # TOOL or SUBAGENT
    name: str
    timestamp: str | None = None
    attributes: dict = field(default_factory=dict, compare=False)
    session_id: str | None = None

    @property
    def duration(self) -> float | None:
        return self.attributes.get("duration")


@dataclass(frozen=True)
class Dialect:
    """One record shape: a predicate plus an extractor for matching records."""

    name: str
    matches: Callable[[dict], bool]
    extract: Callable[[dict], list[CanonicalEvent]]


def _non_empty_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _timestamp(record: dict) -> str | None:
    return _non_empty_str(record.get("timestamp"))


def _session_id(record: dict) -> str | None:
    return _non_empty_str(record.get("sessionId"))


def _numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_duration(*sources: Any) -> float | None:
    """Return the first numeric duration found on the given dicts.

    Looks at ``duration`` and at ``toolUseResult.durationMs``.
    """
    for source in sources:
        if not isinstance(source, dict):
            continue
        if _numeric(source.get("duration")):
            return source["duration"]
        result = source.get("toolUseResult")
        if isinstance(result, dict) and _numeric(result.get("durationMs")):
            return result["durationMs"]
    return None


def _event(kind: str, name: str, record: dict, attributes: dict) -> CanonicalEvent:
    return CanonicalEvent(
        kind=kind,
        name=name,
        timestamp=_timestamp(record),
        attributes={k: v for k, v in attributes.items() if v is not None},
        session_id=_session_id(record),
    )


# --- Dialect: assistant messages with tool_use content blocks ---------------


def _tool_use_blocks(record: dict) -> list[dict]:
    if record.get("type") == "tool_use":
        return [record]
    if record.get("type") != "assistant":
        return []
    message = record.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, list):
        return []
    return [
        block for block in content if isinstance(block, dict) and block.get("type") == "tool_use"
    ]


def _matches_tool_use(record: dict) -> bool:
    return any(_non_empty_str(block.get("name")) for block in _tool_use_blocks(record))


def classify_tool_use(block: dict, record: dict | None = None) -> CanonicalEvent | None:
    """Classify one tool_use block.

    A delegation tool whose input names a subagent type is a subagent
    invocation and is never also reported as a tool.
    """
    record = block if record is None else record
    name = _non_empty_str(block.get("name"))
    if name is None:
        return None

    tool_input = block.get("input")
    attributes = {
        "id": block.get("id"),
        "input": tool_input,
        "duration": extract_duration(block, record),
    }

    if name in DELEGATION_TOOLS and isinstance(tool_input, dict):
        agent = _non_empty_str(tool_input.get(SUBAGENT_TYPE_FIELD))
        if agent is not None:
            return _event(SUBAGENT, agent, record, {**attributes, "tool": name})

    return _event(TOOL, name, record, attributes)


def _extract_tool_use(record: dict) -> list[CanonicalEvent]:
    events = []
    for block in _tool_use_blocks(record):
        event = classify_tool_use(block, record)
        if event is not None:
            events.append(event)
    return events


# --- Dialect: direct subagent records ----------------------------------------


def _matches_subagent(record: dict) -> bool:
    return record.get("type") == "subagent" and _non_empty_str(record.get("name")) is not None


def _extract_subagent(record: dict) -> list[CanonicalEvent]:
    attributes = {"prompt": record.get("prompt"), "duration": extract_duration(record)}
    return [_event(SUBAGENT, record["name"], record, attributes)]


# --- Dialect: legacy flat invocation records ---------------------------------

_LEGACY_FIELDS = {
    "tool_invocation": (TOOL, "tool"),
    "subagent_invocation": (SUBAGENT, "agent"),
}


def _matches_legacy(record: dict) -> bool:
    legacy = _LEGACY_FIELDS.get(record.get("type"))
    return legacy is not None and _non_empty_str(record.get(legacy[1])) is not None


def _extract_legacy(record: dict) -> list[CanonicalEvent]:
    kind, name_field = _LEGACY_FIELDS[record["type"]]
    attributes = {
        "input": record.get("parameters", record.get("input")),
        "duration": extract_duration(record),
    }
    return [_event(kind, record[name_field], record, attributes)]


# --- Dialect: free-text system notices (opt-in) ------------------------------


def subagent_from_notice(text: str) -> str | None:
    """Extract a subagent name from a system notice such as 'Invoking subagent: code-reviewer'."""
    for pattern in SYSTEM_NOTICE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _matches_system_notice(record: dict) -> bool:
    content = record.get("content")
    return (
        record.get("type") == "system"
        and isinstance(content, str)
        and subagent_from_notice(content) is not None
    )


def _extract_system_notice(record: dict) -> list[CanonicalEvent]:
    name = subagent_from_notice(record["content"])
    return [_event(SUBAGENT, name, record, {"notice": record["content"]})]


ASSISTANT_TOOL_USE = Dialect("assistant_tool_use", _matches_tool_use, _extract_tool_use)
SUBAGENT_RECORD = Dialect("subagent_record", _matches_subagent, _extract_subagent)
LEGACY_INVOCATION = Dialect("legacy_invocation", _matches_legacy, _extract_legacy)
SYSTEM_NOTICE = Dialect("system_notice", _matches_system_notice, _extract_system_notice)

# Precedence order; first match wins
DEFAULT_DIALECTS = (ASSISTANT_TOOL_USE, SUBAGENT_RECORD, LEGACY_INVOCATION)


class EventClassifier:
    """Turns raw records into canonical events using an ordered dialect list.

    Args:
        dialects: Dialects in precedence order (defaults to DEFAULT_DIALECTS)
        include_system_notices: Also recognize subagents named in system messages
    """

    def __init__(
        self,
        dialects: Iterable[Dialect] | None = None,
        include_system_notices: bool = False,
    ):
        self.dialects = tuple(DEFAULT_DIALECTS if dialects is None else dialects)
        if include_system_notices and SYSTEM_NOTICE not in self.dialects:
            self.dialects += (SYSTEM_NOTICE,)

    def match(self, record: Any) -> Dialect | None:
        """Return the first dialect that recognizes the record, if any."""
        if not isinstance(record, dict):
            return None
        for dialect in self.dialects:
            if dialect.matches(record):
                return dialect
        return None

    def classify(self, record: Any) -> list[CanonicalEvent]:
        """Return the events a record represents; empty when nothing matches."""
        dialect = self.match(record)
        return dialect.extract(record) if dialect is not None else []

    def classify_all(self, records: Iterable[Any]) -> Iterator[CanonicalEvent]:
        for record in records:
            yield from self.classify(record)


def classify_record(record: Any) -> list[CanonicalEvent]:
    """Classify a record with the default dialects."""
    return EventClassifier().classify(record)
