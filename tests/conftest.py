"""Pytest configuration and shared fixtures."""

import json
import tempfile
from pathlib import Path

import pytest


def write_jsonl(path: Path, entries: list, extra_lines: dict[int, str] | None = None) -> Path:
    """Write entries as JSON Lines; extra_lines inserts raw text before the given index."""
    extra_lines = extra_lines or {}
    with open(path, "w", encoding="utf-8") as f:
        for i, entry in enumerate(entries):
            if i in extra_lines:
                f.write(extra_lines[i] + "\n")
            f.write(json.dumps(entry) + "\n")
    return path


def assistant_entry(
    *tool_uses: dict,
    timestamp: str = "2025-01-01T12:00:00.000Z",
    session_id: str = "session-1",
    uuid: str = "assistant-1",
) -> dict:
    """Build an assistant transcript entry with the given tool_use blocks."""
    return {
        "type": "assistant",
        "uuid": uuid,
        "sessionId": session_id,
        "timestamp": timestamp,
        "message": {
            "role": "assistant",
            "model": "claude-opus-4-5-20251101",
            "content": [{"type": "tool_use", **block} for block in tool_uses],
        },
    }


@pytest.fixture
def tmpdir_path():
    """Temporary directory as a Path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_session_log_entry():
    """Sample JSONL entry from a Claude Code session log."""
    return assistant_entry(
        {
            "id": "tool-123",
            "name": "Bash",
            "input": {"command": "git status", "description": "Check git status"},
        },
        session_id="session-abc123",
    )


@pytest.fixture
def delegation_entry():
    """Assistant entry delegating to a subagent through the Task tool."""
    return assistant_entry(
        {
            "id": "tool-456",
            "name": "Task",
            "input": {"subagent_type": "code-reviewer", "prompt": "Review the diff"},
        },
        timestamp="2025-01-01T12:05:00.000Z",
        uuid="assistant-2",
    )


@pytest.fixture
def sample_logs_dir():
    """Logs directory with one project holding two transcripts.

    Contains:
    - session-1: Bash, Read, Task(code-reviewer), a tool_result and a user message
    - session-2: Bash, Grep, plus a malformed line
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        logs_dir = Path(tmpdir)
        project_dir = logs_dir / "-test-project"
        project_dir.mkdir()

        write_jsonl(
            project_dir / "session-1.jsonl",
            [
                {
                    "type": "user",
                    "uuid": "user-1",
                    "sessionId": "session-1",
                    "timestamp": "2025-01-01T12:00:00.000Z",
                    "message": {"role": "user", "content": "Hello"},
                },
                assistant_entry(
                    {"id": "tool-1", "name": "Bash", "input": {"command": "git status"}},
                    {"id": "tool-2", "name": "Read", "input": {"file_path": "/a.py"}},
                    timestamp="2025-01-01T12:00:05.000Z",
                ),
                {
                    "type": "user",
                    "uuid": "result-1",
                    "sessionId": "session-1",
                    "timestamp": "2025-01-01T12:00:10.000Z",
                    "message": {
                        "role": "user",
                        "content": [
                            {"type": "tool_result", "tool_use_id": "tool-1", "content": "ok"}
                        ],
                    },
                },
                assistant_entry(
                    {"id": "tool-3", "name": "Task", "input": {"subagent_type": "code-reviewer"}},
                    timestamp="2025-01-01T12:01:00.000Z",
                    uuid="assistant-2",
                ),
            ],
        )
        write_jsonl(
            project_dir / "session-2.jsonl",
            [
                assistant_entry(
                    {"id": "tool-4", "name": "Bash", "input": {"command": "make"}},
                    timestamp="2025-01-02T09:00:00.000Z",
                    session_id="session-2",
                    uuid="assistant-3",
                ),
                assistant_entry(
                    {"id": "tool-5", "name": "Grep", "input": {"pattern": "TODO"}},
                    timestamp="2025-01-02T09:01:00.000Z",
                    session_id="session-2",
                    uuid="assistant-4",
                ),
            ],
            extra_lines={1: '{"invalid'},
        )

        yield logs_dir
