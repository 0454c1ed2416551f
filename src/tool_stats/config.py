"""Runtime settings for tool usage statistics.

Settings come from ``TOOL_STATS_*`` environment variables and can be
overridden by command-line values.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

# Upper bound for a single transcript line (10 MiB)
DEFAULT_MAX_LINE_LENGTH = 10 * 1024 * 1024

OUTPUT_FORMATS = ("table", "json", "csv")

# Claude Code has written transcripts to both locations over time
DEFAULT_LOGS_DIRS = (
    Path.home() / ".config" / "claude" / "projects",
    Path.home() / ".claude" / "projects",
)


class ConfigError(ValueError):
    """Raised when settings fail validation."""


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Settings for an analysis run.

    Attributes:
        verbose: Log at DEBUG level and report per-file progress
        output_format: One of table, json, csv
        max_line_length: Lines longer than this are skipped by the parser
        include_patterns: Glob patterns a log path must match (any)
        exclude_patterns: Glob patterns that drop a log path
        workers: Number of files parsed concurrently
        logs_dirs: Directories searched for project transcripts
    """

    verbose: bool = False
    output_format: str = "table"
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    include_patterns: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)
    workers: int = 1
    logs_dirs: list[Path] = field(default_factory=lambda: list(DEFAULT_LOGS_DIRS))

    def validate(self) -> "Settings":
        """Check settings and return self; raise ConfigError on bad values."""
        errors: list[str] = []

        if self.output_format not in OUTPUT_FORMATS:
            errors.append(
                f"output_format: invalid format '{self.output_format}'. "
                f"Valid formats are: {', '.join(OUTPUT_FORMATS)}"
            )
        if self.max_line_length <= 0:
            errors.append(f"max_line_length: must be positive, got {self.max_line_length}")
        if self.workers < 1:
            errors.append(f"workers: must be at least 1, got {self.workers}")

        if errors:
            raise ConfigError("; ".join(errors))
        return self

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return {
            "verbose": self.verbose,
            "output_format": self.output_format,
            "max_line_length": self.max_line_length,
            "include_patterns": list(self.include_patterns),
            "exclude_patterns": list(self.exclude_patterns),
            "workers": self.workers,
            "logs_dirs": [str(d) for d in self.logs_dirs],
        }

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        All settings use the TOOL_STATS_ prefix. List values are comma separated.
        """
        settings = cls()

        settings.verbose = os.environ.get("TOOL_STATS_DEBUG", "").lower() in ("1", "true")
        settings.output_format = os.environ.get("TOOL_STATS_FORMAT", "table").lower()

        try:
            settings.max_line_length = int(
                os.environ.get("TOOL_STATS_MAX_LINE_LENGTH", str(DEFAULT_MAX_LINE_LENGTH))
            )
            settings.workers = int(os.environ.get("TOOL_STATS_WORKERS", "1"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        settings.include_patterns = _split_list(os.environ.get("TOOL_STATS_INCLUDE", ""))
        settings.exclude_patterns = _split_list(os.environ.get("TOOL_STATS_EXCLUDE", ""))

        logs_dirs = os.environ.get("TOOL_STATS_LOGS_DIRS", "")
        if logs_dirs:
            settings.logs_dirs = [Path(d).expanduser() for d in _split_list(logs_dirs)]

        return settings
