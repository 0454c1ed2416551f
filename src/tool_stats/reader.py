"""Line-oriented JSON stream parsing for transcript files.

Transcripts are living files that may be read mid-write, so a bad line is
never fatal: empty, oversized and undecodable lines are skipped, and only
failures of the underlying source propagate to the caller.
"""

import codecs
import json
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import IO, Any

from tool_stats.config import DEFAULT_MAX_LINE_LENGTH

logger = logging.getLogger("tool-stats")

DEFAULT_CHUNK_SIZE = 64 * 1024

# ParseError reasons
OVERSIZED = "oversized"
INVALID_JSON = "invalid_json"

Source = IO[str] | IO[bytes] | Iterable[str | bytes] | str | bytes


def _iter_chunks(source: Source, chunk_size: int) -> Iterator[str | bytes]:
    """Yield raw chunks from a file-like object or an iterable of chunks."""
    if isinstance(source, (str, bytes)):
        yield source
        return

    read = getattr(source, "read", None)
    if read is None:
        yield from source
        return

    while True:
        chunk = read(chunk_size)
        if not chunk:
            return
        yield chunk


class LineAssembler:
    """Reassembles lines from arbitrarily split text.

    Completed lines are returned as ``(line_number, text)`` with the ``\\n`` or
    ``\\r\\n`` terminator removed. With ``strip`` set, surrounding whitespace
    is removed as well.

    When ``max_line_length`` is set, a line whose text (after stripping, if
    enabled) grows past it is dropped as soon as the bound is crossed, and
    ``on_oversize(line_number, length)`` is called once the line ends. Pending
    text never exceeds the bound, plus at most the bound again in trailing
    whitespace that may still be stripped.
    """

    def __init__(
        self,
        max_line_length: int | None = None,
        on_oversize: Callable[[int, int], None] | None = None,
        strip: bool = False,
    ):
        self.max_line_length = max_line_length
        self.on_oversize = on_oversize
        self.strip = strip
        self.line_number = 0
        self._reset_line()

    def _reset_line(self) -> None:
        self._pending: list[str] = []
        self._stored = 0  # length of pending text
        self._content = 0  # length of pending text that counts toward the bound
        self._length = 0  # raw length seen, for reporting
        self._skipping = False
        self._ws_overflow = False

    def _too_long(self, length: int) -> bool:
        return self.max_line_length is not None and length > self.max_line_length

    def _skip(self) -> None:
        self._pending = []
        self._stored = 0
        self._content = 0
        self._skipping = True

    def _append(self, text: str) -> None:
        self._length += len(text)
        if self._skipping or not text:
            return

        if self.strip:
            if not self._stored:
                text = text.lstrip()
            body = len(text.rstrip())
            if not body:
                if self._ws_overflow or not text:
                    return
            elif self._ws_overflow:
                # whitespace run already over the bound is now interior
                self._skip()
                return
            else:
                self._content = self._stored + body
        else:
            # a trailing \r may still turn out to be part of \r\n
            self._content = self._stored + len(text) - text.endswith("\r")

        self._pending.append(text)
        self._stored += len(text)

        if self._too_long(self._content):
            self._skip()
        elif self.strip and self._too_long(self._stored - self._content):
            self._pending = ["".join(self._pending)[: self._content]]
            self._stored = self._content
            self._ws_overflow = True

    def _finish(self, piece: str) -> tuple[int, str] | None:
        self.line_number += 1
        self._append(piece)
        skipped = self._skipping
        length = self._length
        line = "".join(self._pending)[: self._content]
        self._reset_line()

        if skipped:
            if self.on_oversize is not None:
                self.on_oversize(self.line_number, length)
            return None
        return self.line_number, line

    def feed(self, text: str) -> list[tuple[int, str]]:
        """Add text and return the lines it completed."""
        lines = []
        start = 0
        while True:
            newline = text.find("\n", start)
            if newline == -1:
                break
            finished = self._finish(text[start:newline])
            if finished is not None:
                lines.append(finished)
            start = newline + 1

        self._append(text[start:])
        return lines

    def close(self) -> list[tuple[int, str]]:
        """Flush a final line that has no terminator."""
        if not self._length:
            return []
        finished = self._finish("")
        return [finished] if finished is not None else []


def read_lines(
    source: Source,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_line_length: int | None = None,
    on_oversize: Callable[[int, int], None] | None = None,
    strip: bool = False,
) -> Iterator[tuple[int, str]]:
    """Lazily read numbered text lines from a stream.

    Args:
        source: File-like object (text or binary) or an iterable of str/bytes chunks
        chunk_size: Read size used for file-like sources
        max_line_length: Optional bound; longer lines are skipped
        on_oversize: Called with (line_number, length) for each skipped line
        strip: Remove surrounding whitespace; the bound then applies to what remains

    Yields:
        (line_number, line) tuples, 1-based, terminators stripped

    Errors raised by the source itself propagate unchanged.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    assembler = LineAssembler(max_line_length, on_oversize, strip=strip)

    for chunk in _iter_chunks(source, chunk_size):
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        yield from assembler.feed(text)

    yield from assembler.feed(decoder.decode(b"", final=True))
    yield from assembler.close()


@dataclass(frozen=True)
class ParseError:
    """Advisory notice about a skipped line."""

    line_number: int
    reason: str  # OVERSIZED or INVALID_JSON
    message: str
    source: str | None = None


@dataclass
class ParseStats:
    """Line accounting for one parse."""

    lines_read: int = 0
    records_yielded: int = 0
    empty_lines: int = 0
    oversized_lines: int = 0
    invalid_lines: int = 0
    filtered_out: int = 0

    def merge(self, other: "ParseStats") -> None:
        for key, value in asdict(other).items():
            setattr(self, key, getattr(self, key) + value)

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class StreamParser:
    """Decodes JSON Lines into records, one JSON value per line.

    Args:
        max_line_length: Lines longer than this are skipped (None disables the bound)
        emit_errors: Collect ParseError notices for skipped lines in ``errors``
        on_error: Callback for each ParseError; implies emit_errors
        include: Optional predicate; records it rejects are dropped
        transform: Optional mapping applied to each record before it is yielded
        chunk_size: Read size for file-like sources
    """

    def __init__(
        self,
        max_line_length: int | None = DEFAULT_MAX_LINE_LENGTH,
        emit_errors: bool = False,
        on_error: Callable[[ParseError], None] | None = None,
        include: Callable[[Any], bool] | None = None,
        transform: Callable[[Any], Any] | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.max_line_length = max_line_length
        self.emit_errors = emit_errors or on_error is not None
        self.on_error = on_error
        self.include = include
        self.transform = transform
        self.chunk_size = chunk_size
        self.errors: list[ParseError] = []
        self.stats = ParseStats()

    def _reset(self) -> None:
        self.errors = []
        self.stats = ParseStats()

    def _report(self, error: ParseError) -> None:
        if error.source:
            where = f"{error.source}:{error.line_number}"
        else:
            where = f"line {error.line_number}"
        logger.debug(f"Skipping {where}: {error.message}")

        if not self.emit_errors:
            return
        self.errors.append(error)
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception as e:
                logger.warning(f"Parse error callback failed for {where}: {e}")

    def _oversized(self, line_number: int, length: int, name: str | None) -> None:
        self.stats.oversized_lines += 1
        self._report(
            ParseError(
                line_number=line_number,
                reason=OVERSIZED,
                message=f"Line length {length} exceeds maximum of {self.max_line_length}",
                source=name,
            )
        )

    def _parse(self, lines: Iterable[tuple[int, str]], name: str | None) -> Iterator[Any]:
        for line_number, line in lines:
            self.stats.lines_read += 1
            text = line.strip()
            if not text:
                self.stats.empty_lines += 1
                continue

            if self.max_line_length is not None and len(text) > self.max_line_length:
                self._oversized(line_number, len(text), name)
                continue

            try:
                record = json.loads(text)
            except (ValueError, RecursionError) as e:
                self.stats.invalid_lines += 1
                self._report(
                    ParseError(
                        line_number=line_number,
                        reason=INVALID_JSON,
                        message=f"Failed to parse JSON: {e}",
                        source=name,
                    )
                )
                continue

            if self.include is not None and not self.include(record):
                self.stats.filtered_out += 1
                continue
            if self.transform is not None:
                record = self.transform(record)

            self.stats.records_yielded += 1
            yield record

    def parse_stream(self, source: Source, name: str | None = None) -> Iterator[Any]:
        """Parse records from a file-like object or an iterable of chunks."""
        self._reset()

        def on_oversize(line_number: int, length: int) -> None:
            self.stats.lines_read += 1
            self._oversized(line_number, length, name)

        lines = read_lines(
            source,
            chunk_size=self.chunk_size,
            max_line_length=self.max_line_length,
            on_oversize=on_oversize,
            strip=True,
        )
        yield from self._parse(lines, name)

    def parse_lines(self, lines: Iterable[str], name: str | None = None) -> Iterator[Any]:
        """Parse records from already split lines."""
        self._reset()
        yield from self._parse(enumerate(lines, 1), name)

    def parse_file(self, path: str | Path) -> Iterator[Any]:
        """Parse records from a JSONL file.

        The file is opened on the first pull and closed when the generator is
        exhausted or closed. OSError from opening or reading propagates.
        """
        path = Path(path)
        with open(path, "rb") as f:
            yield from self.parse_stream(f, name=str(path))
