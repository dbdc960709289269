"""Mutable text buffer with a monotonic revision counter.

``TextBuffer.replace`` is the only mutation primitive: insertions,
deletions and whole-text loads are all expressed through it, and each call
bumps ``revision`` exactly once and returns the ``EditDelta`` that
downstream structures use to update themselves.

Line/column conversion goes through an immutable ``LineIndex`` snapshot.
Every syntax tree keeps the snapshot of the revision it was parsed from,
so old byte positions remain resolvable after the buffer has moved on.
Lines and columns are 0-based here; the document layer offers the
1-based variants used by scripts.
"""

from __future__ import annotations

import os
from bisect import bisect_right
from pathlib import Path

import structlog

from codesense.core.errors import OutOfRangeError
from codesense.document.models import EditDelta, Range

logger = structlog.get_logger()

LF = "\n"
CRLF = "\r\n"
UTF8_BOM = b"\xef\xbb\xbf"


class LineIndex:
    """Line start table for one text snapshot.

    Holds line starts both in characters and in UTF-8 bytes (tree-sitter
    positions are byte based). Lookups bisect the tables.
    """

    __slots__ = ("_text", "_char_starts", "_byte_starts", "_byte_length", "_ascii")

    def __init__(self, text: str) -> None:
        self._text = text
        char_starts = [0]
        byte_starts = [0]
        pos = 0
        byte_pos = 0
        for line in text.split(LF)[:-1]:
            pos += len(line) + 1
            byte_pos += len(line.encode("utf-8")) + 1
            char_starts.append(pos)
            byte_starts.append(byte_pos)
        last = text[char_starts[-1] :]
        self._byte_length = byte_starts[-1] + len(last.encode("utf-8"))
        self._char_starts = char_starts
        self._byte_starts = byte_starts
        self._ascii = self._byte_length == len(text)

    @property
    def text(self) -> str:
        return self._text

    @property
    def length(self) -> int:
        return len(self._text)

    @property
    def byte_length(self) -> int:
        return self._byte_length

    @property
    def line_count(self) -> int:
        return len(self._char_starts)

    def line_start(self, line: int) -> int:
        self._check_line(line)
        return self._char_starts[line]

    def line_length(self, line: int) -> int:
        """Length of ``line`` in characters, excluding its newline."""
        self._check_line(line)
        if line + 1 < len(self._char_starts):
            return self._char_starts[line + 1] - self._char_starts[line] - 1
        return len(self._text) - self._char_starts[line]

    def line_text(self, line: int) -> str:
        start = self.line_start(line)
        return self._text[start : start + self.line_length(line)]

    def to_position(self, offset: int) -> tuple[int, int]:
        """Character offset -> (line, column)."""
        if offset < 0 or offset > len(self._text):
            raise OutOfRangeError.offset(offset, len(self._text))
        line = bisect_right(self._char_starts, offset) - 1
        return line, offset - self._char_starts[line]

    def to_offset(self, line: int, column: int) -> int:
        """(line, column) -> character offset."""
        length = self.line_length(line)
        if column < 0 or column > length:
            raise OutOfRangeError.column(line, column, length)
        return self._char_starts[line] + column

    def to_byte(self, offset: int) -> int:
        """Character offset -> UTF-8 byte offset."""
        if self._ascii:
            if offset < 0 or offset > len(self._text):
                raise OutOfRangeError.offset(offset, len(self._text))
            return offset
        line, column = self.to_position(offset)
        start = self._char_starts[line]
        return self._byte_starts[line] + len(self._text[start : start + column].encode("utf-8"))

    def to_char(self, byte_offset: int) -> int:
        """UTF-8 byte offset -> character offset.

        A byte offset inside a multi-byte sequence resolves to the start of
        that character.
        """
        if byte_offset < 0 or byte_offset > self._byte_length:
            raise OutOfRangeError.offset(byte_offset, self._byte_length)
        if self._ascii:
            return byte_offset
        line = bisect_right(self._byte_starts, byte_offset) - 1
        start = self._char_starts[line]
        raw = self.line_text(line).encode("utf-8")[: byte_offset - self._byte_starts[line]]
        return start + len(raw.decode("utf-8", errors="ignore"))

    def to_point(self, offset: int) -> tuple[int, int]:
        """Character offset -> tree-sitter point (row, byte column)."""
        line, column = self.to_position(offset)
        if self._ascii:
            return line, column
        start = self._char_starts[line]
        return line, len(self._text[start : start + column].encode("utf-8"))

    def _check_line(self, line: int) -> None:
        if line < 0 or line >= len(self._char_starts):
            raise OutOfRangeError.line(line, len(self._char_starts))


class TextBuffer:
    """Text content plus revision counter.

    Usage::

        buffer = TextBuffer("int a() {}")
        delta = buffer.replace(Range(0, 0), "// ")
        buffer.revision  # 1
    """

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._revision = 0
        self._line_index = LineIndex(text)
        self.line_ending = os.linesep if os.linesep in (LF, CRLF) else LF
        self.utf8_bom = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def line_index(self) -> LineIndex:
        return self._line_index

    @property
    def length(self) -> int:
        return len(self._text)

    @property
    def line_count(self) -> int:
        return self._line_index.line_count

    def __len__(self) -> int:
        return len(self._text)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, range: Range, text: str) -> EditDelta:
        """Replace ``range`` with ``text`` and bump the revision."""
        if range.end > len(self._text):
            raise OutOfRangeError.span(range.start, range.end, len(self._text))

        self._text = self._text[: range.start] + text + self._text[range.end :]
        self._line_index = LineIndex(self._text)
        self._revision += 1

        delta = EditDelta(
            start_offset=range.start,
            chars_removed=range.length,
            chars_added=len(text),
            revision=self._revision,
        )
        logger.debug(
            "buffer_replaced",
            revision=self._revision,
            start=range.start,
            removed=range.length,
            added=len(text),
        )
        return delta

    def insert(self, offset: int, text: str) -> EditDelta:
        if offset < 0 or offset > len(self._text):
            raise OutOfRangeError.offset(offset, len(self._text))
        return self.replace(Range.at(offset), text)

    def remove(self, offset: int, length: int) -> EditDelta:
        return self.delete_region(offset, offset + length)

    def delete_region(self, start: int, end: int) -> EditDelta:
        if start < 0 or end < start:
            raise OutOfRangeError.span(start, end, len(self._text))
        return self.replace(Range(start, end), "")

    def set_text(self, text: str) -> EditDelta:
        return self.replace(Range(0, len(self._text)), text)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_position(self, offset: int) -> tuple[int, int]:
        return self._line_index.to_position(offset)

    def to_offset(self, line: int, column: int) -> int:
        return self._line_index.to_offset(line, column)

    def slice(self, range: Range) -> str:
        if range.end > len(self._text):
            raise OutOfRangeError.span(range.start, range.end, len(self._text))
        return self._text[range.start : range.end]

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def load(self, path: Path) -> EditDelta:
        """Load ``path``, detecting BOM and line ending.

        CRLF is normalised to LF in memory and restored by ``save``.
        """
        data = path.read_bytes()
        self._detect_format(data)
        if self.utf8_bom:
            data = data[len(UTF8_BOM) :]
        text = data.decode("utf-8").replace(CRLF, LF)
        logger.debug(
            "buffer_loaded", path=str(path), chars=len(text), crlf=self.line_ending == CRLF
        )
        return self.set_text(text)

    def save(self, path: Path) -> None:
        text = self._text
        if self.line_ending == CRLF:
            text = text.replace(LF, CRLF)
        data = text.encode("utf-8")
        if self.utf8_bom:
            data = UTF8_BOM + data
        path.write_bytes(data)
        logger.debug("buffer_saved", path=str(path), revision=self._revision)

    def _detect_format(self, data: bytes) -> None:
        if not data:
            return
        self.utf8_bom = data.startswith(UTF8_BOM)
        newline = data.find(b"\n")
        if newline == -1:
            return  # Keeps the native ending
        if newline > 0 and data[newline - 1 : newline] == b"\r":
            self.line_ending = CRLF
        else:
            self.line_ending = LF
