"""Conversion between buffer offsets and protocol positions.

Protocol positions are 0-based ``(line, character)`` pairs where
``character`` counts code units of the negotiated position encoding.
Buffer offsets count Python characters (code points), so the two only
agree for UTF-32.

Rules when reading a protocol position:
- a line past the end of the buffer raises ``OutOfRangeError``;
- a character past the end of its line clamps to the line end;
- a character inside a multi-unit code point rounds down to its start.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from codesense.core.errors import OutOfRangeError
from codesense.document.buffer import LineIndex
from codesense.document.models import Range


class PositionEncoding(str, Enum):
    UTF8 = "utf-8"
    UTF16 = "utf-16"
    UTF32 = "utf-32"

    def width(self, char: str) -> int:
        """Code units ``char`` occupies in this encoding."""
        if self is PositionEncoding.UTF32:
            return 1
        point = ord(char)
        if self is PositionEncoding.UTF16:
            return 2 if point > 0xFFFF else 1
        if point < 0x80:
            return 1
        if point < 0x800:
            return 2
        if point < 0x10000:
            return 3
        return 4

    def units(self, text: str) -> int:
        if self is PositionEncoding.UTF32:
            return len(text)
        if self is PositionEncoding.UTF8:
            return len(text.encode("utf-8", errors="surrogatepass"))
        return len(text.encode("utf-16-le", errors="surrogatepass")) // 2


def negotiate_encoding(
    capabilities: Mapping[str, Any] | None,
    preferred: PositionEncoding | str = PositionEncoding.UTF16,
) -> PositionEncoding:
    """Encoding announced by the server, falling back to ``preferred``."""
    announced = capabilities.get("positionEncoding") if capabilities else None
    if announced is not None:
        try:
            return PositionEncoding(announced)
        except ValueError:
            pass
    return PositionEncoding(preferred)


class CoordinateConverter:
    """Converts positions for one encoding against a ``LineIndex`` snapshot."""

    def __init__(self, encoding: PositionEncoding | str = PositionEncoding.UTF16) -> None:
        self.encoding = PositionEncoding(encoding)

    def to_protocol(self, index: LineIndex, offset: int) -> tuple[int, int]:
        line, column = index.to_position(offset)
        if self.encoding is PositionEncoding.UTF32:
            return line, column
        return line, self.encoding.units(index.line_text(line)[:column])

    def from_protocol(self, index: LineIndex, line: int, character: int) -> int:
        if line < 0 or line >= index.line_count:
            raise OutOfRangeError.line(line, index.line_count)
        if character < 0:
            raise OutOfRangeError.column(line, character, index.line_length(line))

        text = index.line_text(line)
        if self.encoding is PositionEncoding.UTF32:
            return index.line_start(line) + min(character, len(text))

        units = 0
        column = 0
        for char in text:
            units += self.encoding.width(char)
            if units > character:
                break
            column += 1
        return index.line_start(line) + column

    # ------------------------------------------------------------------
    # Protocol dictionaries
    # ------------------------------------------------------------------

    def position(self, index: LineIndex, offset: int) -> dict[str, int]:
        line, character = self.to_protocol(index, offset)
        return {"line": line, "character": character}

    def range(self, index: LineIndex, range: Range) -> dict[str, dict[str, int]]:
        return {
            "start": self.position(index, range.start),
            "end": self.position(index, range.end),
        }

    def offset_of(self, index: LineIndex, position: Mapping[str, Any]) -> int:
        return self.from_protocol(index, int(position["line"]), int(position["character"]))

    def range_of(self, index: LineIndex, range: Mapping[str, Any]) -> Range:
        start = self.offset_of(index, range["start"])
        end = self.offset_of(index, range["end"])
        return Range(start, max(start, end))


def supported_encodings() -> list[str]:
    """Encodings offered to the server, most preferred first."""
    return [PositionEncoding.UTF16.value, PositionEncoding.UTF8.value, PositionEncoding.UTF32.value]
