"""Value types shared by the document layer.

All offsets are character offsets into the buffer text (Python ``str``
indices). Ranges are half-open: ``[start, end)``. A range only means
something relative to the revision it was derived from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from urllib.parse import unquote, urlparse

from codesense.core.errors import OutOfRangeError


@dataclass(frozen=True, slots=True)
class Range:
    """Half-open character span ``[start, end)``."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise OutOfRangeError.bounds(self.start, self.end)

    @classmethod
    def at(cls, offset: int) -> Range:
        """Empty range at ``offset`` (a cursor)."""
        return cls(offset, offset)

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, other: Range) -> bool:
        return self.start <= other.start and other.end <= self.end

    def contains_offset(self, offset: int, *, inclusive_end: bool = False) -> bool:
        if inclusive_end:
            return self.start <= offset <= self.end
        return self.start <= offset < self.end

    def intersects(self, other: Range) -> bool:
        if self.is_empty or other.is_empty:
            return self.start <= other.end and other.start <= self.end
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start}..{self.end}"


@dataclass(frozen=True, slots=True)
class EditDelta:
    """One buffer mutation, in the order it happened."""

    start_offset: int
    chars_removed: int
    chars_added: int
    revision: int  # Revision the mutation produced

    @property
    def old_end(self) -> int:
        return self.start_offset + self.chars_removed

    @property
    def new_end(self) -> int:
        return self.start_offset + self.chars_added


class SymbolKind(str, Enum):
    """Kinds of named structural units."""

    NAMESPACE = "namespace"
    CLASS = "class"
    STRUCT = "struct"
    UNION = "union"
    ENUM = "enum"
    INTERFACE = "interface"
    TYPE_ALIAS = "type_alias"
    FUNCTION = "function"
    METHOD = "method"
    FIELD = "field"
    VARIABLE = "variable"
    OTHER = "other"

    @property
    def is_callable(self) -> bool:
        return self in (SymbolKind.FUNCTION, SymbolKind.METHOD)


@dataclass(frozen=True, slots=True)
class Symbol:
    """A named, ranged structural unit.

    ``parent`` is the position of the enclosing symbol in the owning
    index's flat sequence, never an object reference, so an index can be
    dropped and rebuilt as a whole.
    """

    name: str
    kind: SymbolKind
    range: Range
    selection_range: Range
    index: int
    parent: int | None = None
    node_type: str = ""


class MatchOptions(IntFlag):
    """Name matching flags for symbol lookup.

    The default (``NONE``) is a case-insensitive substring match.
    """

    NONE = 0
    CASE_SENSITIVE = 1
    WHOLE_WORDS = 2
    REGEXP = 4


@dataclass(frozen=True, slots=True)
class Location:
    """A navigation target reported by the analysis server.

    ``start``/``end`` are protocol coordinates (0-based line, character in
    the negotiated encoding). ``range`` is filled in only when the target
    lies in the document that asked, converted against the revision the
    answer was accepted at.
    """

    uri: str
    start: tuple[int, int]
    end: tuple[int, int]
    range: Range | None = field(default=None, compare=False)

    @property
    def path(self) -> str | None:
        parsed = urlparse(self.uri)
        if parsed.scheme != "file":
            return None
        return unquote(parsed.path)
