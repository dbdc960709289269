"""Document layer - text, syntax and symbols for one source file.

This module provides:
- TextBuffer: mutable text with a monotonic revision
- CodeDocument: buffer + incremental syntax tree + symbol index + cursor
- ResultCache: revision-tagged cache of derived results

``SemanticDocument`` (CodeDocument plus an analysis server) lives in
``codesense.document.semantic`` and is imported from there.

Parsing internals are in ``codesense.document._internal.parsing``.
"""

from codesense.document.buffer import LineIndex, TextBuffer
from codesense.document.cache import CachedResult, ResultCache
from codesense.document.code import CodeDocument
from codesense.document.models import (
    EditDelta,
    Location,
    MatchOptions,
    Range,
    Symbol,
    SymbolKind,
)
from codesense.document.symbols import SymbolIndex

__all__ = [
    "CachedResult",
    "CodeDocument",
    "EditDelta",
    "LineIndex",
    "Location",
    "MatchOptions",
    "Range",
    "ResultCache",
    "Symbol",
    "SymbolIndex",
    "SymbolKind",
    "TextBuffer",
]
