"""CodeDocument: text buffer, syntax tree, symbols and cursor for one file.

The document is the composition root of the structural layer. It owns the
``TextBuffer``, the current ``SyntaxTree``, a ``QueryEngine`` for the
document's grammar, the ``SymbolIndex`` and a ``ResultCache``.

Every buffer mutation must reach ``on_edit`` in the order it happened.
The mutation helpers on the document (``replace``, ``insert``, ``remove``,
``delete_region``, ``load``) do this themselves. Code that edits
``document.buffer`` directly should forward each returned ``EditDelta``;
when it does not, the next read of the tree or the symbols notices the
revision mismatch and reparses from scratch.

Scripting-style accessors (``line``, ``column``, ``goto_line``) are
1-based. Offsets and ranges are 0-based character positions.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
import tree_sitter

from codesense.core.errors import GrammarUnavailableError, OutOfRangeError
from codesense.document._internal.parsing import (
    LanguagePack,
    QueryEngine,
    QueryMatch,
    SyntaxTree,
    engine_for,
    get_pack,
    get_pack_for_path,
)
from codesense.document.buffer import LineIndex, TextBuffer
from codesense.document.cache import ResultCache
from codesense.document.models import EditDelta, MatchOptions, Range, Symbol
from codesense.document.symbols import SymbolIndex

logger = structlog.get_logger()

_untitled_ids = itertools.count(1)

SymbolPredicate = Callable[[Symbol], bool]


def resolve_pack(language: str | LanguagePack | None, path: Path | None) -> LanguagePack:
    """Pick the language pack from an explicit language or the file suffix."""
    if isinstance(language, LanguagePack):
        return language
    if language is not None:
        pack = get_pack(language)
        if pack is None:
            raise GrammarUnavailableError.unknown(language)
        return pack
    if path is not None:
        pack = get_pack_for_path(path)
        if pack is not None:
            return pack
        raise GrammarUnavailableError.unknown(path.name)
    raise GrammarUnavailableError.unknown("<no language or path>")


class CodeDocument:
    """Structural view over one source text.

    Usage::

        doc = CodeDocument("int a() {}\\nint b() {}", language="c")
        doc.find_symbol("b").range  # Range(11, 21)
        doc.insert("// ", 0)
        doc.revision  # 1
    """

    def __init__(
        self,
        text: str = "",
        *,
        language: str | LanguagePack | None = None,
        path: Path | str | None = None,
        buffer: TextBuffer | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._pack = resolve_pack(language, self._path)
        self._buffer = buffer if buffer is not None else TextBuffer(text)
        self._engine = engine_for(self._pack)
        self._tree = SyntaxTree.parse(self._buffer, self._pack)
        self._index = SymbolIndex(self._engine, self._pack.symbol_config)
        self._cache = ResultCache(lambda: self._buffer.revision)
        self._cursor = 0
        self._selection: Range | None = None
        self._untitled = next(_untitled_ids) if self._path is None else 0

    @classmethod
    def open(cls, path: Path | str, **kwargs: Any) -> CodeDocument:
        """Load ``path`` into a new document."""
        path = Path(path)
        buffer = TextBuffer()
        buffer.load(path)
        logger.info("document_opened", path=str(path), revision=buffer.revision)
        return cls(path=path, buffer=buffer, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def buffer(self) -> TextBuffer:
        return self._buffer

    @property
    def text(self) -> str:
        return self._buffer.text

    @property
    def revision(self) -> int:
        return self._buffer.revision

    @property
    def line_index(self) -> LineIndex:
        return self._buffer.line_index

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def uri(self) -> str:
        if self._path is None:
            return f"untitled:document-{self._untitled}"
        return self._path.resolve().as_uri()

    @property
    def language(self) -> LanguagePack:
        return self._pack

    @property
    def tree(self) -> SyntaxTree:
        return self._current_tree()

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def query_engine(self) -> QueryEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def on_edit(self, delta: EditDelta) -> None:
        """Bring derived state up to date after a buffer mutation."""
        revision = self._buffer.revision
        if self._tree.revision < revision:
            if delta.revision == revision == self._tree.revision + 1:
                self._tree = SyntaxTree.reparse(self._tree, delta, self._buffer)
            else:
                # Deltas were skipped; the old tree cannot be edited into shape
                self._resync(delta_revision=delta.revision)

        self._cursor = min(_shift_offset(self._cursor, delta), self._buffer.length)
        self._selection = None

    def _current_tree(self) -> SyntaxTree:
        """The tree for the buffer's revision, reparsed if edits bypassed ``on_edit``."""
        if self._tree.revision != self._buffer.revision:
            self._resync()
        return self._tree

    def _resync(self, **context: Any) -> None:
        logger.warning(
            "edit_out_of_order",
            tree_revision=self._tree.revision,
            revision=self._buffer.revision,
            **context,
        )
        self._tree = SyntaxTree.parse(self._buffer, self._pack)
        self._cursor = min(self._cursor, self._buffer.length)
        self._selection = None

    def replace(self, range: Range, text: str) -> EditDelta:
        delta = self._buffer.replace(range, text)
        self.on_edit(delta)
        return delta

    def insert(self, text: str, offset: int | None = None) -> EditDelta:
        """Insert ``text`` at ``offset`` (default: the cursor)."""
        delta = self._buffer.insert(self.position if offset is None else offset, text)
        self.on_edit(delta)
        return delta

    def remove(self, length: int, offset: int | None = None) -> EditDelta:
        """Remove ``length`` characters starting at ``offset`` (default: the cursor)."""
        delta = self._buffer.remove(self.position if offset is None else offset, length)
        self.on_edit(delta)
        return delta

    def delete_region(self, start: int, end: int) -> EditDelta:
        delta = self._buffer.delete_region(start, end)
        self.on_edit(delta)
        return delta

    def set_text(self, text: str) -> EditDelta:
        delta = self._buffer.set_text(text)
        self.on_edit(delta)
        return delta

    def load(self, path: Path | str | None = None) -> EditDelta:
        """Replace the content with the file at ``path`` (default: own path)."""
        target = Path(path) if path is not None else self._require_path()
        delta = self._buffer.load(target)
        self._path = target
        self.on_edit(delta)
        return delta

    def save(self, path: Path | str | None = None) -> None:
        target = Path(path) if path is not None else self._require_path()
        self._buffer.save(target)
        self._path = target

    def _require_path(self) -> Path:
        if self._path is None:
            raise ValueError("Document has no path")
        return self._path

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    @property
    def position(self) -> int:
        """Cursor as a 0-based character offset."""
        self._current_tree()
        return self._cursor

    def set_position(self, offset: int) -> None:
        if offset < 0 or offset > self._buffer.length:
            raise OutOfRangeError.offset(offset, self._buffer.length)
        self._cursor = offset
        self._selection = None

    @property
    def selection(self) -> Range | None:
        self._current_tree()
        return self._selection

    @property
    def selected_text(self) -> str:
        selection = self.selection
        if selection is None:
            return ""
        return self._buffer.slice(selection)

    def select_region(self, start: int, end: int) -> None:
        if start < 0 or end < start or end > self._buffer.length:
            raise OutOfRangeError.span(start, end, self._buffer.length)
        self._cursor = start
        self._selection = Range(start, end)

    @property
    def line(self) -> int:
        """1-based line of the cursor."""
        return self._buffer.to_position(self.position)[0] + 1

    @property
    def column(self) -> int:
        """1-based column of the cursor."""
        return self._buffer.to_position(self.position)[1] + 1

    @property
    def line_count(self) -> int:
        return self._buffer.line_count

    def goto_line(self, line: int, column: int = 1) -> None:
        """Move the cursor to 1-based ``line``/``column``."""
        self.set_position(self.offset_at(line, column))

    def offset_at(self, line: int, column: int) -> int:
        """Offset of a 1-based ``line``/``column`` pair."""
        return self._buffer.to_offset(line - 1, column - 1)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def nodes_in_range(self, range: Range, *, named_only: bool = True) -> list[tree_sitter.Node]:
        return self._current_tree().nodes_in_range(range, named_only=named_only)

    def node_covering(self, range: Range, *, named_only: bool = True) -> tree_sitter.Node:
        return self._current_tree().node_covering(range, named_only=named_only)

    def node_range(self, node: tree_sitter.Node) -> Range:
        return self._tree.node_range(node)

    def node_text(self, node: tree_sitter.Node) -> str:
        return self._tree.node_text(node)

    def query(self, pattern: str, range: Range | None = None) -> list[QueryMatch]:
        """Run a tree-sitter query over the document or a sub-range."""
        return self._engine.matches(pattern, self._current_tree(), range)

    def query_nodes(
        self,
        pattern: str,
        range: Range | None = None,
        *,
        capture: str | None = None,
    ) -> list[tree_sitter.Node]:
        return self._engine.nodes(pattern, self._current_tree(), range, capture=capture)

    # ------------------------------------------------------------------
    # Symbols
    # ------------------------------------------------------------------

    def symbols(self) -> tuple[Symbol, ...]:
        """All symbols of the current revision, in document order."""
        return self._index.symbols(self._current_tree())

    def parent_symbol(self, symbol: Symbol) -> Symbol | None:
        self.symbols()
        return self._index.parent(symbol)

    def child_symbols(self, symbol: Symbol) -> list[Symbol]:
        self.symbols()
        return self._index.children(symbol)

    def find_symbol(self, name: str, options: MatchOptions = MatchOptions.NONE) -> Symbol | None:
        self.symbols()
        return self._index.find(name, options)

    def find_symbols(self, name: str, options: MatchOptions = MatchOptions.NONE) -> list[Symbol]:
        self.symbols()
        return self._index.find_all(name, options)

    def current_symbol(self, predicate: SymbolPredicate | None = None) -> Symbol | None:
        """Innermost symbol containing the cursor that satisfies ``predicate``."""
        self.symbols()
        return self._index.containing(self._cursor, predicate)

    def symbol_under_cursor(self) -> Symbol | None:
        """Symbol whose name the cursor is on."""
        for symbol in reversed(self.symbols()):
            if symbol.selection_range.contains_offset(self._cursor, inclusive_end=True):
                return symbol
        return None

    def select_symbol(
        self,
        name: str,
        options: MatchOptions = MatchOptions.NONE,
    ) -> Symbol | None:
        """Select the name of the first symbol matching ``name``."""
        symbol = self.find_symbol(name, options)
        if symbol is None:
            logger.debug("symbol_not_found", name=name, options=int(options))
            return None
        self.select_region(symbol.selection_range.start, symbol.selection_range.end)
        return symbol

    def delete_symbol(self, symbol: Symbol) -> EditDelta:
        """Remove ``symbol``'s text. The symbol must be from the current revision."""
        return self.replace(symbol.range, "")


def _shift_offset(offset: int, delta: EditDelta) -> int:
    if offset < delta.start_offset:
        return offset
    if offset < delta.old_end:
        return delta.start_offset
    return offset + delta.chars_added - delta.chars_removed
