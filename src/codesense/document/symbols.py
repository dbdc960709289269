"""Symbol model derived from structural query matches.

The index owns a flat, document-ordered tuple of ``Symbol`` values. The
hierarchy is a derived view: each symbol carries the position of its
parent in that tuple. Rebuilding replaces the tuple as a whole.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from codesense.document.models import MatchOptions, Range, Symbol

if TYPE_CHECKING:
    from codesense.document._internal.parsing.packs import SymbolPattern, SymbolQueryConfig
    from codesense.document._internal.parsing.query import QueryEngine
    from codesense.document._internal.parsing.tree import SyntaxTree

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class _Candidate:
    name: str
    range: Range
    selection_range: Range
    node_type: str
    pattern: SymbolPattern


class SymbolIndex:
    """Hierarchical symbol list for one document.

    Usage::

        index = SymbolIndex(engine, pack.symbol_config)
        for symbol in index.symbols(tree):
            print(symbol.name, index.parent(symbol))
    """

    def __init__(self, engine: QueryEngine, config: SymbolQueryConfig) -> None:
        self._engine = engine
        self._config = config
        self._symbols: tuple[Symbol, ...] = ()
        self._source_revision: int | None = None

    @property
    def source_revision(self) -> int | None:
        return self._source_revision

    def is_stale(self, revision: int) -> bool:
        return self._source_revision != revision

    def symbols(self, tree: SyntaxTree) -> tuple[Symbol, ...]:
        """Symbols of ``tree``'s revision, rebuilding only when stale."""
        if self.is_stale(tree.revision):
            self._symbols = self._build(tree)
            self._source_revision = tree.revision
        return self._symbols

    def clear(self) -> None:
        self._symbols = ()
        self._source_revision = None

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _build(self, tree: SyntaxTree) -> tuple[Symbol, ...]:
        candidates = self._collect(tree)

        # Outer spans first when two symbols start together
        candidates.sort(key=lambda c: (c.range.start, -c.range.end))

        symbols: list[Symbol] = []
        stack: list[int] = []
        last_range: Range | None = None
        for candidate in candidates:
            if candidate.range == last_range:
                continue  # Same node matched by several patterns or declarators
            last_range = candidate.range

            while stack and symbols[stack[-1]].range.end <= candidate.range.start:
                stack.pop()
            while stack and not symbols[stack[-1]].range.contains(candidate.range):
                stack.pop()

            parent = stack[-1] if stack else None
            kind = candidate.pattern.kind
            if (
                parent is not None
                and candidate.pattern.nested_kind is not None
                and symbols[parent].kind in self._config.container_kinds
            ):
                kind = candidate.pattern.nested_kind

            index = len(symbols)
            symbols.append(
                Symbol(
                    name=candidate.name,
                    kind=kind,
                    range=candidate.range,
                    selection_range=candidate.selection_range,
                    index=index,
                    parent=parent,
                    node_type=candidate.node_type,
                )
            )
            stack.append(index)

        logger.debug("symbols_rebuilt", revision=tree.revision, count=len(symbols))
        return tuple(symbols)

    def _collect(self, tree: SyntaxTree) -> list[_Candidate]:
        candidates: list[_Candidate] = []
        for match in self._engine.matches(self._config.query_text, tree):
            if match.pattern_index >= len(self._config.patterns):
                continue
            node = match.first("node")
            name_node = match.first("name")
            if node is None or name_node is None:
                continue
            name = tree.node_text(name_node)
            if not name:
                continue
            candidates.append(
                _Candidate(
                    name=name,
                    range=tree.node_range(node),
                    selection_range=tree.node_range(name_node),
                    node_type=node.type,
                    pattern=self._config.patterns[match.pattern_index],
                )
            )
        return candidates

    # ------------------------------------------------------------------
    # Lookups over the last build
    # ------------------------------------------------------------------

    def parent(self, symbol: Symbol) -> Symbol | None:
        if symbol.parent is None:
            return None
        return self._symbols[symbol.parent]

    def children(self, symbol: Symbol) -> list[Symbol]:
        return [s for s in self._symbols if s.parent == symbol.index]

    def ancestors(self, symbol: Symbol) -> list[Symbol]:
        result: list[Symbol] = []
        current = self.parent(symbol)
        while current is not None:
            result.append(current)
            current = self.parent(current)
        return result

    def find(self, name: str, options: MatchOptions = MatchOptions.NONE) -> Symbol | None:
        """First symbol in document order whose name matches ``name``."""
        matcher = _name_matcher(name, options)
        for symbol in self._symbols:
            if matcher(symbol.name):
                return symbol
        return None

    def find_all(self, name: str, options: MatchOptions = MatchOptions.NONE) -> list[Symbol]:
        matcher = _name_matcher(name, options)
        return [s for s in self._symbols if matcher(s.name)]

    def containing(
        self,
        offset: int,
        predicate: Callable[[Symbol], bool] | None = None,
    ) -> Symbol | None:
        """Innermost symbol whose range holds ``offset`` (end inclusive)."""
        for symbol in reversed(self._symbols):
            if symbol.range.contains_offset(offset, inclusive_end=True) and (
                predicate is None or predicate(symbol)
            ):
                return symbol
        return None


def _name_matcher(name: str, options: MatchOptions) -> Callable[[str], bool]:
    pattern = name if options & MatchOptions.REGEXP else re.escape(name)
    if options & MatchOptions.WHOLE_WORDS:
        pattern = rf"\b(?:{pattern})\b"
    flags = 0 if options & MatchOptions.CASE_SENSITIVE else re.IGNORECASE
    regex = re.compile(pattern, flags)
    return lambda candidate: regex.search(candidate) is not None
