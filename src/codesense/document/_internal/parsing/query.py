"""Compiled tree-sitter queries, cached by source text.

``engine_for`` hands out one shared engine per grammar, so a pattern is
compiled once per process and then evaluated against the trees of every
document in that language. Compilation failures are reported as
``QuerySyntaxError`` carrying the pattern text; they are never turned into
an empty result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
import tree_sitter
from tree_sitter import Query, QueryCursor

from codesense.core.errors import QuerySyntaxError
from codesense.document._internal.parsing.tree import load_language

if TYPE_CHECKING:
    from codesense.document._internal.parsing.packs import LanguagePack
    from codesense.document._internal.parsing.tree import SyntaxTree
    from codesense.document.models import Range

logger = structlog.get_logger()


@dataclass(frozen=True)
class QueryMatch:
    """One pattern match: captures grouped by capture name."""

    pattern_index: int
    captures: dict[str, list[tree_sitter.Node]]

    def first(self, name: str) -> tree_sitter.Node | None:
        nodes = self.captures.get(name)
        return nodes[0] if nodes else None


class QueryEngine:
    """Query compiler and evaluator for one grammar."""

    def __init__(self, language: tree_sitter.Language, grammar_name: str) -> None:
        self._language = language
        self._grammar_name = grammar_name
        self._queries: dict[str, Query] = {}

    @property
    def grammar_name(self) -> str:
        return self._grammar_name

    @property
    def cached_count(self) -> int:
        return len(self._queries)

    def compile(self, pattern: str) -> Query:
        """Compile and cache a query."""
        query = self._queries.get(pattern)
        if query is not None:
            return query

        try:
            query = Query(self._language, pattern)
        except tree_sitter.QueryError as err:
            logger.warning(
                "query_compile_failed",
                grammar=self._grammar_name,
                reason=str(err),
            )
            raise QuerySyntaxError.malformed(pattern, self._grammar_name, str(err)) from err

        self._queries[pattern] = query
        logger.debug("query_compiled", grammar=self._grammar_name, patterns=query.pattern_count)
        return query

    def matches(
        self,
        pattern: str,
        tree: SyntaxTree,
        range: Range | None = None,
    ) -> list[QueryMatch]:
        """Run ``pattern`` over ``tree``, optionally limited to ``range``."""
        cursor = QueryCursor(self.compile(pattern))
        if range is not None:
            start, end = tree.byte_span(range)
            cursor.set_byte_range(start, end)

        return [
            QueryMatch(pattern_index=index, captures=captures)
            for index, captures in cursor.matches(tree.root_node)
            if captures
        ]

    def nodes(
        self,
        pattern: str,
        tree: SyntaxTree,
        range: Range | None = None,
        *,
        capture: str | None = None,
    ) -> list[tree_sitter.Node]:
        """Matched nodes in document order, optionally for one capture name."""
        seen: set[tuple[int, int, str]] = set()
        result: list[tree_sitter.Node] = []
        for match in self.matches(pattern, tree, range):
            for name, nodes in match.captures.items():
                if capture is not None and name != capture:
                    continue
                for node in nodes:
                    key = (node.start_byte, node.end_byte, node.type)
                    if key not in seen:
                        seen.add(key)
                        result.append(node)
        result.sort(key=lambda n: (n.start_byte, -n.end_byte))
        return result


_ENGINES: dict[str, QueryEngine] = {}


def engine_for(pack: LanguagePack) -> QueryEngine:
    """Get or create the shared engine for a pack's grammar."""
    engine = _ENGINES.get(pack.grammar_name)
    if engine is None:
        engine = QueryEngine(load_language(pack), pack.grammar_name)
        _ENGINES[pack.grammar_name] = engine
    return engine
