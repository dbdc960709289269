"""Tree-sitter syntax trees tied to buffer revisions.

A ``SyntaxTree`` is an immutable snapshot: the tree-sitter tree, the exact
source bytes it was parsed from, and the ``LineIndex`` of that revision.
``SyntaxTree.reparse`` never edits the previous tree in place; it edits a
copy and hands the copy to tree-sitter as the old tree, so only the
productions touching the edit are re-parsed and the rest are reused.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
import tree_sitter

from codesense.core.errors import GrammarUnavailableError, OutOfRangeError
from codesense.document.models import EditDelta, Range

if TYPE_CHECKING:
    from codesense.document._internal.parsing.packs import LanguagePack
    from codesense.document.buffer import LineIndex, TextBuffer

logger = structlog.get_logger()

_LANGUAGES: dict[str, tree_sitter.Language] = {}


def load_language(pack: LanguagePack) -> tree_sitter.Language:
    """Get or load the tree-sitter Language for a pack."""
    if pack.grammar_name in _LANGUAGES:
        return _LANGUAGES[pack.grammar_name]

    try:
        module = importlib.import_module(pack.grammar_module)
        language = tree_sitter.Language(getattr(module, pack.language_func)())
    except (ImportError, AttributeError) as err:
        raise GrammarUnavailableError.not_installed(pack.name, pack.grammar_package) from err

    _LANGUAGES[pack.grammar_name] = language
    return language


@dataclass(frozen=True, eq=False)
class SyntaxTree:
    """Parse of one buffer revision."""

    tree: tree_sitter.Tree
    revision: int
    source: bytes
    line_index: LineIndex
    pack: LanguagePack

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, buffer: TextBuffer, pack: LanguagePack) -> SyntaxTree:
        """Full parse of the current buffer content."""
        source = buffer.text.encode("utf-8")
        parser = tree_sitter.Parser(load_language(pack))
        tree = parser.parse(source)
        logger.debug(
            "parse_full",
            language=pack.name,
            revision=buffer.revision,
            bytes=len(source),
        )
        return cls(
            tree=tree,
            revision=buffer.revision,
            source=source,
            line_index=buffer.line_index,
            pack=pack,
        )

    @classmethod
    def reparse(cls, previous: SyntaxTree, delta: EditDelta, buffer: TextBuffer) -> SyntaxTree:
        """Incremental parse of ``buffer`` after ``delta`` was applied to it.

        ``previous`` must be the tree of the revision right before the delta.
        """
        old_index = previous.line_index
        new_index = buffer.line_index

        edited = previous.tree.copy()
        edited.edit(
            start_byte=old_index.to_byte(delta.start_offset),
            old_end_byte=old_index.to_byte(delta.old_end),
            new_end_byte=new_index.to_byte(delta.new_end),
            start_point=old_index.to_point(delta.start_offset),
            old_end_point=old_index.to_point(delta.old_end),
            new_end_point=new_index.to_point(delta.new_end),
        )

        source = buffer.text.encode("utf-8")
        parser = tree_sitter.Parser(load_language(previous.pack))
        tree = parser.parse(source, old_tree=edited)

        changed = edited.changed_ranges(tree)
        logger.debug(
            "parse_incremental",
            language=previous.pack.name,
            revision=buffer.revision,
            changed_ranges=len(changed),
            changed_bytes=sum(r.end_byte - r.start_byte for r in changed),
        )
        return cls(
            tree=tree,
            revision=buffer.revision,
            source=source,
            line_index=new_index,
            pack=previous.pack,
        )

    # ------------------------------------------------------------------
    # Node helpers
    # ------------------------------------------------------------------

    @property
    def root_node(self) -> tree_sitter.Node:
        return self.tree.root_node

    @property
    def has_errors(self) -> bool:
        return bool(self.tree.root_node.has_error)

    def node_range(self, node: tree_sitter.Node) -> Range:
        """Character range of ``node`` in this revision."""
        return Range(
            self.line_index.to_char(node.start_byte),
            self.line_index.to_char(node.end_byte),
        )

    def node_text(self, node: tree_sitter.Node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def byte_span(self, range: Range) -> tuple[int, int]:
        if range.end > self.line_index.length:
            raise OutOfRangeError.span(range.start, range.end, self.line_index.length)
        return self.line_index.to_byte(range.start), self.line_index.to_byte(range.end)

    def nodes_in_range(self, range: Range, *, named_only: bool = True) -> list[tree_sitter.Node]:
        """Nodes whose span intersects ``range``, in document order.

        Subtrees that do not intersect are pruned, so the cost follows the
        size of the range rather than the size of the tree.
        """
        start, end = self.byte_span(range)
        result: list[tree_sitter.Node] = []
        stack = [self.tree.root_node]
        while stack:
            node = stack.pop()
            if not _bytes_intersect(node.start_byte, node.end_byte, start, end):
                continue
            result.append(node)
            children = node.named_children if named_only else node.children
            stack.extend(reversed(children))
        return result

    def node_covering(self, range: Range, *, named_only: bool = True) -> tree_sitter.Node:
        """Smallest node fully containing ``range``.

        Walks down from the root, at each level picking the child that still
        contains the whole range with the tightest span; exact ties go to
        the earlier child.
        """
        start, end = self.byte_span(range)
        node = self.tree.root_node
        while True:
            best: tree_sitter.Node | None = None
            children = node.named_children if named_only else node.children
            for child in children:
                if child.start_byte <= start and end <= child.end_byte:
                    width = child.end_byte - child.start_byte
                    if best is None or width < best.end_byte - best.start_byte:
                        best = child
            if best is None:
                return node
            node = best


def _bytes_intersect(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    if a_start == a_end or b_start == b_end:
        return a_start <= b_end and b_start <= a_end
    return a_start < b_end and b_start < a_end
