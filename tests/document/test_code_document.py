"""Tests for CodeDocument: edits, cursor, structure and symbols together."""

from pathlib import Path

import pytest

from codesense.core.errors import GrammarUnavailableError, OutOfRangeError
from codesense.document import CodeDocument, MatchOptions, Range, SymbolKind

TWO_FUNCTIONS = "int a() {}\nint b() {}"


@pytest.fixture
def doc() -> CodeDocument:
    return CodeDocument(TWO_FUNCTIONS, language="c")


class TestEdits:
    """Mutations keep tree, symbols and revision in step."""

    def test_given_two_functions_when_find_symbol_then_range(self, doc: CodeDocument) -> None:
        symbol = doc.find_symbol("b")

        assert symbol is not None
        assert symbol.range == Range(11, 21)
        assert symbol.kind is SymbolKind.FUNCTION

    def test_given_comment_inserted_when_symbols_then_first_function_gone(
        self, doc: CodeDocument
    ) -> None:
        # When
        delta = doc.insert("//", 0)

        # Then
        assert delta.revision == 1
        assert doc.revision == 1
        assert doc.tree.revision == 1
        assert [(s.name, s.range) for s in doc.symbols()] == [("b", Range(13, 23))]

    def test_given_symbol_when_deleted_then_text_and_symbols_updated(
        self, doc: CodeDocument
    ) -> None:
        symbol = doc.find_symbol("a")
        assert symbol is not None

        doc.delete_symbol(symbol)

        assert doc.text == "\nint b() {}"
        assert [s.name for s in doc.symbols()] == ["b"]

    def test_given_deltas_skipped_when_on_edit_then_full_parse(self, doc: CodeDocument) -> None:
        """Edits made on the buffer directly and forwarded late still converge."""
        # Given
        doc.buffer.replace(Range(4, 5), "alpha")
        late = doc.buffer.replace(Range(0, 0), "//")

        # When
        doc.on_edit(late)

        # Then
        assert doc.tree.revision == 2
        assert [s.name for s in doc.symbols()] == ["b"]

    def test_given_replace_when_text_set_then_single_revision(self, doc: CodeDocument) -> None:
        doc.set_text("int only(void) { return 1; }")

        assert doc.revision == 1
        assert [s.name for s in doc.symbols()] == ["only"]

    def test_given_buffer_emptied_directly_when_symbols_then_none_left(
        self, doc: CodeDocument
    ) -> None:
        """Edits that never reached on_edit are picked up on the next read."""
        # Given
        doc.buffer.replace(Range(0, len(TWO_FUNCTIONS)), "")

        # When
        symbols = doc.symbols()

        # Then
        assert symbols == ()
        assert doc.tree.revision == doc.revision == 1

    def test_given_buffer_edited_directly_when_structure_read_then_current_text(
        self, doc: CodeDocument
    ) -> None:
        # Given
        doc.set_position(15)
        doc.buffer.replace(Range(0, 11), "")

        # When
        node = doc.node_covering(Range(4, 5))

        # Then
        assert doc.node_text(node) == "b"
        assert doc.find_symbol("a") is None
        assert [s.range for s in doc.symbols()] == [Range(0, 10)]
        assert all(s.range.end <= len(doc.text) for s in doc.symbols())
        assert doc.position == 10

    def test_given_negative_offset_when_insert_then_out_of_range(self, doc: CodeDocument) -> None:
        with pytest.raises(OutOfRangeError):
            doc.insert("x", -1)

        assert doc.revision == 0
        assert doc.text == TWO_FUNCTIONS


class TestCursor:
    """Cursor movement, selection and shifting."""

    def test_given_goto_line_when_symbol_under_cursor_then_name_found(
        self, doc: CodeDocument
    ) -> None:
        # When
        doc.goto_line(2, 5)

        # Then
        assert doc.position == 15
        assert (doc.line, doc.column) == (2, 5)
        symbol = doc.symbol_under_cursor()
        assert symbol is not None and symbol.name == "b"

    def test_given_line_and_column_when_offset_at_then_character_offset(
        self, doc: CodeDocument
    ) -> None:
        assert doc.offset_at(1, 1) == 0
        assert doc.offset_at(2, 5) == 15
        assert doc.position == 0

    def test_given_line_past_end_when_goto_line_then_out_of_range(
        self, doc: CodeDocument
    ) -> None:
        with pytest.raises(OutOfRangeError):
            doc.goto_line(9)

        assert doc.position == 0

    def test_given_symbol_when_selected_then_name_selected(self, doc: CodeDocument) -> None:
        symbol = doc.select_symbol("B", MatchOptions.NONE)

        assert symbol is not None
        assert doc.selection == Range(15, 16)
        assert doc.selected_text == "b"
        assert doc.position == 15

    def test_given_unknown_name_when_selected_then_nothing(self, doc: CodeDocument) -> None:
        assert doc.select_symbol("zzz") is None
        assert doc.selection is None

    def test_given_cursor_after_edit_when_text_inserted_before_then_shifted(
        self, doc: CodeDocument
    ) -> None:
        doc.set_position(15)

        doc.insert("xx", 0)

        assert doc.position == 17
        assert doc.selection is None

    def test_given_cursor_inside_removed_span_when_removed_then_at_start(
        self, doc: CodeDocument
    ) -> None:
        doc.set_position(6)

        doc.delete_region(4, 10)

        assert doc.position == 4

    def test_given_cursor_before_edit_when_text_inserted_after_then_unchanged(
        self, doc: CodeDocument
    ) -> None:
        doc.set_position(2)

        doc.insert("// tail", doc.buffer.length)

        assert doc.position == 2

    def test_given_default_offset_when_insert_then_at_cursor(self, doc: CodeDocument) -> None:
        doc.set_position(11)

        doc.insert("static ")

        assert doc.text == "int a() {}\nstatic int b() {}"
        assert doc.position == 18

    def test_given_offset_past_end_when_set_position_then_out_of_range(
        self, doc: CodeDocument
    ) -> None:
        with pytest.raises(OutOfRangeError):
            doc.set_position(len(TWO_FUNCTIONS) + 1)


class TestStructure:
    """Node and query access through the document."""

    def test_given_query_when_run_then_names_captured(self, doc: CodeDocument) -> None:
        nodes = doc.query_nodes(
            "(function_declarator declarator: (identifier) @name)", capture="name"
        )

        assert [doc.node_text(n) for n in nodes] == ["a", "b"]

    def test_given_query_with_range_when_run_then_limited(self, doc: CodeDocument) -> None:
        matches = doc.query("(identifier) @id", Range(11, 21))

        assert [doc.node_text(m.first("id")) for m in matches] == ["b"]  # type: ignore[arg-type]

    def test_given_range_when_node_covering_then_innermost(self, doc: CodeDocument) -> None:
        node = doc.node_covering(Range(15, 16))

        assert node.type == "identifier"
        assert doc.node_range(node) == Range(15, 16)


class TestSymbols:
    """Symbol navigation on the current revision."""

    def test_given_method_when_current_symbol_with_predicate_then_filtered(self) -> None:
        # Given
        text = "class A:\n    def m(self):\n        return 1\n"
        doc = CodeDocument(text, language="python")
        doc.set_position(text.index("return"))

        # When
        innermost = doc.current_symbol()
        enclosing_class = doc.current_symbol(lambda s: s.kind is SymbolKind.CLASS)

        # Then
        assert innermost is not None and innermost.kind is SymbolKind.METHOD
        assert enclosing_class is not None and enclosing_class.name == "A"
        assert doc.parent_symbol(innermost) == enclosing_class
        assert doc.child_symbols(enclosing_class) == [innermost]

    def test_given_cursor_outside_symbols_when_current_symbol_then_none(self) -> None:
        doc = CodeDocument("x = 1\n", language="python")

        assert doc.current_symbol() is None

    def test_given_regexp_when_find_symbols_then_all_matches(self, doc: CodeDocument) -> None:
        found = doc.find_symbols("^[ab]$", MatchOptions.REGEXP)

        assert [s.name for s in found] == ["a", "b"]


class TestFiles:
    """Opening, loading and saving."""

    def test_given_c_file_when_opened_then_language_from_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "main.c"
        path.write_bytes(b"int main(void) {\r\n  return 0;\r\n}\r\n")

        doc = CodeDocument.open(path)

        assert doc.language.name == "c"
        assert doc.text == "int main(void) {\n  return 0;\n}\n"
        assert doc.uri == path.resolve().as_uri()
        assert [s.name for s in doc.symbols()] == ["main"]

    def test_given_crlf_file_when_saved_then_line_endings_kept(self, tmp_path: Path) -> None:
        path = tmp_path / "main.c"
        path.write_bytes(b"int a;\r\n")
        doc = CodeDocument.open(path)

        doc.insert("int b;\n", doc.buffer.length)
        doc.save()

        assert path.read_bytes() == b"int a;\r\nint b;\r\n"

    def test_given_unknown_suffix_when_opened_then_grammar_unavailable(
        self, tmp_path: Path
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        with pytest.raises(GrammarUnavailableError):
            CodeDocument.open(path)

    def test_given_unknown_language_when_constructed_then_grammar_unavailable(self) -> None:
        with pytest.raises(GrammarUnavailableError):
            CodeDocument("", language="cobol")

    def test_given_no_path_when_saved_then_value_error(self, doc: CodeDocument) -> None:
        assert doc.uri.startswith("untitled:document-")
        with pytest.raises(ValueError):
            doc.save()

    def test_given_path_when_loaded_then_content_replaced(
        self, doc: CodeDocument, tmp_path: Path
    ) -> None:
        path = tmp_path / "other.c"
        path.write_text("int z() {}\n")

        delta = doc.load(path)

        assert delta.revision == 1
        assert doc.path == path
        assert [s.name for s in doc.symbols()] == ["z"]
