"""Unified LanguagePack: single source of truth for tree-sitter config.

Every language CodeSense understands has exactly ONE LanguagePack that
consolidates:
- Grammar install metadata (package, module, loader function)
- File extension detection
- Symbol extraction query (S-expression patterns + SymbolPattern mappings)
- Which node types are definitions (vs. declarations)
- The language identifier sent to the analysis server

The PACKS registry is the canonical lookup: ``PACKS["cpp"]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from codesense.document.models import SymbolKind

# =========================================================================
# Dataclasses
# =========================================================================


@dataclass(frozen=True)
class SymbolPattern:
    """Maps a query pattern index to symbol extraction metadata."""

    kind: SymbolKind
    nested_kind: SymbolKind | None = None  # Kind when the parent is a container


@dataclass(frozen=True)
class SymbolQueryConfig:
    """Query configuration for symbol extraction in a language.

    Each pattern captures the symbol span as ``@node`` and its name as
    ``@name``. ``patterns`` is indexed by query pattern index.
    """

    query_text: str = ""
    patterns: tuple[SymbolPattern, ...] = ()
    container_kinds: frozenset[SymbolKind] = frozenset()


@dataclass(frozen=True)
class LanguagePack:
    """Complete tree-sitter configuration for a single language."""

    # -- Identity --
    name: str  # Canonical language name ("c", "cpp", "python")
    grammar_name: str
    language_id: str  # LSP languageId

    # -- Grammar install --
    grammar_package: str  # PyPI package ("tree-sitter-cpp")
    grammar_module: str  # Python import ("tree_sitter_cpp")
    language_func: str = "language"

    # -- File detection --
    extensions: frozenset[str] = field(default_factory=frozenset)

    # -- Symbol extraction --
    symbol_config: SymbolQueryConfig = field(default_factory=SymbolQueryConfig)

    # -- Declaration/definition switching --
    definition_types: frozenset[str] = field(default_factory=frozenset)


# =========================================================================
# C
# =========================================================================

_C_SYMBOLS = SymbolQueryConfig(
    query_text="""
        (function_definition
            declarator: (function_declarator
                declarator: (identifier) @name)) @node
        (function_definition
            declarator: (pointer_declarator
                declarator: (function_declarator
                    declarator: (identifier) @name))) @node
        (declaration
            declarator: (function_declarator
                declarator: (identifier) @name)) @node
        (struct_specifier
            name: (type_identifier) @name
            body: (field_declaration_list)) @node
        (union_specifier
            name: (type_identifier) @name
            body: (field_declaration_list)) @node
        (enum_specifier
            name: (type_identifier) @name
            body: (enumerator_list)) @node
        (field_declaration
            declarator: (field_identifier) @name) @node
        (type_definition
            declarator: (type_identifier) @name) @node
    """,
    patterns=(
        SymbolPattern(kind=SymbolKind.FUNCTION),
        SymbolPattern(kind=SymbolKind.FUNCTION),
        SymbolPattern(kind=SymbolKind.FUNCTION),
        SymbolPattern(kind=SymbolKind.STRUCT),
        SymbolPattern(kind=SymbolKind.UNION),
        SymbolPattern(kind=SymbolKind.ENUM),
        SymbolPattern(kind=SymbolKind.FIELD),
        SymbolPattern(kind=SymbolKind.TYPE_ALIAS),
    ),
    container_kinds=frozenset({SymbolKind.STRUCT, SymbolKind.UNION}),
)

C_PACK = LanguagePack(
    name="c",
    grammar_name="c",
    language_id="c",
    grammar_package="tree-sitter-c",
    grammar_module="tree_sitter_c",
    extensions=frozenset({"c", "h"}),
    symbol_config=_C_SYMBOLS,
    definition_types=frozenset({"function_definition"}),
)


# =========================================================================
# C++
# =========================================================================

_CPP_SYMBOLS = SymbolQueryConfig(
    query_text="""
        (function_definition
            declarator: (function_declarator
                declarator: (identifier) @name)) @node
        (function_definition
            declarator: (function_declarator
                declarator: (qualified_identifier
                    name: (_) @name))) @node
        (function_definition
            declarator: (function_declarator
                declarator: (field_identifier) @name)) @node
        (class_specifier
            name: (type_identifier) @name
            body: (field_declaration_list)) @node
        (struct_specifier
            name: (type_identifier) @name
            body: (field_declaration_list)) @node
        (namespace_definition
            name: (namespace_identifier) @name) @node
        (enum_specifier
            name: (type_identifier) @name
            body: (enumerator_list)) @node
        (declaration
            declarator: (function_declarator
                declarator: (identifier) @name)) @node
        (field_declaration
            declarator: (function_declarator
                declarator: (field_identifier) @name)) @node
        (field_declaration
            declarator: (field_identifier) @name) @node
    """,
    patterns=(
        SymbolPattern(kind=SymbolKind.FUNCTION, nested_kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.CLASS),
        SymbolPattern(kind=SymbolKind.STRUCT),
        SymbolPattern(kind=SymbolKind.NAMESPACE),
        SymbolPattern(kind=SymbolKind.ENUM),
        SymbolPattern(kind=SymbolKind.FUNCTION, nested_kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.FIELD),
    ),
    container_kinds=frozenset({SymbolKind.CLASS, SymbolKind.STRUCT}),
)

CPP_PACK = LanguagePack(
    name="cpp",
    grammar_name="cpp",
    language_id="cpp",
    grammar_package="tree-sitter-cpp",
    grammar_module="tree_sitter_cpp",
    extensions=frozenset({"cpp", "cc", "cxx", "hpp", "hxx", "hh"}),
    symbol_config=_CPP_SYMBOLS,
    definition_types=frozenset({"function_definition"}),
)


# =========================================================================
# PYTHON
# =========================================================================

_PYTHON_SYMBOLS = SymbolQueryConfig(
    query_text="""
        (function_definition
            name: (identifier) @name) @node
        (class_definition
            name: (identifier) @name) @node
    """,
    patterns=(
        SymbolPattern(kind=SymbolKind.FUNCTION, nested_kind=SymbolKind.METHOD),
        SymbolPattern(kind=SymbolKind.CLASS),
    ),
    container_kinds=frozenset({SymbolKind.CLASS}),
)

PYTHON_PACK = LanguagePack(
    name="python",
    grammar_name="python",
    language_id="python",
    grammar_package="tree-sitter-python",
    grammar_module="tree_sitter_python",
    extensions=frozenset({"py", "pyi"}),
    symbol_config=_PYTHON_SYMBOLS,
    definition_types=frozenset({"function_definition"}),
)


# =========================================================================
# Registry
# =========================================================================

_ALL_PACKS: tuple[LanguagePack, ...] = (C_PACK, CPP_PACK, PYTHON_PACK)

PACKS: dict[str, LanguagePack] = {pack.name: pack for pack in _ALL_PACKS}
PACKS["c++"] = CPP_PACK

_EXT_TO_PACK: dict[str, LanguagePack] = {}
for _pack in _ALL_PACKS:
    for _ext in _pack.extensions:
        _EXT_TO_PACK[_ext] = _pack


def get_pack(name: str) -> LanguagePack | None:
    """Get a LanguagePack by language name."""
    return PACKS.get(name.lower())


def get_pack_for_ext(ext: str) -> LanguagePack | None:
    """Get a LanguagePack for a file extension (without leading dot)."""
    return _EXT_TO_PACK.get(ext.lower())


def get_pack_for_path(path: Path) -> LanguagePack | None:
    return get_pack_for_ext(path.suffix.lstrip("."))
