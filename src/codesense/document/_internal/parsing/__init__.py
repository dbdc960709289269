"""Tree-sitter parsing for structural analysis."""

from codesense.document._internal.parsing.packs import (
    PACKS,
    LanguagePack,
    SymbolPattern,
    SymbolQueryConfig,
    get_pack,
    get_pack_for_path,
)
from codesense.document._internal.parsing.query import QueryEngine, QueryMatch, engine_for
from codesense.document._internal.parsing.tree import SyntaxTree, load_language

__all__ = [
    "PACKS",
    "LanguagePack",
    "QueryEngine",
    "QueryMatch",
    "SymbolPattern",
    "SymbolQueryConfig",
    "SyntaxTree",
    "engine_for",
    "get_pack",
    "get_pack_for_path",
    "load_language",
]
