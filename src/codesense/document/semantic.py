"""SemanticDocument: a CodeDocument backed by an analysis server.

Semantic operations exist only on this type. Each one goes through the
``AnalysisBridge``; results are accepted only for the revision they were
asked at, and the cacheable ones (hover, references, document symbols)
are stored in the document's ``ResultCache`` under that revision.

When the server cannot produce a fresh answer the operation raises
``AnalysisUnavailableError``; the document itself stays usable through
its structural API.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

import structlog

from codesense.analysis.bridge import AnalysisBridge, RequestKind, ServerSymbol, hover_text
from codesense.analysis.connection import AnalysisConnection
from codesense.config.models import AnalysisConfig
from codesense.core.errors import AnalysisUnavailableError
from codesense.core.logging import operation_context
from codesense.document._internal.parsing import LanguagePack
from codesense.document.buffer import TextBuffer
from codesense.document.code import CodeDocument
from codesense.document.models import EditDelta, Location, Range

logger = structlog.get_logger()


class SemanticDocument(CodeDocument):
    """CodeDocument plus an analysis bridge.

    Usage::

        connection = await JsonRpcConnection.spawn(["clangd"])
        await connection.initialize(root.as_uri())
        doc = SemanticDocument.open(path, connection=connection)
        doc.goto_line(12, 5)
        print(await doc.hover())
        doc.close()
    """

    def __init__(
        self,
        text: str = "",
        *,
        connection: AnalysisConnection,
        config: AnalysisConfig | None = None,
        language: str | LanguagePack | None = None,
        path: Path | str | None = None,
        buffer: TextBuffer | None = None,
    ) -> None:
        super().__init__(text, language=language, path=path, buffer=buffer)
        config = config or AnalysisConfig()
        self._bridge = AnalysisBridge(
            self,
            connection,
            encoding=config.position_encoding,
            timeout=config.request_timeout_sec,
        )
        self._attach()

    def _attach(self) -> None:
        try:
            self._bridge.attach()
        except AnalysisUnavailableError as err:
            logger.warning("analysis_attach_failed", uri=self.uri, error=str(err))

    @property
    def bridge(self) -> AnalysisBridge:
        return self._bridge

    @property
    def is_closed(self) -> bool:
        return self._bridge.is_closed

    def on_edit(self, delta: EditDelta) -> None:
        super().on_edit(delta)
        self._bridge.on_edit(delta)

    def _resync(self, **context: Any) -> None:
        super()._resync(**context)
        self._bridge.sync(**context)

    def load(self, path: Path | str | None = None) -> EditDelta:
        """Reload, reopening the document on the server if the uri changes."""
        if not self._moves_to(path):
            return super().load(path)
        self._bridge.detach()
        delta = super().load(path)
        self._attach()
        return delta

    def save(self, path: Path | str | None = None) -> None:
        if not self._moves_to(path):
            super().save(path)
            return
        self._bridge.detach()
        super().save(path)
        self._attach()

    def _moves_to(self, path: Path | str | None) -> bool:
        return path is not None and Path(path).resolve().as_uri() != self.uri

    def close(self) -> None:
        """Cancel pending requests and release the document on the server."""
        self._bridge.close()
        self.cache.invalidate()

    # ------------------------------------------------------------------
    # Cached queries
    # ------------------------------------------------------------------

    def _operation(self, kind: RequestKind, offset: int | None) -> AbstractContextManager[str]:
        # Edits that bypassed on_edit reach the server before the request does
        self._current_tree()
        return operation_context(kind.label, uri=self.uri, revision=self.revision, offset=offset)

    async def _cached(self, key: tuple[Any, ...], kind: RequestKind, offset: int | None) -> Any:
        with self._operation(kind, offset):
            entry = self.cache.lookup(key)
            if entry is not None:
                logger.debug("analysis_cache_hit", kind=kind.label)
                return entry.value
            revision = self.revision
            result = await self._bridge.request(kind, offset)
            if kind is RequestKind.HOVER:
                value: Any = hover_text(result)
            elif kind is RequestKind.DOCUMENT_SYMBOL:
                value = self._bridge.symbols(result)
            else:
                value = self._bridge.locations(result)
            self.cache.put(key, value, revision)
            return value

    async def hover(self, offset: int | None = None) -> str:
        """Hover text at ``offset`` (default: the cursor)."""
        offset = self.position if offset is None else offset
        return await self._cached(("hover", offset), RequestKind.HOVER, offset)

    async def references(self, offset: int | None = None) -> list[Location]:
        offset = self.position if offset is None else offset
        return await self._cached(("references", offset), RequestKind.REFERENCES, offset)

    async def document_symbols(self) -> list[ServerSymbol]:
        return await self._cached(("documentSymbol",), RequestKind.DOCUMENT_SYMBOL, None)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def follow_symbol(self, offset: int | None = None) -> Location | None:
        """Go to the definition of the symbol at ``offset`` (default: the cursor).

        The cursor moves when the target lies in this document.
        """
        offset = self.position if offset is None else offset
        return await self._navigate(RequestKind.DEFINITION, offset)

    async def switch_declaration_definition(self) -> Location | None:
        """Jump between a function's declaration and its definition.

        Uses the callable symbol enclosing the cursor. Returns None without
        asking the server when there is none.
        """
        symbol = self.current_symbol(lambda s: s.kind.is_callable)
        if symbol is None:
            logger.debug("switch_no_function", offset=self.position)
            return None
        if symbol.node_type in self.language.definition_types:
            kind = RequestKind.DECLARATION
        else:
            kind = RequestKind.DEFINITION
        return await self._navigate(kind, symbol.selection_range.start)

    async def _navigate(self, kind: RequestKind, offset: int) -> Location | None:
        with self._operation(kind, offset):
            result = await self._bridge.request(kind, offset)
            locations = self._bridge.locations(result)
            if not locations:
                return None
            target = locations[0]
            if target.range is not None:
                self.set_position(target.range.start)
            logger.debug("navigated", target_uri=target.uri, line=target.start[0])
            return target

    # ------------------------------------------------------------------
    # Transform
    # ------------------------------------------------------------------

    async def rename_symbol(self, new_name: str, offset: int | None = None) -> int:
        """Rename every same-document reference of the symbol at ``offset``.

        Edits are applied back to front, one revision per occurrence.
        Returns the number of occurrences replaced.
        """
        with operation_context("rename", uri=self.uri, revision=self.revision):
            locations = await self.references(offset)
            ranges = sorted(
                {loc.range for loc in locations if loc.range is not None},
                key=lambda r: (r.start, r.end),
                reverse=True,
            )

            applied: list[Range] = []
            for range in ranges:
                if any(range.intersects(done) and not range.is_empty for done in applied):
                    continue
                self.replace(range, new_name)
                applied.append(range)

            logger.info("symbol_renamed", new_name=new_name, occurrences=len(applied))
            return len(applied)
