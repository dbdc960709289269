"""Request/response bridge between a document and an analysis server.

Every request is tagged with the buffer revision it was issued against.
An answer is accepted only if the buffer is still at that revision;
otherwise it is discarded as stale. The bridge never returns stale data
and never retries on its own: callers reissue.

Request lifecycle::

    CREATED -> SENT -> RESOLVED | CANCELLED | STALE | FAILED

- A new request of the same kind cancels the previous pending one.
- An edit marks every older pending request STALE and cancels it on the
  server.
- Closing the bridge cancels everything still pending; a cancelled request
  never delivers a result.
- Connection loss fails everything still pending.
"""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from codesense.analysis.connection import REQUEST_CANCELLED, AnalysisConnection
from codesense.analysis.coordinates import CoordinateConverter, PositionEncoding, negotiate_encoding
from codesense.core.errors import AnalysisUnavailableError, OutOfRangeError
from codesense.document.models import EditDelta, Location, Range

if TYPE_CHECKING:
    from codesense.document._internal.parsing import LanguagePack
    from codesense.document.buffer import LineIndex

logger = structlog.get_logger()


class RequestKind(str, Enum):
    DEFINITION = "textDocument/definition"
    DECLARATION = "textDocument/declaration"
    REFERENCES = "textDocument/references"
    HOVER = "textDocument/hover"
    DOCUMENT_SYMBOL = "textDocument/documentSymbol"

    @property
    def label(self) -> str:
        return self.value.rsplit("/", 1)[-1]

    @property
    def takes_position(self) -> bool:
        return self is not RequestKind.DOCUMENT_SYMBOL


class RequestState(Enum):
    CREATED = "created"
    SENT = "sent"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    STALE = "stale"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (RequestState.CREATED, RequestState.SENT)


@dataclass(eq=False)
class PendingRequest:
    kind: RequestKind
    request_revision: int
    params: dict[str, Any]
    future: asyncio.Future[Any]
    id: int | None = None
    state: RequestState = RequestState.CREATED


@dataclass(frozen=True)
class ServerSymbol:
    """A symbol reported by ``documentSymbol``, flattened in document order."""

    name: str
    kind: int
    range: Range | None
    detail: str = ""
    parent: int | None = None


class BridgedDocument(Protocol):
    """What the bridge reads from the document it serves."""

    @property
    def uri(self) -> str: ...

    @property
    def text(self) -> str: ...

    @property
    def revision(self) -> int: ...

    @property
    def language(self) -> LanguagePack: ...

    @property
    def line_index(self) -> LineIndex: ...


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # Unawaited requests must not warn about unretrieved exceptions
    if not future.cancelled():
        future.exception()


class AnalysisBridge:
    """Pending-request state machine for one document.

    Usage::

        bridge = AnalysisBridge(document, connection, timeout=5.0)
        bridge.attach()
        result = await bridge.request(RequestKind.HOVER, offset)
    """

    def __init__(
        self,
        document: BridgedDocument,
        connection: AnalysisConnection,
        *,
        encoding: PositionEncoding | str = PositionEncoding.UTF16,
        timeout: float = 5.0,
    ) -> None:
        self._document = weakref.ref(document)
        self._connection = connection
        self._converter = CoordinateConverter(
            negotiate_encoding(connection.server_capabilities, encoding)
        )
        self._timeout = timeout
        self._pending: dict[int, PendingRequest] = {}
        self._latest: dict[RequestKind, PendingRequest] = {}
        self._attached = False
        self._synced_revision: int | None = None
        self._closed = False

    @property
    def converter(self) -> CoordinateConverter:
        return self._converter

    @property
    def encoding(self) -> PositionEncoding:
        return self._converter.encoding

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> list[PendingRequest]:
        return list(self._pending.values())

    def _require_document(self) -> BridgedDocument:
        document = self._document()
        if document is None or self._closed:
            raise AnalysisUnavailableError.not_connected()
        return document

    # ------------------------------------------------------------------
    # Document synchronisation
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Announce the document to the server (``didOpen``)."""
        document = self._require_document()
        if not self._connection.is_connected:
            raise AnalysisUnavailableError.not_connected()
        self._connection.subscribe(self)
        self._connection.send_notification(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": document.uri,
                    "languageId": document.language.language_id,
                    "version": document.revision,
                    "text": document.text,
                }
            },
        )
        self._attached = True
        self._synced_revision = document.revision
        logger.debug("analysis_document_opened", uri=document.uri, revision=document.revision)

    def on_edit(self, delta: EditDelta) -> None:
        self.sync(delta_revision=delta.revision)

    def sync(self, **context: Any) -> None:
        """Stale older requests and send the current content (``didChange``).

        Does nothing for a revision the server already has.
        """
        document = self._document()
        if document is None or self._closed:
            return
        revision = document.revision

        for pending in list(self._pending.values()):
            if pending.request_revision < revision:
                self._finish(
                    pending,
                    RequestState.STALE,
                    AnalysisUnavailableError.stale(
                        pending.kind.label, pending.request_revision, revision
                    ),
                )
                self._cancel_on_server(pending)

        if revision == self._synced_revision:
            return
        if self._attached and self._connection.is_connected:
            self._connection.send_notification(
                "textDocument/didChange",
                {
                    "textDocument": {"uri": document.uri, "version": revision},
                    "contentChanges": [{"text": document.text}],
                },
            )
            self._synced_revision = revision
        logger.debug("analysis_document_changed", revision=revision, **context)

    def detach(self) -> None:
        """Cancel everything pending and announce ``didClose``.

        The bridge may ``attach`` again, e.g. once the document has a new uri.
        """
        if self._closed:
            return
        self.cancel_all()
        document = self._document()
        if self._attached and document is not None and self._connection.is_connected:
            self._connection.send_notification(
                "textDocument/didClose", {"textDocument": {"uri": document.uri}}
            )
        self._connection.unsubscribe(self)
        self._attached = False
        self._synced_revision = None

    def close(self) -> None:
        """Detach for good; later requests raise ``AnalysisUnavailableError``."""
        if self._closed:
            return
        self.detach()
        self._closed = True
        logger.debug("analysis_bridge_closed")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def params(self, kind: RequestKind, offset: int | None = None) -> dict[str, Any]:
        """Protocol parameters for ``kind`` at ``offset`` in the current revision."""
        document = self._require_document()
        params: dict[str, Any] = {"textDocument": {"uri": document.uri}}
        if kind.takes_position:
            if offset is None:
                raise ValueError(f"{kind.label} request needs a position")
            params["position"] = self._converter.position(document.line_index, offset)
        if kind is RequestKind.REFERENCES:
            params["context"] = {"includeDeclaration": True}
        return params

    def issue(self, kind: RequestKind, offset: int | None = None) -> PendingRequest:
        """Send a request without waiting for it."""
        document = self._require_document()
        if not self._connection.is_connected:
            raise AnalysisUnavailableError.not_connected()

        previous = self._latest.get(kind)
        if previous is not None and not previous.state.is_terminal:
            self._cancel(previous, "superseded")

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_retrieve_exception)
        pending = PendingRequest(
            kind=kind,
            request_revision=document.revision,
            params=self.params(kind, offset),
            future=future,
        )
        pending.id = self._connection.send_request(kind.value, pending.params, self)
        pending.state = RequestState.SENT
        self._pending[pending.id] = pending
        self._latest[kind] = pending
        logger.debug(
            "analysis_request_sent",
            kind=kind.label,
            id=pending.id,
            revision=pending.request_revision,
        )
        return pending

    async def request(self, kind: RequestKind, offset: int | None = None) -> Any:
        """Send a request and await a result that is fresh for the current revision.

        Raises:
            AnalysisUnavailableError: Timeout, stale answer, cancellation,
                server error or connection loss.
        """
        pending = self.issue(kind, offset)
        try:
            result = await asyncio.wait_for(pending.future, self._timeout)
        except asyncio.TimeoutError:
            self._cancel(pending, "timeout")
            logger.warning("analysis_request_timeout", kind=kind.label, id=pending.id)
            raise AnalysisUnavailableError.timeout(kind.label, self._timeout) from None
        except asyncio.CancelledError:
            self._cancel(pending, "caller")
            raise

        document = self._require_document()
        if document.revision != pending.request_revision:
            pending.state = RequestState.STALE
            logger.debug(
                "analysis_response_stale",
                kind=kind.label,
                request_revision=pending.request_revision,
                revision=document.revision,
            )
            raise AnalysisUnavailableError.stale(
                kind.label, pending.request_revision, document.revision
            )
        return result

    def cancel_all(self) -> None:
        for pending in list(self._pending.values()):
            self._cancel(pending, "closed")

    # ------------------------------------------------------------------
    # Connection callbacks
    # ------------------------------------------------------------------

    def on_response(self, request_id: int, result: Any, error: dict[str, Any] | None) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.state is not RequestState.SENT:
            logger.debug("analysis_response_ignored", id=request_id)
            return

        document = self._document()
        if document is None:
            self._mark_cancelled(pending)
            return

        if error is not None:
            code = int(error.get("code", 0))
            if code == REQUEST_CANCELLED:
                self._mark_cancelled(pending)
                return
            logger.warning(
                "analysis_server_error",
                kind=pending.kind.label,
                id=request_id,
                server_code=code,
                reason=error.get("message"),
            )
            self._finish(
                pending,
                RequestState.FAILED,
                AnalysisUnavailableError.server_error(
                    pending.kind.label, code, str(error.get("message", ""))
                ),
            )
            return

        if document.revision != pending.request_revision:
            logger.debug(
                "analysis_response_stale",
                kind=pending.kind.label,
                id=request_id,
                request_revision=pending.request_revision,
                revision=document.revision,
            )
            self._finish(
                pending,
                RequestState.STALE,
                AnalysisUnavailableError.stale(
                    pending.kind.label, pending.request_revision, document.revision
                ),
            )
            return

        pending.state = RequestState.RESOLVED
        if not pending.future.done():
            pending.future.set_result(result)
        logger.debug("analysis_response_resolved", kind=pending.kind.label, id=request_id)

    def on_connection_lost(self, reason: str) -> None:
        for pending in list(self._pending.values()):
            self._finish(
                pending, RequestState.FAILED, AnalysisUnavailableError.connection_lost(reason)
            )
        self._attached = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel(self, pending: PendingRequest, reason: str) -> None:
        if pending.state.is_terminal:
            return
        self._mark_cancelled(pending)
        self._cancel_on_server(pending)
        logger.debug(
            "analysis_request_cancelled", kind=pending.kind.label, id=pending.id, reason=reason
        )

    def _mark_cancelled(self, pending: PendingRequest) -> None:
        self._finish(
            pending, RequestState.CANCELLED, AnalysisUnavailableError.cancelled(pending.kind.label)
        )

    def _cancel_on_server(self, pending: PendingRequest) -> None:
        if pending.id is not None and self._connection.is_connected:
            self._connection.cancel(pending.id)

    def _finish(
        self,
        pending: PendingRequest,
        state: RequestState,
        error: AnalysisUnavailableError,
    ) -> None:
        pending.state = state
        if pending.id is not None:
            self._pending.pop(pending.id, None)
        if not pending.future.done():
            pending.future.set_exception(error)

    # ------------------------------------------------------------------
    # Result conversion
    # ------------------------------------------------------------------

    def locations(self, result: Any) -> list[Location]:
        """Normalise ``Location | Location[] | LocationLink[] | null``."""
        if result is None:
            return []
        items = result if isinstance(result, list) else [result]
        document = self._document()
        locations: list[Location] = []
        for item in items:
            uri = item.get("uri") or item.get("targetUri")
            proto_range = (
                item.get("range") or item.get("targetSelectionRange") or item.get("targetRange")
            )
            if not uri or not proto_range:
                continue
            start = (int(proto_range["start"]["line"]), int(proto_range["start"]["character"]))
            end = (int(proto_range["end"]["line"]), int(proto_range["end"]["character"]))
            local: Range | None = None
            if document is not None and uri == document.uri:
                local = self._local_range(document, proto_range)
            locations.append(Location(uri=uri, start=start, end=end, range=local))
        return locations

    def symbols(self, result: Any) -> list[ServerSymbol]:
        """Flatten ``DocumentSymbol[]`` (hierarchical) or ``SymbolInformation[]``."""
        document = self._document()
        flat: list[ServerSymbol] = []

        def visit(item: dict[str, Any], parent: int | None) -> None:
            proto_range = item.get("range") or (item.get("location") or {}).get("range")
            local = None
            if document is not None and proto_range:
                local = self._local_range(document, proto_range)
            flat.append(
                ServerSymbol(
                    name=str(item.get("name", "")),
                    kind=int(item.get("kind", 0)),
                    range=local,
                    detail=str(item.get("detail") or ""),
                    parent=parent,
                )
            )
            index = len(flat) - 1
            for child in item.get("children") or []:
                visit(child, index)

        for item in result or []:
            visit(item, None)
        return flat

    def _local_range(self, document: BridgedDocument, proto_range: dict[str, Any]) -> Range | None:
        try:
            return self._converter.range_of(document.line_index, proto_range)
        except OutOfRangeError as err:
            logger.warning("analysis_range_out_of_bounds", uri=document.uri, error=str(err))
            return None


def hover_text(result: Any) -> str:
    """Flatten hover ``contents`` (string, MarkedString, MarkupContent or a list)."""
    if result is None:
        return ""
    contents = result.get("contents") if isinstance(result, dict) else result
    return _flatten_contents(contents).strip()


def _flatten_contents(contents: Any) -> str:
    if contents is None:
        return ""
    if isinstance(contents, str):
        return contents
    if isinstance(contents, list):
        return "\n\n".join(part for part in (_flatten_contents(c) for c in contents) if part)
    if isinstance(contents, dict):
        return str(contents.get("value", ""))
    return str(contents)
