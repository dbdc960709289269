"""Tests for AnalysisBridge request lifecycle and staleness."""

import asyncio

import pytest

from codesense.analysis.bridge import (
    AnalysisBridge,
    RequestKind,
    RequestState,
    ServerSymbol,
    hover_text,
)
from codesense.core.errors import AnalysisUnavailableError, ErrorCode
from codesense.document import CodeDocument, Range

TEXT = "int a() {}\nint b() {}"


@pytest.fixture
def doc() -> CodeDocument:
    return CodeDocument(TEXT, language="c")


@pytest.fixture
def bridge(doc: CodeDocument, fake_connection) -> AnalysisBridge:
    bridge = AnalysisBridge(doc, fake_connection, timeout=1.0)
    bridge.attach()
    return bridge


async def started(coro) -> asyncio.Task:
    """Schedule ``coro`` and let it send its request."""
    task = asyncio.ensure_future(coro)
    await asyncio.sleep(0)
    return task


def edit(doc: CodeDocument, bridge: AnalysisBridge, range: Range, text: str) -> None:
    bridge.on_edit(doc.replace(range, text))


class TestSynchronisation:
    """didOpen / didChange / didClose."""

    def test_given_bridge_when_attached_then_did_open_sent(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        method, params = fake_connection.notifications[0]

        assert method == "textDocument/didOpen"
        assert params["textDocument"] == {
            "uri": doc.uri,
            "languageId": "c",
            "version": 0,
            "text": TEXT,
        }
        assert bridge in fake_connection.listeners
        assert bridge.is_attached

    def test_given_edit_when_forwarded_then_full_text_did_change(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        edit(doc, bridge, Range(0, 0), "// ")

        method, params = fake_connection.notifications[-1]
        assert method == "textDocument/didChange"
        assert params["textDocument"]["version"] == 1
        assert params["contentChanges"] == [{"text": "// " + TEXT}]

    def test_given_bridge_when_closed_then_did_close_and_unsubscribed(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        bridge.close()
        bridge.close()

        assert fake_connection.methods().count("textDocument/didClose") == 1
        assert bridge not in fake_connection.listeners
        assert bridge.is_closed

    def test_given_revision_already_sent_when_synced_again_then_no_did_change(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        edit(doc, bridge, Range(0, 0), "// ")

        bridge.sync()

        assert fake_connection.methods() == ["textDocument/didOpen", "textDocument/didChange"]

    def test_given_detached_bridge_when_attached_again_then_reopened(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        # When
        bridge.detach()
        edit(doc, bridge, Range(0, 0), "// ")
        bridge.attach()

        # Then
        assert fake_connection.methods() == [
            "textDocument/didOpen",
            "textDocument/didClose",
            "textDocument/didOpen",
        ]
        assert fake_connection.notifications[-1][1]["textDocument"]["version"] == 1
        assert not bridge.is_closed

    def test_given_disconnected_when_attached_then_unavailable(
        self, doc: CodeDocument, fake_connection
    ) -> None:
        fake_connection.connected = False
        bridge = AnalysisBridge(doc, fake_connection)

        with pytest.raises(AnalysisUnavailableError) as exc_info:
            bridge.attach()

        assert exc_info.value.code == ErrorCode.ANALYSIS_NOT_CONNECTED
        assert fake_connection.notifications == []

    def test_given_announced_encoding_when_constructed_then_adopted(
        self, doc: CodeDocument, fake_connection
    ) -> None:
        fake_connection.server_capabilities = {"positionEncoding": "utf-8"}

        bridge = AnalysisBridge(doc, fake_connection, encoding="utf-32")

        assert bridge.encoding.value == "utf-8"


class TestParams:
    def test_given_references_when_params_then_declaration_included(
        self, bridge: AnalysisBridge, doc: CodeDocument
    ) -> None:
        params = bridge.params(RequestKind.REFERENCES, 15)

        assert params == {
            "textDocument": {"uri": doc.uri},
            "position": {"line": 1, "character": 4},
            "context": {"includeDeclaration": True},
        }

    def test_given_document_symbol_when_params_then_no_position(
        self, bridge: AnalysisBridge
    ) -> None:
        assert "position" not in bridge.params(RequestKind.DOCUMENT_SYMBOL)

    def test_given_positional_kind_without_offset_when_params_then_value_error(
        self, bridge: AnalysisBridge
    ) -> None:
        with pytest.raises(ValueError):
            bridge.params(RequestKind.HOVER)


class TestLifecycle:
    """Fresh, stale, cancelled and failed requests."""

    @pytest.mark.asyncio
    async def test_given_answer_at_same_revision_when_awaited_then_resolved(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        # Given
        task = await started(bridge.request(RequestKind.HOVER, 4))
        request_id, method, params = fake_connection.last_request()

        # When
        fake_connection.respond(request_id, {"contents": "int a()"})

        # Then
        assert await task == {"contents": "int a()"}
        assert method == "textDocument/hover"
        assert params["position"] == {"line": 0, "character": 4}
        assert bridge.pending == []

    @pytest.mark.asyncio
    async def test_given_edit_while_pending_when_awaited_then_stale_and_cancelled(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        # Given
        task = await started(bridge.request(RequestKind.HOVER, 4))
        request_id = fake_connection.last_request()[0]

        # When
        edit(doc, bridge, Range(0, 0), "// ")

        # Then
        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.ANALYSIS_STALE
        assert exc_info.value.retryable
        assert fake_connection.cancelled == [request_id]

    @pytest.mark.asyncio
    async def test_given_answer_for_older_revision_when_delivered_then_stale(
        self, bridge: AnalysisBridge, doc: CodeDocument, fake_connection
    ) -> None:
        """An answer that overtakes the edit notification is still rejected."""
        # Given
        pending = bridge.issue(RequestKind.HOVER, 4)
        doc.replace(Range(0, 0), "// ")

        # When
        fake_connection.respond(pending.id, {"contents": "int a()"})

        # Then
        assert pending.state is RequestState.STALE
        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await pending.future
        assert exc_info.value.code == ErrorCode.ANALYSIS_STALE

    @pytest.mark.asyncio
    async def test_given_answer_after_cancel_when_delivered_then_ignored(
        self, bridge: AnalysisBridge
    ) -> None:
        pending = bridge.issue(RequestKind.HOVER, 4)
        bridge.cancel_all()

        bridge.on_response(pending.id, {"contents": "late"}, None)  # type: ignore[arg-type]

        assert pending.state is RequestState.CANCELLED
        assert isinstance(pending.future.exception(), AnalysisUnavailableError)

    @pytest.mark.asyncio
    async def test_given_same_kind_when_reissued_then_previous_superseded(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        # Given
        first = bridge.issue(RequestKind.HOVER, 4)
        other_kind = bridge.issue(RequestKind.REFERENCES, 4)

        # When
        second = bridge.issue(RequestKind.HOVER, 15)

        # Then
        assert first.state is RequestState.CANCELLED
        assert first.future.exception().code == ErrorCode.ANALYSIS_CANCELLED
        assert fake_connection.cancelled == [first.id]
        assert other_kind.state is RequestState.SENT
        assert second.state is RequestState.SENT

    @pytest.mark.asyncio
    async def test_given_pending_when_closed_then_cancelled(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        task = await started(bridge.request(RequestKind.DEFINITION, 4))

        bridge.close()

        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.ANALYSIS_CANCELLED
        assert len(fake_connection.cancelled) == 1

    @pytest.mark.asyncio
    async def test_given_awaiting_caller_cancelled_when_pending_then_cancelled_on_server(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        # Given
        task = await started(bridge.request(RequestKind.HOVER, 4))
        request_id = fake_connection.last_request()[0]

        # When
        task.cancel()

        # Then
        with pytest.raises(asyncio.CancelledError):
            await task
        assert bridge.pending == []
        assert fake_connection.cancelled == [request_id]

    @pytest.mark.asyncio
    async def test_given_closed_bridge_when_requested_then_unavailable(
        self, bridge: AnalysisBridge
    ) -> None:
        bridge.close()

        with pytest.raises(AnalysisUnavailableError):
            await bridge.request(RequestKind.HOVER, 0)

    @pytest.mark.asyncio
    async def test_given_silent_server_when_awaited_then_timeout(
        self, doc: CodeDocument, fake_connection
    ) -> None:
        # Given
        bridge = AnalysisBridge(doc, fake_connection, timeout=0.01)
        bridge.attach()

        # When
        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await bridge.request(RequestKind.HOVER, 4)

        # Then
        assert exc_info.value.code == ErrorCode.ANALYSIS_TIMEOUT
        assert fake_connection.cancelled == [fake_connection.last_request()[0]]
        assert bridge.pending == []

    @pytest.mark.asyncio
    async def test_given_server_error_when_awaited_then_failed(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        task = await started(bridge.request(RequestKind.REFERENCES, 4))

        fake_connection.fail(fake_connection.last_request()[0], -32603, "boom")

        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.ANALYSIS_SERVER_ERROR
        assert exc_info.value.details["server_code"] == -32603

    @pytest.mark.asyncio
    async def test_given_server_cancelled_when_awaited_then_cancelled(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        task = await started(bridge.request(RequestKind.REFERENCES, 4))

        fake_connection.fail(fake_connection.last_request()[0], -32800)

        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.ANALYSIS_CANCELLED

    @pytest.mark.asyncio
    async def test_given_connection_lost_when_pending_then_failed(
        self, bridge: AnalysisBridge, fake_connection
    ) -> None:
        # Given
        task = await started(bridge.request(RequestKind.HOVER, 4))

        # When
        fake_connection.drop("server exited")

        # Then
        with pytest.raises(AnalysisUnavailableError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.ANALYSIS_CONNECTION_LOST
        assert not bridge.is_attached
        with pytest.raises(AnalysisUnavailableError):
            bridge.issue(RequestKind.HOVER, 4)


class TestResultConversion:
    def test_given_locations_when_converted_then_local_ranges_for_own_uri(
        self, bridge: AnalysisBridge, doc: CodeDocument
    ) -> None:
        # Given
        result = [
            {
                "uri": doc.uri,
                "range": {
                    "start": {"line": 1, "character": 4},
                    "end": {"line": 1, "character": 5},
                },
            },
            {
                "targetUri": "file:///usr/include/other.h",
                "targetRange": {
                    "start": {"line": 0, "character": 0},
                    "end": {"line": 9, "character": 0},
                },
                "targetSelectionRange": {
                    "start": {"line": 3, "character": 4},
                    "end": {"line": 3, "character": 9},
                },
            },
        ]

        # When
        locations = bridge.locations(result)

        # Then
        assert [loc.range for loc in locations] == [Range(15, 16), None]
        assert locations[1].start == (3, 4)
        assert locations[1].path == "/usr/include/other.h"

    def test_given_single_location_or_null_when_converted_then_list(
        self, bridge: AnalysisBridge, doc: CodeDocument
    ) -> None:
        single = {
            "uri": doc.uri,
            "range": {"start": {"line": 0, "character": 4}, "end": {"line": 0, "character": 5}},
        }

        assert [loc.range for loc in bridge.locations(single)] == [Range(4, 5)]
        assert bridge.locations(None) == []

    def test_given_line_past_end_when_converted_then_no_local_range(
        self, bridge: AnalysisBridge, doc: CodeDocument
    ) -> None:
        result = {
            "uri": doc.uri,
            "range": {"start": {"line": 40, "character": 0}, "end": {"line": 40, "character": 1}},
        }

        assert bridge.locations(result)[0].range is None

    def test_given_hierarchical_symbols_when_converted_then_flattened(
        self, bridge: AnalysisBridge
    ) -> None:
        def proto(line: int, start: int, end: int) -> dict:
            return {
                "start": {"line": line, "character": start},
                "end": {"line": line, "character": end},
            }

        result = [
            {
                "name": "a",
                "kind": 12,
                "range": proto(0, 0, 10),
                "children": [{"name": "x", "kind": 13, "range": proto(0, 8, 9)}],
            },
            {"name": "b", "kind": 12, "detail": "int ()", "range": proto(1, 0, 10)},
        ]

        symbols = bridge.symbols(result)

        assert symbols == [
            ServerSymbol(name="a", kind=12, range=Range(0, 10)),
            ServerSymbol(name="x", kind=13, range=Range(8, 9), parent=0),
            ServerSymbol(name="b", kind=12, range=Range(11, 21), detail="int ()"),
        ]

    @pytest.mark.parametrize(
        ("result", "expected"),
        [
            (None, ""),
            ({"contents": "plain"}, "plain"),
            ({"contents": {"kind": "markdown", "value": "**int** a()\n"}}, "**int** a()"),
            ({"contents": [{"language": "c", "value": "int a()"}, "doc"]}, "int a()\n\ndoc"),
        ],
    )
    def test_hover_text_flattens_contents(self, result, expected: str) -> None:
        assert hover_text(result) == expected
