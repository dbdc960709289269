"""JSON-RPC 2.0 over stdio to a language-analysis server.

Messages are framed with a ``Content-Length`` header (LSP base protocol).
Sending is synchronous (``StreamWriter.write`` buffers); responses are read
by a single reader task and routed to the handler registered for the
request id. Nothing here knows about documents or revisions: staleness is
the bridge's concern.

Usage::

    connection = await JsonRpcConnection.spawn(["clangd"])
    await connection.initialize(Path.cwd().as_uri())
    request_id = connection.send_request("textDocument/hover", params, handler)
    ...
    await connection.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from typing import Any, Protocol

import structlog

from codesense.core.errors import AnalysisUnavailableError, InternalError

logger = structlog.get_logger()

CANCEL_METHOD = "$/cancelRequest"
REQUEST_CANCELLED = -32800


class ResponseHandler(Protocol):
    def on_response(self, request_id: int, result: Any, error: dict[str, Any] | None) -> None: ...


class ConnectionListener(Protocol):
    def on_connection_lost(self, reason: str) -> None: ...


class AnalysisConnection(Protocol):
    """What the bridge needs from a connection."""

    @property
    def is_connected(self) -> bool: ...

    @property
    def server_capabilities(self) -> dict[str, Any]: ...

    def send_request(self, method: str, params: Any, handler: ResponseHandler) -> int: ...

    def send_notification(self, method: str, params: Any) -> None: ...

    def cancel(self, request_id: int) -> None: ...

    def subscribe(self, listener: ConnectionListener) -> None: ...

    def unsubscribe(self, listener: ConnectionListener) -> None: ...


# =========================================================================
# Framing
# =========================================================================


def encode_message(message: dict[str, Any]) -> bytes:
    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one framed message. Returns None on a clean end of stream.

    Raises:
        ValueError: Malformed header or body.
        asyncio.IncompleteReadError: Stream ended inside a body.
    """
    headers: dict[str, str] = {}
    while True:
        line = await reader.readline()
        if not line:
            return None
        line = line.rstrip(b"\r\n")
        if not line:
            if headers:
                break
            continue
        name, sep, value = line.decode("ascii").partition(":")
        if not sep:
            raise ValueError(f"Malformed header line: {line!r}")
        headers[name.strip().lower()] = value.strip()

    if "content-length" not in headers:
        raise ValueError("Missing Content-Length header")
    body = await reader.readexactly(int(headers["content-length"]))
    message = json.loads(body.decode("utf-8"))
    if not isinstance(message, dict):
        raise ValueError("JSON-RPC message is not an object")
    return message


# =========================================================================
# Connection
# =========================================================================


class _FutureHandler:
    """Resolves a future with the response of an awaited request."""

    def __init__(self, method: str, future: asyncio.Future[Any]) -> None:
        self.method = method
        self.future = future

    def on_response(
        self,
        request_id: int,  # noqa: ARG002
        result: Any,
        error: dict[str, Any] | None,
    ) -> None:
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(
                AnalysisUnavailableError.server_error(
                    self.method, int(error.get("code", 0)), str(error.get("message", ""))
                )
            )
        else:
            self.future.set_result(result)

    def fail(self, reason: str) -> None:
        if not self.future.done():
            self.future.set_exception(AnalysisUnavailableError.connection_lost(reason))


class JsonRpcConnection:
    """JSON-RPC endpoint over a pair of asyncio streams."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        process: asyncio.subprocess.Process | None = None,
        trace: bool = False,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._process = process
        self._trace = trace
        self._next_id = 1
        self._handlers: dict[int, ResponseHandler] = {}
        self._listeners: list[ConnectionListener] = []
        self._reader_task: asyncio.Task[None] | None = None
        self._connected = True
        self._capabilities: dict[str, Any] = {}

    @classmethod
    async def spawn(
        cls,
        command: list[str],
        *,
        cwd: str | os.PathLike[str] | None = None,
        trace: bool = False,
    ) -> JsonRpcConnection:
        """Start ``command`` and talk to it over its stdin/stdout."""
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                cwd=cwd,
            )
        except OSError as err:
            raise AnalysisUnavailableError.spawn_failed(command, str(err)) from err

        if process.stdout is None or process.stdin is None:
            raise InternalError.unexpected(
                "analysis server started without pipes", command=command
            )
        logger.info("analysis_server_started", command=command, pid=process.pid)
        connection = cls(process.stdout, process.stdin, process=process, trace=trace)
        connection.start()
        return connection

    def start(self) -> None:
        """Start the reader task. Must run inside an event loop."""
        if self._reader_task is None:
            self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def server_capabilities(self) -> dict[str, Any]:
        return self._capabilities

    @property
    def pending_count(self) -> int:
        return len(self._handlers)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: ConnectionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConnectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_request(self, method: str, params: Any, handler: ResponseHandler) -> int:
        """Send a request; ``handler`` receives its response. Returns the id."""
        request_id = self._next_id
        self._next_id += 1
        self._handlers[request_id] = handler
        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        except AnalysisUnavailableError:
            self._handlers.pop(request_id, None)
            raise
        return request_id

    def send_notification(self, method: str, params: Any) -> None:
        self._write({"jsonrpc": "2.0", "method": method, "params": params})

    def cancel(self, request_id: int) -> None:
        """Forget ``request_id`` and ask the server to stop working on it."""
        if self._handlers.pop(request_id, None) is None:
            return
        if self._connected:
            self.send_notification(CANCEL_METHOD, {"id": request_id})

    async def request(self, method: str, params: Any, timeout: float | None = None) -> Any:
        """Send a request and await its result."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        request_id = self.send_request(method, params, _FutureHandler(method, future))
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self.cancel(request_id)
            raise AnalysisUnavailableError.timeout(method, timeout or 0.0) from None

    def _write(self, message: dict[str, Any]) -> None:
        if not self._connected or self._writer.is_closing():
            raise AnalysisUnavailableError.not_connected()
        if self._trace:
            logger.debug("rpc_send", message=message)
        self._writer.write(encode_message(message))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self,
        root_uri: str | None,
        *,
        position_encodings: list[str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Minimal ``initialize``/``initialized`` handshake."""
        params: dict[str, Any] = {
            "processId": os.getpid(),
            "rootUri": root_uri,
            "clientInfo": {"name": "codesense"},
            "capabilities": {
                "general": {"positionEncodings": position_encodings or ["utf-16"]},
                "textDocument": {
                    "synchronization": {"didSave": False},
                    "hover": {"contentFormat": ["plaintext", "markdown"]},
                    "definition": {"linkSupport": True},
                    "declaration": {"linkSupport": True},
                    "references": {},
                    "documentSymbol": {"hierarchicalDocumentSymbolSupport": True},
                },
            },
        }
        result = await self.request("initialize", params, timeout)
        self._capabilities = dict((result or {}).get("capabilities") or {})
        self.send_notification("initialized", {})
        logger.info(
            "analysis_server_initialized",
            position_encoding=self._capabilities.get("positionEncoding"),
        )
        return self._capabilities

    async def shutdown(self, timeout: float = 2.0) -> None:
        """Polite ``shutdown``/``exit`` followed by ``close``."""
        if self._connected:
            with contextlib.suppress(AnalysisUnavailableError):
                await self.request("shutdown", None, timeout)
            with contextlib.suppress(AnalysisUnavailableError):
                self.send_notification("exit", None)
        await self.close(timeout)

    async def close(self, timeout: float = 2.0) -> None:
        self._mark_lost("connection closed")

        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._reader_task = None

        if not self._writer.is_closing():
            self._writer.close()

        if self._process is not None and self._process.returncode is None:
            try:
                await asyncio.wait_for(self._process.wait(), timeout)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
            logger.info("analysis_server_stopped", returncode=self._process.returncode)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        reason = "end of stream"
        try:
            while True:
                message = await read_message(self._reader)
                if message is None:
                    break
                if self._trace:
                    logger.debug("rpc_receive", message=message)
                self._dispatch(message)
        except (ValueError, asyncio.IncompleteReadError, ConnectionError) as err:
            reason = f"{type(err).__name__}: {err}"
            logger.warning("rpc_read_failed", reason=reason)
        self._mark_lost(reason)

    def _dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        request_id = message.get("id")

        if method is None:
            handler = self._handlers.pop(request_id, None) if isinstance(request_id, int) else None
            if handler is None:
                logger.debug("rpc_response_unrouted", id=request_id)
                return
            try:
                handler.on_response(request_id, message.get("result"), message.get("error"))
            except Exception:
                logger.exception("rpc_handler_failed", id=request_id)
            return

        if request_id is not None:
            # Server-to-client request; acknowledge so the server is not left waiting
            logger.debug("rpc_server_request", method=method, id=request_id)
            with contextlib.suppress(AnalysisUnavailableError):
                self._write({"jsonrpc": "2.0", "id": request_id, "result": None})
            return

        logger.debug("rpc_notification", method=method)

    def _mark_lost(self, reason: str) -> None:
        if not self._connected:
            return
        self._connected = False
        handlers, self._handlers = self._handlers, {}
        logger.info("analysis_connection_lost", reason=reason, pending=len(handlers))
        for listener in list(self._listeners):
            listener.on_connection_lost(reason)
        for handler in handlers.values():
            if isinstance(handler, _FutureHandler):
                handler.fail(reason)

