"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of codesense modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("codesense"):
        del sys.modules[module_name]


class FakeConnection:
    """In-memory stand-in for an analysis server connection.

    Records everything sent. Tests answer a request by calling
    ``respond``/``fail`` with its id, which routes to the registered handler
    exactly like a response read off the wire.
    """

    def __init__(self, capabilities: dict | None = None) -> None:
        self.connected = True
        self.server_capabilities: dict = capabilities or {}
        self.requests: list[tuple[int, str, dict]] = []
        self.notifications: list[tuple[str, dict]] = []
        self.cancelled: list[int] = []
        self.listeners: list = []
        self._handlers: dict[int, object] = {}
        self._next_id = 1

    @property
    def is_connected(self) -> bool:
        return self.connected

    def send_request(self, method: str, params, handler) -> int:
        request_id = self._next_id
        self._next_id += 1
        self._handlers[request_id] = handler
        self.requests.append((request_id, method, params))
        return request_id

    def send_notification(self, method: str, params) -> None:
        self.notifications.append((method, params))

    def cancel(self, request_id: int) -> None:
        if self._handlers.pop(request_id, None) is not None:
            self.cancelled.append(request_id)

    def subscribe(self, listener) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def unsubscribe(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    # -- Test controls --

    def methods(self) -> list[str]:
        return [method for method, _ in self.notifications]

    def last_request(self) -> tuple[int, str, dict]:
        return self.requests[-1]

    def respond(self, request_id: int, result) -> None:
        handler = self._handlers.pop(request_id)
        handler.on_response(request_id, result, None)  # type: ignore[attr-defined]

    def fail(self, request_id: int, code: int, message: str = "") -> None:
        handler = self._handlers.pop(request_id)
        handler.on_response(  # type: ignore[attr-defined]
            request_id, None, {"code": code, "message": message}
        )

    def drop(self, reason: str = "server exited") -> None:
        self.connected = False
        self._handlers.clear()
        for listener in list(self.listeners):
            listener.on_connection_lost(reason)


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()
