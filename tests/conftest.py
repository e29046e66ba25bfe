from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from socketio import exceptions as sio_exceptions

from hireloop.config import DEFAULT_CONFIG
from hireloop.notifications import ToastCenter, shutdown_notifier
from hireloop.storage import SessionStore


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSocketClient:
    """In-process stand-in for `socketio.AsyncClient`."""

    def __init__(self, fail: bool = False) -> None:
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.emitted: List[Tuple[str, Any]] = []
        self.connected = False
        self.reconnecting = False
        self.shut_down = False
        self.connect_kwargs: Optional[Dict[str, Any]] = None
        self.url: Optional[str] = None
        self.fail = fail

    def on(self, event: str, handler: Callable[..., Any] = None, namespace: Optional[str] = None) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.url = url
        self.connect_kwargs = kwargs
        if self.fail:
            raise sio_exceptions.ConnectionError("Connection refused by the server")
        self.connected = True
        self.fire("connect")

    async def disconnect(self) -> None:
        self.connected = False
        self.fire("disconnect", "io client disconnect")

    async def shutdown(self) -> None:
        self.shut_down = True
        if self.connected:
            await self.disconnect()
        self.reconnecting = False

    def drop(self) -> None:
        """Lose the transport the way the real client does, then start reconnecting."""
        self.connected = False
        self.reconnecting = True
        self.fire("disconnect", "transport close")

    async def emit(self, event: str, data: Any = None, namespace: Optional[str] = None) -> None:
        self.emitted.append((event, data))

    def fire(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            handler(*args)


class SocketFactory:
    def __init__(self, fail: bool = False) -> None:
        self.clients: List[FakeSocketClient] = []
        self.fail = fail

    def __call__(self) -> FakeSocketClient:
        client = FakeSocketClient(fail=self.fail)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeSocketClient:
        return self.clients[-1]


@pytest.fixture(autouse=True)
def _reset_notifier():
    yield
    shutdown_notifier()


@pytest.fixture
def config() -> Dict[str, Any]:
    return {**DEFAULT_CONFIG, "api_base_url": "http://api.test"}


@pytest.fixture
def store(tmp_path):
    session_store = SessionStore(tmp_path / "session.db")
    yield session_store
    session_store.close()


@pytest.fixture
def notifier() -> ToastCenter:
    return ToastCenter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sockets() -> SocketFactory:
    return SocketFactory()


@pytest.fixture
def failing_sockets() -> SocketFactory:
    return SocketFactory(fail=True)
