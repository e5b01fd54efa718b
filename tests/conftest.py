"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import os
import socket
import sys
from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path

import pytest
import websockets
from websockets.exceptions import ConnectionClosed

# Add the src directory to the Python path so tests run from a checkout
_repo_root = Path(__file__).parent.parent
_src = _repo_root / "src"

if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))


# =============================================================================
# Fakes
# =============================================================================


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._incoming: asyncio.Queue[str | bytes | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, frame: str | bytes) -> None:
        """Deliver a frame as if the gateway sent it."""
        self._incoming.put_nowait(frame)

    def drop(self) -> None:
        """Simulate the gateway closing the connection."""
        self._incoming.put_nowait(None)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str | bytes:
        frame = await self._incoming.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Connector that records attempts and hands out FakeWebSockets."""

    def __init__(self) -> None:
        self.attempts: list[str] = []
        self.sockets: list[FakeWebSocket] = []
        self.failures = 0
        self.gate: asyncio.Event | None = None

    @property
    def socket(self) -> FakeWebSocket:
        """The most recently opened socket."""
        return self.sockets[-1]

    async def __call__(self, endpoint: str) -> FakeWebSocket:
        self.attempts.append(endpoint)
        if self.failures:
            self.failures -= 1
            raise OSError("Connection refused")
        if self.gate is not None:
            await self.gate.wait()
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


class FakeTimer:
    """A scheduled callback that only runs when fired by the test."""

    def __init__(self, delay: float, callback: Callable[[], object]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback()


class FakeScheduler:
    """Scheduler that records call_later requests instead of waiting."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], object]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]


async def wait_until(predicate: Callable[[], object], timeout: float = 2.0) -> None:
    """Poll until predicate() is truthy, failing after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# =============================================================================
# Gateway Server Helper
# =============================================================================


class GatewayServer:
    """A real WebSocket gateway for end-to-end tests."""

    def __init__(self, host: str = "127.0.0.1", port: int | None = None) -> None:
        self.host = host
        self.port = port if port is not None else get_free_port()
        self.received: list[str] = []
        self.clients: list[object] = []
        self.connections = 0
        self._server: object = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    async def start(self) -> None:
        async def handler(websocket) -> None:  # type: ignore[no-untyped-def]
            self.connections += 1
            self.clients.append(websocket)
            try:
                async for message in websocket:
                    self.received.append(message)
            except ConnectionClosed:
                pass
            finally:
                self.clients.remove(websocket)

        self._server = await websockets.serve(handler, self.host, self.port)

    async def broadcast(self, frame: str) -> None:
        for websocket in list(self.clients):
            await websocket.send(frame)  # type: ignore[attr-defined]

    async def disconnect_clients(self) -> None:
        for websocket in list(self.clients):
            await websocket.close()  # type: ignore[attr-defined]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()  # type: ignore[attr-defined]
            await self._server.wait_closed()  # type: ignore[attr-defined]
            self._server = None


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def until() -> Callable[..., object]:
    """The wait_until polling helper."""
    return wait_until


@pytest.fixture
async def gateway() -> AsyncGenerator[GatewayServer, None]:
    """Start a real WebSocket gateway on a free local port."""
    server = GatewayServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate tests from DISCORD_BRIDGE_* settings and the config singleton."""
    from discord_bridge.config import reset_config

    for key in list(os.environ):
        if key.startswith("DISCORD_BRIDGE_"):
            monkeypatch.delenv(key)

    reset_config()
    yield
    reset_config()


@pytest.fixture
async def idle_gateway() -> AsyncGenerator[GatewayServer, None]:
    """A gateway on a reserved port that the test starts itself."""
    server = GatewayServer()
    yield server
    await server.stop()
