"""Gateway connection manager.

Keeps at most one WebSocket connection open to the gateway and reconnects
after every disconnect with a fixed delay. Reconnect attempts repeat for as
long as the manager runs; there is no backoff and no retry limit.

State machine::

    DISCONNECTED --start/reconnect--> CONNECTING --open--> CONNECTED
    CONNECTING --connect failure--> DISCONNECTED
    CONNECTED --remote close / I/O error--> DISCONNECTED

Each entry into DISCONNECTED while running schedules one reconnect through a
cancellable timer. Messages sent while not CONNECTED are rejected, not queued.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from discord_bridge.errors import ConnectError, NotConnectedError
from discord_bridge.protocol import (
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_OPEN_TIMEOUT,
    DEFAULT_RECONNECT_DELAY,
    RelayMessage,
)
from discord_bridge.translator import encode_message

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class GatewaySocket(Protocol):
    """The parts of a websockets client connection the manager uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled (asyncio.TimerHandle)."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules delayed callbacks (asyncio.AbstractEventLoop satisfies this)."""

    def call_later(self, delay: float, callback: Callable[[], object]) -> TimerHandle: ...


Connector = Callable[[str], Awaitable[GatewaySocket]]
FrameCallback = Callable[[str], None]


class ConnectionManager:
    """Owns the single connection to the gateway.

    The manager:
    - Connects in a background task, never blocking the caller
    - Delivers every received frame to the on_message callback
    - Rejects sends unless connected (fire-and-forget, no queueing)
    - Schedules a reconnect after reconnect_delay on every disconnect
    - Cancels any pending reconnect on stop()

    The state and the socket handle are only changed under one asyncio.Lock,
    so a send cannot race a reconnect.
    """

    def __init__(
        self,
        on_message: FrameCallback | None = None,
        *,
        connector: Connector | None = None,
        scheduler: Scheduler | None = None,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        """Initialize the manager.

        Args:
            on_message: Callback invoked with each received frame's text
            connector: Coroutine function opening a connection to an endpoint
                (defaults to websockets.connect)
            scheduler: Timer source for reconnects (defaults to the running loop)
            open_timeout: Seconds allowed for the opening handshake
            close_timeout: Seconds allowed for closing the connection
        """
        self._on_message = on_message
        self._connector = connector
        self._scheduler = scheduler
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout

        self._endpoint: str | None = None
        self._reconnect_delay: float = DEFAULT_RECONNECT_DELAY
        self._state = ConnectionState.DISCONNECTED
        self._websocket: GatewaySocket | None = None
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connection_task: asyncio.Task[None] | None = None
        self._reconnect_handle: TimerHandle | None = None
        self._running = False

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True if the gateway connection is open."""
        return self._state is ConnectionState.CONNECTED and self._websocket is not None

    @property
    def is_running(self) -> bool:
        """Return True between start() and stop()."""
        return self._running

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def reconnect_delay(self) -> float:
        return self._reconnect_delay

    def on_message(self, callback: FrameCallback | None) -> None:
        """Register the callback for received frames.

        Args:
            callback: Function called with each frame's text, or None to drop frames
        """
        self._on_message = callback

    async def start(
        self, endpoint: str, reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    ) -> None:
        """Begin connecting to the gateway in the background.

        Returns immediately. Calling start() while already running is a no-op.

        Args:
            endpoint: Gateway WebSocket URL
            reconnect_delay: Fixed seconds to wait before each reconnect

        Raises:
            ValueError: If reconnect_delay is negative
        """
        if self._running:
            logger.debug("Connection manager already running, ignoring start()")
            return
        if reconnect_delay < 0:
            raise ValueError("reconnect_delay must be >= 0")

        self._endpoint = endpoint
        self._reconnect_delay = reconnect_delay
        self._loop = asyncio.get_running_loop()
        if self._scheduler is None:
            self._scheduler = self._loop
        self._running = True

        logger.info("Connection manager starting, will connect to %s", endpoint)
        self._begin_connect()

    async def stop(self) -> None:
        """Close the connection and stop reconnecting.

        Safe to call when never started or already stopped. Waits at most
        close_timeout for the socket to close.
        """
        self._running = False

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
            logger.debug("Cancelled pending reconnect")

        websocket = self._websocket
        if websocket is not None:
            await self._close_quietly(websocket)

        if self._connection_task is not None:
            self._connection_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._connection_task
            self._connection_task = None

        async with self._lock:
            self._websocket = None
            self._state = ConnectionState.DISCONNECTED

        if websocket is not None:
            logger.info("Gateway connection closed")

    async def send(self, message: RelayMessage) -> None:
        """Send one message to the gateway.

        Never waits for a connection: if the gateway is not connected the
        message is rejected immediately and nothing is written.

        Args:
            message: The message to send

        Raises:
            NotConnectedError: If not connected, or the connection closed mid-send
            EncodingFailureError: If the message cannot be serialized
        """
        async with self._lock:
            websocket = self._websocket
            if self._state is not ConnectionState.CONNECTED or websocket is None:
                raise NotConnectedError(f"Cannot send while {self._state.value}")

            payload = encode_message(message)
            try:
                await websocket.send(payload)
            except ConnectionClosed as e:
                raise NotConnectedError(f"Gateway connection closed: {e}") from e

        logger.debug("Sent message from %s", message.username)

    def send_threadsafe(self, message: RelayMessage) -> concurrent.futures.Future[None]:
        """Submit a send from a thread other than the event loop's.

        Args:
            message: The message to send

        Returns:
            A future resolving when the send completes (or raising SendError)

        Raises:
            NotConnectedError: If the manager was never started
        """
        if self._loop is None:
            raise NotConnectedError("Connection manager has not been started")
        return asyncio.run_coroutine_threadsafe(self.send(message), self._loop)

    def _begin_connect(self) -> None:
        """Start a connection attempt (also the reconnect timer callback)."""
        self._reconnect_handle = None
        if not self._running:
            return
        if self._connection_task is not None and not self._connection_task.done():
            return
        self._connection_task = asyncio.create_task(self._run_connection())

    def _schedule_reconnect(self) -> None:
        """Schedule exactly one reconnect attempt after the fixed delay."""
        if not self._running or self._scheduler is None:
            return
        if self._reconnect_handle is not None:
            return

        logger.info("Reconnecting to %s in %ss", self._endpoint, self._reconnect_delay)
        self._reconnect_handle = self._scheduler.call_later(
            self._reconnect_delay, self._begin_connect
        )

    async def _open(self) -> GatewaySocket:
        """Open a connection to the endpoint.

        Raises:
            ConnectError: If the endpoint is unreachable or the handshake fails
        """
        endpoint = self._endpoint or ""
        try:
            if self._connector is not None:
                return await self._connector(endpoint)
            return await websockets.connect(
                endpoint,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ConnectError(endpoint, e) from e

    async def _run_connection(self) -> None:
        """Background task: connect once, then read frames until disconnect."""
        async with self._lock:
            self._state = ConnectionState.CONNECTING

        try:
            websocket = await self._open()
        except ConnectError as e:
            logger.error("%s", e)
            await self._mark_disconnected()
            return
        except Exception as e:
            logger.error("%s", ConnectError(self._endpoint or "", e), exc_info=True)
            await self._mark_disconnected()
            return

        async with self._lock:
            if not self._running:
                # stop() ran while the handshake was in flight
                await self._close_quietly(websocket)
                self._state = ConnectionState.DISCONNECTED
                return
            self._websocket = websocket
            self._state = ConnectionState.CONNECTED
        logger.info("Connected to gateway at %s", self._endpoint)

        try:
            await self._read_frames(websocket)
        finally:
            if not self._running:
                await self._close_quietly(websocket)
            await self._mark_disconnected()

    async def _read_frames(self, websocket: GatewaySocket) -> None:
        """Deliver frames to the callback until the connection ends."""
        try:
            async for frame in websocket:
                self._dispatch(frame)
            if self._running:
                logger.warning("Gateway closed the connection")
        except ConnectionClosed as e:
            logger.warning("Gateway connection lost: %s", e)
        except OSError as e:
            logger.error("Gateway connection error: %s", e)

    def _dispatch(self, frame: str | bytes) -> None:
        """Hand one frame to the callback; callback errors are logged."""
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")

        callback = self._on_message
        if callback is None:
            return

        try:
            callback(frame)
        except Exception as e:
            # Don't let a bad callback end the read loop
            callback_name = getattr(callback, "__name__", repr(callback))
            logger.error(
                "Error in message callback '%s': %s",
                callback_name,
                e,
                exc_info=True,
            )

    async def _close_quietly(self, websocket: GatewaySocket) -> None:
        """Close a socket, waiting at most close_timeout."""
        try:
            await asyncio.wait_for(websocket.close(), timeout=self._close_timeout)
        except (asyncio.TimeoutError, OSError, WebSocketException) as e:
            logger.debug("Error closing gateway connection: %s", e)

    async def _mark_disconnected(self) -> None:
        async with self._lock:
            self._websocket = None
            self._state = ConnectionState.DISCONNECTED
        self._schedule_reconnect()
