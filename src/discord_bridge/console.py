"""Stand-alone console host for the relay.

Runs a ChatRelay whose event source is stdin and whose display sink is
stdout:
- Reads one JSON host event per line from stdin and relays it to Discord
- Writes each chat line received from Discord to stdout

This lets a server wrapper (or a person at a terminal) drive the bridge
without embedding it in the game process.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Protocol, TextIO

from discord_bridge.config import Config
from discord_bridge.connection import ConnectionManager
from discord_bridge.errors import DecodeError
from discord_bridge.events import parse_event
from discord_bridge.relay import ChatRelay, DisplaySink

logger = logging.getLogger(__name__)


class AsyncLineReader(Protocol):
    """Protocol for async line readers (duck typing for StreamReader)."""

    async def readline(self) -> bytes:
        """Read a line asynchronously."""
        ...


class ThreadedStdinReader:
    """Async stdin reader backed by a daemon thread.

    On Windows, asyncio's ProactorEventLoop doesn't support
    ``loop.connect_read_pipe()`` for stdin, so a thread performs blocking
    reads and hands lines to the loop through a queue.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def _reader_thread(self) -> None:
        assert self._loop is not None
        try:
            while True:
                line = sys.stdin.buffer.readline()
                if not line:
                    break
                self._loop.call_soon_threadsafe(self._queue.put_nowait, line)
        except (OSError, ValueError) as e:
            logger.error("Stdin reader failed: %s", e, exc_info=True)
        finally:
            # Empty bytes signal EOF
            self._loop.call_soon_threadsafe(self._queue.put_nowait, b"")

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background reader thread."""
        self._loop = loop
        self._thread = threading.Thread(target=self._reader_thread, daemon=True)
        self._thread.start()

    async def readline(self) -> bytes:
        """Read a line from stdin; empty bytes on EOF."""
        return await self._queue.get()


async def create_stdin_reader() -> AsyncLineReader:
    """Create an async reader for stdin.

    Uses a thread-based reader on Windows and connect_read_pipe elsewhere.
    """
    loop = asyncio.get_running_loop()
    if sys.platform == "win32":
        threaded = ThreadedStdinReader()
        threaded.start(loop)
        return threaded

    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


def stdout_sink(stdout: TextIO | None = None) -> DisplaySink:
    """Build a display sink that writes one chat line per output line."""
    out = stdout if stdout is not None else sys.stdout

    def display(line: str) -> None:
        out.write(line + "\n")
        out.flush()

    return display


async def relay_events(relay: ChatRelay, stdin: AsyncLineReader) -> int:
    """Relay host events read from stdin until EOF.

    Blank lines are skipped; invalid lines are logged and skipped.

    Args:
        relay: The started relay
        stdin: Source of JSON event lines

    Returns:
        Number of events sent to the gateway
    """
    sent = 0
    while True:
        line_bytes = await stdin.readline()
        if not line_bytes:
            logger.info("EOF on stdin, shutting down")
            return sent

        line = line_bytes.decode("utf-8", errors="replace").strip()
        if not line:
            continue

        try:
            event = parse_event(line)
        except DecodeError as e:
            logger.warning("Ignoring invalid event line: %s", e)
            continue

        if await relay.publish(event):
            sent += 1


async def run_console_relay(
    config: Config,
    stdin: AsyncLineReader | None = None,
    stdout: TextIO | None = None,
    *,
    connection: ConnectionManager | None = None,
) -> int:
    """Run the relay with stdin as event source and stdout as display.

    Args:
        config: Bridge configuration
        stdin: Event line reader (defaults to the process stdin)
        stdout: Output stream for chat lines (defaults to sys.stdout)
        connection: Connection manager to use (defaults to one built from config)

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    relay = ChatRelay(config, stdout_sink(stdout), connection=connection)

    try:
        await relay.start()
        reader = stdin if stdin is not None else await create_stdin_reader()
        await relay_events(relay, reader)
        return 0
    except asyncio.CancelledError:
        logger.info("Relay cancelled")
        return 0
    except OSError as e:
        logger.error("Relay I/O error: %s", e)
        return 1
    finally:
        await relay.stop()
