"""Tests for the chat relay wiring and the console host.

Unit tests use the in-memory connector; end-to-end tests run against a real
WebSocket gateway on a local port.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
from typing import TYPE_CHECKING

import pytest

from discord_bridge.config import Config
from discord_bridge.connection import ConnectionManager, ConnectionState
from discord_bridge.console import relay_events, run_console_relay, stdout_sink
from discord_bridge.events import ChatEvent, PlayerDeathEvent, PlayerJoinEvent
from discord_bridge.protocol import RelayMessage
from discord_bridge.relay import ChatRelay
from discord_bridge.translator import decode_inbound, format_for_display

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import FakeConnector, FakeScheduler, GatewayServer


class ScriptedStdin:
    """Async line reader that yields fixed lines once a condition holds."""

    def __init__(self, lines: list[str], ready: Callable[[], object] | None = None) -> None:
        self._lines = [line.encode() for line in lines]
        self._ready = ready

    async def readline(self) -> bytes:
        if self._ready is not None:
            while not self._ready():
                await asyncio.sleep(0.01)
        if not self._lines:
            return b""
        return self._lines.pop(0)


@pytest.fixture
def lines() -> list[str]:
    return []


@pytest.fixture
async def relay(
    connector: FakeConnector,
    scheduler: FakeScheduler,
    lines: list[str],
    until: Callable[..., object],
) -> ChatRelay:
    """A started relay on the in-memory connector."""
    manager = ConnectionManager(connector=connector, scheduler=scheduler)
    chat_relay = ChatRelay(Config(), lines.append, connection=manager)
    await chat_relay.start()
    await until(lambda: manager.is_connected)
    return chat_relay


# =============================================================================
# ChatRelay
# =============================================================================


class TestPublish:
    """Tests for relaying host events to the gateway."""

    async def test_chat_event_sent(self, relay: ChatRelay, connector: FakeConnector) -> None:
        assert await relay.publish(ChatEvent(player="Steve", message="hello"))
        assert json.loads(connector.socket.sent[0]) == {
            "username": "Steve",
            "avatarURL": "https://mc-heads.net/avatar/Steve",
            "content": "hello",
        }
        await relay.stop()

    async def test_disabled_event_not_sent(
        self, connector: FakeConnector, scheduler: FakeScheduler, until: Callable[..., object]
    ) -> None:
        manager = ConnectionManager(connector=connector, scheduler=scheduler)
        chat_relay = ChatRelay(Config(join_leave_messages=False), print, connection=manager)
        await chat_relay.start()
        await until(lambda: manager.is_connected)

        assert not await chat_relay.publish(PlayerJoinEvent(player="Steve"))
        assert connector.socket.sent == []
        await chat_relay.stop()

    async def test_publish_while_disconnected_is_dropped(
        self, relay: ChatRelay, connector: FakeConnector, until: Callable[..., object]
    ) -> None:
        """A disconnected relay drops traffic without raising."""
        connector.socket.drop()
        await until(lambda: relay.connection.state is ConnectionState.DISCONNECTED)

        assert not await relay.publish(PlayerDeathEvent(death_message="Steve drowned"))
        await relay.stop()

    async def test_publish_before_start(self, lines: list[str]) -> None:
        chat_relay = ChatRelay(Config(), lines.append)
        assert not await chat_relay.publish(ChatEvent(player="Steve", message="hi"))
        await chat_relay.stop()


class TestHandleFrame:
    """Tests for relaying gateway frames to the display sink."""

    async def test_frame_displayed(
        self,
        relay: ChatRelay,
        connector: FakeConnector,
        lines: list[str],
        until: Callable[..., object],
    ) -> None:
        connector.socket.feed('{"username":"Bob","userColor":"gold","content":"hey"}')
        await until(lambda: lines)
        assert lines == ["§6Bob§r: hey"]
        await relay.stop()

    def test_malformed_frame_logged_and_dropped(
        self, lines: list[str], caplog: pytest.LogCaptureFixture
    ) -> None:
        chat_relay = ChatRelay(Config(), lines.append)
        with caplog.at_level(logging.WARNING):
            chat_relay.handle_frame('{"content":"no user"}')
        assert lines == []
        assert "Failed to parse Discord message" in caplog.text

    def test_default_color_from_config(self, lines: list[str]) -> None:
        chat_relay = ChatRelay(Config(default_color="white"), lines.append)
        chat_relay.handle_frame('{"username":"Bob","content":"hey"}')
        assert lines == ["§fBob§r: hey"]


# =============================================================================
# End-to-End
# =============================================================================


class TestEndToEnd:
    """Tests against a real WebSocket gateway."""

    async def test_full_exchange(
        self, gateway: GatewayServer, lines: list[str], until: Callable[..., object]
    ) -> None:
        config = Config(websocket_url=gateway.url, reconnect_delay=1)
        chat_relay = ChatRelay(config, lines.append)
        states = [chat_relay.connection.state]

        await chat_relay.start()
        await until(lambda: chat_relay.connection.is_connected and gateway.clients)
        states.append(chat_relay.connection.state)
        assert states == [ConnectionState.DISCONNECTED, ConnectionState.CONNECTED]

        assert await chat_relay.send(RelayMessage(username="Alice", content="hi"))
        await until(lambda: gateway.received)
        assert gateway.received == ['{"username":"Alice","avatarURL":"","content":"hi"}']

        await gateway.broadcast('{"username":"Bob","userColor":"red","content":"yo"}')
        await until(lambda: lines)
        assert lines == ["§cBob§r: yo"]

        await chat_relay.stop()
        assert chat_relay.connection.state is ConnectionState.DISCONNECTED

    async def test_decoded_frame_formats(self) -> None:
        message = decode_inbound('{"username":"Bob","userColor":"red","content":"yo"}')
        assert format_for_display(message) == "§cBob§r: yo"

    async def test_reconnects_after_gateway_closes(
        self, gateway: GatewayServer, until: Callable[..., object]
    ) -> None:
        manager = ConnectionManager()
        await manager.start(gateway.url, 0)
        await until(lambda: gateway.connections == 1 and gateway.clients)

        await gateway.disconnect_clients()
        await until(lambda: gateway.connections == 2 and gateway.clients)
        await until(lambda: manager.is_connected)

        await manager.stop()

    async def test_unreachable_gateway_keeps_retrying(
        self, idle_gateway: GatewayServer, until: Callable[..., object]
    ) -> None:
        server = idle_gateway
        manager = ConnectionManager(open_timeout=1.0)
        await manager.start(server.url, 0.05)

        # Nothing is listening yet, so the first attempts fail
        await asyncio.sleep(0.2)
        assert not manager.is_connected

        await server.start()
        try:
            await until(lambda: manager.is_connected, timeout=5.0)
        finally:
            await manager.stop()


# =============================================================================
# Console Host
# =============================================================================


class TestConsole:
    """Tests for the stdin/stdout console host."""

    def test_stdout_sink(self) -> None:
        out = io.StringIO()
        display = stdout_sink(out)
        display("§cBob§r: yo")
        display("second")
        assert out.getvalue() == "§cBob§r: yo\nsecond\n"

    async def test_relay_events(self, relay: ChatRelay, connector: FakeConnector) -> None:
        stdin = ScriptedStdin(
            [
                '{"type": "chat", "player": "Steve", "message": "hi"}\n',
                "\n",
                "garbage\n",
                '{"type": "join", "player": "Alex"}\n',
            ]
        )
        sent = await relay_events(relay, stdin)
        assert sent == 2
        assert [json.loads(frame)["content"] for frame in connector.socket.sent] == [
            "hi",
            "Alex joined the server",
        ]
        await relay.stop()

    async def test_run_console_relay(
        self, gateway: GatewayServer, until: Callable[..., object]
    ) -> None:
        out = io.StringIO()
        config = Config(websocket_url=gateway.url, reconnect_delay=1)
        manager = ConnectionManager()
        stdin = ScriptedStdin(
            ['{"type": "chat", "player": "Steve", "message": "over the wire"}\n'],
            ready=lambda: manager.is_connected,
        )

        exit_code = await run_console_relay(
            config, stdin=stdin, stdout=out, connection=manager
        )
        assert exit_code == 0
        await until(lambda: gateway.received)
        assert [json.loads(frame)["content"] for frame in gateway.received] == [
            "over the wire"
        ]

    async def test_run_console_relay_eof(self) -> None:
        """Immediate EOF shuts down cleanly even without a gateway."""
        config = Config(websocket_url="ws://127.0.0.1:9", reconnect_delay=1)
        exit_code = await run_console_relay(config, stdin=ScriptedStdin([]), stdout=io.StringIO())
        assert exit_code == 0
