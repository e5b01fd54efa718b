"""Relay between host game events and the Discord gateway.

Wires the pieces together:
- host event -> RelayMessage -> ConnectionManager.send (game -> Discord)
- gateway frame -> RelayMessage -> chat line -> display sink (Discord -> game)

Traffic is best-effort: lines that cannot be sent or decoded are logged and
dropped, never raised to the host.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from discord_bridge.config import Config
from discord_bridge.connection import ConnectionManager
from discord_bridge.errors import DecodeError, NotConnectedError, SendError
from discord_bridge.events import HostEvent, event_to_message
from discord_bridge.protocol import RelayMessage
from discord_bridge.translator import decode_inbound, format_for_display

logger = logging.getLogger(__name__)

DisplaySink = Callable[[str], None]


class ChatRelay:
    """Bidirectional chat relay for one game server.

    Attributes:
        config: Bridge configuration (endpoint, delay, feature toggles, identity)
        connection: The gateway connection manager
    """

    def __init__(
        self,
        config: Config,
        display: DisplaySink,
        *,
        connection: ConnectionManager | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            config: Bridge configuration
            display: Host sink receiving formatted chat lines for broadcast
            connection: Connection manager to use (defaults to a new one
                built from config)
        """
        self.config = config
        self._display = display
        self.connection = connection or ConnectionManager(
            open_timeout=config.open_timeout,
            close_timeout=config.close_timeout,
        )
        self.connection.on_message(self.handle_frame)

    async def start(self) -> None:
        """Start connecting to the gateway (returns immediately)."""
        await self.connection.start(
            self.config.websocket_url, self.config.reconnect_delay
        )

    async def stop(self) -> None:
        """Close the gateway connection and stop reconnecting."""
        await self.connection.stop()

    async def publish(self, event: HostEvent) -> bool:
        """Relay a host event to the gateway.

        Args:
            event: The host event

        Returns:
            True if a message was sent, False if the event was filtered out
            or the send failed
        """
        message = event_to_message(event, self.config)
        if message is None:
            logger.debug("Event %s not relayed", event.type)
            return False
        return await self.send(message)

    async def send(self, message: RelayMessage) -> bool:
        """Send a message, logging instead of raising on failure."""
        try:
            await self.connection.send(message)
        except NotConnectedError as e:
            logger.debug("Dropped message from %s: %s", message.username, e)
            return False
        except SendError as e:
            logger.warning("Failed to send message to Discord: %s", e)
            return False
        return True

    def handle_frame(self, frame: str) -> None:
        """Decode a gateway frame and hand the chat line to the display sink."""
        try:
            message = decode_inbound(frame)
        except DecodeError as e:
            logger.warning("Failed to parse Discord message: %s", e)
            return

        self._display(format_for_display(message, self.config.default_color))
