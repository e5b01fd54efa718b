"""Host game events and their mapping to relay messages.

The game host reports five kinds of events. Each is reduced to a
(username, avatar, content) triple before it is sent to the gateway:

- chat: the player's own line, with the player's avatar
- join / quit: "<player> joined the server" / "<player> left the server",
  sent as the server identity
- death: the game's death message, sent as the server identity
- advancement: "<player> has made the advancement [<title>]", with the
  player's avatar

Events can be delivered as JSON lines discriminated by ``type``, e.g.
``{"type": "chat", "player": "Steve", "message": "hello"}``.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from discord_bridge.config import Config
from discord_bridge.errors import MalformedPayloadError
from discord_bridge.protocol import RelayMessage

logger = logging.getLogger(__name__)


class BaseHostEvent(BaseModel):
    """Base model for host events; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class ChatEvent(BaseHostEvent):
    """A player sent a chat message."""

    type: Literal["chat"] = "chat"
    player: str
    message: str


class PlayerJoinEvent(BaseHostEvent):
    """A player joined the server."""

    type: Literal["join"] = "join"
    player: str


class PlayerQuitEvent(BaseHostEvent):
    """A player left the server."""

    type: Literal["quit"] = "quit"
    player: str


class PlayerDeathEvent(BaseHostEvent):
    """A player died. The host supplies the rendered death message."""

    type: Literal["death"] = "death"
    death_message: str | None = None


class AdvancementEvent(BaseHostEvent):
    """A player completed an advancement.

    ``title`` is None for advancements without a display (recipes and other
    hidden advancements); those are never relayed.
    """

    type: Literal["advancement"] = "advancement"
    player: str
    title: str | None = None


HostEvent = Annotated[
    Union[ChatEvent, PlayerJoinEvent, PlayerQuitEvent, PlayerDeathEvent, AdvancementEvent],
    Field(discriminator="type"),
]

_host_event_adapter: TypeAdapter[HostEvent] = TypeAdapter(HostEvent)


def parse_event(line: str | bytes) -> HostEvent:
    """Parse one JSON line from the host into an event.

    Raises:
        MalformedPayloadError: If the line is not a known event
    """
    try:
        return _host_event_adapter.validate_json(line)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid host event: {e.error_count()} error(s)") from e


def event_to_message(event: HostEvent, config: Config) -> RelayMessage | None:
    """Map a host event to the message sent to the gateway.

    Args:
        event: The host event
        config: Supplies feature toggles and the server/player identities

    Returns:
        The RelayMessage to send, or None when the event is disabled by a
        feature toggle or carries nothing to relay
    """
    if isinstance(event, ChatEvent):
        return RelayMessage(
            username=event.player,
            avatar_url=config.player_avatar(event.player),
            content=event.message,
        )

    if isinstance(event, (PlayerJoinEvent, PlayerQuitEvent)):
        if not config.join_leave_messages:
            return None
        verb = "joined" if isinstance(event, PlayerJoinEvent) else "left"
        return _server_message(config, f"{event.player} {verb} the server")

    if isinstance(event, PlayerDeathEvent):
        if not config.death_messages or not event.death_message:
            return None
        return _server_message(config, event.death_message)

    if isinstance(event, AdvancementEvent):
        if not config.advancements or event.title is None:
            return None
        return RelayMessage(
            username=event.player,
            avatar_url=config.player_avatar(event.player),
            content=f"{event.player} has made the advancement [{event.title}]",
        )

    logger.warning("Unhandled host event type: %s", type(event).__name__)
    return None


def _server_message(config: Config, content: str) -> RelayMessage:
    return RelayMessage(
        username=config.server_name,
        avatar_url=config.server_avatar_url,
        content=content,
    )
