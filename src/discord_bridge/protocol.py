"""Protocol constants and the relay wire message.

Handles:
- Protocol constants (gateway endpoint, reconnect delay, timeouts)
- The RelayMessage model shared by both directions of the relay

Wire format is one JSON object per WebSocket text frame::

    {"username": "...", "avatarURL": "...", "content": "...", "userColor": "..."}

``username`` and ``content`` are required. ``avatarURL`` and ``userColor``
are optional; outbound frames never carry ``userColor``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

# =============================================================================
# Protocol Constants
# =============================================================================

# Default gateway connection settings
DEFAULT_ENDPOINT: str = "ws://127.0.0.1:8080"
DEFAULT_RECONNECT_DELAY: int = 5  # seconds, fixed (no backoff)

# Handshake and close bounds
DEFAULT_OPEN_TIMEOUT: float = 10.0  # seconds
DEFAULT_CLOSE_TIMEOUT: float = 5.0  # seconds

# Identity used for server-originated lines (joins, leaves, deaths)
DEFAULT_SERVER_NAME: str = "Server"
DEFAULT_SERVER_AVATAR_URL: str = "https://neonation.net/assets/server.png"

# Player avatars are rendered by mc-heads from the player name
DEFAULT_PLAYER_AVATAR_URL: str = "https://mc-heads.net/avatar/{player}"


# =============================================================================
# Wire Message
# =============================================================================


class RelayMessage(BaseModel):
    """A single chat or event line, independent of direction.

    Fields use Python names; the wire uses ``avatarURL`` and ``userColor``.
    Either spelling is accepted on construction. Instances are immutable.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    username: StrictStr
    avatar_url: str = Field(default="", alias="avatarURL")
    content: StrictStr
    color_tag: str | None = Field(default=None, alias="userColor")

    @field_validator("avatar_url", mode="before")
    @classmethod
    def avatar_as_string(cls, v: Any) -> Any:
        """Treat a null or non-string avatar as no avatar."""
        if not isinstance(v, str):
            return ""
        return v

    @field_validator("color_tag", mode="before")
    @classmethod
    def color_as_string(cls, v: Any) -> Any:
        """Treat a non-string color tag as absent."""
        if not isinstance(v, str):
            return None
        return v
