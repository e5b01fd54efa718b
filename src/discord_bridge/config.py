"""Configuration management for the Discord bridge.

This module provides centralized configuration with support for:
- Environment variables (primary)
- The plugin-style ``config.yml`` layout (optional file)
- Sensible defaults for all settings
- Type validation via Pydantic

Environment Variables:
    DISCORD_BRIDGE_WEBSOCKET_URL: Gateway endpoint (default: ws://127.0.0.1:8080)
    DISCORD_BRIDGE_RECONNECT_DELAY: Seconds between reconnect attempts (default: 5)
    DISCORD_BRIDGE_JOIN_LEAVE_MESSAGES: Relay joins and leaves (default: true)
    DISCORD_BRIDGE_DEATH_MESSAGES: Relay death messages (default: true)
    DISCORD_BRIDGE_ADVANCEMENTS: Relay advancements (default: true)
    DISCORD_BRIDGE_DEFAULT_COLOR: Username color for untagged messages (default: aqua)
    DISCORD_BRIDGE_LOG_LEVEL: Logging level (default: INFO)

Usage:
    from discord_bridge.config import get_config, Config

    config = get_config()
    delay = config.reconnect_delay

    # For testing, create a custom config
    test_config = Config(reconnect_delay=0, death_messages=False)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from discord_bridge.colors import DEFAULT_COLOR, DisplayColor, color_from_name
from discord_bridge.protocol import (
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_ENDPOINT,
    DEFAULT_OPEN_TIMEOUT,
    DEFAULT_PLAYER_AVATAR_URL,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SERVER_AVATAR_URL,
    DEFAULT_SERVER_NAME,
)

logger = logging.getLogger(__name__)

# config.yml key path -> Config field
CONFIG_FILE_KEYS: dict[tuple[str, ...], str] = {
    ("websocket", "url"): "websocket_url",
    ("websocket", "reconnect-delay"): "reconnect_delay",
    ("websocket", "open-timeout"): "open_timeout",
    ("websocket", "close-timeout"): "close_timeout",
    ("features", "join-leave-messages"): "join_leave_messages",
    ("features", "death-messages"): "death_messages",
    ("features", "advancements"): "advancements",
    ("display", "default-color"): "default_color",
    ("server", "name"): "server_name",
    ("server", "avatar-url"): "server_avatar_url",
    ("server", "player-avatar-url"): "player_avatar_url",
    ("logging", "level"): "log_level",
}


class ConfigFileError(Exception):
    """Raised when a config file cannot be read or parsed."""


class Config(BaseSettings):
    """Bridge configuration with environment variable support.

    All settings can be overridden via environment variables prefixed with
    DISCORD_BRIDGE_. For example, DISCORD_BRIDGE_RECONNECT_DELAY=10 sets
    reconnect_delay to 10.

    Attributes:
        websocket_url: Gateway WebSocket endpoint (ws:// or wss://)
        reconnect_delay: Fixed delay in seconds before each reconnect attempt
        open_timeout: Bound on the WebSocket opening handshake
        close_timeout: Bound on closing the connection at shutdown
        join_leave_messages: Relay player join and leave lines
        death_messages: Relay player death lines
        advancements: Relay advancement lines
        default_color: Username color for absent or unknown color tags
        server_name: Username for server-originated lines
        server_avatar_url: Avatar for server-originated lines
        player_avatar_url: Avatar template for player lines, "{player}" is substituted
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    model_config = SettingsConfigDict(
        env_prefix="DISCORD_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gateway connection
    websocket_url: str = Field(
        default=DEFAULT_ENDPOINT,
        description="Gateway WebSocket endpoint",
    )
    reconnect_delay: int = Field(
        default=DEFAULT_RECONNECT_DELAY,
        ge=0,
        description="Seconds to wait before each reconnect attempt",
    )
    open_timeout: float = Field(
        default=DEFAULT_OPEN_TIMEOUT,
        gt=0,
        description="Seconds allowed for the opening handshake",
    )
    close_timeout: float = Field(
        default=DEFAULT_CLOSE_TIMEOUT,
        gt=0,
        description="Seconds allowed for closing the connection",
    )

    # Feature toggles
    join_leave_messages: bool = Field(default=True)
    death_messages: bool = Field(default=True)
    advancements: bool = Field(default=True)

    # Display
    default_color: DisplayColor = Field(
        default=DEFAULT_COLOR,
        description="Username color for untagged messages",
    )

    # Identity
    server_name: str = Field(default=DEFAULT_SERVER_NAME)
    server_avatar_url: str = Field(default=DEFAULT_SERVER_AVATAR_URL)
    player_avatar_url: str = Field(default=DEFAULT_PLAYER_AVATAR_URL)

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("websocket_url")
    @classmethod
    def validate_websocket_url(cls, v: str) -> str:
        """Require a WebSocket scheme."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("websocket_url must start with ws:// or wss://")
        return v

    @field_validator("default_color", mode="before")
    @classmethod
    def parse_default_color(cls, v: Any) -> Any:
        """Accept color names ("aqua", "DARK_RED") as well as enum members."""
        if isinstance(v, DisplayColor):
            return v
        if isinstance(v, str):
            return color_from_name(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    def player_avatar(self, player: str) -> str:
        """Avatar URL for a player."""
        return self.player_avatar_url.replace("{player}", player)

    def setup_logging(self) -> None:
        """Configure logging based on config settings.

        Logs go to stderr; stdout is the chat display in console mode.
        """
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging/debugging.

        Returns:
            Dictionary of all config values
        """
        return {
            "websocket_url": self.websocket_url,
            "reconnect_delay": self.reconnect_delay,
            "open_timeout": self.open_timeout,
            "close_timeout": self.close_timeout,
            "join_leave_messages": self.join_leave_messages,
            "death_messages": self.death_messages,
            "advancements": self.advancements,
            "default_color": self.default_color.name.lower(),
            "server_name": self.server_name,
            "server_avatar_url": self.server_avatar_url,
            "player_avatar_url": self.player_avatar_url,
            "log_level": self.log_level,
        }


def _flatten_config_file(data: dict[str, Any]) -> dict[str, Any]:
    """Map nested config.yml sections onto Config field names."""
    values: dict[str, Any] = {}
    for path, field_name in CONFIG_FILE_KEYS.items():
        node: Any = data
        for key in path:
            if not isinstance(node, dict) or key not in node:
                break
            node = node[key]
        else:
            values[field_name] = node
    return values


def load_config_file(path: str | Path) -> Config:
    """Load configuration from a plugin-style YAML file.

    The file uses the plugin layout::

        websocket:
          url: "ws://127.0.0.1:8080"
          reconnect-delay: 5
        features:
          join-leave-messages: true
          death-messages: true
          advancements: true

    Values from the file take precedence over environment variables. Keys
    missing from the file fall back to the environment, then to defaults.
    A missing file yields the environment/default configuration.

    Args:
        path: Path to the YAML file

    Returns:
        The loaded Config

    Raises:
        ConfigFileError: If the file cannot be read or is not a YAML mapping
        pydantic.ValidationError: If a value is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.info("Config file %s not found, using defaults", config_path)
        return Config()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(f"Failed to load config from {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigFileError(f"Config file {config_path} must contain a mapping")

    return Config(**_flatten_config_file(data))


# Module-level singleton instance
_config_instance: Config | None = None


def get_config() -> Config:
    """Get the singleton configuration instance.

    Creates the config on first call, caching it for subsequent calls.

    Returns:
        The Config singleton instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def set_config(config: Config) -> None:
    """Set the configuration instance (primarily for testing).

    Args:
        config: Config instance to use as the singleton
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the configuration singleton.

    Forces the next get_config() call to reload from environment.
    """
    global _config_instance
    _config_instance = None
