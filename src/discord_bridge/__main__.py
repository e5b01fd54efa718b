"""Entry point for the Discord bridge console relay.

Reads host events as JSON lines from stdin and prints chat lines received
from Discord to stdout. Logs go to stderr.

Usage:
    python -m discord_bridge

Environment Variables:
    DISCORD_BRIDGE_CONFIG_FILE: Optional plugin-style config.yml to load
    DISCORD_BRIDGE_*: Individual settings, see discord_bridge.config
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from pydantic import ValidationError

from discord_bridge.config import (
    Config,
    ConfigFileError,
    get_config,
    load_config_file,
    set_config,
)
from discord_bridge.console import run_console_relay


def load_config() -> Config:
    """Load config from DISCORD_BRIDGE_CONFIG_FILE if set, else the environment."""
    config_file = os.environ.get("DISCORD_BRIDGE_CONFIG_FILE")
    if config_file:
        config = load_config_file(config_file)
        set_config(config)
        return config
    return get_config()


def main() -> int:
    """Main entry point."""
    try:
        config = load_config()
    except (ConfigFileError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    config.setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Discord bridge starting with %s", config.to_dict())

    try:
        return asyncio.run(run_console_relay(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
