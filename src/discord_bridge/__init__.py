"""Discord Bridge - chat relay between a Minecraft server and a Discord gateway.

A thin async relay that:
- Keeps one WebSocket connection open to the Discord-facing gateway
- Reconnects after any failure with a fixed delay
- Translates game events (chat, joins, deaths, advancements) into gateway payloads
- Formats gateway messages as colored in-game chat lines
"""

__version__ = "0.1.0"
