"""Error types raised by the bridge.

None of these are fatal: the connection manager recovers from connect
failures by reconnecting, and the relay logs decode/send failures and drops
the affected line.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConnectError(BridgeError):
    """The gateway could not be reached or the handshake failed."""

    def __init__(self, endpoint: str, cause: BaseException) -> None:
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"Failed to connect to gateway at {endpoint}: {cause}")


class DecodeError(BridgeError):
    """A received payload could not be decoded."""


class MalformedPayloadError(DecodeError):
    """A required field is missing or has the wrong type."""


class SendError(BridgeError):
    """A message could not be handed to the gateway."""


class NotConnectedError(SendError):
    """Send attempted while the gateway connection is not open."""


class EncodingFailureError(SendError):
    """The message could not be serialized to a wire payload."""
