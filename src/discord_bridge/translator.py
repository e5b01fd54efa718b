"""Translation between relay messages, wire frames and chat lines.

Pure functions with no network dependency:
- encode_outbound / encode_message: RelayMessage -> wire frame
- decode_inbound: wire frame -> RelayMessage
- format_for_display: RelayMessage -> colored chat line
"""

from __future__ import annotations

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from discord_bridge.colors import DEFAULT_COLOR, RESET, DisplayColor, resolve_color
from discord_bridge.errors import EncodingFailureError, MalformedPayloadError
from discord_bridge.protocol import RelayMessage


def encode_message(message: RelayMessage) -> str:
    """Serialize a message to an outbound wire frame.

    Keys are emitted in the order username, avatarURL, content with no
    whitespace, so equal messages always produce identical frames.

    Args:
        message: The message to serialize

    Returns:
        The JSON text frame

    Raises:
        EncodingFailureError: If the text cannot be serialized
    """
    try:
        return message.model_dump_json(by_alias=True, exclude={"color_tag"})
    except PydanticSerializationError as e:
        raise EncodingFailureError(f"Cannot encode message: {e}") from e


def encode_outbound(username: str, avatar_url: str, content: str) -> str:
    """Build and serialize an outbound wire frame.

    Raises:
        EncodingFailureError: If a field is not a string or cannot be serialized
    """
    fields = (("username", username), ("avatarURL", avatar_url), ("content", content))
    for name, value in fields:
        if not isinstance(value, str):
            raise EncodingFailureError(f"Invalid outbound message: {name} must be a string")
    try:
        message = RelayMessage(username=username, avatar_url=avatar_url, content=content)
    except ValidationError as e:
        raise EncodingFailureError(f"Invalid outbound message: {e}") from e
    return encode_message(message)


def decode_inbound(frame: str | bytes) -> RelayMessage:
    """Parse a wire frame received from the gateway.

    Args:
        frame: The raw text (or UTF-8 bytes) of one frame

    Returns:
        The decoded message. Missing avatarURL becomes "", missing userColor
        becomes None.

    Raises:
        MalformedPayloadError: If the frame is not a JSON object, or username
            or content are missing or not strings
    """
    try:
        return RelayMessage.model_validate_json(frame)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        detail = ", ".join(fields) if fields else "payload"
        raise MalformedPayloadError(f"Malformed gateway payload ({detail})") from e


def format_for_display(
    message: RelayMessage, default_color: DisplayColor = DEFAULT_COLOR
) -> str:
    """Render a message as an in-game chat line.

    The username is colored by its color tag (default color when the tag is
    absent or unknown), followed by a reset and the content.

    Args:
        message: The message to render
        default_color: Color for absent or unknown tags

    Returns:
        "<color><username><reset>: <content>"
    """
    color = resolve_color(message.color_tag, default_color)
    return f"{color.code}{message.username}{RESET}: {message.content}"
