"""Discord role color to Minecraft chat color table."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

SECTION_SIGN = "§"

# Formatting code that clears any active color
RESET = SECTION_SIGN + "r"


class DisplayColor(str, Enum):
    """Minecraft chat colors, valued by their legacy formatting code."""

    BLACK = "0"
    DARK_BLUE = "1"
    DARK_GREEN = "2"
    DARK_AQUA = "3"
    DARK_RED = "4"
    DARK_PURPLE = "5"
    GOLD = "6"
    GRAY = "7"
    DARK_GRAY = "8"
    BLUE = "9"
    GREEN = "a"
    AQUA = "b"
    RED = "c"
    LIGHT_PURPLE = "d"
    YELLOW = "e"
    WHITE = "f"

    @property
    def code(self) -> str:
        """The formatting code to prefix colored text with."""
        return SECTION_SIGN + self.value


DEFAULT_COLOR = DisplayColor.AQUA

# "gray" is Discord's darker gray, hence DARK_GRAY rather than GRAY
COLOR_MAP: Mapping[str, DisplayColor] = MappingProxyType(
    {
        "white": DisplayColor.WHITE,
        "light_gray": DisplayColor.GRAY,
        "gray": DisplayColor.DARK_GRAY,
        "dark_gray": DisplayColor.DARK_GRAY,
        "black": DisplayColor.BLACK,
        "red": DisplayColor.RED,
        "dark_red": DisplayColor.DARK_RED,
        "gold": DisplayColor.GOLD,
        "yellow": DisplayColor.YELLOW,
        "dark_green": DisplayColor.DARK_GREEN,
        "green": DisplayColor.GREEN,
        "aqua": DisplayColor.AQUA,
        "dark_aqua": DisplayColor.DARK_AQUA,
        "blue": DisplayColor.BLUE,
        "dark_blue": DisplayColor.DARK_BLUE,
        "light_purple": DisplayColor.LIGHT_PURPLE,
        "dark_purple": DisplayColor.DARK_PURPLE,
    }
)


def resolve_color(
    tag: str | None, default: DisplayColor = DEFAULT_COLOR
) -> DisplayColor:
    """Look up a color tag, falling back to the default.

    Args:
        tag: Color tag from the gateway, may be None or empty
        default: Color used for absent or unknown tags

    Returns:
        The matching DisplayColor, or the default
    """
    if not tag:
        return default
    return COLOR_MAP.get(tag, default)


def color_from_name(name: str) -> DisplayColor:
    """Parse a color by table key ("light_gray") or enum name ("GRAY", "gold").

    Table keys are matched exactly and win over enum names, so "gray" is
    DARK_GRAY while "GRAY" is GRAY.

    Raises:
        ValueError: If the name matches no color
    """
    key = name.strip()
    if key in COLOR_MAP:
        return COLOR_MAP[key]
    try:
        return DisplayColor[key.upper()]
    except KeyError:
        raise ValueError(f"Unknown display color: {name!r}") from None
