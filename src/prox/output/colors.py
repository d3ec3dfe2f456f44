"""Terminal color scheme.

Color names used in Proxfile ``tags`` map to ANSI SGR codes here. Process
names get colors from NAME_PALETTE in launch order; red is left out so
that it stays reserved for error tags.
"""

from __future__ import annotations

__all__ = [
    "COLORS",
    "NAME_PALETTE",
    "RESET",
    "colorize",
    "is_known_color",
]

RESET = "\033[0m"

COLORS = {
    # Base colors
    "black": "30",
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
    "white": "37",

    # Bright variants
    "gray": "90",
    "grey": "90",
    "bright-red": "91",
    "bright-green": "92",
    "bright-yellow": "93",
    "bright-blue": "94",
    "bright-magenta": "95",
    "bright-cyan": "96",
    "bright-white": "97",

    # Styles
    "bold": "1",
    "dim": "2",
}

NAME_PALETTE = (
    "cyan",
    "yellow",
    "green",
    "magenta",
    "blue",
    "bright-cyan",
    "bright-yellow",
    "bright-green",
    "bright-magenta",
    "bright-blue",
)


def is_known_color(name: str) -> bool:
    return name.lower() in COLORS


def colorize(text: str, color: str | None, enabled: bool = True) -> str:
    """Wrap ``text`` in the ANSI codes of ``color``.

    Unknown colors and ``enabled=False`` return the text unchanged.
    """
    if not enabled or not color:
        return text
    code = COLORS.get(color.lower())
    if code is None:
        return text
    return f"\033[{code}m{text}{RESET}"
