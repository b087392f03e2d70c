"""Color parsing, hex conversion and white-canvas blending."""

from __future__ import annotations

import re
from typing import Any, Sequence

from .errors import BadColorValueError
from .models import RGB

_HEX_RE = re.compile(r"[0-9a-f]{6}", re.IGNORECASE)

WHITE: RGB = (255, 255, 255)


def _clamp_channel(value: int) -> int:
    return 0 if value < 0 else 255 if value > 255 else value


def hex_to_rgb(value: str) -> RGB:
    """Convert a 6-digit hex string such as ``'155083'`` into an RGB triple."""
    if not isinstance(value, str) or not _HEX_RE.fullmatch(value):
        raise BadColorValueError(
            f"Invalid hex color {value!r}: expected 6 hexadecimal characters."
        )
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "".join(f"{_clamp_channel(int(c)):02x}" for c in (r, g, b))


def parse_color(value: Any) -> RGB:
    """Normalize a hex string or 3-element numeric sequence to an RGB triple."""
    if isinstance(value, str):
        return hex_to_rgb(value)
    if not isinstance(value, Sequence) or len(value) != 3:
        raise BadColorValueError(
            "Invalid color: accepts a 3-member RGB sequence or a 6-digit hex string."
        )
    channels: list[int] = []
    for idx, channel in enumerate(value):
        if isinstance(channel, bool) or not isinstance(channel, (int, float)):
            raise BadColorValueError(f"Color channel {idx} is not numeric: {channel!r}")
        if channel < 0 or channel > 255:
            raise BadColorValueError(f"Color channel {idx} out of range 0-255: {channel}")
        channels.append(int(channel))
    return (channels[0], channels[1], channels[2])


def blend_over_white(color: RGB, pct: float) -> RGB:
    """Composite ``color`` over white at ``pct`` opacity (0 = white, 1 = color)."""
    if pct > 1:
        pct = 1.0
    return (
        int((1 - pct) * 255 + pct * color[0]),
        int((1 - pct) * 255 + pct * color[1]),
        int((1 - pct) * 255 + pct * color[2]),
    )
