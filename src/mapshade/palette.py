"""Palette-indexed map images: marker lookup, recoloring, resizing and PNG output.

Every area of a source map is authored as a flat fill whose palette entry is
the grey triple ``(id, id, id)``. Rewriting that single palette entry recolors
every pixel of the area at once, so shading never touches pixel data.
"""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import Any, BinaryIO, Iterable

from PIL import Image, UnidentifiedImageError

from .colors import WHITE, blend_over_white, parse_color
from .errors import BadColorValueError, ConfigError, ImageError
from .models import RGB
from .shading import MIN_THRESHOLD

MIN_WIDTH = 50
MAX_AREA_ID = 254
DEFAULT_COMPRESSION_LEVEL = 4

_LOGGER = logging.getLogger("mapshade.palette")


class PaletteImage:
    """A mode ``P`` Pillow image plus the marker/recolor operations on it."""

    def __init__(self, image: Image.Image, *, source: Path | None = None) -> None:
        if image.mode != "P":
            label = str(source) if source is not None else "map image"
            raise ImageError(f"{label} must be palette-indexed (mode P), not {image.mode}.")
        self._image = image
        self.source = source

    @classmethod
    def open(cls, path: str | Path) -> PaletteImage:
        source = Path(path)
        if not source.exists():
            raise ImageError(f"Failed to load {source}: file not found.")
        try:
            with Image.open(source) as handle:
                handle.load()
                image = handle.copy()
        except (OSError, UnidentifiedImageError) as exc:
            raise ImageError(f"Failed to load {source}: {exc}") from exc
        return cls(image, source=source)

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    def copy(self) -> PaletteImage:
        return PaletteImage(self._image.copy(), source=self.source)

    def palette(self) -> list[RGB]:
        flat = self._image.getpalette() or []
        return [
            (flat[idx], flat[idx + 1], flat[idx + 2])
            for idx in range(0, len(flat) - len(flat) % 3, 3)
        ]

    def find_exact(self, rgb: RGB) -> int | None:
        """Index of the first palette entry equal to ``rgb``."""
        for index, entry in enumerate(self.palette()):
            if entry == tuple(rgb):
                return index
        return None

    def find_markers(self, area_ids: Iterable[int]) -> dict[int, int]:
        """Palette index of each ``(id, id, id)`` marker present in the image."""
        wanted = {(area_id, area_id, area_id): area_id for area_id in area_ids}
        found: dict[int, int] = {}
        for index, entry in enumerate(self.palette()):
            area_id = wanted.get(entry)
            if area_id is not None and area_id not in found:
                found[area_id] = index
        return found

    def set_entry(self, index: int, rgb: RGB) -> None:
        flat = self._image.getpalette() or []
        if index < 0 or index * 3 + 2 >= len(flat):
            raise ImageError(f"Palette index {index} out of range.")
        flat[index * 3 : index * 3 + 3] = [int(rgb[0]), int(rgb[1]), int(rgb[2])]
        self._image.putpalette(flat)

    def sanitize(self, area_count: int) -> int:
        """White out every palette entry that is neither an area marker nor white.

        Returns the number of entries rewritten.
        """
        if area_count < 0 or area_count > MAX_AREA_ID:
            raise ImageError(
                f"Number of areas must be between 0 and {MAX_AREA_ID}, got {area_count}."
            )
        flat = self._image.getpalette() or []
        wiped = 0
        for idx in range(0, len(flat) - len(flat) % 3, 3):
            r, g, b = flat[idx], flat[idx + 1], flat[idx + 2]
            is_marker = r == g == b and r <= area_count
            if not is_marker and (r, g, b) != WHITE:
                flat[idx : idx + 3] = list(WHITE)
                wiped += 1
        if wiped:
            self._image.putpalette(flat)
        _LOGGER.debug("Sanitized palette: %d noise entries wiped", wiped)
        return wiped

    def shade_area(
        self,
        area_id: int,
        color: Any,
        pct: float = 1.0,
        *,
        min_threshold: float = MIN_THRESHOLD,
        index: int | None = None,
    ) -> RGB:
        """Recolor the marker entry of ``area_id`` with ``color`` blended at ``pct``.

        ``index`` is the marker's palette index when already known from
        ``find_markers``; otherwise the first exact match is used.
        """
        if area_id < 1 or area_id > MAX_AREA_ID:
            raise ImageError(f"Area id must be between 1 and {MAX_AREA_ID}, got {area_id}.")
        if pct > 1:
            raise BadColorValueError(f"Alpha percentage should be 0 - 1, not {pct}.")
        if index is None:
            index = self.find_exact((area_id, area_id, area_id))
        if index is None:
            raise ImageError(
                f"Area {area_id} has no palette marker ({area_id},{area_id},{area_id}) "
                f"in {self.source or 'map image'}."
            )
        if pct < min_threshold:
            pct = min_threshold
        blended = blend_over_white(parse_color(color), pct)
        self.set_entry(index, blended)
        return blended

    def resize(self, width: int, *, min_width: int = MIN_WIDTH) -> Image.Image:
        return resize_image(self._image, width, min_width=min_width)


def resize_image(image: Image.Image, width: int, *, min_width: int = MIN_WIDTH) -> Image.Image:
    """Scale to ``width`` keeping the aspect ratio; output is flat RGB.

    Widths above the source width are clamped to it.
    """
    source_width, source_height = image.size
    if width > source_width:
        width = source_width
    elif width < min_width:
        raise ConfigError(f"Image width should be at least {min_width} pixels wide.")
    height = max(int(math.floor(width * (source_height / source_width))), 1)
    flat = image.convert("RGB")
    if (width, height) == flat.size:
        return flat
    return flat.resize((width, height), resample=Image.Resampling.LANCZOS)


def check_compression_level(level: Any) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 9:
        raise ConfigError(f"Compression level must be an integer 0-9, got {level!r}.")
    return level


def emit(
    image: Image.Image,
    sink: str | Path | BinaryIO | None = None,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> bytes | None:
    """Write ``image`` as PNG to ``sink``; with no sink, return the PNG bytes."""
    check_compression_level(compression_level)

    if sink is None:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", compress_level=compression_level)
        return buffer.getvalue()

    try:
        if isinstance(sink, (str, Path)):
            target = Path(sink)
            target.parent.mkdir(parents=True, exist_ok=True)
            image.save(target, format="PNG", compress_level=compression_level)
        else:
            image.save(sink, format="PNG", compress_level=compression_level)
    except OSError as exc:
        raise ImageError(f"Failed to create {sink}: {exc}") from exc
    return None
