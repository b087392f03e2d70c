"""Programmatic surface: load a map, feed it values, draw the shaded PNG."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from types import MappingProxyType
from typing import Any, BinaryIO, Mapping

from PIL import Image

from .catalog import MapFiles, load_catalog
from .colors import parse_color
from .errors import ConfigError, ImageError, MapperError
from .importers import Importer
from .models import DEFAULT_COUNTRY, DEFAULT_SERIES, RGB, Area
from .palette import (
    DEFAULT_COMPRESSION_LEVEL,
    MIN_WIDTH,
    PaletteImage,
    check_compression_level,
    emit,
)
from .resolver import NameResolver
from .series import SeriesStore
from .shading import (
    DEFAULT_NO_VALUE_COLOR,
    DEFAULT_TOO_CLOSE_COLOR,
    MIN_THRESHOLD,
    ElectionStrategy,
    GradientStrategy,
    Party,
    ShadeStrategy,
    compute_alpha,
)

DEFAULT_COLOR = "155083"
DEFAULT_WIDTH = 1000

_REGION_PARAM_RE = re.compile(r"^[A-Z]{2}$")

_LOGGER = logging.getLogger("mapshade.mapper")


class ShadedMap:
    """A map whose areas are shaded by their share of the maximum value.

    Setters return the map so calls can be chained::

        ShadedMap("us", "maps").set_color("155083").add("US", "MN", 5).draw("out.png")
    """

    def __init__(
        self,
        map_name: str = "world",
        base_dir: str | Path | None = None,
        *,
        min_width: int = MIN_WIDTH,
        min_threshold: float = MIN_THRESHOLD,
        default_country: str = DEFAULT_COUNTRY,
    ) -> None:
        if min_width < 1:
            raise ConfigError("min_width must be >= 1")
        if not 0 <= min_threshold <= 1:
            raise ConfigError("min_threshold must be between 0 and 1")
        self.min_width = min_width
        self.min_threshold = min_threshold
        self.default_country = default_country
        self._color: RGB = parse_color(DEFAULT_COLOR)
        self._width = DEFAULT_WIDTH
        self._target_value: float | None = None
        self.set_map(map_name, base_dir)

    # -- map loading -------------------------------------------------------

    def set_map(self, map_name: str, base_dir: str | Path | None = None) -> ShadedMap:
        """Load (or switch to) another image + definition pair.

        The previous catalog and all values stored against it are discarded.
        """
        files = MapFiles.resolve(map_name, base_dir)
        image = PaletteImage.open(files.image_path)
        areas = load_catalog(files.definition_path)

        self._files = files
        self._image = image
        self._areas = areas
        self._store = SeriesStore(areas)
        self._store.target_value = self._target_value
        self._resolver = NameResolver(areas)
        _LOGGER.info(
            "Loaded map '%s' (%d areas, %dx%d) from %s",
            files.name,
            len(areas),
            image.width,
            image.height,
            files.base_dir,
        )
        return self

    @property
    def files(self) -> MapFiles:
        return self._files

    @property
    def base(self) -> Path:
        return self._files.base

    @property
    def image(self) -> PaletteImage:
        return self._image

    @property
    def areas(self) -> Mapping[int, Area]:
        return MappingProxyType(self._areas)

    # -- settings ----------------------------------------------------------

    @property
    def color(self) -> RGB:
        return self._color

    def set_color(self, color: Any) -> ShadedMap:
        """Color of the highest-valued area; accepts hex or a 3-member RGB sequence."""
        self._color = parse_color(color)
        return self

    @property
    def width(self) -> int:
        return self._width

    def set_width(self, width: int) -> ShadedMap:
        if isinstance(width, bool) or not isinstance(width, int):
            raise ConfigError(f"Width must be an integer number of pixels, got {width!r}.")
        if width < self.min_width:
            raise ConfigError(f"Minimum width must be at least {self.min_width} pixels.")
        self._width = width
        return self

    @property
    def target_value(self) -> float | None:
        return self._target_value

    def set_target_value(self, value: float | None) -> ShadedMap:
        """Use ``value`` instead of the observed maximum as the shading denominator."""
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ConfigError(f"Target value must be numeric, got {value!r}.")
        self._target_value = value
        self._store.target_value = value
        return self

    # -- values ------------------------------------------------------------

    def lookup(self, country: str, region: str | None = None) -> int | None:
        return self._resolver.lookup(country, region)

    def add(
        self,
        country: str,
        region: str | None = None,
        value: float = 1,
        series: int = DEFAULT_SERIES,
    ) -> bool:
        """Accumulate ``value``; returns False when no area matches."""
        area_id = self.lookup(country, region)
        if area_id is None:
            _LOGGER.debug("No area for %s/%s; dropped value %s", country, region, value)
            return False
        return self._store.add(area_id, series, value)

    def set(
        self,
        country: str,
        region: str | None = None,
        value: float = 1,
        series: int = DEFAULT_SERIES,
    ) -> bool:
        """Overwrite the value; returns False when no area matches."""
        area_id = self.lookup(country, region)
        if area_id is None:
            _LOGGER.debug("No area for %s/%s; dropped value %s", country, region, value)
            return False
        return self._store.set(area_id, series, value)

    def get(self, area_id: int, series: int = DEFAULT_SERIES) -> float:
        return self._store.get(area_id, series)

    def max_value(self, series: int = DEFAULT_SERIES) -> float:
        return self._store.max_value(series)

    def area_alpha(self, area_id: int, max_value: float, series: int = DEFAULT_SERIES) -> float:
        return compute_alpha(self.get(area_id, series), max_value, self.min_threshold)

    def import_from(self, importer: Importer) -> int:
        """Drain ``importer`` with ``add``; returns the number of rows read.

        A row error aborts the import and propagates. The importer is closed
        either way.
        """
        t0 = time.perf_counter()
        rows = 0
        matched = 0
        try:
            for row in importer:
                rows += 1
                if self.add(row.country, row.region, row.value, row.series):
                    matched += 1
        finally:
            importer.close()
        _LOGGER.info(
            "Imported %d rows via %s (%d matched, %d dropped) in %.2fs",
            rows,
            type(importer).__name__,
            matched,
            rows - matched,
            time.perf_counter() - t0,
        )
        return rows

    # -- drawing -----------------------------------------------------------

    def strategy(self) -> ShadeStrategy:
        return GradientStrategy(self._color, self.min_threshold)

    def render(
        self,
        series: int = DEFAULT_SERIES,
        strategy: ShadeStrategy | None = None,
    ) -> Image.Image:
        """Shade a copy of the source image and return it resized as flat RGB."""
        chooser = strategy if strategy is not None else self.strategy()
        canvas = self._image.copy()
        canvas.sanitize(max(self._areas, default=0))
        markers = canvas.find_markers(self._areas)
        missing = [area_id for area_id in self._areas if area_id not in markers]
        if missing:
            raise ImageError(
                f"Areas {', '.join(str(i) for i in missing)} have no palette marker "
                f"in {self._files.image_path}."
            )
        max_value = self.max_value(series)
        for area in self._areas.values():
            shade = chooser.select(area, series=series, max_value=max_value)
            canvas.shade_area(
                area.id,
                shade.color,
                shade.pct,
                min_threshold=self.min_threshold,
                index=markers.get(area.id),
            )
        return canvas.resize(self._width, min_width=self.min_width)

    def draw(
        self,
        sink: str | Path | BinaryIO | None = None,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
        series: int = DEFAULT_SERIES,
        strategy: ShadeStrategy | None = None,
    ) -> bytes | None:
        """Render and write the PNG to ``sink``; with no sink, return the bytes."""
        check_compression_level(compression_level)
        t0 = time.perf_counter()
        image = self.render(series=series, strategy=strategy)
        payload = emit(image, sink, compression_level)
        _LOGGER.info(
            "Drew map '%s' series %d at %dx%d in %.2fs",
            self._files.name,
            series,
            image.width,
            image.height,
            time.perf_counter() - t0,
        )
        return payload


class ElectionMap(ShadedMap):
    """Winner-takes-color map: each party is one series of the same areas."""

    def __init__(
        self,
        map_name: str = "us",
        base_dir: str | Path | None = None,
        *,
        no_value_color: Any = DEFAULT_NO_VALUE_COLOR,
        too_close_color: Any = DEFAULT_TOO_CLOSE_COLOR,
        too_close_threshold: float = 1,
        too_close_min_value: float = 1,
        shaded: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(map_name, base_dir, **kwargs)
        self._parties: list[Party] = []
        self.set_color(no_value_color)
        self.too_close_color = parse_color(too_close_color)
        self.too_close_threshold = too_close_threshold
        self.too_close_min_value = too_close_min_value
        self.shaded = shaded

    @property
    def parties(self) -> tuple[Party, ...]:
        return tuple(self._parties)

    def add_party(self, name: str, color: Any) -> ElectionMap:
        party = Party.create(name, color)
        if any(existing.name.casefold() == party.name.casefold() for existing in self._parties):
            raise MapperError(f"Party {party.name} already exists.")
        self._parties.append(party)
        return self

    def set_parties(self, parties: Mapping[str, Any]) -> ElectionMap:
        for name, color in parties.items():
            self.add_party(name, color)
        return self

    def party_series(self, party: str | int) -> int:
        """Series id of ``party``, given by name (case-insensitive) or number."""
        if isinstance(party, int) and not isinstance(party, bool):
            if 1 <= party <= len(self._parties):
                return party
        elif isinstance(party, str):
            wanted = party.strip().casefold()
            for idx, existing in enumerate(self._parties, start=1):
                if existing.name.casefold() == wanted:
                    return idx
        raise MapperError(f"Party {party} does not exist. Call add_party() first.")

    def add_votes(
        self,
        party: str | int,
        region: str | None,
        value: float = 1,
        country: str | None = None,
    ) -> bool:
        series = self.party_series(party)
        return self.add(country or self.default_country, region, value, series)

    def set_votes(
        self,
        party: str | int,
        region: str | None,
        value: float,
        country: str | None = None,
    ) -> bool:
        series = self.party_series(party)
        return self.set(country or self.default_country, region, value, series)

    def strategy(self) -> ShadeStrategy:
        return ElectionStrategy(
            self._parties,
            no_value_color=self.color,
            too_close_color=self.too_close_color,
            too_close_threshold=self.too_close_threshold,
            too_close_min_value=self.too_close_min_value,
            shaded=self.shaded,
            min_threshold=self.min_threshold,
        )


def apply_region_params(
    shaded_map: ShadedMap,
    params: Mapping[str, Any],
    country: str = DEFAULT_COUNTRY,
) -> int:
    """Apply request-style ``{"MN": "15", ...}`` values with ``set``.

    Only keys made of two upper-case letters are used; values that are not
    integers count as 0. Returns the number of keys that matched an area.
    """
    applied = 0
    for key, raw in params.items():
        if not _REGION_PARAM_RE.match(key):
            continue
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = 0
        if shaded_map.set(country, key, value):
            applied += 1
    return applied
