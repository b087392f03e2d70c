"""Map definition loading: area id -> country code -> region aliases."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .errors import MapDataError
from .models import Area

DEFAULT_MAPS_DIR = Path("maps")

_LOGGER = logging.getLogger("mapshade.catalog")


@dataclass(frozen=True, slots=True)
class MapFiles:
    """The image + definition file pair that makes up one map."""

    name: str
    base_dir: Path

    @classmethod
    def resolve(cls, name: str, base_dir: str | Path | None = None) -> MapFiles:
        if not isinstance(name, str) or not name.strip():
            raise MapDataError("Map name must be a non-empty string.")
        directory = Path(base_dir) if base_dir is not None else DEFAULT_MAPS_DIR
        return cls(name=name.strip(), base_dir=directory)

    @property
    def base(self) -> Path:
        """Path prefix shared by both files, e.g. ``maps/us.``."""
        return self.base_dir / f"{self.name}."

    @property
    def image_path(self) -> Path:
        return self.base_dir / f"{self.name}.png"

    @property
    def definition_path(self) -> Path:
        return self.base_dir / f"{self.name}.csv"


def iter_definition_rows(lines: Iterable[str]) -> Iterator[tuple[int, Area]]:
    """Yield ``(line_number, area)`` for each tab-separated definition line.

    Each line is ``id<TAB>country[<TAB>alias]*``. Blank lines are skipped.
    """
    reader = csv.reader(lines, delimiter="\t", quoting=csv.QUOTE_NONE)
    for line_number, fields in enumerate(reader, start=1):
        if not fields or (len(fields) == 1 and not fields[0].strip()):
            continue
        if len(fields) < 2:
            raise MapDataError(
                f"Line number {line_number} of map data file does not contain enough "
                "columns. Expecting at least 2 (id, country)."
            )
        raw_id = fields[0].strip()
        try:
            area_id = int(raw_id)
        except ValueError:
            raise MapDataError(
                f"Line number {line_number} of map data file has a non-numeric area id: '{raw_id}'"
            ) from None
        if area_id < 1:
            raise MapDataError(
                f"Line number {line_number} of map data file has a non-positive area id: {area_id}"
            )
        country = fields[1].strip().upper()
        if not country:
            raise MapDataError(f"Line number {line_number} of map data file has an empty country code.")

        names: list[str] = []
        for alias in fields[2:]:
            normalized = alias.strip().lower()
            if normalized and normalized not in names:
                names.append(normalized)
        yield line_number, Area(id=area_id, country=country, names=tuple(names))


def load_catalog(path: str | Path) -> dict[int, Area]:
    """Load every area of a map definition file, zeroing series 1 for each."""
    source = Path(path)
    if not source.exists():
        raise MapDataError(f"Map data file {source} could not be opened for reading.")
    try:
        with source.open("r", encoding="utf-8", newline="") as fh:
            areas: dict[int, Area] = {}
            for line_number, area in iter_definition_rows(fh):
                if area.id in areas:
                    _LOGGER.warning(
                        "Duplicate area id %d on line %d of %s; later entry wins "
                        "and takes this line's lookup position.",
                        area.id,
                        line_number,
                        source,
                    )
                    del areas[area.id]
                areas[area.id] = area
    except OSError as exc:
        raise MapDataError(f"Map data file {source} could not be read: {exc}") from exc
    _LOGGER.debug("Loaded %d areas from %s", len(areas), source)
    return areas
