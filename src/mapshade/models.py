"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, NamedTuple

DEFAULT_SERIES = 1
DEFAULT_COUNTRY = "US"

# Column roles understood by the import adapters.
COUNTRY = 1
REGION = 2
VALUE = 3
SERIES = 4

COLUMN_ROLES: Mapping[str, int] = {
    "country": COUNTRY,
    "region": REGION,
    "value": VALUE,
    "series": SERIES,
}

RGB = tuple[int, int, int]


def role_name(role: int) -> str:
    for name, value in COLUMN_ROLES.items():
        if value == role:
            return name
    return str(role)


@dataclass(slots=True)
class Area:
    """One shadable region of a map, keyed by its palette marker id."""

    id: int
    country: str
    names: tuple[str, ...] = ()
    series: dict[int, float] = field(default_factory=lambda: {DEFAULT_SERIES: 0})

    @property
    def has_aliases(self) -> bool:
        return bool(self.names)

    def matches(self, country: str, region: str | None = None) -> bool:
        """Country is compared case-insensitively; aliases only when present."""
        if self.country.casefold() != country.strip().casefold():
            return False
        if not self.names:
            return True
        if region is None:
            return False
        return str(region).strip().lower() in self.names


class ImportRow(NamedTuple):
    """Uniform row produced by every import adapter."""

    country: str
    region: str | None
    value: float
    series: int = DEFAULT_SERIES


class GeoLocation(NamedTuple):
    country: str
    region: str | None = None


class Shade(NamedTuple):
    """Color and alpha fraction chosen for one area."""

    color: RGB
    pct: float
