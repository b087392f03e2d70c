"""Area lookup by country code and optional region alias."""

from __future__ import annotations

from typing import Mapping

from .models import Area


class NameResolver:
    """Scans a catalog in insertion order; the first matching area wins."""

    def __init__(self, areas: Mapping[int, Area]) -> None:
        self._areas = areas

    def lookup(self, country: str, region: str | None = None) -> int | None:
        """Return the matching area id, or ``None`` when nothing matches.

        An area without aliases matches on country alone and ignores ``region``.
        """
        if not isinstance(country, str) or not country.strip():
            return None
        for area_id, area in self._areas.items():
            if area.matches(country, region):
                return area_id
        return None
