"""Per-area, per-series value accumulation."""

from __future__ import annotations

import logging
from typing import Mapping

from .models import DEFAULT_SERIES, Area

_LOGGER = logging.getLogger("mapshade.series")


class SeriesStore:
    """Value tracks attached to the areas of one catalog.

    Updates addressed to an area id that is not in the catalog are ignored and
    reported by a ``False`` return value; applied updates return ``True``.
    Access is not synchronized: ``add`` is a read-then-write.
    """

    def __init__(self, areas: Mapping[int, Area]) -> None:
        self._areas = areas
        self._target_value: float | None = None

    @property
    def target_value(self) -> float | None:
        return self._target_value

    @target_value.setter
    def target_value(self, value: float | None) -> None:
        self._target_value = value

    def add(self, area_id: int, series: int = DEFAULT_SERIES, delta: float = 1) -> bool:
        area = self._areas.get(area_id)
        if area is None:
            _LOGGER.debug("add ignored for unknown area id %s", area_id)
            return False
        if series not in area.series:
            area.series[series] = delta
        else:
            area.series[series] += delta
        return True

    def set(self, area_id: int, series: int = DEFAULT_SERIES, value: float = 1) -> bool:
        area = self._areas.get(area_id)
        if area is None:
            _LOGGER.debug("set ignored for unknown area id %s", area_id)
            return False
        area.series[series] = value
        return True

    def get(self, area_id: int, series: int = DEFAULT_SERIES) -> float:
        area = self._areas.get(area_id)
        if area is None:
            return 0
        return area.series.get(series, 0)

    def max_value(self, series: int = DEFAULT_SERIES) -> float:
        """The target value when one is set, otherwise the largest stored value."""
        if self._target_value is not None:
            return self._target_value
        best: float = 0
        for area in self._areas.values():
            value = area.series.get(series)
            if value is not None and value > best:
                best = value
        return best
