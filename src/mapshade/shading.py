"""Alpha computation and per-area color selection strategies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from .colors import parse_color
from .models import RGB, Area, Shade

MIN_THRESHOLD = 0.10

DEFAULT_NO_VALUE_COLOR = "c0c0c0"
DEFAULT_TOO_CLOSE_COLOR = "666666"


def compute_alpha(value: float, max_value: float, min_threshold: float = MIN_THRESHOLD) -> float:
    """Fraction of ``max_value`` reached by ``value``, clamped to [min_threshold, 1].

    With no positive maximum there is nothing to compare against, so the
    minimum visible threshold is returned.
    """
    if max_value > 0:
        pct = value / max_value
        if pct > 1:
            pct = 1.0
    else:
        pct = min_threshold
    return max(pct, min_threshold)


class ShadeStrategy(Protocol):
    def select(self, area: Area, *, series: int, max_value: float) -> Shade: ...


class GradientStrategy:
    """Single color, alpha proportional to the area's share of the maximum."""

    def __init__(self, color: RGB, min_threshold: float = MIN_THRESHOLD) -> None:
        self.color = color
        self.min_threshold = min_threshold

    def select(self, area: Area, *, series: int, max_value: float) -> Shade:
        value = area.series.get(series, 0)
        return Shade(self.color, compute_alpha(value, max_value, self.min_threshold))


@dataclass(frozen=True, slots=True)
class Party:
    name: str
    color: RGB

    @classmethod
    def create(cls, name: str, color: Any) -> Party:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Party name must be a non-empty string")
        return cls(name=name.strip(), color=parse_color(color))


class ElectionStrategy:
    """Winner-takes-color shading over competing series.

    Party ``n`` in ``parties`` owns series ``n + 1``. For each area the series
    are ranked by value:

    * no votes at all -> ``no_value_color``;
    * leader's margin over the runner-up <= ``too_close_threshold``, or the
      leader's total <= ``too_close_min_value`` -> ``too_close_color``;
    * otherwise the leading party's color.

    Alpha is full opacity unless ``shaded`` is set, in which case it is
    ``1 - second / (first + second)``.
    """

    def __init__(
        self,
        parties: Sequence[Party],
        *,
        no_value_color: Any = DEFAULT_NO_VALUE_COLOR,
        too_close_color: Any = DEFAULT_TOO_CLOSE_COLOR,
        too_close_threshold: float = 1,
        too_close_min_value: float = 1,
        shaded: bool = False,
        min_threshold: float = MIN_THRESHOLD,
    ) -> None:
        self.parties = tuple(parties)
        self.no_value_color = parse_color(no_value_color)
        self.too_close_color = parse_color(too_close_color)
        self.too_close_threshold = too_close_threshold
        self.too_close_min_value = too_close_min_value
        self.shaded = shaded
        self.min_threshold = min_threshold

    def party_for_series(self, series: int) -> Party | None:
        if 1 <= series <= len(self.parties):
            return self.parties[series - 1]
        return None

    def select(self, area: Area, *, series: int, max_value: float) -> Shade:
        ranked = sorted(area.series.items(), key=lambda item: item[1], reverse=True)
        count = len(ranked)
        first = ranked[0][1] if count else 0
        second = ranked[1][1] if count >= 2 else 0

        if not count or not first:
            color = self.no_value_color
        elif count >= 2 and (first - second) <= self.too_close_threshold:
            color = self.too_close_color
        elif first <= self.too_close_min_value:
            color = self.too_close_color
        else:
            party = self.party_for_series(ranked[0][0])
            color = party.color if party is not None else self.no_value_color

        total = first + second
        if total > 0:
            pct = 1 - second / total if self.shaded and count >= 2 else 1.0
        else:
            pct = self.min_threshold
        return Shade(color, max(pct, self.min_threshold))
