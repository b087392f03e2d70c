"""Shared fixtures: small palette-indexed map pairs authored with Pillow."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

NOISE = (200, 10, 10)

# Pixel columns (x ranges) filled with each area marker; y spans the full height.
AREA_COLUMNS = {1: (0, 60), 2: (60, 120), 3: (120, 180)}
NOISE_BOX = (180, 0, 200, 10)
SIZE = (200, 100)

WORLD_DEFINITION = "1\tUS\n2\tCA\n3\tMX\n"
US_DEFINITION = "1\tUS\tmn\tminnesota\n2\tUS\twi\twisconsin\n3\tUS\tia\tiowa\n"


def build_palette_image() -> Image.Image:
    """Index 0 white, 1..3 the area markers, 4 an anti-aliasing artefact."""
    image = Image.new("P", SIZE, 0)
    flat = [255, 255, 255, 1, 1, 1, 2, 2, 2, 3, 3, 3, *NOISE]
    flat += [0, 0, 0] * (256 - len(flat) // 3)
    image.putpalette(flat)
    for area_id, (left, right) in AREA_COLUMNS.items():
        image.paste(area_id, (left, 0, right, SIZE[1]))
    image.paste(4, NOISE_BOX)
    return image


def write_map(base_dir: Path, name: str, definition: str) -> Path:
    base_dir.mkdir(parents=True, exist_ok=True)
    build_palette_image().save(base_dir / f"{name}.png")
    (base_dir / f"{name}.csv").write_text(definition, encoding="utf-8")
    return base_dir


def area_pixel(area_id: int) -> tuple[int, int]:
    left, right = AREA_COLUMNS[area_id]
    return ((left + right) // 2, SIZE[1] // 2)


@pytest.fixture
def maps_dir(tmp_path: Path) -> Path:
    base = tmp_path / "maps"
    write_map(base, "world", WORLD_DEFINITION)
    write_map(base, "us", US_DEFINITION)
    return base


@pytest.fixture
def palette_image() -> Image.Image:
    return build_palette_image()


@pytest.fixture
def write_config(tmp_path: Path, maps_dir: Path):
    """Write a config.yaml next to the maps directory and return its path."""

    def _write(body: str) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(body, encoding="utf-8")
        return path

    return _write
