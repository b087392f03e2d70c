"""Tests for palette marker recoloring, resizing and PNG emission."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from conftest import NOISE, area_pixel
from mapshade.colors import WHITE, blend_over_white
from mapshade.errors import BadColorValueError, ConfigError, ImageError
from mapshade.palette import PaletteImage, emit, resize_image


@pytest.fixture
def canvas(palette_image) -> PaletteImage:
    return PaletteImage(palette_image)


class TestPaletteImage:
    def test_rejects_non_palette_image(self):
        with pytest.raises(ImageError, match="mode P"):
            PaletteImage(Image.new("RGB", (10, 10)))

    def test_open_missing_file(self, tmp_path):
        with pytest.raises(ImageError, match="Failed to load"):
            PaletteImage.open(tmp_path / "missing.png")

    def test_open_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not a png")
        with pytest.raises(ImageError):
            PaletteImage.open(path)

    def test_open_saved_map(self, maps_dir):
        image = PaletteImage.open(maps_dir / "world.png")
        assert (image.width, image.height) == (200, 100)
        assert image.find_exact((2, 2, 2)) == 2

    def test_find_exact(self, canvas):
        assert canvas.find_exact((1, 1, 1)) == 1
        assert canvas.find_exact((9, 9, 9)) is None

    def test_find_markers(self, canvas):
        assert canvas.find_markers([1, 3, 7]) == {1: 1, 3: 3}

    def test_set_entry(self, canvas):
        canvas.set_entry(3, (10, 20, 30))
        assert canvas.palette()[3] == (10, 20, 30)

    def test_set_entry_out_of_range(self, canvas):
        with pytest.raises(ImageError):
            canvas.set_entry(999, (0, 0, 0))

    def test_copy_is_independent(self, canvas):
        clone = canvas.copy()
        clone.set_entry(1, (50, 50, 50))
        assert canvas.palette()[1] == (1, 1, 1)


class TestSanitize:
    def test_keeps_markers_up_to_area_count_and_white(self, canvas):
        wiped = canvas.sanitize(2)
        palette = canvas.palette()
        assert palette[0] == WHITE
        assert palette[1] == (1, 1, 1)
        assert palette[2] == (2, 2, 2)
        assert palette[3] == WHITE
        assert palette[4] == WHITE
        assert wiped == 2

    def test_noise_removed_with_all_areas(self, canvas):
        canvas.sanitize(3)
        assert NOISE not in canvas.palette()
        assert canvas.find_exact((3, 3, 3)) == 3

    def test_area_count_bounds(self, canvas):
        with pytest.raises(ImageError):
            canvas.sanitize(255)
        with pytest.raises(ImageError):
            canvas.sanitize(-1)


class TestShadeArea:
    def test_recolors_marker_entry(self, canvas):
        blended = canvas.shade_area(2, "155083", 0.6)
        assert blended == blend_over_white((0x15, 0x50, 0x83), 0.6)
        assert canvas.palette()[2] == blended
        rgb = canvas.image.convert("RGB")
        assert rgb.getpixel(area_pixel(2)) == blended
        assert rgb.getpixel(area_pixel(1)) == (1, 1, 1)

    def test_pct_below_threshold_is_raised(self, canvas):
        blended = canvas.shade_area(1, (0, 0, 0), 0.0, min_threshold=0.5)
        assert blended == blend_over_white((0, 0, 0), 0.5)

    def test_pct_above_one_rejected(self, canvas):
        with pytest.raises(BadColorValueError):
            canvas.shade_area(1, "155083", 1.01)

    def test_missing_marker(self, canvas):
        with pytest.raises(ImageError, match="no palette marker"):
            canvas.shade_area(9, "155083", 1.0)

    @pytest.mark.parametrize("area_id", [0, 255])
    def test_area_id_bounds(self, canvas, area_id):
        with pytest.raises(ImageError):
            canvas.shade_area(area_id, "155083", 1.0)

    def test_bad_color(self, canvas):
        with pytest.raises(BadColorValueError):
            canvas.shade_area(1, "blue", 1.0)


class TestResizeAndEmit:
    def test_resize_keeps_aspect_ratio(self, palette_image):
        resized = resize_image(palette_image, 101)
        assert resized.mode == "RGB"
        assert resized.size == (101, 50)

    def test_resize_clamps_to_source_width(self, palette_image):
        assert resize_image(palette_image, 5000).size == (200, 100)

    def test_resize_below_minimum(self, palette_image):
        with pytest.raises(ConfigError):
            resize_image(palette_image, 49)
        assert resize_image(palette_image, 20, min_width=10).size == (20, 10)

    def test_emit_returns_png_bytes(self, palette_image):
        payload = emit(resize_image(palette_image, 100))
        assert payload is not None and payload.startswith(b"\x89PNG")
        with Image.open(io.BytesIO(payload)) as decoded:
            assert decoded.size == (100, 50)
            assert decoded.mode == "RGB"

    def test_emit_to_path_creates_parents(self, palette_image, tmp_path):
        target = tmp_path / "out" / "nested" / "map.png"
        assert emit(resize_image(palette_image, 100), target, 9) is None
        assert target.exists()

    def test_emit_to_stream(self, palette_image):
        buffer = io.BytesIO()
        emit(resize_image(palette_image, 100), buffer, 0)
        assert buffer.getvalue().startswith(b"\x89PNG")

    @pytest.mark.parametrize("level", [-1, 10, 4.5, True])
    def test_emit_rejects_compression_level(self, palette_image, level):
        with pytest.raises(ConfigError):
            emit(resize_image(palette_image, 100), None, level)
