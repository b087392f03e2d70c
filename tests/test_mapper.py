"""End-to-end tests for ShadedMap / ElectionMap on authored palette maps."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from conftest import area_pixel
from mapshade.colors import WHITE, blend_over_white
from mapshade.errors import (
    BadColorValueError,
    ConfigError,
    DataImportError,
    ImageError,
    MapDataError,
    MapperError,
)
from mapshade.importers import ArrayImporter, DelimitedImporter
from mapshade.mapper import ElectionMap, ShadedMap, apply_region_params

BLUE = (0x15, 0x50, 0x83)


def _decode(payload: bytes) -> Image.Image:
    with Image.open(io.BytesIO(payload)) as decoded:
        return decoded.convert("RGB")


@pytest.fixture
def world(maps_dir) -> ShadedMap:
    return ShadedMap("world", maps_dir)


@pytest.fixture
def us(maps_dir) -> ShadedMap:
    return ShadedMap("us", maps_dir)


class TestLoading:
    def test_loads_catalog_and_image(self, world, maps_dir):
        assert sorted(world.areas) == [1, 2, 3]
        assert world.image.width == 200
        assert world.base == maps_dir / "world."

    def test_missing_map(self, maps_dir):
        with pytest.raises(ImageError):
            ShadedMap("atlantis", maps_dir)

    def test_missing_definition(self, maps_dir):
        (maps_dir / "world.csv").unlink()
        with pytest.raises(MapDataError):
            ShadedMap("world", maps_dir)

    def test_set_map_replaces_catalog(self, world, maps_dir):
        world.add("US", None, 5)
        world.set_map("us", maps_dir)
        assert world.lookup("US", "mn") == 1
        assert world.get(1) == 0

    def test_areas_are_read_only(self, world):
        with pytest.raises(TypeError):
            world.areas[9] = None  # type: ignore[index]


class TestSettings:
    def test_defaults(self, world):
        assert world.color == BLUE
        assert world.width == 1000
        assert world.target_value is None

    def test_setters_chain(self, world):
        assert world.set_color([1, 2, 3]).set_width(120).set_target_value(10) is world
        assert (world.color, world.width, world.target_value) == ((1, 2, 3), 120, 10)

    def test_bad_color_keeps_previous(self, world):
        with pytest.raises(BadColorValueError):
            world.set_color("xyz")
        assert world.color == BLUE

    def test_width_below_minimum(self, world):
        with pytest.raises(ConfigError):
            world.set_width(49)
        assert world.width == 1000

    def test_custom_minimum_width(self, maps_dir):
        shaded = ShadedMap("world", maps_dir, min_width=10)
        assert shaded.set_width(10).width == 10

    def test_non_numeric_target(self, world):
        with pytest.raises(ConfigError):
            world.set_target_value("ten")  # type: ignore[arg-type]


class TestValues:
    def test_scenario_max_and_alpha(self, world):
        assert world.add("US", None, 5)
        assert world.add("CA", None, 3)
        assert world.max_value() == 5
        assert world.area_alpha(1, 5) == 1.0
        assert world.area_alpha(2, 5) == pytest.approx(0.6)

    def test_region_ignored_for_unaliased_area(self, world):
        world.add("US", "anything", 2)
        assert world.get(1) == 2

    def test_unmatched_values_are_dropped(self, us):
        assert us.add("US", "tx", 5) is False
        assert us.set("FR", None, 5) is False
        assert us.max_value() == 0

    def test_add_and_set(self, us):
        us.add("US", "MN", 5)
        us.add("US", "minnesota", 5)
        assert us.get(1) == 10
        us.set("US", "MN", 1)
        assert us.get(1) == 1

    def test_target_value(self, world):
        world.add("US", None, 50)
        world.set_target_value(10)
        assert world.max_value() == 10
        world.set_target_value(None)
        assert world.max_value() == 50

    def test_series_are_independent(self, world):
        world.add("US", None, 4, series=2)
        assert world.get(1, 2) == 4
        assert world.get(1, 1) == 0
        assert world.max_value(2) == 4

    def test_import_from(self, us):
        rows = us.import_from(
            ArrayImporter([("US", "MN", 15), ("US", "WI", 3), ("US", "TX", 9), ("US", "MN", 1)])
        )
        assert rows == 4
        assert us.get(1) == 16
        assert us.get(2) == 3

    def test_import_error_propagates(self, us):
        with pytest.raises(DataImportError):
            us.import_from(ArrayImporter([("US", "MN", 1), ("Longname", "WI", 1)]))

    def test_failed_import_closes_the_source(self, us, tmp_path):
        path = tmp_path / "values.tsv"
        path.write_text("US\tmn\t2\nUSA\twi\t3\nUS\tia\t4\n", encoding="utf-8")
        importer = DelimitedImporter(path, delimiter="\t")
        importer.map("country", 0).map("region", 1).map("value", 2)
        with pytest.raises(DataImportError):
            us.import_from(importer)
        assert us.get(1) == 2
        assert importer.next_row() is None

    def test_non_finite_value_stops_import(self, world):
        with pytest.raises(DataImportError, match="finite"):
            world.import_from(ArrayImporter([("US", None, "inf")]))
        assert world.max_value() == 0
        assert _decode(world.draw()).getpixel(area_pixel(1)) == blend_over_white(BLUE, 0.1)


class TestDraw:
    def test_draw_returns_png_bytes(self, world):
        world.add("US", None, 5)
        world.add("CA", None, 3)
        image = _decode(world.draw())
        assert image.size == (200, 100)
        assert image.getpixel(area_pixel(1)) == BLUE
        assert image.getpixel(area_pixel(2)) == blend_over_white(BLUE, 0.6)
        assert image.getpixel(area_pixel(3)) == blend_over_white(BLUE, 0.1)

    def test_background_and_noise_are_white(self, world):
        image = _decode(world.draw())
        assert image.getpixel((190, 5)) == WHITE
        assert image.getpixel((190, 50)) == WHITE

    def test_draw_is_repeatable(self, world):
        world.add("US", None, 5)
        first = world.draw()
        world.set_color("ff0000")
        second = _decode(world.draw())
        assert first != world.draw()
        assert second.getpixel(area_pixel(1)) == (255, 0, 0)
        assert world.image.palette()[1] == (1, 1, 1)

    def test_draw_to_path_resized(self, world, tmp_path):
        target = tmp_path / "out" / "world.png"
        assert world.set_width(100).draw(target, 9) is None
        with Image.open(target) as written:
            assert written.size == (100, 50)
            assert written.mode == "RGB"

    def test_draw_series(self, world):
        world.add("CA", None, 8, series=2)
        image = _decode(world.draw(series=2))
        assert image.getpixel(area_pixel(2)) == BLUE
        assert image.getpixel(area_pixel(1)) == blend_over_white(BLUE, 0.1)

    def test_bad_compression_level(self, world):
        with pytest.raises(ConfigError):
            world.draw(None, 11)

    def test_recolored_entry_does_not_shadow_later_marker(self, world):
        world.set_color((2, 2, 2)).add("US", None, 5)
        image = _decode(world.draw())
        assert image.getpixel(area_pixel(1)) == (2, 2, 2)
        assert image.getpixel(area_pixel(2)) == blend_over_white((2, 2, 2), 0.1)

    def test_missing_marker_is_fatal(self, maps_dir):
        (maps_dir / "world.csv").write_text("1\tUS\n2\tCA\n3\tMX\n4\tBR\n", encoding="utf-8")
        with pytest.raises(ImageError, match="no palette marker"):
            ShadedMap("world", maps_dir).draw()


class TestElectionMap:
    @pytest.fixture
    def election(self, maps_dir) -> ElectionMap:
        return (
            ElectionMap("us", maps_dir)
            .add_party("Blue", "0000ff")
            .add_party("Red", (255, 0, 0))
        )

    def test_parties_become_series(self, election):
        assert election.party_series("blue") == 1
        assert election.party_series("Red") == 2
        assert election.party_series(2) == 2

    def test_unknown_party(self, election):
        with pytest.raises(MapperError, match="does not exist"):
            election.add_votes("Green", "MN", 3)
        with pytest.raises(MapperError):
            election.party_series(3)

    def test_duplicate_party(self, election):
        with pytest.raises(MapperError):
            election.add_party("BLUE", "000000")

    def test_winner_colors(self, election):
        election.add_votes("Blue", "MN", 10)
        election.add_votes("Red", "MN", 4)
        election.set_votes("Red", "WI", 9)
        election.add_votes("Blue", "IA", 5)
        election.add_votes("Red", "IA", 5)
        image = _decode(election.draw())
        assert image.getpixel(area_pixel(1)) == (0, 0, 255)
        assert image.getpixel(area_pixel(2)) == (255, 0, 0)
        assert image.getpixel(area_pixel(3)) == (0x66, 0x66, 0x66)

    def test_no_votes_is_faint_neutral(self, election):
        image = _decode(election.draw())
        assert image.getpixel(area_pixel(1)) == blend_over_white((0xC0, 0xC0, 0xC0), 0.1)


class TestRegionParams:
    def test_only_two_letter_upper_keys(self, us):
        applied = apply_region_params(us, {"MN": "15", "wi": "3", "IA": "x", "page": "2"})
        assert applied == 2
        assert us.get(1) == 15
        assert us.get(2) == 0
        assert us.get(3) == 0

    def test_values_overwrite(self, us):
        us.add("US", "MN", 40)
        apply_region_params(us, {"MN": 2})
        assert us.get(1) == 2
