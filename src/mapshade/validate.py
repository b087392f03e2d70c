"""Validation layer for config and map image + definition pairs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .catalog import MapFiles, iter_definition_rows
from .colors import WHITE, rgb_to_hex
from .config import AppConfig
from .errors import MapperError
from .models import Area
from .palette import MAX_AREA_ID, PaletteImage


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class MapValidator:
    """Checks that a map's definition file and palette image agree."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, map_name: str | None = None) -> ValidationReport:
        report = ValidationReport()
        files = MapFiles.resolve(map_name or self.cfg.map.name, self.cfg.map.maps_dir)
        self._validate_paths(report, files)
        if not report.ok:
            return report

        areas = self._validate_definition(report, files.definition_path)
        image = self._load_image(report, files.image_path)
        if image is None or areas is None:
            return report
        self._validate_markers(report, image, areas)
        self._validate_import_paths(report)
        return report

    def _validate_paths(self, report: ValidationReport, files: MapFiles) -> None:
        if not files.base_dir.is_dir():
            report.add_error(f"Maps directory not found: {files.base_dir}")
            return
        for path in (files.image_path, files.definition_path):
            if not path.exists():
                report.add_error(f"Missing map file: {path}")

    def _validate_definition(self, report: ValidationReport, path: Path) -> list[Area] | None:
        areas: list[Area] = []
        seen: dict[int, int] = {}
        try:
            with path.open("r", encoding="utf-8", newline="") as fh:
                for line_number, area in iter_definition_rows(fh):
                    if area.id > MAX_AREA_ID:
                        report.add_error(
                            f"{path.name} line {line_number}: area id {area.id} is above "
                            f"{MAX_AREA_ID} and cannot be a palette marker."
                        )
                    if area.id in seen:
                        report.add_error(
                            f"{path.name} line {line_number}: duplicate area id {area.id} "
                            f"(first defined on line {seen[area.id]})."
                        )
                    else:
                        seen[area.id] = line_number
                    areas.append(area)
        except (MapperError, OSError) as exc:
            report.add_error(f"Failed parsing map definition '{path}': {exc}")
            return None

        if not areas:
            report.add_error(f"Map definition '{path}' contains no areas.")
            return None
        aliased = sum(1 for area in areas if area.has_aliases)
        countries = len({area.country for area in areas})
        report.add_info(
            f"Definition {path.name}: {len(areas)} areas across {countries} countries "
            f"({aliased} with region aliases)."
        )
        return areas

    def _load_image(self, report: ValidationReport, path: Path) -> PaletteImage | None:
        try:
            image = PaletteImage.open(path)
        except MapperError as exc:
            report.add_error(str(exc))
            return None
        report.add_info(f"Image {path.name}: {image.width}x{image.height}, palette-indexed.")
        return image

    def _validate_markers(
        self, report: ValidationReport, image: PaletteImage, areas: Sequence[Area]
    ) -> None:
        palette = image.palette()
        present = set(palette)
        missing = [
            area.id
            for area in areas
            if area.id <= MAX_AREA_ID and (area.id, area.id, area.id) not in present
        ]
        if missing:
            report.add_error(
                "Areas without a palette marker (id,id,id): " + ", ".join(str(i) for i in missing)
            )

        highest = max((area.id for area in areas if area.id <= MAX_AREA_ID), default=0)
        noise = [
            entry
            for entry in palette
            if entry != WHITE and not (entry[0] == entry[1] == entry[2] and entry[0] <= highest)
        ]
        if noise:
            sample = ", ".join(rgb_to_hex(*entry) for entry in noise[:8])
            more = f" (+{len(noise) - 8} more)" if len(noise) > 8 else ""
            report.add_warning(
                f"{len(noise)} palette entries will be whited out when drawing: {sample}{more}"
            )

    def _validate_import_paths(self, report: ValidationReport) -> None:
        importer = self.cfg.importer
        if importer is None or importer.path is None:
            return
        if not importer.path.exists():
            report.add_error(f"Import source file not found: {importer.path}")


def format_report_lines(report: ValidationReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation passed with no errors.")
    return lines
