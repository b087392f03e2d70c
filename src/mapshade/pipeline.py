"""Batch draw pipeline: config -> map -> import -> PNG file."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .config import AppConfig, GeoIPConfig, ImportConfig
from .errors import MapperError
from .geoip import GeoIPResolver, HttpGeoIPResolver
from .importers import DelimitedImporter, GeoIPRawImporter, Importer, SqlImporter
from .mapper import ElectionMap, ShadedMap, apply_region_params

_LOGGER = logging.getLogger("mapshade.pipeline")


@dataclass(slots=True)
class DrawReport:
    output_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_path": str(self.output_path) if self.output_path else None,
            "ok": self.ok,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "summary": dict(self.summary),
        }


def build_http_resolver(cfg: GeoIPConfig) -> HttpGeoIPResolver:
    return HttpGeoIPResolver(
        cfg.url_template,
        country_field=cfg.country_field,
        region_field=cfg.region_field,
        user_agent=cfg.user_agent,
        request_timeout_s=cfg.request_timeout_s,
        max_retries=cfg.max_retries,
        retry_backoff_s=cfg.retry_backoff_s,
    )


def _required(value: Any, field_name: str) -> Any:
    if value is None:
        raise ValueError(f"'{field_name}' is required for this import kind")
    return value


def build_importer(
    cfg: ImportConfig,
    geoip_cfg: GeoIPConfig | None = None,
    *,
    resolver: GeoIPResolver | None = None,
) -> Importer:
    """Create the adapter described by the ``import`` config section."""
    importer: Importer
    if cfg.kind == "delimited":
        importer = DelimitedImporter(
            _required(cfg.path, "import.path"),
            has_headers=cfg.has_headers,
            delimiter=cfg.delimiter,
            quotechar=cfg.quotechar,
            default_country=cfg.default_country,
        )
    elif cfg.kind == "sql":
        sql_importer = SqlImporter(
            _required(cfg.database_url, "import.database_url"),
            default_country=cfg.default_country,
        )
        if cfg.query is not None:
            sql_importer.set_query(cfg.query, cfg.params)
        else:
            sql_importer.set_table(_required(cfg.table, "import.table"))
        importer = sql_importer
    else:
        if resolver is None:
            resolver = build_http_resolver(geoip_cfg or GeoIPConfig.default())
        return GeoIPRawImporter(
            resolver,
            path=_required(cfg.path, "import.path"),
            default_country=cfg.default_country,
        )

    try:
        for role, ref in cfg.columns:
            importer.map(role, ref)
    except MapperError:
        importer.close()
        raise
    return importer


def build_map(cfg: AppConfig) -> ShadedMap:
    """Load the configured map and apply render settings (election maps included)."""
    kwargs: dict[str, Any] = {
        "min_width": cfg.render.min_width_px,
        "min_threshold": cfg.render.min_threshold,
    }
    if cfg.importer is not None:
        kwargs["default_country"] = cfg.importer.default_country

    shaded: ShadedMap
    if cfg.election is not None:
        election = ElectionMap(
            cfg.map.name,
            cfg.map.maps_dir,
            no_value_color=cfg.election.no_value_color,
            too_close_color=cfg.election.too_close_color,
            too_close_threshold=cfg.election.too_close_threshold,
            too_close_min_value=cfg.election.too_close_min_value,
            shaded=cfg.election.shaded,
            **kwargs,
        )
        for party in cfg.election.parties:
            election.add_party(party.name, party.color)
        shaded = election
    else:
        shaded = ShadedMap(cfg.map.name, cfg.map.maps_dir, **kwargs)
        shaded.set_color(cfg.render.color)

    shaded.set_width(cfg.render.width_px)
    shaded.set_target_value(cfg.render.target_value)
    return shaded


def run_draw(
    cfg: AppConfig,
    *,
    output: Path | None = None,
    values: Mapping[str, str] | None = None,
    resolver: GeoIPResolver | None = None,
) -> DrawReport:
    """Draw the configured map to a PNG file and report what happened."""
    target = output if output is not None else cfg.render.output
    report = DrawReport(output_path=target)
    t0 = time.perf_counter()

    try:
        shaded = build_map(cfg)
    except (MapperError, ValueError) as exc:
        report.add_error(f"Failed loading map '{cfg.map.name}': {exc}")
        return report
    report.add_info(f"Loaded map '{cfg.map.name}' with {len(shaded.areas)} areas from {shaded.base}")
    report.summary["areas"] = len(shaded.areas)

    if cfg.importer is not None:
        try:
            importer = build_importer(cfg.importer, cfg.geoip, resolver=resolver)
        except (MapperError, ValueError) as exc:
            report.add_error(f"Import ({cfg.importer.kind}) setup failed: {exc}")
            return report
        try:
            rows = shaded.import_from(importer)
        except MapperError as exc:
            report.add_error(f"Import ({cfg.importer.kind}) failed: {exc}")
            return report
        report.add_info(f"Imported {rows} rows via {cfg.importer.kind} adapter")
        report.summary["rows_imported"] = rows
        if rows == 0:
            report.add_warning("Import produced no rows; every area will use the minimum shade.")

    if values:
        applied = apply_region_params(shaded, values, country=shaded.default_country)
        report.summary["values_applied"] = applied
        if applied < len(values):
            report.add_warning(
                f"Only {applied} of {len(values)} --value entries matched an area of '{cfg.map.name}'."
            )

    try:
        shaded.draw(target, cfg.render.compression_level, series=cfg.render.series)
    except MapperError as exc:
        report.add_error(f"Drawing map '{cfg.map.name}' failed: {exc}")
        return report

    report.summary["max_value"] = shaded.max_value(cfg.render.series)
    report.summary["series"] = cfg.render.series
    report.add_info(f"Wrote {target} in {time.perf_counter() - t0:.2f}s")
    _LOGGER.debug("Draw summary: %s", report.summary)
    return report


def format_draw_lines(report: DrawReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Map drawn with no errors.")
    return lines
