"""CLI entrypoint for the mapshade map shader."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .catalog import MapFiles, load_catalog
from .config import AppConfig, load_config
from .errors import MapperError
from .pipeline import format_draw_lines, run_draw
from .resolver import NameResolver
from .util import ensure_directories, parse_assignments, setup_logging, write_json
from .validate import MapValidator, format_report_lines

LOGGER = logging.getLogger("mapshade.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mapshade",
        description="Shade the areas of a palette-indexed map image by value.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    draw_p = subparsers.add_parser("draw", help="Import configured data and draw the PNG.")
    add_common(draw_p)
    draw_p.add_argument(
        "--output",
        default=None,
        help="PNG path. Defaults to render.output from the config.",
    )
    draw_p.add_argument(
        "--value",
        action="append",
        default=[],
        metavar="REGION=N",
        help="Set a region value, e.g. MN=15. Can be repeated.",
    )
    draw_p.add_argument(
        "--summary",
        default=None,
        help="Also write a JSON summary of the draw to this path.",
    )

    validate_p = subparsers.add_parser("validate", help="Check the map image and definition pair.")
    add_common(validate_p)
    validate_p.add_argument(
        "--map",
        default=None,
        help="Map name to validate instead of map.name from the config.",
    )

    lookup_p = subparsers.add_parser("lookup", help="Print the area id for a country/region.")
    add_common(lookup_p)
    lookup_p.add_argument("country", help="2-letter country code.")
    lookup_p.add_argument("region", nargs="?", default=None, help="Region name or alias.")

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.logging.log_file, verbose=bool(args.verbose) or cfg.logging.verbose)
    ensure_directories([cfg.logging.logs_dir, cfg.render.output.parent])
    return cfg


def _run_draw(
    cfg: AppConfig,
    *,
    output: str | None,
    values: Sequence[str],
    summary: str | None,
) -> int:
    try:
        overrides = parse_assignments(values)
    except ValueError as exc:
        LOGGER.error("Invalid --value: %s", exc)
        return 2
    report = run_draw(cfg, output=Path(output) if output else None, values=overrides)
    for line in format_draw_lines(report):
        LOGGER.info(line)
    if summary:
        summary_path = Path(summary)
        write_json(summary_path, report.to_dict())
        LOGGER.info("Draw summary written to %s", summary_path)
    return 0 if report.ok else 1


def _run_validate(cfg: AppConfig, *, map_name: str | None) -> int:
    report = MapValidator(cfg).run(map_name)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_lookup(cfg: AppConfig, *, country: str, region: str | None) -> int:
    files = MapFiles.resolve(cfg.map.name, cfg.map.maps_dir)
    try:
        areas = load_catalog(files.definition_path)
    except MapperError as exc:
        LOGGER.error("Lookup failed: %s", exc)
        return 1
    area_id = NameResolver(areas).lookup(country, region)
    label = f"{country}/{region}" if region else country
    if area_id is None:
        LOGGER.warning("No area of map '%s' matches %s", files.name, label)
        return 1
    LOGGER.info("%s -> area %d (%s)", label, area_id, ", ".join(areas[area_id].names) or "-")
    print(area_id)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "draw":
        return _run_draw(
            cfg,
            output=args.output,
            values=[str(item) for item in args.value],
            summary=args.summary,
        )
    if command == "validate":
        return _run_validate(cfg, map_name=args.map)
    if command == "lookup":
        return _run_lookup(cfg, country=str(args.country), region=args.region)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
