"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .colors import parse_color
from .errors import BadColorValueError
from .models import COLUMN_ROLES, DEFAULT_COUNTRY, RGB
from .palette import DEFAULT_COMPRESSION_LEVEL, MIN_WIDTH
from .shading import DEFAULT_NO_VALUE_COLOR, DEFAULT_TOO_CLOSE_COLOR, MIN_THRESHOLD

IMPORT_KINDS = ("delimited", "sql", "geoip_raw")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    return {} if value is None else _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_str(value: Any, field_name: str) -> str | None:
    return None if value is None else _str(value, field_name)


def _char(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or len(value) != 1:
        raise ValueError(f"Expected single character for '{field_name}'")
    return value


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _color(value: Any, field_name: str) -> RGB:
    try:
        return parse_color(value)
    except BadColorValueError as exc:
        raise ValueError(f"Invalid color for '{field_name}': {exc}") from exc


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class MapConfig:
    name: str
    maps_dir: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> MapConfig:
        return cls(
            name=_str(raw.get("name", "world"), "map.name"),
            maps_dir=_path_from_cfg(raw.get("maps_dir", "maps"), "map.maps_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    color: RGB
    width_px: int
    min_width_px: int
    min_threshold: float
    compression_level: int
    target_value: float | None
    series: int
    output: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> RenderConfig:
        width_px = _int(raw.get("width_px", 1000), "render.width_px")
        min_width_px = _int(raw.get("min_width_px", MIN_WIDTH), "render.min_width_px")
        min_threshold = _float(raw.get("min_threshold", MIN_THRESHOLD), "render.min_threshold")
        compression_level = _int(
            raw.get("compression_level", DEFAULT_COMPRESSION_LEVEL), "render.compression_level"
        )
        series = _int(raw.get("series", 1), "render.series")
        target_raw = raw.get("target_value")
        if min_width_px < 1:
            raise ValueError("render.min_width_px must be >= 1")
        if width_px < min_width_px:
            raise ValueError(f"render.width_px must be >= render.min_width_px ({min_width_px})")
        if not 0 <= min_threshold <= 1:
            raise ValueError("render.min_threshold must be between 0 and 1")
        if not 0 <= compression_level <= 9:
            raise ValueError("render.compression_level must be between 0 and 9")
        if series < 1:
            raise ValueError("render.series must be >= 1")

        return cls(
            color=_color(raw.get("color", "155083"), "render.color"),
            width_px=width_px,
            min_width_px=min_width_px,
            min_threshold=min_threshold,
            compression_level=compression_level,
            target_value=None if target_raw is None else _float(target_raw, "render.target_value"),
            series=series,
            output=_path_from_cfg(raw.get("output", "build/map.png"), "render.output", root_dir),
        )


@dataclass(frozen=True, slots=True)
class ImportConfig:
    kind: str
    path: Path | None
    delimiter: str
    quotechar: str
    has_headers: bool
    columns: tuple[tuple[str, str | int], ...]
    database_url: str | None
    query: str | None
    params: Mapping[str, Any]
    table: str | None
    default_country: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> ImportConfig:
        kind = _str(raw.get("kind"), "import.kind").casefold()
        if kind not in IMPORT_KINDS:
            raise ValueError("import.kind must be one of: " + ", ".join(IMPORT_KINDS))

        columns: list[tuple[str, str | int]] = []
        for role, ref in _optional_mapping(raw.get("columns"), "import.columns").items():
            role_name = str(role).strip().casefold()
            if role_name not in COLUMN_ROLES:
                raise ValueError(
                    f"Unknown role 'import.columns.{role}'; expected one of: "
                    + ", ".join(COLUMN_ROLES)
                )
            field_name = f"import.columns.{role_name}"
            if isinstance(ref, int) and not isinstance(ref, bool):
                if ref < 0:
                    raise ValueError(f"'{field_name}' index must be >= 0")
                columns.append((role_name, ref))
            else:
                columns.append((role_name, _str(ref, field_name)))

        path_raw = raw.get("path")
        path = None if path_raw is None else _path_from_cfg(path_raw, "import.path", root_dir)
        database_url = _optional_str(raw.get("database_url"), "import.database_url")
        query = _optional_str(raw.get("query"), "import.query")
        table = _optional_str(raw.get("table"), "import.table")
        if kind in ("delimited", "geoip_raw") and path is None:
            raise ValueError(f"import.path is required for import.kind '{kind}'")
        if kind == "sql":
            if database_url is None:
                raise ValueError("import.database_url is required for import.kind 'sql'")
            if query is None and table is None:
                raise ValueError("import.query or import.table is required for import.kind 'sql'")

        default_country = _str(raw.get("default_country", DEFAULT_COUNTRY), "import.default_country")
        return cls(
            kind=kind,
            path=path,
            delimiter=_char(raw.get("delimiter", ","), "import.delimiter"),
            quotechar=_char(raw.get("quotechar", '"'), "import.quotechar"),
            has_headers=_bool(raw.get("has_headers", False), "import.has_headers"),
            columns=tuple(columns),
            database_url=database_url,
            query=query,
            params=dict(_optional_mapping(raw.get("params"), "import.params")),
            table=table,
            default_country=default_country.upper(),
        )


@dataclass(frozen=True, slots=True)
class GeoIPConfig:
    url_template: str
    country_field: str
    region_field: str | None
    user_agent: str
    request_timeout_s: float
    max_retries: int
    retry_backoff_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeoIPConfig:
        url_template = _str(raw.get("url_template", "https://ipinfo.io/{ip}/json"), "geoip.url_template")
        max_retries = _int(raw.get("max_retries", 3), "geoip.max_retries")
        retry_backoff_s = _float(raw.get("retry_backoff_s", 1.0), "geoip.retry_backoff_s")
        request_timeout_s = _float(raw.get("request_timeout_s", 10), "geoip.request_timeout_s")
        if "{ip}" not in url_template:
            raise ValueError("geoip.url_template must contain an '{ip}' placeholder")
        if max_retries < 0:
            raise ValueError("geoip.max_retries must be >= 0")
        if retry_backoff_s <= 0:
            raise ValueError("geoip.retry_backoff_s must be > 0")
        if request_timeout_s <= 0:
            raise ValueError("geoip.request_timeout_s must be > 0")

        return cls(
            url_template=url_template,
            country_field=_str(raw.get("country_field", "country"), "geoip.country_field"),
            region_field=_optional_str(raw.get("region_field", "region"), "geoip.region_field"),
            user_agent=_str(raw.get("user_agent", "mapshade"), "geoip.user_agent"),
            request_timeout_s=request_timeout_s,
            max_retries=max_retries,
            retry_backoff_s=retry_backoff_s,
        )

    @classmethod
    def default(cls) -> GeoIPConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class PartyConfig:
    name: str
    color: RGB

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str) -> PartyConfig:
        return cls(
            name=_str(raw.get("name"), f"{field_name}.name"),
            color=_color(raw.get("color"), f"{field_name}.color"),
        )


@dataclass(frozen=True, slots=True)
class ElectionConfig:
    parties: tuple[PartyConfig, ...]
    no_value_color: RGB
    too_close_color: RGB
    too_close_threshold: float
    too_close_min_value: float
    shaded: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ElectionConfig:
        parties_raw = raw.get("parties")
        if not isinstance(parties_raw, list) or not parties_raw:
            raise ValueError("Expected non-empty list for 'election.parties'")
        parties = tuple(
            PartyConfig.from_mapping(
                _mapping(item, f"election.parties[{idx}]"), f"election.parties[{idx}]"
            )
            for idx, item in enumerate(parties_raw)
        )
        names = [party.name.casefold() for party in parties]
        if len(set(names)) != len(names):
            raise ValueError("election.parties names must be unique")

        return cls(
            parties=parties,
            no_value_color=_color(
                raw.get("no_value_color", DEFAULT_NO_VALUE_COLOR), "election.no_value_color"
            ),
            too_close_color=_color(
                raw.get("too_close_color", DEFAULT_TOO_CLOSE_COLOR), "election.too_close_color"
            ),
            too_close_threshold=_float(
                raw.get("too_close_threshold", 1), "election.too_close_threshold"
            ),
            too_close_min_value=_float(
                raw.get("too_close_min_value", 1), "election.too_close_min_value"
            ),
            shaded=_bool(raw.get("shaded", False), "election.shaded"),
        )


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    logs_dir: Path
    verbose: bool

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "mapshade.log"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> LoggingConfig:
        return cls(
            logs_dir=_path_from_cfg(raw.get("logs_dir", "build/logs"), "logging.logs_dir", root_dir),
            verbose=_bool(raw.get("verbose", False), "logging.verbose"),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    map: MapConfig
    render: RenderConfig
    importer: ImportConfig | None
    geoip: GeoIPConfig
    election: ElectionConfig | None
    logging: LoggingConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        import_raw = raw.get("import")
        election_raw = raw.get("election")
        return cls(
            source_path=source_path.resolve(),
            map=MapConfig.from_mapping(_optional_mapping(raw.get("map"), "map"), root_dir),
            render=RenderConfig.from_mapping(
                _optional_mapping(raw.get("render"), "render"), root_dir
            ),
            importer=(
                None
                if import_raw is None
                else ImportConfig.from_mapping(_mapping(import_raw, "import"), root_dir)
            ),
            geoip=GeoIPConfig.from_mapping(_optional_mapping(raw.get("geoip"), "geoip")),
            election=(
                None
                if election_raw is None
                else ElectionConfig.from_mapping(_mapping(election_raw, "election"))
            ),
            logging=LoggingConfig.from_mapping(
                _optional_mapping(raw.get("logging"), "logging"), root_dir
            ),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
