"""IPv4 -> (country, region) resolvers used by the raw-text GeoIP importer."""

from __future__ import annotations

import ipaddress
import logging
import time
from typing import Any, Mapping, Protocol

import requests
from sqlalchemy import between, bindparam, column, create_engine, null, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import GeoError
from .models import GeoLocation

_RETRYABLE_HTTP_STATUS = {429, 500, 502, 503, 504}

_LOGGER = logging.getLogger("mapshade.geoip")


class GeoIPResolver(Protocol):
    def resolve(self, ip: str) -> GeoLocation | None: ...


def ip_to_int(ip: str) -> int:
    try:
        return int(ipaddress.IPv4Address(ip.strip()))
    except (AttributeError, ipaddress.AddressValueError) as exc:
        raise GeoError(f"Invalid IPv4 address: {ip!r}") from exc


class TableGeoIPResolver:
    """Range lookup against a GeoIP database loaded into relational tables.

    Without ``block_table`` the location table itself holds the numeric IP
    range columns. With ``block_table`` the ranges live there and are joined
    to the location table on ``location_id_column`` (same name in both).
    """

    def __init__(
        self,
        bind: Engine | str,
        *,
        location_table: str,
        country_column: str,
        range_start_column: str,
        range_end_column: str,
        region_column: str | None = None,
        block_table: str | None = None,
        location_id_column: str | None = None,
    ) -> None:
        if not location_table:
            raise GeoError("Unknown table for IPv4 lookup: location_table is required.")
        if not country_column:
            raise GeoError("No country column mapped for the location table.")
        if not range_start_column or not range_end_column:
            raise GeoError("Both range start and range end columns must be mapped.")
        if block_table and not location_id_column:
            raise GeoError(
                "A location id column must be mapped to join the block table to the location table."
            )
        self._engine = create_engine(bind) if isinstance(bind, str) else bind
        self._cache: dict[int, GeoLocation | None] = {}

        location_cols = [country_column]
        if region_column:
            location_cols.append(region_column)
        if block_table:
            location_cols.append(location_id_column or "")
            location = table(location_table, *(column(name) for name in dict.fromkeys(location_cols)))
            block = table(
                block_table,
                *(column(name) for name in dict.fromkeys(
                    [range_start_column, range_end_column, location_id_column or ""]
                )),
            )
            ranges = block
            source = location.join(
                block, location.c[location_id_column] == block.c[location_id_column]
            )
        else:
            location_cols.extend([range_start_column, range_end_column])
            location = table(location_table, *(column(name) for name in dict.fromkeys(location_cols)))
            ranges = location
            source = location

        self._statement = (
            select(
                location.c[country_column],
                location.c[region_column] if region_column else null(),
            )
            .select_from(source)
            .where(
                between(
                    bindparam("ip"),
                    ranges.c[range_start_column],
                    ranges.c[range_end_column],
                )
            )
            .limit(1)
        )

    def resolve(self, ip: str) -> GeoLocation | None:
        key = ip_to_int(ip)
        if key in self._cache:
            return self._cache[key]
        try:
            with self._engine.connect() as conn:
                row = conn.execute(self._statement, {"ip": key}).first()
        except SQLAlchemyError as exc:
            raise GeoError(f"GeoIP table lookup failed for {ip}: {exc}") from exc
        location = None
        if row is not None and row[0]:
            region = row[1] if row[1] not in (None, "") else None
            location = GeoLocation(country=str(row[0]).strip(), region=region)
        self._cache[key] = location
        return location


def _lookup_field(payload: Mapping[str, Any], dotted: str) -> Any:
    current: Any = payload
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


class HttpGeoIPResolver:
    """Resolve addresses through a JSON web service such as ``ipinfo.io``.

    ``url_template`` is formatted with ``ip``; ``country_field`` and
    ``region_field`` are dotted paths into the JSON response.
    """

    def __init__(
        self,
        url_template: str = "https://ipinfo.io/{ip}/json",
        *,
        country_field: str = "country",
        region_field: str | None = "region",
        user_agent: str = "mapshade",
        request_timeout_s: float = 10,
        max_retries: int = 3,
        retry_backoff_s: float = 1.0,
        session: requests.Session | None = None,
    ) -> None:
        if "{ip}" not in url_template:
            raise GeoError("GeoIP url_template must contain an '{ip}' placeholder.")
        self.url_template = url_template
        self.country_field = country_field
        self.region_field = region_field
        self.request_timeout_s = request_timeout_s
        self._max_retries = max(int(max_retries), 0)
        self._retry_backoff_s = max(float(retry_backoff_s), 0.01)
        self._session = session if session is not None else requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        self._cache: dict[str, GeoLocation | None] = {}

    def resolve(self, ip: str) -> GeoLocation | None:
        ip_to_int(ip)
        address = ip.strip()
        if address in self._cache:
            return self._cache[address]
        url = self.url_template.format(ip=address)
        try:
            response = self._request_get(url)
        except requests.RequestException as exc:
            raise GeoError(f"GeoIP request for {address} failed: {exc}") from exc

        location = None
        if response is not None:
            try:
                payload = response.json()
            except ValueError as exc:
                raise GeoError(f"GeoIP service returned invalid JSON for {address}") from exc
            if isinstance(payload, Mapping):
                country = _lookup_field(payload, self.country_field)
                region = _lookup_field(payload, self.region_field) if self.region_field else None
                if isinstance(country, str) and country.strip():
                    location = GeoLocation(
                        country=country.strip(),
                        region=str(region).strip() if region else None,
                    )
        self._cache[address] = location
        return location

    def _request_get(self, url: str) -> requests.Response | None:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            response = self._session.get(url, timeout=self.request_timeout_s)
            if response.status_code == 404:
                return None
            if response.status_code not in _RETRYABLE_HTTP_STATUS:
                response.raise_for_status()
                return response
            if attempt >= self._max_retries:
                response.raise_for_status()
            delay_s = self._compute_retry_delay_s(response=response, attempt=attempt)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                url,
                delay_s,
                attempt + 1,
                self._max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise GeoError("Unreachable retry loop in GeoIP resolver")

    def _compute_retry_delay_s(self, *, response: requests.Response, attempt: int) -> float:
        retry_after_s = _parse_retry_after_seconds(response.headers.get("Retry-After"))
        exponential_s = self._retry_backoff_s * (2**attempt)
        return min(max(exponential_s, retry_after_s), 300.0)


def _parse_retry_after_seconds(raw: str | None) -> float:
    if raw is None:
        return 0.0
    value = raw.strip()
    if not value:
        return 0.0
    try:
        parsed = float(value)
    except ValueError:
        return 0.0
    return max(parsed, 0.0)
