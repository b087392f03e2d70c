"""Import adapters: normalize external sources into ``ImportRow`` tuples.

Every adapter exposes ``next_row()``, which returns the next
``ImportRow(country, region, value, series)`` or ``None`` once the source is
exhausted, and can be iterated directly. Adapters that read columns support
``map(role, column)`` to say where each role (``COUNTRY``, ``REGION``,
``VALUE``, ``SERIES``) lives; unmapped roles fall back to defaults
(default country, no region, value 1, series 1).
"""

from __future__ import annotations

import csv
import logging
import math
import re
from collections import deque
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence, TextIO

from sqlalchemy import column, create_engine, literal, null, select, table, text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import DataImportError
from .models import (
    COLUMN_ROLES,
    COUNTRY,
    DEFAULT_COUNTRY,
    DEFAULT_SERIES,
    REGION,
    SERIES,
    VALUE,
    GeoLocation,
    ImportRow,
    role_name,
)

_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
IPV4_RE = re.compile(rf"\b{_OCTET}\.{_OCTET}\.{_OCTET}\.{_OCTET}\b")

_LOGGER = logging.getLogger("mapshade.importers")


def _suffix(context: str) -> str:
    return f" {context}" if context else ""


def normalize_role(role: int | str) -> int:
    if isinstance(role, str):
        key = role.strip().casefold()
        if key not in COLUMN_ROLES:
            raise DataImportError(
                f"Unknown column role '{role}'. Expected one of: {', '.join(COLUMN_ROLES)}"
            )
        return COLUMN_ROLES[key]
    if role not in COLUMN_ROLES.values():
        raise DataImportError(f"Unknown column role {role!r}.")
    return role


def normalize_country(raw: Any, context: str = "") -> str:
    country = raw.strip() if isinstance(raw, str) else ""
    if len(country) != 2:
        raise DataImportError(
            f"Country code should be a valid 2-letter ISO value (e.g.: US), got {raw!r}"
            f"{_suffix(context)}."
        )
    return country.upper()


def normalize_region(raw: Any) -> str | None:
    if raw is None:
        return None
    region = str(raw).strip()
    return region or None


def normalize_value(raw: Any, context: str = "") -> float:
    value: float | None = None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = raw
    elif isinstance(raw, Decimal):
        value = float(raw)
    elif isinstance(raw, str):
        stripped = raw.strip()
        try:
            value = int(stripped)
        except ValueError:
            try:
                value = float(stripped)
            except ValueError:
                value = None
    if value is not None:
        if isinstance(value, float) and not math.isfinite(value):
            raise DataImportError(f"Value {raw!r} is not a finite number{_suffix(context)}.")
        return value
    raise DataImportError(f"Value {raw!r} is not numeric{_suffix(context)}.")


def normalize_series(raw: Any, context: str = "") -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DEFAULT_SERIES
    try:
        series = int(str(raw).strip()) if not isinstance(raw, int) else raw
    except ValueError:
        raise DataImportError(f"Series {raw!r} is not an integer{_suffix(context)}.") from None
    if series < 1:
        raise DataImportError(f"Series must be >= 1, got {series}{_suffix(context)}.")
    return series


class Importer:
    """Base adapter holding the role -> column mapping and row normalization."""

    def __init__(self, *, default_country: str = DEFAULT_COUNTRY) -> None:
        self.default_country = default_country
        self._columns: dict[int, Any] = {}

    def map(self, role: int | str, column_ref: Any) -> Importer:
        self._columns[normalize_role(role)] = self._resolve_column(column_ref)
        return self

    @property
    def columns(self) -> Mapping[int, Any]:
        return dict(self._columns)

    def _resolve_column(self, column_ref: Any) -> Any:
        return column_ref

    def next_row(self) -> ImportRow | None:
        raise NotImplementedError(f"{type(self).__name__} does not implement next_row")

    def close(self) -> None:
        """Release the underlying source; safe to call more than once."""

    def __iter__(self) -> Iterator[ImportRow]:
        while True:
            row = self.next_row()
            if row is None:
                return
            yield row

    def _default(self, role: int) -> Any:
        if role == COUNTRY:
            return self.default_country
        if role == VALUE:
            return 1
        if role == SERIES:
            return DEFAULT_SERIES
        return None

    def _mapped_value(self, role: int, fields: Sequence[Any], context: str) -> Any:
        if role not in self._columns:
            return self._default(role)
        index = self._columns[role]
        if not isinstance(index, int) or index < 0 or index >= len(fields):
            raise DataImportError(
                f"Column index specified as {index} for {role_name(role)} not found{_suffix(context)}."
            )
        value = fields[index]
        return value.strip() if isinstance(value, str) else value

    def _row_from_mapping(self, fields: Sequence[Any], context: str) -> ImportRow:
        return self._build_row(
            self._mapped_value(COUNTRY, fields, context),
            self._mapped_value(REGION, fields, context),
            self._mapped_value(VALUE, fields, context),
            self._mapped_value(SERIES, fields, context),
            context,
        )

    def _row_from_positional(self, fields: Sequence[Any], context: str) -> ImportRow:
        def at(index: int, role: int) -> Any:
            return fields[index] if len(fields) > index else self._default(role)

        return self._build_row(
            at(0, COUNTRY), at(1, REGION), at(2, VALUE), at(3, SERIES), context
        )

    def _build_row(
        self, country: Any, region: Any, value: Any, series: Any, context: str
    ) -> ImportRow:
        return ImportRow(
            country=normalize_country(country, context),
            region=normalize_region(region),
            value=normalize_value(1 if value is None else value, context),
            series=normalize_series(series, context),
        )


class ArrayImporter(Importer):
    """Rows supplied in memory as ``(country[, region[, value[, series]]])``."""

    def __init__(self, rows: Iterable[Sequence[Any]] = (), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rows: deque[Sequence[Any]] = deque(rows)
        self._consumed = 0

    def add_row(self, row: Sequence[Any]) -> ArrayImporter:
        self._rows.append(row)
        return self

    def set_rows(self, rows: Iterable[Sequence[Any]]) -> ArrayImporter:
        self._rows = deque(rows)
        self._consumed = 0
        return self

    def next_row(self) -> ImportRow | None:
        if not self._rows:
            return None
        raw = self._rows.popleft()
        self._consumed += 1
        context = f"in row {self._consumed}"
        if isinstance(raw, str) or not isinstance(raw, Sequence) or not raw:
            raise DataImportError(
                f"Data should be a sequence with a 2-letter ISO country code first {context}."
            )
        return self._row_from_positional(raw, context)


class DelimitedImporter(Importer):
    """Character-delimited text file with an optional header row.

    Columns are mapped by header name (case-insensitive) when the file has
    headers, or by 0-based index. Every data line must have the same number
    of columns as the first line. A blank line ends the data.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        has_headers: bool = False,
        delimiter: str = ",",
        quotechar: str = '"',
        escapechar: str | None = "\\",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.path = Path(path)
        if not self.path.is_file():
            raise DataImportError(f"{self.path} does not exist or is not readable.")
        self.has_headers = has_headers
        self._dialect = {"delimiter": delimiter, "quotechar": quotechar, "escapechar": escapechar}
        try:
            self._fh: TextIO | None = self.path.open("r", encoding="utf-8", newline="")
        except OSError as exc:
            raise DataImportError(f"Failed to open {self.path} for reading: {exc}") from exc
        self._reader = csv.reader(self._fh, **self._dialect)
        self._headers: list[str] | None = None
        self._column_count = 0

        first = self._read_row(ignore_mismatch=True)
        if not first:
            self.close()
            raise DataImportError(
                "After reading first line -- file does not contain any columns. "
                "Are you using a valid delimiter?"
            )
        if has_headers:
            self._headers = [item.strip() for item in first]
            self._column_count = len(first)
        else:
            self._column_count = len(first)
            self._fh.seek(0)
            self._reader = csv.reader(self._fh, **self._dialect)

    @property
    def headers(self) -> list[str] | None:
        return list(self._headers) if self._headers is not None else None

    @property
    def column_count(self) -> int:
        return self._column_count

    @property
    def line_number(self) -> int:
        return self._reader.line_num

    def column_index(self, name: int | str) -> int:
        """Resolve a header name or 0-based index to a column index."""
        if isinstance(name, str) and self._headers is not None:
            wanted = name.strip().casefold()
            for index, header in enumerate(self._headers):
                if header.casefold() == wanted:
                    return index
            raise DataImportError(f"Column {name} not found in file headers.")
        try:
            index = int(name)
        except (TypeError, ValueError):
            raise DataImportError(
                f"Column {name!r} is not a valid index; the file has no header row."
            ) from None
        if index < 0 or index >= self._column_count:
            raise DataImportError(
                f"Column #{index} not valid. Only {self._column_count} found on first row."
            )
        return index

    def _resolve_column(self, column_ref: Any) -> int:
        return self.column_index(column_ref)

    def _read_row(self, *, ignore_mismatch: bool = False) -> list[str] | None:
        if self._fh is None:
            return None
        try:
            row = next(self._reader)
        except StopIteration:
            return None
        except csv.Error as exc:
            raise DataImportError(
                f"Failed reading line #{self._reader.line_num} of {self.path}: {exc}"
            ) from exc
        if not row:
            return None
        if not ignore_mismatch and len(row) != self._column_count:
            raise DataImportError(
                f"Line #{self._reader.line_num} has {len(row)} columns. "
                f"Expecting {self._column_count}."
            )
        return row

    def next_row(self) -> ImportRow | None:
        row = self._read_row()
        if row is None:
            self.close()
            return None
        return self._row_from_mapping(row, f"on line number {self._reader.line_num}")

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> DelimitedImporter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class SqlImporter(Importer):
    """Rows streamed from a relational database through SQLAlchemy.

    Either ``set_query`` (any SQL whose first columns are country, region,
    value and optionally series) or ``set_table`` plus ``map`` calls naming
    the table's columns must be used before reading.
    """

    def __init__(self, bind: Engine | str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._engine = create_engine(bind) if isinstance(bind, str) else bind
        self._query: str | None = None
        self._params: dict[str, Any] = {}
        self._table: str | None = None
        self._connection: Connection | None = None
        self._result: CursorResult[Any] | None = None
        self._row_count = 0
        self._exhausted = False

    def set_query(self, sql: str, params: Mapping[str, Any] | None = None) -> SqlImporter:
        if params is not None and not isinstance(params, Mapping):
            raise DataImportError("Query parameters must be a mapping of name -> value.")
        self._query = sql
        self._params = {str(k).lstrip(":"): v for k, v in (params or {}).items()}
        self._exhausted = False
        return self

    def set_table(self, name: str) -> SqlImporter:
        self._table = name
        self._exhausted = False
        return self

    def _resolve_column(self, column_ref: Any) -> str:
        if not isinstance(column_ref, str) or not column_ref.strip():
            raise DataImportError(f"Database column name must be a non-empty string: {column_ref!r}")
        return column_ref.strip()

    def statement(self) -> Any:
        if self._query is not None:
            return text(self._query)
        if self._table is not None:
            country = self._columns.get(COUNTRY)
            region = self._columns.get(REGION)
            value = self._columns.get(VALUE)
            series = self._columns.get(SERIES)
            selected = [
                column(country) if country else literal(self.default_country),
                column(region) if region else null(),
                column(value) if value else literal(1),
            ]
            if series:
                selected.append(column(series))
            return select(*selected).select_from(table(self._table))
        raise DataImportError(
            "You must provide either a table via set_table or a query via set_query "
            "in order to collect data from a database."
        )

    def next_row(self) -> ImportRow | None:
        if self._exhausted:
            return None
        try:
            if self._result is None:
                stmt = self.statement()
                self._connection = self._engine.connect()
                self._result = self._connection.execute(stmt, self._params)
            row = self._result.fetchone()
        except SQLAlchemyError as exc:
            self.close()
            raise DataImportError(f"Database import failed: {exc}") from exc
        if row is None:
            self.close()
            self._exhausted = True
            return None
        self._row_count += 1
        return self._row_from_positional(tuple(row), f"in result row {self._row_count}")

    def close(self) -> None:
        if self._result is not None:
            self._result.close()
            self._result = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> SqlImporter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class GeoIPRawImporter(Importer):
    """Arbitrary text (e.g. access logs) scanned for IPv4 addresses.

    The first address on each line is resolved through ``resolver`` (an object
    with ``resolve(ip)`` or a plain callable returning a ``GeoLocation`` or
    ``None``); each resolved address yields one row of value 1. Lines without
    an address, or whose address does not resolve, are skipped.
    """

    def __init__(
        self,
        resolver: Any,
        *,
        data: str | Iterable[str] | None = None,
        path: str | Path | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        resolve = getattr(resolver, "resolve", resolver)
        if not callable(resolve):
            raise DataImportError("GeoIP resolver must be callable or provide resolve(ip).")
        self._resolve: Callable[[str], GeoLocation | None] = resolve
        self._lines: Iterator[str] = iter(())
        self._fh: TextIO | None = None
        self._line_number = 0
        if data is not None:
            self.set_data(data)
        if path is not None:
            self.set_file(path)

    def set_file(self, path: str | Path) -> GeoIPRawImporter:
        self.close()
        try:
            self._fh = Path(path).open("r", encoding="utf-8", errors="replace")
        except OSError as exc:
            raise DataImportError(f"Unable to open {path} for reading: {exc}") from exc
        self._lines = iter(self._fh)
        self._line_number = 0
        return self

    def set_data(self, value: str | Iterable[str]) -> GeoIPRawImporter:
        self.close()
        lines = re.split(r"[\r\n]+", value) if isinstance(value, str) else list(value)
        self._lines = iter(lines)
        self._line_number = 0
        return self

    def next_row(self) -> ImportRow | None:
        for line in self._lines:
            self._line_number += 1
            match = IPV4_RE.search(line)
            if match is None:
                continue
            location = self._resolve(match.group(0))
            if location is None or not location.country:
                _LOGGER.debug("No location for %s on line %d", match.group(0), self._line_number)
                continue
            return self._build_row(
                location.country,
                location.region,
                1,
                DEFAULT_SERIES,
                f"on line number {self._line_number}",
            )
        self.close()
        return None

    def close(self) -> None:
        self._lines = iter(())
        if self._fh is not None:
            self._fh.close()
            self._fh = None
