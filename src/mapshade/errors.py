"""Exception hierarchy shared by the map shading pipeline."""

from __future__ import annotations


class MapperError(Exception):
    """Base class for every error raised by mapshade."""


class MapDataError(MapperError):
    """Raised when a map definition file is missing or malformed."""


class ImageError(MapperError):
    """Raised when a map image is missing, unreadable, or lacks an area marker."""


class DataImportError(MapperError):
    """Raised when an import source yields a malformed row or is misconfigured."""


class BadColorValueError(MapperError, ValueError):
    """Raised for malformed hex/RGB colors and out-of-range alpha values."""


class ConfigError(MapperError, ValueError):
    """Raised for invalid render settings (width, compression level, ...)."""


class GeoError(MapperError):
    """Raised when an IP geolocation resolver is misconfigured or unreachable."""
