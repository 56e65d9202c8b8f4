"""Error types raised by GeoStream."""
from __future__ import annotations

from typing import Optional


class GeoStreamError(Exception):
    """Base class for all GeoStream errors."""


class InvalidEncoding(GeoStreamError, ValueError):
    """Geohash is empty, too long or contains symbols outside the base-32 alphabet."""


class InvalidArgument(GeoStreamError, ValueError):
    """Bad radius, coordinates, precision or field name."""


class UnitError(GeoStreamError, ValueError):
    """Unknown distance unit."""


class CollaboratorError(GeoStreamError):
    """
    Failure reported by the underlying store for one cell subscription.

    The original exception is kept as __cause__.
    """

    def __init__(self, message: str, cell: Optional[str] = None) -> None:
        super().__init__(message)
        self.cell = cell


__all__ = [
    "GeoStreamError",
    "InvalidEncoding",
    "InvalidArgument",
    "UnitError",
    "CollaboratorError",
]
