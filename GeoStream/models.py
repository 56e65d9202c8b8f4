"""Value types shared by the codec, the math helpers and the query engine."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, NamedTuple, Tuple

from GeoStream.errors import InvalidArgument

# Hash length used for persisted points (~4.8m x 4.8m cells)
POINT_PRECISION = 9


def validate_coordinates(latitude: Any, longitude: Any) -> Tuple[float, float]:
    """
    Check that latitude/longitude are finite numbers inside their ranges.

    Returns:
        (latitude, longitude) as floats

    Raises:
        InvalidArgument: NaN, infinite, non-numeric or out-of-range values
    """
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Coordinates must be numbers, got ({latitude!r}, {longitude!r})") from None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidArgument(f"Coordinates must be finite, got ({latitude}, {longitude})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidArgument(f"Latitude {lat} outside [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidArgument(f"Longitude {lon} outside [-180, 180]")
    return lat, lon


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = validate_coordinates(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    @property
    def coords(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class FirePoint:
    """
    A GeoPoint stored together with its geohash.

    This is the record field the range scans run against; `data` is the
    layout written to the store.
    """

    geopoint: GeoPoint
    geohash: str

    @property
    def data(self) -> Dict[str, Any]:
        return {"geopoint": self.geopoint, "geohash": self.geohash}

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly form."""
        return {"geopoint": self.geopoint.to_dict(), "geohash": self.geohash}


class BoundingBox(NamedTuple):
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float


class DecodedHash(NamedTuple):
    latitude: float
    longitude: float
    lat_err: float
    lon_err: float


@dataclass(frozen=True)
class QueryOptions:
    """
    Per-call options for radius queries.

    units: unit used for distances in diagnostic log lines (math is always km)
    log: emit diagnostic log lines for every emission
    """

    units: str = "kilometers"
    log: bool = False


def get_field(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted field path ("position.geohash") inside nested mappings."""
    value: Any = data
    for part in path.split("."):
        if isinstance(value, Mapping):
            if part not in value:
                return None
            value = value[part]
        else:
            value = getattr(value, part, None)
        if value is None:
            return None
    return value


def coords_of(value: Any) -> Tuple[float, float]:
    """
    Extract (latitude, longitude) from a stored point field.

    Accepts a FirePoint, a {"geopoint": ..., "geohash": ...} mapping, or a bare
    geopoint; the geopoint may be a GeoPoint or a {"latitude", "longitude"} mapping.
    """
    geopoint = value.geopoint if isinstance(value, FirePoint) else value
    if isinstance(geopoint, Mapping) and "geopoint" in geopoint:
        geopoint = geopoint["geopoint"]

    if isinstance(geopoint, GeoPoint):
        return geopoint.coords
    if isinstance(geopoint, Mapping):
        return validate_coordinates(geopoint.get("latitude"), geopoint.get("longitude"))
    if hasattr(geopoint, "latitude") and hasattr(geopoint, "longitude"):
        return validate_coordinates(geopoint.latitude, geopoint.longitude)
    raise InvalidArgument(f"No geopoint found in {value!r}")
