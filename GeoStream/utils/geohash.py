"""
Geohash codec, neighbor expansion and radius-to-precision selection.

A geohash interleaves longitude and latitude bisection bits (longitude first)
and packs every 5 bits into one base-32 symbol. A longer hash always refines
its prefix, so a prefix range scan over stored hashes returns exactly the
points inside that cell.
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple, Union

from GeoStream.errors import InvalidArgument, InvalidEncoding
from GeoStream.models import BoundingBox, DecodedHash, validate_coordinates

BASE32_CODES = "0123456789bcdefghjkmnpqrstuvwxyz"
BASE32_CODES_DICT: Dict[str, int] = {code: i for i, code in enumerate(BASE32_CODES)}

MAX_PRECISION = 18
DEFAULT_PRECISION = 9
ENCODE_AUTO = "auto"

# Minimum hash length that keeps N decimal places of the input (index = N).
# Error per axis is 45 / 2^(bits - 1).
SIGFIG_HASH_LENGTH = [0, 5, 7, 8, 11, 12, 13, 15, 16, 17, 18]

# (max radius km, hash length). First row whose radius is >= the query radius wins.
#   len  cell (w x h)
#   1    5,000km x 5,000km
#   2    1,250km x 625km
#   3    156km x 156km
#   4    39.1km x 19.5km
#   5    4.89km x 4.89km
#   6    1.22km x 0.61km
#   7    153m x 153m
#   8    38.2m x 19.1m
#   9    4.77m x 4.77m
PRECISION_BREAKPOINTS: Tuple[Tuple[float, int], ...] = (
    (0.00477, 9),
    (0.0382, 8),
    (0.153, 7),
    (1.22, 6),
    (4.89, 5),
    (39.1, 4),
    (156.0, 3),
    (1250.0, 2),
)
COARSEST_PRECISION = 1

# Clockwise from north: (lat direction, lon direction)
NEIGHBOR_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (1, 0),    # N
    (1, 1),    # NE
    (0, 1),    # E
    (-1, 1),   # SE
    (-1, 0),   # S
    (-1, -1),  # SW
    (0, -1),   # W
    (1, -1),   # NW
)


def _auto_precision(latitude: Any, longitude: Any) -> int:
    if not isinstance(latitude, str) or not isinstance(longitude, str):
        raise InvalidArgument("String notation required for auto precision")

    def decimals(value: str) -> int:
        _, _, fraction = value.strip().partition(".")
        return len(fraction)

    places = min(max(decimals(latitude), decimals(longitude)), len(SIGFIG_HASH_LENGTH) - 1)
    return max(SIGFIG_HASH_LENGTH[places], 1)


def encode(latitude: Any, longitude: Any, precision: Union[int, str] = DEFAULT_PRECISION) -> str:
    """
    Encode a coordinate into a geohash.

    Args:
        latitude: Latitude in degrees (number, or string for auto precision)
        longitude: Longitude in degrees
        precision: Number of symbols (1-18), or "auto" to derive it from the
            number of decimal places of string coordinates

    Returns:
        Geohash string of `precision` symbols

    Raises:
        InvalidArgument: bad coordinates or precision
    """
    if precision == ENCODE_AUTO:
        precision = _auto_precision(latitude, longitude)
    if isinstance(precision, bool) or not isinstance(precision, int):
        raise InvalidArgument(f"Precision must be an integer, got {precision!r}")
    if not 1 <= precision <= MAX_PRECISION:
        raise InvalidArgument(f"Precision must be between 1 and {MAX_PRECISION}, got {precision}")

    lat, lon = validate_coordinates(latitude, longitude)

    chars: List[str] = []
    bits = 0
    bits_total = 0
    hash_value = 0
    min_lat, max_lat = -90.0, 90.0
    min_lon, max_lon = -180.0, 180.0

    while len(chars) < precision:
        if bits_total % 2 == 0:
            mid = (max_lon + min_lon) / 2
            if lon > mid:
                hash_value = (hash_value << 1) + 1
                min_lon = mid
            else:
                hash_value = hash_value << 1
                max_lon = mid
        else:
            mid = (max_lat + min_lat) / 2
            if lat > mid:
                hash_value = (hash_value << 1) + 1
                min_lat = mid
            else:
                hash_value = hash_value << 1
                max_lat = mid

        bits += 1
        bits_total += 1
        if bits == 5:
            chars.append(BASE32_CODES[hash_value])
            bits = 0
            hash_value = 0

    return "".join(chars)


def decode_bbox(geohash: str) -> BoundingBox:
    """
    Decode a geohash into the cell it denotes.

    Raises:
        InvalidEncoding: empty, too long, or containing non base-32 symbols
    """
    if not isinstance(geohash, str) or not geohash:
        raise InvalidEncoding(f"Geohash must be a non-empty string, got {geohash!r}")
    if len(geohash) > MAX_PRECISION:
        raise InvalidEncoding(f"Geohash longer than {MAX_PRECISION} symbols: {geohash!r}")

    is_lon = True
    min_lat, max_lat = -90.0, 90.0
    min_lon, max_lon = -180.0, 180.0

    for code in geohash.lower():
        hash_value = BASE32_CODES_DICT.get(code)
        if hash_value is None:
            raise InvalidEncoding(f"Invalid geohash symbol {code!r} in {geohash!r}")
        for shift in range(4, -1, -1):
            bit = (hash_value >> shift) & 1
            if is_lon:
                mid = (max_lon + min_lon) / 2
                if bit:
                    min_lon = mid
                else:
                    max_lon = mid
            else:
                mid = (max_lat + min_lat) / 2
                if bit:
                    min_lat = mid
                else:
                    max_lat = mid
            is_lon = not is_lon

    return BoundingBox(min_lat, min_lon, max_lat, max_lon)


def decode(geohash: str) -> DecodedHash:
    """Decode a geohash into its center point and per-axis error (half cell size)."""
    bbox = decode_bbox(geohash)
    lat = (bbox.min_lat + bbox.max_lat) / 2
    lon = (bbox.min_lon + bbox.max_lon) / 2
    return DecodedHash(lat, lon, bbox.max_lat - lat, bbox.max_lon - lon)


def _wrap_longitude(lon: float) -> float:
    if -180.0 <= lon < 180.0:
        return lon
    return ((lon + 180.0) % 360.0) - 180.0


def _clamp_latitude(lat: float) -> float:
    return max(-90.0, min(90.0, lat))


def neighbors(geohash: str) -> List[str]:
    """
    Return the 8 adjacent cells, clockwise from north:

        7 0 1
        6 x 2
        5 4 3

    Each neighbor is found by re-encoding the cell center shifted by one full
    cell. Longitude wraps across the antimeridian; latitude is clamped at the
    poles, so a cell on the polar edge gets itself back for the missing row.
    """
    center = decode(geohash)
    cell_height = center.lat_err * 2
    cell_width = center.lon_err * 2
    length = len(geohash)

    return [
        encode(
            _clamp_latitude(center.latitude + lat_dir * cell_height),
            _wrap_longitude(center.longitude + lon_dir * cell_width),
            length,
        )
        for lat_dir, lon_dir in NEIGHBOR_DIRECTIONS
    ]


def query_cells(geohash: str) -> List[str]:
    """The cell itself plus its neighbors, without duplicates (at most 9)."""
    cells: List[str] = []
    for cell in [geohash.lower(), *neighbors(geohash)]:
        if cell not in cells:
            cells.append(cell)
    return cells


def set_precision(radius_km: float) -> int:
    """
    Pick the hash length for a search radius.

    Uses the coarsest cell that is still below the radius, so the 3x3 block
    around the center covers the circle with as few range scans as possible.
    """
    for max_radius, precision in PRECISION_BREAKPOINTS:
        if radius_km <= max_radius:
            return precision
    return COARSEST_PRECISION


__all__ = [
    "BASE32_CODES",
    "MAX_PRECISION",
    "PRECISION_BREAKPOINTS",
    "SIGFIG_HASH_LENGTH",
    "encode",
    "decode",
    "decode_bbox",
    "neighbors",
    "query_cells",
    "set_precision",
]
