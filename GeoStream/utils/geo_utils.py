"""Great-circle distance and bearing on a spherical Earth."""
from __future__ import annotations

from math import atan2, cos, degrees, radians, sin, sqrt
from typing import Dict, Sequence

from GeoStream.errors import UnitError

# Mean Earth radius in meters (spherical approximation)
EARTH_RADIUS = 6371008.8

DEFAULT_UNITS = "kilometers"

# Radians-to-unit factors for a spherical Earth
FACTORS: Dict[str, float] = {
    "centimeters": EARTH_RADIUS * 100,
    "centimetres": EARTH_RADIUS * 100,
    "degrees": EARTH_RADIUS / 111325,
    "feet": EARTH_RADIUS * 3.28084,
    "inches": EARTH_RADIUS * 39.37,
    "kilometers": EARTH_RADIUS / 1000,
    "kilometres": EARTH_RADIUS / 1000,
    "km": EARTH_RADIUS / 1000,
    "meters": EARTH_RADIUS,
    "metres": EARTH_RADIUS,
    "m": EARTH_RADIUS,
    "miles": EARTH_RADIUS / 1609.344,
    "mi": EARTH_RADIUS / 1609.344,
    "millimeters": EARTH_RADIUS * 1000,
    "millimetres": EARTH_RADIUS * 1000,
    "nauticalmiles": EARTH_RADIUS / 1852,
    "nmi": EARTH_RADIUS / 1852,
    "radians": 1.0,
    "yards": EARTH_RADIUS * 1.0936,
}


def unit_factor(units: str) -> float:
    """
    Look up the radians-to-unit factor.

    Raises:
        UnitError: unknown unit name
    """
    factor = FACTORS.get(units.lower()) if isinstance(units, str) else None
    if factor is None:
        raise UnitError(f"{units!r} units is invalid")
    return factor


def radians_to_length(value: float, units: str = DEFAULT_UNITS) -> float:
    return value * unit_factor(units)


def length_to_radians(length: float, units: str = DEFAULT_UNITS) -> float:
    return length / unit_factor(units)


def convert_length(length: float, from_units: str = DEFAULT_UNITS, to_units: str = DEFAULT_UNITS) -> float:
    """Convert a distance between two units, e.g. km -> miles."""
    return radians_to_length(length_to_radians(length, from_units), to_units)


def distance(p1: Sequence[float], p2: Sequence[float], units: str = DEFAULT_UNITS) -> float:
    """
    Haversine distance between two points.

    Args:
        p1, p2: (latitude, longitude) pairs in degrees
        units: Output unit (default: kilometers)

    Returns:
        Distance in `units`
    """
    lat1, lon1 = p1[0], p1[1]
    lat2, lon2 = p2[0], p2[1]

    phi1, phi2 = radians(lat1), radians(lat2)
    delta_phi = radians(lat2 - lat1)
    delta_lambda = radians(lon2 - lon1)

    a = sin(delta_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(delta_lambda / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return radians_to_length(c, units)


def _normalize_bearing(value: float) -> float:
    """Fold an angle into (-180, 180]."""
    value = value % 360.0
    if value > 180.0:
        value -= 360.0
    return value


def bearing(p1: Sequence[float], p2: Sequence[float], final: bool = False) -> float:
    """
    Compass bearing from p1 to p2 in degrees, in (-180, 180].

    0 is north and angles grow clockwise. With final=True the bearing on
    arrival at p2 is returned instead of the initial one.
    """
    if final:
        return _normalize_bearing(bearing(p2, p1) + 180.0)

    lat1, lon1 = radians(p1[0]), radians(p1[1])
    lat2, lon2 = radians(p2[0]), radians(p2[1])

    a = sin(lon2 - lon1) * cos(lat2)
    b = cos(lat1) * sin(lat2) - sin(lat1) * cos(lat2) * cos(lon2 - lon1)

    return _normalize_bearing(degrees(atan2(a, b)))


__all__ = [
    "EARTH_RADIUS",
    "FACTORS",
    "unit_factor",
    "radians_to_length",
    "length_to_radians",
    "convert_length",
    "distance",
    "bearing",
]
