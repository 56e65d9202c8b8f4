"""Tests for the geohash codec, neighbors and precision selection."""
import math

import pytest

from GeoStream.errors import InvalidArgument, InvalidEncoding
from GeoStream.utils.geohash import (
    BASE32_CODES,
    MAX_PRECISION,
    decode,
    decode_bbox,
    encode,
    neighbors,
    query_cells,
    set_precision,
)

SAMPLE_POINTS = [
    (38.897, -77.037),
    (57.64911, 10.40744),
    (-33.8688, 151.2093),
    (0.0, 0.0),
    (-89.5, -179.5),
    (89.5, 179.5),
    (40.1164, -88.2434),
]


# --- encode / decode ---


def test_known_vectors():
    assert encode(42.6, -5.6, 5) == "ezs42"
    assert encode(57.64911, 10.40744, 11) == "u4pruydqqvj"


def test_default_precision_is_nine():
    assert len(encode(38.897, -77.037)) == 9


def test_washington_point_is_stable_and_decodes_within_5m():
    first = encode(38.897, -77.037, 9)
    assert first == encode(38.897, -77.037, 9)
    assert first.startswith("dqc")

    decoded = decode(first)
    # 1e-5 deg lat ~ 1.1m; a 9 char cell is ~4.8m x 4.8m
    assert abs(decoded.latitude - 38.897) * 111_320 < 5
    assert abs(decoded.longitude + 77.037) * 111_320 * math.cos(math.radians(38.897)) < 5


@pytest.mark.parametrize("lat,lon", SAMPLE_POINTS)
def test_decode_within_error_bounds(lat, lon):
    for n in range(1, 10):
        decoded = decode(encode(lat, lon, n))
        assert abs(decoded.latitude - lat) <= decoded.lat_err
        assert abs(decoded.longitude - lon) <= decoded.lon_err


@pytest.mark.parametrize("lat,lon", SAMPLE_POINTS)
def test_error_bounds_shrink_with_length(lat, lon):
    previous = decode(encode(lat, lon, 1))
    for n in range(2, MAX_PRECISION + 1):
        current = decode(encode(lat, lon, n))
        assert current.lat_err < previous.lat_err
        assert current.lon_err < previous.lon_err
        previous = current


@pytest.mark.parametrize("lat,lon", SAMPLE_POINTS)
def test_prefix_monotonicity(lat, lon):
    for n in range(1, MAX_PRECISION):
        assert encode(lat, lon, n + 1).startswith(encode(lat, lon, n))


def test_hash_uses_only_base32_alphabet():
    for lat, lon in SAMPLE_POINTS:
        assert set(encode(lat, lon, MAX_PRECISION)) <= set(BASE32_CODES)


def test_decode_bbox_contains_point():
    bbox = decode_bbox(encode(40.1164, -88.2434, 7))
    assert bbox.min_lat <= 40.1164 <= bbox.max_lat
    assert bbox.min_lon <= -88.2434 <= bbox.max_lon


def test_decode_bbox_first_symbol():
    # "0" is the south-west corner cell of the world
    assert decode_bbox("0") == (-90.0, -180.0, -45.0, -135.0)


def test_decode_is_case_insensitive():
    assert decode("EZS42") == decode("ezs42")


@pytest.mark.parametrize("bad", ["", "abc", "ezs4i", "ezs4l", "ezs4o", "ezs 4", "0" * 19, None, 42])
def test_decode_rejects_malformed_hashes(bad):
    with pytest.raises(InvalidEncoding):
        decode(bad)


@pytest.mark.parametrize("precision", [0, -1, 19, 2.5, "x", True])
def test_encode_rejects_bad_precision(precision):
    with pytest.raises(InvalidArgument):
        encode(10.0, 10.0, precision)


@pytest.mark.parametrize(
    "lat,lon",
    [(90.1, 0.0), (-90.1, 0.0), (0.0, 180.5), (0.0, -181.0), (float("nan"), 0.0), (0.0, float("inf")), ("x", 0.0)],
)
def test_encode_rejects_bad_coordinates(lat, lon):
    with pytest.raises(InvalidArgument):
        encode(lat, lon, 5)


def test_encode_accepts_range_edges():
    assert encode(90.0, 180.0, 3)
    assert encode(-90.0, -180.0, 3) == "000"


# --- auto precision ---


def test_auto_precision_from_decimal_places():
    auto = encode("57.64911", "10.40744", "auto")
    assert len(auto) == 12
    assert auto.startswith("u4pruydqqvj")


def test_auto_precision_uses_the_longer_fraction():
    assert len(encode("42.6", "-5.6001", "auto")) == 11


def test_auto_precision_without_decimals_is_one_symbol():
    assert len(encode("42", "-5", "auto")) == 1


def test_auto_precision_requires_strings():
    with pytest.raises(InvalidArgument):
        encode(57.64911, 10.40744, "auto")


# --- neighbors ---


def test_neighbors_returns_eight_distinct_same_length_hashes():
    center = encode(38.897, -77.037, 6)
    result = neighbors(center)
    assert len(result) == 8
    assert len(set(result)) == 8
    assert center not in result
    assert all(len(h) == len(center) for h in result)


@pytest.mark.parametrize("precision", [2, 4, 5, 7, 9])
def test_neighbors_are_adjacent_in_compass_order(precision):
    center_hash = encode(38.897, -77.037, precision)
    c = decode_bbox(center_hash)
    n, ne, e, se, s, sw, w, nw = [decode_bbox(h) for h in neighbors(center_hash)]

    assert n.min_lat == c.max_lat and n.min_lon == c.min_lon
    assert s.max_lat == c.min_lat and s.min_lon == c.min_lon
    assert e.min_lon == c.max_lon and e.min_lat == c.min_lat
    assert w.max_lon == c.min_lon and w.min_lat == c.min_lat
    assert ne.min_lat == c.max_lat and ne.min_lon == c.max_lon
    assert se.max_lat == c.min_lat and se.min_lon == c.max_lon
    assert sw.max_lat == c.min_lat and sw.max_lon == c.min_lon
    assert nw.min_lat == c.max_lat and nw.max_lon == c.min_lon


def test_neighbors_wrap_across_antimeridian():
    center_hash = encode(10.0, 179.99, 4)
    east = decode_bbox(neighbors(center_hash)[2])
    center = decode_bbox(center_hash)
    assert center.max_lon == 180.0
    assert east.min_lon == -180.0


def test_neighbors_clamp_at_north_pole():
    center_hash = encode(89.99, 10.0, 3)
    result = neighbors(center_hash)
    # N collapses onto the cell itself, NE/NW onto E/W
    assert result[0] == center_hash
    assert result[1] == result[2]
    assert result[7] == result[6]


def test_query_cells_center_first_without_duplicates():
    center_hash = encode(38.897, -77.037, 5)
    cells = query_cells(center_hash)
    assert cells[0] == center_hash
    assert len(cells) == 9
    assert cells[1:] == neighbors(center_hash)


def test_query_cells_shrink_at_pole():
    cells = query_cells(encode(89.99, 10.0, 3))
    assert len(cells) == 6
    assert len(set(cells)) == 6


# --- precision selection ---


@pytest.mark.parametrize(
    "radius,expected",
    [
        (0.001, 9),
        (0.00477, 9),
        (0.005, 8),
        (0.0382, 8),
        (0.1, 7),
        (0.153, 7),
        (1.0, 6),
        (1.22, 6),
        (1.3, 5),
        (4.89, 5),
        (10, 4),
        (39.1, 4),
        (100, 3),
        (156, 3),
        (1000, 2),
        (1250, 2),
        (1251, 1),
        (20000, 1),
    ],
)
def test_set_precision_breakpoints(radius, expected):
    assert set_precision(radius) == expected


def test_set_precision_non_increasing():
    radii = [0.0001 * (1.1 ** i) for i in range(200)]
    precisions = [set_precision(r) for r in radii]
    assert all(a >= b for a, b in zip(precisions, precisions[1:]))
    assert precisions[0] == 9 and precisions[-1] == 1
