"""GeoStream - live radius queries over a geohash-indexed store."""
__version__ = "1.0.0"

from GeoStream.errors import (
    CollaboratorError,
    GeoStreamError,
    InvalidArgument,
    InvalidEncoding,
    UnitError,
)
from GeoStream.models import FirePoint, GeoPoint, QueryOptions
from GeoStream.query import GeoClient, GeoQuery, LiveStream, get, init, make_point, to_geojson
from GeoStream.utils.geo_utils import bearing, distance
from GeoStream.utils.geohash import decode, decode_bbox, encode, neighbors, set_precision

__all__ = [
    "__version__",
    "CollaboratorError",
    "GeoStreamError",
    "InvalidArgument",
    "InvalidEncoding",
    "UnitError",
    "FirePoint",
    "GeoPoint",
    "QueryOptions",
    "GeoClient",
    "GeoQuery",
    "LiveStream",
    "get",
    "init",
    "make_point",
    "to_geojson",
    "bearing",
    "distance",
    "decode",
    "decode_bbox",
    "encode",
    "neighbors",
    "set_precision",
]
