"""Query package."""
from GeoStream.query.client import GeoClient, init, make_point
from GeoStream.query.geoquery import GeoQuery
from GeoStream.query.helpers import get, to_geojson
from GeoStream.query.stream import LiveStream, SnapshotFeed

__all__ = [
    "GeoClient",
    "GeoQuery",
    "LiveStream",
    "SnapshotFeed",
    "get",
    "init",
    "make_point",
    "to_geojson",
]
