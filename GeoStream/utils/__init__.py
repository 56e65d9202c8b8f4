"""Utilities package."""
from GeoStream.utils.logger import logger, setup_logging
from GeoStream.utils.geo_utils import bearing, distance
from GeoStream.utils.geohash import decode, decode_bbox, encode, neighbors, set_precision

__all__ = [
    "logger",
    "setup_logging",
    "bearing",
    "distance",
    "decode",
    "decode_bbox",
    "encode",
    "neighbors",
    "set_precision",
]
