"""API package."""
from GeoStream.api.server import GeoStreamServer

__all__ = ["GeoStreamServer"]
