"""Entry point objects for building points and queries against a store."""
from __future__ import annotations

from typing import Any, Union

from GeoStream.models import POINT_PRECISION, FirePoint, GeoPoint
from GeoStream.query.geoquery import GeoQuery
from GeoStream.utils import geo_utils
from GeoStream.utils.geohash import encode


def make_point(latitude: float, longitude: float) -> FirePoint:
    """Build the FirePoint to save on a record so it can be geo-queried."""
    geopoint = GeoPoint(latitude, longitude)
    return FirePoint(geopoint, encode(geopoint.latitude, geopoint.longitude, POINT_PRECISION))


class GeoClient:
    """
    Wraps a store (anything with collection(name)).

    Example:
        geo = GeoClient(store)
        cities = geo.query("cities")
        stream = cities.within(geo.point(40.0, -119.7), 10, "position")
    """

    def __init__(self, store: Any) -> None:
        self.store = store

    def query(self, ref: Union[str, Any]) -> GeoQuery:
        """Query object for a collection, given the collection or its name."""
        if isinstance(ref, str):
            ref = self.store.collection(ref)
        return GeoQuery(ref)

    def point(self, latitude: float, longitude: float) -> FirePoint:
        return make_point(latitude, longitude)

    def distance(self, start: FirePoint, end: FirePoint) -> float:
        """Haversine distance in kilometers."""
        return geo_utils.distance(start.geopoint.coords, end.geopoint.coords)

    def bearing(self, start: FirePoint, end: FirePoint) -> float:
        """Initial bearing in degrees, (-180, 180]."""
        return geo_utils.bearing(start.geopoint.coords, end.geopoint.coords)


def init(store: Any) -> GeoClient:
    return GeoClient(store)


__all__ = ["GeoClient", "init", "make_point"]
