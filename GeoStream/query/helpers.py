"""Convenience projections over query results."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from shapely.geometry import Point, mapping

from GeoStream.models import coords_of, get_field
from GeoStream.query.stream import LiveStream, T


def to_geojson_feature(latitude: float, longitude: float, properties: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """GeoJSON Feature for one point (GeoJSON order is lon, lat)."""
    return {
        "type": "Feature",
        "geometry": mapping(Point(longitude, latitude)),
        "properties": properties if properties is not None else {},
    }


def to_geojson(records: Iterable[Dict[str, Any]], field: str, include_props: bool = False) -> Dict[str, Any]:
    """
    Convert a result list into a GeoJSON FeatureCollection.

    Args:
        records: Records (e.g. one snapshot from within())
        field: Record field holding the FirePoint
        include_props: Copy every record into its feature's properties
    """
    features: List[Dict[str, Any]] = []
    for record in records:
        latitude, longitude = coords_of(get_field(record, field))
        props = dict(record) if include_props else {}
        features.append(to_geojson_feature(latitude, longitude, props))
    return {"type": "FeatureCollection", "features": features}


async def get(stream: LiveStream[T]) -> T:
    """
    One-shot query: wait for the first result, then complete the stream.

    Example:
        nearby = await get(cities.within(center, 5, "position"))
    """
    try:
        return await stream.first()
    finally:
        stream.complete()


__all__ = ["to_geojson", "to_geojson_feature", "get"]
