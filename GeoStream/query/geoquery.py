"""Radius queries over a geohash-indexed collection."""
from __future__ import annotations

import math
import time
from numbers import Real
from typing import Any, Dict, List, Optional, Tuple

from GeoStream.errors import InvalidArgument, InvalidEncoding
from GeoStream.models import QueryOptions, coords_of, get_field
from GeoStream.query.stream import LiveStream
from GeoStream.utils.geo_utils import bearing, convert_length, distance, unit_factor
from GeoStream.utils.geohash import decode_bbox, query_cells, set_precision
from GeoStream.utils.logger import logger

# Slack on the radius for points right at the edge of the circle
RADIUS_BUFFER = 1.02
# Sorts after every base-32 symbol, so [hash, hash + "~"] is exactly the prefix
RANGE_END_SENTINEL = "~"

Record = Dict[str, Any]


def snap_to_data(doc: Any, id_field: Optional[str] = "id") -> Record:
    """Flatten a document snapshot into a dict, with its id under `id_field`."""
    data = doc.to_dict()
    if id_field:
        return {id_field: doc.id, **data}
    return data


def _validate_radius(radius: Any) -> float:
    if isinstance(radius, bool) or not isinstance(radius, Real):
        raise InvalidArgument(f"Radius must be a number, got {radius!r}")
    radius = float(radius)
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidArgument(f"Radius must be a finite number > 0, got {radius}")
    return radius


def _center_hash(center: Any) -> str:
    geohash = get_field(center, "geohash") if center is not None else None
    if not isinstance(geohash, str):
        raise InvalidEncoding(f"Center has no geohash: {center!r}")
    decode_bbox(geohash)
    return geohash.lower()


class RadiusProjection:
    """
    Turns the latest snapshot of every cell into one sorted result list.

    Records farther than the buffered radius are dropped; the rest get
    hit_metadata = {distance (km), bearing (degrees)} from the center.
    """

    def __init__(
        self,
        field: str,
        center: Tuple[float, float],
        radius: float,
        options: QueryOptions,
        name: str = "within",
    ) -> None:
        self.field = field
        self.center = center
        self.radius = radius
        self.radius_buffer = radius * RADIUS_BUFFER
        self.options = options
        self.started_at = time.monotonic()
        self._log = logger.bind(query=name)

    def __call__(self, snapshots: List[List[Any]]) -> List[Record]:
        records = [snap_to_data(doc) for docs in snapshots for doc in docs]

        hits: List[Record] = []
        for record in records:
            point = coords_of(get_field(record, self.field))
            dist = distance(self.center, point)
            if dist <= self.radius_buffer:
                record["hit_metadata"] = {
                    "distance": dist,
                    "bearing": bearing(self.center, point),
                }
                hits.append(record)

        hits.sort(key=lambda hit: hit["hit_metadata"]["distance"])

        if self.options.log:
            self.log_emission(len(records), len(hits))
        return hits

    def log_emission(self, total: int, within: int) -> None:
        try:
            units = self.options.units
            radius = convert_length(self.radius, "kilometers", units)
            elapsed_ms = (time.monotonic() - self.started_at) * 1000
            self._log.info(
                f"🌐 center {self.center} radius {radius:.6g} {units} | "
                f"📍 hits: {total} | 🟢 within radius: {within} | ⌚ elapsed: {elapsed_ms:.1f}ms"
            )
        except Exception as e:
            self._log.debug(f"diagnostics failed: {e}")

    def log_complete(self) -> None:
        if not self.options.log:
            return
        self._log.info(f"✋ complete: center {self.center}")


class GeoQuery:
    """
    Geo queries against one collection.

    `ref` is any collection exposing range(field_path, start_key, end_key)
    whose result supports on_snapshot(on_next, on_error) -> unsubscribe.
    """

    def __init__(self, ref: Any) -> None:
        self.ref = ref

    def within(
        self,
        center: Any,
        radius: float,
        field: str,
        options: Optional[QueryOptions] = None,
    ) -> LiveStream[List[Record]]:
        """
        Live query for records within `radius` km of `center`.

        Args:
            center: FirePoint (or {"geopoint", "geohash"} mapping) to search around
            radius: Search radius in kilometers
            field: Record field holding each record's FirePoint
            options: Diagnostic options (default: kilometers, no logging)

        Returns:
            LiveStream emitting result lists sorted nearest first; call
            complete() (or use it as an async context manager) to stop it

        Raises:
            InvalidArgument: bad radius, field or center coordinates
            InvalidEncoding: center geohash is malformed
            UnitError: unknown options.units
        """
        options = options or QueryOptions()
        radius = _validate_radius(radius)
        if not isinstance(field, str) or not field:
            raise InvalidArgument(f"Field must be a non-empty string, got {field!r}")
        unit_factor(options.units)

        center_hash = _center_hash(center)
        center_coords = coords_of(center)

        precision = set_precision(radius)
        cells = query_cells(center_hash[:precision])
        name = f"within({center_coords[0]:.5f}, {center_coords[1]:.5f}, {radius:g}km)"
        projection = RadiusProjection(field, center_coords, radius, options, name)

        if options.log:
            logger.info(
                f"GeoQuery within {radius}km of {center_coords}: precision {precision}, "
                f"{len(cells)} cell(s) {cells}"
            )

        return LiveStream(
            [(cell, self.query_point(cell, field)) for cell in cells],
            projection,
            name=name,
            on_complete=projection.log_complete,
        )

    def query_point(self, geohash: str, field: str) -> Any:
        """Range query over every record whose hash starts with `geohash`."""
        return self.ref.range(f"{field}.geohash", geohash, geohash + RANGE_END_SENTINEL)


__all__ = ["GeoQuery", "RadiusProjection", "RADIUS_BUFFER", "snap_to_data"]
