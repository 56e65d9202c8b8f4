"""GeoStream API Server - HTTP access to the store and live radius queries."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional, Set
from aiohttp import web

from GeoStream.errors import GeoStreamError, InvalidArgument
from GeoStream.models import FirePoint, GeoPoint, QueryOptions
from GeoStream.query.client import make_point
from GeoStream.query.geoquery import GeoQuery
from GeoStream.query.stream import LiveStream
from GeoStream.store.memory_store import MemoryStore
from GeoStream.utils.logger import logger
import GeoStream.config as AppConfig

TRUE_VALUES = ("1", "true", "yes", "on")


def _json_default(value: Any) -> Any:
    if isinstance(value, (GeoPoint, FirePoint)):
        return value.to_dict()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _dumps(payload: Any) -> str:
    return json.dumps(payload, default=_json_default)


class GeoStreamServer:
    """
    API server for GeoStream.

    Provides endpoints for:
    - POST   /points/{collection}          - Store a geotagged record (secured)
    - DELETE /points/{collection}/{doc_id} - Delete a record (secured)
    - GET    /within/{collection}          - Live radius query, one NDJSON line per snapshot
    - GET    /health                       - Health check
    - GET    /stats                        - Store and query statistics
    - GET    /config                       - Current configuration summary

    Security:
    - HEADERS: Require specific header for write access (format: "HeaderName: Value")
    """

    def __init__(
        self,
        store: MemoryStore,
        host: Optional[str] = None,
        port: Optional[int] = None,
        auth_header: Optional[str] = None,
    ):
        self.store = store
        self.host = host if host is not None else AppConfig.geostream_host
        self.port = port if port is not None else AppConfig.geostream_port
        self.auth_header = auth_header if auth_header is not None else AppConfig.headers
        self._queries: Set[LiveStream] = set()
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def active_queries(self) -> int:
        return len(self._queries)

    def _validate_auth(self, request: web.Request) -> bool:
        """Validate the configured auth header."""
        if not self.auth_header:
            return True

        if ":" in self.auth_header:
            header_name, expected_value = self.auth_header.split(":", 1)
            actual_value = request.headers.get(header_name.strip())
            return actual_value == expected_value.strip()

        return True

    async def handle_add_point(self, request: web.Request) -> web.Response:
        """
        Store one record.

        Expected payload:
        {
            "id": "optional-id",
            "latitude": 40.0,
            "longitude": -119.7,
            "field": "position",      (optional, default DEFAULT_FIELD)
            ... any other payload fields ...
        }
        """
        if not self._validate_auth(request):
            logger.warning(f"Rejected write with invalid auth from: {request.remote}")
            return web.Response(status=401, text="Unauthorized")

        try:
            body = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"error": "Body must be JSON"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "Body must be a JSON object"}, status=400)

        doc_id = body.pop("id", None)
        field = body.pop("field", AppConfig.default_field)
        if not isinstance(field, str) or not field:
            return web.json_response({"error": f"Field must be a non-empty string, got {field!r}"}, status=400)
        try:
            point = make_point(body.pop("latitude", None), body.pop("longitude", None))
        except InvalidArgument as e:
            return web.json_response({"error": str(e)}, status=400)

        collection = self.store.collection(request.match_info["collection"])
        data = {**body, field: point.data}
        doc_id = collection.set(str(doc_id), data) if doc_id is not None else collection.add(data)

        logger.debug(f"Stored {collection.name}/{doc_id} at {point.geopoint.coords} [{point.geohash}]")
        return web.json_response({"id": doc_id, "geohash": point.geohash})

    async def handle_delete_point(self, request: web.Request) -> web.Response:
        if not self._validate_auth(request):
            logger.warning(f"Rejected delete with invalid auth from: {request.remote}")
            return web.Response(status=401, text="Unauthorized")

        collection = self.store.collection(request.match_info["collection"])
        doc_id = request.match_info["doc_id"]
        if not collection.delete(doc_id):
            return web.json_response({"error": f"{doc_id} not found"}, status=404)
        return web.json_response({"id": doc_id, "deleted": True})

    async def handle_within(self, request: web.Request) -> web.StreamResponse:
        """
        Live radius query.

        Query params:
            lat, lon: Center (required)
            radius: Radius in km (required)
            field: Record field holding the point (default DEFAULT_FIELD)
            units: Units for diagnostic logs (default DEFAULT_UNITS)
            log: Enable diagnostic logs (default QUERY_LOG)
            snapshots: Stop after N snapshots (default: stream until disconnect)
        """
        try:
            lat = float(request.query["lat"])
            lon = float(request.query["lon"])
            radius = float(request.query["radius"])
            limit = int(request.query.get("snapshots", 0))
        except (KeyError, ValueError):
            limit = -1
        if limit < 0:
            return web.json_response(
                {"error": "lat, lon and radius are required numbers; snapshots must be an integer >= 0"},
                status=400,
            )

        if radius > AppConfig.max_radius_km:
            return web.json_response(
                {"error": f"Radius {radius} exceeds maximum of {AppConfig.max_radius_km} km"},
                status=400,
            )

        options = QueryOptions(
            units=request.query.get("units", AppConfig.default_units),
            log=request.query.get("log", str(AppConfig.query_log)).lower() in TRUE_VALUES,
        )
        field = request.query.get("field", AppConfig.default_field)
        collection = self.store.collection(request.match_info["collection"])

        try:
            stream = GeoQuery(collection).within(make_point(lat, lon), radius, field, options)
        except GeoStreamError as e:
            return web.json_response({"error": str(e)}, status=400)

        response = web.StreamResponse(headers={"Content-Type": "application/x-ndjson"})
        await response.prepare(request)

        self._queries.add(stream)
        sent = 0
        try:
            try:
                async with stream:
                    async for snapshot in stream:
                        line = _dumps({"count": len(snapshot), "results": snapshot})
                        await response.write(line.encode() + b"\n")
                        sent += 1
                        if limit and sent >= limit:
                            break
            except GeoStreamError as e:
                logger.warning(f"Query {stream.name} failed: {e}")
                await response.write(_dumps({"error": str(e)}).encode() + b"\n")
            await response.write_eof()
        except ConnectionResetError:
            # the client went away; `async with` already completed the stream
            logger.debug(f"Client disconnected from {stream.name} after {sent} snapshot(s)")
        finally:
            self._queries.discard(stream)

        return response

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "healthy"})

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Store and query statistics endpoint."""
        stats: Dict[str, Any] = {
            "store": self.store.get_stats(),
            "queries": {
                "active": self.active_queries,
                "streams": [repr(q) for q in self._queries],
            },
        }
        return web.json_response(stats)

    async def handle_config(self, request: web.Request) -> web.Response:
        """Current configuration summary."""
        config_summary = {
            "server": {
                "host": self.host,
                "port": self.port,
            },
            "query": {
                "default_field": AppConfig.default_field,
                "default_units": AppConfig.default_units,
                "log": AppConfig.query_log,
                "max_radius_km": AppConfig.max_radius_km,
            },
            "security": {
                "header_auth_enabled": bool(self.auth_header),
            },
        }
        return web.json_response(config_summary)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/points/{collection}", self.handle_add_point)
        app.router.add_delete("/points/{collection}/{doc_id}", self.handle_delete_point)
        app.router.add_get("/within/{collection}", self.handle_within)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/stats", self.handle_stats)
        app.router.add_get("/config", self.handle_config)
        return app

    async def start(self) -> None:
        """Start the API server."""
        self._app = self.build_app()

        # cancel /within handlers when their client disconnects, so the query completes
        self._runner = web.AppRunner(self._app, handler_cancellation=True)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        # port 0 binds an ephemeral port
        if not self.port and self._runner.addresses:
            self.port = self._runner.addresses[0][1]

        logger.info(f"GeoStream server started on http://{self.host}:{self.port}")
        logger.debug("  POST   /points/{collection}          - Store a record (secured)")
        logger.debug("  DELETE /points/{collection}/{doc_id} - Delete a record (secured)")
        logger.debug("  GET    /within/{collection}          - Live radius query (?lat&lon&radius)")
        logger.debug("  GET    /health                       - Health check")
        logger.debug("  GET    /stats                        - Store and query statistics")
        logger.debug("  GET    /config                       - Configuration summary")

        if self.auth_header:
            logger.info("Write header authentication enabled")

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        for stream in list(self._queries):
            stream.complete()

        if self._site:
            await self._site.stop()

        if self._runner:
            await self._runner.cleanup()

        logger.info("GeoStream server stopped")
