"""GeoStream - live geohash radius queries.

Main entry point for the service. Wires up:
- Loguru logging
- The in-memory geo store
- The aiohttp server (record writes + NDJSON radius query streams)
- A periodic store/query stats line
"""
from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

import GeoStream.config as AppConfig
from GeoStream import __version__
from GeoStream.utils.logger import logger, setup_logging
from GeoStream.store.memory_store import MemoryStore
from GeoStream.api.server import GeoStreamServer


class GeoStreamApp:
    """
    Service lifecycle.

    start() opens the server and the stats task; shutdown() completes every
    live query (releasing its store listeners) before the server goes away.
    """

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        stats_interval: Optional[float] = None,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.server = GeoStreamServer(self.store, host=host, port=port)
        self.stats_interval = AppConfig.stats_interval if stats_interval is None else stats_interval
        self._stats_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._shutdown_event = asyncio.Event()
        logger.info("=" * 60)
        logger.info(f"🌐 GeoStream v{__version__} - live geohash radius queries")
        logger.info("=" * 60)

        await self.server.start()
        self._running = True

        if self.stats_interval > 0:
            self._stats_task = asyncio.create_task(self._stats_loop())

        base = f"http://{self.server.host}:{self.server.port}"
        logger.info("-" * 60)
        logger.info(f"  Radius queries: {base}/within/<collection>?lat=..&lon=..&radius=..")
        logger.info(f"  Writes:         {base}/points/<collection>")
        logger.info(f"  Point field: {AppConfig.default_field} | units: {AppConfig.default_units} | "
                    f"max radius: {AppConfig.max_radius_km:g}km")
        logger.info(f"  Query diagnostics: {'on' if AppConfig.query_log else 'off'}")
        logger.info("-" * 60)

    async def _stats_loop(self) -> None:
        """Log store size and open queries every `stats_interval` seconds."""
        while True:
            try:
                await asyncio.sleep(self.stats_interval)
                stats = self.store.get_stats()
                records = sum(stats["collections"].values())
                logger.info(
                    f"📊 {records} record(s) in {len(stats['collections'])} collection(s) | "
                    f"🔎 {self.server.active_queries} live query(ies) | "
                    f"👂 {stats['active_listeners']} listener(s)"
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in stats loop: {e}")

    async def run(self) -> None:
        """Serve until trigger_shutdown() is called."""
        await self.start()
        await self._shutdown_event.wait()
        await self.shutdown()

    async def shutdown(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Shutting down GeoStream...")

        if self._stats_task:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
            self._stats_task = None

        await self.server.shutdown()

        leaked = self.store.active_listeners
        if leaked:
            logger.warning(f"{leaked} store listener(s) still open after shutdown")
        logger.info("GeoStream shutdown complete")

    def trigger_shutdown(self) -> None:
        """Called from the signal handlers."""
        logger.info("Shutdown signal received")
        if self._shutdown_event is not None:
            self._shutdown_event.set()


def setup_signal_handlers(app: GeoStreamApp, loop: asyncio.AbstractEventLoop) -> None:
    if sys.platform == "win32":
        # no add_signal_handler on Windows; signal.signal runs outside the loop
        def handler(signum, frame):
            loop.call_soon_threadsafe(app.trigger_shutdown)

        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)
    else:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, app.trigger_shutdown)


async def main() -> None:
    setup_logging(
        AppConfig.log_level,
        {"to_file": AppConfig.log_file, "show_source": True},
    )

    app = GeoStreamApp()
    setup_signal_handlers(app, asyncio.get_running_loop())

    try:
        await app.run()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        await app.shutdown()
        raise


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
