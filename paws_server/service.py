"""
PAWS Telemetry Service

Local backend for the PAWS pet house:
- Stores named JSON documents on disk
- Ingests firmware snapshots (edge detection, event logs, notifications)
- Derives water/food analytics
- Prunes old records hourly
- Refreshes analytics periodically
- Serves the mobile client over HTTP on the LAN

Architecture:
    Firmware ──PATCH environment-current──► HTTP API ──► TelemetryCore
                                                            │
                             SnapshotIngestor ◄─────────────┤
                               │        │                   │
                    BoundedEventLogs  NotificationCenter    │
                               │                            │
                         AnalyticsEngine                    │
                               │                            │
                         DocumentStore ◄────────────────────┘
                               ▲
                      RetentionJanitor (hourly)
"""

import asyncio
import signal

from aiohttp import web

from paws_server.common.config import ServiceConfig, load_config_file
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.scheduler import ScheduledLoop
from paws_server.common.timestamp import get_zone, utc_now
from paws_server.services.analytics import AnalyticsEngine
from paws_server.services.api import TelemetryCore, create_app
from paws_server.services.ingest import SensorStateCache, SnapshotIngestor
from paws_server.services.notifications import NotificationCenter
from paws_server.services.retention import RetentionJanitor
from paws_server.storage import DocumentStore, build_event_logs

logger = get_service_logger("service")


class PawsService:
    """
    Wires the store, ingestion, analytics, retention and HTTP layers.

    The SensorStateCache belongs to this instance, so two services in one
    process (e.g. in tests) never share transition state.
    """

    def __init__(self, config: ServiceConfig | None = None):
        self.config = config or load_config_file()
        self.zone = get_zone(self.config.analytics.timezone)

        self.store = DocumentStore(self.config.store.data_dir)
        self.logs = build_event_logs(self.store, self.config.logs)
        self.notifications = NotificationCenter(
            self.store,
            suppression_hours=self.config.notifications.suppression_hours,
            max_entries=self.config.notifications.max_entries,
        )
        self.cache = SensorStateCache()
        self.analytics = AnalyticsEngine(
            self.store,
            self.notifications,
            self.config.analytics,
        )
        self.ingestor = SnapshotIngestor(
            self.store,
            self.logs,
            self.notifications,
            self.cache,
            settings=self.config.detectors,
            zone=self.zone,
            analytics=self.analytics,
        )
        self.core = TelemetryCore(
            self.store,
            self.logs,
            self.notifications,
            self.ingestor,
            self.analytics,
            settings=self.config.detectors,
        )
        self.janitor = RetentionJanitor(self.store, self.config.retention.max_age_days)
        self.app = create_app(self.core, stats=self.get_stats)

        self._running = False
        self._start_time = utc_now()
        self._shutdown_event = asyncio.Event()
        self._runner: web.AppRunner | None = None
        self._retention_scheduler: ScheduledLoop | None = None
        self._analytics_scheduler: ScheduledLoop | None = None

    async def start(self) -> None:
        """Start the service and block until a shutdown signal"""
        await self.start_background()
        self._setup_signal_handlers()
        await self._shutdown_event.wait()

    async def start_background(self) -> None:
        """Start the HTTP server and the periodic loops, then return"""
        logger.info(f"Starting PAWS service (data dir: {self.config.store.data_dir})")
        self._running = True
        self._start_time = utc_now()

        self._retention_scheduler = ScheduledLoop(
            self.config.retention.interval_s,
            self.janitor.sweep,
            name="retention",
            run_immediately=self.config.retention.run_on_start,
        )
        await self._retention_scheduler.start()

        # Keeps the water staleness warning live when no snapshots arrive
        self._analytics_scheduler = ScheduledLoop(
            self.config.analytics.refresh_interval_s,
            self.analytics.refresh,
            name="analytics",
        )
        await self._analytics_scheduler.start()

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()

        logger.info(
            f"PAWS service listening on {self.config.server.host}:{self.config.server.port} "
            f"(retention: {self.config.retention.max_age_days}d every {self.config.retention.interval_s}s)",
        )

    async def stop(self) -> None:
        """Stop the service"""
        if not self._running:
            return
        logger.info("Stopping PAWS service")
        self._running = False

        if self._retention_scheduler:
            await self._retention_scheduler.stop()
        if self._analytics_scheduler:
            await self._analytics_scheduler.stop()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        logger.info("PAWS service stopped")

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "uptime": int((utc_now() - self._start_time).total_seconds()),
            "ingest": self.ingestor.get_stats(),
            "retention": self.janitor.get_stats(),
            "schedulers": [
                scheduler.get_stats()
                for scheduler in (self._retention_scheduler, self._analytics_scheduler)
                if scheduler is not None
            ],
            "active_locks": self.store.active_locks(),
        }


async def main() -> None:
    """Main entry point"""
    service = PawsService()

    try:
        await service.start()
    finally:
        await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
