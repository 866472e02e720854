"""
Snapshot Ingestor

Fans a merged ``environment-current`` document out to the per-domain
detectors, writes the mirrored dashboard fields, and refreshes the water
analytics so the drinking-time summary and its staleness warning follow
the latest upload.

Ingestion calls are serialized against each other so two overlapping
uploads can't both see the same previous state and double-count (or
miss) a transition.
"""

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import Any, TYPE_CHECKING

from paws_server.common.config import DetectorSettings
from paws_server.common.exceptions import PawsError
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.timestamp import utc_now
from paws_server.services.notifications import NotificationCenter
from paws_server.storage import BoundedEventLog, DocumentStore

from .detectors import DetectionContext, Detector, IngestResult, default_detectors
from .snapshot import SensorSnapshot
from .state_cache import SensorStateCache

if TYPE_CHECKING:
    from paws_server.services.analytics import AnalyticsEngine

logger = get_service_logger("ingest")

SNAPSHOT_DOCUMENT = "environment-current"
DASHBOARD_DOCUMENT = "dashboard"


class SnapshotIngestor:
    """
    Runs every detector against one snapshot.

    The SensorStateCache is passed in by the owner (the service), which
    keeps transition state per service instance and visible in tests.
    """

    def __init__(
        self,
        store: DocumentStore,
        logs: dict[str, BoundedEventLog],
        notifications: NotificationCenter,
        cache: SensorStateCache,
        settings: DetectorSettings | None = None,
        zone: tzinfo = timezone.utc,
        analytics: "AnalyticsEngine | None" = None,
        detectors: list[Detector] | None = None,
    ):
        self.store = store
        self.logs = logs
        self.notifications = notifications
        self.cache = cache
        self.settings = settings or DetectorSettings()
        self.zone = zone
        self.analytics = analytics
        self.detectors = detectors if detectors is not None else default_detectors()

        self._lock = asyncio.Lock()
        self._ingest_count = 0
        self._error_count = 0

    async def ingest(self, document: Any, now: datetime | None = None) -> IngestResult:
        """
        Process one merged snapshot document.

        Args:
            document: The stored ``environment-current`` value
            now: Override for the current time

        Returns:
            IngestResult describing logs written and notifications raised

        Raises:
            ValidationError: the document is not a valid snapshot
        """
        snapshot = SensorSnapshot.from_document(document)

        async with self._lock:
            now = now or utc_now()
            ctx = DetectionContext(
                store=self.store,
                logs=self.logs,
                notifications=self.notifications,
                settings=self.settings,
                zone=self.zone,
                now=now,
            )

            for detector in self.detectors:
                try:
                    await detector.detect(snapshot, self.cache, ctx)
                except Exception as e:
                    # One broken domain must not block the others
                    self._error_count += 1
                    ctx.result.errors.append(f"{detector.name}: {e}")
                    logger.error(f"Detector '{detector.name}' failed: {e}", exc_info=True)

            self.cache.touch(now)
            self._ingest_count += 1

            if ctx.dashboard:
                try:
                    await self.store.merge(DASHBOARD_DOCUMENT, ctx.dashboard)
                except PawsError as e:
                    ctx.result.errors.append(f"dashboard: {e}")
                    logger.error(f"Dashboard mirror failed: {e}")

            # Every upload re-checks water staleness
            if self.analytics is not None:
                await self.analytics.recompute_water(now)

        logger.debug(
            f"Ingested snapshot: {len(ctx.result.logs)} log writes, "
            f"{len(ctx.result.notifications)} notifications",
        )
        return ctx.result

    def get_stats(self) -> dict:
        return {
            "ingested": self._ingest_count,
            "detector_errors": self._error_count,
            "cache": self.cache.to_dict(),
        }
