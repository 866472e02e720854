from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from paws_server.common.config import ServiceConfig
from paws_server.services.analytics import AnalyticsEngine
from paws_server.services.api import TelemetryCore
from paws_server.services.ingest import SensorStateCache, SnapshotIngestor
from paws_server.services.notifications import NotificationCenter
from paws_server.storage import DocumentStore, build_event_logs

# Fixed reference time for deterministic windows and calendar days
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def config(data_dir: Path) -> ServiceConfig:
    config = ServiceConfig()
    config.store.data_dir = data_dir
    return config


@pytest.fixture
def store(data_dir: Path) -> DocumentStore:
    return DocumentStore(data_dir)


@pytest.fixture
def logs(store: DocumentStore, config: ServiceConfig):
    return build_event_logs(store, config.logs)


@pytest.fixture
def notifications(store: DocumentStore) -> NotificationCenter:
    return NotificationCenter(store)


@pytest.fixture
def analytics(store: DocumentStore, notifications: NotificationCenter, config: ServiceConfig) -> AnalyticsEngine:
    return AnalyticsEngine(store, notifications, config.analytics)


@pytest.fixture
def cache() -> SensorStateCache:
    return SensorStateCache()


@pytest.fixture
def ingestor(store, logs, notifications, cache, analytics, config) -> SnapshotIngestor:
    return SnapshotIngestor(
        store,
        logs,
        notifications,
        cache,
        settings=config.detectors,
        analytics=analytics,
    )


@pytest.fixture
def core(store, logs, notifications, ingestor, analytics, config) -> TelemetryCore:
    return TelemetryCore(
        store,
        logs,
        notifications,
        ingestor,
        analytics,
        settings=config.detectors,
    )
