"""
Snapshot Ingestion

Edge-triggered detection across the sensor domains:
- snapshot.py - Typed firmware payload
- state_cache.py - Previous-value cache
- detectors.py - Per-domain detectors
- ingestor.py - Fan-out and dashboard mirroring
"""

from .detectors import IngestResult, build_environment_series, default_detectors
from .ingestor import DASHBOARD_DOCUMENT, SNAPSHOT_DOCUMENT, SnapshotIngestor
from .snapshot import SensorSnapshot
from .state_cache import SensorStateCache

__all__ = [
    "DASHBOARD_DOCUMENT",
    "SNAPSHOT_DOCUMENT",
    "IngestResult",
    "SensorSnapshot",
    "SensorStateCache",
    "SnapshotIngestor",
    "build_environment_series",
    "default_detectors",
]
