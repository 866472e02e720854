"""
Storage Layer

- document_store.py - Named JSON documents with per-key serialization
- event_log.py - Bounded, time-windowed event logs on top of the store
"""

from .document_store import DocumentStore, UNCHANGED, strip_absent
from .event_log import BoundedEventLog, SampledHistory, build_event_logs

__all__ = [
    "DocumentStore",
    "UNCHANGED",
    "strip_absent",
    "BoundedEventLog",
    "SampledHistory",
    "build_event_logs",
]
