"""
Retention Janitor

Periodically drops records older than the retention horizon from every
stored document. Runs under the same per-document locks as live writers,
so a sweep never loses a concurrent append.

Rules per document:
- list: entries whose ``ts`` (or ``time``) is too old are dropped;
  undated entries stay
- object with its own top-level ``ts``/``time`` that is too old: emptied
- object holding lists (chart series): each list pruned as above
- anything else: untouched
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from paws_server.common.exceptions import PawsError
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.timestamp import record_timestamp, to_iso, utc_now
from paws_server.storage import UNCHANGED, DocumentStore

logger = get_service_logger("retention")


@dataclass
class SweepReport:
    """Outcome of one retention sweep"""
    started_at: str
    documents_scanned: int = 0
    documents_changed: int = 0
    records_removed: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "startedAt": self.started_at,
            "documentsScanned": self.documents_scanned,
            "documentsChanged": self.documents_changed,
            "recordsRemoved": self.records_removed,
            "failures": self.failures,
        }


def _prune_list(entries: list, cutoff: datetime) -> tuple[list, int]:
    kept = []
    for entry in entries:
        ts = record_timestamp(entry)
        if ts is not None and ts < cutoff:
            continue
        kept.append(entry)
    return kept, len(entries) - len(kept)


def prune_document(value: Any, cutoff: datetime) -> tuple[Any, int]:
    """
    Apply the retention rules to one document value.

    Returns:
        (new value or UNCHANGED, number of records removed)
    """
    if isinstance(value, list):
        kept, removed = _prune_list(value, cutoff)
        return (kept, removed) if removed else (UNCHANGED, 0)

    if not isinstance(value, dict):
        return UNCHANGED, 0

    ts = record_timestamp(value)
    if ts is not None:
        return ({}, 1) if ts < cutoff else (UNCHANGED, 0)

    pruned = dict(value)
    removed = 0
    for name, item in value.items():
        if isinstance(item, list):
            kept, count = _prune_list(item, cutoff)
            if count:
                pruned[name] = kept
                removed += count

    return (pruned, removed) if removed else (UNCHANGED, 0)


class RetentionJanitor:
    """Sweeps every document in the store against the retention horizon"""

    def __init__(self, store: DocumentStore, max_age_days: int = 31):
        self.store = store
        self.max_age = timedelta(days=max_age_days)

        self._sweep_count = 0
        self._last_report: SweepReport | None = None

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Run one sweep. Never raises; failures are recorded on the report."""
        now = now or utc_now()
        cutoff = now - self.max_age
        report = SweepReport(started_at=to_iso(now))

        try:
            names = await self.store.list_names()
        except Exception as e:
            logger.error(f"Retention sweep could not list documents: {e}")
            report.failures["*"] = str(e)
            return self._finish(report)

        for name in names:
            report.documents_scanned += 1
            removed = 0

            def apply(current: Any) -> Any:
                nonlocal removed
                updated, removed = prune_document(current, cutoff)
                return updated

            try:
                await self.store.update(name, apply)
            except PawsError as e:
                # Deleted mid-sweep, or unreadable; skip it
                report.failures[name] = str(e)
                logger.warning(f"Retention skipped {name}: {e}")
                continue
            except Exception as e:
                report.failures[name] = str(e)
                logger.error(f"Retention failed on {name}: {e}", exc_info=True)
                continue

            if removed:
                report.documents_changed += 1
                report.records_removed += removed

        return self._finish(report)

    def _finish(self, report: SweepReport) -> SweepReport:
        self._sweep_count += 1
        self._last_report = report
        if report.records_removed or report.failures:
            logger.info(
                f"Retention sweep: removed {report.records_removed} records from "
                f"{report.documents_changed}/{report.documents_scanned} documents "
                f"({len(report.failures)} failures)",
            )
        else:
            logger.debug(f"Retention sweep: nothing to remove ({report.documents_scanned} documents)")
        return report

    def get_stats(self) -> dict:
        return {
            "sweeps": self._sweep_count,
            "max_age_days": self.max_age.days,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }
