"""
Bounded Event Logs

An event log is a document holding a JSON array of timestamped records.
Every append rebuilds the array as a bounded sequence: entries older than
the retention window are dropped and only the newest ``max_count`` are
kept, so the bounds hold after every write rather than after a cleanup.

SampledHistory adds a minimum sampling interval for high-frequency
uploads (weight, environment readings).
"""

from collections import deque
from datetime import datetime, timedelta
from typing import Any

from paws_server.common.config import LogPolicy, SampleMode
from paws_server.common.timestamp import record_timestamp, to_iso, utc_now
from paws_server.common.logging_setup import get_service_logger

from .document_store import UNCHANGED, DocumentStore

logger = get_service_logger("store.event_log")


class BoundedEventLog:
    """
    Append-only, time-windowed, size-capped record log.

    Attributes:
        name: Document name holding the log
        window: Retention window
        max_count: Maximum number of entries kept
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        window_s: float,
        max_count: int,
    ):
        if max_count <= 0:
            raise ValueError("max_count must be positive")
        if window_s <= 0:
            raise ValueError("window_s must be positive")

        self.store = store
        self.name = name
        self.window = timedelta(seconds=window_s)
        self.max_count = max_count

    @classmethod
    def from_policy(
        cls,
        store: DocumentStore,
        name: str,
        policy: LogPolicy,
        value_field: str = "value",
    ) -> "BoundedEventLog":
        """Build the right log type for a configured policy"""
        if policy.mode is SampleMode.NONE or policy.min_interval_s <= 0:
            return BoundedEventLog(store, name, policy.window_s, policy.max_count)
        return SampledHistory(
            store,
            name,
            policy.window_s,
            policy.max_count,
            min_interval_s=policy.min_interval_s,
            epsilon=policy.epsilon,
            mode=policy.mode,
            value_field=value_field,
        )

    def bound(self, entries: list, now: datetime) -> list:
        """Apply the window and the size cap to a list of entries"""
        cutoff = now - self.window
        kept: deque = deque(maxlen=self.max_count)
        for entry in entries:
            ts = record_timestamp(entry, ("ts",))
            # Undated entries are dropped
            if ts is not None and ts >= cutoff:
                kept.append(entry)
        return list(kept)

    def _add(self, entries: list, record: dict, now: datetime) -> list | object:
        """Add a record; subclasses may merge or skip (return UNCHANGED)."""
        entries.append(record)
        return entries

    async def append(self, event: dict[str, Any], now: datetime | None = None) -> list[dict]:
        """
        Append an event, tagged with the current timestamp.

        Args:
            event: Event fields (its ``ts`` is set to ``now``)
            now: Override for the current time

        Returns:
            The log after the append and pruning
        """
        entries, _ = await self.offer(event, now)
        return entries

    async def offer(self, event: dict[str, Any], now: datetime | None = None) -> tuple[list[dict], bool]:
        """Like append(), also reporting whether the log was written"""
        now = now or utc_now()
        record = {**event, "ts": to_iso(now)}
        written = False

        def apply(current: Any) -> Any:
            nonlocal written
            entries = list(current) if isinstance(current, list) else []
            added = self._add(entries, record, now)
            if added is UNCHANGED:
                return UNCHANGED
            written = True
            return self.bound(added, now)

        result = await self.store.update(self.name, apply, default=[])
        return (result if isinstance(result, list) else []), written

    async def entries(self) -> list[dict]:
        """Current entries (empty when the log doesn't exist yet)"""
        current = await self.store.read_or(self.name, [])
        return current if isinstance(current, list) else []


class SampledHistory(BoundedEventLog):
    """
    Event log with a minimum sampling interval.

    When the newest entry is younger than ``min_interval_s``:
    - SKIP mode: the append is dropped if ``value_field`` moved by less
      than ``epsilon`` (a bigger change is still recorded)
    - OVERWRITE mode: the new fields are merged into the newest entry
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        window_s: float,
        max_count: int,
        min_interval_s: float,
        epsilon: float = 0.0,
        mode: SampleMode = SampleMode.SKIP,
        value_field: str = "value",
    ):
        super().__init__(store, name, window_s, max_count)
        self.min_interval = timedelta(seconds=min_interval_s)
        self.epsilon = epsilon
        self.mode = mode
        self.value_field = value_field

    def _within_epsilon(self, last: dict, record: dict) -> bool:
        old = last.get(self.value_field)
        new = record.get(self.value_field)
        if isinstance(old, bool) or isinstance(new, bool):
            return old == new
        if not isinstance(old, (int, float)) or not isinstance(new, (int, float)):
            return False
        return abs(new - old) < self.epsilon

    def _add(self, entries: list, record: dict, now: datetime) -> list | object:
        if entries:
            last = entries[-1]
            last_ts = record_timestamp(last, ("ts",))
            if last_ts is not None and now - last_ts < self.min_interval:
                if self.mode is SampleMode.SKIP and self._within_epsilon(last, record):
                    logger.debug(f"{self.name}: sample within interval and epsilon, skipped")
                    return UNCHANGED
                if self.mode is SampleMode.OVERWRITE:
                    entries[-1] = {**last, **record}
                    return entries
        entries.append(record)
        return entries


# Field compared against the epsilon, per sampled log
SAMPLE_VALUE_FIELDS = {"weight-history": "weight"}


def build_event_logs(store: DocumentStore, policies: dict[str, LogPolicy]) -> dict[str, BoundedEventLog]:
    """One log per configured policy, keyed by document name"""
    return {
        name: BoundedEventLog.from_policy(
            store,
            name,
            policy,
            value_field=SAMPLE_VALUE_FIELDS.get(name, "value"),
        )
        for name, policy in policies.items()
    }
