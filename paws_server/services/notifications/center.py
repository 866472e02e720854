"""
Notification Center

Deduplicated alert log stored in the ``notifications`` document, newest
first. Identity is the exact message text: a message already recorded
inside the suppression window is not recorded again.

Entries whose category is push-eligible carry a ``pushType``; the mobile
client pushes them and acknowledges by timestamp, which flips ``pushed``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable

from paws_server.common.logging_setup import get_service_logger, log_notification
from paws_server.common.timestamp import parse_timestamp, to_iso, utc_now
from paws_server.storage import UNCHANGED, DocumentStore

logger = get_service_logger("notifications")

NOTIFICATIONS_DOCUMENT = "notifications"


class NotificationType(str, Enum):
    """Display category"""
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


class PushType(str, Enum):
    """Categories understood by the mobile push handler"""
    FEEDING_TIME = "feeding_time"
    FEEDING_COMPLETE = "feeding_complete"
    WATER_LOW = "water_low"
    ABNORMAL_BARKING = "abnormal_barking"
    AIR_QUALITY_ALERT = "air_quality_alert"
    MOTION_DETECTED = "motion_detected"
    PET_ACTIVITY = "pet_activity"
    SYSTEM_ALERT = "system_alert"


# Only these categories are forwarded as device push notifications
PUSH_ELIGIBLE = frozenset({
    PushType.WATER_LOW.value,
    PushType.ABNORMAL_BARKING.value,
    PushType.AIR_QUALITY_ALERT.value,
    PushType.FEEDING_COMPLETE.value,
    PushType.SYSTEM_ALERT.value,
})


def _value(item: Any) -> Any:
    return item.value if isinstance(item, Enum) else item


@dataclass
class Notification:
    """A recorded notification"""
    message: str
    type: str
    time: str
    push_type: str | None = None
    pushed: bool = False

    def to_dict(self) -> dict:
        data = {
            "message": self.message,
            "type": self.type,
            "time": self.time,
            "pushed": self.pushed,
        }
        if self.push_type:
            data["pushType"] = self.push_type
        return data


class NotificationCenter:
    """
    Records notifications with message-level dedup.

    Features:
    - Suppression window per identical message
    - Push-eligibility allowlist
    - Bounded list length
    - Idempotent push acknowledgement
    """

    def __init__(
        self,
        store: DocumentStore,
        suppression_hours: float = 6.0,
        max_entries: int = 100,
    ):
        self.store = store
        self.suppression = timedelta(hours=suppression_hours)
        self.max_entries = max_entries

    def _is_live(self, entry: Any, now: datetime) -> bool:
        ts = parse_timestamp(entry.get("time")) if isinstance(entry, dict) else None
        return ts is not None and now - ts < self.suppression

    async def notify(
        self,
        message: str,
        type: NotificationType | str = NotificationType.INFO,
        push_type: PushType | str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Record a notification unless an identical one is still live.

        Args:
            message: Notification text (its identity)
            type: Display category
            push_type: Push category; kept only if push-eligible
            now: Override for the current time

        Returns:
            True if a new entry was recorded
        """
        now = now or utc_now()
        type_value = _value(type)
        push_value = _value(push_type)
        if push_value not in PUSH_ELIGIBLE:
            push_value = None

        notification = Notification(
            message=message,
            type=type_value,
            time=to_iso(now),
            push_type=push_value,
        )
        recorded = False

        def apply(current: Any) -> Any:
            nonlocal recorded
            entries = current if isinstance(current, list) else []

            for entry in entries:
                if isinstance(entry, dict) and entry.get("message") == message:
                    if self._is_live(entry, now):
                        return UNCHANGED

            # Stale instances of the same message are replaced, not updated
            entries = [
                e for e in entries
                if not (isinstance(e, dict) and e.get("message") == message)
            ]
            entries.insert(0, notification.to_dict())
            recorded = True
            return entries[: self.max_entries]

        await self.store.update(NOTIFICATIONS_DOCUMENT, apply, default=[])

        if recorded:
            log_notification(logger, message, type_value, push_value)
        else:
            logger.debug(f"Suppressed duplicate notification: {message}")
        return recorded

    async def acknowledge_push(self, times: Iterable[str]) -> int:
        """
        Mark notifications as pushed by exact ``time`` match.

        Returns:
            Number of entries that changed (already-pushed ones don't count)
        """
        wanted = {t for t in times if isinstance(t, str)}
        if not wanted:
            return 0

        changed = 0

        def apply(current: Any) -> Any:
            nonlocal changed
            if not isinstance(current, list):
                return UNCHANGED
            for entry in current:
                if (
                    isinstance(entry, dict)
                    and entry.get("time") in wanted
                    and not entry.get("pushed")
                ):
                    entry["pushed"] = True
                    changed += 1
            return current if changed else UNCHANGED

        await self.store.update(NOTIFICATIONS_DOCUMENT, apply, default=[])
        if changed:
            logger.info(f"Acknowledged {changed} pushed notification(s)")
        return changed

    async def list(self) -> list[dict]:
        """Current notifications, newest first"""
        current = await self.store.read_or(NOTIFICATIONS_DOCUMENT, [])
        return current if isinstance(current, list) else []
