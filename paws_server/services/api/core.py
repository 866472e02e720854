"""
Telemetry Core

The operations the HTTP layer exposes: generic document access, snapshot
ingestion, client actions, the feeding schedule and notification
acknowledgement. Transport-independent; every error is a PawsError.
"""

from datetime import datetime
from typing import Any

from paws_server.common.config import DetectorSettings
from paws_server.common.exceptions import UnsupportedActionError
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.timestamp import to_iso, utc_now
from paws_server.services.analytics import ANALYSIS_DOCUMENT, AnalyticsEngine
from paws_server.services.ingest import (
    DASHBOARD_DOCUMENT,
    SNAPSHOT_DOCUMENT,
    SensorSnapshot,
    SnapshotIngestor,
)
from paws_server.services.notifications import NotificationCenter
from paws_server.storage import BoundedEventLog, DocumentStore

from .models import ActionType, FeedingSchedule, parse_payload

logger = get_service_logger("api")

FEEDING_DOCUMENT = "feeding"
SETTINGS_DOCUMENT = "settings"
ENVIRONMENT_DOCUMENT = "environment"
FEEDING_HISTORY = "feeding-history"
ACTIONS_LOG = "actions"

RECENT_NOTIFICATIONS = 5


def _number(value: Any) -> float | int:
    """Numeric value of a dashboard counter; anything unparsable counts as 0"""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("g").strip())
        except ValueError:
            return 0
    return 0


def _plain(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


class TelemetryCore:
    """Boundary between the HTTP layer and the storage/analytics services"""

    def __init__(
        self,
        store: DocumentStore,
        logs: dict[str, BoundedEventLog],
        notifications: NotificationCenter,
        ingestor: SnapshotIngestor,
        analytics: AnalyticsEngine,
        settings: DetectorSettings | None = None,
    ):
        self.store = store
        self.logs = logs
        self.notifications = notifications
        self.ingestor = ingestor
        self.analytics = analytics
        self.settings = settings or DetectorSettings()

    # ------------------------------------------------------------------
    # Generic documents
    # ------------------------------------------------------------------

    async def get_document(self, name: str) -> Any:
        return await self.store.read(name)

    async def put_document(self, name: str, value: Any) -> Any:
        """Replace a document; a snapshot upload is also ingested"""
        key = self.store.resolve(name)
        if key == SNAPSHOT_DOCUMENT and isinstance(value, dict):
            SensorSnapshot.from_document(value)
            stored = await self.store.write(key, value)
            await self.ingestor.ingest(stored)
            return stored
        return await self.store.write(key, value)

    async def merge_document(self, name: str, partial: Any) -> Any:
        """Shallow-merge into a document; a snapshot upload is also ingested"""
        key = self.store.resolve(name)
        if key == SNAPSHOT_DOCUMENT:
            # Reject a bad upload before it reaches the stored snapshot
            SensorSnapshot.from_document(partial)
            merged = await self.store.merge(key, partial)
            await self.ingestor.ingest(merged)
            return merged
        return await self.store.merge(key, partial)

    async def delete_document(self, name: str) -> None:
        await self.store.remove(name)

    async def list_documents(self) -> list[str]:
        return await self.store.list_names()

    # ------------------------------------------------------------------
    # Client operations
    # ------------------------------------------------------------------

    async def record_action(self, action: Any, now: datetime | None = None) -> dict:
        """
        Apply one client action to the dashboard and log it.

        Returns:
            The dashboard after the action

        Raises:
            UnsupportedActionError: unknown action name
        """
        try:
            action_type = ActionType(action)
        except ValueError:
            raise UnsupportedActionError(action) from None

        now = now or utc_now()
        amount = _plain(self.settings.dispense_amount_g)

        def apply(current: Any) -> Any:
            dashboard = dict(current) if isinstance(current, dict) else {}

            if action_type is ActionType.TOGGLE_LIGHT:
                status = dashboard.get("deviceStatus")
                status = dict(status) if isinstance(status, dict) else {}
                light_on = not bool(dashboard.get("lightOn", status.get("lightOn")))
                dashboard["lightOn"] = light_on
                dashboard["deviceStatus"] = {**status, "lightOn": light_on}
            elif action_type is ActionType.DISPENSE_FOOD:
                dashboard["lastMeal"] = _plain(_number(dashboard.get("lastMeal")) + amount)
                dashboard["lastMealTime"] = to_iso(now)
            elif action_type is ActionType.RESET_FOOD_AMOUNT:
                dashboard["lastMeal"] = 0
            elif action_type is ActionType.REFILL_WATER:
                dashboard["waterLevel"] = 100
                dashboard["waterLevelState"] = "high"

            return dashboard

        dashboard = await self.store.update(DASHBOARD_DOCUMENT, apply, default={})

        if action_type is ActionType.DISPENSE_FOOD:
            await self.logs[FEEDING_HISTORY].append({"amount": amount, "source": "manual"}, now=now)
            await self.analytics.recompute_food(now)

        await self.logs[ACTIONS_LOG].append({"action": action_type.value}, now=now)
        logger.info(f"Action {action_type.value} applied")
        return dashboard

    async def save_feeding_schedule(
        self,
        weight: float | None = None,
        meal1_time: str | None = None,
        meal2_time: str | None = None,
        meal_amount: float | None = None,
    ) -> dict:
        """
        Replace the feeding schedule and mirror it into the dashboard.

        ``feedingTimes`` is only mirrored when both meal times are set.

        Raises:
            ValidationError: a meal time isn't HH:MM or a number is negative
        """
        schedule = parse_payload(FeedingSchedule, {
            "weight": weight,
            "meal1_time": meal1_time,
            "meal2_time": meal2_time,
            "meal_amount": meal_amount,
        })
        saved = await self.store.write(FEEDING_DOCUMENT, schedule.to_document())

        mirrored: dict[str, Any] = {}
        if schedule.weight is not None:
            mirrored["petWeight"] = schedule.weight
        if len(schedule.meal_times) == 2:
            mirrored["feedingTimes"] = schedule.meal_times
        if schedule.meal_amount is not None:
            mirrored["mealAmount"] = schedule.meal_amount
        if mirrored:
            await self.store.merge(DASHBOARD_DOCUMENT, mirrored)

        logger.info(f"Feeding schedule saved: {saved}")
        return saved

    async def acknowledge_notifications_pushed(self, times: list[str]) -> int:
        return await self.notifications.acknowledge_push(times)

    async def get_dashboard(self) -> dict:
        return await self.store.read_or(DASHBOARD_DOCUMENT, {})

    async def get_notifications(self) -> list[dict]:
        return await self.notifications.list()

    async def update_settings(self, partial: dict) -> dict:
        return await self.store.merge(SETTINGS_DOCUMENT, partial)

    async def get_analysis(self) -> dict:
        return await self.store.read_or(ANALYSIS_DOCUMENT, {})

    async def assistant_context(self, now: datetime | None = None) -> dict:
        """
        Snapshot of the pet's current state for the chat assistant.

        Missing documents are reported as empty rather than as errors.
        """
        now = now or utc_now()
        notifications = await self.notifications.list()
        return {
            "generatedAt": to_iso(now),
            "dashboard": await self.get_dashboard(),
            "feedingSchedule": await self.store.read_or(FEEDING_DOCUMENT, {}),
            "environment": await self.store.read_or(ENVIRONMENT_DOCUMENT, {}),
            "analysis": await self.get_analysis(),
            "recentNotifications": notifications[:RECENT_NOTIFICATIONS],
        }
