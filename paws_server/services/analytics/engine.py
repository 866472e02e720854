"""
Analytics Engine

Recomputes the derived sections of the ``analysis`` document from the
event logs:

- water: the time of day the pet usually drinks (largest cluster of
  intake minutes) and a warning when nothing was recorded for too long
- food: per-day consumption, today vs yesterday, and a warning when
  today's intake trails the configured schedule

Each section is rebuilt from scratch and overwrites the previous one.
Failures are logged and never propagate to the caller.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any

from paws_server.common.config import AnalyticsSettings
from paws_server.common.exceptions import PawsError
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.timestamp import (
    get_zone,
    local_date,
    minute_of_day,
    minutes_to_hhmm,
    record_timestamp,
    to_iso,
    utc_now,
)
from paws_server.services.notifications import NotificationCenter, NotificationType, PushType
from paws_server.storage import DocumentStore

logger = get_service_logger("analytics")

ANALYSIS_DOCUMENT = "analysis"
FEEDING_SCHEDULE_DOCUMENT = "feeding"
WATER_EVENTS = "water-events"
FEEDING_HISTORY = "feeding-history"

STATUS_OK = "ok"
STATUS_INSUFFICIENT = "insufficient_data"

MSG_FOOD_LOW = "Food intake today is below the expected amount."


def cluster_minutes(minutes: list[int], tolerance: int) -> list[list[int]]:
    """
    Greedy time-of-day clustering.

    Minutes are visited in ascending order; the first ungrouped minute
    seeds a cluster that takes every remaining minute within
    ``tolerance`` of it.

    Example:
        [590, 600, 605, 1200], tolerance 15 → [[590, 600, 605], [1200]]
    """
    remaining = sorted(minutes)
    clusters: list[list[int]] = []
    while remaining:
        seed = remaining[0]
        clusters.append([m for m in remaining if abs(m - seed) <= tolerance])
        remaining = [m for m in remaining if abs(m - seed) > tolerance]
    return clusters


def daily_totals(entries: list[Any], zone: tzinfo = timezone.utc) -> dict[date, dict]:
    """
    Group feeding records by local calendar day.

    Returns:
        {day: {"total": grams, "count": n, "mean": grams per record}}
    """
    days: dict[date, dict] = {}
    for entry in entries:
        ts = record_timestamp(entry)
        amount = entry.get("amount") if isinstance(entry, dict) else None
        if ts is None or isinstance(amount, bool) or not isinstance(amount, (int, float)):
            continue
        bucket = days.setdefault(local_date(ts, zone), {"total": 0.0, "count": 0})
        bucket["total"] += amount
        bucket["count"] += 1

    for bucket in days.values():
        bucket["mean"] = bucket["total"] / bucket["count"]
    return days


@dataclass
class WaterAnalysis:
    """Water intake timing summary"""
    status: str
    event_count: int = 0
    most_frequent_time: str | None = None
    cluster_size: int = 0
    last_event_at: str | None = None
    hours_since_last_event: float | None = None
    warning: bool = False
    warning_message: str | None = None
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "eventCount": self.event_count,
            "mostFrequentTime": self.most_frequent_time,
            "clusterSize": self.cluster_size,
            "lastEventAt": self.last_event_at,
            "hoursSinceLastEvent": self.hours_since_last_event,
            "warning": self.warning,
            "warningMessage": self.warning_message,
            "updatedAt": self.updated_at,
        }


@dataclass
class FoodAnalysis:
    """Food consumption trend"""
    status: str
    today_total: float = 0.0
    today_mean: float = 0.0
    yesterday_total: float | None = None
    yesterday_mean: float | None = None
    compare_past_data: float | None = None
    expected_daily: float = 0.0
    food_warning: bool = False
    days: dict[str, dict] = field(default_factory=dict)
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "todayTotal": self.today_total,
            "todayMean": self.today_mean,
            "yesterdayTotal": self.yesterday_total,
            "yesterdayMean": self.yesterday_mean,
            "comparePastData": self.compare_past_data,
            "expectedDaily": self.expected_daily,
            "foodWarning": self.food_warning,
            "days": self.days,
            "updatedAt": self.updated_at,
        }


class AnalyticsEngine:
    """Derives the ``analysis`` document from the event logs"""

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationCenter,
        settings: AnalyticsSettings | None = None,
    ):
        self.store = store
        self.notifications = notifications
        self.settings = settings or AnalyticsSettings()
        self.zone = get_zone(self.settings.timezone)

    async def _read_list(self, name: str) -> list:
        value = await self.store.read_or(name, [])
        return value if isinstance(value, list) else []

    async def _write_section(self, section: str, result: dict) -> None:
        await self.store.merge(ANALYSIS_DOCUMENT, {section: result})

    async def _warn(self, message: str, now: datetime) -> None:
        try:
            await self.notifications.notify(
                message,
                NotificationType.WARNING,
                PushType.SYSTEM_ALERT,
                now=now,
            )
        except PawsError as e:
            logger.error(f"Analytics notification failed: {e}")

    async def recompute_water(self, now: datetime | None = None) -> WaterAnalysis | None:
        """Rebuild ``analysis.water``; returns None if it could not be computed"""
        now = now or utc_now()
        try:
            analysis = await self._analyze_water(now)
            await self._write_section("water", analysis.to_dict())
        except PawsError as e:
            logger.error(f"Water analysis failed: {e}")
            return None

        if analysis.warning:
            await self._warn(analysis.warning_message, now)
        return analysis

    async def _analyze_water(self, now: datetime) -> WaterAnalysis:
        events = await self._read_list(WATER_EVENTS)
        stamps = [ts for ts in (record_timestamp(e, ("ts",)) for e in events) if ts is not None]

        if not stamps:
            return WaterAnalysis(status=STATUS_INSUFFICIENT, updated_at=to_iso(now))

        minutes = [minute_of_day(ts, self.zone) for ts in stamps]
        clusters = cluster_minutes(minutes, self.settings.cluster_tolerance_min)
        # max() keeps the earliest cluster on ties
        largest = max(clusters, key=len)
        mean_minute = sum(largest) / len(largest)

        last_event = max(stamps)
        hours_since = (now - last_event).total_seconds() / 3600
        warning = hours_since > self.settings.water_stale_hours

        return WaterAnalysis(
            status=STATUS_OK,
            event_count=len(stamps),
            most_frequent_time=minutes_to_hhmm(mean_minute),
            cluster_size=len(largest),
            last_event_at=to_iso(last_event),
            hours_since_last_event=round(hours_since, 2),
            warning=warning,
            warning_message=(
                f"No water intake detected in the last "
                f"{self.settings.water_stale_hours:g} hours."
                if warning else None
            ),
            updated_at=to_iso(now),
        )

    async def recompute_food(self, now: datetime | None = None) -> FoodAnalysis | None:
        """Rebuild ``analysis.food``; returns None if it could not be computed"""
        now = now or utc_now()
        try:
            analysis = await self._analyze_food(now)
            await self._write_section("food", analysis.to_dict())
        except PawsError as e:
            logger.error(f"Food analysis failed: {e}")
            return None

        if analysis.food_warning:
            await self._warn(MSG_FOOD_LOW, now)
        return analysis

    async def refresh(self) -> None:
        """Recompute every section against the current time"""
        now = utc_now()
        await self.recompute_water(now)
        await self.recompute_food(now)

    async def expected_daily_food(self) -> float:
        """Meals per day × meal size, from the feeding schedule"""
        schedule = await self.store.read_or(FEEDING_SCHEDULE_DOCUMENT, {})
        if not isinstance(schedule, dict):
            schedule = {}

        meals = sum(1 for key in ("meal1Time", "meal2Time") if schedule.get(key))
        if meals == 0:
            meals = self.settings.default_meals

        meal_amount = schedule.get("mealAmount")
        if isinstance(meal_amount, bool) or not isinstance(meal_amount, (int, float)) or meal_amount <= 0:
            meal_amount = self.settings.default_meal_amount_g

        return float(meals * meal_amount)

    async def _analyze_food(self, now: datetime) -> FoodAnalysis:
        entries = await self._read_list(FEEDING_HISTORY)
        days = daily_totals(entries, self.zone)

        today = local_date(now, self.zone)
        yesterday = today - timedelta(days=1)
        today_stats = days.get(today)
        yesterday_stats = days.get(yesterday)

        today_total = today_stats["total"] if today_stats else 0.0
        today_mean = today_stats["mean"] if today_stats else 0.0

        compare = None
        if yesterday_stats and yesterday_stats["mean"]:
            compare = round(today_mean / yesterday_stats["mean"] - 1, 4)

        expected = await self.expected_daily_food()
        food_warning = today_total < self.settings.food_warning_ratio * expected

        return FoodAnalysis(
            status=STATUS_OK if days else STATUS_INSUFFICIENT,
            today_total=today_total,
            today_mean=round(today_mean, 2),
            yesterday_total=yesterday_stats["total"] if yesterday_stats else None,
            yesterday_mean=round(yesterday_stats["mean"], 2) if yesterday_stats else None,
            compare_past_data=compare,
            expected_daily=expected,
            food_warning=food_warning,
            days={
                day.isoformat(): {
                    "total": stats["total"],
                    "count": stats["count"],
                    "mean": round(stats["mean"], 2),
                }
                for day, stats in sorted(days.items())
            },
            updated_at=to_iso(now),
        )
