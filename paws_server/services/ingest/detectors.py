"""
Snapshot Detectors

One detector per sensor domain. Each reads its own snapshot fields,
compares them with its own SensorStateCache fields, records events and
raises notifications on transitions. Fields to mirror into the dashboard
are collected on the context and written once per snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

from paws_server.common.config import DetectorSettings
from paws_server.common.logging_setup import get_service_logger, log_transition
from paws_server.common.timestamp import minute_of_day, minutes_to_hhmm, record_timestamp
from paws_server.services.notifications import NotificationCenter, NotificationType, PushType
from paws_server.storage import BoundedEventLog, DocumentStore

from .snapshot import ENVIRONMENT_METRICS, SensorSnapshot
from .state_cache import SensorStateCache

logger = get_service_logger("ingest.detectors")

WATER_EVENTS = "water-events"
MOTION_EVENTS = "motion-events"
BARK_EVENTS = "bark-events"
FEEDER_EVENTS = "feeder-events"
ACTIVITY_HISTORY = "activity-history"
WEIGHT_HISTORY = "weight-history"
ENVIRONMENT_HISTORY = "environment-history"
ENVIRONMENT_SERIES = "environment"

WATER_LOW = "low"
WATER_HIGH = "high"
FEEDER_FEEDING = "feeding"
FEEDER_IDLE = "idle"

_WATER_HIGH_WORDS = frozenset({"high", "ok", "normal", "full", "sufficient"})
_FEEDER_IDLE_WORDS = ("idle", "done", "complete", "ready")
_FEEDER_FEEDING_WORDS = ("feed", "dispens")

MSG_WATER_LOW = "Water level is low. Please refill the water bowl."
MSG_MOTION = "Motion detected near the pet house."
MSG_BARKING = "Abnormal barking detected."
MSG_FEEDING_STARTED = "Feeder started dispensing food."
MSG_FEEDING_COMPLETE = "Feeding complete."
MSG_PET_ASLEEP = "Your pet has fallen asleep."
MSG_PET_AWAKE = "Your pet is awake."
MSG_POOR_AIR = "Air quality in the pet house is poor."


@dataclass
class IngestResult:
    """What one snapshot ingestion did"""
    logs: list[str] = field(default_factory=list)
    notifications: list[str] = field(default_factory=list)
    dashboard: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    water_intake: bool = False

    def to_dict(self) -> dict:
        return {
            "logs": self.logs,
            "notifications": self.notifications,
            "dashboard": self.dashboard,
            "errors": self.errors,
            "waterIntake": self.water_intake,
        }


@dataclass
class DetectionContext:
    """Collaborators and per-snapshot output shared by the detectors"""
    store: DocumentStore
    logs: dict[str, BoundedEventLog]
    notifications: NotificationCenter
    settings: DetectorSettings
    zone: tzinfo
    now: datetime
    result: IngestResult = field(default_factory=IngestResult)

    @property
    def dashboard(self) -> dict[str, Any]:
        return self.result.dashboard

    async def record(self, log_name: str, event: dict[str, Any]) -> list[dict]:
        entries, written = await self.logs[log_name].offer(event, now=self.now)
        if written:
            self.result.logs.append(log_name)
        return entries

    async def notify(
        self,
        message: str,
        type: NotificationType,
        push_type: PushType | None = None,
    ) -> bool:
        recorded = await self.notifications.notify(message, type, push_type, now=self.now)
        if recorded:
            self.result.notifications.append(message)
        return recorded

    def mirror(self, **fields: Any) -> None:
        """Queue non-None fields for the dashboard"""
        for name, value in fields.items():
            if value is not None:
                self.result.dashboard[name] = value


class Detector:
    """Base class for per-domain detectors"""

    name = "base"

    async def detect(
        self,
        snapshot: SensorSnapshot,
        cache: SensorStateCache,
        ctx: DetectionContext,
    ) -> None:
        raise NotImplementedError


def normalize_water_state(snapshot: SensorSnapshot, settings: DetectorSettings) -> str | None:
    """
    Derive "low" / "high" from the explicit state, the boolean flag or
    the numeric level, in that order.

    Returns:
        "low", "high", or None when the reading is in between or absent
    """
    if snapshot.water_level_state:
        state = snapshot.water_level_state.strip().lower()
        if state == WATER_LOW:
            return WATER_LOW
        if state in _WATER_HIGH_WORDS:
            return WATER_HIGH

    if snapshot.water_low is not None:
        return WATER_LOW if snapshot.water_low else WATER_HIGH

    if snapshot.water_level is not None:
        if snapshot.water_level <= settings.water_low_level:
            return WATER_LOW
        if snapshot.water_level >= settings.water_high_level:
            return WATER_HIGH

    return None


def normalize_feeder_state(snapshot: SensorSnapshot) -> str | None:
    """Coarse feeder state from the status strings or the feeding flag"""
    for raw in (snapshot.feeder_state, snapshot.feeder_status):
        if not raw:
            continue
        status = raw.strip().lower()
        # "feeding complete" is idle, so check idle words first
        if any(word in status for word in _FEEDER_IDLE_WORDS):
            return FEEDER_IDLE
        if any(word in status for word in _FEEDER_FEEDING_WORDS):
            return FEEDER_FEEDING

    if snapshot.feeding is not None:
        return FEEDER_FEEDING if snapshot.feeding else FEEDER_IDLE

    return None


def is_poor_air(snapshot: SensorSnapshot) -> bool | None:
    """Explicit alert flag or an AQI label of "poor"; None without air data"""
    if snapshot.air_quality_alert is None and snapshot.aqi is None:
        return None
    if snapshot.air_quality_alert:
        return True
    return isinstance(snapshot.aqi, str) and snapshot.aqi.strip().lower() == "poor"


class WaterDetector(Detector):
    """Level drops and low-water transitions"""

    name = "water"

    async def detect(self, snapshot, cache, ctx):
        level = snapshot.water_level

        if level is not None:
            previous = cache.water_level
            if previous is not None and previous - level >= ctx.settings.water_drop_threshold:
                await ctx.record(WATER_EVENTS, {
                    "source": "level_drop",
                    "level": level,
                    "previousLevel": previous,
                    "delta": round(previous - level, 2),
                })
                ctx.result.water_intake = True
                logger.info(f"Water intake detected: level {previous} → {level}")
            cache.water_level = level

        state = normalize_water_state(snapshot, ctx.settings)
        if state is not None:
            previous_state = cache.water_state
            if state != previous_state:
                log_transition(logger, "water", previous_state, state)
            if state == WATER_LOW and previous_state != WATER_LOW:
                await ctx.record(WATER_EVENTS, {"source": "state_low", "level": level})
                ctx.result.water_intake = True
                await ctx.notify(MSG_WATER_LOW, NotificationType.ALERT, PushType.WATER_LOW)
            cache.water_state = state

        ctx.mirror(waterLevel=level, waterLevelState=state)


class MotionDetector(Detector):
    """Motion light or proximity"""

    name = "motion"

    async def detect(self, snapshot, cache, ctx):
        if snapshot.motion_light is None and snapshot.distance is None:
            return

        close = snapshot.distance is not None and snapshot.distance < ctx.settings.proximity_cm
        active = bool(snapshot.motion_light) or close

        if active:
            await ctx.record(MOTION_EVENTS, {
                "light": bool(snapshot.motion_light),
                "distance": snapshot.distance,
            })
            if not cache.motion_active:
                await ctx.notify(MSG_MOTION, NotificationType.INFO, PushType.MOTION_DETECTED)

        cache.motion_active = active


class BarkDetector(Detector):
    """Bark counts and the abnormal-barking flag"""

    name = "bark"

    async def detect(self, snapshot, cache, ctx):
        if snapshot.bark_count is not None and snapshot.bark_count > 0:
            await ctx.record(BARK_EVENTS, {"count": snapshot.bark_count})

        if snapshot.bark_alert is not None:
            if snapshot.bark_alert and not cache.bark_alert:
                await ctx.notify(MSG_BARKING, NotificationType.ALERT, PushType.ABNORMAL_BARKING)
            cache.bark_alert = snapshot.bark_alert


class FeederDetector(Detector):
    """Feeder state machine and bowl weight"""

    name = "feeder"

    async def detect(self, snapshot, cache, ctx):
        state = normalize_feeder_state(snapshot)
        weight = snapshot.feeder_weight
        if state is None and weight is None:
            return

        previous_state = cache.feeder_state
        state_changed = state is not None and state != previous_state
        weight_changed = weight is not None and weight != cache.feeder_weight

        if state_changed or weight_changed:
            await ctx.record(FEEDER_EVENTS, {
                "state": state or previous_state,
                "weight": weight if weight is not None else cache.feeder_weight,
            })

        if state_changed:
            log_transition(logger, "feeder", previous_state, state)
            if state == FEEDER_FEEDING:
                await ctx.notify(MSG_FEEDING_STARTED, NotificationType.INFO, PushType.FEEDING_TIME)
            elif previous_state == FEEDER_FEEDING:
                await ctx.notify(MSG_FEEDING_COMPLETE, NotificationType.ALERT, PushType.FEEDING_COMPLETE)
            cache.feeder_state = state

        if weight is not None:
            cache.feeder_weight = weight

        ctx.mirror(feederState=state, feederWeight=weight)


class ActivityDetector(Detector):
    """Sleeping state, activity history and long-horizon weight"""

    name = "activity"

    async def detect(self, snapshot, cache, ctx):
        sleeping = snapshot.sleeping
        weight = snapshot.pet_weight
        if sleeping is None and weight is None:
            return

        previous_sleeping = cache.sleeping
        sleep_changed = sleeping is not None and sleeping != previous_sleeping
        weight_changed = weight is not None and (
            cache.pet_weight is None
            or abs(weight - cache.pet_weight) >= ctx.settings.weight_change_kg
        )

        if sleep_changed or weight_changed:
            await ctx.record(ACTIVITY_HISTORY, {
                "sleeping": sleeping if sleeping is not None else previous_sleeping,
                "weight": weight if weight is not None else cache.pet_weight,
            })

        if sleep_changed:
            log_transition(logger, "sleeping", previous_sleeping, sleeping)

        if sleep_changed and previous_sleeping is not None:
            message = MSG_PET_ASLEEP if sleeping else MSG_PET_AWAKE
            await ctx.notify(message, NotificationType.INFO, PushType.PET_ACTIVITY)

        if sleeping is not None:
            cache.sleeping = sleeping

        if weight is not None:
            await ctx.record(WEIGHT_HISTORY, {"weight": weight})
            # Track the last recorded weight so slow drift still registers
            if weight_changed:
                cache.pet_weight = weight

        ctx.mirror(sleeping=sleeping, petWeight=weight)


class AirQualityDetector(Detector):
    """Air quality alerting plus dashboard mirroring of room sensors"""

    name = "air_quality"

    async def detect(self, snapshot, cache, ctx):
        ctx.mirror(
            aqi=snapshot.aqi,
            fanOn=snapshot.fan_on,
            motionLight=snapshot.motion_light,
            barkCount=snapshot.bark_count,
            barkAlert=snapshot.bark_alert,
            temperature=snapshot.temperature,
            humidity=snapshot.humidity,
        )

        poor = is_poor_air(snapshot)
        if poor is None:
            return
        if poor and not cache.poor_air:
            await ctx.notify(MSG_POOR_AIR, NotificationType.ALERT, PushType.AIR_QUALITY_ALERT)
        cache.poor_air = poor


def build_environment_series(
    history: list[dict],
    points: int,
    zone: tzinfo,
) -> dict[str, list[dict]]:
    """
    Per-metric chart series from the newest history entries.

    Returns:
        {metric: [{"t": "HH:MM", "v": value, "ts": iso}, ...]}
    """
    series: dict[str, list[dict]] = {name: [] for name in ENVIRONMENT_METRICS}
    for entry in history[-points:]:
        ts = record_timestamp(entry, ("ts",))
        if ts is None:
            continue
        label = minutes_to_hhmm(minute_of_day(ts, zone))
        for name in ENVIRONMENT_METRICS:
            value = entry.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                series[name].append({"t": label, "v": value, "ts": entry["ts"]})
    return series


class EnvironmentDetector(Detector):
    """Environment history and the derived chart document"""

    name = "environment"

    async def detect(self, snapshot, cache, ctx):
        metrics = snapshot.environment_metrics()
        if not metrics:
            return

        history = await ctx.record(ENVIRONMENT_HISTORY, metrics)
        series = build_environment_series(history, ctx.settings.chart_points, ctx.zone)
        await ctx.store.write(ENVIRONMENT_SERIES, series)


def default_detectors() -> list[Detector]:
    return [
        WaterDetector(),
        MotionDetector(),
        BarkDetector(),
        FeederDetector(),
        ActivityDetector(),
        AirQualityDetector(),
        EnvironmentDetector(),
    ]
