from __future__ import annotations

from datetime import timedelta

import pytest

from paws_server.common.exceptions import ValidationError
from paws_server.services.ingest import SensorSnapshot, SensorStateCache, SnapshotIngestor
from paws_server.services.ingest.detectors import Detector, WaterDetector
from paws_server.storage import DocumentStore

from conftest import NOW


def _later(minutes: int):
    return NOW + timedelta(minutes=minutes)


def test_snapshot_parses_firmware_payload() -> None:
    snapshot = SensorSnapshot.from_document({
        "waterLevel": "45%",
        "humidity": "60 %",
        "petWeight": 4.2,
        "temperature": "NaN",
        "aqi": "Good",
        "unknownField": 1,
    })

    assert snapshot.water_level == 45.0
    assert snapshot.humidity == 60.0
    assert snapshot.pet_weight == 4.2
    assert snapshot.temperature is None
    assert snapshot.aqi == "Good"


def test_snapshot_rejects_bad_types() -> None:
    with pytest.raises(ValidationError):
        SensorSnapshot.from_document({"waterLevel": "plenty"})
    with pytest.raises(ValidationError):
        SensorSnapshot.from_document(["waterLevel", 40])


@pytest.mark.asyncio
async def test_water_level_drop_records_intake(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"waterLevel": 80}, now=NOW)
    result = await ingestor.ingest({"waterLevel": 68}, now=_later(1))

    events = await store.read("water-events")
    assert len(events) == 1
    assert events[0]["delta"] == 12
    assert events[0]["previousLevel"] == 80
    assert events[0]["source"] == "level_drop"
    assert result.water_intake is True

    analysis = await store.read("analysis")
    assert analysis["water"]["eventCount"] == 1
    assert (await store.read("dashboard"))["waterLevel"] == 68


@pytest.mark.asyncio
async def test_small_drop_or_refill_is_not_intake(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"waterLevel": 70}, now=NOW)
    await ingestor.ingest({"waterLevel": 67}, now=_later(1))
    await ingestor.ingest({"waterLevel": 95}, now=_later(2))

    assert await store.read_or("water-events", []) == []


@pytest.mark.asyncio
async def test_stale_water_warning_from_later_snapshots(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"waterLevel": 80}, now=NOW)
    await ingestor.ingest({"waterLevel": 68}, now=_later(1))
    for hour in range(1, 15):
        await ingestor.ingest({"waterLevel": 68, "temperature": 20}, now=NOW + timedelta(hours=hour))

    water = (await store.read("analysis"))["water"]
    assert water["warning"] is True
    assert water["hoursSinceLastEvent"] == pytest.approx(13.98, abs=0.01)

    alerts = [n for n in await store.read("notifications") if n.get("pushType") == "system_alert"]
    assert len(alerts) == 1


@pytest.mark.asyncio
async def test_low_water_transition(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"waterLevelState": "high"}, now=NOW)
    await ingestor.ingest({"waterLevelState": "low"}, now=_later(1))
    await ingestor.ingest({"waterLevelState": "low"}, now=_later(2))

    events = await store.read("water-events")
    assert [e["source"] for e in events] == ["state_low"]

    notifications = await store.read("notifications")
    assert len(notifications) == 1
    assert notifications[0]["pushType"] == "water_low"
    assert notifications[0]["type"] == "alert"


@pytest.mark.asyncio
async def test_low_water_from_unobserved_state_records_intake(
    store: DocumentStore, ingestor: SnapshotIngestor,
) -> None:
    result = await ingestor.ingest({"waterLow": True}, now=NOW)

    assert result.water_intake is True
    assert [e["source"] for e in await store.read("water-events")] == ["state_low"]
    assert (await store.read("notifications"))[0]["pushType"] == "water_low"


@pytest.mark.asyncio
async def test_feeder_cycle_notifies_start_and_completion(
    store: DocumentStore, ingestor: SnapshotIngestor,
) -> None:
    await ingestor.ingest({"feederState": "idle", "feederWeight": 0}, now=NOW)
    await ingestor.ingest({"feederState": "feeding", "feederWeight": 5}, now=_later(1))
    await ingestor.ingest({"feederState": "feeding complete", "feederWeight": 20}, now=_later(2))

    events = await store.read("feeder-events")
    assert [e["state"] for e in events] == ["idle", "feeding", "idle"]

    notifications = await store.read("notifications")
    assert [n["message"] for n in notifications] == ["Feeding complete.", "Feeder started dispensing food."]
    assert notifications[0]["pushType"] == "feeding_complete"
    assert "pushType" not in notifications[1]


@pytest.mark.asyncio
async def test_sleep_flip_recorded_and_notified(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"sleeping": False, "petWeight": 4.2}, now=NOW)
    result = await ingestor.ingest({"sleeping": False, "petWeight": 4.21}, now=_later(1))
    assert "weight-history" not in result.logs
    await ingestor.ingest({"sleeping": True, "petWeight": 4.21}, now=_later(2))

    activity = await store.read("activity-history")
    assert [a["sleeping"] for a in activity] == [False, True]

    notifications = await store.read("notifications")
    assert [n["message"] for n in notifications] == ["Your pet has fallen asleep."]

    # Small changes inside the sampling interval are skipped
    weights = await store.read("weight-history")
    assert [w["weight"] for w in weights] == [4.2]
    assert (await store.read("dashboard"))["petWeight"] == 4.21


@pytest.mark.asyncio
async def test_motion_notifies_on_activation_only(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"distance": 10}, now=NOW)
    await ingestor.ingest({"distance": 12, "motionLight": True}, now=_later(1))
    await ingestor.ingest({"distance": 200, "motionLight": False}, now=_later(2))

    assert len(await store.read("motion-events")) == 2
    notifications = await store.read("notifications")
    assert [n["message"] for n in notifications] == ["Motion detected near the pet house."]


@pytest.mark.asyncio
async def test_barking_and_air_quality_alerts(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"barkCount": 3, "barkAlert": True, "aqi": "Poor", "fanOn": True}, now=NOW)
    await ingestor.ingest({"barkCount": 0, "barkAlert": True, "aqi": "Poor"}, now=_later(1))

    assert [b["count"] for b in await store.read("bark-events")] == [3]

    push_types = sorted(n["pushType"] for n in await store.read("notifications"))
    assert push_types == ["abnormal_barking", "air_quality_alert"]

    dashboard = await store.read("dashboard")
    assert dashboard["aqi"] == "Poor"
    assert dashboard["fanOn"] is True
    assert dashboard["barkAlert"] is True


@pytest.mark.asyncio
async def test_environment_history_and_chart(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"temperature": 22.5, "co2": 450}, now=NOW)
    await ingestor.ingest({"temperature": 23.0, "voc": 0.2}, now=_later(5))

    history = await store.read("environment-history")
    assert [h["temperature"] for h in history] == [22.5, 23.0]

    chart = await store.read("environment")
    assert [point["t"] for point in chart["temperature"]] == ["12:00", "12:05"]
    assert [point["v"] for point in chart["co2"]] == [450]
    assert chart["methanal"] == []


@pytest.mark.asyncio
async def test_sentinel_values_are_ignored(store: DocumentStore, ingestor: SnapshotIngestor) -> None:
    await ingestor.ingest({"waterLevel": 80}, now=NOW)
    result = await ingestor.ingest({"waterLevel": "--", "temperature": "NaN"}, now=_later(1))

    assert result.logs == []
    assert await store.read_or("environment-history", []) == []


@pytest.mark.asyncio
async def test_failing_detector_does_not_block_others(store, logs, notifications, config) -> None:
    class Broken(Detector):
        name = "broken"

        async def detect(self, snapshot, cache, ctx):
            raise RuntimeError("sensor exploded")

    cache = SensorStateCache()
    ingestor = SnapshotIngestor(
        store, logs, notifications, cache,
        settings=config.detectors,
        detectors=[Broken(), WaterDetector()],
    )

    result = await ingestor.ingest({"waterLevel": 50}, now=NOW)

    assert result.errors and result.errors[0].startswith("broken")
    assert cache.water_level == 50
    assert ingestor.get_stats()["detector_errors"] == 1


@pytest.mark.asyncio
async def test_state_cache_belongs_to_ingestor_owner(store, logs, notifications, config) -> None:
    first = SnapshotIngestor(store, logs, notifications, SensorStateCache(), settings=config.detectors)
    second = SnapshotIngestor(store, logs, notifications, SensorStateCache(), settings=config.detectors)

    await first.ingest({"waterLevel": 80}, now=NOW)
    await second.ingest({"waterLevel": 60}, now=_later(1))

    # The second instance has no previous level, so no drop is detected
    assert await store.read_or("water-events", []) == []
    assert first.cache.water_level == 80
