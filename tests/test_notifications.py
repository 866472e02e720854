from __future__ import annotations

from datetime import timedelta

import pytest

from paws_server.services.notifications import NotificationCenter, NotificationType, PushType
from paws_server.storage import DocumentStore

from conftest import NOW


@pytest.mark.asyncio
async def test_notify_records_newest_first(notifications: NotificationCenter) -> None:
    await notifications.notify("first", now=NOW)
    await notifications.notify("second", NotificationType.ALERT, now=NOW + timedelta(minutes=1))

    entries = await notifications.list()

    assert [e["message"] for e in entries] == ["second", "first"]
    assert entries[0] == {
        "message": "second",
        "type": "alert",
        "time": "2026-03-10T12:01:00.000Z",
        "pushed": False,
    }


@pytest.mark.asyncio
async def test_duplicate_suppressed_within_window(notifications: NotificationCenter) -> None:
    assert await notifications.notify("Water level is low.", now=NOW) is True
    assert await notifications.notify("Water level is low.", now=NOW + timedelta(hours=5, minutes=59)) is False

    assert len(await notifications.list()) == 1


@pytest.mark.asyncio
async def test_duplicate_after_window_replaces_stale_entry(notifications: NotificationCenter) -> None:
    await notifications.notify("Water level is low.", now=NOW)
    await notifications.notify("other", now=NOW + timedelta(hours=1))

    assert await notifications.notify("Water level is low.", now=NOW + timedelta(hours=6)) is True

    entries = await notifications.list()
    assert [e["message"] for e in entries] == ["Water level is low.", "other"]
    assert entries[0]["time"] == "2026-03-10T18:00:00.000Z"


@pytest.mark.asyncio
async def test_push_type_only_for_eligible_categories(notifications: NotificationCenter) -> None:
    await notifications.notify("water", NotificationType.ALERT, PushType.WATER_LOW, now=NOW)
    await notifications.notify("motion", NotificationType.INFO, PushType.MOTION_DETECTED, now=NOW)
    await notifications.notify("custom", push_type="not_a_category", now=NOW)

    by_message = {e["message"]: e for e in await notifications.list()}

    assert by_message["water"]["pushType"] == "water_low"
    assert "pushType" not in by_message["motion"]
    assert "pushType" not in by_message["custom"]


@pytest.mark.asyncio
async def test_list_is_capped(store: DocumentStore) -> None:
    center = NotificationCenter(store, max_entries=100)

    for i in range(105):
        await center.notify(f"message {i}", now=NOW + timedelta(seconds=i))

    entries = await center.list()
    assert len(entries) == 100
    assert entries[0]["message"] == "message 104"
    assert entries[-1]["message"] == "message 5"


@pytest.mark.asyncio
async def test_acknowledge_push_is_idempotent(notifications: NotificationCenter) -> None:
    await notifications.notify("a", push_type=PushType.WATER_LOW, now=NOW)
    await notifications.notify("b", push_type=PushType.SYSTEM_ALERT, now=NOW + timedelta(minutes=1))
    times = [e["time"] for e in await notifications.list()]

    assert await notifications.acknowledge_push(times + ["2000-01-01T00:00:00.000Z"]) == 2
    assert await notifications.acknowledge_push(times) == 0
    assert all(e["pushed"] for e in await notifications.list())


@pytest.mark.asyncio
async def test_acknowledge_without_notifications(notifications: NotificationCenter) -> None:
    assert await notifications.acknowledge_push([]) == 0
    assert await notifications.acknowledge_push(["2026-03-10T12:00:00.000Z"]) == 0
