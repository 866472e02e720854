from __future__ import annotations

from datetime import date, timedelta, timezone

import pytest

from paws_server.common.timestamp import to_iso, utc_now
from paws_server.services.analytics import AnalyticsEngine, cluster_minutes, daily_totals
from paws_server.storage import DocumentStore

from conftest import NOW


def _at(days_ago: int, hour: int, minute: int) -> str:
    ts = (NOW - timedelta(days=days_ago)).replace(hour=hour, minute=minute)
    return to_iso(ts)


def test_cluster_minutes_groups_within_tolerance() -> None:
    assert cluster_minutes([1200, 605, 590, 600], 15) == [[590, 600, 605], [1200]]


def test_cluster_minutes_seeded_by_earliest_minute() -> None:
    # 620 is within 15 of 605 but not of the seed 590
    assert cluster_minutes([590, 605, 620], 15) == [[590, 605], [620]]


def test_daily_totals_uses_local_calendar_day() -> None:
    entries = [
        {"amount": 20, "ts": "2026-03-09T20:00:00.000Z"},
        {"amount": 30, "ts": "2026-03-10T01:00:00.000Z"},
        {"amount": "lots", "ts": "2026-03-10T02:00:00.000Z"},
        {"amount": 10},
    ]

    utc_days = daily_totals(entries)
    kst_days = daily_totals(entries, timezone(timedelta(hours=9)))

    assert utc_days[date(2026, 3, 9)] == {"total": 20.0, "count": 1, "mean": 20.0}
    assert utc_days[date(2026, 3, 10)]["total"] == 30.0
    assert list(kst_days) == [date(2026, 3, 10)]
    assert kst_days[date(2026, 3, 10)]["mean"] == 25.0


@pytest.mark.asyncio
async def test_water_most_frequent_time(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("water-events", [
        {"source": "level_drop", "ts": _at(1, 20, 0)},   # 1200
        {"source": "level_drop", "ts": _at(1, 9, 50)},   # 590
        {"source": "level_drop", "ts": _at(0, 10, 0)},   # 600
        {"source": "level_drop", "ts": _at(0, 10, 5)},   # 605
    ])

    result = await analytics.recompute_water(NOW)

    assert result is not None
    assert result.most_frequent_time == "09:58"
    assert result.cluster_size == 3
    assert result.event_count == 4
    assert result.warning is False

    stored = (await store.read("analysis"))["water"]
    assert stored["mostFrequentTime"] == "09:58"
    assert stored["lastEventAt"] == "2026-03-10T10:05:00.000Z"
    assert await store.read_or("notifications", []) == []


@pytest.mark.asyncio
async def test_water_tie_prefers_earliest_cluster(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("water-events", [
        {"ts": _at(0, 8, 0)},
        {"ts": _at(0, 1, 40)},
    ])

    result = await analytics.recompute_water(NOW)

    assert result.most_frequent_time == "01:40"


@pytest.mark.asyncio
async def test_water_stale_warning_notifies(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("water-events", [{"ts": to_iso(NOW - timedelta(hours=13))}])

    result = await analytics.recompute_water(NOW)

    assert result.warning is True
    assert result.hours_since_last_event == 13.0
    notifications = await store.read("notifications")
    assert notifications[0]["pushType"] == "system_alert"
    assert notifications[0]["type"] == "warning"


@pytest.mark.asyncio
async def test_water_warning_survives_broken_notifications(
    store: DocumentStore, analytics: AnalyticsEngine,
) -> None:
    await store.write("water-events", [{"ts": to_iso(NOW - timedelta(hours=13))}])
    store.path_for("notifications").write_text("[", encoding="utf-8")

    result = await analytics.recompute_water(NOW)

    assert result.warning is True
    assert (await store.read("analysis"))["water"]["warning"] is True


@pytest.mark.asyncio
async def test_refresh_recomputes_against_current_time(
    store: DocumentStore, analytics: AnalyticsEngine,
) -> None:
    await store.write("water-events", [{"ts": to_iso(utc_now() - timedelta(hours=13))}])

    await analytics.refresh()

    analysis = await store.read("analysis")
    assert analysis["water"]["warning"] is True
    assert analysis["food"]["foodWarning"] is True


@pytest.mark.asyncio
async def test_water_without_events(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    result = await analytics.recompute_water(NOW)

    assert result.status == "insufficient_data"
    assert result.most_frequent_time is None
    assert (await store.read("analysis"))["water"]["eventCount"] == 0


@pytest.mark.asyncio
async def test_recompute_keeps_other_sections(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("analysis", {"food": {"todayTotal": 1}, "water": {"stale": True}})
    await store.write("water-events", [{"ts": _at(0, 10, 0)}])

    await analytics.recompute_water(NOW)

    analysis = await store.read("analysis")
    assert analysis["food"] == {"todayTotal": 1}
    assert "stale" not in analysis["water"]


@pytest.mark.asyncio
async def test_food_trend_and_warning(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("feeding-history", [
        {"amount": 40, "source": "manual", "ts": _at(1, 8, 0)},
        {"amount": 40, "source": "manual", "ts": _at(1, 18, 0)},
        {"amount": 20, "source": "manual", "ts": _at(0, 8, 0)},
    ])

    result = await analytics.recompute_food(NOW)

    assert result.today_total == 20
    assert result.yesterday_mean == 40
    assert result.compare_past_data == -0.5
    assert result.expected_daily == 400
    assert result.food_warning is True

    stored = (await store.read("analysis"))["food"]
    assert stored["comparePastData"] == -0.5
    assert stored["days"]["2026-03-09"]["count"] == 2
    notifications = await store.read("notifications")
    assert notifications[0]["pushType"] == "system_alert"


@pytest.mark.asyncio
async def test_food_expected_daily_follows_schedule(store: DocumentStore, analytics: AnalyticsEngine) -> None:
    await store.write("feeding", {"meal1Time": "08:00", "mealAmount": 50})
    await store.write("feeding-history", [{"amount": 40, "ts": _at(0, 8, 0)}])

    result = await analytics.recompute_food(NOW)

    assert result.expected_daily == 50
    assert result.food_warning is False
    assert result.compare_past_data is None
    assert result.yesterday_total is None
