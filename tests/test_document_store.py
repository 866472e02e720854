from __future__ import annotations

import asyncio
import json

import pytest

from paws_server.common.exceptions import (
    DocumentNotFoundError,
    InvalidPathError,
    MalformedJSONError,
    ValidationError,
)
from paws_server.storage import UNCHANGED, DocumentStore, strip_absent


@pytest.mark.asyncio
async def test_write_then_read_returns_stored_value(store: DocumentStore) -> None:
    value = {"petWeight": 4.2, "feedingTimes": ["08:00", "18:00"], "nested": {"a": 1}}

    stored = await store.write("dashboard", value)

    assert stored == value
    assert await store.read("dashboard") == value
    assert await store.read("dashboard.json") == value


@pytest.mark.asyncio
async def test_write_drops_absent_object_fields(store: DocumentStore) -> None:
    stored = await store.write("settings", {"a": 1, "b": None, "c": {"d": None, "e": 2}, "f": [None, 1]})

    assert stored == {"a": 1, "c": {"e": 2}, "f": [None, 1]}
    assert await store.read("settings") == stored


def test_strip_absent_leaves_scalars_alone() -> None:
    assert strip_absent(3) == 3
    assert strip_absent([{"a": None}]) == [{}]


@pytest.mark.parametrize(
    ("name", "key"),
    [
        ("water-events", "water-events"),
        ("water-events.json", "water-events"),
        ("logs/motion", "logs/motion"),
        ("logs\\motion", "logs/motion"),
        ("./logs//motion.json", "logs/motion"),
    ],
)
def test_resolve_canonical_keys(name: str, key: str) -> None:
    assert DocumentStore.resolve(name) == key


@pytest.mark.parametrize(
    "name",
    ["", "   ", "/etc/passwd", "\\windows", "C:\\data", "../secret", "logs/../../x", "a\x00b", ".", "a/.json", 42, None],
)
def test_resolve_rejects_unsafe_names(name: object) -> None:
    with pytest.raises(InvalidPathError):
        DocumentStore.resolve(name)


@pytest.mark.asyncio
async def test_rejected_names_never_touch_the_filesystem(store: DocumentStore) -> None:
    with pytest.raises(InvalidPathError):
        await store.write("../outside", {"x": 1})

    assert not (store.data_dir.parent / "outside.json").exists()
    assert not store.data_dir.exists()


@pytest.mark.asyncio
async def test_read_missing_document(store: DocumentStore) -> None:
    with pytest.raises(DocumentNotFoundError):
        await store.read("missing")

    assert await store.read_or("missing", []) == []


@pytest.mark.asyncio
async def test_read_malformed_document(store: DocumentStore) -> None:
    store.data_dir.mkdir(parents=True)
    (store.data_dir / "broken.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(MalformedJSONError):
        await store.read("broken")


@pytest.mark.asyncio
async def test_write_rejects_unserializable_value(store: DocumentStore) -> None:
    with pytest.raises(ValidationError):
        await store.write("bad", {"value": object()})


@pytest.mark.asyncio
async def test_merge_creates_and_unions(store: DocumentStore) -> None:
    assert await store.merge("settings", {"a": 1}) == {"a": 1}

    merged = await store.merge("settings", {"b": 2, "a": 3})

    assert merged == {"a": 3, "b": 2}


@pytest.mark.asyncio
async def test_merge_none_field_removes_it(store: DocumentStore) -> None:
    await store.write("settings", {"a": 1, "b": 2})

    assert await store.merge("settings", {"b": None}) == {"a": 1}


@pytest.mark.asyncio
async def test_merge_replaces_non_object_document(store: DocumentStore) -> None:
    await store.write("actions", [1, 2, 3])

    assert await store.merge("actions", {"a": 1}) == {"a": 1}


@pytest.mark.asyncio
async def test_merge_requires_object_partial(store: DocumentStore) -> None:
    with pytest.raises(ValidationError):
        await store.merge("settings", [1, 2])


@pytest.mark.asyncio
async def test_concurrent_merges_on_one_key_lose_nothing(store: DocumentStore) -> None:
    count = 50

    await asyncio.gather(*(store.merge("dashboard", {f"field{i}": i}) for i in range(count)))

    stored = await store.read("dashboard")
    assert stored == {f"field{i}": i for i in range(count)}
    assert store.active_locks() == 0


@pytest.mark.asyncio
async def test_concurrent_updates_apply_in_order(store: DocumentStore) -> None:
    def append(i: int):
        def apply(current):
            return current + [i]
        return apply

    await asyncio.gather(*(store.update("sequence", append(i), default=[]) for i in range(20)))

    assert await store.read("sequence") == list(range(20))


@pytest.mark.asyncio
async def test_busy_key_does_not_block_other_keys(store: DocumentStore, monkeypatch: pytest.MonkeyPatch) -> None:
    await store.write("slow", {"n": 0})
    release = asyncio.Event()
    run_io = store._run_io

    async def gated(func, *args):
        if args and args[0] == "slow":
            await release.wait()
        return await run_io(func, *args)

    monkeypatch.setattr(store, "_run_io", gated)

    slow = asyncio.create_task(store.merge("slow", {"n": 1}))
    await asyncio.sleep(0)

    await asyncio.wait_for(store.write("fast", {"ok": True}), timeout=2)
    assert await asyncio.wait_for(store.read("fast"), timeout=2) == {"ok": True}
    assert not slow.done()

    release.set()
    assert await asyncio.wait_for(slow, timeout=2) == {"n": 1}


@pytest.mark.asyncio
async def test_update_unchanged_skips_write(store: DocumentStore) -> None:
    result = await store.update("untouched", lambda current: UNCHANGED, default={"x": 1})

    assert result == {"x": 1}
    assert not store.path_for("untouched").exists()


@pytest.mark.asyncio
async def test_update_without_default_requires_document(store: DocumentStore) -> None:
    with pytest.raises(DocumentNotFoundError):
        await store.update("missing", lambda current: current)


@pytest.mark.asyncio
async def test_remove_and_list(store: DocumentStore) -> None:
    await store.write("dashboard", {})
    await store.write("logs/motion", [])
    await store.write("actions", [])

    assert await store.list_names() == ["actions", "dashboard", "logs/motion"]

    await store.remove("dashboard")

    assert await store.list_names() == ["actions", "logs/motion"]
    with pytest.raises(DocumentNotFoundError):
        await store.remove("dashboard")


@pytest.mark.asyncio
async def test_no_temp_files_left_behind(store: DocumentStore) -> None:
    for i in range(5):
        await store.write("dashboard", {"i": i})

    files = sorted(p.name for p in store.data_dir.iterdir())
    assert files == ["dashboard.json"]
    assert json.loads((store.data_dir / "dashboard.json").read_text(encoding="utf-8")) == {"i": 4}
