from typing import Any

import pytest

from next_ball.admin import clear_cache
from next_ball.nba_data.cache_store import (
    CacheKeys,
    CacheStore,
    FileCacheBackend,
    MemoryCacheBackend,
    build_cache_backend,
)


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _BrokenBackend:
    async def get(self, key: str) -> Any | None:
        raise ConnectionError("backend down")

    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        raise ConnectionError("backend down")

    async def delete(self, keys: list[str]) -> int:
        raise ConnectionError("backend down")

    async def keys(self, prefix: str) -> list[str]:
        raise ConnectionError("backend down")

    async def aclose(self) -> None:
        raise ConnectionError("backend down")


def test_cache_key_layout() -> None:
    assert CacheKeys.aggregate(1610612739) == "aggregate:1610612739"
    assert CacheKeys.aggregate_stale(1610612739).startswith(CacheKeys.AGGREGATE_PREFIX)
    assert CacheKeys.injuries(1610612739, "2026-01-25").startswith(CacheKeys.INJURIES_PREFIX)
    assert CacheKeys.head_to_head(1610612739, 1610612738) == "h2h:1610612739:1610612738"


@pytest.mark.asyncio
async def test_memory_backend_expires_entries() -> None:
    clock = _Clock()
    store = CacheStore(MemoryCacheBackend(clock=clock), namespace="t")
    await store.set("schedule", {"games": [1, 2]}, 60)
    assert await store.get("schedule") == {"games": [1, 2]}
    clock.now += 61
    assert await store.get("schedule") is None


@pytest.mark.asyncio
async def test_memory_backend_returns_copies() -> None:
    store = CacheStore(MemoryCacheBackend(), namespace="t")
    value = {"rows": [1]}
    await store.set("k", value, 60)
    value["rows"].append(2)
    cached = await store.get("k")
    cached["rows"].append(3)
    assert await store.get("k") == {"rows": [1]}


@pytest.mark.asyncio
async def test_file_backend_round_trip_and_expiry(tmp_path) -> None:
    clock = _Clock()
    store = CacheStore(FileCacheBackend(tmp_path, clock=clock), namespace="t")
    await store.set("aggregate:1610612739", {"team_id": 1610612739}, 30)
    assert await store.get("aggregate:1610612739") == {"team_id": 1610612739}
    assert await store.keys_matching("aggregate:") == ["aggregate:1610612739"]
    clock.now += 31
    assert await store.get("aggregate:1610612739") is None
    assert list(tmp_path.glob("*.json")) == []


@pytest.mark.asyncio
async def test_file_backend_lists_only_live_keys(tmp_path) -> None:
    clock = _Clock()
    store = CacheStore(FileCacheBackend(tmp_path, clock=clock), namespace="t")
    await store.set("aggregate:1610612739", {"team_id": 1610612739}, 30)
    await store.set("injuries:1610612739:2026-01-25", [], 120)
    clock.now += 31
    assert await store.keys_matching() == ["injuries:1610612739:2026-01-25"]
    assert len(list(tmp_path.glob("*.json"))) == 1
    result = await clear_cache(store)
    assert result["cleared"] == 1


@pytest.mark.asyncio
async def test_keys_matching_is_namespaced() -> None:
    backend = MemoryCacheBackend()
    ours = CacheStore(backend, namespace="a")
    theirs = CacheStore(backend, namespace="b")
    await ours.set("injuries:1:2026-01-25", [], 60)
    await ours.set("schedule", [], 60)
    await theirs.set("injuries:2:2026-01-25", [], 60)
    assert await ours.keys_matching("injuries:") == ["injuries:1:2026-01-25"]
    assert await ours.delete("schedule", "missing") == 1
    assert await ours.keys_matching() == ["injuries:1:2026-01-25"]


@pytest.mark.asyncio
async def test_failing_backend_reads_as_miss() -> None:
    store = CacheStore(_BrokenBackend(), namespace="t")
    await store.set("schedule", [], 60)
    assert await store.get("schedule") is None
    assert await store.delete("schedule") == 0
    assert await store.keys_matching("") == []
    await store.aclose()


@pytest.mark.asyncio
async def test_disabled_cache_never_stores() -> None:
    store = CacheStore(build_cache_backend("none"))
    await store.set("schedule", [1], 60)
    assert await store.get("schedule") is None
    assert await store.keys_matching() == []


def test_build_cache_backend_kinds(tmp_path) -> None:
    assert isinstance(build_cache_backend("memory"), MemoryCacheBackend)
    file_backend = build_cache_backend("file", cache_dir=str(tmp_path))
    assert isinstance(file_backend, FileCacheBackend)
    assert build_cache_backend("none") is None
