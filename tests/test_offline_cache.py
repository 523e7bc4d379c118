from __future__ import annotations

import json

import pytest
from fakeredis import aioredis

from streamwatch.services.items import WatchItem
from streamwatch.services.offline_cache import KEY_PREFIX, OfflineProgressCache


class FakeStore:
    def __init__(self, reject=()):
        self.reject = set(reject)
        self.saved = []

    async def save_progress(self, user_id, item, progress, duration, force_history=False):
        if item.key in self.reject:
            return False
        self.saved.append((user_id, item.key, progress, duration))
        return True


@pytest.fixture()
async def cache():
    redis = aioredis.FakeRedis()
    yield OfflineProgressCache(redis, ttl_seconds=3600)
    await redis.aclose()


async def test_put_and_list_pending(cache) -> None:
    assert await cache.put("u1", WatchItem("550", "movie"), 100.4, 5400) is True
    assert await cache.put("u1", WatchItem("1399", "tv", 1, 2), 30, None) is True
    assert await cache.put("u2", WatchItem("603", "movie"), 5, 10) is True

    pending = await cache.pending("u1")
    assert sorted(p.item.key for p in pending) == ["movie-550", "tv-1399-s1-e2"]
    assert await cache.redis.ttl(cache.key_for("u1", WatchItem("550", "movie"))) > 0


async def test_latest_put_wins_per_unit(cache) -> None:
    item = WatchItem("550", "movie")
    await cache.put("u1", item, 100, 5400)
    await cache.put("u1", item, 200, 5400)
    [entry] = await cache.pending("u1")
    assert entry.progress_seconds == 200


async def test_sync_replays_and_keeps_rejected_entries(cache) -> None:
    await cache.put("u1", WatchItem("550", "movie"), 100, 5400)
    await cache.put("u1", WatchItem("1399", "tv", 1, 2), 30, 1800)

    store = FakeStore(reject={"tv-1399-s1-e2"})
    assert await cache.sync("u1", store) == 1
    assert store.saved == [("u1", "movie-550", 100, 5400)]
    assert [p.item.key for p in await cache.pending("u1")] == ["tv-1399-s1-e2"]

    store.reject.clear()
    assert await cache.sync("u1", store) == 1
    assert await cache.pending("u1") == []


async def test_sync_discards_entries_that_can_never_be_saved(cache) -> None:
    await cache.put("u1", WatchItem("550", "movie"), -5, 5400)
    await cache.put("u1", WatchItem("1399", "tv"), 30, 1800)
    await cache.put("u1", WatchItem("603", "movie"), 40, 100)

    store = FakeStore()
    assert await cache.sync("u1", store) == 1
    assert store.saved == [("u1", "movie-603", 40, 100)]
    assert await cache.pending("u1") == []


async def test_unreadable_entries_are_discarded(cache) -> None:
    await cache.redis.set(f"{KEY_PREFIX}:u1:movie-1", "{not json")
    await cache.redis.set(f"{KEY_PREFIX}:u1:movie-2", json.dumps({"media_type": "movie"}))
    assert await cache.pending("u1") == []
    assert await cache.redis.exists(f"{KEY_PREFIX}:u1:movie-1") == 0


async def test_discard(cache) -> None:
    item = WatchItem("550", "movie")
    await cache.put("u1", item, 100, 5400)
    await cache.discard("u1", item)
    assert await cache.pending("u1") == []


async def test_put_reports_failure_instead_of_raising() -> None:
    class BrokenRedis:
        async def set(self, *args, **kwargs):
            raise ConnectionError("redis down")

    cache = OfflineProgressCache(BrokenRedis())
    assert await cache.put("u1", WatchItem("550", "movie"), 100, 5400) is False
