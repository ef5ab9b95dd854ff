"""RedisTaskCache: 주입한 클라이언트 대역 + (가능하면) 실제 Redis"""

import fnmatch
import os
import uuid
from typing import Dict, List, Optional, Tuple

import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from satellite_tasks.tasks.cache import RedisTaskCache


class RecordingPipeline:
    """WATCH/MULTI/EXEC 흐름만 흉내 내는 파이프라인"""

    def __init__(self, client: "RecordingRedis"):
        self.client = client
        self.queued: List[Tuple[str, str, Optional[int]]] = []
        self.unwatched = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def watch(self, key: str) -> None:
        self.client.watched.append(key)

    async def get(self, key: str) -> Optional[str]:
        return self.client.data.get(key)

    async def unwatch(self) -> None:
        self.unwatched = True

    def multi(self) -> None:
        pass

    def set(self, key: str, value: str, ex: Optional[int] = None) -> "RecordingPipeline":
        self.queued.append((key, value, ex))
        return self

    async def execute(self) -> list:
        if self.client.conflict_on_execute:
            raise WatchError("Watched variable changed.")
        for key, value, ex in self.queued:
            self.client.data[key] = value
            self.client.expiry[key] = ex
        return [True] * len(self.queued)


class RecordingRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.watched: List[str] = []
        self.scan_counts: List[int] = []
        self.conflict_on_execute = False
        self.closed = False

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def scan_iter(self, match: str, count: int):
        self.scan_counts.append(count)
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction: bool = True) -> RecordingPipeline:
        assert transaction
        return RecordingPipeline(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_put_applies_ttl_when_configured():
    client = RecordingRedis()

    await RedisTaskCache(client, ttl_seconds=604800).put("task:1", "a")
    await RedisTaskCache(client, ttl_seconds=0).put("task:2", "b")

    assert client.expiry == {"task:1": 604800, "task:2": None}


@pytest.mark.asyncio
async def test_compare_and_set_on_missing_and_stale_values():
    client = RecordingRedis()
    cache = RedisTaskCache(client, ttl_seconds=60)

    assert await cache.compare_and_set("task:1", None, "running") is True
    assert client.expiry["task:1"] == 60
    assert await cache.compare_and_set("task:1", None, "completed") is False
    assert await cache.compare_and_set("task:1", "pending", "completed") is False
    assert await cache.compare_and_set("task:1", "running", "canceled") is True

    assert client.data["task:1"] == "canceled"
    assert client.watched == ["task:1"] * 4


@pytest.mark.asyncio
async def test_compare_and_set_reports_concurrent_write():
    client = RecordingRedis()
    client.data["task:1"] = "running"
    client.conflict_on_execute = True
    cache = RedisTaskCache(client)

    assert await cache.compare_and_set("task:1", "running", "completed") is False
    assert client.data["task:1"] == "running"


@pytest.mark.asyncio
async def test_scan_keys_stops_at_limit():
    client = RecordingRedis()
    for i in range(10):
        client.data[f"task:{i}"] = "x"
        client.data[f"request:{i}"] = "y"
    cache = RedisTaskCache(client)

    keys = await cache.scan_keys("task:", 4)

    assert len(keys) == 4
    assert all(k.startswith("task:") for k in keys)
    assert client.scan_counts == [RedisTaskCache.SCAN_COUNT]


@pytest.mark.asyncio
async def test_close_only_releases_owned_client():
    shared = RecordingRedis()
    await RedisTaskCache(shared).close()
    assert shared.closed is False

    owned = RecordingRedis()
    await RedisTaskCache(owned, owns_client=True).close()
    assert owned.closed is True


# ------------------------------------------------------------
# 실제 Redis (REDIS_URL) 가 떠 있을 때만
# ------------------------------------------------------------


async def connect_live_redis() -> redis.Redis:
    client = redis.from_url(
        os.getenv("REDIS_URL", "redis://localhost:6379"),
        decode_responses=True,
        socket_connect_timeout=1,
    )
    try:
        await client.ping()
    except (RedisConnectionError, OSError):
        await client.aclose()
        pytest.skip("Redis server not available")
    return client


@pytest.mark.asyncio
async def test_live_redis_compare_and_set_and_ttl():
    client = await connect_live_redis()
    key = f"task:test-{uuid.uuid4()}"
    cache = RedisTaskCache(client, ttl_seconds=120)
    try:
        assert await cache.compare_and_set(key, None, "running") is True
        assert await cache.compare_and_set(key, None, "completed") is False
        assert await cache.compare_and_set(key, "running", "canceled") is True
        assert await cache.compare_and_set(key, "running", "completed") is False

        assert await cache.get(key) == "canceled"
        assert 0 < await client.ttl(key) <= 120
    finally:
        await client.delete(key)
        await client.aclose()


@pytest.mark.asyncio
async def test_live_redis_scan_keys_limit():
    client = await connect_live_redis()
    prefix = f"task:scan-{uuid.uuid4()}:"
    cache = RedisTaskCache(client)
    keys = [f"{prefix}{i}" for i in range(5)]
    try:
        for key in keys:
            await cache.put(key, "x")

        found = await cache.scan_keys(prefix, 3)

        assert len(found) == 3
        assert set(found) <= set(keys)
    finally:
        await client.delete(*keys)
        await client.aclose()
