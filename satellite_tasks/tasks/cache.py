"""Task 캐시 인터페이스와 구현 (Redis / 메모리)"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

logger = logging.getLogger(__name__)


class TaskCache(ABC):
    """오케스트레이터가 사용하는 키-값 캐시.

    task:{id}, request:{id} 두 키 계열을 같은 저장소에 둔다.
    두 계열 사이의 트랜잭션은 보장하지 않는다.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def scan_keys(self, prefix: str, limit: int) -> List[str]:
        """prefix 로 시작하는 키를 최대 limit 개까지 반환한다 (best-effort)."""
        ...

    @abstractmethod
    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        """현재 값이 expected 와 같을 때만 value 로 바꾼다. expected=None 은 '키 없음'."""
        ...

    async def close(self) -> None:
        return None


class RedisTaskCache(TaskCache):
    """Redis String 기반 캐시"""

    SCAN_COUNT = 200

    def __init__(self, client: redis.Redis, ttl_seconds: int = 0, owns_client: bool = False):
        self.redis = client
        self.ttl_seconds = ttl_seconds
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 0) -> "RedisTaskCache":
        """URL 로 연결을 만든다. 이렇게 만든 연결은 close() 에서 같이 닫는다."""
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, ttl_seconds=ttl_seconds, owns_client=True)

    async def close(self) -> None:
        if self._owns_client:
            await self.redis.aclose()

    @property
    def _ex(self) -> Optional[int]:
        return self.ttl_seconds if self.ttl_seconds > 0 else None

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def put(self, key: str, value: str) -> None:
        await self.redis.set(key, value, ex=self._ex)

    async def scan_keys(self, prefix: str, limit: int) -> List[str]:
        keys: List[str] = []
        async for key in self.redis.scan_iter(match=f"{prefix}*", count=self.SCAN_COUNT):
            keys.append(key)
            if len(keys) >= limit:
                break
        return keys

    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, value, ex=self._ex)
                await pipe.execute()
                return True
            except WatchError:
                # WATCH 이후 다른 클라이언트가 먼저 썼다
                logger.info(f"Concurrent write detected on {key}")
                return False


class InMemoryTaskCache(TaskCache):
    """프로세스 내부 dict 캐시 (테스트/로컬 실행용)"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def scan_keys(self, prefix: str, limit: int) -> List[str]:
        return [k for k in list(self._data) if k.startswith(prefix)][:limit]

    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        # 비교와 대입 사이에 await 가 없으므로 이벤트 루프 안에서 원자적이다
        if self._data.get(key) != expected:
            return False
        self._data[key] = value
        return True
