"""클라이언트별 고정 윈도우 요청 제한"""

from __future__ import annotations

import time
from typing import Callable, Dict, Tuple

from fastapi import Request
from fastapi.responses import PlainTextResponse


class RateLimiter:
    """키마다 window_seconds 동안 max_requests 번까지만 허용한다.

    만료된 윈도우는 window_seconds 마다 한 번씩 정리하므로 추적하는 키 수는
    최근 한 윈도우 동안 요청한 클라이언트 수를 넘지 않는다.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        # key -> (윈도우 시작 시각, 요청 수)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)

    def is_allowed(self, key: str) -> bool:
        if not self.enabled:
            return True
        now = self.clock()
        if now - self._last_sweep > self.window_seconds:
            self._sweep(now)

        started, count = self._windows.get(key, (now, 0))
        if now - started > self.window_seconds:
            # 윈도우 초기화
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        return count <= self.max_requests

    def _sweep(self, now: float) -> None:
        self._windows = {
            key: window
            for key, window in self._windows.items()
            if now - window[0] <= self.window_seconds
        }
        self._last_sweep = now


def client_key(request: Request) -> str:
    """접속 IP 를 키로 쓴다. 클라이언트가 보내는 헤더는 믿지 않는다."""
    return request.client.host if request.client else "unknown"


def rate_limit_middleware(limiter: RateLimiter):
    async def middleware(request: Request, call_next):
        if not limiter.is_allowed(client_key(request)):
            return PlainTextResponse("Rate limit exceeded", status_code=429)
        return await call_next(request)

    return middleware
