"""Shared test fixtures."""

from __future__ import annotations

from typing import Callable, List

import httpx
import pytest

from satellite_tasks.clients.engine_client import AnalysisGateway
from satellite_tasks.config import Settings
from satellite_tasks.tasks.cache import InMemoryTaskCache, TaskCache
from satellite_tasks.tasks.orchestrator import TaskOrchestrator

ENGINE_URL = "http://engine.test"
VALID_TYPES = ["ndvi", "water", "land"]


class EngineRecorder:
    """Wraps a MockTransport handler and remembers every request it saw."""

    def __init__(self, handler: Callable):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def count(self, path: str) -> int:
        return sum(1 for p in self.paths() if p == path)


@pytest.fixture()
def engine_recorder() -> Callable[[Callable], EngineRecorder]:
    return EngineRecorder


@pytest.fixture()
def make_gateway() -> Callable[..., AnalysisGateway]:
    def _make(handler: Callable, max_attempts: int = 3) -> AnalysisGateway:
        return AnalysisGateway(
            ENGINE_URL,
            timeout=5,
            max_attempts=max_attempts,
            backoff_seconds=0,
            transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture()
def make_orchestrator(make_gateway) -> Callable[..., TaskOrchestrator]:
    """Build an orchestrator on an in-memory cache. Must be called inside a running loop."""

    def _make(handler: Callable, cache: TaskCache | None = None, pool_size: int = 2) -> TaskOrchestrator:
        return TaskOrchestrator.build(
            cache if cache is not None else InMemoryTaskCache(),
            make_gateway(handler),
            valid_service_types=VALID_TYPES,
            pool_size=pool_size,
            queue_maxsize=100,
        )

    return _make


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        cache_backend="memory",
        engine_base_url=ENGINE_URL,
        engine_timeout_seconds=5,
        engine_retry_backoff_seconds=0,
        valid_service_types=list(VALID_TYPES),
        worker_pool_size=2,
        rate_limit_max_requests=0,
        log_level="DEBUG",
    )
