from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from satellite_tasks.clients.engine_client import AnalysisGateway
from satellite_tasks.config import Settings
from satellite_tasks.errors import ProcessingError, TaskServiceError
from satellite_tasks.ratelimit import RateLimiter, rate_limit_middleware
from satellite_tasks.routers import analysis as analysis_router
from satellite_tasks.routers import tasks as tasks_router
from satellite_tasks.schemas import ErrorResponse
from satellite_tasks.tasks.cache import InMemoryTaskCache, RedisTaskCache, TaskCache
from satellite_tasks.tasks.orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> TaskCache:
    # CACHE_BACKEND 값에 따라 캐시 구현을 고른다.
    if settings.cache_backend == "memory":
        return InMemoryTaskCache()
    if settings.cache_backend == "redis":
        return RedisTaskCache.from_url(settings.redis_url, ttl_seconds=settings.task_ttl_seconds)
    raise ValueError(f"Unknown CACHE_BACKEND: {settings.cache_backend}")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskServiceError)
    async def handle_task_service_error(request: Request, exc: TaskServiceError) -> JSONResponse:
        engine = None
        if isinstance(exc, ProcessingError):
            engine = exc.engine_response
            logger.error(
                f"{request.method} {request.url.path} failed: {exc.message} "
                f"(engine status={exc.status}, engine body={engine})"
            )
        body = ErrorResponse(error=exc.kind, message=str(exc), engine=engine)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "invalid request") if errors else "invalid request"
        body = ErrorResponse(error="validation_error", message=f"Invalid request: {detail}")
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


def create_app(
    settings: Optional[Settings] = None,
    cache: Optional[TaskCache] = None,
    engine_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    # FastAPI 앱과 공통 미들웨어/라우터를 구성한다.
    settings = settings or Settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 워커 풀은 앱 이벤트 루프 안에서 띄운다.
        task_cache = cache or build_cache(settings)
        gateway = AnalysisGateway(
            settings.engine_base_url,
            timeout=settings.engine_timeout_seconds,
            max_attempts=settings.engine_max_attempts,
            backoff_seconds=settings.engine_retry_backoff_seconds,
            transport=engine_transport,
        )
        orchestrator = TaskOrchestrator.build(
            task_cache,
            gateway,
            valid_service_types=settings.valid_service_types,
            pool_size=settings.worker_pool_size,
            queue_maxsize=settings.queue_maxsize,
            scan_limit=settings.scan_limit,
        )
        await orchestrator.start()
        app.state.orchestrator = orchestrator
        try:
            yield
        finally:
            await orchestrator.aclose()

    app = FastAPI(title="satellite-platform-tasks", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
    if limiter.enabled:
        app.middleware("http")(rate_limit_middleware(limiter))

    register_exception_handlers(app)

    app.include_router(tasks_router.router, prefix="/api")
    app.include_router(analysis_router.router, prefix="/api")

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        # 간단한 헬스 체크 엔드포인트.
        return {"status": "ok"}

    return app


app = create_app()
