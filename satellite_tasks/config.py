"""환경변수 기반 설정"""

from __future__ import annotations

from typing import Annotated, Any, List

from pydantic import AliasChoices, BeforeValidator, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_VALID_TYPES = "ndvi,water,land"


def parse_cors(v: Any) -> List[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, (list, str)):
        return v
    raise ValueError(v)


def parse_service_types(v: Any) -> List[str]:
    # 허용 목록은 대소문자를 가리지 않는다
    if isinstance(v, str):
        v = v.split(",")
    if isinstance(v, (list, tuple, set, frozenset)):
        return [str(i).strip().lower() for i in v if str(i).strip()]
    raise ValueError(v)


class Settings(BaseSettings):
    """서비스 전체 설정값.

    환경변수(.env 포함)에서 읽는다. 환경변수 이름이 필드 이름과 다른 항목은
    validation_alias 로 둘 다 받는다. 테스트에서는 필요한 값만 직접 넣어서 생성한다.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    redis_url: str = "redis://localhost:6379"
    cache_backend: str = "redis"

    engine_base_url: str = "http://localhost:5000"
    engine_timeout_seconds: float = 60.0
    engine_max_attempts: int = 3
    engine_retry_backoff_seconds: float = 1.5

    valid_service_types: Annotated[List[str] | str, BeforeValidator(parse_service_types)] = Field(
        default_factory=lambda: parse_service_types(DEFAULT_VALID_TYPES),
        validation_alias=AliasChoices("valid_service_types", "ANALYSIS_VALID_TYPES"),
    )

    worker_pool_size: int = Field(
        default=10,
        validation_alias=AliasChoices("worker_pool_size", "TASK_WORKER_POOL_SIZE"),
    )
    queue_maxsize: int = Field(
        default=1000,
        validation_alias=AliasChoices("queue_maxsize", "TASK_QUEUE_MAXSIZE"),
    )
    scan_limit: int = Field(
        default=1000,
        validation_alias=AliasChoices("scan_limit", "TASK_SCAN_LIMIT"),
    )
    task_ttl_seconds: int = 7 * 24 * 3600

    rate_limit_max_requests: int = 60
    rate_limit_window_seconds: float = 60.0

    cors_allow_origins: Annotated[List[str] | str, BeforeValidator(parse_cors)] = Field(
        default_factory=lambda: ["*"]
    )
    log_level: str = "INFO"

    @field_validator("cache_backend")
    @classmethod
    def _normalize_backend(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("engine_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper()
