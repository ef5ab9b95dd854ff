import pytest
from pydantic import ValidationError

from satellite_tasks.config import Settings

ENV_NAMES = [
    "REDIS_URL",
    "CACHE_BACKEND",
    "ENGINE_BASE_URL",
    "ENGINE_RETRY_BACKOFF_SECONDS",
    "ANALYSIS_VALID_TYPES",
    "TASK_WORKER_POOL_SIZE",
    "TASK_QUEUE_MAXSIZE",
    "RATE_LIMIT_MAX_REQUESTS",
    "CORS_ALLOW_ORIGINS",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    # 작업 디렉터리의 .env 가 섞이지 않도록
    monkeypatch.chdir(tmp_path)


def test_defaults_from_empty_environment():
    settings = Settings()

    assert settings.cache_backend == "redis"
    assert settings.valid_service_types == ["ndvi", "water", "land"]
    assert settings.worker_pool_size == 10
    assert settings.rate_limit_max_requests == 60
    assert settings.task_ttl_seconds == 604800
    assert settings.cors_allow_origins == ["*"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CACHE_BACKEND", "Memory")
    monkeypatch.setenv("ENGINE_BASE_URL", "http://engine:5000/")
    monkeypatch.setenv("ANALYSIS_VALID_TYPES", " NDVI , water,,")
    monkeypatch.setenv("TASK_WORKER_POOL_SIZE", "4")
    monkeypatch.setenv("TASK_QUEUE_MAXSIZE", "50")
    monkeypatch.setenv("ENGINE_RETRY_BACKOFF_SECONDS", "0.5")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.cache_backend == "memory"
    assert settings.engine_base_url == "http://engine:5000"
    assert settings.valid_service_types == ["ndvi", "water"]
    assert settings.worker_pool_size == 4
    assert settings.queue_maxsize == 50
    assert settings.engine_retry_backoff_seconds == 0.5
    assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]
    assert settings.log_level == "DEBUG"


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("TASK_WORKER_POOL_SIZE=7\nRATE_LIMIT_MAX_REQUESTS=0\n")

    settings = Settings()

    assert settings.worker_pool_size == 7
    assert settings.rate_limit_max_requests == 0


def test_invalid_number_names_the_setting(monkeypatch):
    monkeypatch.setenv("TASK_WORKER_POOL_SIZE", "many")

    with pytest.raises(ValidationError) as exc_info:
        Settings()

    assert "worker_pool_size" in str(exc_info.value).lower()


def test_keyword_arguments_use_field_names():
    settings = Settings(cache_backend="memory", valid_service_types=["NDVI"], worker_pool_size=2)

    assert settings.cache_backend == "memory"
    assert settings.valid_service_types == ["ndvi"]
    assert settings.worker_pool_size == 2
