"""Task 모델 정의"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    """작업 상태"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_wire(cls, value: Any) -> "TaskStatus":
        """엔진/캐시의 자유 형식 상태 문자열을 정규화한다.

        Raises:
            ValueError: 알 수 없는 상태 문자열
        """
        if isinstance(value, cls):
            return value
        if value is None:
            raise ValueError("status is missing")
        normalized = str(value).strip().lower()
        if normalized in _WIRE_ALIASES:
            return _WIRE_ALIASES[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown task status: {value!r}") from None


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.ERROR, TaskStatus.CANCELED})

# 엔진이 보내는 변형 표기
_WIRE_ALIASES: Dict[str, TaskStatus] = {
    "failed": TaskStatus.ERROR,
    "failure": TaskStatus.ERROR,
    "cancelled": TaskStatus.CANCELED,
    "success": TaskStatus.COMPLETED,
    "succeeded": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "queued": TaskStatus.PENDING,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineResponse(BaseModel):
    """분석 엔진 응답 (성공/실패 공통 형태)"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: Optional[str] = None
    date: Optional[str] = None
    message: Optional[str] = None
    data: Any = None
    type: Optional[str] = None
    image_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_id", "imageId"),
    )


class TaskRecord(EngineResponse):
    """캐시(task:{task_id})에 저장되는 작업 레코드.

    엔진 응답 필드를 그대로 두고 task_id/updated_at 만 덧붙인다.
    """
    task_id: str = Field(validation_alias=AliasChoices("task_id", "taskId"))
    status: TaskStatus
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> TaskStatus:
        return TaskStatus.from_wire(value)

    @classmethod
    def from_engine(cls, task_id: str, response: EngineResponse, status: TaskStatus) -> "TaskRecord":
        payload = response.model_dump(exclude={"status"})
        return cls(task_id=task_id, status=status, **payload)


class AnalysisRequest(BaseModel):
    """원본 분석 요청 (request:{task_id}). 재시도 시 그대로 다시 제출한다."""
    model_config = ConfigDict(populate_by_name=True)

    service_type: str = Field(alias="serviceType")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=utcnow, alias="submittedAt")
