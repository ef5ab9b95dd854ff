from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from satellite_tasks.tasks.models import EngineResponse, TaskStatus


# ============================================================
# Task 관련 스키마 (비동기 작업)
# ============================================================

class AnalysisSubmitRequest(BaseModel):
    """분석 작업 제출 요청"""
    model_config = ConfigDict(populate_by_name=True)

    service_type: str = Field(alias="serviceType", min_length=1)
    parameters: Optional[Dict[str, Any]] = None


class TaskSubmitResponse(BaseModel):
    """작업 제출 응답"""
    task_id: str
    status: TaskStatus
    created_at: datetime
    poll_url: str


# ============================================================
# 에러 응답
# ============================================================


class ErrorResponse(BaseModel):
    # 서비스 예외를 HTTP 응답으로 변환할 때 쓰는 본문.
    error: str
    message: str
    engine: Optional[EngineResponse] = None
