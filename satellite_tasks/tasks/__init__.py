"""비동기 분석 작업 시스템 (task:/request: 캐시 + asyncio 워커 풀)"""

from satellite_tasks.tasks.models import AnalysisRequest, EngineResponse, TaskRecord, TaskStatus

__all__ = [
    "AnalysisRequest",
    "EngineResponse",
    "TaskRecord",
    "TaskStatus",
]
