"""Task Producer"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, Optional

from satellite_tasks.errors import ValidationError
from satellite_tasks.tasks.consumer import TaskConsumer
from satellite_tasks.tasks.models import AnalysisRequest, TaskRecord, TaskStatus
from satellite_tasks.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class TaskProducer:
    """분석 작업 제출기"""

    def __init__(self, store: TaskStore, consumer: TaskConsumer, valid_service_types: Iterable[str]):
        self.store = store
        self.consumer = consumer
        self.valid_service_types = frozenset(t.strip().lower() for t in valid_service_types)

    def validate_service_type(self, service_type: Optional[str]) -> str:
        """허용 목록에 있는 serviceType 인지 확인하고 정규화된 값을 돌려준다."""
        if service_type is None or not str(service_type).strip():
            raise ValidationError("serviceType is required")
        normalized = str(service_type).strip().lower()
        if normalized not in self.valid_service_types:
            raise ValidationError(f"Unsupported serviceType: {service_type}")
        return normalized

    async def submit(
        self,
        service_type: Optional[str],
        parameters: Optional[Dict[str, Any]] = None,
    ) -> TaskRecord:
        """
        작업을 제출한다.

        1. serviceType 검증 (실패 시 아무것도 쓰지 않음)
        2. 고유 task_id 생성
        3. request:{task_id} 에 원본 요청 저장
        4. 워커 풀 큐에 추가

        엔진 응답을 기다리지 않고 pending 레코드를 반환한다.
        """
        normalized = self.validate_service_type(service_type)
        if parameters is not None and not isinstance(parameters, dict):
            raise ValidationError("parameters must be an object")

        task_id = str(uuid.uuid4())
        request = AnalysisRequest(service_type=normalized, parameters=parameters or {})

        # 1. 원본 요청 저장
        await self.store.save_request(task_id, request)

        # 2. 큐에 작업 추가
        await self.consumer.enqueue(task_id, request)

        logger.info(f"Submitted task {task_id} (type: {normalized})")
        return pending_record(task_id, request)


def pending_record(task_id: str, request: AnalysisRequest) -> TaskRecord:
    """task:{task_id} 가 아직 없는 작업의 pending 레코드를 만든다."""
    return TaskRecord(
        task_id=task_id,
        status=TaskStatus.PENDING,
        type=request.service_type,
        message="Task is queued",
        updated_at=request.submitted_at,
    )
