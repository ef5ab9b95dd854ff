"""Task 저장소 (task:/request: 키 계열)"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from satellite_tasks.errors import ProcessingError
from satellite_tasks.tasks.cache import TaskCache
from satellite_tasks.tasks.models import AnalysisRequest, TaskRecord

logger = logging.getLogger(__name__)


class TaskStore:
    """TaskCache 위에 작업 레코드/원본 요청 직렬화를 얹은 저장소"""

    TASK_PREFIX = "task:"
    REQUEST_PREFIX = "request:"

    def __init__(self, cache: TaskCache):
        self.cache = cache

    # ------------------------------------------------------------
    # request:{task_id}
    # ------------------------------------------------------------

    async def save_request(self, task_id: str, request: AnalysisRequest) -> None:
        """원본 요청을 저장한다. submit 은 이 쓰기가 끝난 뒤에 반환한다."""
        await self.cache.put(f"{self.REQUEST_PREFIX}{task_id}", request.model_dump_json(by_alias=True))

    async def get_request(self, task_id: str) -> Optional[AnalysisRequest]:
        raw = await self.cache.get(f"{self.REQUEST_PREFIX}{task_id}")
        if raw is None:
            return None
        try:
            return AnalysisRequest.model_validate_json(raw)
        except PydanticValidationError:
            logger.error(f"Corrupt request entry for task {task_id}: {raw!r}")
            return None

    # ------------------------------------------------------------
    # task:{task_id}
    # ------------------------------------------------------------

    async def get_raw(self, task_id: str) -> Tuple[Optional[str], Optional[TaskRecord]]:
        """저장된 원문과 역직렬화된 레코드를 함께 반환한다 (CAS 기대값으로 원문을 쓴다)."""
        raw = await self.cache.get(f"{self.TASK_PREFIX}{task_id}")
        if raw is None:
            return None, None
        return raw, self._deserialize(task_id, raw)

    async def has_task(self, task_id: str) -> bool:
        """task:{task_id} 항목이 있는지만 본다 (역직렬화하지 않음)."""
        return await self.cache.get(f"{self.TASK_PREFIX}{task_id}") is not None

    async def get(self, task_id: str) -> Optional[TaskRecord]:
        _, record = await self.get_raw(task_id)
        return record

    async def transition(self, task_id: str, expected_raw: Optional[str], record: TaskRecord) -> Optional[str]:
        """현재 값이 expected_raw 일 때만 record 로 교체한다.

        Returns:
            성공 시 새로 저장한 원문, 다른 쓰기가 먼저 일어났으면 None
        """
        raw = self._serialize(record)
        ok = await self.cache.compare_and_set(f"{self.TASK_PREFIX}{task_id}", expected_raw, raw)
        return raw if ok else None

    # ------------------------------------------------------------
    # scan
    # ------------------------------------------------------------

    async def scan_task_ids(self, limit: int) -> List[str]:
        keys = await self.cache.scan_keys(self.TASK_PREFIX, limit)
        return [k[len(self.TASK_PREFIX):] for k in keys]

    async def scan_request_ids(self, limit: int) -> List[str]:
        keys = await self.cache.scan_keys(self.REQUEST_PREFIX, limit)
        return [k[len(self.REQUEST_PREFIX):] for k in keys]

    def _serialize(self, record: TaskRecord) -> str:
        return record.model_dump_json()

    def _deserialize(self, task_id: str, raw: str) -> TaskRecord:
        try:
            return TaskRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Corrupt task entry for {task_id}: {raw!r}")
            raise ProcessingError(f"Cached entry for task {task_id} is unreadable") from e
