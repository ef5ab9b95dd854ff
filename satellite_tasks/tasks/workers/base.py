"""BaseWorker 추상 클래스"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from satellite_tasks.tasks.models import AnalysisRequest, TaskRecord, TaskStatus

if TYPE_CHECKING:
    from satellite_tasks.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    작업 하나를 실행하는 Worker 의 부모 클래스.

    task:{task_id} 항목은 이 Worker 만 진행시킨다. 모든 쓰기는
    "내가 마지막으로 쓴 값" 을 기대값으로 하는 compare-and-set 이므로
    cancel() 이 먼저 종료 상태를 써 두면 Worker 의 쓰기는 버려진다.
    """

    def __init__(
        self,
        task_id: str,
        request: AnalysisRequest,
        store: "TaskStore",
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.task_id = task_id
        self.request = request
        self.store = store
        self.cancel_event = cancel_event or asyncio.Event()
        self._last_raw: Optional[str] = None

    @abstractmethod
    async def run(self) -> Optional[TaskRecord]:
        """
        작업을 실행하고 마지막으로 기록한 레코드를 반환한다.

        Returns:
            기록한 종료 레코드. 다른 쓰기에 밀려 기록하지 못했으면 None
        """
        pass

    async def mark_running(self) -> bool:
        """작업을 running 상태로 변경한다. 이미 다른 상태가 기록돼 있으면 False."""
        record = TaskRecord(
            task_id=self.task_id,
            status=TaskStatus.RUNNING,
            type=self.request.service_type,
            message="Task is running",
        )
        raw = await self.store.transition(self.task_id, self._last_raw, record)
        if raw is None:
            return False
        self._last_raw = raw
        return True

    async def mark_finished(self, record: TaskRecord) -> Optional[TaskRecord]:
        """종료 상태(completed/error/canceled)를 기록한다."""
        raw = await self.store.transition(self.task_id, self._last_raw, record)
        if raw is None:
            logger.warning(
                f"Task {self.task_id}: dropped {record.status.value} result, entry was finalized by another writer"
            )
            return None
        self._last_raw = raw
        return record

    async def mark_failed(self, error: str) -> Optional[TaskRecord]:
        """작업을 error 상태로 변경한다."""
        record = TaskRecord(
            task_id=self.task_id,
            status=TaskStatus.ERROR,
            type=self.request.service_type,
            message=error,
        )
        return await self.mark_finished(record)
