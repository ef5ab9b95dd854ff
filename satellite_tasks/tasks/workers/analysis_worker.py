"""원격탐사 분석 Worker"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from satellite_tasks.errors import JobCanceled, ProcessingError
from satellite_tasks.tasks.models import AnalysisRequest, EngineResponse, TaskRecord, TaskStatus
from satellite_tasks.tasks.workers.base import BaseWorker

if TYPE_CHECKING:
    from satellite_tasks.clients.engine_client import AnalysisGateway
    from satellite_tasks.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class AnalysisWorker(BaseWorker):
    """분석 엔진을 호출하고 결과를 task:{task_id} 에 기록하는 워커"""

    def __init__(
        self,
        task_id: str,
        request: AnalysisRequest,
        store: "TaskStore",
        gateway: "AnalysisGateway",
        cancel_event: Optional[asyncio.Event] = None,
    ):
        super().__init__(task_id, request, store, cancel_event)
        self.gateway = gateway

    async def run(self) -> Optional[TaskRecord]:
        """분석을 실행한다."""
        if self.cancel_event.is_set() or not await self.mark_running():
            logger.info(f"Task {self.task_id} was finalized before it started. Skipping.")
            return None

        try:
            response = await self.gateway.analyze(
                self.request.service_type,
                self.request.parameters,
                cancel_event=self.cancel_event,
            )
            status = _terminal_status(response)

        except JobCanceled:
            # canceled 기록은 cancel() 쪽에서 한다
            logger.info(f"Task {self.task_id} interrupted by cancellation.")
            return None

        except ProcessingError as e:
            logger.error(f"Task {self.task_id} failed: {e.message}")
            return await self.mark_failed(f"Task failed: {e.message}")

        except Exception as e:
            logger.exception(f"Task {self.task_id} failed unexpectedly")
            return await self.mark_failed(f"Task failed: {e}")

        record = TaskRecord.from_engine(self.task_id, response, status)
        return await self.mark_finished(record)


def _terminal_status(response: EngineResponse) -> TaskStatus:
    """엔진 응답의 상태 문자열을 종료 상태로 변환한다."""
    try:
        status = TaskStatus.from_wire(response.status)
    except ValueError as e:
        raise ProcessingError(f"Malformed response from engine: {e}", engine_response=response) from e

    if not status.is_terminal:
        raise ProcessingError(
            f"Engine returned non-terminal status '{status.value}'",
            engine_response=response,
        )
    return status
