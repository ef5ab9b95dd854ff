"""Task Orchestrator (제출/상태/취소/재시도/상태별 조회)"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from satellite_tasks.clients.engine_client import AnalysisGateway
from satellite_tasks.errors import InvalidStateError, NotFoundError, ProcessingError, ValidationError
from satellite_tasks.tasks.cache import TaskCache
from satellite_tasks.tasks.consumer import TaskConsumer
from satellite_tasks.tasks.models import EngineResponse, TaskRecord, TaskStatus
from satellite_tasks.tasks.producer import TaskProducer, pending_record
from satellite_tasks.tasks.store import TaskStore

logger = logging.getLogger(__name__)

TASK_ID_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")
CANCEL_WRITE_ATTEMPTS = 3
DEFAULT_SCAN_LIMIT = 1000


def validate_task_id(task_id: Optional[str]) -> str:
    if task_id is None or not task_id.strip():
        raise ValidationError("Task ID cannot be null or empty")
    if not TASK_ID_PATTERN.match(task_id):
        raise ValidationError("Task ID must contain only alphanumeric characters and hyphens")
    return task_id


class TaskOrchestrator:
    """
    비동기 분석 작업의 전체 수명주기를 관리한다.

    submit 만 워커 풀로 넘어가는 비동기 경계이고, 나머지 연산은 호출자 기준으로
    동기적으로 실행된다 (내부에서 캐시/엔진 I/O 는 할 수 있음).

    캐시 상태 전이는 모두 compare-and-set 이라서 취소와 정상 완료가 겹치면
    먼저 기록된 종료 상태가 남는다.
    """

    def __init__(
        self,
        store: TaskStore,
        gateway: AnalysisGateway,
        consumer: TaskConsumer,
        producer: TaskProducer,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ):
        self.store = store
        self.gateway = gateway
        self.consumer = consumer
        self.producer = producer
        self.scan_limit = scan_limit

    @classmethod
    def build(
        cls,
        cache: TaskCache,
        gateway: AnalysisGateway,
        valid_service_types: Iterable[str],
        pool_size: int = TaskConsumer.DEFAULT_POOL_SIZE,
        queue_maxsize: int = TaskConsumer.DEFAULT_QUEUE_MAXSIZE,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> "TaskOrchestrator":
        """캐시와 게이트웨이로 저장소/워커 풀/제출기를 조립한다."""
        store = TaskStore(cache)
        consumer = TaskConsumer(store, gateway, pool_size=pool_size, queue_maxsize=queue_maxsize)
        producer = TaskProducer(store, consumer, valid_service_types)
        return cls(store, gateway, consumer, producer, scan_limit=scan_limit)

    async def start(self) -> None:
        await self.consumer.start()

    async def drain(self) -> None:
        """큐에 들어간 작업이 모두 끝날 때까지 기다린다."""
        await self.consumer.join()

    async def aclose(self) -> None:
        await self.consumer.stop()
        await self.gateway.aclose()
        await self.store.cache.close()

    # ------------------------------------------------------------
    # 제출
    # ------------------------------------------------------------

    async def submit(self, service_type: Optional[str], parameters: Optional[Dict[str, Any]] = None) -> TaskRecord:
        return await self.producer.submit(service_type, parameters)

    async def perform(self, service_type: Optional[str], parameters: Optional[Dict[str, Any]] = None) -> EngineResponse:
        """엔진을 동기적으로 호출한다. 캐시에는 아무것도 쓰지 않는다."""
        normalized = self.producer.validate_service_type(service_type)
        if parameters is not None and not isinstance(parameters, dict):
            raise ValidationError("parameters must be an object")
        return await self.gateway.analyze(normalized, parameters or {})

    # ------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------

    async def get_status(self, task_id: str) -> TaskRecord:
        """마지막으로 기록된 상태를 반환한다. 아직 워커가 집지 않았으면 pending."""
        validate_task_id(task_id)
        _, record = await self._current(task_id)
        if record is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return record

    async def get_progress(self, task_id: str) -> EngineResponse:
        """캐시에 있으면 캐시 값을, 없으면 엔진의 task_progress 를 반환한다."""
        validate_task_id(task_id)
        _, record = await self._current(task_id)
        if record is not None:
            logger.info(f"Returning cached task progress for ID: {task_id}")
            return record
        return await self.gateway.task_progress(task_id)

    async def list_by_status(self, status: Optional[str], limit: int = 10) -> List[TaskRecord]:
        """
        상태별 작업 목록을 반환한다 (updated_at 최신순, 최대 limit 개).

        키 스캔은 scan_limit 으로 제한되는 best-effort 샘플이다. 작업이 아주 많으면
        일치하는 작업이 있어도 빠질 수 있다.
        """
        if status is None or not status.strip():
            raise ValidationError("Status cannot be null or empty")
        if limit <= 0:
            raise ValidationError("Limit must be positive")
        try:
            wanted = TaskStatus(status.strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown status: {status}") from None

        logger.info(f"Fetching tasks with status: {wanted.value} (limit: {limit})")
        matches: List[TaskRecord] = []

        for task_id in await self.store.scan_task_ids(self.scan_limit):
            try:
                record = await self.store.get(task_id)
            except ProcessingError:
                continue
            if record is not None and record.status == wanted:
                matches.append(record)

        if wanted == TaskStatus.PENDING:
            # 워커가 아직 집지 않은 작업은 request:{id} 만 있다
            for task_id in await self.store.scan_request_ids(self.scan_limit):
                if await self.store.has_task(task_id):
                    continue
                request = await self.store.get_request(task_id)
                if request is not None:
                    matches.append(pending_record(task_id, request))

        matches.sort(key=lambda r: r.updated_at, reverse=True)
        logger.info(f"Found {len(matches)} tasks with status: {wanted.value}")
        return matches[:limit]

    # ------------------------------------------------------------
    # 취소 / 재시도
    # ------------------------------------------------------------

    async def cancel(self, task_id: str) -> TaskRecord:
        """
        종료되지 않은 작업을 취소한다.

        엔진이 canceled 로 확인해 준 경우에만 캐시를 canceled 로 바꾼다.

        Raises:
            InvalidStateError: 작업이 없거나 이미 종료 상태
            ProcessingError: 엔진이 취소를 확인하지 않음
        """
        logger.info(f"Attempting to cancel task with ID: {task_id}")
        validate_task_id(task_id)

        raw, current = await self._current(task_id)
        if current is None:
            logger.warning(f"Task {task_id} not found in cache")
            raise InvalidStateError("Task is either completed or not found")
        if current.status.is_terminal:
            logger.warning(f"Task {task_id} is already {current.status.value}")
            raise InvalidStateError(f"Task is already {current.status.value}")

        response = await self.gateway.cancel_task(task_id)
        if not _is_cancel_confirmation(response):
            logger.error(f"Failed to cancel task {task_id}: {response.message}")
            raise ProcessingError(f"Failed to cancel task: {response.message}", engine_response=response)

        record = TaskRecord.from_engine(task_id, response, TaskStatus.CANCELED)
        for _ in range(CANCEL_WRITE_ATTEMPTS):
            if await self.store.transition(task_id, raw, record) is not None:
                # canceled 가 기록된 뒤에만 로컬 작업을 멈춘다. 워커는 종료 상태를 쓰지 않고 빠진다.
                self.consumer.signal_cancel(task_id)
                logger.info(f"Task {task_id} canceled successfully")
                return record

            # pending -> running 전이 또는 워커의 종료 기록과 겹쳤다
            raw, current = await self.store.get_raw(task_id)
            if current is not None and current.status.is_terminal:
                logger.warning(f"Task {task_id} finished as {current.status.value} before cancellation was recorded")
                raise InvalidStateError(f"Task is already {current.status.value}")

        raise ProcessingError(f"Could not record cancellation for task {task_id}")

    async def retry(self, task_id: str) -> TaskRecord:
        """
        error 상태 작업을 원본 요청으로 다시 제출한다.

        새 task_id 를 발급하며 원래 항목은 건드리지 않는다 (이력 보존).
        """
        logger.info(f"Retrying failed task with ID: {task_id}")
        validate_task_id(task_id)

        record = await self.store.get(task_id)
        if record is None or record.status != TaskStatus.ERROR:
            logger.warning(f"Task {task_id} cannot be retried: not found or not failed")
            raise InvalidStateError("Task not found or not in failed state")

        original = await self.store.get_request(task_id)
        if original is None:
            logger.error(f"Original request for task {task_id} not found in cache")
            raise InvalidStateError(f"Original request not found for task: {task_id}")

        new_record = await self.producer.submit(original.service_type, original.parameters)
        logger.info(f"Retry initiated for task {task_id} as new task {new_record.task_id}")
        return new_record

    async def _current(self, task_id: str) -> Tuple[Optional[str], Optional[TaskRecord]]:
        """(task:{id} 원문, 현재 레코드). task 항목 없이 request 만 있으면 pending 을 만든다."""
        raw, record = await self.store.get_raw(task_id)
        if record is not None:
            return raw, record
        request = await self.store.get_request(task_id)
        if request is None:
            return None, None
        return None, pending_record(task_id, request)


def _is_cancel_confirmation(response: EngineResponse) -> bool:
    try:
        return TaskStatus.from_wire(response.status) == TaskStatus.CANCELED
    except ValueError:
        return False
