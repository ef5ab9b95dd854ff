"""Task Consumer (고정 크기 asyncio 워커 풀)"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Dict, List, Tuple

from satellite_tasks.tasks.models import AnalysisRequest
from satellite_tasks.tasks.store import TaskStore
from satellite_tasks.tasks.workers import AnalysisWorker

if TYPE_CHECKING:
    from satellite_tasks.clients.engine_client import AnalysisGateway

logger = logging.getLogger(__name__)


class TaskConsumer:
    """bounded queue 에서 작업을 꺼내 실행하는 워커 풀.

    워커 수는 요청량과 무관하게 고정이다. 큐가 가득 차면 enqueue 가 빈 자리를 기다린다.
    """

    DEFAULT_POOL_SIZE = 10
    DEFAULT_QUEUE_MAXSIZE = 1000

    def __init__(
        self,
        store: TaskStore,
        gateway: "AnalysisGateway",
        pool_size: int = DEFAULT_POOL_SIZE,
        queue_maxsize: int = DEFAULT_QUEUE_MAXSIZE,
        consumer_id: str | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.pool_size = max(1, pool_size)
        self.consumer_id = consumer_id or f"consumer-{uuid.uuid4().hex[:8]}"
        self.queue: "asyncio.Queue[Tuple[str, AnalysisRequest]]" = asyncio.Queue(maxsize=max(0, queue_maxsize))
        self._workers: List[asyncio.Task] = []
        self._cancel_events: Dict[str, asyncio.Event] = {}

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """워커 코루틴을 띄운다."""
        if self._workers:
            return
        for i in range(self.pool_size):
            name = f"{self.consumer_id}-{i}"
            self._workers.append(asyncio.create_task(self._worker_loop(name), name=name))
        logger.info(f"Consumer {self.consumer_id} started with {self.pool_size} workers.")

    async def stop(self) -> None:
        """워커를 중지한다. 큐에 남은 작업은 실행되지 않는다 (pending 으로 남음)."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        if not self.queue.empty():
            logger.warning(f"Consumer {self.consumer_id} stopped with {self.queue.qsize()} queued tasks.")
        logger.info(f"Consumer {self.consumer_id} stopped.")

    async def enqueue(self, task_id: str, request: AnalysisRequest) -> None:
        """작업을 큐에 넣는다."""
        self._cancel_events[task_id] = asyncio.Event()
        await self.queue.put((task_id, request))

    async def join(self) -> None:
        """큐에 들어간 모든 작업이 끝날 때까지 기다린다."""
        await self.queue.join()

    def signal_cancel(self, task_id: str) -> bool:
        """이 프로세스에서 대기/실행 중인 작업에 취소 신호를 보낸다."""
        event = self._cancel_events.get(task_id)
        if event is None:
            return False
        event.set()
        return True

    async def _worker_loop(self, name: str) -> None:
        while True:
            task_id, request = await self.queue.get()
            logger.debug(f"{name} picked up task {task_id}")
            try:
                await self._process(task_id, request)
            finally:
                self.queue.task_done()

    async def _process(self, task_id: str, request: AnalysisRequest) -> None:
        """작업 하나를 처리한다. 어떤 예외도 워커 루프 밖으로 내보내지 않는다."""
        logger.info(f"Processing task {task_id} (type: {request.service_type})")
        event = self._cancel_events.setdefault(task_id, asyncio.Event())
        worker = AnalysisWorker(task_id, request, self.store, self.gateway, cancel_event=event)

        try:
            record = await worker.run()
            if record is not None:
                logger.info(f"Task {task_id} finished with status {record.status.value}.")

        except Exception as e:
            # 캐시 I/O 실패 등. 폴링하는 쪽이 영원히 기다리지 않도록 error 를 남긴다.
            logger.error(f"Task {task_id} crashed: {e}")
            try:
                await worker.mark_failed(f"Task failed: {e}")
            except Exception as write_error:
                logger.error(f"Task {task_id}: could not record failure: {write_error}")

        finally:
            self._cancel_events.pop(task_id, None)
