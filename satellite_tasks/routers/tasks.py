"""Task 제출/상태/취소/재시도 라우터"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Response

from satellite_tasks.dependencies import get_orchestrator
from satellite_tasks.schemas import AnalysisSubmitRequest, TaskSubmitResponse
from satellite_tasks.tasks.models import EngineResponse, TaskRecord
from satellite_tasks.tasks.orchestrator import TaskOrchestrator

router = APIRouter(prefix="/tasks")


def _submit_response(record: TaskRecord) -> TaskSubmitResponse:
    return TaskSubmitResponse(
        task_id=record.task_id,
        status=record.status,
        created_at=record.updated_at,
        poll_url=f"/api/tasks/status/{record.task_id}",
    )


@router.post("/start", response_model=TaskSubmitResponse, status_code=202)
async def start_task(
    payload: AnalysisSubmitRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> TaskSubmitResponse:
    """비동기 분석 작업을 제출한다. 결과는 /api/tasks/status/{task_id}에서 조회."""
    record = await orchestrator.submit(payload.service_type, payload.parameters)
    return _submit_response(record)


@router.post("/async-service", response_model=TaskSubmitResponse, status_code=202)
async def start_async_service(
    payload: AnalysisSubmitRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> TaskSubmitResponse:
    record = await orchestrator.submit(payload.service_type, payload.parameters)
    return _submit_response(record)


@router.get("/status/{task_id}", response_model=TaskRecord)
async def get_task_status(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> TaskRecord:
    """작업 상태를 조회한다 (Polling용)."""
    return await orchestrator.get_status(task_id)


@router.get("/task-progress/{task_id}", response_model=None)
async def get_task_progress(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> EngineResponse:
    """캐시에 없으면 엔진에 직접 진행 상황을 물어본다."""
    return await orchestrator.get_progress(task_id)


@router.delete("/task/{task_id}", status_code=204, response_class=Response)
async def cancel_task(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.cancel(task_id)
    return Response(status_code=204)


@router.post("/task/retry/{task_id}", response_model=TaskSubmitResponse, status_code=202)
async def retry_failed_task(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> TaskSubmitResponse:
    """error 상태 작업을 원본 요청으로 재시도한다. 새 task_id 를 반환."""
    record = await orchestrator.retry(task_id)
    return _submit_response(record)


@router.get("/tasks/status/{status}", response_model=List[TaskRecord])
async def get_tasks_by_status(
    status: str,
    limit: int = Query(default=10),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> List[TaskRecord]:
    return await orchestrator.list_by_status(status, limit)
