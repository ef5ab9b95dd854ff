from __future__ import annotations

from fastapi import APIRouter, Depends

from satellite_tasks.dependencies import get_orchestrator
from satellite_tasks.schemas import AnalysisSubmitRequest
from satellite_tasks.tasks.models import EngineResponse
from satellite_tasks.tasks.orchestrator import TaskOrchestrator

router = APIRouter(prefix="/analysis")


@router.post("/service", response_model=EngineResponse)
async def perform_analysis(
    payload: AnalysisSubmitRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> EngineResponse:
    # 동기 분석: 엔진에 바로 요청하고 결과를 반환한다. 작업/캐시는 만들지 않는다.
    return await orchestrator.perform(payload.service_type, payload.parameters)
