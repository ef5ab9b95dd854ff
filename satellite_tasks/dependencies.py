from __future__ import annotations

from fastapi import Request

from satellite_tasks.tasks.orchestrator import TaskOrchestrator


def get_orchestrator(request: Request) -> TaskOrchestrator:
    # lifespan 에서 만든 오케스트레이터를 꺼낸다.
    return request.app.state.orchestrator
