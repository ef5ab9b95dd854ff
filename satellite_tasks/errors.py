"""작업 오케스트레이션 예외 정의"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from satellite_tasks.tasks.models import EngineResponse


class TaskServiceError(Exception):
    """모든 서비스 예외의 부모 클래스"""

    kind = "task_service_error"
    status_code = 500


class ValidationError(TaskServiceError):
    """입력값이 잘못된 경우 (serviceType, task_id, limit 등)"""

    kind = "validation_error"
    status_code = 400


class NotFoundError(TaskServiceError):
    """캐시에 해당 task_id 항목이 없는 경우"""

    kind = "not_found"
    status_code = 404


class InvalidStateError(TaskServiceError):
    """작업 상태상 허용되지 않는 요청 (완료된 작업 취소, error 가 아닌 작업 재시도 등)"""

    kind = "invalid_state"
    status_code = 400


class ProcessingError(TaskServiceError):
    """외부 분석 엔진 호출 실패.

    엔진이 구조화된 에러 응답을 돌려준 경우 engine_response 에 담는다.
    """

    kind = "processing_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        engine_response: Optional["EngineResponse"] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.engine_response = engine_response
        self.status = status


class TransientTransportError(Exception):
    """재시도 가능한 전송 실패. Gateway 재시도 루프 밖으로 나가지 않는다."""

    def __init__(self, message: str, body: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.body = body
        self.status = status


class JobCanceled(Exception):
    """로컬 취소 신호로 엔진 호출이 중단된 경우"""
