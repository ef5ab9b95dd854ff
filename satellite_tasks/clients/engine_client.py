from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from satellite_tasks.errors import JobCanceled, ProcessingError, TransientTransportError
from satellite_tasks.tasks.models import EngineResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_MAX_ATTEMPTS = 3
# 5xx 전체와 429 만 재시도한다. 나머지 4xx 는 입력 문제이므로 즉시 실패.
THROTTLED_STATUS = 429


class AnalysisGateway:
    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = 1.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        # 외부 분석 엔진(Flask/GEE) 주소와 재시도 정책을 보관한다.
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def analyze(
        self,
        service_type: str,
        parameters: Dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EngineResponse:
        return await self.invoke(f"/api/{service_type}", parameters, cancel_event=cancel_event)

    async def cancel_task(self, task_id: str) -> EngineResponse:
        return await self.invoke(f"/api/cancel_task/{task_id}", None)

    async def task_progress(self, task_id: str) -> EngineResponse:
        return await self.fetch(f"/api/task_progress/{task_id}")

    async def invoke(
        self,
        endpoint: str,
        payload: Any,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EngineResponse:
        # 직렬화 실패는 재시도해도 해결되지 않으므로 바로 실패시킨다.
        content: Optional[bytes] = None
        if payload is not None:
            try:
                content = json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")
            except (TypeError, ValueError) as e:
                logger.error(f"Failed to serialize request body for {endpoint}: {e}")
                raise ProcessingError("Failed to serialize request body") from e

        return await self._send("POST", endpoint, content=content, cancel_event=cancel_event)

    async def fetch(self, endpoint: str, cancel_event: Optional[asyncio.Event] = None) -> EngineResponse:
        return await self._send("GET", endpoint, cancel_event=cancel_event)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _send(
        self,
        method: str,
        endpoint: str,
        content: Optional[bytes] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EngineResponse:
        url = f"{self.base_url}{endpoint}"
        last_error: Optional[TransientTransportError] = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise JobCanceled(f"{method} {url} canceled before attempt {attempt}")

            logger.debug(f"Sending {method} to {url} (attempt {attempt}/{self.max_attempts})")
            try:
                response = await self._request(method, endpoint, content, cancel_event)
                if response.status_code >= 500 or response.status_code == THROTTLED_STATUS:
                    raise TransientTransportError(
                        f"engine responded with status {response.status_code}",
                        body=response.text,
                        status=response.status_code,
                    )
            except TransientTransportError as e:
                last_error = e
            except httpx.TransportError as e:
                # 연결 실패, 타임아웃 등
                last_error = TransientTransportError(str(e) or type(e).__name__)
            else:
                return self._handle_response(url, response)

            logger.warning(f"{method} {url} failed (attempt {attempt}/{self.max_attempts}): {last_error}")
            if attempt < self.max_attempts:
                await self._sleep(self.backoff_seconds * attempt, cancel_event)

        raise self._exhausted(url, last_error)

    async def _request(
        self,
        method: str,
        endpoint: str,
        content: Optional[bytes],
        cancel_event: Optional[asyncio.Event],
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"} if content is not None else None
        call = self.client.request(method, endpoint, content=content, headers=headers)
        if cancel_event is None:
            return await call

        # 로컬 취소 신호와 HTTP 호출을 경쟁시킨다
        request_task = asyncio.ensure_future(call)
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [t for t in (request_task, cancel_wait) if not t.done()]
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if request_task in done:
            return request_task.result()
        raise JobCanceled(f"{method} {endpoint} canceled while waiting for the engine")

    async def _sleep(self, delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise JobCanceled("canceled during retry backoff")

    def _handle_response(self, url: str, response: httpx.Response) -> EngineResponse:
        if not response.is_success:
            logger.error(f"HTTP error for {url}: Status: {response.status_code}, Body: {response.text}")
            parsed = self._parse_error_body(response.text)
            message = f"Request failed with status: {response.status_code}"
            if parsed is not None and parsed.message:
                message = f"{message}: {parsed.message}"
            raise ProcessingError(message, engine_response=parsed, status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Malformed response from {url}: {response.text!r}")
            raise ProcessingError("Malformed response from engine", status=response.status_code) from e

        if not isinstance(body, dict):
            logger.error(f"Unexpected response shape from {url}: {body!r}")
            raise ProcessingError("Malformed response from engine", status=response.status_code)

        logger.debug(f"Received response from {url}: {body}")
        try:
            return EngineResponse.model_validate(body)
        except PydanticValidationError as e:
            logger.error(f"Unexpected response fields from {url}: {body!r}")
            raise ProcessingError("Malformed response from engine", status=response.status_code) from e

    def _exhausted(self, url: str, last_error: Optional[TransientTransportError]) -> ProcessingError:
        status = last_error.status if last_error else None
        parsed = self._parse_error_body(last_error.body) if last_error and last_error.body else None
        if parsed is not None and parsed.message:
            logger.error(f"Engine request to {url} exhausted retries: {parsed.message}")
            return ProcessingError(parsed.message, engine_response=parsed, status=status)

        logger.error(f"Engine request to {url} exhausted retries: {last_error}")
        return ProcessingError(
            f"Engine request failed after {self.max_attempts} attempts: {last_error}",
            status=status,
        )

    def _parse_error_body(self, text: Optional[str]) -> Optional[EngineResponse]:
        # 엔진이 {status, message} 형태의 에러 본문을 보냈을 때만 파싱한다.
        if not text:
            return None
        try:
            body = json.loads(text)
        except json.JSONDecodeError:
            return None
        if not isinstance(body, dict) or not ({"status", "message"} & body.keys()):
            return None
        try:
            return EngineResponse.model_validate(body)
        except PydanticValidationError:
            return None
