"""
HTTP 요청 로깅 미들웨어

모든 HTTP 요청에 고유 ID 를 부여하고 structlog contextvars 에 묶어,
요청 처리 중 발생하는 모든 로그에 같은 request_id 가 찍히도록 합니다.

로깅 항목:
    - request_id: 요청 고유 식별자 (응답 헤더 X-Request-ID 로도 반환)
    - http_method, path, status_code
    - duration_ms: 처리 시간 (1초 이상이면 느린 요청 경고)

Authorization 헤더, 토큰, 비밀값은 로그에 남기지 않습니다. 본문 로깅이
필요한 경로는 `sanitize_data` 로 민감 필드를 가린 뒤 기록합니다.
"""

import time
import uuid
from typing import Any, Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REDACTED = "[REDACTED]"
MAX_STRING_LENGTH = 1000
SLOW_REQUEST_MS = 1000


def sanitize_data(data: Any, sensitive_fields: Iterable[str]) -> Any:
    """
    민감 필드를 재귀적으로 마스킹

    키 이름에 민감 키워드가 포함되면(대소문자 무시) 값을 "[REDACTED]" 로
    바꾸고, 1000자를 넘는 문자열은 잘라냅니다.
    """
    fields = [field.lower() for field in sensitive_fields]
    if isinstance(data, dict):
        return {
            key: REDACTED
            if any(sensitive in str(key).lower() for sensitive in fields)
            else sanitize_data(value, fields)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_data(item, fields) for item in data]
    if isinstance(data, str) and len(data) > MAX_STRING_LENGTH:
        return data[:MAX_STRING_LENGTH] + "... [TRUNCATED]"
    return data


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청 단위 로깅 및 request_id 바인딩"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "요청 처리 중 미처리 예외 발생",
                http_method=request.method,
                path=request.url.path,
            )
            raise
        finally:
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "HTTP 요청 완료",
            http_method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("느린 요청 감지", path=request.url.path, duration_ms=duration_ms)

        structlog.contextvars.unbind_contextvars("request_id")
        return response
