"""
게이트웨이 예외 및 에러 처리 모듈

MCP 게이트웨이의 모든 에러를 정의하고 JSON-RPC / OAuth / REST 응답으로
변환하는 규칙을 한 곳에 모아둡니다.

주요 구성요소:
    - ErrorCode: JSON-RPC 표준 및 게이트웨이 확장 에러 코드
    - GatewayError: 모든 게이트웨이 예외의 기본 클래스
    - 인증 계열: InvalidCredentialError, AuthenticationError
    - OAuth 계열: InvalidClientError, InvalidStateError, OAuthRequestError,
      UpstreamExchangeError, UpstreamProfileError
    - 데이터베이스 계열: RelationNotFoundError, QueryError,
      PoolExhaustedError, ConnectionTimeoutError, DatabaseUnavailableError
    - ErrorHandler: 예외 → JSON-RPC 에러 봉투 변환기

에러 코드 범위:
    - 표준 JSON-RPC: -32700 ~ -32603
    - 사용자 정의: -32000 ~ -32099
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorCode(Enum):
    """
    게이트웨이 에러 코드 열거형

    표준 코드는 JSON-RPC 2.0 스펙을 따르고, 사용자 정의 코드는
    -32000 ~ -32099 범위를 사용합니다.
    """

    # 표준 JSON-RPC 에러 코드
    PARSE_ERROR = -32700          # JSON 파싱 에러
    INVALID_REQUEST = -32600      # 잘못된 요청 형식
    METHOD_NOT_FOUND = -32601     # 메서드/도구를 찾을 수 없음
    INVALID_PARAMS = -32602       # 잘못된 매개변수, 존재하지 않는 릴레이션
    INTERNAL_ERROR = -32603       # 엔진/내부 에러

    # 사용자 정의 에러 코드
    AUTHENTICATION_ERROR = -32001  # 인증 실패


class GatewayError(Exception):
    """
    모든 게이트웨이 에러의 기본 예외 클래스

    JSON-RPC 에러 객체(`to_dict`)와 HTTP 응답 상태(`status_code`)를
    함께 보유하므로, 프로토콜 엔드포인트와 REST/OAuth 엔드포인트가
    같은 예외를 각자의 형식으로 표현할 수 있습니다.

    Attributes:
        message (str): 에러 메시지
        code (ErrorCode): JSON-RPC 에러 코드
        data (dict): 추가 에러 정보 (선택사항)
        status_code (int): REST/OAuth 엔드포인트에서 사용할 HTTP 상태
        error_name (str): OAuth/REST 에러 본문의 `error` 값
    """

    status_code: int = 500
    error_name: str = "server_error"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        data: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            message: 호출자에게 표시될 에러 메시지
            code: 에러 코드 (기본값: INTERNAL_ERROR)
            data: 디버깅에 유용한 추가 정보 (선택사항)
        """
        self.message = message
        self.code = code
        self.data = data or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-RPC error 객체로 변환

        data 필드는 값이 있을 때만 포함됩니다.

        Returns:
            Dict[str, Any]: {"code", "message", "data"?}
        """
        error_dict = {"code": self.code.value, "message": self.message}
        if self.data:
            error_dict["data"] = self.data
        return error_dict

    def to_oauth_dict(self) -> Dict[str, str]:
        """OAuth 형식 에러 본문 `{error, error_description}` 생성"""
        return {"error": self.error_name, "error_description": self.message}


# ---------------------------------------------------------------------------
# 인증
# ---------------------------------------------------------------------------


class InvalidCredentialError(GatewayError):
    """
    세션 토큰 검증 실패

    서명 불일치, 형식 오류, 만료 등 실패 원인과 관계없이 항상 같은
    메시지를 사용합니다. 원인을 구분해서 알려주지 않습니다.
    """

    status_code = 401
    error_name = "invalid_token"

    def __init__(self):
        super().__init__(
            message="Invalid or expired token",
            code=ErrorCode.AUTHENTICATION_ERROR,
        )


class AuthenticationError(GatewayError):
    """
    요청 인증 실패

    Authorization 헤더의 스킴이 잘못되었거나, Bearer 토큰 / API 키
    검증에 실패했을 때 발생합니다.
    """

    status_code = 401
    error_name = "unauthorized"

    def __init__(self, message: str = "Authentication failed", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.AUTHENTICATION_ERROR, data=data)


# ---------------------------------------------------------------------------
# OAuth 위임 흐름
# ---------------------------------------------------------------------------


class OAuthError(GatewayError):
    """OAuth 흐름 에러의 공통 부모 (JSON-RPC 봉투로는 쓰이지 않음)"""

    status_code = 400
    error_name = "invalid_request"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message=message, code=ErrorCode.INVALID_REQUEST)
        if status_code is not None:
            self.status_code = status_code


class OAuthRequestError(OAuthError):
    """필수 매개변수 누락 등 잘못된 OAuth 요청"""

    def __init__(self, message: str, error_name: str = "invalid_request", status_code: int = 400):
        super().__init__(message, status_code=status_code)
        self.error_name = error_name


class InvalidClientError(OAuthError):
    """
    클라이언트 식별자 불일치

    authorize 단계에서는 400, token 단계에서는 401로 응답합니다.
    """

    error_name = "invalid_client"

    def __init__(self, message: str = "Invalid client_id", status_code: int = 400):
        super().__init__(message, status_code=status_code)


class InvalidStateError(OAuthError):
    """Transfer State 디코드 실패 (재시도하지 않는 치명적 중단)"""

    error_name = "invalid_state"

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(message, status_code=400)


class UpstreamExchangeError(OAuthError):
    """
    업스트림(GitHub) 코드 교환 실패

    업스트림이 보낸 에러 문자열을 진단용으로 그대로 전달합니다.
    OAuth 코드는 일회용이므로 자동 재시도하지 않습니다.
    """

    def __init__(self, error_name: str, description: str, status_code: int = 400):
        super().__init__(description, status_code=status_code)
        self.error_name = error_name


class UpstreamProfileError(OAuthError):
    """업스트림 사용자 프로필 조회 실패"""

    error_name = "server_error"

    def __init__(
        self,
        message: str = "Failed to fetch upstream user profile",
        status_code: int = 500,
        upstream_status: Optional[int] = None,
        error_name: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.upstream_status = upstream_status
        if error_name:
            self.error_name = error_name


# ---------------------------------------------------------------------------
# 프로토콜 / 데이터베이스
# ---------------------------------------------------------------------------


class InvalidParamsError(GatewayError):
    """잘못된 프로토콜 매개변수"""

    status_code = 400
    error_name = "invalid_request"

    def __init__(self, message: str = "Invalid params", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INVALID_PARAMS, data=data)


class MethodNotFoundError(GatewayError):
    """알 수 없는 메서드 또는 도구 이름"""

    status_code = 404
    error_name = "not_found"

    def __init__(self, message: str = "Method not found", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.METHOD_NOT_FOUND, data=data)


class RelationNotFoundError(GatewayError):
    """
    카탈로그에 존재하지 않는 릴레이션

    프로토콜에서는 -32602, REST에서는 404로 표현됩니다.
    """

    status_code = 404
    error_name = "table_not_found"

    def __init__(self, relation: str):
        self.relation = relation
        super().__init__(
            message=f"Table '{relation}' not found",
            code=ErrorCode.INVALID_PARAMS,
        )


class QueryError(GatewayError):
    """
    SQL 실행 실패

    엔진의 에러 텍스트를 가공 없이 message 로 전달합니다.
    호출자가 보낸 SQL 은 멱등이 아닐 수 있으므로 재시도하지 않습니다.
    """

    status_code = 400
    error_name = "query_error"

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        self.sqlstate = sqlstate
        super().__init__(message=message, code=ErrorCode.INTERNAL_ERROR)


class PoolExhaustedError(GatewayError):
    """커넥션 풀 고갈 (획득 타임아웃 초과)"""

    status_code = 500
    error_name = "pool_exhausted"

    def __init__(self, message: str = "Connection pool exhausted", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INTERNAL_ERROR, data=data)


class ConnectionTimeoutError(GatewayError):
    """데이터베이스 연결 수립 타임아웃"""

    status_code = 500
    error_name = "connection_timeout"

    def __init__(self, message: str = "Database connection timed out", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INTERNAL_ERROR, data=data)


class DatabaseUnavailableError(GatewayError):
    """데이터베이스에 연결할 수 없음 (연결 거부, 인증 실패 등)"""

    status_code = 503
    error_name = "database_unavailable"

    def __init__(self, message: str = "Database unavailable", data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INTERNAL_ERROR, data=data)


class ErrorHandler:
    """
    중앙 집중식 에러 처리기

    모든 예외를 JSON-RPC 에러 봉투로 변환하고 로깅용 컨텍스트를
    생성하는 유틸리티 클래스입니다.
    """

    @staticmethod
    def to_error(error: Exception) -> GatewayError:
        """임의의 예외를 GatewayError 로 정규화"""
        if isinstance(error, GatewayError):
            return error
        if isinstance(error, asyncio.TimeoutError):
            return ConnectionTimeoutError("Operation timed out")
        return GatewayError(
            message="Internal error",
            code=ErrorCode.INTERNAL_ERROR,
            data={
                "exception_type": type(error).__name__,
                "exception_message": str(error),
            },
        )

    @staticmethod
    def handle_error(
        error: Exception, request_id: Optional[Union[str, int]] = None
    ) -> Dict[str, Any]:
        """
        모든 예외를 JSON-RPC 에러 응답으로 변환

        Args:
            error: 처리할 예외
            request_id: 원 요청의 id (null 가능)

        Returns:
            Dict[str, Any]: {"jsonrpc": "2.0", "error": {...}, "id": request_id}
        """
        return {
            "jsonrpc": "2.0",
            "error": ErrorHandler.to_error(error).to_dict(),
            "id": request_id,
        }

    @staticmethod
    def create_error_context(
        error: Exception,
        method: Optional[str] = None,
        subject: Optional[str] = None,
        tool_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        구조화 로깅용 에러 컨텍스트 생성

        Args:
            error: 발생한 예외
            method: 호출된 MCP 메서드
            subject: 인증된 주체 (있는 경우)
            tool_name: 에러가 발생한 도구 이름

        Returns:
            Dict[str, Any]: error_type, error_message 및 제공된 선택 필드
        """
        context: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if method:
            context["method"] = method
        if subject:
            context["subject"] = subject
        if tool_name:
            context["tool_name"] = tool_name
        if isinstance(error, GatewayError):
            context["error_code"] = error.code.value
            if error.data:
                context["error_data"] = error.data
        return context
