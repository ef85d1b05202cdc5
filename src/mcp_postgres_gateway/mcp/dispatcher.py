"""
MCP 프로토콜 디스패처

JSON-RPC 메시지를 받아 고정된 MCP 메서드 집합 중 하나로 라우팅하고,
성공/실패를 항상 JSON-RPC 봉투로 돌려줍니다. 하위 계층 예외는 이
경계에서 모두 에러 봉투로 변환되며 전송 계층으로 전파되지 않습니다.

메서드 → 처리:
    - initialize: 버전 협상, capability, 서버 정보 (+ 현재 리소스/도구 목록)
    - notifications/initialized: notifications/tools/list_changed 알림 반환
    - ping: 빈 결과
    - resources/list, resources/read: 릴레이션 목록 / 스키마 + 샘플
    - tools/list, tools/call: query, describe_table

에러 코드:
    - -32700 파싱 실패, -32600 잘못된 요청
    - -32601 알 수 없는 메서드/도구
    - -32602 잘못된 매개변수, 존재하지 않는 릴레이션
    - -32603 엔진/내부 실패
"""

import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from ..auth.authenticator import AuthContext
from ..database import DatabaseGateway
from ..exceptions import (
    ErrorCode,
    ErrorHandler,
    GatewayError,
    InvalidParamsError,
    MethodNotFoundError,
)
from .catalog import (
    DESCRIBE_TABLE_TOOL,
    QUERY_TOOL,
    RESOURCE_MIME_TYPE,
    SERVER_CAPABILITIES,
    TOOLS,
    negotiate_protocol_version,
    parse_resource_uri,
    resource_descriptor,
)
from .models import (
    PARAMS_MODELS,
    CallToolParams,
    DescribeTableArguments,
    InitializeParams,
    JSONRPCRequest,
    MCPMethod,
    QueryArguments,
    ReadResourceParams,
)

logger = structlog.get_logger(__name__)

Envelope = Dict[str, Any]
Handler = Callable[[Any, AuthContext], Awaitable[Dict[str, Any]]]

TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


def error_envelope(
    code: ErrorCode,
    message: str,
    request_id: Optional[Union[int, str]] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Envelope:
    """JSON-RPC 에러 봉투 생성"""
    return ErrorHandler.handle_error(GatewayError(message, code=code, data=data), request_id)


def _validation_details(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in item["loc"]), "msg": item["msg"]}
        for item in error.errors()
    ]


def _text_content(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(payload, indent=2, ensure_ascii=False)}]}


class ProtocolDispatcher:
    """
    MCP 메서드 라우터

    요청 간 상태를 갖지 않습니다. 메서드 집합은 `MCPMethod` 열거형으로
    닫혀 있으며, 각 메서드는 전용 매개변수 모델로 검증됩니다.

    Attributes:
        gateway (DatabaseGateway): 데이터베이스 게이트웨이
        server_name (str): serverInfo.name
        server_version (str): serverInfo.version
    """

    def __init__(
        self,
        gateway: DatabaseGateway,
        server_name: str = "postgres-mcp-server",
        server_version: str = "1.0.0",
    ):
        self.gateway = gateway
        self.server_name = server_name
        self.server_version = server_version
        self._handlers: Dict[MCPMethod, Handler] = {
            MCPMethod.INITIALIZE: self._initialize,
            MCPMethod.INITIALIZED: self._initialized,
            MCPMethod.PING: self._ping,
            MCPMethod.RESOURCES_LIST: self._list_resources,
            MCPMethod.RESOURCES_READ: self._read_resource,
            MCPMethod.TOOLS_LIST: self._list_tools,
            MCPMethod.TOOLS_CALL: self._call_tool,
        }
        missing = set(MCPMethod) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Unhandled MCP methods: {sorted(m.value for m in missing)}")

    @staticmethod
    def parse_error(detail: Optional[str] = None) -> Envelope:
        """본문을 JSON 으로 파싱할 수 없을 때의 봉투"""
        return error_envelope(
            ErrorCode.PARSE_ERROR,
            "Parse error",
            data={"detail": detail} if detail else None,
        )

    async def dispatch_payload(
        self, payload: Any, auth: AuthContext
    ) -> Optional[Union[Envelope, List[Envelope]]]:
        """
        파싱된 JSON 본문 처리 (단건 또는 배치)

        Returns:
            응답 봉투, 배치면 봉투 목록. 응답할 것이 없으면(알림만 있는 경우) None
        """
        if isinstance(payload, list):
            if not payload:
                return error_envelope(ErrorCode.INVALID_REQUEST, "Invalid Request: empty batch")
            responses = []
            for message in payload:
                response = await self.dispatch(message, auth)
                if response is not None:
                    responses.append(response)
            return responses or None
        return await self.dispatch(payload, auth)

    async def dispatch(self, message: Any, auth: AuthContext) -> Optional[Envelope]:
        """
        단일 JSON-RPC 메시지 처리

        Args:
            message: 파싱된 메시지 (dict 여야 함)
            auth: 요청 인증 컨텍스트

        Returns:
            Optional[Envelope]: 응답 봉투. 응답하지 않는 알림이면 None
        """
        raw_id = message.get("id") if isinstance(message, dict) else None
        if not isinstance(raw_id, (int, str)) or isinstance(raw_id, bool):
            raw_id = None

        try:
            request = JSONRPCRequest.model_validate(message)
        except ValidationError as e:
            return error_envelope(
                ErrorCode.INVALID_REQUEST,
                "Invalid Request",
                request_id=raw_id,
                data={"errors": _validation_details(e)},
            )

        try:
            method = MCPMethod(request.method)
        except ValueError:
            if request.is_notification:
                logger.debug("알 수 없는 알림 무시", method=request.method)
                return None
            logger.info("알 수 없는 MCP 메서드", method=request.method)
            return error_envelope(
                ErrorCode.METHOD_NOT_FOUND,
                "Method not found",
                request_id=request.id,
                data={"method": request.method},
            )

        if request.is_notification:
            if method is MCPMethod.INITIALIZED:
                logger.info("클라이언트 초기화 완료 알림", principal=auth.principal)
                return {"jsonrpc": "2.0", "method": TOOLS_LIST_CHANGED}
            return None

        start_time = time.monotonic()
        try:
            params = self._parse_params(method, request.params)
            result = await self._handlers[method](params, auth)
        except Exception as e:
            context = ErrorHandler.create_error_context(
                e, method=method.value, subject=auth.principal
            )
            if isinstance(e, GatewayError):
                logger.warning("MCP 요청 실패", **context)
            else:
                logger.error("MCP 요청 처리 중 예기치 않은 오류", exc_info=True, **context)
            return ErrorHandler.handle_error(e, request.id)

        logger.info(
            "MCP 요청 처리",
            method=method.value,
            principal=auth.principal,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return {"jsonrpc": "2.0", "id": request.id, "result": result}

    @staticmethod
    def _parse_params(method: MCPMethod, params: Optional[Dict[str, Any]]) -> BaseModel:
        try:
            return PARAMS_MODELS[method].model_validate(params or {})
        except ValidationError as e:
            raise InvalidParamsError(data={"errors": _validation_details(e)}) from None

    # ------------------------------------------------------------------
    # 메서드 핸들러
    # ------------------------------------------------------------------

    async def _initialize(self, params: InitializeParams, auth: AuthContext) -> Dict[str, Any]:
        try:
            resources = await self._resource_descriptors()
        except GatewayError as e:
            # 초기화는 DB 장애와 무관하게 성공해야 함
            logger.warning("initialize 중 리소스 목록 조회 실패", error=e.message)
            resources = []

        logger.info(
            "MCP 세션 초기화",
            principal=auth.principal,
            requested_version=params.protocol_version,
            client=(params.client_info or {}).get("name"),
        )
        return {
            "protocolVersion": negotiate_protocol_version(params.protocol_version),
            "capabilities": SERVER_CAPABILITIES,
            "serverInfo": {"name": self.server_name, "version": self.server_version},
            "resources": resources,
            "tools": TOOLS,
        }

    async def _initialized(self, params: BaseModel, auth: AuthContext) -> Dict[str, Any]:
        return {}

    async def _ping(self, params: BaseModel, auth: AuthContext) -> Dict[str, Any]:
        return {}

    async def _resource_descriptors(self) -> List[Dict[str, str]]:
        relations = await self.gateway.list_relations()
        return [resource_descriptor(relation) for relation in relations]

    async def _list_resources(self, params: BaseModel, auth: AuthContext) -> Dict[str, Any]:
        return {"resources": await self._resource_descriptors()}

    async def _read_resource(self, params: ReadResourceParams, auth: AuthContext) -> Dict[str, Any]:
        name = parse_resource_uri(params.uri)
        snapshot = await self.gateway.read_relation(name)
        return {
            "contents": [
                {
                    "uri": params.uri,
                    "mimeType": RESOURCE_MIME_TYPE,
                    "text": json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False),
                }
            ]
        }

    async def _list_tools(self, params: BaseModel, auth: AuthContext) -> Dict[str, Any]:
        return {"tools": TOOLS}

    async def _call_tool(self, params: CallToolParams, auth: AuthContext) -> Dict[str, Any]:
        try:
            if params.name == QUERY_TOOL:
                arguments = QueryArguments.model_validate(params.arguments)
                logger.info("query 도구 호출", principal=auth.principal)
                result = await self.gateway.execute_raw(arguments.sql)
                return _text_content(result.to_dict())

            if params.name == DESCRIBE_TABLE_TOOL:
                arguments = DescribeTableArguments.model_validate(params.arguments)
                description = await self.gateway.describe_relation(arguments.table_name)
                return _text_content(description.to_dict())
        except ValidationError as e:
            raise InvalidParamsError(
                f"Invalid arguments for tool '{params.name}'",
                data={"errors": _validation_details(e)},
            ) from None

        raise MethodNotFoundError(f"Unknown tool: {params.name}", data={"tool": params.name})
