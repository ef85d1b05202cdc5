"""MCP JSON-RPC 메시지 및 메서드별 매개변수 모델"""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class MCPMethod(str, Enum):
    """게이트웨이가 처리하는 MCP 메서드 (닫힌 집합)"""

    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"


class JSONRPCRequest(BaseModel):
    """
    JSON-RPC 2.0 요청

    id 필드가 아예 없으면 알림(notification)으로 간주합니다.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[Union[int, str]] = None
    method: str = Field(min_length=1)
    params: Optional[Dict[str, Any]] = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class EmptyParams(BaseModel):
    """매개변수가 없는 메서드용 (알 수 없는 필드는 무시)"""

    model_config = ConfigDict(extra="ignore")


class PaginatedParams(EmptyParams):
    cursor: Optional[str] = None


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    protocol_version: Optional[str] = Field(default=None, alias="protocolVersion")
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    client_info: Optional[Dict[str, Any]] = Field(default=None, alias="clientInfo")


class ReadResourceParams(BaseModel):
    uri: str = Field(min_length=1)


class CallToolParams(BaseModel):
    name: str = Field(min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)


class QueryArguments(BaseModel):
    """query 도구 인자"""

    sql: str = Field(min_length=1)


class DescribeTableArguments(BaseModel):
    """describe_table 도구 인자"""

    table_name: str = Field(min_length=1)


PARAMS_MODELS: Dict[MCPMethod, type] = {
    MCPMethod.INITIALIZE: InitializeParams,
    MCPMethod.INITIALIZED: EmptyParams,
    MCPMethod.PING: EmptyParams,
    MCPMethod.RESOURCES_LIST: PaginatedParams,
    MCPMethod.RESOURCES_READ: ReadResourceParams,
    MCPMethod.TOOLS_LIST: PaginatedParams,
    MCPMethod.TOOLS_CALL: CallToolParams,
}
