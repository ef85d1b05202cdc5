"""
MCP 정적 카탈로그

프로토콜 버전, 서버 capability, 도구 정의, 리소스 URI 규칙을 정의합니다.
"""

from typing import Any, Dict, List, Optional

from ..database import Relation
from ..exceptions import InvalidParamsError

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")

RESOURCE_URI_SCHEME = "postgres://"
RESOURCE_URI_PREFIX = "table/"
RESOURCE_MIME_TYPE = "application/json"

SERVER_CAPABILITIES: Dict[str, Any] = {
    "resources": {"subscribe": False, "listChanged": False},
    "tools": {"listChanged": True},
}

QUERY_TOOL = "query"
DESCRIBE_TABLE_TOOL = "describe_table"

TOOLS: List[Dict[str, Any]] = [
    {
        "name": QUERY_TOOL,
        "description": "Execute a SQL query on the PostgreSQL database",
        "inputSchema": {
            "type": "object",
            "properties": {
                "sql": {"type": "string", "description": "SQL query to execute"},
            },
            "required": ["sql"],
        },
    },
    {
        "name": DESCRIBE_TABLE_TOOL,
        "description": "Get detailed information about a table structure",
        "inputSchema": {
            "type": "object",
            "properties": {
                "table_name": {"type": "string", "description": "Name of the table to describe"},
            },
            "required": ["table_name"],
        },
    },
]


def negotiate_protocol_version(requested: Optional[str]) -> str:
    """클라이언트 요청 버전을 지원하면 그대로, 아니면 기본 버전"""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return DEFAULT_PROTOCOL_VERSION


def resource_uri(name: str) -> str:
    return f"{RESOURCE_URI_SCHEME}{RESOURCE_URI_PREFIX}{name}"


def resource_descriptor(relation: Relation) -> Dict[str, str]:
    """릴레이션 하나에 대한 Resource Descriptor"""
    return {
        "uri": resource_uri(relation.name),
        "name": f"Table: {relation.name}",
        "description": f"PostgreSQL table: {relation.name} ({relation.kind})",
        "mimeType": RESOURCE_MIME_TYPE,
    }


def parse_resource_uri(uri: str) -> str:
    """
    리소스 URI 에서 릴레이션 이름 추출

    `postgres://table/{name}` 과 `table/{name}` 을 모두 받습니다.

    Raises:
        InvalidParamsError: table/ 접두어가 없거나 이름이 비어있는 경우
    """
    path = uri[len(RESOURCE_URI_SCHEME):] if uri.startswith(RESOURCE_URI_SCHEME) else uri
    if not path.startswith(RESOURCE_URI_PREFIX) or len(path) == len(RESOURCE_URI_PREFIX):
        raise InvalidParamsError("Invalid resource URI", data={"uri": uri})
    return path[len(RESOURCE_URI_PREFIX):]
