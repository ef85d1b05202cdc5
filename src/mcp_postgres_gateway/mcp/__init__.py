"""MCP 프로토콜 처리"""

from .dispatcher import ProtocolDispatcher
from .models import JSONRPCRequest, MCPMethod

__all__ = ["JSONRPCRequest", "MCPMethod", "ProtocolDispatcher"]
