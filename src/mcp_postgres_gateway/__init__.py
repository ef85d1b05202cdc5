"""
MCP PostgreSQL 게이트웨이

OAuth2/JWT 로 인증된 호출자에게 PostgreSQL 을 Model Context Protocol
(JSON-RPC over HTTP) 로 노출합니다.
"""

__version__ = "1.0.0"
