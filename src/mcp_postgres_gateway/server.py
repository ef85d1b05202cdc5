"""
MCP PostgreSQL 게이트웨이 HTTP 서버

인증, 프로토콜 디스패치, 데이터베이스 게이트웨이를 HTTP 엔드포인트로
묶는 FastAPI 애플리케이션입니다. 구성요소는 `create_app()` 에서 명시적으로
생성되어 `app.state` 로 주입되며, lifespan 이 커넥션 풀과 HTTP 클라이언트의
시작/종료를 관리합니다.

API 엔드포인트:
    OAuth (GitHub 위임):
        - GET  /oauth/authorize: GitHub 인가 화면으로 리다이렉트
        - POST /oauth/token: 인가 코드 → 세션 토큰 교환
        - GET  /auth/callback: GitHub 콜백을 원래 호출자에게 중계
        - POST /auth/validate-github: GitHub 토큰 직접 검증 후 세션 토큰 발급

    MCP (Bearer 또는 ApiKey):
        - POST /mcp, /mcp/v1, /api/mcp, /: JSON-RPC 단건/배치
        - GET  /mcp: 엔드포인트 상태

    REST (Bearer 전용):
        - GET  /api/tables: 릴레이션 목록
        - GET  /api/tables/{table_name}: 스키마 + 샘플 + 행 수
        - POST /api/query: SQL 실행

    메타데이터:
        - GET /health
        - GET /.well-known/oauth-authorization-server
        - GET /.well-known/mcp-server, /mcp/capabilities
"""

import json
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ValidationError

from .auth import CredentialCodec, GitHubOAuthDelegate, RequestAuthenticator
from .auth.dependencies import Authenticator, BearerAuth, Dispatcher, Gateway, OAuthDelegate
from .auth.models import TokenRequest, ValidateGitHubRequest, ValidateGitHubResponse
from .config import GatewayConfig, validate_config
from .database import DatabaseGateway, PostgreSQLPoolManager
from .exceptions import AuthenticationError, ErrorHandler, GatewayError, OAuthError, OAuthRequestError
from .mcp import MCPMethod, ProtocolDispatcher
from .mcp.catalog import DEFAULT_PROTOCOL_VERSION, SERVER_CAPABILITIES, TOOLS
from .middleware import LoggingMiddleware, sanitize_data

logger = structlog.get_logger(__name__)

MCP_PATHS = ("/mcp", "/mcp/v1", "/api/mcp", "/")
GRANTED_SCOPES = ["database:read", "database:write"]


def _config(request: Request) -> GatewayConfig:
    return request.app.state.config


# ---------------------------------------------------------------------------
# 애플리케이션 수명주기
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    커넥션 풀 시작/종료

    DB 가 기동 시점에 준비되지 않았어도 서버는 올라오며, 풀은 첫 요청에서
    다시 초기화를 시도합니다.
    """
    config: GatewayConfig = app.state.config
    pool: PostgreSQLPoolManager = app.state.pool
    logger.info("게이트웨이 서버 시작", port=config.port, environment=config.environment.value)

    try:
        await pool.initialize()
    except Exception as e:
        logger.error("커넥션 풀 초기화 실패, 첫 요청 시 재시도", error=str(e))

    yield

    await app.state.oauth_delegate.close()
    await pool.close()
    logger.info("게이트웨이 서버 종료")


# ---------------------------------------------------------------------------
# 예외 처리
# ---------------------------------------------------------------------------


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """REST/OAuth 경로에서 발생한 GatewayError 를 HTTP 응답으로 변환"""
    if isinstance(exc, OAuthError):
        content: Dict[str, Any] = exc.to_oauth_dict()
    else:
        content = {"error": exc.error_name, "message": exc.message}

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    if exc.status_code >= 500:
        logger.error("요청 실패", path=request.url.path, **ErrorHandler.create_error_context(exc))
    else:
        logger.info("요청 거부", path=request.url.path, error=exc.error_name, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("처리되지 않은 예외", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "server_error",
            "error_description": "Internal server error",
            "message": "Internal server error",
        },
    )


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

oauth_router = APIRouter(tags=["oauth"])


@oauth_router.get("/oauth/authorize")
async def oauth_authorize(
    delegate: OAuthDelegate,
    client_id: Optional[str] = Query(default=None),
    redirect_uri: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    response_type: Optional[str] = Query(default=None),
):
    """
    GitHub 인가 시작

    client_id 가 설정된 GitHub 앱과 다르면 리다이렉트 없이 400 을 반환합니다.
    """
    url = delegate.authorize(client_id, redirect_uri, state, response_type)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


async def _read_token_request(request: Request) -> TokenRequest:
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = json.loads(await request.body() or b"{}")
        else:
            form = await request.form()
            data = {key: value for key, value in form.items() if isinstance(value, str)}
        return TokenRequest.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise OAuthRequestError(f"Malformed token request: {e}") from None


@oauth_router.post("/oauth/token")
async def oauth_token(request: Request, delegate: OAuthDelegate):
    """
    인가 코드를 세션 토큰으로 교환

    본문은 application/x-www-form-urlencoded 또는 JSON 을 받습니다.
    """
    token_request = await _read_token_request(request)
    token = await delegate.exchange_code(
        grant_type=token_request.grant_type,
        code=token_request.code,
        client_id=token_request.client_id,
        client_secret=token_request.client_secret,
        code_verifier=token_request.code_verifier,
    )
    return JSONResponse(
        content=token.model_dump(),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


@oauth_router.get("/auth/callback")
async def oauth_callback(
    delegate: OAuthDelegate,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
):
    """GitHub 콜백 → 원래 호출자로 code/error 와 원래 state 중계"""
    url = delegate.callback(code, state, error, error_description)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@oauth_router.post("/auth/validate-github", response_model=ValidateGitHubResponse)
async def validate_github_token(
    delegate: OAuthDelegate,
    payload: Optional[ValidateGitHubRequest] = None,
):
    """GitHub 액세스 토큰을 검증하고 세션 토큰 발급"""
    user, token = await delegate.validate_upstream_token(payload.github_token if payload else None)
    return ValidateGitHubResponse(user=user, jwt_token=token, expires_in=delegate.codec.expires_in)


# ---------------------------------------------------------------------------
# MCP
# ---------------------------------------------------------------------------

mcp_router = APIRouter(tags=["mcp"])


def _unauthorized_envelope(error: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ErrorHandler.handle_error(error, None),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def mcp_endpoint(request: Request, authenticator: Authenticator, dispatcher: Dispatcher):
    """
    MCP JSON-RPC 엔드포인트

    인증 실패는 401 과 함께 JSON-RPC 에러 봉투로 응답합니다. 인증 이후의
    모든 결과(에러 포함)는 HTTP 200 봉투이며, 응답할 것이 없는 알림은
    본문 없는 202 입니다.
    """
    try:
        auth = authenticator.authenticate(request.headers.get("authorization"))
    except AuthenticationError as e:
        logger.info("MCP 인증 실패", reason=e.message)
        return _unauthorized_envelope(e)
    if not auth.authenticated:
        return _unauthorized_envelope(AuthenticationError("Authentication required"))

    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        return JSONResponse(content=dispatcher.parse_error(str(e)))

    logging_config = _config(request).logging
    if logging_config.log_request_body:
        logger.debug("MCP 요청 본문", body=sanitize_data(payload, logging_config.sensitive_fields))

    response = await dispatcher.dispatch_payload(payload, auth)
    if response is None:
        return Response(status_code=status.HTTP_202_ACCEPTED)
    return JSONResponse(content=response)


for _path in MCP_PATHS:
    mcp_router.add_api_route(_path, mcp_endpoint, methods=["POST"])


@mcp_router.get("/mcp")
async def mcp_status(request: Request):
    """MCP 엔드포인트 상태"""
    config = _config(request)
    return {
        "status": "ok",
        "endpoint": f"{config.public_url}/mcp",
        "transport": "http",
        "protocolVersion": DEFAULT_PROTOCOL_VERSION,
        "authentication": ["Bearer", "ApiKey"],
        "methods": [method.value for method in MCPMethod],
    }


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------

rest_router = APIRouter(prefix="/api", tags=["rest"])


class QueryRequest(BaseModel):
    sql: Optional[str] = None


@rest_router.get("/tables")
async def list_tables(auth: BearerAuth, gateway: Gateway):
    """릴레이션 목록"""
    relations = await gateway.list_relations()
    return {"tables": [relation.to_dict() for relation in relations]}


@rest_router.get("/tables/{table_name}")
async def get_table(table_name: str, auth: BearerAuth, gateway: Gateway):
    """릴레이션 스키마, 샘플 데이터, 전체 행 수"""
    snapshot = await gateway.read_relation(table_name)
    return {
        "table_name": snapshot.name,
        "schema": snapshot.columns,
        "sample_data": snapshot.sample_rows,
        "total_rows": snapshot.total_rows,
    }


@rest_router.post("/query")
async def run_query(auth: BearerAuth, gateway: Gateway, payload: Optional[QueryRequest] = None):
    """SQL 실행 (엔진 에러는 400 query_error)"""
    if payload is None or not payload.sql or not payload.sql.strip():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "missing_sql", "message": "SQL query is required"},
        )
    logger.info("REST SQL 실행", principal=auth.principal)
    result = await gateway.execute_raw(payload.sql)
    return {
        "rows": result.rows,
        "row_count": result.row_count,
        "command": result.command,
        "fields": result.fields,
    }


# ---------------------------------------------------------------------------
# 메타데이터
# ---------------------------------------------------------------------------

meta_router = APIRouter(tags=["meta"])


@meta_router.get("/health")
async def health_check(request: Request):
    """서버 및 커넥션 풀 상태"""
    config = _config(request)
    database = await request.app.state.pool.health_check()
    return {
        "status": "healthy" if database.get("status") == "healthy" else "degraded",
        "service": config.name,
        "version": config.version,
        "environment": config.environment.value,
        "timestamp": datetime.now(UTC).isoformat(),
        "github_configured": config.oauth.configured,
        "api_key_configured": bool(config.auth.api_key),
        "database": database,
    }


@meta_router.get("/.well-known/oauth-authorization-server")
async def oauth_metadata(request: Request):
    """OAuth 2.0 인가 서버 메타데이터 (RFC 8414)"""
    base = _config(request).public_url
    return {
        "issuer": base,
        "authorization_endpoint": f"{base}/oauth/authorize",
        "token_endpoint": f"{base}/oauth/token",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "code_challenge_methods_supported": ["S256", "plain"],
        "token_endpoint_auth_methods_supported": ["client_secret_post", "none"],
        "scopes_supported": GRANTED_SCOPES,
    }


@meta_router.get("/.well-known/mcp-server")
@meta_router.get("/mcp/capabilities")
async def mcp_discovery(request: Request):
    """MCP 서버 디스커버리 정보"""
    config = _config(request)
    return {
        "name": config.name,
        "version": config.version,
        "protocolVersion": DEFAULT_PROTOCOL_VERSION,
        "endpoint": f"{config.public_url}/mcp",
        "capabilities": SERVER_CAPABILITIES,
        "tools": [tool["name"] for tool in TOOLS],
        "authentication": {
            "type": "oauth2",
            "schemes": ["Bearer", "ApiKey"],
            "authorization_server": f"{config.public_url}/.well-known/oauth-authorization-server",
        },
    }


# ---------------------------------------------------------------------------
# 애플리케이션 팩토리
# ---------------------------------------------------------------------------


def create_app(
    config: Optional[GatewayConfig] = None,
    pool: Optional[PostgreSQLPoolManager] = None,
    gateway: Optional[DatabaseGateway] = None,
    oauth_delegate: Optional[GitHubOAuthDelegate] = None,
) -> FastAPI:
    """
    FastAPI 애플리케이션 생성

    Args:
        config: 게이트웨이 설정 (없으면 환경 변수에서 로드)
        pool: 커넥션 풀 (없으면 config.database 로 생성)
        gateway: 데이터베이스 게이트웨이 (없으면 pool 로 생성)
        oauth_delegate: GitHub OAuth 위임 (없으면 config.oauth 로 생성)

    Returns:
        FastAPI: 구성된 애플리케이션

    Raises:
        RuntimeError: 설정 검증 실패
    """
    config = config or GatewayConfig.from_env()
    is_valid, errors = validate_config(config)
    if not is_valid:
        raise RuntimeError("Invalid configuration: " + "; ".join(errors))

    codec = CredentialCodec(
        secret_key=config.auth.jwt_secret,
        algorithm=config.auth.jwt_algorithm,
        issuer=config.auth.jwt_issuer,
        api_key=config.auth.api_key,
    )
    pool = pool or PostgreSQLPoolManager(config.database)
    gateway = gateway or DatabaseGateway(pool)

    app = FastAPI(
        title="MCP PostgreSQL Gateway",
        description="OAuth/JWT 인증을 거쳐 PostgreSQL 을 MCP 로 노출하는 게이트웨이",
        version=config.version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.codec = codec
    app.state.authenticator = RequestAuthenticator(codec)
    app.state.oauth_delegate = oauth_delegate or GitHubOAuthDelegate(config.oauth, codec)
    app.state.pool = pool
    app.state.gateway = gateway
    app.state.dispatcher = ProtocolDispatcher(gateway, config.name, config.version)

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(meta_router)
    app.include_router(oauth_router)
    app.include_router(rest_router)
    app.include_router(mcp_router)
    return app
