"""
FastAPI 의존성 주입

애플리케이션 구성요소는 `create_app()` 에서 한 번 생성되어 `app.state`
에 보관됩니다. 이 모듈은 라우트가 그 구성요소를 꺼내 쓰도록 하는
의존성 함수와 Annotated 별칭을 제공합니다.

의존성 체계:
    - get_authenticator / get_oauth_delegate / get_gateway / get_dispatcher
    - require_bearer: REST 엔드포인트용 Bearer 토큰 인증 (API 키 불가)
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..database import DatabaseGateway
from ..exceptions import AuthenticationError
from ..mcp.dispatcher import ProtocolDispatcher
from .authenticator import AuthContext, RequestAuthenticator
from .oauth import GitHubOAuthDelegate

# Authorization: Bearer <token> 추출. 헤더가 없거나 다른 스킴이면 None
security = HTTPBearer(auto_error=False)


def get_authenticator(request: Request) -> RequestAuthenticator:
    return request.app.state.authenticator


def get_oauth_delegate(request: Request) -> GitHubOAuthDelegate:
    return request.app.state.oauth_delegate


def get_gateway(request: Request) -> DatabaseGateway:
    return request.app.state.gateway


def get_dispatcher(request: Request) -> ProtocolDispatcher:
    return request.app.state.dispatcher


async def require_bearer(
    authenticator: Annotated[RequestAuthenticator, Depends(get_authenticator)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> AuthContext:
    """
    Bearer 세션 토큰 필수 인증

    Raises:
        AuthenticationError: 헤더 누락, Bearer 가 아닌 스킴, 토큰 검증 실패
    """
    if credentials is None:
        raise AuthenticationError("Missing or invalid authorization header")
    return authenticator.authenticate(f"Bearer {credentials.credentials}")


Authenticator = Annotated[RequestAuthenticator, Depends(get_authenticator)]
OAuthDelegate = Annotated[GitHubOAuthDelegate, Depends(get_oauth_delegate)]
Gateway = Annotated[DatabaseGateway, Depends(get_gateway)]
Dispatcher = Annotated[ProtocolDispatcher, Depends(get_dispatcher)]
BearerAuth = Annotated[AuthContext, Depends(require_bearer)]
