"""OAuth / 인증 관련 데이터 모델"""

from typing import Optional

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    """GitHub 사용자 프로필 (필요한 필드만)"""

    id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class TokenRequest(BaseModel):
    """/oauth/token 요청 본문 (폼 또는 JSON)"""

    grant_type: Optional[str] = None
    code: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    code_verifier: Optional[str] = None


class TokenResponse(BaseModel):
    """세션 토큰 발급 응답"""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str = "database:read database:write"


class ValidateGitHubRequest(BaseModel):
    """GitHub 액세스 토큰 직접 검증 요청"""

    github_token: Optional[str] = None


class ValidateGitHubResponse(BaseModel):
    """GitHub 액세스 토큰 직접 검증 응답"""

    valid: bool = True
    user: GitHubUser
    jwt_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(default=86400)
