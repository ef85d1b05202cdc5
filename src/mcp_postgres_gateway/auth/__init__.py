"""
인증 모듈

세션 토큰 코덱, 요청 인증기, GitHub OAuth 위임을 제공합니다.
"""

from .authenticator import AuthContext, AuthScheme, RequestAuthenticator
from .credentials import CredentialCodec
from .oauth import GitHubOAuthDelegate, TransferState

__all__ = [
    "AuthContext",
    "AuthScheme",
    "CredentialCodec",
    "GitHubOAuthDelegate",
    "RequestAuthenticator",
    "TransferState",
]
