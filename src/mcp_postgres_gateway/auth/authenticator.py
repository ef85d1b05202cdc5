"""
요청 인증기

Authorization 헤더를 인증 컨텍스트로 변환합니다.
데이터베이스나 네트워크에 접근하지 않는 순수 함수형 컴포넌트입니다.

지원 스킴 (대소문자 무시):
    - Bearer <token>: 세션 토큰 검증
    - ApiKey <key>: 정적 API 키 비교
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from ..exceptions import AuthenticationError, InvalidCredentialError
from .credentials import CredentialCodec

logger = structlog.get_logger(__name__)


class AuthScheme(Enum):
    """인증 방식"""

    NONE = "none"
    BEARER = "bearer"
    API_KEY = "apikey"


@dataclass(frozen=True)
class AuthContext:
    """
    요청 단위 인증 컨텍스트

    세 가지 형태 중 하나입니다:
        - 미인증: authenticated=False
        - 세션 토큰: subject 설정, scheme=BEARER
        - API 키: scheme=API_KEY (키 값 자체는 보관하지 않음)
    """

    authenticated: bool = False
    scheme: AuthScheme = AuthScheme.NONE
    subject: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls()

    @property
    def principal(self) -> str:
        """로깅용 주체 표기"""
        if self.scheme is AuthScheme.API_KEY:
            return "api-key"
        return self.subject or "anonymous"


class RequestAuthenticator:
    """
    Authorization 헤더 인증기

    Attributes:
        codec (CredentialCodec): 세션 토큰/API 키 검증에 사용할 코덱
    """

    def __init__(self, codec: CredentialCodec):
        self.codec = codec

    def authenticate(self, header: Optional[str]) -> AuthContext:
        """
        Authorization 헤더 인증

        헤더가 없으면 미인증 컨텍스트를 반환하며, 이를 허용할지는
        호출자가 결정합니다.

        Args:
            header: Authorization 헤더 원문 (없으면 None)

        Returns:
            AuthContext: 인증 컨텍스트

        Raises:
            AuthenticationError: 스킴이 잘못되었거나 자격 증명이 유효하지 않은 경우
        """
        if header is None or not header.strip():
            return AuthContext.anonymous()

        scheme, _, credential = header.strip().partition(" ")
        credential = credential.strip()
        scheme = scheme.lower()

        if scheme == AuthScheme.BEARER.value:
            try:
                subject = self.codec.verify(credential)
            except InvalidCredentialError as e:
                raise AuthenticationError(e.message) from None
            return AuthContext(authenticated=True, scheme=AuthScheme.BEARER, subject=subject)

        if scheme == AuthScheme.API_KEY.value:
            if not self.codec.verify_api_key(credential):
                logger.warning("API 키 인증 실패")
                raise AuthenticationError("Invalid API key")
            return AuthContext(authenticated=True, scheme=AuthScheme.API_KEY)

        raise AuthenticationError("Invalid authentication format")
