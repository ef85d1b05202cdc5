"""
세션 토큰 코덱

게이트웨이가 발급하는 Bearer 세션 토큰(JWT)의 생성과 검증,
그리고 정적 API 키 비교를 담당합니다.

토큰 설계:
    - HMAC 서명 (기본 HS256)
    - 표준 클레임: sub, iss, iat, exp, jti
    - 고정 24시간 수명, 서버 측 저장소 없음 (폐기 불가)

검증 실패는 원인(만료, 서명 불일치, 형식 오류)과 관계없이
항상 `InvalidCredentialError` 하나로 보고됩니다.

사용 예시:
    >>> codec = CredentialCodec(secret_key="x" * 32)
    >>> token = codec.issue("octocat")
    >>> codec.verify(token)
    'octocat'
"""

import base64
import hashlib
import hmac
import uuid
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

import structlog
from jose import JWTError, jwt

from ..exceptions import InvalidCredentialError

logger = structlog.get_logger(__name__)

MIN_SECRET_LENGTH = 32
DEFAULT_ISSUER = "mcp-postgres-gateway"
TOKEN_LIFETIME = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CredentialCodec:
    """
    세션 토큰 발급/검증기

    상태를 갖지 않으므로 프로세스 전체에서 하나의 인스턴스를 공유합니다.

    Attributes:
        issuer (str): 토큰 발급자 (iss 클레임)
        algorithm (str): 서명 알고리즘
        lifetime (timedelta): 토큰 수명
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = DEFAULT_ISSUER,
        api_key: Optional[str] = None,
        lifetime: timedelta = TOKEN_LIFETIME,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            secret_key: 서명 비밀 키 (최소 32자)
            algorithm: JWT 서명 알고리즘 (기본값: "HS256")
            issuer: iss 클레임 값
            api_key: 정적 API 키. None 이면 API 키 인증은 항상 실패
            lifetime: 토큰 수명 (기본값: 24시간)
            clock: 현재 시각 공급자 (테스트에서 교체)

        Raises:
            ValueError: 비밀 키가 없거나 32자 미만인 경우
        """
        if not secret_key or len(secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"JWT secret must be at least {MIN_SECRET_LENGTH} characters"
            )
        self._secret_key = secret_key
        self._api_key = api_key or None
        self.algorithm = algorithm
        self.issuer = issuer
        self.lifetime = lifetime
        self._clock = clock

        logger.info(
            "세션 토큰 코덱 초기화",
            algorithm=algorithm,
            issuer=issuer,
            lifetime_seconds=int(lifetime.total_seconds()),
            api_key_configured=self._api_key is not None,
        )

    @property
    def expires_in(self) -> int:
        """토큰 수명 (초)"""
        return int(self.lifetime.total_seconds())

    def issue(self, subject: str) -> str:
        """
        세션 토큰 발급

        Args:
            subject: 토큰 주체 (업스트림 사용자 login)

        Returns:
            str: 서명된 JWT 문자열

        Raises:
            ValueError: subject 가 비어있는 경우
        """
        if not subject:
            raise ValueError("subject must not be empty")

        now = self._clock()
        payload = {
            "sub": str(subject),
            "iss": self.issuer,
            "iat": now,
            "exp": now + self.lifetime,
            "jti": str(uuid.uuid4()),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self.algorithm)
        logger.debug("세션 토큰 발급", subject=subject, expires_at=payload["exp"].isoformat())
        return token

    def verify(self, token: str) -> str:
        """
        세션 토큰 검증

        서명, 발급자, 만료 시간을 검증하고 주체를 반환합니다.

        Args:
            token: 검증할 JWT 문자열

        Returns:
            str: 토큰 주체 (sub)

        Raises:
            InvalidCredentialError: 어떤 이유로든 검증에 실패한 경우
        """
        if not token:
            raise InvalidCredentialError()
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require_exp": True, "require_iat": True, "require_sub": True},
            )
        except JWTError as e:
            # 원인은 로그에만 남긴다
            logger.warning("세션 토큰 검증 실패", error=str(e))
            raise InvalidCredentialError() from None

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            logger.warning("세션 토큰 주체 누락")
            raise InvalidCredentialError()
        return subject

    @property
    def api_key_configured(self) -> bool:
        return self._api_key is not None

    def verify_api_key(self, candidate: Optional[str]) -> bool:
        """
        정적 API 키 비교

        상수 시간 비교를 사용하며, 키가 설정되지 않았으면 항상 False 입니다.
        """
        if self._api_key is None or not candidate:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self._api_key.encode("utf-8"))

    def sign(self, value: str) -> str:
        """세션 토큰 비밀 키로 만든 HMAC-SHA256 서명 (URL-safe base64)"""
        digest = hmac.new(self._secret_key.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def check_signature(self, value: str, signature: str) -> bool:
        return hmac.compare_digest(self.sign(value).encode("ascii"), signature.encode("utf-8"))
