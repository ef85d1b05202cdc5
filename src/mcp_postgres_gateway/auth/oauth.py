"""
GitHub OAuth 위임

게이트웨이는 자체 사용자 저장소 없이 GitHub 에 신원 확인을 위임하고,
확인된 GitHub login 을 주체로 하는 자체 세션 토큰을 발급합니다.

흐름:
    1. authorize: 호출자의 redirect_uri/state 를 Transfer State 로 감싸
       GitHub 인가 화면으로 리다이렉트
    2. callback: GitHub 이 돌려준 code(또는 error)를 원래 호출자에게 중계.
       이 단계에서는 세션 토큰을 발급하지 않음
    3. token exchange: 호출자가 서버 간 호출로 code 를 제출하면 GitHub 과
       교환하고 프로필을 조회한 뒤 세션 토큰 발급

서버 측 흐름 상태는 저장하지 않습니다. 이어가기에 필요한 값은 모두
리다이렉트 URL 의 state 파라미터에 실려 다니며, 세션 토큰 비밀 키로
서명되어 위조된 redirect_uri 로 code 가 중계되지 않습니다.
"""

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog
from pydantic import ValidationError

from ..config import OAuthConfig
from ..exceptions import (
    InvalidClientError,
    InvalidStateError,
    OAuthRequestError,
    UpstreamExchangeError,
    UpstreamProfileError,
)
from .credentials import CredentialCodec
from .models import GitHubUser, TokenResponse

logger = structlog.get_logger(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"

GRANTED_SCOPE = "database:read database:write"


def append_query(url: str, params: Dict[str, Optional[str]]) -> str:
    """기존 쿼리를 보존하면서 URL 에 파라미터 추가 (None 값은 생략)"""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass(frozen=True)
class TransferState:
    """
    OAuth Transfer State

    호출자의 원래 redirect_uri 와 state 를 GitHub 왕복 동안 보관하는
    값 객체입니다. URL-safe base64 로 인코딩한 JSON 이며 자체 만료는
    없습니다. 유효 기간은 GitHub 인가 코드의 수명을 따릅니다.
    """

    redirect_uri: str
    state: Optional[str] = None

    def encode(self) -> str:
        payload = json.dumps(
            {"redirect_uri": self.redirect_uri, "state": self.state},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, value: Optional[str]) -> "TransferState":
        """
        Transfer State 디코드

        Raises:
            InvalidStateError: 값이 없거나 디코드/파싱할 수 없는 경우
        """
        if not value:
            raise InvalidStateError("Missing state parameter")
        try:
            padded = value + "=" * (-len(value) % 4)
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as e:
            logger.warning("Transfer State 디코드 실패", error=str(e))
            raise InvalidStateError() from None

        if not isinstance(data, dict):
            raise InvalidStateError()
        redirect_uri = data.get("redirect_uri")
        state = data.get("state")
        if not isinstance(redirect_uri, str) or not redirect_uri:
            raise InvalidStateError()
        if state is not None and not isinstance(state, str):
            raise InvalidStateError()
        return cls(redirect_uri=redirect_uri, state=state)


class GitHubOAuthDelegate:
    """
    GitHub OAuth 위임 서비스

    Attributes:
        config (OAuthConfig): GitHub OAuth 앱 설정
        codec (CredentialCodec): 세션 토큰 발급에 사용할 코덱
    """

    def __init__(self, config: OAuthConfig, codec: CredentialCodec):
        self.config = config
        self.codec = codec
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """업스트림 호출용 HTTP 클라이언트 (lazy initialization)"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self.config.http_timeout, connect=self.config.connect_timeout
                ),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _check_client_id(self, client_id: Optional[str], status_code: int) -> None:
        expected = self.config.client_id
        if (
            not expected
            or not client_id
            or not hmac.compare_digest(client_id.encode("utf-8"), expected.encode("utf-8"))
        ):
            logger.warning("클라이언트 식별자 불일치", client_id=client_id)
            raise InvalidClientError(status_code=status_code)

    def seal_state(self, transfer: TransferState) -> str:
        """Transfer State 를 인코딩하고 서명을 붙임 (`<encoded>.<signature>`)"""
        encoded = transfer.encode()
        return f"{encoded}.{self.codec.sign(encoded)}"

    def open_state(self, value: Optional[str]) -> TransferState:
        """
        서명된 Transfer State 검증 후 디코드

        Raises:
            InvalidStateError: 서명이 없거나 일치하지 않는 경우, 또는 디코드 실패
        """
        if not value:
            raise InvalidStateError("Missing state parameter")
        encoded, _, signature = value.rpartition(".")
        if not encoded or not self.codec.check_signature(encoded, signature):
            logger.warning("Transfer State 서명 불일치")
            raise InvalidStateError()
        return TransferState.decode(encoded)

    def authorize(
        self,
        client_id: Optional[str],
        redirect_uri: Optional[str],
        state: Optional[str] = None,
        response_type: Optional[str] = None,
    ) -> str:
        """
        GitHub 인가 URL 생성

        Args:
            client_id: 호출자가 제시한 클라이언트 식별자
            redirect_uri: 호출자의 최종 리다이렉트 대상
            state: 호출자의 CSRF state (그대로 복원됨)
            response_type: 지정 시 "code" 만 허용

        Returns:
            str: GitHub 인가 엔드포인트 URL

        Raises:
            InvalidClientError: client_id 가 설정값과 다른 경우 (리다이렉트 전)
            OAuthRequestError: redirect_uri 누락 또는 지원하지 않는 response_type
        """
        self._check_client_id(client_id, status_code=400)
        if response_type is not None and response_type != "code":
            raise OAuthRequestError(
                f"Unsupported response_type: {response_type}",
                error_name="unsupported_response_type",
            )
        if not redirect_uri:
            raise OAuthRequestError("redirect_uri is required")

        transfer = TransferState(redirect_uri=redirect_uri, state=state)
        url = append_query(
            GITHUB_AUTHORIZE_URL,
            {
                "client_id": self.config.client_id,
                "redirect_uri": self.config.redirect_uri,
                "scope": self.config.scope,
                "state": self.seal_state(transfer),
            },
        )
        logger.info("GitHub 인가 리다이렉트", redirect_uri=redirect_uri)
        return url

    def callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> str:
        """
        GitHub 콜백을 원래 호출자에게 중계

        Returns:
            str: 호출자 redirect_uri 에 code(또는 error)와 원래 state 를 붙인 URL

        Raises:
            InvalidStateError: Transfer State 서명이 맞지 않거나 디코드할 수 없는 경우
            OAuthRequestError: error 도 code 도 없는 경우
        """
        transfer = self.open_state(state)

        if error:
            logger.info("GitHub 인가 거부 중계", error=error)
            return append_query(
                transfer.redirect_uri,
                {
                    "error": error,
                    "error_description": error_description,
                    "state": transfer.state,
                },
            )

        if not code:
            raise OAuthRequestError("Missing authorization code")

        return append_query(transfer.redirect_uri, {"code": code, "state": transfer.state})

    async def exchange_code(
        self,
        grant_type: Optional[str],
        code: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> TokenResponse:
        """
        인가 코드를 세션 토큰으로 교환

        PKCE code_verifier 가 있으면 공개 클라이언트로 보고
        client_secret 검증을 건너뜁니다. verifier 자체를 code_challenge 와
        대조하지는 않습니다.

        Args:
            grant_type: "authorization_code" 만 허용
            code: GitHub 인가 코드
            client_id: 클라이언트 식별자
            client_secret: 기밀 클라이언트의 비밀값
            code_verifier: PKCE verifier

        Returns:
            TokenResponse: 24시간 유효한 Bearer 세션 토큰

        Raises:
            OAuthRequestError: grant_type 불일치, code 누락
            InvalidClientError: client_id/secret 불일치 (401)
            UpstreamExchangeError: GitHub 코드 교환 실패
            UpstreamProfileError: GitHub 프로필 조회 실패
        """
        if grant_type != "authorization_code":
            raise OAuthRequestError(
                "Only authorization_code grant type is supported",
                error_name="unsupported_grant_type",
            )
        self._check_client_id(client_id, status_code=401)

        if not code_verifier:
            expected_secret = self.config.client_secret
            if (
                not expected_secret
                or not client_secret
                or not hmac.compare_digest(
                    client_secret.encode("utf-8"), expected_secret.encode("utf-8")
                )
            ):
                logger.warning("클라이언트 비밀값 불일치", client_id=client_id)
                raise InvalidClientError("Invalid client credentials", status_code=401)

        if not code:
            raise OAuthRequestError("Missing authorization code", error_name="invalid_request")

        upstream_token = await self._exchange_with_github(code)
        user = await self.fetch_profile(upstream_token)
        token = self.codec.issue(user.login)

        logger.info("세션 토큰 발급 완료", login=user.login, pkce=bool(code_verifier))
        return TokenResponse(
            access_token=token,
            expires_in=self.codec.expires_in,
            scope=GRANTED_SCOPE,
        )

    async def _exchange_with_github(self, code: str) -> str:
        try:
            response = await self.http_client.post(
                GITHUB_TOKEN_URL,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code": code,
                    "redirect_uri": self.config.redirect_uri,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("GitHub 토큰 교환 요청 실패", error=str(e))
            raise UpstreamExchangeError("server_error", f"GitHub token exchange failed: {e}", status_code=502) from e

        body = self._json_body(response)
        if body.get("error"):
            logger.warning("GitHub 토큰 교환 거부", error=body.get("error"))
            raise UpstreamExchangeError(
                str(body["error"]),
                str(body.get("error_description") or body["error"]),
            )
        if response.is_error:
            raise UpstreamExchangeError(
                "invalid_grant",
                f"GitHub token endpoint returned HTTP {response.status_code}",
            )

        access_token = body.get("access_token")
        if not access_token:
            raise UpstreamExchangeError("invalid_grant", "No access token in GitHub response")
        return access_token

    async def fetch_profile(self, access_token: str) -> GitHubUser:
        """
        GitHub 사용자 프로필 조회

        Raises:
            UpstreamProfileError: 요청 실패, 비정상 응답, 필수 필드 누락
        """
        try:
            response = await self.http_client.get(
                GITHUB_USER_URL,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/vnd.github.v3+json",
                },
            )
        except httpx.HTTPError as e:
            logger.error("GitHub 프로필 요청 실패", error=str(e))
            raise UpstreamProfileError(f"GitHub profile request failed: {e}") from e

        if response.is_error:
            logger.warning("GitHub 프로필 조회 실패", status_code=response.status_code)
            raise UpstreamProfileError(
                f"GitHub user API returned HTTP {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            return GitHubUser.model_validate(self._json_body(response))
        except ValidationError as e:
            raise UpstreamProfileError(f"Malformed GitHub profile: {e.error_count()} errors") from e

    async def validate_upstream_token(self, github_token: Optional[str]) -> Tuple[GitHubUser, str]:
        """
        GitHub 액세스 토큰을 직접 검증하고 세션 토큰 발급

        GitHub 앱에서 이미 토큰을 받은 클라이언트를 위한 경로입니다.

        Returns:
            (GitHub 사용자, 세션 토큰)

        Raises:
            OAuthRequestError: 토큰 누락 (400, missing_token)
            UpstreamProfileError: GitHub 이 토큰을 거부 (401, invalid_token) 또는 조회 실패
        """
        if not github_token:
            raise OAuthRequestError("GitHub token is required", error_name="missing_token")
        try:
            user = await self.fetch_profile(github_token)
        except UpstreamProfileError as e:
            if e.upstream_status in (401, 403):
                raise UpstreamProfileError(
                    "Invalid GitHub token", status_code=401, error_name="invalid_token"
                ) from e
            raise
        token = self.codec.issue(user.login)
        logger.info("GitHub 토큰 직접 검증 완료", login=user.login)
        return user, token

    @staticmethod
    def _json_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
