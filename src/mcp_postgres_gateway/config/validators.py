"""
설정 검증 모듈

게이트웨이 설정의 유효성을 검증합니다. 서명 비밀키 길이처럼
기동을 막아야 하는 오류와, 경고로 충분한 항목을 구분합니다.
"""

from typing import List, Tuple
from urllib.parse import urlparse

import structlog

from .settings import Environment, GatewayConfig

logger = structlog.get_logger(__name__)

MIN_SECRET_LENGTH = 32


def validate_config(config: GatewayConfig) -> Tuple[bool, List[str]]:
    """
    전체 설정 검증

    Args:
        config: 검증할 게이트웨이 설정

    Returns:
        (유효 여부, 오류 메시지 목록)
    """
    errors: List[str] = []
    errors.extend(_validate_server_settings(config))
    errors.extend(_validate_auth_settings(config))
    errors.extend(_validate_database_settings(config))
    errors.extend(_validate_oauth_settings(config))

    is_valid = len(errors) == 0
    if not is_valid:
        logger.error("설정 검증 실패", error_count=len(errors), errors=errors[:5])
    else:
        logger.info("설정 검증 성공")
    return is_valid, errors


def _validate_server_settings(config: GatewayConfig) -> List[str]:
    """서버 설정 검증"""
    errors = []
    if not 1 <= config.port <= 65535:
        errors.append(f"잘못된 포트 번호: {config.port}")

    parsed = urlparse(config.public_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"PUBLIC_URL 형식이 잘못됨: {config.public_url}")
    elif config.environment is Environment.PRODUCTION and parsed.scheme != "https":
        logger.warning("프로덕션 환경에서 HTTPS 가 아닌 PUBLIC_URL 사용", public_url=config.public_url)
    return errors


def _validate_auth_settings(config: GatewayConfig) -> List[str]:
    """인증 설정 검증"""
    errors = []
    secret = config.auth.jwt_secret
    if not secret:
        errors.append("JWT_SECRET 이 설정되지 않음")
    elif len(secret) < MIN_SECRET_LENGTH:
        errors.append(f"JWT_SECRET 은 최소 {MIN_SECRET_LENGTH}자 이상이어야 함")

    if config.auth.jwt_algorithm not in ("HS256", "HS384", "HS512"):
        errors.append(f"지원하지 않는 JWT 알고리즘: {config.auth.jwt_algorithm}")
    return errors


def _validate_database_settings(config: GatewayConfig) -> List[str]:
    """데이터베이스 설정 검증"""
    errors = []
    db = config.database
    if db.min_size < 0:
        errors.append("DB_POOL_MIN_SIZE 는 0 이상이어야 함")
    if db.max_size < 1:
        errors.append("DB_POOL_MAX_SIZE 는 1 이상이어야 함")
    if db.min_size > db.max_size:
        errors.append("DB_POOL_MIN_SIZE 가 DB_POOL_MAX_SIZE 보다 큼")
    if db.connect_timeout <= 0 or db.acquire_timeout <= 0:
        errors.append("DB 타임아웃은 0 보다 커야 함")
    if db.command_timeout is not None and db.command_timeout <= 0:
        errors.append("DB_COMMAND_TIMEOUT 은 0 보다 커야 함")
    return errors


def _validate_oauth_settings(config: GatewayConfig) -> List[str]:
    """OAuth 설정 검증 (미설정은 경고만)"""
    errors = []
    oauth = config.oauth
    if not oauth.configured:
        logger.warning("GitHub OAuth 가 설정되지 않음, OAuth 엔드포인트가 비활성 상태로 응답함")
        return errors
    if oauth.redirect_uri and not urlparse(oauth.redirect_uri).netloc:
        errors.append(f"GITHUB_REDIRECT_URI 형식이 잘못됨: {oauth.redirect_uri}")
    return errors
