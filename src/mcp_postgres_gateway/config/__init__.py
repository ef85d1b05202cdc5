"""
설정 관리 모듈

게이트웨이 설정 dataclass 와 검증 함수를 제공합니다.
"""

from .settings import (
    AuthConfig,
    DatabaseConfig,
    Environment,
    GatewayConfig,
    LoggingConfig,
    OAuthConfig,
)
from .validators import validate_config

__all__ = [
    "AuthConfig",
    "DatabaseConfig",
    "Environment",
    "GatewayConfig",
    "LoggingConfig",
    "OAuthConfig",
    "validate_config",
]
