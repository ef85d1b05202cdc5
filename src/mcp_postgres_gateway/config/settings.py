"""
게이트웨이 설정 클래스

MCP PostgreSQL 게이트웨이의 모든 설정을 dataclass 로 관리합니다.
각 설정 블록은 `from_env()` 로 환경 변수에서 로드됩니다.

설정 블록:
    - DatabaseConfig: PostgreSQL 연결 및 커넥션 풀
    - AuthConfig: 세션 토큰 서명 및 정적 API 키
    - OAuthConfig: GitHub OAuth 애플리케이션
    - LoggingConfig: structlog 출력 및 요청 로깅
    - GatewayConfig: 위 블록을 묶는 최상위 설정
"""

import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import structlog

logger = structlog.get_logger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return float(value)


class Environment(Enum):
    """실행 환경"""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"


@dataclass
class DatabaseConfig:
    """
    데이터베이스 설정

    POSTGRES_DSN 이 주어지면 개별 DB_* 값보다 우선합니다.
    타임아웃은 초 단위이며, 연결 수립(connect_timeout)과
    쿼리 실행(command_timeout)을 분리합니다.
    """

    host: str = "localhost"
    port: int = 5432
    name: str = "postgres"
    user: str = "postgres"
    password: str = ""
    dsn: Optional[str] = None
    min_size: int = 1
    max_size: int = 20
    connect_timeout: float = 5.0
    acquire_timeout: float = 5.0
    acquire_retry_backoff: float = 0.2
    command_timeout: Optional[float] = None
    max_inactive_connection_lifetime: float = 30.0
    ssl: bool = False

    @classmethod
    def from_env(cls, environment: Environment = Environment.DEVELOPMENT) -> "DatabaseConfig":
        """환경 변수에서 데이터베이스 설정 로드"""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            name=os.getenv("DB_NAME", "postgres"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", ""),
            dsn=os.getenv("POSTGRES_DSN") or None,
            min_size=int(os.getenv("DB_POOL_MIN_SIZE", "1")),
            max_size=int(os.getenv("DB_POOL_MAX_SIZE", "20")),
            connect_timeout=float(os.getenv("DB_CONNECT_TIMEOUT", "5")),
            acquire_timeout=float(os.getenv("DB_ACQUIRE_TIMEOUT", "5")),
            acquire_retry_backoff=float(os.getenv("DB_ACQUIRE_RETRY_BACKOFF", "0.2")),
            command_timeout=_env_optional_float("DB_COMMAND_TIMEOUT"),
            max_inactive_connection_lifetime=float(os.getenv("DB_IDLE_TIMEOUT", "30")),
            ssl=_env_bool(
                "DB_SSL",
                "true" if environment is Environment.PRODUCTION else "false",
            ),
        )

    def build_dsn(self) -> str:
        """asyncpg 에 넘길 DSN 문자열"""
        if self.dsn:
            return self.dsn
        credentials = quote(self.user, safe="")
        if self.password:
            credentials += ":" + quote(self.password, safe="")
        return f"postgresql://{credentials}@{self.host}:{self.port}/{self.name}"


@dataclass
class AuthConfig:
    """
    인증 설정

    세션 토큰(JWT) 서명 정보와 선택적 정적 API 키입니다.
    """

    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "mcp-postgres-gateway"
    api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """환경 변수에서 인증 설정 로드"""
        return cls(
            jwt_secret=os.getenv("JWT_SECRET"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_issuer=os.getenv("JWT_ISSUER", "mcp-postgres-gateway"),
            api_key=os.getenv("API_KEY") or None,
        )


@dataclass
class OAuthConfig:
    """
    GitHub OAuth 설정

    redirect_uri 를 지정하지 않으면 `{public_url}/auth/callback` 이 사용됩니다.
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    scope: str = "user:email"
    http_timeout: float = 10.0
    connect_timeout: float = 5.0

    @classmethod
    def from_env(cls, public_url: str) -> "OAuthConfig":
        """환경 변수에서 OAuth 설정 로드"""
        return cls(
            client_id=os.getenv("GITHUB_CLIENT_ID") or None,
            client_secret=os.getenv("GITHUB_CLIENT_SECRET") or None,
            redirect_uri=os.getenv("GITHUB_REDIRECT_URI") or f"{public_url}/auth/callback",
            scope=os.getenv("GITHUB_SCOPE", "user:email"),
            http_timeout=float(os.getenv("OAUTH_HTTP_TIMEOUT", "10")),
            connect_timeout=float(os.getenv("OAUTH_CONNECT_TIMEOUT", "5")),
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class LoggingConfig:
    """
    로깅 설정

    sensitive_fields 에 포함된 키는 요청 본문 로깅 시 마스킹됩니다.
    """

    log_level: str = "INFO"
    json_logs: bool = False
    log_request_body: bool = False
    sensitive_fields: List[str] = field(
        default_factory=lambda: [
            "password",
            "token",
            "access_token",
            "github_token",
            "client_secret",
            "code",
            "code_verifier",
            "api_key",
            "authorization",
        ]
    )

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """환경 변수에서 로깅 설정 로드"""
        config = cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            json_logs=_env_bool("LOG_JSON"),
            log_request_body=_env_bool("LOG_REQUEST_BODY"),
        )
        extra = os.getenv("SENSITIVE_FIELDS")
        if extra:
            config.sensitive_fields.extend(
                item.strip().lower() for item in extra.split(",") if item.strip()
            )
        return config


@dataclass
class GatewayConfig:
    """
    게이트웨이 최상위 설정

    서버 리스닝 정보, 공개 URL, 그리고 하위 설정 블록을 포함합니다.
    """

    name: str = "postgres-mcp-server"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3000
    public_url: str = "http://localhost:3000"
    environment: Environment = Environment.DEVELOPMENT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        환경 변수에서 전체 설정 로드

        PUBLIC_URL 이 없으면 BASE_URL, 그것도 없으면
        `http://localhost:{SERVER_PORT}` 를 사용합니다.

        Returns:
            GatewayConfig: 로드된 설정
        """
        port = int(os.getenv("SERVER_PORT", "3000"))
        public_url = (
            os.getenv("PUBLIC_URL") or os.getenv("BASE_URL") or f"http://localhost:{port}"
        ).rstrip("/")

        try:
            environment = Environment(os.getenv("ENVIRONMENT", "development").lower())
        except ValueError:
            logger.warning(
                "알 수 없는 실행 환경, development 로 대체",
                environment=os.getenv("ENVIRONMENT"),
            )
            environment = Environment.DEVELOPMENT

        cors = os.getenv("CORS_ORIGINS", "*")
        config = cls(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=port,
            public_url=public_url,
            environment=environment,
            cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
            database=DatabaseConfig.from_env(environment),
            auth=AuthConfig.from_env(),
            oauth=OAuthConfig.from_env(public_url),
            logging=LoggingConfig.from_env(),
        )

        logger.info(
            "설정 로드 완료",
            environment=environment.value,
            public_url=public_url,
            github_configured=config.oauth.configured,
            api_key_configured=bool(config.auth.api_key),
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        """
        민감 정보를 제외한 설정 딕셔너리

        Returns:
            Dict[str, Any]: 비밀 값이 마스킹된 설정
        """
        data = asdict(self)
        data["environment"] = self.environment.value
        data["database"]["password"] = "***" if self.database.password else ""
        if self.database.dsn:
            data["database"]["dsn"] = "***"
        data["auth"]["jwt_secret"] = "***" if self.auth.jwt_secret else None
        data["auth"]["api_key"] = "***" if self.auth.api_key else None
        data["oauth"]["client_secret"] = "***" if self.oauth.client_secret else None
        return data
