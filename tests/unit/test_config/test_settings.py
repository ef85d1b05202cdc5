"""게이트웨이 설정 테스트"""

import pytest

from mcp_postgres_gateway.config import (
    AuthConfig,
    DatabaseConfig,
    Environment,
    GatewayConfig,
    OAuthConfig,
    validate_config,
)

SECRET = "test-secret-key-for-testing-only-0123456789"

GATEWAY_ENV_VARS = [
    "SERVER_HOST",
    "SERVER_PORT",
    "PUBLIC_URL",
    "BASE_URL",
    "ENVIRONMENT",
    "CORS_ORIGINS",
    "POSTGRES_DSN",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "DB_POOL_MAX_SIZE",
    "DB_ACQUIRE_TIMEOUT",
    "DB_COMMAND_TIMEOUT",
    "DB_SSL",
    "JWT_SECRET",
    "API_KEY",
    "GITHUB_CLIENT_ID",
    "GITHUB_CLIENT_SECRET",
    "GITHUB_REDIRECT_URI",
    "LOG_LEVEL",
    "LOG_JSON",
    "SENSITIVE_FIELDS",
]


@pytest.fixture
def clean_env(monkeypatch):
    """게이트웨이 관련 환경 변수 제거"""
    for name in GATEWAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    """환경 변수 로드 테스트"""

    def test_defaults(self, clean_env):
        config = GatewayConfig.from_env()

        assert config.port == 3000
        assert config.public_url == "http://localhost:3000"
        assert config.environment is Environment.DEVELOPMENT
        assert config.cors_origins == ["*"]
        assert config.database.max_size == 20
        assert config.database.command_timeout is None
        assert config.database.ssl is False
        assert config.auth.jwt_secret is None
        assert config.oauth.configured is False
        assert config.oauth.redirect_uri == "http://localhost:3000/auth/callback"

    def test_values_from_environment(self, clean_env):
        # Given
        clean_env.setenv("SERVER_PORT", "8080")
        clean_env.setenv("PUBLIC_URL", "https://gateway.example.com/")
        clean_env.setenv("ENVIRONMENT", "production")
        clean_env.setenv("CORS_ORIGINS", "https://a.example.com, https://b.example.com")
        clean_env.setenv("DB_POOL_MAX_SIZE", "5")
        clean_env.setenv("DB_COMMAND_TIMEOUT", "30")
        clean_env.setenv("JWT_SECRET", SECRET)
        clean_env.setenv("API_KEY", "static")
        clean_env.setenv("GITHUB_CLIENT_ID", "id")
        clean_env.setenv("GITHUB_CLIENT_SECRET", "secret")

        # When
        config = GatewayConfig.from_env()

        # Then
        assert config.port == 8080
        assert config.public_url == "https://gateway.example.com"
        assert config.environment is Environment.PRODUCTION
        assert config.cors_origins == ["https://a.example.com", "https://b.example.com"]
        assert config.database.max_size == 5
        assert config.database.command_timeout == 30.0
        assert config.database.ssl is True
        assert config.auth.api_key == "static"
        assert config.oauth.configured is True
        assert config.oauth.redirect_uri == "https://gateway.example.com/auth/callback"

    def test_base_url_fallback(self, clean_env):
        clean_env.setenv("BASE_URL", "https://legacy.example.com")

        assert GatewayConfig.from_env().public_url == "https://legacy.example.com"

    def test_unknown_environment_falls_back(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "staging")

        assert GatewayConfig.from_env().environment is Environment.DEVELOPMENT

    def test_explicit_redirect_uri(self, clean_env):
        clean_env.setenv("GITHUB_REDIRECT_URI", "https://other.example.com/cb")

        assert GatewayConfig.from_env().oauth.redirect_uri == "https://other.example.com/cb"

    def test_extra_sensitive_fields(self, clean_env):
        clean_env.setenv("SENSITIVE_FIELDS", "ssn, Card_Number")

        fields = GatewayConfig.from_env().logging.sensitive_fields
        assert "ssn" in fields
        assert "card_number" in fields
        assert "password" in fields


class TestDatabaseConfig:
    def test_dsn_takes_precedence(self):
        config = DatabaseConfig(host="ignored", dsn="postgresql://u:p@h:5433/db")

        assert config.build_dsn() == "postgresql://u:p@h:5433/db"

    def test_dsn_without_password(self):
        config = DatabaseConfig(host="h", user="u", name="db")

        assert config.build_dsn() == "postgresql://u@h:5432/db"


def test_to_dict_masks_secrets():
    config = GatewayConfig(
        database=DatabaseConfig(password="pw", dsn="postgresql://u:pw@h/db"),
        auth=AuthConfig(jwt_secret=SECRET, api_key="static"),
        oauth=OAuthConfig(client_id="id", client_secret="secret"),
    )

    data = config.to_dict()

    assert data["database"]["password"] == "***"
    assert data["database"]["dsn"] == "***"
    assert data["auth"]["jwt_secret"] == "***"
    assert data["auth"]["api_key"] == "***"
    assert data["oauth"]["client_secret"] == "***"
    assert data["oauth"]["client_id"] == "id"
    assert data["environment"] == "development"


class TestValidateConfig:
    """설정 검증 테스트"""

    @pytest.fixture
    def valid_config(self) -> GatewayConfig:
        return GatewayConfig(auth=AuthConfig(jwt_secret=SECRET))

    def test_valid_config(self, valid_config):
        is_valid, errors = validate_config(valid_config)

        assert is_valid is True
        assert errors == []

    def test_missing_secret(self):
        is_valid, errors = validate_config(GatewayConfig())

        assert is_valid is False
        assert any("JWT_SECRET" in error for error in errors)

    def test_short_secret(self):
        is_valid, errors = validate_config(GatewayConfig(auth=AuthConfig(jwt_secret="short")))

        assert is_valid is False
        assert any("32" in error for error in errors)

    def test_unsupported_algorithm(self, valid_config):
        valid_config.auth.jwt_algorithm = "RS256"

        is_valid, _ = validate_config(valid_config)

        assert is_valid is False

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, valid_config, port):
        valid_config.port = port

        assert validate_config(valid_config)[0] is False

    def test_invalid_public_url(self, valid_config):
        valid_config.public_url = "gateway.example.com"

        assert validate_config(valid_config)[0] is False

    def test_pool_bounds(self, valid_config):
        valid_config.database.min_size = 10
        valid_config.database.max_size = 5

        is_valid, errors = validate_config(valid_config)

        assert is_valid is False
        assert len(errors) == 1

    def test_non_positive_timeouts(self, valid_config):
        valid_config.database.acquire_timeout = 0
        valid_config.database.command_timeout = -1

        is_valid, errors = validate_config(valid_config)

        assert is_valid is False
        assert len(errors) == 2

    def test_unconfigured_oauth_is_only_a_warning(self, valid_config):
        assert valid_config.oauth.configured is False
        assert validate_config(valid_config)[0] is True

    def test_invalid_redirect_uri(self, valid_config):
        valid_config.oauth = OAuthConfig(client_id="id", client_secret="secret", redirect_uri="/cb")

        assert validate_config(valid_config)[0] is False
