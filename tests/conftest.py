"""Shared test fixtures and configuration."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from mcp_postgres_gateway.auth import CredentialCodec
from mcp_postgres_gateway.config import (
    AuthConfig,
    DatabaseConfig,
    GatewayConfig,
    LoggingConfig,
    OAuthConfig,
)
from mcp_postgres_gateway.database import DatabaseGateway

pytest_plugins = ["pytest_asyncio"]

TEST_SECRET = "test-secret-key-for-testing-only-0123456789"
TEST_API_KEY = "test-api-key"
GITHUB_CLIENT_ID = "gh-client-id"
GITHUB_CLIENT_SECRET = "gh-client-secret"
PUBLIC_URL = "https://gateway.example.com"


@pytest.fixture
def oauth_config() -> OAuthConfig:
    return OAuthConfig(
        client_id=GITHUB_CLIENT_ID,
        client_secret=GITHUB_CLIENT_SECRET,
        redirect_uri=f"{PUBLIC_URL}/auth/callback",
    )


@pytest.fixture
def gateway_config(oauth_config) -> GatewayConfig:
    """테스트용 게이트웨이 설정"""
    return GatewayConfig(
        public_url=PUBLIC_URL,
        database=DatabaseConfig(acquire_timeout=0.05, acquire_retry_backoff=0.0),
        auth=AuthConfig(jwt_secret=TEST_SECRET, api_key=TEST_API_KEY),
        oauth=oauth_config,
        logging=LoggingConfig(log_request_body=True),
    )


@pytest.fixture
def codec() -> CredentialCodec:
    return CredentialCodec(secret_key=TEST_SECRET, api_key=TEST_API_KEY)


@pytest.fixture
def mock_connection():
    """Mock asyncpg connection."""
    conn = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=0)
    conn.execute = AsyncMock()
    conn.prepare = AsyncMock()
    return conn


class FakePoolManager:
    """임대/반환 횟수를 기록하는 PostgreSQLPoolManager 대역"""

    def __init__(self, connection: Any):
        self.connection = connection
        self.acquired = 0
        self.released = 0
        self.command_timeout: Optional[float] = None

    @asynccontextmanager
    async def acquire(self):
        self.acquired += 1
        try:
            yield self.connection
        finally:
            self.released += 1


@pytest.fixture
def fake_pool(mock_connection) -> FakePoolManager:
    return FakePoolManager(mock_connection)


@pytest.fixture
def gateway(fake_pool) -> DatabaseGateway:
    return DatabaseGateway(fake_pool)


class CapacityLimitedPool:
    """
    asyncpg Pool 대역

    max_size 개의 커넥션만 동시에 내줄 수 있으며, 초과 요청은 timeout 동안
    기다린 뒤 asyncio.TimeoutError 를 던집니다.
    """

    def __init__(self, max_size: int):
        self._slots = asyncio.Semaphore(max_size)
        self.max_size = max_size
        self.acquire_calls: List[Optional[float]] = []
        self.released: List[Any] = []
        self.connection = AsyncMock()
        self.connection.fetchval = AsyncMock(return_value=1)

    async def acquire(self, timeout: Optional[float] = None):
        self.acquire_calls.append(timeout)
        await asyncio.wait_for(self._slots.acquire(), timeout)
        return self.connection

    async def release(self, connection: Any) -> None:
        self.released.append(connection)
        self._slots.release()

    def get_size(self) -> int:
        return self.max_size

    def get_idle_size(self) -> int:
        return self._slots._value

    async def close(self) -> None:
        return None


@pytest.fixture
def asyncpg_pool() -> CapacityLimitedPool:
    """커넥션 하나짜리 asyncpg 풀 대역"""
    return CapacityLimitedPool(max_size=1)


@pytest.fixture
def mock_gateway():
    """Mock DatabaseGateway."""
    return AsyncMock(spec=DatabaseGateway)


@pytest.fixture
def mock_pool_manager():
    """Mock PostgreSQLPoolManager for the HTTP layer."""
    pool = Mock()
    pool.initialize = AsyncMock()
    pool.close = AsyncMock()
    pool.health_check = AsyncMock(return_value={"status": "healthy", "pool_size": 1})
    return pool


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: HTTP layer integration tests")
