"""
Bounded PostgreSQL connection pool.

Wraps an asyncpg pool with an explicit lifecycle (initialize on startup,
close on shutdown), per-operation connection leases and simple metrics.

Key behavior:
- A lease is released on every exit path, including cancellation
- When the pool is at capacity, a lease waits up to ``acquire_timeout``,
  retries once after a short backoff, then raises ``PoolExhaustedError``
- Statements are never retried here; only the acquisition is
"""

import asyncio
import statistics
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg
import structlog
from asyncpg import Pool

from ..config import DatabaseConfig
from ..exceptions import ConnectionTimeoutError, DatabaseUnavailableError, PoolExhaustedError

logger = structlog.get_logger(__name__)


@dataclass
class ConnectionPoolMetrics:
    """Metrics for monitoring connection pool usage."""

    active_connections: int = 0
    connection_errors: int = 0
    total_requests: int = 0
    pool_exhausted_count: int = 0
    acquire_retries: int = 0
    connection_wait_time_ms: List[float] = field(default_factory=list)

    def record_connection_acquired(self, wait_time_ms: float) -> None:
        """Record a connection acquisition."""
        self.active_connections += 1
        self.total_requests += 1
        self.connection_wait_time_ms.append(wait_time_ms)
        if len(self.connection_wait_time_ms) > 1000:  # Keep last 1000 samples
            self.connection_wait_time_ms = self.connection_wait_time_ms[-1000:]

    def record_connection_released(self) -> None:
        """Record a connection release."""
        self.active_connections = max(0, self.active_connections - 1)

    def record_connection_error(self) -> None:
        """Record a connection error."""
        self.connection_errors += 1

    def get_avg_wait_time(self) -> float:
        """Get average connection wait time in milliseconds."""
        if not self.connection_wait_time_ms:
            return 0.0
        return statistics.mean(self.connection_wait_time_ms)

    def get_p95_wait_time(self) -> float:
        """Get 95th percentile connection wait time."""
        if len(self.connection_wait_time_ms) < 2:
            return self.get_avg_wait_time()
        return statistics.quantiles(self.connection_wait_time_ms, n=20)[18]


class PostgreSQLPoolManager:
    """Owns the asyncpg pool and hands out connection leases."""

    def __init__(self, config: DatabaseConfig, acquire_retries: int = 1):
        """Initialize PostgreSQL pool manager.

        Args:
            config: database settings (DSN, pool bounds, timeouts)
            acquire_retries: extra acquisition attempts after a timeout
        """
        self.config = config
        self.dsn = config.build_dsn()
        self.min_size = config.min_size
        self.max_size = config.max_size
        self.connect_timeout = config.connect_timeout
        self.acquire_timeout = config.acquire_timeout
        self.retry_backoff = config.acquire_retry_backoff
        self.command_timeout = config.command_timeout
        self.acquire_retries = acquire_retries

        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()
        self.metrics = ConnectionPoolMetrics()

        logger.info(
            "PostgreSQL pool manager initialized",
            host=config.host,
            database=config.name,
            min_size=self.min_size,
            max_size=self.max_size,
        )

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """Create the connection pool.

        Raises:
            ConnectionTimeoutError: if connections cannot be established in time
            DatabaseUnavailableError: if the server refuses the connection or the login
        """
        async with self._lock:
            if self._pool is not None:
                return

            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    timeout=self.connect_timeout,
                    command_timeout=self.command_timeout,
                    max_inactive_connection_lifetime=self.config.max_inactive_connection_lifetime,
                    ssl="require" if self.config.ssl else None,
                )
            except asyncio.TimeoutError as e:
                self.metrics.record_connection_error()
                logger.error("PostgreSQL pool creation timed out", timeout=self.connect_timeout)
                raise ConnectionTimeoutError(
                    data={"timeout_seconds": self.connect_timeout}
                ) from e
            except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                self.metrics.record_connection_error()
                logger.error("PostgreSQL server unavailable", error=str(e))
                raise DatabaseUnavailableError(data={"reason": str(e)}) from e
            except Exception as e:
                self.metrics.record_connection_error()
                logger.error("Failed to create PostgreSQL pool", error=str(e))
                raise

            logger.info("PostgreSQL pool created successfully", pool_size=self._pool.get_size())

    async def _acquire_connection(self) -> asyncpg.Connection:
        attempts = 1 + max(0, self.acquire_retries)
        for attempt in range(1, attempts + 1):
            try:
                return await self._pool.acquire(timeout=self.acquire_timeout)
            except (asyncio.TimeoutError, asyncpg.exceptions.TooManyConnectionsError):
                self.metrics.pool_exhausted_count += 1
                if attempt < attempts:
                    self.metrics.acquire_retries += 1
                    logger.warning(
                        "PostgreSQL connection pool exhausted, retrying",
                        attempt=attempt,
                        backoff_seconds=self.retry_backoff,
                    )
                    await asyncio.sleep(self.retry_backoff * attempt)
                    continue
                self.metrics.record_connection_error()
                logger.error(
                    "PostgreSQL connection pool exhausted",
                    max_size=self.max_size,
                    acquire_timeout=self.acquire_timeout,
                )
                raise PoolExhaustedError(
                    data={
                        "max_size": self.max_size,
                        "acquire_timeout_seconds": self.acquire_timeout,
                    }
                ) from None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Lease a connection for one logical operation."""
        if self._pool is None:
            await self.initialize()

        start_time = time.monotonic()
        connection = await self._acquire_connection()
        self.metrics.record_connection_acquired((time.monotonic() - start_time) * 1000)

        try:
            yield connection
        finally:
            await self._pool.release(connection)
            self.metrics.record_connection_released()

    async def health_check(self) -> Dict[str, Any]:
        """Check pool health and return metrics."""
        if self._pool is None:
            return {"status": "not_initialized"}

        try:
            async with self.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "error_count": self.metrics.connection_errors,
            }

        return {
            "status": "healthy",
            "pool_size": self._pool.get_size(),
            "idle_connections": self._pool.get_idle_size(),
            "max_size": self.max_size,
            "active_connections": self.metrics.active_connections,
            "total_requests": self.metrics.total_requests,
            "pool_exhausted_count": self.metrics.pool_exhausted_count,
            "avg_wait_time_ms": round(self.metrics.get_avg_wait_time(), 3),
            "p95_wait_time_ms": round(self.metrics.get_p95_wait_time(), 3),
        }

    async def close(self) -> None:
        """Drain and close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")
