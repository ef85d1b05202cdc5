"""PostgreSQL 커넥션 풀과 게이트웨이"""

from .gateway import (
    DatabaseGateway,
    QueryResult,
    Relation,
    RelationDescription,
    RelationSnapshot,
)
from .pool import ConnectionPoolMetrics, PostgreSQLPoolManager

__all__ = [
    "ConnectionPoolMetrics",
    "DatabaseGateway",
    "PostgreSQLPoolManager",
    "QueryResult",
    "Relation",
    "RelationDescription",
    "RelationSnapshot",
]
