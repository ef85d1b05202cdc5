"""
데이터베이스 게이트웨이

커넥션 풀 위에서 스키마 조회와 SQL 실행을 수행하고, 결과를
JSON 직렬화 가능한 구조로 변환합니다.

모든 작업은 커넥션 하나를 빌려 쓰고, 어떤 경로로 끝나든 반환합니다.
하나의 디스패처 호출에 필요한 여러 문장(스키마 조회 + 샘플 조회 등)은
같은 커넥션에서 순차 실행합니다.

주요 기능:
    - list_relations: public 스키마의 테이블/뷰 목록
    - describe_relation: 컬럼 정보 + 전체 행 수
    - sample_rows: 상위 N 행 조회
    - read_relation: 스키마 + 샘플 + 행 수 (한 번의 커넥션 임대)
    - execute_raw: 호출자 SQL 그대로 실행 (허용 목록 없음)
"""

import asyncio
import datetime
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import asyncpg
import structlog

from ..exceptions import QueryError, RelationNotFoundError
from .pool import PostgreSQLPoolManager

logger = structlog.get_logger(__name__)

DEFAULT_SCHEMA = "public"
DEFAULT_SAMPLE_LIMIT = 10

LIST_RELATIONS_SQL = """
    SELECT table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = $1
    ORDER BY table_name
"""

DESCRIBE_RELATION_SQL = """
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        c.character_maximum_length,
        c.numeric_precision,
        c.numeric_scale,
        (pk.column_name IS NOT NULL) AS is_primary_key
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT kcu.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON tc.constraint_name = kcu.constraint_name
         AND tc.table_schema = kcu.table_schema
         AND tc.table_name = kcu.table_name
        WHERE tc.constraint_type = 'PRIMARY KEY'
          AND tc.table_schema = $1
          AND tc.table_name = $2
    ) pk ON c.column_name = pk.column_name
    WHERE c.table_schema = $1
      AND c.table_name = $2
    ORDER BY c.ordinal_position
"""


def serialize_value(value: Any) -> Any:
    """단일 값을 JSON 호환 값으로 변환"""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    return str(value)


def record_to_dict(record: Any) -> Dict[str, Any]:
    """asyncpg Record 를 직렬화된 dict 로 변환"""
    return {key: serialize_value(value) for key, value in dict(record).items()}


def quote_identifier(name: str) -> str:
    """SQL 식별자 따옴표 처리 (내부 큰따옴표는 이중화)"""
    return '"' + name.replace('"', '""') + '"'


def parse_command_status(status: Optional[str]) -> Tuple[Optional[str], Optional[int]]:
    """
    명령 상태 문자열 파싱

    "INSERT 0 3" → ("INSERT", 3), "SELECT 1" → ("SELECT", 1),
    "CREATE TABLE" → ("CREATE", None)
    """
    if not status:
        return None, None
    parts = status.split()
    count = int(parts[-1]) if len(parts) > 1 and parts[-1].isdigit() else None
    return parts[0].upper(), count


@dataclass(frozen=True)
class Relation:
    """카탈로그에서 조회한 릴레이션 (테이블/뷰)"""

    name: str
    kind: str

    def to_dict(self) -> Dict[str, str]:
        return {"table_name": self.name, "table_type": self.kind}


@dataclass
class RelationDescription:
    """릴레이션 스키마와 전체 행 수"""

    name: str
    columns: List[Dict[str, Any]]
    total_rows: int

    def to_dict(self) -> Dict[str, Any]:
        return {"tableName": self.name, "columns": self.columns, "totalRows": self.total_rows}


@dataclass
class RelationSnapshot:
    """resources/read 및 REST 테이블 조회 결과"""

    name: str
    columns: List[Dict[str, Any]]
    sample_rows: List[Dict[str, Any]]
    total_rows: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.columns,
            "sampleData": self.sample_rows,
            "totalRows": self.total_rows,
        }


@dataclass
class QueryResult:
    """SQL 실행 결과"""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: Optional[int] = None
    command: Optional[str] = None
    fields: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": self.rows, "rowCount": self.row_count, "command": self.command}


class DatabaseGateway:
    """
    PostgreSQL 게이트웨이

    커넥션 풀은 생성자로 주입되며, 풀의 생명주기(initialize/close)는
    애플리케이션 lifespan 이 관리합니다.

    Attributes:
        pool (PostgreSQLPoolManager): 커넥션 풀
        schema (str): 노출할 스키마 (기본값: public)
    """

    def __init__(self, pool: PostgreSQLPoolManager, schema: str = DEFAULT_SCHEMA):
        self.pool = pool
        self.schema = schema

    async def list_relations(self) -> List[Relation]:
        """
        스키마 내 릴레이션 목록 조회

        Returns:
            List[Relation]: 이름순으로 정렬된 (이름, 종류) 목록
        """
        async with self._lease() as conn:
            records = await conn.fetch(LIST_RELATIONS_SQL, self.schema)
        return [Relation(name=r["table_name"], kind=r["table_type"]) for r in records]

    async def describe_relation(self, name: str) -> RelationDescription:
        """
        릴레이션 스키마 조회

        Args:
            name: 릴레이션 이름

        Returns:
            RelationDescription: 컬럼 정보와 전체 행 수

        Raises:
            RelationNotFoundError: 카탈로그에 컬럼이 없는 경우
        """
        async with self._lease() as conn:
            columns = await self._describe(conn, name)
            total_rows = await self._count(conn, name)
        return RelationDescription(name=name, columns=columns, total_rows=total_rows)

    async def sample_rows(self, name: str, limit: int = DEFAULT_SAMPLE_LIMIT) -> List[Dict[str, Any]]:
        """
        상위 N 행 조회

        릴레이션 이름은 매개변수로 바인딩할 수 없어 식별자로 직접
        삽입합니다. 삽입 전에 카탈로그에 존재하는 이름인지 확인합니다.

        Raises:
            RelationNotFoundError: 존재하지 않는 릴레이션
        """
        async with self._lease() as conn:
            await self._describe(conn, name)
            return await self._sample(conn, name, limit)

    async def read_relation(self, name: str, limit: int = DEFAULT_SAMPLE_LIMIT) -> RelationSnapshot:
        """
        스키마, 샘플 행, 전체 행 수를 한 번의 임대로 조회

        Raises:
            RelationNotFoundError: 존재하지 않는 릴레이션
        """
        async with self._lease() as conn:
            columns = await self._describe(conn, name)
            rows = await self._sample(conn, name, limit)
            total_rows = await self._count(conn, name)
        return RelationSnapshot(name=name, columns=columns, sample_rows=rows, total_rows=total_rows)

    async def execute_raw(self, sql: str) -> QueryResult:
        """
        호출자 SQL 실행

        인증된 호출자는 어떤 SQL 이든 실행할 수 있습니다. 결과 행,
        영향받은 행 수, 명령 태그, 필드 정보를 반환합니다.

        Args:
            sql: 실행할 SQL 텍스트

        Returns:
            QueryResult: 실행 결과

        Raises:
            QueryError: 엔진이 문장을 거부하거나 실행에 실패한 경우 (원문 전달)
        """
        async with self._lease() as conn:
            result = await self._execute(conn, sql)

        logger.info("SQL 실행 완료", command=result.command, row_count=result.row_count)
        return result

    @asynccontextmanager
    async def _lease(self) -> AsyncIterator[asyncpg.Connection]:
        """커넥션을 임대하고 엔진 에러를 QueryError 로 변환"""
        async with self.pool.acquire() as conn:
            try:
                yield conn
            except asyncpg.PostgresError as e:
                sqlstate = getattr(e, "sqlstate", None)
                logger.warning("SQL 실행 실패", sqlstate=sqlstate, error=str(e))
                raise QueryError(str(e), sqlstate=sqlstate) from e
            except asyncio.TimeoutError as e:
                logger.warning("SQL 실행 시간 초과", timeout=self.pool.command_timeout)
                raise QueryError("canceling statement due to statement timeout") from e

    async def _execute(self, conn: asyncpg.Connection, sql: str) -> QueryResult:
        try:
            statement = await conn.prepare(sql)
        except asyncpg.exceptions.PostgresSyntaxError as e:
            # 여러 문장은 prepare 할 수 없으므로 simple query 로 실행
            if "multiple commands" not in str(e):
                raise
            command, count = parse_command_status(await conn.execute(sql))
            return QueryResult(rows=[], row_count=count, command=command)

        records = await statement.fetch()
        command, count = parse_command_status(statement.get_statusmsg())
        rows = [record_to_dict(r) for r in records]
        fields = [
            {"name": attr.name, "dataTypeID": attr.type.oid, "dataType": attr.type.name}
            for attr in statement.get_attributes()
        ]
        return QueryResult(
            rows=rows,
            row_count=count if count is not None else (len(rows) if fields else None),
            command=command,
            fields=fields,
        )

    async def _describe(self, conn: asyncpg.Connection, name: str) -> List[Dict[str, Any]]:
        records = await conn.fetch(DESCRIBE_RELATION_SQL, self.schema, name)
        if not records:
            raise RelationNotFoundError(name)
        return [record_to_dict(r) for r in records]

    async def _sample(self, conn: asyncpg.Connection, name: str, limit: int) -> List[Dict[str, Any]]:
        query = f"SELECT * FROM {quote_identifier(self.schema)}.{quote_identifier(name)} LIMIT $1"
        records = await conn.fetch(query, max(0, int(limit)))
        return [record_to_dict(r) for r in records]

    async def _count(self, conn: asyncpg.Connection, name: str) -> int:
        query = f"SELECT COUNT(*) FROM {quote_identifier(self.schema)}.{quote_identifier(name)}"
        return int(await conn.fetchval(query))
