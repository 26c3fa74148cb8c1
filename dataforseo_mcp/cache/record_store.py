"""
캐시 레코드 저장소

SQLAlchemy 비동기 엔진 위에서 키 기반 upsert, 만료 인식 조회, 필터 검색,
허용 목록 기반 삭제, 감사 로그 추가를 제공하는 저장소 계층입니다.

주요 기능:
    - upsert / batch_upsert: 고유 키 충돌 시 키 외 모든 필드를 덮어쓰기
    - lookup: 유효(만료되지 않은) 레코드만 키 -> 행 맵으로 반환
    - filter_search: 필터/정렬/제한 조회 (호출자 요청과 무관한 상한 적용)
    - purge: 허용된 테이블에서만 조건 삭제
    - append_log: search_logs 추가

동시성 모델:
    명시적 잠금은 없습니다. 같은 키에 대한 동시 쓰기는 데이터베이스의
    단일 문장 원자성(ON CONFLICT DO UPDATE)에 맡기며 마지막 쓰기가 이깁니다.
    배치 쓰기는 최대 50행 단위 청크로 나뉘고 청크마다 독립 트랜잭션입니다.

사용 예제:
    ```python
    store = RecordStore({"database_url": "sqlite+aiosqlite:///./seo_cache.db"})
    async with store:
        await store.batch_upsert("keywords", rows)
        live = await store.lookup("keywords", "keyword", ["seo tools"],
                                  scope={"location": "US", "language": "en"})
    ```
"""

import json
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Self

import structlog
from sqlalchemy import Table, delete, insert, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql import ColumnElement, Select

from dataforseo_mcp.exceptions import CacheError, ValidationError

from .schema import TABLES, UNIQUE_KEYS, metadata, search_logs
from .ttl import utcnow

Row = dict[str, Any]
StoreConfig = dict[str, Any]

MAX_CHUNK_SIZE = 50
SEARCH_LIMIT_CAP = 500
EXPORT_LIMIT_CAP = 1000

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclass
class BatchResult:
    """
    배치 upsert 결과

    Attributes:
        chunks (int): 시도한 청크 수
        written (int): 커밋된 행 수
        failed_chunks (list[int]): 실패한 청크 인덱스
        errors (list[str]): 청크별 에러 메시지
    """

    chunks: int = 0
    written: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_chunks


class RecordStore:
    """
    SQL 기반 캐시 레코드 저장소

    Args:
        config: 저장소 설정 딕셔너리
            - database_url (str): SQLAlchemy 비동기 URL (필수)
            - chunk_size (int): 배치 청크 크기 (기본값 50, 최대 50)
            - echo (bool): SQL 로깅 여부
            - create_schema (bool): 연결 시 스키마 생성 여부 (기본값 True)
        clock: 현재 시각 공급자 (기본값: naive UTC now)

    Raises:
        ValueError: database_url이 없는 경우
    """

    PURGEABLE_TABLES: tuple[str, ...] = tuple(TABLES)

    def __init__(
        self,
        config: StoreConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.logger = structlog.get_logger(self.__class__.__name__)

        self.database_url = config.get("database_url")
        if not self.database_url:
            raise ValueError("database_url is required for RecordStore")

        self.chunk_size = max(1, min(int(config.get("chunk_size", MAX_CHUNK_SIZE)), MAX_CHUNK_SIZE))
        self.echo = bool(config.get("echo", False))
        self.create_schema = bool(config.get("create_schema", True))
        self._clock = clock or utcnow
        self._engine: AsyncEngine | None = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise CacheError("Record store is not connected", operation="engine")
        return self._engine

    def now(self) -> datetime:
        """저장소 기준 현재 시각"""
        return self._clock()

    async def connect(self) -> None:
        """
        데이터베이스 엔진 생성, 스키마 준비, 연결 확인

        Raises:
            CacheError: 엔진 생성 또는 연결 확인 실패 시
        """
        try:
            self._engine = create_async_engine(
                self.database_url,
                echo=self.echo,
                pool_pre_ping=True,
            )
            if self._engine.dialect.name not in _UPSERT_DIALECTS:
                raise CacheError(
                    f"Unsupported database dialect: {self._engine.dialect.name}",
                    operation="connect",
                )
            if self.create_schema:
                await self.init_schema()
            await self.verify_connection()
            self._log_operation("connect", status="success", dialect=self._engine.dialect.name)

        except Exception as e:
            self._log_operation("connect", status="failed", error=str(e))
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
            if isinstance(e, CacheError):
                raise
            raise CacheError(f"Failed to connect to cache database: {e}", operation="connect")

    async def init_schema(self) -> None:
        """네 개의 캐시 테이블과 인덱스를 생성 (이미 있으면 건너뜀)"""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        self._log_operation("init_schema", tables=list(TABLES))

    async def disconnect(self) -> None:
        """엔진과 연결 풀 정리"""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._log_operation("disconnect", status="success")

    async def verify_connection(self) -> bool:
        """
        SELECT 1 왕복으로 연결 확인

        Raises:
            CacheError: 쿼리 실패 시
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except SQLAlchemyError as e:
            raise CacheError(f"Cache database check failed: {e}", operation="verify_connection")

    async def health_check(self) -> dict[str, Any]:
        """저장소 상태 요약"""
        if self._engine is None:
            return {"healthy": False, "error": "not connected"}
        try:
            await self.verify_connection()
            return {"healthy": True, "dialect": self._engine.dialect.name}
        except CacheError as e:
            return {"healthy": False, "error": e.message}

    # ------------------------------------------------------------------
    # 쓰기
    # ------------------------------------------------------------------

    def _table(self, table_name: str) -> Table:
        table = TABLES.get(table_name)
        if table is None:
            raise ValidationError(
                f"Invalid table: {table_name}. Must be one of: {', '.join(TABLES)}",
                field="table",
                value=table_name,
                data={"allowed": list(TABLES)},
            )
        return table

    def _upsert_statement(self, table_name: str):
        """방언별 INSERT ... ON CONFLICT DO UPDATE 문 생성"""
        table = self._table(table_name)
        key_columns = UNIQUE_KEYS.get(table_name)
        if key_columns is None:
            raise ValidationError(f"Table {table_name} does not support upsert", field="table", value=table_name)

        stmt = _UPSERT_DIALECTS[self.engine.dialect.name](table)
        updates = {
            column.name: stmt.excluded[column.name]
            for column in table.columns
            if column.name not in key_columns and not column.primary_key
        }
        return stmt.on_conflict_do_update(index_elements=list(key_columns), set_=updates)

    async def upsert(self, table_name: str, row: Row) -> None:
        """
        단일 레코드 upsert

        고유 키 충돌 시 키 외 모든 필드(fetched_at, expires_at 포함)를
        덮어씁니다. 한 문장으로 실행되므로 원자적입니다.

        Raises:
            CacheError: 쓰기 실패 시
        """
        result = await self.batch_upsert(table_name, [row])
        if not result.ok:
            raise CacheError(result.errors[0], operation="upsert")

    async def batch_upsert(self, table_name: str, rows: Sequence[Row]) -> BatchResult:
        """
        레코드 일괄 upsert

        행을 chunk_size(최대 50) 단위로 나누고 청크마다 독립 트랜잭션으로
        실행합니다. 한 청크가 실패해도 나머지 청크는 계속 시도하며,
        실패한 청크 밖의 행에는 영향을 주지 않습니다.

        Args:
            table_name: upsert 대상 테이블 (keywords, keyword_rankings, domains)
            rows: 저장소 스키마 형태의 행 목록

        Returns:
            BatchResult: 청크 수, 쓰인 행 수, 실패 청크 정보
        """
        stmt = self._upsert_statement(table_name)
        result = BatchResult()

        for index, start in enumerate(range(0, len(rows), self.chunk_size)):
            chunk = list(rows[start:start + self.chunk_size])
            result.chunks += 1
            try:
                await self._write_chunk(stmt, chunk)
                result.written += len(chunk)
            except SQLAlchemyError as e:
                result.failed_chunks.append(index)
                result.errors.append(str(e))
                self.logger.warning(
                    "batch_chunk_failed",
                    table=table_name,
                    chunk=index,
                    size=len(chunk),
                    error=str(e),
                )

        self._log_operation(
            "batch_upsert",
            table=table_name,
            rows=len(rows),
            chunks=result.chunks,
            failed_chunks=len(result.failed_chunks),
        )
        return result

    async def _write_chunk(self, stmt, chunk: list[Row]) -> None:
        """청크 하나를 단일 트랜잭션으로 실행"""
        async with self.engine.begin() as conn:
            await conn.execute(stmt, chunk)

    async def append_log(
        self,
        tool_name: str,
        query_params: dict[str, Any] | None,
        result_count: int,
        cache_hit: bool,
    ) -> None:
        """
        search_logs에 감사 행 추가

        Raises:
            CacheError: 쓰기 실패 시 (호출자가 흡수 여부를 결정)
        """
        entry = {
            "tool_name": tool_name,
            "query_params": json.dumps(query_params or {}, default=str, ensure_ascii=False),
            "result_count": result_count,
            "cache_hit": cache_hit,
            "created_at": self.now(),
        }
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(search_logs), entry)
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to append search log: {e}", operation="append_log")

    # ------------------------------------------------------------------
    # 읽기
    # ------------------------------------------------------------------

    def live_clause(self, table: Table) -> ColumnElement[bool]:
        """expires_at > now 조건"""
        return table.c.expires_at > self.now()

    async def lookup(
        self,
        table_name: str,
        key_column: str,
        keys: Iterable[str],
        scope: dict[str, Any] | None = None,
        live_only: bool = True,
    ) -> dict[str, Row]:
        """
        키 목록으로 레코드 조회

        Args:
            table_name: 조회할 테이블
            key_column: 키 컬럼 이름 (예: "keyword")
            keys: 조회할 키 값들
            scope: 추가 동등 조건 (예: {"location": "US", "language": "en"})
            live_only: True면 만료되지 않은 레코드만 반환

        Returns:
            dict[str, Row]: 키 값 -> 행. 없거나 만료된 키는 포함되지 않음

        Raises:
            CacheError: 조회 실패 시
        """
        table = self._table(table_name)
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}

        stmt = select(table).where(table.c[key_column].in_(wanted))
        for column, value in (scope or {}).items():
            stmt = stmt.where(table.c[column] == value)
        if live_only:
            stmt = stmt.where(self.live_clause(table))

        rows = await self.fetch_all(stmt)
        return {row[key_column]: row for row in rows}

    async def filter_search(
        self,
        query: Select,
        predicates: Sequence[ColumnElement[bool]] = (),
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        cap: int = SEARCH_LIMIT_CAP,
    ) -> list[Row]:
        """
        필터/정렬/제한 조회

        Args:
            query: 기본 SELECT 문 (컬럼과 조인 포함)
            predicates: AND로 결합할 조건들
            order_by: 정렬 표현식
            limit: 요청 건수 (None이면 cap)
            cap: 요청과 무관하게 적용되는 상한 (검색 500, 내보내기 1000)

        Returns:
            list[Row]: 결과 행 목록
        """
        effective_limit = cap if limit is None else max(1, min(int(limit), cap))
        stmt = query
        for predicate in predicates:
            stmt = stmt.where(predicate)
        if order_by:
            stmt = stmt.order_by(*order_by)
        return await self.fetch_all(stmt.limit(effective_limit))

    async def fetch_all(self, stmt) -> list[Row]:
        """SELECT 실행 후 딕셔너리 행 목록 반환"""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise CacheError(f"Cache query failed: {e}", operation="fetch_all")

    async def scalar(self, stmt) -> Any:
        """단일 값 SELECT 실행"""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.scalar()
        except SQLAlchemyError as e:
            raise CacheError(f"Cache query failed: {e}", operation="scalar")

    # ------------------------------------------------------------------
    # 삭제
    # ------------------------------------------------------------------

    async def purge(
        self,
        table_name: str,
        predicates: Sequence[ColumnElement[bool]] = (),
    ) -> int:
        """
        허용된 테이블에서 조건에 맞는 행 삭제

        Args:
            table_name: keywords, keyword_rankings, domains, search_logs 중 하나
            predicates: AND로 결합할 삭제 조건 (없으면 전체 삭제)

        Returns:
            int: 삭제된 행 수

        Raises:
            ValidationError: 허용 목록에 없는 테이블 (아무것도 삭제하지 않음)
            CacheError: 삭제 실패 시
        """
        if table_name not in self.PURGEABLE_TABLES:
            raise ValidationError(
                f"Invalid table: {table_name}. Must be one of: {', '.join(self.PURGEABLE_TABLES)}",
                field="table",
                value=table_name,
                data={"allowed": list(self.PURGEABLE_TABLES)},
            )

        table = self._table(table_name)
        stmt = delete(table)
        for predicate in predicates:
            stmt = stmt.where(predicate)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                deleted = result.rowcount or 0
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to clear {table_name}: {e}", operation="purge")

        self._log_operation("purge", table=table_name, deleted=deleted)
        return deleted

    def _log_operation(self, operation: str, **kwargs: Any) -> None:
        self.logger.info(
            "store_operation",
            operation=operation,
            **kwargs,
        )

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
