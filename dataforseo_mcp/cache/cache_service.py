"""
캐시 서비스

도구 입출력 형태의 값을 RecordStore 호출로 옮기는 타입 있는 파사드입니다.
TTL 정책과 압축 와이어 형식 <-> 저장소 스키마 필드 매핑을 소유합니다.

주요 기능:
    - get_cached_keywords: 유효 키워드 레코드 일괄 조회
    - upsert_keyword / upsert_keyword_batch: 키워드 지표 저장
    - upsert_ranking_batch / upsert_domain: 순위, 도메인 개요 저장
    - log_search: 도구 호출 감사 로그
    - search_keywords / search_rankings: 필터 검색 (최대 500건)
    - export_keywords: JSON 또는 CSV 내보내기 (최대 1000건)
    - get_stats: 집계 통계 (하위 집계를 동시에 실행)
    - clear_cache: 허용된 테이블 조건 삭제

RecordStore는 생성자로 주입되며, 전역 상태를 읽지 않습니다.
"""

import asyncio
import csv
import io
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from sqlalchemy import and_, distinct, func, select
from sqlalchemy.sql import ColumnElement

from dataforseo_mcp.exceptions import ValidationError

from .metrics import CacheMetrics
from .models import DomainItem, KeywordItem, KeywordRecord, RankingItem
from .monthly import decode_monthly
from .record_store import EXPORT_LIMIT_CAP, SEARCH_LIMIT_CAP, BatchResult, RecordStore
from .schema import TABLES, domains, keyword_rankings, keywords
from .ttl import TTLClass, TTLPolicy

SORT_COLUMNS = {
    "volume": keywords.c.search_volume,
    "cpc": keywords.c.cpc,
    "difficulty": keywords.c.keyword_difficulty,
    "fetched_at": keywords.c.fetched_at,
}

EXPORT_COLUMNS = (
    "keyword",
    "search_volume",
    "cpc",
    "competition",
    "intent",
    "keyword_difficulty",
    "location",
    "language",
    "fetched_at",
)

CompetitionLevel = Literal["LOW", "MEDIUM", "HIGH"]
IntentName = Literal["informational", "navigational", "commercial", "transactional"]
SortField = Literal["volume", "cpc", "difficulty", "fetched_at"]
SortOrder = Literal["asc", "desc"]

DEFAULT_SEARCH_LIMIT = 50
DEFAULT_EXPORT_LIMIT = 100


class KeywordSearchFilter(BaseModel):
    """
    키워드 검색 조건

    모든 조건은 AND로 결합됩니다. 경쟁도, 의도, 정렬 기준은 허용된 값만 받습니다.
    """

    keywords: list[str] | None = None
    keyword_like: str | None = None
    min_volume: int | None = None
    max_volume: int | None = None
    competition: CompetitionLevel | None = None
    intent: IntentName | None = None
    location: str | None = None
    language: str | None = None
    sort_by: SortField = "volume"
    sort_order: SortOrder = "desc"
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT)


class KeywordExportFilter(BaseModel):
    """키워드 내보내기 조건"""

    min_volume: int | None = None
    location: str | None = None
    language: str | None = None
    keyword_like: str | None = None
    limit: int = Field(default=DEFAULT_EXPORT_LIMIT)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class CacheService:
    """
    키워드/순위/도메인 캐시 서비스

    Args:
        store: 연결된 RecordStore
        ttl_policy: TTL 정책 (기본값: 30/7/7일)
        metrics: 누락 항목 등을 기록할 카운터 (선택사항)

    사용 예제:
        ```python
        service = CacheService(store)
        await service.upsert_keyword_batch(
            [{"kw": "seo tools", "vol": 1200}], "US", "en", "google_ads"
        )
        cached = await service.get_cached_keywords(["seo tools"], "US", "en")
        ```
    """

    def __init__(
        self,
        store: RecordStore,
        ttl_policy: TTLPolicy | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.store = store
        self.ttl_policy = ttl_policy or TTLPolicy()
        self.metrics = metrics or CacheMetrics()
        self.logger = structlog.get_logger(self.__class__.__name__)

    def _stamps(self, ttl_class: TTLClass) -> tuple[datetime, datetime]:
        fetched_at = self.store.now()
        return fetched_at, self.ttl_policy.expires_at(ttl_class, fetched_at)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    async def get_cached_keywords(
        self, keyword_list: Iterable[str], location: str, language: str
    ) -> dict[str, KeywordRecord]:
        """
        유효한 키워드 레코드 일괄 조회

        Args:
            keyword_list: 조회할 키워드 목록
            location: 위치 이름
            language: 언어 코드

        Returns:
            dict[str, KeywordRecord]: 키워드 -> 레코드. 없거나 만료된 키워드는
            결과에서 빠질 뿐 에러가 아님

        Raises:
            CacheError: 저장소 조회 실패 시
        """
        rows = await self.store.lookup(
            "keywords",
            "keyword",
            keyword_list,
            scope={"location": location, "language": language},
        )
        return {key: KeywordRecord.model_validate(row) for key, row in rows.items()}

    # ------------------------------------------------------------------
    # 쓰기
    # ------------------------------------------------------------------

    def _validate_items(
        self, items: Iterable[Any], model: type[KeywordItem] = KeywordItem
    ) -> tuple[list[KeywordItem], int]:
        """항목 검증, 키워드를 결정할 수 없는 항목은 제외하고 개수만 셈"""
        valid: list[KeywordItem] = []
        dropped = 0
        for raw in items:
            try:
                valid.append(model.model_validate(raw))
            except PydanticValidationError:
                dropped += 1
        if dropped:
            self.metrics.record_dropped(dropped)
        return valid, dropped

    async def upsert_keyword(
        self, item: KeywordItem | dict[str, Any], location: str, language: str, source: str
    ) -> None:
        """단일 키워드 지표 저장"""
        if not isinstance(item, KeywordItem):
            item = KeywordItem.model_validate(item)
        fetched_at, expires_at = self._stamps(TTLClass.KEYWORD_DATA)
        await self.store.upsert(
            "keywords", item.to_row(location, language, source, fetched_at, expires_at)
        )
        self.metrics.record_written(1)

    async def upsert_keyword_batch(
        self, items: Iterable[Any], location: str, language: str, source: str
    ) -> BatchResult:
        """
        키워드 지표 일괄 저장

        각 항목은 kw 또는 keyword로 키워드를 제공합니다. 키워드를 결정할 수
        없는 항목은 조용히 제외되고 metrics.dropped_items로만 집계됩니다.

        Args:
            items: 압축 와이어 또는 API 원본 형식 항목들
            location: 위치 이름
            language: 언어 코드
            source: 출처 태그 (google_ads, keyword_suggestions 등)

        Returns:
            BatchResult: 청크별 쓰기 결과
        """
        valid, _ = self._validate_items(items)
        if not valid:
            return BatchResult()

        fetched_at, expires_at = self._stamps(TTLClass.KEYWORD_DATA)
        rows = [item.to_row(location, language, source, fetched_at, expires_at) for item in valid]
        result = await self.store.batch_upsert("keywords", rows)
        self.metrics.record_written(result.written)
        return result

    async def upsert_ranking_batch(
        self, items: Iterable[Any], domain: str, location: str, language: str
    ) -> BatchResult:
        """
        도메인의 키워드 순위 일괄 저장

        Args:
            items: pos/type/url/etv를 포함한 순위 항목들
            domain: 순위를 가진 도메인
            location: 위치 이름
            language: 언어 코드
        """
        valid, _ = self._validate_items(items, model=RankingItem)
        if not valid:
            return BatchResult()

        fetched_at, expires_at = self._stamps(TTLClass.RANKINGS)
        rows = [
            item.to_ranking_row(domain, location, language, fetched_at, expires_at)
            for item in valid
        ]
        result = await self.store.batch_upsert("keyword_rankings", rows)
        self.metrics.record_written(result.written)
        return result

    async def upsert_domain(
        self, domain: str, location: str, language: str, data: DomainItem | dict[str, Any]
    ) -> None:
        """도메인 개요 지표 저장"""
        item = data if isinstance(data, DomainItem) else DomainItem.model_validate(data)
        fetched_at, expires_at = self._stamps(TTLClass.DOMAIN_OVERVIEW)
        await self.store.upsert(
            "domains", item.to_row(domain, location, language, fetched_at, expires_at)
        )
        self.metrics.record_written(1)

    async def log_search(
        self,
        tool_name: str,
        query_params: dict[str, Any] | None,
        result_count: int,
        cache_hit: bool,
    ) -> None:
        """도구 호출 감사 로그 추가"""
        await self.store.append_log(tool_name, query_params, result_count, cache_hit)

    # ------------------------------------------------------------------
    # 검색 / 내보내기
    # ------------------------------------------------------------------

    def _keyword_predicates(
        self,
        *,
        keyword_list: list[str] | None = None,
        keyword_like: str | None = None,
        min_volume: int | None = None,
        max_volume: int | None = None,
        competition: str | None = None,
        intent: str | None = None,
        location: str | None = None,
        language: str | None = None,
    ) -> list[ColumnElement[bool]]:
        predicates: list[ColumnElement[bool]] = [self.store.live_clause(keywords)]
        if keyword_list:
            predicates.append(keywords.c.keyword.in_(keyword_list))
        if keyword_like:
            predicates.append(keywords.c.keyword.icontains(keyword_like, autoescape=True))
        if min_volume is not None:
            predicates.append(keywords.c.search_volume >= min_volume)
        if max_volume is not None:
            predicates.append(keywords.c.search_volume <= max_volume)
        if competition:
            predicates.append(keywords.c.competition == competition)
        if intent:
            predicates.append(keywords.c.intent == intent)
        if location:
            predicates.append(keywords.c.location == location)
        if language:
            predicates.append(keywords.c.language == language)
        return predicates

    async def search_keywords(self, filters: KeywordSearchFilter | None = None) -> list[dict[str, Any]]:
        """
        유효 키워드 필터 검색

        Args:
            filters: 검색 조건 (limit은 최대 500으로 제한)

        Returns:
            list[dict]: kw, vol, cpc, comp, intent, kd, monthly, location, language
        """
        filters = filters or KeywordSearchFilter()
        sort_column = SORT_COLUMNS.get(filters.sort_by, keywords.c.search_volume)
        ordering = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()

        rows = await self.store.filter_search(
            select(keywords),
            predicates=self._keyword_predicates(
                keyword_list=filters.keywords,
                keyword_like=filters.keyword_like,
                min_volume=filters.min_volume,
                max_volume=filters.max_volume,
                competition=filters.competition,
                intent=filters.intent,
                location=filters.location,
                language=filters.language,
            ),
            order_by=[ordering],
            limit=filters.limit or DEFAULT_SEARCH_LIMIT,
            cap=SEARCH_LIMIT_CAP,
        )
        return [
            {
                "kw": row["keyword"],
                "vol": row["search_volume"],
                "cpc": row["cpc"],
                "comp": row["competition"],
                "intent": row["intent"],
                "kd": row["keyword_difficulty"],
                "monthly": decode_monthly(row["monthly_searches"]),
                "location": row["location"],
                "language": row["language"],
            }
            for row in rows
        ]

    async def search_rankings(
        self,
        domain: str,
        location: str | None = None,
        language: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[dict[str, Any]]:
        """
        도메인의 캐시된 키워드 순위 조회

        keywords 테이블과 (keyword, location, language)로 LEFT JOIN하여
        검색량을 덧붙이며, 순위 오름차순으로 정렬합니다.

        Returns:
            list[dict]: kw, vol, pos, url
        """
        join_on = and_(
            keyword_rankings.c.keyword == keywords.c.keyword,
            keyword_rankings.c.location == keywords.c.location,
            keyword_rankings.c.language == keywords.c.language,
        )
        query = select(
            keyword_rankings.c.keyword.label("kw"),
            keywords.c.search_volume.label("vol"),
            keyword_rankings.c.position.label("pos"),
            keyword_rankings.c.url.label("url"),
        ).select_from(keyword_rankings.outerjoin(keywords, join_on))

        predicates: list[ColumnElement[bool]] = [
            keyword_rankings.c.domain == domain,
            self.store.live_clause(keyword_rankings),
        ]
        if location:
            predicates.append(keyword_rankings.c.location == location)
        if language:
            predicates.append(keyword_rankings.c.language == language)

        return await self.store.filter_search(
            query,
            predicates=predicates,
            order_by=[keyword_rankings.c.position.asc()],
            limit=limit or DEFAULT_SEARCH_LIMIT,
            cap=SEARCH_LIMIT_CAP,
        )

    async def export_keywords(
        self,
        filters: KeywordExportFilter | None = None,
        format: Literal["json", "csv"] = "json",
    ) -> list[dict[str, Any]] | str:
        """
        키워드 내보내기

        Args:
            filters: 내보내기 조건 (limit은 최대 1000으로 제한)
            format: "json"이면 레코드 목록, "csv"면 헤더 포함 CSV 문자열

        Returns:
            list[dict] | str: 내보낸 데이터
        """
        filters = filters or KeywordExportFilter()
        rows = await self.store.filter_search(
            select(keywords),
            predicates=self._keyword_predicates(
                keyword_like=filters.keyword_like,
                min_volume=filters.min_volume,
                location=filters.location,
                language=filters.language,
            ),
            order_by=[keywords.c.search_volume.desc()],
            limit=filters.limit or DEFAULT_EXPORT_LIMIT,
            cap=EXPORT_LIMIT_CAP,
        )

        if format == "csv":
            return self._to_csv(rows)

        return [
            {
                "keyword": row["keyword"],
                "search_volume": row["search_volume"],
                "cpc": row["cpc"],
                "competition": row["competition"],
                "intent": row["intent"],
                "keyword_difficulty": row["keyword_difficulty"],
                "monthly_searches": decode_monthly(row["monthly_searches"]),
                "location": row["location"],
                "language": row["language"],
                "fetched_at": _isoformat(row["fetched_at"]),
            }
            for row in rows
        ]

    @staticmethod
    def _to_csv(rows: list[dict[str, Any]]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow(
                [
                    row["keyword"],
                    row["search_volume"] or 0,
                    "" if row["cpc"] is None else row["cpc"],
                    row["competition"] or "",
                    row["intent"] or "",
                    "" if row["keyword_difficulty"] is None else row["keyword_difficulty"],
                    row["location"],
                    row["language"],
                    _isoformat(row["fetched_at"]) or "",
                ]
            )
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # 통계 / 삭제
    # ------------------------------------------------------------------

    async def get_stats(self) -> dict[str, Any]:
        """
        캐시 집계 통계

        읽기 전용이고 순서에 무관한 하위 집계들을 asyncio.gather로
        동시에 실행합니다.

        Returns:
            dict: total_keywords, with_volume, without_volume, locations,
            languages, oldest_entry, newest_entry, expired_entries,
            domains_tracked, rankings_stored, top_keywords_by_volume
        """
        now = self.store.now()
        store = self.store

        (
            total,
            with_volume,
            location_rows,
            language_rows,
            oldest,
            newest,
            expired,
            domains_tracked,
            rankings_stored,
            top_rows,
        ) = await asyncio.gather(
            store.scalar(select(func.count()).select_from(keywords)),
            store.scalar(
                select(func.count()).select_from(keywords).where(keywords.c.search_volume > 0)
            ),
            store.fetch_all(
                select(keywords.c.location.label("value")).distinct().order_by("value")
            ),
            store.fetch_all(
                select(keywords.c.language.label("value")).distinct().order_by("value")
            ),
            store.scalar(select(func.min(keywords.c.fetched_at))),
            store.scalar(select(func.max(keywords.c.fetched_at))),
            store.scalar(
                select(func.count()).select_from(keywords).where(keywords.c.expires_at <= now)
            ),
            store.scalar(select(func.count(distinct(domains.c.domain)))),
            store.scalar(select(func.count()).select_from(keyword_rankings)),
            store.fetch_all(
                select(
                    keywords.c.keyword,
                    keywords.c.search_volume,
                    keywords.c.location,
                    keywords.c.language,
                )
                .where(keywords.c.expires_at > now)
                .order_by(keywords.c.search_volume.desc())
                .limit(10)
            ),
        )

        total = total or 0
        with_volume = with_volume or 0
        return {
            "total_keywords": total,
            "with_volume": with_volume,
            "without_volume": total - with_volume,
            "locations": [row["value"] for row in location_rows],
            "languages": [row["value"] for row in language_rows],
            "oldest_entry": _isoformat(oldest),
            "newest_entry": _isoformat(newest),
            "expired_entries": expired or 0,
            "domains_tracked": domains_tracked or 0,
            "rankings_stored": rankings_stored or 0,
            "top_keywords_by_volume": [
                {
                    "kw": row["keyword"],
                    "vol": row["search_volume"],
                    "location": row["location"],
                    "language": row["language"],
                }
                for row in top_rows
            ],
        }

    async def verify_connection(self) -> bool:
        return await self.store.verify_connection()

    async def clear_cache(
        self,
        table: str = "keywords",
        location: str | None = None,
        language: str | None = None,
        keyword_like: str | None = None,
    ) -> dict[str, int]:
        """
        캐시 테이블 조건 삭제

        search_logs는 전체 삭제만 지원하고, domains는 keyword 컬럼이 없어
        keyword_like 조건을 무시합니다.

        Args:
            table: keywords, keyword_rankings, domains, search_logs 중 하나
            location: 위치 조건
            language: 언어 조건
            keyword_like: 키워드 부분 일치 조건

        Returns:
            dict: {"deleted": 삭제된 행 수}

        Raises:
            ValidationError: 알 수 없는 테이블 (아무것도 삭제하지 않음)
        """
        target = TABLES.get(table)
        if target is None:
            raise ValidationError(
                f"Invalid table: {table}. Must be one of: {', '.join(TABLES)}",
                field="table",
                value=table,
            )

        predicates: list[ColumnElement[bool]] = []
        if table != "search_logs":
            if location:
                predicates.append(target.c.location == location)
            if language:
                predicates.append(target.c.language == language)
            if keyword_like and "keyword" in target.c:
                predicates.append(target.c.keyword.icontains(keyword_like, autoescape=True))

        deleted = await self.store.purge(table, predicates)
        self.logger.info("cache_cleared", table=table, deleted=deleted)
        return {"deleted": deleted}
