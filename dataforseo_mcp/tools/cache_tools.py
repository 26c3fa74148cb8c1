"""
캐시 조회 도구

RecordStore만 조회하는 읽기 전용 도구 모음입니다. 업스트림 API는 호출하지 않습니다.

모든 도구는 결과를 JSON 텍스트로 반환하며(CSV 내보내기는 CSV 텍스트),
내부 오류는 예외로 전파하지 않고 "Error: <메시지>" 텍스트로 반환합니다.
"""

import json
from typing import Any, Literal

import structlog

from dataforseo_mcp.cache import (
    CacheService,
    CompetitionLevel,
    IntentName,
    KeywordExportFilter,
    KeywordSearchFilter,
    SortField,
    SortOrder,
)
from dataforseo_mcp.exceptions import ServiceUnavailableError

logger = structlog.get_logger(__name__)

CACHE_UNAVAILABLE = "cache is not available"


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class CacheQueryTools:
    """
    캐시 조회 도구 모음

    Args:
        cache_service: 연결된 CacheService. None이면 모든 도구가 오류 텍스트를 반환
    """

    def __init__(self, cache_service: CacheService | None):
        self.cache_service = cache_service

    def _require_service(self) -> CacheService:
        if self.cache_service is None:
            raise ServiceUnavailableError(CACHE_UNAVAILABLE, service_name="cache")
        return self.cache_service

    @staticmethod
    def _error(tool: str, error: Exception) -> str:
        logger.warning("cache_tool_failed", tool=tool, error=str(error), error_type=type(error).__name__)
        return f"Error: {error}"

    async def cache_search(
        self,
        keywords: list[str] | None = None,
        keyword_like: str | None = None,
        min_volume: int | None = None,
        max_volume: int | None = None,
        competition: CompetitionLevel | None = None,
        intent: IntentName | None = None,
        location: str | None = None,
        language: str | None = None,
        domain: str | None = None,
        sort_by: SortField = "volume",
        sort_order: SortOrder = "desc",
        limit: int = 50,
    ) -> str:
        """
        캐시된 키워드 검색

        domain이 주어지면 해당 도메인의 캐시된 순위를 대신 반환합니다.

        Returns:
            str: {"count", "items"} JSON 텍스트 또는 "Error: ..." 텍스트
        """
        try:
            service = self._require_service()
            if domain:
                items = await service.search_rankings(domain, location, language, limit)
            else:
                items = await service.search_keywords(
                    KeywordSearchFilter(
                        keywords=keywords,
                        keyword_like=keyword_like,
                        min_volume=min_volume,
                        max_volume=max_volume,
                        competition=competition,
                        intent=intent,
                        location=location,
                        language=language,
                        sort_by=sort_by,
                        sort_order=sort_order,
                        limit=limit,
                    )
                )
            return _to_json({"count": len(items), "items": items})
        except Exception as e:
            return self._error("cache_search", e)

    async def cache_stats(self) -> str:
        """캐시 통계 JSON 텍스트"""
        try:
            stats = await self._require_service().get_stats()
            return _to_json(stats)
        except Exception as e:
            return self._error("cache_stats", e)

    async def cache_export(
        self,
        format: Literal["json", "csv"] = "json",
        min_volume: int | None = None,
        location: str | None = None,
        language: str | None = None,
        keyword_like: str | None = None,
        limit: int = 100,
    ) -> str:
        """
        캐시된 키워드 내보내기

        Returns:
            str: JSON 배열 텍스트, CSV 텍스트 또는 "Error: ..." 텍스트
        """
        try:
            if format not in ("json", "csv"):
                raise ValueError(f"Unsupported format: {format}. Must be 'json' or 'csv'")
            exported = await self._require_service().export_keywords(
                KeywordExportFilter(
                    min_volume=min_volume,
                    location=location,
                    language=language,
                    keyword_like=keyword_like,
                    limit=limit,
                ),
                format=format,
            )
            if isinstance(exported, str):
                return exported
            return _to_json(exported)
        except Exception as e:
            return self._error("cache_export", e)

    async def cache_clear(
        self,
        table: str = "keywords",
        location: str | None = None,
        language: str | None = None,
        keyword_like: str | None = None,
    ) -> str:
        """캐시 테이블 조건 삭제, {"deleted": n} JSON 텍스트 반환"""
        try:
            result = await self._require_service().clear_cache(
                table=table,
                location=location,
                language=language,
                keyword_like=keyword_like,
            )
            return _to_json(result)
        except Exception as e:
            return self._error("cache_clear", e)
