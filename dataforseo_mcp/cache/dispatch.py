"""
캐시 인식 도구 디스패치

업스트림 도구 핸들러를 감싸 업스트림 호출을 최소화합니다.

동작 방식:
    1. 대량 키워드 도구(kw_data_google_ads_search_volume)
       - 요청 키워드를 (location, language) 범위에서 캐시 조회
       - 모두 캐시되어 있으면 업스트림 호출 없이 캐시로 응답 구성
       - 일부만 있으면 누락 키워드만 업스트림에 요청하고 입력 순서대로 병합
       - 조회 실패는 전체 캐시 미스로 취급 (요청을 실패시키지 않음)
    2. 단일 호출 도구(키워드 제안, 순위, 도메인 개요 등)
       - 항상 업스트림 호출 후 결과를 최선 노력으로 저장
    3. 그 외 도구
       - 감싸지 않고 그대로 통과

캐시는 최적화 계층일 뿐이므로 캐시 읽기/쓰기/로그 실패는 로그와
카운터에만 남기고 호출자에게 전파하지 않습니다. 업스트림 실패는
캐시와 무관하므로 그대로 전파됩니다.

저장은 응답 반환 전에 await하지만 실패는 흡수합니다.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from .cache_service import CacheService
from .metrics import CacheMetrics
from .models import KeywordRecord

Envelope = dict[str, Any]
ToolHandler = Callable[[dict[str, Any]], Awaitable[Envelope]]

SUCCESS_STATUS_CODE = 20000
BULK_KEYWORD_TOOL = "kw_data_google_ads_search_volume"
DEFAULT_LOCATION = "United States"
DEFAULT_LANGUAGE = "en"


class CacheKind(str, Enum):
    """업스트림 결과를 저장하는 방식"""

    KEYWORDS = "keywords"
    RANKED_KEYWORDS = "ranked_keywords"
    DOMAIN = "domain"


@dataclass(frozen=True)
class CacheRoute:
    kind: CacheKind
    source: str | None = None


CACHE_ROUTES: dict[str, CacheRoute] = {
    BULK_KEYWORD_TOOL: CacheRoute(CacheKind.KEYWORDS, "google_ads"),
    "dataforseo_labs_google_keyword_suggestions": CacheRoute(CacheKind.KEYWORDS, "keyword_suggestions"),
    "dataforseo_labs_google_keyword_ideas": CacheRoute(CacheKind.KEYWORDS, "keyword_ideas"),
    "dataforseo_labs_google_related_keywords": CacheRoute(CacheKind.KEYWORDS, "related_keywords"),
    "dataforseo_labs_google_ranked_keywords": CacheRoute(CacheKind.RANKED_KEYWORDS, "ranked_keywords"),
    "dataforseo_labs_google_domain_rank_overview": CacheRoute(CacheKind.DOMAIN),
}


def is_success(envelope: Envelope) -> bool:
    return isinstance(envelope, dict) and envelope.get("status_code") == SUCCESS_STATUS_CODE


def envelope_items(envelope: Envelope) -> list[dict[str, Any]]:
    items = envelope.get("items") if isinstance(envelope, dict) else None
    return items if isinstance(items, list) else []


def success_envelope(items: list[dict[str, Any]]) -> Envelope:
    return {"status_code": SUCCESS_STATUS_CODE, "count": len(items), "items": items}


class CacheAwareDispatch:
    """
    업스트림 핸들러용 캐시 래퍼 팩토리

    Args:
        cache_service: 주입된 CacheService
        metrics: 캐시 동작 카운터 (기본값: cache_service.metrics)

    사용 예제:
        ```python
        dispatch = CacheAwareDispatch(cache_service)
        handler = dispatch.wrap("kw_data_google_ads_search_volume", upstream_handler)
        envelope = await handler({"keywords": ["a", "b"], "location_name": "US",
                                  "language_code": "en"})
        ```
    """

    def __init__(self, cache_service: CacheService, metrics: CacheMetrics | None = None):
        self.cache_service = cache_service
        self.metrics = metrics or cache_service.metrics
        self.logger = structlog.get_logger(self.__class__.__name__)

    def is_cacheable(self, tool_name: str) -> bool:
        return tool_name in CACHE_ROUTES

    def wrap(self, tool_name: str, handler: ToolHandler) -> ToolHandler:
        """
        도구 이름에 맞는 캐시 래퍼 반환

        Args:
            tool_name: 도구 이름
            handler: 업스트림 도구 핸들러

        Returns:
            ToolHandler: 캐시 경로가 없는 도구는 handler 그대로
        """
        route = CACHE_ROUTES.get(tool_name)
        if route is None:
            return handler

        if tool_name == BULK_KEYWORD_TOOL:
            async def bulk_handler(params: dict[str, Any]) -> Envelope:
                return await self.dispatch_bulk_keywords(tool_name, route, handler, params)

            return bulk_handler

        async def single_handler(params: dict[str, Any]) -> Envelope:
            return await self.dispatch_single(tool_name, route, handler, params)

        return single_handler

    @staticmethod
    def _scope(params: dict[str, Any]) -> tuple[str, str]:
        location = params.get("location_name") or DEFAULT_LOCATION
        language = params.get("language_code") or DEFAULT_LANGUAGE
        return location, language

    async def dispatch_bulk_keywords(
        self,
        tool_name: str,
        route: CacheRoute,
        handler: ToolHandler,
        params: dict[str, Any],
    ) -> Envelope:
        """
        대량 키워드 부분 미스 처리

        Args:
            tool_name: 도구 이름
            route: 저장 경로
            handler: 업스트림 핸들러
            params: 도구 매개변수 (keywords, location_name, language_code)

        Returns:
            Envelope: 캐시 전체 적중 시 캐시로 구성한 응답, 부분 적중 시
            입력 순서대로 병합한 응답, 전체 미스 시 업스트림 응답 그대로

        Raises:
            업스트림 핸들러가 던진 예외는 그대로 전파
        """
        requested: list[str] = list(params.get("keywords") or [])
        if not requested:
            self.metrics.record_bypass(tool_name)
            self.metrics.record_upstream_call(tool_name)
            return await handler(params)

        location, language = self._scope(params)

        try:
            cached = await self.cache_service.get_cached_keywords(requested, location, language)
        except Exception as e:
            self.metrics.record_read_failure(tool_name)
            self.logger.warning(
                "cache_read_failed",
                tool=tool_name,
                error=str(e),
            )
            cached = {}

        missing = [keyword for keyword in dict.fromkeys(requested) if keyword not in cached]

        if not missing:
            items = [cached[keyword].to_wire() for keyword in requested]
            self.metrics.record_hit(tool_name)
            self.logger.info("cache_hit", tool=tool_name, count=len(items))
            await self._log_search(tool_name, params, len(items), cache_hit=True)
            return success_envelope(items)

        self.metrics.record_upstream_call(tool_name)
        envelope = await handler({**params, "keywords": missing})
        if not is_success(envelope):
            return envelope

        fetched = envelope_items(envelope)
        await self._persist(tool_name, route, params, fetched)

        if not cached:
            self.metrics.record_miss(tool_name)
            self.logger.info("cache_miss", tool=tool_name, fetched=len(fetched))
            await self._log_search(tool_name, params, len(fetched), cache_hit=False)
            return envelope

        merged = self._merge(requested, cached, fetched)
        self.metrics.record_partial_hit(tool_name)
        self.logger.info(
            "cache_partial_hit",
            tool=tool_name,
            cached=len(cached),
            fetched=len(fetched),
        )
        await self._log_search(tool_name, params, len(merged), cache_hit=False)
        return success_envelope(merged)

    @staticmethod
    def _merge(
        requested: list[str],
        cached: dict[str, KeywordRecord],
        fetched: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """입력 순서를 유지하며 새로 받은 항목을 캐시 항목보다 우선"""
        fresh = {item.get("kw"): item for item in fetched if isinstance(item, dict)}
        merged = []
        for keyword in requested:
            if keyword in fresh:
                merged.append(fresh[keyword])
            elif keyword in cached:
                merged.append(cached[keyword].to_wire())
            else:
                merged.append({"kw": keyword, "vol": 0})
        return merged

    async def dispatch_single(
        self,
        tool_name: str,
        route: CacheRoute,
        handler: ToolHandler,
        params: dict[str, Any],
    ) -> Envelope:
        """업스트림 호출 후 결과를 최선 노력으로 저장"""
        self.metrics.record_upstream_call(tool_name)
        envelope = await handler(params)
        if not is_success(envelope):
            return envelope

        items = envelope_items(envelope)
        await self._persist(tool_name, route, params, items)
        self.metrics.record_miss(tool_name)
        await self._log_search(tool_name, params, len(items), cache_hit=False)
        return envelope

    async def _persist(
        self,
        tool_name: str,
        route: CacheRoute,
        params: dict[str, Any],
        items: list[dict[str, Any]],
    ) -> None:
        """정규화된 결과 저장, 실패는 로그와 카운터로만 남김"""
        if not items:
            return

        location, language = self._scope(params)
        try:
            if route.kind is CacheKind.KEYWORDS:
                result = await self.cache_service.upsert_keyword_batch(
                    items, location, language, route.source
                )
                self._check_batch(tool_name, result)

            elif route.kind is CacheKind.RANKED_KEYWORDS:
                result = await self.cache_service.upsert_keyword_batch(
                    items, location, language, route.source
                )
                self._check_batch(tool_name, result)
                domain = params.get("target")
                if domain:
                    result = await self.cache_service.upsert_ranking_batch(
                        items, domain, location, language
                    )
                    self._check_batch(tool_name, result)

            elif route.kind is CacheKind.DOMAIN:
                for item in items:
                    domain = item.get("target") or params.get("target")
                    if domain:
                        await self.cache_service.upsert_domain(domain, location, language, item)

        except Exception as e:
            self.metrics.record_write_failure(tool_name)
            self.logger.warning(
                "cache_write_failed",
                tool=tool_name,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _check_batch(self, tool_name: str, result) -> None:
        if not result.ok:
            self.metrics.record_write_failure(tool_name)
            self.logger.warning(
                "cache_write_partial",
                tool=tool_name,
                failed_chunks=result.failed_chunks,
                written=result.written,
            )

    async def _log_search(
        self,
        tool_name: str,
        params: dict[str, Any],
        result_count: int,
        cache_hit: bool,
    ) -> None:
        try:
            await self.cache_service.log_search(tool_name, params, result_count, cache_hit)
        except Exception as e:
            self.metrics.record_log_failure(tool_name)
            self.logger.warning("search_log_failed", tool=tool_name, error=str(e))
