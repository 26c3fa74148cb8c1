"""
DataForSEO MCP 서버

DataForSEO API 엔드포인트를 MCP 도구로 노출하고, 선택적으로 읽기 통과 캐시를
앞단에 둡니다. 프로파일과 환경 변수로 필요한 기능만 활성화할 수 있습니다.

주요 특징:
    - 업스트림 도구 13종 (검색량, 키워드 제안/아이디어/연관, 순위, 경쟁 도메인, 도메인 개요,
      SERP, 백링크, 온페이지, Lighthouse)
    - 키워드 계열/순위/도메인 도구의 캐시 인식 디스패치
    - 캐시 조회 도구 (cache_search, cache_stats, cache_export, cache_clear)
    - HTTP 전송 시 공유 비밀 경로 인증
    - 저장소 연결 실패 시 캐시 없이 계속 동작

사용 예시:
    # stdio 서버 (기본: CACHED 프로파일)
    python -m dataforseo_mcp

    # 캐시 없는 서버
    MCP_PROFILE=BASIC python -m dataforseo_mcp

    # HTTP 서버 (/mcp/{SHARED_SECRET})
    MCP_PROFILE=COMPLETE MCP_TRANSPORT=http SHARED_SECRET=... dataforseo-mcp
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Literal

import structlog
import uvicorn
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import ValidationError as PydanticValidationError
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from dataforseo_mcp.cache import (
    CacheAwareDispatch,
    CacheMetrics,
    CacheService,
    CompetitionLevel,
    IntentName,
    RecordStore,
    SortField,
    SortOrder,
    TTLPolicy,
)
from dataforseo_mcp.config import CacheConfig, ServerConfig, validate_config
from dataforseo_mcp.exceptions import CacheError, MCPError
from dataforseo_mcp.logging_setup import configure_logging
from dataforseo_mcp.middleware import (
    ErrorHandlerMiddleware,
    SharedSecretMiddleware,
    ToolCallLoggingMiddleware,
)
from dataforseo_mcp.tools import CacheQueryTools
from dataforseo_mcp.upstream import UPSTREAM_TOOLS, DataForSEOClient, UpstreamToolHandler
from dataforseo_mcp.upstream.tools import DEFAULT_LANGUAGE, DEFAULT_LOCATION

logger = structlog.get_logger(__name__)

Envelope = dict[str, Any]


class SeoMCPServer:
    """
    DataForSEO MCP 서버 클래스

    설정 기반으로 캐시, 인증, 로깅 기능을 조합해 FastMCP 서버를 구성합니다.
    모든 컴포넌트는 생성자에서 명시적으로 만들어 주입합니다.

    Args:
        config: 서버 설정

    Raises:
        ValueError: 설정 검증 실패 시
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        is_valid, errors = validate_config(config)
        if not is_valid:
            raise ValueError(f"잘못된 설정: {', '.join(errors)}")

        self.middlewares: list[Any] = []
        self.metrics = CacheMetrics()
        self.store: RecordStore | None = None
        self.cache_service: CacheService | None = None
        self.dispatch: CacheAwareDispatch | None = None
        self.cache_enabled = False

        self.client = DataForSEOClient(
            {
                "username": config.upstream_config.username,
                "password": config.upstream_config.password,
                "base_url": config.upstream_config.base_url,
                "timeout": config.upstream_config.timeout,
                "max_retries": config.upstream_config.max_retries,
            }
        )
        self.handlers: dict[str, UpstreamToolHandler] = {}
        self.cached_handlers: dict[str, Any] = {}

        self._init_components()

        logger.info(
            "DataForSEO MCP 서버 초기화",
            profile=config.profile.value,
            features=config.get_enabled_features(),
        )

    def _init_components(self) -> None:
        """설정 기반 컴포넌트 초기화"""
        # 1. 캐시 계층: RecordStore -> CacheService -> CacheAwareDispatch
        if self.config.features["cache"]:
            cache_config = self.config.cache_config or CacheConfig()
            self.store = RecordStore(
                {
                    "database_url": cache_config.database_url,
                    "chunk_size": cache_config.batch_chunk_size,
                    "echo": cache_config.echo,
                }
            )
            self.cache_service = CacheService(
                self.store,
                ttl_policy=TTLPolicy(cache_config.ttl_days()),
                metrics=self.metrics,
            )
            self.dispatch = CacheAwareDispatch(self.cache_service, self.metrics)
            self.cache_enabled = True
            logger.debug("캐시 계층 초기화", database=cache_config.database_url.split("://")[0])

        self.cache_tools = CacheQueryTools(self.cache_service)

        # 2. 업스트림 핸들러 (캐시 경로가 있는 도구만 래핑)
        for name, spec in UPSTREAM_TOOLS.items():
            handler = UpstreamToolHandler(self.client, spec)
            self.handlers[name] = handler
            if self.dispatch is not None:
                self.cached_handlers[name] = self.dispatch.wrap(name, handler)

        # 3. 미들웨어 (에러 핸들러가 가장 바깥층)
        if self.config.features["error_handler"]:
            self.middlewares.append(ErrorHandlerMiddleware(capture_stack_trace=True))
            logger.debug("에러 핸들러 미들웨어 초기화")

        if self.config.features["enhanced_logging"]:
            logging_config = self.config.logging_config
            self.middlewares.append(
                ToolCallLoggingMiddleware(
                    log_arguments=bool(logging_config and logging_config.log_request_body),
                    sensitive_fields=logging_config.sensitive_fields if logging_config else None,
                )
            )
            logger.debug("도구 호출 로깅 미들웨어 초기화")

    def _disable_cache(self, reason: str) -> None:
        self.cache_enabled = False
        self.cache_tools.cache_service = None
        logger.warning("캐시 비활성화 - 캐시 없이 계속 동작", reason=reason)

    def resolve_handler(self, tool_name: str):
        """캐시 활성 여부에 맞는 도구 핸들러 반환"""
        if self.cache_enabled and tool_name in self.cached_handlers:
            return self.cached_handlers[tool_name]
        return self.handlers[tool_name]

    async def call_upstream(self, tool_name: str, params: dict[str, Any]) -> Envelope:
        """
        업스트림 도구 실행

        Args:
            tool_name: 도구 이름
            params: 도구 매개변수 (None 값은 제거됨)

        Returns:
            Envelope: 성공 또는 업스트림 오류 응답 봉투

        Raises:
            ToolError: 업스트림 호출 실패 또는 매개변수 오류
        """
        handler = self.resolve_handler(tool_name)
        clean = {key: value for key, value in params.items() if value is not None}
        try:
            return await handler(clean)
        except MCPError as e:
            raise ToolError(f"{tool_name} 실패: {e.message}") from e
        except PydanticValidationError as e:
            raise ToolError(f"{tool_name} 매개변수 오류: {e}") from e

    async def startup(self) -> None:
        """업스트림 클라이언트와 캐시 저장소 연결"""
        await self.client.connect()

        if self.store is not None:
            try:
                await self.store.connect()
            except CacheError as e:
                self._disable_cache(str(e))

        logger.info(
            "MCP 서버 시작 완료",
            cache_enabled=self.cache_enabled,
            credentials=self.client.has_credentials,
            features=self.config.get_enabled_features(),
        )

    async def cleanup(self) -> None:
        """종료 시 정리 작업"""
        logger.info("DataForSEO MCP 서버 종료 중...")

        logger.info("최종 캐시 메트릭", metrics=self.metrics.snapshot())

        try:
            await self.client.disconnect()
        except Exception as e:
            logger.error("업스트림 클라이언트 종료 중 오류", error=str(e))

        if self.store is not None and self.store.connected:
            try:
                await self.store.disconnect()
            except Exception as e:
                logger.error("캐시 저장소 연결 해제 중 오류", error=str(e))

        logger.info("DataForSEO MCP 서버 종료 완료")

    async def health_status(self) -> dict[str, Any]:
        cache: dict[str, Any] = {"enabled": self.cache_enabled}
        if self.cache_enabled and self.store is not None:
            cache["store"] = await self.store.health_check()
            cache["metrics"] = self.metrics.snapshot()

        return {
            "status": "healthy",
            "service": self.config.name,
            "profile": self.config.profile.value,
            "features": self.config.get_enabled_features(),
            "cache": cache,
            "upstream": await self.client.health_check(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def create_server(self) -> FastMCP:
        """
        FastMCP 서버 인스턴스 생성

        Returns:
            도구, 미들웨어, 헬스체크가 등록된 FastMCP 서버
        """

        @asynccontextmanager
        async def lifespan(server: FastMCP):
            logger.info(
                f"DataForSEO MCP 서버 시작 중... (프로파일: {self.config.profile.value})",
                features=self.config.get_enabled_features(),
            )
            await self.startup()
            try:
                yield
            finally:
                await self.cleanup()

        server = FastMCP(
            name=self.config.name,
            lifespan=lifespan,
            instructions=self._build_instructions(),
        )

        for middleware in self.middlewares:
            server.add_middleware(middleware)

        self._register_tools(server)
        if self.config.features["cache"]:
            self._register_cache_tools(server)

        @server.custom_route("/health", methods=["GET"])
        async def health_check_endpoint(request: Request):
            return JSONResponse(await self.health_status())

        return server

    def _build_instructions(self) -> str:
        """서버 설명 생성"""
        base = f"""
DataForSEO MCP 서버 ({self.config.profile.value} 프로파일)

DataForSEO API를 통해 키워드 검색량, 키워드 제안, 도메인 순위와 경쟁 도메인,
SERP 결과, 백링크, 온페이지 분석, Lighthouse 감사를 조회합니다.

활성화된 기능:
"""
        features = []
        if self.config.features["cache"]:
            features.append("- 읽기 통과 캐시 (캐시된 키워드는 API 호출 없이 응답)")
            features.append("- 캐시 조회 도구: cache_search, cache_stats, cache_export, cache_clear")
        if self.config.features["auth"]:
            features.append("- 공유 비밀 경로 인증 (/mcp/{token})")
        if self.config.features["enhanced_logging"]:
            features.append("- 도구 호출 로깅")
        if not features:
            features.append("- 기본 기능만 활성화")

        return base + "\n".join(features)

    def _register_tools(self, server: FastMCP) -> None:
        """업스트림 도구 등록"""

        @server.tool
        async def kw_data_google_ads_search_volume(
            keywords: list[str],
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
        ) -> Envelope:
            """
            Google Ads 키워드 검색량 조회

            Args:
                keywords: 조회할 키워드 목록 (최대 1000개)
                location_name: 위치 이름 (예: "United States")
                language_code: 언어 코드 (예: "en")

            Returns:
                키워드별 kw, vol, cpc, comp, monthly
            """
            return await self.call_upstream(
                "kw_data_google_ads_search_volume",
                {"keywords": keywords, "location_name": location_name, "language_code": language_code},
            )

        @server.tool
        async def dataforseo_labs_google_keyword_suggestions(
            keyword: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            limit: int = 100,
        ) -> Envelope:
            """
            시드 키워드를 포함하는 롱테일 키워드 제안

            Returns:
                kw, vol, cpc, comp, intent, kd, monthly
            """
            return await self.call_upstream(
                "dataforseo_labs_google_keyword_suggestions",
                {
                    "keyword": keyword,
                    "location_name": location_name,
                    "language_code": language_code,
                    "limit": limit,
                },
            )

        @server.tool
        async def dataforseo_labs_google_keyword_ideas(
            keywords: list[str],
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            limit: int = 100,
        ) -> Envelope:
            """시드 키워드와 같은 카테고리의 키워드 아이디어"""
            return await self.call_upstream(
                "dataforseo_labs_google_keyword_ideas",
                {
                    "keywords": keywords,
                    "location_name": location_name,
                    "language_code": language_code,
                    "limit": limit,
                },
            )

        @server.tool
        async def dataforseo_labs_google_related_keywords(
            keyword: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            depth: int = 1,
            limit: int = 100,
        ) -> Envelope:
            """
            "관련 검색어" SERP 요소 기반 연관 키워드

            Args:
                keyword: 시드 키워드
                depth: 탐색 깊이 (0-4)
                limit: 최대 결과 수
            """
            return await self.call_upstream(
                "dataforseo_labs_google_related_keywords",
                {
                    "keyword": keyword,
                    "location_name": location_name,
                    "language_code": language_code,
                    "depth": depth,
                    "limit": limit,
                },
            )

        @server.tool
        async def dataforseo_labs_google_ranked_keywords(
            target: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            limit: int = 100,
        ) -> Envelope:
            """
            도메인이 순위에 오른 키워드 목록

            Returns:
                kw, vol, cpc, comp, intent, pos, type, url, etv, monthly
            """
            return await self.call_upstream(
                "dataforseo_labs_google_ranked_keywords",
                {
                    "target": target,
                    "location_name": location_name,
                    "language_code": language_code,
                    "limit": limit,
                },
            )

        @server.tool
        async def dataforseo_labs_google_competitors_domain(
            target: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            limit: int = 100,
        ) -> Envelope:
            """
            자연 검색에서 대상 도메인과 경쟁하는 도메인

            Returns:
                domain, avg_pos, intersections, metrics.organic
            """
            return await self.call_upstream(
                "dataforseo_labs_google_competitors_domain",
                {
                    "target": target,
                    "location_name": location_name,
                    "language_code": language_code,
                    "limit": limit,
                },
            )

        @server.tool
        async def dataforseo_labs_google_domain_rank_overview(
            target: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
        ) -> Envelope:
            """도메인의 자연/유료 검색 순위 개요"""
            return await self.call_upstream(
                "dataforseo_labs_google_domain_rank_overview",
                {"target": target, "location_name": location_name, "language_code": language_code},
            )

        @server.tool
        async def serp_organic_live_advanced(
            keyword: str,
            location_name: str = DEFAULT_LOCATION,
            language_code: str = DEFAULT_LANGUAGE,
            depth: int = 10,
        ) -> Envelope:
            """키워드의 실시간 Google 자연 검색 결과"""
            return await self.call_upstream(
                "serp_organic_live_advanced",
                {
                    "keyword": keyword,
                    "location_name": location_name,
                    "language_code": language_code,
                    "depth": depth,
                },
            )

        @server.tool
        async def backlinks_summary(target: str) -> Envelope:
            """도메인 또는 URL의 백링크 요약"""
            return await self.call_upstream("backlinks_summary", {"target": target})

        @server.tool
        async def backlinks_backlinks(
            target: str,
            mode: Literal["as_is", "one_per_domain", "one_per_anchor"] = "as_is",
            limit: int = 100,
        ) -> Envelope:
            """
            도메인 또는 URL을 가리키는 개별 백링크 목록

            Returns:
                url_from, url_to, anchor, dofollow, rank, domain_from_rank, first_seen, is_lost
            """
            return await self.call_upstream(
                "backlinks_backlinks", {"target": target, "mode": mode, "limit": limit}
            )

        @server.tool
        async def on_page_instant_pages(url: str, enable_javascript: bool | None = None) -> Envelope:
            """단일 페이지의 온페이지 SEO 점검"""
            return await self.call_upstream(
                "on_page_instant_pages", {"url": url, "enable_javascript": enable_javascript}
            )

        @server.tool
        async def on_page_content_parsing(
            url: str, enable_javascript: bool | None = None
        ) -> Envelope:
            """단일 페이지의 구조화된 본문 콘텐츠"""
            return await self.call_upstream(
                "on_page_content_parsing", {"url": url, "enable_javascript": enable_javascript}
            )

        @server.tool
        async def on_page_lighthouse(url: str, for_mobile: bool | None = None) -> Envelope:
            """
            Lighthouse 감사

            Returns:
                url, scores(0-100), audits_summary, failed_audits (통과하지 못한 감사만)
            """
            return await self.call_upstream(
                "on_page_lighthouse", {"url": url, "for_mobile": for_mobile}
            )

    def _register_cache_tools(self, server: FastMCP) -> None:
        """캐시 조회 도구 등록 (업스트림 호출 없음)"""
        cache_tools = self.cache_tools

        @server.tool
        async def cache_search(
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

            domain을 지정하면 해당 도메인의 캐시된 순위를 반환합니다.

            Args:
                keywords: 정확히 일치할 키워드 목록
                keyword_like: 키워드 부분 일치 (대소문자 무시)
                min_volume: 최소 검색량
                max_volume: 최대 검색량
                competition: LOW, MEDIUM, HIGH
                intent: informational, navigational, commercial, transactional
                sort_by: volume, cpc, difficulty, fetched_at
                sort_order: asc 또는 desc
                limit: 최대 결과 수 (최대 500)
            """
            return await cache_tools.cache_search(
                keywords=keywords,
                keyword_like=keyword_like,
                min_volume=min_volume,
                max_volume=max_volume,
                competition=competition,
                intent=intent,
                location=location,
                language=language,
                domain=domain,
                sort_by=sort_by,
                sort_order=sort_order,
                limit=limit,
            )

        @server.tool
        async def cache_stats() -> str:
            """캐시 통계 (키워드 수, 위치/언어, 만료 항목, 상위 키워드)"""
            return await cache_tools.cache_stats()

        @server.tool
        async def cache_export(
            format: Literal["json", "csv"] = "json",
            min_volume: int | None = None,
            location: str | None = None,
            language: str | None = None,
            keyword_like: str | None = None,
            limit: int = 100,
        ) -> str:
            """캐시된 키워드를 JSON 또는 CSV로 내보내기 (최대 1000건)"""
            return await cache_tools.cache_export(
                format=format,
                min_volume=min_volume,
                location=location,
                language=language,
                keyword_like=keyword_like,
                limit=limit,
            )

        @server.tool
        async def cache_clear(
            table: str = "keywords",
            location: str | None = None,
            language: str | None = None,
            keyword_like: str | None = None,
        ) -> str:
            """
            캐시 테이블 조건 삭제

            Args:
                table: keywords, keyword_rankings, domains, search_logs
            """
            return await cache_tools.cache_clear(
                table=table,
                location=location,
                language=language,
                keyword_like=keyword_like,
            )

    def create_http_app(self, server: FastMCP):
        """공유 비밀 미들웨어를 앞단에 둔 스트리밍 HTTP 앱 생성"""
        auth_config = self.config.auth_config
        require_auth = bool(self.config.features["auth"] and auth_config and auth_config.require_auth)
        return server.http_app(
            path="/mcp",
            middleware=[
                Middleware(
                    SharedSecretMiddleware,
                    shared_secret=auth_config.shared_secret if auth_config else None,
                    credentials_configured=self.client.has_credentials,
                    require_auth=require_auth,
                )
            ],
        )


async def main():
    """메인 실행 함수 (비동기)"""
    config = ServerConfig.from_env()
    configure_logging(config.logging_config.log_level if config.logging_config else "INFO")

    logger.info(
        "DataForSEO MCP 서버 시작",
        profile=config.profile.value,
        transport=config.transport,
        features=config.get_enabled_features(),
    )

    seo_server = SeoMCPServer(config)
    mcp = seo_server.create_server()

    if config.transport == "http":
        logger.info(f"HTTP 모드로 서버 시작 - http://{config.host}:{config.port}/mcp")
        app = seo_server.create_http_app(mcp)
        uvicorn_config = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_level=(config.logging_config.log_level if config.logging_config else "INFO").lower(),
        )
        await uvicorn.Server(uvicorn_config).serve()
    else:
        await mcp.run_async(transport="stdio")


def run() -> None:
    """콘솔 스크립트 진입점"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
