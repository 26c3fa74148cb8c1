"""
DataForSEO 업스트림 도구 정의

각 MCP 도구가 호출하는 DataForSEO 엔드포인트, 요청 매개변수 모델, 응답 파서를
ToolSpec으로 묶어 등록합니다. UpstreamToolHandler는 검증된 매개변수로 실제 API를
호출하고 정규화된 응답 봉투(envelope)를 반환합니다.

응답 봉투 형식:
    성공: {"status_code": 20000, "count": n, "items": [...]}
    실패: {"status_code": code, "status_message": msg}
"""

from dataclasses import dataclass
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

from dataforseo_mcp.upstream.client import DataForSEOClient
from dataforseo_mcp.upstream.parsers import ItemParser, PARSERS, parse_response

SUCCESS_STATUS_CODE = 20000
DEFAULT_LOCATION = "United States"
DEFAULT_LANGUAGE = "en"


class LocalizedParams(BaseModel):
    """위치/언어 범위를 갖는 요청의 공통 매개변수"""

    location_name: str = Field(default=DEFAULT_LOCATION, min_length=1)
    language_code: str = Field(default=DEFAULT_LANGUAGE, min_length=1)


class SearchVolumeParams(LocalizedParams):
    keywords: list[str] = Field(min_length=1, max_length=1000)


class KeywordSeedParams(LocalizedParams):
    keyword: str = Field(min_length=1)
    limit: int = Field(default=100, ge=1, le=1000)


class KeywordIdeasParams(LocalizedParams):
    keywords: list[str] = Field(min_length=1, max_length=200)
    limit: int = Field(default=100, ge=1, le=1000)


class RelatedKeywordsParams(KeywordSeedParams):
    depth: int = Field(default=1, ge=0, le=4)


class TargetParams(LocalizedParams):
    target: str = Field(min_length=1)


class RankedKeywordsParams(TargetParams):
    limit: int = Field(default=100, ge=1, le=1000)


class SerpOrganicParams(LocalizedParams):
    keyword: str = Field(min_length=1)
    depth: int = Field(default=10, ge=1, le=700)


class BacklinksSummaryParams(BaseModel):
    target: str = Field(min_length=1)


class BacklinksListParams(BacklinksSummaryParams):
    mode: Literal["as_is", "one_per_domain", "one_per_anchor"] = "as_is"
    limit: int = Field(default=100, ge=1, le=1000)


class PageParams(BaseModel):
    """단일 페이지 분석 요청"""

    url: str = Field(min_length=1)
    enable_javascript: bool | None = None


class LighthouseParams(BaseModel):
    url: str = Field(min_length=1)
    for_mobile: bool | None = None


@dataclass(frozen=True)
class ToolSpec:
    """MCP 도구 하나와 DataForSEO 엔드포인트의 대응"""

    name: str
    endpoint: str
    description: str
    params_model: type[BaseModel]
    parser: ItemParser


def _spec(name: str, endpoint: str, description: str, params_model: type[BaseModel]) -> ToolSpec:
    return ToolSpec(name, endpoint, description, params_model, PARSERS[name])


UPSTREAM_TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        _spec(
            "kw_data_google_ads_search_volume",
            "keywords_data/google_ads/search_volume/live",
            "Google Ads search volume, CPC, competition and monthly trend for a list of keywords",
            SearchVolumeParams,
        ),
        _spec(
            "dataforseo_labs_google_keyword_suggestions",
            "dataforseo_labs/google/keyword_suggestions/live",
            "Long-tail keyword suggestions containing the seed keyword",
            KeywordSeedParams,
        ),
        _spec(
            "dataforseo_labs_google_keyword_ideas",
            "dataforseo_labs/google/keyword_ideas/live",
            "Keyword ideas from the same category as the seed keywords",
            KeywordIdeasParams,
        ),
        _spec(
            "dataforseo_labs_google_related_keywords",
            "dataforseo_labs/google/related_keywords/live",
            "Keywords from the 'searches related to' SERP element",
            RelatedKeywordsParams,
        ),
        _spec(
            "dataforseo_labs_google_ranked_keywords",
            "dataforseo_labs/google/ranked_keywords/live",
            "Keywords a domain ranks for, with position and estimated traffic",
            RankedKeywordsParams,
        ),
        _spec(
            "dataforseo_labs_google_competitors_domain",
            "dataforseo_labs/google/competitors_domain/live",
            "Domains competing with the target in organic search, with shared keyword counts",
            RankedKeywordsParams,
        ),
        _spec(
            "dataforseo_labs_google_domain_rank_overview",
            "dataforseo_labs/google/domain_rank_overview/live",
            "Organic and paid ranking overview of a domain",
            TargetParams,
        ),
        _spec(
            "serp_organic_live_advanced",
            "serp/google/organic/live/advanced",
            "Live Google organic results for a keyword",
            SerpOrganicParams,
        ),
        _spec(
            "backlinks_summary",
            "backlinks/summary/live",
            "Backlink profile summary of a domain or URL",
            BacklinksSummaryParams,
        ),
        _spec(
            "backlinks_backlinks",
            "backlinks/backlinks/live",
            "Individual backlinks pointing to a domain or URL",
            BacklinksListParams,
        ),
        _spec(
            "on_page_instant_pages",
            "on_page/instant_pages",
            "On-page SEO checks of a single page",
            PageParams,
        ),
        _spec(
            "on_page_content_parsing",
            "on_page/content_parsing/live",
            "Structured text content of a single page",
            PageParams,
        ),
        _spec(
            "on_page_lighthouse",
            "on_page/lighthouse/live/json",
            "Lighthouse category scores and the audits that did not pass",
            LighthouseParams,
        ),
    )
}


def error_envelope(status_code: Any, status_message: Any) -> dict[str, Any]:
    return {"status_code": status_code, "status_message": status_message or "Unknown error"}


def collect_items(response: dict[str, Any]) -> list[dict[str, Any]]:
    """작업 결과에서 항목 목록 추출

    result 항목이 items 목록을 가지면 그 목록을, 아니면 result 항목 자체를 사용합니다.
    """
    items: list[dict[str, Any]] = []
    for task in response.get("tasks") or []:
        for entry in task.get("result") or []:
            if not isinstance(entry, dict):
                continue
            nested = entry.get("items")
            if isinstance(nested, list):
                items.extend(item for item in nested if isinstance(item, dict))
            elif "items" not in entry:
                items.append(entry)
    return items


class UpstreamToolHandler:
    """
    업스트림 도구 핸들러

    Args:
        client: DataForSEO 클라이언트
        spec: 호출할 도구 정의

    사용 예제:
        ```python
        handler = UpstreamToolHandler(client, UPSTREAM_TOOLS["backlinks_summary"])
        envelope = await handler({"target": "example.com"})
        ```
    """

    def __init__(self, client: DataForSEOClient, spec: ToolSpec):
        self.client = client
        self.spec = spec
        self.logger = structlog.get_logger(self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.spec.name

    async def __call__(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        매개변수 검증 후 엔드포인트 호출

        Args:
            params: 도구 매개변수

        Returns:
            dict[str, Any]: 성공 또는 오류 응답 봉투

        Raises:
            pydantic.ValidationError: 매개변수가 유효하지 않은 경우
            AuthenticationError: 자격 증명 미설정
            TimeoutError: 요청 시간 초과
            UpstreamError: 네트워크 또는 HTTP 오류
        """
        validated = self.spec.params_model.model_validate(params)
        payload = validated.model_dump(exclude_none=True)

        response = await self.client.post(self.spec.endpoint, [payload])

        if response.get("status_code") != SUCCESS_STATUS_CODE:
            self.logger.warning(
                "upstream_error_status",
                tool=self.name,
                status_code=response.get("status_code"),
                status_message=response.get("status_message"),
            )
            return error_envelope(response.get("status_code"), response.get("status_message"))

        for task in response.get("tasks") or []:
            if task.get("status_code") != SUCCESS_STATUS_CODE:
                self.logger.warning(
                    "upstream_task_error",
                    tool=self.name,
                    status_code=task.get("status_code"),
                    status_message=task.get("status_message"),
                )
                return error_envelope(task.get("status_code"), task.get("status_message"))

        context = {"target": payload.get("target")}
        parsed = parse_response(self.name, collect_items(response), context)
        self.logger.info("upstream_tool_completed", tool=self.name, count=len(parsed))
        return {"status_code": SUCCESS_STATUS_CODE, "count": len(parsed), "items": parsed}
