"""
캐시 엔티티 모델

압축 와이어 형식(kw, vol, cpc, comp, kd, pos ...)과 저장소 스키마 사이의
필드 매핑을 명시적인 pydantic 모델로 정의합니다.

주요 구성요소:
    - Competition, SearchIntent, SerpType: 열거형 필드 값
    - KeywordItem: 키워드 지표 와이어 항목 (keyword / kw 등 두 가지 이름 허용)
    - RankingItem: 키워드 항목 + 순위 정보 (pos, type, url, etv)
    - DomainItem: 도메인 개요 지표
    - KeywordRecord: 저장된 keywords 행, 와이어 항목으로 복원 가능

각 *Item.to_row()는 저장소 행 딕셔너리를, KeywordRecord.to_wire()는
캐시에서 응답을 재구성할 때 쓰는 압축 와이어 딕셔너리를 만듭니다.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .monthly import decode_monthly, encode_monthly, normalize_monthly


class Competition(str, Enum):
    """광고 경쟁도"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SearchIntent(str, Enum):
    """검색 의도"""

    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NAVIGATIONAL = "navigational"


class SerpType(str, Enum):
    """순위가 기록된 SERP 요소 유형"""

    ORGANIC = "organic"
    PAID = "paid"
    FEATURED_SNIPPET = "featured_snippet"


def _coalesce(*values: Any) -> Any:
    """첫 번째로 None이 아닌 값 반환"""
    for value in values:
        if value is not None:
            return value
    return None


def _first_present(data: dict[str, Any], *names: str) -> Any:
    return _coalesce(*(data.get(name) for name in names))


def _coerce_enum(enum_cls: type[Enum], value: Any, transform) -> Any:
    """알 수 없는 열거형 문자열은 None으로 취급"""
    if value is None or isinstance(value, enum_cls):
        return value
    if not isinstance(value, str) or not value:
        return None
    candidate = transform(value)
    if candidate in {member.value for member in enum_cls}:
        return candidate
    return None


def _lenient_int(value: Any) -> int | None:
    """숫자로 해석되면 반올림한 정수, 아니면 None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def _lenient_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _lenient_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class KeywordItem(BaseModel):
    """
    키워드 지표 항목

    와이어 형식의 짧은 이름과 API 원본 이름을 모두 받습니다.
        - keyword: kw 또는 keyword (빈 문자열은 다음 후보로 넘어감)
        - search_volume: vol 또는 search_volume (없으면 0)
        - competition: comp 또는 competition
        - keyword_difficulty: kd 또는 keyword_difficulty
        - monthly: monthly 또는 monthly_searches (배열/맵 모두 허용)

    키워드를 결정할 수 없는 항목만 검증에 실패하며, 배치 쓰기에서
    조용히 제외됩니다. 나머지 필드는 해석할 수 없으면 None(검색량은 0)이 되고,
    소수로 들어온 정수 필드는 반올림합니다.
    """

    model_config = ConfigDict(extra="ignore")

    keyword: str = Field(min_length=1)
    search_volume: int = Field(default=0, ge=0)
    cpc: float | None = None
    competition: Competition | None = None
    intent: SearchIntent | None = None
    keyword_difficulty: int | None = None
    monthly: list[int] | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved = dict(data)
        resolved["keyword"] = data.get("kw") or data.get("keyword")
        resolved["search_volume"] = _first_present(data, "vol", "search_volume")
        resolved["competition"] = _first_present(data, "comp", "competition")
        resolved["keyword_difficulty"] = _first_present(data, "kd", "keyword_difficulty")
        resolved["monthly"] = _first_present(data, "monthly", "monthly_searches")
        return resolved

    @field_validator("search_volume", mode="before")
    @classmethod
    def _volume(cls, value: Any) -> int:
        return max(_lenient_int(value) or 0, 0)

    @field_validator("keyword_difficulty", mode="before")
    @classmethod
    def _integer(cls, value: Any) -> int | None:
        return _lenient_int(value)

    @field_validator("cpc", mode="before")
    @classmethod
    def _cpc(cls, value: Any) -> float | None:
        return _lenient_float(value)

    @field_validator("competition", mode="before")
    @classmethod
    def _competition(cls, value: Any) -> Any:
        return _coerce_enum(Competition, value, str.upper)

    @field_validator("intent", mode="before")
    @classmethod
    def _intent(cls, value: Any) -> Any:
        return _coerce_enum(SearchIntent, value, str.lower)

    @field_validator("monthly", mode="before")
    @classmethod
    def _monthly(cls, value: Any) -> Any:
        return normalize_monthly(value)

    def to_row(
        self,
        location: str,
        language: str,
        source: str,
        fetched_at: datetime,
        expires_at: datetime,
    ) -> dict[str, Any]:
        """keywords 테이블 행으로 변환"""
        return {
            "keyword": self.keyword,
            "location": location,
            "language": language,
            "search_volume": self.search_volume,
            "cpc": self.cpc,
            "competition": self.competition.value if self.competition else None,
            "intent": self.intent.value if self.intent else None,
            "keyword_difficulty": self.keyword_difficulty,
            "monthly_searches": encode_monthly(self.monthly),
            "source": source,
            "fetched_at": fetched_at,
            "expires_at": expires_at,
        }

    def to_wire(self) -> dict[str, Any]:
        """압축 와이어 형식으로 변환"""
        item: dict[str, Any] = {"kw": self.keyword, "vol": self.search_volume}
        if self.cpc is not None:
            item["cpc"] = self.cpc
        if self.competition:
            item["comp"] = self.competition.value
        if self.intent:
            item["intent"] = self.intent.value
        if self.keyword_difficulty is not None:
            item["kd"] = self.keyword_difficulty
        if self.monthly:
            item["monthly"] = self.monthly
        return item


class RankingItem(KeywordItem):
    """
    순위 항목

    키워드 지표에 더해 도메인의 SERP 순위 정보를 가집니다.
    position은 pos 또는 position, serp_type은 type 또는 serp_type으로 받고,
    알 수 없는 SERP 유형은 organic으로 저장합니다.
    """

    position: int | None = None
    url: str | None = None
    serp_type: SerpType = SerpType.ORGANIC
    etv: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _ranking_from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved = dict(data)
        resolved["position"] = _first_present(data, "pos", "position")
        resolved["serp_type"] = _first_present(data, "type", "serp_type")
        return resolved

    @field_validator("position", mode="before")
    @classmethod
    def _position(cls, value: Any) -> int | None:
        return _lenient_int(value)

    @field_validator("etv", mode="before")
    @classmethod
    def _etv(cls, value: Any) -> float | None:
        return _lenient_float(value)

    @field_validator("url", mode="before")
    @classmethod
    def _url(cls, value: Any) -> str | None:
        return _lenient_str(value)

    @field_validator("serp_type", mode="before")
    @classmethod
    def _serp_type(cls, value: Any) -> Any:
        return _coerce_enum(SerpType, value, str.lower) or SerpType.ORGANIC

    def to_ranking_row(
        self,
        domain: str,
        location: str,
        language: str,
        fetched_at: datetime,
        expires_at: datetime,
    ) -> dict[str, Any]:
        """keyword_rankings 테이블 행으로 변환"""
        return {
            "keyword": self.keyword,
            "domain": domain,
            "position": self.position,
            "url": self.url,
            "serp_type": self.serp_type.value,
            "etv": self.etv,
            "location": location,
            "language": language,
            "fetched_at": fetched_at,
            "expires_at": expires_at,
        }


class DomainItem(BaseModel):
    """
    도메인 개요 항목

    파서 출력({target, organic{count, etv}, paid{count, etv}, ...})과
    평탄화된 저장소 필드 이름을 모두 받습니다.
    """

    model_config = ConfigDict(extra="ignore")

    domain: str | None = None
    organic_keywords: int | None = None
    organic_etv: float | None = None
    paid_keywords: int | None = None
    paid_etv: float | None = None
    backlinks: int | None = None
    referring_domains: int | None = None
    domain_rank: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        organic = data.get("organic") if isinstance(data.get("organic"), dict) else {}
        paid = data.get("paid") if isinstance(data.get("paid"), dict) else {}
        return {
            "domain": data.get("target") or data.get("domain"),
            "organic_keywords": _coalesce(organic.get("count"), data.get("organic_keywords")),
            "organic_etv": _coalesce(organic.get("etv"), data.get("organic_etv")),
            "paid_keywords": _coalesce(paid.get("count"), data.get("paid_keywords")),
            "paid_etv": _coalesce(paid.get("etv"), data.get("paid_etv")),
            "backlinks": data.get("backlinks"),
            "referring_domains": _first_present(data, "ref_domains", "referring_domains"),
            "domain_rank": _first_present(data, "rank", "domain_rank"),
        }

    @field_validator(
        "organic_keywords", "paid_keywords", "backlinks", "referring_domains", "domain_rank",
        mode="before",
    )
    @classmethod
    def _counts(cls, value: Any) -> int | None:
        return _lenient_int(value)

    @field_validator("organic_etv", "paid_etv", mode="before")
    @classmethod
    def _traffic(cls, value: Any) -> float | None:
        return _lenient_float(value)

    @field_validator("domain", mode="before")
    @classmethod
    def _domain(cls, value: Any) -> str | None:
        return _lenient_str(value)

    def to_row(
        self,
        domain: str,
        location: str,
        language: str,
        fetched_at: datetime,
        expires_at: datetime,
    ) -> dict[str, Any]:
        """domains 테이블 행으로 변환"""
        return {
            "domain": domain,
            "organic_keywords": self.organic_keywords,
            "organic_etv": self.organic_etv,
            "paid_keywords": self.paid_keywords,
            "paid_etv": self.paid_etv,
            "backlinks": self.backlinks,
            "referring_domains": self.referring_domains,
            "domain_rank": self.domain_rank,
            "location": location,
            "language": language,
            "fetched_at": fetched_at,
            "expires_at": expires_at,
        }


class KeywordRecord(BaseModel):
    """
    저장된 keywords 행

    저장소에서 읽은 값을 그대로 담습니다. 경쟁도와 의도는 과거 데이터와의
    호환을 위해 검증 없이 문자열로 유지하고, monthly_searches는 직렬화된
    원본 문자열을 보관합니다.
    """

    model_config = ConfigDict(extra="ignore")

    keyword: str
    location: str
    language: str
    search_volume: int = 0
    cpc: float | None = None
    competition: str | None = None
    intent: str | None = None
    keyword_difficulty: int | None = None
    monthly_searches: str | None = None
    source: str
    fetched_at: datetime
    expires_at: datetime

    @property
    def monthly(self) -> list[int] | None:
        return decode_monthly(self.monthly_searches)

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def to_wire(self) -> dict[str, Any]:
        """
        캐시된 행을 압축 와이어 항목으로 재구성

        Returns:
            dict: kw, vol 및 값이 있는 cpc, comp, intent, kd, monthly
        """
        item: dict[str, Any] = {"kw": self.keyword, "vol": self.search_volume or 0}
        if self.cpc is not None:
            item["cpc"] = self.cpc
        if self.competition:
            item["comp"] = self.competition
        if self.intent:
            item["intent"] = self.intent
        if self.keyword_difficulty is not None:
            item["kd"] = self.keyword_difficulty
        monthly = self.monthly
        if monthly:
            item["monthly"] = monthly
        return item
