"""
TTL 정책

엔티티 종류별 고정 보존 기간을 정의합니다. 레코드의 expires_at은
항상 fetched_at + TTL이며, expires_at > now인 레코드만 유효합니다.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum


class TTLClass(str, Enum):
    """캐시 데이터 분류"""

    KEYWORD_DATA = "keyword_data"
    RANKINGS = "rankings"
    DOMAIN_OVERVIEW = "domain_overview"


DEFAULT_TTL_DAYS: dict[TTLClass, int] = {
    TTLClass.KEYWORD_DATA: 30,
    TTLClass.RANKINGS: 7,
    TTLClass.DOMAIN_OVERVIEW: 7,
}


def utcnow() -> datetime:
    """저장소 비교에 쓰는 naive UTC 현재 시각"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TTLPolicy:
    """
    TTL 클래스별 만료 시각 계산기

    Args:
        days: TTL 클래스 이름(또는 TTLClass) -> 보존 일수 오버라이드
    """

    def __init__(self, days: dict[str, int] | None = None):
        self._days = dict(DEFAULT_TTL_DAYS)
        for name, value in (days or {}).items():
            self._days[TTLClass(name)] = int(value)

    def ttl(self, ttl_class: TTLClass) -> timedelta:
        return timedelta(days=self._days[ttl_class])

    def expires_at(self, ttl_class: TTLClass, fetched_at: datetime) -> datetime:
        return fetched_at + self.ttl(ttl_class)

    def to_dict(self) -> dict[str, int]:
        return {ttl_class.value: days for ttl_class, days in self._days.items()}
