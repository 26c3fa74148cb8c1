"""
읽기 통과 캐시 모듈

DataForSEO 응답을 SQL 저장소에 보관하고, 대량 키워드 조회에서
캐시된 키워드는 업스트림 호출 없이 응답합니다.

주요 구성요소:
    - RecordStore: upsert / 만료 인식 조회 / 조건 삭제 저장소
    - CacheService: 타입 있는 캐시 작업과 TTL 정책
    - CacheAwareDispatch: 업스트림 핸들러 캐시 래퍼
    - CacheMetrics: 캐시 동작 카운터
"""

from .cache_service import (
    CacheService,
    CompetitionLevel,
    IntentName,
    KeywordExportFilter,
    KeywordSearchFilter,
    SortField,
    SortOrder,
)
from .dispatch import CACHE_ROUTES, CacheAwareDispatch, SUCCESS_STATUS_CODE
from .metrics import CacheMetrics
from .models import DomainItem, KeywordItem, KeywordRecord, RankingItem
from .record_store import BatchResult, RecordStore
from .ttl import TTLClass, TTLPolicy

__all__ = [
    "BatchResult",
    "CACHE_ROUTES",
    "CacheAwareDispatch",
    "CacheMetrics",
    "CacheService",
    "CompetitionLevel",
    "DomainItem",
    "IntentName",
    "KeywordExportFilter",
    "KeywordItem",
    "KeywordRecord",
    "KeywordSearchFilter",
    "RankingItem",
    "RecordStore",
    "SortField",
    "SortOrder",
    "SUCCESS_STATUS_CODE",
    "TTLClass",
    "TTLPolicy",
]
