"""
캐시 저장소 스키마 정의

SQLAlchemy Core 테이블로 네 개의 캐시 테이블을 정의합니다.
SQLite(aiosqlite)와 PostgreSQL(asyncpg) 양쪽에서 동일하게 생성됩니다.

테이블 구성:
    - keywords: 키워드 지표 (keyword, location, language 고유)
    - keyword_rankings: 도메인별 키워드 순위 (keyword, domain, location, language 고유)
    - domains: 도메인 개요 지표 (domain, location, language 고유)
    - search_logs: 도구 호출 감사 로그 (추가 전용)

keyword_rankings는 keywords를 (keyword, location, language)로 조회만 하는
약한 참조이며, 외래 키나 연쇄 삭제는 두지 않습니다.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)

metadata = MetaData()

keywords = Table(
    "keywords",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("keyword", String(512), nullable=False),
    Column("location", String(128), nullable=False),
    Column("language", String(16), nullable=False),
    Column("search_volume", Integer, nullable=False, server_default="0"),
    Column("cpc", Float),
    Column("competition", String(16)),
    Column("intent", String(32)),
    Column("keyword_difficulty", Integer),
    # 최신 월이 먼저 오는 정수 배열의 JSON 직렬화
    Column("monthly_searches", Text),
    Column("source", String(64), nullable=False),
    Column("fetched_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
    UniqueConstraint("keyword", "location", "language", name="uq_keywords_scope"),
    Index("idx_keywords_keyword", "keyword"),
    Index("idx_keywords_fetched", "fetched_at"),
    Index("idx_keywords_expires", "expires_at"),
    Index("idx_keywords_location_language", "location", "language"),
)

Index("idx_keywords_volume", keywords.c.search_volume.desc())

keyword_rankings = Table(
    "keyword_rankings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("keyword", String(512), nullable=False),
    Column("domain", String(255), nullable=False),
    Column("position", Integer),
    Column("url", Text),
    Column("serp_type", String(32), nullable=False, server_default="organic"),
    Column("etv", Float),
    Column("location", String(128), nullable=False),
    Column("language", String(16), nullable=False),
    Column("fetched_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
    UniqueConstraint(
        "keyword", "domain", "location", "language", name="uq_keyword_rankings_scope"
    ),
    Index("idx_rankings_domain", "domain"),
    Index("idx_rankings_keyword", "keyword"),
    Index("idx_rankings_expires", "expires_at"),
)

domains = Table(
    "domains",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("domain", String(255), nullable=False),
    Column("organic_keywords", Integer),
    Column("organic_etv", Float),
    Column("paid_keywords", Integer),
    Column("paid_etv", Float),
    Column("backlinks", Integer),
    Column("referring_domains", Integer),
    Column("domain_rank", Integer),
    Column("location", String(128), nullable=False),
    Column("language", String(16), nullable=False),
    Column("fetched_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
    UniqueConstraint("domain", "location", "language", name="uq_domains_scope"),
    Index("idx_domains_domain", "domain"),
    Index("idx_domains_expires", "expires_at"),
)

search_logs = Table(
    "search_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tool_name", String(128), nullable=False),
    Column("query_params", Text),
    Column("result_count", Integer, nullable=False, server_default="0"),
    Column("cache_hit", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
    Index("idx_search_logs_created", "created_at"),
    Index("idx_search_logs_tool", "tool_name"),
)

# 테이블 이름 -> 테이블 객체 (purge 허용 목록 겸용)
TABLES: dict[str, Table] = {
    "keywords": keywords,
    "keyword_rankings": keyword_rankings,
    "domains": domains,
    "search_logs": search_logs,
}

# upsert 충돌 판정에 쓰는 고유 키 컬럼
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "keywords": ("keyword", "location", "language"),
    "keyword_rankings": ("keyword", "domain", "location", "language"),
    "domains": ("domain", "location", "language"),
}
