"""
서버 설정 클래스

DataForSEO MCP 서버의 모든 설정을 관리하는 클래스입니다.
프로파일 기반 설정과 환경 변수 오버라이드를 지원합니다.

주요 기능:
    - 사전 정의된 프로파일 (BASIC, CACHED, COMPLETE)
    - 환경 변수를 통한 세밀한 제어
    - 기능 플래그 시스템
    - 컴포넌트별 설정 관리

설정은 시작 시 한 번만 로드되고, 각 컴포넌트에는 생성자로 명시적으로
전달됩니다. 런타임 중에 환경 변수를 다시 읽지 않습니다.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum
import structlog

logger = structlog.get_logger(__name__)

# 저장소 배치 쓰기의 청크 상한 (SQLite 바인딩 변수 제한 기준)
MAX_BATCH_CHUNK_SIZE = 50


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ServerProfile(Enum):
    """
    서버 프로파일 열거형

    각 프로파일은 특정 사용 사례에 최적화된 기능 조합을 제공합니다.
    """

    BASIC = "basic"  # 캐시 없이 업스트림 API만 중계
    CACHED = "cached"  # 읽기 통과 캐시 활성화
    COMPLETE = "complete"  # 캐시 + 공유 비밀 인증 + 향상된 로깅
    CUSTOM = "custom"  # 사용자 정의 설정


@dataclass
class UpstreamConfig:
    """
    DataForSEO API 설정

    Basic 인증 자격 증명과 HTTP 클라이언트 동작을 정의합니다.
    """

    username: Optional[str] = None
    password: Optional[str] = None
    base_url: str = "https://api.dataforseo.com/v3"
    timeout: float = 30.0
    max_retries: int = 3

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def from_env(cls) -> "UpstreamConfig":
        """환경 변수에서 DataForSEO 설정 로드"""
        return cls(
            username=os.getenv("DATAFORSEO_USERNAME"),
            password=os.getenv("DATAFORSEO_PASSWORD"),
            base_url=os.getenv("DATAFORSEO_BASE_URL", "https://api.dataforseo.com/v3"),
            timeout=float(os.getenv("DATAFORSEO_TIMEOUT", "30")),
            max_retries=int(os.getenv("DATAFORSEO_MAX_RETRIES", "3")),
        )


@dataclass
class CacheConfig:
    """
    캐시 저장소 설정

    SQLAlchemy 비동기 엔진 URL과 엔티티별 TTL(일 단위)을 정의합니다.
    기본값은 로컬 SQLite 파일이며, postgresql+asyncpg URL도 지원합니다.
    """

    database_url: str = "sqlite+aiosqlite:///./seo_cache.db"
    ttl_keyword_days: int = 30  # 키워드 지표
    ttl_rankings_days: int = 7  # 도메인별 키워드 순위
    ttl_domain_days: int = 7  # 도메인 개요
    batch_chunk_size: int = MAX_BATCH_CHUNK_SIZE
    echo: bool = False

    def __post_init__(self) -> None:
        # 청크 크기는 1 ~ 50 범위로 고정
        self.batch_chunk_size = max(1, min(self.batch_chunk_size, MAX_BATCH_CHUNK_SIZE))

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """환경 변수에서 캐시 설정 로드"""
        return cls(
            database_url=os.getenv(
                "CACHE_DATABASE_URL", "sqlite+aiosqlite:///./seo_cache.db"
            ),
            ttl_keyword_days=int(os.getenv("CACHE_TTL_KEYWORD_DAYS", "30")),
            ttl_rankings_days=int(os.getenv("CACHE_TTL_RANKINGS_DAYS", "7")),
            ttl_domain_days=int(os.getenv("CACHE_TTL_DOMAIN_DAYS", "7")),
            batch_chunk_size=int(
                os.getenv("CACHE_BATCH_CHUNK_SIZE", str(MAX_BATCH_CHUNK_SIZE))
            ),
            echo=_env_bool("CACHE_DB_ECHO", "false"),
        )

    def ttl_days(self) -> Dict[str, int]:
        """TTL 클래스 이름별 보존 일수"""
        return {
            "keyword_data": self.ttl_keyword_days,
            "rankings": self.ttl_rankings_days,
            "domain_overview": self.ttl_domain_days,
        }


@dataclass
class AuthConfig:
    """
    인증 설정

    HTTP 전송에서 /mcp/{token} 경로에 사용하는 공유 비밀 토큰 설정입니다.
    """

    shared_secret: Optional[str] = None
    require_auth: bool = True

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """환경 변수에서 인증 설정 로드"""
        return cls(
            shared_secret=os.getenv("SHARED_SECRET"),
            require_auth=_env_bool("MCP_REQUIRE_AUTH", "true"),
        )


@dataclass
class LoggingConfig:
    """
    로깅 설정

    구조화된 로깅과 도구 호출 추적을 위한 설정입니다.
    """

    log_level: str = "INFO"
    log_request_body: bool = False
    sensitive_fields: list[str] = field(
        default_factory=lambda: ["password", "token", "secret", "auth"]
    )

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """환경 변수에서 로깅 설정 로드"""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_request_body=_env_bool("LOG_REQUEST_BODY", "false"),
            sensitive_fields=os.getenv(
                "SENSITIVE_FIELDS", "password,token,secret,auth"
            ).split(","),
        )


@dataclass
class ServerConfig:
    """
    통합 서버 설정

    MCP 서버의 모든 설정을 관리하는 메인 클래스입니다.

    사용 예시:
        # 프로파일 기반 생성
        config = ServerConfig.from_profile(ServerProfile.COMPLETE)

        # 환경 변수 기반 생성
        config = ServerConfig.from_env()

        # 특정 기능 활성화/비활성화
        config.features["cache"] = True
        config.cache_config = CacheConfig.from_env()
    """

    # 기본 설정
    name: str = "dataforseo-mcp"
    profile: ServerProfile = ServerProfile.BASIC
    transport: str = "stdio"  # stdio or http
    host: str = "0.0.0.0"
    port: int = 8001

    # 기능 플래그
    features: Dict[str, bool] = field(
        default_factory=lambda: {
            "cache": False,  # 읽기 통과 캐시
            "auth": False,  # 공유 비밀 경로 인증 (HTTP 전용)
            "error_handler": True,  # 에러 처리 (기본 활성화)
            "enhanced_logging": False,  # 도구 호출 로깅
        }
    )

    # 컴포넌트별 설정
    upstream_config: UpstreamConfig = field(default_factory=UpstreamConfig)
    cache_config: Optional[CacheConfig] = None
    auth_config: Optional[AuthConfig] = None
    logging_config: Optional[LoggingConfig] = None

    @classmethod
    def from_profile(cls, profile: ServerProfile) -> "ServerConfig":
        """
        프로파일 기반 설정 생성

        Args:
            profile: 서버 프로파일

        Returns:
            설정된 ServerConfig 인스턴스
        """
        config = cls(profile=profile)

        if profile == ServerProfile.BASIC:
            config.features.update(
                {"cache": False, "auth": False, "enhanced_logging": False}
            )

        elif profile == ServerProfile.CACHED:
            config.features.update(
                {"cache": True, "auth": False, "enhanced_logging": False}
            )
            config.cache_config = CacheConfig.from_env()

        elif profile == ServerProfile.COMPLETE:
            config.features.update(
                {"cache": True, "auth": True, "enhanced_logging": True}
            )
            config.cache_config = CacheConfig.from_env()
            config.auth_config = AuthConfig.from_env()
            config.logging_config = LoggingConfig.from_env()

        # 업스트림 설정은 모든 프로파일에서 공통
        config.upstream_config = UpstreamConfig.from_env()

        logger.info(
            "프로파일 기반 설정 생성",
            profile=profile.value,
            features=config.get_enabled_features(),
        )

        return config

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        환경 변수에서 설정 로드

        MCP_PROFILE 환경 변수로 기본 프로파일을 선택하고,
        개별 MCP_ENABLE_* 환경 변수로 기능을 오버라이드할 수 있습니다.

        Returns:
            환경 변수 기반 ServerConfig 인스턴스
        """
        profile_name = os.getenv("MCP_PROFILE", "CACHED").upper()
        try:
            config = cls.from_profile(ServerProfile[profile_name])
        except KeyError:
            logger.warning(
                "알 수 없는 프로파일, CUSTOM 사용",
                profile=profile_name,
            )
            config = cls(profile=ServerProfile.CUSTOM)
            config.upstream_config = UpstreamConfig.from_env()

        # 기본 설정 오버라이드
        config.name = os.getenv("MCP_SERVER_NAME", config.name)
        config.transport = os.getenv("MCP_TRANSPORT", config.transport)
        config.host = os.getenv("MCP_SERVER_HOST", config.host)
        config.port = int(os.getenv("MCP_SERVER_PORT", str(config.port)))

        # 개별 기능 오버라이드
        for feature in config.features:
            env_key = f"MCP_ENABLE_{feature.upper()}"
            if env_value := os.getenv(env_key):
                config.features[feature] = env_value.lower() == "true"
                logger.debug(
                    "기능 오버라이드",
                    feature=feature,
                    enabled=config.features[feature],
                )

        # 활성화된 기능에 대한 설정 로드
        if config.features["cache"] and not config.cache_config:
            config.cache_config = CacheConfig.from_env()

        if config.features["auth"] and not config.auth_config:
            config.auth_config = AuthConfig.from_env()

        if not config.logging_config:
            config.logging_config = LoggingConfig.from_env()

        logger.info(
            "환경 변수 기반 설정 로드 완료",
            profile=config.profile.value,
            transport=config.transport,
            features=config.get_enabled_features(),
        )

        return config

    def get_enabled_features(self) -> list[str]:
        """활성화된 기능 목록 반환"""
        return [feature for feature, enabled in self.features.items() if enabled]

    def validate(self) -> tuple[bool, list[str]]:
        """
        설정 유효성 검증

        Returns:
            (유효 여부, 오류 메시지 목록)
        """
        errors = []

        if self.features["auth"] and self.auth_config:
            if self.auth_config.require_auth and not self.auth_config.shared_secret:
                errors.append("인증이 활성화되었지만 SHARED_SECRET이 설정되지 않음")

        if self.features["cache"] and self.cache_config:
            if not self.cache_config.database_url:
                errors.append("캐싱이 활성화되었지만 CACHE_DATABASE_URL이 설정되지 않음")

        if not self.upstream_config.has_credentials:
            logger.warning("DataForSEO 자격 증명이 설정되지 않음 - 업스트림 도구 호출 실패 예상")

        if self.transport == "http":
            if not (1 <= self.port <= 65535):
                errors.append(f"잘못된 포트 번호: {self.port}")

        return len(errors) == 0, errors

    def to_dict(self) -> dict[str, Any]:
        """설정을 딕셔너리로 변환 (비밀 값은 마스킹)"""
        upstream = dict(self.upstream_config.__dict__)
        if upstream.get("password"):
            upstream["password"] = "***"
        auth = dict(self.auth_config.__dict__) if self.auth_config else None
        if auth and auth.get("shared_secret"):
            auth["shared_secret"] = "***"

        return {
            "name": self.name,
            "profile": self.profile.value,
            "transport": self.transport,
            "host": self.host,
            "port": self.port,
            "features": self.features,
            "upstream_config": upstream,
            "cache_config": self.cache_config.__dict__ if self.cache_config else None,
            "auth_config": auth,
            "logging_config": self.logging_config.__dict__
            if self.logging_config
            else None,
        }
