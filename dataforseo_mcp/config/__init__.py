"""
설정 관리 모듈

DataForSEO MCP 서버의 모든 설정을 중앙에서 관리합니다.

주요 구성요소:
    - ServerConfig: 메인 서버 설정 클래스
    - ServerProfile: 사전 정의된 서버 프로파일
    - 컴포넌트 설정: UpstreamConfig, CacheConfig, AuthConfig, LoggingConfig
    - 설정 검증기
"""

from .settings import (
    AuthConfig,
    CacheConfig,
    LoggingConfig,
    ServerConfig,
    ServerProfile,
    UpstreamConfig,
)
from .validators import validate_config

__all__ = [
    "AuthConfig",
    "CacheConfig",
    "LoggingConfig",
    "ServerConfig",
    "ServerProfile",
    "UpstreamConfig",
    "validate_config",
]
