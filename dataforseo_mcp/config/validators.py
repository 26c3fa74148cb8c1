"""
설정 검증 모듈

서버 설정의 유효성을 검증하고 일관성을 보장합니다.

주요 기능:
    - 기본 설정 검증 (이름, 전송 모드, 포트)
    - 캐시 저장소 설정 검증 (드라이버, TTL, 청크 크기)
    - 인증 설정 검증
"""

import re
from typing import List, Tuple
import structlog

from .settings import ServerConfig, MAX_BATCH_CHUNK_SIZE

logger = structlog.get_logger(__name__)

SUPPORTED_DATABASE_SCHEMES = ("sqlite+aiosqlite://", "postgresql+asyncpg://")


def validate_config(config: ServerConfig) -> Tuple[bool, List[str]]:
    """
    전체 설정 검증

    Args:
        config: 검증할 서버 설정

    Returns:
        (유효 여부, 오류 메시지 목록)
    """
    errors = []

    errors.extend(_validate_basic_settings(config))

    if config.features["cache"]:
        errors.extend(_validate_cache_settings(config))

    if config.features["auth"] and config.transport == "http":
        errors.extend(_validate_auth_settings(config))

    errors.extend(_validate_upstream_settings(config))

    is_valid = len(errors) == 0

    if not is_valid:
        logger.error(
            "설정 검증 실패",
            error_count=len(errors),
            errors=errors[:5]  # 처음 5개만 로깅
        )
    else:
        logger.info("설정 검증 성공")

    return is_valid, errors


def _validate_basic_settings(config: ServerConfig) -> List[str]:
    """기본 설정 검증"""
    errors = []

    if not config.name or not config.name.strip():
        errors.append("서버 이름이 비어있음")
    elif not re.match(r'^[a-zA-Z0-9-_]+$', config.name):
        errors.append(f"잘못된 서버 이름 형식: {config.name}")

    if config.transport not in ["stdio", "http"]:
        errors.append(f"지원되지 않는 전송 모드: {config.transport}")

    if config.transport == "http":
        if not (1 <= config.port <= 65535):
            errors.append(f"잘못된 포트 번호: {config.port}")

    return errors


def _validate_cache_settings(config: ServerConfig) -> List[str]:
    """캐시 설정 검증"""
    errors = []

    if not config.cache_config:
        errors.append("캐싱이 활성화되었지만 cache_config가 없음")
        return errors

    cache = config.cache_config

    if not cache.database_url:
        errors.append("캐시 데이터베이스 URL이 설정되지 않음")
    elif not cache.database_url.startswith(SUPPORTED_DATABASE_SCHEMES):
        errors.append(f"지원되지 않는 데이터베이스 드라이버: {cache.database_url.split('://')[0]}")

    for name, days in cache.ttl_days().items():
        if days <= 0:
            errors.append(f"{name} TTL은 1일 이상이어야 함: {days}")

    if not (1 <= cache.batch_chunk_size <= MAX_BATCH_CHUNK_SIZE):
        errors.append(f"잘못된 배치 청크 크기: {cache.batch_chunk_size}")

    return errors


def _validate_auth_settings(config: ServerConfig) -> List[str]:
    """인증 설정 검증"""
    errors = []

    if not config.auth_config:
        errors.append("인증이 활성화되었지만 auth_config가 없음")
        return errors

    auth = config.auth_config
    if auth.require_auth and not auth.shared_secret:
        errors.append("인증이 필수이지만 SHARED_SECRET이 설정되지 않음")
    elif auth.shared_secret and len(auth.shared_secret) < 16:
        errors.append("공유 비밀 토큰이 너무 짧음 (최소 16자 권장)")

    return errors


def _validate_upstream_settings(config: ServerConfig) -> List[str]:
    """업스트림 API 설정 검증"""
    errors = []
    upstream = config.upstream_config

    if not upstream.base_url.startswith(("http://", "https://")):
        errors.append(f"잘못된 DataForSEO URL 형식: {upstream.base_url}")
    if upstream.timeout <= 0:
        errors.append(f"잘못된 타임아웃: {upstream.timeout}")
    if upstream.max_retries < 1:
        errors.append(f"재시도 횟수는 1 이상이어야 함: {upstream.max_retries}")

    return errors
