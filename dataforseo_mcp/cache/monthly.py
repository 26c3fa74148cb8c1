"""
월별 검색량 시계열 변환

월별 검색량은 두 가지 입력 형태로 들어옵니다.
    - 최신 월이 먼저 오는 정수 배열: [300, 250, 200]
    - 연-월 키 맵: {"2025-03": 300, "2025-02": 250}

연-월 문자열("YYYY-MM")은 사전식 정렬이 곧 시간순 정렬이므로
키 내림차순 정렬만으로 최신 월 우선 배열을 만들 수 있습니다.
저장 시에는 항상 배열로 정규화하고, 읽을 때는 과거에 맵으로 저장된
값도 받아들입니다. 해석할 수 없는 값은 에러가 아닌 "없음"(None)입니다.
"""

import json
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def _to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    return int(value)


def normalize_monthly(value: Any) -> list[int] | None:
    """
    월별 시계열 입력을 최신 월 우선 정수 배열로 정규화

    Args:
        value: 정수 배열, 연-월 키 맵, {year, month, search_volume} 객체 배열,
            또는 이들의 JSON 문자열

    Returns:
        list[int] | None: 최신 월 우선 배열, 비어 있거나 해석할 수 없으면 None
    """
    if value is None:
        return None

    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (ValueError, TypeError):
            return None

    try:
        if isinstance(value, dict):
            if not value:
                return None
            return [_to_int(value[key]) for key in sorted(value, reverse=True)]

        if isinstance(value, (list, tuple)):
            if not value:
                return None
            if all(isinstance(entry, dict) for entry in value):
                entries = [
                    entry
                    for entry in value
                    if entry.get("year") is not None and entry.get("month") is not None
                ]
                entries.sort(
                    key=lambda entry: (int(entry["year"]), int(entry["month"])),
                    reverse=True,
                )
                series = [_to_int(entry.get("search_volume")) for entry in entries]
                return series or None
            return [_to_int(entry) for entry in value]
    except (TypeError, ValueError):
        return None

    return None


def encode_monthly(series: list[int] | None) -> str | None:
    """정규화된 시계열을 저장용 JSON 문자열로 직렬화"""
    if not series:
        return None
    return json.dumps(series)


def decode_monthly(raw: Any) -> list[int] | None:
    """
    저장된 시계열을 배열로 복원

    배열은 그대로, 맵은 키 내림차순으로 정렬한 값 배열로 돌려줍니다.
    손상된 값은 None으로 취급합니다.
    """
    series = normalize_monthly(raw)
    if series is None and raw:
        logger.debug("monthly_series_unreadable", raw=str(raw)[:100])
    return series
