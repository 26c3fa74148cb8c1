"""
DataForSEO 업스트림 모듈

HTTP 클라이언트, 응답 파서, 도구 정의와 핸들러를 제공합니다.
"""

from .client import DataForSEOClient
from .parsers import PARSERS, format_monthly, parse_response
from .tools import UPSTREAM_TOOLS, ToolSpec, UpstreamToolHandler

__all__ = [
    "DataForSEOClient",
    "PARSERS",
    "ToolSpec",
    "UPSTREAM_TOOLS",
    "UpstreamToolHandler",
    "format_monthly",
    "parse_response",
]
