"""
MCP 서버용 미들웨어 컴포넌트 모음

FastMCP 미들웨어:
    ErrorHandlerMiddleware: 오류 로깅과 유형별 통계
    ToolCallLoggingMiddleware: 도구 호출 시간과 결과 로깅

ASGI 미들웨어:
    SharedSecretMiddleware: URL 경로 토큰 인증과 /mcp 경로 재작성

실행 순서:
    HTTP 요청 → SharedSecretMiddleware → FastMCP 앱
    → ErrorHandlerMiddleware → ToolCallLoggingMiddleware → 도구
"""

from .error_handler import ErrorHandlerMiddleware
from .logging import ToolCallLoggingMiddleware
from .shared_secret import SharedSecretMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "SharedSecretMiddleware",
    "ToolCallLoggingMiddleware",
]
