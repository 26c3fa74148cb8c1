"""
도구 호출 로깅 미들웨어

모든 MCP 도구 호출을 구조화된 형태로 로깅합니다.

기록 항목:
    - request_id: 호출마다 생성되는 고유 ID
    - tool_name: 호출된 도구 이름
    - duration_ms: 처리 시간 (밀리초)
    - success: 예외 없이 완료되었는지 여부
    - arguments: 도구 인수 (log_arguments=True일 때만, 민감 필드는 마스킹)

1초 이상 걸린 호출은 별도로 경고합니다.

사용 예시:
    ```python
    server.add_middleware(
        ToolCallLoggingMiddleware(log_arguments=True, sensitive_fields=["password"])
    )
    ```
"""

import time
import uuid
from typing import Any

import structlog
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext

logger = structlog.get_logger(__name__)

DEFAULT_SENSITIVE_FIELDS = ["password", "token", "api_key", "secret"]
SLOW_CALL_THRESHOLD_MS = 1000
MAX_LOGGED_STRING = 1000


class ToolCallLoggingMiddleware(Middleware):
    """
    도구 호출 추적 로깅 미들웨어

    Args:
        log_arguments: 도구 인수 로깅 여부 (기본값: False)
        sensitive_fields: "[REDACTED]"로 대체할 필드명 조각 목록
            (대소문자 무시 부분 일치)
    """

    def __init__(
        self,
        log_arguments: bool = False,
        sensitive_fields: list[str] | None = None,
    ):
        self.log_arguments = log_arguments
        self.sensitive_fields = [field.lower() for field in (sensitive_fields or DEFAULT_SENSITIVE_FIELDS)]

    async def on_call_tool(self, context: MiddlewareContext, call_next: CallNext) -> Any:
        """도구 호출 전후 로깅"""
        start_time = time.perf_counter()
        tool_name = getattr(context.message, "name", "unknown")
        log_context: dict[str, Any] = {
            "request_id": str(uuid.uuid4()),
            "tool_name": tool_name,
        }
        if self.log_arguments:
            log_context["arguments"] = self._sanitize_data(getattr(context.message, "arguments", None) or {})

        logger.info("도구 호출 시작", **log_context)

        success = False
        try:
            result = await call_next(context)
            success = True
            return result
        except Exception as e:
            log_context["error"] = str(e)
            log_context["error_type"] = type(e).__name__
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = "info" if success else "error"
            getattr(logger, log_level)(
                "도구 호출 완료",
                **log_context,
                duration_ms=round(duration_ms, 2),
                success=success,
            )
            if duration_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning(
                    "느린 도구 호출 감지",
                    tool_name=tool_name,
                    duration_ms=round(duration_ms, 2),
                    threshold_ms=SLOW_CALL_THRESHOLD_MS,
                )

    def _sanitize_data(self, data: Any) -> Any:
        """
        민감 필드를 재귀적으로 마스킹

        Returns:
            Any: 민감 필드는 "[REDACTED]", 1000자 초과 문자열은 절단된 사본
        """
        if isinstance(data, dict):
            return {
                key: "[REDACTED]" if self._is_sensitive(key) else self._sanitize_data(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self._sanitize_data(item) for item in data]
        if isinstance(data, str) and len(data) > MAX_LOGGED_STRING:
            return data[:MAX_LOGGED_STRING] + "... [TRUNCATED]"
        return data

    def _is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(field in lowered for field in self.sensitive_fields)
