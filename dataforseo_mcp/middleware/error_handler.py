"""Error handling middleware for the MCP server."""

import traceback
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext

from dataforseo_mcp.exceptions import (
    AuthenticationError,
    CacheError,
    ErrorHandler,
    MCPError,
    ServiceUnavailableError,
    TimeoutError,
    UpstreamError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def _tool_name(context: MiddlewareContext) -> str | None:
    return getattr(context.message, "name", None)


class ErrorHandlerMiddleware(Middleware):
    """Logs errors raised by downstream handlers and keeps per-type counters.

    Errors are always re-raised so FastMCP can build the protocol response.
    """

    def __init__(
        self,
        capture_stack_trace: bool = True,
        max_error_log_length: int = 5000,
    ):
        self.capture_stack_trace = capture_stack_trace
        self.max_error_log_length = max_error_log_length
        self._error_counts = self._empty_counts()

    @staticmethod
    def _empty_counts() -> Dict[str, Any]:
        return {"total": 0, "by_type": {}, "by_method": {}}

    async def on_message(self, context: MiddlewareContext, call_next: CallNext) -> Any:
        method = context.method or "unknown"

        try:
            return await call_next(context)

        except MCPError as e:
            self._log_mcp_error(e, method, _tool_name(context))
            raise

        except Exception as e:
            # 도구 계층은 MCPError를 ToolError로 감싸서 올림
            if isinstance(e.__cause__, MCPError):
                self._log_mcp_error(e.__cause__, method, _tool_name(context))
            else:
                self._log_unexpected_error(e, method, _tool_name(context))
            raise

    def _count(self, error_type: str, method: str) -> None:
        self._error_counts["total"] += 1
        by_type = self._error_counts["by_type"]
        by_method = self._error_counts["by_method"]
        by_type[error_type] = by_type.get(error_type, 0) + 1
        by_method[method] = by_method.get(method, 0) + 1

    def _log_mcp_error(self, error: MCPError, method: str, tool_name: str | None) -> None:
        """Log MCP errors with a level that matches their severity."""
        error_context = ErrorHandler.create_error_context(error, method=method, tool_name=tool_name)
        self._count(type(error).__name__, method)

        if isinstance(error, AuthenticationError):
            logger.warning("Authentication error", **error_context)
        elif isinstance(error, ValidationError):
            logger.warning("Validation error", **error_context)
        elif isinstance(error, CacheError):
            logger.warning("Cache error", **error_context)
        elif isinstance(error, UpstreamError):
            logger.error("Upstream error", **error_context)
        elif isinstance(error, (TimeoutError, ServiceUnavailableError)):
            logger.error("Service error", **error_context)
        else:
            logger.error("MCP error", **error_context)

    def _log_unexpected_error(self, error: Exception, method: str, tool_name: str | None) -> None:
        error_context = ErrorHandler.create_error_context(error, method=method, tool_name=tool_name)
        error_context["timestamp"] = datetime.now(timezone.utc).isoformat()

        if self.capture_stack_trace:
            stack_trace = traceback.format_exc()
            if len(stack_trace) > self.max_error_log_length:
                stack_trace = stack_trace[: self.max_error_log_length] + "... [TRUNCATED]"
            error_context["stack_trace"] = stack_trace

        self._count("UnexpectedError", method)
        logger.error("Unexpected error in request processing", **error_context)

    def get_error_statistics(self) -> Dict[str, Any]:
        by_type = self._error_counts["by_type"]
        by_method = self._error_counts["by_method"]
        return {
            "total_errors": self._error_counts["total"],
            "errors_by_type": dict(by_type),
            "errors_by_method": dict(by_method),
            "most_common_error": max(by_type, key=by_type.get) if by_type else None,
            "most_error_prone_method": max(by_method, key=by_method.get) if by_method else None,
        }

    def reset_statistics(self) -> None:
        self._error_counts = self._empty_counts()
