"""Unit tests for tool call logging middleware."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from dataforseo_mcp.middleware import ToolCallLoggingMiddleware


def make_context(name="cache_search", arguments=None):
    return SimpleNamespace(method="tools/call", message=SimpleNamespace(name=name, arguments=arguments))


class TestSanitizeData:
    """Test argument masking."""

    def test_sensitive_fields_are_redacted(self):
        middleware = ToolCallLoggingMiddleware(log_arguments=True)

        sanitized = middleware._sanitize_data(
            {"target": "example.com", "API_KEY": "k", "nested": {"shared_secret": "s"}}
        )

        assert sanitized == {
            "target": "example.com",
            "API_KEY": "[REDACTED]",
            "nested": {"shared_secret": "[REDACTED]"},
        }

    def test_long_strings_are_truncated(self):
        middleware = ToolCallLoggingMiddleware()

        sanitized = middleware._sanitize_data({"keywords": ["x" * 1500]})

        assert sanitized["keywords"][0] == "x" * 1000 + "... [TRUNCATED]"

    def test_custom_sensitive_fields(self):
        middleware = ToolCallLoggingMiddleware(sensitive_fields=["Location"])

        assert middleware._sanitize_data({"location_name": "US", "password": "p"}) == {
            "location_name": "[REDACTED]",
            "password": "p",
        }


@pytest.mark.asyncio
class TestToolCallLogging:
    """Test call logging."""

    async def test_successful_call_is_logged(self):
        middleware = ToolCallLoggingMiddleware(log_arguments=True)
        call_next = AsyncMock(return_value="result")

        with patch("dataforseo_mcp.middleware.logging.logger") as mock_logger:
            result = await middleware.on_call_tool(
                make_context(arguments={"keyword_like": "seo", "token": "t"}), call_next
            )

        assert result == "result"
        start_call, end_call = mock_logger.info.call_args_list
        assert start_call.args[0] == "도구 호출 시작"
        assert start_call.kwargs["tool_name"] == "cache_search"
        assert start_call.kwargs["arguments"] == {"keyword_like": "seo", "token": "[REDACTED]"}
        assert end_call.kwargs["success"] is True
        assert "duration_ms" in end_call.kwargs

    async def test_arguments_not_logged_by_default(self):
        middleware = ToolCallLoggingMiddleware()

        with patch("dataforseo_mcp.middleware.logging.logger") as mock_logger:
            await middleware.on_call_tool(make_context(arguments={"a": 1}), AsyncMock())

        assert "arguments" not in mock_logger.info.call_args_list[0].kwargs

    async def test_failed_call_is_logged_and_reraised(self):
        middleware = ToolCallLoggingMiddleware()
        call_next = AsyncMock(side_effect=RuntimeError("upstream down"))

        with patch("dataforseo_mcp.middleware.logging.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                await middleware.on_call_tool(make_context(), call_next)

        end_call = mock_logger.error.call_args
        assert end_call.kwargs["success"] is False
        assert end_call.kwargs["error_type"] == "RuntimeError"

    async def test_slow_call_warning(self):
        middleware = ToolCallLoggingMiddleware()

        with patch("dataforseo_mcp.middleware.logging.logger") as mock_logger, patch(
            "dataforseo_mcp.middleware.logging.SLOW_CALL_THRESHOLD_MS", -1
        ):
            await middleware.on_call_tool(make_context(), AsyncMock())

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["tool_name"] == "cache_search"
