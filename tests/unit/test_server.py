"""Unit tests for DataForSEO MCP server assembly."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError
from starlette.testclient import TestClient

from dataforseo_mcp.cache.dispatch import CACHE_ROUTES, success_envelope
from dataforseo_mcp.config import (
    AuthConfig,
    CacheConfig,
    ServerConfig,
    ServerProfile,
    UpstreamConfig,
)
from dataforseo_mcp.exceptions import UpstreamError
from dataforseo_mcp.server import SeoMCPServer
from dataforseo_mcp.upstream import UPSTREAM_TOOLS

CACHE_TOOLS = {"cache_search", "cache_stats", "cache_export", "cache_clear"}


def make_config(profile=ServerProfile.BASIC, database_url=None, **overrides):
    config = ServerConfig(
        profile=profile,
        upstream_config=UpstreamConfig(username="login@example.com", password="secret"),
    )
    if database_url:
        config.features["cache"] = True
        config.cache_config = CacheConfig(database_url=database_url)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class TestServerConstruction:
    """Test component wiring from configuration."""

    def test_invalid_config_raises(self):
        with pytest.raises(ValueError, match="잘못된 설정"):
            SeoMCPServer(make_config(transport="websocket"))

    def test_basic_server_has_no_cache(self):
        server = SeoMCPServer(make_config())

        assert not server.cache_enabled
        assert server.store is None
        assert server.cached_handlers == {}
        assert set(server.handlers) == set(UPSTREAM_TOOLS)
        assert server.resolve_handler("backlinks_summary") is server.handlers["backlinks_summary"]

    def test_cached_server_wraps_cacheable_tools(self, database_url):
        server = SeoMCPServer(make_config(ServerProfile.CACHED, database_url))

        assert server.cache_enabled
        for name in UPSTREAM_TOOLS:
            wrapped = server.resolve_handler(name)
            if name in CACHE_ROUTES:
                assert wrapped is not server.handlers[name]
            else:
                assert wrapped is server.handlers[name]

    def test_middlewares_follow_features(self):
        config = make_config()
        config.features["enhanced_logging"] = True

        server = SeoMCPServer(config)

        assert [type(m).__name__ for m in server.middlewares] == [
            "ErrorHandlerMiddleware",
            "ToolCallLoggingMiddleware",
        ]


@pytest.mark.asyncio
class TestServerRuntime:
    """Test startup, degradation and upstream calls."""

    async def test_store_failure_disables_cache(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'cache.db'}"
        server = SeoMCPServer(make_config(ServerProfile.CACHED, url))

        await server.startup()
        try:
            assert not server.cache_enabled
            name = "kw_data_google_ads_search_volume"
            assert server.resolve_handler(name) is server.handlers[name]
            assert await server.cache_tools.cache_stats() == "Error: cache is not available"
        finally:
            await server.cleanup()

    async def test_call_upstream_strips_none_values(self):
        server = SeoMCPServer(make_config())
        handler = AsyncMock(return_value=success_envelope([]))
        server.handlers["backlinks_summary"] = handler

        await server.call_upstream("backlinks_summary", {"target": "example.com", "extra": None})

        handler.assert_awaited_once_with({"target": "example.com"})

    async def test_upstream_error_becomes_tool_error(self):
        server = SeoMCPServer(make_config())
        server.handlers["backlinks_summary"] = AsyncMock(side_effect=UpstreamError("HTTP 500"))

        with pytest.raises(ToolError, match="backlinks_summary"):
            await server.call_upstream("backlinks_summary", {"target": "example.com"})

    async def test_invalid_params_become_tool_error(self):
        server = SeoMCPServer(make_config())

        with pytest.raises(ToolError, match="매개변수 오류"):
            await server.call_upstream("kw_data_google_ads_search_volume", {"keywords": []})

    async def test_health_status(self, database_url):
        server = SeoMCPServer(make_config(ServerProfile.CACHED, database_url))
        await server.startup()
        try:
            health = await server.health_status()
        finally:
            await server.cleanup()

        assert health["status"] == "healthy"
        assert health["profile"] == "cached"
        assert health["cache"]["enabled"] is True
        assert health["cache"]["store"]["healthy"] is True
        assert health["upstream"]["healthy"] is True


@pytest.mark.asyncio
class TestFastMCPServer:
    """Test the assembled FastMCP server through an in-memory client."""

    async def test_basic_server_lists_upstream_tools_only(self):
        mcp = SeoMCPServer(make_config()).create_server()

        async with Client(mcp) as client:
            tools = {tool.name for tool in await client.list_tools()}

        assert tools == set(UPSTREAM_TOOLS)

    async def test_cached_server_lists_cache_tools(self, database_url):
        mcp = SeoMCPServer(make_config(ServerProfile.CACHED, database_url)).create_server()

        async with Client(mcp) as client:
            tools = {tool.name for tool in await client.list_tools()}
            result = await client.call_tool("cache_stats", {})

        assert tools == set(UPSTREAM_TOOLS) | CACHE_TOOLS
        assert json.loads(result.content[0].text)["total_keywords"] == 0

    async def test_cache_search_rejects_unknown_filter_values(self, database_url):
        mcp = SeoMCPServer(make_config(ServerProfile.CACHED, database_url)).create_server()

        async with Client(mcp) as client:
            with pytest.raises(ToolError):
                await client.call_tool("cache_search", {"competition": "high"})
            with pytest.raises(ToolError):
                await client.call_tool("cache_search", {"sort_order": "up"})

    async def test_cached_tool_call_goes_through_cache(self, database_url):
        seo_server = SeoMCPServer(make_config(ServerProfile.CACHED, database_url))
        mcp = seo_server.create_server()
        upstream = {
            "status_code": 20000,
            "tasks": [
                {
                    "status_code": 20000,
                    "result": [{"keyword": "seo tools", "search_volume": 1200}],
                }
            ],
        }

        with patch.object(seo_server.client, "post", AsyncMock(return_value=upstream)) as post:
            async with Client(mcp) as client:
                await client.call_tool(
                    "kw_data_google_ads_search_volume", {"keywords": ["seo tools"]}
                )
                await client.call_tool(
                    "kw_data_google_ads_search_volume", {"keywords": ["seo tools"]}
                )

        assert post.await_count == 1
        assert seo_server.metrics.hits == 1

    async def test_missing_credentials_surface_as_tool_error(self):
        config = make_config()
        config.upstream_config = UpstreamConfig()
        mcp = SeoMCPServer(config).create_server()

        async with Client(mcp) as client:
            with pytest.raises(ToolError, match="credentials are not configured"):
                await client.call_tool("backlinks_summary", {"target": "example.com"})


class TestHttpApp:
    """Test the HTTP app wrapped by shared secret authentication."""

    def make_app(self):
        config = make_config(ServerProfile.COMPLETE, transport="http")
        config.features["auth"] = True
        config.auth_config = AuthConfig(shared_secret="0123456789abcdef")
        seo_server = SeoMCPServer(config)
        return seo_server.create_http_app(seo_server.create_server())

    def test_wrong_token_is_forbidden(self):
        response = TestClient(self.make_app()).post("/mcp/wrong-token", json={})
        assert response.status_code == 403

    def test_unknown_path_is_not_found(self):
        response = TestClient(self.make_app()).get("/admin")
        assert response.status_code == 404

    def test_health_is_public(self):
        response = TestClient(self.make_app()).get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "dataforseo-mcp"
