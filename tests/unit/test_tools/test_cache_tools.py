"""Unit tests for cache query tools."""

import json
from unittest.mock import patch

import pytest
import pytest_asyncio

from dataforseo_mcp.tools import CacheQueryTools


@pytest_asyncio.fixture
async def tools(cache_service):
    await cache_service.upsert_keyword_batch(
        [
            {"kw": "seo tools", "vol": 1200, "cpc": 3.5, "comp": "HIGH"},
            {"kw": "seo audit", "vol": 300, "comp": "LOW"},
            {"kw": "backlink checker", "vol": 800},
        ],
        "US",
        "en",
        "google_ads",
    )
    await cache_service.upsert_ranking_batch(
        [{"kw": "seo tools", "pos": 4, "url": "https://example.com/tools"}],
        "example.com",
        "US",
        "en",
    )
    return CacheQueryTools(cache_service)


@pytest.mark.asyncio
class TestCacheQueryTools:
    """Test JSON text outputs of the cache tools."""

    async def test_cache_search_returns_json(self, tools):
        result = json.loads(await tools.cache_search(keyword_like="seo"))

        assert result["count"] == 2
        assert [item["kw"] for item in result["items"]] == ["seo tools", "seo audit"]

    async def test_cache_search_by_domain_returns_rankings(self, tools):
        result = json.loads(await tools.cache_search(domain="example.com"))

        assert result == {
            "count": 1,
            "items": [
                {"kw": "seo tools", "vol": 1200, "pos": 4, "url": "https://example.com/tools"}
            ],
        }

    async def test_cache_search_rejects_unknown_competition(self, tools):
        result = await tools.cache_search(competition="high")

        assert result.startswith("Error: ")
        assert "competition" in result

    async def test_cache_stats(self, tools):
        stats = json.loads(await tools.cache_stats())

        assert stats["total_keywords"] == 3
        assert stats["rankings_stored"] == 1
        assert stats["locations"] == ["US"]

    async def test_cache_export_json(self, tools):
        exported = json.loads(await tools.cache_export(min_volume=500))

        assert [row["keyword"] for row in exported] == ["seo tools", "backlink checker"]
        assert exported[0]["fetched_at"] == "2025-03-15T12:00:00"

    async def test_cache_export_csv(self, tools):
        exported = await tools.cache_export(format="csv", keyword_like="audit")

        lines = exported.splitlines()
        assert lines[0].startswith("keyword,search_volume,cpc")
        assert lines[1] == "seo audit,300,,LOW,,,US,en,2025-03-15T12:00:00"

    async def test_cache_export_unsupported_format(self, tools):
        result = await tools.cache_export(format="xml")
        assert result.startswith("Error: Unsupported format: xml")

    async def test_cache_clear(self, tools):
        result = json.loads(await tools.cache_clear(keyword_like="seo"))

        assert result == {"deleted": 2}
        remaining = json.loads(await tools.cache_search())
        assert [item["kw"] for item in remaining["items"]] == ["backlink checker"]

    async def test_cache_clear_invalid_table(self, tools):
        result = await tools.cache_clear(table="users")

        assert result.startswith("Error: Invalid table: users")
        assert json.loads(await tools.cache_stats())["total_keywords"] == 3


@pytest.mark.asyncio
class TestCacheQueryToolsWithoutCache:
    """Test the tools when no cache service is available."""

    async def test_every_tool_reports_unavailable(self):
        tools = CacheQueryTools(None)

        for result in (
            await tools.cache_search(),
            await tools.cache_stats(),
            await tools.cache_export(),
            await tools.cache_clear(),
        ):
            assert result == "Error: cache is not available"

    async def test_unavailable_cache_is_logged_as_service_error(self):
        with patch("dataforseo_mcp.tools.cache_tools.logger") as mock_logger:
            await CacheQueryTools(None).cache_stats()

        kwargs = mock_logger.warning.call_args.kwargs
        assert kwargs["tool"] == "cache_stats"
        assert kwargs["error_type"] == "ServiceUnavailableError"
