"""Unit tests for DataForSEO response parsers."""

from dataforseo_mcp.upstream.parsers import (
    PARSERS,
    format_monthly,
    parse_backlinks_backlinks,
    parse_backlinks_summary,
    parse_competitors_domain,
    parse_domain_rank_overview,
    parse_keyword_suggestions,
    parse_lighthouse,
    parse_on_page,
    parse_ranked_keywords,
    parse_response,
    parse_search_volume,
    parse_serp_organic,
)
from dataforseo_mcp.upstream.tools import UPSTREAM_TOOLS


class TestFormatMonthly:
    def test_year_month_objects(self):
        raw = [
            {"year": 2025, "month": 1, "search_volume": 200},
            {"year": 2025, "month": 3, "search_volume": 300},
            {"year": 2025, "month": 2, "search_volume": None},
        ]
        assert format_monthly(raw) == [300, 0, 200]

    def test_year_month_map(self):
        assert format_monthly({"2025-01": 1, "2025-03": 3, "2025-02": 2}) == [3, 2, 1]

    def test_empty(self):
        assert format_monthly(None) is None
        assert format_monthly([]) is None
        assert format_monthly("2025-01") is None


class TestSearchVolumeParser:
    def test_full_item(self):
        item = {
            "keyword": "seo tools",
            "search_volume": 1200,
            "cpc": 4.2,
            "competition": "HIGH",
            "monthly_searches": [{"year": 2025, "month": 2, "search_volume": 1100}],
        }

        assert parse_search_volume(item, {}) == {
            "kw": "seo tools",
            "vol": 1200,
            "cpc": 4.2,
            "comp": "HIGH",
            "monthly": [1100],
        }

    def test_no_volume_is_minimal(self):
        item = {"keyword": "zzz", "search_volume": None, "cpc": 1.0}
        assert parse_search_volume(item, {}) == {"kw": "zzz", "vol": 0}

    def test_empty_item_is_dropped(self):
        assert parse_search_volume({}, {}) is None


class TestKeywordSuggestionsParser:
    def test_labs_item(self):
        item = {
            "keyword": "seo tools free",
            "keyword_info": {"search_volume": 90, "cpc": 1.5, "competition_level": "LOW"},
            "keyword_properties": {"keyword_difficulty": 22},
            "search_intent_info": {"main_intent": "commercial"},
        }

        assert parse_keyword_suggestions(item, {}) == {
            "kw": "seo tools free",
            "vol": 90,
            "cpc": 1.5,
            "comp": "LOW",
            "intent": "commercial",
            "kd": 22,
        }

    def test_related_keywords_nesting(self):
        item = {"keyword_data": {"keyword": "nested", "keyword_info": {"search_volume": 5}}}
        assert parse_keyword_suggestions(item, {}) == {"kw": "nested", "vol": 5}

    def test_empty_metrics_short_circuit(self):
        item = {
            "keyword": "rare",
            "keyword_info": {},
            "keyword_properties": {"keyword_difficulty": 80},
        }
        assert parse_keyword_suggestions(item, {}) == {"kw": "rare", "vol": 0}


class TestRankedKeywordsParser:
    def test_ranked_item(self):
        item = {
            "keyword_data": {
                "keyword": "seo",
                "keyword_info": {"search_volume": 500, "competition_level": "HIGH"},
            },
            "ranked_serp_element": {
                "serp_item": {
                    "rank_group": 3,
                    "type": "organic",
                    "url": "https://example.com/seo",
                    "etv": 41.2,
                }
            },
        }

        assert parse_ranked_keywords(item, {}) == {
            "kw": "seo",
            "vol": 500,
            "comp": "HIGH",
            "pos": 3,
            "type": "organic",
            "url": "https://example.com/seo",
            "etv": 41.2,
        }


class TestDomainRankOverviewParser:
    def test_falls_back_to_request_target(self):
        item = {"metrics": {"organic": {"count": 120, "etv": 3400.5, "pos_1": 4, "is_new": None}}}

        assert parse_domain_rank_overview(item, {"target": "example.com"}) == {
            "target": "example.com",
            "organic": {"count": 120, "etv": 3400.5, "pos_1": 4},
            "paid": {"count": 0, "etv": 0},
        }

    def test_item_target_wins(self):
        result = parse_domain_rank_overview({"target": "a.com", "metrics": {}}, {"target": "b.com"})
        assert result["target"] == "a.com"
        assert "organic" not in result


class TestSerpAndBacklinks:
    def test_serp_item(self):
        item = {
            "rank_group": 1,
            "type": "organic",
            "url": "https://a.com",
            "title": "A",
            "description": "About A",
            "domain": "a.com",
            "xpath": "/html/body",
        }

        assert parse_serp_organic(item, {}) == {
            "pos": 1,
            "type": "organic",
            "url": "https://a.com",
            "title": "A",
            "desc": "About A",
            "domain": "a.com",
        }

    def test_backlinks_summary(self):
        item = {"backlinks": 1000, "referring_domains": 80, "rank": 310, "crawled_pages": 9}

        assert parse_backlinks_summary(item, {"target": "example.com"}) == {
            "target": "example.com",
            "backlinks": 1000,
            "ref_domains": 80,
            "rank": 310,
        }


    def test_backlinks_list_item(self):
        item = {
            "url_from": "https://blog.example.org/post",
            "url_to": "https://example.com/",
            "anchor": "",
            "dofollow": False,
            "rank": 0,
            "first_seen": "2025-01-02 10:00:00 +00:00",
            "is_lost": False,
            "page_from_title": "Post",
        }

        assert parse_backlinks_backlinks(item, {}) == {
            "url_from": "https://blog.example.org/post",
            "url_to": "https://example.com/",
            "first_seen": "2025-01-02 10:00:00 +00:00",
            "anchor": "",
            "dofollow": False,
            "rank": 0,
            "is_lost": False,
        }


class TestCompetitorsDomainParser:
    def test_competitor_item(self):
        item = {
            "domain": "rival.com",
            "avg_position": 12.4,
            "intersections": 310,
            "metrics": {
                "organic": {"count": 900, "etv": 1500.5, "pos_1": 3, "is_new": 4},
                "paid": {"count": 2},
            },
        }

        assert parse_competitors_domain(item, {}) == {
            "domain": "rival.com",
            "avg_pos": 12.4,
            "intersections": 310,
            "metrics": {"organic": {"count": 900, "etv": 1500.5, "pos_1": 3}},
        }

    def test_without_metrics(self):
        assert parse_competitors_domain({"domain": "rival.com"}, {}) == {"domain": "rival.com"}


class TestOnPageParsers:
    def test_on_page_removes_transport_noise(self):
        item = {
            "url": "https://example.com/",
            "status_code": 200,
            "size": 5120,
            "resource_errors": {"errors": []},
            "meta": {"title": "Example"},
            "onpage_score": 88.5,
        }

        assert parse_on_page(item, {}) == {
            "url": "https://example.com/",
            "meta": {"title": "Example"},
            "onpage_score": 88.5,
        }
        assert item["status_code"] == 200

    def test_lighthouse_scores_and_audits(self):
        item = {
            "url": "https://example.com/",
            "categories": {
                "performance": {"score": 0.125},
                "best-practices": {"score": 1},
                "seo": {"score": None},
            },
            "audits": {
                "viewport": {"score": 1, "title": "Has viewport"},
                "manual-check": {"score": None},
                "image-alt": {"score": 0, "title": "Images lack alt", "description": "d"},
                "lcp": {"score": 0.5, "title": "LCP", "displayValue": "3.1 s"},
                "diagnostics": {"details": {}},
            },
            "timing": {"total": 12000},
        }

        result = parse_lighthouse(item, {})

        assert result["url"] == "https://example.com/"
        assert result["scores"] == {"performance": 13, "best_practices": 100}
        assert result["audits_summary"] == {"passed": 2, "failed": 1, "warnings": 1}
        assert [audit["id"] for audit in result["failed_audits"]] == ["image-alt", "lcp"]
        assert result["failed_audits"][1]["displayValue"] == "3.1 s"
        assert "timing" not in result

    def test_lighthouse_all_passed_has_no_failed_list(self):
        result = parse_lighthouse({"audits": {"viewport": {"score": 1}}}, {})

        assert result == {"audits_summary": {"passed": 1, "failed": 0, "warnings": 0}}


class TestParseResponse:
    def test_every_tool_has_a_parser(self):
        assert set(PARSERS) == set(UPSTREAM_TOOLS)

    def test_drops_rejected_items(self):
        items = [{"keyword": "a", "search_volume": 3}, {}]
        assert parse_response("kw_data_google_ads_search_volume", items) == [{"kw": "a", "vol": 3}]

    def test_unknown_tool_passes_items_through(self):
        items = [{"anything": 1}]
        assert parse_response("unknown_tool", items) == items
