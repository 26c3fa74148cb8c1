"""Unit tests for cache entity models."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from dataforseo_mcp.cache.models import (
    Competition,
    DomainItem,
    KeywordItem,
    KeywordRecord,
    RankingItem,
    SerpType,
)

FETCHED = datetime(2025, 3, 15, 12, 0, 0)
EXPIRES = FETCHED + timedelta(days=30)


class TestKeywordItem:
    """Test wire and API field mapping for keyword items."""

    def test_compact_wire_names(self):
        item = KeywordItem.model_validate(
            {"kw": "seo tools", "vol": 1200, "cpc": 3.1, "comp": "high", "kd": 45}
        )

        assert item.keyword == "seo tools"
        assert item.search_volume == 1200
        assert item.competition is Competition.HIGH
        assert item.keyword_difficulty == 45

    def test_api_names(self):
        item = KeywordItem.model_validate(
            {
                "keyword": "seo audit",
                "search_volume": 300,
                "competition": "LOW",
                "intent": "Commercial",
                "monthly_searches": {"2025-02": 250, "2025-03": 300},
            }
        )

        assert item.keyword == "seo audit"
        assert item.intent.value == "commercial"
        assert item.monthly == [300, 250]

    def test_empty_kw_falls_back_to_keyword(self):
        item = KeywordItem.model_validate({"kw": "", "keyword": "fallback"})
        assert item.keyword == "fallback"

    def test_missing_keyword_is_invalid(self):
        with pytest.raises(ValidationError):
            KeywordItem.model_validate({"vol": 10})

    def test_missing_volume_defaults_to_zero(self):
        assert KeywordItem.model_validate({"kw": "x", "vol": None}).search_volume == 0

    def test_unparseable_fields_are_coerced(self):
        item = KeywordItem.model_validate(
            {"kw": "x", "vol": 1200.5, "kd": 33.7, "cpc": "n/a", "monthly": "oops"}
        )

        assert item.search_volume == 1200
        assert item.keyword_difficulty == 34
        assert item.cpc is None
        assert item.monthly is None

    def test_negative_volume_is_clamped(self):
        assert KeywordItem.model_validate({"kw": "x", "vol": -3}).search_volume == 0

    def test_unknown_competition_is_dropped(self):
        item = KeywordItem.model_validate({"kw": "x", "comp": "EXTREME"})
        assert item.competition is None

    def test_to_row(self):
        item = KeywordItem.model_validate({"kw": "x", "vol": 5, "comp": "MEDIUM", "monthly": [5, 4]})

        row = item.to_row("US", "en", "google_ads", FETCHED, EXPIRES)

        assert row["competition"] == "MEDIUM"
        assert row["monthly_searches"] == "[5, 4]"
        assert row["source"] == "google_ads"
        assert row["expires_at"] - row["fetched_at"] == timedelta(days=30)

    def test_to_wire_omits_empty_fields(self):
        assert KeywordItem.model_validate({"kw": "x", "vol": 5}).to_wire() == {"kw": "x", "vol": 5}


class TestRankingItem:
    """Test ranking item mapping."""

    def test_position_and_type(self):
        item = RankingItem.model_validate(
            {"kw": "seo", "pos": 3, "type": "featured_snippet", "url": "https://a.com"}
        )

        assert item.position == 3
        assert item.serp_type is SerpType.FEATURED_SNIPPET

    def test_unknown_type_is_organic(self):
        item = RankingItem.model_validate({"kw": "seo", "pos": 1, "type": "carousel"})
        assert item.serp_type is SerpType.ORGANIC

    def test_to_ranking_row(self):
        item = RankingItem.model_validate({"kw": "seo", "pos": 4, "etv": 12.5})

        row = item.to_ranking_row("example.com", "US", "en", FETCHED, EXPIRES)

        assert row["domain"] == "example.com"
        assert row["position"] == 4
        assert row["serp_type"] == "organic"
        assert row["etv"] == 12.5

    def test_bad_ranking_fields_become_none(self):
        item = RankingItem.model_validate({"kw": "seo", "pos": 2.6, "url": 42, "etv": "high"})

        assert item.position == 3
        assert item.url is None
        assert item.etv is None


class TestDomainItem:
    """Test domain overview mapping."""

    def test_nested_parser_output(self):
        item = DomainItem.model_validate(
            {
                "target": "example.com",
                "organic": {"count": 120, "etv": 3400.5},
                "paid": {"count": 4, "etv": 10.0},
                "rank": 310,
                "ref_domains": 88,
            }
        )

        assert item.domain == "example.com"
        assert item.organic_keywords == 120
        assert item.paid_etv == 10.0
        assert item.domain_rank == 310
        assert item.referring_domains == 88

    def test_flat_storage_names(self):
        item = DomainItem.model_validate({"domain": "a.com", "organic_keywords": 7, "backlinks": 3})

        row = item.to_row("a.com", "US", "en", FETCHED, EXPIRES)

        assert row["organic_keywords"] == 7
        assert row["backlinks"] == 3
        assert row["paid_keywords"] is None

    def test_bad_metrics_become_none(self):
        item = DomainItem.model_validate(
            {"target": "a.com", "organic": "n/a", "backlinks": "many", "rank": 12.2}
        )

        assert item.organic_keywords is None
        assert item.backlinks is None
        assert item.domain_rank == 12


class TestKeywordRecord:
    """Test stored keyword rows."""

    def make_record(self, **overrides):
        row = {
            "keyword": "seo",
            "location": "US",
            "language": "en",
            "search_volume": 900,
            "cpc": None,
            "competition": "LOW",
            "intent": None,
            "keyword_difficulty": None,
            "monthly_searches": '{"2025-01": 1, "2025-02": 2}',
            "source": "google_ads",
            "fetched_at": FETCHED,
            "expires_at": EXPIRES,
        }
        row.update(overrides)
        return KeywordRecord.model_validate(row)

    def test_to_wire_decodes_legacy_monthly_map(self):
        assert self.make_record().to_wire() == {
            "kw": "seo",
            "vol": 900,
            "comp": "LOW",
            "monthly": [2, 1],
        }

    def test_is_live(self):
        record = self.make_record()

        assert record.is_live(FETCHED + timedelta(days=29))
        assert not record.is_live(EXPIRES)

    def test_corrupt_monthly_is_omitted(self):
        record = self.make_record(monthly_searches="garbage")
        assert "monthly" not in record.to_wire()
