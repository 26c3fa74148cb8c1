"""Unit tests for monthly search volume series handling."""

import pytest

from dataforseo_mcp.cache.monthly import decode_monthly, encode_monthly, normalize_monthly


class TestNormalizeMonthly:
    """Test normalization to newest-first integer arrays."""

    def test_array_is_kept_in_order(self):
        assert normalize_monthly([300, 250, 200]) == [300, 250, 200]

    def test_year_month_map_is_sorted_newest_first(self):
        series = normalize_monthly({"2024-12": 100, "2025-02": 250, "2025-01": 200, "2025-03": 300})
        assert series == [300, 250, 200, 100]

    def test_api_objects_are_sorted_by_year_and_month(self):
        raw = [
            {"year": 2024, "month": 11, "search_volume": 90},
            {"year": 2025, "month": 1, "search_volume": 120},
            {"year": 2024, "month": 12, "search_volume": None},
        ]
        assert normalize_monthly(raw) == [120, 0, 90]

    def test_json_string_is_parsed(self):
        assert normalize_monthly("[5, 4]") == [5, 4]
        assert normalize_monthly('{"2025-01": 1, "2025-02": 2}') == [2, 1]

    @pytest.mark.parametrize("value", [None, [], {}, "not json", "42", 3.5])
    def test_unusable_values_become_none(self, value):
        assert normalize_monthly(value) is None

    def test_non_numeric_entries_become_none(self):
        assert normalize_monthly(["a", "b"]) is None


class TestEncodeDecode:
    """Test stored representation of the series."""

    def test_encode_empty_is_none(self):
        assert encode_monthly(None) is None
        assert encode_monthly([]) is None

    def test_encode_is_json_array(self):
        assert encode_monthly([3, 2, 1]) == "[3, 2, 1]"

    def test_decode_accepts_legacy_map(self):
        assert decode_monthly('{"2025-02": 20, "2025-03": 30}') == [30, 20]

    def test_decode_corrupt_value_is_none(self):
        assert decode_monthly("{broken") is None
        assert decode_monthly(None) is None
