"""
Tests for cache key derivation and query normalization.
"""

import pytest
from datetime import date
from fnmatch import fnmatchcase

from socialpulse.aggregation.query import Period, Platform, QuerySpec
from socialpulse.cache.keys import build_key, client_pattern, with_namespace
from socialpulse.errors import InvalidQuery


# =============================================================================
# BUILD KEY TESTS
# =============================================================================

class TestBuildKey:
    """Test the key builder."""

    def test_parameter_order_does_not_matter(self):
        a = build_key("daily_agg", {"platform": "tiktok", "period": "7days"}, scope="1")
        b = build_key("daily_agg", {"period": "7days", "platform": "tiktok"}, scope="1")
        assert a == b

    def test_key_layout(self):
        key = build_key("daily_agg", {"platform": "tiktok", "period": "7days"}, scope="1")
        assert key == "daily_agg:1:period=7days:platform=tiktok"

    def test_absent_parameters_omitted(self):
        """None, empty strings and empty lists are left out entirely."""
        key = build_key(
            "top_posts",
            {"platform": "instagram", "start_date": None, "end_date": "", "filters": []},
            scope="1",
        )
        assert key == "top_posts:1:platform=instagram"

    def test_list_values_sorted(self):
        a = build_key("daily_agg", {"filters": ["b", "a"]}, scope="1")
        b = build_key("daily_agg", {"filters": ("a", "b")}, scope="1")
        assert a == b == "daily_agg:1:filters=a,b"

    def test_enum_and_date_values(self):
        key = build_key(
            "daily_agg",
            {"platform": Platform.TIKTOK, "start_date": date(2025, 1, 1)},
        )
        assert key == "daily_agg:platform=tiktok:start_date=2025-01-01"

    def test_client_pattern(self):
        assert client_pattern("daily_agg", 1) == "daily_agg:1:*"

    def test_namespace(self):
        assert with_namespace("", "daily_agg:1:x") == "daily_agg:1:x"
        assert with_namespace("staging", "daily_agg:1:x") == "staging:daily_agg:1:x"


class TestStoredKeys:
    """Keys written by the read path match the invalidation patterns."""

    @pytest.mark.parametrize("prefix", ["daily_agg", "top_posts"])
    def test_scoped_by_client(self, prefix):
        key = QuerySpec(client_id="2", platform="tiktok", period="today").cache_key(prefix)
        assert key == f"{prefix}:2:period=today:platform=tiktok"
        assert fnmatchcase(key, client_pattern(prefix, "2"))
        assert not fnmatchcase(key, client_pattern(prefix, "20"))

    def test_platform_segment_matches_sync_pattern(self):
        key = QuerySpec(client_id="1", platform="all", period="7days", filters=["amy"]).cache_key("daily_agg")
        assert fnmatchcase(key, "daily_agg:1:*platform=all*")


# =============================================================================
# QUERY SPEC TESTS
# =============================================================================

class TestQuerySpec:
    """Test QuerySpec normalization."""

    def test_identical_specs_same_key(self):
        a = QuerySpec(client_id="1", platform="tiktok", period="7days", filters=["b", "a"])
        b = QuerySpec(filters=("a", "b", "a"), period=Period.SEVEN_DAYS, platform=Platform.TIKTOK, client_id=" 1 ")
        assert a == b
        assert a.cache_key("daily_agg") == b.cache_key("daily_agg")
        assert a.slice_period == b.slice_period

    def test_empty_filters_same_as_none(self):
        a = QuerySpec(client_id="1", platform="tiktok", period="7days")
        b = QuerySpec(client_id="1", platform="tiktok", period="7days", filters=[])
        c = QuerySpec(client_id="1", platform="tiktok", period="7days", filters=" , ")
        assert a.cache_key("daily_agg") == b.cache_key("daily_agg") == c.cache_key("daily_agg")
        assert not c.has_filters

    def test_comma_separated_filters(self):
        spec = QuerySpec(client_id="1", platform="tiktok", filters="zed, amy")
        assert spec.filters == ("amy", "zed")

    def test_filtered_and_unfiltered_keys_differ(self):
        a = QuerySpec(client_id="1", platform="tiktok", period="7days")
        b = QuerySpec(client_id="1", platform="tiktok", period="7days", filters=["amy"])
        assert a.cache_key("daily_agg") != b.cache_key("daily_agg")

    def test_custom_range_key(self):
        spec = QuerySpec(
            client_id="1",
            platform="instagram",
            period="custom_range",
            start_date="2025-01-01",
            end_date="2025-01-03",
        )
        assert spec.cache_key("daily_agg") == (
            "daily_agg:1:end_date=2025-01-03:period=custom_range:"
            "platform=instagram:start_date=2025-01-01"
        )

    def test_custom_range_requires_dates(self):
        with pytest.raises(InvalidQuery):
            QuerySpec(client_id="1", platform="tiktok", period="custom_range", start_date="2025-01-01")

    def test_custom_range_start_after_end(self):
        with pytest.raises(InvalidQuery):
            QuerySpec(
                client_id="1",
                platform="tiktok",
                period="custom_range",
                start_date="2025-01-05",
                end_date="2025-01-01",
            )

    def test_dates_only_with_custom_range(self):
        with pytest.raises(InvalidQuery):
            QuerySpec(client_id="1", platform="tiktok", period="7days", start_date="2025-01-01")

    def test_invalid_values(self):
        with pytest.raises(InvalidQuery):
            QuerySpec(client_id="", platform="tiktok")
        with pytest.raises(InvalidQuery):
            QuerySpec(client_id="1", platform="myspace")
        with pytest.raises(InvalidQuery):
            QuerySpec(client_id="1", platform="tiktok", period="fortnight")
        with pytest.raises(InvalidQuery):
            QuerySpec(
                client_id="1",
                platform="tiktok",
                period="custom_range",
                start_date="01/01/2025",
                end_date="2025-01-03",
            )

    def test_invalid_query_is_value_error(self):
        with pytest.raises(ValueError):
            QuerySpec(client_id="1", platform="myspace")
