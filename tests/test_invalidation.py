"""
Tests for pattern and event driven cache invalidation.
"""

import pytest

from socialpulse.aggregation.query import QuerySpec
from socialpulse.cache.invalidation import (
    ALL_PREFIXES,
    CacheEvent,
    CacheInvalidator,
    INVALIDATION_PATTERNS,
    invalidate_on_data_sync,
)
from socialpulse.cache.keys import build_key


def _daily_key(client_id, platform):
    return QuerySpec(
        client_id=client_id,
        platform=platform,
        period="custom_range",
        start_date="2025-01-01",
        end_date="2025-01-07",
    ).cache_key("daily_agg")


def _top_posts_key(client_id, platform):
    return QuerySpec(client_id=client_id, platform=platform, period="7days").cache_key("top_posts")


TODAY_POSTS_KEY = build_key("today_posts", {"period": "today"}, scope="1")
ACCOUNTS_KEY = build_key("accounts", {"platform": "all"}, scope="1")


async def _populate(cache):
    keys = [
        _daily_key("1", "tiktok"),
        _daily_key("1", "instagram"),
        _top_posts_key("1", "tiktok"),
        TODAY_POSTS_KEY,
        ACCOUNTS_KEY,
        _daily_key("2", "tiktok"),
        _daily_key("10", "tiktok"),
        _top_posts_key("10", "tiktok"),
    ]
    for key in keys:
        await cache.set(key, [{"views": 1}])
    return keys


# =============================================================================
# PATTERN INVALIDATION
# =============================================================================

@pytest.mark.asyncio
class TestInvalidate:
    """Direct glob-pattern invalidation."""

    async def test_client_pattern_is_exact(self, cache):
        await _populate(cache)
        invalidator = CacheInvalidator(cache)

        count = await invalidator.invalidate("daily_agg:1:*")

        assert count == 2
        remaining = cache.keys()
        assert not [k for k in remaining if k.startswith("daily_agg:1:")]
        assert any(k.startswith("daily_agg:2:") for k in remaining)
        assert any(k.startswith("daily_agg:10:") for k in remaining)

    async def test_idempotent(self, cache):
        await _populate(cache)
        invalidator = CacheInvalidator(cache)

        assert await invalidator.invalidate("top_posts:*") == 2
        assert await invalidator.invalidate("top_posts:*") == 0

    async def test_unmatched_pattern(self, cache):
        assert await CacheInvalidator(cache).invalidate("weekly_stats:*") == 0

    async def test_empty_pattern_rejected(self, cache):
        with pytest.raises(ValueError):
            await CacheInvalidator(cache).invalidate("")

    async def test_documented_patterns_are_valid(self, cache):
        await _populate(cache)
        invalidator = CacheInvalidator(cache)

        total = await invalidator.invalidate_many(INVALIDATION_PATTERNS)

        assert total == 8
        assert cache.keys() == []


# =============================================================================
# EVENT INVALIDATION
# =============================================================================

class TestPatternsForEvent:
    """Events translate into the narrowest patterns."""

    def test_data_synced_for_client(self, cache):
        patterns = CacheInvalidator(cache).patterns_for_event(CacheEvent.DATA_SYNCED, client_id="1")
        assert patterns == [
            "daily_agg:1:*", "top_posts:1:*", "today_posts:1:*", "weekly_stats:1:*",
        ]

    def test_data_synced_for_platform(self, cache):
        patterns = CacheInvalidator(cache).patterns_for_event(
            CacheEvent.DATA_SYNCED, client_id="1", platform="tiktok"
        )
        assert "daily_agg:1:*platform=tiktok*" in patterns
        assert "daily_agg:1:*platform=all*" in patterns
        assert "top_posts:1:*platform=all*" in patterns
        assert "today_posts:1:*" in patterns

    def test_data_synced_for_all_platforms_not_duplicated(self, cache):
        patterns = CacheInvalidator(cache).patterns_for_event(
            CacheEvent.DATA_SYNCED, client_id="1", platform="all"
        )
        assert patterns == [
            "daily_agg:1:*platform=all*",
            "top_posts:1:*platform=all*",
            "weekly_stats:1:*platform=all*",
            "today_posts:1:*",
        ]

    def test_accounts_changed(self, cache):
        invalidator = CacheInvalidator(cache)
        assert invalidator.patterns_for_event(CacheEvent.ACCOUNTS_CHANGED, client_id="3") == ["accounts:3:*"]
        assert invalidator.patterns_for_event(CacheEvent.ACCOUNTS_CHANGED) == ["accounts:*"]

    def test_views_refreshed_deduplicates(self, cache):
        patterns = CacheInvalidator(cache).patterns_for_event(
            CacheEvent.VIEWS_REFRESHED,
            targets=["mv_tiktok_top_posts", "mv_instagram_top_posts", "unknown_view"],
        )
        assert patterns == ["top_posts:*", "today_posts:*"]

    def test_manual_client_requires_client(self, cache):
        invalidator = CacheInvalidator(cache)
        assert invalidator.patterns_for_event(CacheEvent.MANUAL_INVALIDATE_CLIENT) == []
        assert len(invalidator.patterns_for_event(CacheEvent.MANUAL_INVALIDATE_CLIENT, client_id="1")) == len(ALL_PREFIXES)


@pytest.mark.asyncio
class TestHandleEvent:
    """Event handling end to end."""

    async def test_data_sync_for_one_platform(self, cache):
        await _populate(cache)
        await cache.set(_daily_key("1", "all"), [{"views": 2}])
        await cache.set(_top_posts_key("1", "all"), [{"views": 2}])

        result = await invalidate_on_data_sync(CacheInvalidator(cache), "1", platform="tiktok")

        assert result.success is True
        assert result.event == CacheEvent.DATA_SYNCED
        # tiktok and all-platform daily + top posts, and today's posts
        assert result.keys_invalidated == 5
        remaining = cache.keys()
        assert _daily_key("1", "all") not in remaining
        assert _top_posts_key("1", "all") not in remaining
        assert _daily_key("1", "instagram") in remaining
        assert _daily_key("2", "tiktok") in remaining
        assert ACCOUNTS_KEY in remaining

    async def test_manual_invalidate_all(self, cache):
        await _populate(cache)

        result = await CacheInvalidator(cache).handle_event(CacheEvent.MANUAL_INVALIDATE_ALL)

        assert result.keys_invalidated == 8
        assert cache.keys() == []

    async def test_errors_collected_per_pattern(self, cache):
        class FlakyCache(type(cache)):
            async def delete_pattern(self, pattern):
                if pattern.startswith("top_posts"):
                    raise RuntimeError("connection reset")
                return await super().delete_pattern(pattern)

        flaky = FlakyCache()
        await _populate(flaky)

        result = await CacheInvalidator(flaky).handle_event(CacheEvent.MANUAL_INVALIDATE_CLIENT, client_id="1")

        assert result.success is False
        assert result.errors == ["top_posts:1:*: connection reset"]
        assert result.keys_invalidated == 4
