"""
Pytest Configuration and Shared Fixtures

Provides fake collaborators (precomputed store, raw source, clocks) and
ready-wired orchestrators for all test modules.
"""

import pytest

from socialpulse.aggregation.config import AggregationConfig
from socialpulse.aggregation.definitions import DAILY_TOTALS, TOP_POSTS
from socialpulse.aggregation.fallback import FallbackAggregator
from socialpulse.aggregation.orchestrator import ReadOrchestrator
from socialpulse.aggregation.reader import AggregateReader
from socialpulse.cache.config import RefreshConfig
from socialpulse.cache.memory_cache import MemoryCache

from tests.fakes import FIXED_NOW, NEW_YORK, FakeClock, FakeStore


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def aggregation_config() -> AggregationConfig:
    return AggregationConfig(
        app_timezone="America/New_York",
        cache_timeout=0.5,
        precomputed_timeout=0.5,
        fallback_timeout=0.5,
        top_posts_limit=10,
    )


@pytest.fixture
def refresh_config() -> RefreshConfig:
    return RefreshConfig(
        targets=["mv_tiktok_daily_totals", "mv_tiktok_top_posts", "account_health"],
        concurrent=False,
        rebuild_timeout=0.5,
        interval_seconds=60,
        rebuild_function="refresh_materialized_view",
    )


@pytest.fixture
def make_orchestrator(cache, aggregation_config):
    """Build an orchestrator for a definition over a given store."""
    def _make(definition, store, cache_store=None):
        return ReadOrchestrator(
            definition,
            cache_store if cache_store is not None else cache,
            AggregateReader(store, timeout=aggregation_config.precomputed_timeout),
            FallbackAggregator(
                store,
                definition,
                NEW_YORK,
                clock=lambda: FIXED_NOW,
                timeout=aggregation_config.fallback_timeout,
            ),
            config=aggregation_config,
        )
    return _make


@pytest.fixture
def daily_orchestrator(make_orchestrator, store):
    return make_orchestrator(DAILY_TOTALS, store)


@pytest.fixture
def top_posts_orchestrator(make_orchestrator, store):
    return make_orchestrator(TOP_POSTS, store)


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
