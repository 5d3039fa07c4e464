#!/usr/bin/env python3
"""
Refresh Precomputed Aggregates

Runs one refresh pass over the precomputed views and, unless told
otherwise, evicts the cached aggregates those views feed.

Usage:
    # Uses DATABASE_URL / REDIS_URL from the environment or .env
    python scripts/refresh_aggregates.py

    # Only some targets, no cache eviction:
    python scripts/refresh_aggregates.py \
        --targets mv_tiktok_daily_totals,mv_instagram_daily_totals \
        --no-invalidate

    # Evict one client's cache without refreshing:
    python scripts/refresh_aggregates.py --invalidate-only "daily_agg:1:*"
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def run_refresh(
    targets: str = None,
    invalidate: bool = True,
    concurrent: bool = False,
    invalidate_only: str = None,
) -> dict:
    """Run one refresh pass (or a bare invalidation) and return the report."""
    load_dotenv()

    from socialpulse.cache.config import RefreshConfig
    from socialpulse.database import init_db
    from socialpulse.service import build_cache_store, build_sql_service

    refresh_config = RefreshConfig()
    if targets:
        refresh_config.targets = [t.strip() for t in targets.split(",") if t.strip()]
    if concurrent:
        refresh_config.concurrent = True

    init_db()
    cache = await build_cache_store()
    service = build_sql_service(cache, refresh_config=refresh_config)

    try:
        if invalidate_only:
            count = await service.invalidate(invalidate_only)
            return {"pattern": invalidate_only, "keys_invalidated": count}

        report = await service.refresh_all(invalidate=invalidate)
        return report.as_dict()
    finally:
        close = getattr(cache, "close", None)
        if close is not None:
            await close()


def print_report(result: dict):
    if "targets" not in result:
        print(f"Invalidated {result['keys_invalidated']} keys matching {result['pattern']}")
        return

    print("\n" + "=" * 60)
    print("REFRESH RESULTS" + (" (SIMULATED)" if result["simulated"] else ""))
    print("=" * 60)
    for target in result["targets"]:
        print(f"  {target['name']:<32} {target['status']:<10} {target['message'] or ''}")
    print("-" * 60)
    print(f"  Overall success: {result['overall_success']}")
    print(f"  Duration: {result['duration_ms']:.0f}ms")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Refresh precomputed aggregate views and evict stale cache entries"
    )
    parser.add_argument(
        "--targets",
        default=None,
        help="Comma separated targets (default: REFRESH_TARGETS or all views)"
    )
    parser.add_argument(
        "--no-invalidate",
        action="store_true",
        help="Do not evict cache entries after refreshing"
    )
    parser.add_argument(
        "--concurrent",
        action="store_true",
        help="Rebuild targets concurrently"
    )
    parser.add_argument(
        "--invalidate-only",
        default=None,
        metavar="PATTERN",
        help="Skip the refresh and only evict keys matching PATTERN"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the raw JSON report"
    )

    args = parser.parse_args()

    result = asyncio.run(run_refresh(
        targets=args.targets,
        invalidate=not args.no_invalidate,
        concurrent=args.concurrent,
        invalidate_only=args.invalidate_only,
    ))

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print_report(result)

    if result.get("overall_success") is False:
        sys.exit(1)


if __name__ == "__main__":
    main()
