"""
Analytics API

Read endpoints for dashboard aggregates. Every request goes through the
same read policy (cache, precomputed view, fallback); the response does
not depend on which path answered.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from socialpulse.aggregation.query import QuerySpec
from socialpulse.errors import InvalidQuery, UpstreamError
from socialpulse.service import AnalyticsService, get_analytics_service


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Analytics"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class AggregateResponse(BaseModel):
    client_id: str
    platform: str
    period: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    count: int
    data: List[Dict[str, Any]]


# =============================================================================
# HELPERS
# =============================================================================

def _build_spec(
    client_id: str,
    platform: str,
    period: str,
    start_date: Optional[str],
    end_date: Optional[str],
    accounts: Optional[str],
) -> QuerySpec:
    try:
        return QuerySpec(
            client_id=client_id,
            platform=platform,
            period=period,
            start_date=start_date,
            end_date=end_date,
            filters=accounts,
        )
    except InvalidQuery as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _serve(service: AnalyticsService, aggregate: str, spec: QuerySpec) -> AggregateResponse:
    try:
        rows = await service.get_aggregate(aggregate, spec)
    except UpstreamError as e:
        logger.error(f"Failed to load {aggregate}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return AggregateResponse(
        client_id=spec.client_id,
        platform=spec.platform.value,
        period=spec.period.value,
        start_date=spec.start_date.isoformat() if spec.start_date else None,
        end_date=spec.end_date.isoformat() if spec.end_date else None,
        count=len(rows),
        data=rows,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/daily-agg", response_model=AggregateResponse)
async def get_daily_aggregates(
    client_id: str = Query(..., description="Client identifier"),
    platform: str = Query("all", description="tiktok, instagram, facebook, youtube or all"),
    period: str = Query("all", description="today, yesterday, 3days, 7days, month, all, custom_range"),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, custom_range only"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, custom_range only"),
    accounts: Optional[str] = Query(None, description="Comma separated usernames"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Daily totals (posts, accounts, views, engagement) ordered by day."""
    spec = _build_spec(client_id, platform, period, start_date, end_date, accounts)
    return await _serve(service, "daily_agg", spec)


@router.get("/top-posts", response_model=AggregateResponse)
async def get_top_posts(
    client_id: str = Query(..., description="Client identifier"),
    platform: str = Query("all", description="tiktok, instagram, facebook, youtube or all"),
    period: str = Query("7days", description="today, yesterday, 3days, 7days, month, all, custom_range"),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, custom_range only"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, custom_range only"),
    accounts: Optional[str] = Query(None, description="Comma separated usernames"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Top posts by views (ties broken by post id)."""
    spec = _build_spec(client_id, platform, period, start_date, end_date, accounts)
    return await _serve(service, "top_posts", spec)
