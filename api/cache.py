"""
Cache Management API

Endpoints for cache monitoring and manual operations:
- Health check for monitoring/alerting
- Manual invalidation (by pattern or by event)
- Refresh of the precomputed views, with per-target status
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from socialpulse.cache.invalidation import CacheEvent, INVALIDATION_PATTERNS
from socialpulse.service import AnalyticsService, get_analytics_service


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])
refresh_router = APIRouter(prefix="/api", tags=["Refresh"])


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class InvalidationRequest(BaseModel):
    """Either a glob pattern or an event (with its scope)."""
    pattern: Optional[str] = Field(default=None, description="Glob pattern, e.g. daily_agg:1:*")
    event: Optional[str] = Field(default=None, description="Invalidation event name")
    client_id: Optional[str] = None
    platform: Optional[str] = None


class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    keys_invalidated: int
    duration_ms: float
    patterns: List[str] = []
    errors: List[str] = []
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    backend: str
    details: Dict[str, Any] = {}
    aggregates: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RefreshTargetResponse(BaseModel):
    name: str
    status: str
    last_refreshed_at: Optional[str] = None
    message: Optional[str] = None
    duration_ms: float = 0.0


class RefreshResponse(BaseModel):
    """Outcome of a refresh pass (or current target status)."""
    success: bool
    simulated: bool = False
    message: str
    targets: List[RefreshTargetResponse]
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# CACHE ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(service: AnalyticsService = Depends(get_analytics_service)):
    """
    Check cache infrastructure health.

    An unhealthy cache is not an outage: reads fall through to the
    precomputed store.
    """
    health = await service.cache.health_check()
    stats = service.get_stats()

    return CacheHealthResponse(
        status="healthy" if health["healthy"] else "unhealthy",
        backend=health["backend"],
        details=health,
        aggregates=stats["aggregates"],
    )


@router.post("/invalidate", response_model=InvalidationResponse)
async def invalidate_cache(
    request: InvalidationRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Invalidate cache entries.

    Pass a pattern (e.g. "daily_agg:1:*") for direct eviction, or an
    event (data_synced, accounts_changed, manual_invalidate_client,
    manual_invalidate_all) to let the invalidator pick the patterns.
    """
    start = datetime.utcnow()

    if request.pattern:
        count = await service.invalidate(request.pattern)
        elapsed = (datetime.utcnow() - start).total_seconds() * 1000
        return InvalidationResponse(
            success=True,
            keys_invalidated=count,
            duration_ms=elapsed,
            patterns=[request.pattern],
        )

    if request.event:
        try:
            event = CacheEvent(request.event)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown event: {request.event}")

        result = await service.handle_event(
            event,
            client_id=request.client_id,
            platform=request.platform,
        )
        return InvalidationResponse(
            success=result.success,
            keys_invalidated=result.keys_invalidated,
            duration_ms=result.duration_ms,
            patterns=result.patterns,
            errors=result.errors,
        )

    raise HTTPException(status_code=400, detail="Cache pattern or event is required")


@router.get("/invalidate")
async def list_invalidation_patterns():
    """Documented invalidation patterns and events."""
    return {
        "message": "Use POST with a pattern or event to invalidate cache entries",
        "patterns": [
            {"pattern": pattern, "description": description}
            for pattern, description in INVALIDATION_PATTERNS.items()
        ],
        "events": [event.value for event in CacheEvent],
    }


# =============================================================================
# REFRESH ENDPOINTS
# =============================================================================

def _target_responses(targets) -> List[RefreshTargetResponse]:
    return [RefreshTargetResponse(**t.as_dict()) for t in targets]


@refresh_router.post("/refresh-all", response_model=RefreshResponse)
async def refresh_all_views(
    invalidate: bool = Query(True, description="Evict cache entries fed by refreshed views"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Rebuild every precomputed view.

    Never fails as a whole: per-target errors are reported in the body,
    and a store without a rebuild function reports every target as
    simulated.
    """
    report = await service.refresh_all(invalidate=invalidate)

    if report.simulated:
        message = "Rebuild function unavailable, refresh simulated"
    elif report.overall_success:
        message = "All precomputed views refreshed"
    else:
        message = f"Refresh failed for: {', '.join(report.failed())}"

    return RefreshResponse(
        success=report.overall_success,
        simulated=report.simulated,
        message=message,
        targets=_target_responses(report.targets),
        duration_ms=report.duration_ms,
    )


@refresh_router.get("/refresh-all", response_model=RefreshResponse)
async def refresh_status(service: AnalyticsService = Depends(get_analytics_service)):
    """Latest known status of every refresh target."""
    targets = service.coordinator.targets()
    last = service.coordinator.last_report

    return RefreshResponse(
        success=last.overall_success if last else True,
        simulated=last.simulated if last else False,
        message="Last refresh status" if last else "No refresh has run yet",
        targets=_target_responses(targets),
        duration_ms=last.duration_ms if last else 0.0,
    )
