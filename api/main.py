"""
SocialPulse API

FastAPI application serving cached dashboard aggregates plus cache
and refresh management endpoints.
"""

import logging
import sys
from datetime import datetime

from fastapi import FastAPI

from api.analytics import router as analytics_router
from api.cache import refresh_router, router as cache_router
from socialpulse import __version__
from socialpulse.database import check_db_connection, init_db
from socialpulse.service import close_analytics_service, get_analytics_service
from socialpulse.settings import get_settings

settings = get_settings()

# Configure logging to stdout
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="SocialPulse Analytics",
    description="Social media performance aggregates with cached, staleness-aware reads",
    version=__version__,
)

app.include_router(analytics_router)
app.include_router(cache_router)
app.include_router(refresh_router)


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize database and, if enabled, the refresh scheduler."""
    logger.info("Initializing database...")
    try:
        init_db()
        if check_db_connection():
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    service = await get_analytics_service()
    if settings.REFRESH_SCHEDULER_ENABLED:
        await service.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    await close_analytics_service()


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "SocialPulse Analytics"}


@app.get("/api/health")
async def health():
    """Detailed health check including database status."""
    db_connected = check_db_connection()

    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "database": "connected" if db_connected else "disconnected",
    }


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development",
    )
