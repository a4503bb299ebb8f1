"""
Prop Analytics API - FastAPI Backend

Data Sources:
  - Postgres: player_stats, games, teams, players (read-only game logs)
  - Postgres: rolling_splits (written by the rolling splits sync)

Endpoints:
  POST /api/analyze-prop                 - Hit rate of a player's stat against a line
  GET  /api/prop-types                   - Supported stat categories
  GET  /api/alt-lines                    - Hit rate and fair odds for a ladder of lines
  GET  /api/expected-value               - EV of a wager given a hit rate
  GET  /api/analytics/advanced           - Opponent trends / season comparison / advanced metrics
  POST /api/analytics/advanced           - Batch form of the above
  POST /api/cron/sync-rolling-splits     - Recompute rolling splits for all active players
  POST /api/rolling-splits/{player_id}   - Recompute and store rolling splits for one player
  GET  /api/rolling-splits/{player_id}   - Stored rolling splits for a player
  GET  /api/health                       - Database, cache and fallback status

Usage:
  cd webapp && uvicorn props_api.main:app --reload --port 8000

Debug Mode:
  DEBUG=true uvicorn props_api.main:app --reload --port 8000

Design Pattern: Modular Router Pattern
Algorithm: FastAPI router composition
Big O: O(1) for route registration
"""

import asyncio
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .cache import get_cache
from .db import close_pool
from .endpoints import analytics, health, props, rolling_splits
from .logging_config import setup_logging, DEBUG_MODE
from .service import get_service

# Create the rolling_splits table on startup (off by default; migrations own the schema)
ENSURE_SCHEMA = os.getenv("PROPS_API_ENSURE_SCHEMA", "false").lower() in ("true", "1", "yes")

# Seconds between stale-entry prunes of the process cache
CACHE_PRUNE_INTERVAL = 15 * 60

logger = setup_logging()

# =============================================================================
# App Setup
# =============================================================================

app = FastAPI(
    title="Prop Analytics API",
    description="Hit rates, rolling splits and advanced metrics for NBA player props",
    version="1.0.0",
)

if DEBUG_MODE:
    logger.info("=" * 60)
    logger.info("DEBUG MODE ENABLED - Verbose logging active")
    logger.info("=" * 60)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Log request/response timing for performance debugging.

    Design Pattern: Middleware Pattern
    Algorithm: Time measurement before and after request processing
    Big O: O(1) overhead per request
    """
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.debug(f"[TIMING] {request.method} {request.url.path} - START")

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"[TIMING] {request.method} {request.url.path} - ERROR "
                f"({duration:.3f}s) - {type(e).__name__}: {e}"
            )
            raise

        duration = time.time() - start_time
        status_code = response.status_code
        if duration > 1.0:
            logger.warning(
                f"[TIMING] {request.method} {request.url.path} - COMPLETE "
                f"({duration:.3f}s) - Status: {status_code} - SLOW REQUEST"
            )
        elif duration > 0.5:
            logger.info(
                f"[TIMING] {request.method} {request.url.path} - COMPLETE "
                f"({duration:.3f}s) - Status: {status_code}"
            )
        else:
            logger.debug(
                f"[TIMING] {request.method} {request.url.path} - COMPLETE "
                f"({duration:.3f}s) - Status: {status_code}"
            )
        return response


app.add_middleware(TimingMiddleware)

# Register API routers
app.include_router(props.router, prefix="/api", tags=["props"])
app.include_router(analytics.router, prefix="/api", tags=["analytics"])
app.include_router(rolling_splits.router, prefix="/api", tags=["rolling_splits"])
app.include_router(health.router, prefix="/api", tags=["health"])


# =============================================================================
# Startup / Shutdown
# =============================================================================

async def cache_prune_loop():
    """Background task that drops cache entries past their stale-retention window."""
    while True:
        await asyncio.sleep(CACHE_PRUNE_INTERVAL)
        try:
            get_cache().prune()
        except Exception as e:
            logger.error(f"[CACHE] Error in prune loop: {e}", exc_info=True)


_background_tasks: set[asyncio.Task] = set()


@app.on_event("startup")
async def startup_tasks():
    """Start the cache prune loop and, when enabled, create the rolling_splits table."""
    task = asyncio.create_task(cache_prune_loop())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    if ENSURE_SCHEMA:
        splits = get_service().splits
        if splits is not None and hasattr(splits.store, "ensure_schema"):
            await splits.store.ensure_schema()


@app.on_event("shutdown")
async def shutdown_tasks():
    """Stop background tasks, persist the cache and close pooled connections."""
    for task in list(_background_tasks):
        task.cancel()
    logger.info(f"[CACHE] Stats on shutdown: {get_cache().stats()}")
    get_cache().save()
    await close_pool()
