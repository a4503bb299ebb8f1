"""
Health endpoint - database reachability, data freshness, cache and fallback state.

Design Pattern: Health Check Pattern
Algorithm: Two cheap queries plus in-memory status
Big O: O(1)
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

import psycopg
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .. import config
from ..db import get_db_connection
from ..logging_config import get_logger
from ..service import get_service

router = APIRouter()
logger = get_logger(__name__)

_started_at = time.time()

RECENT_GAMES_SQL = "SELECT COUNT(*) FROM games WHERE date >= CURRENT_DATE - INTERVAL '7 days'"


async def check_database() -> dict[str, Any]:
    start_time = time.time()
    async with get_db_connection() as conn:
        await conn.execute("SELECT 1")
        response_ms = round((time.time() - start_time) * 1000, 1)
        cur = await conn.execute(RECENT_GAMES_SQL)
        row = await cur.fetchone()
    recent_games = int(row[0]) if row else 0
    return {
        "database": {"status": "healthy", "response_ms": response_ms},
        "data": {
            "status": "healthy" if recent_games > 0 else "warning",
            "recent_games": recent_games,
        },
    }


@router.get("/health")
async def health() -> JSONResponse:
    service = get_service()
    body: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.time() - _started_at, 1),
        **service.status(),
    }
    try:
        body["checks"] = await asyncio.wait_for(check_database(), timeout=config.UPSTREAM_TIMEOUT_SECONDS)
    except (asyncio.TimeoutError, psycopg.Error, OSError) as e:
        error = str(e) or f"database check timed out after {config.UPSTREAM_TIMEOUT_SECONDS}s"
        logger.error(f"Health check failed: {type(e).__name__}: {error}")
        body["status"] = "unhealthy"
        body["checks"] = {"database": {"status": "unhealthy", "error": error}}
        return JSONResponse(status_code=503, content=body)

    body["status"] = "healthy"
    return JSONResponse(content=body)
