"""
Rolling splits endpoints - batch sync trigger and per-player recompute/read.

Design Pattern: RESTful API Pattern
Algorithm: Delegates to RollingSplitsComputer through PropAnalyticsService
Big O: O(P * W) for a full sync where P = active players, W = windows
"""

import time
from typing import Any, Optional

from fastapi import APIRouter, Query

from ..logging_config import get_logger
from ..service import get_service
from .utils import raise_http_error, to_jsonable

router = APIRouter()
logger = get_logger(__name__)


@router.post("/cron/sync-rolling-splits")
async def sync_rolling_splits(
    max_concurrency: int = Query(1, ge=1, le=16, description="Players processed concurrently"),
) -> dict[str, Any]:
    """Recompute rolling splits for every active player."""
    start_time = time.time()
    logger.info(f"[ROLLING-SPLITS] Sync triggered via API (max_concurrency={max_concurrency})")
    try:
        result = await get_service().process_all_players(max_concurrency=max_concurrency)
    except Exception as e:
        raise_http_error(e)
    return {"success": True, "result": result, "duration_seconds": round(time.time() - start_time, 1)}


@router.post("/rolling-splits/{player_id}")
async def compute_player_rolling_splits(
    player_id: int,
    windows: Optional[list[int]] = Query(None, description="Window sizes in games (default 5,10,15,20,30)"),
) -> dict[str, Any]:
    try:
        snapshots = await get_service().compute_rolling_splits(player_id, windows)
    except Exception as e:
        raise_http_error(e)
    return {"player_id": player_id, "written": len(snapshots), "splits": to_jsonable(snapshots)}


@router.get("/rolling-splits/{player_id}")
async def get_player_rolling_splits(
    player_id: int,
    stat_category: Optional[str] = Query(None, description="Only this stat (e.g. 'pts', 'fg_pct')"),
) -> dict[str, Any]:
    try:
        snapshots = await get_service().get_rolling_splits(player_id, stat_category)
    except Exception as e:
        raise_http_error(e)
    return {"player_id": player_id, "splits": to_jsonable(snapshots)}
