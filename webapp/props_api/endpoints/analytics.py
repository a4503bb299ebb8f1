"""
Advanced analytics endpoints - opponent trends, season comparison, advanced metrics.

Design Pattern: RESTful API Pattern with a batch variant
Algorithm: Dispatch on ``endpoint`` / request ``type``; batch requests run
           concurrently with asyncio.gather(return_exceptions=True)
Big O: O(k) service calls for a batch of k requests
"""

import asyncio
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..errors import ValidationError
from ..logging_config import get_logger
from ..service import PropAnalyticsService, get_service
from .utils import raise_http_error, to_jsonable

router = APIRouter()
logger = get_logger(__name__)

AnalyticsKind = Literal["opponent-trends", "season-comparison", "advanced-metrics"]

# Batch requests beyond this are rejected
MAX_BATCH_SIZE = 25


class AnalyticsRequest(BaseModel):
    type: AnalyticsKind
    prop_type: str
    player_id: Optional[int] = None
    season: Optional[str] = None
    line: Optional[float] = None


class BatchAnalyticsRequest(BaseModel):
    requests: list[AnalyticsRequest] = Field(..., max_length=MAX_BATCH_SIZE)


async def _dispatch(service: PropAnalyticsService, req: AnalyticsRequest) -> tuple[str, Any]:
    if req.type == "opponent-trends":
        return "trends", await service.get_opponent_trends(req.prop_type, req.season)

    if req.player_id is None:
        raise ValidationError(f"player_id is required for {req.type}")
    if req.type == "season-comparison":
        return "comparison", await service.get_season_comparison(req.player_id, req.prop_type, req.season)
    return "metrics", await service.get_advanced_metrics(req.player_id, req.prop_type, req.season, req.line)


@router.get("/analytics/advanced")
async def get_advanced_analytics(
    endpoint: AnalyticsKind = Query(..., description="opponent-trends, season-comparison or advanced-metrics"),
    prop_type: str = Query(..., description="Stat category (e.g. 'pts', 'pra')"),
    player_id: Optional[int] = Query(None, description="Required for season-comparison and advanced-metrics"),
    season: Optional[str] = Query(None, description="Season label (e.g. '2024-25'); defaults to the current season"),
    line: Optional[float] = Query(None, ge=0, description="Grade streaks against this line instead of the mean"),
) -> dict[str, Any]:
    service = get_service()
    req = AnalyticsRequest(type=endpoint, prop_type=prop_type, player_id=player_id, season=season, line=line)
    try:
        name, data = await _dispatch(service, req)
    except Exception as e:
        raise_http_error(e)
    return {name: to_jsonable(data), "fallback": service.fallback_state()}


@router.post("/analytics/advanced")
async def post_advanced_analytics_batch(batch: BatchAnalyticsRequest) -> dict[str, Any]:
    """
    Run several analytics requests in one call.

    Each result carries ``success``; one failing request never fails the batch.
    """
    if not batch.requests:
        raise HTTPException(status_code=400, detail="requests must not be empty")

    service = get_service()
    results = await asyncio.gather(
        *(_dispatch(service, req) for req in batch.requests),
        return_exceptions=True,
    )

    response = []
    for req, result in zip(batch.requests, results):
        if isinstance(result, BaseException):
            logger.warning(f"[ANALYTICS] Batch item {req.type} failed: {type(result).__name__}: {result}")
            response.append({
                "success": False,
                "type": req.type,
                "error": str(result),
                "request": req.model_dump(),
            })
        else:
            _, data = result
            response.append({"success": True, "type": req.type, "data": to_jsonable(data)})

    return {"results": response, "fallback": service.fallback_state()}
