"""
Prop endpoints - hit-rate analysis, alt lines and expected value.

Design Pattern: RESTful API Pattern over PropAnalyticsService
Algorithm: Validate request -> service call (cached, fallback-protected) -> JSON
Big O: O(n) where n = games in the player's log on a cache miss
"""

from datetime import date
from typing import Any, Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from ..logging_config import get_logger
from ..models import PropFilter
from ..service import get_service
from .utils import raise_http_error, to_jsonable

router = APIRouter()
logger = get_logger(__name__)


class PropFilterModel(BaseModel):
    """Optional filters applied before grading."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    home_away: Optional[Literal["home", "away"]] = None
    min_minutes: Optional[float] = Field(None, ge=0)
    opponent_team_id: Optional[int] = None
    last_n_games: Optional[int] = Field(None, ge=1)
    excluded_player_ids: list[int] = Field(default_factory=list)

    def to_filter(self) -> PropFilter:
        return PropFilter(
            start_date=self.start_date,
            end_date=self.end_date,
            home_away=self.home_away,
            min_minutes=self.min_minutes,
            opponent_team_id=self.opponent_team_id,
            last_n_games=self.last_n_games,
            excluded_player_ids=tuple(self.excluded_player_ids),
        )


class AnalyzePropRequest(BaseModel):
    player_id: int
    prop_type: str
    prop_line: float
    filters: Optional[PropFilterModel] = None
    include_games: bool = False
    bypass_cache: bool = False


@router.post("/analyze-prop")
async def analyze_prop(request: AnalyzePropRequest) -> dict[str, Any]:
    """
    Grade a player's filtered game log against a line.

    Returns the analysis (and per-game outcomes when ``include_games``).
    A query with no qualifying games is a 200 with ``no_data_available``.
    """
    service = get_service()
    filters = request.filters.to_filter() if request.filters else PropFilter()
    try:
        analysis = await service.analyze_prop(
            request.player_id,
            request.prop_type,
            request.prop_line,
            filters,
            bypass_cache=request.bypass_cache,
        )
        response: dict[str, Any] = {"analysis": to_jsonable(analysis)}
        if request.include_games:
            outcomes = await service.get_game_outcomes(
                request.player_id, request.prop_type, request.prop_line, filters
            )
            response["games"] = to_jsonable(outcomes)
    except Exception as e:
        raise_http_error(e)

    response["fallback"] = service.fallback_state()
    return response


@router.get("/prop-types")
def get_prop_types() -> dict[str, Any]:
    return {"prop_types": get_service().get_prop_types()}


@router.get("/alt-lines")
async def get_alt_lines(
    player_id: int = Query(..., description="Player id"),
    prop_type: str = Query(..., description="Stat category (e.g. 'pts', 'pra')"),
    line: float = Query(..., ge=0, description="Posted line to build the ladder around"),
    last_n_games: Optional[int] = Query(None, ge=1, description="Only grade the most recent N games"),
    home_away: Optional[Literal["home", "away"]] = Query(None, description="Home or away games only"),
) -> dict[str, Any]:
    service = get_service()
    filters = PropFilter(last_n_games=last_n_games, home_away=home_away)
    try:
        lines = await service.get_alt_lines(player_id, prop_type, line, filters)
    except Exception as e:
        raise_http_error(e)
    return {"player_id": player_id, "prop_type": prop_type, "base_line": line, "alt_lines": to_jsonable(lines)}


@router.get("/expected-value")
def get_expected_value(
    hit_rate: float = Query(..., ge=0, le=100, description="Estimated hit rate in percent"),
    odds: int = Query(..., description="American odds (e.g. -110, +150)"),
    wager: float = Query(100.0, gt=0, description="Stake"),
) -> dict[str, Any]:
    """Expected profit of a wager at ``odds`` given a hit-rate estimate."""
    try:
        ev = get_service().calculate_expected_value(hit_rate, odds, wager)
    except Exception as e:
        raise_http_error(e)
    return {
        "hit_rate": hit_rate,
        "odds": odds,
        "wager": wager,
        "expected_value": ev,
        "roi_pct": round(ev / wager * 100, 2),
    }
