"""
Advanced metrics engine - consistency, momentum, matchups and season context.

Design Pattern: Service Layer over a read-only game-log source
Algorithm:
  - Opponent trends / league percentile: pandas groupby over every player-game
    in the season, filtered to groups with enough samples
  - Per-player metrics: single pass over the player's season values
    (streak scan in chronological order, thirds by game index)
Big O: O(N log N) for league views (N = player-games in the season),
       O(n) for per-player views (n = player's games)
"""

from datetime import date
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ..config import AnalyticsSettings, load_settings
from ..data_sources.game_logs import GameLogSource
from ..logging_config import get_logger
from ..models import (
    AdvancedMetrics,
    ConsistencyMetrics,
    GameStatRecord,
    MomentumMetrics,
    OpponentTrend,
    PeriodSummary,
    SeasonComparison,
    SituationalSplits,
    StreakInfo,
)
from ..stat_calculator import normalize_category, stat_value
from .common import mean, previous_season, round_half_up, season_bounds, standard_deviation, summarize_period
from .prop_analytics import most_recent_first

logger = get_logger(__name__)


def records_frame(records: Sequence[GameStatRecord], stat_category: str) -> pd.DataFrame:
    """One row per player-game with the graded value for ``stat_category``."""
    return pd.DataFrame(
        {
            "player_id": [r.player_id for r in records],
            "opponent_team_id": [r.opponent_team_id for r in records],
            "opponent_abbreviation": [r.opponent_abbreviation for r in records],
            "value": [float(stat_value(r, stat_category)) for r in records],
        },
        columns=["player_id", "opponent_team_id", "opponent_abbreviation", "value"],
    )


def rank_opponents(df: pd.DataFrame, min_games: int) -> list[OpponentTrend]:
    """
    Rank opponents by average value allowed, lowest first.

    Rank 1 is the toughest matchup. Ties on the average are broken by team id.
    """
    if df.empty:
        return []

    grouped = (
        df.groupby("opponent_team_id")
        .agg(
            games_played=("value", "size"),
            average_allowed=("value", "mean"),
            opponent_abbreviation=("opponent_abbreviation", "first"),
        )
        .reset_index()
    )
    grouped = grouped[grouped["games_played"] >= min_games]
    grouped = grouped.sort_values(["average_allowed", "opponent_team_id"], kind="mergesort")

    trends = []
    for rank, row in enumerate(grouped.itertuples(index=False), start=1):
        abbreviation = row.opponent_abbreviation if isinstance(row.opponent_abbreviation, str) else None
        trends.append(
            OpponentTrend(
                opponent_team_id=int(row.opponent_team_id),
                opponent_abbreviation=abbreviation,
                games_played=int(row.games_played),
                average_allowed=round_half_up(float(row.average_allowed), 1),
                rank=rank,
            )
        )
    return trends


def league_averages(df: pd.DataFrame, min_games: int) -> pd.Series:
    """Season average per player, restricted to players with ``min_games`` or more."""
    if df.empty:
        return pd.Series(dtype=float)
    per_player = df.groupby("player_id")["value"].agg(["mean", "size"])
    return per_player.loc[per_player["size"] >= min_games, "mean"]


def percentile_rank(player_average: float, distribution: pd.Series) -> float:
    """Share of the distribution strictly below ``player_average``, as a percentage."""
    if distribution.empty:
        return 0.0
    below = int(np.count_nonzero(distribution.to_numpy() < player_average))
    return round_half_up(below / len(distribution) * 100, 1)


def classify_trend(recent_average: float, season_average: float, threshold_pct: float) -> str:
    band = threshold_pct / 100.0
    if recent_average > season_average * (1 + band):
        return "improving"
    if recent_average < season_average * (1 - band):
        return "declining"
    return "stable"


def scan_streaks(chronological: Sequence[float], threshold: float, inclusive: bool) -> tuple[int, int, StreakInfo]:
    """
    Longest over/under runs and the active run at the end of the sequence.

    A game is an OVER when it meets the threshold (``inclusive``) or beats it.
    """
    longest_over = longest_under = 0
    run_type: Optional[str] = None
    run_length = 0

    for v in chronological:
        is_over = v >= threshold if inclusive else v > threshold
        kind = "over" if is_over else "under"
        if kind == run_type:
            run_length += 1
        else:
            run_type, run_length = kind, 1
        if kind == "over":
            longest_over = max(longest_over, run_length)
        else:
            longest_under = max(longest_under, run_length)

    current = StreakInfo(type=run_type, length=run_length) if run_type else StreakInfo()
    return longest_over, longest_under, current


def momentum(values: Sequence[float], season_mean: float) -> MomentumMetrics:
    """``values`` are most-recent-first."""
    def delta(size: int) -> float:
        recent = values[:size]
        prior = values[size: size * 2]
        if not recent or not prior:
            return 0.0
        return round_half_up(mean(recent) - mean(prior), 1)

    last5 = values[:5]
    return MomentumMetrics(
        last5_delta=delta(5),
        last10_delta=delta(10),
        hot_streak=sum(1 for v in last5 if v > season_mean) >= 4,
        cold_streak=sum(1 for v in last5 if v < season_mean) >= 4,
    )


def situational_splits(chronological: Sequence[GameStatRecord], values: Sequence[float]) -> SituationalSplits:
    """Season thirds by game index, plus splits by days of rest before each game."""
    n = len(values)
    k1, k2 = n // 3, 2 * n // 3

    rest_buckets: dict[str, list[float]] = {"b2b": [], "one": [], "two_plus": []}
    for prev, cur, v in zip(chronological, chronological[1:], values[1:]):
        gap = (cur.game_date - prev.game_date).days
        if gap == 1:
            rest_buckets["b2b"].append(v)
        elif gap == 2:
            rest_buckets["one"].append(v)
        elif gap >= 3:
            rest_buckets["two_plus"].append(v)

    return SituationalSplits(
        early=summarize_period(values[:k1]),
        mid=summarize_period(values[k1:k2]),
        late=summarize_period(values[k2:]),
        back_to_back=summarize_period(rest_buckets["b2b"]),
        one_day_rest=summarize_period(rest_buckets["one"]),
        two_plus_days_rest=summarize_period(rest_buckets["two_plus"]),
    )


class AdvancedMetricsEngine:
    def __init__(self, source: GameLogSource, settings: Optional[AnalyticsSettings] = None):
        self.source = source
        self.settings = settings or load_settings()

    async def _season_records(self, player_id: int, season: str) -> list[GameStatRecord]:
        start, end = season_bounds(season)
        return most_recent_first(await self.source.fetch_game_log(player_id, start, end))

    async def _league_frame(self, stat_category: str, season: str) -> pd.DataFrame:
        start, end = season_bounds(season)
        records = await self.source.fetch_season_records(start, end)
        return records_frame(records, stat_category)

    async def get_opponent_trends(self, stat_category: str, season: str) -> list[OpponentTrend]:
        stat_category = normalize_category(stat_category)
        df = await self._league_frame(stat_category, season)
        trends = rank_opponents(df, self.settings.opponent_min_games)
        logger.info(f"[ANALYTICS] Ranked {len(trends)} opponents for {stat_category} {season} ({len(df)} player-games)")
        return trends

    async def get_season_comparison(self, player_id: int, stat_category: str, season: str) -> SeasonComparison:
        stat_category = normalize_category(stat_category)
        prev_start, prev_end = season_bounds(previous_season(season))

        records = await self._season_records(player_id, season)
        prev_records = await self.source.fetch_game_log(player_id, prev_start, prev_end)
        prev_summary = summarize_period([stat_value(r, stat_category) for r in prev_records])

        if not records:
            return SeasonComparison(
                player_id=player_id,
                stat_category=stat_category,
                season=season,
                previous_season=prev_summary,
                no_data_available=True,
            )

        values = [stat_value(r, stat_category) for r in records]
        season_avg = mean(values)
        recent_avg = mean(values[: self.settings.season_recent_window])

        distribution = league_averages(
            await self._league_frame(stat_category, season), self.settings.opponent_min_games
        )

        return SeasonComparison(
            player_id=player_id,
            stat_category=stat_category,
            season=season,
            season_average=round_half_up(season_avg, 1),
            recent_average=round_half_up(recent_avg, 1),
            games=len(values),
            trend=classify_trend(recent_avg, season_avg, self.settings.trend_threshold_pct),
            percentile_rank=percentile_rank(season_avg, distribution),
            previous_season=prev_summary,
        )

    async def get_advanced_metrics(
        self,
        player_id: int,
        stat_category: str,
        season: str,
        line: Optional[float] = None,
    ) -> AdvancedMetrics:
        """
        Consistency, momentum and situational splits for one player-season.

        Streaks are graded against ``line`` when given (``>=``), otherwise
        against the season mean (strictly above counts as over).
        """
        stat_category = normalize_category(stat_category)
        records = await self._season_records(player_id, season)
        if not records:
            return AdvancedMetrics(
                player_id=player_id, stat_category=stat_category, season=season, no_data_available=True
            )

        values = [stat_value(r, stat_category) for r in records]
        chronological = list(reversed(records))
        chrono_values = list(reversed(values))

        avg = mean(values)
        std = standard_deviation(values)
        threshold = line if line is not None else avg
        longest_over, longest_under, current = scan_streaks(chrono_values, threshold, inclusive=line is not None)

        consistency = ConsistencyMetrics(
            mean=round_half_up(avg, 1),
            standard_deviation=round_half_up(std, 2),
            coefficient_of_variation=round_half_up(std / avg * 100, 2) if avg > 0 else 0.0,
            longest_over_streak=longest_over,
            longest_under_streak=longest_under,
            current_streak=current,
            streak_threshold=round_half_up(threshold, 2),
        )

        return AdvancedMetrics(
            player_id=player_id,
            stat_category=stat_category,
            season=season,
            games=len(values),
            consistency=consistency,
            momentum=momentum(values, avg),
            situational=situational_splits(chronological, chrono_values),
        )


def season_for_date(day: date) -> str:
    """
    Season label containing ``day``; the season rolls over on October 1.

    Examples:
        >>> season_for_date(date(2024, 11, 2))
        '2024-25'
        >>> season_for_date(date(2025, 3, 1))
        '2024-25'
    """
    start_year = day.year if day.month >= 10 else day.year - 1
    return f"{start_year}-{(start_year + 1) % 100:02d}"
