"""
Prop analytics engine - grade a player's game log against a betting line.

Design Pattern: Pipeline Pattern (fetch -> filter -> classify -> aggregate)
Algorithm: Sequential filters over a most-recent-first game log, then
           over/under classification with ``value >= line`` as the hit condition
Big O: O(n) where n = games in the player's log

A game whose value lands exactly on the line counts as an OVER. Lines are
usually posted at half points, so ties only happen on whole-number lines.
"""

import math
from typing import Iterable, Optional, Sequence

from ..config import AnalyticsSettings, load_settings
from ..data_sources.game_logs import GameLogSource
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models import AltLine, GameOutcome, GameStatRecord, PropAnalysisResult, PropFilter
from ..stat_calculator import normalize_category, stat_value
from ..utils.odds import american_payout, probability_to_american_odds
from .common import hit_rate, mean, round_half_up, summarize_window

logger = get_logger(__name__)

RECENT_FORM_WINDOWS = (5, 10, 20)

# Alt-line ladder: steps either side of the posted line
ALT_LINE_STEPS = 4
ALT_LINE_STEP_SIZE = {"pts": 1.5, "reb": 1.0, "ast": 1.0}
DEFAULT_ALT_LINE_STEP = 0.5


def most_recent_first(records: Iterable[GameStatRecord]) -> list[GameStatRecord]:
    return sorted(records, key=lambda r: (r.game_date, r.game_id), reverse=True)


def apply_filters(
    records: Sequence[GameStatRecord],
    filters: PropFilter,
    excluded_game_ids: Optional[set[int]] = None,
) -> list[GameStatRecord]:
    """
    Run the filter pipeline in a fixed order.

    Date range (inclusive) -> home/away -> minimum minutes -> opponent ->
    games shared with excluded teammates -> most recent N.
    """
    result = most_recent_first(records)

    if filters.start_date is not None:
        result = [r for r in result if r.game_date >= filters.start_date]
    if filters.end_date is not None:
        result = [r for r in result if r.game_date <= filters.end_date]
    if filters.home_away is not None:
        want_home = filters.home_away == "home"
        result = [r for r in result if r.is_home == want_home]
    if filters.min_minutes is not None:
        result = [r for r in result if r.minutes >= filters.min_minutes]
    if filters.opponent_team_id is not None:
        result = [r for r in result if r.opponent_team_id == filters.opponent_team_id]
    if excluded_game_ids:
        result = [r for r in result if r.game_id not in excluded_game_ids]
    if filters.last_n_games is not None:
        result = result[: filters.last_n_games]

    return result


def validate_line(line: float) -> float:
    try:
        value = float(line)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"line must be a number, got {line!r}") from e
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"line must be a finite, non-negative number, got {line!r}")
    return value


def build_analysis(
    player_id: int,
    stat_category: str,
    line: float,
    records: Sequence[GameStatRecord],
) -> PropAnalysisResult:
    """Aggregate an already-filtered, most-recent-first record list."""
    if not records:
        return PropAnalysisResult.empty(player_id, stat_category, line)

    values = [stat_value(r, stat_category) for r in records]
    over_count = sum(1 for v in values if v >= line)
    total = len(values)

    recent_form = {
        f"last{n}": summarize_window(values[:n], line) for n in RECENT_FORM_WINDOWS
    }
    home_values = [v for r, v in zip(records, values) if r.is_home]
    away_values = [v for r, v in zip(records, values) if not r.is_home]

    return PropAnalysisResult(
        player_id=player_id,
        stat_category=stat_category,
        line=line,
        hit_rate=hit_rate(over_count, total),
        average=round_half_up(mean(values), 1),
        over_count=over_count,
        under_count=total - over_count,
        total_games=total,
        recent_form=recent_form,
        home_away_stats={
            "home": summarize_window(home_values, line),
            "away": summarize_window(away_values, line),
        },
    )


def calculate_expected_value(hit_rate_pct: float, american_odds: float, wager: float = 100.0) -> float:
    """
    Expected profit of a wager given a hit-rate estimate.

    EV = p * payout - (1 - p) * wager, with payout from the American odds.

    Examples:
        >>> calculate_expected_value(60, -150, 100)
        0.0
        >>> calculate_expected_value(50, 150, 100)
        25.0
    """
    if not 0 <= hit_rate_pct <= 100:
        raise ValidationError(f"hit_rate must be between 0 and 100, got {hit_rate_pct}")
    if american_odds == 0:
        raise ValidationError("odds cannot be 0")
    if wager <= 0:
        raise ValidationError(f"wager must be > 0, got {wager}")

    p = hit_rate_pct / 100.0
    payout = american_payout(american_odds, wager)
    ev = p * payout - (1.0 - p) * wager
    return float(round_half_up(ev, 2))


def alt_line_ladder(stat_category: str, base_line: float) -> list[float]:
    step = ALT_LINE_STEP_SIZE.get(normalize_category(stat_category), DEFAULT_ALT_LINE_STEP)
    lines = []
    for k in range(-ALT_LINE_STEPS, ALT_LINE_STEPS + 1):
        candidate = round_half_up(base_line + k * step, 1)
        if candidate > 0:
            lines.append(float(candidate))
    return lines


class PropAnalyticsEngine:
    def __init__(self, source: GameLogSource, settings: Optional[AnalyticsSettings] = None):
        self.source = source
        self.settings = settings or load_settings()

    async def filtered_records(self, player_id: int, filters: Optional[PropFilter] = None) -> list[GameStatRecord]:
        filters = (filters or PropFilter()).validate()
        records = await self.source.fetch_game_log(player_id, filters.start_date, filters.end_date)
        excluded_game_ids: set[int] = set()
        if filters.excluded_player_ids:
            excluded_game_ids = await self.source.fetch_games_with_teammates(
                player_id, filters.excluded_player_ids
            )
        filtered = apply_filters(records, filters, excluded_game_ids)
        logger.debug(f"player_id={player_id}: {len(records)} games fetched, {len(filtered)} after filters")
        return filtered

    async def analyze_prop(
        self,
        player_id: int,
        stat_category: str,
        line: float,
        filters: Optional[PropFilter] = None,
    ) -> PropAnalysisResult:
        line = validate_line(line)
        stat_category = normalize_category(stat_category)
        records = await self.filtered_records(player_id, filters)
        result = build_analysis(player_id, stat_category, line, records)
        if result.no_data_available:
            logger.info(f"No qualifying games for player_id={player_id} {stat_category} {line}")
        return result

    async def get_game_outcomes(
        self,
        player_id: int,
        stat_category: str,
        line: float,
        filters: Optional[PropFilter] = None,
    ) -> list[GameOutcome]:
        line = validate_line(line)
        stat_category = normalize_category(stat_category)
        records = await self.filtered_records(player_id, filters)
        outcomes = []
        for r in records:
            value = stat_value(r, stat_category)
            outcomes.append(
                GameOutcome(
                    game_id=r.game_id,
                    game_date=r.game_date,
                    opponent_team_id=r.opponent_team_id,
                    opponent_abbreviation=r.opponent_abbreviation,
                    is_home=r.is_home,
                    minutes=r.minutes,
                    value=value,
                    line=line,
                    result="over" if value >= line else "under",
                )
            )
        return outcomes

    async def get_alt_lines(
        self,
        player_id: int,
        stat_category: str,
        base_line: float,
        filters: Optional[PropFilter] = None,
    ) -> list[AltLine]:
        """Hit rate and fair odds for a ladder of lines around ``base_line``."""
        base_line = validate_line(base_line)
        stat_category = normalize_category(stat_category)
        records = await self.filtered_records(player_id, filters)
        values = [stat_value(r, stat_category) for r in records]

        ladder = []
        for alt in alt_line_ladder(stat_category, base_line):
            hits = sum(1 for v in values if v >= alt)
            fair_odds = probability_to_american_odds(hits / len(values)) if values else None
            ladder.append(AltLine(line=alt, hit_rate=hit_rate(hits, len(values)), fair_odds=fair_odds, games=len(values)))
        return ladder

    def calculate_expected_value(self, hit_rate_pct: float, american_odds: float, wager: float = 100.0) -> float:
        return calculate_expected_value(hit_rate_pct, american_odds, wager)
