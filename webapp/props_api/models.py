"""
Data model for per-game stats and the analytics derived from them.

Design Pattern: Value Object Pattern (frozen dataclasses)
Algorithm: Plain field containers; no I/O
Big O: O(1) construction
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from .errors import ValidationError

HomeAway = Literal["home", "away"]
OverUnder = Literal["over", "under"]
Trend = Literal["improving", "declining", "stable"]


def parse_minutes(minutes: Any) -> float:
    """
    Parse a minutes-played value into decimal minutes.

    The provider reports minutes as "MM:SS" strings, plain numeric strings,
    numbers or null.

    Examples:
        >>> parse_minutes("34:30")
        34.5
        >>> parse_minutes("28")
        28.0
        >>> parse_minutes(None)
        0.0
    """
    if minutes is None:
        return 0.0
    if isinstance(minutes, (int, float, Decimal)):
        return float(minutes)
    text = str(minutes).strip()
    if not text:
        return 0.0
    parts = text.split(":")
    try:
        if len(parts) == 2:
            return int(parts[0]) + int(parts[1]) / 60.0
        return float(text)
    except ValueError:
        return 0.0


@dataclass(frozen=True)
class GameStatRecord:
    """One player's raw box-score line for one game."""
    game_id: int
    player_id: int
    team_id: int
    game_date: date
    opponent_team_id: int
    is_home: bool
    minutes: float = 0.0
    pts: int = 0
    reb: int = 0
    ast: int = 0
    stl: int = 0
    blk: int = 0
    turnover: int = 0
    fgm: int = 0
    fga: int = 0
    fg3m: int = 0
    fg3a: int = 0
    ftm: int = 0
    fta: int = 0
    opponent_abbreviation: Optional[str] = None


@dataclass(frozen=True)
class PropFilter:
    """Selection criteria applied to a player's game log before analysis."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    home_away: Optional[HomeAway] = None
    min_minutes: Optional[float] = None
    opponent_team_id: Optional[int] = None
    last_n_games: Optional[int] = None
    excluded_player_ids: tuple[int, ...] = ()

    def validate(self) -> "PropFilter":
        if self.home_away is not None and self.home_away not in ("home", "away"):
            raise ValidationError(f"home_away must be 'home' or 'away', got {self.home_away!r}")
        if self.min_minutes is not None and self.min_minutes < 0:
            raise ValidationError(f"min_minutes must be >= 0, got {self.min_minutes}")
        if self.last_n_games is not None and self.last_n_games < 1:
            raise ValidationError(f"last_n_games must be >= 1, got {self.last_n_games}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError(f"start_date {self.start_date} is after end_date {self.end_date}")
        return self

    def cache_params(self) -> dict[str, Any]:
        """Filter fields as keyword params for a cache key."""
        return asdict(self)


@dataclass(frozen=True)
class GameOutcome:
    game_id: int
    game_date: date
    opponent_team_id: int
    opponent_abbreviation: Optional[str]
    is_home: bool
    minutes: float
    value: float
    line: float
    result: OverUnder


@dataclass(frozen=True)
class WindowSummary:
    hit_rate: int = 0
    average: float = 0.0
    games: int = 0


def _empty_recent_form() -> dict[str, WindowSummary]:
    return {"last5": WindowSummary(), "last10": WindowSummary(), "last20": WindowSummary()}


def _empty_home_away() -> dict[str, WindowSummary]:
    return {"home": WindowSummary(), "away": WindowSummary()}


@dataclass(frozen=True)
class PropAnalysisResult:
    player_id: int
    stat_category: str
    line: float
    hit_rate: int = 0
    average: float = 0.0
    over_count: int = 0
    under_count: int = 0
    total_games: int = 0
    recent_form: dict[str, WindowSummary] = field(default_factory=_empty_recent_form)
    home_away_stats: dict[str, WindowSummary] = field(default_factory=_empty_home_away)
    no_data_available: bool = False

    @classmethod
    def empty(cls, player_id: int, stat_category: str, line: float) -> "PropAnalysisResult":
        return cls(player_id=player_id, stat_category=stat_category, line=line, no_data_available=True)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AltLine:
    line: float
    hit_rate: int
    fair_odds: Optional[int]
    games: int


@dataclass(frozen=True)
class RollingSplitSnapshot:
    """Persisted trailing-window average keyed by (player, stat, window)."""
    player_id: int
    stat_category: str
    window_size: int
    average: Decimal
    games_played: int
    last_updated: datetime

    @property
    def key(self) -> tuple[int, str, int]:
        return (self.player_id, self.stat_category, self.window_size)


@dataclass(frozen=True)
class OpponentTrend:
    opponent_team_id: int
    opponent_abbreviation: Optional[str]
    games_played: int
    average_allowed: float
    rank: int


@dataclass(frozen=True)
class PeriodSummary:
    average: float = 0.0
    games: int = 0


@dataclass(frozen=True)
class SeasonComparison:
    player_id: int
    stat_category: str
    season: str
    season_average: float = 0.0
    recent_average: float = 0.0
    games: int = 0
    trend: Trend = "stable"
    percentile_rank: float = 0.0
    previous_season: PeriodSummary = field(default_factory=PeriodSummary)
    no_data_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StreakInfo:
    type: OverUnder = "over"
    length: int = 0


@dataclass(frozen=True)
class ConsistencyMetrics:
    mean: float = 0.0
    standard_deviation: float = 0.0
    coefficient_of_variation: float = 0.0
    longest_over_streak: int = 0
    longest_under_streak: int = 0
    current_streak: StreakInfo = field(default_factory=StreakInfo)
    streak_threshold: float = 0.0


@dataclass(frozen=True)
class MomentumMetrics:
    last5_delta: float = 0.0
    last10_delta: float = 0.0
    hot_streak: bool = False
    cold_streak: bool = False


@dataclass(frozen=True)
class SituationalSplits:
    early: PeriodSummary = field(default_factory=PeriodSummary)
    mid: PeriodSummary = field(default_factory=PeriodSummary)
    late: PeriodSummary = field(default_factory=PeriodSummary)
    back_to_back: PeriodSummary = field(default_factory=PeriodSummary)
    one_day_rest: PeriodSummary = field(default_factory=PeriodSummary)
    two_plus_days_rest: PeriodSummary = field(default_factory=PeriodSummary)


@dataclass(frozen=True)
class AdvancedMetrics:
    player_id: int
    stat_category: str
    season: str
    games: int = 0
    consistency: ConsistencyMetrics = field(default_factory=ConsistencyMetrics)
    momentum: MomentumMetrics = field(default_factory=MomentumMetrics)
    situational: SituationalSplits = field(default_factory=SituationalSplits)
    no_data_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
