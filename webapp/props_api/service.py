"""
Prop analytics service - the caller-facing facade over the engines.

Design Pattern: Facade + Cache-Aside + Fallback
Algorithm: validate -> build deterministic key -> FallbackCoordinator wraps
           SimpleCache.get_or_set wraps the engine call
Big O: O(1) on a cache hit; engine cost on a miss

Each read is keyed by every input that changes its answer. TTL classes:
  prop analysis / alt lines   SHORT   (line-specific, cheap to recompute)
  season comparison, metrics  MEDIUM  (per-player season views)
  opponent trends             LONG    (league-wide aggregate)
"""

from datetime import date
from typing import Any, Callable, Optional

from . import config
from .analytics.advanced_metrics import AdvancedMetricsEngine, season_for_date
from .analytics.common import season_bounds
from .analytics.prop_analytics import PropAnalyticsEngine, calculate_expected_value, validate_line
from .analytics.rolling_splits import RollingSplitsComputer
from .cache import CacheTTL, SimpleCache, build_cache_key, get_cache
from .config import AnalyticsSettings, load_settings
from .data_sources.game_logs import GameLogSource, PostgresGameLogSource
from .data_sources.rolling_split_store import PostgresRollingSplitStore, RollingSplitStore
from .errors import ValidationError
from .fallback import FallbackCoordinator, get_fallback_coordinator
from .logging_config import get_logger
from .models import (
    AdvancedMetrics,
    AltLine,
    GameOutcome,
    OpponentTrend,
    PropAnalysisResult,
    PropFilter,
    RollingSplitSnapshot,
    SeasonComparison,
)
from .stat_calculator import STAT_LABELS, SUPPORTED_CATEGORIES, normalize_category

logger = get_logger(__name__)


def validate_category(stat_category: str) -> str:
    """Normalized category, or ValidationError for anything the calculator can't grade."""
    key = normalize_category(stat_category)
    if key not in SUPPORTED_CATEGORIES:
        raise ValidationError(
            f"Unsupported stat category {stat_category!r}. Supported: {', '.join(SUPPORTED_CATEGORIES)}"
        )
    return key


class PropAnalyticsService:
    def __init__(
        self,
        source: GameLogSource,
        store: Optional[RollingSplitStore] = None,
        cache: Optional[SimpleCache] = None,
        fallback: Optional[FallbackCoordinator] = None,
        settings: Optional[AnalyticsSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings or load_settings()
        self._cache = cache
        self.fallback = fallback or (FallbackCoordinator(cache) if cache is not None else get_fallback_coordinator())
        self.today = today
        self.prop_engine = PropAnalyticsEngine(source, self.settings)
        self.metrics_engine = AdvancedMetricsEngine(source, self.settings)
        self.splits = RollingSplitsComputer(source, store, self.settings) if store is not None else None

    @property
    def cache(self) -> SimpleCache:
        return self._cache if self._cache is not None else get_cache()

    def resolve_season(self, season: Optional[str]) -> str:
        season = season or config.DEFAULT_SEASON or season_for_date(self.today())
        season_bounds(season)
        return season

    async def _cached(self, key: str, compute_fn, ttl: CacheTTL, default: Any, bypass_cache: bool = False):
        return await self.fallback.with_fallback(
            lambda: self.cache.get_or_set(key, compute_fn, ttl, bypass=bypass_cache),
            key,
            default,
        )

    # ------------------------------------------------------------------
    # Prop analysis
    # ------------------------------------------------------------------

    async def analyze_prop(
        self,
        player_id: int,
        stat_category: str,
        line: float,
        filters: Optional[PropFilter] = None,
        bypass_cache: bool = False,
    ) -> PropAnalysisResult:
        stat_category = validate_category(stat_category)
        line = validate_line(line)
        filters = (filters or PropFilter()).validate()
        key = build_cache_key("prop-analysis", player_id, stat_category, line, **filters.cache_params())
        return await self._cached(
            key,
            lambda: self.prop_engine.analyze_prop(player_id, stat_category, line, filters),
            CacheTTL.SHORT,
            PropAnalysisResult.empty(player_id, stat_category, line),
            bypass_cache,
        )

    async def get_game_outcomes(
        self,
        player_id: int,
        stat_category: str,
        line: float,
        filters: Optional[PropFilter] = None,
    ) -> list[GameOutcome]:
        """Per-game detail; recomputed on every call."""
        stat_category = validate_category(stat_category)
        line = validate_line(line)
        filters = (filters or PropFilter()).validate()
        key = build_cache_key("game-outcomes", player_id, stat_category, line, **filters.cache_params())
        return await self.fallback.with_fallback(
            lambda: self.prop_engine.get_game_outcomes(player_id, stat_category, line, filters),
            key,
            [],
        )

    async def get_alt_lines(
        self,
        player_id: int,
        stat_category: str,
        base_line: float,
        filters: Optional[PropFilter] = None,
    ) -> list[AltLine]:
        stat_category = validate_category(stat_category)
        base_line = validate_line(base_line)
        filters = (filters or PropFilter()).validate()
        key = build_cache_key("alt-lines", player_id, stat_category, base_line, **filters.cache_params())
        return await self._cached(
            key,
            lambda: self.prop_engine.get_alt_lines(player_id, stat_category, base_line, filters),
            CacheTTL.SHORT,
            [],
        )

    def calculate_expected_value(self, hit_rate_pct: float, american_odds: float, wager: float = 100.0) -> float:
        return calculate_expected_value(hit_rate_pct, american_odds, wager)

    def get_prop_types(self) -> list[dict[str, str]]:
        return [{"value": key, "label": STAT_LABELS[key]} for key in SUPPORTED_CATEGORIES]

    # ------------------------------------------------------------------
    # Advanced analytics
    # ------------------------------------------------------------------

    async def get_opponent_trends(self, stat_category: str, season: Optional[str] = None) -> list[OpponentTrend]:
        stat_category = validate_category(stat_category)
        season = self.resolve_season(season)
        key = build_cache_key("opponent-trends", stat_category, season)
        return await self._cached(
            key,
            lambda: self.metrics_engine.get_opponent_trends(stat_category, season),
            CacheTTL.LONG,
            [],
        )

    async def get_season_comparison(
        self, player_id: int, stat_category: str, season: Optional[str] = None
    ) -> SeasonComparison:
        stat_category = validate_category(stat_category)
        season = self.resolve_season(season)
        key = build_cache_key("season-comparison", player_id, stat_category, season)
        return await self._cached(
            key,
            lambda: self.metrics_engine.get_season_comparison(player_id, stat_category, season),
            CacheTTL.MEDIUM,
            SeasonComparison(player_id=player_id, stat_category=stat_category, season=season, no_data_available=True),
        )

    async def get_advanced_metrics(
        self,
        player_id: int,
        stat_category: str,
        season: Optional[str] = None,
        line: Optional[float] = None,
    ) -> AdvancedMetrics:
        stat_category = validate_category(stat_category)
        season = self.resolve_season(season)
        if line is not None:
            line = validate_line(line)
        key = build_cache_key("advanced-metrics", player_id, stat_category, season, line=line)
        return await self._cached(
            key,
            lambda: self.metrics_engine.get_advanced_metrics(player_id, stat_category, season, line),
            CacheTTL.MEDIUM,
            AdvancedMetrics(player_id=player_id, stat_category=stat_category, season=season, no_data_available=True),
        )

    # ------------------------------------------------------------------
    # Rolling splits (writes; failures propagate to the caller)
    # ------------------------------------------------------------------

    def _require_splits(self) -> RollingSplitsComputer:
        if self.splits is None:
            raise RuntimeError("PropAnalyticsService was built without a rolling split store")
        return self.splits

    async def compute_rolling_splits(self, player_id: int, windows=None) -> list[RollingSplitSnapshot]:
        snapshots = await self._require_splits().compute_rolling_splits(player_id, windows)
        self.cache.invalidate(f"rolling-splits:{player_id}:")
        return snapshots

    async def get_rolling_splits(
        self, player_id: int, stat_category: Optional[str] = None
    ) -> list[RollingSplitSnapshot]:
        """Stored snapshots for a player, optionally one stat only."""
        self._require_splits()
        key = build_cache_key("rolling-splits", player_id, stat_category)
        return await self._cached(
            key,
            lambda: self.splits.store.fetch(player_id, stat_category),
            CacheTTL.MEDIUM,
            [],
        )

    async def process_all_players(self, max_concurrency: int = 1) -> dict[str, int]:
        result = await self._require_splits().process_all_players(max_concurrency=max_concurrency)
        self.cache.invalidate("rolling-splits:*")
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def fallback_state(self) -> dict[str, Any]:
        return self.fallback.get_state()

    def status(self) -> dict[str, Any]:
        return {"cache": self.cache.stats(), "fallback": self.fallback_state()}


# Process-wide service (constructed on first use, swappable for tests)
_service: Optional[PropAnalyticsService] = None


def get_service() -> PropAnalyticsService:
    global _service
    if _service is None:
        timeout = config.UPSTREAM_TIMEOUT_SECONDS
        _service = PropAnalyticsService(
            source=PostgresGameLogSource(timeout_seconds=timeout),
            store=PostgresRollingSplitStore(timeout_seconds=timeout),
        )
        logger.info("Prop analytics service initialized (Postgres source + rolling split store)")
    return _service


def set_service(service: Optional[PropAnalyticsService]) -> None:
    global _service
    _service = service
