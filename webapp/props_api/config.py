"""
Runtime configuration for the Prop Analytics API.

Every tunable is read from the environment once at import time, with a
default that matches production behaviour. Engines receive an
``AnalyticsSettings`` instance so tests can override thresholds without
touching ``os.environ``.

Environment Variables:
    CACHE_TTL_SHORT / CACHE_TTL_MEDIUM / CACHE_TTL_LONG: TTL classes in seconds
    CACHE_STALE_RETENTION_SECONDS: how long expired entries stay available for fallback
    ACTIVITY_WINDOW_DAYS: trailing days that make a player "active" for batch splits
    TREND_THRESHOLD_PCT: half-width of the "stable" band for season trends
    SEASON_RECENT_WINDOW: games in the recent window of a season comparison
    OPPONENT_MIN_GAMES: minimum samples before an opponent (or player) is ranked
    UPSTREAM_TIMEOUT_SECONDS: timeout applied to every data-source / store call
    DATABASE_URL, DB_POOL_SIZE: Postgres connection settings
    DEFAULT_SEASON: season label used when a request names none (e.g. "2024-25")
"""

import os
from dataclasses import dataclass, replace


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


# Cache TTL classes (seconds), ordered by data volatility
CACHE_TTL_SHORT = _env_int("CACHE_TTL_SHORT", 5 * 60)
CACHE_TTL_MEDIUM = _env_int("CACHE_TTL_MEDIUM", 15 * 60)
CACHE_TTL_LONG = _env_int("CACHE_TTL_LONG", 60 * 60)
CACHE_STALE_RETENTION_SECONDS = _env_int("CACHE_STALE_RETENTION_SECONDS", 24 * 60 * 60)

ACTIVITY_WINDOW_DAYS = _env_int("ACTIVITY_WINDOW_DAYS", 60)
TREND_THRESHOLD_PCT = _env_float("TREND_THRESHOLD_PCT", 10.0)
SEASON_RECENT_WINDOW = _env_int("SEASON_RECENT_WINDOW", 10)
OPPONENT_MIN_GAMES = _env_int("OPPONENT_MIN_GAMES", 10)
UPSTREAM_TIMEOUT_SECONDS = _env_float("UPSTREAM_TIMEOUT_SECONDS", 10.0)

DATABASE_URL = os.environ.get("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/props")
DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 5)

DEFAULT_ROLLING_WINDOWS = (5, 10, 15, 20, 30)
# Unset means the season containing today
DEFAULT_SEASON = os.environ.get("DEFAULT_SEASON") or None


@dataclass(frozen=True)
class AnalyticsSettings:
    activity_window_days: int = ACTIVITY_WINDOW_DAYS
    trend_threshold_pct: float = TREND_THRESHOLD_PCT
    season_recent_window: int = SEASON_RECENT_WINDOW
    opponent_min_games: int = OPPONENT_MIN_GAMES
    upstream_timeout_seconds: float = UPSTREAM_TIMEOUT_SECONDS
    rolling_windows: tuple[int, ...] = DEFAULT_ROLLING_WINDOWS

    def with_overrides(self, **overrides) -> "AnalyticsSettings":
        return replace(self, **overrides)


def load_settings() -> AnalyticsSettings:
    """Settings snapshot built from the module-level environment values."""
    return AnalyticsSettings()
