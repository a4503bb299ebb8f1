"""
Rolling splits computer - trailing-window averages persisted per player/stat/window.

Design Pattern: Batch Job Pattern (per-player unit of work, failures isolated)
Algorithm:
  1. Fetch the player's games since (today - max(windows)) days, most recent first
  2. For each window W ascending, slice the first W games and average every stat
  3. Shooting percentages are aggregate makes / aggregate attempts over the window
  4. Upsert one snapshot per (player, stat, window)
Big O: O(W_max * S) per player where S = number of tracked stats

The fetch is bounded by calendar days equal to the largest window, then sliced
by game count. Players with long layoffs can therefore get windows with fewer
games than the window size.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Sequence

from ..config import AnalyticsSettings, load_settings
from ..data_sources.game_logs import GameLogSource
from ..data_sources.rolling_split_store import RollingSplitStore
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models import GameStatRecord, RollingSplitSnapshot

logger = get_logger(__name__)

AVERAGED_STATS = (
    "pts", "reb", "ast", "stl", "blk", "turnover",
    "fgm", "fga", "fg3m", "fg3a", "ftm", "fta",
)

# percentage stat -> (makes field, attempts field)
SHOOTING_PCTS = {
    "fg_pct": ("fgm", "fga"),
    "fg3_pct": ("fg3m", "fg3a"),
    "ft_pct": ("ftm", "fta"),
}

ONE_PLACE = Decimal("0.1")
THREE_PLACES = Decimal("0.001")


def _quantize(value: Decimal, places: Decimal) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


def window_averages(records: Sequence[GameStatRecord]) -> dict[str, Decimal]:
    """
    Per-stat averages over ``records`` as Decimals.

    Counting stats and minutes use 1 decimal place; shooting percentages are
    fractions (0.475, not 47.5) with 3 places and are 0 when there were no
    attempts.
    """
    count = len(records)
    if count == 0:
        return {}

    totals = {name: sum(getattr(r, name) or 0 for r in records) for name in AVERAGED_STATS}
    averages = {
        name: _quantize(Decimal(total) / Decimal(count), ONE_PLACE)
        for name, total in totals.items()
    }

    minutes = sum(Decimal(str(r.minutes or 0)) for r in records)
    averages["min"] = _quantize(minutes / Decimal(count), ONE_PLACE)

    for name, (makes, attempts) in SHOOTING_PCTS.items():
        if totals[attempts] > 0:
            averages[name] = _quantize(Decimal(totals[makes]) / Decimal(totals[attempts]), THREE_PLACES)
        else:
            averages[name] = _quantize(Decimal(0), THREE_PLACES)

    return averages


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RollingSplitsComputer:
    def __init__(
        self,
        source: GameLogSource,
        store: RollingSplitStore,
        settings: Optional[AnalyticsSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.store = store
        self.settings = settings or load_settings()
        self.clock = clock

    async def compute_rolling_splits(
        self,
        player_id: int,
        windows: Optional[Sequence[int]] = None,
    ) -> list[RollingSplitSnapshot]:
        windows = sorted(set(windows or self.settings.rolling_windows))
        if not windows or windows[0] < 1:
            raise ValidationError(f"windows must be positive integers, got {windows}")

        now = self.clock()
        cutoff = now.date() - timedelta(days=windows[-1])
        records = await self.source.fetch_game_log(player_id, start_date=cutoff)
        records = sorted(records, key=lambda r: (r.game_date, r.game_id), reverse=True)

        if not records:
            logger.debug(f"[ROLLING-SPLITS] player_id={player_id}: no games since {cutoff}")
            return []

        snapshots = []
        for window in windows:
            window_records = records[:window]
            for stat_category, average in window_averages(window_records).items():
                snapshots.append(
                    RollingSplitSnapshot(
                        player_id=player_id,
                        stat_category=stat_category,
                        window_size=window,
                        average=average,
                        games_played=len(window_records),
                        last_updated=now,
                    )
                )

        await self.store.upsert(snapshots)
        return snapshots

    async def process_all_players(self, max_concurrency: int = 1) -> dict[str, int]:
        """
        Recompute splits for every player active in the trailing activity window.

        Per-player failures are logged and counted; they never stop the batch.
        ``max_concurrency`` > 1 runs players concurrently under a semaphore.
        """
        start_time = time.time()
        since = self.clock().date() - timedelta(days=self.settings.activity_window_days)
        player_ids = await self.source.fetch_active_player_ids(since)
        total = len(player_ids)
        logger.info(f"[ROLLING-SPLITS] Found {total} active players since {since}")

        processed = 0
        errors = 0
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def run_one(player_id: int) -> None:
            nonlocal processed, errors
            async with semaphore:
                try:
                    await self.compute_rolling_splits(player_id)
                except Exception as e:
                    errors += 1
                    logger.error(f"[ROLLING-SPLITS] Failed to process player {player_id}: {type(e).__name__}: {e}")
                    return
                processed += 1
                if processed % 50 == 0:
                    logger.info(f"[ROLLING-SPLITS] Processed {processed}/{total} players")

        if max_concurrency <= 1:
            for player_id in player_ids:
                await run_one(player_id)
        else:
            await asyncio.gather(*(run_one(pid) for pid in player_ids))

        duration = time.time() - start_time
        logger.info(
            f"[ROLLING-SPLITS] Completed in {duration:.1f}s. Processed: {processed}, Errors: {errors}, Total: {total}"
        )
        return {"processed": processed, "errors": errors, "total": total}
