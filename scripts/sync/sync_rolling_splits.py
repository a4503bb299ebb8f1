#!/usr/bin/env python3
"""
Recompute rolling splits for every active player (or a chosen few).

Design Pattern: Batch Job with per-player failure isolation
- Each player's snapshots are upserted independently
- A failing player is counted and logged, the batch continues

Algorithm: For each player active in the last ACTIVITY_WINDOW_DAYS days,
slice the trailing games into windows and upsert per-stat averages.
Big O: O(P * W) where P = active players, W = largest window

Usage:
  python scripts/sync/sync_rolling_splits.py --dsn "$DATABASE_URL"
  python scripts/sync/sync_rolling_splits.py --player-id 237 --player-id 115 --windows 5 10
  python scripts/sync/sync_rolling_splits.py --max-concurrency 4 --ensure-schema

Exit code is 0 when every player succeeded, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../webapp'))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Recompute rolling splits and upsert them into Postgres.")
    p.add_argument("--dsn", default=None, help="Postgres DSN (or set DATABASE_URL).")
    p.add_argument("--player-id", type=int, action="append", default=None,
                   help="Only this player (repeatable). Default: every active player.")
    p.add_argument("--windows", type=int, nargs="+", default=None,
                   help="Window sizes in games (default: 5 10 15 20 30).")
    p.add_argument("--max-concurrency", type=int, default=1, help="Players processed concurrently.")
    p.add_argument("--ensure-schema", action="store_true", help="Create the rolling_splits table if missing.")
    return p.parse_args(argv)


async def run(args: argparse.Namespace) -> dict[str, int]:
    # Imported after DATABASE_URL is set so config picks up --dsn
    from props_api.analytics.rolling_splits import RollingSplitsComputer
    from props_api.config import load_settings
    from props_api.data_sources.game_logs import PostgresGameLogSource
    from props_api.data_sources.rolling_split_store import PostgresRollingSplitStore
    from props_api.db import close_pool
    from props_api.logging_config import get_logger

    logger = get_logger(__name__)
    settings = load_settings()
    if args.windows:
        settings = settings.with_overrides(rolling_windows=tuple(args.windows))

    store = PostgresRollingSplitStore(timeout_seconds=settings.upstream_timeout_seconds)
    computer = RollingSplitsComputer(
        PostgresGameLogSource(timeout_seconds=settings.upstream_timeout_seconds),
        store,
        settings,
    )

    try:
        if args.ensure_schema:
            await store.ensure_schema()

        if not args.player_id:
            return await computer.process_all_players(max_concurrency=args.max_concurrency)

        processed = errors = 0
        for player_id in args.player_id:
            try:
                snapshots = await computer.compute_rolling_splits(player_id)
            except Exception as e:
                errors += 1
                logger.error(f"[ROLLING-SPLITS] Failed to process player {player_id}: {type(e).__name__}: {e}")
                continue
            processed += 1
            logger.info(f"[ROLLING-SPLITS] player_id={player_id}: {len(snapshots)} rows upserted")
        return {"processed": processed, "errors": errors, "total": len(args.player_id)}
    finally:
        await close_pool()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.dsn:
        os.environ["DATABASE_URL"] = args.dsn

    start_time = time.time()
    result = asyncio.run(run(args))
    duration = time.time() - start_time

    print(f"Rolling splits sync completed in {duration:.1f}s: {json.dumps(result)}")
    return 0 if result["errors"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
