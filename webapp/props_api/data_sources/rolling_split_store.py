"""
Rolling-split store - persist trailing-window averages per player/stat/window.

Design Pattern: Repository Pattern with idempotent upsert
Algorithm: INSERT ... ON CONFLICT (player_id, stat_category, window_size) DO UPDATE
Big O: O(k) per upsert batch where k = number of snapshots

Snapshots are upserted, never deleted. ``average`` is an unconstrained NUMERIC
column so the Decimal computed upstream keeps its own scale (0.455 stays 0.455,
25.0 stays 25.0) and reads back unchanged.
"""

import asyncio
from typing import Optional, Protocol, Sequence

import psycopg
from psycopg.rows import dict_row

from .. import config
from ..db import get_db_connection
from ..errors import PersistenceFailure
from ..logging_config import get_logger
from ..models import RollingSplitSnapshot

logger = get_logger(__name__)


class RollingSplitStore(Protocol):
    async def upsert(self, snapshots: Sequence[RollingSplitSnapshot]) -> int:
        """Write snapshots, replacing existing rows with the same key. Returns rows written."""
        ...

    async def fetch(self, player_id: int, stat_category: Optional[str] = None) -> list[RollingSplitSnapshot]:
        ...


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rolling_splits (
  player_id      integer      NOT NULL,
  stat_category  varchar(20)  NOT NULL,
  window_size    integer      NOT NULL,
  average        numeric      NOT NULL,
  games_played   integer      NOT NULL,
  last_updated   timestamptz  NOT NULL DEFAULT now(),
  PRIMARY KEY (player_id, stat_category, window_size)
)
"""

UPSERT_SQL = """
INSERT INTO rolling_splits(player_id, stat_category, window_size, average, games_played, last_updated)
VALUES (%s,%s,%s,%s,%s,%s)
ON CONFLICT (player_id, stat_category, window_size)
DO UPDATE SET
  average = EXCLUDED.average,
  games_played = EXCLUDED.games_played,
  last_updated = EXCLUDED.last_updated
"""


class PostgresRollingSplitStore:
    def __init__(self, timeout_seconds: float = config.UPSTREAM_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds

    async def ensure_schema(self) -> None:
        async def create() -> None:
            async with get_db_connection() as conn:
                await conn.execute(SCHEMA_SQL)

        try:
            await asyncio.wait_for(create(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"rolling_splits schema setup timed out after {self.timeout_seconds}s") from e
        except psycopg.Error as e:
            raise PersistenceFailure(f"rolling_splits schema setup failed: {e}") from e
        logger.info("rolling_splits table ready")

    async def _write(self, snapshots: Sequence[RollingSplitSnapshot]) -> int:
        rows = [
            (s.player_id, s.stat_category, s.window_size, s.average, s.games_played, s.last_updated)
            for s in snapshots
        ]
        async with get_db_connection() as conn:
            async with conn.transaction():
                cur = conn.cursor()
                await cur.executemany(UPSERT_SQL, rows)
        return len(rows)

    async def upsert(self, snapshots: Sequence[RollingSplitSnapshot]) -> int:
        if not snapshots:
            return 0
        player_id = snapshots[0].player_id
        try:
            written = await asyncio.wait_for(self._write(snapshots), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(
                f"rolling split upsert for player {player_id} timed out after {self.timeout_seconds}s"
            ) from e
        except psycopg.Error as e:
            raise PersistenceFailure(f"rolling split upsert for player {player_id} failed: {e}") from e
        logger.debug(f"Upserted {written} rolling split rows for player_id={player_id}")
        return written

    async def fetch(self, player_id: int, stat_category: Optional[str] = None) -> list[RollingSplitSnapshot]:
        sql = """
        SELECT player_id, stat_category, window_size, average, games_played, last_updated
        FROM rolling_splits
        WHERE player_id = %s
        """
        params: list = [player_id]
        if stat_category:
            sql += " AND stat_category = %s"
            params.append(stat_category)
        sql += " ORDER BY stat_category, window_size"

        async def query() -> list[RollingSplitSnapshot]:
            async with get_db_connection() as conn:
                cur = conn.cursor(row_factory=dict_row)
                await cur.execute(sql, params)
                return [RollingSplitSnapshot(**row) for row in await cur.fetchall()]

        try:
            return await asyncio.wait_for(query(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"rolling split read for player {player_id} timed out") from e
        except psycopg.Error as e:
            raise PersistenceFailure(f"rolling split read for player {player_id} failed: {e}") from e
