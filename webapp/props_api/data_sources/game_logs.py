"""
Game-log source - read per-game player box scores from the warehouse.

Design Pattern: Repository Pattern for data access
Algorithm: Parameterized SQL over player_stats JOIN games, mapped to GameStatRecord
Big O: O(n) where n = number of rows returned

Every query runs under ``asyncio.wait_for``; timeouts and driver errors are
re-raised as UpstreamFailure so the fallback boundary can absorb them.
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, TypeVar

import psycopg
from psycopg.rows import dict_row

from .. import config
from ..db import get_db_connection
from ..errors import PlayerNotFoundError, UpstreamFailure
from ..logging_config import get_logger
from ..models import GameStatRecord, parse_minutes

logger = get_logger(__name__)

T = TypeVar("T")


class GameLogSource(Protocol):
    async def fetch_game_log(
        self,
        player_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[GameStatRecord]:
        """Player's games, most recent first. Raises PlayerNotFoundError for unknown ids."""
        ...

    async def fetch_season_records(self, start_date: date, end_date: date) -> list[GameStatRecord]:
        """Every player's games in the date range, most recent first."""
        ...

    async def fetch_active_player_ids(self, since: date) -> list[int]:
        ...

    async def fetch_games_with_teammates(self, player_id: int, teammate_ids: Sequence[int]) -> set[int]:
        """Game ids where any of ``teammate_ids`` played on the player's team."""
        ...


_RECORD_COLUMNS = """
    ps.game_id,
    ps.player_id,
    ps.team_id,
    g.date::date AS game_date,
    CASE WHEN g.home_team_id = ps.team_id THEN g.visitor_team_id ELSE g.home_team_id END AS opponent_team_id,
    (g.home_team_id = ps.team_id) AS is_home,
    ps.min,
    ps.pts, ps.reb, ps.ast, ps.stl, ps.blk, ps.turnover,
    ps.fgm, ps.fga, ps.fg3m, ps.fg3a, ps.ftm, ps.fta,
    opp.abbreviation AS opponent_abbreviation
"""

_RECORD_FROM = """
FROM player_stats ps
JOIN games g ON g.id = ps.game_id
LEFT JOIN teams opp
  ON opp.id = CASE WHEN g.home_team_id = ps.team_id THEN g.visitor_team_id ELSE g.home_team_id END
"""


def row_to_record(row: dict[str, Any]) -> GameStatRecord:
    """Map a result row (dict_row) to a GameStatRecord, treating NULL counts as 0."""
    def count(name: str) -> int:
        return int(row.get(name) or 0)

    return GameStatRecord(
        game_id=int(row["game_id"]),
        player_id=int(row["player_id"]),
        team_id=int(row["team_id"]),
        game_date=row["game_date"],
        opponent_team_id=int(row["opponent_team_id"]),
        is_home=bool(row["is_home"]),
        minutes=parse_minutes(row.get("min")),
        pts=count("pts"),
        reb=count("reb"),
        ast=count("ast"),
        stl=count("stl"),
        blk=count("blk"),
        turnover=count("turnover"),
        fgm=count("fgm"),
        fga=count("fga"),
        fg3m=count("fg3m"),
        fg3a=count("fg3a"),
        ftm=count("ftm"),
        fta=count("fta"),
        opponent_abbreviation=row.get("opponent_abbreviation"),
    )


class PostgresGameLogSource:
    def __init__(self, timeout_seconds: float = config.UPSTREAM_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds

    async def _call(self, what: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(f"{what} timed out after {self.timeout_seconds}s") from e
        except psycopg.Error as e:
            raise UpstreamFailure(f"{what} failed: {e}") from e

    async def _fetch_records(self, where_sql: str, params: Sequence[Any]) -> list[GameStatRecord]:
        sql = f"SELECT {_RECORD_COLUMNS} {_RECORD_FROM} WHERE {where_sql} ORDER BY g.date DESC, ps.game_id DESC"
        async with get_db_connection() as conn:
            cur = conn.cursor(row_factory=dict_row)
            await cur.execute(sql, params)
            rows = await cur.fetchall()
        return [row_to_record(row) for row in rows]

    async def _player_exists(self, player_id: int) -> bool:
        async with get_db_connection() as conn:
            cur = await conn.execute("SELECT 1 FROM players WHERE id = %s", (player_id,))
            return await cur.fetchone() is not None

    async def fetch_game_log(
        self,
        player_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[GameStatRecord]:
        conditions = ["ps.player_id = %s"]
        params: list[Any] = [player_id]
        if start_date is not None:
            conditions.append("g.date::date >= %s")
            params.append(start_date)
        if end_date is not None:
            conditions.append("g.date::date <= %s")
            params.append(end_date)

        records = await self._call(
            f"game log for player {player_id}",
            lambda: self._fetch_records(" AND ".join(conditions), params),
        )
        logger.debug(f"Fetched {len(records)} games for player_id={player_id} ({start_date} -> {end_date})")

        if not records:
            exists = await self._call(f"player lookup {player_id}", lambda: self._player_exists(player_id))
            if not exists:
                raise PlayerNotFoundError(player_id)
        return records

    async def fetch_season_records(self, start_date: date, end_date: date) -> list[GameStatRecord]:
        records = await self._call(
            f"league records {start_date} -> {end_date}",
            lambda: self._fetch_records("g.date::date >= %s AND g.date::date <= %s", [start_date, end_date]),
        )
        logger.info(f"Fetched {len(records)} league player-games for {start_date} -> {end_date}")
        return records

    async def fetch_active_player_ids(self, since: date) -> list[int]:
        async def query() -> list[int]:
            async with get_db_connection() as conn:
                cur = await conn.execute(
                    """
                    SELECT DISTINCT ps.player_id
                    FROM player_stats ps
                    JOIN games g ON g.id = ps.game_id
                    WHERE g.date::date >= %s
                    ORDER BY ps.player_id
                    """,
                    (since,),
                )
                return [int(row[0]) for row in await cur.fetchall()]

        return await self._call(f"active players since {since}", query)

    async def fetch_games_with_teammates(self, player_id: int, teammate_ids: Sequence[int]) -> set[int]:
        if not teammate_ids:
            return set()

        async def query() -> set[int]:
            async with get_db_connection() as conn:
                cur = await conn.execute(
                    """
                    SELECT DISTINCT ps.game_id
                    FROM player_stats ps
                    JOIN player_stats tm
                      ON tm.game_id = ps.game_id
                     AND tm.team_id = ps.team_id
                    WHERE ps.player_id = %s
                      AND tm.player_id = ANY(%s)
                    """,
                    (player_id, list(teammate_ids)),
                )
                return {int(row[0]) for row in await cur.fetchall()}

        return await self._call(f"teammate games for player {player_id}", query)
