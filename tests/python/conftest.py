"""
Shared fixtures: in-memory game-log source, rolling-split store and cache reset.

The fakes implement the same async protocol as the Postgres classes so the
engines, service and HTTP routes run end to end without a database.
"""

import os
import tempfile

# Keep test runs from writing into webapp/logs or webapp/.cache
os.environ.setdefault("PROPS_API_LOG_DIR", tempfile.mkdtemp(prefix="props_api_logs_"))
os.environ.setdefault("PROPS_API_CACHE_DIR", tempfile.mkdtemp(prefix="props_api_cache_"))

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest

from props_api import cache as cache_module
from props_api import fallback as fallback_module
from props_api import service as service_module
from props_api.errors import PersistenceFailure, PlayerNotFoundError
from props_api.models import GameStatRecord, RollingSplitSnapshot

FIXED_NOW = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


def make_record(
    game_id: int,
    game_date: date,
    player_id: int = 1,
    team_id: int = 100,
    opponent_team_id: int = 200,
    is_home: bool = True,
    minutes: float = 32.0,
    opponent_abbreviation: Optional[str] = None,
    **stats,
) -> GameStatRecord:
    return GameStatRecord(
        game_id=game_id,
        player_id=player_id,
        team_id=team_id,
        game_date=game_date,
        opponent_team_id=opponent_team_id,
        is_home=is_home,
        minutes=minutes,
        opponent_abbreviation=opponent_abbreviation,
        **stats,
    )


def points_log(values: Sequence[int], player_id: int = 1, end: date = date(2025, 1, 30), **kwargs) -> list[GameStatRecord]:
    """One game every other day, ``values`` most recent first."""
    return [
        make_record(
            game_id=player_id * 1000 + len(values) - i,
            game_date=end - timedelta(days=2 * i),
            player_id=player_id,
            pts=v,
            **kwargs,
        )
        for i, v in enumerate(values)
    ]


class FakeGameLogSource:
    def __init__(
        self,
        records: Sequence[GameStatRecord] = (),
        known_players: Optional[set[int]] = None,
        teammate_games: Optional[dict[int, set[int]]] = None,
    ):
        self.records = list(records)
        self.known_players = set(known_players or ()) | {r.player_id for r in self.records}
        self.teammate_games = teammate_games or {}
        self.error: Optional[Exception] = None
        self.calls = 0

    def _check(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error

    @staticmethod
    def _in_range(r: GameStatRecord, start: Optional[date], end: Optional[date]) -> bool:
        return (start is None or r.game_date >= start) and (end is None or r.game_date <= end)

    async def fetch_game_log(self, player_id, start_date=None, end_date=None):
        self._check()
        if player_id not in self.known_players:
            raise PlayerNotFoundError(player_id)
        rows = [r for r in self.records if r.player_id == player_id and self._in_range(r, start_date, end_date)]
        return sorted(rows, key=lambda r: r.game_date, reverse=True)

    async def fetch_season_records(self, start_date, end_date):
        self._check()
        rows = [r for r in self.records if self._in_range(r, start_date, end_date)]
        return sorted(rows, key=lambda r: r.game_date, reverse=True)

    async def fetch_active_player_ids(self, since):
        self._check()
        return sorted({r.player_id for r in self.records if r.game_date >= since})

    async def fetch_games_with_teammates(self, player_id, teammate_ids):
        self._check()
        games: set[int] = set()
        for teammate_id in teammate_ids:
            games |= self.teammate_games.get(teammate_id, set())
        return games


class FakeRollingSplitStore:
    def __init__(self, fail_for: Sequence[int] = ()):
        self.rows: dict[tuple[int, str, int], RollingSplitSnapshot] = {}
        self.fail_for = set(fail_for)
        self.upserts = 0

    async def upsert(self, snapshots):
        for s in snapshots:
            if s.player_id in self.fail_for:
                raise PersistenceFailure(f"rolling split upsert for player {s.player_id} failed: boom")
        for s in snapshots:
            self.rows[s.key] = s
        self.upserts += 1
        return len(snapshots)

    async def fetch(self, player_id, stat_category=None):
        return sorted(
            (s for s in self.rows.values()
             if s.player_id == player_id and (stat_category is None or s.stat_category == stat_category)),
            key=lambda s: (s.stat_category, s.window_size),
        )


class FakeClock:
    """Monotonic seconds under test control."""
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_process_state(monkeypatch):
    """Fresh process-wide cache, fallback coordinator and service per test."""
    cache_module.set_cache(cache_module.SimpleCache(enabled=True))
    monkeypatch.setattr(fallback_module, "_coordinator", None)
    service_module.set_service(None)
    yield
    cache_module.set_cache(None)
    service_module.set_service(None)


@pytest.fixture
def clock():
    return FakeClock()
