"""Postgres-backed source and store: timeout and driver-error mapping, schema, stale serving."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import psycopg
import pytest

from conftest import FIXED_NOW, points_log
from props_api.cache import SimpleCache
from props_api.config import load_settings
from props_api.data_sources import rolling_split_store
from props_api.data_sources.game_logs import PostgresGameLogSource
from props_api.data_sources.rolling_split_store import SCHEMA_SQL, PostgresRollingSplitStore
from props_api.errors import PersistenceFailure, UpstreamFailure
from props_api.models import RollingSplitSnapshot
from props_api.service import PropAnalyticsService

SEASON_START, SEASON_END = date(2024, 10, 1), date(2025, 6, 30)


async def hang(*args, **kwargs):
    await asyncio.sleep(1)


async def refuse(*args, **kwargs):
    raise psycopg.OperationalError("connection refused")


def snapshot(**overrides):
    values = dict(
        player_id=1, stat_category="pts", window_size=5,
        average=Decimal("25.3"), games_played=5, last_updated=FIXED_NOW,
    )
    values.update(overrides)
    return RollingSplitSnapshot(**values)


@pytest.mark.parametrize("fake_fetch", [hang, refuse])
def test_game_log_failures_become_upstream_failure(monkeypatch, fake_fetch):
    monkeypatch.setattr(PostgresGameLogSource, "_fetch_records", fake_fetch)
    source = PostgresGameLogSource(timeout_seconds=0.01)

    with pytest.raises(UpstreamFailure):
        asyncio.run(source.fetch_season_records(SEASON_START, SEASON_END))
    with pytest.raises(UpstreamFailure):
        asyncio.run(source.fetch_game_log(1))


def test_game_log_timeout_message_names_the_query(monkeypatch):
    monkeypatch.setattr(PostgresGameLogSource, "_fetch_records", hang)
    with pytest.raises(UpstreamFailure, match="timed out after 0.01s"):
        asyncio.run(PostgresGameLogSource(timeout_seconds=0.01).fetch_game_log(7))


@pytest.mark.parametrize("fake_write", [hang, refuse])
def test_store_write_failures_become_persistence_failure(monkeypatch, fake_write):
    monkeypatch.setattr(PostgresRollingSplitStore, "_write", fake_write)
    store = PostgresRollingSplitStore(timeout_seconds=0.01)

    with pytest.raises(PersistenceFailure, match="player 1"):
        asyncio.run(store.upsert([snapshot()]))


def test_store_empty_upsert_skips_database(monkeypatch):
    monkeypatch.setattr(PostgresRollingSplitStore, "_write", refuse)
    assert asyncio.run(PostgresRollingSplitStore().upsert([])) == 0


def test_average_column_keeps_scale():
    assert "numeric(" not in SCHEMA_SQL
    assert "average        numeric      NOT NULL" in SCHEMA_SQL


def test_ensure_schema_times_out(monkeypatch):
    @asynccontextmanager
    async def slow_connection():
        await asyncio.sleep(1)
        yield None

    monkeypatch.setattr(rolling_split_store, "get_db_connection", slow_connection)
    with pytest.raises(PersistenceFailure, match="schema setup timed out"):
        asyncio.run(PostgresRollingSplitStore(timeout_seconds=0.01).ensure_schema())


def test_ensure_schema_driver_error(monkeypatch):
    @asynccontextmanager
    async def broken_connection():
        raise psycopg.OperationalError("connection refused")
        yield None

    monkeypatch.setattr(rolling_split_store, "get_db_connection", broken_connection)
    with pytest.raises(PersistenceFailure, match="connection refused"):
        asyncio.run(PostgresRollingSplitStore(timeout_seconds=0.01).ensure_schema())


def test_hung_database_serves_expired_league_view(monkeypatch, clock):
    state = {"hung": False}
    records = points_log([20, 22, 18], opponent_team_id=5) + points_log([30], player_id=2, opponent_team_id=6)

    async def fetch(self, where_sql, params):
        if state["hung"]:
            await asyncio.sleep(1)
        return records

    monkeypatch.setattr(PostgresGameLogSource, "_fetch_records", fetch)
    service = PropAnalyticsService(
        PostgresGameLogSource(timeout_seconds=0.01),
        cache=SimpleCache(ttl_seconds=60, clock=clock, enabled=True),
        settings=load_settings().with_overrides(opponent_min_games=1),
    )

    fresh = asyncio.run(service.get_opponent_trends("pts", "2024-25"))
    assert [t.opponent_team_id for t in fresh] == [5, 6]

    state["hung"] = True
    clock.advance(7200)
    degraded = asyncio.run(service.get_opponent_trends("pts", "2024-25"))

    assert degraded == fresh
    fallback = service.fallback_state()
    assert fallback["is_fallback_mode"] is True
    assert "UpstreamFailure" in fallback["last_error"]
