"""FallbackCoordinator and the service's cache/fallback wiring."""

import asyncio
import math

import pytest

from conftest import FakeGameLogSource, points_log
from props_api.cache import SimpleCache, build_cache_key
from props_api.errors import PlayerNotFoundError, UpstreamFailure, ValidationError
from props_api.fallback import FallbackCoordinator
from props_api.service import PropAnalyticsService


def failing(exc):
    async def primary():
        raise exc
    return primary


def test_failure_serves_stale_cached_value(clock):
    cache = SimpleCache(ttl_seconds=60, clock=clock, enabled=True)
    cache.set("key", "cached")
    clock.advance(3600)
    coordinator = FallbackCoordinator(cache, clock=clock)

    result = asyncio.run(coordinator.with_fallback(failing(UpstreamFailure("timeout")), "key", "default"))

    assert result == "cached"
    state = coordinator.get_state()
    assert state["is_fallback_mode"]
    assert state["failure_count"] == 1
    assert "UpstreamFailure" in state["last_error"]
    assert state["last_error_time"] == clock.now


def test_failure_without_cache_serves_default(clock):
    coordinator = FallbackCoordinator(SimpleCache(enabled=True, clock=clock), clock=clock)
    result = asyncio.run(coordinator.with_fallback(failing(RuntimeError("boom")), "key", {"empty": True}))
    assert result == {"empty": True}


def test_validation_errors_propagate(clock):
    coordinator = FallbackCoordinator(SimpleCache(enabled=True, clock=clock), clock=clock)
    with pytest.raises(ValidationError):
        asyncio.run(coordinator.with_fallback(failing(ValidationError("bad line")), "key", None))
    with pytest.raises(PlayerNotFoundError):
        asyncio.run(coordinator.with_fallback(failing(PlayerNotFoundError(9)), "key", None))
    assert not coordinator.get_state()["is_fallback_mode"]


def test_recovery_leaves_fallback_mode(clock):
    coordinator = FallbackCoordinator(SimpleCache(enabled=True, clock=clock), clock=clock)
    asyncio.run(coordinator.with_fallback(failing(UpstreamFailure("down")), "key", None))
    assert coordinator.get_state()["is_fallback_mode"]

    async def ok():
        return "fresh"

    assert asyncio.run(coordinator.with_fallback(ok, "key", None)) == "fresh"
    assert coordinator.get_state() == {
        "is_fallback_mode": False,
        "last_error": None,
        "last_error_time": None,
        "failure_count": 0,
    }


def make_service(source, clock):
    return PropAnalyticsService(source, cache=SimpleCache(ttl_seconds=60, clock=clock, enabled=True))


def test_service_caches_analysis(clock):
    source = FakeGameLogSource(points_log([30, 10]))
    service = make_service(source, clock)

    first = asyncio.run(service.analyze_prop(1, "pts", 20))
    second = asyncio.run(service.analyze_prop(1, "pts", 20))
    assert first == second
    assert source.calls == 1

    asyncio.run(service.analyze_prop(1, "pts", 20, bypass_cache=True))
    assert source.calls == 2


def test_service_outage_with_expired_entry_serves_it(clock):
    source = FakeGameLogSource(points_log([30, 10]))
    service = make_service(source, clock)
    fresh = asyncio.run(service.analyze_prop(1, "pts", 20))

    clock.advance(10 * 60)
    source.error = UpstreamFailure("game log timed out")
    degraded = asyncio.run(service.analyze_prop(1, "pts", 20))

    assert degraded == fresh
    assert service.fallback_state()["is_fallback_mode"]


def test_service_outage_without_cache_serves_empty_result(clock):
    source = FakeGameLogSource(points_log([30, 10]))
    source.error = UpstreamFailure("connection refused")
    service = make_service(source, clock)

    result = asyncio.run(service.analyze_prop(1, "pts", 20))
    assert result.no_data_available
    assert result.total_games == 0

    assert asyncio.run(service.get_game_outcomes(1, "pts", 20)) == []
    assert asyncio.run(service.get_opponent_trends("pts", "2024-25")) == []
    assert asyncio.run(service.get_advanced_metrics(1, "pts", "2024-25")).no_data_available


def test_service_rejects_unsupported_category(clock):
    service = make_service(FakeGameLogSource(points_log([30])), clock)
    with pytest.raises(ValidationError):
        asyncio.run(service.analyze_prop(1, "dunks", 1.5))
    with pytest.raises(ValidationError):
        asyncio.run(service.get_opponent_trends("pts", "2024"))


def test_service_unknown_player_is_not_absorbed(clock):
    service = make_service(FakeGameLogSource(points_log([30])), clock)
    with pytest.raises(PlayerNotFoundError):
        asyncio.run(service.analyze_prop(404, "pts", 20))


def test_service_keys_are_deterministic(clock):
    source = FakeGameLogSource(points_log([30, 10]))
    service = make_service(source, clock)
    asyncio.run(service.analyze_prop(1, "PTS", 20.0))
    asyncio.run(service.analyze_prop(1, "pts", 20))
    assert source.calls == 1
    assert service.cache.get(build_cache_key("prop-analysis", 1, "pts", 20)) is not None


@pytest.mark.parametrize("line", [math.inf, math.nan])
def test_service_rejects_non_finite_line_without_fallback(clock, line):
    source = FakeGameLogSource(points_log([30, 10]))
    service = make_service(source, clock)

    with pytest.raises(ValidationError):
        asyncio.run(service.get_advanced_metrics(1, "pts", "2024-25", line=line))
    with pytest.raises(ValidationError):
        asyncio.run(service.get_alt_lines(1, "pts", line))

    assert source.calls == 0
    assert service.fallback_state()["is_fallback_mode"] is False
    assert service.fallback_state()["failure_count"] == 0
