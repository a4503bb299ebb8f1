"""HTTP surface: status codes, response shapes and error mapping."""

import asyncio

import psycopg
import pytest
from fastapi.testclient import TestClient

from conftest import FIXED_NOW, FakeGameLogSource, FakeRollingSplitStore, points_log
from props_api import config as props_config
from props_api.cache import SimpleCache
from props_api.endpoints import health as health_endpoint
from props_api.errors import UpstreamFailure
from props_api.main import app
from props_api.service import PropAnalyticsService, set_service

SEASON = "2024-25"


@pytest.fixture
def source():
    return FakeGameLogSource(
        points_log([30, 28, 25, 22, 20, 18, 15, 12, 10, 8], player_id=1, opponent_team_id=7)
        + points_log([5, 9], player_id=2, opponent_team_id=8),
        known_players={3},
    )


@pytest.fixture
def service(source):
    svc = PropAnalyticsService(source, FakeRollingSplitStore(), cache=SimpleCache(enabled=True))
    svc.splits.clock = lambda: FIXED_NOW
    set_service(svc)
    return svc


@pytest.fixture
def client(service):
    return TestClient(app)


def test_analyze_prop(client):
    response = client.post("/api/analyze-prop", json={"player_id": 1, "prop_type": "pts", "prop_line": 20})
    assert response.status_code == 200
    body = response.json()
    analysis = body["analysis"]
    assert (analysis["hit_rate"], analysis["over_count"], analysis["average"]) == (50, 5, 18.8)
    assert analysis["recent_form"]["last5"]["games"] == 5
    assert "games" not in body
    assert body["fallback"]["is_fallback_mode"] is False


def test_analyze_prop_with_filters_and_games(client):
    response = client.post(
        "/api/analyze-prop",
        json={
            "player_id": 1,
            "prop_type": "pts",
            "prop_line": 20,
            "include_games": True,
            "filters": {"last_n_games": 3, "start_date": "2024-12-01"},
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["total_games"] == 3
    assert [g["result"] for g in body["games"]] == ["over", "over", "over"]
    assert body["games"][0]["game_date"] == "2025-01-30"


def test_analyze_prop_no_data_is_200(client):
    response = client.post(
        "/api/analyze-prop",
        json={"player_id": 3, "prop_type": "pra", "prop_line": 30.5},
    )
    assert response.status_code == 200
    assert response.json()["analysis"]["no_data_available"] is True


def test_analyze_prop_errors(client):
    bad_prop = client.post("/api/analyze-prop", json={"player_id": 1, "prop_type": "dunks", "prop_line": 1})
    assert bad_prop.status_code == 400
    assert "Unsupported stat category" in bad_prop.json()["detail"]

    missing = client.post("/api/analyze-prop", json={"player_id": 404, "prop_type": "pts", "prop_line": 20})
    assert missing.status_code == 404

    negative = client.post("/api/analyze-prop", json={"player_id": 1, "prop_type": "pts", "prop_line": -2})
    assert negative.status_code == 400

    bad_filter = client.post(
        "/api/analyze-prop",
        json={"player_id": 1, "prop_type": "pts", "prop_line": 20, "filters": {"home_away": "neutral"}},
    )
    assert bad_filter.status_code == 422


def test_non_finite_line_is_400(client, service):
    overflow = client.post(
        "/api/analyze-prop",
        content='{"player_id": 1, "prop_type": "pts", "prop_line": 1e309}',
        headers={"Content-Type": "application/json"},
    )
    assert overflow.status_code == 400

    alt = client.get("/api/alt-lines", params={"player_id": 1, "prop_type": "pts", "line": "inf"})
    assert alt.status_code == 400

    metrics = client.get(
        "/api/analytics/advanced",
        params={"endpoint": "advanced-metrics", "prop_type": "pts", "player_id": 1, "season": SEASON, "line": "inf"},
    )
    assert metrics.status_code == 400
    assert service.fallback_state()["is_fallback_mode"] is False


def test_analyze_prop_upstream_outage_degrades(client, source):
    source.error = UpstreamFailure("connection refused")
    response = client.post("/api/analyze-prop", json={"player_id": 1, "prop_type": "pts", "prop_line": 20})
    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["no_data_available"] is True
    assert body["fallback"]["is_fallback_mode"] is True
    assert body["fallback"]["failure_count"] == 1


def test_prop_types(client):
    prop_types = client.get("/api/prop-types").json()["prop_types"]
    values = [p["value"] for p in prop_types]
    assert {"pts", "reb", "ast", "pra", "fg3m"} <= set(values)
    assert all(p["label"] for p in prop_types)


def test_expected_value(client):
    response = client.get("/api/expected-value", params={"hit_rate": 60, "odds": -150})
    assert response.status_code == 200
    assert response.json()["expected_value"] == 0.0

    response = client.get("/api/expected-value", params={"hit_rate": 50, "odds": 150, "wager": 50})
    body = response.json()
    assert (body["expected_value"], body["roi_pct"]) == (12.5, 25.0)

    assert client.get("/api/expected-value", params={"hit_rate": 60, "odds": 0}).status_code == 400
    assert client.get("/api/expected-value", params={"hit_rate": 160, "odds": -110}).status_code == 422


def test_alt_lines(client):
    response = client.get("/api/alt-lines", params={"player_id": 1, "prop_type": "pts", "line": 20})
    assert response.status_code == 200
    body = response.json()
    assert body["base_line"] == 20
    by_line = {a["line"]: a for a in body["alt_lines"]}
    assert by_line[20.0]["fair_odds"] == -100
    assert len(body["alt_lines"]) == 9


@pytest.mark.parametrize(
    "endpoint,key",
    [("opponent-trends", "trends"), ("season-comparison", "comparison"), ("advanced-metrics", "metrics")],
)
def test_advanced_analytics_get(client, endpoint, key):
    response = client.get(
        "/api/analytics/advanced",
        params={"endpoint": endpoint, "prop_type": "pts", "player_id": 1, "season": SEASON},
    )
    assert response.status_code == 200
    body = response.json()
    assert key in body
    assert "fallback" in body


def test_advanced_metrics_payload(client):
    body = client.get(
        "/api/analytics/advanced",
        params={"endpoint": "advanced-metrics", "prop_type": "pts", "player_id": 1, "season": SEASON, "line": 20},
    ).json()
    metrics = body["metrics"]
    assert metrics["games"] == 10
    assert metrics["consistency"]["streak_threshold"] == 20
    assert metrics["consistency"]["current_streak"]["type"] == "over"


def test_advanced_analytics_requires_player(client):
    response = client.get(
        "/api/analytics/advanced",
        params={"endpoint": "season-comparison", "prop_type": "pts", "season": SEASON},
    )
    assert response.status_code == 400


def test_advanced_analytics_bad_season(client):
    response = client.get(
        "/api/analytics/advanced",
        params={"endpoint": "opponent-trends", "prop_type": "pts", "season": "2024"},
    )
    assert response.status_code == 400


def test_advanced_analytics_batch_mixed(client):
    response = client.post(
        "/api/analytics/advanced",
        json={
            "requests": [
                {"type": "opponent-trends", "prop_type": "pts", "season": SEASON},
                {"type": "season-comparison", "prop_type": "pts", "season": SEASON},
                {"type": "advanced-metrics", "prop_type": "reb", "player_id": 404, "season": SEASON},
                {"type": "advanced-metrics", "prop_type": "pts", "player_id": 2, "season": SEASON},
            ]
        },
    )
    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["success"] for r in results] == [True, False, False, True]
    assert "player_id is required" in results[1]["error"]
    assert results[1]["request"]["type"] == "season-comparison"
    assert results[3]["data"]["games"] == 2


def test_advanced_analytics_batch_empty_and_oversized(client):
    assert client.post("/api/analytics/advanced", json={"requests": []}).status_code == 400
    too_many = [{"type": "opponent-trends", "prop_type": "pts"}] * 26
    assert client.post("/api/analytics/advanced", json={"requests": too_many}).status_code == 422


def test_cron_sync_rolling_splits(client, service):
    response = client.post("/api/cron/sync-rolling-splits", params={"max_concurrency": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"] == {"processed": 2, "errors": 0, "total": 2}
    assert "duration_seconds" in body


def test_rolling_splits_compute_then_read(client):
    assert client.get("/api/rolling-splits/1").json()["splits"] == []

    written = client.post("/api/rolling-splits/1", params=[("windows", 5), ("windows", 10)])
    assert written.status_code == 200
    assert written.json()["written"] > 0

    body = client.get("/api/rolling-splits/1", params={"stat_category": "pts"}).json()
    by_window = {s["window_size"]: s for s in body["splits"]}
    assert set(by_window) == {5, 10}
    assert by_window[5]["average"] == "25.0"
    assert by_window[5]["last_updated"] == FIXED_NOW.isoformat()

    # the earlier empty read was invalidated by the write
    assert len(client.get("/api/rolling-splits/1").json()["splits"]) == written.json()["written"]


def test_rolling_splits_invalid_window(client):
    response = client.post("/api/rolling-splits/1", params={"windows": 0})
    assert response.status_code == 400


def test_rolling_splits_store_failure_is_503(source):
    svc = PropAnalyticsService(source, FakeRollingSplitStore(fail_for=[1]), cache=SimpleCache(enabled=True))
    svc.splits.clock = lambda: FIXED_NOW
    set_service(svc)
    response = TestClient(app).post("/api/rolling-splits/1")
    assert response.status_code == 503


def test_health_ok(client, monkeypatch):
    async def ok():
        return {"database": {"status": "healthy", "response_ms": 1.0}, "data": {"status": "healthy", "recent_games": 3}}

    monkeypatch.setattr(health_endpoint, "check_database", ok)
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["data"]["recent_games"] == 3
    assert "cache" in body and "fallback" in body


def test_health_database_down(client, monkeypatch):
    async def down():
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(health_endpoint, "check_database", down)
    response = client.get("/api/health")
    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_health_database_hang_is_503(client, monkeypatch):
    async def hang():
        await asyncio.sleep(1)

    monkeypatch.setattr(health_endpoint, "check_database", hang)
    monkeypatch.setattr(props_config, "UPSTREAM_TIMEOUT_SECONDS", 0.01)
    response = client.get("/api/health")
    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "unhealthy"
    assert "timed out" in body["checks"]["database"]["error"]
