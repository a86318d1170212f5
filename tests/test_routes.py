import pytest
from fastapi.testclient import TestClient

import routes.analytics as analytics
from api.api import create_app
from builders import BASE_TS, point, straight_flight
from core.models import Flight
from service.analytics import temporal
from service.track_store import InMemoryTrackStore

START, END = BASE_TS - 3600, BASE_TS + 3 * 3600


def _batch(client, path, **extra):
    return client.post(path, json={"start_ts": START, "end_ts": END, **extra})


def test_root_and_health(client):
    root = client.get("/").json()
    assert root["status"] == "running"
    assert root["endpoints"]["health"] == "/api/health"

    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert "total_entries" in health["services"]["window_cache"]


def test_intel_batch_returns_every_key(client):
    response = _batch(client, "/api/intel/batch")
    assert response.status_code == 200
    data = response.json()
    assert set(data) == set(analytics.INTEL_KEYS) | {"skipped_records"}
    assert data["skipped_records"] == 0
    assert data["pattern_clusters"][0]["flights"] == ["JAM1", "JAM2", "JAM3"]
    assert data["bilateral_proximity"]["total_events"] == 1
    assert data["gps_jamming_zones"]["total_zones"] == 2
    assert data["military_by_country"]["summary"]["total_military_flights"] == 2
    assert data["threat_assessment"]["level"] in ("LOW", "MODERATE", "ELEVATED", "HIGH", "CRITICAL")


def test_intel_batch_include_subset(client):
    data = _batch(client, "/api/intel/batch", include=["gps_jamming", "not_a_key"]).json()
    assert set(data) == {"gps_jamming", "skipped_records"}
    assert data["gps_jamming"][0]["affected_flights"] == 3


@pytest.mark.parametrize("start,end", [
    (BASE_TS, BASE_TS),
    (BASE_TS + 60, BASE_TS),
    (BASE_TS, BASE_TS + 500 * 86400),
])
def test_invalid_window_is_rejected(client, start, end):
    response = client.post("/api/intel/batch", json={"start_ts": start, "end_ts": end})
    assert response.status_code == 400


def test_batch_requires_window_fields(client):
    assert client.post("/api/intel/batch", json={"start_ts": START}).status_code == 422


def test_failing_key_falls_back_to_default(client, monkeypatch):
    def boom(start_ts, end_ts):
        raise RuntimeError("classifier offline")

    monkeypatch.setattr(analytics.intelligence_engine, "get_bilateral_proximity", boom)
    data = _batch(client, "/api/intel/batch", include=["bilateral_proximity", "gps_jamming"]).json()
    assert data["bilateral_proximity"] == analytics.INTEL_KEYS["bilateral_proximity"][1]()
    assert data["bilateral_proximity"]["events"] == []
    assert len(data["gps_jamming"]) == 2


def test_traffic_batch(client):
    data = _batch(client, "/api/stats/traffic/batch").json()
    assert set(data) == set(analytics.TRAFFIC_KEYS) | {"skipped_records"}
    assert data["signal_loss"][0]["affected_flights"] == 1
    assert len(data["special_events_impact"]["weekly_pattern"]) == 7


def test_safety_batch(client):
    data = _batch(client, "/api/stats/safety/batch").json()
    assert set(data) == {"weather_impact", "traffic_safety_correlation", "skipped_records"}
    assert len(data["traffic_safety_correlation"]["hourly_correlation"]) == 24


def test_anomaly_dna(client):
    assert client.get("/api/intel/anomaly-dna/NOPE").status_code == 404
    response = client.get("/api/intel/anomaly-dna/GAP1", params={"lookback_days": 7})
    assert response.status_code == 200
    assert response.json()["matching_criteria"]["lookback_days"] == 7


def test_predictions(client):
    trajectory = client.get("/api/predict/trajectory/CIV1")
    assert trajectory.status_code == 200
    assert len(trajectory.json()["predicted_path"]) == 7
    assert client.get("/api/predict/trajectory/NOPE").status_code == 404

    intent = client.get("/api/predict/hostile-intent/CIV1")
    assert intent.status_code == 200
    assert len(intent.json()["factors"]) == 5
    # two track points only
    assert client.get("/api/predict/hostile-intent/GAP1").status_code == 422


def test_cache_endpoints(client):
    _batch(client, "/api/intel/batch", include=["gps_jamming"])
    assert client.get("/api/cache/info").json()["total_entries"] == 1
    cleared = client.post("/api/cache/clear").json()
    assert cleared == {"status": "ok", "cleared_entries": 1}
    assert client.get("/api/cache/info").json()["total_entries"] == 0


def test_temporal_fallback_keeps_every_bin(client, monkeypatch):
    def boom(start_ts, end_ts):
        raise RuntimeError("store offline")

    monkeypatch.setattr(analytics.intelligence_engine, "get_gps_jamming_temporal", boom)
    data = _batch(client, "/api/intel/batch", include=["gps_jamming_temporal"]).json()
    assert data["gps_jamming_temporal"] == temporal.jamming_temporal([])
    assert len(data["gps_jamming_temporal"]["by_day_of_week"]) == 7

    special = analytics.TRAFFIC_KEYS["special_events_impact"][1]()
    assert [d["day_name"] for d in special["weekly_pattern"]][0] == "Sunday"
    assert len(special["weekly_pattern"]) == 7


def test_malformed_flight_does_not_fail_the_batch():
    store = InMemoryTrackStore([
        Flight("BAD", points=(point(None, 34.0, BASE_TS), point(32.0, 34.1, BASE_TS + 60))),
        straight_flight("CLEAN"),
    ])
    response = TestClient(create_app(store)).post("/api/intel/batch", json={"start_ts": START, "end_ts": END})
    assert response.status_code == 200
    assert response.json()["skipped_records"] == 1
