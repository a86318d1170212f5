import json

import pytest

from builders import BASE_TS, gap_flight, point, straight_flight
from core.errors import InvalidWindowError
from core.models import Flight
from routes.analytics import INTEL_KEYS, TRAFFIC_KEYS
from service.analytics import IntelligenceEngine
from service.track_store import InMemoryTrackStore


def test_window_analysis_is_cached(engine, window, store, monkeypatch):
    calls = []
    original = store.fetch_window

    def counting_fetch(start_ts, end_ts):
        calls.append((start_ts, end_ts))
        return original(start_ts, end_ts)

    monkeypatch.setattr(store, "fetch_window", counting_fetch)
    first = engine.analyze_window(*window)
    second = engine.analyze_window(*window)
    assert first is second
    # window plus airline lookback
    assert len(calls) == 2
    assert engine.cache_info()["total_entries"] == 1
    assert engine.clear_cache() == 1


@pytest.mark.parametrize("start,end", [
    (BASE_TS, BASE_TS),
    (BASE_TS + 10, BASE_TS),
    (BASE_TS, BASE_TS + 401 * 86400),
])
def test_invalid_windows(engine, start, end):
    with pytest.raises(InvalidWindowError):
        engine.analyze_window(start, end)


def test_window_analysis_contents(engine, window):
    analysis = engine.analyze_window(*window)
    assert [f.flight_id for f in analysis.flights] == ["CIV1", "GAP1", "JAM1", "JAM2", "JAM3", "MIL1", "MIL2"]
    assert analysis.skipped_records == 0
    assert len(analysis.zones) == 2
    assert analysis.zones[0].affected_flight_ids == ["JAM1", "JAM2", "JAM3"]
    assert analysis.classifications["MIL1"].country == "US"
    assert analysis.classifications["MIL2"].country == "RU"
    assert [e.flight_id for e in analysis.signal_loss_events] == ["GAP1"]


def test_threat_assessment_counts_hostile_military(engine, window):
    result = engine.get_threat_assessment(*window)
    military = result["components"]["military_activity"]
    # two military flights, one of them Russian
    assert military["score"] == 4 + 10
    assert result["components"]["gps_jamming"]["score"] > 0
    assert result["level"] == result["threat_level"]


def test_pattern_clusters_and_proximity(engine, window):
    clusters = engine.get_pattern_clusters(*window)
    assert clusters[0]["flights"] == ["JAM1", "JAM2", "JAM3"]
    proximity = engine.get_bilateral_proximity(*window)
    assert proximity["total_events"] == 1
    assert proximity["events"][0]["flight_id_1"] == "MIL1"
    assert proximity["by_pair"] == {"RU-US": 1}


def test_single_flight_operations(engine):
    assert engine.predict_trajectory("CIV1")["flight_id"] == "CIV1"
    assert engine.predict_hostile_intent("CIV1")["track_points_analyzed"] == 10
    assert engine.get_anomaly_dna("GAP1")["search_method"] == "rule_based"


def test_malformed_flights_are_skipped_and_counted(settings, window):
    store = InMemoryTrackStore([
        # missing latitude breaks scoring
        Flight("BAD", points=(point(None, 34.0, BASE_TS), point(32.0, 34.1, BASE_TS + 60))),
        # non-string callsign breaks classification only
        Flight("NUMERIC", callsign=12345, points=straight_flight("N").points),
        straight_flight("CLEAN"),
        gap_flight("GAP1"),
    ])
    engine = IntelligenceEngine(store, settings=settings)
    analysis = engine.analyze_window(*window)
    assert analysis.skipped_records == 2
    assert [f.flight_id for f in analysis.flights] == ["CLEAN", "GAP1"]
    assert sorted(analysis.classifications) == ["CLEAN", "GAP1"]
    assert sorted(analysis.scores) == ["CLEAN", "GAP1"]
    assert [e.flight_id for e in analysis.signal_loss_events] == ["GAP1"]
    assert len(engine.get_special_events_impact(*window)["weekly_pattern"]) == 7
    assert engine.get_bilateral_proximity(*window)["total_events"] == 0


def _full_payload(engine, start_ts, end_ts):
    payload = {}
    for keys in (INTEL_KEYS, TRAFFIC_KEYS):
        for key, (method_name, _) in keys.items():
            payload[key] = getattr(engine, method_name)(start_ts, end_ts)
    return json.dumps(payload, sort_keys=True, default=str)


def test_pipeline_is_idempotent(store, settings, window):
    first = IntelligenceEngine(store, settings=settings)
    second = IntelligenceEngine(store, settings=settings)
    expected = _full_payload(first, *window)
    assert _full_payload(second, *window) == expected
    first.clear_cache()
    assert _full_payload(first, *window) == expected
