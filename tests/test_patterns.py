from builders import BASE_TS, altitude_jump_flight, gap_flight, straight_flight
from service.analytics.patterns import detect_pattern_clusters
from service.analytics.signatures import score_flights


def _clusters(flights, **kwargs):
    return detect_pattern_clusters(flights, score_flights(flights, max_workers=1).scores, **kwargs)


def test_three_anomalous_flights_in_one_cell():
    flights = [
        altitude_jump_flight("JAM1", lat=33.5, start_ts=BASE_TS + 100),
        altitude_jump_flight("JAM2", lat=33.6, start_ts=BASE_TS + 200),
        altitude_jump_flight("JAM3", lat=33.7, start_ts=BASE_TS + 300),
        gap_flight("ELSEWHERE", lat=29.0, lon=48.0),
        straight_flight("CLEAN", lat=33.5, lon=36.0),
    ]
    clusters = _clusters(flights)
    assert len(clusters) == 1
    cluster = clusters[0]
    assert cluster["pattern_id"] == "CLUSTER_1"
    assert cluster["flights"] == ["JAM1", "JAM2", "JAM3"]
    assert cluster["location"] == {"lat": 33.5, "lon": 36.0}
    assert cluster["first_seen"] == BASE_TS + 100
    assert cluster["last_seen"] == BASE_TS + 300
    assert cluster["risk_level"] == "Medium"


def test_five_flights_are_high_risk():
    flights = [altitude_jump_flight(f"J{i}", start_ts=BASE_TS + i * 100) for i in range(5)]
    assert _clusters(flights)[0]["risk_level"] == "High"


def test_below_min_occurrences():
    flights = [altitude_jump_flight("A"), altitude_jump_flight("B")]
    assert _clusters(flights) == []
    assert len(_clusters(flights, min_occurrences=2)) == 1
