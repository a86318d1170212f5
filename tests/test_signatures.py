from builders import BASE_TS, altitude_jump_flight, gap_flight, point, straight_flight
from core.models import CONFIDENCE_LOW, CONFIDENCE_UNLIKELY, Flight, confidence_band
from service.analytics.signatures import SIGNATURES, score_flight, score_flights


def test_gap_only_flight_scores_twenty_low():
    score = score_flight(gap_flight("GAP1"))
    assert score.total == 20
    assert score.confidence == CONFIDENCE_LOW
    assert score.component_scores["signal_loss_gap"] == 20
    assert sum(v for k, v in score.component_scores.items() if k != "signal_loss_gap") == 0
    assert score.rule_ids == [8]


def test_clean_flight_scores_zero():
    score = score_flight(straight_flight("CLEAN"))
    assert score.total == 0
    assert score.confidence == CONFIDENCE_UNLIKELY
    assert score.flagged_points == []


def test_single_point_flight_is_unlikely():
    flight = Flight("ONE", points=(point(32.0, 34.0, BASE_TS),))
    score = score_flight(flight)
    assert score.total == 0
    assert score.confidence == CONFIDENCE_UNLIKELY


def test_altitude_jumps_capped_per_signature():
    score = score_flight(altitude_jump_flight("JUMP"))
    assert score.hit_counts["altitude_jump"] == 2
    assert score.component_scores["altitude_jump"] == 20


def test_spoofed_altitude_and_impossible_speed():
    flight = Flight("SPOOF", points=tuple(
        point(32.0, 34.0 + i * 0.01, BASE_TS + i * 30, alt_ft=34764, speed_kt=650) for i in range(5)
    ))
    score = score_flight(flight)
    assert score.hit_counts["spoofed_altitude"] == 5
    assert score.component_scores["spoofed_altitude"] == 15
    assert score.component_scores["impossible_speed"] == 15


def test_first_sample_is_checked():
    flight = Flight("FIRST", points=(
        point(32.0, 34.0, BASE_TS, alt_ft=44700, speed_kt=700),
        point(32.0, 34.01, BASE_TS + 30, alt_ft=30000, speed_kt=420),
    ))
    score = score_flight(flight)
    assert score.hit_counts["spoofed_altitude"] == 1
    assert score.hit_counts["impossible_speed"] == 1
    assert {fp.point.ts for fp in score.flagged_points} == {BASE_TS}


def test_position_teleport():
    flight = Flight("TELE", points=(
        point(32.0, 34.0, BASE_TS),
        point(33.0, 34.0, BASE_TS + 60),
    ))
    score = score_flight(flight)
    assert score.hit_counts["position_teleport"] == 1


def test_mlat_only_is_flat():
    flight = Flight("MLAT", points=tuple(
        point(32.0, 34.0 + i * 0.05, BASE_TS + i * 60, source="MLAT") for i in range(10)
    ))
    score = score_flight(flight)
    assert score.hit_counts["mlat_only"] == 1
    assert score.component_scores["mlat_only"] == 8


def test_heading_oscillation():
    headings = [90, 150, 90, 150, 90]
    flight = Flight("OSC", points=tuple(
        point(32.0, 34.0, BASE_TS + i * 5, heading_deg=h) for i, h in enumerate(headings)
    ))
    score = score_flight(flight)
    assert score.hit_counts["heading_inconsistency"] >= 3
    assert score.hit_counts["impossible_turn_rate"] >= 4


def test_total_is_bounded_and_matches_band():
    flight = Flight("ALL", points=tuple(
        point(32.0 + (i % 2), 34.0, BASE_TS + i * 400, alt_ft=10000 if i % 2 else 44700,
              speed_kt=700, heading_deg=(i * 170) % 360, source="MLAT")
        for i in range(12)
    ))
    score = score_flight(flight)
    assert 0 <= score.total <= 100
    assert score.total == min(100, sum(score.component_scores.values()))
    assert score.confidence == confidence_band(score.total)
    for sig in SIGNATURES:
        assert score.component_scores[sig.name] <= sig.cap


def test_score_flights_skips_malformed_and_counts():
    # a string altitude breaks the arithmetic
    bad = Flight("BAD", points=(point(32.0, 34.0, BASE_TS), point(32.0, 34.1, BASE_TS + 60, alt_ft="high")))
    result = score_flights([gap_flight("GAP1"), bad, straight_flight("CLEAN")], max_workers=2)
    assert result.skipped_records == 1
    assert sorted(result.scores) == ["CLEAN", "GAP1"]
    assert result.scores["GAP1"].total == 20


def test_score_flights_is_deterministic():
    flights = [altitude_jump_flight(f"J{i}", lat=33.0 + i * 0.1) for i in range(5)]
    first = score_flights(flights, max_workers=4)
    second = score_flights(flights, max_workers=1)
    assert {k: v.to_dict() for k, v in first.scores.items()} == \
        {k: v.to_dict() for k, v in second.scores.items()}
