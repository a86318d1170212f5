import math

import pytest

from builders import BASE_TS, altitude_jump_flight, gap_flight, point
from core.geodesy import haversine_nm
from core.models import CONFIDENCE_HIGH, CONFIDENCE_LOW, CONFIDENCE_MEDIUM, Flight
from service.analytics import temporal, triangulation, zones
from service.analytics.signatures import score_flights

MEDIUM_OR_BETTER = (CONFIDENCE_MEDIUM, CONFIDENCE_HIGH)


def _jamming_scores():
    flights = [
        altitude_jump_flight("JAM1", lat=33.5, start_ts=BASE_TS + 100),
        altitude_jump_flight("JAM2", lat=33.6, start_ts=BASE_TS + 200),
        altitude_jump_flight("JAM3", lat=33.7, start_ts=BASE_TS + 300),
    ]
    return score_flights(flights, max_workers=1).scores


def test_three_jumping_flights_form_one_medium_zone():
    scores = _jamming_scores()
    built = zones.build_zones(scores, radius_nm=50.0)
    assert len(built) == 1
    zone = built[0]
    assert zone.zone_id == "ZONE_1"
    assert zone.point_count >= 3
    assert zone.affected_flight_ids == ["JAM1", "JAM2", "JAM3"]
    # mean 20 plus corroboration from two extra flights
    assert zone.zone_score == 50
    assert zone.confidence in MEDIUM_OR_BETTER
    assert zone.polygon[0] == zone.polygon[-1]


def test_triangulated_source_is_medium_or_better(settings):
    scores = _jamming_scores()
    built = zones.build_zones(scores, radius_nm=50.0)
    result = triangulation.triangulate_sources(built, scores, settings)
    assert len(result["estimated_sources"]) == 1
    source = result["estimated_sources"][0]
    assert source["confidence_level"] in MEDIUM_OR_BETTER
    assert source["num_affected_flights"] == 3
    assert source["confidence_radius_nm"] >= triangulation.MIN_RADIUS_NM
    assert result["total_affected_flights"] == 3
    assert result["skipped_zones"] == 0


def test_triangulation_low_with_two_flights(settings):
    flights = [
        altitude_jump_flight("A", lat=33.5),
        altitude_jump_flight("B", lat=33.6, start_ts=BASE_TS + 100),
    ]
    scores = score_flights(flights, max_workers=1).scores
    result = triangulation.triangulate_sources(zones.build_zones(scores), scores, settings)
    assert [s["confidence_level"] for s in result["estimated_sources"]] == [CONFIDENCE_LOW]
    assert result["triangulation_quality"] == "moderate"


def test_triangulation_high_with_observers_all_around(settings):
    # six flights on a 20 nm ring around the emitter
    flights = []
    for i in range(6):
        angle = math.radians(i * 60)
        flights.append(altitude_jump_flight(
            f"R{i}",
            lat=33.5 + (20 / 60) * math.cos(angle),
            lon=36.0 + (20 / 60) / math.cos(math.radians(33.5)) * math.sin(angle),
            start_ts=BASE_TS + i * 100,
        ))
    scores = score_flights(flights, max_workers=1).scores
    built = zones.build_zones(scores, radius_nm=50.0)
    assert len(built) == 1

    result = triangulation.triangulate_sources(built, scores, settings)
    source = result["estimated_sources"][0]
    assert source["confidence_level"] == CONFIDENCE_HIGH
    assert source["angular_spread"] >= settings.triangulation_min_spread_high
    assert source["confidence_radius_nm"] < settings.triangulation_high_radius_nm
    assert haversine_nm(source["lat"], source["lon"], 33.5, 36.0) < 5
    assert result["triangulation_quality"] == "good"


def test_no_flight_appears_in_two_zones():
    flights = [
        altitude_jump_flight("A", lat=33.5, lon=36.0),
        altitude_jump_flight("B", lat=29.0, lon=48.0),
        gap_flight("C", lat=31.0, lon=30.0),
    ]
    scores = score_flights(flights, max_workers=1).scores
    built = zones.build_zones(scores, radius_nm=50.0)
    assert len(built) == 3
    seen = set()
    for zone in built:
        ids = set(zone.affected_flight_ids)
        assert ids == {fp.flight_id for fp in zone.points}
        assert not (ids & seen)
        seen |= ids


def test_flight_flagged_in_two_areas_joins_only_one():
    # flagged once over the western group and twice over the eastern one, ~540 nm apart
    bridge = Flight("BRIDGE", points=(
        point(33.0, 30.5, BASE_TS),
        point(33.0, 30.6, BASE_TS + 400),
        point(33.0, 41.4, BASE_TS + 8000),
        point(33.0, 41.5, BASE_TS + 8400),
    ))
    flights = [bridge]
    for i in range(3):
        flights.append(altitude_jump_flight(f"W{i}", lat=33.0, lon=30.5, start_ts=BASE_TS + 100 * (i + 1)))
        flights.append(altitude_jump_flight(f"E{i}", lat=33.0, lon=41.5, start_ts=BASE_TS + 8000 + 100 * (i + 1)))
    scores = score_flights(flights, max_workers=1).scores
    built = zones.build_zones(scores, radius_nm=50.0)

    assert len(built) == 2
    assert built[0].affected_flight_ids == ["BRIDGE", "E0", "E1", "E2"]
    assert built[1].affected_flight_ids == ["W0", "W1", "W2"]
    for zone in built:
        lat, lon = zone.centroid
        assert all(haversine_nm(lat, lon, fp.point.lat, fp.point.lon) <= 50.0 for fp in zone.points)


def test_split_flight_ties_go_to_the_earlier_cluster():
    long_flight = Flight("LONG", points=(
        point(33.0, 34.0, BASE_TS),
        point(33.0, 34.2, BASE_TS + 400),
        point(33.0, 38.0, BASE_TS + 3400),
    ))
    flights = [
        long_flight,
        altitude_jump_flight("WEST", lat=33.0, lon=34.0),
        altitude_jump_flight("EAST", lat=33.0, lon=38.0, start_ts=BASE_TS + 3000),
    ]
    scores = score_flights(flights, max_workers=1).scores
    built = zones.build_zones(scores, radius_nm=50.0)
    assert [z.affected_flight_ids for z in built] == [["LONG", "WEST"], ["EAST"]]
    assert built[1].centroid[1] > 37.9


def test_empty_scores_give_no_zones():
    assert zones.build_zones({}) == []
    assert zones.gps_jamming_zones([])["total_zones"] == 0
    assert zones.gps_jamming_clusters([]) == {
        "clusters": [], "singles": [], "total_points": 0, "total_clusters": 0,
    }


def test_gps_jamming_payloads():
    built = zones.build_zones(_jamming_scores())
    points = zones.gps_jamming_points(built)
    assert points[0]["affected_flights"] == 3
    assert points[0]["altitude_anomalies"] == points[0]["event_count"]

    clusters = zones.gps_jamming_clusters(built)
    assert clusters["total_clusters"] == 1
    assert clusters["total_points"] == built[0].point_count

    summary = zones.gps_jamming_zones(built)
    assert summary["total_zones"] == 1
    assert summary["zones"][0]["jamming_type"] == "spoofing"
    assert "Syria" in summary["jamming_summary"]["hotspot_regions"]


def test_temporal_histograms_sum_to_total():
    built = zones.build_zones(_jamming_scores())
    events = [fp for zone in built for fp in zone.points]
    result = temporal.jamming_temporal(events)
    assert len(result["by_hour"]) == 24
    assert len(result["by_day_of_week"]) == 7
    assert sum(h["count"] for h in result["by_hour"]) == result["total_events"]
    assert sum(d["count"] for d in result["by_day_of_week"]) == result["total_events"]
    assert result["total_events"] == len(events)
    # BASE_TS is a Tuesday, 22:xx UTC
    assert result["peak_hours"] == [22]
    assert result["peak_days"] == ["Tuesday"]


def test_temporal_with_no_events():
    result = temporal.jamming_temporal([])
    assert result["total_events"] == 0
    assert result["peak_hours"] == []
    assert result["peak_days"] == []


def test_angular_spread_bounds():
    assert triangulation.angular_spread([]) == 0.0
    assert triangulation.angular_spread([90, 90, 90]) == pytest.approx(0.0, abs=1e-9)
    assert triangulation.angular_spread([0, 90, 180, 270]) > 0.99
