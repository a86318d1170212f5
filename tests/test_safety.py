from builders import BASE_TS, point, straight_flight
from core.models import Flight
from service.analytics import safety


def _profile(flight_id, altitudes, start_ts=BASE_TS, squawks=None, **meta):
    squawks = squawks or [None] * len(altitudes)
    return Flight(flight_id, points=tuple(
        point(32.0, 34.8 + i * 0.01, start_ts + i * 60, alt_ft=alt, squawk=sq)
        for i, (alt, sq) in enumerate(zip(altitudes, squawks))
    ), **meta)


def test_go_around_detected_at_lowest_point():
    flight = _profile("GA", [8000, 2000, 1200, 2500, 3000])
    events = safety.detect_go_arounds(flight)
    assert len(events) == 1
    assert events[0].alt_ft == 1200


def test_departure_is_not_a_go_around():
    assert safety.detect_go_arounds(_profile("DEP", [0, 500, 1500, 3000, 8000])) == []


def test_unknown_altitudes_are_ignored():
    events = safety.detect_go_arounds(_profile("UNK", [8000, None, 1500, None, 2600]))
    assert [p.ts for p in events] == [BASE_TS + 120]


def test_emergency_squawks_reported_once_per_code():
    flight = _profile("EM", [30000] * 4, squawks=["7700", "7700", "1200", "7600"], callsign="ELY9")
    events = safety.emergency_events(flight)
    assert [e["code"] for e in events] == ["7700", "7600"]
    assert events[0]["description"] == "General emergency"
    assert events[0]["callsign"] == "ELY9"


def test_weather_impact():
    flights = [
        straight_flight("DIV", destination="LCLK", planned_destination="LLBG"),
        _profile("GA", [8000, 2000, 1200, 2500, 3000], destination="LLBG"),
        straight_flight("OK", destination="LLBG", planned_destination="LLBG"),
    ]
    result = safety.weather_impact(flights)
    assert result["diversions_likely_weather"] == [
        {"airport": "LLBG", "count": 1, "dates": ["2023-11-14"]},
    ]
    assert result["go_arounds_weather_pattern"] == [{"airport": "LLBG", "count": 1, "peak_hour": 22}]
    assert result["monthly_weather_impact"][0]["month"] == "2023-11"
    assert result["weather_correlated_anomalies"] == 2
    assert result["insights"][-1] == "Total weather-correlated events: 2"


def test_route_deviation():
    # out and back: long path, no displacement
    points = [point(32.0, 33.0 + i * 0.2, BASE_TS + i * 60) for i in range(6)]
    points += [point(32.0, 34.0 - i * 0.2, BASE_TS + 360 + i * 60) for i in range(6)]
    assert safety.is_route_deviation(Flight("LOOP", points=tuple(points)))
    assert not safety.is_route_deviation(straight_flight("STRAIGHT", n=20))


def test_pearson():
    assert safety.pearson([1, 1, 1], [0, 1, 2]) == 0.0
    assert safety.pearson([1, 2, 3], [2, 4, 6]) == 1.0
    assert safety.pearson([1], [1]) == 0.0


def test_traffic_safety_correlation():
    flights = [
        _profile("GA", [8000, 2000, 1200, 2500, 3000]),
        straight_flight("CALM"),
    ]
    result = safety.traffic_safety_correlation(flights)
    hours = result["hourly_correlation"]
    assert [h["hour"] for h in hours] == list(range(24))
    assert hours[22]["traffic_count"] == 2
    assert hours[22]["safety_count"] == 1
    assert hours[22]["safety_per_1000"] == 500.0
    assert result["peak_risk_hours"] == [22]
    assert result["total_safety_events"] == 1
