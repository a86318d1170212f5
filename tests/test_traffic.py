import pytest

from builders import BASE_TS, straight_flight
from service.analytics import traffic

DAY = 86400
WEEK = 7 * DAY


def test_flights_frame_columns():
    frame = traffic.flights_frame([
        straight_flight("A", airline="ely"),
        straight_flight("M", callsign="RCH1", is_military=True),
        straight_flight("C", callsign="THY12"),
    ])
    assert list(frame["flight_id"]) == ["A", "M", "C"]
    assert list(frame["airline"])[0] == "ELY"
    assert frame["airline"].isna().tolist() == [False, True, False]
    assert list(frame["airline"])[2] == "THY"
    # 2023-11-14 is a Tuesday; Sunday is 0
    assert set(frame["day_of_week"]) == {2}
    assert set(frame["date"]) == {"2023-11-14"}
    assert frame["duration_sec"].iloc[0] == 540


def test_empty_frame():
    frame = traffic.flights_frame([])
    assert frame.empty
    assert traffic.seasonal_year_comparison(frame) == {"years": [], "month_comparison": [], "insights": []}
    result = traffic.special_events_impact(frame)
    assert len(result["weekly_pattern"]) == 7
    assert result["detected_events"] == []
    assert traffic.airline_efficiency(frame) == []


def test_seasonal_year_comparison():
    frame = traffic.flights_frame([
        straight_flight("Y1", start_ts=BASE_TS),
        straight_flight("Y2a", start_ts=BASE_TS + 365 * DAY),
        straight_flight("Y2b", start_ts=BASE_TS + 365 * DAY + 3600),
    ])
    result = traffic.seasonal_year_comparison(frame)
    assert [y["year"] for y in result["years"]] == [2023, 2024]
    assert [y["total_flights"] for y in result["years"]] == [1, 2]
    assert result["month_comparison"] == [{
        "month": "11", "month_name": "November", "current_year": 2,
        "previous_year": 1, "change_percent": 100.0,
    }]
    assert result["insights"][0] == "Traffic increased by 100.0% compared to 2023"


def test_special_events_flag_quiet_day():
    flights = [straight_flight(f"T{i}", start_ts=BASE_TS - 3 * 3600 + i * 600) for i in range(4)]
    flights.append(straight_flight("NEXT", start_ts=BASE_TS + WEEK))
    result = traffic.special_events_impact(traffic.flights_frame(flights))
    assert [d["day_name"] for d in result["weekly_pattern"]][2] == "Tuesday"
    assert result["weekly_pattern"][2]["avg_traffic"] == 2.5
    assert len(result["detected_events"]) == 1
    event = result["detected_events"][0]
    assert event["date"] == "2023-11-21"
    assert event["event_name"] == "Unusual low traffic"
    assert event["traffic_change_percent"] == -60.0


def test_alternate_airports_body_type_preference():
    flights = [
        straight_flight("D1", destination="LCLK", planned_destination="LLBG", aircraft_type="B77W"),
        straight_flight("D2", destination="LCLK", planned_destination="LLBG", aircraft_type="B789"),
        straight_flight("D3", destination="LCLK", planned_destination="LLHA", aircraft_type="A320"),
        straight_flight("D4", destination="LCRA", planned_destination="LLBG", aircraft_type="A21N"),
        straight_flight("OK", destination="LLBG", planned_destination="LLBG", aircraft_type="B738"),
    ]
    result = traffic.alternate_airports(flights)
    assert [a["airport"] for a in result] == ["LCLK", "LCRA"]
    assert result[0]["count"] == 3
    assert result[0]["diverted_from"] == ["LLBG", "LLHA"]
    assert result[0]["body_type_preference"] == "mixed"
    assert result[1]["body_type_preference"] == "narrow_body_preferred"


@pytest.mark.parametrize("code,expected", [
    ("B77W", "wide_body"),
    ("A359", "wide_body"),
    ("B738", "narrow_body"),
    ("E190", "narrow_body"),
    ("C172", "unknown"),
    (None, "unknown"),
])
def test_classify_body_type(code, expected):
    assert traffic.classify_body_type(code) == expected


def test_airline_efficiency_min_flights():
    flights = [straight_flight(f"E{i}", airline="ELY", start_ts=BASE_TS + i * 600) for i in range(5)]
    flights += [straight_flight(f"T{i}", airline="THY", start_ts=BASE_TS + i * 600) for i in range(4)]
    result = traffic.airline_efficiency(traffic.flights_frame(flights))
    assert [r["airline"] for r in result] == ["ELY"]
    assert result[0]["flight_count"] == 5
    assert result[0]["avg_speed_kts"] == pytest.approx(420, rel=0.01)
    assert result[0]["avg_route_efficiency"] == pytest.approx(1.0, abs=0.01)


def test_airline_activity_started_and_stopped():
    start, end = BASE_TS, BASE_TS + DAY
    current = traffic.flights_frame([
        straight_flight("C1", airline="ELY", start_ts=start + 100),
        straight_flight("C2", airline="ELY", start_ts=start + 200),
        straight_flight("C3", airline="THY", start_ts=start + 300),
    ])
    lookback = traffic.flights_frame([
        straight_flight("L1", airline="ELY", start_ts=start - 5 * DAY),
        straight_flight("L2", airline="AIZ", start_ts=start - 3 * DAY),
    ])
    result = traffic.airline_activity(current, lookback, start, end, lookback_days=30)
    assert [s["airline"] for s in result["stopped_flying"]] == ["AIZ"]
    assert [s["airline"] for s in result["started_flying"]] == ["THY"]
    assert result["activity_changes"] == [{
        "airline": "ELY", "change_percent": 100.0, "before_count": 1,
        "after_count": 2, "trend": "increasing",
    }]
    assert result["analysis_period"]["lookback_start"] == start - 30 * DAY
