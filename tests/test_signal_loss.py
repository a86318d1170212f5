import pytest

from builders import gap_flight
from service.analytics import signal_loss


def _events(*flights):
    return signal_loss.detect_signal_loss_events(flights)


@pytest.fixture
def syria_events():
    return _events(
        gap_flight("A", lat=34.0, lon=38.0, gap_s=600),
        gap_flight("B", lat=34.05, lon=38.05, gap_s=1200),
        gap_flight("C", lat=34.1, lon=37.95, gap_s=4000),
    )


@pytest.mark.parametrize("gap,expected", [
    (300, "brief"),
    (899, "brief"),
    (900, "medium"),
    (3599, "medium"),
    (3600, "extended"),
])
def test_classify_gap(gap, expected):
    assert signal_loss.classify_gap(gap) == expected


def test_event_filters():
    assert _events(gap_flight("SHORT", gap_s=299)) == []
    assert _events(gap_flight("LOW", alt_ft=3000)) == []
    assert _events(gap_flight("AIRPORT", lat=32.0114, lon=34.8867)) == []

    unknown_alt = _events(gap_flight("UNK", alt_ft=None))
    assert len(unknown_alt) == 1
    event = unknown_alt[0]
    assert event.alt_ft is None
    assert event.gap_seconds == 360
    assert (event.lat, event.lon) == (32.5, 34.5)


def test_locations_aggregate_into_grid_cells(syria_events):
    locations = signal_loss.signal_loss_locations(syria_events)
    assert len(locations) == 1
    cell = locations[0]
    assert cell["count"] == 3
    assert cell["affected_flights"] == 3
    assert cell["intensity"] == 100
    assert cell["avgDuration"] == (600 + 1200 + 4000) // 3
    assert (cell["brief_count"], cell["medium_count"], cell["extended_count"]) == (1, 1, 1)
    assert cell["lat"] == pytest.approx(34.05)
    assert signal_loss.signal_loss_locations([]) == []


def test_single_location_is_not_a_cluster(syria_events):
    result = signal_loss.signal_loss_clusters(signal_loss.signal_loss_locations(syria_events))
    assert result["total_clusters"] == 0
    assert len(result["singles"]) == 1
    assert result["total_points"] == 1


def test_zones_merge_nearby_events(syria_events):
    far = _events(gap_flight("FAR", lat=29.0, lon=48.0))
    result = signal_loss.signal_loss_zones(syria_events + far)
    assert result["total_events"] == 4
    assert result["total_zones"] == 1
    zone = result["zones"][0]
    assert zone["id"] == 0
    assert zone["event_count"] == 3
    assert zone["affected_flights"] == 3
    assert zone["gap_type"] == "medium"
    assert zone["max_gap_duration_sec"] == 4000
    assert zone["risk_score"] == 51
    assert zone["polygon"][0] == zone["polygon"][-1]
    assert zone["area_sq_nm"] > 0
    assert result["coverage_summary"]["hotspot_regions"] == ["Syria Border"]


def test_zones_need_two_events():
    result = signal_loss.signal_loss_zones(_events(gap_flight("ONE", lat=34.0, lon=38.0)))
    assert result["total_zones"] == 0
    assert result["total_events"] == 1
    assert signal_loss.signal_loss_zones([])["zones"] == []
