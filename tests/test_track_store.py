import sqlite3

import pytest

from builders import BASE_TS, straight_flight
from service.track_store import InMemoryTrackStore, SQLiteTrackStore, init_tracks_db


@pytest.fixture
def tracks_db(tmp_path):
    path = tmp_path / "tracks.db"
    init_tracks_db(path)
    conn = sqlite3.connect(str(path))
    conn.execute(
        "INSERT INTO flights (flight_id, callsign, airline, origin, destination, is_military) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        ("F1", "ELY001", "ELY", "LLBG", "LCLK", 0),
    )
    conn.execute(
        "INSERT INTO flights (flight_id, callsign, is_military) VALUES (?, ?, ?)",
        ("F2", "RCH101", 1),
    )
    rows = [("F1", BASE_TS + i * 60, 32.0, 33.0 + i * 0.1, 30000, 420, 90, "ADS-B", None) for i in range(5)]
    rows += [("F2", BASE_TS + 7200 + i * 60, 34.0, 34.0, 25000, None, None, "MLAT", "7700") for i in range(3)]
    # points without a flights row still load, with empty metadata
    rows += [("F3", BASE_TS + 100, 31.0, 35.0, None, None, None, None, None)]
    conn.executemany(
        "INSERT INTO track_points (flight_id, ts, lat, lon, alt_ft, speed_kt, heading_deg, source, squawk) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    conn.close()
    return path


def test_sqlite_fetch_window_clips_points(tracks_db):
    store = SQLiteTrackStore(tracks_db)
    snapshot = store.fetch_window(BASE_TS + 60, BASE_TS + 180)
    assert [f.flight_id for f in snapshot.flights] == ["F1", "F3"]
    f1 = snapshot.by_id()["F1"]
    assert [p.ts for p in f1.points] == [BASE_TS + 60, BASE_TS + 120, BASE_TS + 180]
    assert f1.callsign == "ELY001"
    assert f1.destination == "LCLK"
    assert snapshot.by_id()["F3"].points[0].position_source == "ADS-B"


def test_sqlite_get_flight(tracks_db):
    store = SQLiteTrackStore(tracks_db)
    flight = store.get_flight("F2")
    assert flight.is_military
    assert len(flight.points) == 3
    assert flight.points[0].is_mlat
    assert flight.points[0].squawk == "7700"
    assert flight.points[0].speed_kt is None
    assert store.get_flight("NOPE") is None


def test_sqlite_flights_between_uses_first_point(tracks_db):
    store = SQLiteTrackStore(tracks_db)
    ids = [f.flight_id for f in store.flights_between(BASE_TS, BASE_TS + 3600)]
    assert ids == ["F1", "F3"]
    assert len(store.flights_between(BASE_TS, BASE_TS + 3600)[0].points) == 5


def test_missing_database_returns_empty(tmp_path):
    store = SQLiteTrackStore(tmp_path / "missing.db")
    assert len(store.fetch_window(BASE_TS, BASE_TS + 3600)) == 0
    assert store.get_flight("F1") is None
    assert store.flights_between(BASE_TS, BASE_TS + 3600) == []


def test_database_without_tables_returns_empty(tmp_path):
    path = tmp_path / "empty.db"
    sqlite3.connect(str(path)).close()
    assert len(SQLiteTrackStore(path).fetch_window(BASE_TS, BASE_TS + 3600)) == 0


def test_in_memory_window_drops_flights_outside():
    store = InMemoryTrackStore([
        straight_flight("B", start_ts=BASE_TS),
        straight_flight("A", start_ts=BASE_TS + 100),
        straight_flight("LATE", start_ts=BASE_TS + 86400),
    ])
    snapshot = store.fetch_window(BASE_TS, BASE_TS + 3600)
    assert [f.flight_id for f in snapshot.flights] == ["A", "B"]
    assert store.get_flight("LATE").start_ts == BASE_TS + 86400
    assert [f.flight_id for f in store.flights_between(BASE_TS + 50, BASE_TS + 86400)] == ["A", "LATE"]
