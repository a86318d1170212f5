"""
Pytest fixtures: synthetic flights, an in-memory track store and a TestClient
over an app built on that store.
"""
import pytest
from fastapi.testclient import TestClient

from api.api import create_app
from builders import BASE_TS, altitude_jump_flight, gap_flight, straight_flight
from core.config import AnalyticsSettings
from service.analytics import IntelligenceEngine
from service.track_store import InMemoryTrackStore


@pytest.fixture
def settings():
    return AnalyticsSettings(max_workers=1)


@pytest.fixture
def window_flights():
    """A small mixed window: a jamming cluster, a signal gap, civil and military traffic."""
    return [
        altitude_jump_flight("JAM1", lat=33.5, start_ts=BASE_TS + 100),
        altitude_jump_flight("JAM2", lat=33.6, start_ts=BASE_TS + 200),
        altitude_jump_flight("JAM3", lat=33.7, start_ts=BASE_TS + 300),
        gap_flight("GAP1", start_ts=BASE_TS + 400, callsign="ELY001", airline="ELY"),
        straight_flight("CIV1", callsign="ELY002", airline="ELY", origin="LLBG", destination="LCLK",
                        start_ts=BASE_TS + 500),
        straight_flight("MIL1", lat=34.0, lon=34.0, callsign="RCH101", start_ts=BASE_TS),
        straight_flight("MIL2", lat=34.0, lon=34.05, callsign="RRR202", start_ts=BASE_TS),
    ]


@pytest.fixture
def store(window_flights):
    return InMemoryTrackStore(window_flights)


@pytest.fixture
def engine(store, settings):
    return IntelligenceEngine(store, settings=settings)


@pytest.fixture
def window():
    return BASE_TS - 3600, BASE_TS + 3 * 3600


@pytest.fixture
def client(store):
    """Synchronous TestClient for an app over the in-memory store."""
    return TestClient(create_app(store))
