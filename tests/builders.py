"""Synthetic flight builders shared by the test modules."""
from typing import Optional

from core.geodesy import dead_reckon
from core.models import Flight, TrackPoint

# 2023-11-14 22:13:20 UTC (a Tuesday)
BASE_TS = 1_700_000_000


def point(lat, lon, ts, alt_ft: Optional[float] = 30000, speed_kt=None, heading_deg=None,
          source="ADS-B", squawk=None) -> TrackPoint:
    return TrackPoint(lat=lat, lon=lon, alt_ft=alt_ft, speed_kt=speed_kt, heading_deg=heading_deg,
                      ts=ts, position_source=source, squawk=squawk)


def straight_flight(flight_id, lat=32.0, lon=33.0, heading_deg=90.0, n=10, step_s=60,
                    speed_kt=420.0, alt_ft=30000, start_ts=BASE_TS, **meta) -> Flight:
    """A clean, constant-heading track that triggers no jamming signature."""
    points = []
    cur_lat, cur_lon = lat, lon
    for i in range(n):
        points.append(point(cur_lat, cur_lon, start_ts + i * step_s, alt_ft=alt_ft,
                            speed_kt=speed_kt, heading_deg=heading_deg))
        cur_lat, cur_lon = dead_reckon(cur_lat, cur_lon, heading_deg, speed_kt * step_s / 3600)
    return Flight(flight_id=flight_id, points=tuple(points), **meta)


def gap_flight(flight_id, lat=32.5, lon=34.5, start_ts=BASE_TS, gap_s=360, alt_ft=30000, **meta) -> Flight:
    """Two points `gap_s` apart; only the signal loss signature fires."""
    return Flight(flight_id=flight_id, points=(
        point(lat, lon, start_ts, alt_ft=alt_ft),
        point(lat, lon + 0.3, start_ts + gap_s, alt_ft=alt_ft),
    ), **meta)


def altitude_jump_flight(flight_id, lat=33.5, lon=36.0, start_ts=BASE_TS, **meta) -> Flight:
    """10000 -> 45000 -> 10000 ft in 10 s steps: two altitude jump hits, total 20."""
    return Flight(flight_id=flight_id, points=(
        point(lat, lon, start_ts, alt_ft=10000),
        point(lat, lon + 0.02, start_ts + 10, alt_ft=45000),
        point(lat, lon + 0.04, start_ts + 20, alt_ft=10000),
    ), **meta)
