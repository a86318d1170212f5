"""
Bilateral proximity detection between military aircraft of different nations.

Aircraft are only compared when they were near each other AT THE SAME TIME:
positions are bucketed by `ts // time_window_sec`, each bucket gets a grid
index whose cells are at least `proximity_threshold_nm` wide, and a position
is only compared with positions in the same or adjacent cells of its own and
the next bucket. Pairs further apart in time than the window, or from the same
country, are dropped before the great-circle distance is computed.
"""
import logging
import math
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.config import AnalyticsSettings, get_settings
from core.geodesy import haversine_nm
from core.models import Flight, ProximityEvent, TrackPoint
from service.analytics.classifier import FlightClassification

logger = logging.getLogger(__name__)

# High-interest country pairs
HIGH_INTEREST_PAIRS = {
    frozenset(['US', 'RU']), frozenset(['US', 'IR']),
    frozenset(['IL', 'RU']), frozenset(['IL', 'IR']),
    frozenset(['NATO', 'RU']),
}

MAX_EVENTS_RETURNED = 50

Position = Tuple[str, TrackPoint]


def severity_for(distance_nm: float, altitude_separation_ft: Optional[float],
                 is_high_interest: bool) -> Tuple[int, str]:
    """Score a close approach; closer and co-altitude is worse."""
    if distance_nm < 10:
        score = 80
    elif distance_nm < 25:
        score = 55
    else:
        score = 30

    if altitude_separation_ft is not None:
        if altitude_separation_ft < 1000:
            score += 20
        elif altitude_separation_ft < 2000:
            score += 10

    if is_high_interest:
        score += 15

    score = min(100, score)
    if score >= 90:
        level = 'critical'
    elif score >= 70:
        level = 'high'
    elif score >= 45:
        level = 'medium'
    else:
        level = 'low'
    return score, level


class _Grid:
    def __init__(self, cell_lat_deg: float, cell_lon_deg: float):
        self.cell_lat_deg = cell_lat_deg
        self.cell_lon_deg = cell_lon_deg
        self.cells: Dict[Tuple[int, int], List[Position]] = defaultdict(list)

    def key(self, lat: float, lon: float) -> Tuple[int, int]:
        return int(math.floor(lat / self.cell_lat_deg)), int(math.floor(lon / self.cell_lon_deg))

    def add(self, position: Position) -> None:
        point = position[1]
        self.cells[self.key(point.lat, point.lon)].append(position)

    def neighbours(self, cell: Tuple[int, int]) -> Iterable[List[Position]]:
        row, col = cell
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                bucket = self.cells.get((row + dr, col + dc))
                if bucket:
                    yield bucket


def _cap_cells(grid: _Grid, max_flights: int) -> int:
    capped = 0
    for cell, positions in grid.cells.items():
        flight_ids = sorted({fid for fid, _ in positions})
        if len(flight_ids) > max_flights:
            keep = set(flight_ids[:max_flights])
            grid.cells[cell] = [p for p in positions if p[0] in keep]
            capped += 1
            logger.warning(f"[PROXIMITY] Cell {cell} has {len(flight_ids)} flights, "
                           f"capped at {max_flights}")
    return capped


def detect_proximity_events(flights: Iterable[Flight],
                            classifications: Dict[str, FlightClassification],
                            settings: Optional[AnalyticsSettings] = None,
                            proximity_threshold_nm: Optional[float] = None,
                            time_window_sec: Optional[int] = None) -> Dict[str, Any]:
    """
    Detect close approaches between military aircraft from different nations.

    Returns {events, by_pair, total_events, high_risk_events, alerts,
    proximity_threshold_nm, time_window_sec, capped_cells}.
    """
    settings = settings or get_settings()
    threshold = proximity_threshold_nm if proximity_threshold_nm is not None else settings.proximity_threshold_nm
    window = time_window_sec if time_window_sec is not None else settings.proximity_window_sec

    country: Dict[str, str] = {}
    positions: List[Position] = []
    for flight in flights:
        cls = classifications.get(flight.flight_id)
        if cls is None or not cls.is_military or cls.country in (None, '', 'UNKNOWN'):
            continue
        country[flight.flight_id] = cls.country
        positions.extend((flight.flight_id, p) for p in flight.points)

    if not positions:
        return _empty_result(threshold, window)

    max_abs_lat = max(abs(p.lat) for _, p in positions)
    cell_lat_deg = threshold / 60.0
    cell_lon_deg = cell_lat_deg / max(0.01, math.cos(math.radians(min(89.0, max_abs_lat))))

    grids: Dict[int, _Grid] = {}
    for position in positions:
        b = position[1].ts // window
        if b not in grids:
            grids[b] = _Grid(cell_lat_deg, cell_lon_deg)
        grids[b].add(position)

    capped_cells = sum(_cap_cells(g, settings.proximity_max_flights_per_cell) for g in grids.values())

    # (fid1, fid2) -> [(ts, dist, p1, p2)]
    observations: Dict[Tuple[str, str], List[Tuple[int, float, TrackPoint, TrackPoint]]] = defaultdict(list)
    seen = set()

    for b in sorted(grids):
        grid = grids[b]
        targets = [grid]
        if b + 1 in grids:
            targets.append(grids[b + 1])

        for cell, cell_positions in grid.cells.items():
            for target in targets:
                for other_positions in target.neighbours(cell):
                    for fid1, p1 in cell_positions:
                        for fid2, p2 in other_positions:
                            if fid1 == fid2 or country[fid1] == country[fid2]:
                                continue
                            if abs(p1.ts - p2.ts) > window:
                                continue
                            if fid1 < fid2:
                                key = (fid1, p1.ts, fid2, p2.ts)
                                a_id, a, b_id, bp = fid1, p1, fid2, p2
                            else:
                                key = (fid2, p2.ts, fid1, p1.ts)
                                a_id, a, b_id, bp = fid2, p2, fid1, p1
                            if key in seen:
                                continue
                            seen.add(key)
                            dist = haversine_nm(a.lat, a.lon, bp.lat, bp.lon)
                            if dist <= threshold:
                                observations[(a_id, b_id)].append(((a.ts + bp.ts) // 2, dist, a, bp))

    events: List[ProximityEvent] = []
    for (fid1, fid2), obs in sorted(observations.items()):
        obs.sort(key=lambda o: (o[0], o[1]))
        encounters = [[obs[0]]]
        for o in obs[1:]:
            if o[0] - encounters[-1][-1][0] > settings.proximity_encounter_gap_sec:
                encounters.append([o])
            else:
                encounters[-1].append(o)

        c1, c2 = country[fid1], country[fid2]
        is_high_interest = frozenset([c1, c2]) in HIGH_INTEREST_PAIRS
        for encounter in encounters:
            ts, dist, a, bp = min(encounter, key=lambda o: (o[1], o[0]))
            alt_sep = abs(a.alt_ft - bp.alt_ft) if a.alt_ft is not None and bp.alt_ft is not None else None
            score, level = severity_for(dist, alt_sep, is_high_interest)
            events.append(ProximityEvent(
                flight_id_1=fid1,
                flight_id_2=fid2,
                callsign_1=classifications[fid1].callsign,
                callsign_2=classifications[fid2].callsign,
                country_1=c1,
                country_2=c2,
                min_distance_nm=round(dist, 1),
                altitude_separation_ft=round(alt_sep) if alt_sep is not None else None,
                timestamp=ts,
                location={'lat': round((a.lat + bp.lat) / 2, 4), 'lon': round((a.lon + bp.lon) / 2, 4)},
                severity_score=score,
                severity_level=level,
                is_high_interest=is_high_interest,
            ))

    events.sort(key=lambda e: (-e.severity_score, e.timestamp, e.flight_id_1, e.flight_id_2))

    by_pair: Dict[str, int] = defaultdict(int)
    for e in events:
        by_pair[e.pair_key] += 1
    high_risk_events = sum(1 for e in events if e.severity_level in ('critical', 'high'))

    alerts = []
    if high_risk_events > 0:
        alerts.append({
            'severity': 'critical' if high_risk_events > 3 else 'high',
            'message': f'{high_risk_events} high-risk proximity events detected between different nations',
        })

    logger.info(f"[PROXIMITY] {len(events)} events from {len(country)} military flights")

    return {
        'events': [_event_record(e, classifications) for e in events[:MAX_EVENTS_RETURNED]],
        'by_pair': dict(sorted(by_pair.items())),
        'total_events': len(events),
        'high_risk_events': high_risk_events,
        'proximity_threshold_nm': threshold,
        'time_window_sec': window,
        'alerts': alerts,
        'capped_cells': capped_cells,
    }


def _event_record(event: ProximityEvent, classifications: Dict[str, FlightClassification]) -> Dict[str, Any]:
    record = event.to_dict()
    record.update({
        'pair_name': event.pair_key,
        'callsign1': event.callsign_1 or 'Unknown',
        'country1': event.country_1,
        'type1': classifications[event.flight_id_1].role,
        'callsign2': event.callsign_2 or 'Unknown',
        'country2': event.country_2,
        'type2': classifications[event.flight_id_2].role,
        'severity': event.severity_level,
    })
    return record


def _empty_result(threshold: float, window: int) -> Dict[str, Any]:
    return {
        'events': [],
        'by_pair': {},
        'total_events': 0,
        'high_risk_events': 0,
        'proximity_threshold_nm': threshold,
        'time_window_sec': window,
        'alerts': [],
        'capped_cells': 0,
    }
