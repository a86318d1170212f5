"""Recurring anomaly clusters: anomalous flights grouped by track centroid."""
from collections import defaultdict
from typing import Any, Dict, Iterable, List

from core.models import Flight, SignatureScore

ANOMALY_MIN_TOTAL = 15
GRID_DEG = 0.5


def _grid_key(lat: float, lon: float):
    return round(lat / GRID_DEG) * GRID_DEG, round(lon / GRID_DEG) * GRID_DEG


def detect_pattern_clusters(flights: Iterable[Flight], scores: Dict[str, SignatureScore],
                            min_occurrences: int = 3) -> List[Dict[str, Any]]:
    """
    Detect recurring suspicious patterns across multiple flights.

    Returns:
        [{pattern_id, description, flights: [...], first_seen, last_seen, risk_level}]
    """
    location_clusters = defaultdict(list)

    for flight in sorted(flights, key=lambda f: f.flight_id):
        score = scores.get(flight.flight_id)
        if score is None or score.total < ANOMALY_MIN_TOTAL or not flight.points:
            continue
        avg_lat = sum(p.lat for p in flight.points) / len(flight.points)
        avg_lon = sum(p.lon for p in flight.points) / len(flight.points)
        location_clusters[_grid_key(avg_lat, avg_lon)].append({
            'flight_id': flight.flight_id,
            'timestamp': flight.start_ts,
            'rules': score.rule_ids,
        })

    candidates = [(key, group) for key, group in location_clusters.items() if len(group) >= min_occurrences]
    candidates.sort(key=lambda kv: (-len(kv[1]), kv[0]))

    patterns = []
    for pattern_id, ((lat, lon), group) in enumerate(candidates, start=1):
        timestamps = [f['timestamp'] for f in group]
        patterns.append({
            'pattern_id': f'CLUSTER_{pattern_id}',
            'description': f'Anomaly cluster at {lat}N, {lon}E',
            'location': {'lat': lat, 'lon': lon},
            'flights': [f['flight_id'] for f in group],
            'rule_ids': sorted({r for f in group for r in f['rules']}),
            'first_seen': min(timestamps),
            'last_seen': max(timestamps),
            'occurrence_count': len(group),
            'risk_level': 'High' if len(group) >= 5 else 'Medium',
        })
    return patterns
