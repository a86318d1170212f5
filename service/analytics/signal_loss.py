"""
Signal loss (coverage gap) analysis.

A signal loss event is a gap of at least 5 minutes between consecutive
positions of one flight, at or above 5000 ft (or with unknown altitude) and
more than 5 nm from a listed airport. Events are aggregated into a 0.25 degree
grid for the heat map, greedily clustered for the polygon layer, and merged
into buffered coverage gap zones.
"""
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
from scipy.spatial import ConvexHull, QhullError, cKDTree

from core.airport_lookup import is_near_airport
from core.geodesy import circle_polygon, expand_polygon_points, polygon_area_sq_nm
from core.models import Flight
from service.analytics.zones import greedy_cluster

logger = logging.getLogger(__name__)

GRID_SIZE_DEG = 0.25
GAP_THRESHOLD_SECONDS = 300
MIN_ALTITUDE_FT = 5000
AIRPORT_EXCLUSION_NM = 5

COVERAGE_REGIONS = {
    'Syria Border': {'lat_min': 32.5, 'lat_max': 37.0, 'lon_min': 35.5, 'lon_max': 42.0},
    'Lebanon': {'lat_min': 33.0, 'lat_max': 34.5, 'lon_min': 35.0, 'lon_max': 36.5},
    'Mediterranean Sea': {'lat_min': 31.0, 'lat_max': 36.0, 'lon_min': 28.0, 'lon_max': 35.0},
    'Sinai Peninsula': {'lat_min': 28.0, 'lat_max': 31.5, 'lon_min': 32.5, 'lon_max': 35.0},
    'Jordan': {'lat_min': 29.0, 'lat_max': 33.5, 'lon_min': 35.0, 'lon_max': 39.0},
    'Cyprus': {'lat_min': 34.5, 'lat_max': 35.7, 'lon_min': 32.0, 'lon_max': 34.5},
    'Northern Israel': {'lat_min': 32.5, 'lat_max': 33.5, 'lon_min': 34.5, 'lon_max': 36.0},
    'Gaza Border': {'lat_min': 31.0, 'lat_max': 31.8, 'lon_min': 34.0, 'lon_max': 34.8},
}


@dataclass(frozen=True)
class SignalLossEvent:
    flight_id: str
    lat: float
    lon: float
    alt_ft: Optional[float]
    gap_start: int
    gap_seconds: int


def classify_gap(gap_seconds: float) -> str:
    if gap_seconds < 900:
        return 'brief'
    if gap_seconds < 3600:
        return 'medium'
    return 'extended'


def detect_signal_loss_events(flights: Iterable[Flight]) -> List[SignalLossEvent]:
    """Gaps in every flight's track, located at the last position before the gap."""
    events = []
    for flight in sorted(flights, key=lambda f: f.flight_id):
        points = flight.points
        for prev, curr in zip(points, points[1:]):
            gap = curr.ts - prev.ts
            if gap < GAP_THRESHOLD_SECONDS:
                continue
            if prev.alt_ft is not None and prev.alt_ft < MIN_ALTITUDE_FT:
                continue
            if is_near_airport(prev.lat, prev.lon, AIRPORT_EXCLUSION_NM):
                continue
            events.append(SignalLossEvent(
                flight_id=flight.flight_id,
                lat=prev.lat,
                lon=prev.lon,
                alt_ft=prev.alt_ft,
                gap_start=prev.ts,
                gap_seconds=gap,
            ))
    return events


def signal_loss_locations(events: List[SignalLossEvent], limit: int = 50) -> List[Dict[str, Any]]:
    """
    Geographic distribution of signal loss events.

    Returns:
        [{lat, lon, count, avgDuration, intensity, affected_flights, gap_type, ...}]
    """
    location_stats = defaultdict(lambda: {
        'count': 0,
        'total_duration': 0,
        'flights': set(),
        'brief_count': 0,
        'medium_count': 0,
        'extended_count': 0,
        'lat_sum': 0.0,
        'lon_sum': 0.0,
        'timestamps': [],
    })

    for event in events:
        grid_lat = round(event.lat / GRID_SIZE_DEG) * GRID_SIZE_DEG
        grid_lon = round(event.lon / GRID_SIZE_DEG) * GRID_SIZE_DEG
        cell = location_stats[(grid_lat, grid_lon)]
        cell['count'] += 1
        cell['total_duration'] += event.gap_seconds
        cell['flights'].add(event.flight_id)
        cell['lat_sum'] += event.lat
        cell['lon_sum'] += event.lon
        cell['timestamps'].append(event.gap_start)
        cell[f'{classify_gap(event.gap_seconds)}_count'] += 1

    if not location_stats:
        return []

    max_count = max(d['count'] for d in location_stats.values())
    result = []
    for (grid_lat, grid_lon), data in location_stats.items():
        gap_types = {
            'brief': data['brief_count'],
            'medium': data['medium_count'],
            'extended': data['extended_count'],
        }
        result.append({
            # centroid of actual positions, not the cell center
            'lat': round(data['lat_sum'] / data['count'], 4),
            'lon': round(data['lon_sum'] / data['count'], 4),
            'count': data['count'],
            'avgDuration': int(data['total_duration'] / data['count']),
            'intensity': min(100, int((data['count'] / max_count) * 100)),
            'affected_flights': len(data['flights']),
            'gap_type': max(gap_types, key=gap_types.get),
            'brief_count': data['brief_count'],
            'medium_count': data['medium_count'],
            'extended_count': data['extended_count'],
            'first_seen': min(data['timestamps']),
            'last_seen': max(data['timestamps']),
        })

    result.sort(key=lambda x: (-x['count'], x['lat'], x['lon']))
    return result[:limit]


def signal_loss_clusters(locations: List[Dict[str, Any]], cluster_threshold_nm: float = 15,
                         min_points_for_polygon: int = 3) -> Dict[str, Any]:
    """
    Cluster signal loss grid cells into polygons.

    Returns {clusters: [{id, polygon, centroid, point_count, ...}], singles, total_points, total_clusters}
    """
    start_time = time.perf_counter()
    if not locations:
        return {'clusters': [], 'singles': [], 'total_points': 0, 'total_clusters': 0}

    clusters = []
    singles = []
    for cluster_points in greedy_cluster(locations, cluster_threshold_nm, lambda p: (p['lat'], p['lon'])):
        if len(cluster_points) < min_points_for_polygon:
            singles.extend(cluster_points)
            continue

        centroid_lon = sum(p['lon'] for p in cluster_points) / len(cluster_points)
        centroid_lat = sum(p['lat'] for p in cluster_points) / len(cluster_points)
        try:
            coords = np.array([[p['lon'], p['lat']] for p in cluster_points])
            hull = ConvexHull(coords)
            polygon = coords[hull.vertices].tolist()
            polygon.append(polygon[0])
        except (QhullError, ValueError) as e:
            logger.warning(f"[SIGNAL_LOSS_CLUSTERS] ConvexHull failed for cluster: {e}")
            polygon = circle_polygon(centroid_lon, centroid_lat, 10)

        clusters.append({
            'id': len(clusters),
            'polygon': polygon,
            'centroid': [centroid_lon, centroid_lat],
            'point_count': len(cluster_points),
            'total_events': sum(p['count'] for p in cluster_points),
            'affected_flights': sum(p['affected_flights'] for p in cluster_points),
            'avg_duration': float(sum(p['avgDuration'] for p in cluster_points) / len(cluster_points)),
            'points': [{
                'lat': p['lat'],
                'lon': p['lon'],
                'count': p['count'],
                'avgDuration': p['avgDuration'],
                'event_count': p['count'],
            } for p in cluster_points],
        })

    logger.info(f"[SIGNAL_LOSS_CLUSTERS] Found {len(clusters)} clusters and {len(singles)} singles "
                f"in {time.perf_counter() - start_time:.2f}s")
    return {
        'clusters': clusters,
        'singles': singles,
        'total_points': len(locations),
        'total_clusters': len(clusters),
    }


def _identify_hotspot_regions(zones: List[Dict[str, Any]]) -> List[str]:
    region_counts = defaultdict(int)
    for zone in zones:
        lon, lat = zone['centroid']
        for region_name, bounds in COVERAGE_REGIONS.items():
            if (bounds['lat_min'] <= lat <= bounds['lat_max'] and
                    bounds['lon_min'] <= lon <= bounds['lon_max']):
                region_counts[region_name] += zone['event_count']
    sorted_regions = sorted(region_counts.items(), key=lambda x: (-x[1], x[0]))
    return [r[0] for r in sorted_regions[:3]]


def _empty_zones() -> Dict[str, Any]:
    return {'zones': [], 'total_events': 0, 'total_zones': 0,
            'coverage_summary': {'total_gap_area_sq_nm': 0, 'avg_zone_risk': 0, 'hotspot_regions': []}}


def signal_loss_zones(events: List[SignalLossEvent], buffer_radius_nm: float = 20,
                      min_events_for_zone: int = 2, merge_threshold_nm: float = 30,
                      limit: int = 50) -> Dict[str, Any]:
    """
    Coverage gap zones: estimated areas where flights disappear.

    Events within `2 * buffer + merge` of each other are linked with a KD-tree
    and merged with union-find; each group of at least `min_events_for_zone`
    events becomes a buffered polygon with a risk score.
    """
    if not events:
        return _empty_zones()

    def buffer_for(gap_seconds: float) -> float:
        if gap_seconds < 900:
            return buffer_radius_nm
        if gap_seconds < 1800:
            return buffer_radius_nm * 1.5
        if gap_seconds < 3600:
            return buffer_radius_nm * 2.0
        return buffer_radius_nm * 2.5

    coords = np.array([[e.lat, e.lon] for e in events])
    tree = cKDTree(coords)
    parent = list(range(len(events)))

    def find(x):
        if parent[x] != x:
            parent[x] = find(parent[x])
        return parent[x]

    merge_threshold_deg = (buffer_radius_nm * 2 + merge_threshold_nm) / 60.0
    for i, j in sorted(tree.query_pairs(r=merge_threshold_deg)):
        pi, pj = find(i), find(j)
        if pi != pj:
            parent[max(pi, pj)] = min(pi, pj)

    groups = defaultdict(list)
    for i in range(len(events)):
        groups[find(i)].append(i)
    raw_zones = [groups[k] for k in sorted(groups) if len(groups[k]) >= min_events_for_zone]

    zones = []
    for indices in raw_zones:
        zone_events = [events[i] for i in indices]
        centroid_lat = float(np.mean(coords[indices, 0]))
        centroid_lon = float(np.mean(coords[indices, 1]))
        flight_ids = {e.flight_id for e in zone_events}
        durations = [e.gap_seconds for e in zone_events]
        avg_gap = float(np.mean(durations))

        event_factor = min(50, len(indices) * 5)
        duration_factor = min(30, (avg_gap / 1800) * 30)
        flight_factor = min(20, len(flight_ids) * 2)
        risk_score = min(100, event_factor + duration_factor + flight_factor)

        polygon = None
        distinct = {(e.lon, e.lat) for e in zone_events}
        if len(distinct) >= 3:
            try:
                hull_coords = np.array(sorted(distinct))
                hull = ConvexHull(hull_coords)
                polygon = expand_polygon_points(hull_coords[hull.vertices].tolist(), centroid_lon,
                                                centroid_lat, max(buffer_for(d) for d in durations))
                polygon.append(polygon[0])
            except (QhullError, ValueError):
                polygon = None
        if polygon is None:
            avg_buffer = float(np.mean([buffer_for(d) for d in durations]))
            polygon = circle_polygon(centroid_lon, centroid_lat, avg_buffer, 16)

        zones.append({
            'polygon': polygon,
            'centroid': [centroid_lon, centroid_lat],
            'area_sq_nm': round(polygon_area_sq_nm(polygon[:-1]), 1),
            'event_count': len(indices),
            'affected_flights': len(flight_ids),
            'avg_gap_duration_sec': int(avg_gap),
            'max_gap_duration_sec': int(max(durations)),
            'risk_score': round(risk_score, 1),
            'gap_type': classify_gap(avg_gap),
            'first_seen': min(e.gap_start for e in zone_events),
            'last_seen': max(e.gap_start for e in zone_events),
            'points': [{
                'lat': e.lat,
                'lon': e.lon,
                'gap_duration': e.gap_seconds,
                'timestamp': e.gap_start,
                'flight_id': e.flight_id,
            } for e in zone_events[:15]],
        })

    zones.sort(key=lambda z: (-z['risk_score'], z['first_seen']))
    zones = zones[:limit]
    for idx, zone in enumerate(zones):
        zone['id'] = idx

    if not zones:
        result = _empty_zones()
        result['total_events'] = len(events)
        return result

    total_area = sum(z['area_sq_nm'] for z in zones)
    avg_risk = sum(z['risk_score'] for z in zones) / len(zones)
    logger.info(f"[COVERAGE_GAP_ZONES] Created {len(zones)} coverage gap zones from {len(events)} events")
    return {
        'zones': zones,
        'total_events': len(events),
        'total_zones': len(zones),
        'coverage_summary': {
            'total_gap_area_sq_nm': round(total_area, 1),
            'avg_zone_risk': round(avg_risk, 1),
            'hotspot_regions': _identify_hotspot_regions(zones),
        },
    }
