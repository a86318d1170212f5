"""
GPS jamming zone aggregation.

Flagged points from all flights in a window are clustered greedily: points are
visited in (timestamp, flight_id, lat, lon) order and joined to the nearest
existing cluster whose running-mean centroid lies within the clustering radius,
otherwise they start a new cluster. A flight flagged in several clusters is then
kept only in the one holding most of its points, so every flight belongs to
exactly one zone and no zone spans unrelated areas.

The same zones feed the map payloads: `gps_jamming` (zone records with heat
point fields), `gps_jamming_clusters` (hull polygons) and `gps_jamming_zones`
(buffered areas with a regional summary).
"""
import logging
import time
from collections import Counter, defaultdict
from typing import Any, Callable, Dict, List, Sequence, Tuple, TypeVar

import numpy as np
from scipy.spatial import ConvexHull, QhullError

from core.geodesy import circle_polygon, expand_polygon_points, haversine_nm, polygon_area_sq_nm
from core.models import FlaggedPoint, JammingZone, SignatureScore, confidence_band

logger = logging.getLogger(__name__)

T = TypeVar('T')

CORROBORATION_PER_FLIGHT = 15
CORROBORATION_CAP = 30
MIN_POINTS_FOR_CLUSTER = 3

ALTITUDE_SIGNATURES = ('altitude_jump', 'spoofed_altitude')
MOTION_SIGNATURES = ('impossible_speed', 'position_teleport')
HEADING_SIGNATURES = ('impossible_turn_rate', 'heading_inconsistency')

JAMMING_REGIONS = {
    'Syria': {'lat_min': 32.5, 'lat_max': 37.5, 'lon_min': 35.5, 'lon_max': 42.5},
    'Lebanon': {'lat_min': 33.0, 'lat_max': 34.7, 'lon_min': 35.0, 'lon_max': 36.7},
    'Eastern Mediterranean': {'lat_min': 32.0, 'lat_max': 37.0, 'lon_min': 30.0, 'lon_max': 36.0},
    'Northern Israel': {'lat_min': 32.5, 'lat_max': 33.5, 'lon_min': 34.5, 'lon_max': 36.0},
    'Gaza Border': {'lat_min': 31.0, 'lat_max': 32.0, 'lon_min': 34.0, 'lon_max': 35.0},
    'Sinai': {'lat_min': 28.0, 'lat_max': 31.5, 'lon_min': 32.5, 'lon_max': 35.0},
    'Cyprus': {'lat_min': 34.5, 'lat_max': 35.7, 'lon_min': 32.0, 'lon_max': 34.5},
    'Iraq Border': {'lat_min': 33.0, 'lat_max': 37.0, 'lon_min': 38.0, 'lon_max': 44.0},
}


def greedy_cluster(items: Sequence[T], radius_nm: float,
                   latlon: Callable[[T], Tuple[float, float]]) -> List[List[T]]:
    """
    Greedy running-mean clustering.

    `items` must already be in a deterministic order. Each item joins the
    nearest cluster centroid within `radius_nm` (earliest cluster on ties),
    else starts a new cluster.
    """
    clusters: List[List[T]] = []
    centroids: List[List[float]] = []  # [sum_lat, sum_lon, n]

    for item in items:
        lat, lon = latlon(item)
        best_idx = -1
        best_dist = None
        for idx, (sum_lat, sum_lon, n) in enumerate(centroids):
            dist = haversine_nm(lat, lon, sum_lat / n, sum_lon / n)
            if dist <= radius_nm and (best_dist is None or dist < best_dist):
                best_idx, best_dist = idx, dist
        if best_idx < 0:
            clusters.append([item])
            centroids.append([lat, lon, 1])
        else:
            clusters[best_idx].append(item)
            centroids[best_idx][0] += lat
            centroids[best_idx][1] += lon
            centroids[best_idx][2] += 1

    return clusters


def _assign_flights_to_one_cluster(clusters: List[List[FlaggedPoint]]) -> List[List[FlaggedPoint]]:
    """Keep each flight's points only in the cluster holding most of them (earliest cluster on ties)."""
    counts: Dict[str, Counter] = defaultdict(Counter)
    for idx, cluster in enumerate(clusters):
        for fp in cluster:
            counts[fp.flight_id][idx] += 1

    home = {
        fid: sorted(per_cluster.items(), key=lambda x: (-x[1], x[0]))[0][0]
        for fid, per_cluster in counts.items()
    }
    assigned = [[fp for fp in cluster if home[fp.flight_id] == idx] for idx, cluster in enumerate(clusters)]
    return [cluster for cluster in assigned if cluster]


def zone_buffer_nm(mean_score: float, base_buffer_nm: float) -> float:
    # Buffer scales with jamming score but is capped
    score_factor = 1.0 + (mean_score / 100) * 0.5
    return min(base_buffer_nm * score_factor, 30)


def hull_polygon(latlons: Sequence[Tuple[float, float]], centroid_lat: float,
                 centroid_lon: float, buffer_nm: float) -> List[List[float]]:
    """Buffered convex hull as a closed [lon, lat] ring, or a circle for degenerate input."""
    distinct = sorted(set((round(lat, 6), round(lon, 6)) for lat, lon in latlons))
    if len(distinct) >= 3:
        try:
            hull_coords = np.array([[lon, lat] for lat, lon in distinct])
            hull = ConvexHull(hull_coords)
            hull_points = hull_coords[hull.vertices].tolist()
            expanded = expand_polygon_points(hull_points, centroid_lon, centroid_lat, buffer_nm)
            expanded.append(expanded[0])
            return expanded
        except (QhullError, ValueError):
            # collinear points
            pass
    return circle_polygon(centroid_lon, centroid_lat, buffer_nm, 16)


def build_zones(scores: Dict[str, SignatureScore], radius_nm: float = 50.0,
                buffer_nm: float = 15.0) -> List[JammingZone]:
    """Cluster every flagged point in the window into jamming zones."""
    start = time.perf_counter()
    flagged = [fp for fid in sorted(scores) for fp in scores[fid].flagged_points]
    if not flagged:
        return []

    flagged.sort(key=lambda fp: (fp.point.ts, fp.flight_id, fp.point.lat, fp.point.lon))
    clusters = greedy_cluster(flagged, radius_nm, lambda fp: (fp.point.lat, fp.point.lon))
    clusters = _assign_flights_to_one_cluster(clusters)

    zones = []
    for cluster in clusters:
        lats = [fp.point.lat for fp in cluster]
        lons = [fp.point.lon for fp in cluster]
        centroid_lat = float(np.mean(lats))
        centroid_lon = float(np.mean(lons))

        flight_ids = sorted({fp.flight_id for fp in cluster})
        mean_score = float(np.mean([scores[fid].total for fid in flight_ids]))
        corroboration = min(CORROBORATION_CAP, CORROBORATION_PER_FLIGHT * (len(flight_ids) - 1))
        zone_score = int(min(100, round(mean_score + corroboration)))

        breakdown = Counter(fp.signature for fp in cluster)
        polygon = hull_polygon(list(zip(lats, lons)), centroid_lat, centroid_lon,
                               zone_buffer_nm(mean_score, buffer_nm))

        zones.append(JammingZone(
            zone_id='',
            centroid=(round(centroid_lat, 4), round(centroid_lon, 4)),
            polygon=polygon,
            point_count=len(cluster),
            affected_flight_ids=flight_ids,
            mean_score=round(mean_score, 1),
            zone_score=zone_score,
            confidence=confidence_band(zone_score),
            signature_breakdown=dict(sorted(breakdown.items())),
            first_seen=min(fp.point.ts for fp in cluster),
            last_seen=max(fp.point.ts for fp in cluster),
            points=cluster,
        ))

    zones.sort(key=lambda z: (-len(z.affected_flight_ids), -z.zone_score, z.centroid[0], z.centroid[1]))
    for idx, zone in enumerate(zones, start=1):
        zone.zone_id = f"ZONE_{idx}"

    logger.info(f"[GPS_JAMMING_ZONES] Built {len(zones)} zones from {len(flagged)} flagged points "
                f"in {time.perf_counter() - start:.2f}s")
    return zones


def _count(zone: JammingZone, names: Sequence[str]) -> int:
    return sum(zone.signature_breakdown.get(n, 0) for n in names)


def _mlat_flights(zone: JammingZone) -> int:
    return len({fp.flight_id for fp in zone.points if fp.signature == 'mlat_only'})


def jamming_type(zone: JammingZone) -> str:
    altitude = _count(zone, ALTITUDE_SIGNATURES)
    teleports = zone.signature_breakdown.get('position_teleport', 0)
    if altitude > teleports and altitude > 0:
        return 'spoofing'
    if _mlat_flights(zone) > len(zone.affected_flight_ids) * 0.3:
        return 'denial'
    return 'mixed'


def gps_jamming_points(zones: List[JammingZone]) -> List[Dict[str, Any]]:
    """Zone records carrying the heat-map point fields the map layer renders."""
    result = []
    for zone in zones:
        record = zone.to_dict()
        record.update({
            'lat': zone.centroid[0],
            'lon': zone.centroid[1],
            'intensity': zone.zone_score,
            'jamming_score': zone.mean_score,
            'jamming_confidence': zone.confidence,
            'jamming_indicators': [
                f"{name}: {count}" for name, count in zone.signature_breakdown.items()
            ],
            'event_count': zone.point_count,
            'affected_flights': len(zone.affected_flight_ids),
            'correlated_events': zone.point_count - len(zone.affected_flight_ids),
            'altitude_anomalies': _count(zone, ALTITUDE_SIGNATURES),
            'motion_anomalies': _count(zone, MOTION_SIGNATURES),
            'heading_anomalies': _count(zone, HEADING_SIGNATURES),
            'signal_gaps': zone.signature_breakdown.get('signal_loss_gap', 0),
            'mlat_only_flights': _mlat_flights(zone),
            'likely_jamming': zone.zone_score >= 35,
        })
        result.append(record)
    return result


def gps_jamming_clusters(zones: List[JammingZone]) -> Dict[str, Any]:
    """Zones with enough points to draw a hull are clusters, the rest singles."""
    clusters = []
    singles = []
    for zone in zones:
        points = [{
            'lat': fp.point.lat,
            'lon': fp.point.lon,
            'flight_id': fp.flight_id,
            'signature': fp.signature,
            'jamming_score': fp.flight_score,
            'timestamp': fp.point.ts,
        } for fp in zone.points]
        if zone.point_count >= MIN_POINTS_FOR_CLUSTER:
            clusters.append({
                'id': zone.zone_id,
                'polygon': zone.polygon,
                'centroid': [zone.centroid[1], zone.centroid[0]],
                'point_count': zone.point_count,
                'total_events': zone.point_count,
                'affected_flights': len(zone.affected_flight_ids),
                'avg_score': zone.mean_score,
                'confidence': zone.confidence,
                'points': points,
            })
        else:
            singles.extend(points)

    return {
        'clusters': clusters,
        'singles': singles,
        'total_points': sum(z.point_count for z in zones),
        'total_clusters': len(clusters),
    }


def identify_jamming_regions(zones: List[JammingZone]) -> List[str]:
    """Named regions ranked by summed zone score, top 3."""
    region_scores = defaultdict(float)
    for zone in zones:
        lat, lon = zone.centroid
        for region_name, bounds in JAMMING_REGIONS.items():
            if (bounds['lat_min'] <= lat <= bounds['lat_max'] and
                    bounds['lon_min'] <= lon <= bounds['lon_max']):
                region_scores[region_name] += zone.zone_score

    sorted_regions = sorted(region_scores.items(), key=lambda x: (-x[1], x[0]))
    return [r[0] for r in sorted_regions[:3]]


def gps_jamming_zones(zones: List[JammingZone], limit: int = 30) -> Dict[str, Any]:
    """Buffered jamming areas plus a summary of type, area and hotspot regions."""
    if not zones:
        return {
            'zones': [],
            'total_events': 0,
            'total_zones': 0,
            'jamming_summary': {
                'total_jamming_area_sq_nm': 0,
                'avg_jamming_score': 0,
                'primary_type': 'none',
                'hotspot_regions': [],
            },
        }

    selected = zones[:limit]
    records = []
    total_area = 0.0
    for zone in selected:
        area = polygon_area_sq_nm(zone.polygon[:-1])
        total_area += area
        records.append({
            'id': zone.zone_id,
            'polygon': zone.polygon,
            'centroid': [zone.centroid[1], zone.centroid[0]],
            'area_sq_nm': round(area, 1),
            'event_count': zone.point_count,
            'affected_flights': len(zone.affected_flight_ids),
            'jamming_score': zone.mean_score,
            'zone_score': zone.zone_score,
            'jamming_type': jamming_type(zone),
            'indicators': {
                'altitude_spikes': _count(zone, ALTITUDE_SIGNATURES),
                'position_teleports': zone.signature_breakdown.get('position_teleport', 0),
                'heading_anomalies': _count(zone, HEADING_SIGNATURES),
                'mlat_only': _mlat_flights(zone),
                'signal_gaps': zone.signature_breakdown.get('signal_loss_gap', 0),
            },
            'first_seen': zone.first_seen,
            'last_seen': zone.last_seen,
            'confidence': zone.confidence,
            'points': [{
                'lat': fp.point.lat,
                'lon': fp.point.lon,
                'jamming_score': fp.flight_score,
            } for fp in zone.points[:12]],
        })

    type_counts = Counter(r['jamming_type'] for r in records)
    primary_type = sorted(type_counts.items(), key=lambda x: (-x[1], x[0]))[0][0]
    avg_score = sum(r['jamming_score'] for r in records) / len(records)

    return {
        'zones': records,
        'total_events': sum(r['event_count'] for r in records),
        'total_zones': len(records),
        'jamming_summary': {
            'total_jamming_area_sq_nm': round(total_area, 1),
            'avg_jamming_score': round(avg_score, 1),
            'primary_type': primary_type,
            'hotspot_regions': identify_jamming_regions(selected),
        },
    }
