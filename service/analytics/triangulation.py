"""
Jamming source triangulation.

For each jamming zone, every affected flight contributes one bearing line:
from the point where it first showed a jamming signature inside the zone,
along its reported heading (or toward the zone centroid when no heading was
reported). The point on each line closest to the zone centroid is the flight's
vote for the emitter position; votes are averaged with the flight's signature
score as weight in a local tangent plane.

The confidence radius shrinks with the number of flights and with the angular
spread of their approach bearings (observers spread around the emitter pin it
down better than observers lined up on one side).
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from core.config import AnalyticsSettings, get_settings
from core.geodesy import from_local_nm, haversine_nm, initial_bearing_deg, to_local_nm
from core.models import (
    CONFIDENCE_HIGH, CONFIDENCE_LOW, CONFIDENCE_MEDIUM,
    FlaggedPoint, JammingZone, SignatureScore, TriangulatedSource,
)

logger = logging.getLogger(__name__)

MIN_RADIUS_NM = 1.0
MAX_RADIUS_NM = 250.0

METHODOLOGY = (
    "Score-weighted centroid of bearing-line foot points: each affected flight's "
    "zone entry point projected along its heading to the point nearest the zone "
    "centroid. Radius = base / (flights x (0.1 + angular spread))."
)


def estimate_ew_operator(lat: float, lon: float) -> str:
    """Estimate likely EW operator based on geographic location."""
    if 32 <= lat <= 37 and 34 <= lon <= 42:
        return 'Russia (Syria)'
    elif 29 <= lat <= 33 and 33 <= lon <= 36:
        return 'Unknown (Israel region)'
    elif 35 <= lat <= 42 and 26 <= lon <= 45:
        return 'Turkey/Black Sea'
    elif 24 <= lat <= 32 and 44 <= lon <= 56:
        return 'Iran/Persian Gulf'
    elif 30 <= lat <= 35 and 30 <= lon <= 35:
        return 'Eastern Mediterranean'
    return 'Unknown'


def power_band(mean_score: float) -> str:
    if mean_score >= 60:
        return CONFIDENCE_HIGH
    if mean_score >= 35:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


def _entry_points(zone: JammingZone) -> Dict[str, FlaggedPoint]:
    entries: Dict[str, FlaggedPoint] = {}
    for fp in zone.points:
        current = entries.get(fp.flight_id)
        if current is None or fp.point.ts < current.point.ts:
            entries[fp.flight_id] = fp
    return entries


def angular_spread(bearings_deg: List[float]) -> float:
    """1 - length of the mean unit vector: 0 when all bearings agree, toward 1 when spread around."""
    if not bearings_deg:
        return 0.0
    xs = [math.sin(math.radians(b)) for b in bearings_deg]
    ys = [math.cos(math.radians(b)) for b in bearings_deg]
    resultant = math.hypot(sum(xs) / len(xs), sum(ys) / len(ys))
    return max(0.0, min(1.0, 1.0 - resultant))


def triangulate_zone(zone: JammingZone, scores: Dict[str, SignatureScore],
                     settings: Optional[AnalyticsSettings] = None) -> TriangulatedSource:
    settings = settings or get_settings()
    ref_lat, ref_lon = zone.centroid
    entries = _entry_points(zone)
    flight_ids = sorted(entries)

    feet: List[Tuple[float, float]] = []
    weights: List[float] = []
    bearings: List[float] = []

    for fid in flight_ids:
        point = entries[fid].point
        x, y = to_local_nm(point.lat, point.lon, ref_lat, ref_lon)
        dist_to_centroid = haversine_nm(point.lat, point.lon, ref_lat, ref_lon)

        bearing_to_centroid = None
        if dist_to_centroid > 1e-6:
            bearing_to_centroid = initial_bearing_deg(point.lat, point.lon, ref_lat, ref_lon)
            bearings.append(bearing_to_centroid)

        heading = point.heading_deg if point.heading_deg is not None else bearing_to_centroid
        if heading is None:
            feet.append((x, y))
        else:
            ux, uy = math.sin(math.radians(heading)), math.cos(math.radians(heading))
            t = max(0.0, -x * ux - y * uy)
            feet.append((x + t * ux, y + t * uy))

        weights.append(float(scores[fid].total) if fid in scores else 0.0)

    if sum(weights) <= 0:
        weights = [1.0] * len(feet)

    feet_arr = np.array(feet)
    est_x = float(np.average(feet_arr[:, 0], weights=weights))
    est_y = float(np.average(feet_arr[:, 1], weights=weights))
    est_lat, est_lon = from_local_nm(est_x, est_y, ref_lat, ref_lon)

    n = len(flight_ids)
    spread = angular_spread(bearings)
    radius = settings.triangulation_base_radius_nm / (n * (0.1 + spread))
    radius = max(MIN_RADIUS_NM, min(MAX_RADIUS_NM, radius))

    if (n >= settings.triangulation_min_flights_high
            and spread >= settings.triangulation_min_spread_high
            and radius < settings.triangulation_high_radius_nm):
        level = CONFIDENCE_HIGH
    elif n >= settings.triangulation_min_flights_medium:
        level = CONFIDENCE_MEDIUM
    else:
        level = CONFIDENCE_LOW

    return TriangulatedSource(
        zone_id=zone.zone_id,
        lat=round(est_lat, 4),
        lon=round(est_lon, 4),
        confidence_radius_nm=round(radius, 1),
        confidence_level=level,
        affected_flight_ids=flight_ids,
        estimated_power=power_band(zone.mean_score),
        angular_spread=round(spread, 3),
        methodology=f"{METHODOLOGY} Flights: {n}, spread: {spread:.2f}, "
                    f"base radius: {settings.triangulation_base_radius_nm:g} nm.",
        estimated_operator=estimate_ew_operator(est_lat, est_lon),
    )


def triangulate_sources(zones: List[JammingZone], scores: Dict[str, SignatureScore],
                        settings: Optional[AnalyticsSettings] = None) -> Dict[str, Any]:
    """
    Estimate a jamming source for every zone.

    A zone that fails to triangulate is logged and skipped; the rest are returned.
    """
    sources = []
    skipped = 0
    for zone in zones:
        try:
            source = triangulate_zone(zone, scores, settings)
        except (ValueError, ZeroDivisionError, KeyError, IndexError) as e:
            logger.warning(f"Error triangulating {zone.zone_id}: {e}")
            skipped += 1
            continue
        record = source.to_dict()
        record.update({
            'confidence': source.confidence_level.lower(),
            'affected_points': zone.point_count,
            'avg_jamming_score': zone.mean_score,
        })
        sources.append(record)

    affected = set()
    for zone in zones:
        affected.update(zone.affected_flight_ids)

    if not sources:
        quality = 'insufficient_data'
    elif len(sources) >= 3 or any(s['confidence_level'] == CONFIDENCE_HIGH for s in sources):
        quality = 'good'
    else:
        quality = 'moderate'

    return {
        'estimated_sources': sources,
        'total_affected_flights': len(affected),
        'triangulation_quality': quality,
        'methodology': METHODOLOGY,
        'skipped_zones': skipped,
    }
