"""
Predictive analytics for a single flight.

Provides:
- Trajectory prediction with restricted zone breach detection
- Hostile intent scoring
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.config import AnalyticsSettings, get_settings
from core.errors import InsufficientDataError, NotFoundError
from core.geodesy import dead_reckon, haversine_nm, heading_delta, initial_bearing_deg
from core.models import Flight, TrackPoint
from service.analytics.classifier import identify_military
from service.analytics.signatures import score_flight
from service.track_store import TrackStore

logger = logging.getLogger(__name__)

# Restricted zones / sensitive areas for trajectory breach detection
RESTRICTED_ZONES = {
    'LLBG_TMA': {
        'name': 'Ben Gurion TMA',
        'lat': 32.011389,
        'lon': 34.886667,
        'radius_nm': 25,
        'type': 'airport_tma',
        'severity': 'medium',
    },
    'BORDER_NORTH': {
        'name': 'Northern Border Zone',
        'lat': 33.1,
        'lon': 35.5,
        'radius_nm': 15,
        'type': 'border',
        'severity': 'high',
    },
    'BORDER_EAST': {
        'name': 'Eastern Border Zone',
        'lat': 31.5,
        'lon': 35.5,
        'radius_nm': 10,
        'type': 'border',
        'severity': 'high',
    },
    'DIMONA': {
        'name': 'Dimona Restricted',
        'lat': 31.0,
        'lon': 35.15,
        'radius_nm': 20,
        'type': 'restricted',
        'severity': 'critical',
    },
    'GAZA_BUFFER': {
        'name': 'Gaza Buffer Zone',
        'lat': 31.4,
        'lon': 34.4,
        'radius_nm': 15,
        'type': 'conflict',
        'severity': 'critical',
    },
    'LEBANON_FIR': {
        'name': 'Lebanon FIR Border',
        'lat': 33.3,
        'lon': 35.5,
        'radius_nm': 10,
        'type': 'fir_boundary',
        'severity': 'high',
    },
    'SYRIA_FIR': {
        'name': 'Syria FIR Border',
        'lat': 32.8,
        'lon': 36.0,
        'radius_nm': 15,
        'type': 'fir_boundary',
        'severity': 'high',
    },
}

TIME_STEPS = (30, 60, 90, 120, 180, 240, 300)
DEFAULT_SPEED_KTS = 300
HOSTILE_INTENT_MIN_POINTS = 5
OPERATOR_ANOMALY_MIN_TOTAL = 15


def _load(store: TrackStore, flight_id: str, need: int) -> Flight:
    flight = store.get_flight(flight_id)
    if flight is None:
        raise NotFoundError(flight_id)
    if len(flight.points) < need:
        raise InsufficientDataError(flight_id, len(flight.points), need)
    return flight


def current_state(points: Sequence[TrackPoint]) -> Dict[str, Optional[float]]:
    """Last position with heading and speed, derived from the last leg when not reported."""
    last = points[-1]
    heading = last.heading_deg
    speed = last.speed_kt
    if len(points) >= 2:
        prev = points[-2]
        dt = last.ts - prev.ts
        dist = haversine_nm(prev.lat, prev.lon, last.lat, last.lon)
        if heading is None and dist > 0:
            heading = initial_bearing_deg(prev.lat, prev.lon, last.lat, last.lon)
        if speed is None and dt > 0:
            speed = dist / dt * 3600
    return {'lat': last.lat, 'lon': last.lon, 'alt': last.alt_ft, 'heading': heading, 'speed': speed}


def trajectory_confidence(position: Dict[str, Optional[float]]) -> float:
    """
    Confidence score for trajectory prediction.

    Based on:
    - Speed consistency (reasonable range)
    - Altitude (higher = more predictable)
    - Data completeness
    """
    confidence = 0.5
    speed = position.get('speed') or 0
    alt = position.get('alt') or 0

    # Speed in reasonable range (150-550 kts for commercial)
    if 150 <= speed <= 550:
        confidence += 0.2
    elif 50 <= speed <= 700:
        confidence += 0.1

    if alt > 20000:
        confidence += 0.15
    elif alt > 10000:
        confidence += 0.1
    elif alt > 5000:
        confidence += 0.05

    if position.get('heading') is not None:
        confidence += 0.1

    if all(position.get(k) is not None for k in ('lat', 'lon', 'speed')):
        confidence += 0.05

    return min(0.95, round(confidence, 2))


def project_path(position: Dict[str, Optional[float]], start_ts: int) -> List[Dict[str, Any]]:
    heading = position['heading'] if position['heading'] is not None else 0.0
    speed_kts = position['speed'] if position['speed'] is not None else DEFAULT_SPEED_KTS
    path = []
    for dt in TIME_STEPS:
        lat, lon = dead_reckon(position['lat'], position['lon'], heading, (speed_kts / 3600) * dt)
        path.append({
            'lat': round(lat, 5),
            'lon': round(lon, 5),
            'time_offset_s': dt,
            'timestamp': start_ts + dt,
        })
    return path


def check_breach(positions: List[Tuple[float, float, int]]) -> Dict[str, Any]:
    """Earliest restricted zone entry along the positions, plus the closest zone overall."""
    breach = None
    closest_zone = None
    closest_distance = float('inf')

    for zone in RESTRICTED_ZONES.values():
        entered = False
        for lat, lon, offset in positions:
            distance = haversine_nm(lat, lon, zone['lat'], zone['lon'])
            if distance < closest_distance:
                closest_distance = distance
                closest_zone = zone
            if entered or distance >= zone['radius_nm']:
                continue
            # first entry into this zone
            entered = True
            if breach is None or offset < breach[0]:
                breach = (offset, zone)

    return {
        'breach_warning': breach is not None,
        'breach_time_seconds': breach[0] if breach else None,
        'breach_zone': breach[1]['name'] if breach else None,
        'breach_severity': breach[1]['severity'] if breach else None,
        'closest_zone': {
            'name': closest_zone['name'],
            'distance_nm': round(closest_distance, 1),
        } if closest_zone else None,
    }


def predict_trajectory(store: TrackStore, flight_id: str) -> Dict[str, Any]:
    """
    Predict the flight's trajectory for the next 5 minutes (kinematic
    prediction along the current heading at the current speed).

    Returns:
        {flight_id, predicted_path: [{lat, lon, time_offset_s}], breach_warning,
         breach_zone, breach_severity, breach_time_seconds, prediction_confidence,
         closest_zone: {name, distance_nm}}
    """
    flight = _load(store, flight_id, 1)
    position = current_state(flight.points)
    predicted_path = project_path(position, flight.end_ts)

    positions = [(position['lat'], position['lon'], 0)] + \
        [(p['lat'], p['lon'], p['time_offset_s']) for p in predicted_path]
    breach = check_breach(positions)
    confidence = trajectory_confidence(position)

    if breach['breach_warning']:
        logger.info(f"[PREDICT] {flight_id} predicted to enter {breach['breach_zone']} "
                    f"in {breach['breach_time_seconds']}s")

    return {
        'flight_id': flight_id,
        'callsign': flight.callsign,
        'current_position': position,
        'predicted_path': predicted_path,
        **breach,
        'prediction_confidence': confidence,
        'zones_checked': len(RESTRICTED_ZONES),
    }


def _analyze_zone_proximity(points: Sequence[TrackPoint]) -> Tuple[int, str]:
    min_distance = float('inf')
    closest_zone = None
    critical_approach = False

    for point in points[-10:]:
        for zone in RESTRICTED_ZONES.values():
            distance = haversine_nm(point.lat, point.lon, zone['lat'], zone['lon'])
            if distance < min_distance:
                min_distance = distance
                closest_zone = zone
            if zone['severity'] == 'critical' and distance < zone['radius_nm'] * 1.5:
                critical_approach = True

    if critical_approach:
        return 30, f"Approaching critical zone: {closest_zone['name']}"
    if min_distance < 10:
        return 25, f"Very close to sensitive zone: {closest_zone['name']} ({min_distance:.1f}nm)"
    if min_distance < 25:
        return 15, f"Near sensitive zone: {closest_zone['name']} ({min_distance:.1f}nm)"
    if min_distance < 50:
        return 5, f"Moderate distance from zones ({min_distance:.1f}nm)"
    return 0, "Far from sensitive zones"


def _analyze_heading_changes(points: Sequence[TrackPoint]) -> Tuple[int, str]:
    sudden_turns = 0
    turns_toward_zones = 0

    for prev, curr in zip(points, points[1:]):
        if prev.heading_deg is None or curr.heading_deg is None:
            continue
        delta = heading_delta(prev.heading_deg, curr.heading_deg)
        dt = curr.ts - prev.ts
        if 0 < dt < 60 and abs(delta) > 30:
            sudden_turns += 1
            for zone in RESTRICTED_ZONES.values():
                if zone['severity'] not in ('critical', 'high'):
                    continue
                bearing = initial_bearing_deg(curr.lat, curr.lon, zone['lat'], zone['lon'])
                if abs(heading_delta(bearing, curr.heading_deg)) < 30:
                    turns_toward_zones += 1
                    break

    if turns_toward_zones >= 2:
        return 25, f"Multiple heading changes toward sensitive zones ({turns_toward_zones})"
    if turns_toward_zones == 1:
        return 15, "Single heading change toward sensitive zone"
    if sudden_turns >= 3:
        return 10, f"Multiple sudden heading changes ({sudden_turns})"
    if sudden_turns >= 1:
        return 5, "Some heading variability"
    return 0, "Normal heading profile"


def _analyze_altitude_profile(points: Sequence[TrackPoint]) -> Tuple[int, str]:
    alts = [p.alt_ft for p in points if p.alt_ft]
    if not alts:
        return 0, "No altitude data"

    sudden_drops = sum(1 for a, b in zip(alts, alts[1:]) if a - b > 2000)
    min_recent_alt = min(alts[-5:])

    last = points[-1]
    near_airport = any(
        haversine_nm(last.lat, last.lon, zone['lat'], zone['lon']) < zone['radius_nm']
        for zone in RESTRICTED_ZONES.values() if zone['type'] == 'airport_tma'
    )

    if min_recent_alt < 3000 and not near_airport:
        return 20, f"Low altitude ({min_recent_alt:.0f}ft) away from airports"
    if sudden_drops >= 2:
        return 15, f"Multiple sudden altitude drops ({sudden_drops})"
    if sudden_drops == 1:
        return 8, "Single significant altitude drop"
    if min_recent_alt < 5000 and not near_airport:
        return 5, "Moderately low altitude away from airports"
    return 0, "Normal altitude profile"


def _analyze_speed_anomalies(points: Sequence[TrackPoint]) -> Tuple[int, str]:
    speeds = [p.speed_kt for p in points if p.speed_kt]
    if not speeds:
        return 0, "No speed data"

    avg_speed = sum(speeds) / len(speeds)
    max_speed = max(speeds)
    min_speed = min(speeds)
    speed_changes = sum(1 for a, b in zip(speeds, speeds[1:]) if abs(b - a) > 50)

    if max_speed > 500 and min_speed < 150:
        return 15, f"Extreme speed variation ({min_speed:.0f}-{max_speed:.0f} kts)"
    if speed_changes >= 3:
        return 10, f"Multiple sudden speed changes ({speed_changes})"
    if avg_speed < 100 and len(points) > 20:
        return 8, f"Sustained low speed ({avg_speed:.0f} kts) - possible loitering"
    if speed_changes >= 1:
        return 3, "Some speed variability"
    return 0, "Normal speed profile"


def _analyze_operator_history(flight: Flight, history: Sequence[Flight]) -> Tuple[int, str]:
    callsign = (flight.callsign or '').upper()
    if not callsign:
        return 0, "Unknown operator"

    military = identify_military(callsign)
    if military:
        return 5, f"Military callsign pattern ({military['name']})"

    prefix = callsign[:3]
    anomalies = sum(
        1 for other in history
        if other.flight_id != flight.flight_id
        and (other.callsign or '').upper().startswith(prefix)
        and score_flight(other).total >= OPERATOR_ANOMALY_MIN_TOTAL
    )
    if anomalies > 5:
        return 10, f"Operator has multiple historical anomalies ({anomalies})"
    if anomalies > 2:
        return 5, f"Operator has some historical anomalies ({anomalies})"
    return 0, "No concerning operator history"


def predict_hostile_intent(store: TrackStore, flight_id: str,
                           settings: Optional[AnalyticsSettings] = None) -> Dict[str, Any]:
    """
    Score hostile intent from flight behaviour.

    Factors (max points): Zone Proximity (30), Heading Behavior (25),
    Altitude Profile (20), Speed Anomalies (15), Operator History (10).
    """
    settings = settings or get_settings()
    flight = _load(store, flight_id, HOSTILE_INTENT_MIN_POINTS)
    points = flight.points

    history_start = flight.start_ts - settings.dna_lookback_days * 86400
    history = store.flights_between(history_start, flight.start_ts)

    analyses = (
        ('Zone Proximity', _analyze_zone_proximity(points)),
        ('Heading Behavior', _analyze_heading_changes(points)),
        ('Altitude Profile', _analyze_altitude_profile(points)),
        ('Speed Anomalies', _analyze_speed_anomalies(points)),
        ('Operator History', _analyze_operator_history(flight, history)),
    )
    factors = [{'name': name, 'score': score, 'description': desc} for name, (score, desc) in analyses]
    total_score = min(100, sum(f['score'] for f in factors))

    if total_score >= 70:
        risk_level = 'critical'
        recommendation = 'IMMEDIATE ATTENTION REQUIRED - Contact ATC and security immediately'
    elif total_score >= 50:
        risk_level = 'high'
        recommendation = 'High-priority monitoring - Prepare for possible interception'
    elif total_score >= 30:
        risk_level = 'medium'
        recommendation = 'Enhanced monitoring recommended - Track closely'
    else:
        risk_level = 'low'
        recommendation = 'Normal monitoring - No immediate concern'

    confidence = min(0.95, 0.5 + (len(points) / 100) * 0.3)

    return {
        'flight_id': flight_id,
        'callsign': flight.callsign,
        'intent_score': total_score,
        'risk_level': risk_level,
        'factors': factors,
        'recommendation': recommendation,
        'confidence': round(confidence, 2),
        'track_points_analyzed': len(points),
    }
