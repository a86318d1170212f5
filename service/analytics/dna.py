"""
Anomaly DNA - find historically similar flights for a query flight.

Two modes, picked automatically:

- rule_based: the query flight triggered at least one jamming signature.
  Candidates must share a signature AND have a flagged point within
  `dna_distance_threshold_nm` of one of the query's flagged points
  (optionally also within a time-of-day window).
- attribute_based: no signature fired. Candidates are scored on airline,
  origin, destination and time of day; only scores >= 30 are kept.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from core.airport_lookup import get_airport_coords
from core.config import AnalyticsSettings, get_settings
from core.errors import InsufficientDataError, NotFoundError
from core.geodesy import haversine_nm
from core.models import CONFIDENCE_UNLIKELY, FlaggedPoint, Flight, SignatureScore, SimilarityMatch, TrackPoint
from service.analytics.signatures import SIGNATURES_BY_ID, score_flight
from service.track_store import TrackStore

logger = logging.getLogger(__name__)

MAX_RESULTS = 15

# Attribute weights
AIRLINE_WEIGHT = 35
ORIGIN_WEIGHT = 20
DESTINATION_WEIGHT = 20
TIME_OF_DAY_WEIGHT = 25
TIME_OF_DAY_HOURS = 2
ENDPOINT_PROXIMITY_NM = 25.0

RULE_OVERLAP_WEIGHT = 60
RULE_DISTANCE_WEIGHT = 40


def _iso(ts: Optional[int]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _seconds_of_day(ts: int) -> int:
    return ts % 86400


def time_of_day_diff_hours(ts1: int, ts2: int) -> float:
    """Circular difference between two times of day, in hours (0..12)."""
    diff = abs(_seconds_of_day(ts1) - _seconds_of_day(ts2))
    return min(diff, 86400 - diff) / 3600.0


def _closest_flagged(query: List[FlaggedPoint], candidate: List[FlaggedPoint],
                     rule_ids: set) -> Optional[Tuple[float, FlaggedPoint, FlaggedPoint]]:
    best = None
    for q in query:
        if q.rule_id not in rule_ids:
            continue
        for c in candidate:
            if c.rule_id not in rule_ids:
                continue
            d = haversine_nm(q.point.lat, q.point.lon, c.point.lat, c.point.lon)
            if best is None or d < best[0]:
                best = (d, q, c)
    return best


def _endpoint(code: Optional[str], point: TrackPoint) -> Tuple[float, float]:
    coords = get_airport_coords(code)
    return coords if coords else (point.lat, point.lon)


def _same_endpoint(code_a: Optional[str], code_b: Optional[str],
                   point_a: TrackPoint, point_b: TrackPoint) -> Tuple[bool, str]:
    if code_a and code_b:
        return code_a.upper() == code_b.upper(), 'code'
    lat_a, lon_a = _endpoint(code_a, point_a)
    lat_b, lon_b = _endpoint(code_b, point_b)
    return haversine_nm(lat_a, lon_a, lat_b, lon_b) <= ENDPOINT_PROXIMITY_NM, 'position'


def _route_pattern(query: Flight, cand: Flight) -> List[str]:
    same_origin, _ = _same_endpoint(query.origin, cand.origin, query.points[0], cand.points[0])
    same_dest, _ = _same_endpoint(query.destination, cand.destination, query.points[-1], cand.points[-1])
    if same_origin and same_dest:
        return ['same_route']
    if same_origin:
        return ['same_origin']
    if same_dest:
        return ['same_destination']
    return []


def match_rule_based(query: Flight, query_score: SignatureScore, cand: Flight,
                     cand_score: SignatureScore, threshold_nm: float,
                     time_window_hours: Optional[float] = None) -> Optional[SimilarityMatch]:
    shared = set(query_score.rule_ids) & set(cand_score.rule_ids)
    if not shared:
        return None

    closest = _closest_flagged(query_score.flagged_points, cand_score.flagged_points, shared)
    if closest is None or closest[0] > threshold_nm:
        return None
    distance, q_fp, c_fp = closest

    reasons = []
    if time_window_hours is not None:
        tod_diff = time_of_day_diff_hours(q_fp.point.ts, c_fp.point.ts)
        if tod_diff > time_window_hours:
            return None
        reasons.append(f"Flagged at similar time of day ({tod_diff:.1f}h apart)")

    overlap = len(shared) / len(query_score.rule_ids)
    score = round(RULE_OVERLAP_WEIGHT * overlap + RULE_DISTANCE_WEIGHT * (1 - distance / threshold_nm))
    score = max(0, min(100, score))

    names = [SIGNATURES_BY_ID[rid].label for rid in sorted(shared)]
    reasons.insert(0, f"Shared signatures: {', '.join(names)}")
    reasons.insert(1, f"Flagged point {distance:.1f} nm from query flagged point")

    pattern = _route_pattern(query, cand) + ['same_anomalies']
    return SimilarityMatch(
        candidate_flight_id=cand.flight_id,
        score=score,
        reasons=reasons,
        method='rule_based',
        matched_rule_ids=sorted(shared),
        callsign=cand.callsign,
        date=_iso(cand.start_ts),
        origin=cand.origin,
        destination=cand.destination,
        pattern='+'.join(pattern),
        is_anomaly=cand_score.confidence != CONFIDENCE_UNLIKELY,
    )


def match_attribute_based(query: Flight, cand: Flight, cand_score: SignatureScore,
                          min_score: int) -> Optional[SimilarityMatch]:
    score = 0
    reasons = []
    pattern = []

    if query.airline and cand.airline and query.airline.upper() == cand.airline.upper():
        score += AIRLINE_WEIGHT
        reasons.append(f"Same airline ({cand.airline})")

    same_origin, how = _same_endpoint(query.origin, cand.origin, query.points[0], cand.points[0])
    if same_origin:
        score += ORIGIN_WEIGHT
        reasons.append(f"Same origin ({cand.origin})" if how == 'code'
                       else f"Departed within {ENDPOINT_PROXIMITY_NM:g} nm of query origin")

    same_dest, how = _same_endpoint(query.destination, cand.destination, query.points[-1], cand.points[-1])
    if same_dest:
        score += DESTINATION_WEIGHT
        reasons.append(f"Same destination ({cand.destination})" if how == 'code'
                       else f"Arrived within {ENDPOINT_PROXIMITY_NM:g} nm of query destination")

    if same_origin and same_dest:
        pattern.append('same_route')
    elif same_origin:
        pattern.append('same_origin')
    elif same_dest:
        pattern.append('same_destination')

    tod_diff = time_of_day_diff_hours(query.start_ts, cand.start_ts)
    if tod_diff <= TIME_OF_DAY_HOURS:
        score += TIME_OF_DAY_WEIGHT
        reasons.append(f"Similar departure time ({tod_diff:.1f}h apart)")
        pattern.append('same_time_of_day')

    if score < min_score:
        return None

    return SimilarityMatch(
        candidate_flight_id=cand.flight_id,
        score=score,
        reasons=reasons,
        method='attribute_based',
        callsign=cand.callsign,
        date=_iso(cand.start_ts),
        origin=cand.origin,
        destination=cand.destination,
        pattern='+'.join(pattern) or 'attribute_match',
        is_anomaly=cand_score.confidence != CONFIDENCE_UNLIKELY,
    )


def _assess(similar: List[SimilarityMatch]) -> Tuple[str, str]:
    high_match = [m for m in similar if m.score >= 90]
    same_route = [m for m in similar if 'same_route' in (m.pattern or '')]
    same_anomalies = [m for m in similar if m.method == 'rule_based']

    if len(high_match) >= 3 and len(same_anomalies) >= 2:
        return (f"Strong recurring pattern: {len(high_match)} flights with >90% match, "
                f"{len(same_anomalies)} with same anomalies",
                'High - Systematic pattern requiring investigation')
    if len(high_match) >= 3:
        return (f"Recurring pattern detected: {len(high_match)} flights with >90% match",
                'High - Possible reconnaissance or surveillance pattern')
    if len(same_route) >= 2:
        return (f"Route pattern: {len(same_route)} flights on same route",
                'Medium - Repeated route activity')
    if len(similar) >= 3:
        return (f"Partial pattern: {len(similar)} similar flights",
                'Medium - Geographic overlap')
    return 'No significant recurring pattern detected', 'Low - Unique or infrequent flight path'


def anomaly_dna(store: TrackStore, flight_id: str, lookback_days: Optional[int] = None,
                time_of_day_window_hours: Optional[float] = None,
                settings: Optional[AnalyticsSettings] = None) -> Dict[str, Any]:
    """
    Find similar historical flights for `flight_id`.

    Raises NotFoundError for an unknown flight and InsufficientDataError when
    the query flight has fewer than two track points.
    """
    settings = settings or get_settings()
    lookback_days = settings.dna_lookback_days if lookback_days is None else lookback_days
    threshold_nm = settings.dna_distance_threshold_nm

    query = store.get_flight(flight_id)
    if query is None:
        raise NotFoundError(flight_id)
    if len(query.points) < 2:
        raise InsufficientDataError(flight_id, len(query.points), 2)

    query_score = score_flight(query)
    rule_ids = query_score.rule_ids
    method = 'rule_based' if rule_ids else 'attribute_based'

    lookback_start = query.start_ts - lookback_days * 86400
    candidates = [c for c in store.flights_between(lookback_start, query.end_ts)
                  if c.flight_id != flight_id and len(c.points) >= 2]

    similar: List[SimilarityMatch] = []
    for cand in candidates:
        cand_score = score_flight(cand)
        if method == 'rule_based':
            match = match_rule_based(query, query_score, cand, cand_score, threshold_nm,
                                     time_of_day_window_hours)
        else:
            match = match_attribute_based(query, cand, cand_score, settings.dna_min_attribute_score)
        if match is not None:
            similar.append(match)

    similar.sort(key=lambda m: (-m.score, m.candidate_flight_id))
    similar = similar[:MAX_RESULTS]
    logger.info(f"[ANOMALY DNA] {flight_id}: {method}, {len(candidates)} candidates, {len(similar)} matches")

    recurring_pattern, risk_assessment = _assess(similar)

    lats = [p.lat for p in query.points]
    lons = [p.lon for p in query.points]
    alts = [p.alt_ft for p in query.points if p.alt_ft]
    avg_alt = sum(alts) / len(alts) if alts else 0
    max_alt = max(alts) if alts else 0

    insights = [f"Route: {query.origin or '?'} -> {query.destination or '?'}"]
    if rule_ids:
        insights.append(f"This flight shows GPS jamming signatures (score {query_score.total}/100)")
        insights.append(f"Triggered signatures: {', '.join(SIGNATURES_BY_ID[r].label for r in rule_ids)}")
    if similar:
        avg_score = sum(m.score for m in similar) / len(similar)
        insights.append(f"Found {len(similar)} similar flights in the last {lookback_days} days")
        insights.append(f"Average similarity: {avg_score:.1f}%")
    else:
        insights.append(f"No similar flights found in the last {lookback_days} days")
    if avg_alt > 0:
        insights.append(f"Average altitude: {avg_alt:.0f} ft, Max altitude: {max_alt:.0f} ft")

    start_dt = datetime.fromtimestamp(query.start_ts, tz=timezone.utc)
    matching_criteria = {
        'method': method,
        'rule_ids': rule_ids,
        'lookback_days': lookback_days,
        'origin': query.origin,
        'destination': query.destination,
        'airline': query.airline,
    }
    if method == 'rule_based':
        matching_criteria.update({
            'distance_threshold_nm': threshold_nm,
            'time_of_day_window_hours': time_of_day_window_hours,
        })
    else:
        matching_criteria.update({
            'weights': {
                'airline': AIRLINE_WEIGHT,
                'origin': ORIGIN_WEIGHT,
                'destination': DESTINATION_WEIGHT,
                'time_of_day': TIME_OF_DAY_WEIGHT,
            },
            'min_score': settings.dna_min_attribute_score,
        })

    return {
        'flight_info': {
            'flight_id': query.flight_id,
            'callsign': query.callsign,
            'airline': query.airline,
            'origin': query.origin,
            'destination': query.destination,
            'start_ts': query.start_ts,
            'jamming_score': query_score.total,
            'jamming_confidence': query_score.confidence,
        },
        'similar_flights': [m.to_dict() for m in similar],
        'recurring_pattern': recurring_pattern,
        'risk_assessment': risk_assessment,
        'search_method': method,
        'matching_criteria': matching_criteria,
        'insights': insights,
        'anomalies_detected': [{
            'rule_id': fp.rule_id,
            'rule_name': SIGNATURES_BY_ID[fp.rule_id].label,
            'timestamp': fp.point.ts,
        } for fp in query_score.flagged_points[:50]],
        'fingerprint': {
            'bbox': {
                'min_lat': min(lats), 'max_lat': max(lats),
                'min_lon': min(lons), 'max_lon': max(lons),
            },
            'centroid': {'lat': sum(lats) / len(lats), 'lon': sum(lons) / len(lons)},
            'avg_altitude': round(avg_alt, 1),
            'max_altitude': max_alt,
            'rule_ids': rule_ids,
            'flight_hour': start_dt.hour,
            'flight_weekday': start_dt.weekday(),
        },
    }
