"""
Combined threat assessment - aggregates GPS jamming, military activity,
unusual patterns, and conflict zone activity into a single score.

Weights:
- GPS Jamming: 30%
- Military Activity: 25%
- Unusual Patterns: 20%
- Conflict Zones: 25%
"""
from dataclasses import dataclass
from typing import List, Tuple

from core.models import CONFIDENCE_HIGH, CONFIDENCE_MEDIUM, JammingZone, ThreatAssessment

WEIGHTS = {
    'gps_jamming': 0.30,
    'military_activity': 0.25,
    'unusual_patterns': 0.20,
    'conflict_zone_activity': 0.25,
}

COMPONENT_LABELS = {
    'gps_jamming': 'Active GPS Jamming',
    'military_activity': 'High Military Presence',
    'unusual_patterns': 'Anomaly Clusters Detected',
    'conflict_zone_activity': 'Conflict Zone Activity',
}

# (min score, level, color)
LEVELS: Tuple[Tuple[int, str, str], ...] = (
    (80, 'CRITICAL', '#ef4444'),
    (60, 'HIGH', '#f97316'),
    (40, 'ELEVATED', '#eab308'),
    (20, 'MODERATE', '#3b82f6'),
    (0, 'LOW', '#22c55e'),
)


@dataclass(frozen=True)
class ThreatInputs:
    zones: Tuple[JammingZone, ...] = ()
    military_flights: int = 0
    hostile_flights: int = 0
    pattern_clusters: int = 0
    conflict_flights: int = 0
    conflict_from_east: int = 0
    proximity_high_risk: int = 0


def threat_level(score: int) -> Tuple[str, str]:
    """Level and color for an overall score."""
    for minimum, level, color in LEVELS:
        if score >= minimum:
            return level, color
    return LEVELS[-1][1], LEVELS[-1][2]


def gps_component(zones: Tuple[JammingZone, ...]) -> Tuple[int, dict]:
    zone_count = len(zones)
    high_confidence = sum(1 for z in zones if z.confidence == CONFIDENCE_HIGH)
    medium_confidence = sum(1 for z in zones if z.confidence == CONFIDENCE_MEDIUM)
    total_affected = sum(len(z.affected_flight_ids) for z in zones)

    score = min(100, (
        high_confidence * 15 +
        medium_confidence * 8 +
        min(30, zone_count * 3) +
        min(25, total_affected // 2)
    ))
    return score, {
        'raw_count': zone_count,
        'high_confidence_zones': high_confidence,
        'medium_confidence_zones': medium_confidence,
        'affected_flights': total_affected,
    }


def military_component(military_flights: int, hostile_flights: int) -> Tuple[int, dict]:
    score = min(100, (
        min(40, military_flights * 2) +
        min(40, hostile_flights * 10) +
        min(20, military_flights // 5)
    ))
    return score, {'total_flights': military_flights, 'hostile_flights': hostile_flights}


def pattern_component(cluster_count: int) -> Tuple[int, dict]:
    return min(100, cluster_count * 10), {'cluster_count': cluster_count}


def conflict_component(conflict_flights: int, from_east: int) -> Tuple[int, dict]:
    score = min(100, conflict_flights * 15 + from_east * 25)
    if conflict_flights > 0:
        description = f"{conflict_flights} military flights to conflict zones"
        if from_east > 0:
            description += f" ({from_east} from Russia/Iran)"
    else:
        description = "No significant conflict zone activity"
    return score, {
        'conflict_zone_flights': conflict_flights,
        'from_east': from_east,
        'description': description,
    }


def _recommendations(scores: dict, raw: dict) -> List[str]:
    candidates = []
    if scores['gps_jamming'] >= 50:
        candidates.append(('gps_jamming',
                           f"GPS interference detected in {raw['gps_jamming']['raw_count']} zones - "
                           f"advise alternative navigation"))
    if scores['military_activity'] >= 40:
        hostile = raw['military_activity']['hostile_flights']
        if hostile > 0:
            text = f"Russian/Iranian military activity detected ({hostile} flights)"
        else:
            text = f"Elevated military traffic ({raw['military_activity']['total_flights']} flights) - maintain separation awareness"
        candidates.append(('military_activity', text))
    if scores['unusual_patterns'] >= 30:
        candidates.append(('unusual_patterns',
                           f"Review {raw['unusual_patterns']['cluster_count']} recurring anomaly clusters"))
    if scores['conflict_zone_activity'] > 0:
        candidates.append(('conflict_zone_activity',
                           f"Monitor conflict zone airspace - "
                           f"{raw['conflict_zone_activity']['conflict_zone_flights']} military flights detected"))

    candidates.sort(key=lambda c: (-scores[c[0]], c[0]))
    return [text for _, text in candidates]


def assess_threat(inputs: ThreatInputs) -> ThreatAssessment:
    """Recompute the composite threat picture from the four component inputs."""
    gps_score, gps_raw = gps_component(inputs.zones)
    mil_score, mil_raw = military_component(inputs.military_flights, inputs.hostile_flights)
    pattern_score, pattern_raw = pattern_component(inputs.pattern_clusters)
    conflict_score, conflict_raw = conflict_component(inputs.conflict_flights, inputs.conflict_from_east)

    scores = {
        'gps_jamming': gps_score,
        'military_activity': mil_score,
        'unusual_patterns': pattern_score,
        'conflict_zone_activity': conflict_score,
    }
    raw = {
        'gps_jamming': gps_raw,
        'military_activity': mil_raw,
        'unusual_patterns': pattern_raw,
        'conflict_zone_activity': conflict_raw,
    }

    overall_score = int(round(sum(WEIGHTS[name] * scores[name] for name in WEIGHTS)))
    overall_score = max(0, min(100, overall_score))
    level, color = threat_level(overall_score)

    components = {
        name: {'score': scores[name], 'weight': WEIGHTS[name], 'raw_metrics': raw[name], **raw[name]}
        for name in WEIGHTS
    }

    concerns = [
        {'name': COMPONENT_LABELS[name], 'component': name, 'score': scores[name]}
        for name in WEIGHTS if scores[name] > 0
    ]
    concerns.sort(key=lambda c: (-c['score'], c['component']))

    recommendations = _recommendations(scores, raw)
    if not recommendations:
        if overall_score < 20:
            recommendations.append("Airspace conditions normal - continue standard operations")
        else:
            recommendations.append("Monitor situation and review component scores for details")

    alerts = []
    if inputs.proximity_high_risk > 0:
        alerts.append({
            'severity': 'critical' if inputs.proximity_high_risk > 3 else 'high',
            'message': f"{inputs.proximity_high_risk} high-risk bilateral proximity events",
        })
    if level in ('HIGH', 'CRITICAL'):
        alerts.append({'severity': level.lower(), 'message': f"Overall threat level {level} ({overall_score}/100)"})

    return ThreatAssessment(
        overall_score=overall_score,
        level=level,
        color=color,
        components=components,
        top_concerns=concerns[:4],
        recommendations=recommendations[:3],
        alerts=alerts,
    )
