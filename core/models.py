from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

CONFIDENCE_HIGH = "HIGH"
CONFIDENCE_MEDIUM = "MEDIUM"
CONFIDENCE_LOW = "LOW"
CONFIDENCE_UNLIKELY = "UNLIKELY"

SOURCE_ADSB = "ADS-B"
SOURCE_MLAT = "MLAT"

ROLES = ("tanker", "ISR", "fighter", "transport", "other", "civilian")


def confidence_band(score: float) -> str:
    """Map a 0..100 score to its confidence band."""
    if score >= 60:
        return CONFIDENCE_HIGH
    if score >= 35:
        return CONFIDENCE_MEDIUM
    if score >= 15:
        return CONFIDENCE_LOW
    return CONFIDENCE_UNLIKELY


@dataclass(frozen=True)
class TrackPoint:
    lat: float
    lon: float
    alt_ft: Optional[float]
    speed_kt: Optional[float]
    heading_deg: Optional[float]
    ts: int
    position_source: str = SOURCE_ADSB
    squawk: Optional[str] = None

    @property
    def is_mlat(self) -> bool:
        return (self.position_source or "").upper() == SOURCE_MLAT

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Flight:
    flight_id: str
    callsign: Optional[str] = None
    airline: Optional[str] = None
    country: Optional[str] = None
    aircraft_type: Optional[str] = None
    role: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    planned_destination: Optional[str] = None
    is_military: bool = False
    points: Tuple[TrackPoint, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self.points = tuple(sorted(self.points, key=lambda p: p.ts))

    @property
    def start_ts(self) -> Optional[int]:
        return self.points[0].ts if self.points else None

    @property
    def end_ts(self) -> Optional[int]:
        return self.points[-1].ts if self.points else None

    @property
    def duration_sec(self) -> int:
        if len(self.points) < 2:
            return 0
        return self.points[-1].ts - self.points[0].ts


@dataclass(frozen=True)
class FlaggedPoint:
    flight_id: str
    signature: str
    rule_id: int
    point: TrackPoint
    flight_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flight_id": self.flight_id,
            "signature": self.signature,
            "rule_id": self.rule_id,
            "lat": self.point.lat,
            "lon": self.point.lon,
            "alt_ft": self.point.alt_ft,
            "timestamp": self.point.ts,
            "flight_score": self.flight_score,
        }


@dataclass
class SignatureScore:
    flight_id: str
    component_scores: Dict[str, int]
    hit_counts: Dict[str, int]
    total: int
    confidence: str
    flagged_points: List[FlaggedPoint] = field(default_factory=list)

    @property
    def rule_ids(self) -> List[int]:
        return sorted({fp.rule_id for fp in self.flagged_points})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flight_id": self.flight_id,
            "component_scores": dict(self.component_scores),
            "hit_counts": dict(self.hit_counts),
            "total": self.total,
            "confidence": self.confidence,
            "rule_ids": self.rule_ids,
            "flagged_points": [fp.to_dict() for fp in self.flagged_points],
        }


@dataclass
class JammingZone:
    zone_id: str
    centroid: Tuple[float, float]
    polygon: List[List[float]]
    point_count: int
    affected_flight_ids: List[str]
    mean_score: float
    zone_score: int
    confidence: str
    signature_breakdown: Dict[str, int]
    first_seen: int
    last_seen: int
    points: List[FlaggedPoint] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "centroid": {"lat": self.centroid[0], "lon": self.centroid[1]},
            "polygon": self.polygon,
            "point_count": self.point_count,
            "affected_flight_ids": list(self.affected_flight_ids),
            "affected_flights": len(self.affected_flight_ids),
            "mean_score": self.mean_score,
            "zone_score": self.zone_score,
            "confidence": self.confidence,
            "signature_breakdown": dict(self.signature_breakdown),
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
        }


@dataclass
class TriangulatedSource:
    zone_id: str
    lat: float
    lon: float
    confidence_radius_nm: float
    confidence_level: str
    affected_flight_ids: List[str]
    estimated_power: str
    angular_spread: float
    methodology: str
    estimated_operator: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "lat": self.lat,
            "lon": self.lon,
            "confidence_radius_nm": self.confidence_radius_nm,
            "confidence_level": self.confidence_level,
            "affected_flight_ids": list(self.affected_flight_ids),
            "num_affected_flights": len(self.affected_flight_ids),
            "estimated_power": self.estimated_power,
            "angular_spread": self.angular_spread,
            "methodology": self.methodology,
            "estimated_operator": self.estimated_operator,
        }


@dataclass
class ProximityEvent:
    flight_id_1: str
    flight_id_2: str
    callsign_1: Optional[str]
    callsign_2: Optional[str]
    country_1: str
    country_2: str
    min_distance_nm: float
    altitude_separation_ft: Optional[float]
    timestamp: int
    location: Dict[str, float]
    severity_score: int
    severity_level: str
    is_high_interest: bool

    @property
    def pair_key(self) -> str:
        return "-".join(sorted((self.country_1, self.country_2)))

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["pair"] = self.pair_key
        return d


@dataclass
class SimilarityMatch:
    candidate_flight_id: str
    score: int
    reasons: List[str]
    method: str
    matched_rule_ids: List[int] = field(default_factory=list)
    callsign: Optional[str] = None
    date: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    pattern: Optional[str] = None
    is_anomaly: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flight_id": self.candidate_flight_id,
            "candidate_flight_id": self.candidate_flight_id,
            "callsign": self.callsign,
            "similarity_score": self.score,
            "match_percentage": self.score,
            "reasons": list(self.reasons),
            "matched_rule_ids": list(self.matched_rule_ids),
            "method": self.method,
            "date": self.date,
            "origin": self.origin,
            "destination": self.destination,
            "pattern": self.pattern,
            "is_anomaly": self.is_anomaly,
        }


@dataclass
class ThreatAssessment:
    overall_score: int
    level: str
    color: str
    components: Dict[str, Dict[str, Any]]
    top_concerns: List[Dict[str, Any]]
    recommendations: List[str]
    alerts: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "level": self.level,
            "threat_level": self.level,
            "color": self.color,
            "threat_color": self.color,
            "components": self.components,
            "top_concerns": list(self.top_concerns),
            "recommendations": list(self.recommendations),
            "alerts": list(self.alerts),
        }
