"""
GPS jamming signature detector.

Scores one flight against eight independent jamming/spoofing signatures:

1. ALTITUDE JUMP - >3000 ft/sec altitude change (physically impossible)
2. SPOOFED ALTITUDE - altitude parked on a known spoofing value (34764ft, 44700ft, ...)
3. IMPOSSIBLE SPEED - reported ground speed > 600 kts
4. POSITION TELEPORT - implied speed between consecutive points > 600 kts
5. MLAT-ONLY - GPS jammed, only multilateration positions (>80% of points)
6. IMPOSSIBLE TURN RATE - >8 deg/sec instantaneous turn rate
7. HEADING INCONSISTENCY - heading oscillation (90 -> 270 -> 90) or reported
   track differing >90 deg from actual movement
8. SIGNAL LOSS GAP - no position for 5 minutes or more

Each signature accumulates points per hit up to its own cap. The total is
capped at 100 and mapped to a confidence band.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from core.geodesy import haversine_nm, heading_delta, initial_bearing_deg
from core.models import FlaggedPoint, Flight, SignatureScore, TrackPoint, confidence_band

logger = logging.getLogger(__name__)

# Known GPS spoofing altitude values
SPOOFED_ALTITUDES = (34764, 44700, 44600, 44500, 40000, 40400, 40800, 36864, 42100, 42500, 42700)
SPOOFED_ALTITUDE_EPSILON_FT = 50

# Thresholds
ALTITUDE_RATE_THRESHOLD = 3000  # ft/sec
SPEED_THRESHOLD_KTS = 600
POSITION_JUMP_THRESHOLD_KTS = 600
MLAT_RATIO_THRESHOLD = 0.8
TURN_RATE_THRESHOLD_DEG_S = 8.0
HEADING_OSCILLATION_DEG = 30
TRACK_BEARING_MISMATCH_DEG = 90
MIN_MOVEMENT_NM = 0.1
SIGNAL_GAP_SECONDS = 300

# Raised by a record with missing or mistyped fields
MALFORMED_RECORD_ERRORS = (TypeError, ValueError, AttributeError, ZeroDivisionError)


@dataclass(frozen=True)
class Signature:
    rule_id: int
    name: str
    label: str
    points_per_hit: int
    cap: int


SIGNATURES: Tuple[Signature, ...] = (
    Signature(1, 'altitude_jump', 'Altitude jump', 10, 20),
    Signature(2, 'spoofed_altitude', 'Spoofed altitude', 5, 15),
    Signature(3, 'impossible_speed', 'Impossible speed', 5, 15),
    Signature(4, 'position_teleport', 'Position teleport', 5, 15),
    Signature(5, 'mlat_only', 'MLAT-only', 8, 8),
    Signature(6, 'impossible_turn_rate', 'Impossible turn rate', 2, 12),
    Signature(7, 'heading_inconsistency', 'Heading inconsistency', 2, 10),
    Signature(8, 'signal_loss_gap', 'Signal loss gap', 20, 20),
)

SIGNATURES_BY_NAME: Dict[str, Signature] = {s.name: s for s in SIGNATURES}
SIGNATURES_BY_ID: Dict[int, Signature] = {s.rule_id: s for s in SIGNATURES}

# Track/bearing mismatch is a weaker indicator than oscillation
MISMATCH_POINTS = 1


def _is_spoofed_altitude(alt: Optional[float]) -> bool:
    if alt is None:
        return False
    return any(abs(alt - spoofed) <= SPOOFED_ALTITUDE_EPSILON_FT for spoofed in SPOOFED_ALTITUDES)


def score_flight(flight: Flight) -> SignatureScore:
    """
    Score a single flight for GPS jamming signatures.

    Pure function of the flight's points. Flights with fewer than two points
    cannot be evaluated and score 0 / UNLIKELY.
    """
    raw_points = {s.name: 0 for s in SIGNATURES}
    hits = {s.name: 0 for s in SIGNATURES}
    flagged: List[Tuple[str, TrackPoint]] = []

    points = flight.points
    if len(points) < 2:
        return SignatureScore(
            flight_id=flight.flight_id,
            component_scores=dict(raw_points),
            hit_counts=hits,
            total=0,
            confidence=confidence_band(0),
        )

    def hit(name: str, point: TrackPoint, amount: Optional[int] = None) -> None:
        hits[name] += 1
        raw_points[name] += SIGNATURES_BY_NAME[name].points_per_hit if amount is None else amount
        flagged.append((name, point))

    def check_point_values(point: TrackPoint) -> None:
        # 2. Spoofed altitude
        if _is_spoofed_altitude(point.alt_ft):
            hit('spoofed_altitude', point)

        # 3. Reported speed
        if point.speed_kt is not None and point.speed_kt > SPEED_THRESHOLD_KTS:
            hit('impossible_speed', point)

    check_point_values(points[0])
    prev_heading_change = 0.0

    for i in range(1, len(points)):
        prev = points[i - 1]
        curr = points[i]

        time_diff = curr.ts - prev.ts
        if time_diff <= 0:
            continue

        # 8. Signal loss
        if time_diff >= SIGNAL_GAP_SECONDS:
            hit('signal_loss_gap', curr)

        # 1. Altitude rate
        if curr.alt_ft is not None and prev.alt_ft is not None:
            alt_rate = abs(curr.alt_ft - prev.alt_ft) / time_diff
            if alt_rate > ALTITUDE_RATE_THRESHOLD:
                hit('altitude_jump', curr)

        check_point_values(curr)

        # 4. Position teleport
        dist_nm = haversine_nm(prev.lat, prev.lon, curr.lat, curr.lon)
        implied_speed = (dist_nm / time_diff) * 3600
        if implied_speed > POSITION_JUMP_THRESHOLD_KTS:
            hit('position_teleport', curr)

        # 6 / 7. Heading
        if curr.heading_deg is not None and prev.heading_deg is not None:
            heading_change = heading_delta(prev.heading_deg, curr.heading_deg)

            turn_rate = abs(heading_change) / time_diff
            if turn_rate > TURN_RATE_THRESHOLD_DEG_S:
                hit('impossible_turn_rate', curr)

            if ((prev_heading_change > HEADING_OSCILLATION_DEG and heading_change < -HEADING_OSCILLATION_DEG) or
                    (prev_heading_change < -HEADING_OSCILLATION_DEG and heading_change > HEADING_OSCILLATION_DEG)):
                hit('heading_inconsistency', curr)

            prev_heading_change = heading_change

        if curr.heading_deg is not None and dist_nm > MIN_MOVEMENT_NM:
            actual_bearing = initial_bearing_deg(prev.lat, prev.lon, curr.lat, curr.lon)
            if abs(heading_delta(actual_bearing, curr.heading_deg)) > TRACK_BEARING_MISMATCH_DEG:
                hit('heading_inconsistency', curr, MISMATCH_POINTS)

    # 5. MLAT dominance (flat, once per flight)
    mlat_points = [p for p in points if p.is_mlat]
    if len(mlat_points) / len(points) > MLAT_RATIO_THRESHOLD:
        hit('mlat_only', mlat_points[0])

    component_scores = {
        s.name: min(s.cap, raw_points[s.name]) for s in SIGNATURES
    }
    total = min(100, sum(component_scores.values()))

    flagged_points = [
        FlaggedPoint(
            flight_id=flight.flight_id,
            signature=name,
            rule_id=SIGNATURES_BY_NAME[name].rule_id,
            point=point,
            flight_score=total,
        )
        for name, point in flagged
    ]

    return SignatureScore(
        flight_id=flight.flight_id,
        component_scores=component_scores,
        hit_counts=hits,
        total=total,
        confidence=confidence_band(total),
        flagged_points=flagged_points,
    )


def summarize(score: SignatureScore) -> str:
    """Human-readable summary line for a flight score."""
    parts = []
    if score.confidence == 'HIGH':
        parts.append(f"HIGH CONFIDENCE GPS JAMMING DETECTED (score: {score.total}/100)")
    elif score.confidence == 'MEDIUM':
        parts.append(f"Possible GPS jamming detected (score: {score.total}/100)")
    elif score.confidence == 'LOW':
        parts.append(f"Minor GPS anomalies detected (score: {score.total}/100)")
    else:
        parts.append(f"No significant GPS jamming indicators (score: {score.total}/100)")

    for sig in SIGNATURES:
        n = score.hit_counts.get(sig.name, 0)
        if n:
            parts.append(f"{sig.label}: {n} hit{'s' if n != 1 else ''}")
    return '. '.join(parts)


@dataclass
class ScoringResult:
    scores: Dict[str, SignatureScore]
    skipped_records: int


def _safe_score(flight: Flight) -> Optional[SignatureScore]:
    try:
        return score_flight(flight)
    except MALFORMED_RECORD_ERRORS as e:
        logger.warning(f"Skipping malformed flight {getattr(flight, 'flight_id', '?')}: {e}")
        return None


def score_flights(flights: Iterable[Flight], max_workers: int = 4) -> ScoringResult:
    """
    Score every flight in a window.

    Flights are independent so they are fanned out across a thread pool; a
    malformed flight is logged and counted, never aborting the batch.
    """
    start = time.perf_counter()
    flights = list(flights)
    scores: Dict[str, SignatureScore] = {}
    skipped = 0

    if max_workers > 1 and len(flights) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(_safe_score, flights))
    else:
        results = [_safe_score(f) for f in flights]

    for flight, result in zip(flights, results):
        if result is None:
            skipped += 1
            continue
        scores[flight.flight_id] = result

    ordered = {fid: scores[fid] for fid in sorted(scores)}
    logger.info(f"[SIGNATURES] Scored {len(ordered)} flights, skipped {skipped} "
                f"in {time.perf_counter() - start:.2f}s")
    return ScoringResult(scores=ordered, skipped_records=skipped)
