"""
Intelligence engine - per-window orchestration of every analytic.

One window fetch (plus the airline lookback fetch) feeds the whole pipeline:
signatures are scored in parallel, then zones, classifications and signal
loss events are derived once and cached as an immutable WindowAnalysis. Every
`get_*` method is a pure function of that analysis.

Provides:
- GPS jamming detection, mapping, timing and triangulation
- Military aircraft tracking, routes and bilateral proximity
- Combined threat assessment
- Signal loss, traffic, airline and safety statistics
- Anomaly DNA and per-flight predictions
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.config import AnalyticsSettings, get_settings
from core.errors import InvalidWindowError
from core.models import Flight, JammingZone, SignatureScore
from service.analytics import (
    dna, military, patterns, predictive, proximity, safety, signal_loss, temporal, traffic, triangulation, zones,
)
from service.analytics.cache import WindowCache
from service.analytics.classifier import EASTERN_COUNTRIES, FlightClassification, classify_flight
from service.analytics.signatures import MALFORMED_RECORD_ERRORS, score_flights
from service.analytics.threat import ThreatInputs, assess_threat
from service.track_store import TrackSnapshot, TrackStore

logger = logging.getLogger(__name__)

AIRLINE_LOOKBACK_DAYS = 30


def _well_formed(flights) -> List[Flight]:
    kept = []
    for flight in flights:
        try:
            traffic.flight_row(flight)
        except MALFORMED_RECORD_ERRORS as e:
            logger.warning(f"Skipping malformed lookback flight {flight.flight_id}: {e}")
            continue
        kept.append(flight)
    return kept


@dataclass(frozen=True)
class WindowAnalysis:
    """Everything derived once per window; shared read-only by all payloads."""
    start_ts: int
    end_ts: int
    snapshot: TrackSnapshot
    lookback: TrackSnapshot
    scores: Dict[str, SignatureScore]
    skipped_records: int
    zones: Tuple[JammingZone, ...]
    classifications: Dict[str, FlightClassification]
    signal_loss_events: Tuple[signal_loss.SignalLossEvent, ...]

    @property
    def flights(self) -> Tuple[Flight, ...]:
        return self.snapshot.flights


class IntelligenceEngine:
    """Engine for window analytics over a track store."""

    def __init__(self, store: TrackStore, settings: Optional[AnalyticsSettings] = None,
                 cache: Optional[WindowCache] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.cache = cache or WindowCache(self.settings.cache_expiry_seconds, self.settings.cache_max_entries)

    # ------------------------------------------------------------------
    # Window analysis
    # ------------------------------------------------------------------

    def validate_window(self, start_ts: int, end_ts: int) -> None:
        if start_ts >= end_ts:
            raise InvalidWindowError(f"start_ts ({start_ts}) must be before end_ts ({end_ts})")
        span_days = (end_ts - start_ts) / 86400
        if span_days > self.settings.max_window_days:
            raise InvalidWindowError(
                f"Window of {span_days:.1f} days exceeds the maximum of {self.settings.max_window_days} days")

    def analyze_window(self, start_ts: int, end_ts: int) -> WindowAnalysis:
        """Cached per-window analysis; concurrent callers share one computation."""
        self.validate_window(start_ts, end_ts)
        return self.cache.get_or_compute((start_ts, end_ts), lambda: self._compute(start_ts, end_ts))

    def _compute(self, start_ts: int, end_ts: int) -> WindowAnalysis:
        t0 = time.perf_counter()
        snapshot = self.store.fetch_window(start_ts, end_ts)
        lookback = self.store.fetch_window(start_ts - AIRLINE_LOOKBACK_DAYS * 86400, start_ts - 1)
        fetch_time = time.perf_counter() - t0

        scoring = score_flights(snapshot.flights, max_workers=self.settings.max_workers)
        flights, classifications, loss_events, rejected = self._derive_per_flight(snapshot.flights, scoring.scores)
        scores = {fid: score for fid, score in scoring.scores.items() if fid in classifications}
        skipped = scoring.skipped_records + rejected
        window_zones = zones.build_zones(scores, self.settings.zone_radius_nm, self.settings.zone_buffer_nm)

        logger.info(f"[INTEL] Window {start_ts}-{end_ts}: {len(flights)} flights, "
                    f"{len(window_zones)} zones, {skipped} skipped "
                    f"(fetch {fetch_time:.2f}s, total {time.perf_counter() - t0:.2f}s)")

        return WindowAnalysis(
            start_ts=start_ts,
            end_ts=end_ts,
            snapshot=TrackSnapshot(snapshot.start_ts, snapshot.end_ts, tuple(flights)),
            lookback=TrackSnapshot(lookback.start_ts, lookback.end_ts, tuple(_well_formed(lookback.flights))),
            scores=scores,
            skipped_records=skipped,
            zones=tuple(window_zones),
            classifications=classifications,
            signal_loss_events=tuple(loss_events),
        )

    @staticmethod
    def _derive_per_flight(flights, scores: Dict[str, SignatureScore]):
        """Classify and gap-scan each scored flight; a flight that fails any step is dropped and counted."""
        kept: List[Flight] = []
        classifications: Dict[str, FlightClassification] = {}
        loss_events: List[signal_loss.SignalLossEvent] = []
        rejected = 0
        for flight in flights:
            if flight.flight_id not in scores:
                continue
            try:
                classification = classify_flight(flight)
                events = signal_loss.detect_signal_loss_events([flight])
                traffic.flight_row(flight, scores[flight.flight_id])
            except MALFORMED_RECORD_ERRORS as e:
                logger.warning(f"Skipping malformed flight {flight.flight_id}: {e}")
                rejected += 1
                continue
            kept.append(flight)
            classifications[flight.flight_id] = classification
            loss_events.extend(events)
        loss_events.sort(key=lambda e: e.flight_id)
        return kept, classifications, loss_events, rejected

    def skipped_records(self, start_ts: int, end_ts: int) -> int:
        return self.analyze_window(start_ts, end_ts).skipped_records

    def clear_cache(self) -> int:
        return self.cache.clear()

    def cache_info(self) -> Dict[str, Any]:
        return self.cache.info()

    # ------------------------------------------------------------------
    # GPS jamming
    # ------------------------------------------------------------------

    def get_gps_jamming(self, start_ts: int, end_ts: int) -> List[Dict[str, Any]]:
        return zones.gps_jamming_points(list(self.analyze_window(start_ts, end_ts).zones))

    def get_gps_jamming_clusters(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return zones.gps_jamming_clusters(list(self.analyze_window(start_ts, end_ts).zones))

    def get_gps_jamming_temporal(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        events = [fp for zone in analysis.zones for fp in zone.points]
        return temporal.jamming_temporal(events)

    def get_gps_jamming_zones(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return zones.gps_jamming_zones(list(self.analyze_window(start_ts, end_ts).zones))

    def get_jamming_triangulation(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return triangulation.triangulate_sources(list(analysis.zones), analysis.scores, self.settings)

    # ------------------------------------------------------------------
    # Military
    # ------------------------------------------------------------------

    def get_military_patterns(self, start_ts: int, end_ts: int, country: Optional[str] = None,
                              aircraft_type: Optional[str] = None) -> List[Dict[str, Any]]:
        analysis = self.analyze_window(start_ts, end_ts)
        return military.military_patterns(analysis.flights, analysis.classifications,
                                          country=country, aircraft_type=aircraft_type)

    def get_military_routes(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return military.military_routes(self.get_military_patterns(start_ts, end_ts))

    def get_military_by_country(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return military.military_by_country(analysis.flights, analysis.classifications, start_ts, end_ts)

    def get_military_by_destination(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return military.military_by_destination(analysis.flights, analysis.classifications)

    def get_military_flights_with_tracks(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return military.military_flights_with_tracks(analysis.flights, analysis.classifications)

    def get_pattern_clusters(self, start_ts: int, end_ts: int) -> List[Dict[str, Any]]:
        analysis = self.analyze_window(start_ts, end_ts)
        return patterns.detect_pattern_clusters(analysis.flights, analysis.scores)

    def get_bilateral_proximity(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return proximity.detect_proximity_events(analysis.flights, analysis.classifications, self.settings)

    def get_threat_assessment(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        """Weighted combination of jamming, military, pattern and conflict activity."""
        analysis = self.analyze_window(start_ts, end_ts)
        military_cls = [c for c in analysis.classifications.values() if c.is_military]
        destinations = self.get_military_by_destination(start_ts, end_ts)
        proximity_result = self.get_bilateral_proximity(start_ts, end_ts)

        inputs = ThreatInputs(
            zones=analysis.zones,
            military_flights=len(military_cls),
            hostile_flights=sum(1 for c in military_cls if c.country in EASTERN_COUNTRIES),
            pattern_clusters=len(self.get_pattern_clusters(start_ts, end_ts)),
            conflict_flights=destinations['conflict_zone_flights'],
            conflict_from_east=destinations['conflict_from_east_count'],
            proximity_high_risk=proximity_result['high_risk_events'],
        )
        return assess_threat(inputs).to_dict()

    # ------------------------------------------------------------------
    # Signal loss
    # ------------------------------------------------------------------

    def get_signal_loss(self, start_ts: int, end_ts: int) -> List[Dict[str, Any]]:
        return signal_loss.signal_loss_locations(list(self.analyze_window(start_ts, end_ts).signal_loss_events))

    def get_signal_loss_clusters(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return signal_loss.signal_loss_clusters(self.get_signal_loss(start_ts, end_ts))

    def get_signal_loss_zones(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return signal_loss.signal_loss_zones(list(self.analyze_window(start_ts, end_ts).signal_loss_events))

    # ------------------------------------------------------------------
    # Traffic and airlines
    # ------------------------------------------------------------------

    def _frame(self, analysis: WindowAnalysis):
        return traffic.flights_frame(analysis.flights, analysis.scores)

    def get_airline_efficiency(self, start_ts: int, end_ts: int) -> List[Dict[str, Any]]:
        return traffic.airline_efficiency(self._frame(self.analyze_window(start_ts, end_ts)))

    def get_airline_activity(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        analysis = self.analyze_window(start_ts, end_ts)
        return traffic.airline_activity(self._frame(analysis), traffic.flights_frame(analysis.lookback.flights),
                                        start_ts, end_ts, AIRLINE_LOOKBACK_DAYS)

    def get_seasonal_year_comparison(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return traffic.seasonal_year_comparison(self._frame(self.analyze_window(start_ts, end_ts)))

    def get_special_events_impact(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return traffic.special_events_impact(self._frame(self.analyze_window(start_ts, end_ts)))

    def get_alternate_airports(self, start_ts: int, end_ts: int) -> List[Dict[str, Any]]:
        return traffic.alternate_airports(self.analyze_window(start_ts, end_ts).flights)

    # ------------------------------------------------------------------
    # Safety
    # ------------------------------------------------------------------

    def get_weather_impact(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return safety.weather_impact(self.analyze_window(start_ts, end_ts).flights)

    def get_traffic_safety_correlation(self, start_ts: int, end_ts: int) -> Dict[str, Any]:
        return safety.traffic_safety_correlation(self.analyze_window(start_ts, end_ts).flights)

    # ------------------------------------------------------------------
    # Single flight
    # ------------------------------------------------------------------

    def get_anomaly_dna(self, flight_id: str, lookback_days: Optional[int] = None,
                        time_of_day_window_hours: Optional[float] = None) -> Dict[str, Any]:
        return dna.anomaly_dna(self.store, flight_id, lookback_days, time_of_day_window_hours, self.settings)

    def predict_trajectory(self, flight_id: str) -> Dict[str, Any]:
        return predictive.predict_trajectory(self.store, flight_id)

    def predict_hostile_intent(self, flight_id: str) -> Dict[str, Any]:
        return predictive.predict_hostile_intent(self.store, flight_id, self.settings)
