"""
Analytics routes - intelligence, traffic and safety batches, per-flight
predictions, cache management.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from core.errors import InsufficientDataError, InvalidWindowError, NotFoundError
from service.analytics import temporal, traffic
from service.analytics.threat import ThreatInputs, assess_threat

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])

# Set by the main api.py module
intelligence_engine = None


def configure(intelligence_engine_instance):
    """Configure the router with the engine instance from api.py"""
    global intelligence_engine
    intelligence_engine = intelligence_engine_instance


def _raise_http(e: Exception, context: str):
    """Translate a domain error into the matching HTTPException."""
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InsufficientDataError):
        raise HTTPException(status_code=422, detail=str(e))
    if isinstance(e, InvalidWindowError):
        raise HTTPException(status_code=400, detail=str(e))
    logger.error(f"Error in {context}: {e}")
    raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# FIELD-STABLE DEFAULTS
# ============================================================================

def _empty_military_by_country() -> Dict[str, Any]:
    return {
        "countries": {},
        "summary": {
            "total_military_flights": 0,
            "countries_detected": 0,
            "top_countries": [],
            "analysis_period_days": 0,
            "alerts": [],
        },
    }


def _empty_military_by_destination() -> Dict[str, Any]:
    return {
        "total_flights": 0,
        "by_destination": {},
        "by_origin": {},
        "syria_flights": [],
        "syria_from_east_count": 0,
        "conflict_zone_flights": 0,
        "conflict_from_east_count": 0,
    }


def _empty_proximity() -> Dict[str, Any]:
    return {
        "events": [],
        "by_pair": {},
        "total_events": 0,
        "high_risk_events": 0,
        "proximity_threshold_nm": None,
        "time_window_sec": None,
        "alerts": [],
        "capped_cells": 0,
    }


def _empty_triangulation() -> Dict[str, Any]:
    return {
        "estimated_sources": [],
        "total_affected_flights": 0,
        "triangulation_quality": "error",
        "methodology": None,
        "skipped_zones": 0,
    }


def _empty_signal_loss_zones() -> Dict[str, Any]:
    return {
        "zones": [],
        "total_events": 0,
        "total_zones": 0,
        "coverage_summary": {
            "total_gap_area_sq_nm": 0,
            "avg_zone_risk": 0,
            "hotspot_regions": [],
        },
    }


def _empty_clusters() -> Dict[str, Any]:
    return {"clusters": [], "singles": [], "total_points": 0, "total_clusters": 0}


# key -> (engine method name, default factory)
BatchKeys = Dict[str, Tuple[str, Callable[[], Any]]]

INTEL_KEYS: BatchKeys = {
    "gps_jamming": ("get_gps_jamming", list),
    "gps_jamming_clusters": ("get_gps_jamming_clusters", _empty_clusters),
    "gps_jamming_temporal": ("get_gps_jamming_temporal", lambda: {
        "by_hour": [{"hour": h, "count": 0} for h in range(24)],
        "by_day_of_week": [{"day": d, "day_name": name, "count": 0} for d, name in enumerate(temporal.DAY_NAMES)],
        "peak_hours": [],
        "peak_days": [],
        "total_events": 0,
    }),
    "gps_jamming_zones": ("get_gps_jamming_zones", lambda: {
        "zones": [],
        "total_events": 0,
        "total_zones": 0,
        "jamming_summary": {
            "total_jamming_area_sq_nm": 0,
            "avg_jamming_score": 0,
            "primary_type": "none",
            "hotspot_regions": [],
        },
    }),
    "military_patterns": ("get_military_patterns", list),
    "pattern_clusters": ("get_pattern_clusters", list),
    "military_routes": ("get_military_routes", lambda: {
        "by_country": {},
        "by_type": {},
        "route_segments": [],
        "total_military_flights": 0,
    }),
    "military_by_country": ("get_military_by_country", _empty_military_by_country),
    "military_by_destination": ("get_military_by_destination", _empty_military_by_destination),
    "military_flights_with_tracks": ("get_military_flights_with_tracks", lambda: {
        "flights": [],
        "by_country": {},
        "total_flights": 0,
        "countries": [],
    }),
    "bilateral_proximity": ("get_bilateral_proximity", _empty_proximity),
    "threat_assessment": ("get_threat_assessment", lambda: assess_threat(ThreatInputs()).to_dict()),
    "jamming_triangulation": ("get_jamming_triangulation", _empty_triangulation),
    "signal_loss_zones": ("get_signal_loss_zones", _empty_signal_loss_zones),
    "airline_efficiency": ("get_airline_efficiency", list),
    "airline_activity": ("get_airline_activity", lambda: {
        "stopped_flying": [],
        "started_flying": [],
        "activity_changes": [],
        "analysis_period": None,
    }),
}

TRAFFIC_KEYS: BatchKeys = {
    "seasonal_year_comparison": ("get_seasonal_year_comparison", lambda: {
        "years": [], "month_comparison": [], "insights": [],
    }),
    "special_events_impact": ("get_special_events_impact", lambda: {
        "detected_events": [],
        "weekly_pattern": [
            {"day_of_week": d, "day_name": name, "avg_traffic": 0, "avg_anomalies": 0}
            for d, name in enumerate(traffic.DAY_NAMES)
        ],
        "insights": [],
    }),
    "alternate_airports": ("get_alternate_airports", list),
    "signal_loss": ("get_signal_loss", list),
    "signal_loss_clusters": ("get_signal_loss_clusters", _empty_clusters),
}

SAFETY_KEYS: BatchKeys = {
    "weather_impact": ("get_weather_impact", lambda: {
        "weather_correlated_anomalies": 0,
        "diversions_likely_weather": [],
        "go_arounds_weather_pattern": [],
        "monthly_weather_impact": [],
        "total_diversions": 0,
        "total_go_arounds": 0,
        "total_deviations": 0,
        "insights": [],
    }),
    "traffic_safety_correlation": ("get_traffic_safety_correlation", lambda: {
        "hourly_correlation": [],
        "correlation_score": 0.0,
        "peak_risk_hours": [],
        "total_safety_events": 0,
        "insights": [],
    }),
}


class BatchRequest(BaseModel):
    start_ts: int
    end_ts: int
    include: Optional[List[str]] = None


def _run_batch(label: str, request: BatchRequest, keys: BatchKeys) -> Dict[str, Any]:
    """
    Compute every requested key over one shared window analysis.

    A failing key is logged and replaced by its empty default; the window
    itself failing (bad bounds, store error) fails the whole request.
    """
    batch_start = time.perf_counter()
    start_ts, end_ts = request.start_ts, request.end_ts

    include_set = set(keys) if request.include is None else set(request.include)
    unknown = include_set - set(keys)
    if unknown:
        logger.warning(f"[{label}] Ignoring unknown include keys: {sorted(unknown)}")

    try:
        t0 = time.perf_counter()
        intelligence_engine.analyze_window(start_ts, end_ts)
        timings = {"window": time.perf_counter() - t0}
    except Exception as e:
        _raise_http(e, f"{label.lower()} window")

    result = {}
    for key, (method_name, default) in keys.items():
        if key not in include_set:
            continue
        t0 = time.perf_counter()
        try:
            result[key] = getattr(intelligence_engine, method_name)(start_ts, end_ts)
        except Exception as e:
            logger.warning(f"Error fetching {key}: {e}")
            result[key] = default()
        timings[key] = time.perf_counter() - t0

    result["skipped_records"] = intelligence_engine.skipped_records(start_ts, end_ts)

    total_time = time.perf_counter() - batch_start
    sorted_timings = sorted(timings.items(), key=lambda x: x[1], reverse=True)
    logger.info(
        f"[{label}] Total: {total_time:.2f}s | "
        + " | ".join([f"{k}: {v:.2f}s" for k, v in sorted_timings])
    )
    return result


# ============================================================================
# CACHE MANAGEMENT ENDPOINTS
# ============================================================================


@router.post("/api/cache/clear")
def clear_cache():
    """Clear all cached window analyses."""
    count = intelligence_engine.clear_cache()
    return {"status": "ok", "cleared_entries": count}


@router.get("/api/cache/info")
def cache_info():
    """Get cache statistics."""
    return intelligence_engine.cache_info()


# ============================================================================
# BATCH ENDPOINTS
# ============================================================================


@router.post("/api/intel/batch")
def get_intelligence_batch(request: BatchRequest):
    """Batch endpoint - compute all intelligence stats in one request."""
    return _run_batch("INTEL BATCH", request, INTEL_KEYS)


@router.post("/api/stats/traffic/batch")
def get_traffic_batch(request: BatchRequest):
    """Traffic trends, alternates and signal loss in one request."""
    return _run_batch("TRAFFIC BATCH", request, TRAFFIC_KEYS)


@router.post("/api/stats/safety/batch")
def get_safety_batch(request: BatchRequest):
    return _run_batch("SAFETY BATCH", request, SAFETY_KEYS)


# ============================================================================
# SINGLE FLIGHT ENDPOINTS
# ============================================================================


@router.get("/api/intel/anomaly-dna/{flight_id}")
def get_anomaly_dna(flight_id: str, lookback_days: Optional[int] = None):
    """Get 'DNA fingerprint' of a specific anomaly."""
    try:
        return intelligence_engine.get_anomaly_dna(flight_id, lookback_days=lookback_days)
    except Exception as e:
        _raise_http(e, "anomaly DNA")


@router.get("/api/predict/trajectory/{flight_id}")
def get_flight_trajectory_prediction(flight_id: str):
    """Predict future trajectory for a specific flight."""
    try:
        return intelligence_engine.predict_trajectory(flight_id)
    except Exception as e:
        _raise_http(e, "flight trajectory prediction")


@router.get("/api/predict/hostile-intent/{flight_id}")
def get_hostile_intent_prediction(flight_id: str):
    """Predict hostile intent probability for a flight."""
    try:
        return intelligence_engine.predict_hostile_intent(flight_id)
    except Exception as e:
        _raise_http(e, "hostile intent prediction")
