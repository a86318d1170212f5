"""
Analytics settings.

Values come from the environment (a .env file is loaded when present) and fall
back to the defaults below. `get_settings()` is cached; call
`get_settings.cache_clear()` after changing the environment in tests.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class AnalyticsSettings:
    # zones
    zone_radius_nm: float = 50.0
    zone_buffer_nm: float = 15.0

    # bilateral proximity
    proximity_threshold_nm: float = 50.0
    proximity_window_sec: int = 300
    proximity_encounter_gap_sec: int = 1800
    proximity_max_flights_per_cell: int = 50

    # triangulation
    triangulation_base_radius_nm: float = 40.0
    triangulation_min_flights_medium: int = 3
    triangulation_min_flights_high: int = 5
    triangulation_min_spread_high: float = 0.3
    triangulation_high_radius_nm: float = 10.0

    # anomaly DNA
    dna_distance_threshold_nm: float = 10.0
    dna_lookback_days: int = 30
    dna_min_attribute_score: int = 30

    # service
    cache_expiry_seconds: int = 3600
    cache_max_entries: int = 64
    max_window_days: int = 400
    max_workers: int = 4
    tracks_db_path: Optional[str] = None


@lru_cache(maxsize=None)
def get_settings() -> AnalyticsSettings:
    return AnalyticsSettings(
        zone_radius_nm=_env_float("ZONE_RADIUS_NM", 50.0),
        zone_buffer_nm=_env_float("ZONE_BUFFER_NM", 15.0),
        proximity_threshold_nm=_env_float("PROXIMITY_THRESHOLD_NM", 50.0),
        proximity_window_sec=_env_int("PROXIMITY_WINDOW_SEC", 300),
        proximity_encounter_gap_sec=_env_int("PROXIMITY_ENCOUNTER_GAP_SEC", 1800),
        proximity_max_flights_per_cell=_env_int("PROXIMITY_MAX_FLIGHTS_PER_CELL", 50),
        triangulation_base_radius_nm=_env_float("TRIANGULATION_BASE_RADIUS_NM", 40.0),
        triangulation_min_flights_medium=_env_int("TRIANGULATION_MIN_FLIGHTS_MEDIUM", 3),
        triangulation_min_flights_high=_env_int("TRIANGULATION_MIN_FLIGHTS_HIGH", 5),
        triangulation_min_spread_high=_env_float("TRIANGULATION_MIN_SPREAD_HIGH", 0.3),
        triangulation_high_radius_nm=_env_float("TRIANGULATION_HIGH_RADIUS_NM", 10.0),
        dna_distance_threshold_nm=_env_float("DNA_DISTANCE_THRESHOLD_NM", 10.0),
        dna_lookback_days=_env_int("DNA_LOOKBACK_DAYS", 30),
        dna_min_attribute_score=_env_int("DNA_MIN_ATTRIBUTE_SCORE", 30),
        cache_expiry_seconds=_env_int("CACHE_EXPIRY_SECONDS", 3600),
        cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 64),
        max_window_days=_env_int("MAX_WINDOW_DAYS", 400),
        max_workers=_env_int("ANALYTICS_MAX_WORKERS", 4),
        tracks_db_path=os.getenv("TRACKS_DB_PATH") or None,
    )
