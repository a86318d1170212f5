"""
Airspace Intelligence API

FastAPI application serving the window analytics:
- Intelligence batch (GPS jamming, military, proximity, threat, airlines)
- Traffic and safety batches
- Anomaly DNA and per-flight predictions
- Cache management and health
"""
from __future__ import annotations

from datetime import datetime
import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from core.config import get_settings
from routes.analytics import router as analytics_router, configure as configure_analytics
from service.analytics import IntelligenceEngine
from service.track_store import InMemoryTrackStore, SQLiteTrackStore, TrackStore

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Airspace Intelligence Service"
SERVICE_VERSION = "1.0"


def _default_store() -> TrackStore:
    """SQLite store at TRACKS_DB_PATH when set, otherwise an empty in-memory store."""
    db_path = get_settings().tracks_db_path
    if db_path:
        logger.info(f"Using SQLite track store at {db_path}")
        return SQLiteTrackStore(Path(db_path))
    logger.warning("TRACKS_DB_PATH not set - serving an empty in-memory track store")
    return InMemoryTrackStore([])


def create_app(store: Optional[TrackStore] = None) -> FastAPI:
    app = FastAPI(
        title=SERVICE_NAME,
        description="Pre-computed airspace intelligence over flight-track windows"
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"]
    )

    intelligence_engine = IntelligenceEngine(store if store is not None else _default_store())
    configure_analytics(intelligence_engine)
    app.include_router(analytics_router)  # /api/intel/*, /api/stats/*, /api/predict/*, /api/cache/*

    # ========================================================================
    # HEALTH CHECK
    # ========================================================================

    @app.get("/api/health")
    def health_check():
        """Health check endpoint with window cache status."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "window_cache": intelligence_engine.cache_info(),
            }
        }

    # ========================================================================
    # ROOT ENDPOINT
    # ========================================================================

    @app.get("/")
    def root():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "endpoints": {
                "intelligence": "/api/intel/*",
                "stats": "/api/stats/*",
                "predict": "/api/predict/*",
                "cache": "/api/cache/*",
                "health": "/api/health"
            }
        }

    logger.info("Airspace intelligence API initialized")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("API_HOST", "0.0.0.0"), port=int(os.getenv("API_PORT", "8000")))
