"""
Track store - read access to flight tracks for an analysis window.

Two implementations share one interface:
- InMemoryTrackStore: an immutable snapshot of Flight objects (tests, embedding)
- SQLiteTrackStore: read-only adapter over a tracks database with `flights`
  and `track_points` tables

The analytics never write through the store. A window fetch returns a
TrackSnapshot whose flights are consumed read-only.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from core.models import Flight, TrackPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackSnapshot:
    """Flights that were active inside [start_ts, end_ts], ordered by flight_id."""
    start_ts: int
    end_ts: int
    flights: Tuple[Flight, ...]

    def __len__(self) -> int:
        return len(self.flights)

    def by_id(self) -> Dict[str, Flight]:
        return {f.flight_id: f for f in self.flights}


class TrackStore:
    """Interface for track access."""

    def fetch_window(self, start_ts: int, end_ts: int) -> TrackSnapshot:
        raise NotImplementedError

    def get_flight(self, flight_id: str) -> Optional[Flight]:
        raise NotImplementedError

    def flights_between(self, start_ts: int, end_ts: int) -> List[Flight]:
        """Flights whose first point falls in [start_ts, end_ts]."""
        raise NotImplementedError


def _clip(flight: Flight, start_ts: int, end_ts: int) -> Flight:
    points = tuple(p for p in flight.points if start_ts <= p.ts <= end_ts)
    return Flight(
        flight_id=flight.flight_id,
        callsign=flight.callsign,
        airline=flight.airline,
        country=flight.country,
        aircraft_type=flight.aircraft_type,
        role=flight.role,
        origin=flight.origin,
        destination=flight.destination,
        planned_destination=flight.planned_destination,
        is_military=flight.is_military,
        points=points,
    )


class InMemoryTrackStore(TrackStore):
    def __init__(self, flights: Iterable[Flight]):
        self._flights: Dict[str, Flight] = {f.flight_id: f for f in flights}

    def fetch_window(self, start_ts: int, end_ts: int) -> TrackSnapshot:
        flights = []
        for fid in sorted(self._flights):
            clipped = _clip(self._flights[fid], start_ts, end_ts)
            if clipped.points:
                flights.append(clipped)
        return TrackSnapshot(start_ts, end_ts, tuple(flights))

    def get_flight(self, flight_id: str) -> Optional[Flight]:
        return self._flights.get(flight_id)

    def flights_between(self, start_ts: int, end_ts: int) -> List[Flight]:
        return [
            self._flights[fid] for fid in sorted(self._flights)
            if self._flights[fid].points and start_ts <= self._flights[fid].start_ts <= end_ts
        ]


SCHEMA = """
CREATE TABLE IF NOT EXISTS flights (
    flight_id TEXT PRIMARY KEY,
    callsign TEXT,
    airline TEXT,
    country TEXT,
    aircraft_type TEXT,
    role TEXT,
    origin TEXT,
    destination TEXT,
    planned_destination TEXT,
    is_military INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS track_points (
    flight_id TEXT NOT NULL,
    ts INTEGER NOT NULL,
    lat REAL NOT NULL,
    lon REAL NOT NULL,
    alt_ft REAL,
    speed_kt REAL,
    heading_deg REAL,
    source TEXT DEFAULT 'ADS-B',
    squawk TEXT
);
CREATE INDEX IF NOT EXISTS idx_track_points_ts ON track_points(ts);
CREATE INDEX IF NOT EXISTS idx_track_points_flight ON track_points(flight_id, ts);
"""


def init_tracks_db(path: Path) -> None:
    """Create the tracks schema at `path` if it does not exist yet."""
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


class SQLiteTrackStore(TrackStore):
    """Read-only store over a SQLite tracks database."""

    _FLIGHT_COLUMNS = ("flight_id, callsign, airline, country, aircraft_type, role, "
                       "origin, destination, planned_destination, is_military")

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _get_connection(self) -> Optional[sqlite3.Connection]:
        if not self.db_path.exists():
            return None
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        return conn

    def _execute_query(self, query: str, params: tuple = ()) -> List[tuple]:
        conn = self._get_connection()
        if not conn:
            logger.warning(f"Tracks database not found at {self.db_path}")
            return []
        try:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                return []
            raise
        finally:
            conn.close()

    @staticmethod
    def _row_to_point(row: tuple) -> TrackPoint:
        ts, lat, lon, alt, speed, heading, source, squawk = row
        return TrackPoint(
            lat=lat, lon=lon, alt_ft=alt, speed_kt=speed, heading_deg=heading,
            ts=int(ts), position_source=source or "ADS-B", squawk=squawk,
        )

    @staticmethod
    def _build_flight(meta: tuple, points: List[TrackPoint]) -> Flight:
        (flight_id, callsign, airline, country, aircraft_type, role,
         origin, destination, planned_destination, is_military) = meta
        return Flight(
            flight_id=flight_id, callsign=callsign, airline=airline, country=country,
            aircraft_type=aircraft_type, role=role, origin=origin, destination=destination,
            planned_destination=planned_destination, is_military=bool(is_military),
            points=tuple(points),
        )

    def _load_flights(self, flight_ids: List[str], start_ts: Optional[int] = None,
                      end_ts: Optional[int] = None) -> List[Flight]:
        if not flight_ids:
            return []
        placeholders = ",".join("?" * len(flight_ids))
        meta_rows = self._execute_query(
            f"SELECT {self._FLIGHT_COLUMNS} FROM flights WHERE flight_id IN ({placeholders})",
            tuple(flight_ids),
        )
        meta = {row[0]: row for row in meta_rows}

        query = f"""
            SELECT flight_id, ts, lat, lon, alt_ft, speed_kt, heading_deg, source, squawk
            FROM track_points
            WHERE flight_id IN ({placeholders})
        """
        params: tuple = tuple(flight_ids)
        if start_ts is not None and end_ts is not None:
            query += " AND ts BETWEEN ? AND ?"
            params += (start_ts, end_ts)
        query += " ORDER BY flight_id, ts"

        points: Dict[str, List[TrackPoint]] = {fid: [] for fid in flight_ids}
        for row in self._execute_query(query, params):
            points[row[0]].append(self._row_to_point(row[1:]))

        flights = []
        for fid in sorted(flight_ids):
            if not points[fid]:
                continue
            row = meta.get(fid) or (fid, None, None, None, None, None, None, None, None, 0)
            flights.append(self._build_flight(row, points[fid]))
        return flights

    def fetch_window(self, start_ts: int, end_ts: int) -> TrackSnapshot:
        rows = self._execute_query(
            "SELECT DISTINCT flight_id FROM track_points WHERE ts BETWEEN ? AND ?",
            (start_ts, end_ts),
        )
        flight_ids = [r[0] for r in rows]
        flights = self._load_flights(flight_ids, start_ts, end_ts)
        logger.info(f"[TRACK STORE] Loaded {len(flights)} flights for window {start_ts}-{end_ts}")
        return TrackSnapshot(start_ts, end_ts, tuple(flights))

    def get_flight(self, flight_id: str) -> Optional[Flight]:
        flights = self._load_flights([flight_id])
        return flights[0] if flights else None

    def flights_between(self, start_ts: int, end_ts: int) -> List[Flight]:
        rows = self._execute_query(
            """
            SELECT flight_id FROM track_points
            GROUP BY flight_id
            HAVING MIN(ts) BETWEEN ? AND ?
            """,
            (start_ts, end_ts),
        )
        return self._load_flights([r[0] for r in rows])
