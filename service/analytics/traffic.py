"""
Traffic trends and airline analytics over a window snapshot.

Per-flight facts are collected into a pandas DataFrame once and the
year/month/day-of-week aggregations are done with groupby.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from core.geodesy import haversine_nm
from core.models import Flight, SignatureScore
from service.analytics.safety import path_length_nm, safety_event_times

ANOMALY_MIN_TOTAL = 15

FRAME_COLUMNS = [
    'flight_id', 'airline', 'first_seen_ts', 'last_seen_ts', 'duration_sec',
    'distance_nm', 'displacement_nm', 'is_military', 'is_anomaly', 'has_safety_event',
]

DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

# (month, day, event_name); day None means the date varies by year
KNOWN_EVENTS = [
    (9, None, "Yom Kippur"),
    (10, None, "Yom Kippur"),
    (12, 25, "Christmas"),
    (1, 1, "New Year"),
    (3, None, "Purim"),
    (4, None, "Passover"),
]

WIDE_BODY_AIRCRAFT = {
    'B744', 'B747', 'B748', 'B74S', 'B762', 'B763', 'B764', 'B767', 'B76F',
    'B772', 'B773', 'B77L', 'B77W', 'B779', 'B778', 'B77F', 'B788', 'B789', 'B78X', 'B787',
    'A332', 'A333', 'A339', 'A330', 'A338', 'A33F', 'A342', 'A343', 'A345', 'A346', 'A340',
    'A359', 'A35K', 'A350', 'A388', 'A380', 'A306', 'A310', 'DC10', 'MD11', 'IL96', 'IL86',
}

NARROW_BODY_AIRCRAFT = {
    'B731', 'B732', 'B733', 'B734', 'B735', 'B736', 'B737', 'B738', 'B739', 'B38M', 'B39M',
    'B752', 'B753', 'B757', 'A318', 'A319', 'A320', 'A321', 'A19N', 'A20N', 'A21N',
    'E170', 'E175', 'E190', 'E195', 'CRJ2', 'CRJ7', 'CRJ9', 'DH8D', 'AT72', 'AT76',
    'A220', 'BCS1', 'BCS3', 'MD80', 'MD82', 'MD83', 'MD88', 'B712', 'B717',
}


def classify_body_type(aircraft_type: Optional[str]) -> str:
    """'wide_body', 'narrow_body', or 'unknown' for an ICAO type code."""
    if not aircraft_type:
        return 'unknown'
    normalized = aircraft_type.upper().strip()[:4]
    if normalized in WIDE_BODY_AIRCRAFT or normalized[:3] in {'B74', 'B76', 'B77', 'B78', 'A33', 'A34', 'A35', 'A38'}:
        return 'wide_body'
    if normalized in NARROW_BODY_AIRCRAFT or normalized[:3] in {'B73', 'B75', 'A31', 'A32', 'E17', 'E19', 'CRJ'}:
        return 'narrow_body'
    return 'unknown'


def airline_code(flight: Flight) -> Optional[str]:
    """Explicit airline, else the alphabetic callsign prefix (2-3 letters)."""
    if flight.airline:
        return flight.airline.upper()
    callsign = flight.callsign or ''
    airline = ''.join(c for c in callsign[:3] if c.isalpha()).upper()
    return airline if len(airline) >= 2 else None


def flight_row(flight: Flight, score: Optional[SignatureScore] = None) -> Optional[Dict[str, Any]]:
    if not flight.points:
        return None
    first, last = flight.points[0], flight.points[-1]
    return {
        'flight_id': flight.flight_id,
        'airline': None if flight.is_military else airline_code(flight),
        'first_seen_ts': flight.start_ts,
        'last_seen_ts': flight.end_ts,
        'duration_sec': flight.duration_sec,
        'distance_nm': path_length_nm(flight.points),
        'displacement_nm': haversine_nm(first.lat, first.lon, last.lat, last.lon),
        'is_military': bool(flight.is_military),
        'is_anomaly': bool(score is not None and score.total >= ANOMALY_MIN_TOTAL),
        'has_safety_event': bool(safety_event_times(flight)),
    }


def flights_frame(flights: Iterable[Flight], scores: Optional[Dict[str, SignatureScore]] = None) -> pd.DataFrame:
    """One row per flight with at least one point."""
    scores = scores or {}
    rows = [flight_row(flight, scores.get(flight.flight_id)) for flight in flights]
    rows = [row for row in rows if row is not None]

    frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    first_seen = pd.to_datetime(frame['first_seen_ts'].astype('int64'), unit='s', utc=True)
    frame['year'] = first_seen.dt.year
    frame['month'] = first_seen.dt.month
    frame['date'] = first_seen.dt.strftime('%Y-%m-%d')
    # Sunday = 0
    frame['day_of_week'] = (first_seen.dt.dayofweek + 1) % 7
    return frame


def seasonal_year_comparison(frame: pd.DataFrame) -> Dict[str, Any]:
    """
    Compare flight and safety statistics across years for the same period.

    Returns:
        {
            'years': [{year, total_flights, anomalies, safety_events, military_flights}],
            'month_comparison': [{month, current_year, previous_year, change_percent}],
            'insights': [...]
        }
    """
    if frame.empty:
        return {'years': [], 'month_comparison': [], 'insights': []}

    by_year = frame.groupby('year').agg(
        total_flights=('flight_id', 'count'),
        anomalies=('is_anomaly', 'sum'),
        safety_events=('has_safety_event', 'sum'),
        military_flights=('is_military', 'sum'),
    ).sort_index()

    years_output = [{
        'year': int(year),
        'total_flights': int(row.total_flights),
        'anomalies': int(row.anomalies),
        'safety_events': int(row.safety_events),
        'military_flights': int(row.military_flights),
    } for year, row in by_year.iterrows()]

    month_comparison = []
    if len(years_output) >= 2:
        monthly = frame.groupby(['year', 'month'])['flight_id'].count()
        current_year = years_output[-1]['year']
        prev_year = years_output[-2]['year']
        for month in sorted(monthly.loc[current_year].index):
            curr_flights = int(monthly.get((current_year, month), 0))
            prev_flights = int(monthly.get((prev_year, month), 0))
            change_pct = 0
            if prev_flights > 0:
                change_pct = round((curr_flights - prev_flights) / prev_flights * 100, 1)
            month_comparison.append({
                'month': f"{int(month):02d}",
                'month_name': datetime(2000, int(month), 1).strftime('%B'),
                'current_year': curr_flights,
                'previous_year': prev_flights,
                'change_percent': change_pct,
            })

    insights = []
    if len(years_output) >= 2:
        curr, prev = years_output[-1], years_output[-2]
        if curr['total_flights'] > prev['total_flights']:
            pct = round((curr['total_flights'] - prev['total_flights']) / max(prev['total_flights'], 1) * 100, 1)
            insights.append(f"Traffic increased by {pct}% compared to {prev['year']}")
        elif curr['total_flights'] < prev['total_flights']:
            pct = round((prev['total_flights'] - curr['total_flights']) / max(prev['total_flights'], 1) * 100, 1)
            insights.append(f"Traffic decreased by {pct}% compared to {prev['year']}")
        if curr['safety_events'] > prev['safety_events'] * 1.2:
            insights.append(f"Safety events increased significantly in {curr['year']}")

    return {
        'years': years_output,
        'month_comparison': month_comparison,
        'insights': insights,
    }


def _event_name(date_str: str) -> str:
    date_obj = datetime.strptime(date_str, '%Y-%m-%d')
    for month, day_num, name in KNOWN_EVENTS:
        if date_obj.month == month and (day_num is None or date_obj.day == day_num):
            return f"Possible {name}"
    return "Unusual low traffic"


def special_events_impact(frame: pd.DataFrame) -> Dict[str, Any]:
    """
    Detect traffic patterns around special events/holidays.

    A day is flagged when its traffic is below half of its weekday average.
    """
    if frame.empty:
        weekly_pattern = [{'day_of_week': dow, 'day_name': DAY_NAMES[dow], 'avg_traffic': 0, 'avg_anomalies': 0}
                          for dow in range(7)]
        return {'detected_events': [], 'weekly_pattern': weekly_pattern, 'insights': []}

    daily = frame.groupby('date').agg(
        flights=('flight_id', 'count'),
        anomalies=('is_anomaly', 'sum'),
        day_of_week=('day_of_week', 'first'),
    ).sort_index()

    weekly = daily.groupby('day_of_week').agg(avg_traffic=('flights', 'mean'), avg_anomalies=('anomalies', 'mean'))
    weekly_pattern = []
    for dow in range(7):
        avg_traffic = float(weekly.loc[dow, 'avg_traffic']) if dow in weekly.index else 0
        avg_anomalies = float(weekly.loc[dow, 'avg_anomalies']) if dow in weekly.index else 0
        weekly_pattern.append({
            'day_of_week': dow,
            'day_name': DAY_NAMES[dow],
            'avg_traffic': round(avg_traffic, 1),
            'avg_anomalies': round(avg_anomalies, 1),
        })

    detected_events = []
    for date_str, row in daily.iterrows():
        dow_avg = weekly_pattern[int(row.day_of_week)]['avg_traffic']
        if dow_avg > 0 and row.flights < dow_avg * 0.5:
            detected_events.append({
                'date': date_str,
                'event_name': _event_name(date_str),
                'traffic_change_percent': round((row.flights - dow_avg) / dow_avg * 100, 1),
                'flights': int(row.flights),
                'expected_flights': round(dow_avg),
            })

    active_days = [d for d in weekly_pattern if d['avg_traffic'] > 0]
    insights = []
    if active_days:
        busiest = max(active_days, key=lambda x: x['avg_traffic'])
        quietest = min(active_days, key=lambda x: x['avg_traffic'])
        insights.append(f"Busiest day: {busiest['day_name']} ({busiest['avg_traffic']:.0f} avg flights)")
        insights.append(f"Quietest day: {quietest['day_name']} ({quietest['avg_traffic']:.0f} avg flights)")
    if detected_events:
        insights.append(f"Detected {len(detected_events)} unusual traffic days")

    return {
        'detected_events': detected_events[:10],
        'weekly_pattern': weekly_pattern,
        'insights': insights,
    }


def alternate_airports(flights: Iterable[Flight]) -> List[Dict[str, Any]]:
    """
    Alternate airports used by diverted flights (actual destination differs
    from the planned one), with a wide-body vs narrow-body breakdown.
    """
    alternate_stats = defaultdict(lambda: {
        'count': 0,
        'aircraft_types': set(),
        'diverted_from': set(),
        'last_used': 0,
        'wide_body_count': 0,
        'narrow_body_count': 0,
    })

    for flight in flights:
        actual, planned = flight.destination, flight.planned_destination
        if not actual or not planned or actual == planned or not flight.points:
            continue
        stats = alternate_stats[actual]
        stats['count'] += 1
        stats['diverted_from'].add(planned)
        stats['last_used'] = max(stats['last_used'], flight.end_ts)
        if flight.aircraft_type:
            stats['aircraft_types'].add(flight.aircraft_type)
        body_type = classify_body_type(flight.aircraft_type)
        if body_type == 'wide_body':
            stats['wide_body_count'] += 1
        elif body_type == 'narrow_body':
            stats['narrow_body_count'] += 1

    result = []
    for airport, data in alternate_stats.items():
        wide = data['wide_body_count']
        narrow = data['narrow_body_count']
        total_known = wide + narrow
        if total_known > 0:
            wide_pct = (wide / total_known) * 100
            if wide_pct >= 70:
                preference = 'wide_body_preferred'
            elif wide_pct <= 30:
                preference = 'narrow_body_preferred'
            else:
                preference = 'mixed'
        else:
            preference = 'unknown'
        result.append({
            'airport': airport,
            'count': data['count'],
            'diverted_from': sorted(data['diverted_from']),
            'aircraft_types': sorted(data['aircraft_types'])[:5],
            'last_used': data['last_used'],
            'wide_body_count': wide,
            'narrow_body_count': narrow,
            'body_type_preference': preference,
        })

    result.sort(key=lambda x: (-x['count'], x['airport']))
    return result[:15]


def airline_efficiency(frame: pd.DataFrame, limit: int = 20, min_flights: int = 5) -> List[Dict[str, Any]]:
    """Per-airline duration, distance, speed and route efficiency (displacement / path length)."""
    frame = frame[frame['airline'].notna() & (frame['duration_sec'] > 0)]
    if frame.empty:
        return []

    frame = frame.assign(
        speed_kts=frame['distance_nm'] / frame['duration_sec'] * 3600,
        route_efficiency=(frame['displacement_nm'] / frame['distance_nm'].where(frame['distance_nm'] > 0)),
    )
    grouped = frame.groupby('airline').agg(
        flight_count=('flight_id', 'count'),
        avg_duration_sec=('duration_sec', 'mean'),
        avg_distance_nm=('distance_nm', 'mean'),
        avg_speed_kts=('speed_kts', 'mean'),
        avg_route_efficiency=('route_efficiency', 'mean'),
    )
    grouped = grouped[grouped['flight_count'] >= min_flights]
    grouped = grouped.reset_index().sort_values(['flight_count', 'airline'], ascending=[False, True]).head(limit)

    result = []
    for row in grouped.itertuples(index=False):
        efficiency = None if pd.isna(row.avg_route_efficiency) else round(float(row.avg_route_efficiency), 3)
        result.append({
            'airline': row.airline,
            'flight_count': int(row.flight_count),
            'avg_duration_hours': round(float(row.avg_duration_sec) / 3600, 2),
            'avg_distance_nm': round(float(row.avg_distance_nm), 1),
            'avg_speed_kts': round(float(row.avg_speed_kts), 1),
            'avg_route_efficiency': efficiency,
        })
    return result


def _airline_activity(frame: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
    frame = frame[frame['airline'].notna()]
    if frame.empty:
        return {}
    grouped = frame.groupby('airline').agg(
        count=('flight_id', 'count'),
        first_seen=('first_seen_ts', 'min'),
        last_seen=('last_seen_ts', 'max'),
    )
    return {airline: {'count': int(row['count']), 'first_seen': int(row['first_seen']),
                      'last_seen': int(row['last_seen'])}
            for airline, row in grouped.iterrows()}


def _date(ts: Optional[int]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime('%Y-%m-%d')


def airline_activity(current: pd.DataFrame, lookback: pd.DataFrame, start_ts: int, end_ts: int,
                     lookback_days: int = 30) -> Dict[str, Any]:
    """
    Detect airlines that started or stopped flying in the region, comparing
    the window against the `lookback_days` before it.

    Returns:
        {stopped_flying, started_flying, activity_changes, analysis_period}
    """
    lookback_start = start_ts - lookback_days * 86400
    lookback_activity = _airline_activity(lookback)
    current_activity = _airline_activity(current)

    stopped_flying = [{
        'airline': airline,
        'last_seen': data['last_seen'],
        'last_seen_date': _date(data['last_seen']),
        'flight_count_before': data['count'],
    } for airline, data in lookback_activity.items() if airline not in current_activity]

    started_flying = [{
        'airline': airline,
        'first_seen': data['first_seen'],
        'first_seen_date': _date(data['first_seen']),
        'flight_count': data['count'],
    } for airline, data in current_activity.items() if airline not in lookback_activity]

    activity_changes = []
    for airline in sorted(set(lookback_activity) & set(current_activity)):
        before = lookback_activity[airline]['count']
        after = current_activity[airline]['count']
        change_percent = ((after - before) / before) * 100
        if abs(change_percent) >= 50:
            activity_changes.append({
                'airline': airline,
                'change_percent': round(change_percent, 1),
                'before_count': before,
                'after_count': after,
                'trend': 'increasing' if change_percent > 0 else 'decreasing',
            })

    stopped_flying.sort(key=lambda x: (-x['flight_count_before'], x['airline']))
    started_flying.sort(key=lambda x: (-x['flight_count'], x['airline']))
    activity_changes.sort(key=lambda x: (-abs(x['change_percent']), x['airline']))

    return {
        'stopped_flying': stopped_flying[:10],
        'started_flying': started_flying[:10],
        'activity_changes': activity_changes[:10],
        'analysis_period': {
            'current_start': start_ts,
            'current_end': end_ts,
            'lookback_start': lookback_start,
            'lookback_end': start_ts,
            'lookback_days': lookback_days,
        },
    }
