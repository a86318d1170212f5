"""
Safety analytics derived from raw tracks.

Safety events are emergency squawks (7500/7600/7700) and go-arounds. Weather
impact is a proxy: diversions, go-arounds and large route deviations tend to
cluster around bad weather. For full weather correlation, integrate with a
METAR source.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from core.geodesy import haversine_nm
from core.models import Flight, TrackPoint

EMERGENCY_SQUAWKS = {
    '7500': 'Hijack',
    '7600': 'Radio failure',
    '7700': 'General emergency',
}

GO_AROUND_MAX_ALT_FT = 2500
GO_AROUND_MIN_CLIMB_FT = 1000
DEVIATION_RATIO = 1.3
DEVIATION_MIN_PATH_NM = 50


def _utc(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def detect_go_arounds(flight: Flight) -> List[TrackPoint]:
    """
    Lowest point of every go-around: a descent below 2500 ft followed by a
    climb of at least 1000 ft. Departures are not counted because the
    aircraft must have been above 2500 ft before the descent.
    """
    events = []
    seen_high = False
    lowest: Optional[TrackPoint] = None
    for point in flight.points:
        alt = point.alt_ft
        if alt is None:
            continue
        if lowest is not None and alt >= lowest.alt_ft + GO_AROUND_MIN_CLIMB_FT:
            events.append(lowest)
            lowest = None
            seen_high = False
        if alt > GO_AROUND_MAX_ALT_FT:
            seen_high = True
            lowest = None
        elif seen_high and (lowest is None or alt < lowest.alt_ft):
            lowest = point
    return events


def emergency_events(flight: Flight) -> List[Dict[str, Any]]:
    """First occurrence of each emergency squawk on the flight."""
    seen = set()
    events = []
    for point in flight.points:
        code = (point.squawk or '').strip()
        if code in EMERGENCY_SQUAWKS and code not in seen:
            seen.add(code)
            events.append({
                'flight_id': flight.flight_id,
                'callsign': flight.callsign,
                'code': code,
                'description': EMERGENCY_SQUAWKS[code],
                'timestamp': point.ts,
                'lat': point.lat,
                'lon': point.lon,
            })
    return events


def path_length_nm(points) -> float:
    return sum(haversine_nm(a.lat, a.lon, b.lat, b.lon) for a, b in zip(points, points[1:]))


def is_route_deviation(flight: Flight) -> bool:
    if len(flight.points) < 2:
        return False
    path = path_length_nm(flight.points)
    if path < DEVIATION_MIN_PATH_NM:
        return False
    first, last = flight.points[0], flight.points[-1]
    displacement = haversine_nm(first.lat, first.lon, last.lat, last.lon)
    if displacement <= 0:
        return True
    return path / displacement > DEVIATION_RATIO


def is_diversion(flight: Flight) -> bool:
    return bool(flight.destination and flight.planned_destination and
                flight.destination != flight.planned_destination)


def safety_event_times(flight: Flight) -> List[int]:
    times = [e['timestamp'] for e in emergency_events(flight)]
    times.extend(p.ts for p in detect_go_arounds(flight))
    return sorted(times)


def weather_impact(flights: Iterable[Flight]) -> Dict[str, Any]:
    """
    Weather impact on flight operations (proxy analysis).

    Returns:
        {
            'weather_correlated_anomalies': int,
            'diversions_likely_weather': [{airport, count, dates}],
            'go_arounds_weather_pattern': [{airport, count, peak_hour}],
            'monthly_weather_impact': [{month, diversion_count, go_around_count, deviation_count}],
            'insights': [str]
        }
    """
    diversions_by_airport = defaultdict(lambda: {'count': 0, 'dates': set()})
    go_arounds_by_airport = defaultdict(lambda: {'count': 0, 'hours': defaultdict(int)})
    monthly = defaultdict(lambda: {'diversion_count': 0, 'go_around_count': 0, 'deviation_count': 0})

    for flight in sorted(flights, key=lambda f: f.flight_id):
        if not flight.points:
            continue
        start = _utc(flight.start_ts)
        month = start.strftime('%Y-%m')

        if is_diversion(flight):
            diversions_by_airport[flight.planned_destination]['count'] += 1
            diversions_by_airport[flight.planned_destination]['dates'].add(start.strftime('%Y-%m-%d'))
            monthly[month]['diversion_count'] += 1

        go_arounds = detect_go_arounds(flight)
        if go_arounds:
            airport = flight.destination or 'UNKNOWN'
            go_arounds_by_airport[airport]['count'] += len(go_arounds)
            for point in go_arounds:
                go_arounds_by_airport[airport]['hours'][_utc(point.ts).hour] += 1
            monthly[month]['go_around_count'] += len(go_arounds)

        if is_route_deviation(flight):
            monthly[month]['deviation_count'] += 1

    diversions_likely_weather = [
        {'airport': airport, 'count': data['count'], 'dates': sorted(data['dates'])[:5]}
        for airport, data in sorted(diversions_by_airport.items(), key=lambda x: (-x[1]['count'], x[0]))[:10]
    ]

    go_arounds_weather = []
    for airport, data in sorted(go_arounds_by_airport.items(), key=lambda x: (-x[1]['count'], x[0]))[:10]:
        peak_hour = sorted(data['hours'].items(), key=lambda x: (-x[1], x[0]))[0][0]
        go_arounds_weather.append({'airport': airport, 'count': data['count'], 'peak_hour': peak_hour})

    monthly_weather_impact = [{'month': m, **counts} for m, counts in sorted(monthly.items())]

    total_diversions = sum(d['count'] for d in diversions_likely_weather)
    total_go_arounds = sum(g['count'] for g in go_arounds_weather)
    total_deviations = sum(m['deviation_count'] for m in monthly_weather_impact)
    total = total_diversions + total_go_arounds + total_deviations

    insights = []
    if diversions_likely_weather:
        top = diversions_likely_weather[0]
        insights.append(f"{top['airport']} had the most weather-related diversions ({top['count']})")
    if go_arounds_weather:
        top = go_arounds_weather[0]
        insights.append(f"Go-arounds peak at {top['peak_hour']}:00 at {top['airport']}")
    if monthly_weather_impact:
        worst_month = max(monthly_weather_impact, key=lambda x: x['diversion_count'] + x['go_around_count'])
        if worst_month['diversion_count'] + worst_month['go_around_count'] > 0:
            insights.append(f"Worst weather impact month: {worst_month['month']}")
    insights.append(f"Total weather-correlated events: {total}")

    return {
        'weather_correlated_anomalies': total,
        'diversions_likely_weather': diversions_likely_weather,
        'go_arounds_weather_pattern': go_arounds_weather,
        'monthly_weather_impact': monthly_weather_impact,
        'total_diversions': total_diversions,
        'total_go_arounds': total_go_arounds,
        'total_deviations': total_deviations,
        'insights': insights,
    }


def pearson(xs: List[float], ys: List[float]) -> float:
    """Pearson coefficient, 0.0 when either series has no variance."""
    if len(xs) < 2:
        return 0.0
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    return round(float(np.corrcoef(x, y)[0, 1]), 3)


def traffic_safety_correlation(flights: Iterable[Flight]) -> Dict[str, Any]:
    """
    Correlation between hourly traffic volume and safety events.

    Counts are the actual distinct-flight counts per UTC hour.
    """
    hourly_traffic = defaultdict(set)
    hourly_safety = defaultdict(set)
    for flight in flights:
        for point in flight.points:
            hourly_traffic[_utc(point.ts).hour].add(flight.flight_id)
        for ts in safety_event_times(flight):
            hourly_safety[_utc(ts).hour].add(flight.flight_id)

    hourly_data = []
    traffic_values = []
    safety_values = []
    for hour in range(24):
        traffic = len(hourly_traffic.get(hour, ()))
        safety = len(hourly_safety.get(hour, ()))
        ratio = round(safety / traffic * 1000, 2) if traffic > 0 else 0
        hourly_data.append({
            'hour': hour,
            'traffic_count': traffic,
            'safety_count': safety,
            'safety_per_1000': ratio,
        })
        traffic_values.append(traffic)
        safety_values.append(safety)

    correlation_score = pearson(traffic_values, safety_values)

    sorted_by_risk = sorted(hourly_data, key=lambda x: (-x['safety_per_1000'], x['hour']))
    peak_risk_hours = [h['hour'] for h in sorted_by_risk[:3] if h['safety_per_1000'] > 0]

    insights = []
    if correlation_score > 0.7:
        insights.append(f"Strong correlation ({correlation_score:.0%}) between traffic and safety events")
    elif correlation_score > 0.4:
        insights.append(f"Moderate correlation ({correlation_score:.0%}) between traffic and safety events")
    else:
        insights.append("Safety events appear independent of traffic volume")

    if peak_risk_hours:
        insights.append(f"Highest risk hours: {', '.join(f'{h}:00' for h in peak_risk_hours)}")
        peak_avg = sum(hourly_data[h]['safety_per_1000'] for h in peak_risk_hours) / len(peak_risk_hours)
        off_peak = [h['safety_per_1000'] for h in hourly_data
                    if h['hour'] not in peak_risk_hours and h['safety_per_1000'] > 0]
        if off_peak:
            off_peak_avg = sum(off_peak) / len(off_peak)
            if peak_avg > off_peak_avg:
                increase = round((peak_avg - off_peak_avg) / off_peak_avg * 100)
                insights.append(f"Peak hours have {increase}% more safety events per flight")

    return {
        'hourly_correlation': hourly_data,
        'correlation_score': correlation_score,
        'peak_risk_hours': peak_risk_hours,
        'total_safety_events': sum(safety_values),
        'insights': insights,
    }
