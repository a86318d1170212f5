"""
Military activity views over a classified window: per-flight patterns,
preferred routes, breakdowns by country and by destination region, and
downsampled tracks for the map.
"""
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.models import Flight, TrackPoint
from service.analytics.classifier import (
    CONFLICT_ZONES, FlightClassification, country_name,
)

# Named regions for route analysis
ROUTE_REGIONS = {
    'Mediterranean Sea': {'lat_range': (31, 36), 'lon_range': (28, 36)},
    'Eastern Med': {'lat_range': (33, 37), 'lon_range': (33, 36)},
    'Levant Coast': {'lat_range': (31, 35), 'lon_range': (34, 36)},
    'Cyprus Area': {'lat_range': (34, 36), 'lon_range': (32, 35)},
    'Jordan': {'lat_range': (29, 33), 'lon_range': (35, 39)},
    'Syria': {'lat_range': (32, 37), 'lon_range': (35, 42)},
    'Iraq': {'lat_range': (29, 37), 'lon_range': (38, 48)},
    'Saudi Arabia': {'lat_range': (16, 32), 'lon_range': (34, 56)},
    'Egypt': {'lat_range': (22, 32), 'lon_range': (25, 35)},
    'Turkey': {'lat_range': (36, 42), 'lon_range': (26, 45)},
    'Israel': {'lat_range': (29, 34), 'lon_range': (34, 36)},
}

MAX_TRACK_POINTS = 100


def route_region(lat: float, lon: float) -> str:
    for region, bounds in ROUTE_REGIONS.items():
        if (bounds['lat_range'][0] <= lat <= bounds['lat_range'][1] and
                bounds['lon_range'][0] <= lon <= bounds['lon_range'][1]):
            return region
    return 'Other'


def extract_key_locations(points: Sequence[TrackPoint], max_points: int = 5) -> List[Dict[str, Any]]:
    """Up to `max_points` evenly sampled locations, with timestamps."""
    if not points:
        return []
    if len(points) <= max_points:
        indices = range(len(points))
    else:
        step = len(points) / max_points
        indices = [int(i * step) for i in range(max_points)]
    return [{
        'lat': round(points[i].lat, 4),
        'lon': round(points[i].lon, 4),
        'alt': points[i].alt_ft or 0,
        'timestamp': points[i].ts,
    } for i in indices]


def _military(flights: Iterable[Flight], classifications: Dict[str, FlightClassification]):
    for flight in sorted(flights, key=lambda f: f.flight_id):
        cls = classifications.get(flight.flight_id)
        if cls is not None and cls.is_military:
            yield flight, cls


def military_patterns(flights: Iterable[Flight], classifications: Dict[str, FlightClassification],
                      country: Optional[str] = None, aircraft_type: Optional[str] = None,
                      limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Track military aircraft patterns.

    Returns:
        [{flight_id, callsign, country, type, pattern_type, locations: [...], frequency}]
    """
    patterns = []
    for flight, cls in _military(flights, classifications):
        if country and cls.country != country:
            continue
        if aircraft_type and cls.role != aircraft_type:
            continue
        pattern = cls.pattern or {}
        patterns.append({
            'flight_id': flight.flight_id,
            'callsign': flight.callsign,
            'country': cls.country,
            'type': cls.role,
            'type_name': cls.type_name or '',
            'pattern_type': pattern.get('pattern_type', 'unknown'),
            'inferred_role': pattern.get('inferred_role'),
            'loiter_time_min': pattern.get('loiter_time_min', 0),
            'pattern_length_nm': pattern.get('pattern_length_nm', 0),
            'offshore': pattern.get('offshore', False),
            'locations': extract_key_locations(flight.points),
            'frequency': 1,
            'track_points': len(flight.points),
        })

    patterns.sort(key=lambda x: (x['country'], x['type'], x['flight_id']))
    if limit is not None:
        return patterns[:limit]
    return patterns


def military_routes(patterns: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Analyze military aircraft preferred routes.

    Answers: "What are the preferred routes for US tankers/ISR aircraft?"
    """
    country_routes = defaultdict(lambda: {'total_flights': 0, 'routes': Counter()})
    type_routes = defaultdict(lambda: {'total_flights': 0, 'common_areas': Counter()})
    route_segments = defaultdict(lambda: {'count': 0, 'countries': set(), 'types': set()})

    for pattern in patterns:
        country_code = pattern['country']
        aircraft_type = pattern['type']
        locations = pattern.get('locations', [])

        country_routes[country_code]['total_flights'] += 1
        type_routes[aircraft_type]['total_flights'] += 1

        if len(locations) < 2:
            continue

        start_region = route_region(locations[0]['lat'], locations[0]['lon'])
        end_region = route_region(locations[-1]['lat'], locations[-1]['lon'])
        country_routes[country_code]['routes'][f"{start_region} -> {end_region}"] += 1

        for loc in locations:
            type_routes[aircraft_type]['common_areas'][route_region(loc['lat'], loc['lon'])] += 1
            segment_key = (round(loc['lat'] * 2) / 2, round(loc['lon'] * 2) / 2)
            route_segments[segment_key]['count'] += 1
            route_segments[segment_key]['countries'].add(country_code)
            route_segments[segment_key]['types'].add(aircraft_type)

    result = {
        'by_country': {},
        'by_type': {},
        'route_segments': [],
        'total_military_flights': len(patterns),
    }

    for country_code, data in sorted(country_routes.items()):
        top_routes = sorted(data['routes'].items(), key=lambda x: (-x[1], x[0]))[:5]
        result['by_country'][country_code] = {
            'total_flights': data['total_flights'],
            'routes': [{'route': r, 'count': c} for r, c in top_routes],
        }

    for aircraft_type, data in sorted(type_routes.items()):
        top_areas = sorted(data['common_areas'].items(), key=lambda x: (-x[1], x[0]))[:5]
        result['by_type'][aircraft_type] = {
            'total_flights': data['total_flights'],
            'common_areas': [{'area': a, 'count': c} for a, c in top_areas],
        }

    sorted_segments = sorted(route_segments.items(), key=lambda x: (-x[1]['count'], x[0]))[:20]
    for (lat, lon), data in sorted_segments:
        result['route_segments'].append({
            'lat': lat,
            'lon': lon,
            'count': data['count'],
            'countries': sorted(data['countries']),
            'types': sorted(data['types']),
        })

    return result


def military_by_country(flights: Iterable[Flight], classifications: Dict[str, FlightClassification],
                        start_ts: int, end_ts: int) -> Dict[str, Any]:
    """Military activity breakdown by country, with alerts for Russian/Iranian presence."""
    countries: Dict[str, Dict[str, Any]] = {}
    total_flights = 0
    durations = defaultdict(float)

    # most recent first so recent_flights holds the latest five
    ordered = sorted(_military(flights, classifications), key=lambda fc: (-(fc[0].start_ts or 0), fc[0].flight_id))
    for flight, cls in ordered:
        code = cls.country
        if code not in countries:
            countries[code] = {
                'country_name': country_name(code),
                'total_flights': 0,
                'by_type': defaultdict(int),
                'avg_duration_hours': 0,
                'recent_flights': [],
            }
        entry = countries[code]
        entry['total_flights'] += 1
        entry['by_type'][cls.role] += 1
        total_flights += 1
        durations[code] += flight.duration_sec / 3600

        if len(entry['recent_flights']) < 5:
            entry['recent_flights'].append({
                'flight_id': flight.flight_id,
                'callsign': flight.callsign,
                'type': cls.role,
                'type_name': cls.type_name or '',
                'duration_hours': round(flight.duration_sec / 3600, 1) if flight.duration_sec else None,
            })

    for code, entry in countries.items():
        entry['by_type'] = dict(sorted(entry['by_type'].items()))
        if entry['total_flights'] > 0:
            entry['avg_duration_hours'] = round(durations[code] / entry['total_flights'], 1)

    alerts = []
    ru_flights = countries.get('RU', {}).get('total_flights', 0)
    if ru_flights > 5:
        alerts.append({
            'severity': 'high' if ru_flights > 10 else 'medium',
            'message': f'Elevated Russian military activity: {ru_flights} flights detected',
        })
    ir_flights = countries.get('IR', {}).get('total_flights', 0)
    if ir_flights > 0:
        alerts.append({
            'severity': 'high',
            'message': f'Iranian military aircraft detected: {ir_flights} flights',
        })

    top_countries = sorted(
        [{'country': k, 'flights': v['total_flights']} for k, v in countries.items()],
        key=lambda x: (-x['flights'], x['country']),
    )[:5]

    return {
        'countries': dict(sorted(countries.items())),
        'summary': {
            'total_military_flights': total_flights,
            'countries_detected': len(countries),
            'top_countries': top_countries,
            'analysis_period_days': round((end_ts - start_ts) / 86400, 2),
            'alerts': alerts,
        },
    }


def military_by_destination(flights: Iterable[Flight],
                            classifications: Dict[str, FlightClassification]) -> Dict[str, Any]:
    """Military flights by destination region, with special focus on conflict zones."""
    by_destination = defaultdict(int)
    by_origin = defaultdict(int)
    syria_flights = []
    syria_from_east_count = 0
    conflict_zone_flights = 0
    conflict_from_east_count = 0
    total_flights = 0

    for flight, cls in _military(flights, classifications):
        total_flights += 1
        by_destination[cls.destination_region] += 1
        if cls.origin_bucket:
            by_origin[cls.origin_bucket] += 1

        if cls.destination_region in CONFLICT_ZONES:
            conflict_zone_flights += 1
            if cls.is_from_east:
                conflict_from_east_count += 1

        if cls.destination_region == 'syria':
            if cls.is_from_east:
                syria_from_east_count += 1
            syria_flights.append({
                'flight_id': flight.flight_id,
                'callsign': flight.callsign,
                'country': cls.country,
                'type': cls.role,
                'origin_region': cls.origin_bucket,
                'is_from_east': cls.is_from_east,
                'concern_level': 'high' if cls.is_from_east else 'medium',
                'origin_airport': flight.origin,
                'destination_airport': flight.destination,
            })

    return {
        'total_flights': total_flights,
        'by_destination': dict(sorted(by_destination.items())),
        'by_origin': dict(sorted(by_origin.items())),
        'syria_flights': syria_flights,
        'syria_from_east_count': syria_from_east_count,
        'conflict_zone_flights': conflict_zone_flights,
        'conflict_from_east_count': conflict_from_east_count,
    }


def _downsample(points: Sequence[TrackPoint]) -> List[List[float]]:
    raw_coords = [[p.lon, p.lat] for p in points]
    if len(raw_coords) <= MAX_TRACK_POINTS:
        return raw_coords
    step = len(raw_coords) / MAX_TRACK_POINTS
    track = [raw_coords[int(i * step)] for i in range(MAX_TRACK_POINTS - 1)]
    track.append(raw_coords[-1])
    return track


def military_flights_with_tracks(flights: Iterable[Flight], classifications: Dict[str, FlightClassification],
                                 flights_per_country: int = 30) -> Dict[str, Any]:
    """
    The most recent military flights per country with their tracks as [lon, lat]
    coordinates, for a simple map of recent activity.
    """
    ordered = sorted(_military(flights, classifications), key=lambda fc: (-(fc[0].start_ts or 0), fc[0].flight_id))

    selected = defaultdict(list)
    country_counts = defaultdict(int)
    for flight, cls in ordered:
        country_counts[cls.country] += 1
        if len(flight.points) < 2 or len(selected[cls.country]) >= flights_per_country:
            continue
        selected[cls.country].append((flight, cls))

    final_flights = []
    for code in sorted(selected):
        for flight, cls in selected[code]:
            track = _downsample(flight.points)
            final_flights.append({
                'flight_id': flight.flight_id,
                'callsign': flight.callsign,
                'country': code,
                'type': cls.role,
                'type_name': cls.type_name or '',
                'first_seen': flight.start_ts,
                'track': track,
                'track_points': len(track),
            })

    return {
        'flights': final_flights,
        'by_country': dict(sorted(country_counts.items())),
        'total_flights': len(final_flights),
        'countries': sorted({f['country'] for f in final_flights}),
    }
