"""
Flight classification: country, alliance, role and origin/destination regions.

Explicit flight metadata always wins; callsign prefixes fill in what the
metadata leaves out, and track behaviour (orbit / racetrack / loiter) is the
last resort for the role.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.geodesy import haversine_nm, heading_delta
from core.models import Flight, TrackPoint

# Military callsign patterns and their associated metadata
MILITARY_CALLSIGN_PATTERNS = {
    # US Military - Transport
    'RCH': {'country': 'US', 'type': 'transport', 'name': 'REACH - USAF AMC'},
    'CNV': {'country': 'US', 'type': 'transport', 'name': 'Convoy - USAF'},
    'EVAC': {'country': 'US', 'type': 'transport', 'name': 'Medical Evacuation'},
    'SAM': {'country': 'US', 'type': 'transport', 'name': 'Special Air Mission'},
    'EXEC': {'country': 'US', 'type': 'transport', 'name': 'Executive Flight'},

    # US Military - Tankers
    'QUID': {'country': 'US', 'type': 'tanker', 'name': 'KC-135/KC-10 Tanker'},
    'NCHO': {'country': 'US', 'type': 'tanker', 'name': 'KC-135 Stratotanker'},
    'SHELL': {'country': 'US', 'type': 'tanker', 'name': 'Aerial Refueling'},
    'ARCO': {'country': 'US', 'type': 'tanker', 'name': 'KC-135 Tanker Track'},
    'TEXACO': {'country': 'US', 'type': 'tanker', 'name': 'KC-46 Tanker'},
    'ESSO': {'country': 'US', 'type': 'tanker', 'name': 'KC-10 Extender'},
    'GULF': {'country': 'US', 'type': 'tanker', 'name': 'Tanker Operations'},
    'MOBIL': {'country': 'US', 'type': 'tanker', 'name': 'Tanker Operations'},

    # US Military - ISR
    'JAKE': {'country': 'US', 'type': 'ISR', 'name': 'RC-135 Rivet Joint'},
    'DOOM': {'country': 'US', 'type': 'ISR', 'name': 'E-8 JSTARS'},
    'HOMER': {'country': 'US', 'type': 'ISR', 'name': 'E-3 AWACS/Sentry'},
    'SENTRY': {'country': 'US', 'type': 'ISR', 'name': 'E-3 AWACS'},
    'FORTE': {'country': 'US', 'type': 'ISR', 'name': 'RQ-4 Global Hawk'},
    'REAPER': {'country': 'US', 'type': 'ISR', 'name': 'MQ-9 Reaper'},
    'DARK': {'country': 'US', 'type': 'ISR', 'name': 'ISR Operations'},
    'COBRA': {'country': 'US', 'type': 'ISR', 'name': 'RC-135 Cobra Ball'},
    'OLIVE': {'country': 'US', 'type': 'ISR', 'name': 'E-8 JSTARS'},

    # US Military - Fighters
    'VIPER': {'country': 'US', 'type': 'fighter', 'name': 'F-16 Fighting Falcon'},
    'RAGE': {'country': 'US', 'type': 'fighter', 'name': 'Fighter Aircraft'},
    'RAPTOR': {'country': 'US', 'type': 'fighter', 'name': 'F-22 Raptor'},
    'EAGLE': {'country': 'US', 'type': 'fighter', 'name': 'F-15 Eagle'},
    'STRIKE': {'country': 'US', 'type': 'fighter', 'name': 'F-15E Strike Eagle'},
    'HORNET': {'country': 'US', 'type': 'fighter', 'name': 'F/A-18 Hornet'},
    'WEASEL': {'country': 'US', 'type': 'fighter', 'name': 'Wild Weasel SEAD'},

    # UK Military
    'RAF': {'country': 'GB', 'type': 'transport', 'name': 'Royal Air Force'},
    'RFR': {'country': 'GB', 'type': 'tanker', 'name': 'RAF Voyager Tanker'},
    'ASCOT': {'country': 'GB', 'type': 'transport', 'name': 'RAF Transport'},
    'TWINSTAR': {'country': 'GB', 'type': 'tanker', 'name': 'RAF Voyager'},
    'TARTAN': {'country': 'GB', 'type': 'fighter', 'name': 'RAF Typhoon'},
    'BOXER': {'country': 'GB', 'type': 'ISR', 'name': 'RAF RC-135 Airseeker'},

    # Russian Military
    'RRR': {'country': 'RU', 'type': 'transport', 'name': 'Russian Air Force'},
    'RFF': {'country': 'RU', 'type': 'transport', 'name': 'Russian Federation'},
    'RSD': {'country': 'RU', 'type': 'transport', 'name': 'Russian State Transport'},

    # Iranian Military
    'IRIAF': {'country': 'IR', 'type': 'transport', 'name': 'Islamic Republic of Iran Air Force'},

    # Israeli Military
    'IAF': {'country': 'IL', 'type': 'transport', 'name': 'Israeli Air Force'},
    'ISF': {'country': 'IL', 'type': 'fighter', 'name': 'Israeli Air Force'},

    # NATO/Allied
    'NATO': {'country': 'NATO', 'type': 'ISR', 'name': 'NATO Operations'},
    'MMF': {'country': 'NATO', 'type': 'tanker', 'name': 'Multinational MRTT Fleet'},
    'MAGIC': {'country': 'NATO', 'type': 'ISR', 'name': 'NATO E-3 AWACS'},
    'GAF': {'country': 'DE', 'type': 'transport', 'name': 'German Air Force'},
    'FAF': {'country': 'FR', 'type': 'transport', 'name': 'French Air Force'},
    'AMI': {'country': 'IT', 'type': 'transport', 'name': 'Italian Air Force'},
    'RAAF': {'country': 'AU', 'type': 'transport', 'name': 'Royal Australian AF'},
    'CANFORCE': {'country': 'CA', 'type': 'transport', 'name': 'Canadian Forces'},

    # Middle East Military
    'SHAHD': {'country': 'JO', 'type': 'other', 'name': 'Royal Jordanian Air Force'},
    'RJAF': {'country': 'JO', 'type': 'other', 'name': 'Royal Jordanian Air Force'},
}

# Longest prefix first so 'RAAF' is not read as 'RAF'
_PREFIXES = sorted(MILITARY_CALLSIGN_PATTERNS, key=lambda p: (-len(p), p))

NATO_MEMBERS = {'NATO', 'US', 'GB', 'DE', 'FR', 'IT', 'CA', 'TR', 'ES', 'NL', 'BE', 'PL', 'DK', 'NO', 'GR'}
EASTERN_COUNTRIES = {'RU', 'IR'}

COUNTRY_NAMES = {
    'US': 'United States',
    'GB': 'United Kingdom',
    'RU': 'Russia',
    'IL': 'Israel',
    'NATO': 'NATO Alliance',
    'DE': 'Germany',
    'FR': 'France',
    'IT': 'Italy',
    'AU': 'Australia',
    'CA': 'Canada',
    'TR': 'Turkey',
    'IR': 'Iran',
    'SA': 'Saudi Arabia',
    'AE': 'UAE',
    'JO': 'Jordan',
    'EG': 'Egypt',
}

# Checked in order: small boxes before the large ones that contain them
REGIONS = (
    ('gaza', {'lat_min': 31.2, 'lat_max': 31.6, 'lon_min': 34.2, 'lon_max': 34.6}),
    ('lebanon', {'lat_min': 33.0, 'lat_max': 34.5, 'lon_min': 35.0, 'lon_max': 36.5}),
    ('cyprus', {'lat_min': 34.5, 'lat_max': 35.7, 'lon_min': 32.0, 'lon_max': 34.6}),
    ('israel', {'lat_min': 29.0, 'lat_max': 33.5, 'lon_min': 34.0, 'lon_max': 36.0}),
    ('syria', {'lat_min': 32.0, 'lat_max': 37.5, 'lon_min': 35.5, 'lon_max': 42.0}),
    ('jordan', {'lat_min': 29.0, 'lat_max': 33.5, 'lon_min': 35.0, 'lon_max': 39.0}),
    ('iraq', {'lat_min': 29.0, 'lat_max': 37.5, 'lon_min': 38.5, 'lon_max': 48.5}),
    ('iran', {'lat_min': 25.0, 'lat_max': 40.0, 'lon_min': 44.0, 'lon_max': 63.0}),
    ('turkey', {'lat_min': 36.0, 'lat_max': 42.0, 'lon_min': 26.0, 'lon_max': 45.0}),
    ('egypt', {'lat_min': 22.0, 'lat_max': 32.0, 'lon_min': 24.5, 'lon_max': 36.5}),
    ('saudi_arabia', {'lat_min': 16.0, 'lat_max': 32.0, 'lon_min': 34.5, 'lon_max': 55.0}),
)

SYRIAN_AIRPORTS = {'OSDI', 'OSLK', 'OSAP', 'OSPR', 'OSDZ', 'OSKL'}
CONFLICT_ZONES = {'syria', 'gaza', 'lebanon'}

# Tanker-specific offshore holding areas (common refueling tracks)
TANKER_HOLDING_AREAS = [
    {'name': 'Eastern Med Track', 'lat': 34.0, 'lon': 33.0, 'radius_nm': 100},
    {'name': 'Gulf Track', 'lat': 27.0, 'lon': 52.0, 'radius_nm': 100},
    {'name': 'Red Sea Track', 'lat': 22.0, 'lon': 37.0, 'radius_nm': 100},
]

PATTERN_MIN_POINTS = 10


def country_name(code: str) -> str:
    """Get full country name from code."""
    return COUNTRY_NAMES.get(code, code)


def alliance_of(country: Optional[str]) -> str:
    if country in NATO_MEMBERS:
        return 'NATO'
    if country in EASTERN_COUNTRIES:
        return 'EASTERN'
    return 'OTHER'


def identify_military(callsign: Optional[str]) -> Optional[Dict[str, str]]:
    """Match a callsign against known military prefixes. Returns {country, type, name} or None."""
    if not callsign:
        return None
    callsign_upper = callsign.strip().upper()
    for prefix in _PREFIXES:
        if callsign_upper.startswith(prefix):
            return dict(MILITARY_CALLSIGN_PATTERNS[prefix])
    return None


def region_of(lat: float, lon: float) -> str:
    for name, bounds in REGIONS:
        if (bounds['lat_min'] <= lat <= bounds['lat_max'] and
                bounds['lon_min'] <= lon <= bounds['lon_max']):
            return name
    return 'other'


def origin_bucket(lon: float) -> str:
    if lon > 44:  # East of Iraq
        return 'east'
    if lon < 30:  # West Mediterranean
        return 'west'
    return 'regional'


def analyze_flight_pattern(points: Sequence[TrackPoint]) -> Dict[str, Any]:
    """
    Determine the flight pattern type from its track.

    Returns:
        {
            'pattern_type': 'racetrack', 'orbit', 'transit', 'loiter', or 'unknown',
            'inferred_role': 'ISR', 'tanker', 'transport' or None,
            'loiter_time_min': float,
            'pattern_length_nm': float,
            'offshore': bool
        }
    """
    result = {
        'pattern_type': 'unknown',
        'inferred_role': None,
        'loiter_time_min': 0,
        'pattern_length_nm': 0,
        'offshore': False,
    }

    if len(points) < PATTERN_MIN_POINTS:
        return result

    heading_changes = []
    for prev, curr in zip(points, points[1:]):
        if prev.heading_deg is not None and curr.heading_deg is not None:
            heading_changes.append(heading_delta(prev.heading_deg, curr.heading_deg))

    if not heading_changes:
        result['pattern_type'] = 'transit'
        return result

    abs_total = abs(sum(heading_changes))

    # Count significant turns (> 45 degrees accumulated)
    significant_turns = 0
    accumulated = 0.0
    for delta in heading_changes:
        accumulated += delta
        if abs(accumulated) >= 45:
            significant_turns += 1
            accumulated = 0.0

    start, end = points[0], points[-1]
    displacement = haversine_nm(start.lat, start.lon, end.lat, end.lon)
    total_distance = sum(haversine_nm(a.lat, a.lon, b.lat, b.lon) for a, b in zip(points, points[1:]))
    result['pattern_length_nm'] = round(total_distance, 1)

    efficiency = displacement / total_distance if total_distance > 0 else 1.0
    result['loiter_time_min'] = round((end.ts - start.ts) / 60, 1) if end.ts > start.ts else 0

    avg_lat = sum(p.lat for p in points) / len(points)
    avg_lon = sum(p.lon for p in points) / len(points)
    for area in TANKER_HOLDING_AREAS:
        if haversine_nm(avg_lat, avg_lon, area['lat'], area['lon']) < area['radius_nm']:
            result['offshore'] = True
            break

    if abs_total >= 300 and efficiency < 0.3:
        result['pattern_type'] = 'orbit'
        if result['offshore'] and result['loiter_time_min'] > 60:
            result['inferred_role'] = 'tanker'
    elif significant_turns >= 2 and 0.2 < efficiency < 0.6:
        result['pattern_type'] = 'racetrack'
        if result['loiter_time_min'] > 120 or total_distance > 200:
            result['inferred_role'] = 'ISR'
    elif efficiency < 0.4 and result['loiter_time_min'] > 60:
        result['pattern_type'] = 'loiter'
        result['inferred_role'] = 'tanker' if result['offshore'] else 'ISR'
    elif efficiency > 0.7 or abs_total < 90:
        result['pattern_type'] = 'transit'
        result['inferred_role'] = 'transport'
    elif significant_turns >= 3:
        result['pattern_type'] = 'racetrack'
        result['inferred_role'] = 'ISR'
    else:
        result['pattern_type'] = 'transit'

    return result


@dataclass
class FlightClassification:
    flight_id: str
    callsign: Optional[str]
    is_military: bool
    country: str
    alliance: str
    role: str
    type_name: Optional[str]
    origin_region: str
    destination_region: str
    origin_bucket: Optional[str]
    is_conflict_bound: bool
    is_from_east: bool
    pattern: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_flight(flight: Flight) -> FlightClassification:
    mil_info = identify_military(flight.callsign)
    is_military = bool(flight.is_military or mil_info)
    pattern = analyze_flight_pattern(flight.points) if is_military else {}

    country = flight.country or (mil_info or {}).get('country') or 'UNKNOWN'

    if flight.role:
        role = flight.role
    elif mil_info:
        role = mil_info['type']
    elif is_military:
        role = pattern.get('inferred_role') or 'other'
    else:
        role = 'civilian'

    if flight.points:
        first, last = flight.points[0], flight.points[-1]
        origin_region = region_of(first.lat, first.lon)
        bucket = origin_bucket(first.lon)
        if flight.destination and flight.destination.upper() in SYRIAN_AIRPORTS:
            destination_region = 'syria'
        else:
            destination_region = region_of(last.lat, last.lon)
    else:
        origin_region = destination_region = 'other'
        bucket = None

    return FlightClassification(
        flight_id=flight.flight_id,
        callsign=flight.callsign,
        is_military=is_military,
        country=country,
        alliance=alliance_of(country),
        role=role,
        type_name=(mil_info or {}).get('name'),
        origin_region=origin_region,
        destination_region=destination_region,
        origin_bucket=bucket,
        is_conflict_bound=destination_region in CONFLICT_ZONES,
        is_from_east=country in EASTERN_COUNTRIES or bucket == 'east',
        pattern=pattern,
    )


def classify_flights(flights: Iterable[Flight]) -> Dict[str, FlightClassification]:
    return {f.flight_id: classify_flight(f) for f in flights}


def military_only(classifications: Dict[str, FlightClassification]) -> List[FlightClassification]:
    return [c for fid, c in sorted(classifications.items()) if c.is_military]
