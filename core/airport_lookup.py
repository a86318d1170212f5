"""
Airport lookup for the regional airports the analytics care about.
Resolves ICAO codes to name, country and coordinates, and answers
"is this position near an airport" for the signal-loss filter.
"""

from typing import Dict, Optional, Tuple

from core.geodesy import haversine_nm

# code -> (name, country, lat, lon)
_AIRPORTS: Dict[str, Tuple[str, str, float, float]] = {
    # Israel
    'LLBG': ('Ben Gurion', 'IL', 32.0114, 34.8867),
    'LLER': ('Ramon', 'IL', 29.9403, 35.0004),
    'LLHA': ('Haifa', 'IL', 32.8094, 35.0431),
    'LLOV': ('Ovda', 'IL', 31.2875, 34.7228),
    # Jordan
    'OJAI': ('Amman', 'JO', 31.7226, 35.9932),
    'OJAM': ('Marka', 'JO', 31.9726, 35.9916),
    # Lebanon
    'OLBA': ('Beirut', 'LB', 33.8209, 35.4884),
    # Cyprus
    'LCRA': ('Akrotiri', 'CY', 34.5904, 32.9879),
    'LCLK': ('Larnaca', 'CY', 34.8751, 33.6249),
    'LCPH': ('Paphos', 'CY', 34.7180, 32.4857),
    # Egypt
    'HECA': ('Cairo', 'EG', 30.1219, 31.4056),
    'HEGN': ('Hurghada', 'EG', 27.1783, 33.7994),
    'HESH': ('Sharm El Sheikh', 'EG', 27.9773, 34.3950),
    # Syria
    'OSDI': ('Damascus', 'SY', 33.4114, 36.5156),
    'OSLK': ('Latakia (Hmeimim)', 'SY', 35.4011, 35.9487),
    'OSAP': ('Aleppo', 'SY', 36.1807, 37.2244),
    'OSPR': ('Palmyra', 'SY', 34.5574, 38.3169),
    'OSDZ': ('Deir ez-Zor', 'SY', 35.2854, 40.1760),
    'OSKL': ('Qamishli', 'SY', 37.0206, 41.1914),
    # Turkey
    'LTAG': ('Incirlik', 'TR', 37.0021, 35.4259),
    'LTBA': ('Istanbul Ataturk', 'TR', 40.9769, 28.8146),
    # Gulf
    'OMDB': ('Dubai', 'AE', 25.2528, 55.3644),
    'OERK': ('Riyadh', 'SA', 24.9576, 46.6988),
    'OEJN': ('Jeddah', 'SA', 21.6796, 39.1565),
}

# Airports where signal loss at low level is normal and not interesting
SIGNAL_LOSS_EXCLUDED = (
    'LLBG', 'LLER', 'LLHA', 'LLOV', 'OJAI', 'OJAM',
    'OLBA', 'LCRA', 'LCLK', 'HECA', 'HEGN', 'HESH',
)


def get_airport_place(code: Optional[str]) -> Optional[Dict[str, object]]:
    """
    Resolve an ICAO code to {code, name, country, lat, lon, place}.
    Returns None if not found or code is empty.
    """
    code = (code or "").strip().upper()
    if not code or code not in _AIRPORTS:
        return None
    name, country, lat, lon = _AIRPORTS[code]
    return {
        "code": code,
        "name": name,
        "country": country,
        "lat": lat,
        "lon": lon,
        "place": f"{name}, {country}",
    }


def get_airport_coords(code: Optional[str]) -> Optional[Tuple[float, float]]:
    info = get_airport_place(code)
    if not info:
        return None
    return info["lat"], info["lon"]


def is_near_airport(lat: float, lon: float, radius_nm: float = 5.0,
                    codes: Tuple[str, ...] = SIGNAL_LOSS_EXCLUDED) -> bool:
    for code in codes:
        _, _, a_lat, a_lon = _AIRPORTS[code]
        if haversine_nm(lat, lon, a_lat, a_lon) < radius_nm:
            return True
    return False
