from __future__ import annotations

import math
from typing import List, Tuple

EARTH_RADIUS_NM = 3440.065


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in nautical miles."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = math.sin(delta_lat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_NM * c


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    y = math.sin(math.radians(lon2 - lon1)) * math.cos(math.radians(lat2))
    x = math.cos(math.radians(lat1)) * math.sin(math.radians(lat2)) - math.sin(math.radians(lat1)) * math.cos(
        math.radians(lat2)
    ) * math.cos(math.radians(lon2 - lon1))
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360.0) % 360.0


def heading_delta(a: float, b: float) -> float:
    """Signed smallest difference b - a in degrees, in [-180, 180)."""
    return ((b - a + 540.0) % 360.0) - 180.0


def dead_reckon(lat: float, lon: float, heading_deg: float, distance_nm: float) -> Tuple[float, float]:
    """Flat-earth projection along a heading, good for a few minutes of flight."""
    heading_rad = math.radians(heading_deg)
    dlat = distance_nm * math.cos(heading_rad) / 60.0
    cos_lat = math.cos(math.radians(lat)) or 1e-9
    dlon = distance_nm * math.sin(heading_rad) / (60.0 * cos_lat)
    return lat + dlat, lon + dlon


def to_local_nm(lat: float, lon: float, ref_lat: float, ref_lon: float) -> Tuple[float, float]:
    """Equirectangular projection to (east, north) nm around a reference point."""
    x = (lon - ref_lon) * 60.0 * math.cos(math.radians(ref_lat))
    y = (lat - ref_lat) * 60.0
    return x, y


def from_local_nm(x: float, y: float, ref_lat: float, ref_lon: float) -> Tuple[float, float]:
    lat = ref_lat + y / 60.0
    cos_lat = math.cos(math.radians(ref_lat)) or 1e-9
    lon = ref_lon + x / (60.0 * cos_lat)
    return lat, lon


def expand_polygon_points(hull_points: List[List[float]], centroid_lon: float,
                          centroid_lat: float, buffer_nm: float) -> List[List[float]]:
    """Expand [lon, lat] polygon points outward from the centroid."""
    expanded = []
    buffer_deg = buffer_nm / 60.0

    for lon, lat in hull_points:
        delta_lon = lon - centroid_lon
        delta_lat = lat - centroid_lat
        dist = math.sqrt(delta_lon ** 2 + delta_lat ** 2)

        if dist == 0:
            expanded.append([lon, lat])
            continue

        scale = 1 + (buffer_deg / dist)
        expanded.append([
            round(centroid_lon + delta_lon * scale, 4),
            round(centroid_lat + delta_lat * scale, 4),
        ])

    return expanded


def circle_polygon(center_lon: float, center_lat: float,
                   radius_nm: float, num_points: int = 24) -> List[List[float]]:
    """Closed ring of [lon, lat] points around a center."""
    radius_deg = radius_nm / 60.0
    points = []

    for i in range(num_points):
        angle = 2 * math.pi * i / num_points
        lat = center_lat + radius_deg * math.cos(angle)
        lon = center_lon + (radius_deg / math.cos(math.radians(center_lat))) * math.sin(angle)
        points.append([round(lon, 4), round(lat, 4)])

    points.append(points[0])
    return points


def polygon_area_sq_nm(polygon: List[List[float]]) -> float:
    """Shoelace area of a [lon, lat] ring in square nautical miles."""
    if len(polygon) < 3:
        return 0.0
    ref_lon = sum(p[0] for p in polygon) / len(polygon)
    ref_lat = sum(p[1] for p in polygon) / len(polygon)
    pts = [to_local_nm(lat, lon, ref_lat, ref_lon) for lon, lat in polygon]
    area = 0.0
    for i in range(len(pts)):
        x1, y1 = pts[i]
        x2, y2 = pts[(i + 1) % len(pts)]
        area += x1 * y2 - x2 * y1
    return abs(area) / 2.0
