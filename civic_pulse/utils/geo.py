"""
Geospatial helpers: great-circle distance and the grid-cell spatial index.

Every stored issue carries a `geo_cell` key derived from its coordinates.
A proximity query first narrows candidates to the cells overlapping the
search circle's bounding box, then confirms each one with haversine.
"""

import math
from typing import List, Optional, Sequence

EARTH_RADIUS_METERS = 6371000
METERS_PER_DEGREE_LAT = 111320.0

# Firestore rejects "in" filters with more than 30 values
MAX_INDEXED_CELLS = 30


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def distance_between(a: Sequence[float], b: Sequence[float]) -> float:
    """Distance between two [longitude, latitude] pairs."""
    return haversine_meters(a[1], a[0], b[1], b[0])


def is_valid_coordinates(coordinates) -> bool:
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        return False
    lng, lat = coordinates
    for value in (lng, lat):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -180 <= lng <= 180 and -90 <= lat <= 90


def cell_key(longitude: float, latitude: float, cell_degrees: float) -> str:
    row = math.floor(latitude / cell_degrees)
    col = math.floor(longitude / cell_degrees)
    return f"{row}:{col}"


def covering_cells(
    longitude: float,
    latitude: float,
    radius_meters: float,
    cell_degrees: float,
    max_cells: int = MAX_INDEXED_CELLS,
) -> Optional[List[str]]:
    """
    Cell keys overlapping the bounding box of a search circle.

    Returns None when the box touches a pole or the antimeridian, or would
    need more than `max_cells` cells; callers then fall back to a scan.
    """
    lat_span = radius_meters / METERS_PER_DEGREE_LAT
    min_lat, max_lat = latitude - lat_span, latitude + lat_span
    if min_lat <= -90 or max_lat >= 90:
        return None

    widest_lat = max(abs(min_lat), abs(max_lat))
    cos_lat = math.cos(math.radians(widest_lat))
    if cos_lat <= 0:
        return None
    lng_span = radius_meters / (METERS_PER_DEGREE_LAT * cos_lat)
    min_lng, max_lng = longitude - lng_span, longitude + lng_span
    if min_lng < -180 or max_lng > 180:
        return None

    rows = range(math.floor(min_lat / cell_degrees), math.floor(max_lat / cell_degrees) + 1)
    cols = range(math.floor(min_lng / cell_degrees), math.floor(max_lng / cell_degrees) + 1)
    if len(rows) * len(cols) > max_cells:
        return None

    return [f"{row}:{col}" for row in rows for col in cols]
