"""
Distance calculations for beat geofences.

Haversine great-circle distance in meters. Every radius check in the engine
goes through these functions so detection and validation agree exactly.
"""

import math
from typing import List

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def within_radius(center_lat: float, center_lng: float, radius_m: float, lat: float, lng: float) -> bool:
    """True if the point lies inside the circle. The boundary counts as inside."""
    return haversine_m(center_lat, center_lng, lat, lng) <= radius_m


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def coordinate_errors(lat, lng) -> List[str]:
    """Collect validation messages for a latitude/longitude pair."""
    errors = []
    if not _is_number(lat) or not -90 <= lat <= 90:
        errors.append("Latitude must be a number between -90 and 90")
    if not _is_number(lng) or not -180 <= lng <= 180:
        errors.append("Longitude must be a number between -180 and 180")
    return errors


def radius_errors(radius_m, min_m: float, max_m: float) -> List[str]:
    """Collect validation messages for a beat radius."""
    if not _is_number(radius_m) or radius_m <= 0 or not min_m <= radius_m <= max_m:
        return [f"Radius must be a number between {min_m:g} and {max_m:g} meters"]
    return []
