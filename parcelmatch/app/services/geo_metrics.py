"""
Geographic metrics for parcel-trip matching.

Pure functions: great-circle distance and normalized closeness scores.
"""

import math
from typing import NamedTuple, Optional

EARTH_RADIUS_KM = 6371.0


class GeoPoint(NamedTuple):
    """An address with optional geocoded coordinates."""
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    # Haversine formula
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def point_distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Distance between two points that both carry coordinates."""
    return distance_km(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_distance(lat1: float, lon1: float, lat2: float, lon2: float, threshold_km: float) -> bool:
    return distance_km(lat1, lon1, lat2, lon2) <= threshold_km


def proximity_score(distance: float, max_km: float) -> float:
    """
    Closeness score from a distance.

    Returns:
        100 at distance 0, decreasing linearly to 0 at max_km and beyond.
    """
    if distance >= max_km:
        return 0.0
    if distance <= 0:
        return 100.0

    score = 100.0 * (1 - distance / max_km)
    return max(0.0, min(100.0, score))
