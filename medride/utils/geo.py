"""
Geo Utilities
Great-circle distance, candidate ranking and arrival estimates for the booking relay
"""

import math
from typing import Iterable, List, Tuple

EARTH_RADIUS_KM = 6371.0
AVERAGE_CITY_SPEED_KMH = 30.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two coordinates using Haversine formula

    Args:
        lat1, lon1: First coordinate (latitude, longitude)
        lat2, lon2: Second coordinate (latitude, longitude)

    Returns:
        Unrounded distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def nearest_within(
    origin: Tuple[float, float],
    points: Iterable[Tuple[object, float, float]],
    radius_km: float,
    limit: int,
) -> List[Tuple[object, float]]:
    """
    Rank points by distance to origin, keeping those strictly inside the radius

    Args:
        origin: (latitude, longitude) of the pickup point
        points: iterable of (item, latitude, longitude); items without a
            position should be filtered out by the caller
        radius_km: exclusive search radius
        limit: maximum number of results

    Returns:
        List of (item, distance_km) in ascending distance order
    """
    ranked = []
    for item, lat, lng in points:
        distance = haversine_km(origin[0], origin[1], lat, lng)
        if distance < radius_km:
            ranked.append((item, distance))

    ranked.sort(key=lambda pair: pair[1])
    return ranked[:limit]


def calculate_eta(distance_km: float, avg_speed_kmh: float = AVERAGE_CITY_SPEED_KMH) -> int:
    """
    Calculate estimated time of arrival in minutes

    Args:
        distance_km: Distance in kilometers
        avg_speed_kmh: Average speed in km/h (default: 30)

    Returns:
        ETA in minutes, at least 1 for any positive distance
    """
    if distance_km <= 0:
        return 0

    minutes = (distance_km / avg_speed_kmh) * 60
    return max(1, round(minutes))
